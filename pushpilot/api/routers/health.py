"""Health check router."""

from fastapi import APIRouter

from pushpilot import VERSION

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict:
    """Liveness probe.  Never rate-limited and independent of configuration."""
    return {"status": "ok"}


@router.get("/health/version")
async def health_version() -> dict:
    return {"version": VERSION}
