"""Repository configuration router -- ``POST /config``."""

import json
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from pushpilot.api.deps import get_state
from pushpilot.api.rate_limit import enforce_rate_limit
from pushpilot.errors import InvalidPayloadError, UpstreamUnavailable
from pushpilot.models import RepositoryConfigIn
from pushpilot.state import ServerState

logger = logging.getLogger(__name__)

router = APIRouter(tags=["config"])


def parse_config_body(body: bytes) -> RepositoryConfigIn:
    """Decode the raw body; anything malformed is a 400, not FastAPI's 422."""
    try:
        data = json.loads(body or b"null")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidPayloadError(f"Request body is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidPayloadError("Request body must be a JSON object with a repo_url")
    try:
        return RepositoryConfigIn.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()
        )
        raise InvalidPayloadError(f"Invalid repository config: {problems}") from exc


@router.post("/config", dependencies=[Depends(enforce_rate_limit)])
async def set_repository_config(
    request: Request,
    state: ServerState = Depends(get_state),
) -> dict:
    """Store the active repository and resolve its default branch."""
    raw = parse_config_body(await request.body())
    config = state.config_store.normalize(raw)

    try:
        default_branch = await state.code_host.get_default_branch(config.owner, config.name)
    except Exception as exc:
        logger.error("Default branch lookup for %s failed: %s", config.full_name, exc)
        raise UpstreamUnavailable(
            f"Could not resolve the default branch of {config.full_name}: {exc}",
            step="resolve_default_branch",
            status_code=500,
        ) from exc

    stored = state.config_store.set_config(raw, default_branch=default_branch)
    return {
        "status": "config_stored",
        "owner": stored.owner,
        "name": stored.name,
        "default_branch": stored.default_branch,
    }

