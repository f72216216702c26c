"""pushpilot -- FastAPI application entry point."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pushpilot import VERSION
from pushpilot.api.routers.health import router as health_router
from pushpilot.api.routers.push import router as push_router
from pushpilot.api.routers.repo_config import router as config_router
from pushpilot.clients import llm_client
from pushpilot.clients.github_client import GitHubClient
from pushpilot.config import Settings, check_required_settings, settings
from pushpilot.interfaces import CodeHost, ContentGenerator
from pushpilot.logging_config import configure_logging
from pushpilot.middleware import RequestIDMiddleware
from pushpilot.middleware.access_log import AccessLogMiddleware
from pushpilot.middleware.exception_handler import setup_exception_handlers
from pushpilot.services.pr_generator import PRGenerator
from pushpilot.state import ServerState

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Application lifespan: startup and shutdown hooks."""
    state: ServerState = application.state.pilot
    cfg = state.settings
    configure_logging(cfg.LOG_LEVEL, cfg.LOG_FILE)
    check_required_settings(cfg)

    if "pytest" not in sys.modules and isinstance(state.code_host, GitHubClient):
        try:
            user = await state.code_host.get_authenticated_user()
            logger.info("GitHub token OK (authenticated as %s)", user.get("login", "?"))
        except Exception as exc:
            # Network hiccups at boot should not keep the server down.
            logger.warning("GitHub token check failed (%s) -- continuing.", exc)

    await state.limiter.start_purger()
    logger.info(
        "pushpilot %s ready (dispatch=%s, rate=%.2f/s burst=%d)",
        VERSION, cfg.PUSH_DISPATCH, cfg.RATE_LIMIT_PER_SECOND, cfg.RATE_LIMIT_BURST,
    )
    yield
    # Shutdown order: stop purger, cancel background pushes (they still
    # use the HTTP clients), then close the clients.
    await state.limiter.stop_purger()
    await state.dispatcher.shutdown()
    if isinstance(state.code_host, GitHubClient):
        await state.code_host.close()
    await llm_client.close_client()


def create_app(
    *,
    cfg: Settings | None = None,
    code_host: CodeHost | None = None,
    generator: ContentGenerator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators default to the GitHub client and the LLM-backed
    generator; tests pass doubles instead.
    """
    cfg = cfg or settings
    if code_host is None:
        code_host = GitHubClient(cfg.GITHUB_TOKEN, api_base=cfg.GITHUB_API_URL)
    if generator is None:
        generator = PRGenerator(cfg)

    application = FastAPI(
        title="pushpilot",
        version=VERSION,
        description="Turns pushes into AI-written pull requests",
        lifespan=lifespan,
        docs_url="/docs" if cfg.DEBUG else None,
        redoc_url="/redoc" if cfg.DEBUG else None,
    )
    application.state.pilot = ServerState.build(cfg, code_host, generator)

    setup_exception_handlers(application)

    # Added last = outermost, so the access log sees the request ID.
    application.add_middleware(AccessLogMiddleware)
    application.add_middleware(RequestIDMiddleware)

    application.include_router(health_router)
    application.include_router(config_router)
    application.include_router(push_router)
    return application


app = create_app()
