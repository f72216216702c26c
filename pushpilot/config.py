"""Application configuration loaded from environment variables.

Uses ``pydantic-settings`` for automatic env-var loading, type coercion,
and ``.env`` file support.  Required settings are checked by
:func:`check_required_settings` when the server starts (skipped under
pytest) rather than on import, so the CLI helpers keep working without
credentials.
"""

import os
import sys
import tempfile

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings -- sourced from environment / ``.env`` file.

    Required vars (must be set in production, may be blank in test):
      GITHUB_TOKEN, plus the API key of the resolved LLM provider
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- server --
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=8080, ge=1, le=65535)
    DEBUG: bool = False
    PUBLIC_URL: str = "http://localhost:8080"  # where git hooks / GitHub post pushes
    PID_FILE: str = os.path.join(tempfile.gettempdir(), "pushpilot.pid")
    SHUTDOWN_GRACE_SECONDS: int = Field(default=30, ge=1)

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # -- code host --
    GITHUB_TOKEN: str = ""
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_WEBHOOK_SECRET: str = ""  # blank disables signature checks

    # -- content generation --
    LLM_PROVIDER: str = ""  # "openai" | "anthropic" | auto
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o"
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_MODEL: str = "claude-haiku-4-5"
    LLM_MAX_TOKENS: int = Field(default=1000, ge=64)
    CONTRIBUTING_GUIDE_MAX_CHARS: int = Field(default=4000, ge=0)

    # -- visitor rate limiting (per client IP) --
    RATE_LIMIT_PER_SECOND: float = Field(default=1.0, gt=0)
    RATE_LIMIT_BURST: int = Field(default=5, ge=1)
    RATE_LIMIT_PURGE_SECONDS: int = Field(default=600, ge=1)

    # -- push pipeline --
    PR_LABELS: list[str] = ["ai-generated"]
    PUSH_TIMEOUT_SECONDS: float = Field(default=120.0, gt=0)
    # "sync" answers after the PR exists; "background" acknowledges first
    # and hands the event to the bounded worker pool.
    PUSH_DISPATCH: str = Field(default="sync", pattern=r"^(sync|background)$")
    PUSH_WORKERS: int = Field(default=4, ge=1)
    PUSH_QUEUE_LIMIT: int = Field(default=32, ge=1)


settings = Settings()


def resolve_llm_provider(cfg: Settings | None = None) -> str:
    """Return the effective LLM provider name.

    An explicit ``LLM_PROVIDER`` wins; otherwise OpenAI is used when its
    key is configured and Anthropic in every other case.
    """
    cfg = cfg or settings
    provider = cfg.LLM_PROVIDER.strip().lower()
    if provider in ("openai", "anthropic"):
        return provider
    return "openai" if cfg.OPENAI_API_KEY else "anthropic"


def missing_required_settings(cfg: Settings | None = None) -> list[str]:
    """Return the names of required settings that are blank."""
    cfg = cfg or settings
    missing: list[str] = []
    if not cfg.GITHUB_TOKEN:
        missing.append("GITHUB_TOKEN")
    key_var = "OPENAI_API_KEY" if resolve_llm_provider(cfg) == "openai" else "ANTHROPIC_API_KEY"
    if not getattr(cfg, key_var):
        missing.append(key_var)
    return missing


def check_required_settings(cfg: Settings | None = None) -> None:
    """Exit with status 1 when required settings are missing.

    No-op under pytest so tests can run with blank credentials.
    """
    if "pytest" in sys.modules:
        return
    missing = missing_required_settings(cfg)
    if missing:
        print(
            f"[config] FATAL: missing required environment variables: "
            f"{', '.join(missing)}",
            file=sys.stderr,
        )
        sys.exit(1)
