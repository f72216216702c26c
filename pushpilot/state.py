"""Per-application state holder.

Everything a request handler may touch lives on one :class:`ServerState`
stored at ``app.state.pilot``.  The two mutable pieces (the repository
config and the visitor map) are only reachable through their own guarded
accessors.
"""

from dataclasses import dataclass

from pushpilot.api.rate_limit import VisitorRateLimiter
from pushpilot.config import Settings
from pushpilot.interfaces import CodeHost, ContentGenerator
from pushpilot.services.config_store import RepositoryConfigStore
from pushpilot.services.pr_orchestrator import PullRequestOrchestrator
from pushpilot.services.push_dispatcher import PushDispatcher


@dataclass
class ServerState:
    settings: Settings
    config_store: RepositoryConfigStore
    limiter: VisitorRateLimiter
    code_host: CodeHost
    generator: ContentGenerator
    orchestrator: PullRequestOrchestrator
    dispatcher: PushDispatcher

    @classmethod
    def build(cls, cfg: Settings, code_host: CodeHost, generator: ContentGenerator) -> "ServerState":
        return cls(
            settings=cfg,
            config_store=RepositoryConfigStore(),
            limiter=VisitorRateLimiter(
                rate=cfg.RATE_LIMIT_PER_SECOND,
                burst=cfg.RATE_LIMIT_BURST,
                purge_interval=cfg.RATE_LIMIT_PURGE_SECONDS,
            ),
            code_host=code_host,
            generator=generator,
            orchestrator=PullRequestOrchestrator(code_host, generator, labels=cfg.PR_LABELS),
            dispatcher=PushDispatcher(
                workers=cfg.PUSH_WORKERS,
                queue_limit=cfg.PUSH_QUEUE_LIMIT,
                timeout=cfg.PUSH_TIMEOUT_SECONDS,
            ),
        )
