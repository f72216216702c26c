"""In-memory store for the single active repository configuration.

Nothing is persisted: a restart forgets the repository until the next
``POST /config``.
"""

import logging
import threading
from urllib.parse import urlparse

from pushpilot.errors import InvalidRepositoryURL
from pushpilot.models import RepositoryConfig, RepositoryConfigIn

logger = logging.getLogger(__name__)


def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """Split a repository URL into ``(owner, name)``.

    Accepts ``https://host/owner/name(.git)``, ``git@host:owner/name(.git)``
    and bare ``owner/name``.  The last two path segments win, so
    ``https://host/group/sub/name`` gives ``("sub", "name")``.

    Raises:
        InvalidRepositoryURL: fewer than two non-empty path segments.
    """
    url = repo_url.strip()
    if url.endswith("/"):
        url = url.rstrip("/")
    if url.endswith(".git"):
        url = url[: -len(".git")]

    if "://" in url:
        path = urlparse(url).path
    elif url.startswith("git@") and ":" in url:
        path = url.split(":", 1)[1]
    else:
        path = url

    segments = [s for s in path.split("/") if s]
    if len(segments) < 2:
        raise InvalidRepositoryURL(repo_url)
    return segments[-2], segments[-1]


class RepositoryConfigStore:
    """Guarded holder for the active :class:`RepositoryConfig`.

    Configs are immutable and replaced wholesale, so readers get a stable
    snapshot and only writers contend on the lock.
    """

    def __init__(self) -> None:
        self._config: RepositoryConfig | None = None
        self._lock = threading.Lock()

    @staticmethod
    def normalize(raw: RepositoryConfigIn) -> RepositoryConfig:
        """Fill owner/name from the URL when the caller left them out.

        The URL is always validated, even when both parts are given.
        """
        url_owner, url_name = parse_repo_url(raw.repo_url)
        owner = (raw.owner or "").strip() or url_owner
        name = (raw.name or "").strip() or url_name
        return RepositoryConfig(repo_url=raw.repo_url.strip(), owner=owner, name=name)

    def set_config(self, raw: RepositoryConfigIn, *, default_branch: str = "") -> RepositoryConfig:
        """Normalize *raw* and make it the active configuration."""
        config = self.normalize(raw)
        if default_branch:
            config = config.model_copy(update={"default_branch": default_branch})
        with self._lock:
            self._config = config
        logger.info(
            "Repository configured: %s (default branch %s)",
            config.full_name,
            config.default_branch or "unresolved",
        )
        return config

    def get_config(self) -> RepositoryConfig | None:
        """Current configuration, or None when nothing was configured yet."""
        with self._lock:
            return self._config

    def clear(self) -> None:
        with self._lock:
            self._config = None
