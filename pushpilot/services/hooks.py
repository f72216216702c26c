"""Local git hooks and the remote push webhook.

The installed hooks POST ``{"ref", "sha"}`` to ``<PUBLIC_URL>/push`` in the
background and always exit 0, so git is never blocked by the service.  Every
hook file we write carries :data:`HOOK_MARKER`; hooks without it belong to
someone else and are left alone unless the caller forces an overwrite.
"""

import logging
import os
import stat
from pathlib import Path

from pushpilot.clients.github_client import GitHubClient

logger = logging.getLogger(__name__)

HOOK_MARKER = "# managed-by: pushpilot"
HOOK_NAMES = ("post-commit", "pre-push")

_POST_COMMIT = """\
#!/bin/sh
{marker}
[ -n "$PUSHPILOT_DISABLED" ] && exit 0
ref=$(git symbolic-ref -q HEAD) || exit 0
sha=$(git rev-parse HEAD)
curl -s -m 10 -X POST "{url}" \\
    -H "Content-Type: application/json" \\
    -d "{{\\"ref\\":\\"$ref\\",\\"sha\\":\\"$sha\\"}}" >/dev/null 2>&1 &
exit 0
"""

# git feeds "<local ref> <local sha> <remote ref> <remote sha>" lines on stdin.
_PRE_PUSH = """\
#!/bin/sh
{marker}
[ -n "$PUSHPILOT_DISABLED" ] && exit 0
while read -r local_ref local_sha remote_ref remote_sha; do
    case "$local_ref" in
        refs/heads/*) ;;
        *) continue ;;
    esac
    (sleep 5; curl -s -m 10 -X POST "{url}" \\
        -H "Content-Type: application/json" \\
        -d "{{\\"ref\\":\\"$local_ref\\",\\"sha\\":\\"$local_sha\\"}}" >/dev/null 2>&1) &
done
exit 0
"""

_TEMPLATES = {"post-commit": _POST_COMMIT, "pre-push": _PRE_PUSH}


class HookError(Exception):
    """Hook installation or removal could not proceed."""


def render_hook(name: str, push_url: str) -> str:
    return _TEMPLATES[name].format(marker=HOOK_MARKER, url=push_url)


def _is_ours(path: Path) -> bool:
    try:
        return HOOK_MARKER in path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return False


class HookManager:
    """Installs/removes local hooks and registers the GitHub webhook.

    Args:
        public_url: Base URL of the running service.
        code_host: Used only for the webhook calls.
        webhook_secret: Sent to GitHub so deliveries are signed.
    """

    def __init__(
        self,
        public_url: str,
        code_host: GitHubClient | None = None,
        webhook_secret: str = "",
    ) -> None:
        self.push_url = public_url.rstrip("/") + "/push"
        self.code_host = code_host
        self.webhook_secret = webhook_secret

    # ── local hooks ───────────────────────────────────────────

    @staticmethod
    def validate_git_repo(repo_path: str | os.PathLike) -> Path:
        """Return the hooks directory of *repo_path*, or raise HookError."""
        git_dir = Path(repo_path) / ".git"
        if git_dir.is_file():
            # Worktrees and submodules: ".git" is a "gitdir: <path>" pointer.
            content = git_dir.read_text(encoding="utf-8").strip()
            if not content.startswith("gitdir:"):
                raise HookError(f"Unrecognised .git file in {repo_path}")
            git_dir = (Path(repo_path) / content[len("gitdir:"):].strip()).resolve()
        if not git_dir.is_dir():
            raise HookError(f"Not a git repository: {repo_path}")
        return git_dir / "hooks"

    def install_hooks(self, repo_path: str | os.PathLike, *, force: bool = False) -> list[str]:
        """Write every hook.  Returns the names written.

        Raises:
            HookError: a foreign hook is in the way and *force* is False.
        """
        hooks_dir = self.validate_git_repo(repo_path)
        hooks_dir.mkdir(parents=True, exist_ok=True)

        blocked = [
            name for name in HOOK_NAMES
            if (hooks_dir / name).exists() and not _is_ours(hooks_dir / name)
        ]
        if blocked and not force:
            raise HookError(
                f"Existing hooks not managed by pushpilot: {', '.join(blocked)} "
                f"(use --force to overwrite)"
            )

        written: list[str] = []
        for name in HOOK_NAMES:
            path = hooks_dir / name
            path.write_text(render_hook(name, self.push_url), encoding="utf-8", newline="\n")
            path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            written.append(name)
        logger.info("Installed hooks %s in %s -> %s", written, hooks_dir, self.push_url)
        return written

    def remove_hooks(self, repo_path: str | os.PathLike) -> list[str]:
        """Delete our hooks.  Foreign hooks are skipped.  Returns names removed."""
        hooks_dir = self.validate_git_repo(repo_path)
        removed: list[str] = []
        for name in HOOK_NAMES:
            path = hooks_dir / name
            if not path.exists():
                continue
            if not _is_ours(path):
                logger.warning("Leaving %s in place: not managed by pushpilot", path)
                continue
            path.unlink()
            removed.append(name)
        logger.info("Removed hooks %s from %s", removed, hooks_dir)
        return removed

    # ── remote webhook ────────────────────────────────────────

    def _require_code_host(self) -> GitHubClient:
        if self.code_host is None:
            raise HookError("A GitHub client is required for webhook operations")
        return self.code_host

    async def register_webhook(self, owner: str, repo: str) -> int | None:
        """Create the push webhook unless one with our URL exists.

        Returns the new hook ID, or None when it was already registered.
        """
        host = self._require_code_host()
        for hook in await host.list_webhooks(owner, repo):
            if hook["url"] == self.push_url:
                logger.info("Webhook already registered on %s/%s (id=%s)", owner, repo, hook["id"])
                return None
        hook_id = await host.create_webhook(owner, repo, self.push_url, self.webhook_secret)
        logger.info("Registered webhook %s on %s/%s -> %s", hook_id, owner, repo, self.push_url)
        return hook_id

    async def deregister_webhook(self, owner: str, repo: str) -> bool:
        """Delete every webhook pointing at our URL.  Returns False if none matched."""
        host = self._require_code_host()
        matches = [h for h in await host.list_webhooks(owner, repo) if h["url"] == self.push_url]
        for hook in matches:
            await host.delete_webhook(owner, repo, hook["id"])
            logger.info("Deleted webhook %s on %s/%s", hook["id"], owner, repo)
        if not matches:
            logger.info("No webhook for %s on %s/%s", self.push_url, owner, repo)
        return bool(matches)
