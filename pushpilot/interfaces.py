"""Capability contracts for the external collaborators.

The orchestrator and the routers only talk to these protocols, so tests
(and alternative code hosts) can substitute their own implementations.
"""

from typing import Protocol

from pushpilot.models import DiffSummary, PRContent, PullRequest, PullRequestOptions, RepoInfo


class CodeHost(Protocol):
    """Remote repository API (GitHub in production)."""

    async def create_pull_request(self, owner: str, repo: str, options: PullRequestOptions) -> PullRequest: ...

    async def get_default_branch(self, owner: str, repo: str) -> str: ...

    async def get_diff(self, owner: str, repo: str, base: str, head: str) -> DiffSummary: ...

    async def get_commit_message(self, owner: str, repo: str, sha: str) -> str: ...

    async def get_contributing_guide(self, owner: str, repo: str) -> str | None: ...


class ContentGenerator(Protocol):
    """Drafts a pull-request title and description."""

    async def generate(self, repo_info: RepoInfo) -> PRContent: ...


class HookInstaller(Protocol):
    """Local git-hook and remote-webhook setup, used by setup flows only."""

    def install_hooks(self, repo_path: str, *, force: bool = False) -> list[str]: ...

    def remove_hooks(self, repo_path: str) -> list[str]: ...

    async def register_webhook(self, owner: str, repo: str) -> int | None: ...

    async def deregister_webhook(self, owner: str, repo: str) -> bool: ...
