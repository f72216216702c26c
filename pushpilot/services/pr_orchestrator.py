"""Push-to-pull-request pipeline.

One push runs five steps against the configured repository:

1. resolve the default branch (falls back to ``main``)
2. gather change context: compare default...branch, else the commit
   message, else a fixed message
3. fetch a contributing guide (optional)
4. generate the title and description (fatal on failure)
5. open the pull request (fatal on failure)

Steps 1-3 never abort the pipeline.  Steps 4-5 raise
:class:`~pushpilot.errors.UpstreamUnavailable` subclasses that the ingress
maps to 5xx responses.  Nothing is retried.
"""

import logging
from collections.abc import Sequence
from dataclasses import replace

from pushpilot.errors import GenerationError, PilotError, PullRequestCreationError
from pushpilot.interfaces import CodeHost, ContentGenerator
from pushpilot.models import (
    ChangeDescriptor,
    PRContent,
    PullRequestOptions,
    PullRequestResult,
    PushEvent,
    RepoInfo,
    RepositoryConfig,
)

logger = logging.getLogger(__name__)

FALLBACK_BASE_BRANCH = "main"


def fallback_commit_message(branch: str) -> str:
    return f"Update from push to {branch}"


class PullRequestOrchestrator:
    """Runs the pipeline for one push event at a time (safe to share)."""

    def __init__(
        self,
        code_host: CodeHost,
        generator: ContentGenerator,
        labels: Sequence[str] = (),
    ) -> None:
        self.code_host = code_host
        self.generator = generator
        self.labels = tuple(labels)

    async def run(self, config: RepositoryConfig, event: PushEvent) -> PullRequestResult:
        owner, repo = config.owner, config.name
        branch = event.branch_name
        logger.info("Push to %s/%s branch %s (%s)", owner, repo, branch, event.after[:12] or "no sha")

        base = await self._resolve_default_branch(owner, repo)
        repo_info = await self._gather_change_context(owner, repo, base, branch, event.after)
        guide = await self._gather_contributing_guide(owner, repo)
        if guide:
            repo_info = replace(repo_info, contributing_guide=guide)

        content = await self._generate(repo_info)
        description = content.description
        if event.after:
            description = f"{description}\n\nCommit: {event.after}"

        options = PullRequestOptions(
            title=content.title,
            description=description,
            branch=branch,
            base_branch=base,
            labels=self.labels,
        )
        return await self._create_pull_request(owner, repo, options)

    # ── best-effort steps ──────────────────────────────────────

    async def _resolve_default_branch(self, owner: str, repo: str) -> str:
        try:
            base = await self.code_host.get_default_branch(owner, repo)
        except Exception as exc:
            logger.warning(
                "[resolve_default_branch] lookup failed, using %r: %s", FALLBACK_BASE_BRANCH, exc,
            )
            return FALLBACK_BASE_BRANCH
        logger.info("[resolve_default_branch] %s", base)
        return base

    async def _gather_change_context(
        self, owner: str, repo: str, base: str, branch: str, sha: str,
    ) -> RepoInfo:
        try:
            diff = await self.code_host.get_diff(owner, repo, base, branch)
        except Exception as exc:
            logger.warning("[gather_change_context] diff %s...%s failed: %s", base, branch, exc)
        else:
            changes = {f.path: f for f in diff.files}
            if not changes:
                # Same commit on both sides; still hand the generator something.
                changes[branch] = ChangeDescriptor(
                    path=branch, status="unchanged", notes=(f"Compare: {diff.url}",),
                )
            message = diff.commit_messages[-1] if diff.commit_messages else ""
            logger.info("[gather_change_context] %d file(s) changed", len(diff.files))
            return RepoInfo(branch_name=branch, commit_message=message, changes=changes)

        message = ""
        if sha:
            try:
                message = (await self.code_host.get_commit_message(owner, repo, sha)).strip()
            except Exception as exc:
                logger.warning("[gather_change_context] commit %s lookup failed: %s", sha, exc)
        if not message:
            message = fallback_commit_message(branch)
            logger.info("[gather_change_context] using generic message")
        else:
            logger.info("[gather_change_context] using commit message for %s", sha[:12])
        return RepoInfo(
            branch_name=branch,
            commit_message=message,
            changes={branch: ChangeDescriptor(path=branch, notes=(f"Commit: {message}",))},
        )

    async def _gather_contributing_guide(self, owner: str, repo: str) -> str | None:
        try:
            guide = await self.code_host.get_contributing_guide(owner, repo)
        except Exception as exc:
            logger.warning("[gather_contributing_guide] lookup failed: %s", exc)
            return None
        if guide:
            logger.info("[gather_contributing_guide] found (%d bytes)", len(guide))
        else:
            logger.info("[gather_contributing_guide] none")
        return guide or None

    # ── fatal steps ────────────────────────────────────────────

    async def _generate(self, repo_info: RepoInfo) -> PRContent:
        try:
            content = await self.generator.generate(repo_info)
        except PilotError as exc:
            logger.error("[generate_content] failed: %s", exc)
            raise
        except Exception as exc:
            logger.error("[generate_content] failed: %s", exc)
            raise GenerationError(f"Content generation failed: {exc}") from exc
        logger.info("[generate_content] title: %s", content.title)
        return content

    async def _create_pull_request(
        self, owner: str, repo: str, options: PullRequestOptions,
    ) -> PullRequestResult:
        try:
            pr = await self.code_host.create_pull_request(owner, repo, options)
        except Exception as exc:
            logger.error(
                "[create_pull_request] %s -> %s failed: %s", options.branch, options.base_branch, exc,
            )
            raise PullRequestCreationError(f"Pull request creation failed: {exc}") from exc
        logger.info("[create_pull_request] created #%d %s", pr.number, pr.url)
        return PullRequestResult(
            number=pr.number, url=pr.url, branch=options.branch, base_branch=options.base_branch,
        )
