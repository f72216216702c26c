"""GitHub API client -- pull requests, compares, commits, contents and webhooks."""

import base64
import logging

import httpx
from cachetools import TTLCache

from pushpilot.models import ChangeDescriptor, DiffSummary, PullRequest, PullRequestOptions

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"

# Conventional locations, checked in order.
CONTRIBUTING_GUIDE_PATHS = (
    "CONTRIBUTING.md",
    ".github/CONTRIBUTING.md",
    "docs/CONTRIBUTING.md",
    "CONTRIBUTING",
    ".github/CONTRIBUTING",
)

# Patch excerpt kept per file in the generator context.
_MAX_PATCH_CHARS = 1500
_MISSING = object()


def _auth_headers(access_token: str) -> dict:
    """Return standard GitHub API auth headers."""
    return {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/vnd.github+json",
    }


class GitHubClient:
    """Async GitHub REST client bound to one access token.

    The underlying ``httpx.AsyncClient`` is created lazily and shared by
    every call (connection pooling); :meth:`close` releases it at shutdown.
    """

    def __init__(self, access_token: str, api_base: str = GITHUB_API_BASE, timeout: float = 30.0) -> None:
        self._token = access_token
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        # (owner, repo) -> guide text or None; absence is cached too
        self._guide_cache: TTLCache[tuple[str, str], str | None] = TTLCache(maxsize=100, ttl=300)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the shared HTTP client.  Called during app shutdown."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str) -> str:
        return f"{self._api_base}{path}"

    async def _get(self, path: str, **kwargs) -> httpx.Response:
        return await self._get_client().get(self._url(path), headers=_auth_headers(self._token), **kwargs)

    # ── repository info ─────────────────────────────────────────────

    async def get_authenticated_user(self) -> dict:
        """Fetch the token owner's profile (used as a startup token check)."""
        response = await self._get("/user")
        response.raise_for_status()
        data = response.json()
        return {"login": data["login"], "id": data["id"]}

    async def get_default_branch(self, owner: str, repo: str) -> str:
        response = await self._get(f"/repos/{owner}/{repo}")
        response.raise_for_status()
        branch = response.json().get("default_branch")
        if not branch:
            raise ValueError(f"GitHub returned no default branch for {owner}/{repo}")
        return branch

    async def get_diff(self, owner: str, repo: str, base: str, head: str) -> DiffSummary:
        """Compare ``base...head``.

        Uses GitHub's Compare API: GET /repos/{owner}/{repo}/compare/{base}...{head}
        A 404 means one side does not exist (yet) on the remote.
        """
        response = await self._get(f"/repos/{owner}/{repo}/compare/{base}...{head}")
        if response.status_code == 404:
            raise ValueError(f"Cannot compare {base}...{head}: branch or commit not found")
        response.raise_for_status()
        data = response.json()

        files = tuple(
            ChangeDescriptor(
                path=f["filename"],
                status=f.get("status", "modified"),
                additions=f.get("additions", 0),
                deletions=f.get("deletions", 0),
                notes=(f["patch"][:_MAX_PATCH_CHARS],) if f.get("patch") else (),
            )
            for f in data.get("files", [])
        )
        messages = tuple(
            c.get("commit", {}).get("message", "")
            for c in data.get("commits", [])
            if c.get("commit", {}).get("message")
        )
        return DiffSummary(
            url=data.get("html_url") or data.get("diff_url") or "",
            files=files,
            commit_messages=messages,
        )

    async def get_commit_message(self, owner: str, repo: str, sha: str) -> str:
        """Message of commit *sha*.

        Tries the Git Data API first and falls back to the Repositories
        commits API when the former answers 404.
        """
        response = await self._get(f"/repos/{owner}/{repo}/git/commits/{sha}")
        if response.status_code == 404:
            logger.debug("Commit %s not found via Git API, trying Repositories API", sha)
            response = await self._get(f"/repos/{owner}/{repo}/commits/{sha}")
            response.raise_for_status()
            return response.json().get("commit", {}).get("message", "")
        response.raise_for_status()
        return response.json().get("message", "")

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str | None = None) -> str | None:
        """Fetch a single file's decoded text, or None if it doesn't exist."""
        params = {"ref": ref} if ref else None
        response = await self._get(f"/repos/{owner}/{repo}/contents/{path}", params=params)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        if isinstance(data, list):  # a directory, not a file
            return None
        if data.get("encoding") == "base64":
            return base64.b64decode(data["content"]).decode("utf-8", errors="replace")
        return data.get("content", "")

    async def get_contributing_guide(self, owner: str, repo: str) -> str | None:
        """First contributing guide found at a conventional path (cached 5 min)."""
        key = (owner, repo)
        cached = self._guide_cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        guide: str | None = None
        for path in CONTRIBUTING_GUIDE_PATHS:
            content = await self.get_file_content(owner, repo, path)
            if content and content.strip():
                guide = content
                break
        self._guide_cache[key] = guide
        return guide

    # ── pull requests ───────────────────────────────────────────────

    async def create_pull_request(self, owner: str, repo: str, options: PullRequestOptions) -> PullRequest:
        """Open a pull request, then apply labels.

        A labelling failure is logged and ignored: the PR already exists.
        """
        client = self._get_client()
        response = await client.post(
            self._url(f"/repos/{owner}/{repo}/pulls"),
            json={
                "title": options.title,
                "body": options.description,
                "head": options.branch,
                "base": options.base_branch,
                "maintainer_can_modify": True,
            },
            headers=_auth_headers(self._token),
        )
        if response.status_code == 422:
            errors = response.json().get("errors", [])
            msgs = [e.get("message", "") for e in errors if e.get("message")]
            msg = response.json().get("message", "Validation failed")
            raise ValueError(f"{msg}: {'; '.join(msgs)}" if msgs else msg)
        response.raise_for_status()
        data = response.json()
        pr = PullRequest(number=data["number"], url=data.get("html_url", ""))

        if options.labels:
            try:
                label_resp = await client.post(
                    self._url(f"/repos/{owner}/{repo}/issues/{pr.number}/labels"),
                    json={"labels": list(options.labels)},
                    headers=_auth_headers(self._token),
                )
                label_resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("PR #%d created but labels could not be applied: %s", pr.number, exc)
        return pr

    # ── webhooks ────────────────────────────────────────────────────

    async def list_webhooks(self, owner: str, repo: str) -> list[dict]:
        response = await self._get(f"/repos/{owner}/{repo}/hooks")
        response.raise_for_status()
        return [
            {"id": h["id"], "url": h.get("config", {}).get("url", ""), "events": h.get("events", [])}
            for h in response.json()
        ]

    async def create_webhook(self, owner: str, repo: str, webhook_url: str, webhook_secret: str = "") -> int:
        """Create a push webhook on a GitHub repo.

        Returns the webhook ID from GitHub.
        """
        config = {
            "url": webhook_url,
            "content_type": "json",
            "insecure_ssl": "0",
        }
        if webhook_secret:
            config["secret"] = webhook_secret
        response = await self._get_client().post(
            self._url(f"/repos/{owner}/{repo}/hooks"),
            json={"name": "web", "active": True, "events": ["push"], "config": config},
            headers=_auth_headers(self._token),
        )
        response.raise_for_status()
        return response.json()["id"]

    async def delete_webhook(self, owner: str, repo: str, webhook_id: int) -> None:
        """Delete a webhook from a GitHub repo."""
        response = await self._get_client().delete(
            self._url(f"/repos/{owner}/{repo}/hooks/{webhook_id}"),
            headers=_auth_headers(self._token),
        )
        # 404 is fine -- webhook may already be gone
        if response.status_code != 404:
            response.raise_for_status()
