"""Shared test fixtures.

Provides:
- ``settings_factory`` -- deterministic :class:`Settings` without env/.env input
- ``FakeCodeHost`` / ``FakeGenerator`` -- recording collaborator doubles
- ``make_app`` -- app factory fixture wired to the doubles
"""

import pytest
from fastapi.testclient import TestClient

from pushpilot.config import Settings
from pushpilot.main import create_app
from pushpilot.models import (
    ChangeDescriptor,
    DiffSummary,
    PRContent,
    PullRequest,
    RepoInfo,
)


def pytest_configure(config):
    """Register custom markers.

    Tests that talk to real GitHub / LLM endpoints should be decorated
    with ``@pytest.mark.integration`` and are skipped with
    ``-m 'not integration'``.
    """
    config.addinivalue_line(
        "markers",
        "integration: tests requiring external services (GitHub, LLM APIs)",
    )


def _make_settings(**overrides) -> Settings:
    values = {
        "GITHUB_TOKEN": "ghp_test",
        "ANTHROPIC_API_KEY": "test-key",
        "OPENAI_API_KEY": "",
        "LLM_PROVIDER": "",
        "GITHUB_WEBHOOK_SECRET": "",
        "RATE_LIMIT_PER_SECOND": 1.0,
        "RATE_LIMIT_BURST": 5,
        "PUSH_DISPATCH": "sync",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeCodeHost:
    """Records every call; each lookup returns its value or raises it."""

    def __init__(
        self,
        *,
        default_branch="main",
        diff=None,
        commit_message="fix: bug",
        guide=None,
        pr=None,
    ):
        self.default_branch = default_branch
        self.diff = diff if diff is not None else DiffSummary(
            url="https://github.com/acme/widgets/compare/main...feature/x",
            files=(ChangeDescriptor(path="src/app.py", additions=3, deletions=1),),
            commit_messages=("feat: add widget",),
        )
        self.commit_message = commit_message
        self.guide = guide
        self.pr = pr if pr is not None else PullRequest(number=7, url="https://github.com/acme/widgets/pull/7")
        self.calls: list[tuple] = []
        self.created: list = []

    @staticmethod
    def _answer(value):
        if isinstance(value, BaseException):
            raise value
        return value

    async def get_default_branch(self, owner, repo):
        self.calls.append(("get_default_branch", owner, repo))
        return self._answer(self.default_branch)

    async def get_diff(self, owner, repo, base, head):
        self.calls.append(("get_diff", owner, repo, base, head))
        return self._answer(self.diff)

    async def get_commit_message(self, owner, repo, sha):
        self.calls.append(("get_commit_message", owner, repo, sha))
        return self._answer(self.commit_message)

    async def get_contributing_guide(self, owner, repo):
        self.calls.append(("get_contributing_guide", owner, repo))
        return self._answer(self.guide)

    async def create_pull_request(self, owner, repo, options):
        self.calls.append(("create_pull_request", owner, repo))
        self.created.append(options)
        return self._answer(self.pr)


class FakeGenerator:
    def __init__(self, content=None):
        self.content = content if content is not None else PRContent(
            title="Add widget", description="Adds the widget.",
        )
        self.seen: list[RepoInfo] = []

    async def generate(self, repo_info):
        self.seen.append(repo_info)
        if isinstance(self.content, BaseException):
            raise self.content
        return self.content


@pytest.fixture
def settings_factory():
    """Build a :class:`Settings` from keyword overrides."""
    return _make_settings


@pytest.fixture
def code_host() -> FakeCodeHost:
    return FakeCodeHost()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def make_app(code_host, generator):
    """Build an app wired to the fixture doubles; settings overridable."""

    def _make(**overrides):
        return create_app(cfg=_make_settings(**overrides), code_host=code_host, generator=generator)

    return _make


@pytest.fixture
def client(make_app) -> TestClient:
    """TestClient on a default app (lifespan not run)."""
    return TestClient(make_app(), raise_server_exceptions=False)
