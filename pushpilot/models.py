"""Data shapes shared by the ingress, the orchestrator and the collaborators.

Wire-facing shapes (config body, push payload) are pydantic models so the
routers get validation for free; pipeline-internal values are frozen
dataclasses.
"""

from dataclasses import dataclass, field

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

BRANCH_REF_PREFIX = "refs/heads/"


# ---------------------------------------------------------------------------
# Repository configuration
# ---------------------------------------------------------------------------


class RepositoryConfigIn(BaseModel):
    """Request body for ``POST /config``."""

    repo_url: str = Field(..., min_length=1, max_length=500, description="Clone or web URL of the repository")
    owner: str | None = Field(None, max_length=100)
    name: str | None = Field(None, max_length=100)


class RepositoryConfig(BaseModel):
    """The single active repository. Replaced wholesale on every ``/config``."""

    model_config = ConfigDict(frozen=True)

    repo_url: str
    owner: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    default_branch: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


# ---------------------------------------------------------------------------
# Push events
# ---------------------------------------------------------------------------


class PushEvent(BaseModel):
    """A push notification.

    ``after`` also accepts ``sha`` (the key our own git hooks send).  ``ref``
    is either a full ``refs/heads/<branch>`` ref or a bare branch name.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ref: str = Field(..., min_length=1)
    after: str = Field("", validation_alias=AliasChoices("after", "sha"))
    before: str = ""

    @property
    def branch_name(self) -> str:
        if self.ref.startswith(BRANCH_REF_PREFIX):
            return self.ref[len(BRANCH_REF_PREFIX):]
        return self.ref

    @property
    def is_branch(self) -> bool:
        """False for tag and other non-branch refs."""
        return self.ref.startswith(BRANCH_REF_PREFIX) or not self.ref.startswith("refs/")

    @classmethod
    def from_text(cls, body: str) -> "PushEvent | None":
        """Legacy plain-text form: first non-empty line is the commit SHA.

        The branch is synthesized from the SHA.  Returns None for an empty body.
        """
        for line in body.splitlines():
            sha = line.strip()
            if sha:
                return cls(ref=BRANCH_REF_PREFIX + sha, after=sha)
        return None


# ---------------------------------------------------------------------------
# Pipeline values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChangeDescriptor:
    path: str
    status: str = "modified"
    additions: int = 0
    deletions: int = 0
    notes: tuple[str, ...] = ()


@dataclass(frozen=True)
class DiffSummary:
    """What the code host's compare endpoint told us about base...head."""

    url: str
    files: tuple[ChangeDescriptor, ...] = ()
    commit_messages: tuple[str, ...] = ()


@dataclass(frozen=True)
class RepoInfo:
    """Everything the content generator gets to see about a push."""

    branch_name: str
    commit_message: str
    changes: dict[str, ChangeDescriptor] = field(default_factory=dict)
    contributing_guide: str | None = None

    @property
    def has_context(self) -> bool:
        return bool(self.commit_message.strip() or self.changes)


@dataclass(frozen=True)
class PRContent:
    title: str
    description: str


@dataclass(frozen=True)
class PullRequestOptions:
    title: str
    description: str
    branch: str
    base_branch: str
    labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class PullRequest:
    number: int
    url: str


@dataclass(frozen=True)
class PullRequestResult:
    """Terminal ``Succeeded`` state of one push."""

    number: int
    url: str
    branch: str
    base_branch: str

    def as_dict(self) -> dict:
        return {
            "number": self.number,
            "url": self.url,
            "branch": self.branch,
            "base_branch": self.base_branch,
        }
