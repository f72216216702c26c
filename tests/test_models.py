"""Tests for push payload models."""

import pytest
from pydantic import ValidationError

from pushpilot.models import PullRequestResult, PushEvent, RepoInfo


@pytest.mark.parametrize("branch", ["main", "feature/x", "release/2026/q3", "fix-123"])
def test_branch_name_strips_ref_prefix(branch):
    assert PushEvent(ref=f"refs/heads/{branch}").branch_name == branch


def test_bare_branch_ref_is_kept():
    event = PushEvent(ref="feature/x")
    assert event.branch_name == "feature/x"
    assert event.is_branch is True


def test_tag_ref_is_not_a_branch():
    assert PushEvent(ref="refs/tags/v1.0").is_branch is False


def test_sha_is_an_alias_for_after():
    event = PushEvent.model_validate({"ref": "refs/heads/feature/x", "sha": "abc123"})
    assert event.after == "abc123"


def test_github_payload_extra_fields_ignored():
    event = PushEvent.model_validate({
        "ref": "refs/heads/main",
        "before": "1" * 40,
        "after": "2" * 40,
        "repository": {"full_name": "acme/widgets"},
        "commits": [],
    })
    assert (event.before, event.after) == ("1" * 40, "2" * 40)


@pytest.mark.parametrize("payload", [{}, {"ref": ""}, {"after": "abc"}])
def test_missing_ref_is_invalid(payload):
    with pytest.raises(ValidationError):
        PushEvent.model_validate(payload)


def test_from_text_uses_first_non_empty_line():
    event = PushEvent.from_text("\n  abc123  \ndef456\n")
    assert event.after == "abc123"
    assert event.ref == "refs/heads/abc123"
    assert event.branch_name == "abc123"


def test_from_text_empty_body():
    assert PushEvent.from_text("  \n\n") is None


def test_repo_info_has_context():
    assert RepoInfo(branch_name="x", commit_message="msg").has_context is True
    assert RepoInfo(branch_name="x", commit_message=" ").has_context is False


def test_pull_request_result_as_dict():
    result = PullRequestResult(number=3, url="u", branch="b", base_branch="main")
    assert result.as_dict() == {"number": 3, "url": "u", "branch": "b", "base_branch": "main"}
