"""Tests for settings loading and validation."""

import sys

import pytest
from pydantic import ValidationError

from pushpilot.config import (
    Settings,
    check_required_settings,
    missing_required_settings,
    resolve_llm_provider,
)


def test_defaults(monkeypatch):
    for var in ("PORT", "RATE_LIMIT_BURST", "PUSH_DISPATCH", "PR_LABELS"):
        monkeypatch.delenv(var, raising=False)
    cfg = Settings(_env_file=None)
    assert cfg.PORT == 8080
    assert cfg.RATE_LIMIT_PER_SECOND == 1.0
    assert cfg.RATE_LIMIT_BURST == 5
    assert cfg.RATE_LIMIT_PURGE_SECONDS == 600
    assert cfg.PUSH_DISPATCH == "sync"
    assert cfg.PR_LABELS == ["ai-generated"]
    assert cfg.SHUTDOWN_GRACE_SECONDS == 30


def test_env_vars_are_read(monkeypatch):
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("PR_LABELS", '["bot", "review"]')
    monkeypatch.setenv("PUSH_DISPATCH", "background")
    cfg = Settings(_env_file=None)
    assert cfg.PORT == 9000
    assert cfg.PR_LABELS == ["bot", "review"]
    assert cfg.PUSH_DISPATCH == "background"


def test_invalid_dispatch_mode_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, PUSH_DISPATCH="threads")


def test_rate_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, RATE_LIMIT_PER_SECOND=0)


@pytest.mark.parametrize(
    "values, expected",
    [
        ({"LLM_PROVIDER": "openai"}, "openai"),
        ({"LLM_PROVIDER": " Anthropic ", "OPENAI_API_KEY": "sk"}, "anthropic"),
        ({"LLM_PROVIDER": "", "OPENAI_API_KEY": "sk"}, "openai"),
        ({"LLM_PROVIDER": "", "OPENAI_API_KEY": ""}, "anthropic"),
        ({"LLM_PROVIDER": "mystery", "OPENAI_API_KEY": ""}, "anthropic"),
    ],
)
def test_resolve_llm_provider(values, expected):
    assert resolve_llm_provider(Settings(_env_file=None, **values)) == expected


def test_missing_required_settings(settings_factory):
    assert missing_required_settings(settings_factory()) == []
    assert missing_required_settings(settings_factory(GITHUB_TOKEN="", ANTHROPIC_API_KEY="")) == [
        "GITHUB_TOKEN", "ANTHROPIC_API_KEY",
    ]
    assert missing_required_settings(settings_factory(LLM_PROVIDER="openai")) == ["OPENAI_API_KEY"]


def test_check_required_settings_is_noop_under_pytest(settings_factory):
    check_required_settings(settings_factory(GITHUB_TOKEN=""))


def test_check_required_settings_exits_outside_pytest(settings_factory, capsys, monkeypatch):
    monkeypatch.delitem(sys.modules, "pytest")
    with pytest.raises(SystemExit) as exc_info:
        check_required_settings(settings_factory(GITHUB_TOKEN=""))
    assert exc_info.value.code == 1
    assert "GITHUB_TOKEN" in capsys.readouterr().err
