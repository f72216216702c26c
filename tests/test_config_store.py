"""Tests for repository URL parsing and the config store."""

import pytest

from pushpilot.errors import InvalidRepositoryURL
from pushpilot.models import RepositoryConfigIn
from pushpilot.services.config_store import RepositoryConfigStore, parse_repo_url


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://github.com/acme/widgets.git", ("acme", "widgets")),
        ("https://github.com/acme/widgets", ("acme", "widgets")),
        ("https://github.com/acme/widgets/", ("acme", "widgets")),
        ("git@github.com:acme/widgets.git", ("acme", "widgets")),
        ("acme/widgets", ("acme", "widgets")),
        ("https://gitlab.example.com/group/sub/widgets.git", ("sub", "widgets")),
    ],
)
def test_parse_repo_url(url, expected):
    assert parse_repo_url(url) == expected


@pytest.mark.parametrize("url", ["", "widgets", "https://github.com/acme", "git@github.com:"])
def test_parse_repo_url_rejects_short_paths(url):
    with pytest.raises(InvalidRepositoryURL) as exc_info:
        parse_repo_url(url)
    assert exc_info.value.status_code == 400


def test_get_config_is_none_before_set():
    assert RepositoryConfigStore().get_config() is None


def test_set_config_derives_owner_and_name():
    store = RepositoryConfigStore()
    config = store.set_config(RepositoryConfigIn(repo_url="https://github.com/acme/widgets.git"))
    assert (config.owner, config.name) == ("acme", "widgets")
    assert config.full_name == "acme/widgets"
    assert store.get_config() == config


def test_explicit_owner_and_name_win():
    store = RepositoryConfigStore()
    config = store.set_config(
        RepositoryConfigIn(repo_url="https://github.com/acme/widgets", owner="other", name="gadgets"),
    )
    assert (config.owner, config.name) == ("other", "gadgets")


def test_explicit_owner_and_name_still_validate_url():
    store = RepositoryConfigStore()
    with pytest.raises(InvalidRepositoryURL):
        store.set_config(RepositoryConfigIn(repo_url="not-a-url", owner="acme", name="widgets"))
    assert store.get_config() is None


def test_invalid_url_leaves_previous_config():
    store = RepositoryConfigStore()
    first = store.set_config(RepositoryConfigIn(repo_url="acme/widgets"))
    with pytest.raises(InvalidRepositoryURL):
        store.set_config(RepositoryConfigIn(repo_url="nope"))
    assert store.get_config() == first


def test_set_config_replaces_and_records_default_branch():
    store = RepositoryConfigStore()
    store.set_config(RepositoryConfigIn(repo_url="acme/widgets"))
    config = store.set_config(RepositoryConfigIn(repo_url="acme/gadgets"), default_branch="develop")
    assert store.get_config() is config
    assert config.default_branch == "develop"


def test_clear():
    store = RepositoryConfigStore()
    store.set_config(RepositoryConfigIn(repo_url="acme/widgets"))
    store.clear()
    assert store.get_config() is None
