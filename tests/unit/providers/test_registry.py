"""Tests for the source-type registry."""

from __future__ import annotations

import pytest

from strata.config import IndexingCfg
from strata.providers import (
    PROVIDERS,
    GitProvider,
    IndexParams,
    LocalDirectoryProvider,
    create_provider,
)


def test_registered_types():
    assert set(PROVIDERS) == {"git", "local"}


def test_create_local():
    assert isinstance(create_provider("local"), LocalDirectoryProvider)


def test_create_git_uses_indexing_config(tmp_path):
    cfg = IndexingCfg(clone_dir=str(tmp_path / "mirrors"), default_ref="main")
    provider = create_provider("git", cfg)
    assert isinstance(provider, GitProvider)

    params = IndexParams(product_name="p", identifier="https://github.com/a/b")
    assert provider.repository_path(params).parent == (tmp_path / "mirrors").resolve()
    assert provider.create_metadata(params)["default_ref"] == "main"


def test_unknown_type():
    with pytest.raises(ValueError, match="Unknown source type 'svn'"):
        create_provider("svn")
