"""Tests for strata rich error messages."""

from __future__ import annotations

import pytest

from strata.cli.errors import (
    err_config,
    err_dimension_mismatch,
    err_index_failed,
    err_no_db,
    err_unknown_source_type,
)
from strata.errors import (
    CommitError,
    EmbeddingError,
    GraphError,
    LockError,
    ProviderError,
)


def test_err_no_db_names_path_and_command() -> None:
    msg = err_no_db("/tmp/x.db")
    assert "/tmp/x.db" in msg
    assert "strata index" in msg


def test_err_config_includes_message() -> None:
    assert "weights must sum" in err_config("weights must sum to 1.0")


def test_err_unknown_source_type_lists_known() -> None:
    msg = err_unknown_source_type("svn", ["git", "local"])
    assert "'svn'" in msg
    assert "git, local" in msg


def test_err_dimension_mismatch_has_fix() -> None:
    assert "embedding.dimensions" in err_dimension_mismatch("width 4 != 3")


@pytest.mark.parametrize(
    "exc,hint",
    [
        (ProviderError("clone failed"), "GIT_TOKEN"),
        (EmbeddingError("rate limited"), "API key"),
        (LockError("busy"), "lock_timeout"),
        (CommitError("disk I/O error"), "Nothing was written"),
        (GraphError("odd"), "--log-level DEBUG"),
    ],
)
def test_err_index_failed_hint_per_error(exc, hint) -> None:
    msg = err_index_failed(exc)
    assert str(exc) in msg
    assert hint in msg
