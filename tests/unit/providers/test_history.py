"""Tests for GitHistoryProvider."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from strata.errors import ProviderError
from strata.providers.history import GitHistoryProvider


def test_counts_commits_per_file(git_repo):
    since = datetime(2023, 1, 1, tzinfo=timezone.utc)
    history = GitHistoryProvider().get_file_edit_frequencies(git_repo, "HEAD", since)

    assert history["src/app.py"].count == 2
    assert history["README.md"].count == 1
    assert history["secrets.txt"].count == 1
    assert history["src/app.py"].last_edited == datetime(2024, 6, 1, 12, tzinfo=timezone.utc)


def test_window_excludes_older_commits(git_repo):
    since = datetime(2024, 3, 1, tzinfo=timezone.utc)
    history = GitHistoryProvider().get_file_edit_frequencies(git_repo, "HEAD", since)
    assert "README.md" not in history
    assert history["src/app.py"].count == 1


def test_ref_limits_ancestry(git_repo):
    since = datetime(2023, 1, 1, tzinfo=timezone.utc)
    history = GitHistoryProvider().get_file_edit_frequencies(git_repo, "v1", since)
    assert history["src/app.py"].count == 1
    assert "logo.png" not in history


def test_window_in_future_is_empty(git_repo):
    since = datetime(2099, 1, 1, tzinfo=timezone.utc)
    assert GitHistoryProvider().get_file_edit_frequencies(git_repo, "HEAD", since) == {}


def test_unknown_ref_raises(git_repo):
    with pytest.raises(ProviderError, match="git log failed"):
        GitHistoryProvider().get_file_edit_frequencies(
            git_repo, "no-such-branch", datetime(2023, 1, 1, tzinfo=timezone.utc)
        )
