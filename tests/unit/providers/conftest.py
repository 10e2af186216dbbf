"""Fixtures for provider tests: a small git repository with dated commits."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

import pytest

FIRST_DATE = "2024-01-01T12:00:00+00:00"
SECOND_DATE = "2024-06-01T12:00:00+00:00"


def git(repo: Path, *args: str, date: str | None = None) -> str:
    env = dict(os.environ)
    if date:
        env["GIT_AUTHOR_DATE"] = date
        env["GIT_COMMITTER_DATE"] = date
    result = subprocess.run(
        ["git", "-C", str(repo), *args], check=True, capture_output=True, text=True, env=env
    )
    return result.stdout.strip()


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Repository with two commits.

    First commit (tagged ``v1``): README.md, src/app.py, .gitignore.
    Second commit: edits src/app.py and adds logo.png, blob.dat (binary)
    and secrets.txt (force-added despite .gitignore).
    """
    repo = tmp_path / "repo"
    repo.mkdir()
    subprocess.run(["git", "init", str(repo)], check=True, capture_output=True)
    git(repo, "config", "user.email", "test@test.com")
    git(repo, "config", "user.name", "Test")
    git(repo, "config", "commit.gpgsign", "false")

    (repo / "src").mkdir()
    (repo / "README.md").write_text("# Demo\n")
    (repo / "src" / "app.py").write_text("def main():\n    return 1\n")
    (repo / ".gitignore").write_text("secrets.txt\n")
    git(repo, "add", ".")
    git(repo, "commit", "-m", "Initial commit", date=FIRST_DATE)
    git(repo, "tag", "v1")

    (repo / "src" / "app.py").write_text("def main():\n    return 2\n")
    (repo / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    (repo / "blob.dat").write_bytes(b"\x00\x01\x02")
    (repo / "secrets.txt").write_text("hunter2\n")
    git(repo, "add", "src/app.py", "logo.png", "blob.dat")
    git(repo, "add", "-f", "secrets.txt")
    git(repo, "commit", "-m", "Second commit", date=SECOND_DATE)
    return repo


@pytest.fixture
def git_cmd():
    """``git_cmd(repo, "rev-parse", "HEAD")`` → stripped stdout."""
    return git
