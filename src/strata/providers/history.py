"""Per-file edit history from ``git log``."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from strata.errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class FileEditHistory:
    count: int
    last_edited: datetime | None = None


class HistoryProvider(Protocol):
    def get_file_edit_frequencies(
        self, repo_path: Path, ref: str, since: datetime
    ) -> dict[str, FileEditHistory]: ...


class GitHistoryProvider:
    """Count commits touching each file since a cut-off date.

    Merge commits are excluded so a change is counted once, on the
    commit that introduced it.
    """

    def get_file_edit_frequencies(
        self, repo_path: Path, ref: str, since: datetime
    ) -> dict[str, FileEditHistory]:
        """Return ``{path: FileEditHistory}`` for commits on *ref* after *since*.

        Args:
            repo_path: Working copy or bare repository.
            ref: Commit-ish whose ancestry is walked.
            since: Inclusive lower bound on commit time.

        Raises:
            ProviderError: If ``git log`` fails.
        """
        try:
            result = subprocess.run(
                [
                    "git", "-c", "core.quotePath=false", "log", ref,
                    f"--since={since.isoformat()}",
                    "--format=%x1e%at",
                    "--name-only",
                    "--no-merges",
                ],
                cwd=repo_path,
                shell=False,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            raise ProviderError(f"git log failed in {repo_path}: {(exc.stderr or '').strip()}") from None
        except OSError as exc:
            raise ProviderError(f"Cannot run git: {exc}") from exc

        history: dict[str, FileEditHistory] = {}
        for record in result.stdout.split("\x1e"):
            lines = [line.strip() for line in record.splitlines()]
            if not lines or not lines[0].isdigit():
                continue
            when = datetime.fromtimestamp(int(lines[0]), tz=timezone.utc)
            for path in filter(None, lines[1:]):
                entry = history.get(path)
                if entry is None:
                    history[path] = FileEditHistory(count=1, last_edited=when)
                else:
                    entry.count += 1
                    if entry.last_edited is None or when > entry.last_edited:
                        entry.last_edited = when

        logger.debug("Edit history: %d files changed since %s", len(history), since.date())
        return history
