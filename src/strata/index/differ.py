"""Diff engine: classify documents against the previously indexed state."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass
class DiffResult:
    """Paths bucketed by comparing content hashes.

    All lists are sorted. ``to_process`` is what the preparation stage must
    chunk and embed: changed paths plus paths never seen before.
    """

    unchanged: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    new: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    @property
    def to_process(self) -> list[str]:
        return sorted(self.changed + self.new)

    @property
    def summary(self) -> str:
        return (
            f"{len(self.new)} new, {len(self.changed)} changed, "
            f"{len(self.unchanged)} unchanged, {len(self.deleted)} deleted"
        )


def compute_diff(current: Mapping[str, str], previous: Mapping[str, str]) -> DiffResult:
    """Compare ``{path: content_hash}`` maps.

    Pure hash equality; document content is never inspected. Pass an empty
    *previous* to treat every current path as new.

    Args:
        current: Paths and hashes of the fetched, non-ignored documents.
        previous: Paths and hashes of the previously indexed state.

    Returns:
        DiffResult with every current path in exactly one of
        unchanged/changed/new, and every vanished path in deleted.
    """
    result = DiffResult()
    for path in sorted(current):
        old = previous.get(path)
        if old is None:
            result.new.append(path)
        elif old == current[path]:
            result.unchanged.append(path)
        else:
            result.changed.append(path)
    result.deleted = sorted(p for p in previous if p not in current)
    return result
