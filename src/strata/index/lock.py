"""Cross-process advisory locks keyed by source.

Two index runs for the same (source type, identifier) never commit at the
same time, whether they run in one process or several.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Protocol

import filelock

from strata.errors import LockError

logger = logging.getLogger(__name__)

_UINT64_MASK = 0xFFFF_FFFF_FFFF_FFFF


def generate_lock_id(*parts: str) -> int:
    """Derive a stable signed 64-bit lock id from *parts*.

    sha256 of the concatenated parts; the first 8 bytes read big-endian as a
    signed integer.
    """
    digest = hashlib.sha256("".join(parts).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


class SourceLock:
    """A held lock. Release it exactly once; usable as a context manager."""

    def __init__(self, lock: filelock.BaseFileLock, lock_id: int) -> None:
        self._lock = lock
        self.lock_id = lock_id

    @property
    def is_held(self) -> bool:
        return self._lock.is_locked

    def release(self) -> None:
        if self._lock.is_locked:
            self._lock.release()
            logger.debug("Released lock %d", self.lock_id)

    def __enter__(self) -> SourceLock:
        return self

    def __exit__(self, *args: object) -> None:
        self.release()


class LockManager(Protocol):
    def acquire(self, lock_id: int) -> SourceLock: ...


class FileLockManager:
    """Locks backed by ``filelock`` files in *lock_dir*.

    Args:
        lock_dir: Directory for lock files (created on first use).
        timeout: Seconds to wait; negative waits indefinitely.
    """

    def __init__(self, lock_dir: Path | str, timeout: float = -1) -> None:
        self._lock_dir = Path(lock_dir)
        self._timeout = timeout

    def lock_path(self, lock_id: int) -> Path:
        return self._lock_dir / f"{lock_id & _UINT64_MASK:016x}.lock"

    def acquire(self, lock_id: int) -> SourceLock:
        """Block until the lock for *lock_id* is held.

        Raises:
            LockError: If the lock is not obtained within the timeout or the
                lock file cannot be created.
        """
        lock = filelock.FileLock(str(self.lock_path(lock_id)), timeout=self._timeout)
        try:
            self._lock_dir.mkdir(parents=True, exist_ok=True)
            lock.acquire()
        except filelock.Timeout as exc:
            raise LockError(
                f"Timed out after {self._timeout}s waiting for source lock {lock_id}"
            ) from exc
        except OSError as exc:
            raise LockError(f"Cannot create lock file {self.lock_path(lock_id)}: {exc}") from exc
        logger.debug("Acquired lock %d", lock_id)
        return SourceLock(lock, lock_id)
