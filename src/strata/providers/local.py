"""Local directory provider — index a plain directory tree.

The version identifier is derived from the content: a sha256 over every
indexed path and its content hash. Re-running on an unchanged directory
therefore resolves to the same snapshot and is a no-op.
"""

from __future__ import annotations

import hashlib
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from strata.errors import ProviderError
from strata.providers.base import Document, DocumentProvider, FetchResult, IndexParams, hash_content
from strata.providers.ignore import IgnoreFilter

logger = logging.getLogger(__name__)


class LocalDirectoryProvider(DocumentProvider):
    """Read every text file below a directory."""

    source_type = "local"

    def extract_source_name(self, identifier: str) -> str:
        return Path(identifier).resolve().name

    def create_metadata(self, params: IndexParams) -> dict[str, str]:
        return {"local_path": str(Path(params.identifier).resolve())}

    def fetch_documents(self, params: IndexParams) -> FetchResult:
        root = Path(params.identifier).resolve()
        if not root.is_dir():
            raise ProviderError(f"Directory does not exist: {params.identifier}")

        self._filter = IgnoreFilter.for_directory(root)
        documents: list[Document] = []

        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            prefix = "" if rel_dir == "." else f"{rel_dir}/"
            # Prune ignored directories in place; os.walk honours the mutation.
            dirnames[:] = sorted(d for d in dirnames if not self._filter.is_ignored_dir(prefix + d))
            for name in sorted(filenames):
                document = self._read(root, prefix + name)
                if document is not None:
                    documents.append(document)

        version = _content_version(documents)
        return FetchResult(documents=documents, version_identifier=version)

    def _read(self, root: Path, rel_path: str) -> Document | None:
        path = root / rel_path
        try:
            stat = path.stat()
            if self._filter.is_ignored(rel_path):
                return Document(path=rel_path, content="", size=stat.st_size, content_hash="")
            data = path.read_bytes()
        except OSError as exc:
            logger.debug("Skipping unreadable file %s: %s", rel_path, exc)
            return None
        if b"\x00" in data:
            return None
        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Skipping non-UTF-8 file %s", rel_path)
            return None
        return Document(
            path=rel_path,
            content=content,
            size=stat.st_size,
            content_hash=hash_content(data),
            updated_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )


def _content_version(documents: list[Document]) -> str:
    digest = hashlib.sha256()
    for doc in sorted(documents, key=lambda d: d.path):
        if doc.content_hash:
            digest.update(f"{doc.path}\0{doc.content_hash}\n".encode("utf-8"))
    return digest.hexdigest()
