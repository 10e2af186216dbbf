"""Document providers and the source-type registry."""

from __future__ import annotations

from strata.config import IndexingCfg
from strata.providers.base import Document, DocumentProvider, FetchResult, IndexParams, hash_content
from strata.providers.git import GitProvider
from strata.providers.history import FileEditHistory, GitHistoryProvider, HistoryProvider
from strata.providers.local import LocalDirectoryProvider

PROVIDERS: dict[str, type[DocumentProvider]] = {
    GitProvider.source_type: GitProvider,
    LocalDirectoryProvider.source_type: LocalDirectoryProvider,
}


def create_provider(source_type: str, cfg: IndexingCfg | None = None) -> DocumentProvider:
    """Return a provider for *source_type*.

    Raises:
        ValueError: If no provider is registered for *source_type*.
    """
    cfg = cfg or IndexingCfg()
    if source_type not in PROVIDERS:
        known = ", ".join(sorted(PROVIDERS))
        raise ValueError(f"Unknown source type '{source_type}'. Known types: {known}")
    if source_type == GitProvider.source_type:
        return GitProvider(clone_dir=cfg.clone_dir, default_ref=cfg.default_ref)
    return PROVIDERS[source_type]()


__all__ = [
    "PROVIDERS",
    "Document",
    "DocumentProvider",
    "FetchResult",
    "FileEditHistory",
    "GitHistoryProvider",
    "GitProvider",
    "HistoryProvider",
    "IndexParams",
    "LocalDirectoryProvider",
    "create_provider",
    "hash_content",
]
