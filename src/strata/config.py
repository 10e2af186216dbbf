"""Strata configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (STRATA_DB, STRATA_EMBEDDING_MODEL, STRATA_LOG_LEVEL)
  3. Per-project strata.yaml  (next to .strata.db)
  4. Global ~/.strata/config.yaml  (defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".strata"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "strata.yaml"

# Fields that suggest a credential; forbidden in global config.
# Does NOT match legitimate keys like max_tokens or token_count.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["database", "embedding", "retry", "chunkers", "indexing", "importance", "logging"]
)

_WEIGHT_TOLERANCE = 0.001


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """SQLite system of record (strata.yaml: database:)."""

    path: str = ".strata.db"
    busy_timeout: float = 30.0


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (strata.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 100


@dataclass
class RetryCfg:
    """Bounded exponential backoff for embedding calls (strata.yaml: retry:)."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0


@dataclass
class ChunkerTypeCfg:
    """Chunk size (tokens) and overlap for a single chunker type."""

    chunk_size: int = 512
    overlap: float = 0.10


@dataclass
class ChunkersCfg:
    """Per-language chunker configuration (strata.yaml: chunkers:)."""

    default: ChunkerTypeCfg = field(default_factory=ChunkerTypeCfg)
    markdown: ChunkerTypeCfg = field(default_factory=ChunkerTypeCfg)
    python: ChunkerTypeCfg = field(
        default_factory=lambda: ChunkerTypeCfg(chunk_size=800, overlap=0.0)
    )


@dataclass
class IndexingCfg:
    """Pipeline tuning (strata.yaml: indexing:).

    Attributes:
        workers: Upper bound on concurrent chunking workers.
        lock_dir: Directory holding per-source lock files.
        lock_timeout: Seconds to wait for a source lock; negative waits forever.
        clone_dir: Where remote git repositories are cloned and kept.
        default_ref: Branch or ref indexed when none is given.
    """

    workers: int = 4
    lock_dir: str = ".strata/locks"
    lock_timeout: float = -1.0
    clone_dir: str = ".strata/repos"
    default_ref: str = "HEAD"


@dataclass
class WeightsCfg:
    """Importance signal weights; must sum to 1.0."""

    reference_count: float = 0.4
    centrality: float = 0.3
    edit_frequency: float = 0.3


@dataclass
class ImportanceCfg:
    """Importance scoring (strata.yaml: importance:)."""

    edit_frequency_days: int = 90
    weights: WeightsCfg = field(default_factory=WeightsCfg)


@dataclass
class LoggingCfg:
    """Log output (strata.yaml: logging:)."""

    level: str = "INFO"


@dataclass
class StrataConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    retry: RetryCfg = field(default_factory=RetryCfg)
    chunkers: ChunkersCfg = field(default_factory=ChunkersCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    importance: ImportanceCfg = field(default_factory=ImportanceCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: StrataConfig) -> None:
    """Raise ConfigError for values the pipeline cannot run with."""
    w = cfg.importance.weights
    total = w.reference_count + w.centrality + w.edit_frequency
    if abs(total - 1.0) > _WEIGHT_TOLERANCE:
        raise ConfigError(
            f"importance.weights must sum to 1.0, got {total:.3f} "
            f"(reference_count={w.reference_count}, centrality={w.centrality}, "
            f"edit_frequency={w.edit_frequency})"
        )
    if cfg.embedding.batch_size < 1:
        raise ConfigError(f"embedding.batch_size must be >= 1, got {cfg.embedding.batch_size}")
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.indexing.workers < 1:
        raise ConfigError(f"indexing.workers must be >= 1, got {cfg.indexing.workers}")
    if cfg.retry.max_attempts < 1:
        raise ConfigError(f"retry.max_attempts must be >= 1, got {cfg.retry.max_attempts}")
    if cfg.importance.edit_frequency_days < 1:
        raise ConfigError(
            "importance.edit_frequency_days must be >= 1, "
            f"got {cfg.importance.edit_frequency_days}"
        )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _parse_chunker(raw: dict[str, Any], defaults: ChunkerTypeCfg) -> ChunkerTypeCfg:
    return ChunkerTypeCfg(
        chunk_size=int(raw.get("chunk_size", defaults.chunk_size)),
        overlap=float(raw.get("overlap", defaults.overlap)),
    )


def _cfg_from_dict(data: dict[str, Any]) -> StrataConfig:
    """Build a *StrataConfig* from a merged raw YAML dict."""
    cfg = StrataConfig()

    if "database" in data:
        d = data["database"]
        cfg.database = DatabaseCfg(
            path=str(d.get("path", cfg.database.path)),
            busy_timeout=float(d.get("busy_timeout", cfg.database.busy_timeout)),
        )

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
        )

    if "retry" in data:
        r = data["retry"]
        cfg.retry = RetryCfg(
            max_attempts=int(r.get("max_attempts", cfg.retry.max_attempts)),
            base_delay=float(r.get("base_delay", cfg.retry.base_delay)),
            max_delay=float(r.get("max_delay", cfg.retry.max_delay)),
        )

    if "chunkers" in data:
        ch = data["chunkers"]
        cfg.chunkers = ChunkersCfg(
            default=_parse_chunker(ch.get("default", {}), cfg.chunkers.default),
            markdown=_parse_chunker(ch.get("markdown", {}), cfg.chunkers.markdown),
            python=_parse_chunker(ch.get("python", {}), cfg.chunkers.python),
        )

    if "indexing" in data:
        i = data["indexing"]
        cfg.indexing = IndexingCfg(
            workers=int(i.get("workers", cfg.indexing.workers)),
            lock_dir=str(i.get("lock_dir", cfg.indexing.lock_dir)),
            lock_timeout=float(i.get("lock_timeout", cfg.indexing.lock_timeout)),
            clone_dir=str(i.get("clone_dir", cfg.indexing.clone_dir)),
            default_ref=str(i.get("default_ref", cfg.indexing.default_ref)),
        )

    if "importance" in data:
        imp = data["importance"]
        w = imp.get("weights", {}) or {}
        defaults = cfg.importance.weights
        cfg.importance = ImportanceCfg(
            edit_frequency_days=int(
                imp.get("edit_frequency_days", cfg.importance.edit_frequency_days)
            ),
            weights=WeightsCfg(
                reference_count=float(w.get("reference_count", defaults.reference_count)),
                centrality=float(w.get("centrality", defaults.centrality)),
                edit_frequency=float(w.get("edit_frequency", defaults.edit_frequency)),
            ),
        )

    if "logging" in data:
        lg = data["logging"]
        cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)))

    return cfg


def _apply_env_overrides(cfg: StrataConfig) -> StrataConfig:
    """Apply STRATA_* environment variable overrides (layer 2)."""
    if db := os.environ.get("STRATA_DB"):
        cfg.database.path = db
    if model := os.environ.get("STRATA_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if level := os.environ.get("STRATA_LOG_LEVEL"):
        cfg.logging.level = level
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> StrataConfig:
    """Load and return a merged *StrataConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *strata.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *StrataConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or if a
            value is out of range (e.g. importance weights not summing to 1.0).
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (AttributeError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid configuration value: {exc}") from exc

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg
