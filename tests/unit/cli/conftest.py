"""Fixtures for CLI tests."""

from __future__ import annotations

import pytest


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run the CLI from an empty directory with no global config."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("strata.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for name in ("STRATA_DB", "STRATA_EMBEDDING_MODEL", "STRATA_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def patched_embedder(monkeypatch, fake_embedder):
    """Replace the LiteLLM embedder the CLI wires with the fake one."""
    monkeypatch.setattr(
        "strata.cli.index.LiteLLMEmbedder", lambda model, dimensions, retry=None: fake_embedder
    )
    return fake_embedder
