"""Tests for call-graph construction from chunk metadata."""

from __future__ import annotations

import json

from strata.db.models import Chunk
from strata.graph.builder import build_call_graph


def _chunk(id, path, name=None, symbol_type="function", calls=()):
    meta = {"symbol_type": symbol_type, "calls": list(calls)}
    if name:
        meta["name"] = name
    return Chunk(start_line=1, end_line=1, content="", id=id, file_path=path, metadata=json.dumps(meta))


def test_unique_definition_resolves():
    graph, report = build_call_graph([
        _chunk(1, "a.py", "main", calls=["helper"]),
        _chunk(2, "b.py", "helper"),
    ])
    assert [(e.from_id, e.to_id) for e in graph.edges] == [(1, 2)]
    assert report.resolved == 1


def test_same_file_definition_breaks_tie():
    graph, report = build_call_graph([
        _chunk(1, "a.py", "main", calls=["parse"]),
        _chunk(2, "a.py", "parse"),
        _chunk(3, "b.py", "parse"),
    ])
    assert [(e.from_id, e.to_id) for e in graph.edges] == [(1, 2)]
    assert report.ambiguous == 0


def test_ambiguous_call_skipped():
    graph, report = build_call_graph([
        _chunk(1, "a.py", "main", calls=["parse"]),
        _chunk(2, "b.py", "parse"),
        _chunk(3, "c.py", "parse"),
    ])
    assert graph.edges == []
    assert report.ambiguous == 1


def test_unknown_names_unresolved():
    graph, report = build_call_graph([_chunk(1, "a.py", "main", calls=["print", "len"])])
    assert graph.edges == []
    assert report.unresolved == 2


def test_only_defining_symbol_types_are_targets():
    graph, _ = build_call_graph([
        _chunk(1, "a.py", "main", calls=["Overview"]),
        _chunk(2, "README.md", "Overview", symbol_type="section"),
    ])
    assert graph.edges == []


def test_methods_and_classes_resolve():
    graph, _ = build_call_graph([
        _chunk(1, "a.py", "run", calls=["Store", "get"]),
        _chunk(2, "s.py", "Store", symbol_type="class"),
        _chunk(3, "s.py", "get", symbol_type="method"),
    ])
    assert sorted(e.to_id for e in graph.edges) == [2, 3]


def test_every_chunk_is_a_node():
    graph, _ = build_call_graph([
        _chunk(1, "a.py", symbol_type="module"),
        _chunk(2, "a.py", "f"),
        Chunk(start_line=1, end_line=1, content="unsaved"),
    ])
    assert {n.id for n in graph.nodes} == {1, 2}
    assert graph.get_node(2).file_path == "a.py"


def test_recursive_call_is_self_loop():
    graph, _ = build_call_graph([_chunk(1, "a.py", "walk", calls=["walk"])])
    assert graph.strongly_connected_components() == [[1]]
