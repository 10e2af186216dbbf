"""Strata graph layer — call graph, cycle analysis, importance scoring."""

from __future__ import annotations

from strata.graph.builder import BuildReport, build_call_graph
from strata.graph.dependency import DependencyGraph, Edge, GraphStats, Node, RelationType
from strata.graph.importance import (
    ChunkScore,
    ImportanceCalculator,
    ImportanceService,
    ScoreWeights,
    normalize,
)

__all__ = [
    "BuildReport",
    "ChunkScore",
    "DependencyGraph",
    "Edge",
    "GraphStats",
    "ImportanceCalculator",
    "ImportanceService",
    "Node",
    "RelationType",
    "ScoreWeights",
    "build_call_graph",
    "normalize",
]
