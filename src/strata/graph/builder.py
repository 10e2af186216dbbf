"""Build the call graph of a chunk set from chunker metadata."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from strata.db.models import Chunk
from strata.graph.dependency import DependencyGraph, Node, RelationType

logger = logging.getLogger(__name__)

# Symbol types that define a callable name.
DEFINING_TYPES = frozenset({"function", "class", "method"})


@dataclass
class BuildReport:
    resolved: int = 0
    ambiguous: int = 0
    unresolved: int = 0


def build_call_graph(chunks: Iterable[Chunk]) -> tuple[DependencyGraph, BuildReport]:
    """Return a graph with one node per chunk and one edge per resolved call.

    A call resolves to the single chunk defining that name. When several
    chunks define it, a single definition in the caller's own file wins;
    otherwise the call is ambiguous and dropped. Calls to names defined
    nowhere in *chunks* (builtins, third-party code) are dropped too.

    Chunks without an id are ignored.
    """
    graph = DependencyGraph()
    definitions: dict[str, list[Chunk]] = defaultdict(list)
    saved = [c for c in chunks if c.id is not None]

    for chunk in saved:
        name = chunk.symbol_name or ""
        symbol_type = chunk.symbol_type or ""
        graph.add_node(Node(chunk.id, name, symbol_type, chunk.file_path))
        if name and symbol_type in DEFINING_TYPES:
            definitions[name].append(chunk)

    report = BuildReport()
    for chunk in saved:
        for name in dict.fromkeys(chunk.calls):
            candidates = definitions.get(name, [])
            if len(candidates) > 1:
                candidates = [c for c in candidates if c.file_path == chunk.file_path]
                if len(candidates) != 1:
                    report.ambiguous += 1
                    logger.debug("Ambiguous call %r from chunk %d", name, chunk.id)
                    continue
            if not candidates:
                report.unresolved += 1
                continue
            graph.add_edge(chunk.id, candidates[0].id, RelationType.CALLS)
            report.resolved += 1

    logger.debug(
        "Call graph: %d nodes, %d resolved calls, %d ambiguous, %d unresolved",
        len(graph),
        report.resolved,
        report.ambiguous,
        report.unresolved,
    )
    return graph, report
