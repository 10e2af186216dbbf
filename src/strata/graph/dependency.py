"""Directed dependency graph over chunks.

Nodes are chunk ids; an edge ``a -> b`` means chunk *a* depends on chunk
*b* (for calls: *a* calls a symbol defined in *b*). The graph allows
parallel edges and self-loops. Every traversal is iterative, so deep call
chains never hit the interpreter's recursion limit.
"""

from __future__ import annotations

import enum
from collections import deque
from dataclasses import dataclass

from strata.errors import GraphCycleError, GraphError


class RelationType(str, enum.Enum):
    CALLS = "calls"


@dataclass(frozen=True)
class Node:
    id: int
    name: str = ""
    symbol_type: str = ""
    file_path: str = ""


@dataclass(frozen=True)
class Edge:
    from_id: int
    to_id: int
    relation_type: RelationType = RelationType.CALLS
    weight: int = 1


@dataclass
class GraphStats:
    node_count: int
    edge_count: int
    avg_degree: float
    max_in_degree: int
    max_out_degree: int
    isolated_nodes: int
    cyclic_components: int


class DependencyGraph:
    """Adjacency-list graph with cycle, ordering and centrality queries."""

    def __init__(self) -> None:
        self._nodes: dict[int, Node] = {}
        self._out: dict[int, list[Edge]] = {}
        self._in: dict[int, list[Edge]] = {}
        self._max_degree: int | None = None

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[Edge]:
        return [edge for edges in self._out.values() for edge in edges]

    def add_node(self, node: Node) -> None:
        """Add *node*, or replace its attributes if the id is known."""
        if node.id not in self._nodes:
            self._out[node.id] = []
            self._in[node.id] = []
        self._nodes[node.id] = node
        self._max_degree = None

    def add_edge(
        self,
        from_id: int,
        to_id: int,
        relation_type: RelationType = RelationType.CALLS,
        weight: int = 1,
    ) -> Edge:
        """Connect two existing nodes.

        Raises:
            GraphError: If either endpoint is not in the graph.
        """
        for node_id in (from_id, to_id):
            if node_id not in self._nodes:
                raise GraphError(f"Unknown node {node_id}")
        edge = Edge(from_id, to_id, RelationType(relation_type), weight)
        self._out[from_id].append(edge)
        self._in[to_id].append(edge)
        self._max_degree = None
        return edge

    def get_node(self, node_id: int) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise GraphError(f"Unknown node {node_id}") from None

    def outgoing(self, node_id: int) -> list[Edge]:
        return list(self._out.get(node_id, ()))

    def incoming(self, node_id: int) -> list[Edge]:
        return list(self._in.get(node_id, ()))

    def dependencies(self, node_id: int) -> list[int]:
        """Distinct nodes *node_id* points to, in insertion order."""
        return list(dict.fromkeys(e.to_id for e in self._out.get(node_id, ())))

    def dependents(self, node_id: int) -> list[int]:
        """Distinct nodes pointing at *node_id*, in insertion order."""
        return list(dict.fromkeys(e.from_id for e in self._in.get(node_id, ())))

    def in_degree(self, node_id: int) -> int:
        return len(self._in.get(node_id, ()))

    def out_degree(self, node_id: int) -> int:
        return len(self._out.get(node_id, ()))

    def reference_count(self, node_id: int) -> int:
        """Number of edges pointing at *node_id*."""
        return self.in_degree(node_id)

    def nodes_by_type(self, symbol_type: str) -> list[Node]:
        return [n for n in self._nodes.values() if n.symbol_type == symbol_type]

    def centrality(self, node_id: int) -> float:
        """Degree centrality: ``(in + out) / max(in + out)`` over all nodes.

        0.0 for unknown nodes, graphs of fewer than two nodes, and graphs
        without edges.
        """
        if node_id not in self._nodes or len(self._nodes) < 2:
            return 0.0
        if self._max_degree is None:
            self._max_degree = max(self._degree(n) for n in self._nodes)
        if self._max_degree == 0:
            return 0.0
        return self._degree(node_id) / self._max_degree

    def _degree(self, node_id: int) -> int:
        return len(self._in[node_id]) + len(self._out[node_id])

    def detect_cycles(self) -> list[list[int]]:
        """Return one cycle per DFS tree that contains one.

        Each cycle is a closed path ``[a, b, ..., a]``. The search from a
        root stops at its first back edge; the remaining unvisited nodes are
        searched from new roots.
        """
        visited: set[int] = set()
        cycles: list[list[int]] = []

        for root in self._nodes:
            if root in visited:
                continue
            visited.add(root)
            path = [root]
            on_path = {root}
            stack = [iter(self.dependencies(root))]
            found = False

            while stack and not found:
                for nxt in stack[-1]:
                    if nxt in on_path:
                        cycles.append(path[path.index(nxt) :] + [nxt])
                        found = True
                        break
                    if nxt not in visited:
                        visited.add(nxt)
                        path.append(nxt)
                        on_path.add(nxt)
                        stack.append(iter(self.dependencies(nxt)))
                        break
                else:
                    stack.pop()
                    on_path.discard(path.pop())

        return cycles

    def strongly_connected_components(self) -> list[list[int]]:
        """Tarjan's algorithm, iteratively.

        Only cyclic components are returned: those with more than one node,
        and single nodes with a self-loop. Members are sorted.
        """
        index: dict[int, int] = {}
        low: dict[int, int] = {}
        stack: list[int] = []
        on_stack: set[int] = set()
        components: list[list[int]] = []
        counter = 0

        for root in self._nodes:
            if root in index:
                continue
            index[root] = low[root] = counter
            counter += 1
            stack.append(root)
            on_stack.add(root)
            work = [(root, iter(self.dependencies(root)))]

            while work:
                node, successors = work[-1]
                descended = False
                for nxt in successors:
                    if nxt not in index:
                        index[nxt] = low[nxt] = counter
                        counter += 1
                        stack.append(nxt)
                        on_stack.add(nxt)
                        work.append((nxt, iter(self.dependencies(nxt))))
                        descended = True
                        break
                    if nxt in on_stack:
                        low[node] = min(low[node], index[nxt])
                if descended:
                    continue

                work.pop()
                if work:
                    parent = work[-1][0]
                    low[parent] = min(low[parent], low[node])
                if low[node] == index[node]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    if len(component) > 1 or node in self.dependencies(node):
                        components.append(sorted(component))

        return components

    def topological_order(self) -> list[int]:
        """Kahn's algorithm: every node appears before the nodes it points to.

        Raises:
            GraphCycleError: If the graph has a cycle (self-loops included).
        """
        in_degree = {node_id: len(edges) for node_id, edges in self._in.items()}
        queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
        order: list[int] = []

        while queue:
            node_id = queue.popleft()
            order.append(node_id)
            for edge in self._out[node_id]:
                in_degree[edge.to_id] -= 1
                if in_degree[edge.to_id] == 0:
                    queue.append(edge.to_id)

        if len(order) != len(self._nodes):
            raise GraphCycleError(
                f"Dependency graph has a cycle; {len(self._nodes) - len(order)} "
                "nodes cannot be ordered"
            )
        return order

    def stats(self) -> GraphStats:
        count = len(self._nodes)
        edge_count = sum(len(edges) for edges in self._out.values())
        return GraphStats(
            node_count=count,
            edge_count=edge_count,
            avg_degree=(2 * edge_count / count) if count else 0.0,
            max_in_degree=max((len(e) for e in self._in.values()), default=0),
            max_out_degree=max((len(e) for e in self._out.values()), default=0),
            isolated_nodes=sum(1 for n in self._nodes if self._degree(n) == 0),
            cyclic_components=len(self.strongly_connected_components()),
        )
