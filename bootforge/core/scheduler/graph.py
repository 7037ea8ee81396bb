from __future__ import annotations

import heapq
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Set


@dataclass
class UnitNode:
    unit_id: str
    declaration_index: int
    depends_on: List[str] = field(default_factory=list)


class CircularDependencyError(Exception):
    def __init__(self, remaining: List[str]):
        super().__init__("Circular unit dependency among: " + ", ".join(remaining))
        self.remaining = remaining


class UnitGraph:
    """Dependency graph for the units of a single phase.

    Edges to ids outside the graph are ignored; the caller decides whether
    such an edge is an error.
    """

    def __init__(self):
        self.nodes: Dict[str, UnitNode] = {}
        self.edges: Dict[str, List[str]] = defaultdict(list)

    def add_node(self, node: UnitNode) -> None:
        self.nodes[node.unit_id] = node

    def _build_edges(self) -> Dict[str, int]:
        self.edges = defaultdict(list)
        in_degree: Dict[str, int] = {name: 0 for name in self.nodes}
        for node in self.nodes.values():
            for dep in dict.fromkeys(node.depends_on):
                if dep in self.nodes and dep != node.unit_id:
                    self.edges[dep].append(node.unit_id)
                    in_degree[node.unit_id] += 1
                elif dep == node.unit_id:
                    # self edge can never be satisfied
                    in_degree[node.unit_id] += 1
        return in_degree

    def topological_sort(self) -> List[str]:
        in_degree = self._build_edges()

        # Ready units leave in declaration order.
        heap = [(self.nodes[n].declaration_index, n) for n, d in in_degree.items() if d == 0]
        heapq.heapify(heap)

        order: List[str] = []
        while heap:
            _, current = heapq.heappop(heap)
            order.append(current)
            for neighbor in self.edges[current]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    heapq.heappush(heap, (self.nodes[neighbor].declaration_index, neighbor))

        if len(order) != len(self.nodes):
            placed: Set[str] = set(order)
            remaining = sorted(
                (n for n in self.nodes if n not in placed),
                key=lambda n: self.nodes[n].declaration_index,
            )
            raise CircularDependencyError(remaining)

        return order
