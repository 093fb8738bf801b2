"""Graph analyzer - structural findings over the dependency graph.

Pure graph algorithms over the closed graph (edges into virtual nodes
are ignored):
- Orphans: no incoming and no outgoing edges
- Dead ends: referenced, but depend on nothing
- Hubs: most-referenced nodes
- Cycles: distinct simple loops found by depth-first search
- Bridges: nodes that most often sit on shortest paths (sampled)

Every analysis returns empty results for an empty graph.
"""

import random
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any

from codeatlas.indexer.config import (
    DEFAULT_BRIDGE_LIMIT,
    DEFAULT_BRIDGE_SAMPLE_SIZE,
    DEFAULT_HUB_LIMIT,
    DEFAULT_MAX_CYCLES,
)
from codeatlas.utils.logging import logger

from .builder import DependencyGraph


@dataclass
class GraphAnalysisReport:
    orphans: list[str] = field(default_factory=list)
    dead_ends: list[str] = field(default_factory=list)
    hubs: list[dict[str, Any]] = field(default_factory=list)
    cycles: list[list[str]] = field(default_factory=list)
    bridges: list[dict[str, Any]] = field(default_factory=list)

    @property
    def stats(self) -> dict[str, int]:
        return {
            "orphan_count": len(self.orphans),
            "dead_end_count": len(self.dead_ends),
            "hub_count": len(self.hubs),
            "cycle_count": len(self.cycles),
        }

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["stats"] = self.stats
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphAnalysisReport":
        return cls(
            orphans=list(data.get("orphans", [])),
            dead_ends=list(data.get("dead_ends", [])),
            hubs=list(data.get("hubs", [])),
            cycles=[list(c) for c in data.get("cycles", [])],
            bridges=list(data.get("bridges", [])),
        )


def normalize_cycle(cycle: list[str]) -> tuple[str, ...]:
    """Rotate a loop so it starts at its lexicographically smallest node."""
    if not cycle:
        return ()
    start = cycle.index(min(cycle))
    return tuple(cycle[start:] + cycle[:start])


class GraphAnalyzer:
    """Analyze a DependencyGraph over its closed (known-node) edges."""

    def __init__(self, graph: DependencyGraph):
        self.graph = graph
        self.adjacency = graph.known_edges()
        self.cycles_truncated = False
        self.incoming: dict[str, list[str]] = {node: [] for node in self.adjacency}
        for source, targets in self.adjacency.items():
            for target in targets:
                self.incoming[target].append(source)

    def in_degree(self, node: str) -> int:
        return len(self.incoming.get(node, []))

    def out_degree(self, node: str) -> int:
        return len(self.adjacency.get(node, []))

    def orphans(self) -> list[str]:
        return [n for n in self.adjacency if self.in_degree(n) == 0 and self.out_degree(n) == 0]

    def dead_ends(self) -> list[str]:
        return [n for n in self.adjacency if self.in_degree(n) > 0 and self.out_degree(n) == 0]

    def hubs(self, limit: int = DEFAULT_HUB_LIMIT) -> list[dict[str, Any]]:
        """Nodes by in-degree descending, ties by identifier ascending."""
        ranked = sorted(
            (n for n in self.adjacency if self.in_degree(n) > 0),
            key=lambda n: (-self.in_degree(n), n),
        )
        return [
            {
                "identifier": node,
                "type": self.graph.nodes[node]["type"],
                "dependent_count": self.in_degree(node),
                "dependents": list(self.incoming[node]),
            }
            for node in ranked[:limit]
        ]

    def cycles(self, max_cycles: int = DEFAULT_MAX_CYCLES) -> list[list[str]]:
        """Distinct simple cycles, each rotated to start at its smallest node.

        A depth-first search runs from every node with its own visited set
        and a path stack. Reaching a node already on the path records the
        path slice from that node onward. The result holds at most
        ``max_cycles`` loops; ``cycles_truncated`` records whether a further
        distinct loop was left out.
        """
        found: dict[tuple[str, ...], None] = {}
        self.cycles_truncated = False
        for root in sorted(self.adjacency):
            if self._cycles_from(root, found, max_cycles):
                self.cycles_truncated = True
                logger.warning(f"Cycle report capped at {max_cycles}")
                break
        return [list(cycle) for cycle in found]

    def _cycles_from(self, root: str, found: dict[tuple[str, ...], None], max_cycles: int) -> bool:
        """Add loops reachable from ``root``; True once a loop beyond the cap turns up."""
        visited = {root}
        path = [root]
        on_path = {root: 0}
        stack = [iter(self.adjacency[root])]
        while stack:
            neighbor = next(stack[-1], None)
            if neighbor is None:
                stack.pop()
                on_path.pop(path.pop())
                continue
            if neighbor in on_path:
                cycle = normalize_cycle(path[on_path[neighbor]:])
                if cycle in found:
                    continue
                if len(found) >= max_cycles:
                    return True
                found[cycle] = None
            elif neighbor not in visited:
                visited.add(neighbor)
                on_path[neighbor] = len(path)
                path.append(neighbor)
                stack.append(iter(self.adjacency[neighbor]))
        return False

    def _shortest_path(self, source: str, target: str) -> list[str] | None:
        parents: dict[str, str | None] = {source: None}
        queue = deque([source])
        while queue:
            current = queue.popleft()
            for neighbor in self.adjacency[current]:
                if neighbor in parents:
                    continue
                parents[neighbor] = current
                if neighbor == target:
                    path = [neighbor]
                    while parents[path[-1]] is not None:
                        path.append(parents[path[-1]])
                    return path[::-1]
                queue.append(neighbor)
        return None

    def bridges(self, limit: int = DEFAULT_BRIDGE_LIMIT,
                sample_size: int = DEFAULT_BRIDGE_SAMPLE_SIZE) -> list[dict[str, Any]]:
        """Approximate betweenness: count intermediates on sampled shortest paths.

        Pairs are drawn with a generator seeded by the node count, so the
        same graph always yields the same ranking.
        """
        nodes = list(self.adjacency)
        if len(nodes) < 3:
            return []
        rng = random.Random(len(nodes))
        wanted = min(sample_size, len(nodes) * (len(nodes) - 1))
        pairs: dict[tuple[str, str], None] = {}
        attempts = 0
        while len(pairs) < wanted and attempts < wanted * 3:
            a = nodes[rng.randrange(len(nodes))]
            b = nodes[rng.randrange(len(nodes))]
            if a != b:
                pairs.setdefault((a, b))
            attempts += 1

        scores: dict[str, int] = {}
        for source, target in pairs:
            path = self._shortest_path(source, target)
            if path and len(path) > 2:
                for node in path[1:-1]:
                    scores[node] = scores.get(node, 0) + 1

        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [
            {"identifier": node, "type": self.graph.nodes[node]["type"], "score": score}
            for node, score in ranked
        ]

    def analyze(
        self,
        hub_limit: int = DEFAULT_HUB_LIMIT,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        bridge_limit: int = DEFAULT_BRIDGE_LIMIT,
        bridge_sample_size: int = DEFAULT_BRIDGE_SAMPLE_SIZE,
    ) -> GraphAnalysisReport:
        report = GraphAnalysisReport(
            orphans=self.orphans(),
            dead_ends=self.dead_ends(),
            hubs=self.hubs(hub_limit),
            cycles=self.cycles(max_cycles),
            bridges=self.bridges(bridge_limit, bridge_sample_size),
        )
        logger.debug(f"Graph analysis: {report.stats}")
        return report


def analyze_graph(graph: DependencyGraph, **kwargs: Any) -> GraphAnalysisReport:
    return GraphAnalyzer(graph).analyze(**kwargs)
