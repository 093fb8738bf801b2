"""Dependency graph over extracted units.

The builder is permissive: a dependency whose target is not a known unit
still becomes an edge, into a *virtual* node. That keeps references to
things outside the index (gem classes, unindexed constants) visible to
renderers. Algorithms that need a closed graph (degrees, cycles, ranking)
work from ``known_edges()``, which drops every edge into a virtual node.

Only one edge exists per (source, target) pair. The ``via`` label of the
first dependency that created the edge is kept on a separate read path,
``edge_label()``.
"""

from collections import deque
from collections.abc import Iterable
from typing import Any

from codeatlas.indexer.config import PAGERANK_DAMPING, PAGERANK_ITERATIONS
from codeatlas.indexer.exceptions import GraphLoadError
from codeatlas.indexer.unit import ExtractedUnit
from codeatlas.utils.logging import logger


class DependencyGraph:
    """Directed graph keyed by unit identifier."""

    def __init__(self):
        self.nodes: dict[str, dict[str, Any]] = {}
        self.edges: dict[str, list[str]] = {}
        self.reverse: dict[str, list[str]] = {}
        self.via: dict[str, dict[str, str]] = {}
        self.file_map: dict[str, list[str]] = {}
        self.type_index: dict[str, list[str]] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def register(self, unit: ExtractedUnit) -> None:
        """Add a unit as a node plus one edge per distinct dependency target."""
        identifier = unit.identifier
        if identifier in self.nodes:
            # Full rebuild is the norm; re-registering replaces the node's edges
            self._drop_edges(identifier)

        self.nodes[identifier] = {
            "type": unit.type,
            "file_path": unit.file_path,
            "namespace": unit.namespace,
        }
        if unit.file_path:
            owners = self.file_map.setdefault(unit.file_path, [])
            if identifier not in owners:
                owners.append(identifier)
        members = self.type_index.setdefault(unit.type, [])
        if identifier not in members:
            members.append(identifier)

        targets = self.edges.setdefault(identifier, [])
        labels = self.via.setdefault(identifier, {})
        for dep in unit.dependencies:
            if dep.target in labels:
                continue
            targets.append(dep.target)
            labels[dep.target] = dep.via
            dependents = self.reverse.setdefault(dep.target, [])
            if identifier not in dependents:
                dependents.append(identifier)

    def _drop_edges(self, identifier: str) -> None:
        for target in self.edges.pop(identifier, []):
            dependents = self.reverse.get(target, [])
            if identifier in dependents:
                dependents.remove(identifier)
        self.via.pop(identifier, None)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def node_exists(self, identifier: str) -> bool:
        return identifier in self.nodes

    def virtual_nodes(self) -> list[str]:
        """Edge targets that are not indexed units, in first-seen order."""
        seen: dict[str, None] = {}
        for targets in self.edges.values():
            for target in targets:
                if target not in self.nodes:
                    seen.setdefault(target)
        return list(seen)

    def known_edges(self) -> dict[str, list[str]]:
        """Adjacency restricted to edges whose both endpoints are known nodes."""
        return {
            source: [t for t in self.edges.get(source, []) if t in self.nodes]
            for source in self.nodes
        }

    def dependencies_of(self, identifier: str, known_only: bool = False) -> list[str]:
        targets = self.edges.get(identifier, [])
        if known_only:
            return [t for t in targets if t in self.nodes]
        return list(targets)

    def dependents_of(self, identifier: str) -> list[str]:
        # Sources are always registered units, so this is closed by construction
        return list(self.reverse.get(identifier, []))

    def edge_label(self, source: str, target: str) -> str | None:
        return self.via.get(source, {}).get(target)

    def units_of_type(self, unit_type: str) -> list[str]:
        return list(self.type_index.get(unit_type, []))

    def find_node_by_suffix(self, suffix: str) -> str | None:
        """First node whose identifier ends with ``::<suffix>``."""
        target = f"::{suffix}"
        for identifier in self.nodes:
            if identifier.endswith(target):
                return identifier
        return None

    def affected_by(self, changed_files: Iterable[str], max_depth: int | None = None) -> list[str]:
        """Units defined in ``changed_files`` plus everything that transitively depends on them.

        Breadth-first over reverse edges; ``max_depth`` bounds the number of
        hops from a directly changed unit (None or 0 means unbounded).
        """
        direct: list[str] = []
        for path in changed_files:
            for identifier in self.file_map.get(path, []):
                if identifier not in direct:
                    direct.append(identifier)

        affected = dict.fromkeys(direct)
        queue = deque((identifier, 0) for identifier in direct)
        while queue:
            current, depth = queue.popleft()
            if max_depth and depth >= max_depth:
                continue
            for dependent in self.reverse.get(current, []):
                if dependent not in affected:
                    affected[dependent] = None
                    queue.append((dependent, depth + 1))
        return list(affected)

    def pagerank(self, damping: float = PAGERANK_DAMPING, iterations: int = PAGERANK_ITERATIONS) -> dict[str, float]:
        """Importance score per known node, over the closed graph."""
        count = len(self.nodes)
        if count == 0:
            return {}
        closed = self.known_edges()
        incoming: dict[str, list[str]] = {identifier: [] for identifier in self.nodes}
        for source, targets in closed.items():
            for target in targets:
                incoming[target].append(source)

        scores = {identifier: 1.0 / count for identifier in self.nodes}
        for _ in range(iterations):
            dangling = sum(scores[i] for i, targets in closed.items() if not targets)
            new_scores = {}
            for identifier in self.nodes:
                rank_sum = sum(scores[src] / len(closed[src]) for src in incoming[identifier])
                new_scores[identifier] = (1.0 - damping) / count + damping * (rank_sum + dangling / count)
            scores = new_scores
        return scores

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        return {
            "node_count": len(self.nodes),
            "edge_count": sum(len(t) for t in self.edges.values()),
            "virtual_node_count": len(self.virtual_nodes()),
            "types": {t: len(ids) for t, ids in self.type_index.items()},
        }

    def to_dict(self) -> dict[str, Any]:
        """Stable plain shape: ``{nodes: {id: {type, ...}}, edges: {id: [target, ...]}, ...}``."""
        return {
            "nodes": {identifier: dict(meta) for identifier, meta in self.nodes.items()},
            "edges": {identifier: list(targets) for identifier, targets in self.edges.items()},
            "via": {identifier: dict(labels) for identifier, labels in self.via.items() if labels},
            "reverse": {identifier: list(sources) for identifier, sources in self.reverse.items()},
            "file_map": {path: list(ids) for path, ids in self.file_map.items()},
            "type_index": {t: list(ids) for t, ids in self.type_index.items()},
            "stats": self.stats(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DependencyGraph":
        if not isinstance(data, dict):
            raise GraphLoadError("Graph data must be a mapping", {"got": type(data).__name__})
        nodes = data.get("nodes", {})
        edges = data.get("edges", {})
        if not isinstance(nodes, dict) or not isinstance(edges, dict):
            raise GraphLoadError("Graph data needs 'nodes' and 'edges' mappings")

        graph = cls()
        for identifier, meta in nodes.items():
            meta = meta if isinstance(meta, dict) else {}
            graph.nodes[identifier] = {
                "type": meta.get("type"),
                "file_path": meta.get("file_path"),
                "namespace": meta.get("namespace"),
            }
        for identifier, targets in edges.items():
            if not isinstance(targets, list):
                raise GraphLoadError(f"Edges of {identifier!r} must be a list")
            graph.edges[identifier] = list(dict.fromkeys(targets))
        graph.via = {k: dict(v) for k, v in (data.get("via") or {}).items()}

        # Derived indexes are rebuilt rather than trusted
        for identifier, targets in graph.edges.items():
            for target in targets:
                dependents = graph.reverse.setdefault(target, [])
                if identifier not in dependents:
                    dependents.append(identifier)
        for identifier, meta in graph.nodes.items():
            if meta["file_path"]:
                graph.file_map.setdefault(meta["file_path"], []).append(identifier)
            if meta["type"]:
                graph.type_index.setdefault(meta["type"], []).append(identifier)
        return graph


def build_graph(units: Iterable[ExtractedUnit]) -> DependencyGraph:
    """Build a graph from a deduplicated unit list, in list order."""
    graph = DependencyGraph()
    for unit in units:
        graph.register(unit)
    logger.debug(
        f"Graph built: {len(graph.nodes)} nodes, "
        f"{sum(len(t) for t in graph.edges.values())} edges"
    )
    return graph
