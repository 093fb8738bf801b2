"""Mermaid diagram rendering for units and dependency graphs.

Renderers only consume the plain graph shape
``{"nodes": {id: {"type": ...}}, "edges": {id: [target, ...]}}`` (plus the
optional ``"via"`` labels), so any producer of that shape can be drawn.
"""

import re
from collections.abc import Iterable
from typing import Any

from codeatlas.indexer.unit import ExtractedUnit

GRAPH_HEADER = "graph TD"

# Fill colors per unit type; anything else renders unstyled
TYPE_STYLES = {
    "model": "#e1f5fe",
    "controller": "#fff3e0",
    "service": "#e8f5e9",
    "job": "#f3e5f5",
    "mailer": "#fce4ec",
    "route": "#fffde7",
    "graphql_type": "#ede7f6",
    "migration": "#eceff1",
}


def sanitize_id(identifier: str) -> str:
    """Mermaid-safe node id: every non-word character becomes ``_``."""
    return re.sub(r"\W", "_", identifier) or "_"


def escape_label(text: str) -> str:
    return text.replace('"', "#quot;")


class MermaidRenderer:
    """Render units or graph data as Mermaid flowcharts."""

    def render_call_graph(self, units: Iterable[ExtractedUnit] | None) -> str:
        """Nodes for every unit and one edge per distinct dependency target."""
        lines = [GRAPH_HEADER]
        declared: set[str] = set()
        edges: set[tuple[str, str]] = set()
        for unit in units or []:
            self._declare(lines, declared, unit.identifier)
            for dep in unit.dependencies:
                self._declare(lines, declared, dep.target)
                if (unit.identifier, dep.target) in edges:
                    continue
                edges.add((unit.identifier, dep.target))
                lines.append(self._edge(unit.identifier, dep.target, dep.via))
        return "\n".join(lines)

    def render_dependency_map(self, graph_data: dict[str, Any] | None, include_virtual: bool = False) -> str:
        """Nodes grouped into one subgraph per type; virtual targets skipped by default."""
        if not graph_data or not graph_data.get("nodes"):
            return GRAPH_HEADER
        nodes = graph_data["nodes"]
        edges = graph_data.get("edges", {})
        via = graph_data.get("via", {})

        by_type: dict[str, list[str]] = {}
        for identifier, meta in nodes.items():
            by_type.setdefault(str((meta or {}).get("type") or "unknown"), []).append(identifier)

        lines = [GRAPH_HEADER]
        for unit_type, identifiers in by_type.items():
            lines.append(f"    subgraph {unit_type}")
            for identifier in identifiers:
                lines.append(f'        {sanitize_id(identifier)}["{escape_label(identifier)}"]')
            lines.append("    end")

        for source, targets in edges.items():
            if source not in nodes:
                continue
            for target in targets:
                if target not in nodes and not include_virtual:
                    continue
                lines.append(self._edge(source, target, via.get(source, {}).get(target)))

        for unit_type, color in TYPE_STYLES.items():
            if unit_type in by_type:
                lines.append(f"    classDef {unit_type} fill:{color}")
                ids = ",".join(sanitize_id(i) for i in by_type[unit_type])
                lines.append(f"    class {ids} {unit_type}")
        return "\n".join(lines)

    def render_focus(self, graph_data: dict[str, Any], focus: str, depth: int = 1) -> str:
        """Neighbourhood of one node: dependencies and dependents up to ``depth`` hops."""
        nodes = graph_data.get("nodes", {})
        edges = graph_data.get("edges", {})
        if focus not in nodes:
            return GRAPH_HEADER

        reverse: dict[str, list[str]] = {}
        for source, targets in edges.items():
            for target in targets:
                reverse.setdefault(target, []).append(source)

        keep = {focus}
        frontier = {focus}
        for _ in range(max(depth, 1)):
            step: set[str] = set()
            for node in frontier:
                step.update(t for t in edges.get(node, []) if t in nodes)
                step.update(reverse.get(node, []))
            frontier = step - keep
            keep |= step

        subset = {
            "nodes": {i: nodes[i] for i in nodes if i in keep},
            "edges": {s: [t for t in ts if t in keep] for s, ts in edges.items() if s in keep},
            "via": graph_data.get("via", {}),
        }
        rendered = self.render_dependency_map(subset)
        return f"{rendered}\n    style {sanitize_id(focus)} stroke-width:3px"

    @staticmethod
    def _declare(lines: list[str], declared: set[str], identifier: str) -> None:
        if identifier in declared:
            return
        declared.add(identifier)
        lines.append(f'    {sanitize_id(identifier)}["{escape_label(identifier)}"]')

    @staticmethod
    def _edge(source: str, target: str, via: str | None) -> str:
        arrow = f"-->|{via}|" if via else "-->"
        return f"    {sanitize_id(source)} {arrow} {sanitize_id(target)}"
