"""Persist an extraction run as a directory of JSON files.

Layout under the output directory::

    <type>/<safe name>.json     one file per unit
    <type>/_index.json          lightweight listing of that type
    dependency_graph.json       graph dict plus pagerank
    graph_analysis.json         GraphAnalysisReport
    manifest.json               counts and per-unit source hashes
    SUMMARY.md                  human-readable overview
"""

import shutil
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from codeatlas.utils.constants import (
    ANALYSIS_FILE,
    GRAPH_FILE,
    MANIFEST_FILE,
    SUMMARY_FILE,
    TYPE_INDEX_FILE,
)
from codeatlas.utils.helpers import load_json_file, safe_filename, save_json_file
from codeatlas.utils.logging import logger

from .exceptions import GraphLoadError
from .unit import ExtractedUnit

if TYPE_CHECKING:
    from codeatlas.graph.analyzer import GraphAnalysisReport
    from codeatlas.graph.builder import DependencyGraph

SUMMARY_TOP_NAMESPACES = 5
SUMMARY_TOP_HUBS = 10


class IndexWriter:
    """Writes units, graph, analysis, manifest and summary to ``output_dir``."""

    def __init__(self, output_dir: Path | str, pretty: bool = True):
        self.output_dir = Path(output_dir)
        self.pretty = pretty

    def _save(self, data: Any, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        save_json_file(data, path, pretty=self.pretty)

    def reset(self) -> None:
        """Remove unit directories from a previous run; other files are overwritten."""
        if not self.output_dir.is_dir():
            return
        for child in self.output_dir.iterdir():
            if child.is_dir() and (child / TYPE_INDEX_FILE).is_file():
                shutil.rmtree(child)

    def write_units(self, units: list[ExtractedUnit]) -> dict[str, int]:
        by_type: dict[str, list[ExtractedUnit]] = {}
        for unit in units:
            by_type.setdefault(unit.type, []).append(unit)

        for unit_type, members in by_type.items():
            type_dir = self.output_dir / unit_type
            index = []
            for unit in members:
                self._save(unit.to_dict(), type_dir / safe_filename(unit.identifier))
                index.append({
                    "identifier": unit.identifier,
                    "file_path": unit.file_path,
                    "namespace": unit.namespace,
                    "estimated_tokens": unit.estimated_tokens,
                    "chunk_count": len(unit.chunks),
                })
            self._save(index, type_dir / TYPE_INDEX_FILE)
        return {t: len(m) for t, m in by_type.items()}

    def write_graph(self, graph: "DependencyGraph") -> None:
        data = graph.to_dict()
        data["pagerank"] = graph.pagerank()
        self._save(data, self.output_dir / GRAPH_FILE)

    def write_analysis(self, report: "GraphAnalysisReport") -> None:
        self._save(report.to_dict(), self.output_dir / ANALYSIS_FILE)

    def write_manifest(self, units: list[ExtractedUnit], extra: dict[str, Any] | None = None) -> dict[str, Any]:
        counts = Counter(unit.type for unit in units)
        manifest = {
            "extracted_at": datetime.now(timezone.utc).isoformat(),
            "counts": dict(sorted(counts.items())),
            "total_units": len(units),
            "total_chunks": sum(len(u.chunks) for u in units),
            "source_hashes": {u.identifier: u.source_hash for u in units},
        }
        if extra:
            manifest.update(extra)
        self._save(manifest, self.output_dir / MANIFEST_FILE)
        return manifest

    def write_summary(self, units: list[ExtractedUnit], graph: "DependencyGraph",
                      report: "GraphAnalysisReport") -> None:
        lines = ["# Codebase index summary", ""]
        lines.append(f"Total units: {len(units)}")
        lines.append("")

        by_type: dict[str, list[ExtractedUnit]] = {}
        for unit in units:
            by_type.setdefault(unit.type, []).append(unit)
        lines.append("## Units by type")
        lines.append("")
        for unit_type in sorted(by_type):
            members = by_type[unit_type]
            lines.append(f"### {unit_type} ({len(members)})")
            namespaces = Counter(u.namespace for u in members if u.namespace)
            for namespace, count in namespaces.most_common(SUMMARY_TOP_NAMESPACES):
                lines.append(f"- {namespace}: {count}")
            lines.append("")

        stats = graph.stats()
        lines.append("## Dependency graph")
        lines.append("")
        lines.append(f"- Nodes: {stats['node_count']}")
        lines.append(f"- Edges: {stats['edge_count']}")
        lines.append(f"- External references: {stats['virtual_node_count']}")
        for key, value in report.stats.items():
            lines.append(f"- {key.replace('_', ' ').capitalize()}: {value}")
        lines.append("")

        if report.hubs:
            lines.append("## Hubs")
            lines.append("")
            for hub in report.hubs[:SUMMARY_TOP_HUBS]:
                lines.append(f"- {hub['identifier']} ({hub['type']}): {hub['dependent_count']} dependents")
            lines.append("")

        path = self.output_dir / SUMMARY_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines), encoding="utf-8")

    def write_all(self, units: list[ExtractedUnit], graph: "DependencyGraph",
                  report: "GraphAnalysisReport", extra: dict[str, Any] | None = None) -> dict[str, Any]:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.reset()
        self.write_units(units)
        self.write_graph(graph)
        self.write_analysis(report)
        manifest = self.write_manifest(units, extra)
        self.write_summary(units, graph, report)
        logger.info(f"Wrote {len(units)} units to {self.output_dir}")
        return manifest


def load_units(output_dir: Path | str) -> list[ExtractedUnit]:
    """Read every unit file back from a written index; unreadable files are skipped."""
    root = Path(output_dir)
    units: list[ExtractedUnit] = []
    if not root.is_dir():
        return units
    for type_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        if not (type_dir / TYPE_INDEX_FILE).is_file():
            continue
        for path in sorted(type_dir.glob("*.json")):
            if path.name == TYPE_INDEX_FILE:
                continue
            try:
                units.append(ExtractedUnit.from_dict(load_json_file(path)))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable unit file {path}: {e}")
    return units


def load_graph_data(output_dir: Path | str) -> dict[str, Any]:
    path = Path(output_dir) / GRAPH_FILE
    if not path.is_file():
        raise GraphLoadError(f"No dependency graph at {path}", {"path": str(path)})
    try:
        return load_json_file(path)
    except ValueError as e:
        raise GraphLoadError(f"Unreadable dependency graph at {path}: {e}") from e


def load_manifest(output_dir: Path | str) -> dict[str, Any]:
    path = Path(output_dir) / MANIFEST_FILE
    if not path.is_file():
        return {}
    return load_json_file(path)
