"""Indexer workflow runner: full and incremental extraction."""

import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from codeatlas.config_runtime import load_runtime_config
from codeatlas.graph.analyzer import GraphAnalyzer
from codeatlas.graph.builder import DependencyGraph, build_graph
from codeatlas.utils.helpers import normalize_path
from codeatlas.utils.logging import logger

from .core import SourceReader
from .exceptions import GraphLoadError
from .extractors import BaseExtractor, ExtractorContext, build_default_extractors
from .live_registry import open_registry
from .model_names import ModelNameSet
from .orchestrator import ExtractionOrchestrator
from .unit import ExtractedUnit
from .writer import IndexWriter, load_graph_data, load_manifest, load_units


def _resolve(root: Path, value: str | Path | None) -> Path | None:
    if not value:
        return None
    path = Path(value)
    return path if path.is_absolute() else root / path


def resolve_output_dir(root: Path, output_dir: str | Path | None, config: dict[str, Any]) -> Path:
    """Output directory for a run; relative paths resolve against the indexed root."""
    return _resolve(root, output_dir or config["paths"]["output_dir"])


def _prepare(root_path: str | Path, config: dict[str, Any] | None, snapshot: str | None,
             max_files: int | None, families: Iterable[str] | None):
    """Shared setup: config, registry, model names and extractor list."""
    root = Path(root_path).resolve()
    if not root.exists():
        raise FileNotFoundError(f"Root path does not exist: {root_path}")

    config = config or load_runtime_config(root)
    limits = config["limits"]

    registry = open_registry(_resolve(root, snapshot or config["paths"]["snapshot"]))
    model_names = ModelNameSet.discover(root, registry)
    logger.info(f"Known models: {len(model_names)}")

    reader = SourceReader(
        root,
        max_file_size=limits["max_file_size"],
        max_files=limits["max_files"] if max_files is None else max_files,
    )
    context = ExtractorContext(
        root_path=root,
        reader=reader,
        model_names=model_names,
        registry=registry,
        chunk_threshold=limits["chunk_threshold"],
        chunk_max_tokens=limits["chunk_max_tokens"],
    )
    families = list(families or config["extraction"]["families"]) or None
    extractors = build_default_extractors(context, families)
    return root, config, reader, extractors


def _analyze(graph: DependencyGraph, config: dict[str, Any]):
    limits = config["limits"]
    return GraphAnalyzer(graph).analyze(
        hub_limit=limits["hub_limit"],
        max_cycles=limits["max_cycles"],
        bridge_limit=limits["bridge_limit"],
        bridge_sample_size=limits["bridge_sample_size"],
    )


def run_extraction(
    root_path: str | Path = ".",
    output_dir: str | Path | None = None,
    snapshot: str | None = None,
    concurrent: bool | None = None,
    max_files: int | None = None,
    max_seconds: float | None = None,
    families: Iterable[str] | None = None,
    config: dict[str, Any] | None = None,
    write: bool = True,
) -> dict[str, Any]:
    """Run the complete extraction workflow.

    Explicit arguments override the runtime config. Returns a result dict
    with the units, graph and analysis report plus run statistics.
    """
    start_time = time.time()
    root, config, reader, extractors = _prepare(root_path, config, snapshot, max_files, families)
    extraction = config["extraction"]

    orchestrator = ExtractionOrchestrator(
        extractors,
        concurrent=extraction["concurrent"] if concurrent is None else concurrent,
        max_workers=extraction["max_workers"],
        max_seconds=config["limits"]["max_seconds"] if max_seconds is None else max_seconds,
    )
    units = orchestrator.run()

    graph = build_graph(units)
    report = _analyze(graph, config)

    output = resolve_output_dir(root, output_dir, config)
    elapsed = time.time() - start_time
    stats = {
        "files": dict(reader.stats),
        "orchestrator": orchestrator.stats(),
        "graph": graph.stats(),
        "analysis": report.stats,
    }
    if write:
        IndexWriter(output, pretty=extraction["pretty_json"]).write_all(
            units, graph, report, extra={"mode": "full", "elapsed": round(elapsed, 3)}
        )

    logger.info(f"Extracted {len(units)} units in {elapsed:.2f}s")
    return {
        "success": True,
        "units": units,
        "graph": graph,
        "report": report,
        "output_dir": str(output),
        "stats": stats,
        "elapsed": elapsed,
    }


def _previous_graph(output: Path, previous: list[ExtractedUnit]) -> DependencyGraph:
    try:
        return DependencyGraph.from_dict(load_graph_data(output))
    except GraphLoadError as e:
        logger.warning(f"{e}; rebuilding graph from stored units")
        return build_graph(previous)


def reextract_files(extractors: list[BaseExtractor], paths: list[str], root: Path) -> list[ExtractedUnit]:
    """Units from the given files, in extractor rank order, first identifier wins."""
    found: dict[str, ExtractedUnit] = {}
    for extractor in extractors:
        for path in paths:
            if not (root / path).is_file() or not extractor.handles(path):
                continue
            for unit in extractor.extract_many(path):
                found.setdefault(unit.identifier, unit)
    return list(found.values())


def run_incremental(
    root_path: str | Path,
    changed_files: Iterable[str],
    output_dir: str | Path | None = None,
    snapshot: str | None = None,
    config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Re-extract only the changed files and rewrite the index.

    Units whose file changed or disappeared are replaced by whatever the
    extractors now produce for that file. The graph and analysis are always
    rebuilt in full. Falls back to a full run when no previous index exists.

    A changed file is authoritative for the identifiers it now yields: if one
    collides with a unit kept from an unchanged file, the fresh unit replaces
    it, whereas a full run keeps whichever file its extractor lists first.
    A later full extraction settles such collisions by rank again.
    """
    start_time = time.time()
    root, config, _, extractors = _prepare(root_path, config, snapshot, 0, None)
    output = resolve_output_dir(root, output_dir, config)

    previous = load_units(output)
    if not previous:
        logger.info("No previous index found, running full extraction")
        return run_extraction(root, output, snapshot=snapshot, config=config)

    changed = list(dict.fromkeys(normalize_path(str(f), root) for f in changed_files))
    old_graph = _previous_graph(output, previous)
    affected = old_graph.affected_by(changed, max_depth=config["limits"]["max_graph_depth"] or None)
    old_hashes = load_manifest(output).get("source_hashes", {})

    fresh = reextract_files(extractors, changed, root)
    fresh_ids = {u.identifier for u in fresh}
    changed_set = set(changed)
    removed = [
        u.identifier for u in previous
        if u.file_path in changed_set and u.identifier not in fresh_ids
    ]
    kept = [u for u in previous if u.file_path not in changed_set and u.identifier not in fresh_ids]
    units = kept + fresh

    unchanged = [u.identifier for u in fresh if old_hashes.get(u.identifier) == u.source_hash]
    updated = [u.identifier for u in fresh if u.identifier not in unchanged]

    graph = build_graph(units)
    report = _analyze(graph, config)
    elapsed = time.time() - start_time
    IndexWriter(output, pretty=config["extraction"]["pretty_json"]).write_all(
        units, graph, report, extra={"mode": "incremental", "elapsed": round(elapsed, 3)}
    )

    logger.info(
        f"Incremental run: {len(changed)} files, {len(updated)} updated, "
        f"{len(unchanged)} unchanged, {len(removed)} removed"
    )
    return {
        "success": True,
        "changed_files": changed,
        "affected": affected,
        "updated": updated,
        "unchanged": unchanged,
        "removed": removed,
        "units": units,
        "graph": graph,
        "report": report,
        "output_dir": str(output),
        "stats": {"graph": graph.stats(), "analysis": report.stats},
        "elapsed": elapsed,
    }
