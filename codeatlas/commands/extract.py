"""Extract command - full extraction of a Rails application into the index."""

from pathlib import Path

import click

from codeatlas.pipeline.ui import console, counts_table, print_header, print_run_status
from codeatlas.utils.error_handler import handle_exceptions
from codeatlas.utils.logging import configure_file_logging, logger


@click.command()
@handle_exceptions
@click.option("--root", default=".", help="Root directory of the Rails application")
@click.option("--output", default=None, help="Output directory (default: .codeatlas/index)")
@click.option("--snapshot", default=None, help="Runtime registry snapshot (JSON or YAML)")
@click.option(
    "--concurrent/--sequential",
    default=None,
    help="Run extractors in a thread pool (default from config)",
)
@click.option("--max-files", type=int, default=None, help="Stop reading after N files (0 = unlimited)")
@click.option("--max-seconds", type=float, default=None, help="Skip extractors once N seconds have passed")
@click.option("--family", "families", multiple=True, help="Only run these extractor families")
@click.option("--log-dir", default=None, help="Also write a rotating debug log to this directory")
@click.option("--quiet", is_flag=True, help="Minimal output")
def extract(root, output, snapshot, concurrent, max_files, max_seconds, families, log_dir, quiet):
    """Extract models, controllers, routes and more into a JSON index.

    Runs every registered extractor against the application, merges the
    units (first identifier wins), builds the dependency graph and writes
    the index directory.

    \b
    EXAMPLES:
      codeatlas extract
      codeatlas extract --snapshot tmp/registry.json
      codeatlas extract --family model --family controller
      codeatlas extract --concurrent --max-seconds 120

    \b
    OUTPUT:
      <output>/<type>/*.json        One file per unit
      <output>/dependency_graph.json
      <output>/graph_analysis.json
      <output>/manifest.json
      <output>/SUMMARY.md
    """
    from codeatlas.indexer.runner import run_extraction

    handler_id = configure_file_logging(Path(log_dir)) if log_dir else None
    try:
        result = run_extraction(
            root,
            output_dir=output,
            snapshot=snapshot,
            concurrent=concurrent,
            max_files=max_files,
            max_seconds=max_seconds,
            families=families or None,
        )
    finally:
        if handler_id is not None:
            logger.remove(handler_id)

    if quiet:
        console.print(f"{len(result['units'])} units written to {result['output_dir']}", markup=False)
        return

    stats = result["stats"]
    counts: dict[str, int] = {}
    for unit in result["units"]:
        counts[unit.type] = counts.get(unit.type, 0) + 1

    print_header("EXTRACTION RESULTS")
    console.print(counts_table("Units by type", dict(sorted(counts.items()))))

    graph_stats = stats["graph"]
    console.print(counts_table("Dependency graph", {
        "Nodes": graph_stats["node_count"],
        "Edges": graph_stats["edge_count"],
        "External references": graph_stats["virtual_node_count"],
        **{key.replace("_", " ").capitalize(): value for key, value in stats["analysis"].items()},
    }, key_header="Metric"))

    orchestrator = stats["orchestrator"]
    print_run_status(
        len(result["units"]),
        orchestrator.get("failed", []),
        orchestrator.get("skipped", []),
        f"Elapsed {result['elapsed']:.2f}s, output in {result['output_dir']}",
    )
