"""Dependency graph analysis and visualization over a written index."""

import json
from pathlib import Path

import click

from codeatlas.pipeline.ui import console, counts_table, identifier_table, print_header, print_success
from codeatlas.utils.error_handler import handle_exceptions


def _load_graph(root: str, output: str | None):
    from codeatlas.config_runtime import load_runtime_config
    from codeatlas.graph.builder import DependencyGraph
    from codeatlas.indexer.exceptions import GraphLoadError
    from codeatlas.indexer.runner import resolve_output_dir
    from codeatlas.indexer.writer import load_graph_data

    root_path = Path(root).resolve()
    config = load_runtime_config(root_path)
    output_dir = resolve_output_dir(root_path, output, config)
    try:
        data = load_graph_data(output_dir)
        return DependencyGraph.from_dict(data), data, config
    except GraphLoadError as e:
        raise click.ClickException(f"{e}. Run 'codeatlas extract' first.") from e


@click.group()
@click.help_option("-h", "--help")
def graph():
    """Analyze and visualize the dependency graph of an extracted index.

    \b
    SUBCOMMANDS:
      analyze: Orphans, dead ends, hubs, cycles and bridges
      viz:     Mermaid diagram of the whole graph or one unit's neighbourhood

    \b
    TYPICAL WORKFLOW:
      codeatlas extract
      codeatlas graph analyze
      codeatlas graph viz --focus User --out user.mmd
    """
    pass


@graph.command("analyze")
@handle_exceptions
@click.option("--root", default=".", help="Root directory of the Rails application")
@click.option("--output", default=None, help="Index directory written by 'codeatlas extract'")
@click.option("--hubs", "hub_limit", type=int, default=None, help="Number of hubs to report")
@click.option("--max-cycles", type=int, default=None, help="Stop after this many cycles")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
def graph_analyze(root, output, hub_limit, max_cycles, as_json):
    """Report structural findings from the persisted dependency graph.

    Orphans have no edges at all, dead ends are referenced but depend on
    nothing, hubs are the most-referenced units, cycles are distinct loops
    and bridges sit on many sampled shortest paths. Edges to classes that
    were never extracted are ignored.
    """
    from codeatlas.graph.analyzer import GraphAnalyzer

    dependency_graph, _, config = _load_graph(root, output)
    limits = config["limits"]
    report = GraphAnalyzer(dependency_graph).analyze(
        hub_limit=limits["hub_limit"] if hub_limit is None else hub_limit,
        max_cycles=limits["max_cycles"] if max_cycles is None else max_cycles,
        bridge_limit=limits["bridge_limit"],
        bridge_sample_size=limits["bridge_sample_size"],
    )

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    print_header("GRAPH ANALYSIS")
    console.print(counts_table("Summary", report.stats, key_header="Metric"))

    if report.hubs:
        console.print(identifier_table("Hubs", report.hubs, "dependent_count", "Dependents"))

    if report.cycles:
        console.print("[bold]Cycles:[/bold]")
        for cycle in report.cycles:
            console.print("  " + " -> ".join(cycle + cycle[:1]), markup=False)

    if report.bridges:
        console.print(identifier_table("Bridges", report.bridges, "score", "Score"))


@graph.command("viz")
@handle_exceptions
@click.option("--root", default=".", help="Root directory of the Rails application")
@click.option("--output", default=None, help="Index directory written by 'codeatlas extract'")
@click.option("--focus", default=None, help="Only draw this unit and its neighbours")
@click.option("--depth", type=int, default=1, help="Neighbourhood radius for --focus")
@click.option("--include-virtual", is_flag=True, help="Draw edges to classes that were not extracted")
@click.option("--out", "out_file", default=None, help="Write the diagram to this file")
def graph_viz(root, output, focus, depth, include_virtual, out_file):
    """Render the dependency graph as a Mermaid flowchart.

    \b
    EXAMPLES:
      codeatlas graph viz > graph.mmd
      codeatlas graph viz --focus OrdersController --depth 2
    """
    from codeatlas.graph.visualizer import MermaidRenderer

    dependency_graph, data, _ = _load_graph(root, output)
    renderer = MermaidRenderer()
    if focus:
        if not dependency_graph.node_exists(focus):
            raise click.ClickException(f"Unknown unit: {focus}")
        diagram = renderer.render_focus(data, focus, depth=depth)
    else:
        diagram = renderer.render_dependency_map(data, include_virtual=include_virtual)

    if out_file:
        Path(out_file).write_text(diagram + "\n", encoding="utf-8")
        print_success(f"Diagram written to {out_file}")
    else:
        click.echo(diagram)
