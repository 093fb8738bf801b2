"""Update command - incremental re-extraction of changed files."""

import click

from codeatlas.pipeline.ui import console, counts_table, print_header, print_warning
from codeatlas.utils.error_handler import handle_exceptions


@click.command()
@handle_exceptions
@click.argument("files", nargs=-1, required=True)
@click.option("--root", default=".", help="Root directory of the Rails application")
@click.option("--output", default=None, help="Index directory written by 'codeatlas extract'")
@click.option("--snapshot", default=None, help="Runtime registry snapshot (JSON or YAML)")
@click.option("--show-affected", is_flag=True, help="List every affected unit")
def update(files, root, output, snapshot, show_affected):
    """Re-extract only the given files and refresh the index.

    Units defined in FILES are replaced with fresh extractions (units whose
    file was deleted are dropped), then the dependency graph and analysis
    are rebuilt. Without a previous index this falls back to a full run.

    \b
    EXAMPLES:
      codeatlas update app/models/user.rb
      codeatlas update $(git diff --name-only HEAD~1)
    """
    from codeatlas.indexer.runner import run_incremental

    result = run_incremental(root, files, output_dir=output, snapshot=snapshot)

    print_header("INCREMENTAL UPDATE")
    if "changed_files" not in result:
        print_warning("No previous index found; ran a full extraction instead")
        console.print(f"{len(result['units'])} units written to {result['output_dir']}", markup=False)
        return

    console.print(counts_table("Changes", {
        "Files": len(result["changed_files"]),
        "Updated units": len(result["updated"]),
        "Unchanged units": len(result["unchanged"]),
        "Removed units": len(result["removed"]),
        "Affected units": len(result["affected"]),
    }, key_header="Metric"))

    if show_affected and result["affected"]:
        console.print("[bold]Affected:[/bold]")
        for identifier in result["affected"]:
            console.print(f"  {identifier}", markup=False)
