"""Rich console output shared by the codeatlas commands.

Commands import ``console`` and the helpers below instead of creating
their own Console, so theme and width behave the same everywhere.

Usage:
    from codeatlas.pipeline.ui import console, counts_table, print_header

    print_header("EXTRACTION RESULTS")
    console.print(counts_table("Units by type", {"model": 12, "controller": 4}))
"""

import sys
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

CODEATLAS_THEME = Theme({
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
    "success": "bold green",
    "cmd": "bold magenta",
    "path": "bold cyan",
    "unit": "bold blue",
    "dim": "dim white",
})

console = Console(
    theme=CODEATLAS_THEME,
    force_terminal=sys.stdout.isatty()
)

# (text style, border style) per panel level
PANEL_STYLES = {
    "error": ("bold red", "red"),
    "warning": ("bold yellow", "yellow"),
    "success": ("bold green", "green"),
    "info": ("bold cyan", "cyan"),
}


def print_header(title: str) -> None:
    console.rule(f"[bold]{title}[/bold]")


def print_warning(msg: str) -> None:
    console.print(f"[warning]WARNING:[/warning] {msg}")


def print_success(msg: str) -> None:
    console.print(f"[success]OK:[/success] {msg}")


def counts_table(title: str, counts: dict[str, Any], key_header: str = "Type",
                 value_header: str = "Count") -> Table:
    """Two-column table for a name -> number mapping, in the given order."""
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column(key_header, style="unit")
    table.add_column(value_header, justify="right")
    for key, value in counts.items():
        table.add_row(str(key), str(value))
    return table


def identifier_table(title: str, rows: list[dict[str, Any]], value_key: str, value_header: str) -> Table:
    """Unit rows (identifier, type, one numeric column) as a table."""
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Unit", style="unit")
    table.add_column("Type")
    table.add_column(value_header, justify="right")
    for row in rows:
        table.add_row(row["identifier"], str(row["type"]), str(row[value_key]))
    return table


def print_status_panel(status: str, message: str, detail: str, level: str = "info") -> None:
    """Print a bordered status panel.

    Args:
        status: Status label (e.g., "COMPLETE", "PARTIAL")
        message: Main message line
        detail: Additional detail line
        level: Key of PANEL_STYLES
    """
    text_style, border_style = PANEL_STYLES.get(level, ("white", "white"))
    panel = Panel(
        Text.assemble(
            (f"STATUS: [{status}]\n", text_style),
            (f"{message}\n", border_style),
            (detail, border_style)
        ),
        border_style=border_style,
        expand=False
    )
    console.print(panel)


def print_run_status(unit_count: int, failed: list[str], skipped: list[str], detail: str) -> None:
    """COMPLETE panel for a clean run, PARTIAL when extractors failed or were skipped."""
    if not failed and not skipped:
        print_status_panel("COMPLETE", f"{unit_count} units extracted", detail, level="success")
        return
    parts = []
    if failed:
        parts.append(f"failed: {', '.join(failed)}")
    if skipped:
        parts.append(f"skipped: {', '.join(skipped)}")
    print_status_panel("PARTIAL", "; ".join(parts), detail, level="warning")
