"""codeatlas CLI - Main entry point and command registration hub."""
# ruff: noqa: E402 - Intentional lazy loading: commands imported after cli group definition

import click
from rich.table import Table

from codeatlas import __version__
from codeatlas.pipeline.ui import console


class VerboseGroup(click.Group):
    """Help output grouped by workflow stage."""

    COMMAND_CATEGORIES = {
        "EXTRACTION": {
            "title": "EXTRACTION",
            "description": "Build and refresh the unit index",
            "commands": ["extract", "update"],
        },
        "GRAPH": {
            "title": "GRAPH",
            "description": "Structure of the extracted dependency graph",
            "commands": ["graph"],
        },
    }

    def format_commands(self, ctx, formatter):
        """Suppress the default listing; format_help prints categories instead."""
        pass

    def format_help(self, ctx, formatter):
        super().format_help(ctx, formatter)

        registered = {
            name: cmd
            for name, cmd in self.commands.items()
            if not getattr(cmd, "hidden", False)
        }

        console.print()
        console.rule("[bold]COMMANDS[/bold]")
        for category in self.COMMAND_CATEGORIES.values():
            console.print(f"\n[bold cyan]{category['title']}[/bold cyan]")
            console.print(f"[dim]{category['description']}[/dim]")

            table = Table(show_header=False, box=None, padding=(0, 2, 0, 0))
            table.add_column("Command", style="cmd", width=12)
            table.add_column("Description", style="white")
            for name in category["commands"]:
                if name not in registered:
                    continue
                first_line = (registered[name].help or "").split("\n")[0].strip()
                table.add_row(name, first_line.rstrip("."))
            console.print(table)

        console.print()
        console.rule()
        console.print("For detailed options: [cmd]codeatlas <command> --help[/cmd]")


@click.group(cls=VerboseGroup)
@click.version_option(version=__version__, prog_name="codeatlas")
@click.help_option("-h", "--help")
def cli():
    """codeatlas - Structured knowledge index for Rails codebases

    \b
    QUICK START:
      codeatlas extract                 # Index the current application
      codeatlas update app/models/x.rb  # Refresh after editing a file
      codeatlas graph analyze           # Hubs, cycles, dead ends"""
    pass


from codeatlas.commands.extract import extract
from codeatlas.commands.graph import graph
from codeatlas.commands.update import update

cli.add_command(extract)
cli.add_command(update)
cli.add_command(graph)


def main():
    """Main entry point for console script."""
    cli()


if __name__ == "__main__":
    main()
