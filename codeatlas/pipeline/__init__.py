"""Terminal presentation helpers shared by the CLI commands."""
