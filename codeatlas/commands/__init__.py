"""CLI command modules, registered on the group in codeatlas.cli."""
