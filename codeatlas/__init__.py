"""codeatlas - structured knowledge index for Rails codebases."""

__version__ = "0.4.0"
