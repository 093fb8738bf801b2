"""Indexer configuration - constants and conventions.

This module contains all configuration values for the indexer package.
Organized into logical sections for maintainability.

CRITICAL: This file should contain ONLY configuration constants.
NO business logic. Patterns that recognize source live with the extractor
that uses them.
"""


import os

# =============================================================================
# PERFORMANCE CONFIGURATION
# =============================================================================

def _get_int_env(env_var: str, default: int, max_value: int) -> int:
    """Get an integer setting from environment or use default."""
    try:
        value = int(os.environ.get(env_var, default))
        return min(value, max_value)
    except (ValueError, TypeError):
        return default


# Worker threads used when extractors run concurrently
DEFAULT_MAX_WORKERS = _get_int_env('CODEATLAS_MAX_WORKERS', 4, 32)

# Files larger than this are skipped by the source reader
MAX_FILE_SIZE = 2 * 1024 * 1024


# =============================================================================
# CHUNKING CONFIGURATION
# =============================================================================

# Rough token estimate: 1 token per 4 characters of code
CHARS_PER_TOKEN = 4

# Units above this estimated size get chunks
CHUNK_THRESHOLD = 1500

# Maximum estimated tokens per default line-window chunk
CHUNK_MAX_TOKENS = 1500


# =============================================================================
# GRAPH ANALYSIS CONFIGURATION
# =============================================================================

DEFAULT_HUB_LIMIT = 20
DEFAULT_MAX_CYCLES = 100
DEFAULT_BRIDGE_LIMIT = 20
DEFAULT_BRIDGE_SAMPLE_SIZE = 200

PAGERANK_DAMPING = 0.85
PAGERANK_ITERATIONS = 20


# =============================================================================
# FILE SYSTEM CONFIGURATION
# =============================================================================

# Directories to always skip during discovery
SKIP_DIRS: set[str] = {
    # Version control
    ".git",
    ".hg",
    ".svn",

    # Dependencies and vendored gems
    "node_modules",
    "vendor",

    # Build artifacts and runtime state
    "tmp",
    "log",
    "public",
    "coverage",

    # codeatlas output
    ".codeatlas",

    # IDE/Editor
    ".vscode",
    ".idea",
}


# =============================================================================
# EXTRACTOR CONVENTIONS
# =============================================================================

MODEL_DIRECTORIES: list[str] = ["app/models"]

CONTROLLER_DIRECTORIES: list[str] = ["app/controllers"]

SERVICE_DIRECTORIES: list[str] = [
    "app/services",
    "app/interactors",
    "app/operations",
    "app/commands",
    "app/use_cases",
]

JOB_DIRECTORIES: list[str] = [
    "app/jobs",
    "app/workers",
    "app/sidekiq",
]

MAILER_DIRECTORIES: list[str] = ["app/mailers"]

GRAPHQL_DIRECTORIES: list[str] = ["app/graphql"]

MIGRATION_DIRECTORIES: list[str] = ["db/migrate"]

RAKE_DIRECTORIES: list[str] = ["lib/tasks"]

FACTORY_DIRECTORIES: list[str] = ["spec/factories", "test/factories"]

RSPEC_GLOB = "spec/**/*_spec.rb"
MINITEST_GLOB = "test/**/*_test.rb"

# Rake namespaces that belong to tooling, not to the application
EXCLUDED_RAKE_NAMESPACES: list[str] = ["codeatlas", "codebase_index"]

# Base class whose live subclasses the runtime model extractor asks for
MODEL_BASE_CLASS = "ApplicationRecord"

# Extractor families in registration order: runtime sources first
EXTRACTOR_FAMILIES: list[str] = [
    "route",
    "middleware",
    "graphql_type",
    "model",
    "controller",
    "service",
    "job",
    "mailer",
    "state_machine",
    "migration",
    "rake_task",
    "factory",
    "test_mapping",
]
