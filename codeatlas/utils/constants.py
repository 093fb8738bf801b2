"""Centralized constants for the codeatlas utils package.

Single source of truth for output locations shared by the CLI and the
output writer.
"""

from pathlib import Path

# ============================================================================
# OUTPUT DIRECTORIES
# ============================================================================

# Working directory for configuration, logs and default output
STATE_DIR = Path("./.codeatlas")

ERROR_LOG_FILE = STATE_DIR / "error.log"

# Default location of the extracted index
DEFAULT_OUTPUT_DIR = STATE_DIR / "index"

# ============================================================================
# OUTPUT FILE NAMES
# ============================================================================

GRAPH_FILE = "dependency_graph.json"
ANALYSIS_FILE = "graph_analysis.json"
MANIFEST_FILE = "manifest.json"
SUMMARY_FILE = "SUMMARY.md"
TYPE_INDEX_FILE = "_index.json"
