"""codeatlas utilities package."""

from .constants import (
    ANALYSIS_FILE,
    DEFAULT_OUTPUT_DIR,
    ERROR_LOG_FILE,
    GRAPH_FILE,
    MANIFEST_FILE,
    STATE_DIR,
    SUMMARY_FILE,
    TYPE_INDEX_FILE,
)
from .error_handler import handle_exceptions
from .helpers import (
    compute_content_hash,
    load_json_file,
    normalize_path,
    safe_filename,
    save_json_file,
)
from .logging import logger

__all__ = [
    "STATE_DIR",
    "ERROR_LOG_FILE",
    "DEFAULT_OUTPUT_DIR",
    "GRAPH_FILE",
    "ANALYSIS_FILE",
    "MANIFEST_FILE",
    "SUMMARY_FILE",
    "TYPE_INDEX_FILE",
    "handle_exceptions",
    "compute_content_hash",
    "load_json_file",
    "normalize_path",
    "safe_filename",
    "save_json_file",
    "logger",
]
