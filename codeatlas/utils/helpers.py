"""Helper utility functions shared across codeatlas.

IMPORTANT UTILITIES:
- normalize_path(): Use this before storing or comparing any file path.
  Units store Unix-style paths relative to the indexed root, while callers
  (git diff output, CLI arguments) may pass absolute or Windows paths.
"""

import hashlib
import json
import re
from pathlib import Path
from typing import Any

from .logging import logger


def normalize_path(file_path: str, project_root: Path | str | None = None) -> str:
    """Normalize a file path to a root-relative POSIX path.

    Transformations:
    1. Convert backslashes to forward slashes (Windows -> Unix)
    2. Strip project root prefix if provided (absolute -> relative)
    3. Strip leading slashes

    Examples:
        >>> normalize_path("app\\\\models\\\\user.rb")
        'app/models/user.rb'

        >>> normalize_path("/srv/app/app/models/user.rb", project_root="/srv/app")
        'app/models/user.rb'
    """
    normalized = file_path.replace("\\", "/")

    if project_root is not None:
        root_str = str(project_root).replace("\\", "/").rstrip("/")

        if normalized.startswith(root_str + "/"):
            normalized = normalized[len(root_str) + 1 :]
        elif normalized == root_str:
            normalized = ""

    return normalized.lstrip("/")


def compute_content_hash(content: str | None) -> str:
    """SHA256 hex digest of text content (empty string for None)."""
    return hashlib.sha256((content or "").encode("utf-8")).hexdigest()


def load_json_file(file_path: str | Path) -> Any:
    """
    Load and parse a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file contains invalid JSON
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"JSON file not found: {file_path}")
        raise
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in file {file_path}: {e}")
        raise


def save_json_file(data: Any, file_path: str | Path, pretty: bool = True) -> None:
    """
    Save data as JSON to file.

    Args:
        data: Data to save (must be JSON serializable)
        file_path: Path to output file
        pretty: Indent output when True, compact otherwise
    """
    with open(file_path, "w", encoding="utf-8") as f:
        if pretty:
            json.dump(data, f, indent=2)
        else:
            json.dump(data, f, separators=(",", ":"))


def safe_filename(identifier: str) -> str:
    """Collision-safe JSON filename for a unit identifier.

    Two identifiers that only differ in characters the sanitizer collapses
    (``GET /foo/bar`` vs ``GET /foo_bar``) still map to distinct names
    because a short digest of the raw identifier is appended.

    >>> safe_filename("Admin::UsersController").startswith("Admin__UsersController_")
    True
    """
    base = re.sub(r"[^a-zA-Z0-9_-]", "_", identifier.replace("::", "__"))
    digest = hashlib.sha256(identifier.encode("utf-8")).hexdigest()[:8]
    return f"{base}_{digest}.json"
