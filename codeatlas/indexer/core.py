"""Core functionality for file system access.

This module contains the SourceReader class, which resolves glob patterns
relative to the indexed root and reads raw source text for extractors.
"""


import threading
from pathlib import Path

from codeatlas.utils.helpers import normalize_path
from codeatlas.utils.logging import logger

from .config import MAX_FILE_SIZE, SKIP_DIRS
from .exceptions import ExtractionError


def is_text_file(file_path: Path) -> bool:
    """Check if file is text (not binary).

    Args:
        file_path: Path to the file to check

    Returns:
        True if file has no NUL bytes in its first 8 KiB
    """
    try:
        with open(file_path, "rb") as f:
            chunk = f.read(8192)
            return b"\0" not in chunk
    except (FileNotFoundError, PermissionError):
        return False


class SourceReader:
    """Enumerates source files by convention and reads their text.

    All paths handed out are POSIX paths relative to the root. The reader is
    shared by every extractor in a run and may be called from worker threads.
    """

    def __init__(
        self,
        root_path: Path | str,
        skip_dirs: set[str] | None = None,
        max_file_size: int = MAX_FILE_SIZE,
        max_files: int = 0,
    ):
        """Initialize the reader.

        Args:
            root_path: Root directory of the scanned repository
            skip_dirs: Directory names never descended into
            max_file_size: Files above this size in bytes are skipped
            max_files: Upper bound on distinct files handed out per run (0 = no bound)
        """
        self.root_path = Path(root_path).resolve()
        self.skip_dirs = SKIP_DIRS if skip_dirs is None else skip_dirs
        self.max_file_size = max_file_size
        self.max_files = max_files

        self._lock = threading.Lock()
        self._handed_out: set[str] = set()
        self._limit_logged = False
        self.stats = {"listed": 0, "read": 0, "skipped_size": 0, "skipped_binary": 0, "skipped_limit": 0}

    def relative(self, path: Path | str) -> str:
        return normalize_path(str(path), self.root_path)

    def absolute(self, rel_path: str) -> Path:
        return self.root_path / rel_path

    def is_dir(self, rel_dir: str) -> bool:
        return (self.root_path / rel_dir).is_dir()

    def _skipped(self, rel_path: str) -> bool:
        parts = rel_path.split("/")[:-1]
        return any(part in self.skip_dirs for part in parts)

    def _admit(self, rel_path: str) -> bool:
        """Count a file against the per-run file budget."""
        with self._lock:
            if rel_path in self._handed_out:
                return True
            if self.max_files and len(self._handed_out) >= self.max_files:
                self.stats["skipped_limit"] += 1
                if not self._limit_logged:
                    logger.warning(f"File limit of {self.max_files} reached; remaining files are skipped")
                    self._limit_logged = True
                return False
            self._handed_out.add(rel_path)
            self.stats["listed"] += 1
            return True

    def glob(self, pattern: str) -> list[str]:
        """Sorted root-relative paths matching ``pattern`` (e.g. ``app/models/**/*.rb``)."""
        matches = []
        for path in sorted(self.root_path.glob(pattern)):
            if not path.is_file():
                continue
            rel_path = self.relative(path)
            if self._skipped(rel_path):
                continue
            try:
                if path.stat().st_size > self.max_file_size:
                    self.stats["skipped_size"] += 1
                    logger.debug(f"Skipping large file: {rel_path}")
                    continue
            except OSError:
                continue
            if not self._admit(rel_path):
                continue
            matches.append(rel_path)
        return matches

    def files_in(self, directories: list[str], pattern: str = "**/*.rb") -> list[str]:
        """Files under each existing directory; missing directories are a no-op."""
        files: list[str] = []
        for directory in directories:
            if not self.is_dir(directory):
                continue
            files.extend(self.glob(f"{directory}/{pattern}"))
        return files

    def read(self, rel_path: str) -> str:
        """Read a file as text, replacing undecodable bytes.

        Raises:
            ExtractionError: If the file is missing, unreadable or binary
        """
        path = self.absolute(rel_path)
        if not is_text_file(path):
            self.stats["skipped_binary"] += 1
            raise ExtractionError(f"Not a readable text file: {rel_path}", candidate=rel_path)
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise ExtractionError(f"Cannot read {rel_path}: {e}", candidate=rel_path) from e
        with self._lock:
            self.stats["read"] += 1
        return text
