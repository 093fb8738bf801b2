"""Custom exceptions for the indexer module.

Contains exception classes for specific failure modes that require
explicit handling rather than generic error propagation. Extraction
failures are caught at the extractor or orchestrator boundary and logged;
they never abort a run.
"""


class CodeatlasError(Exception):
    """Base class for codeatlas errors.

    Attributes:
        message: Human-readable error description
        details: Dict with context for debugging
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ExtractionError(CodeatlasError):
    """Raised inside an extractor when one candidate cannot be turned into a unit."""

    def __init__(self, message: str, candidate: object = None, details: dict | None = None):
        super().__init__(message, details)
        self.candidate = candidate


class RegistrySnapshotError(CodeatlasError):
    """Raised when a runtime registry snapshot cannot be read or parsed."""


class GraphLoadError(CodeatlasError):
    """Raised when a persisted dependency graph is missing or malformed."""
