"""Extractor framework for the indexer.

This module defines the BaseExtractor contract every pattern recognizer
implements, the file-based and runtime-based specializations, and the
ExtractorRegistry that discovers extractor modules and returns them in
registration order.

CONTRACT:
- extract_all() never raises. A failing candidate is logged and skipped.
- extract_one(candidate) returns a unit, or None when the candidate does not
  belong to this family. None is a normal outcome, not an error.
- matches(source) is a cheap textual predicate checked before any parsing.

Runtime extractors (routes, middleware, live classes) consult the
LiveRegistry and contribute nothing when it is unavailable. They register
ahead of their static counterparts so their identifiers win deduplication.
"""

import importlib
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path
from typing import Any

from codeatlas.utils.logging import logger

from ..config import CHUNK_MAX_TOKENS, CHUNK_THRESHOLD, EXTRACTOR_FAMILIES
from ..core import SourceReader
from ..live_registry import LiveRegistry, NullRegistry
from ..model_names import ModelNameSet
from ..unit import ExtractedUnit


@dataclass
class ExtractorContext:
    """Read-only inputs shared by every extractor in one run."""

    root_path: Path
    reader: SourceReader
    model_names: ModelNameSet = field(default_factory=ModelNameSet.empty)
    registry: LiveRegistry = field(default_factory=NullRegistry)
    chunk_threshold: int = CHUNK_THRESHOLD
    chunk_max_tokens: int = CHUNK_MAX_TOKENS

    @classmethod
    def for_root(cls, root_path: Path | str, **kwargs: Any) -> "ExtractorContext":
        root = Path(root_path).resolve()
        return cls(root_path=root, reader=SourceReader(root), **kwargs)


class BaseExtractor(ABC):
    """Abstract base class for all pattern recognizers.

    Subclasses set ``family`` (the unit type they emit) and implement
    ``candidates`` plus ``extract_candidate``.
    """

    family: str = ""
    # Lower runs first within a family (runtime before static)
    priority: int = 50

    def __init__(self, context: ExtractorContext):
        """Initialize the extractor.

        Args:
            context: Shared run inputs (reader, model names, registry)
        """
        self.context = context
        self.root_path = context.root_path
        self.reader = context.reader
        self.model_names = context.model_names
        self.registry = context.registry

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def candidates(self) -> Iterable[Any]:
        """Enumerate everything this family might extract from."""
        pass

    @abstractmethod
    def extract_candidate(self, candidate: Any) -> list[ExtractedUnit]:
        """Produce units for one candidate; may raise on malformed input."""
        pass

    def describe(self, candidate: Any) -> str:
        return str(candidate)

    def handles(self, path: str) -> bool:
        """Whether a changed root-relative file belongs to this family."""
        return False

    def extract_many(self, candidate: Any) -> list[ExtractedUnit]:
        """All units for one candidate; failures are logged and yield []."""
        try:
            return [u for u in self.extract_candidate(candidate) if u is not None]
        except Exception as e:
            logger.warning(f"{self.name}: failed to extract {self.describe(candidate)}: {e}")
            return []

    def extract_one(self, candidate: Any) -> ExtractedUnit | None:
        units = self.extract_many(candidate)
        return units[0] if units else None

    def discover(self) -> list[Any]:
        """Materialized candidates; a failing discovery yields []."""
        try:
            return list(self.candidates())
        except Exception as e:
            logger.warning(f"{self.name}: candidate discovery failed: {e}")
            return []

    def extract_all(self, candidates: list[Any] | None = None) -> list[ExtractedUnit]:
        """Extract every candidate of this family. Never raises.

        Args:
            candidates: Previously discovered candidates; discovered here when None
        """
        if candidates is None:
            candidates = self.discover()

        units: list[ExtractedUnit] = []
        for candidate in candidates:
            units.extend(self.extract_many(candidate))
        logger.debug(f"{self.name}: {len(units)} units from {len(candidates)} candidates")
        return units

    def finalize_chunks(self, unit: ExtractedUnit) -> ExtractedUnit:
        """Attach default line-window chunks to large units without chunks."""
        if not unit.chunks:
            unit.chunks = unit.build_default_chunks(
                max_tokens=self.context.chunk_max_tokens,
                threshold=self.context.chunk_threshold,
            )
        return unit

    def cleanup(self) -> None:
        """Release resources after a run. Default: no-op."""
        pass


class FileExtractor(BaseExtractor):
    """Static discovery: glob a directory convention and parse each file.

    Subclasses set ``directories`` (and ``pattern`` if not Ruby files) and
    override exactly one of ``build_unit`` (one unit per file) or
    ``build_units`` (several units per file).
    """

    directories: list[str] = []
    pattern: str = "**/*.rb"

    def candidates(self) -> list[str]:
        return self.reader.files_in(self.directories, self.pattern)

    def handles(self, path: str) -> bool:
        # "**/" in a glob also matches zero directories
        for directory in self.directories:
            prefix = directory.rstrip("/") + "/"
            if not path.startswith(prefix):
                continue
            rest = path[len(prefix):]
            if fnmatch(rest, self.pattern) or fnmatch(rest, self.pattern.replace("**/", "")):
                return True
        return False

    def matches(self, source: str) -> bool:
        """Cheap predicate: does this file look like it belongs to the family?"""
        return True

    def extract_candidate(self, candidate: str) -> list[ExtractedUnit]:
        source = self.reader.read(candidate)
        if not self.matches(source):
            return []
        return [self.finalize_chunks(u) for u in self.build_units(candidate, source)]

    def build_units(self, file_path: str, source: str) -> list[ExtractedUnit]:
        unit = self.build_unit(file_path, source)
        return [unit] if unit is not None else []

    def build_unit(self, file_path: str, source: str) -> ExtractedUnit | None:
        """Override hook for one-unit-per-file families; None skips the file.

        Not abstract because families that override ``build_units`` never call it.
        """
        raise NotImplementedError(f"{self.name} must implement build_unit or build_units")


class RuntimeExtractor(BaseExtractor):
    """Runtime discovery through the LiveRegistry."""

    priority = 10

    def candidates(self) -> list[Any]:
        if not self.registry.available:
            return []
        return list(self.live_candidates())

    @abstractmethod
    def live_candidates(self) -> Iterable[Any]:
        pass

    def read_optional(self, rel_path: str | None) -> str | None:
        """Source of a runtime object's file, or None if it is not readable."""
        if not rel_path:
            return None
        rel_path = self.reader.relative(rel_path)
        if not (self.root_path / rel_path).is_file():
            return None
        try:
            return self.reader.read(rel_path)
        except Exception as e:
            logger.debug(f"{self.name}: cannot read {rel_path}: {e}")
            return None


# Modules holding extractor classes, imported by the registry
EXTRACTOR_MODULES: list[str] = [
    "route",
    "middleware",
    "graphql",
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


class ExtractorRegistry:
    """Registry for discovery and ordering of extractors.

    Imports every module in EXTRACTOR_MODULES and collects concrete
    BaseExtractor subclasses. Order is fixed by EXTRACTOR_FAMILIES and then
    by each class's ``priority``, so runtime extractors precede static
    fallbacks of the same family.
    """

    def __init__(self):
        self.extractor_classes: list[type[BaseExtractor]] = []
        self._discover()

    def _discover(self):
        seen: set[type] = set()
        for module_name in EXTRACTOR_MODULES:
            try:
                module = importlib.import_module(f".{module_name}", package=__name__)
            except ImportError as e:
                logger.error(f"Failed to import extractor module {module_name}: {e}")
                continue

            for attr_name in dir(module):
                attr = getattr(module, attr_name)
                if (
                    isinstance(attr, type)
                    and issubclass(attr, BaseExtractor)
                    and attr.__module__ == module.__name__
                    and attr.family
                    and not getattr(attr, "__abstractmethods__", None)
                    and attr not in seen
                ):
                    seen.add(attr)
                    self.extractor_classes.append(attr)

        def rank(cls: type[BaseExtractor]) -> tuple[int, int, str]:
            family_rank = (
                EXTRACTOR_FAMILIES.index(cls.family)
                if cls.family in EXTRACTOR_FAMILIES
                else len(EXTRACTOR_FAMILIES)
            )
            return (family_rank, cls.priority, cls.__name__)

        self.extractor_classes.sort(key=rank)

    @property
    def families(self) -> list[str]:
        result: list[str] = []
        for cls in self.extractor_classes:
            if cls.family not in result:
                result.append(cls.family)
        return result

    def build(self, context: ExtractorContext, families: Iterable[str] | None = None) -> list[BaseExtractor]:
        """Instantiate extractors in registration order, optionally filtered by family."""
        wanted = set(families) if families else None
        if wanted:
            unknown = wanted - set(self.families)
            if unknown:
                logger.warning(f"Unknown extractor families ignored: {', '.join(sorted(unknown))}")
        return [
            cls(context)
            for cls in self.extractor_classes
            if wanted is None or cls.family in wanted
        ]


def build_default_extractors(context: ExtractorContext, families: Iterable[str] | None = None) -> list[BaseExtractor]:
    return ExtractorRegistry().build(context, families)
