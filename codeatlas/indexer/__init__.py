"""codeatlas Indexer Package.

Turns a Rails application into ExtractedUnits:
- SourceReader for bounded, skip-aware file access
- LiveRegistry for runtime facts exported from a booted application
- Pluggable extractors, one per unit family
- ExtractionOrchestrator for isolated, ordered extractor runs
- IndexWriter for the on-disk JSON layout

CONTRACT: Unit Identity
=======================
Extractors PRODUCE units; they never see each other's output. The
orchestrator MERGES them, and the first unit seen for an identifier wins.
Extractor order is therefore meaningful: runtime extractors rank ahead of
static ones within a family.

The workflow entry points live in ``codeatlas.indexer.runner`` and are
imported from there directly, since the graph layer depends on this package.
"""

from .core import SourceReader
from .exceptions import CodeatlasError, ExtractionError, GraphLoadError, RegistrySnapshotError
from .live_registry import LiveRegistry, NullRegistry, SnapshotRegistry, open_registry
from .model_names import ModelNameSet
from .orchestrator import ExtractionOrchestrator, ExtractorOutcome
from .unit import Chunk, Dependency, ExtractedUnit

__all__ = [
    "Chunk",
    "CodeatlasError",
    "Dependency",
    "ExtractedUnit",
    "ExtractionError",
    "ExtractionOrchestrator",
    "ExtractorOutcome",
    "GraphLoadError",
    "LiveRegistry",
    "ModelNameSet",
    "NullRegistry",
    "RegistrySnapshotError",
    "SnapshotRegistry",
    "SourceReader",
    "open_registry",
]
