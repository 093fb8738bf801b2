"""Extracted unit model - the record every extractor emits.

A unit is rebuilt from source on every run; nothing persists between runs
by identity. Chunks carry a SHA-256 ``content_hash`` so a caller can detect
no-op re-extractions without diffing full text.
"""


import json
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from codeatlas.utils.helpers import compute_content_hash

from .config import CHUNK_MAX_TOKENS, CHUNK_THRESHOLD, CHARS_PER_TOKEN

DEFAULT_VIA = "code_reference"


@dataclass(frozen=True)
class Dependency:
    """One ``(type, target, via)`` triple: what a unit references and how."""

    type: str
    target: str
    via: str = DEFAULT_VIA

    @property
    def key(self) -> tuple[str, str]:
        """Dedup key. ``via`` is deliberately not part of it."""
        return (self.type, self.target)

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "target": self.target, "via": self.via}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Dependency":
        return cls(
            type=str(data["type"]),
            target=str(data["target"]),
            via=str(data.get("via") or DEFAULT_VIA),
        )


def dedupe_dependencies(deps: Iterable[Dependency]) -> list[Dependency]:
    """Drop repeated ``(type, target)`` pairs, keeping the first-seen entry."""
    seen: set[tuple[str, str]] = set()
    result: list[Dependency] = []
    for dep in deps:
        if dep.key in seen:
            continue
        seen.add(dep.key)
        result.append(dep)
    return result


def estimate_tokens(text: str | None) -> int:
    """Rough token estimate for code: one token per four characters."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass
class Chunk:
    """A sub-unit of a large unit's content used for fine-grained retrieval."""

    chunk_type: str
    identifier: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    content_hash: str = ""

    def __post_init__(self):
        # Always derived from content; a stale hash passed in is replaced
        self.content_hash = compute_content_hash(self.content)

    @property
    def estimated_tokens(self) -> int:
        return estimate_tokens(self.content)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunk_type": self.chunk_type,
            "identifier": self.identifier,
            "content": self.content,
            "content_hash": self.content_hash,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chunk":
        return cls(
            chunk_type=data.get("chunk_type", "section"),
            identifier=data["identifier"],
            content=data.get("content", ""),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class ExtractedUnit:
    """A single recognized code entity.

    Attributes:
        type: Extractor family tag (model, controller, job, route, ...)
        identifier: Unique key within a run ("User", "GET /users", "db:seed")
        namespace: Module path grouping, informational only
        file_path: Root-relative origin; None for runtime-only units
        source_code: Annotated or composite text, may differ from the raw file
        metadata: Family-specific fields, always including ``loc``
        dependencies: Ordered, deduplicated dependency triples
        chunks: Optional sub-units; additive, never a replacement for source
    """

    type: str
    identifier: str
    namespace: str | None = None
    file_path: str | None = None
    source_code: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    dependencies: list[Dependency] = field(default_factory=list)
    chunks: list[Chunk] = field(default_factory=list)

    def __post_init__(self):
        if not self.identifier or not str(self.identifier).strip():
            raise ValueError(f"{self.type} unit requires a non-empty identifier")
        self.dependencies = dedupe_dependencies(self.dependencies)
        self.metadata.setdefault("loc", count_loc(self.source_code))

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "type" and "type" in self.__dict__:
            raise AttributeError("ExtractedUnit.type is immutable once set")
        super().__setattr__(name, value)

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def add_dependencies(self, deps: Iterable[Dependency]) -> None:
        """Append dependencies, preserving first-seen dedup."""
        self.dependencies = dedupe_dependencies([*self.dependencies, *deps])

    # ------------------------------------------------------------------
    # Size and hashing
    # ------------------------------------------------------------------

    @property
    def source_hash(self) -> str:
        return compute_content_hash(self.source_code)

    @property
    def estimated_tokens(self) -> int:
        """Source plus serialized metadata weight, in approximate tokens."""
        metadata_tokens = 0
        if self.metadata:
            metadata_tokens = estimate_tokens(json.dumps(self.metadata, default=str))
        return estimate_tokens(self.source_code) + metadata_tokens

    def needs_chunking(self, threshold: int = CHUNK_THRESHOLD) -> bool:
        return self.estimated_tokens > threshold

    def chunk_header(self) -> str:
        return (
            f"# Unit: {self.identifier} ({self.type})\n"
            f"# File: {self.file_path or ''}\n"
            f"# Namespace: {self.namespace or '(root)'}\n"
            "# ---\n"
        )

    def build_default_chunks(
        self,
        max_tokens: int = CHUNK_MAX_TOKENS,
        threshold: int = CHUNK_THRESHOLD,
    ) -> list[Chunk]:
        """Split source into line windows of at most ``max_tokens`` each.

        Every chunk is prefixed with the unit header so it stands alone in a
        retrieval index. Returns an empty list for units under ``threshold``.
        """
        if not self.needs_chunking(threshold):
            return []

        header = self.chunk_header()
        chunks: list[Chunk] = []
        current: list[str] = []
        current_tokens = 0

        def flush():
            index = len(chunks)
            chunks.append(
                Chunk(
                    chunk_type="section",
                    identifier=f"{self.identifier}#chunk_{index}",
                    content=header + "".join(current),
                    metadata={"chunk_index": index, "parent": self.identifier},
                )
            )

        for line in self.source_code.splitlines(keepends=True):
            line_tokens = estimate_tokens(line)
            if current and current_tokens + line_tokens > max_tokens:
                flush()
                current = []
                current_tokens = 0
            current.append(line)
            current_tokens += line_tokens

        if current:
            flush()

        return chunks

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "identifier": self.identifier,
            "namespace": self.namespace,
            "file_path": self.file_path,
            "source_code": self.source_code,
            "metadata": self.metadata,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "chunks": [c.to_dict() for c in self.chunks],
            "source_hash": self.source_hash,
            "estimated_tokens": self.estimated_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtractedUnit":
        return cls(
            type=data["type"],
            identifier=data["identifier"],
            namespace=data.get("namespace"),
            file_path=data.get("file_path"),
            source_code=data.get("source_code") or "",
            metadata=dict(data.get("metadata") or {}),
            dependencies=[Dependency.from_dict(d) for d in data.get("dependencies") or []],
            chunks=[Chunk.from_dict(c) for c in data.get("chunks") or []],
        )


def count_loc(source: str | None) -> int:
    """Non-blank, non-comment Ruby lines."""
    if not source:
        return 0
    count = 0
    for line in source.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            count += 1
    return count
