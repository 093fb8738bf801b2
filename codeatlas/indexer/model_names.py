"""Known model names, compiled once per run into one alternation regex.

Model reference scanning runs against nearly every source blob, so the
names are matched with a single precompiled pattern instead of one test per
name. The set is an immutable value built at the start of a run and passed
to every extractor that scans for model references.
"""


import re
from collections.abc import Iterable
from pathlib import Path

from codeatlas.utils.logging import logger

from .config import MODEL_BASE_CLASS, MODEL_DIRECTORIES

# Never matches anything; used when no models are known
_NEVER = re.compile(r"(?!)")

_CLASS_RE = re.compile(r"^\s*class\s+([A-Z][\w:]*)\s*<\s*([A-Z][\w:]*)", re.MULTILINE)
_ABSTRACT_RE = re.compile(r"self\.abstract_class\s*=\s*true")
_MODEL_BASES = {"ApplicationRecord", "ActiveRecord::Base"}


class ModelNameSet:
    """Immutable set of model class names with a precompiled matcher."""

    __slots__ = ("_names", "_pattern")

    def __init__(self, names: Iterable[str] = ()):
        unique: list[str] = []
        seen: set[str] = set()
        for name in names:
            if name and name not in seen:
                seen.add(name)
                unique.append(name)
        object.__setattr__(self, "_names", tuple(unique))
        object.__setattr__(self, "_pattern", self._compile(unique))

    def __setattr__(self, name, value):
        raise AttributeError("ModelNameSet is immutable")

    @staticmethod
    def _compile(names: list[str]) -> re.Pattern:
        if not names:
            return _NEVER
        # Longest first so "UserProfile" wins over "User" in the alternation
        ordered = sorted(names, key=len, reverse=True)
        return re.compile(r"\b(?:" + "|".join(re.escape(n) for n in ordered) + r")\b")

    @property
    def names(self) -> tuple[str, ...]:
        return self._names

    @property
    def pattern(self) -> re.Pattern:
        return self._pattern

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)

    def __iter__(self):
        return iter(self._names)

    def __repr__(self) -> str:
        return f"ModelNameSet({len(self._names)} names)"

    def find_all(self, source: str) -> list[str]:
        """Distinct model names referenced in ``source``, in first-seen order."""
        found: list[str] = []
        seen: set[str] = set()
        for match in self._pattern.finditer(source or ""):
            name = match.group(0)
            if name not in seen:
                seen.add(name)
                found.append(name)
        return found

    @classmethod
    def empty(cls) -> "ModelNameSet":
        return cls(())

    @classmethod
    def discover(cls, root: Path, registry=None) -> "ModelNameSet":
        """Build the set from the live registry when available, else from app/models.

        Static discovery follows ``class X < ApplicationRecord`` chains within
        the scanned files, so ``class Admin < User`` counts when ``User`` is a
        model. Abstract classes are excluded.
        """
        names: list[str] = []

        if registry is not None and registry.available:
            for live in registry.subclasses_of(MODEL_BASE_CLASS):
                if not live.abstract:
                    names.append(live.name)

        parents: dict[str, str] = {}
        abstract: set[str] = set()
        for directory in MODEL_DIRECTORIES:
            base = Path(root) / directory
            if not base.is_dir():
                continue
            for path in sorted(base.rglob("*.rb")):
                try:
                    text = path.read_text(encoding="utf-8", errors="replace")
                except OSError as e:
                    logger.debug(f"Skipping unreadable model file {path}: {e}")
                    continue
                for match in _CLASS_RE.finditer(text):
                    parents.setdefault(match.group(1), match.group(2))
                    if _ABSTRACT_RE.search(text):
                        abstract.add(match.group(1))

        known = set(_MODEL_BASES)
        changed = True
        while changed:
            changed = False
            for child, parent in parents.items():
                if child not in known and parent in known:
                    known.add(child)
                    changed = True

        for name in parents:
            if name in known and name not in abstract and name not in _MODEL_BASES:
                names.append(name)

        result = cls(names)
        logger.debug(f"Model name set built with {len(result)} names")
        return result
