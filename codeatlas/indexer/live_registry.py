"""Runtime reflection as a capability interface.

Some facts are only knowable from a booted framework: the routing table,
the middleware stack, loaded model classes, GraphQL schema types. Extractors
ask a ``LiveRegistry`` for them instead of probing objects for attributes.

Two implementations:
- ``NullRegistry``: plain static analysis, nothing available.
- ``SnapshotRegistry``: reads a JSON or YAML dump produced by the framework
  process ahead of time. This tool never boots or executes the application.

Snapshot shape::

    classes:
      - {name: User, superclass: ApplicationRecord, file: app/models/user.rb,
         line: 1, abstract: false, attributes: {table_name: users}}
    routes:
      - {verb: GET, path: /users, controller: users, action: index, name: users}
    middleware:
      - {name: Rack::Attack, args: []}
    schema_types:
      - {name: Types::UserType, kind: object, fields: [{name: id, type: ID!}]}
"""


from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from codeatlas.utils.logging import logger

from .exceptions import RegistrySnapshotError


@dataclass(frozen=True)
class LiveClass:
    """A class loaded in the framework runtime."""

    name: str
    superclass: str | None = None
    ancestors: tuple[str, ...] = ()
    file: str | None = None
    line: int | None = None
    abstract: bool = False
    attributes: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class LiveRoute:
    verb: str
    path: str
    controller: str | None = None
    action: str | None = None
    name: str | None = None
    engine: str | None = None
    constraints: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @property
    def identifier(self) -> str:
        return f"{self.verb} {self.path}"


@dataclass(frozen=True)
class LiveMiddleware:
    name: str
    position: int = 0
    args: tuple[str, ...] = ()


@dataclass(frozen=True)
class LiveSchemaType:
    """A type registered in a typed-API schema (GraphQL)."""

    name: str
    kind: str
    fields: tuple[dict[str, Any], ...] = ()
    file: str | None = None
    description: str | None = None
    graphql_name: str | None = None


class LiveRegistry(ABC):
    """Capability interface over a framework runtime."""

    @property
    @abstractmethod
    def available(self) -> bool:
        """True when runtime facts can be queried."""

    @abstractmethod
    def subclasses_of(self, base: str) -> list[LiveClass]:
        """All loaded classes descending from ``base`` (not including it)."""

    @abstractmethod
    def all_routes(self) -> list[LiveRoute]:
        pass

    @abstractmethod
    def middleware_entries(self) -> list[LiveMiddleware]:
        pass

    @abstractmethod
    def schema_types(self) -> list[LiveSchemaType]:
        pass


class NullRegistry(LiveRegistry):
    """Registry for static analysis: nothing is available."""

    @property
    def available(self) -> bool:
        return False

    def subclasses_of(self, base: str) -> list[LiveClass]:
        return []

    def all_routes(self) -> list[LiveRoute]:
        return []

    def middleware_entries(self) -> list[LiveMiddleware]:
        return []

    def schema_types(self) -> list[LiveSchemaType]:
        return []


class SnapshotRegistry(LiveRegistry):
    """Registry backed by a runtime dump on disk."""

    def __init__(self, classes=(), routes=(), middleware=(), schema_types=(), source: str | None = None):
        self._classes: list[LiveClass] = list(classes)
        self._routes: list[LiveRoute] = list(routes)
        self._middleware: list[LiveMiddleware] = list(middleware)
        self._schema_types: list[LiveSchemaType] = list(schema_types)
        self.source = source
        self._by_name = {c.name: c for c in self._classes}

    @property
    def available(self) -> bool:
        return True

    def _lineage(self, cls: LiveClass) -> list[str]:
        if cls.ancestors:
            return list(cls.ancestors)
        chain = []
        seen = {cls.name}
        parent = cls.superclass
        while parent and parent not in seen:
            chain.append(parent)
            seen.add(parent)
            known = self._by_name.get(parent)
            parent = known.superclass if known else None
        return chain

    def subclasses_of(self, base: str) -> list[LiveClass]:
        return [c for c in self._classes if c.name != base and base in self._lineage(c)]

    def all_routes(self) -> list[LiveRoute]:
        return list(self._routes)

    def middleware_entries(self) -> list[LiveMiddleware]:
        return list(self._middleware)

    def schema_types(self) -> list[LiveSchemaType]:
        return list(self._schema_types)

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str | None = None) -> "SnapshotRegistry":
        if not isinstance(data, dict):
            raise RegistrySnapshotError("Snapshot root must be a mapping", {"source": source})
        try:
            classes = [
                LiveClass(
                    name=str(c["name"]),
                    superclass=c.get("superclass"),
                    ancestors=tuple(c.get("ancestors") or ()),
                    file=c.get("file"),
                    line=c.get("line"),
                    abstract=bool(c.get("abstract", False)),
                    attributes=dict(c.get("attributes") or {}),
                )
                for c in data.get("classes") or []
            ]
            routes = [
                LiveRoute(
                    verb=str(r.get("verb") or "ANY").upper(),
                    path=str(r["path"]),
                    controller=r.get("controller"),
                    action=r.get("action"),
                    name=r.get("name"),
                    engine=r.get("engine"),
                    constraints=dict(r.get("constraints") or {}),
                )
                for r in data.get("routes") or []
            ]
            middleware = [
                LiveMiddleware(name=str(m["name"]), position=i, args=tuple(str(a) for a in m.get("args") or ()))
                for i, m in enumerate(data.get("middleware") or [])
            ]
            schema_types = [
                LiveSchemaType(
                    name=str(t["name"]),
                    kind=str(t.get("kind") or "object"),
                    fields=tuple(dict(f) for f in t.get("fields") or ()),
                    file=t.get("file"),
                    description=t.get("description"),
                    graphql_name=t.get("graphql_name"),
                )
                for t in data.get("schema_types") or []
            ]
        except (KeyError, TypeError, AttributeError) as e:
            raise RegistrySnapshotError(f"Malformed snapshot entry: {e}", {"source": source}) from e

        return cls(classes, routes, middleware, schema_types, source=source)

    @classmethod
    def load(cls, path: Path | str) -> "SnapshotRegistry":
        """Load a JSON or YAML snapshot file.

        Raises:
            RegistrySnapshotError: If the file is missing or malformed
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                # JSON is a subset of YAML, one loader covers both
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise RegistrySnapshotError(f"Cannot read registry snapshot {path}: {e}", {"source": str(path)}) from e

        registry = cls.from_dict(data or {}, source=str(path))
        logger.info(
            f"Loaded registry snapshot {path}: {len(registry._classes)} classes, "
            f"{len(registry._routes)} routes, {len(registry._middleware)} middleware, "
            f"{len(registry._schema_types)} schema types"
        )
        return registry


def open_registry(snapshot: Path | str | None) -> LiveRegistry:
    """SnapshotRegistry for a given snapshot path, NullRegistry otherwise."""
    if not snapshot:
        return NullRegistry()
    return SnapshotRegistry.load(snapshot)
