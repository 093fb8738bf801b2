"""GraphQL types, mutations and resolvers.

Schema types reported by the live registry are extracted first. Files
under ``app/graphql`` then fill in anything the schema did not load
(orphaned types, base classes, mutations not yet mounted).

Every unit has type ``graphql_type``; the finer category (object, enum,
mutation, resolver, ...) lives in ``metadata["graphql_kind"]``.
"""

import re
from typing import Any

from ..config import GRAPHQL_DIRECTORIES
from ..dependency_scanner import scan_common_dependencies
from ..live_registry import LiveSchemaType
from ..unit import Chunk, Dependency, ExtractedUnit, count_loc
from . import FileExtractor, RuntimeExtractor
from .shared import camelize, detect_class_name, extract_namespace, underscore

FIELD_GROUP_SIZE = 10

GRAPHQL_CLASS_RE = re.compile(
    r"<\s*GraphQL::Schema::(?:Object|InputObject|Enum|Union|Scalar|Mutation|Resolver|Interface|RelayClassicMutation)"
    r"|<\s*(?:Types::Base\w+|Base(?:Type|Object|InputObject|Enum|Union|Scalar|Mutation|Resolver|Interface))\b"
    r"|<\s*(?:Mutations::Base\w*|Resolvers::Base\w*)"
    r"|include\s+GraphQL::Schema::Interface"
)
DECLARATION_RE = re.compile(r"^\s*(?:module|class)\s+([\w:]+)", re.MULTILINE)
PARENT_RE = re.compile(r"class\s+[\w:]+\s*<\s*([\w:]+)")
FIELD_RE = re.compile(r"^\s*field\s+:(\w+)(?:,\s*([^,\s]+))?(?:,\s*(.+?))?(?:\s+do)?\s*$", re.MULTILINE)
ARGUMENT_RE = re.compile(r"^\s*argument\s+:(\w+)(?:,\s*([^,\s]+))?(?:,\s*(.+?))?\s*$", re.MULTILINE)
DESCRIPTION_RE = re.compile(r"description:\s*['\"]([^'\"]+)['\"]")
RESOLVER_RE = re.compile(r"resolver:\s*([\w:]+)")
IMPLEMENTS_RE = re.compile(r"implements\s+([\w:]+)")
ENUM_VALUE_RE = re.compile(r"value\s+['\"](\w+)['\"](?:.*?description:\s*['\"]([^'\"]+)['\"])?")
POSSIBLE_TYPES_RE = re.compile(r"possible_types\s+(.+)$", re.MULTILINE)
TYPE_REFERENCE_RE = re.compile(r"Types::\w+")
CONNECTION_RE = re.compile(r"([\w:]+)\.connection_type|connection_type_class\s+([\w:]+)")
FIELD_COMPLEXITY_RE = re.compile(r"field\s+:(\w+)[^\n]*complexity:\s*(\d+)")
MAX_COMPLEXITY_RE = re.compile(r"max_complexity\s+(\d+)")

# (pattern, kind) in precedence order; first match wins
KIND_RULES = [
    (re.compile(r"<\s*[\w:]*Enum\b|value\s+['\"]"), "enum"),
    (re.compile(r"<\s*[\w:]*Union\b|possible_types\s"), "union"),
    (re.compile(r"<\s*[\w:]*InputObject\b"), "input_object"),
    (re.compile(r"<\s*[\w:]*Scalar\b"), "scalar"),
    (re.compile(r"<\s*[\w:]*(?:Mutation|RelayClassicMutation)\b"), "mutation"),
    (re.compile(r"<\s*[\w:]*Resolver\b"), "resolver"),
    (re.compile(r"include\s+GraphQL::Schema::Interface"), "interface"),
]


def detect_graphql_kind(source: str, file_path: str | None = None) -> str:
    if file_path and "/mutations/" in f"/{file_path}":
        return "mutation"
    if file_path and "/resolvers/" in f"/{file_path}":
        return "resolver"
    for pattern, kind in KIND_RULES:
        if pattern.search(source):
            return kind
    if (file_path and file_path.endswith("query_type.rb")) or re.search(r"class\s+QueryType\b", source):
        return "query"
    return "object"


def graphql_class_name(source: str) -> str | None:
    """Qualified name of the first class, or of the module nest for interface modules."""
    detected = detect_class_name(source)
    if detected:
        return detected[0]
    names = DECLARATION_RE.findall(source)
    if not names:
        return None
    if "::" in names[0]:
        return names[0]
    return "::".join(names)


def parse_fields(source: str) -> list[dict[str, Any]]:
    fields = []
    for name, type_, rest in FIELD_RE.findall(source):
        field = {"name": name, "type": type_ or None}
        if rest:
            field["null"] = "null: false" not in rest
            desc = DESCRIPTION_RE.search(rest)
            if desc:
                field["description"] = desc.group(1)
            resolver = RESOLVER_RE.search(rest)
            if resolver:
                field["resolver_class"] = resolver.group(1)
        fields.append(field)
    return fields


def parse_arguments(source: str) -> list[dict[str, Any]]:
    arguments = []
    for name, type_, rest in ARGUMENT_RE.findall(source):
        argument = {"name": name, "type": type_ or None, "required": "required: true" in rest}
        desc = DESCRIPTION_RE.search(rest)
        if desc:
            argument["description"] = desc.group(1)
        arguments.append(argument)
    return arguments


def parse_authorization(source: str) -> dict[str, bool]:
    return {
        "has_authorized_method": bool(re.search(r"def\s+(?:self\.)?authorized\?", source)),
        "pundit": bool(re.search(r"PolicyFinder|policy_class|authorize!?\s", source)),
        "cancan": bool(re.search(r"can\?|authorize!\s|CanCan|Ability", source)),
        "custom_guard": bool(re.search(r"def\s+(?:self\.)?(?:visible\?|scope_items|ready\?)", source)),
    }


def parse_complexity(source: str) -> list[dict[str, Any]]:
    result = [{"field": name, "complexity": value} for name, value in FIELD_COMPLEXITY_RE.findall(source)]
    schema = MAX_COMPLEXITY_RE.search(source)
    if schema:
        result.append({"field": "schema", "complexity": int(schema.group(1))})
    return result


def build_graphql_metadata(source: str, file_path: str | None, kind: str | None = None,
                           live_fields: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    parent = PARENT_RE.search(source)
    fields = live_fields if live_fields else parse_fields(source)
    arguments = parse_arguments(source)
    connections = []
    for found, klass in CONNECTION_RE.findall(source):
        connections.append(found or klass)
    return {
        "graphql_kind": kind or detect_graphql_kind(source, file_path),
        "parent_class": parent.group(1) if parent else None,
        "fields": fields,
        "arguments": arguments,
        "interfaces": IMPLEMENTS_RE.findall(source),
        "connections": list(dict.fromkeys(connections)),
        "resolver_classes": list(dict.fromkeys(RESOLVER_RE.findall(source))),
        "authorization": parse_authorization(source),
        "complexity": parse_complexity(source),
        "enum_values": [{"name": n, "description": d or None} for n, d in ENUM_VALUE_RE.findall(source)],
        "union_members": [
            member for line in POSSIBLE_TYPES_RE.findall(source) for member in re.findall(r"[\w:]+", line)
        ],
        "field_count": len(fields),
        "argument_count": len(arguments),
        "loc": count_loc(source),
    }


def graphql_dependencies(source: str, identifier: str, model_names) -> list[Dependency]:
    deps = [
        Dependency("graphql_type", ref, "type_reference")
        for ref in dict.fromkeys(TYPE_REFERENCE_RE.findall(source))
        if ref != identifier
    ]
    deps.extend(Dependency("graphql_type", r, "field_resolver") for r in dict.fromkeys(RESOLVER_RE.findall(source)))
    deps.extend(d for d in scan_common_dependencies(source, model_names) if d.target != identifier)
    return deps


def build_graphql_chunks(unit: ExtractedUnit) -> list[Chunk]:
    """Summary, field groups and arguments for a large type."""
    meta = unit.metadata
    auth = [label for key, label in (("has_authorized_method", "authorized?"), ("pundit", "pundit"),
                                     ("cancan", "cancan")) if meta["authorization"].get(key)]
    field_names = [f["name"] for f in meta["fields"]]
    chunks = [Chunk(
        chunk_type="summary",
        identifier=f"{unit.identifier}:summary",
        content=(
            f"# {unit.identifier} - GraphQL summary\n"
            f"Kind: {meta['graphql_kind']}\n"
            f"Parent: {meta['parent_class'] or 'unknown'}\n"
            f"Fields: {', '.join(field_names) or 'none'}\n"
            f"Interfaces: {', '.join(meta['interfaces']) or 'none'}\n"
            f"Authorization: {', '.join(auth) or 'none'}\n"
        ),
        metadata={"parent": unit.identifier, "purpose": "overview"},
    )]

    fields = meta["fields"]
    if len(fields) > FIELD_GROUP_SIZE:
        for index in range(0, len(fields), FIELD_GROUP_SIZE):
            group = fields[index:index + FIELD_GROUP_SIZE]
            lines = []
            for f in group:
                parts = [f"field :{f['name']}"]
                if f.get("type"):
                    parts.append(f["type"])
                if f.get("description"):
                    parts.append(f"({f['description']})")
                lines.append(", ".join(parts))
            group_index = index // FIELD_GROUP_SIZE
            chunks.append(Chunk(
                chunk_type="fields",
                identifier=f"{unit.identifier}:fields_{group_index}",
                content=f"# {unit.identifier} - Fields (group {group_index})\n" + "\n".join(lines) + "\n",
                metadata={"parent": unit.identifier, "purpose": "fields", "group_index": group_index},
            ))

    if meta["arguments"]:
        lines = []
        for a in meta["arguments"]:
            parts = [f"argument :{a['name']}"]
            if a.get("type"):
                parts.append(a["type"])
            if a.get("required"):
                parts.append("required")
            lines.append(", ".join(parts))
        chunks.append(Chunk(
            chunk_type="arguments",
            identifier=f"{unit.identifier}:arguments",
            content=f"# {unit.identifier} - Arguments\n" + "\n".join(lines) + "\n",
            metadata={"parent": unit.identifier, "purpose": "arguments"},
        ))
    return chunks


def build_graphql_unit(identifier: str, file_path: str | None, source: str, model_names,
                       threshold: int, kind: str | None = None,
                       live_fields: list[dict[str, Any]] | None = None) -> ExtractedUnit:
    metadata = build_graphql_metadata(source, file_path, kind, live_fields)
    label = {
        "mutation": "GraphQL Mutation",
        "query": "GraphQL Query",
        "resolver": "GraphQL Resolver",
    }.get(metadata["graphql_kind"], "GraphQL Type")
    header = (
        f"# {label}: {identifier}\n"
        f"# Fields: {metadata['field_count']} | Arguments: {metadata['argument_count']}\n\n"
    )
    unit = ExtractedUnit(
        type="graphql_type",
        identifier=identifier,
        namespace=extract_namespace(identifier),
        file_path=file_path,
        source_code=header + source,
        metadata=metadata,
        dependencies=graphql_dependencies(source, identifier, model_names),
    )
    if unit.needs_chunking(threshold):
        unit.chunks = build_graphql_chunks(unit)
    return unit


class RuntimeGraphQLExtractor(RuntimeExtractor):
    """Types registered in the loaded schema."""

    family = "graphql_type"

    def live_candidates(self) -> list[LiveSchemaType]:
        return [
            t for t in self.registry.schema_types()
            if not t.name.startswith(("__", "GraphQL::"))
        ]

    def describe(self, candidate: LiveSchemaType) -> str:
        return candidate.name

    def extract_candidate(self, candidate: LiveSchemaType) -> list[ExtractedUnit]:
        rel_path = candidate.file or f"{GRAPHQL_DIRECTORIES[0]}/{underscore(candidate.name)}.rb"
        source = self.read_optional(rel_path) or ""
        unit = build_graphql_unit(
            candidate.name,
            self.reader.relative(rel_path) if source else None,
            source,
            self.model_names,
            self.context.chunk_threshold,
            kind=(candidate.kind or "").lower() or None,
            live_fields=[dict(f) for f in candidate.fields],
        )
        unit.metadata["discovery"] = "runtime"
        if candidate.description:
            unit.metadata["description"] = candidate.description
        if candidate.graphql_name:
            unit.metadata["graphql_name"] = candidate.graphql_name
        return [self.finalize_chunks(unit)]


class StaticGraphQLExtractor(FileExtractor):
    """Type definitions under ``app/graphql``."""

    family = "graphql_type"
    directories = GRAPHQL_DIRECTORIES

    def matches(self, source: str) -> bool:
        if GRAPHQL_CLASS_RE.search(source):
            return True
        return "field :" in source and bool(re.search(r"<\s*[\w:]*Type\b", source))

    def build_unit(self, file_path: str, source: str) -> ExtractedUnit | None:
        identifier = graphql_class_name(source)
        if identifier is None:
            relative = file_path.removeprefix(f"{GRAPHQL_DIRECTORIES[0]}/").removesuffix(".rb")
            identifier = camelize(relative)
        unit = build_graphql_unit(identifier, file_path, source, self.model_names, self.context.chunk_threshold)
        unit.metadata["discovery"] = "static"
        return unit
