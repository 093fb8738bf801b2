"""Model extractors.

RuntimeModelExtractor asks the registry for live ApplicationRecord
subclasses, which also covers models defined outside ``app/models``.
StaticModelExtractor reads ``app/models/**/*.rb`` and catches anything the
runtime did not load. Both build the same unit shape; when both see the same
class the runtime unit wins deduplication.
"""

import re
from typing import Any

from ..config import MODEL_BASE_CLASS, MODEL_DIRECTORIES
from ..dependency_scanner import (
    scan_job_dependencies,
    scan_mailer_dependencies,
    scan_model_dependencies,
    scan_service_dependencies,
)
from ..live_registry import LiveClass
from ..unit import Chunk, Dependency, ExtractedUnit, count_loc
from . import FileExtractor, RuntimeExtractor
from .shared import (
    camelize,
    classify,
    detect_class_name,
    extract_class_methods,
    extract_namespace,
    extract_public_methods,
    underscore,
)

MODEL_SIGNATURE = re.compile(r"<\s*(?:ApplicationRecord|ActiveRecord::Base)\b|\b(?:has_many|belongs_to|has_one)\b")

ASSOCIATION_RE = re.compile(
    r"^\s*(has_many|has_one|belongs_to|has_and_belongs_to_many)\s+:(\w+)(.*)$", re.MULTILINE
)
CLASS_NAME_OPT_RE = re.compile(r"class_name:\s*['\"]([\w:]+)['\"]")
THROUGH_OPT_RE = re.compile(r"through:\s*:(\w+)")
DEPENDENT_OPT_RE = re.compile(r"dependent:\s*:(\w+)")
POLYMORPHIC_OPT_RE = re.compile(r"polymorphic:\s*true")

VALIDATES_RE = re.compile(r"^\s*validates\s+((?::\w+\s*,\s*)*:\w+)\s*,\s*(.*)$", re.MULTILINE)
VALIDATES_OF_RE = re.compile(r"^\s*validates_(\w+?)_of\s+((?::\w+\s*,?\s*)+)", re.MULTILINE)
VALIDATE_CUSTOM_RE = re.compile(r"^\s*validate\s+:(\w+)", re.MULTILINE)
VALIDATOR_KEY_RE = re.compile(r"(\w+):\s*(?:true|\{|\d|['\"/%\[]|:\w)")

CALLBACK_RE = re.compile(
    r"^\s*((?:before|after|around)_(?:validation|save|create|update|destroy|commit|rollback|initialize|find|touch)"
    r"|after_(?:create|update|destroy|save)_commit)\s+:?(\w+)?(.*)$",
    re.MULTILINE,
)
SCOPE_RE = re.compile(r"^\s*scope\s+:(\w+)", re.MULTILINE)
ENUM_RE = re.compile(r"^\s*enum\s+(?::(\w+)\s*,|(\w+):)\s*(.*)$", re.MULTILINE)
INCLUDE_RE = re.compile(r"^\s*(include|extend)\s+([A-Z][\w:]*)", re.MULTILINE)
TABLE_NAME_RE = re.compile(r"self\.table_name\s*=\s*['\"](\w+)['\"]")
ATTACHMENT_RE = re.compile(r"^\s*has_(one|many)_attached\s+:(\w+)", re.MULTILINE)
RICH_TEXT_RE = re.compile(r"^\s*has_rich_text\s+:(\w+)", re.MULTILINE)
ABSTRACT_RE = re.compile(r"self\.abstract_class\s*=\s*true")
SUPERCLASS_RE = re.compile(r"^\s*class\s+[\w:]+\s*<\s*([A-Z][\w:]*)", re.MULTILINE)

SKIPPED_VALIDATOR_KEYS = {"if", "unless", "on", "allow_nil", "allow_blank", "message", "strict"}


def _association_target(macro: str, name: str, options: str) -> str:
    class_name = CLASS_NAME_OPT_RE.search(options)
    if class_name:
        return class_name.group(1)
    if macro in ("has_many", "has_and_belongs_to_many"):
        return classify(name)
    return camelize(name)


def parse_associations(source: str) -> list[dict[str, Any]]:
    associations = []
    for macro, name, options in ASSOCIATION_RE.findall(source):
        polymorphic = bool(POLYMORPHIC_OPT_RE.search(options))
        through = THROUGH_OPT_RE.search(options)
        dependent = DEPENDENT_OPT_RE.search(options)
        associations.append({
            "name": name,
            "type": macro,
            "target": None if polymorphic else _association_target(macro, name, options),
            "through": through.group(1) if through else None,
            "dependent": dependent.group(1) if dependent else None,
            "polymorphic": polymorphic,
        })
    return associations


def parse_validations(source: str) -> list[dict[str, Any]]:
    validations = []
    for attrs, options in VALIDATES_RE.findall(source):
        kinds = [k for k in VALIDATOR_KEY_RE.findall(options) if k not in SKIPPED_VALIDATOR_KEYS]
        for attribute in re.findall(r":(\w+)", attrs):
            for kind in kinds or ["custom"]:
                validations.append({"attribute": attribute, "type": kind})
    for kind, attrs in VALIDATES_OF_RE.findall(source):
        for attribute in re.findall(r":(\w+)", attrs):
            validations.append({"attribute": attribute, "type": kind})
    for method in VALIDATE_CUSTOM_RE.findall(source):
        validations.append({"attribute": None, "type": "custom", "method": method})
    return validations


def parse_callbacks(source: str) -> list[dict[str, Any]]:
    callbacks = []
    for callback_type, method, rest in CALLBACK_RE.findall(source):
        kind = callback_type.split("_", 1)[0]
        callbacks.append({
            "type": callback_type,
            "kind": kind,
            "filter": method or "(block)",
            "conditional": bool(re.search(r"\b(?:if|unless):", rest)),
        })
    return callbacks


def parse_enums(source: str) -> dict[str, list[str]]:
    enums = {}
    for positional, keyword, rest in ENUM_RE.findall(source):
        name = positional or keyword
        values = re.findall(r"(\w+):\s*\d+", rest) or re.findall(r":(\w+)", rest)
        enums[name] = values
    return enums


def build_model_unit(
    identifier: str,
    file_path: str | None,
    source: str,
    model_names,
    attributes: dict[str, Any] | None = None,
    superclass: str | None = None,
) -> ExtractedUnit:
    """Model unit from source text, optionally enriched with runtime attributes."""
    attributes = attributes or {}
    associations = attributes.get("associations") or parse_associations(source)
    table_name = attributes.get("table_name")
    if not table_name:
        explicit = TABLE_NAME_RE.search(source)
        table_name = explicit.group(1) if explicit else underscore(identifier).replace("/", "_") + "s"
    columns = list(attributes.get("columns") or [])

    concerns = [name for _, name in INCLUDE_RE.findall(source)]
    source_code = source
    if columns:
        column_lines = "\n".join(f"#   {c}" for c in columns)
        source_code = f"# == Schema Information\n# Table: {table_name}\n{column_lines}\n#\n{source}"

    metadata = {
        "table_name": table_name,
        "parent_class": superclass,
        "associations": associations,
        "validations": parse_validations(source),
        "callbacks": parse_callbacks(source),
        "scopes": SCOPE_RE.findall(source),
        "enums": parse_enums(source),
        "concerns": concerns,
        "column_names": columns,
        "class_methods": sorted(extract_class_methods(source)),
        "instance_methods": sorted(m for m in extract_public_methods(source) if not m.startswith("self.")),
        "active_storage_attachments": [
            {"name": name, "type": f"has_{kind}_attached"} for kind, name in ATTACHMENT_RE.findall(source)
        ],
        "action_text_fields": RICH_TEXT_RE.findall(source),
        "is_sti_child": bool(superclass and superclass not in (MODEL_BASE_CLASS, "ActiveRecord::Base")),
        "loc": count_loc(source),
    }
    metadata["association_count"] = len(metadata["associations"])
    metadata["callback_count"] = len(metadata["callbacks"])
    metadata["validation_count"] = len(metadata["validations"])

    deps = [
        Dependency("model", a["target"], "association")
        for a in associations
        if a.get("target")
    ]
    if superclass and superclass in model_names:
        deps.append(Dependency("model", superclass, "inheritance"))
    deps.extend(Dependency("concern", c, "include") for c in concerns)
    deps.extend(scan_service_dependencies(source))
    deps.extend(scan_mailer_dependencies(source))
    deps.extend(scan_job_dependencies(source))
    deps.extend(d for d in scan_model_dependencies(source, model_names) if d.target != identifier)

    unit = ExtractedUnit(
        type="model",
        identifier=identifier,
        namespace=extract_namespace(identifier),
        file_path=file_path,
        source_code=source_code,
        metadata=metadata,
        dependencies=deps,
    )
    return unit


def build_model_chunks(unit: ExtractedUnit, threshold: int) -> list[Chunk]:
    """Semantic chunks for large models: summary, associations, callbacks, validations."""
    if not unit.needs_chunking(threshold):
        return []
    meta = unit.metadata
    sections: list[tuple[str, str, str]] = []

    assoc_lines = "\n".join(f"- {a['type']} :{a['name']} -> {a.get('target') or '(polymorphic)'}" for a in meta["associations"])
    methods = meta["instance_methods"]
    more = "..." if len(methods) > 10 else ""
    summary = (
        f"# {unit.identifier} - Model Summary\n\n"
        f"Table: {meta['table_name']}\n"
        f"Columns: {', '.join(meta['column_names'])}\n\n"
        f"## Associations ({len(meta['associations'])})\n{assoc_lines}\n\n"
        "## Key Behaviors\n"
        f"- Callbacks: {meta['callback_count']}\n"
        f"- Validations: {meta['validation_count']}\n"
        f"- Scopes: {len(meta['scopes'])}\n\n"
        f"## Instance Methods\n{', '.join(methods[:10])}{more}\n"
    )
    sections.append(("summary", summary, "overview"))

    if meta["associations"]:
        sections.append(("associations", f"# {unit.identifier} - Associations\n\n{assoc_lines}\n", "relationships"))
    if meta["callbacks"]:
        grouped: dict[str, list[str]] = {}
        for cb in meta["callbacks"]:
            grouped.setdefault(cb["type"], []).append(f"  - {cb['filter']}")
        body = "\n\n".join(f"{t}:\n" + "\n".join(lines) for t, lines in grouped.items())
        sections.append(("callbacks", f"# {unit.identifier} - Callbacks\n\n{body}\n", "behavior"))
    if meta["validations"]:
        body = "\n".join(
            f"- {v.get('attribute') or v.get('method')}: {v['type']}" for v in meta["validations"]
        )
        sections.append(("validations", f"# {unit.identifier} - Validations\n\n{body}\n", "constraints"))

    return [
        Chunk(
            chunk_type=chunk_type,
            identifier=f"{unit.identifier}:{chunk_type}",
            content=content,
            metadata={"parent": unit.identifier, "purpose": purpose},
        )
        for chunk_type, content, purpose in sections
    ]


class RuntimeModelExtractor(RuntimeExtractor):
    """Models as reported by the live registry."""

    family = "model"

    def live_candidates(self) -> list[LiveClass]:
        return [c for c in self.registry.subclasses_of(MODEL_BASE_CLASS) if not c.abstract]

    def describe(self, candidate: LiveClass) -> str:
        return candidate.name

    def extract_candidate(self, candidate: LiveClass) -> list[ExtractedUnit]:
        file_path = self.reader.relative(candidate.file) if candidate.file else None
        source = self.read_optional(candidate.file) or ""
        unit = build_model_unit(
            candidate.name,
            file_path if source else None,
            source,
            self.model_names,
            attributes=candidate.attributes,
            superclass=candidate.superclass,
        )
        unit.metadata["discovery"] = "runtime"
        unit.chunks = build_model_chunks(unit, self.context.chunk_threshold)
        return [self.finalize_chunks(unit)]


class StaticModelExtractor(FileExtractor):
    """Models found by scanning ``app/models``."""

    family = "model"
    directories = MODEL_DIRECTORIES

    def matches(self, source: str) -> bool:
        if ABSTRACT_RE.search(source):
            return False
        if MODEL_SIGNATURE.search(source):
            return True
        # STI children such as ``class Admin < User``
        return any(parent in self.model_names for parent in SUPERCLASS_RE.findall(source))

    def build_unit(self, file_path: str, source: str) -> ExtractedUnit | None:
        detected = detect_class_name(source)
        if detected is None:
            return None
        name, superclass = detected
        # Concern modules and plain Ruby objects under app/models are not models
        if name not in self.model_names and superclass not in (MODEL_BASE_CLASS, "ActiveRecord::Base"):
            if superclass not in self.model_names:
                return None
        unit = build_model_unit(name, file_path, source, self.model_names, superclass=superclass)
        unit.metadata["discovery"] = "static"
        unit.chunks = build_model_chunks(unit, self.context.chunk_threshold)
        return unit


__all__ = [
    "RuntimeModelExtractor",
    "StaticModelExtractor",
    "build_model_unit",
    "parse_associations",
]
