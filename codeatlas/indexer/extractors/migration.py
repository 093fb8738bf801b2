"""Migration extractor for ``db/migrate/*.rb``."""

import re
from pathlib import PurePosixPath

from ..config import MIGRATION_DIRECTORIES
from ..dependency_scanner import scan_common_dependencies
from ..source_ranges import extract_blocks
from ..unit import Dependency, ExtractedUnit, count_loc
from . import FileExtractor
from .shared import classify, detect_class_name, extract_namespace

# Framework-owned tables that have no application model
INTERNAL_TABLES = {
    "schema_migrations",
    "ar_internal_metadata",
    "active_storage_blobs",
    "active_storage_attachments",
    "active_storage_variant_records",
    "action_text_rich_texts",
    "action_mailbox_inbound_emails",
}

TABLE_OPERATIONS = [
    "create_table",
    "drop_table",
    "rename_table",
    "add_column",
    "remove_column",
    "change_column",
    "rename_column",
    "add_index",
    "remove_index",
    "add_reference",
    "remove_reference",
    "add_belongs_to",
    "remove_belongs_to",
    "add_foreign_key",
    "remove_foreign_key",
    "add_timestamps",
    "remove_timestamps",
    "change_column_default",
    "change_column_null",
]

COLUMN_TYPES = (
    "string integer float decimal boolean binary text date datetime time timestamp "
    "bigint numeric json jsonb uuid inet cidr hstore ltree point polygon"
).split()

DATA_MIGRATION_RE = re.compile(
    r"\.(?:update_all|find_each|find_in_batches|update!|update|save!|save|delete_all|destroy_all)\b"
)
MIGRATION_SIGNATURE = re.compile(r"class\s+[\w:]+\s*<\s*ActiveRecord::Migration")
VERSION_RE = re.compile(r"\A(\d{14})_")
RAILS_VERSION_RE = re.compile(r"ActiveRecord::Migration\[(\d+\.\d+)\]")
CREATE_TABLE_OPENER = re.compile(r"create_table\s+:\w+.*\bdo\s*\|\w+\|")
CREATE_TABLE_RE = re.compile(r"create_table\s+:(\w+).*\bdo\s*\|(\w+)\|")


def detect_direction(source: str) -> str:
    has_change = re.search(r"^\s*def\s+change\b", source, re.MULTILINE)
    has_up = re.search(r"^\s*def\s+up\b", source, re.MULTILINE)
    has_down = re.search(r"^\s*def\s+down\b", source, re.MULTILINE)
    if has_change:
        return "change"
    if has_up and has_down:
        return "up_down"
    if has_up:
        return "up_only"
    return "unknown"


def tables_affected(source: str) -> list[str]:
    tables = []
    for op in TABLE_OPERATIONS:
        tables.extend(re.findall(rf"{op}\s+:(\w+)", source))
    tables.extend(re.findall(r"rename_table\s+:\w+\s*,\s*:(\w+)", source))
    return list(dict.fromkeys(tables))


def _create_table_blocks(source: str) -> list[tuple[str, str, str]]:
    """(table, block variable, block text) for every ``create_table ... do |t|``."""
    result = []
    for _, block in extract_blocks(source, CREATE_TABLE_OPENER):
        match = CREATE_TABLE_RE.search(block)
        if match:
            result.append((match.group(1), match.group(2), block))
    return result


def columns_added(source: str) -> list[dict[str, str]]:
    columns = [
        {"table": table, "column": column, "type": type_}
        for table, column, type_ in re.findall(r"add_column\s+:(\w+)\s*,\s*:(\w+)\s*,\s*:(\w+)", source)
    ]
    type_pattern = "|".join(COLUMN_TYPES)
    for table, var, block in _create_table_blocks(source):
        for type_, column in re.findall(rf"\b{var}\.({type_pattern})\s+:(\w+)", block):
            columns.append({"table": table, "column": column, "type": type_})
        for column, type_ in re.findall(rf"\b{var}\.column\s+:(\w+)\s*,\s*:(\w+)", block):
            columns.append({"table": table, "column": column, "type": type_})
    return columns


def references_added(source: str) -> list[dict[str, str]]:
    refs = [
        {"table": table, "reference": ref}
        for table, ref in re.findall(r"add_(?:reference|belongs_to)\s+:(\w+)\s*,\s*:(\w+)", source)
    ]
    for table, var, block in _create_table_blocks(source):
        for ref in re.findall(rf"\b{var}\.(?:references|belongs_to)\s+:(\w+)", block):
            refs.append({"table": table, "reference": ref})
    return refs


class MigrationExtractor(FileExtractor):
    family = "migration"
    directories = MIGRATION_DIRECTORIES
    pattern = "*.rb"

    def matches(self, source: str) -> bool:
        return bool(MIGRATION_SIGNATURE.search(source))

    def build_unit(self, file_path: str, source: str) -> ExtractedUnit | None:
        detected = detect_class_name(source)
        if detected is None:
            return None
        name = detected[0]

        direction = detect_direction(source)
        tables = tables_affected(source)
        version = VERSION_RE.match(PurePosixPath(file_path).name)
        rails_version = RAILS_VERSION_RE.search(source)
        refs_added = references_added(source)
        refs_removed = [
            {"table": t, "reference": r}
            for t, r in re.findall(r"remove_(?:reference|belongs_to)\s+:(\w+)\s*,\s*:(\w+)", source)
        ]
        operations = []
        for op in TABLE_OPERATIONS:
            count = len(re.findall(rf"{op}\s+:", source))
            if count:
                operations.append({"operation": op, "count": count})

        metadata = {
            "migration_version": version.group(1) if version else None,
            "rails_version": rails_version.group(1) if rails_version else None,
            "reversible": direction in ("change", "up_down"),
            "direction": direction,
            "tables_affected": tables,
            "columns_added": columns_added(source),
            "columns_removed": [
                {"table": t, "column": c, "type": ty or "unknown"}
                for t, c, ty in re.findall(r"remove_column\s+:(\w+)\s*,\s*:(\w+)(?:\s*,\s*:(\w+))?", source)
            ],
            "indexes_added": [
                {"table": t, "column": c.strip()}
                for t, c in re.findall(r"add_index\s+:(\w+)\s*,\s*(:\w+|\[[^\]]*\])", source)
            ],
            "indexes_removed": [
                {"table": t, "column": c}
                for t, c in re.findall(r"remove_index\s+:(\w+)\s*,\s*(?:column:\s*)?:(\w+)", source)
            ],
            "references_added": refs_added,
            "references_removed": refs_removed,
            "operations": operations,
            "has_data_migration": bool(DATA_MIGRATION_RE.search(source)),
            "has_execute_sql": bool(re.search(r"\bexecute\s", source)),
            "loc": count_loc(source),
        }

        deps = [
            Dependency("model", classify(table), "table_name")
            for table in tables
            if table not in INTERNAL_TABLES
        ]
        deps.extend(Dependency("model", classify(ref["reference"]), "reference") for ref in refs_added + refs_removed)
        deps.extend(scan_common_dependencies(source, self.model_names))

        header = (
            f"# Migration: {name}\n"
            f"# Version: {metadata['migration_version'] or 'none'}\n"
            f"# Tables: {', '.join(tables)}\n"
            f"# Direction: {direction}\n\n"
        )
        return ExtractedUnit(
            type="migration",
            identifier=name,
            namespace=extract_namespace(name),
            file_path=file_path,
            source_code=header + source,
            metadata=metadata,
            dependencies=deps,
        )
