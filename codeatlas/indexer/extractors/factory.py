"""FactoryBot definitions in ``spec/factories`` and ``test/factories``.

A factories file usually defines several factories, some nested inside
others, so every ``factory :name do`` block becomes its own unit.
"""

import re
from typing import Any

from ..config import FACTORY_DIRECTORIES
from ..source_ranges import code_lines, depth_delta
from ..unit import Dependency, ExtractedUnit, count_loc
from . import FileExtractor
from .shared import camelize

FACTORY_RE = re.compile(r"^\s*factory\s+:(\w+)")
CLASS_OPTION_RE = re.compile(r"\bclass:\s*['\"]?([\w:]+)['\"]?")
PARENT_OPTION_RE = re.compile(r"\bparent:\s*:(\w+)")
TRAIT_RE = re.compile(r"^\s*trait\s+:(\w+)")
TRANSIENT_RE = re.compile(r"^\s*transient\s+do\b")
TRANSIENT_ATTR_RE = re.compile(r"^\s*(\w+)\s*(?:\{|do\b)")
ASSOCIATION_RE = re.compile(r"^\s*association\s+:(\w+)")
SEQUENCE_RE = re.compile(r"^\s*sequence\s*\(:(\w+)\)")
CALLBACK_RE = re.compile(r"^\s*(?:after|before|after_stub)\s*\([:'\"](\w+)")


def _new_factory(line: str, depth: int, line_number: int) -> dict[str, Any] | None:
    match = FACTORY_RE.match(line)
    if not match or not re.search(r"\bdo\b", line):
        return None
    name = match.group(1)
    class_option = CLASS_OPTION_RE.search(line)
    parent = PARENT_OPTION_RE.search(line)
    return {
        "name": name,
        "class_name": class_option.group(1) if class_option else camelize(name),
        "parent_factory": parent.group(1) if parent else None,
        "open_depth": depth,
        "line_number": line_number,
        "traits": [],
        "associations": [],
        "sequences": [],
        "callbacks": [],
        "transient_attributes": [],
    }


def parse_factories(source: str) -> list[dict[str, Any]]:
    """Every factory in ``source``, in the order their blocks close.

    A nested factory closes before its parent, so children come first.
    """
    raw = source.splitlines()
    lines = code_lines(source)
    completed = []
    stack: list[dict[str, Any]] = []
    transient_depth = None
    depth = 0

    for index, code in enumerate(lines):
        line = raw[index]
        factory = _new_factory(line, depth, index + 1) if FACTORY_RE.match(code) else None
        if factory:
            # Nested factories inherit from the enclosing one
            if stack:
                factory["parent_factory"] = factory["parent_factory"] or stack[-1]["name"]
                if not CLASS_OPTION_RE.search(line):
                    factory["class_name"] = stack[-1]["class_name"]
            stack.append(factory)
        elif stack:
            current = stack[-1]
            trait = TRAIT_RE.match(line)
            if trait:
                current["traits"].append(trait.group(1))
            elif TRANSIENT_RE.match(code):
                transient_depth = depth
            elif transient_depth is not None:
                attr = TRANSIENT_ATTR_RE.match(line)
                if attr:
                    current["transient_attributes"].append(attr.group(1))
            for regex, key in ((ASSOCIATION_RE, "associations"), (SEQUENCE_RE, "sequences"),
                               (CALLBACK_RE, "callbacks")):
                found = regex.match(line)
                if found:
                    current[key].append(found.group(1))

        depth += depth_delta(code)
        if transient_depth is not None and depth <= transient_depth:
            transient_depth = None
        while stack and depth <= stack[-1]["open_depth"]:
            completed.append(stack.pop())

    return completed


class FactoryExtractor(FileExtractor):
    family = "factory"
    directories = FACTORY_DIRECTORIES

    def matches(self, source: str) -> bool:
        return "factory" in source

    def build_units(self, file_path: str, source: str) -> list[ExtractedUnit]:
        return [self._unit(data, file_path, source) for data in parse_factories(source)]

    def _unit(self, data: dict[str, Any], file_path: str, file_source: str) -> ExtractedUnit:
        header = f"# Factory: {data['name']} (model: {data['class_name']})"
        if data["parent_factory"]:
            header += f"\n# Parent: {data['parent_factory']}"

        deps = [Dependency("model", data["class_name"], "factory_for")]
        if data["parent_factory"]:
            deps.append(Dependency("factory", data["parent_factory"], "factory_parent"))
        deps.extend(Dependency("factory", assoc, "factory_association") for assoc in data["associations"])

        return ExtractedUnit(
            type="factory",
            identifier=data["name"],
            namespace=None,
            file_path=file_path,
            source_code=f"{header}\n{file_source}",
            metadata={
                "factory_name": data["name"],
                "model_class": data["class_name"],
                "traits": data["traits"],
                "associations": data["associations"],
                "sequences": data["sequences"],
                "parent_factory": data["parent_factory"],
                "callbacks": list(dict.fromkeys(data["callbacks"])),
                "transient_attributes": data["transient_attributes"],
                "line_number": data["line_number"],
                "loc": count_loc(file_source),
            },
            dependencies=deps,
        )
