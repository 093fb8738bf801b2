"""Rake task extractor for ``lib/tasks/**/*.rake``.

Each task becomes one unit named by its fully-qualified task name
(``db:seed:users``). Tasks under tooling namespaces are skipped.
"""

import re
from typing import Any

from ..config import EXCLUDED_RAKE_NAMESPACES, RAKE_DIRECTORIES
from ..dependency_scanner import scan_common_dependencies
from ..source_ranges import block_end, code_lines, depth_delta
from ..unit import Dependency, ExtractedUnit, count_loc
from . import FileExtractor

NAMESPACE_RE = re.compile(r"^\s*namespace\s+:?['\"]?(\w+)")
DESC_RE = re.compile(r"^\s*desc\s+(['\"])(.*?)\1")
TASK_ARGS_RE = re.compile(r"^\s*task\s+:(\w+)\s*,\s*\[([^\]]*)\]")
TASK_DEPS_RE = re.compile(r"^\s*task\s+:?(\w+):?\s*=>\s*(.+?)(?:\s+do\b|\s*$)")
TASK_HASH_DEPS_RE = re.compile(r"=>\s*(.+?)(?:\s+do\b|\s*$)")
TASK_KW_RE = re.compile(r"^\s*task\s+(\w+):\s*(\[[^\]]*\]|:\w+)")
TASK_RE = re.compile(r"^\s*task\s+:?['\"]?(\w+)")
TASK_START_RE = re.compile(r"^\s*task\b")
INVOKE_RE = re.compile(r"Rake::Task\[['\"]([^'\"]+)['\"]\]\.(?:invoke|execute)")


def _symbols(fragment: str) -> list[str]:
    return re.findall(r":?['\"]?([\w:]+)['\"]?", fragment)


def parse_task_signature(line: str) -> tuple[str, list[str], list[str]] | None:
    """(name, prerequisite tasks, arguments) of a ``task`` line."""
    match = TASK_ARGS_RE.match(line)
    if match:
        args = re.findall(r":(\w+)", match.group(2))
        deps_match = TASK_HASH_DEPS_RE.search(line)
        deps = _symbols(deps_match.group(1)) if deps_match else []
        return match.group(1), deps, args
    match = TASK_DEPS_RE.match(line)
    if match:
        return match.group(1), _symbols(match.group(2)), []
    match = TASK_KW_RE.match(line)
    if match:
        return match.group(1), _symbols(match.group(2)), []
    match = TASK_RE.match(line)
    if match:
        return match.group(1), [], []
    return None


def parse_tasks(source: str) -> list[dict[str, Any]]:
    raw = source.splitlines(keepends=True)
    lines = code_lines(source)
    tasks = []
    namespaces: list[tuple[str, int]] = []
    pending_desc = None
    depth = 0

    for index, code in enumerate(lines):
        raw_line = raw[index]
        ns = NAMESPACE_RE.match(raw_line) if code.lstrip().startswith("namespace") else None
        desc = DESC_RE.match(raw_line)
        if ns:
            namespaces.append((ns.group(1), depth))
        elif desc:
            pending_desc = desc.group(2)
        elif TASK_START_RE.match(code):
            signature = parse_task_signature(raw_line.strip())
            if signature:
                name, deps, args = signature
                ns_name = ":".join(n for n, _ in namespaces) or None
                end = block_end(lines, index) if re.search(r"\bdo\b", code) else None
                body = "".join(raw[index + 1 : end]) if end is not None else ""
                tasks.append({
                    "task_name": name,
                    "full_name": f"{ns_name}:{name}" if ns_name else name,
                    "task_namespace": ns_name,
                    "description": pending_desc,
                    "task_dependencies": deps,
                    "arguments": args,
                    "line_number": index + 1,
                    "block_source": body,
                })
            pending_desc = None

        depth += depth_delta(code)
        while namespaces and depth <= namespaces[-1][1]:
            namespaces.pop()

    return tasks


class RakeTaskExtractor(FileExtractor):
    family = "rake_task"
    directories = RAKE_DIRECTORIES
    pattern = "**/*.rake"

    def matches(self, source: str) -> bool:
        return "task" in source

    def build_units(self, file_path: str, source: str) -> list[ExtractedUnit]:
        units = []
        for task in parse_tasks(source):
            if any(task["full_name"].startswith(f"{ns}:") for ns in EXCLUDED_RAKE_NAMESPACES):
                continue
            units.append(self._unit(task, file_path, source))
        return units

    def _unit(self, task: dict[str, Any], file_path: str, file_source: str) -> ExtractedUnit:
        body = task["block_source"]
        scanned = body or file_source

        deps = scan_common_dependencies(scanned, self.model_names)
        deps.extend(Dependency("rake_task", t, "task_invoke") for t in INVOKE_RE.findall(body))
        deps.extend(
            Dependency("rake_task", t, "task_dependency")
            for t in task["task_dependencies"]
            if t != "environment"
        )

        header = f"# Rake task: {task['full_name']}"
        if task["description"]:
            header += f"\n# {task['description']}"

        return ExtractedUnit(
            type="rake_task",
            identifier=task["full_name"],
            namespace=task["task_namespace"],
            file_path=file_path,
            source_code=f"{header}\n{file_source}",
            metadata={
                "task_name": task["task_name"],
                "full_name": task["full_name"],
                "description": task["description"],
                "task_namespace": task["task_namespace"],
                "task_dependencies": task["task_dependencies"],
                "arguments": task["arguments"],
                "has_environment_dependency": "environment" in task["task_dependencies"],
                "line_number": task["line_number"],
                "source_lines": len(body.splitlines()),
                "loc": count_loc(body),
            },
            dependencies=deps,
        )
