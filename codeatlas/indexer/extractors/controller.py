"""Controller extractor.

Reads ``app/controllers/**/*.rb``. The unit source is prefixed with the
routes that reach the controller (from the live registry, when one is
available) and its filter chain. Each public action becomes its own chunk so
retrieval can land on a single action.
"""

import re
from typing import Any

from ..config import CONTROLLER_DIRECTORIES
from ..dependency_scanner import scan_common_dependencies
from ..source_ranges import list_methods
from ..unit import Dependency, ExtractedUnit, count_loc
from . import FileExtractor
from .shared import build_method_chunks, camelize, detect_class_name, extract_namespace

CONTROLLER_SIGNATURE = re.compile(r"class\s+[\w:]*Controller\b")

FILTER_RE = re.compile(
    r"^\s*(before|after|around|skip_before|skip_after|skip_around)_action\s+((?::\w+\s*,?\s*)+)(.*)$",
    re.MULTILINE,
)
ONLY_RE = re.compile(r"only:\s*(\[[^\]]*\]|:\w+)")
EXCEPT_RE = re.compile(r"except:\s*(\[[^\]]*\]|:\w+)")
CONDITION_RE = re.compile(r"\b(if|unless):\s*(:\w+|->\s*\{[^}]*\}|proc\s*\{[^}]*\})")
PERMIT_RE = re.compile(
    r"def\s+(\w+_params)\b.*?params\.require\(:(\w+)\)\.permit\((.*?)\)", re.DOTALL
)
COMPONENT_RENDER_RE = re.compile(r"render\s*\(?\s*(\w+(?:::\w+)*Component)\b")
TEMPLATE_RENDER_RE = re.compile(r"render\s*\(?\s*[\"'](\w+/\w+)[\"']")

# Public methods Rails never routes to
NON_ACTION_METHODS = {"initialize", "method_missing", "respond_to_missing?"}


def _symbols(fragment: str | None) -> list[str]:
    return re.findall(r":(\w+)", fragment or "")


def parse_filters(source: str) -> list[dict[str, Any]]:
    filters = []
    for kind, names, options in FILTER_RE.findall(source):
        only = ONLY_RE.search(options)
        except_ = EXCEPT_RE.search(options)
        conditions = CONDITION_RE.findall(options)
        for name in _symbols(names):
            entry: dict[str, Any] = {"kind": kind, "filter": name}
            if only:
                entry["only"] = _symbols(only.group(1))
            if except_:
                entry["except"] = _symbols(except_.group(1))
            for cond_kind, cond in conditions:
                entry[cond_kind] = cond
            filters.append(entry)
    return filters


def filters_for_action(filters: list[dict[str, Any]], action: str) -> list[dict[str, Any]]:
    """Filters whose only/except lists let them run for ``action``."""
    applicable = []
    for f in filters:
        if f["kind"].startswith("skip_"):
            continue
        if "only" in f and action not in f["only"]:
            continue
        if "except" in f and action in f["except"]:
            continue
        applicable.append({"kind": f["kind"], "filter": f["filter"]})
    return applicable


def respond_formats(source: str) -> list[str]:
    formats = []
    if "respond_to do" in source or "respond_to" not in source:
        formats.append("html")
    if ":json" in source or "render json:" in source:
        formats.append("json")
    if ":xml" in source or "render xml:" in source:
        formats.append("xml")
    if "turbo_stream" in source:
        formats.append("turbo_stream")
    return formats


def permitted_params(source: str) -> dict[str, dict[str, Any]]:
    return {
        method: {"model": model, "permitted": _symbols(permitted)}
        for method, model, permitted in PERMIT_RE.findall(source)
    }


class ControllerExtractor(FileExtractor):
    """Controllers with per-action chunks."""

    family = "controller"
    directories = CONTROLLER_DIRECTORIES

    def __init__(self, context):
        super().__init__(context)
        self._routes_map: dict[str, dict[str, list[dict[str, str]]]] | None = None

    @property
    def routes_map(self) -> dict[str, dict[str, list[dict[str, str]]]]:
        """Controller class name -> action -> [{verb, path}], from the registry."""
        if self._routes_map is None:
            routes_map: dict[str, dict[str, list[dict[str, str]]]] = {}
            for route in self.registry.all_routes():
                if not route.controller or not route.action:
                    continue
                controller = camelize(route.controller) + "Controller"
                routes_map.setdefault(controller, {}).setdefault(route.action, []).append(
                    {"verb": route.verb, "path": route.path}
                )
            self._routes_map = routes_map
        return self._routes_map

    def matches(self, source: str) -> bool:
        return bool(CONTROLLER_SIGNATURE.search(source))

    def build_unit(self, file_path: str, source: str) -> ExtractedUnit | None:
        detected = detect_class_name(source)
        if detected is None or not detected[0].endswith("Controller"):
            return None
        name, superclass = detected

        filters = parse_filters(source)
        actions = [
            m.name
            for m in list_methods(source)
            if m.visibility == "public" and not m.class_method and m.name not in NON_ACTION_METHODS
        ]
        routes = self.routes_map.get(name, {})

        metadata = {
            "actions": actions,
            "routes": routes,
            "filters": filters,
            "parent_class": superclass,
            "responds_to": respond_formats(source),
            "permitted_params": permitted_params(source),
            "action_count": len(actions),
            "filter_count": len(filters),
            "loc": count_loc(source),
        }

        deps = scan_common_dependencies(source, self.model_names)
        deps.extend(
            Dependency("component", c, "render") for c in dict.fromkeys(COMPONENT_RENDER_RE.findall(source))
        )
        deps.extend(
            Dependency("view", t, "render") for t in dict.fromkeys(TEMPLATE_RENDER_RE.findall(source))
        )
        if superclass and superclass.endswith("Controller") and superclass != "ActionController::Base":
            deps.append(Dependency("controller", superclass, "inheritance"))

        unit = ExtractedUnit(
            type="controller",
            identifier=name,
            namespace=extract_namespace(name),
            file_path=file_path,
            source_code=self._composite_source(source, routes, filters),
            metadata=metadata,
            dependencies=deps,
        )

        chunks = []
        for action in actions:
            route_desc = ", ".join(f"{r['verb']} {r['path']}" for r in routes.get(action, [])) or "No direct route"
            applicable = filters_for_action(filters, action)
            filter_desc = ", ".join(f"{f['kind']}(:{f['filter']})" for f in applicable) or "none"
            chunks.extend(
                build_method_chunks(
                    unit,
                    source,
                    [action],
                    context_lines=[f"Route: {route_desc}", f"Filters: {filter_desc}"],
                )
            )
        for chunk in chunks:
            action = chunk.metadata["method"]
            chunk.metadata["http_methods"] = sorted({r["verb"] for r in routes.get(action, [])})
        unit.chunks = chunks
        return unit

    @staticmethod
    def _composite_source(source: str, routes: dict, filters: list[dict[str, Any]]) -> str:
        header = []
        if routes:
            header.append("# Routes")
            for action, entries in routes.items():
                for r in entries:
                    header.append(f"#   {r['verb']:<7} {r['path']:<45} -> #{action}")
            header.append("#")
        if filters:
            header.append("# Filter Chain")
            for f in filters:
                opts = []
                if f.get("only"):
                    opts.append("only: [" + ", ".join(f":{a}" for a in f["only"]) + "]")
                if f.get("except"):
                    opts.append("except: [" + ", ".join(f":{a}" for a in f["except"]) + "]")
                suffix = f" ({'; '.join(opts)})" if opts else ""
                header.append(f"#   {f['kind']:<8} :{f['filter']}{suffix}")
            header.append("#")
        if not header:
            return source
        return "\n".join(header) + "\n" + source
