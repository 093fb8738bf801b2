"""Routes from the live routing table.

Routes only exist at runtime, so there is no static fallback: without a
registry snapshot this family contributes nothing.
"""

import re

from ..live_registry import LiveRoute
from ..unit import Dependency, ExtractedUnit
from . import RuntimeExtractor
from .shared import camelize, extract_namespace

PATH_PARAM_RE = re.compile(r":(\w+)")


def normalize_route_path(path: str) -> str:
    return path.replace("(.:format)", "") or "/"


def controller_class_name(controller: str) -> str:
    """``"admin/users"`` -> ``"Admin::UsersController"``."""
    return f"{camelize(controller)}Controller"


class RouteExtractor(RuntimeExtractor):
    family = "route"

    def live_candidates(self) -> list[LiveRoute]:
        return self.registry.all_routes()

    def describe(self, candidate: LiveRoute) -> str:
        return candidate.identifier

    def extract_candidate(self, candidate: LiveRoute) -> list[ExtractedUnit]:
        # Mounted apps and redirects have no controller#action to point at
        if not candidate.controller or not candidate.action:
            return []

        verb = (candidate.verb or "GET").upper()
        path = normalize_route_path(candidate.path)
        controller_class = controller_class_name(candidate.controller)

        lines = [f"# Route: {verb} {path}"]
        if candidate.name:
            lines.append(f"# Name: {candidate.name}")
        lines.append(f"# Controller: {candidate.controller}#{candidate.action}")
        if candidate.constraints:
            lines.append(f"# Constraints: {candidate.constraints!r}")
        lines.append("#")
        lines.append(f"# {verb.lower()} '{path}', to: '{candidate.controller}#{candidate.action}'")

        return [ExtractedUnit(
            type="route",
            identifier=f"{verb} {path}",
            namespace=extract_namespace(controller_class),
            file_path=None,
            source_code="\n".join(lines),
            metadata={
                "http_method": verb,
                "path": path,
                "controller": candidate.controller,
                "action": candidate.action,
                "route_name": candidate.name,
                "engine": candidate.engine,
                "constraints": dict(candidate.constraints),
                "path_params": PATH_PARAM_RE.findall(path),
                "loc": len(lines),
            },
            dependencies=[Dependency("controller", controller_class, "route_dispatch")],
        )]
