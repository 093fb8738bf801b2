"""Mailer extractor with one chunk per mail action."""

import re

from ..config import MAILER_DIRECTORIES
from ..dependency_scanner import scan_model_dependencies, scan_service_dependencies
from ..source_ranges import list_methods
from ..unit import Dependency, ExtractedUnit, count_loc
from . import FileExtractor
from .shared import build_method_chunks, detect_class_name, extract_namespace, underscore

MAILER_SIGNATURE = re.compile(r"<\s*(?:ApplicationMailer|ActionMailer::Base)\b|class\s+\w*Mailer\b")
DEFAULT_RE = re.compile(r"^\s*default\s+(.+)$", re.MULTILINE)
LAYOUT_RE = re.compile(r"layout\s+['\":](\w+)")
HELPER_RE = re.compile(r"helper\s+:?(\w+)")
INCLUDE_HELPER_RE = re.compile(r"include\s+(\w+Helper)")
URL_HELPER_RE = re.compile(r"(\w+)_(?:url|path)\b")
MAILER_CALLBACK_RE = re.compile(r"^\s*(before|after|around)_action\s+:(\w+)", re.MULTILINE)
TEMPLATE_EXTENSIONS = ("html.erb", "text.erb", "html.slim", "text.slim", "html.haml", "text.haml")


class MailerExtractor(FileExtractor):
    family = "mailer"
    directories = MAILER_DIRECTORIES

    def matches(self, source: str) -> bool:
        return bool(MAILER_SIGNATURE.search(source))

    def discover_templates(self, mailer_name: str, actions: list[str]) -> dict[str, list[str]]:
        templates = {}
        mailer_path = underscore(mailer_name)
        for action in actions:
            found = [
                f"app/views/{mailer_path}/{action}.{ext}"
                for ext in TEMPLATE_EXTENSIONS
                if (self.root_path / f"app/views/{mailer_path}/{action}.{ext}").is_file()
            ]
            if found:
                templates[action] = found
        return templates

    def build_unit(self, file_path: str, source: str) -> ExtractedUnit | None:
        detected = detect_class_name(source)
        if detected is None:
            return None
        name, superclass = detected
        # The abstract base mailer has no deliverable actions
        if name == "ApplicationMailer":
            return None

        actions = [
            m.name for m in list_methods(source)
            if m.visibility == "public" and not m.class_method and m.name != "initialize"
        ]
        defaults = {}
        for line in DEFAULT_RE.findall(source):
            defaults.update({k: v.strip() for k, v in re.findall(r"(\w+):\s*([^,\n]+)", line)})
        layout = LAYOUT_RE.search(source)
        templates = self.discover_templates(name, actions)

        metadata = {
            "actions": actions,
            "defaults": defaults,
            "parent_class": superclass,
            "callbacks": [{"type": f"{kind}_action", "filter": f} for kind, f in MAILER_CALLBACK_RE.findall(source)],
            "layout": layout.group(1) if layout else None,
            "helpers": list(dict.fromkeys(HELPER_RE.findall(source) + INCLUDE_HELPER_RE.findall(source))),
            "templates": templates,
            "action_count": len(actions),
            "loc": count_loc(source),
        }

        deps = scan_model_dependencies(source, self.model_names)
        deps.extend(scan_service_dependencies(source))
        deps.extend(Dependency("route", r, "url_helper") for r in dict.fromkeys(URL_HELPER_RE.findall(source)))

        unit = ExtractedUnit(
            type="mailer",
            identifier=name,
            namespace=extract_namespace(name),
            file_path=file_path,
            source_code=source,
            metadata=metadata,
            dependencies=deps,
        )

        chunks = []
        for action in actions:
            found = templates.get(action, [])
            chunks.extend(
                build_method_chunks(
                    unit,
                    source,
                    [action],
                    chunk_type="mail_action",
                    context_lines=[f"Templates: {', '.join(found) if found else 'none found'}"],
                )
            )
        for chunk in chunks:
            chunk.metadata["templates"] = templates.get(chunk.metadata["method"], [])
        unit.chunks = chunks
        return unit
