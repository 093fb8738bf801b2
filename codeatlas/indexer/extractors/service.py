"""Service object extractor (services, interactors, operations, commands, use cases)."""

import re

from ..config import SERVICE_DIRECTORIES
from ..dependency_scanner import scan_common_dependencies
from ..unit import Dependency, ExtractedUnit, count_loc
from . import FileExtractor
from .shared import (
    camelize,
    detect_class_name,
    extract_class_methods,
    extract_initialize_params,
    extract_namespace,
    extract_public_methods,
)

MODULE_ONLY_RE = re.compile(r"^\s*module\s+\w+\s*$", re.MULTILINE)
CLASS_RE = re.compile(r"^\s*class\s+", re.MULTILINE)
ENTRY_POINTS = ("call", "perform", "execute", "run", "process")
ATTR_RE = re.compile(r"attr_(?:reader|accessor)\s+(.+)")
IVAR_ASSIGN_RE = re.compile(r"@(\w+)\s*=\s*(\w+)")
INJECTED_NAME_RE = re.compile(r"service|repository|client|adapter|gateway|notifier|mailer")
INJECTED_VALUE_RE = re.compile(r"Service|Client|Repository|Adapter|Gateway")
CUSTOM_ERROR_RE = re.compile(r"class\s+(\w+(?:Error|Exception))\s*<")
RESCUE_RE = re.compile(r"rescue\s+([\w:]+)")
BRANCH_RE = re.compile(r"\b(?:if|unless|elsif|when|while|until|for|rescue)\b|&&|\|\|")
INTERACTOR_REF_RE = re.compile(r"(\w+Interactor)(?:\.|::)")
CLIENT_REF_RE = re.compile(r"(\w+Client)(?:\.|::new)")
HTTP_RE = re.compile(r"HTTParty|Faraday|RestClient|Net::HTTP")

SERVICE_TYPES = {
    "app/interactors/": "interactor",
    "app/operations/": "operation",
    "app/commands/": "command",
    "app/use_cases/": "use_case",
}


def detect_entry_points(source: str) -> list[str]:
    return [name for name in ENTRY_POINTS if re.search(rf"def (?:self\.)?{name}\b", source)]


def injected_dependencies(source: str) -> list[str]:
    found = []
    for match in ATTR_RE.findall(source):
        found.extend(a for a in re.findall(r":(\w+)", match) if INJECTED_NAME_RE.search(a))
    found.extend(ivar for ivar, value in IVAR_ASSIGN_RE.findall(source) if INJECTED_VALUE_RE.search(value))
    return list(dict.fromkeys(found))


def infer_return_type(source: str) -> str:
    if "Success(" in source or "Failure(" in source:
        return "dry_monad"
    if "Result.new" in source or "OpenStruct.new" in source:
        return "result_object"
    return "unknown"


def infer_service_type(file_path: str) -> str:
    for prefix, kind in SERVICE_TYPES.items():
        if file_path.startswith(prefix):
            return kind
    return "service"


class ServiceExtractor(FileExtractor):
    family = "service"
    directories = SERVICE_DIRECTORIES

    def matches(self, source: str) -> bool:
        # Module-only files are concerns or base modules
        return bool(CLASS_RE.search(source))

    def build_unit(self, file_path: str, source: str) -> ExtractedUnit | None:
        detected = detect_class_name(source)
        if detected:
            name = detected[0]
        else:
            relative = file_path.split("/", 2)[-1]
            name = camelize(relative.removesuffix(".rb"))

        entry_points = detect_entry_points(source)
        metadata = {
            "public_methods": extract_public_methods(source),
            "entry_points": entry_points,
            "class_methods": extract_class_methods(source),
            "is_callable": "call" in entry_points,
            "is_interactor": bool(re.search(r"include\s+Interactor", source)),
            "uses_dry_monads": bool(re.search(r"include\s+Dry::Monads", source)),
            "initialize_params": extract_initialize_params(source),
            "injected_dependencies": injected_dependencies(source),
            "custom_errors": CUSTOM_ERROR_RE.findall(source),
            "rescues": list(dict.fromkeys(RESCUE_RE.findall(source))),
            "return_type": infer_return_type(source),
            "method_count": len(re.findall(r"def\s+(?:self\.)?\w+", source)),
            "complexity": len(BRANCH_RE.findall(source)) + 1,
            "service_type": infer_service_type(file_path),
            "loc": count_loc(source),
        }

        deps = [d for d in scan_common_dependencies(source, self.model_names) if d.target != name]
        deps.extend(Dependency("interactor", i, "code_reference") for i in dict.fromkeys(INTERACTOR_REF_RE.findall(source)))
        deps.extend(Dependency("api_client", c, "code_reference") for c in dict.fromkeys(CLIENT_REF_RE.findall(source)))
        if HTTP_RE.search(source):
            deps.append(Dependency("external", "http_api", "code_reference"))

        header = f"# Service: {name}\n# Entry Points: {', '.join(entry_points) or 'none'}\n\n"
        return ExtractedUnit(
            type="service",
            identifier=name,
            namespace=extract_namespace(name),
            file_path=file_path,
            source_code=header + source,
            metadata=metadata,
            dependencies=deps,
        )
