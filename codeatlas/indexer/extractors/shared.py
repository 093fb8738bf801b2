"""Helpers shared across extractors.

Namespace and class-name detection, public/class method listing,
initializer parameters, Rails naming conventions and per-method chunking.
All of these are regex or line based; none of them evaluate source.
"""

import re

from ..source_ranges import block_opener, code_lines, depth_delta, extract_method_source
from ..unit import Chunk, ExtractedUnit, count_loc

__all__ = [
    "block_opener",
    "build_method_chunks",
    "camelize",
    "classify",
    "count_loc",
    "detect_class_name",
    "extract_class_methods",
    "extract_initialize_params",
    "extract_namespace",
    "extract_public_methods",
    "singularize",
    "underscore",
]

_DECL_RE = re.compile(r"^\s*(class|module)\s+([A-Z][\w:]*)(?:\s*<\s*([A-Z][\w:]*(?:\[[^\]]*\])?))?")
_PUBLIC_DEF_RE = re.compile(r"def\s+((?:self\.)?\w+[?!=]?)")
_CLASS_METHOD_RE = re.compile(r"def\s+self\.(\w+[?!=]?)")
_INIT_RE = re.compile(r"def\s+initialize\s*\((.*?)\)", re.DOTALL)
_PARAM_RE = re.compile(r"(\w+)(?::\s*([^,\n]+))?")


def extract_namespace(name: str) -> str | None:
    """``"Payments::StripeService"`` -> ``"Payments"``; None for top-level names."""
    parts = name.split("::")
    return "::".join(parts[:-1]) if len(parts) > 1 else None


def detect_class_name(source: str, kind: str = "class") -> tuple[str, str | None] | None:
    """Fully-qualified name and superclass of the first ``kind`` declaration.

    Nesting is followed, so ``module Admin`` wrapping ``class UsersController``
    yields ``Admin::UsersController``. Returns None when no declaration exists.
    """
    stack: list[tuple[str, int]] = []
    depth = 0
    for code in code_lines(source):
        match = _DECL_RE.match(code)
        if match:
            decl_kind, name, superclass = match.groups()
            full_name = "::".join([n for n, _ in stack] + [name])
            if decl_kind == kind:
                return full_name, superclass
            stack.append((name, depth))
        depth += depth_delta(code)
        while stack and depth <= stack[-1][1]:
            stack.pop()
    return None


def extract_public_methods(source: str) -> list[str]:
    """Method names in public scope, skipping names starting with underscore."""
    methods = []
    in_private = False
    in_protected = False

    for line in source.splitlines():
        stripped = line.strip()

        if stripped == "private":
            in_private = True
        elif stripped == "protected":
            in_protected = True
        elif stripped == "public":
            in_private = in_protected = False

        if not in_private and not in_protected:
            match = _PUBLIC_DEF_RE.search(stripped)
            if match and stripped.startswith("def") and not match.group(1).startswith("_"):
                methods.append(match.group(1))

    return methods


def extract_class_methods(source: str) -> list[str]:
    return _CLASS_METHOD_RE.findall(source)


def extract_initialize_params(source: str) -> list[dict]:
    """Parameters of ``initialize``: name, whether defaulted, whether keyword."""
    match = _INIT_RE.search(source)
    if not match:
        return []

    params_str = match.group(1)
    params = []
    for name, default in _PARAM_RE.findall(params_str):
        keyword = f"{name}:" in params_str
        params.append({
            "name": name,
            "has_default": bool(default.strip()) if default else False,
            "keyword": keyword,
        })
    return params


# ----------------------------------------------------------------------------
# Naming conventions
# ----------------------------------------------------------------------------

def camelize(term: str) -> str:
    """``admin/user_profiles`` -> ``Admin::UserProfiles``."""
    return "::".join(
        "".join(part.capitalize() for part in segment.split("_"))
        for segment in term.strip("/").split("/")
        if segment
    )


def underscore(name: str) -> str:
    """``Admin::UserProfile`` -> ``admin/user_profile``."""
    path = name.replace("::", "/")
    path = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", path)
    path = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", path)
    return path.lower()


def singularize(word: str) -> str:
    """English singular for common Rails table and factory names."""
    if word.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if word.endswith(("sses", "shes", "ches", "xes", "zes")):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def classify(table_name: str) -> str:
    """``line_items`` -> ``LineItem``."""
    return camelize(singularize(table_name))


# ----------------------------------------------------------------------------
# Per-method chunks
# ----------------------------------------------------------------------------

def build_method_chunks(
    unit: ExtractedUnit,
    source: str,
    method_names: list[str],
    chunk_type: str = "action",
    context_lines: list[str] | None = None,
) -> list[Chunk]:
    """One chunk per named method, each carrying the unit header and context.

    Methods whose source cannot be isolated are skipped.
    """
    chunks = []
    extra = "".join(f"# {line}\n" for line in context_lines or [])
    for name in method_names:
        method_source = extract_method_source(source, name)
        if not method_source:
            continue
        content = f"# {unit.identifier}#{name}\n" + extra + method_source
        chunks.append(
            Chunk(
                chunk_type=chunk_type,
                identifier=f"{unit.identifier}#{name}",
                content=content,
                metadata={"parent": unit.identifier, "method": name, "loc": count_loc(method_source)},
            )
        )
    return chunks
