"""Shared dependency scanning.

Most extractors look for the same four kinds of conventional reference in
a source blob: model names, service objects, background jobs and mailers.
Each scan is independently callable and takes a ``via`` label so a caller
can tag the relationship precisely (``association``, ``delegation``, ...)
while still reusing the generic scan for everything else.

All results are deduplicated by ``(type, target)``, first seen wins.
"""


import re

from .model_names import ModelNameSet
from .unit import DEFAULT_VIA, Dependency, dedupe_dependencies

SERVICE_PATTERN = re.compile(r"(\w+Service)(?:\.|::)")
JOB_PATTERN = re.compile(r"(\w+Job)\.perform")
MAILER_PATTERN = re.compile(r"(\w+Mailer)\.")


def _unique(matches: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for m in matches:
        if m not in seen:
            seen.add(m)
            result.append(m)
    return result


def scan_model_dependencies(
    source: str, model_names: ModelNameSet, via: str = DEFAULT_VIA
) -> list[Dependency]:
    """References to known model classes, e.g. ``User.find`` or ``has_many :orders``."""
    return [Dependency("model", name, via) for name in model_names.find_all(source)]


def scan_service_dependencies(source: str, via: str = DEFAULT_VIA) -> list[Dependency]:
    """``FooService.call`` / ``FooService::Result`` style references."""
    return [Dependency("service", name, via) for name in _unique(SERVICE_PATTERN.findall(source or ""))]


def scan_job_dependencies(source: str, via: str = DEFAULT_VIA) -> list[Dependency]:
    """``FooJob.perform_later`` / ``FooJob.perform_async`` enqueue calls."""
    return [Dependency("job", name, via) for name in _unique(JOB_PATTERN.findall(source or ""))]


def scan_mailer_dependencies(source: str, via: str = DEFAULT_VIA) -> list[Dependency]:
    return [Dependency("mailer", name, via) for name in _unique(MAILER_PATTERN.findall(source or ""))]


def scan_common_dependencies(
    source: str,
    model_names: ModelNameSet | None = None,
    via: str = DEFAULT_VIA,
    via_overrides: dict[str, str] | None = None,
) -> list[Dependency]:
    """Run all four scans and return the deduplicated union.

    Args:
        source: Text to scan
        model_names: Known models; no model scan when None
        via: Default relationship label
        via_overrides: Per-category label, keyed by ``model``, ``service``,
            ``job`` or ``mailer``

    Returns:
        Dependencies in model, service, job, mailer order
    """
    overrides = via_overrides or {}
    deps: list[Dependency] = []
    if model_names is not None:
        deps.extend(scan_model_dependencies(source, model_names, overrides.get("model", via)))
    deps.extend(scan_service_dependencies(source, overrides.get("service", via)))
    deps.extend(scan_job_dependencies(source, overrides.get("job", via)))
    deps.extend(scan_mailer_dependencies(source, overrides.get("mailer", via)))
    return dedupe_dependencies(deps)
