"""Background job extractor (ActiveJob, Sidekiq, GoodJob)."""

import re

from ..config import JOB_DIRECTORIES
from ..dependency_scanner import (
    scan_mailer_dependencies,
    scan_model_dependencies,
    scan_service_dependencies,
)
from ..unit import Dependency, ExtractedUnit, count_loc
from . import FileExtractor
from .shared import camelize, detect_class_name, extract_namespace

JOB_SIGNATURE = re.compile(
    r"<\s*(?:ApplicationJob|ActiveJob::Base)\b|include\s+Sidekiq::(?:Worker|Job)\b|def\s+perform\b"
)
QUEUE_AS_RE = re.compile(r"queue_as\s+[:\"'](\w+)")
SIDEKIQ_QUEUE_RE = re.compile(r"sidekiq_options.*queue:\s*[:\"'](\w+)")
SIDEKIQ_OPTIONS_RE = re.compile(r"sidekiq_options\s+(.+)")
SIDEKIQ_RETRY_RE = re.compile(r"sidekiq_options.*retry:\s*(\d+|false|true)")
RETRY_ON_RE = re.compile(r"retry_on\s+([\w:]+)(?:,\s*wait:\s*([^,\n]+))?(?:,\s*attempts:\s*(\d+))?")
DISCARD_ON_RE = re.compile(r"discard_on\s+(\w+(?:::\w+)*)")
PERFORM_RE = re.compile(r"def\s+perform\s*\(([^)]*)\)")
PARAM_RE = re.compile(r"(\*{0,2}\w+)(?:\s*[=:]\s*([^,]+))?")
ENQUEUE_RE = re.compile(r"(\w+Job)\.(?:perform_later|perform_async|perform_in|perform_at|perform_now|set\b)")
UNIQUE_FOR_RE = re.compile(r"unique_for:\s*(\d+)")
RATE_LIMIT_RE = re.compile(r"rate_limit:\s*\{([^}]+)\}")
JOB_CALLBACKS = ("before_enqueue", "after_enqueue", "before_perform", "after_perform", "around_perform")


def detect_job_type(source: str) -> str:
    if re.search(r"include\s+Sidekiq::(?:Worker|Job)", source):
        return "sidekiq"
    if re.search(r"<\s*(?:ApplicationJob|ActiveJob::Base)", source):
        return "active_job"
    if "include GoodJob" in source:
        return "good_job"
    return "unknown"


def extract_queue(source: str) -> str | None:
    match = QUEUE_AS_RE.search(source) or SIDEKIQ_QUEUE_RE.search(source)
    return match.group(1) if match else None


def perform_params(source: str) -> list[dict]:
    match = PERFORM_RE.search(source)
    if not match:
        return []
    params = []
    for name, default in PARAM_RE.findall(match.group(1)):
        splat = "double" if name.startswith("**") else "single" if name.startswith("*") else None
        params.append({"name": name.lstrip("*"), "splat": splat, "has_default": bool(default)})
    return params


def retry_config(source: str) -> dict:
    config: dict = {}
    for error, wait, attempts in RETRY_ON_RE.findall(source):
        config.setdefault("retry_on", []).append({
            "error": error,
            "wait": wait.strip() or None,
            "attempts": int(attempts) if attempts else None,
        })
    sidekiq = SIDEKIQ_RETRY_RE.search(source)
    if sidekiq:
        config["sidekiq_retries"] = sidekiq.group(1)
    return config


def enqueued_jobs(source: str, current: str | None = None) -> list[str]:
    return [name for name in dict.fromkeys(ENQUEUE_RE.findall(source)) if name != current]


class JobExtractor(FileExtractor):
    family = "job"
    directories = JOB_DIRECTORIES

    def matches(self, source: str) -> bool:
        return bool(JOB_SIGNATURE.search(source))

    def build_unit(self, file_path: str, source: str) -> ExtractedUnit | None:
        detected = detect_class_name(source)
        if detected:
            name = detected[0]
        else:
            relative = file_path.split("/", 2)[-1]
            name = camelize(relative.removesuffix(".rb"))

        job_type = detect_job_type(source)
        queue = extract_queue(source)
        sidekiq_options = {}
        options_match = SIDEKIQ_OPTIONS_RE.search(source)
        if options_match:
            sidekiq_options = {k: v.strip() for k, v in re.findall(r"(\w+):\s*([^,\n]+)", options_match.group(1))}

        concurrency = {}
        unique_for = UNIQUE_FOR_RE.search(source)
        if unique_for:
            concurrency["unique_for"] = int(unique_for.group(1))
        rate_limit = RATE_LIMIT_RE.search(source)
        if rate_limit:
            concurrency["rate_limit"] = rate_limit.group(1).strip()

        callbacks = []
        for cb in JOB_CALLBACKS:
            for method in re.findall(rf"{cb}\s+(?::(\w+)|do)", source):
                callbacks.append({"type": cb, "method": method or None})

        enqueues = enqueued_jobs(source, name)
        metadata = {
            "job_type": job_type,
            "queue": queue,
            "sidekiq_options": sidekiq_options,
            "retry_config": retry_config(source),
            "concurrency_controls": concurrency,
            "perform_params": perform_params(source),
            "scheduled": bool(re.search(r"perform_later|perform_in|perform_at", source)),
            "discard_on": DISCARD_ON_RE.findall(source),
            "retry_on": [r[0] for r in RETRY_ON_RE.findall(source)],
            "callbacks": callbacks,
            "enqueues_jobs": enqueues,
            "loc": count_loc(source),
        }

        # Job references get the richer job_enqueue label and skip self-references
        deps = scan_model_dependencies(source, self.model_names)
        deps.extend(scan_service_dependencies(source))
        deps.extend(scan_mailer_dependencies(source))
        deps.extend(Dependency("job", job, "job_enqueue") for job in enqueues)
        if re.search(r"HTTParty|Faraday|RestClient|Net::HTTP", source):
            deps.append(Dependency("external", "http_api", "code_reference"))
        if re.search(r"Redis\.current|REDIS", source):
            deps.append(Dependency("infrastructure", "redis", "code_reference"))

        header = f"# Job: {name}\n# Type: {job_type}\n# Queue: {queue or 'default'}\n\n"
        return ExtractedUnit(
            type="job",
            identifier=name,
            namespace=extract_namespace(name),
            file_path=file_path,
            source_code=header + source,
            metadata=metadata,
            dependencies=deps,
        )
