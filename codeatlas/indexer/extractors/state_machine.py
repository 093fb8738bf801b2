"""State machine extractor: AASM, Statesman and state_machines.

One model file may declare several machines (``state_machine :status`` and
``state_machine :payment_state``), so this family yields several units per
file through ``build_units``.
"""

import re
from typing import Any

from ..config import MODEL_DIRECTORIES
from ..dependency_scanner import scan_job_dependencies, scan_service_dependencies
from ..source_ranges import extract_blocks
from ..unit import Dependency, ExtractedUnit, count_loc
from . import FileExtractor
from .shared import camelize, detect_class_name, extract_namespace

SIGNATURE = re.compile(r"include\s+AASM\b|include\s+Statesman::Machine\b|\bstate_machine\b")
STATE_RE = re.compile(r"^\s*state\s+:(\w+)", re.MULTILINE)
MULTI_STATE_RE = re.compile(r"^\s*state\s+((?::\w+\s*,\s*)+:\w+)", re.MULTILINE)
AASM_INITIAL_STATE_RE = re.compile(r"state\s+:(\w+)[^#\n]*initial:\s*true")
AASM_INITIAL_OPTION_RE = re.compile(r"aasm\b[^#\n]*initial:\s*:(\w+)")
STATESMAN_TRANSITION_RE = re.compile(r"transition\s+from:\s*:(\w+)\s*,\s*to:\s*(\[[^\]]*\]|:\w+)")
MACHINE_RE = re.compile(r"state_machine\s+:(\w+)")
EVENT_OPENER_RE = re.compile(r"^\s*event\s+:(\w+)")
TRANSITION_FROM_TO_RE = re.compile(r"transitions?\s+from:\s*(\[[^\]]*\]|:\w+)\s*,\s*to:\s*:(\w+)")
TRANSITION_HASH_RE = re.compile(r"^\s*transition\s+(?::?(\w+)|\[([^\]]*)\])\s*(?:=>|:)\s*:(\w+)")
GUARD_RE = re.compile(r"(?:guard|if):\s*:?(\w+[?!]?)")
CALLBACK_RE = re.compile(r"(before_transition|after_transition|around_transition|after_failure)\s+(.+)")


def _symbols(fragment: str) -> list[str]:
    return re.findall(r":?(\w+)", fragment)


def parse_transition_line(line: str) -> list[dict[str, Any]]:
    match = TRANSITION_FROM_TO_RE.search(line)
    guard = GUARD_RE.search(line)
    if match:
        return [
            {"from": src, "to": match.group(2), "guard": guard.group(1) if guard else None}
            for src in _symbols(match.group(1))
        ]
    match = TRANSITION_HASH_RE.match(line)
    if match:
        sources = [match.group(1)] if match.group(1) else _symbols(match.group(2) or "")
        return [{"from": src, "to": match.group(3), "guard": guard.group(1) if guard else None} for src in sources]
    return []


def parse_events(block: str) -> list[dict[str, Any]]:
    events = []
    for _, event_source in extract_blocks(block, EVENT_OPENER_RE):
        name = EVENT_OPENER_RE.match(event_source).group(1)
        transitions = []
        for line in event_source.splitlines():
            transitions.extend(parse_transition_line(line))
        events.append({"name": name, "transitions": transitions})
    return events


def parse_states(source: str) -> list[str]:
    states = STATE_RE.findall(source)
    for group in MULTI_STATE_RE.findall(source):
        states.extend(re.findall(r":(\w+)", group))
    return list(dict.fromkeys(states))


def parse_callbacks(source: str) -> list[str]:
    return [f"{cb} {args.strip()}" for cb, args in CALLBACK_RE.findall(source)]


class StateMachineExtractor(FileExtractor):
    family = "state_machine"
    directories = MODEL_DIRECTORIES

    def matches(self, source: str) -> bool:
        return bool(SIGNATURE.search(source))

    def build_units(self, file_path: str, source: str) -> list[ExtractedUnit]:
        detected = detect_class_name(source)
        if detected:
            class_name = detected[0]
        else:
            class_name = camelize(file_path.removeprefix("app/models/").removesuffix(".rb"))

        units = []
        units.extend(self._aasm(class_name, file_path, source))
        units.extend(self._statesman(class_name, file_path, source))
        units.extend(self._state_machines(class_name, file_path, source))
        return units

    def _aasm(self, class_name: str, file_path: str, source: str) -> list[ExtractedUnit]:
        if not re.search(r"include\s+AASM\b", source):
            return []
        initial = AASM_INITIAL_STATE_RE.search(source) or AASM_INITIAL_OPTION_RE.search(source)
        events = parse_events(source)
        return [self._unit(
            identifier=f"{class_name}::aasm",
            class_name=class_name,
            file_path=file_path,
            source=source,
            gem_detected="aasm",
            states=parse_states(source),
            events=events,
            transitions=[t for e in events for t in e["transitions"]],
            initial_state=initial.group(1) if initial else None,
            callbacks=parse_callbacks(source),
        )]

    def _statesman(self, class_name: str, file_path: str, source: str) -> list[ExtractedUnit]:
        if not re.search(r"include\s+Statesman::Machine\b", source):
            return []
        initial = re.search(r"state\s+:(\w+)[^#\n]*,\s*initial:\s*true", source)
        transitions = [
            {"from": src, "to": dst, "guard": None}
            for src, targets in STATESMAN_TRANSITION_RE.findall(source)
            for dst in _symbols(targets)
        ]
        return [self._unit(
            identifier=f"{class_name}::statesman",
            class_name=class_name,
            file_path=file_path,
            source=source,
            gem_detected="statesman",
            states=parse_states(source),
            events=[],
            transitions=transitions,
            initial_state=initial.group(1) if initial else None,
            callbacks=parse_callbacks(source),
        )]

    def _state_machines(self, class_name: str, file_path: str, source: str) -> list[ExtractedUnit]:
        units = []
        for attr_name in dict.fromkeys(MACHINE_RE.findall(source)):
            opener = re.compile(rf"^\s*state_machine\s+:{re.escape(attr_name)}\b.*\bdo\b")
            blocks = extract_blocks(source, opener)
            block = blocks[0][1] if blocks else ""
            events = parse_events(block)
            initial = re.search(rf"state_machine\s+:{re.escape(attr_name)}[^#\n]*initial:\s*:(\w+)", source)
            units.append(self._unit(
                identifier=f"{class_name}::state_machine_{attr_name}",
                class_name=class_name,
                file_path=file_path,
                source=source,
                gem_detected="state_machines",
                states=parse_states(block),
                events=events,
                transitions=[t for e in events for t in e["transitions"]],
                initial_state=initial.group(1) if initial else None,
                callbacks=parse_callbacks(block),
                attribute=attr_name,
            ))
        return units

    def _unit(self, identifier: str, class_name: str, file_path: str, source: str,
              gem_detected: str, states, events, transitions, initial_state, callbacks,
              attribute: str | None = None) -> ExtractedUnit:
        deps = [Dependency("model", class_name, "state_machine")]
        deps.extend(scan_service_dependencies(source, via="state_machine_callback"))
        deps.extend(scan_job_dependencies(source, via="state_machine_callback"))
        return ExtractedUnit(
            type="state_machine",
            identifier=identifier,
            namespace=extract_namespace(class_name),
            file_path=file_path,
            source_code=f"# State machine ({gem_detected}) for {class_name}\n{source}",
            metadata={
                "gem_detected": gem_detected,
                "attribute": attribute,
                "states": states,
                "events": events,
                "transitions": transitions,
                "initial_state": initial_state,
                "callbacks": callbacks,
                "model_name": class_name,
                "loc": count_loc(source),
            },
            dependencies=deps,
        )
