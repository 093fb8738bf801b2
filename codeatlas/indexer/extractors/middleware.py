"""The Rack middleware stack as a single unit."""

from ..live_registry import LiveMiddleware
from ..unit import ExtractedUnit
from . import RuntimeExtractor

STACK_IDENTIFIER = "MiddlewareStack"


class MiddlewareExtractor(RuntimeExtractor):
    family = "middleware"

    def live_candidates(self) -> list[list[LiveMiddleware]]:
        entries = sorted(self.registry.middleware_entries(), key=lambda e: e.position)
        # The whole stack is one candidate; an empty stack yields no unit
        return [entries] if entries else []

    def describe(self, candidate: list[LiveMiddleware]) -> str:
        return STACK_IDENTIFIER

    def extract_candidate(self, candidate: list[LiveMiddleware]) -> list[ExtractedUnit]:
        lines = ["# Rack Middleware Stack", f"# {len(candidate)} middleware(s)", "#"]
        for entry in candidate:
            args = f" ({', '.join(entry.args)})" if entry.args else ""
            lines.append(f"# [{entry.position}] {entry.name}{args}")

        return [ExtractedUnit(
            type="middleware",
            identifier=STACK_IDENTIFIER,
            file_path=None,
            source_code="\n".join(lines),
            metadata={
                "middleware_count": len(candidate),
                "middleware_list": [e.name for e in candidate],
                "middleware_details": [
                    {"name": e.name, "args": list(e.args), "position": e.position} for e in candidate
                ],
                "loc": len(lines),
            },
        )]
