"""Extraction orchestration: run extractors, merge and deduplicate units."""

import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any

from codeatlas.utils.logging import logger

from .config import DEFAULT_MAX_WORKERS
from .extractors import BaseExtractor
from .unit import ExtractedUnit


@dataclass
class ExtractorOutcome:
    """What one extractor contributed to a run."""

    name: str
    family: str
    units: list[ExtractedUnit] = field(default_factory=list)
    error: str | None = None
    skipped: bool = False
    elapsed: float = 0.0


class ExtractionOrchestrator:
    """Runs an ordered list of extractors and merges their output.

    The caller decides which extractors run and in what order; the position
    in that list is the extractor's rank. Units are deduplicated by
    identifier and the lowest rank wins, whether extractors ran sequentially
    or on a thread pool.
    """

    def __init__(
        self,
        extractors: Sequence[BaseExtractor],
        concurrent: bool = False,
        max_workers: int = DEFAULT_MAX_WORKERS,
        max_seconds: float = 0.0,
    ):
        self.extractors = list(extractors)
        self.concurrent = concurrent
        self.max_workers = max(1, max_workers)
        self.max_seconds = max_seconds
        self.outcomes: list[ExtractorOutcome | None] = []
        self.duplicates: list[dict[str, Any]] = []
        self._deadline: float | None = None

    def _past_deadline(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def _run_one(self, extractor: BaseExtractor, candidates: list[Any] | None = None) -> ExtractorOutcome:
        outcome = ExtractorOutcome(name=extractor.name, family=extractor.family)
        if self._past_deadline():
            logger.warning(f"Time budget exhausted, skipping {extractor.name}")
            outcome.skipped = True
            return outcome

        start = time.monotonic()
        try:
            outcome.units = list(extractor.extract_all(candidates))
        except Exception as e:
            # extract_all should never raise; a buggy extractor must not sink the run
            logger.error(f"{extractor.name} failed: {e}")
            outcome.error = str(e)
            outcome.units = []
        finally:
            try:
                extractor.cleanup()
            except Exception as e:
                logger.debug(f"{extractor.name} cleanup failed: {e}")
        outcome.elapsed = time.monotonic() - start
        logger.debug(f"{extractor.name}: {len(outcome.units)} units in {outcome.elapsed:.2f}s")
        return outcome

    def _prelist(self) -> list[list[Any] | None]:
        """Discover candidates in rank order when the reader enforces a file budget.

        The budget goes to whichever caller lists a file first, so under a
        thread pool it is handed out here, before any worker starts.
        """
        if not any(e.reader.max_files for e in self.extractors):
            return [None] * len(self.extractors)
        return [None if self._past_deadline() else e.discover() for e in self.extractors]

    def run(self) -> list[ExtractedUnit]:
        """Run every extractor and return the merged, deduplicated units."""
        self._deadline = time.monotonic() + self.max_seconds if self.max_seconds > 0 else None
        self.outcomes = [None] * len(self.extractors)

        if self.concurrent and len(self.extractors) > 1:
            listed = self._prelist()
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(self._run_one, extractor, listed[rank]): rank
                    for rank, extractor in enumerate(self.extractors)
                }
                for future in as_completed(futures):
                    rank = futures[future]
                    self.outcomes[rank] = future.result()
        else:
            for rank, extractor in enumerate(self.extractors):
                self.outcomes[rank] = self._run_one(extractor)

        return self.merge()

    def merge(self) -> list[ExtractedUnit]:
        """Flatten outcomes in rank order; first identifier seen wins."""
        seen: dict[str, str] = {}
        merged: list[ExtractedUnit] = []
        self.duplicates = []
        for outcome in self.outcomes:
            if outcome is None:
                continue
            for unit in outcome.units:
                if unit.identifier in seen:
                    self.duplicates.append({
                        "identifier": unit.identifier,
                        "kept_from": seen[unit.identifier],
                        "dropped_from": outcome.name,
                    })
                    continue
                seen[unit.identifier] = outcome.name
                merged.append(unit)

        if self.duplicates:
            logger.debug(f"Dropped {len(self.duplicates)} duplicate identifiers")
        return merged

    def stats(self) -> dict[str, Any]:
        outcomes = [o for o in self.outcomes if o is not None]
        return {
            "extractors": len(self.extractors),
            "failed": [o.name for o in outcomes if o.error],
            "skipped": [o.name for o in outcomes if o.skipped],
            "duplicates": len(self.duplicates),
            "per_extractor": {o.name: len(o.units) for o in outcomes},
        }
