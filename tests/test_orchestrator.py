"""Tests for extraction orchestration.

Stub extractors stand in for real ones so failure isolation, rank-ordered
deduplication, concurrency and the time budget can be checked directly.
"""

import time

import pytest

from codeatlas.indexer.core import SourceReader
from codeatlas.indexer.extractors import BaseExtractor, ExtractorContext, FileExtractor
from codeatlas.indexer.orchestrator import ExtractionOrchestrator
from codeatlas.indexer.unit import ExtractedUnit


class StubExtractor(BaseExtractor):
    family = "model"

    def __init__(self, context, label, identifiers=(), source="static", delay=0.0):
        super().__init__(context)
        self.label = label
        self.identifiers = list(identifiers)
        self.source = source
        self.delay = delay
        self.cleaned_up = False

    @property
    def name(self):
        return self.label

    def candidates(self):
        if self.delay:
            time.sleep(self.delay)
        return self.identifiers

    def extract_candidate(self, candidate):
        return [ExtractedUnit(type="model", identifier=candidate, metadata={"source": self.source})]

    def cleanup(self):
        self.cleaned_up = True


class ExplodingExtractor(StubExtractor):
    """Breaks the never-raises contract on purpose."""

    def extract_all(self, candidates=None):
        raise RuntimeError("boom")


class GlobExtractor(StubExtractor):
    """Lists files through the shared reader, so it draws on the file budget."""

    def __init__(self, context, label, pattern, delay=0.0):
        super().__init__(context, label, delay=delay)
        self.pattern = pattern

    def candidates(self):
        if self.delay:
            time.sleep(self.delay)
        return self.reader.glob(self.pattern)


class BadCandidateExtractor(StubExtractor):
    def extract_candidate(self, candidate):
        if candidate == "Broken":
            raise ValueError("unparseable")
        return super().extract_candidate(candidate)


class HooklessFileExtractor(FileExtractor):
    """Overrides neither build_unit nor build_units."""

    family = "model"
    directories = ["app"]


@pytest.fixture
def context(tmp_path):
    return ExtractorContext.for_root(tmp_path)


class TestFailureIsolation:
    def test_raising_extractor_does_not_abort_run(self, context):
        boom = ExplodingExtractor(context, "Boom")
        orchestrator = ExtractionOrchestrator([
            StubExtractor(context, "First", ["A"]),
            boom,
            StubExtractor(context, "Last", ["B"]),
        ])

        units = orchestrator.run()

        assert [u.identifier for u in units] == ["A", "B"]
        assert orchestrator.stats()["failed"] == ["Boom"]
        assert boom.cleaned_up

    def test_bad_candidate_skipped(self, context):
        extractor = BadCandidateExtractor(context, "Partial", ["Good", "Broken", "Fine"])
        units = ExtractionOrchestrator([extractor]).run()
        assert [u.identifier for u in units] == ["Good", "Fine"]

    def test_missing_build_hook_is_a_failed_candidate(self, tmp_path):
        (tmp_path / "app").mkdir()
        (tmp_path / "app" / "thing.rb").write_text("class Thing\nend\n", encoding="utf-8")
        extractor = HooklessFileExtractor(ExtractorContext.for_root(tmp_path))

        assert extractor.extract_all() == []
        with pytest.raises(NotImplementedError, match="HooklessFileExtractor"):
            extractor.build_unit("app/thing.rb", "class Thing\nend\n")


class TestDeduplication:
    def test_lower_rank_wins(self, context):
        orchestrator = ExtractionOrchestrator([
            StubExtractor(context, "Runtime", ["Order"], source="runtime"),
            StubExtractor(context, "Static", ["Order", "LineItem"], source="static"),
        ])

        units = orchestrator.run()

        assert [u.identifier for u in units] == ["Order", "LineItem"]
        assert units[0].metadata["source"] == "runtime"
        assert orchestrator.duplicates == [
            {"identifier": "Order", "kept_from": "Runtime", "dropped_from": "Static"}
        ]
        assert orchestrator.stats()["duplicates"] == 1

    def test_identifiers_unique(self, context):
        extractors = [
            StubExtractor(context, f"E{i}", [f"U{j}" for j in range(i, i + 5)])
            for i in range(4)
        ]
        units = ExtractionOrchestrator(extractors).run()
        identifiers = [u.identifier for u in units]
        assert len(identifiers) == len(set(identifiers)) == 8

    def test_concurrent_run_keeps_rank_order(self, context):
        # The higher-ranked extractor finishes last but must still win
        orchestrator = ExtractionOrchestrator(
            [
                StubExtractor(context, "Slow", ["Order"], source="runtime", delay=0.05),
                StubExtractor(context, "Fast", ["Order", "User"], source="static"),
            ],
            concurrent=True,
            max_workers=2,
        )

        units = orchestrator.run()

        assert [u.identifier for u in units] == ["Order", "User"]
        assert units[0].metadata["source"] == "runtime"


class TestTimeBudget:
    def test_extractors_after_deadline_are_skipped(self, context):
        orchestrator = ExtractionOrchestrator(
            [
                StubExtractor(context, "Slow", ["A"], delay=0.05),
                StubExtractor(context, "Late", ["B"]),
            ],
            max_seconds=0.01,
        )

        units = orchestrator.run()

        assert [u.identifier for u in units] == ["A"]
        stats = orchestrator.stats()
        assert stats["skipped"] == ["Late"]
        assert stats["per_extractor"] == {"Slow": 1, "Late": 0}

    def test_no_budget_runs_everything(self, context):
        orchestrator = ExtractionOrchestrator([StubExtractor(context, "Only", ["A"])])
        orchestrator.run()
        outcome = orchestrator.outcomes[0]
        assert outcome.name == "Only"
        assert not outcome.skipped
        assert outcome.error is None


class TestFileBudget:
    @pytest.fixture
    def budgeted_context(self, tmp_path):
        for rel in ("app/a/one.rb", "app/a/two.rb", "app/b/one.rb", "app/b/two.rb"):
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("# ruby\n", encoding="utf-8")

        def build():
            return ExtractorContext(root_path=tmp_path, reader=SourceReader(tmp_path, max_files=2))

        return build

    @pytest.mark.parametrize("concurrent", [False, True])
    def test_budget_goes_to_lower_rank(self, budgeted_context, concurrent):
        # The first extractor lists its files last when run on a pool
        context = budgeted_context()
        orchestrator = ExtractionOrchestrator(
            [
                GlobExtractor(context, "Slow", "app/a/*.rb", delay=0.05),
                GlobExtractor(context, "Fast", "app/b/*.rb"),
            ],
            concurrent=concurrent,
            max_workers=2,
        )

        units = orchestrator.run()

        assert [u.identifier for u in units] == ["app/a/one.rb", "app/a/two.rb"]
        assert context.reader.stats["skipped_limit"] == 2
