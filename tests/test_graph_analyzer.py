"""Tests for structural graph analysis.

Covers:
- Orphans and dead ends over the closed graph
- Hub ranking and tie-breaking
- Cycle detection, normalization, dedup and capping
- Sampled bridge detection
- Report serialization and empty-graph behavior
"""

import pytest

from codeatlas.graph.analyzer import GraphAnalysisReport, GraphAnalyzer, analyze_graph, normalize_cycle
from codeatlas.graph.builder import DependencyGraph, build_graph


def edges_exist(graph, cycle):
    closed = graph.known_edges()
    loop = cycle + cycle[:1]
    return all(b in closed[a] for a, b in zip(loop, loop[1:]))


class TestCycles:
    def test_three_node_cycle(self, make_unit):
        graph = build_graph([make_unit("A", ["B"]), make_unit("B", ["C"]), make_unit("C", ["A"])])
        assert GraphAnalyzer(graph).cycles() == [["A", "B", "C"]]

    def test_cycle_independent_of_unit_order(self, make_unit):
        graph = build_graph([make_unit("C", ["A"]), make_unit("A", ["B"]), make_unit("B", ["C"])])
        assert GraphAnalyzer(graph).cycles() == [["A", "B", "C"]]

    def test_reported_cycles_are_real_loops(self, make_unit):
        graph = build_graph([
            make_unit("A", ["B"]),
            make_unit("B", ["C"]),
            make_unit("C", ["A", "D"]),
            make_unit("D", ["C"]),
            make_unit("E", ["A"]),
        ])
        cycles = GraphAnalyzer(graph).cycles()

        assert {tuple(c) for c in cycles} == {("A", "B", "C"), ("C", "D")}
        assert all(edges_exist(graph, c) for c in cycles)

    def test_self_loop(self, make_unit):
        graph = build_graph([make_unit("Tree", ["Tree"])])
        assert GraphAnalyzer(graph).cycles() == [["Tree"]]

    def test_virtual_edges_never_form_cycles(self, make_unit):
        graph = build_graph([make_unit("A", ["Ghost"]), make_unit("B", ["Ghost"])])
        assert GraphAnalyzer(graph).cycles() == []

    def test_cycle_cap(self, make_unit):
        units = []
        for i in range(5):
            units.append(make_unit(f"X{i}", [f"Y{i}"]))
            units.append(make_unit(f"Y{i}", [f"X{i}"]))
        analyzer = GraphAnalyzer(build_graph(units))
        cycles = analyzer.cycles(max_cycles=2)
        assert len(cycles) == 2
        assert analyzer.cycles_truncated

    def test_cap_reached_exactly_is_not_truncation(self, make_unit):
        units = [make_unit("X", ["Y"]), make_unit("Y", ["X"]), make_unit("P", ["Q"]), make_unit("Q", ["P"])]
        analyzer = GraphAnalyzer(build_graph(units))
        assert len(analyzer.cycles(max_cycles=2)) == 2
        assert not analyzer.cycles_truncated

    def test_normalize_cycle(self):
        assert normalize_cycle(["C", "A", "B"]) == ("A", "B", "C")
        assert normalize_cycle([]) == ()


class TestNodeClassification:
    def test_isolated_unit_is_orphan(self, make_unit):
        graph = build_graph([make_unit("A", ["B"]), make_unit("B"), make_unit("Lonely")])
        analyzer = GraphAnalyzer(graph)
        assert analyzer.orphans() == ["Lonely"]
        assert analyzer.dead_ends() == ["B"]

    def test_only_virtual_dependencies_is_orphan(self, make_unit):
        graph = build_graph([make_unit("X", ["ExternalGem"])])
        assert GraphAnalyzer(graph).orphans() == ["X"]

    def test_hubs_ranked_by_dependents(self, make_unit):
        graph = build_graph([
            make_unit("A", ["C", "D"]),
            make_unit("B", ["C"]),
            make_unit("C"),
            make_unit("D"),
            make_unit("E"),
        ])
        hubs = GraphAnalyzer(graph).hubs()

        assert [h["identifier"] for h in hubs] == ["C", "D"]
        assert hubs[0] == {"identifier": "C", "type": "model", "dependent_count": 2, "dependents": ["A", "B"]}

    def test_hub_ties_broken_by_identifier(self, make_unit):
        graph = build_graph([make_unit("A", ["Z", "M"]), make_unit("Z"), make_unit("M")])
        assert [h["identifier"] for h in GraphAnalyzer(graph).hubs(limit=1)] == ["M"]


class TestBridges:
    def test_single_choke_point(self, make_unit):
        units = [make_unit(f"S{i}", ["M"]) for i in range(5)]
        units.append(make_unit("M", [f"T{i}" for i in range(5)]))
        units.extend(make_unit(f"T{i}") for i in range(5))

        bridges = GraphAnalyzer(build_graph(units)).bridges()

        assert [b["identifier"] for b in bridges] == ["M"]
        assert bridges[0]["score"] > 0

    def test_too_small_graph(self, make_unit):
        graph = build_graph([make_unit("A", ["B"]), make_unit("B")])
        assert GraphAnalyzer(graph).bridges() == []

    def test_deterministic(self, make_unit):
        units = [make_unit(f"N{i}", [f"N{i + 1}"]) for i in range(8)] + [make_unit("N8")]
        graph = build_graph(units)
        assert GraphAnalyzer(graph).bridges() == GraphAnalyzer(graph).bridges()


class TestReport:
    def test_empty_graph(self):
        report = analyze_graph(DependencyGraph())
        assert report.orphans == []
        assert report.dead_ends == []
        assert report.hubs == []
        assert report.cycles == []
        assert report.bridges == []
        assert report.stats == {"orphan_count": 0, "dead_end_count": 0, "hub_count": 0, "cycle_count": 0}

    def test_dict_round_trip(self, make_unit):
        graph = build_graph([make_unit("A", ["B"]), make_unit("B", ["A"]), make_unit("C")])
        report = GraphAnalyzer(graph).analyze()
        data = report.to_dict()

        assert data["stats"]["cycle_count"] == 1
        restored = GraphAnalysisReport.from_dict(data)
        assert restored.cycles == [["A", "B"]]
        assert restored.orphans == ["C"]

    @pytest.mark.parametrize("limit", [0, 1])
    def test_hub_limit_respected(self, make_unit, limit):
        graph = build_graph([make_unit("A", ["B", "C"]), make_unit("B"), make_unit("C")])
        assert len(GraphAnalyzer(graph).analyze(hub_limit=limit).hubs) == limit
