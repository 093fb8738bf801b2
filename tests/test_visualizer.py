"""Tests for Mermaid rendering."""

from codeatlas.graph.builder import build_graph
from codeatlas.graph.visualizer import GRAPH_HEADER, MermaidRenderer, escape_label, sanitize_id
from codeatlas.indexer.unit import Dependency, ExtractedUnit


class TestIds:
    def test_sanitize_id(self):
        assert sanitize_id("Admin::UsersController") == "Admin__UsersController"
        assert sanitize_id("GET /orders/:id") == "GET__orders__id"

    def test_escape_label(self):
        assert escape_label('say "hi"') == "say #quot;hi#quot;"


class TestCallGraph:
    def test_empty_input(self):
        assert MermaidRenderer().render_call_graph(None) == GRAPH_HEADER
        assert MermaidRenderer().render_call_graph([]) == GRAPH_HEADER

    def test_nodes_and_labelled_edges(self):
        units = [
            ExtractedUnit(
                type="controller",
                identifier="OrdersController",
                dependencies=[
                    Dependency("model", "Order", "code_reference"),
                    Dependency("service", "Order", "code_reference"),
                ],
            ),
            ExtractedUnit(type="model", identifier="Order"),
        ]
        diagram = MermaidRenderer().render_call_graph(units)
        lines = diagram.splitlines()

        assert lines[0] == "graph TD"
        assert '    OrdersController["OrdersController"]' in lines
        assert lines.count("    OrdersController -->|code_reference| Order") == 1
        assert lines.count('    Order["Order"]') == 1


class TestDependencyMap:
    def _graph_data(self, make_unit):
        units = [
            make_unit("OrdersController", ["Order", "Stripe"], unit_type="controller"),
            make_unit("Order"),
        ]
        return build_graph(units).to_dict()

    def test_empty_data(self):
        assert MermaidRenderer().render_dependency_map({}) == GRAPH_HEADER
        assert MermaidRenderer().render_dependency_map(None) == GRAPH_HEADER

    def test_subgraph_per_type(self, make_unit):
        diagram = MermaidRenderer().render_dependency_map(self._graph_data(make_unit))
        assert "    subgraph controller" in diagram
        assert "    subgraph model" in diagram
        assert "    classDef model fill:#e1f5fe" in diagram
        assert "OrdersController -->|code_reference| Order" in diagram

    def test_virtual_targets_optional(self, make_unit):
        data = self._graph_data(make_unit)
        renderer = MermaidRenderer()
        assert "Stripe" not in renderer.render_dependency_map(data)
        assert "OrdersController -->|code_reference| Stripe" in renderer.render_dependency_map(
            data, include_virtual=True
        )


class TestFocus:
    def test_neighbourhood(self, make_unit):
        data = build_graph([
            make_unit("A", ["B"]),
            make_unit("B", ["C"]),
            make_unit("C", ["D"]),
            make_unit("D"),
        ]).to_dict()

        diagram = MermaidRenderer().render_focus(data, "B", depth=1)

        assert diagram.endswith("    style B stroke-width:3px")
        assert 'A["A"]' in diagram
        assert 'C["C"]' in diagram
        assert 'D["D"]' not in diagram

    def test_deeper_focus(self, make_unit):
        data = build_graph([make_unit("A", ["B"]), make_unit("B", ["C"]), make_unit("C")]).to_dict()
        assert 'C["C"]' in MermaidRenderer().render_focus(data, "A", depth=2)

    def test_unknown_focus(self, make_unit):
        data = build_graph([make_unit("A")]).to_dict()
        assert MermaidRenderer().render_focus(data, "Nope") == GRAPH_HEADER
