"""Graph package - dependency graph over extracted units.

- builder: DependencyGraph construction, ranking and persistence shape
- analyzer: orphans, dead ends, hubs, cycles, bridges
- visualizer: Mermaid rendering
"""

from .analyzer import GraphAnalysisReport, GraphAnalyzer, analyze_graph
from .builder import DependencyGraph, build_graph
from .visualizer import MermaidRenderer

__all__ = [
    "DependencyGraph",
    "GraphAnalysisReport",
    "GraphAnalyzer",
    "MermaidRenderer",
    "analyze_graph",
    "build_graph",
]
