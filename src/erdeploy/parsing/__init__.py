"""Mermaid erDiagram parsing and rendering."""

from .diagram_parser import DiagramParser, ScanState, parse_diagram, step
from .renderer import render_diagram

__all__ = ["DiagramParser", "ScanState", "parse_diagram", "step", "render_diagram"]
