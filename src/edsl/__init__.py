"""
edsl - Diagram compiler for a small textual diagram language

Parses EDSL source (nodes, edges, containers, groups, styles), builds an
intermediate graph and lays it out with a layered (dagre) or force-directed
engine, ready for any serializer.

Example:
    >>> from edsl import EDSLCompiler
    >>> compiler = EDSLCompiler()
    >>> graph = compiler.compile('''
    ...     web[Web Server] -> api[API] -> db[Database]
    ... ''')
    >>> graph.nodes["api"].x, graph.nodes["api"].y

Debug Mode Example:
    >>> graph = compiler.compile("a[A] -> b[B]", debug=True)
    >>> print(compiler.get_trace().summary())
"""

import logging

from .builder import IGRBuilder, build
from .cache import LayoutCache
from .compiler import EDSLCompiler, compile_edsl
from .config import CompilerConfig, Direction, LayoutContext
from .dagre import DagreEngine
from .errors import (
    BuildError,
    ConfigurationError,
    CycleDetectedError,
    DuplicateIdError,
    EDSLError,
    EmptyContainerError,
    InvalidAttributeError,
    LayoutError,
    ParseError,
    UnknownNodeError,
)
from .force import ForceEngine
from .igr import BoundingBox, Container, Edge, IntermediateGraph, Node, Style
from .manager import LayoutManager
from .measure import HeuristicTextMeasurer, PillowTextMeasurer, TextMeasurer
from .models import (
    ArrowKind,
    ContainerDecl,
    Document,
    EdgeDecl,
    GroupDecl,
    NodeDecl,
)
from .parser import Parser, parse_edsl
from .strategy import (
    AdaptiveStrategy,
    EngineAdapter,
    FallbackStrategy,
    LayoutEngine,
    LayoutQuality,
    LayoutStrategy,
    score_layout,
)
from .tracer import CompileTrace, PipelineStage

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Main API
    "EDSLCompiler",
    "compile_edsl",
    "CompilerConfig",
    # Parser
    "Parser",
    "parse_edsl",
    "Document",
    "NodeDecl",
    "EdgeDecl",
    "ContainerDecl",
    "GroupDecl",
    "ArrowKind",
    # Graph
    "IGRBuilder",
    "build",
    "IntermediateGraph",
    "Node",
    "Edge",
    "Container",
    "Style",
    "BoundingBox",
    # Text measurement
    "TextMeasurer",
    "PillowTextMeasurer",
    "HeuristicTextMeasurer",
    # Layout
    "LayoutManager",
    "LayoutContext",
    "Direction",
    "LayoutStrategy",
    "LayoutEngine",
    "EngineAdapter",
    "FallbackStrategy",
    "AdaptiveStrategy",
    "LayoutQuality",
    "score_layout",
    "DagreEngine",
    "ForceEngine",
    "LayoutCache",
    # Errors
    "EDSLError",
    "ParseError",
    "BuildError",
    "UnknownNodeError",
    "DuplicateIdError",
    "EmptyContainerError",
    "InvalidAttributeError",
    "LayoutError",
    "CycleDetectedError",
    "ConfigurationError",
    # Debug/Tracing
    "CompileTrace",
    "PipelineStage",
]
