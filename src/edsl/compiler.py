"""
Main compiler module.

Combines parsing, graph building and layout to turn EDSL source text into
a positioned IntermediateGraph, optionally handed to a serializer.
"""

import logging
import time
from typing import Any, Callable, Optional

from .builder import IGRBuilder
from .config import CompilerConfig, LayoutContext
from .igr import IntermediateGraph
from .manager import LayoutManager
from .measure import PillowTextMeasurer
from .models import Document
from .parser import Parser
from .tracer import CompileTrace

logger = logging.getLogger(__name__)


class EDSLCompiler:
    """
    Compile EDSL diagrams into positioned graphs.

    Example:
        >>> compiler = EDSLCompiler()
        >>> graph = compiler.compile('''
        ...     a[Start] -> b[Process] -> c[End]
        ... ''')
        >>> graph.nodes["b"].x, graph.nodes["b"].y
    """

    def __init__(self, config: Optional[CompilerConfig] = None):
        """
        Initialize the compiler.

        Args:
            config: Compiler configuration; defaults to CompilerConfig().
        """
        self.config = config or CompilerConfig()
        measure = self.config.measure
        if measure is None:
            measure = PillowTextMeasurer()

        self.parser = Parser()
        self.builder = IGRBuilder(measure)
        self.layout_manager = LayoutManager(self.config)
        self._trace: Optional[CompileTrace] = None

    def parse(self, input_text: str) -> Document:
        """Parse source text (raises ParseError)."""
        return self.parser.parse(input_text)

    def build(self, document: Document) -> IntermediateGraph:
        """Build an unpositioned graph (raises BuildError)."""
        return self.builder.build(document)

    def layout(
        self, graph: IntermediateGraph, context: Optional[LayoutContext] = None
    ) -> IntermediateGraph:
        """
        Lay out a graph in place (raises LayoutError).

        Args:
            graph: Graph from build().
            context: Layout settings; derived from the graph's configuration
                block and the compiler overrides when not given.

        Returns:
            The same graph, now positioned.
        """
        if context is None:
            context = self.config.context_for(graph.config)
        self.layout_manager.layout(graph, context)
        return graph

    def compile(
        self,
        input_text: str,
        debug: bool = False,
        serializer: Optional[Callable[[IntermediateGraph], Any]] = None,
    ) -> Any:
        """
        Run the whole pipeline on source text.

        Args:
            input_text: EDSL source text
            debug: If True, record a CompileTrace (see get_trace())
            serializer: Optional callable applied to the positioned graph

        Returns:
            The positioned IntermediateGraph, or the serializer's result
            when a serializer is given.

        Raises:
            ParseError: The text is malformed.
            BuildError: The document does not describe a valid graph.
            LayoutError: The graph cannot be laid out.
        """
        trace = CompileTrace(input_text=input_text) if debug else None
        self._trace = trace

        started = time.perf_counter()
        document = self.parse(input_text)
        if trace is not None:
            trace.add_stage(
                "parse",
                {
                    "statements": len(document.statements),
                    "config": document.config,
                },
                time.perf_counter() - started,
            )

        started = time.perf_counter()
        graph = self.build(document)
        if trace is not None:
            trace.add_stage(
                "build",
                {
                    "nodes": len(graph.nodes),
                    "edges": len(graph.edges),
                    "containers": len(graph.containers),
                },
                time.perf_counter() - started,
            )

        started = time.perf_counter()
        context = self.config.context_for(graph.config)
        self.layout(graph, context)
        if trace is not None:
            trace.algorithm = context.algorithm
            trace.add_stage(
                "layout",
                {
                    "algorithm": context.algorithm,
                    "direction": context.direction.value,
                    "parallel": self.config.parallel,
                    "bounding_box": graph.bounding_box(),
                    "cache": self.layout_manager.cache_stats(),
                },
                time.perf_counter() - started,
            )

        logger.debug("Compiled diagram with '%s' layout", context.algorithm)
        if serializer is not None:
            return serializer(graph)
        return graph

    def get_trace(self) -> Optional[CompileTrace]:
        """
        Get the trace from the last compile(debug=True) call.

        Returns:
            CompileTrace, or None if the last call was not in debug mode.
        """
        return self._trace


def compile_edsl(input_text: str, **config: Any) -> IntermediateGraph:
    """
    Convenience function to compile EDSL source with default settings.

    Args:
        input_text: EDSL source text
        **config: CompilerConfig fields (e.g. parallel=True)

    Returns:
        Positioned IntermediateGraph
    """
    compiler = EDSLCompiler(CompilerConfig(**config))
    return compiler.compile(input_text)
