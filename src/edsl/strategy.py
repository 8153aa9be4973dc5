"""
Layout strategy abstraction.

A layout strategy positions every node, edge and container of an
IntermediateGraph in place. Concrete engines (dagre, force) implement the
smaller LayoutEngine protocol and are wrapped with EngineAdapter; strategies
can then be composed:

- FallbackStrategy: try strategies in order until one succeeds.
- AdaptiveStrategy: pick among candidates, optionally evaluating all of
  them concurrently and keeping the best-scoring layout.

Usage:
    >>> from edsl.dagre import DagreEngine
    >>> from edsl.force import ForceEngine
    >>> strategy = AdaptiveStrategy(
    ...     [EngineAdapter(DagreEngine()), EngineAdapter(ForceEngine())],
    ...     parallel=True,
    ... )
    >>> manager.register("best", strategy)
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import combinations
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

from .config import LayoutContext
from .errors import LayoutError
from .igr import IntermediateGraph, Point

logger = logging.getLogger(__name__)


class LayoutEngine(Protocol):
    """Protocol for concrete layout algorithms."""

    name: str

    def layout(self, graph: IntermediateGraph, context: LayoutContext) -> None:
        """Position every entity of the graph in place."""
        ...

    def supports(self, graph: IntermediateGraph) -> bool:
        """Whether the algorithm can lay out this graph."""
        ...


class LayoutStrategy(Protocol):
    """Protocol for anything the layout manager can dispatch to."""

    name: str

    def apply(self, graph: IntermediateGraph, context: LayoutContext) -> None:
        """Position every entity of the graph in place."""
        ...

    def supports(self, graph: IntermediateGraph) -> bool:
        """Whether the strategy can lay out this graph."""
        ...


class EngineAdapter:
    """
    Expose a LayoutEngine as a LayoutStrategy.

    Keyword overrides pin context fields for this strategy only, e.g.
    ``EngineAdapter(ForceEngine(), iterations=300)``.
    """

    def __init__(self, engine: LayoutEngine, **overrides: Any):
        self.engine = engine
        self.name = engine.name
        self.overrides = overrides

    def __repr__(self) -> str:
        return f"EngineAdapter({self.engine.name!r})"

    def apply(self, graph: IntermediateGraph, context: LayoutContext) -> None:
        if self.overrides:
            context = context.with_overrides(**self.overrides)
        self.engine.layout(graph, context)

    def supports(self, graph: IntermediateGraph) -> bool:
        return self.engine.supports(graph)


def as_strategy(candidate: Any) -> LayoutStrategy:
    """Wrap engines so strategies and engines can be registered alike."""
    if hasattr(candidate, "apply"):
        return candidate
    if hasattr(candidate, "layout"):
        return EngineAdapter(candidate)
    raise TypeError(
        f"{candidate!r} is neither a layout strategy (apply) nor an engine (layout)"
    )


class FallbackStrategy:
    """
    Run the first strategy that supports the graph and succeeds.

    Each attempt works on a private copy, so a failed attempt never leaves
    partial geometry behind.
    """

    def __init__(self, strategies: Sequence[Any], name: str = "fallback"):
        if not strategies:
            raise ValueError("FallbackStrategy needs at least one strategy")
        self.strategies = [as_strategy(s) for s in strategies]
        self.name = name

    def supports(self, graph: IntermediateGraph) -> bool:
        return any(s.supports(graph) for s in self.strategies)

    def apply(self, graph: IntermediateGraph, context: LayoutContext) -> None:
        failures: List[str] = []
        for strategy in self.strategies:
            if not strategy.supports(graph):
                failures.append(f"{strategy.name}: graph not supported")
                continue
            work = graph.copy()
            try:
                strategy.apply(work, context)
            except LayoutError as exc:
                logger.debug("Fallback: %s failed: %s", strategy.name, exc)
                failures.append(f"{strategy.name}: {exc}")
                continue
            graph.adopt_layout(work)
            logger.debug("Fallback: laid out with %s", strategy.name)
            return

        raise LayoutError(
            "No strategy could lay out the graph (" + "; ".join(failures) + ")"
        )


@dataclass
class LayoutQuality:
    """
    Quality measures of a finished layout (lower is better).

    Attributes:
        crossings: Number of pairs of edge segments that cross.
        overlaps: Number of pairs of node boxes that overlap.
        total_length: Summed length of all edge routes.
    """

    crossings: int
    overlaps: int
    total_length: float

    @property
    def score(self) -> float:
        return self.crossings * 1000 + self.overlaps * 1000 + self.total_length


def _orientation(a: Point, b: Point, c: Point) -> float:
    return (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])


def segments_cross(p1: Point, p2: Point, q1: Point, q2: Point) -> bool:
    """Proper crossing test; touching at an endpoint does not count."""
    d1 = _orientation(q1, q2, p1)
    d2 = _orientation(q1, q2, p2)
    d3 = _orientation(p1, p2, q1)
    d4 = _orientation(p1, p2, q2)
    return d1 * d2 < 0 and d3 * d4 < 0


def _segments(points: List[Point]) -> List[Tuple[Point, Point]]:
    return list(zip(points, points[1:]))


def score_layout(graph: IntermediateGraph) -> LayoutQuality:
    """Compute crossings, overlaps and total edge length of a positioned graph."""
    routes = [
        (edge, _segments(edge.points or [])) for edge in graph.edges.values()
    ]

    crossings = 0
    for (edge_a, segs_a), (edge_b, segs_b) in combinations(routes, 2):
        shared = {edge_a.source, edge_a.target} & {edge_b.source, edge_b.target}
        if shared:
            continue
        for p1, p2 in segs_a:
            for q1, q2 in segs_b:
                if segments_cross(p1, p2, q1, q2):
                    crossings += 1

    overlaps = 0
    boxes = [node.box for node in graph.nodes.values() if node.is_positioned]
    for a, b in combinations(boxes, 2):
        if a.overlaps(b):
            overlaps += 1

    total_length = 0.0
    for _, segments in routes:
        for (x1, y1), (x2, y2) in segments:
            total_length += math.hypot(x2 - x1, y2 - y1)

    return LayoutQuality(crossings, overlaps, total_length)


class AdaptiveStrategy:
    """
    Choose a layout among several candidate strategies.

    Sequential mode runs the first candidate that supports the graph.
    Parallel mode runs every supporting candidate on its own copy of the
    graph in a thread pool, waits for all of them, and keeps the layout with
    the lowest score (ties go to the earlier candidate).
    """

    def __init__(
        self,
        strategies: Sequence[Any],
        parallel: bool = False,
        max_workers: Optional[int] = None,
        scorer: Callable[[IntermediateGraph], LayoutQuality] = score_layout,
        name: str = "adaptive",
    ):
        if not strategies:
            raise ValueError("AdaptiveStrategy needs at least one strategy")
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.strategies = [as_strategy(s) for s in strategies]
        self.parallel = parallel
        self.max_workers = max_workers
        self.scorer = scorer
        self.name = name

    def supports(self, graph: IntermediateGraph) -> bool:
        return any(s.supports(graph) for s in self.strategies)

    def apply(self, graph: IntermediateGraph, context: LayoutContext) -> None:
        candidates = [s for s in self.strategies if s.supports(graph)]
        if not candidates:
            raise LayoutError(
                f"None of the '{self.name}' candidates supports this graph: "
                + ", ".join(s.name for s in self.strategies)
            )

        if not self.parallel or len(candidates) == 1:
            logger.debug("Adaptive: using %s", candidates[0].name)
            candidates[0].apply(graph, context)
            return

        self._apply_parallel(graph, context, candidates)

    def _apply_parallel(
        self,
        graph: IntermediateGraph,
        context: LayoutContext,
        candidates: List[LayoutStrategy],
    ) -> None:
        copies = [graph.copy() for _ in candidates]
        workers = self.max_workers or len(candidates)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(strategy.apply, work, context)
                for strategy, work in zip(candidates, copies)
            ]

        best: Optional[Tuple[float, int]] = None
        first_error: Optional[LayoutError] = None
        for index, (strategy, future, work) in enumerate(
            zip(candidates, futures, copies)
        ):
            try:
                future.result()
            except LayoutError as exc:
                logger.debug("Adaptive: %s failed: %s", strategy.name, exc)
                if first_error is None:
                    first_error = exc
                continue
            score = self.scorer(work).score
            logger.debug("Adaptive: %s scored %.1f", strategy.name, score)
            if best is None or score < best[0]:
                best = (score, index)

        if best is None:
            raise first_error

        winner = candidates[best[1]]
        logger.debug("Adaptive: selected %s", winner.name)
        graph.adopt_layout(copies[best[1]])
