"""
Layout manager: strategy registry and layout dispatch.

The manager picks the strategy named by the layout context, runs it on a
private copy of the graph and only copies the geometry back once every
node, edge and container is positioned, so a failed layout never leaves a
half-positioned graph behind.

With ``CompilerConfig(parallel=True, max_threads > 1)`` each root container
is laid out on its own worker thread; the outer level is laid out once all
workers have finished, with every root container collapsed into a block of
its final size.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from .cache import LayoutCache, layout_key
from .config import CompilerConfig, LayoutContext
from .dagre import DagreEngine
from .errors import ConfigurationError, LayoutError
from .force import ForceEngine
from .igr import Edge, IntermediateGraph, Node
from .positioning import PositionCalculator
from .strategy import LayoutStrategy, as_strategy

logger = logging.getLogger(__name__)


class LayoutManager:
    """
    Registry of layout strategies and entry point for laying out graphs.

    Attributes:
        config: Compiler configuration (threading and cache settings).
        cache: Layout cache, or None when caching is disabled.
    """

    def __init__(self, config: Optional[CompilerConfig] = None):
        self.config = config or CompilerConfig()
        self._strategies: Dict[str, LayoutStrategy] = {}
        self._lock = threading.Lock()
        self.cache: Optional[LayoutCache] = (
            LayoutCache(self.config.cache_size) if self.config.cache_enabled else None
        )

        self.register("dagre", DagreEngine())
        self.register("force", ForceEngine())

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, name: str, strategy: Any) -> None:
        """
        Register a strategy (or a bare engine) under a name.

        Re-registering a name replaces the previous strategy and drops
        cached layouts.
        """
        key = name.strip().lower()
        if not key:
            raise ValueError("Strategy name must not be empty")
        wrapped = as_strategy(strategy)
        with self._lock:
            self._strategies[key] = wrapped
        if self.cache is not None:
            self.cache.clear()
        logger.debug("Registered layout strategy '%s'", key)

    def unregister(self, name: str) -> None:
        key = name.strip().lower()
        with self._lock:
            if key not in self._strategies:
                raise ConfigurationError(self._unknown_message(name))
            del self._strategies[key]
        if self.cache is not None:
            self.cache.clear()

    def available(self) -> List[str]:
        with self._lock:
            return sorted(self._strategies)

    def get(self, name: str) -> LayoutStrategy:
        with self._lock:
            strategy = self._strategies.get(name.strip().lower())
        if strategy is None:
            raise ConfigurationError(self._unknown_message(name))
        return strategy

    def _unknown_message(self, name: str) -> str:
        return (
            f"Unknown layout algorithm '{name}'. "
            f"Available algorithms: {', '.join(self.available())}"
        )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    def cache_stats(self) -> Dict[str, int]:
        if self.cache is None:
            return {"size": 0, "max_size": 0, "hits": 0, "misses": 0}
        return self.cache.stats()

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def layout(
        self, graph: IntermediateGraph, context: Optional[LayoutContext] = None
    ) -> None:
        """
        Position every node, edge and container of the graph in place.

        Args:
            graph: Graph produced by the builder.
            context: Layout settings; read from the graph's configuration
                block when not given.

        Raises:
            ConfigurationError: Unknown algorithm or invalid settings.
            LayoutError: The strategy failed or left entities unpositioned.
                The graph is left untouched in that case.
        """
        if context is None:
            context = self.config.context_for(graph.config)
        strategy = self.get(context.algorithm)
        margin = context.margin

        key = None
        if self.cache is not None:
            key = layout_key(graph, context)
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Layout cache hit for '%s'", context.algorithm)
                graph.restore(cached)
                return

        work = graph.copy()
        work.clear_layout()

        if self._use_parallel(work):
            self._layout_parallel(work, strategy, context)
        else:
            strategy.apply(work, context)

        PositionCalculator(margin=margin).normalize_origin(work)

        missing = work.unpositioned()
        if missing:
            raise LayoutError(
                f"Layout '{strategy.name}' left {len(missing)} entities "
                f"unpositioned: {', '.join(missing[:10])}"
            )

        graph.adopt_layout(work)
        if key is not None:
            self.cache.put(key, work.snapshot())

        logger.debug(
            "Laid out %d nodes with '%s'", len(graph.nodes), strategy.name
        )

    def _use_parallel(self, graph: IntermediateGraph) -> bool:
        return (
            self.config.parallel
            and self.config.max_threads > 1
            and bool(graph.root_containers())
        )

    def _layout_parallel(
        self,
        work: IntermediateGraph,
        strategy: LayoutStrategy,
        context: LayoutContext,
    ) -> None:
        """
        Lay out root containers concurrently, then the outer level.

        Falls back to a sequential whole-graph layout when the strategy
        cannot handle the collapsed outer graph.
        """
        roots = work.root_containers()
        subs = {cid: work.extract(cid) for cid in roots}
        workers = min(self.config.max_threads, len(roots))
        logger.debug(
            "Parallel layout of %d root containers on %d threads", len(roots), workers
        )

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                cid: pool.submit(strategy.apply, sub, context)
                for cid, sub in subs.items()
            }
        # Join in declaration order so the reported error is deterministic
        for cid in roots:
            futures[cid].result()

        outer = self._collapse(work, subs)
        if not strategy.supports(outer):
            logger.debug(
                "'%s' cannot lay out the collapsed outer graph, "
                "laying out the whole graph sequentially",
                strategy.name,
            )
            strategy.apply(work, context)
            return

        strategy.apply(outer, context)

        calculator = PositionCalculator(padding=context.container_padding)
        for cid, sub in subs.items():
            block = outer.nodes[cid]
            bounds = sub.containers[cid].bounds
            if bounds is None:
                raise LayoutError(
                    f"Layout '{strategy.name}' left container '{cid}' unpositioned"
                )
            center_x, center_y = bounds.center
            calculator.translate(sub, block.x - center_x, block.y - center_y)
            work.adopt_layout(sub)

        rerouted = []
        for edge in work.edges.values():
            if edge.points is not None:
                continue
            top_level = (
                edge.source in outer.nodes
                and edge.target in outer.nodes
                and work.nodes[edge.source].container is None
                and work.nodes[edge.target].container is None
            )
            if top_level:
                edge.points = list(outer.edges[edge.id].points)
            else:
                rerouted.append(edge.id)

        for nid in work.top_level_nodes():
            work.nodes[nid].x = outer.nodes[nid].x
            work.nodes[nid].y = outer.nodes[nid].y
        calculator.route_edges(work, rerouted)

    def _collapse(
        self, work: IntermediateGraph, subs: Dict[str, IntermediateGraph]
    ) -> IntermediateGraph:
        """Outer graph: top-level nodes plus one block per root container."""
        outer = IntermediateGraph(work.config)
        for nid in work.top_level_nodes():
            node = work.nodes[nid]
            outer.add_node(
                Node(id=nid, label=node.label, width=node.width, height=node.height)
            )
        for cid, sub in subs.items():
            container = work.containers[cid]
            bounds = sub.containers[cid].bounds
            outer.add_node(
                Node(
                    id=cid,
                    label=container.label or cid,
                    width=bounds.width,
                    height=bounds.height,
                )
            )

        def representative(node_id: str) -> str:
            ancestors = work.ancestors(node_id)
            return ancestors[-1] if ancestors else node_id

        for edge in work.edges.values():
            source = representative(edge.source)
            target = representative(edge.target)
            if source == target and source in subs:
                continue
            outer.add_edge(
                Edge(id=edge.id, source=source, target=target, kind=edge.kind)
            )
        return outer
