"""
Layered (Sugiyama style) layout engine.

Uses networkx for:
- Cycle detection
- Topological sorting / layer assignment
- Graph representation of each container scope

Containers are compound units: each container's contents are laid out
first in a local frame, then the container takes part in its parent's
layout as a single sized block and its contents are moved into place.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import networkx as nx

from .config import Direction, LayoutContext
from .errors import ConfigurationError, CycleDetectedError
from .igr import BoundingBox, IntermediateGraph, Point
from .positioning import PositionCalculator, label_band

logger = logging.getLogger(__name__)

DEFAULT_CROSSING_PASSES = 8


@dataclass
class NodeLayout:
    """Layout information of one member of a scope (node, container or dummy)."""

    name: str
    layer: int = 0
    position: int = 0  # Position within layer
    width: float = 0.0
    height: float = 0.0
    is_dummy: bool = False
    x: float = 0.0
    y: float = 0.0

    @property
    def box(self) -> BoundingBox:
        return BoundingBox(
            self.x - self.width / 2, self.y - self.height / 2, self.width, self.height
        )


@dataclass
class ScopeLayout:
    """Result of laying out the members of one scope."""

    nodes: Dict[str, NodeLayout] = field(default_factory=dict)
    layers: List[List[str]] = field(default_factory=list)
    edges: List[Tuple[str, str]] = field(default_factory=list)
    back_edges: Set[Tuple[str, str]] = field(default_factory=set)
    # (source, target) member pair -> dummy names along the way
    dummy_chains: Dict[Tuple[str, str], List[str]] = field(default_factory=dict)
    crossings: int = 0


class DagreEngine:
    """
    Layered layout for directed acyclic graphs.

    Steps: cycle check, longest-path layer assignment, barycenter crossing
    reduction, layer-centred coordinate assignment, edge routing through
    dummy points. Fully deterministic: iteration follows declaration order.
    """

    name = "dagre"

    def supports(self, graph: IntermediateGraph) -> bool:
        return nx.is_directed_acyclic_graph(graph.graph)

    def check_acyclic(self, graph: IntermediateGraph) -> None:
        """
        Raise if any directed cycle exists among the real edges.

        All edge kinds count as directed from source to target.

        Raises:
            CycleDetectedError: Naming the nodes of one cycle.
        """
        try:
            cycle_edges = nx.find_cycle(graph.graph)
        except nx.NetworkXNoCycle:
            return
        cycle = [edge[0] for edge in cycle_edges]
        cycle.append(cycle_edges[0][0])
        raise CycleDetectedError(cycle, self.name)

    def layout(self, graph: IntermediateGraph, context: LayoutContext) -> None:
        """
        Compute positions for every node, edge and container.

        Args:
            graph: Graph to lay out in place.
            context: Direction, spacing and engine options.

        Raises:
            CycleDetectedError: If the graph has a directed cycle.
            ConfigurationError: If an engine option is invalid.
        """
        self.check_acyclic(graph)
        passes = context.option("crossing_passes", DEFAULT_CROSSING_PASSES)
        if isinstance(passes, bool) or not isinstance(passes, int) or passes < 0:
            raise ConfigurationError(
                f"'crossing_passes' must be a non-negative integer, got {passes!r}"
            )

        calculator = PositionCalculator(padding=context.container_padding)
        self._layout_scope(graph, None, context, passes, calculator)
        calculator.compute_container_bounds(graph)

        logger.debug(
            "dagre: placed %d nodes, %d edges, %d containers (%s)",
            len(graph.nodes),
            len(graph.edges),
            len(graph.containers),
            context.direction.value,
        )

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------

    def _scope_members(
        self, graph: IntermediateGraph, scope: Optional[str]
    ) -> List[str]:
        if scope is None:
            return graph.top_level_nodes() + graph.root_containers()
        container = graph.containers[scope]
        return list(container.nodes) + list(container.children)

    def _representative(
        self, graph: IntermediateGraph, node_id: str, members: Set[str]
    ) -> Optional[str]:
        """The member of a scope that contains (or is) the given node."""
        if node_id in members:
            return node_id
        for ancestor in graph.ancestors(node_id):
            if ancestor in members:
                return ancestor
        return None

    def _layout_scope(
        self,
        graph: IntermediateGraph,
        scope: Optional[str],
        context: LayoutContext,
        passes: int,
        calculator: PositionCalculator,
    ) -> Optional[BoundingBox]:
        """
        Lay out one scope (the top level or a container) in a local frame.

        Returns:
            Box enclosing the scope's members, or None for an empty scope.
        """
        members = self._scope_members(graph, scope)
        if not members:
            return None
        member_set = set(members)
        result = ScopeLayout()

        # Nested containers first, so their block sizes are known
        content_boxes: Dict[str, BoundingBox] = {}
        for member in members:
            if member in graph.containers:
                box = self._layout_scope(graph, member, context, passes, calculator)
                content_boxes[member] = box
                container = graph.containers[member]
                band = label_band(container.label_height, calculator.padding)
                width = max(
                    box.width + 2 * calculator.padding,
                    container.label_width + 2 * calculator.padding,
                )
                height = box.height + 2 * calculator.padding + band
                result.nodes[member] = NodeLayout(member, width=width, height=height)
            else:
                node = graph.nodes[member]
                result.nodes[member] = NodeLayout(
                    member, width=node.width, height=node.height
                )

        # Edges between distinct members of this scope
        owned_edges: List[Tuple[str, str, str]] = []
        scope_graph = nx.DiGraph()
        scope_graph.add_nodes_from(members)
        for edge in graph.edges.values():
            source = self._representative(graph, edge.source, member_set)
            target = self._representative(graph, edge.target, member_set)
            if source is None or target is None or source == target:
                continue
            owned_edges.append((edge.id, source, target))
            if not scope_graph.has_edge(source, target):
                scope_graph.add_edge(source, target)
                result.edges.append((source, target))

        order_index = {name: i for i, name in enumerate(members)}
        if not nx.is_directed_acyclic_graph(scope_graph):
            # Only possible when collapsing containers merged endpoints
            result.back_edges = self._break_cycles(scope_graph, members)
            logger.debug(
                "dagre: scope %s reversed %d edges to break container cycles",
                scope or "<root>",
                len(result.back_edges),
            )
            for source, target in result.back_edges:
                scope_graph.remove_edge(source, target)
                scope_graph.add_edge(target, source)

        layers = self._assign_layers(scope_graph, order_index, result)
        layers = self._insert_dummy_nodes(scope_graph, layers, result)
        result.layers = self._order_layers(layers, scope_graph, passes, result)
        self._assign_coordinates(result, context)

        # Move nested container contents into their blocks
        for member, box in content_boxes.items():
            block = result.nodes[member]
            container = graph.containers[member]
            band = label_band(container.label_height, calculator.padding)
            top = block.y - block.height / 2 + calculator.padding + band
            dx = block.x - box.center[0]
            dy = top - box.y
            inner_nodes = graph.descendants(member)
            inner_set = set(inner_nodes)
            inner_edges = [
                e.id
                for e in graph.iter_edges_between(inner_set)
                if e.points is not None
            ]
            calculator.translate(graph, dx, dy, inner_nodes, inner_edges, [])

        for member in members:
            if member in graph.nodes:
                layout = result.nodes[member]
                graph.nodes[member].x = layout.x
                graph.nodes[member].y = layout.y

        self._route_edges(graph, owned_edges, result, context.direction)

        content: Optional[BoundingBox] = None
        for member in members:
            box = result.nodes[member].box
            content = box if content is None else content.union(box)
        return content

    # ------------------------------------------------------------------
    # Cycle breaking and layering
    # ------------------------------------------------------------------

    def _break_cycles(
        self, scope_graph: nx.DiGraph, members: List[str]
    ) -> Set[Tuple[str, str]]:
        """
        Identify back edges with a DFS from the sources, in member order.
        Reversing all of them yields an acyclic graph.
        """
        back_edges: Set[Tuple[str, str]] = set()
        visited: Set[str] = set()
        rec_stack: Set[str] = set()

        def dfs(node: str) -> None:
            visited.add(node)
            rec_stack.add(node)
            for successor in scope_graph.successors(node):
                if successor not in visited:
                    dfs(successor)
                elif successor in rec_stack:
                    back_edges.add((node, successor))
            rec_stack.remove(node)

        roots = [n for n in members if scope_graph.in_degree(n) == 0]
        for root in roots + members:
            if root not in visited:
                dfs(root)
        return back_edges

    def _assign_layers(
        self,
        scope_graph: nx.DiGraph,
        order_index: Dict[str, int],
        result: ScopeLayout,
    ) -> List[List[str]]:
        """
        Assign members to layers using the longest path method.
        """
        node_layer: Dict[str, int] = {}
        topo_order = nx.lexicographical_topological_sort(
            scope_graph, key=order_index.get
        )
        for node in topo_order:
            predecessors = list(scope_graph.predecessors(node))
            if not predecessors:
                node_layer[node] = 0
            else:
                node_layer[node] = max(node_layer[p] for p in predecessors) + 1

        max_layer = max(node_layer.values())
        layers: List[List[str]] = [[] for _ in range(max_layer + 1)]
        for node in sorted(node_layer, key=order_index.get):
            layers[node_layer[node]].append(node)
            result.nodes[node].layer = node_layer[node]
        return layers

    def _insert_dummy_nodes(
        self,
        scope_graph: nx.DiGraph,
        layers: List[List[str]],
        result: ScopeLayout,
    ) -> List[List[str]]:
        """
        Split edges spanning several layers with one dummy per inner layer.

        After this every edge of ``scope_graph`` joins adjacent layers.
        """
        for source, target in list(scope_graph.edges()):
            start = result.nodes[source].layer
            end = result.nodes[target].layer
            if end - start <= 1:
                continue

            scope_graph.remove_edge(source, target)
            chain: List[str] = []
            previous = source
            for layer in range(start + 1, end):
                dummy = f"dummy:{source}->{target}:{layer}"
                result.nodes[dummy] = NodeLayout(dummy, layer=layer, is_dummy=True)
                layers[layer].append(dummy)
                scope_graph.add_edge(previous, dummy)
                chain.append(dummy)
                previous = dummy
            scope_graph.add_edge(previous, target)
            result.dummy_chains[(source, target)] = chain
        return layers

    # ------------------------------------------------------------------
    # Crossing reduction
    # ------------------------------------------------------------------

    def _count_crossings(self, layers: List[List[str]], graph: nx.DiGraph) -> int:
        total = 0
        for upper, lower in zip(layers, layers[1:]):
            upper_pos = {n: i for i, n in enumerate(upper)}
            lower_pos = {n: i for i, n in enumerate(lower)}
            pairs = [
                (upper_pos[u], lower_pos[v])
                for u in upper
                for v in graph.successors(u)
                if v in lower_pos
            ]
            for i in range(len(pairs)):
                for j in range(i + 1, len(pairs)):
                    (a1, b1), (a2, b2) = pairs[i], pairs[j]
                    if (a1 - a2) * (b1 - b2) < 0:
                        total += 1
        return total

    def _order_layers(
        self,
        layers: List[List[str]],
        graph: nx.DiGraph,
        passes: int,
        result: ScopeLayout,
    ) -> List[List[str]]:
        """
        Order members within each layer to minimize edge crossings.
        Uses the barycenter heuristic with alternating sweeps, keeping the
        best ordering seen and stopping once a sweep brings no improvement.
        """
        best = [list(layer) for layer in layers]
        best_crossings = self._count_crossings(best, graph)

        current = [list(layer) for layer in layers]
        for _ in range(passes):
            if best_crossings == 0:
                break
            # Forward pass
            for i in range(1, len(current)):
                current[i] = self._order_layer_by_barycenter(
                    current[i], current[i - 1], graph, use_predecessors=True
                )
            # Backward pass
            for i in range(len(current) - 2, -1, -1):
                current[i] = self._order_layer_by_barycenter(
                    current[i], current[i + 1], graph, use_predecessors=False
                )

            crossings = self._count_crossings(current, graph)
            if crossings >= best_crossings:
                break
            best = [list(layer) for layer in current]
            best_crossings = crossings

        for layer in best:
            for index, name in enumerate(layer):
                result.nodes[name].position = index
        result.crossings = best_crossings
        return best

    def _order_layer_by_barycenter(
        self,
        layer: List[str],
        ref_layer: List[str],
        graph: nx.DiGraph,
        use_predecessors: bool,
    ) -> List[str]:
        """
        Order members by barycenter (average position of connected members).
        Members without neighbours in the reference layer go last, keeping
        their relative order.
        """
        ref_positions = {node: i for i, node in enumerate(ref_layer)}
        current = {node: i for i, node in enumerate(layer)}

        def barycenter(node: str) -> Tuple[int, float, int]:
            if use_predecessors:
                neighbors = graph.predecessors(node)
            else:
                neighbors = graph.successors(node)
            positions = [ref_positions[n] for n in neighbors if n in ref_positions]
            if not positions:
                return (1, 0.0, current[node])
            return (0, sum(positions) / len(positions), current[node])

        return sorted(layer, key=barycenter)

    # ------------------------------------------------------------------
    # Coordinates and routing
    # ------------------------------------------------------------------

    def _assign_coordinates(self, result: ScopeLayout, context: LayoutContext) -> None:
        """
        Place layers along the primary axis and centre each layer on the
        cross axis, then map to the requested direction.
        """
        horizontal = context.direction.is_horizontal
        sign = -1.0 if context.direction.is_reversed else 1.0

        def primary_size(n: NodeLayout) -> float:
            return n.width if horizontal else n.height

        def cross_size(n: NodeLayout) -> float:
            return n.height if horizontal else n.width

        offset = 0.0
        for layer in result.layers:
            members = [result.nodes[name] for name in layer]
            thickness = max((primary_size(n) for n in members), default=0.0)
            primary = offset + thickness / 2

            total = sum(cross_size(n) for n in members)
            total += context.node_spacing * (len(members) - 1)
            cursor = -total / 2
            for n in members:
                cross = cursor + cross_size(n) / 2
                cursor += cross_size(n) + context.node_spacing
                if horizontal:
                    n.x, n.y = sign * primary, cross
                else:
                    n.x, n.y = cross, sign * primary

            offset += thickness + context.layer_spacing

    def _route_edges(
        self,
        graph: IntermediateGraph,
        owned_edges: List[Tuple[str, str, str]],
        result: ScopeLayout,
        direction: Direction,
    ) -> None:
        """Route edges of this scope through the dummy points of their members."""
        axis = 0 if direction.is_horizontal else 1

        for edge_id, source_member, target_member in owned_edges:
            edge = graph.edges[edge_id]
            if (source_member, target_member) in result.back_edges:
                chain = result.dummy_chains.get((target_member, source_member), [])
                chain = list(reversed(chain))
            else:
                chain = result.dummy_chains.get((source_member, target_member), [])
            bends: List[Point] = [
                (result.nodes[d].x, result.nodes[d].y) for d in chain
            ]

            source = graph.nodes[edge.source]
            target = graph.nodes[edge.target]
            first_towards = bends[0] if bends else (target.x, target.y)
            last_from = bends[-1] if bends else (source.x, source.y)
            start = self._port(
                (source.x, source.y), source.width, source.height, first_towards, axis
            )
            end = self._port(
                (target.x, target.y), target.width, target.height, last_from, axis
            )
            edge.points = [start] + bends + [end]

    @staticmethod
    def _port(
        center: Point, width: float, height: float, toward: Point, axis: int
    ) -> Point:
        """Midpoint of the box side that faces ``toward`` along the layer axis."""
        half = (width / 2, height / 2)
        delta = toward[axis] - center[axis]
        if delta == 0:
            return center
        offset = half[axis] if delta > 0 else -half[axis]
        if axis == 0:
            return (center[0] + offset, center[1])
        return (center[0], center[1] + offset)
