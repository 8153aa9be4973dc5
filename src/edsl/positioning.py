"""
Geometry helpers shared by the layout engines and the layout manager.

This module handles the calculations that do not depend on a particular
layout algorithm:
- Container bounding boxes, computed bottom-up from their contents
- Clipping edge endpoints to node box boundaries
- Straight edge routing (including self-loops)
- Translating a sub-layout into its parent frame
- Normalizing a finished layout to a fixed margin

The PositionCalculator class bundles these so engines can share one
configured instance.
"""

import math
from typing import Iterable, List, Optional, Tuple

from .igr import BoundingBox, Edge, IntermediateGraph, Node, Point

SELF_LOOP_HEIGHT = 30.0


def label_band(label_height: float, padding: float) -> float:
    """Extra space reserved above a container's contents for its label."""
    return label_height + padding / 2 if label_height > 0 else 0.0


def clip_to_box(
    center: Point, toward: Point, width: float, height: float
) -> Point:
    """
    Point where the segment from a box centre towards ``toward`` leaves the box.

    Args:
        center: Centre of the box.
        toward: Any point the segment heads to.
        width: Box width.
        height: Box height.

    Returns:
        The boundary point (the centre itself if both points coincide).
    """
    cx, cy = center
    dx = toward[0] - cx
    dy = toward[1] - cy
    if dx == 0 and dy == 0:
        return center

    half_w = width / 2
    half_h = height / 2
    scale_x = half_w / abs(dx) if dx else math.inf
    scale_y = half_h / abs(dy) if dy else math.inf
    scale = min(scale_x, scale_y, 1.0)
    return (cx + dx * scale, cy + dy * scale)


class PositionCalculator:
    """
    Calculates container bounds and straight routes for a positioned graph.

    Attributes:
        padding: Space between a container border and its contents.
        margin: Distance of the finished diagram from the origin.
    """

    def __init__(self, padding: float = 20.0, margin: float = 0.0):
        """
        Initialize the position calculator.

        Args:
            padding: Space between a container border and its contents.
            margin: Distance of the finished diagram from the origin.
        """
        if padding < 0:
            raise ValueError(f"padding must not be negative, got {padding}")
        self.padding = padding
        self.margin = margin

    def compute_container_bounds(
        self, igr: IntermediateGraph, container_ids: Optional[Iterable[str]] = None
    ) -> None:
        """
        Calculate bounding boxes for containers, innermost first.

        Each box encloses the container's own nodes and the boxes of its
        child containers, grown by the padding plus room for the label.

        Args:
            igr: Graph whose nodes are already positioned.
            container_ids: Containers to update; all containers by default.
        """
        wanted = set(igr.containers if container_ids is None else container_ids)

        # Pre-order reversed puts every child before its parent
        order: List[str] = []
        for root in igr.root_containers():
            order.extend(igr.subtree(root))

        for cid in reversed(order):
            if cid not in wanted:
                continue
            container = igr.containers[cid]
            content: Optional[BoundingBox] = None
            for nid in container.nodes:
                box = igr.nodes[nid].box
                content = box if content is None else content.union(box)
            for child_id in container.children:
                child = igr.containers[child_id].bounds
                if child is not None:
                    content = child if content is None else content.union(child)
            if content is None:
                continue

            band = label_band(container.label_height, self.padding)
            width = max(
                content.width + 2 * self.padding,
                container.label_width + 2 * self.padding,
            )
            container.bounds = BoundingBox(
                x=content.center[0] - width / 2,
                y=content.y - self.padding - band,
                width=width,
                height=content.height + 2 * self.padding + band,
            )

    def route_straight(self, igr: IntermediateGraph, edge: Edge) -> List[Point]:
        """Straight route between the two box boundaries (loop for self-edges)."""
        source = igr.nodes[edge.source]
        target = igr.nodes[edge.target]
        if edge.source == edge.target:
            return self.self_loop(source)

        start = clip_to_box(
            (source.x, source.y), (target.x, target.y), source.width, source.height
        )
        end = clip_to_box(
            (target.x, target.y), (source.x, source.y), target.width, target.height
        )
        return [start, end]

    @staticmethod
    def self_loop(node: Node) -> List[Point]:
        top = node.y - node.height / 2
        quarter = node.width / 4
        return [
            (node.x + quarter, top),
            (node.x + quarter, top - SELF_LOOP_HEIGHT),
            (node.x - quarter, top - SELF_LOOP_HEIGHT),
            (node.x - quarter, top),
        ]

    def route_edges(
        self, igr: IntermediateGraph, edge_ids: Optional[Iterable[str]] = None
    ) -> None:
        ids = igr.edges if edge_ids is None else edge_ids
        for eid in ids:
            edge = igr.edges[eid]
            edge.points = self.route_straight(igr, edge)

    @staticmethod
    def translate(
        igr: IntermediateGraph,
        dx: float,
        dy: float,
        node_ids: Optional[Iterable[str]] = None,
        edge_ids: Optional[Iterable[str]] = None,
        container_ids: Optional[Iterable[str]] = None,
    ) -> None:
        """Shift positioned entities by (dx, dy); all entities by default."""
        for nid in igr.nodes if node_ids is None else node_ids:
            node = igr.nodes[nid]
            if node.is_positioned:
                node.x += dx
                node.y += dy
        for eid in igr.edges if edge_ids is None else edge_ids:
            edge = igr.edges[eid]
            if edge.points is not None:
                edge.points = [(x + dx, y + dy) for x, y in edge.points]
        for cid in igr.containers if container_ids is None else container_ids:
            bounds = igr.containers[cid].bounds
            if bounds is not None:
                bounds.x += dx
                bounds.y += dy

    def normalize_origin(self, igr: IntermediateGraph) -> Tuple[float, float]:
        """
        Move the whole layout so its top-left corner sits at (margin, margin).

        Returns:
            The applied (dx, dy) offset.
        """
        box = igr.bounding_box()
        if box is None:
            return 0.0, 0.0
        dx = self.margin - box.x
        dy = self.margin - box.y
        if dx or dy:
            self.translate(igr, dx, dy)
        return dx, dy
