"""
Intermediate Graph Representation (IGR).

The IGR is the structure shared by the builder, the layout engines and any
serializer. Entities are kept in insertion-ordered dictionaries keyed by id
(one namespace for nodes, edges and containers) and the topology is mirrored
in a networkx MultiDiGraph so the engines can use networkx algorithms
directly.

Coordinates: node ``x``/``y`` are box centres, ``BoundingBox`` uses the
top-left corner. Nothing is positioned until a layout engine runs.
"""

import copy
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Iterator, List, Optional, Tuple

import networkx as nx

from .models import ArrowKind

Point = Tuple[float, float]


@dataclass
class Style:
    """
    Resolved visual attributes of a node, edge or container.

    Every field is optional; None means "not set anywhere in the cascade" and
    is left for the serializer to default.
    """

    shape: Optional[str] = None
    stroke_color: Optional[str] = None
    background_color: Optional[str] = None
    text_color: Optional[str] = None
    font_size: Optional[float] = None
    font: Optional[str] = None
    fill_style: Optional[str] = None
    stroke_style: Optional[str] = None
    stroke_width: Optional[float] = None
    roughness: Optional[float] = None
    fill_weight: Optional[float] = None
    rounded: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    start_arrowhead: Optional[str] = None
    end_arrowhead: Optional[str] = None

    def merged_over(self, base: "Style") -> "Style":
        """Return a copy where fields unset here are taken from ``base``."""
        values = {}
        for f in fields(self):
            own = getattr(self, f.name)
            values[f.name] = own if own is not None else getattr(base, f.name)
        return Style(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class BoundingBox:
    """Axis-aligned box; (x, y) is the top-left corner."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def union(self, other: "BoundingBox") -> "BoundingBox":
        left = min(self.x, other.x)
        top = min(self.y, other.y)
        return BoundingBox(
            left,
            top,
            max(self.right, other.right) - left,
            max(self.bottom, other.bottom) - top,
        )

    def overlaps(self, other: "BoundingBox") -> bool:
        return (
            self.x < other.right
            and other.x < self.right
            and self.y < other.bottom
            and other.y < self.bottom
        )


@dataclass
class Node:
    """
    A positioned (or yet to be positioned) diagram node.

    Attributes:
        id: Unique id.
        label: Display text.
        shape: Resolved shape name (rectangle unless styled otherwise).
        style: Resolved style after the cascade.
        container: Id of the innermost owning container, if any.
        text_width: Measured label width.
        text_height: Measured label height.
        width: Box width.
        height: Box height.
        x: Box centre x (None until layout).
        y: Box centre y (None until layout).
    """

    id: str
    label: str
    shape: str = "rectangle"
    style: Style = field(default_factory=Style)
    container: Optional[str] = None
    text_width: float = 0.0
    text_height: float = 0.0
    width: float = 0.0
    height: float = 0.0
    x: Optional[float] = None
    y: Optional[float] = None

    @property
    def is_positioned(self) -> bool:
        return self.x is not None and self.y is not None

    @property
    def box(self) -> BoundingBox:
        if not self.is_positioned:
            raise ValueError(f"Node '{self.id}' has no position yet")
        return BoundingBox(
            self.x - self.width / 2, self.y - self.height / 2, self.width, self.height
        )


@dataclass
class Edge:
    """
    A binary edge between two nodes.

    Attributes:
        id: Unique id (``"a->b"``, ``"a->b#2"`` for repeats).
        source: Source node id.
        target: Target node id.
        kind: Arrow kind.
        label: Optional label text.
        style: Resolved style.
        chain: Id of the chain this edge was expanded from, if any.
        points: Routed polyline (None until layout).
    """

    id: str
    source: str
    target: str
    kind: ArrowKind = ArrowKind.ARROW
    label: Optional[str] = None
    style: Style = field(default_factory=Style)
    chain: Optional[str] = None
    points: Optional[List[Point]] = None

    @property
    def is_positioned(self) -> bool:
        return self.points is not None and len(self.points) >= 2


@dataclass
class Container:
    """
    A container or group owning nodes and nested containers.

    Attributes:
        id: Unique id (alias, label slug or generated).
        label: Display label, if any.
        alias: Explicit alias from ``as alias``, if any.
        is_group: True for ``group`` blocks.
        style: Resolved style.
        nodes: Ids of directly owned nodes, in declaration order.
        children: Ids of directly nested containers, in declaration order.
        parent: Id of the enclosing container, if any.
        label_width: Measured label width (0 when unlabeled).
        label_height: Measured label height (0 when unlabeled).
        bounds: Bounding box (None until layout).
    """

    id: str
    label: Optional[str] = None
    alias: Optional[str] = None
    is_group: bool = False
    style: Style = field(default_factory=Style)
    nodes: List[str] = field(default_factory=list)
    children: List[str] = field(default_factory=list)
    parent: Optional[str] = None
    label_width: float = 0.0
    label_height: float = 0.0
    bounds: Optional[BoundingBox] = None

    @property
    def is_positioned(self) -> bool:
        return self.bounds is not None


class IntermediateGraph:
    """
    Arena of nodes, edges and containers plus a networkx topology view.

    Attributes:
        config: Configuration mapping from the source document.
        nodes: Node id -> Node, in declaration order.
        edges: Edge id -> Edge, in declaration order.
        containers: Container id -> Container, in declaration order.
        parents: Entity id (node or container) -> owning container id.
        graph: MultiDiGraph over node ids, one edge per IGR edge (keyed by id).
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config: Dict[str, Any] = dict(config or {})
        self.nodes: Dict[str, Node] = {}
        self.edges: Dict[str, Edge] = {}
        self.containers: Dict[str, Container] = {}
        self.parents: Dict[str, str] = {}
        self.graph: nx.MultiDiGraph = nx.MultiDiGraph()

    def __repr__(self) -> str:
        return (
            f"IntermediateGraph(nodes={len(self.nodes)}, edges={len(self.edges)}, "
            f"containers={len(self.containers)})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IntermediateGraph):
            return NotImplemented
        return (
            self.config == other.config
            and self.nodes == other.nodes
            and self.edges == other.edges
            and self.containers == other.containers
            and self.parents == other.parents
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_node(self, node: Node) -> None:
        self.nodes[node.id] = node
        self.graph.add_node(node.id)
        if node.container is not None:
            self.parents[node.id] = node.container
            self.containers[node.container].nodes.append(node.id)

    def add_edge(self, edge: Edge) -> None:
        self.edges[edge.id] = edge
        self.graph.add_edge(edge.source, edge.target, key=edge.id)

    def add_container(self, container: Container) -> None:
        self.containers[container.id] = container
        if container.parent is not None:
            self.parents[container.id] = container.parent
            self.containers[container.parent].children.append(container.id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def root_containers(self) -> List[str]:
        return [cid for cid, c in self.containers.items() if c.parent is None]

    def top_level_nodes(self) -> List[str]:
        return [nid for nid, n in self.nodes.items() if n.container is None]

    def descendants(self, container_id: str) -> List[str]:
        """Ids of every node inside the container, including nested ones."""
        result: List[str] = []
        for cid in self.subtree(container_id):
            result.extend(self.containers[cid].nodes)
        return result

    def subtree(self, container_id: str) -> List[str]:
        """Ids of the container and all nested containers, pre-order."""
        order: List[str] = []
        stack = [container_id]
        while stack:
            cid = stack.pop()
            order.append(cid)
            stack.extend(reversed(self.containers[cid].children))
        return order

    def ancestors(self, entity_id: str) -> List[str]:
        """Owning containers of an entity, innermost first."""
        chain: List[str] = []
        current = self.parents.get(entity_id)
        while current is not None:
            chain.append(current)
            current = self.parents.get(current)
        return chain

    def iter_edges_between(self, node_ids: set) -> Iterator[Edge]:
        for edge in self.edges.values():
            if edge.source in node_ids and edge.target in node_ids:
                yield edge

    # ------------------------------------------------------------------
    # Geometry state
    # ------------------------------------------------------------------

    def is_positioned(self) -> bool:
        return not self.unpositioned()

    def unpositioned(self) -> List[str]:
        """Ids of every node, edge and container still lacking geometry."""
        missing = [nid for nid, n in self.nodes.items() if not n.is_positioned]
        missing.extend(eid for eid, e in self.edges.items() if not e.is_positioned)
        missing.extend(
            cid for cid, c in self.containers.items() if not c.is_positioned
        )
        return missing

    def snapshot(self) -> Dict[str, Any]:
        """Capture all geometry so it can be put back with restore()."""
        return {
            "nodes": {nid: (n.x, n.y) for nid, n in self.nodes.items()},
            "edges": {
                eid: list(e.points) if e.points is not None else None
                for eid, e in self.edges.items()
            },
            "containers": {
                cid: copy.copy(c.bounds) for cid, c in self.containers.items()
            },
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        for nid, (x, y) in snapshot["nodes"].items():
            if nid in self.nodes:
                self.nodes[nid].x, self.nodes[nid].y = x, y
        for eid, points in snapshot["edges"].items():
            if eid in self.edges:
                self.edges[eid].points = list(points) if points is not None else None
        for cid, bounds in snapshot["containers"].items():
            if cid in self.containers:
                self.containers[cid].bounds = copy.copy(bounds)

    def clear_layout(self) -> None:
        for node in self.nodes.values():
            node.x = node.y = None
        for edge in self.edges.values():
            edge.points = None
        for container in self.containers.values():
            container.bounds = None

    def adopt_layout(self, other: "IntermediateGraph") -> None:
        """Copy geometry from another IGR with the same ids into this one."""
        self.restore(other.snapshot())

    def bounding_box(self) -> Optional[BoundingBox]:
        """Box enclosing every positioned node, container and edge point."""
        box: Optional[BoundingBox] = None
        for node in self.nodes.values():
            if node.is_positioned:
                box = node.box if box is None else box.union(node.box)
        for container in self.containers.values():
            if container.bounds is not None:
                box = container.bounds if box is None else box.union(container.bounds)
        for edge in self.edges.values():
            for px, py in edge.points or []:
                point = BoundingBox(px, py, 0, 0)
                box = point if box is None else box.union(point)
        return box

    # ------------------------------------------------------------------
    # Copies
    # ------------------------------------------------------------------

    def copy(self) -> "IntermediateGraph":
        return copy.deepcopy(self)

    def extract(self, container_id: str) -> "IntermediateGraph":
        """
        Build an independent IGR holding one container subtree.

        The extracted container becomes a root (its parent link is dropped);
        only edges with both endpoints inside the subtree are kept.

        Args:
            container_id: Id of the container to extract.

        Returns:
            A new IntermediateGraph sharing no objects with this one.
        """
        if container_id not in self.containers:
            raise KeyError(f"Unknown container '{container_id}'")

        sub = IntermediateGraph(self.config)
        for cid in self.subtree(container_id):
            original = self.containers[cid]
            container = copy.deepcopy(original)
            container.nodes = []
            container.children = []
            if cid == container_id:
                container.parent = None
            sub.add_container(container)
            for nid in original.nodes:
                sub.add_node(copy.deepcopy(self.nodes[nid]))

        member_ids = set(sub.nodes)
        for edge in self.iter_edges_between(member_ids):
            sub.add_edge(copy.deepcopy(edge))
        return sub

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data view of the graph (JSON compatible)."""

        def box_dict(box: Optional[BoundingBox]) -> Optional[Dict[str, float]]:
            return asdict(box) if box is not None else None

        return {
            "config": dict(self.config),
            "nodes": [
                {
                    "id": n.id,
                    "label": n.label,
                    "shape": n.shape,
                    "container": n.container,
                    "x": n.x,
                    "y": n.y,
                    "width": n.width,
                    "height": n.height,
                    "style": n.style.to_dict(),
                }
                for n in self.nodes.values()
            ],
            "edges": [
                {
                    "id": e.id,
                    "source": e.source,
                    "target": e.target,
                    "kind": e.kind.value,
                    "label": e.label,
                    "chain": e.chain,
                    "points": [list(p) for p in e.points] if e.points else None,
                    "style": e.style.to_dict(),
                }
                for e in self.edges.values()
            ],
            "containers": [
                {
                    "id": c.id,
                    "label": c.label,
                    "is_group": c.is_group,
                    "parent": c.parent,
                    "nodes": list(c.nodes),
                    "children": list(c.children),
                    "bounds": box_dict(c.bounds),
                    "style": c.style.to_dict(),
                }
                for c in self.containers.values()
            ],
        }
