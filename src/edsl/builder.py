"""
IGR builder: turns a parsed Document into an IntermediateGraph.

The builder runs in three passes over the document:

1. Collect explicit ids (node ids and container aliases) so duplicate ids
   are reported no matter where they appear, and forward references work.
2. Create containers and nodes in source order, resolving the style cascade
   (local attributes, then enclosing containers, then the global defaults
   from the configuration block) and measuring labels to size the boxes.
3. Expand edge declarations (chains included) into binary edges, resolving
   every endpoint against the declared nodes.

No positions are assigned here.
"""

import logging
import re
from collections import Counter
from dataclasses import fields, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from .errors import (
    DuplicateIdError,
    EmptyContainerError,
    InvalidAttributeError,
    UnknownNodeError,
)
from .igr import Container, Edge, IntermediateGraph, Node, Style
from .measure import DEFAULT_FONT_SIZE, PillowTextMeasurer
from .models import ContainerDecl, Document, EdgeDecl, GroupDecl, NodeDecl

logger = logging.getLogger(__name__)

MeasureFn = Callable[[str, float], Tuple[float, float]]

# Node box sizing
PADDING_X = 75.0
PADDING_Y = 25.0
MIN_WIDTH = 100.0
MIN_HEIGHT = 70.0

DEFAULT_SHAPE = "rectangle"

FILL_STYLES = {"none", "solid", "hachure", "cross-hatch"}
STROKE_STYLES = {"solid", "dotted", "dashed"}
ARROWHEADS = {"none", "triangle", "dot", "diamond"}
MAX_ROUGHNESS = 2.0

# Attribute spellings that do not map to a Style field by case conversion
ATTRIBUTE_ALIASES = {
    "color": "text_color",
    "background": "background_color",
    "fill": "fill_style",
    "sketchiness": "roughness",
}

# Style fields a container passes down to its contents
INHERITED_FIELDS = (
    "shape",
    "stroke_color",
    "background_color",
    "font_size",
    "text_color",
    "font",
    "fill_style",
    "roughness",
)

EDGE_INHERITED_FIELDS = ("stroke_color", "font_size", "text_color", "font", "roughness")

# Style fields the configuration block may set for the whole document
GLOBAL_FIELDS = INHERITED_FIELDS + ("stroke_style", "stroke_width")

STRING_FIELDS = {
    "shape",
    "stroke_color",
    "background_color",
    "text_color",
    "font",
    "fill_style",
    "stroke_style",
    "start_arrowhead",
    "end_arrowhead",
}
POSITIVE_FIELDS = {"font_size", "stroke_width", "width", "height", "fill_weight"}

# Fields meaningful on only one kind of element
NODE_ONLY_FIELDS = ("shape", "background_color", "fill_style", "fill_weight", "rounded")
EDGE_ONLY_FIELDS = ("start_arrowhead", "end_arrowhead")

STYLE_FIELDS = {f.name for f in fields(Style)}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def normalize_key(key: str) -> str:
    """Map ``strokeColor``, ``stroke-color`` and ``stroke_color`` to one name."""
    snake = _CAMEL_BOUNDARY.sub(r"_\1", key).replace("-", "_").lower()
    return ATTRIBUTE_ALIASES.get(snake, snake)


def slugify(label: str) -> str:
    return _SLUG_INVALID.sub("_", label.lower()).strip("_")


def style_from_attributes(
    attributes: Mapping[str, Any], owner: str = ""
) -> Style:
    """
    Validate raw attributes and convert them into a Style.

    Args:
        attributes: Attribute mapping as parsed (camelCase or snake_case keys).
        owner: Description of the element, used in log messages.

    Returns:
        Style with only the given attributes set.

    Raises:
        InvalidAttributeError: If a value has the wrong type or is out of range.
    """
    values: Dict[str, Any] = {}
    for raw_key, value in attributes.items():
        key = normalize_key(raw_key)
        if key not in STYLE_FIELDS:
            logger.warning("Ignoring unknown attribute '%s' on %s", raw_key, owner)
            continue
        values[key] = _validate(raw_key, key, value)
    return Style(**values)


def _validate(raw_key: str, key: str, value: Any) -> Any:
    if key in STRING_FIELDS:
        if not isinstance(value, str) or not value:
            raise InvalidAttributeError(raw_key, value, "expected a non-empty string")
        if key == "fill_style" and value not in FILL_STYLES:
            raise InvalidAttributeError(
                raw_key, value, f"expected one of {', '.join(sorted(FILL_STYLES))}"
            )
        if key == "stroke_style" and value not in STROKE_STYLES:
            raise InvalidAttributeError(
                raw_key, value, f"expected one of {', '.join(sorted(STROKE_STYLES))}"
            )
        if key in EDGE_ONLY_FIELDS and value not in ARROWHEADS:
            raise InvalidAttributeError(
                raw_key, value, f"expected one of {', '.join(sorted(ARROWHEADS))}"
            )
        return value

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidAttributeError(raw_key, value, "expected a number")

    if key == "roughness":
        if not 0 <= value <= MAX_ROUGHNESS:
            raise InvalidAttributeError(
                raw_key, value, f"must be between 0 and {MAX_ROUGHNESS:g}"
            )
    elif key in POSITIVE_FIELDS and value <= 0:
        raise InvalidAttributeError(raw_key, value, "must be positive")
    elif key == "rounded" and value < 0:
        raise InvalidAttributeError(raw_key, value, "must not be negative")
    return float(value)


def _without(style: Style, names: Tuple[str, ...]) -> Style:
    return replace(style, **{name: None for name in names})


def _inherit(style: Style, parent: Style, names: Tuple[str, ...]) -> Style:
    """Fill fields of ``style`` listed in ``names`` from ``parent``."""
    inherited = Style(**{name: getattr(parent, name) for name in names})
    return style.merged_over(inherited)


class IGRBuilder:
    """
    Builds an IntermediateGraph from a Document.

    Attributes:
        measure: Callable returning ``(width, height)`` for a label and size.
        defaults: Global style defaults applied under the document's own.
    """

    def __init__(
        self,
        measure: Optional[Any] = None,
        defaults: Optional[Mapping[str, Any]] = None,
    ):
        if measure is None:
            measure = PillowTextMeasurer()
        self.measure: MeasureFn = getattr(measure, "measure", measure)
        if not callable(self.measure):
            raise TypeError("measure must be callable or provide a measure() method")
        self.defaults = dict(defaults or {})

    def build(self, document: Document) -> IntermediateGraph:
        """
        Build the graph for a parsed document.

        Args:
            document: Parser output.

        Returns:
            Unpositioned IntermediateGraph.

        Raises:
            BuildError: On duplicate ids, unknown node references, empty
                containers or invalid attribute values.
        """
        explicit_ids = self._collect_explicit_ids(document)

        igr = IntermediateGraph(document.config)
        self._global = self._global_style(document.config)
        self._generated: Counter = Counter()
        self._used_ids: Set[str] = set(explicit_ids)
        self._decl_ids: Dict[int, str] = {}

        self._add_statements(igr, document.statements, None)
        self._check_empty_containers(igr)
        self._add_edges(igr, document.statements, None, Counter(), Counter())

        logger.debug(
            "Built IGR with %d nodes, %d edges, %d containers",
            len(igr.nodes),
            len(igr.edges),
            len(igr.containers),
        )
        return igr

    # ------------------------------------------------------------------
    # Pass 1: explicit ids
    # ------------------------------------------------------------------

    def _collect_explicit_ids(self, document: Document) -> Set[str]:
        seen: Set[str] = set()
        for statement in document.walk():
            if isinstance(statement, NodeDecl):
                entity_id = statement.id
            elif isinstance(statement, ContainerDecl) and statement.alias:
                entity_id = statement.alias
            else:
                continue
            if entity_id in seen:
                raise DuplicateIdError(entity_id, statement.line)
            seen.add(entity_id)
        return seen

    # ------------------------------------------------------------------
    # Pass 2: containers and nodes
    # ------------------------------------------------------------------

    def _global_style(self, config: Mapping[str, Any]) -> Style:
        merged = {}
        for key, value in list(self.defaults.items()) + list(config.items()):
            if normalize_key(key) in GLOBAL_FIELDS and not isinstance(value, Mapping):
                merged[key] = value
        return style_from_attributes(merged, "configuration block")

    def _resolve(self, local: Style, parent: Optional[Container], names) -> Style:
        """Apply the cascade: local, then the enclosing container, then globals."""
        if parent is not None:
            local = _inherit(local, parent.style, names)
        return local.merged_over(self._global)

    def _add_statements(
        self,
        igr: IntermediateGraph,
        statements: List[Any],
        parent: Optional[Container],
    ) -> None:
        for statement in statements:
            if isinstance(statement, ContainerDecl):
                self._add_container(igr, statement, parent)
            elif isinstance(statement, NodeDecl):
                self._add_node(igr, statement, parent)

    def _add_container(
        self,
        igr: IntermediateGraph,
        decl: ContainerDecl,
        parent: Optional[Container],
    ) -> None:
        container_id = decl.alias or self._generate_container_id(decl)
        owner = f"{decl.keyword} '{container_id}'"
        local = style_from_attributes(decl.attributes, owner)
        style = self._resolve(local, parent, INHERITED_FIELDS)
        style = _without(style, EDGE_ONLY_FIELDS)

        container = Container(
            id=container_id,
            label=decl.label,
            alias=decl.alias,
            is_group=isinstance(decl, GroupDecl),
            style=style,
            parent=parent.id if parent else None,
        )
        if decl.label:
            container.label_width, container.label_height = self.measure(
                decl.label, style.font_size or DEFAULT_FONT_SIZE
            )
        igr.add_container(container)
        self._decl_ids[id(decl)] = container_id

        self._add_statements(igr, decl.statements, container)

    def _generate_container_id(self, decl: ContainerDecl) -> str:
        base = slugify(decl.label) if decl.label else ""
        if not base or base[0].isdigit():
            self._generated[decl.keyword] += 1
            base = f"{decl.keyword}_{self._generated[decl.keyword]}"

        candidate = base
        suffix = 2
        while candidate in self._used_ids:
            candidate = f"{base}_{suffix}"
            suffix += 1
        self._used_ids.add(candidate)
        return candidate

    def _add_node(
        self,
        igr: IntermediateGraph,
        decl: NodeDecl,
        parent: Optional[Container],
    ) -> None:
        local = style_from_attributes(decl.attributes, f"node '{decl.id}'")
        style = self._resolve(local, parent, INHERITED_FIELDS)
        style = _without(style, EDGE_ONLY_FIELDS)

        label = decl.display_label
        font_size = style.font_size or DEFAULT_FONT_SIZE
        text_width, text_height = self.measure(label, font_size)

        node = Node(
            id=decl.id,
            label=label,
            shape=style.shape or DEFAULT_SHAPE,
            style=style,
            container=parent.id if parent else None,
            text_width=text_width,
            text_height=text_height,
            width=style.width or max(text_width + PADDING_X, MIN_WIDTH),
            height=style.height or max(text_height + PADDING_Y, MIN_HEIGHT),
        )
        igr.add_node(node)

    def _check_empty_containers(self, igr: IntermediateGraph) -> None:
        for container in igr.containers.values():
            if not container.nodes and not container.children:
                kind = "group" if container.is_group else "container"
                raise EmptyContainerError(container.id, kind)

    # ------------------------------------------------------------------
    # Pass 3: edges
    # ------------------------------------------------------------------

    def _add_edges(
        self,
        igr: IntermediateGraph,
        statements: List[Any],
        parent: Optional[Container],
        edge_counts: Counter,
        chain_counts: Counter,
    ) -> None:
        for statement in statements:
            if isinstance(statement, EdgeDecl):
                self._expand_edge(igr, statement, parent, edge_counts, chain_counts)
            elif isinstance(statement, ContainerDecl):
                container = igr.containers[self._decl_ids[id(statement)]]
                self._add_edges(
                    igr, statement.statements, container, edge_counts, chain_counts
                )

    def _expand_edge(
        self,
        igr: IntermediateGraph,
        decl: EdgeDecl,
        parent: Optional[Container],
        edge_counts: Counter,
        chain_counts: Counter,
    ) -> None:
        operator = decl.kind.value
        description = f" {operator} ".join(decl.endpoints)
        for endpoint in decl.endpoints:
            if endpoint not in igr.nodes:
                raise UnknownNodeError(endpoint, description, decl.line)

        local = style_from_attributes(decl.attributes, f"edge {description}")
        style = self._resolve(local, parent, EDGE_INHERITED_FIELDS)
        style = _without(style, NODE_ONLY_FIELDS)

        chain_id = None
        if decl.is_chain:
            chain_id = operator.join(decl.endpoints)
            chain_counts[chain_id] += 1
            if chain_counts[chain_id] > 1:
                chain_id = f"{chain_id}#{chain_counts[chain_id]}"

        for source, target in decl.pairs():
            base_id = f"{source}{operator}{target}"
            edge_counts[base_id] += 1
            count = edge_counts[base_id]
            edge_id = base_id if count == 1 else f"{base_id}#{count}"
            igr.add_edge(
                Edge(
                    id=edge_id,
                    source=source,
                    target=target,
                    kind=decl.kind,
                    label=decl.label,
                    style=replace(style),
                    chain=chain_id,
                )
            )


def build(
    document: Document,
    measure: Optional[Any] = None,
    defaults: Optional[Mapping[str, Any]] = None,
) -> IntermediateGraph:
    """
    Convenience function to build an IGR from a parsed document.

    Args:
        document: Parser output
        measure: Text measurer; defaults to PillowTextMeasurer
        defaults: Global style defaults under the document's own

    Returns:
        Unpositioned IntermediateGraph
    """
    return IGRBuilder(measure, defaults).build(document)
