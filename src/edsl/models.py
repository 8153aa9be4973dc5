"""
Syntax tree models produced by the parser.

This module contains the dataclasses that describe a parsed EDSL document
before any reference resolution happens. The IGR builder consumes these and
discards them once the graph has been built.

Classes:
    ArrowKind: The three edge operators of the language.
    NodeDecl: A node declaration such as ``web[Web Server] { ... }``.
    EdgeDecl: An edge or chain declaration such as ``a -> b -> c: "flow"``.
    ContainerDecl: A ``container "name" [as alias] { ... }`` block.
    GroupDecl: A ``group "name" { ... }`` block (non-rendered grouping).
    Document: The whole parse result (configuration block plus statements).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union


class ArrowKind(Enum):
    """Edge operator kinds."""

    ARROW = "->"
    LINE = "--"
    BIDIRECTIONAL = "<->"

    @classmethod
    def from_operator(cls, operator: str) -> "ArrowKind":
        return cls(operator)


@dataclass
class NodeDecl:
    """
    A node declaration.

    Attributes:
        id: Node identifier, unique across the whole document.
        label: Display label; defaults to the id when not given.
        attributes: Raw attribute block (key -> str/number/bool).
        line: Source line of the declaration.
    """

    id: str
    label: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    line: int = 0

    @property
    def display_label(self) -> str:
        return self.label if self.label is not None else self.id


@dataclass
class EdgeDecl:
    """
    An edge declaration.

    An EdgeDecl with more than two endpoints is a chain: the builder expands
    it into one edge per consecutive pair of endpoints, all sharing the
    chain's kind, label and attributes.

    Attributes:
        endpoints: Node references in order (at least two).
        kind: Arrow kind of the declaration (first operator of a chain).
        label: Optional edge label.
        attributes: Raw attribute block.
        line: Source line of the declaration.
    """

    endpoints: List[str]
    kind: ArrowKind = ArrowKind.ARROW
    label: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    line: int = 0

    @property
    def is_chain(self) -> bool:
        return len(self.endpoints) > 2

    def pairs(self) -> Iterator[tuple]:
        """Yield (source, target) for each consecutive pair of endpoints."""
        for i in range(len(self.endpoints) - 1):
            yield self.endpoints[i], self.endpoints[i + 1]


@dataclass
class ContainerDecl:
    """
    A container block with its own attributes and nested statements.

    Attributes:
        label: Display label (the quoted name), if any.
        alias: Explicit id given with ``as alias``, if any.
        attributes: Attributes from the block's ``style: { ... }``.
        statements: Nested statements in source order.
        line: Source line of the ``container`` keyword.
    """

    label: Optional[str] = None
    alias: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    statements: List["Statement"] = field(default_factory=list)
    line: int = 0

    keyword = "container"


@dataclass
class GroupDecl(ContainerDecl):
    """A group block: same shape as a container, but never rendered."""

    keyword = "group"


Statement = Union[NodeDecl, EdgeDecl, ContainerDecl, GroupDecl]


@dataclass
class Document:
    """
    Result of parsing a source text.

    Attributes:
        config: Key/value options from the leading configuration block.
        statements: Top-level statements in source order.
    """

    config: Dict[str, Any] = field(default_factory=dict)
    statements: List[Statement] = field(default_factory=list)

    def walk(self) -> Iterator[Statement]:
        """Yield every statement, depth first, in source order."""
        stack: List[Iterator[Statement]] = [iter(self.statements)]
        while stack:
            statement = next(stack[-1], None)
            if statement is None:
                stack.pop()
                continue
            yield statement
            if isinstance(statement, ContainerDecl):
                stack.append(iter(statement.statements))

    @property
    def nodes(self) -> List[NodeDecl]:
        return [s for s in self.walk() if isinstance(s, NodeDecl)]

    @property
    def edges(self) -> List[EdgeDecl]:
        return [s for s in self.walk() if isinstance(s, EdgeDecl)]

    @property
    def containers(self) -> List[ContainerDecl]:
        return [s for s in self.walk() if isinstance(s, ContainerDecl)]
