"""
Error types raised by the compilation pipeline.

Every stage fails fast with an exception typed by the stage that produced
it, so callers can tell syntax problems apart from semantic and layout
problems:

- ParseError: malformed source text (carries line and column).
- BuildError: the document parsed but does not describe a valid graph.
- LayoutError: the selected layout algorithm cannot place the graph, or the
  layout configuration is invalid.
"""

from typing import List, Optional


class EDSLError(Exception):
    """Base class for all compiler errors."""

    pass


class ParseError(EDSLError):
    """Raised when input parsing fails."""

    def __init__(
        self, message: str, line: Optional[int] = None, column: Optional[int] = None
    ):
        self.message = message
        self.line = line
        self.column = column
        super().__init__(self._format())

    def _format(self) -> str:
        if self.line is None:
            return self.message
        if self.column is None:
            return f"Line {self.line}: {self.message}"
        return f"Line {self.line}, column {self.column}: {self.message}"


class BuildError(EDSLError):
    """Raised when a parsed document cannot be turned into a graph."""

    pass


class UnknownNodeError(BuildError):
    """An edge references a node id that is never declared."""

    def __init__(self, node_id: str, edge: str, line: Optional[int] = None):
        self.node_id = node_id
        self.edge = edge
        self.line = line
        location = f" (line {line})" if line is not None else ""
        super().__init__(
            f"Unknown node '{node_id}' referenced by edge {edge}{location}"
        )


class DuplicateIdError(BuildError):
    """An id is declared twice somewhere in the document."""

    def __init__(self, entity_id: str, line: Optional[int] = None):
        self.entity_id = entity_id
        self.line = line
        location = f" (line {line})" if line is not None else ""
        super().__init__(f"Duplicate id '{entity_id}'{location}")


class EmptyContainerError(BuildError):
    """A container or group owns no nodes and no child containers."""

    def __init__(self, container_id: str, kind: str = "container"):
        self.container_id = container_id
        self.kind = kind
        super().__init__(
            f"Empty {kind} '{container_id}': a {kind} must hold at least one "
            f"node or nested container"
        )


class InvalidAttributeError(BuildError):
    """An attribute has a value of the wrong type or outside its range."""

    def __init__(self, attribute: str, value: object, reason: str = ""):
        self.attribute = attribute
        self.value = value
        suffix = f": {reason}" if reason else ""
        super().__init__(f"Invalid value for '{attribute}': {value!r}{suffix}")


class LayoutError(EDSLError):
    """Raised when a layout algorithm cannot position the graph."""

    pass


class CycleDetectedError(LayoutError):
    """The layered engine was given a graph with a directed cycle."""

    def __init__(self, cycle: List[str], algorithm: str = "dagre"):
        self.cycle = list(cycle)
        self.algorithm = algorithm
        path = " -> ".join(self.cycle)
        super().__init__(
            f"The '{algorithm}' layout requires a directed acyclic graph but "
            f"found a cycle: {path}. Use 'layout: force' instead, which "
            f"supports cycles."
        )


class ConfigurationError(LayoutError):
    """Unknown algorithm name or invalid layout configuration value."""

    pass
