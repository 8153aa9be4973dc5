"""
Parser module for the EDSL diagram language.

Turns source text into a Document (see models.py). The parser is a single
pass, hand-written recursive descent over the raw text: whitespace and
comments are insignificant between tokens, and node references are not
resolved here (forward references are legal; resolution happens in the
IGR builder).

Example source::

    ---
    layout: dagre
    direction: LR
    ---

    # Nodes
    web[Web Server] { backgroundColor: "#dbeafe"; }
    db[Database] { shape: cylinder }

    container "Backend" as backend {
        style: { strokeColor: "#334155"; }
        api[API]
        worker[Worker]
    }

    web -> api -> db: "queries"
    api -- worker
    api -> cache[Cache]   # labelled endpoints declare the node inline
"""

import logging
import re
import textwrap
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ParseError
from .models import (
    ArrowKind,
    ContainerDecl,
    Document,
    EdgeDecl,
    GroupDecl,
    NodeDecl,
    Statement,
)

logger = logging.getLogger(__name__)


class Parser:
    """Parses EDSL source text into a Document."""

    IDENT_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
    ATTRIBUTE_KEY_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_\-]*")
    NUMBER_PATTERN = re.compile(
        r"-?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][-+]?\d+)?(?![A-Za-z0-9_])"
    )
    COLOR_PATTERN = re.compile(r"#[0-9A-Fa-f]{3,8}(?![A-Za-z0-9_])")
    VALUE_WORD_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_\-.]*")
    CONFIG_FENCE_PATTERN = re.compile(r"^[ \t]*---[ \t]*$", re.MULTILINE)

    # Lookahead deciding whether "container"/"group" starts a block or is
    # just a node id that happens to use the keyword.
    BLOCK_START_PATTERN = re.compile(r'\s*(?:"|\{|as\s+[A-Za-z_]|style\s*:)')
    STYLE_ENTRY_PATTERN = re.compile(r"style\s*:\s*(?=\{)")
    ATTRIBUTE_ENTRY_PATTERN = re.compile(r"\s*[A-Za-z_][A-Za-z0-9_\-]*\s*:")

    # Longest operator first so "<->" is not read as "<" followed by "->"
    OPERATORS = ("<->", "->", "--")
    KEYWORDS = ("container", "group")

    def __init__(self):
        self.text = ""
        self.pos = 0

    def parse(self, input_text: str) -> Document:
        """
        Parse source text into a Document.

        Args:
            input_text: EDSL source, optionally starting with a
                ``---``-delimited configuration block.

        Returns:
            Document with the configuration mapping and top-level statements.

        Raises:
            ParseError: If the text is malformed. The error carries the
                line and column of the offending character.
        """
        self.text = input_text
        self.pos = 0

        config = self._parse_config()
        statements: List[Statement] = []

        while True:
            self._skip_trivia()
            if self._at_end():
                break
            if self._peek() == "}":
                raise self._error("Unexpected '}' without a matching block")
            statements.extend(self._parse_statement())
            self._skip_terminator()

        logger.debug(
            "Parsed %d top-level statements (config keys: %s)",
            len(statements),
            sorted(config),
        )
        return Document(config=config, statements=statements)

    # ------------------------------------------------------------------
    # Configuration block
    # ------------------------------------------------------------------

    def _parse_config(self) -> Dict[str, Any]:
        """Parse the optional leading ``---`` ... ``---`` block."""
        leading = re.match(r"\s*", self.text)
        start = leading.end() if leading else 0
        if not self.text.startswith("---", start):
            return {}
        opening = self.CONFIG_FENCE_PATTERN.match(
            self.text, self.text.rfind("\n", 0, start) + 1
        )
        if opening is None:
            return {}

        # The opening fence matched from `start`; the block body begins on
        # the next line.
        body_start = opening.end() + 1
        closing = self.CONFIG_FENCE_PATTERN.search(self.text, body_start)
        if closing is None:
            raise self._error("Unterminated configuration block: missing '---'", start)

        raw = self.text[body_start : closing.start()]
        self.pos = closing.end()

        try:
            loaded = yaml.safe_load(textwrap.dedent(raw))
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            first_line = self._location(body_start)[0]
            line = first_line + mark.line if mark is not None else first_line
            problem = getattr(exc, "problem", None) or str(exc)
            raise ParseError(f"Invalid configuration block: {problem}", line) from exc

        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            raise self._error(
                "Configuration block must contain 'key: value' pairs", body_start
            )
        return {str(key): value for key, value in loaded.items()}

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _parse_statement(self) -> List[Statement]:
        """Parse one statement; an edge with labelled endpoints yields several."""
        word = self.IDENT_PATTERN.match(self.text, self.pos)
        if word is None:
            raise self._error(
                f"Expected a node, edge, container or group, found {self._peek()!r}"
            )

        keyword = word.group(0)
        if keyword in self.KEYWORDS and self.BLOCK_START_PATTERN.match(
            self.text, word.end()
        ):
            return [self._parse_block(keyword)]

        return self._parse_node_or_edge()

    def _parse_block(self, keyword: str) -> ContainerDecl:
        """Parse ``container|group ["label"] [as alias] [style: {...}] { ... }``."""
        block_start = self.pos
        line = self._location(block_start)[0]
        self.pos += len(keyword)
        self._skip_trivia()

        label: Optional[str] = None
        if self._peek() == '"':
            label = self._parse_string()
            self._skip_trivia()

        alias: Optional[str] = None
        if self._match_word("as"):
            self._skip_trivia()
            alias = self._expect_identifier(f"{keyword} alias after 'as'")
            self._skip_trivia()

        attributes: Dict[str, Any] = {}
        style = self.STYLE_ENTRY_PATTERN.match(self.text, self.pos)
        if style:
            self.pos = style.end()
            attributes.update(self._parse_attribute_block())
            self._skip_trivia()

        if self._peek() != "{":
            raise self._error(f"Expected '{{' to open the {keyword} body")
        self.pos += 1

        statements: List[Statement] = []
        while True:
            self._skip_trivia()
            if self._at_end():
                raise self._error(
                    f"Unterminated {keyword} block: missing '}}'", block_start
                )
            if self._peek() == "}":
                self.pos += 1
                break

            style = self.STYLE_ENTRY_PATTERN.match(self.text, self.pos)
            if style:
                self.pos = style.end()
                attributes.update(self._parse_attribute_block())
                self._skip_terminator()
                continue

            statements.extend(self._parse_statement())
            self._skip_terminator()

        decl_class = GroupDecl if keyword == "group" else ContainerDecl
        return decl_class(
            label=label,
            alias=alias,
            attributes=attributes,
            statements=statements,
            line=line,
        )

    def _parse_node_or_edge(self) -> List[Statement]:
        """
        Parse a node declaration or an edge chain.

        Any chain endpoint may carry a ``[label]``; a labelled endpoint
        declares that node inline, so ``a[A] -> b[B]`` yields two NodeDecls
        followed by the EdgeDecl. Unlabelled endpoints are plain references.
        """
        start = self.pos
        line = self._location(start)[0]
        first = self._expect_identifier("node id")
        self._skip_trivia()

        first_label: Optional[str] = None
        if self._peek() == "[":
            first_label = self._parse_bracket_label()
            self._skip_trivia()

        kind = self._match_operator()
        if kind is None:
            return [self._parse_node_rest(first, line, first_label)]

        declared: List[Statement] = []
        if first_label is not None:
            declared.append(NodeDecl(id=first, label=first_label, line=line))

        # A chain takes the kind of its first operator
        chain_kind = kind
        endpoints = [first]
        while kind is not None:
            self._skip_trivia()
            target_pos = self.pos
            target = self.IDENT_PATTERN.match(self.text, self.pos)
            if target is None:
                raise self._error(
                    "Malformed edge chain: expected a node id after the operator"
                )
            endpoints.append(target.group(0))
            self.pos = target.end()
            self._skip_trivia()

            if self._peek() == "[":
                declared.append(
                    NodeDecl(
                        id=target.group(0),
                        label=self._parse_bracket_label(),
                        line=self._location(target_pos)[0],
                    )
                )
                self._skip_trivia()

            kind = self._match_operator()
            if kind is not None and kind != chain_kind:
                logger.debug(
                    "Line %d: mixed operators in chain, using %r for all segments",
                    line,
                    chain_kind.value,
                )

        declared.append(self._parse_edge_rest(endpoints, chain_kind, line))
        return declared

    def _parse_node_rest(
        self, node_id: str, line: int, label: Optional[str] = None
    ) -> NodeDecl:
        attributes: Dict[str, Any] = {}
        if self._peek() == "{":
            attributes = self._parse_attribute_block()

        return NodeDecl(id=node_id, label=label, attributes=attributes, line=line)

    def _parse_edge_rest(
        self, endpoints: List[str], kind: ArrowKind, line: int
    ) -> EdgeDecl:
        label: Optional[str] = None
        if self._peek() == ":":
            self.pos += 1
            label = self._parse_edge_label()
            self._skip_trivia()

        attributes: Dict[str, Any] = {}
        if self._peek() == "{":
            brace_label, attributes = self._parse_edge_brace()
            if brace_label is not None:
                if label is not None:
                    raise self._error("Edge already has a label")
                label = brace_label

        return EdgeDecl(
            endpoints=endpoints,
            kind=kind,
            label=label,
            attributes=attributes,
            line=line,
        )

    def _parse_edge_label(self) -> str:
        """
        Parse the text after ``:`` (quoted, or bare up to the end of the line).

        A bare label also stops at a trailing comment.
        """
        while self._peek() in (" ", "\t"):
            self.pos += 1

        if self._peek() == '"':
            return self._parse_string()

        end = self.pos
        while end < len(self.text) and self.text[end] not in "\n;{}#":
            if self.text.startswith(("//", "/*"), end):
                break
            end += 1
        label = self.text[self.pos : end].strip()
        if not label:
            raise self._error("Empty edge label after ':'")
        self.pos = end
        return label

    def _parse_edge_brace(self) -> Tuple[Optional[str], Dict[str, Any]]:
        """
        Parse a brace block after an edge.

        A block made of ``key: value`` entries is an attribute block; any
        other content is the edge label (``a -> b {calls}``).
        """
        open_pos = self.pos
        close_pos = self._find_closing_brace(open_pos)
        content = self.text[open_pos + 1 : close_pos]

        entries = [part for part in re.split(r"[;,\n]", content) if part.strip()]
        if all(self.ATTRIBUTE_ENTRY_PATTERN.match(part) for part in entries):
            return None, self._parse_attribute_block()

        label = content.strip()
        if len(label) >= 2 and label[0] == label[-1] == '"':
            label = label[1:-1]
        self.pos = close_pos + 1
        return label, {}

    def _find_closing_brace(self, open_pos: int) -> int:
        in_string = False
        index = open_pos + 1
        while index < len(self.text):
            char = self.text[index]
            if char == "\\" and in_string:
                index += 2
                continue
            if char == '"':
                in_string = not in_string
            elif char == "}" and not in_string:
                return index
            index += 1
        raise self._error("Unterminated block: missing '}'", open_pos)

    # ------------------------------------------------------------------
    # Attribute blocks and values
    # ------------------------------------------------------------------

    def _parse_attribute_block(self) -> Dict[str, Any]:
        """Parse ``{ key: value; key: value }``; separators may be ; , or newlines."""
        open_pos = self.pos
        if self._peek() != "{":
            raise self._error("Expected '{' to open an attribute block")
        self.pos += 1

        attributes: Dict[str, Any] = {}
        while True:
            self._skip_trivia()
            if self._at_end():
                raise self._error(
                    "Unterminated attribute block: missing '}'", open_pos
                )
            if self._peek() == "}":
                self.pos += 1
                return attributes

            key_match = self.ATTRIBUTE_KEY_PATTERN.match(self.text, self.pos)
            if key_match is None:
                raise self._error(
                    f"Expected an attribute name, found {self._peek()!r}"
                )
            key = key_match.group(0)
            self.pos = key_match.end()

            self._skip_trivia()
            if self._peek() != ":":
                raise self._error(f"Expected ':' after attribute '{key}'")
            self.pos += 1
            self._skip_whitespace()

            attributes[key] = self._parse_value()

            self._skip_trivia()
            if self._peek() in (";", ","):
                self.pos += 1

    def _parse_value(self) -> Any:
        if self._at_end():
            raise self._error("Expected an attribute value, found end of input")

        if self._peek() == '"':
            return self._parse_string()

        color = self.COLOR_PATTERN.match(self.text, self.pos)
        if color:
            self.pos = color.end()
            return color.group(0)

        number = self.NUMBER_PATTERN.match(self.text, self.pos)
        if number:
            self.pos = number.end()
            raw = number.group(0)
            if any(c in raw for c in ".eE"):
                return float(raw)
            return int(raw)

        word = self.VALUE_WORD_PATTERN.match(self.text, self.pos)
        if word:
            self.pos = word.end()
            value = word.group(0)
            if value == "true":
                return True
            if value == "false":
                return False
            return value

        raise self._error(f"Invalid attribute value starting with {self._peek()!r}")

    def _parse_string(self) -> str:
        """Parse a double-quoted string literal (single line, with escapes)."""
        start = self.pos
        self.pos += 1
        chars: List[str] = []
        escapes = {"n": "\n", "t": "\t", '"': '"', "\\": "\\"}

        while True:
            if self._at_end() or self._peek() == "\n":
                raise self._error("Unterminated string literal", start)
            char = self._peek()
            if char == "\\":
                following = self.text[self.pos + 1 : self.pos + 2]
                if following in escapes:
                    chars.append(escapes[following])
                    self.pos += 2
                    continue
            if char == '"':
                self.pos += 1
                return "".join(chars)
            chars.append(char)
            self.pos += 1

    def _parse_bracket_label(self) -> str:
        start = self.pos
        end = self.pos + 1
        while end < len(self.text) and self.text[end] not in "]\n":
            end += 1
        if end >= len(self.text) or self.text[end] != "]":
            raise self._error("Unterminated node label: missing ']'", start)

        label = self.text[start + 1 : end].strip()
        if len(label) >= 2 and label[0] == label[-1] == '"':
            label = label[1:-1]
        if not label:
            raise self._error("Empty node label", start)
        self.pos = end + 1
        return label

    # ------------------------------------------------------------------
    # Scanner helpers
    # ------------------------------------------------------------------

    def _at_end(self) -> bool:
        return self.pos >= len(self.text)

    def _peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _skip_trivia(self) -> None:
        """Skip whitespace and comments (#, // and /* ... */)."""
        while True:
            self._skip_whitespace()
            if self.text.startswith("#", self.pos) or self.text.startswith(
                "//", self.pos
            ):
                newline = self.text.find("\n", self.pos)
                self.pos = len(self.text) if newline == -1 else newline + 1
            elif self.text.startswith("/*", self.pos):
                close = self.text.find("*/", self.pos + 2)
                if close == -1:
                    raise self._error("Unterminated block comment: missing '*/'")
                self.pos = close + 2
            else:
                return

    def _skip_terminator(self) -> None:
        self._skip_trivia()
        if self._peek() == ";":
            self.pos += 1

    def _match_operator(self) -> Optional[ArrowKind]:
        for operator in self.OPERATORS:
            if self.text.startswith(operator, self.pos):
                self.pos += len(operator)
                return ArrowKind.from_operator(operator)
        return None

    def _match_word(self, word: str) -> bool:
        end = self.pos + len(word)
        if not self.text.startswith(word, self.pos):
            return False
        if end < len(self.text) and (self.text[end].isalnum() or self.text[end] == "_"):
            return False
        self.pos = end
        return True

    def _expect_identifier(self, what: str) -> str:
        match = self.IDENT_PATTERN.match(self.text, self.pos)
        if match is None:
            found = repr(self._peek()) if not self._at_end() else "end of input"
            raise self._error(f"Expected {what}, found {found}")
        self.pos = match.end()
        return match.group(0)

    def _location(self, pos: int) -> Tuple[int, int]:
        line = self.text.count("\n", 0, pos) + 1
        column = pos - (self.text.rfind("\n", 0, pos) + 1) + 1
        return line, column

    def _error(self, message: str, pos: Optional[int] = None) -> ParseError:
        line, column = self._location(self.pos if pos is None else pos)
        return ParseError(message, line, column)


def parse_edsl(input_text: str) -> Document:
    """
    Convenience function to parse EDSL source.

    Args:
        input_text: EDSL source text

    Returns:
        Parsed Document
    """
    parser = Parser()
    return parser.parse(input_text)
