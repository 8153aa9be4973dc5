"""Unit tests for the parser module."""

import pytest

from edsl.errors import ParseError
from edsl.models import (
    ArrowKind,
    ContainerDecl,
    Document,
    EdgeDecl,
    GroupDecl,
    NodeDecl,
)
from edsl.parser import Parser, parse_edsl


class TestNodes:
    """Tests for node declarations."""

    def test_parse_bare_node(self, parser):
        """A bare identifier declares a node labelled with its id."""
        doc = parser.parse("web")
        assert doc.statements == [NodeDecl(id="web", line=1)]
        assert doc.statements[0].display_label == "web"

    def test_parse_node_with_label(self, parser):
        """Brackets give the display label."""
        doc = parser.parse("web[Web Server]")
        node = doc.statements[0]
        assert node.id == "web"
        assert node.label == "Web Server"

    def test_parse_quoted_bracket_label(self, parser):
        """Quotes inside brackets are stripped."""
        doc = parser.parse('db["Primary DB"]')
        assert doc.statements[0].label == "Primary DB"

    def test_parse_node_attributes(self, parser):
        """Attribute blocks accept strings, colors, numbers and booleans."""
        doc = parser.parse(
            'db[Database] { shape: cylinder; backgroundColor: "#dbeafe"; '
            "strokeColor: #1e293b, fontSize: 16, roughness: 1.5, rounded: true }"
        )
        assert doc.statements[0].attributes == {
            "shape": "cylinder",
            "backgroundColor": "#dbeafe",
            "strokeColor": "#1e293b",
            "fontSize": 16,
            "roughness": 1.5,
            "rounded": True,
        }

    def test_parse_attributes_across_lines(self, parser):
        """Newlines separate attributes too."""
        doc = parser.parse(
            """a {
                fill: cross-hatch
                strokeStyle: dashed
            }"""
        )
        assert doc.statements[0].attributes == {
            "fill": "cross-hatch",
            "strokeStyle": "dashed",
        }

    def test_parse_several_nodes_on_one_line(self, parser):
        """Whitespace alone separates statements."""
        doc = parser.parse("a[A] b[B] c[C] d[D]")
        assert [n.id for n in doc.statements] == ["a", "b", "c", "d"]

    def test_parse_semicolon_terminators(self, parser):
        """Semicolons are optional statement terminators."""
        doc = parser.parse("a; b; c;")
        assert [n.id for n in doc.statements] == ["a", "b", "c"]

    def test_parse_error_unterminated_label(self, parser):
        """A label must close on the same line."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("a[Label\nb")
        assert "Unterminated node label" in str(exc_info.value)
        assert exc_info.value.line == 1

    def test_parse_error_empty_label(self, parser):
        """Empty brackets are rejected."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("a[]")
        assert "Empty node label" in str(exc_info.value)


class TestEdges:
    """Tests for edge declarations."""

    def test_parse_simple_edge(self, parser):
        """Test parsing a single arrow."""
        doc = parser.parse("a -> b")
        assert doc.statements == [
            EdgeDecl(endpoints=["a", "b"], kind=ArrowKind.ARROW, line=1)
        ]

    @pytest.mark.parametrize(
        "source,kind",
        [
            ("a -> b", ArrowKind.ARROW),
            ("a -- b", ArrowKind.LINE),
            ("a <-> b", ArrowKind.BIDIRECTIONAL),
            ("a->b", ArrowKind.ARROW),
        ],
    )
    def test_parse_operators(self, parser, source, kind):
        """Each operator maps to its arrow kind."""
        assert parser.parse(source).statements[0].kind == kind

    def test_parse_chain(self, parser):
        """Chains keep every endpoint in order."""
        edge = parser.parse("a -> b -> c -> d").statements[0]
        assert edge.endpoints == ["a", "b", "c", "d"]
        assert edge.is_chain
        assert list(edge.pairs()) == [("a", "b"), ("b", "c"), ("c", "d")]

    def test_mixed_chain_uses_first_operator(self, parser):
        """A chain takes the kind of its first operator."""
        edge = parser.parse("a -- b -> c <-> d").statements[0]
        assert edge.kind == ArrowKind.LINE
        assert edge.endpoints == ["a", "b", "c", "d"]

    def test_parse_quoted_label(self, parser):
        """Colon followed by a string gives the label."""
        edge = parser.parse('a -> b: "HTTP request"').statements[0]
        assert edge.label == "HTTP request"

    def test_parse_bare_label(self, parser):
        """Unquoted labels run to the end of the line."""
        doc = parser.parse("a -> b: calls the api\nc")
        assert doc.statements[0].label == "calls the api"
        assert doc.statements[1] == NodeDecl(id="c", line=2)

    def test_parse_brace_label(self, parser):
        """Braces without key/value pairs hold a label."""
        edge = parser.parse("a -> b {reads}").statements[0]
        assert edge.label == "reads"
        assert edge.attributes == {}

    def test_parse_edge_attributes(self, parser):
        """Braces with key/value pairs hold attributes."""
        edge = parser.parse('a -> b: "x" { strokeStyle: dotted }').statements[0]
        assert edge.label == "x"
        assert edge.attributes == {"strokeStyle": "dotted"}

    def test_parse_label_escapes(self, parser):
        """Strings support escaped quotes and newlines."""
        edge = parser.parse(r'a -> b: "say \"hi\"\nnow"').statements[0]
        assert edge.label == 'say "hi"\nnow'

    def test_forward_references_are_not_errors(self, parser):
        """Edges may mention nodes that are never declared."""
        doc = parser.parse("ghost -> phantom")
        assert len(doc.edges) == 1

    def test_parse_error_malformed_chain(self, parser):
        """An operator must be followed by a node id."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("a -> b\nc -> ")
        assert "Malformed edge chain" in str(exc_info.value)
        assert exc_info.value.line == 2

    def test_parse_error_double_operator(self, parser):
        """Two operators in a row are malformed."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("a -> -> b")
        assert "Malformed edge chain" in str(exc_info.value)

    def test_parse_error_unterminated_string(self, parser):
        """Strings must close before the end of the line."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse('a -> b: "oops\nc')
        assert "Unterminated string" in str(exc_info.value)

    def test_parse_error_two_labels(self, parser):
        """An edge cannot have a colon label and a brace label."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse('a -> b: "one" {two}')
        assert "already has a label" in str(exc_info.value)

    def test_labelled_endpoints_declare_nodes(self, parser):
        """A [label] on a chain endpoint declares that node inline."""
        doc = parser.parse("a[Start] -> b[Process] -> c[End]")
        assert doc.statements == [
            NodeDecl(id="a", label="Start", line=1),
            NodeDecl(id="b", label="Process", line=1),
            NodeDecl(id="c", label="End", line=1),
            EdgeDecl(endpoints=["a", "b", "c"], kind=ArrowKind.ARROW, line=1),
        ]

    def test_mixed_labelled_and_bare_endpoints(self, parser):
        """Only labelled endpoints become declarations."""
        doc = parser.parse('a -> b[B]: "uses"')
        assert [n.id for n in doc.nodes] == ["b"]
        assert doc.edges[0].endpoints == ["a", "b"]
        assert doc.edges[0].label == "uses"

    def test_labelled_endpoints_inside_container(self, parser):
        """Inline declarations stay in the enclosing block."""
        block = parser.parse('container "X" { web[Web] -> api[API] }').statements[0]
        assert [type(s) for s in block.statements] == [NodeDecl, NodeDecl, EdgeDecl]

    @pytest.mark.parametrize(
        "source",
        [
            "a -> b: calls # note\nc",
            "a -> b: calls // note\nc",
            "a -> b: calls /* note */\nc",
        ],
    )
    def test_bare_label_stops_at_comment(self, parser, source):
        """A trailing comment is not part of a bare label."""
        doc = parser.parse(source)
        assert doc.statements[0].label == "calls"
        assert doc.statements[1] == NodeDecl(id="c", line=2)


class TestContainers:
    """Tests for container and group blocks."""

    def test_parse_container_with_alias(self, parser):
        """Test label, alias and nested statements."""
        doc = parser.parse(
            """
            container "Backend" as backend {
                api[API]
                worker
                api -> worker
            }
            """
        )
        block = doc.statements[0]
        assert isinstance(block, ContainerDecl)
        assert not isinstance(block, GroupDecl)
        assert block.label == "Backend"
        assert block.alias == "backend"
        assert [type(s) for s in block.statements] == [NodeDecl, NodeDecl, EdgeDecl]
        assert block.line == 2

    def test_parse_group(self, parser):
        """Groups parse like containers but keep their own type."""
        block = parser.parse('group "Team" { a b }').statements[0]
        assert isinstance(block, GroupDecl)
        assert block.keyword == "group"

    def test_parse_unlabelled_container(self, parser):
        """Label and alias are optional."""
        block = parser.parse("container { a }").statements[0]
        assert block.label is None
        assert block.alias is None

    def test_parse_style_before_body(self, parser):
        """style: {...} may come before the body."""
        block = parser.parse(
            'container "X" style: { strokeColor: "#000" } { a }'
        ).statements[0]
        assert block.attributes == {"strokeColor": "#000"}

    def test_parse_style_inside_body(self, parser):
        """style: {...} may also be an entry of the body."""
        block = parser.parse(
            """
            container "X" as x {
                style: { fill: solid; roughness: 0 }
                a
            }
            """
        ).statements[0]
        assert block.attributes == {"fill": "solid", "roughness": 0}
        assert block.statements == [NodeDecl(id="a", line=4)]

    def test_nested_containers(self, parser):
        """Blocks nest to any depth."""
        doc = parser.parse(
            'container "Outer" { container "Inner" { y } x }'
        )
        outer = doc.statements[0]
        inner = outer.statements[0]
        assert inner.label == "Inner"
        assert [s.id for s in doc.nodes] == ["y", "x"]
        assert len(doc.containers) == 2

    def test_keyword_as_node_id(self, parser):
        """'container' followed by an operator is an ordinary node id."""
        edge = parser.parse("container -> group").statements[0]
        assert edge.endpoints == ["container", "group"]

    def test_parse_error_unterminated_block(self, parser):
        """A block must be closed."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse('container "X" {\n  a\n')
        assert "Unterminated container block" in str(exc_info.value)
        assert exc_info.value.line == 1

    def test_parse_error_stray_brace(self, parser):
        """A closing brace without a block is an error."""
        with pytest.raises(ParseError):
            parser.parse("a }")


class TestConfigBlock:
    """Tests for the leading --- configuration block."""

    def test_parse_config(self, parser):
        """YAML pairs between fences become the config mapping."""
        doc = parser.parse("---\nlayout: force\ndirection: LR\n---\na -> b")
        assert doc.config == {"layout": "force", "direction": "LR"}
        assert len(doc.statements) == 1

    def test_parse_indented_config(self, parser):
        """Indentation shared by the block is ignored."""
        doc = parser.parse(
            """
            ---
            layout: dagre
            dagre:
              crossing_passes: 4
            ---
            a -> b
            """
        )
        assert doc.config == {"layout": "dagre", "dagre": {"crossing_passes": 4}}

    def test_no_config(self, parser):
        """Without fences the config is empty."""
        assert parser.parse("a -> b").config == {}

    def test_empty_config(self, parser):
        """An empty block is an empty mapping."""
        assert parser.parse("---\n---\na").config == {}

    def test_parse_error_unterminated_config(self, parser):
        """The closing fence is required."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("---\nlayout: force\na -> b")
        assert "Unterminated configuration block" in str(exc_info.value)

    def test_parse_error_config_not_mapping(self, parser):
        """The block must hold key/value pairs."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("---\n- a\n- b\n---\na")
        assert "key: value" in str(exc_info.value)

    def test_parse_error_invalid_yaml(self, parser):
        """YAML syntax errors are reported as parse errors."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("---\nlayout: [force\n---\na")
        assert "Invalid configuration block" in str(exc_info.value)


class TestComments:
    """Tests for comment handling."""

    def test_line_and_block_comments(self, parser):
        """#, // and /* */ comments are skipped."""
        doc = parser.parse(
            """
            # heading
            a -> b // trailing
            /* block
               comment */ c -> d
            """
        )
        assert [e.endpoints for e in doc.edges] == [["a", "b"], ["c", "d"]]

    def test_color_value_is_not_a_comment(self, parser):
        """A # right after a colon starts a colour, not a comment."""
        node = parser.parse("a { strokeColor: #abc }").statements[0]
        assert node.attributes == {"strokeColor": "#abc"}

    def test_parse_error_unterminated_block_comment(self, parser):
        """Block comments must be closed."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("a /* never closed")
        assert "Unterminated block comment" in str(exc_info.value)


class TestParseEdsl:
    """Tests for the convenience function and determinism."""

    def test_parse_edsl_returns_document(self):
        """parse_edsl wraps Parser().parse."""
        doc = parse_edsl("a -> b")
        assert isinstance(doc, Document)

    def test_parsing_twice_gives_equal_documents(self, chain_input):
        """Parsing is a pure function of the text."""
        assert Parser().parse(chain_input) == Parser().parse(chain_input)

    def test_parser_is_reusable(self, parser):
        """One Parser instance can parse several texts."""
        parser.parse("a -> b")
        doc = parser.parse("c")
        assert doc.statements == [NodeDecl(id="c", line=1)]

    def test_error_message_has_location(self, parser):
        """ParseError text starts with line and column."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("a -> ")
        assert str(exc_info.value).startswith("Line 1, column 6:")
