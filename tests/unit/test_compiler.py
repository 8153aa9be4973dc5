"""Unit tests for the compiler module."""

import pytest

from edsl import CompilerConfig, EDSLCompiler, compile_edsl
from edsl.errors import BuildError, CycleDetectedError, ParseError
from edsl.igr import IntermediateGraph


class TestEDSLCompiler:
    """Tests for EDSLCompiler."""

    def test_compile_returns_positioned_graph(self, compiler, simple_input):
        """compile() runs every stage."""
        graph = compiler.compile(simple_input)
        assert isinstance(graph, IntermediateGraph)
        assert graph.is_positioned()

    def test_stages_can_run_separately(self, compiler, chain_input):
        """parse, build and layout are usable one by one."""
        document = compiler.parse(chain_input)
        graph = compiler.build(document)
        assert not graph.is_positioned()
        assert compiler.layout(graph) is graph
        assert graph.is_positioned()

    def test_serializer(self, compiler, simple_input):
        """A serializer receives the positioned graph."""
        result = compiler.compile(simple_input, serializer=lambda g: g.to_dict())
        assert isinstance(result, dict)
        assert result["nodes"][0]["x"] is not None

    def test_overrides_win_over_document(self, measurer, cyclic_input):
        """Compiler overrides replace the document's settings."""
        compiler = EDSLCompiler(
            CompilerConfig(measure=measurer, overrides={"algorithm": "force"})
        )
        graph = compiler.compile("---\nlayout: dagre\n---\n" + cyclic_input)
        assert graph.is_positioned()

    def test_default_algorithm(self, measurer, cyclic_input):
        """default_algorithm applies when the document names none."""
        compiler = EDSLCompiler(
            CompilerConfig(measure=measurer, default_algorithm="force")
        )
        assert compiler.compile(cyclic_input).is_positioned()

    @pytest.mark.parametrize(
        "source,error",
        [
            ("a -> ", ParseError),
            ("a\na -> b", BuildError),
            ("a b\na -> b -> a", CycleDetectedError),
        ],
    )
    def test_errors_propagate(self, compiler, source, error):
        """Each stage raises its own error type."""
        with pytest.raises(error):
            compiler.compile(source)


class TestDebugMode:
    """Tests for compile tracing."""

    def test_trace_recorded(self, compiler, nested_input):
        """debug=True records one stage per step."""
        compiler.compile(nested_input, debug=True)
        trace = compiler.get_trace()
        assert [s.name for s in trace.stages] == ["parse", "build", "layout"]
        assert trace.algorithm == "dagre"
        assert trace.input_text == nested_input
        assert trace.get_stage("build").data == {
            "nodes": 4,
            "edges": 3,
            "containers": 2,
        }
        layout = trace.get_stage("layout").data
        assert layout["direction"] == "TB"
        assert layout["bounding_box"].x == pytest.approx(0.0)

    def test_no_trace_without_debug(self, compiler, simple_input):
        """A normal compile clears the previous trace."""
        compiler.compile(simple_input, debug=True)
        compiler.compile(simple_input)
        assert compiler.get_trace() is None


class TestCompileEdsl:
    """Tests for the compile_edsl convenience function."""

    def test_compile_edsl(self, simple_input):
        """compile_edsl uses default settings (Pillow measurement)."""
        graph = compile_edsl(simple_input, cache_enabled=False)
        assert graph.is_positioned()
        assert graph.nodes["a"].width >= 100.0

    def test_compile_edsl_with_measure(self, measurer, chain_input):
        """Keyword arguments become CompilerConfig fields."""
        graph = compile_edsl(chain_input, measure=measurer, parallel=True)
        assert len(graph.edges) == 3
