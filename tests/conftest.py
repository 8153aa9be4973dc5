"""Pytest configuration and shared fixtures for edsl tests."""

import pytest

from edsl import (
    CompilerConfig,
    DagreEngine,
    EDSLCompiler,
    ForceEngine,
    HeuristicTextMeasurer,
    IGRBuilder,
    LayoutContext,
    LayoutManager,
    Parser,
)


@pytest.fixture
def simple_input():
    """Two nodes and one edge."""
    return """
    a[A]
    b[B]
    a -> b
    """


@pytest.fixture
def chain_input():
    """Four nodes joined by one chain."""
    return """
    a[A] b[B] c[C] d[D]
    a -> b -> c -> d
    """


@pytest.fixture
def branching_input():
    """Diamond shaped graph."""
    return """
    start[Start]
    left[Left]
    right[Right]
    end[End]
    start -> left
    start -> right
    left -> end
    right -> end
    """


@pytest.fixture
def cyclic_input():
    """Three node directed cycle."""
    return """
    a[A]
    b[B]
    c[C]
    a -> b -> c -> a
    """


@pytest.fixture
def nested_input():
    """Nested containers plus a node outside them."""
    return """
    container "Outer" as outer {
        x[X]
        container "Inner" as inner {
            y[Y]
            z[Z]
        }
    }
    w[W]
    x -> y
    y -> z
    z -> w
    """


@pytest.fixture
def parser():
    """Default Parser instance."""
    return Parser()


@pytest.fixture
def measurer():
    """Deterministic text measurer (no font files needed)."""
    return HeuristicTextMeasurer()


@pytest.fixture
def builder(measurer):
    """IGRBuilder using the heuristic measurer."""
    return IGRBuilder(measurer)


@pytest.fixture
def build_graph(parser, builder):
    """Parse and build source text into an unpositioned graph."""

    def _build(text):
        return builder.build(parser.parse(text))

    return _build


@pytest.fixture
def context():
    """Default layout context."""
    return LayoutContext()


@pytest.fixture
def dagre_engine():
    """Dagre layout engine."""
    return DagreEngine()


@pytest.fixture
def force_engine():
    """Force layout engine."""
    return ForceEngine()


@pytest.fixture
def manager():
    """LayoutManager with caching disabled."""
    return LayoutManager(CompilerConfig(cache_enabled=False))


@pytest.fixture
def compiler(measurer):
    """EDSLCompiler using the heuristic measurer."""
    return EDSLCompiler(CompilerConfig(measure=measurer))
