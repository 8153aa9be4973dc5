"""Unit tests for the positioning module."""

import pytest

from edsl.igr import BoundingBox
from edsl.positioning import (
    SELF_LOOP_HEIGHT,
    PositionCalculator,
    clip_to_box,
    label_band,
)


@pytest.fixture
def position_calculator():
    """Create a PositionCalculator with default settings."""
    return PositionCalculator(padding=20.0)


@pytest.fixture
def placed_nested(build_graph, nested_input):
    """Nested graph with hand-placed nodes."""
    igr = build_graph(nested_input)
    places = {
        "x": (0.0, 0.0),
        "y": (0.0, 200.0),
        "z": (200.0, 200.0),
        "w": (600.0, 0.0),
    }
    for nid, (x, y) in places.items():
        igr.nodes[nid].x, igr.nodes[nid].y = x, y
    return igr


class TestHelpers:
    """Tests for module level geometry helpers."""

    def test_clip_horizontal(self):
        """A target to the right leaves through the right side."""
        assert clip_to_box((0, 0), (300, 0), 100, 50) == pytest.approx((50, 0))

    def test_clip_vertical(self):
        """A target below leaves through the bottom side."""
        assert clip_to_box((0, 0), (0, -300), 100, 50) == pytest.approx((0, -25))

    def test_clip_diagonal(self):
        """Diagonal segments leave through the nearer side."""
        x, y = clip_to_box((0, 0), (100, 100), 100, 50)
        assert (x, y) == pytest.approx((25, 25))

    def test_clip_inside_target(self):
        """Targets inside the box are returned as they are."""
        assert clip_to_box((0, 0), (10, 5), 100, 50) == (10, 5)

    def test_clip_same_point(self):
        """Coincident points give the centre."""
        assert clip_to_box((5, 5), (5, 5), 100, 50) == (5, 5)

    def test_label_band(self):
        """Unlabelled containers get no band."""
        assert label_band(0.0, 20.0) == 0.0
        assert label_band(26.0, 20.0) == 36.0


class TestContainerBounds:
    """Tests for compute_container_bounds()."""

    def test_bounds_enclose_contents(self, position_calculator, placed_nested):
        """Each box holds its nodes plus padding; parents hold children."""
        position_calculator.compute_container_bounds(placed_nested)
        inner = placed_nested.containers["inner"].bounds
        outer = placed_nested.containers["outer"].bounds

        label = label_band(placed_nested.containers["inner"].label_height, 20.0)
        # y and z boxes span x -50..250 and y 165..235
        assert inner == BoundingBox(-70.0, 145.0 - label, 340.0, 110.0 + label)
        assert outer.x <= inner.x and outer.right >= inner.right
        assert outer.bottom == pytest.approx(inner.bottom + 20.0)

    def test_selected_containers_only(self, position_calculator, placed_nested):
        """Only the requested containers are updated."""
        position_calculator.compute_container_bounds(placed_nested, ["inner"])
        assert placed_nested.containers["inner"].bounds is not None
        assert placed_nested.containers["outer"].bounds is None

    def test_wide_label_widens_box(self, position_calculator, build_graph):
        """A label wider than the contents sets the width."""
        igr = build_graph('container "An unusually long container title" as c { a }')
        igr.nodes["a"].x, igr.nodes["a"].y = 0.0, 0.0
        position_calculator.compute_container_bounds(igr)
        container = igr.containers["c"]
        assert container.bounds.width == pytest.approx(container.label_width + 40.0)
        assert container.bounds.center[0] == pytest.approx(0.0)

    def test_negative_padding(self):
        """Padding cannot be negative."""
        with pytest.raises(ValueError):
            PositionCalculator(padding=-1)


class TestRouting:
    """Tests for straight routing."""

    def test_route_edges(self, position_calculator, placed_nested):
        """Edges run between the facing box sides."""
        position_calculator.route_edges(placed_nested)
        start, end = placed_nested.edges["x->y"].points
        assert start == pytest.approx((0.0, 35.0))
        assert end == pytest.approx((0.0, 165.0))
        assert placed_nested.edges["y->z"].points == [(50.0, 200.0), (150.0, 200.0)]

    def test_route_selected_edges(self, position_calculator, placed_nested):
        """Only the requested edges are routed."""
        position_calculator.route_edges(placed_nested, ["z->w"])
        assert placed_nested.edges["z->w"].points is not None
        assert placed_nested.edges["x->y"].points is None

    def test_self_loop(self, position_calculator, build_graph):
        """Self-loops leave and re-enter the top side."""
        igr = build_graph("a\na -> a")
        igr.nodes["a"].x, igr.nodes["a"].y = 100.0, 100.0
        position_calculator.route_edges(igr)
        points = igr.edges["a->a"].points
        assert points[0] == (125.0, 65.0)
        assert points[1] == (125.0, 65.0 - SELF_LOOP_HEIGHT)
        assert points[-1] == (75.0, 65.0)


class TestTranslation:
    """Tests for translate() and normalize_origin()."""

    def test_translate_everything(self, position_calculator, placed_nested):
        """All positioned entities move by the offset."""
        position_calculator.compute_container_bounds(placed_nested)
        position_calculator.route_edges(placed_nested)
        before = placed_nested.containers["outer"].bounds.x
        PositionCalculator.translate(placed_nested, 10.0, -5.0)
        assert (placed_nested.nodes["w"].x, placed_nested.nodes["w"].y) == (610.0, -5.0)
        assert placed_nested.containers["outer"].bounds.x == before + 10.0
        assert placed_nested.edges["x->y"].points[0] == pytest.approx((10.0, 30.0))

    def test_translate_subset(self, placed_nested):
        """Only the listed entities move."""
        PositionCalculator.translate(placed_nested, 5.0, 5.0, ["x"], [], [])
        assert placed_nested.nodes["x"].x == 5.0
        assert placed_nested.nodes["y"].x == 0.0

    def test_normalize_origin(self, placed_nested):
        """The top-left corner lands on the margin."""
        calculator = PositionCalculator(margin=10.0)
        dx, dy = calculator.normalize_origin(placed_nested)
        assert (dx, dy) == (60.0, 45.0)
        box = placed_nested.bounding_box()
        assert (box.x, box.y) == (10.0, 10.0)

    def test_normalize_empty_graph(self, build_graph):
        """Nothing to move in an empty graph."""
        assert PositionCalculator().normalize_origin(build_graph("")) == (0.0, 0.0)
