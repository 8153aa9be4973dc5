"""Unit tests for text measurement."""

import pytest

from edsl.measure import (
    DEFAULT_FONT_SIZE,
    LINE_HEIGHT_FACTOR,
    HeuristicTextMeasurer,
    PillowTextMeasurer,
)


class TestHeuristicTextMeasurer:
    """Tests for the character table measurer."""

    def test_empty_text(self, measurer):
        """Empty labels have no size."""
        assert measurer.measure("", 20) == (0.0, 0.0)

    def test_width_scales_with_font_size(self, measurer):
        """Doubling the font size doubles both dimensions."""
        small = measurer.measure("Hello", 10)
        large = measurer.measure("Hello", 20)
        assert large[0] == pytest.approx(small[0] * 2)
        assert large[1] == pytest.approx(small[1] * 2)

    def test_narrow_and_wide_characters(self, measurer):
        """Narrow glyphs measure less than wide ones."""
        narrow, _ = measurer.measure("iiii", 20)
        wide, _ = measurer.measure("WWWW", 20)
        assert narrow < wide

    def test_known_width(self):
        """One ordinary character is char_width times the font size."""
        width, height = HeuristicTextMeasurer(char_width=0.5).measure("a", 20)
        assert width == pytest.approx(10.0)
        assert height == pytest.approx(20 * LINE_HEIGHT_FACTOR)

    def test_multiline_uses_widest_line(self, measurer):
        """Width comes from the widest line; height from the line count."""
        width, height = measurer.measure("ab\nabcdef\nabc", 20)
        assert width == pytest.approx(measurer.measure("abcdef", 20)[0])
        assert height == pytest.approx(3 * 20 * LINE_HEIGHT_FACTOR)

    def test_callable(self, measurer):
        """Measurers can be used as plain functions."""
        assert measurer("abc", 12) == measurer.measure("abc", 12)

    def test_invalid_char_width(self):
        """char_width must be positive."""
        with pytest.raises(ValueError):
            HeuristicTextMeasurer(char_width=0)


class TestPillowTextMeasurer:
    """Tests for the Pillow measurer (falls back to Pillow's bundled font)."""

    def test_measure_returns_positive_size(self):
        """Any available font gives a positive width."""
        width, height = PillowTextMeasurer().measure("Hello", DEFAULT_FONT_SIZE)
        assert width > 0
        assert height == pytest.approx(DEFAULT_FONT_SIZE * LINE_HEIGHT_FACTOR)

    def test_longer_text_is_wider(self):
        """Width grows with the text."""
        measurer = PillowTextMeasurer()
        assert measurer.measure("Hello world", 20)[0] > measurer.measure("Hi", 20)[0]

    def test_fonts_cached_per_size(self):
        """Each size is loaded once."""
        measurer = PillowTextMeasurer()
        measurer.measure("a", 20)
        measurer.measure("b", 20)
        measurer.measure("c", 14)
        assert sorted(measurer._fonts) == [14, 20]

    def test_unknown_font_name_falls_back(self):
        """A missing font file is not an error."""
        measurer = PillowTextMeasurer(font_name="/nonexistent/font.ttf")
        assert measurer.measure("abc", 16)[0] > 0
