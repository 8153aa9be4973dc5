"""
Text measurement used to size node and container boxes.

The builder only needs ``measure(text, font_size) -> (width, height)``. Two
implementations ship with the package:

- PillowTextMeasurer: real font metrics from Pillow's ImageFont, trying a
  list of common monospace fonts before falling back to Pillow's default.
- HeuristicTextMeasurer: a per-character width table, no font files
  involved. Results are identical on every machine, which makes it the
  measurer of choice for tests and reproducible output.

Any callable with the same signature can be passed instead.
"""

import logging
import threading
from typing import Dict, List, Optional, Protocol, Tuple

from PIL import ImageFont

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 20.0
LINE_HEIGHT_FACTOR = 1.3


class TextMeasurer(Protocol):
    """Anything that can report the size of a label."""

    def measure(self, text: str, font_size: float) -> Tuple[float, float]: ...


class HeuristicTextMeasurer:
    """
    Estimate label size from a character width table.

    Each character contributes a relative width (narrow glyphs such as ``i``
    count less than wide ones such as ``W``); the sum is scaled by the font
    size and ``char_width``. Multi-line labels take the widest line.
    """

    NARROW = set("il.!|'`Ijft")
    WIDE = set("wmWM@%#")
    DIGITS_AND_BRACKETS = set("0123456789()[]{}-_=+")

    def __init__(self, char_width: float = 0.6):
        if char_width <= 0:
            raise ValueError(f"char_width must be positive, got {char_width}")
        self.char_width = char_width

    def char_factor(self, char: str) -> float:
        if char in self.NARROW:
            return 0.4
        if char in self.WIDE:
            return 1.4
        if "A" <= char <= "Z":
            return 1.15
        if char == " ":
            return 0.35
        if char in self.DIGITS_AND_BRACKETS:
            return 0.9
        return 1.0

    def measure(self, text: str, font_size: float) -> Tuple[float, float]:
        lines = text.split("\n") if text else []
        if not lines:
            return 0.0, 0.0
        widest = max(sum(self.char_factor(c) for c in line) for line in lines)
        width = widest * font_size * self.char_width
        height = len(lines) * font_size * LINE_HEIGHT_FACTOR
        return width, height

    def __call__(self, text: str, font_size: float) -> Tuple[float, float]:
        return self.measure(text, font_size)


class PillowTextMeasurer:
    """
    Measure labels with Pillow font metrics.

    Fonts are loaded once per size and cached; the cache is guarded by a lock
    so one measurer can be shared between layout worker threads.
    """

    FALLBACK_FONTS: List[str] = [
        # Linux
        "DejaVuSansMono",
        "DejaVu Sans Mono",
        "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
        # macOS
        "Monaco",
        "Menlo",
        "/System/Library/Fonts/Monaco.ttf",
        "/System/Library/Fonts/Menlo.ttc",
        # Windows
        "Consolas",
        "Cascadia Code",
        "Courier New",
        "C:/Windows/Fonts/consola.ttf",
        "C:/Windows/Fonts/cour.ttf",
    ]

    def __init__(self, font_name: Optional[str] = None):
        self.font_name = font_name
        self._fonts: Dict[int, ImageFont.ImageFont] = {}
        self._lock = threading.Lock()

    def _load_font(self, font_size: int):
        """
        Load a font for the given size.

        Tries the following in order:
        1. The configured font name, if any
        2. Common system monospace fonts
        3. Pillow's default font

        Args:
            font_size: Font size in points

        Returns:
            A PIL ImageFont object
        """
        fonts_to_try = []
        if self.font_name:
            fonts_to_try.append(self.font_name)
        fonts_to_try.extend(self.FALLBACK_FONTS)

        for font in fonts_to_try:
            try:
                loaded = ImageFont.truetype(font, font_size)
                logger.debug("Using font %r at size %d", font, font_size)
                return loaded
            except OSError:
                continue

        logger.debug("No TrueType font found, using Pillow's default font")
        try:
            return ImageFont.load_default(size=font_size)
        except TypeError:
            # Older Pillow versions take no size argument
            return ImageFont.load_default()

    def _font(self, font_size: float):
        size = max(1, int(round(font_size)))
        with self._lock:
            font = self._fonts.get(size)
            if font is None:
                font = self._load_font(size)
                self._fonts[size] = font
            return font

    def measure(self, text: str, font_size: float) -> Tuple[float, float]:
        lines = text.split("\n") if text else []
        if not lines:
            return 0.0, 0.0
        font = self._font(font_size)
        width = max(float(font.getlength(line)) for line in lines)
        height = len(lines) * font_size * LINE_HEIGHT_FACTOR
        return width, height

    def __call__(self, text: str, font_size: float) -> Tuple[float, float]:
        return self.measure(text, font_size)
