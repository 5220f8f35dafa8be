"""Drawing primitives shared by every card template."""

from __future__ import annotations

import functools
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

from PIL import ImageDraw, ImageFont

logger = logging.getLogger(__name__)

FONT_PATH = os.environ.get("CARD_FONT_PATH", "DejaVuSans.ttf")
BOLD_FONT_PATH = os.environ.get("CARD_FONT_BOLD_PATH", "DejaVuSans-Bold.ttf")
ELLIPSIS = "…"

Color = Union[str, tuple[int, int, int], tuple[int, int, int, int]]
Font = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]


@functools.lru_cache(maxsize=64)
def load_font(size: int, bold: bool = False) -> Font:
    path = BOLD_FONT_PATH if bold else FONT_PATH
    try:
        return ImageFont.truetype(path, size)
    except OSError:
        logger.warning("Font %s unavailable; using Pillow's default font", path)
        return ImageFont.load_default(size=size)


@dataclass(slots=True)
class Surface:
    """An ImageDraw plus the active font and fill colour."""

    draw: ImageDraw.ImageDraw
    font: Font | None = None
    fill: Color = (255, 255, 255)

    def measure(self, text: str) -> float:
        return self.draw.textlength(text, font=self.font)

    def text(self, x: float, y: float, text: str, fill: Color | None = None) -> None:
        self.draw.text((x, y), text, font=self.font, fill=fill or self.fill)


def draw_rounded_rect(
    surface: Surface,
    x: float,
    y: float,
    w: float,
    h: float,
    radius: float,
    fill: Color | None = None,
    stroke: Color | None = None,
    stroke_width: int = 2,
) -> None:
    """Rectangle with quarter-circle corners; radius 0 draws a plain rectangle."""
    if w <= 0 or h <= 0:
        return
    radius = int(max(0, min(radius, w / 2, h / 2)))
    box = (x, y, x + w - 1, y + h - 1)
    if radius == 0:
        surface.draw.rectangle(box, fill=fill, outline=stroke, width=stroke_width)
    else:
        surface.draw.rounded_rectangle(box, radius=radius, fill=fill, outline=stroke, width=stroke_width)


def layout_lines(
    text: str,
    measure: Callable[[str], float],
    max_width: float,
    max_lines: int = 0,
) -> list[str]:
    """Greedily pack whitespace-delimited words into lines no wider than ``max_width``.

    A word wider than ``max_width`` sits alone on its line. When ``max_lines``
    is positive and words remain after the last allowed line, that line ends
    with an ellipsis.
    """
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and measure(candidate) > max_width:
            lines.append(current)
            if max_lines and len(lines) == max_lines:
                lines[-1] = with_ellipsis(lines[-1], measure, max_width)
                return lines
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def with_ellipsis(line: str, measure: Callable[[str], float], max_width: float) -> str:
    """Suffix ``line`` with an ellipsis, dropping trailing words until it fits."""
    words = line.split(" ")
    while len(words) > 1 and measure(" ".join(words) + ELLIPSIS) > max_width:
        words.pop()
    return " ".join(words) + ELLIPSIS


def wrap_text(
    surface: Surface,
    text: str,
    x: float,
    y: float,
    max_width: float,
    line_height: float,
    max_lines: int = 0,
) -> float:
    """Draw wrapped text and return the y coordinate below the last line."""
    for line in layout_lines(text, surface.measure, max_width, max_lines):
        surface.text(x, y, line)
        y += line_height
    return y
