"""Raster card composition.

A card is laid out top to bottom on a single rounded panel: product image,
title, price block, rating/sales row, shipping badge and a translucent
description panel, with a watermark in the bottom-right corner. Geometry is
expressed at the reference 1080x1920 canvas and scaled to the requested size.
"""

from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass

from PIL import Image, ImageDraw, ImageFilter

from cardstudio.models import OutputFormat, Product, StyleOptions, Template
from cardstudio.render.layout import (
    ELLIPSIS,
    Surface,
    draw_rounded_rect,
    layout_lines,
    load_font,
    with_ellipsis,
    wrap_text,
)
from cardstudio.render.palettes import Palette, resolve_palette
from cardstudio.utils.money import price_block

logger = logging.getLogger(__name__)

WATERMARK = os.environ.get("CARD_WATERMARK", "CardStudio")
JPEG_QUALITY = 90
REFERENCE_WIDTH = 1080
REFERENCE_HEIGHT = 1920
TITLE_MAX_LINES = 2
DESCRIPTION_MAX_LINES = 8
ELEVATED_TEMPLATES = frozenset({Template.MODERN, Template.ELEGANT, Template.BOLD})


@dataclass(slots=True)
class _Frame:
    x: float
    y: float
    w: float
    h: float
    pad: float


class CardRenderer:
    def render(
        self,
        product: Product,
        description: str,
        style: StyleOptions,
        image: Image.Image,
        fmt: OutputFormat = OutputFormat.PNG,
    ) -> bytes:
        canvas = self.compose(product, description, style, image)
        return encode(canvas, fmt)

    def compose(self, product: Product, description: str, style: StyleOptions, image: Image.Image) -> Image.Image:
        palette = resolve_palette(style.template, style.dark_mode, style.accent_color)
        unit = min(style.width / REFERENCE_WIDTH, style.height / REFERENCE_HEIGHT)
        canvas = _gradient(style.width, style.height, palette)
        margin = 48 * unit
        frame = _Frame(
            x=margin,
            y=margin,
            w=style.width - 2 * margin,
            h=style.height - 2 * margin,
            pad=40 * unit,
        )
        template = Template(style.template)
        radius = 8 * unit if template is Template.MINIMAL else 40 * unit

        if template in ELEVATED_TEMPLATES:
            _drop_shadow(canvas, frame, radius, unit)
        draw = ImageDraw.Draw(canvas)
        draw_rounded_rect(Surface(draw), frame.x, frame.y, frame.w, frame.h, radius, fill=palette.rgba("panel"))

        y = self._draw_image_region(canvas, draw, frame, image, palette, unit)
        y = self._draw_title(draw, product, frame, y, palette, unit)
        y = self._draw_prices(draw, product, style, frame, y, palette, unit)
        y = self._draw_stats(draw, product, style, frame, y, palette, unit)
        y = self._draw_shipping(draw, product, style, frame, y, palette, unit)
        self._draw_description(canvas, draw, description, frame, y, palette, unit)
        self._draw_watermark(draw, frame, palette, unit)
        return canvas

    def _draw_image_region(self, canvas, draw, frame: _Frame, image, palette: Palette, unit: float) -> float:
        region_h = frame.h * 0.5
        box_x = frame.x + frame.pad
        box_y = frame.y + frame.pad
        box_w = frame.w - 2 * frame.pad
        box_h = region_h - frame.pad
        draw_rounded_rect(Surface(draw), box_x, box_y, box_w, box_h, 24 * unit, fill=palette.rgba("placeholder"))
        scale = min(box_w / image.width, box_h / image.height)
        size = (max(1, int(image.width * scale)), max(1, int(image.height * scale)))
        fitted = image.convert("RGBA").resize(size, Image.LANCZOS)
        dest = (int(box_x + (box_w - size[0]) / 2), int(box_y + (box_h - size[1]) / 2))
        canvas.alpha_composite(fitted, dest=dest)
        return frame.y + region_h + frame.pad * 0.75

    def _draw_title(self, draw, product: Product, frame: _Frame, y: float, palette: Palette, unit: float) -> float:
        surface = Surface(draw, _font(52, unit, bold=True), palette.rgba("text"))
        return wrap_text(
            surface,
            product.name,
            frame.x + frame.pad,
            y,
            frame.w - 2 * frame.pad,
            64 * unit,
            TITLE_MAX_LINES,
        ) + 16 * unit

    def _draw_prices(
        self, draw, product: Product, style: StyleOptions, frame: _Frame, y: float, palette: Palette, unit: float
    ) -> float:
        block = price_block(product)
        x = frame.x + frame.pad
        price = Surface(draw, _font(80, unit, bold=True), palette.rgba("accent"))
        price.text(x, y, block.price)
        x += price.measure(block.price) + 28 * unit

        if block.original:
            old = Surface(draw, _font(40, unit), palette.rgba("text_secondary"))
            old_y = y + 34 * unit
            old.text(x, old_y, block.original)
            width = old.measure(block.original)
            left, top, right, bottom = draw.textbbox((x, old_y), block.original, font=old.font)
            middle = (top + bottom) / 2
            draw.line((x, middle, x + width, middle), fill=old.fill, width=max(1, int(3 * unit)))
            x += width + 28 * unit

        if style.show_discount and block.discount:
            badge = Surface(draw, _font(36, unit, bold=True), (255, 255, 255, 255))
            label = f"-{block.discount}%"
            badge_w = badge.measure(label) + 36 * unit
            badge_y = y + 18 * unit
            draw_rounded_rect(badge, x, badge_y, badge_w, 60 * unit, 30 * unit, fill=palette.rgba("badge_bg"))
            badge.text(x + 18 * unit, badge_y + 8 * unit, label)
        return y + 110 * unit

    def _draw_stats(
        self, draw, product: Product, style: StyleOptions, frame: _Frame, y: float, palette: Palette, unit: float
    ) -> float:
        font = _font(38, unit)
        x = frame.x + frame.pad
        drawn = False
        if style.show_rating and product.rating is not None:
            star = Surface(draw, font, palette.rgba("accent"))
            label = f"★ {product.rating:.1f}"
            star.text(x, y, label)
            x += star.measure(label) + 40 * unit
            drawn = True
        if style.show_sales and product.sales:
            sales = Surface(draw, font, palette.rgba("text_secondary"))
            sales.text(x, y, f"{product.sales:,} sold")
            drawn = True
        return y + 60 * unit if drawn else y

    def _draw_shipping(
        self, draw, product: Product, style: StyleOptions, frame: _Frame, y: float, palette: Palette, unit: float
    ) -> float:
        if not style.show_shipping:
            return y
        x = frame.x + frame.pad
        if product.free_shipping:
            badge = Surface(draw, _font(32, unit, bold=True), (17, 17, 17, 255))
            label = "FREE SHIPPING"
            draw_rounded_rect(
                badge, x, y, badge.measure(label) + 40 * unit, 56 * unit, 12 * unit, fill=palette.rgba("free_badge_bg")
            )
            badge.text(x + 20 * unit, y + 8 * unit, label)
            return y + 76 * unit
        if product.shipping_info:
            info = Surface(draw, _font(34, unit), palette.rgba("text_secondary"))
            info.text(x, y, product.shipping_info)
            return y + 56 * unit
        return y

    def _draw_description(
        self, canvas, draw, description: str, frame: _Frame, y: float, palette: Palette, unit: float
    ) -> None:
        top = y + 16 * unit
        bottom = frame.y + frame.h - 90 * unit
        if bottom - top < 80 * unit or not description.strip():
            return
        overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        draw_rounded_rect(
            Surface(ImageDraw.Draw(overlay)),
            frame.x + frame.pad,
            top,
            frame.w - 2 * frame.pad,
            bottom - top,
            24 * unit,
            fill=palette.description_bg,
        )
        canvas.alpha_composite(overlay)

        surface = Surface(draw, _font(36, unit), palette.rgba("text"))
        inner = 28 * unit
        line_height = 50 * unit
        budget = min(DESCRIPTION_MAX_LINES, int((bottom - top - 2 * inner) // line_height))
        lines = description_lines(description, surface.measure, frame.w - 2 * frame.pad - 2 * inner, budget)
        line_y = top + inner
        for line in lines:
            surface.text(frame.x + frame.pad + inner, line_y, line)
            line_y += line_height

    def _draw_watermark(self, draw, frame: _Frame, palette: Palette, unit: float) -> None:
        if not WATERMARK:
            return
        mark = Surface(draw, _font(28, unit), palette.rgba("text_secondary", 160))
        x = frame.x + frame.w - frame.pad - mark.measure(WATERMARK)
        mark.text(x, frame.y + frame.h - 60 * unit, WATERMARK)


def description_lines(description: str, measure, max_width: float, max_lines: int) -> list[str]:
    """Wrap each paragraph of ``description`` within a shared line budget."""
    lines: list[str] = []
    paragraphs = [p for p in description.splitlines() if p.strip()]
    for index, paragraph in enumerate(paragraphs):
        remaining = max_lines - len(lines)
        if remaining <= 0:
            break
        lines.extend(layout_lines(paragraph, measure, max_width, remaining))
        more = index < len(paragraphs) - 1
        if len(lines) >= max_lines and more and not lines[-1].endswith(ELLIPSIS):
            lines[-1] = with_ellipsis(lines[-1], measure, max_width)
    return lines[:max_lines] if max_lines > 0 else lines


def encode(canvas: Image.Image, fmt: OutputFormat) -> bytes:
    buffer = io.BytesIO()
    rgb = canvas.convert("RGB")
    if OutputFormat(fmt) is OutputFormat.JPEG:
        rgb.save(buffer, format="JPEG", quality=JPEG_QUALITY)
    else:
        rgb.save(buffer, format="PNG")
    return buffer.getvalue()


def _font(size: int, unit: float, bold: bool = False):
    return load_font(max(1, int(size * unit)), bold)


def _gradient(width: int, height: int, palette: Palette) -> Image.Image:
    mask = Image.linear_gradient("L").resize((width, height))
    top = Image.new("RGBA", (width, height), palette.rgba("background"))
    bottom = Image.new("RGBA", (width, height), palette.rgba("background_end"))
    return Image.composite(bottom, top, mask)


def _drop_shadow(canvas: Image.Image, frame: _Frame, radius: float, unit: float) -> None:
    shadow = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    offset = 16 * unit
    draw_rounded_rect(
        Surface(ImageDraw.Draw(shadow)),
        frame.x,
        frame.y + offset,
        frame.w,
        frame.h,
        radius,
        fill=(0, 0, 0, 110),
    )
    canvas.alpha_composite(shadow.filter(ImageFilter.GaussianBlur(max(1, int(24 * unit)))))
