"""Colour palettes per card template."""

from __future__ import annotations

from dataclasses import dataclass, replace

from PIL import ImageColor

from cardstudio.models import Template

RGBA = tuple[int, int, int, int]


@dataclass(slots=True, frozen=True)
class Palette:
    background: str
    background_end: str
    panel: str
    placeholder: str
    primary: str
    accent: str
    text: str
    text_secondary: str
    description_bg: RGBA
    badge_bg: str
    free_badge_bg: str

    def rgba(self, name: str, alpha: int = 255) -> RGBA:
        red, green, blue = ImageColor.getrgb(getattr(self, name))[:3]
        return red, green, blue, alpha


DARK_PALETTES: dict[Template, Palette] = {
    Template.MODERN: Palette(
        background="#0A0A0F",
        background_end="#1A1A25",
        panel="#16161F",
        placeholder="#22222E",
        primary="#FF4D4F",
        accent="#FFD700",
        text="#FFFFFF",
        text_secondary="#CCCCCC",
        description_bg=(255, 255, 255, 20),
        badge_bg="#FF4D4F",
        free_badge_bg="#00C853",
    ),
    Template.MINIMAL: Palette(
        background="#111111",
        background_end="#111111",
        panel="#1B1B1B",
        placeholder="#262626",
        primary="#FFFFFF",
        accent="#4D94FF",
        text="#FFFFFF",
        text_secondary="#A0A0A0",
        description_bg=(255, 255, 255, 14),
        badge_bg="#FF3B30",
        free_badge_bg="#34C759",
    ),
    Template.BOLD: Palette(
        background="#0D0D2B",
        background_end="#1A1A45",
        panel="#15153A",
        placeholder="#20204A",
        primary="#FF6B6B",
        accent="#4FFFB0",
        text="#FFFFFF",
        text_secondary="#A0A0A0",
        description_bg=(255, 255, 255, 26),
        badge_bg="#FF6B6B",
        free_badge_bg="#4FFFB0",
    ),
    Template.ELEGANT: Palette(
        background="#1C1C1E",
        background_end="#2C2C2E",
        panel="#242426",
        placeholder="#303033",
        primary="#E5B80B",
        accent="#D4AF37",
        text="#FFFFFF",
        text_secondary="#CCCCCC",
        description_bg=(255, 255, 255, 18),
        badge_bg="#E5B80B",
        free_badge_bg="#00BFA5",
    ),
    Template.VIBRANT: Palette(
        background="#6200EA",
        background_end="#3700B3",
        panel="#4A00B8",
        placeholder="#5A14C8",
        primary="#FF4081",
        accent="#00E5FF",
        text="#FFFFFF",
        text_secondary="#E0E0E0",
        description_bg=(255, 255, 255, 31),
        badge_bg="#FF4081",
        free_badge_bg="#00E5FF",
    ),
}

# Light schemes keep each template's brand colours and swap the surfaces.
_LIGHT_SURFACES = dict(
    background="#F5F5F7",
    background_end="#FFFFFF",
    panel="#FFFFFF",
    placeholder="#ECECF0",
    text="#111111",
    text_secondary="#555555",
    description_bg=(0, 0, 0, 10),
)

LIGHT_PALETTES: dict[Template, Palette] = {
    template: replace(palette, **_LIGHT_SURFACES) for template, palette in DARK_PALETTES.items()
}
LIGHT_PALETTES[Template.MINIMAL] = replace(
    LIGHT_PALETTES[Template.MINIMAL], primary="#000000", accent="#0066FF"
)


def resolve_palette(template: Template, dark_mode: bool = True, accent_color: str | None = None) -> Palette:
    palette = (DARK_PALETTES if dark_mode else LIGHT_PALETTES)[Template(template)]
    if accent_color:
        palette = replace(palette, accent=accent_color)
    return palette
