"""Description text for a card: custom, generated, or templated fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from cardstudio.describe.gemini import GenerationParams, TextService
from cardstudio.errors import TextServiceError
from cardstudio.models import CardGenerationConfig, Product
from cardstudio.utils.money import discount_percent, format_currency, original_price

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
ENV = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=StrictUndefined,
)

NAME_LIMIT = 60
HASHTAGS = "#offer #deal #shopping"


@dataclass(slots=True, frozen=True)
class Urgency:
    threshold: int
    emoji: str
    phrase: str


# Highest threshold first.
URGENCY_LEVELS = (
    Urgency(10_000, "🔥", "BEST SELLER! It's flying off the shelves!"),
    Urgency(1_000, "⚡", "HOT DEAL! Grab yours before it's gone!"),
    Urgency(0, "🛍️", "SUPER OFFER!"),
)
CALM = Urgency(0, "🛍️", "Check out this offer")


@dataclass(slots=True, frozen=True)
class DescriptionOptions:
    use_ai: bool = True
    custom_description: str = ""
    include_emojis: bool = True
    include_hashtags: bool = True
    highlight_discount: bool = True
    highlight_urgency: bool = True
    tone: tuple[str, ...] = ("youthful", "persuasive")
    max_length: int = 300

    @classmethod
    def from_config(cls, config: CardGenerationConfig) -> "DescriptionOptions":
        return cls(
            use_ai=config.use_ai,
            custom_description=config.custom_description,
            include_emojis=config.include_emojis,
            include_hashtags=config.include_hashtags,
            highlight_discount=config.highlight_discount,
            highlight_urgency=config.highlight_urgency,
        )


def urgency_for(sales: int, enabled: bool = True) -> Urgency:
    if not enabled:
        return CALM
    for level in URGENCY_LEVELS:
        if sales >= level.threshold:
            return level
    return URGENCY_LEVELS[-1]


def star_glyphs(rating: float | None) -> str:
    if not rating:
        return ""
    full = min(5, int(round(rating)))
    return "★" * full + "☆" * (5 - full)


def truncate(text: str, limit: int = NAME_LIMIT) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def build_prompt(product: Product, options: DescriptionOptions) -> str:
    return ENV.get_template("prompt.txt.j2").render(
        product=product,
        options=options,
        price=format_currency(product.price),
        discount=discount_percent(product),
        tone=", ".join(options.tone),
    ).strip()


def fallback_description(product: Product, options: DescriptionOptions | None = None) -> str:
    """Templated description built only from product fields."""
    options = options or DescriptionOptions()
    before = original_price(product)
    text = ENV.get_template("fallback.txt.j2").render(
        product=product,
        options=options,
        urgency=urgency_for(product.sales, options.highlight_urgency),
        name=truncate(product.name),
        price=format_currency(product.price),
        original=format_currency(before) if before is not None else None,
        discount=discount_percent(product),
        stars=star_glyphs(product.rating),
        rating=f"{product.rating:.1f}" if product.rating else "",
        sales=f"{product.sales:,}" if product.sales else "",
        hashtags=HASHTAGS,
    )
    return text.strip()


class DescriptionProvider:
    def __init__(self, service: TextService | None = None, *, params: GenerationParams | None = None) -> None:
        self.service = service
        self.params = params or GenerationParams()

    async def provide_description(self, product: Product, options: DescriptionOptions) -> str:
        if options.custom_description.strip():
            return options.custom_description
        if options.use_ai and self.service is not None:
            prompt = build_prompt(product, options)
            params = replace(self.params, max_tokens=options.max_length)
            try:
                return await self.service.generate(prompt, params)
            except TextServiceError as exc:
                logger.warning("Text service unavailable for %s: %s %s", product.id, exc, exc.errors)
            except TimeoutError:
                logger.warning("Rate limit wait exceeded its deadline for %s", product.id)
        return fallback_description(product, options)
