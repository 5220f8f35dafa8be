"""Price formatting and discount arithmetic."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from cardstudio.models import Product

CURRENCY_PREFIX = os.environ.get("CURRENCY_PREFIX", "R$")
CENTS = Decimal("0.01")


def format_currency(value: Decimal | float | int) -> str:
    amount = Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
    return f"{CURRENCY_PREFIX} {amount}"


def original_price(product: Product) -> Decimal | None:
    """Price before discount, derived from the discount rate when not given.

    A rate of 100% or more has no meaningful original price and yields None.
    """
    if product.original_price is not None and product.original_price > product.price:
        return product.original_price.quantize(CENTS, rounding=ROUND_HALF_UP)
    rate = product.discount_rate
    if rate is None or rate <= 0 or rate >= 100:
        return None
    factor = 1 - Decimal(str(rate)) / 100
    return (product.price / factor).quantize(CENTS, rounding=ROUND_HALF_UP)


def discount_percent(product: Product) -> int | None:
    if product.discount_rate:
        return int(round(product.discount_rate))
    if product.original_price and product.original_price > product.price:
        return int(round((1 - product.price / product.original_price) * 100))
    return None


@dataclass(slots=True, frozen=True)
class PriceBlock:
    price: str
    original: str | None
    discount: int | None


def price_block(product: Product) -> PriceBlock:
    before = original_price(product)
    return PriceBlock(
        price=format_currency(product.price),
        original=format_currency(before) if before is not None else None,
        discount=discount_percent(product),
    )
