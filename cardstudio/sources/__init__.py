"""Product sources for scheduled generation."""

from __future__ import annotations

import logging
import os
import pathlib
from typing import Protocol

import yaml

from cardstudio.models import Product, SearchCriteria, SearchType
from cardstudio.utils.money import discount_percent

logger = logging.getLogger(__name__)

PRODUCTS_PATH = pathlib.Path(__file__).with_name("products.yml")


class ProductSource(Protocol):
    async def search_products(self, criteria: SearchCriteria) -> list[Product]: ...


def load_products(path: pathlib.Path | str | None = None) -> list[Product]:
    path = pathlib.Path(path or os.environ.get("PRODUCTS_PATH") or PRODUCTS_PATH)
    data = yaml.safe_load(path.read_text()) or []
    return [Product.model_validate(item) for item in data]


SORT_KEYS = {
    SearchType.BEST_SELLERS: lambda p: -p.sales,
    SearchType.BIGGEST_DISCOUNTS: lambda p: -(discount_percent(p) or 0),
    SearchType.BEST_RATED: lambda p: (-(p.rating or 0), -p.sales),
    SearchType.BEST_PRICE: lambda p: p.price,
}


class YamlProductSource:
    """Catalogue read from a YAML file, ranked per search type."""

    def __init__(self, products: list[Product] | None = None, *, path: pathlib.Path | str | None = None) -> None:
        self._products = products if products is not None else load_products(path)

    async def search_products(self, criteria: SearchCriteria) -> list[Product]:
        ranked = sorted(self._products, key=SORT_KEYS[criteria.search_type])
        logger.info("Found %s products for %s", len(ranked), criteria.search_type.value)
        return ranked[: criteria.limit]
