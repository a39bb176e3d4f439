"""Pure predicates applied to candidate products for a saved search."""

from __future__ import annotations

from collections.abc import Iterable

from catalog_pipeline.models.product import Product
from catalog_pipeline.models.saved_search import SavedSearchFilters

# Each group is one logical colour; any member matches any other member.
COLOR_SYNONYMS: tuple[frozenset[str], ...] = (
    frozenset({"black", "noir"}),
    frozenset({"white", "blanc"}),
    frozenset({"gray", "grey", "gris"}),
    frozenset({"navy", "marine", "bleu-marine"}),
    frozenset({"blue", "bleu"}),
    frozenset({"red", "rouge"}),
    frozenset({"green", "vert"}),
    frozenset({"yellow", "jaune"}),
    frozenset({"pink", "rose"}),
    frozenset({"purple", "violet", "mauve"}),
    frozenset({"beige"}),
    frozenset({"brown", "marron", "brun"}),
)


def expand_color(color: str) -> set[str]:
    """Return every accepted spelling of ``color``, lowercased."""
    name = color.strip().lower()
    expanded = {name}
    for group in COLOR_SYNONYMS:
        if name in group:
            expanded |= group
    return expanded


def matches_query(product: Product, query: str) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    if needle in product.title.lower() or needle in product.description.lower():
        return True
    return any(needle in brand.lower() for brand in product.attributes().brands)


def matches_brands(product: Product, brands: Iterable[str]) -> bool:
    wanted = {brand.lower() for brand in brands}
    if not wanted:
        return True
    return any(brand.lower() in wanted for brand in product.attributes().brands)


def matches_price(product: Product, min_price: float | None, max_price: float | None) -> bool:
    if min_price is not None and product.price < min_price:
        return False
    if max_price is not None and product.price > max_price:
        return False
    return True


def matches_sizes(product: Product, sizes: Iterable[str]) -> bool:
    sizes = set(sizes)
    return not sizes or product.size in sizes


def matches_colors(product: Product, colors: Iterable[str]) -> bool:
    wanted: set[str] = set()
    for color in colors:
        wanted |= expand_color(color)
    if not wanted:
        return True
    return any(color.lower() in wanted for color in product.attributes().colors)


def matches_materials(product: Product, materials: Iterable[str]) -> bool:
    materials = set(materials)
    return not materials or bool(materials.intersection(product.attributes().materials))


def matches_condition(product: Product, condition: str | None) -> bool:
    return not condition or product.condition == condition


def matches_search(product: Product, query: str, filters: SavedSearchFilters) -> bool:
    """True when ``product`` satisfies the query and every filter."""
    return (
        product.is_indexable
        and matches_query(product, query)
        and matches_brands(product, filters.brands)
        and matches_price(product, filters.min_price, filters.max_price)
        and matches_sizes(product, filters.sizes)
        and matches_colors(product, filters.colors)
        and matches_materials(product, filters.materials)
        and matches_condition(product, filters.condition)
    )


def filter_candidates(
    products: Iterable[Product], query: str, filters: SavedSearchFilters
) -> list[Product]:
    return [product for product in products if matches_search(product, query, filters)]
