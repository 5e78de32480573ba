"""
Variant resolution for products with attribute-based variations, and the
seller-side generation of the variant list from attribute definitions.
"""
import itertools
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from schemas import Attribute, Product, Variant

logger = logging.getLogger(__name__)


def resolve_variant(product: Product, selected: Dict[str, str]) -> Optional[Variant]:
    """Return the variant whose combination matches ``selected`` on every attribute.

    Partial selections never match. With duplicate combinations the first in
    list order wins.
    """
    if not product.has_variations or not product.attributes:
        return None

    names = [attr.name for attr in product.attributes]
    if any(name not in selected for name in names):
        return None

    for variant in product.variants:
        if all(variant.combination.get(name) == selected[name] for name in names):
            return variant
    return None


def default_selection(product: Product) -> Tuple[Optional[Variant], Dict[str, str]]:
    if product.has_variations and product.variants:
        first = product.variants[0]
        return first, dict(first.combination)
    return None, {}


def select_option(
    product: Product, selected: Dict[str, str], attribute: str, option: str
) -> Tuple[Dict[str, str], Optional[Variant]]:
    updated = {**selected, attribute: option}
    return updated, resolve_variant(product, updated)


def _valid_attributes(attributes: Iterable[Attribute]) -> List[Attribute]:
    return [
        attr for attr in attributes
        if attr.name and attr.options and all(opt.name for opt in attr.options)
    ]


def generate_variants(attributes: Iterable[Attribute], previous: Iterable[Variant] = ()) -> List[Variant]:
    """Cartesian product of all attribute options, in attribute order.

    Variants from ``previous`` whose combination still exists keep their
    pricing and stock; the rest are dropped.
    """
    valid = _valid_attributes(attributes)
    if not valid:
        return []

    kept = list(previous)
    variants = []
    for options in itertools.product(*(attr.options for attr in valid)):
        combination = {attr.name: opt.name for attr, opt in zip(valid, options)}
        existing = next((v for v in kept if v.combination == combination), None)
        if existing is not None:
            variants.append(existing.model_copy(deep=True))
        else:
            variants.append(Variant(combination=combination))

    dropped = len(kept) - sum(1 for v in kept if any(v.combination == n.combination for n in variants))
    if dropped:
        logger.info(f"Regenerated variants: {len(variants)} combinations, {dropped} stale variants discarded")
    return variants
