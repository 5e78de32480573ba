"""
Seller catalog editing: discount derivation at edit time and the checks a
product must pass before it is saved.
"""
from typing import List, Union

import pricing
from errors import InputError
from schemas import Product, Variant

Priceable = Union[Product, Variant]


def apply_discount_percent(entity: Priceable, percent) -> Priceable:
    """Copy of ``entity`` with ``discount_percent`` clamped and ``discounted_price`` derived."""
    pct = pricing.clamp_percent(percent)
    return entity.model_copy(update={
        "discount_percent": pct,
        "discounted_price": pricing.derive_discounted_price(entity.price or 0, pct),
    })


def apply_price(entity: Priceable, price: float) -> Priceable:
    """Copy of ``entity`` with a new base price, re-deriving the discounted price."""
    return entity.model_copy(update={
        "price": price,
        "discounted_price": pricing.derive_discounted_price(price, entity.discount_percent),
    })


def validation_errors(product: Product) -> List[str]:
    errors = []
    if not (product.product_id or "").strip():
        errors.append("Product ID is required")
    if not product.name.strip():
        errors.append("Product name is required")
    if not product.description.strip():
        errors.append("Description is required")
    if not product.category.strip():
        errors.append("Category is required")

    if not product.has_variations:
        if not pricing.is_priced(product):
            errors.append("Price must be greater than 0")
        return errors

    if not product.attributes:
        errors.append("At least one attribute is required for a product with variations")
    if not product.variants:
        errors.append("At least one variant is required for a product with variations")

    names = {attr.name for attr in product.attributes}
    for variant in product.variants:
        label = ", ".join(f"{k}: {v}" for k, v in variant.combination.items())
        if set(variant.combination) != names:
            errors.append(f"Variant ({label}) does not match the product attributes")
        if not pricing.is_priced(variant):
            errors.append(f"Variant ({label}) must have a price greater than 0")
    return errors


def prepare_for_save(product: Product) -> Product:
    errors = validation_errors(product)
    if errors:
        raise InputError("; ".join(errors))
    return product.model_copy(update={"product_id": product.product_id.strip().upper()})
