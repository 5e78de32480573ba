"""
Price calculator shared by the catalog, cart, buy-now and order summary paths.

Functions here are pure and work on anything that exposes ``price`` and
``discounted_price`` (Product, Variant, CartItem). Tax rates always come from
the product: a CartItem reads its product's rate, a Variant has none.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional


def _round_half_up(value: float, places: int = 2) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def money(value: float) -> float:
    return _round_half_up(value, 2)


def has_discount(entity) -> bool:
    price = entity.price or 0
    discounted = entity.discounted_price
    # a zero discounted price is what the seller form stores for "no discount"
    return bool(discounted) and discounted < price


def effective_unit_price(entity) -> float:
    if has_discount(entity):
        return float(entity.discounted_price)
    return float(entity.price or 0)


def discount_amount(entity) -> float:
    if not has_discount(entity):
        return 0.0
    return money(entity.price - entity.discounted_price)


def is_priced(entity) -> bool:
    return bool(entity.price) and entity.price > 0


def clamp_percent(percent) -> float:
    try:
        value = float(percent or 0)
    except (TypeError, ValueError):
        value = 0.0
    return max(0.0, min(100.0, value))


def derive_discounted_price(price: float, discount_percent) -> Optional[float]:
    """Seller-side helper: the discounted price implied by a discount percent.

    Returns None when the (clamped) percent is zero, meaning "no discount".
    """
    pct = clamp_percent(discount_percent)
    if pct <= 0:
        return None
    return money((price or 0) * (1 - pct / 100))


def discount_badge(entity) -> Optional[int]:
    """Whole-number percentage to show on a discount badge, or None for no badge."""
    stored = getattr(entity, "discount_percent", None)
    if stored is not None:
        pct = _round_half_up(float(stored), 0)
        return int(pct) if 0 < pct <= 100 else None

    price = entity.price or 0
    discounted = entity.discounted_price or 0
    if price > 0 and 0 < discounted < price:
        pct = _round_half_up((1 - discounted / price) * 100, 0)
        return int(pct) if 0 < pct <= 100 else None
    return None


def product_discount_badge(product) -> Optional[int]:
    if product.has_variations and product.variants:
        badges = [b for b in (discount_badge(v) for v in product.variants) if b]
        return max(badges) if badges else None
    return discount_badge(product)


def starting_price(product) -> Optional[float]:
    """Price shown on a catalog card; None means the card shows Out of Stock."""
    if product.has_variations and product.variants:
        prices = [effective_unit_price(v) for v in product.variants if v.stock == "in_stock"]
        return min(prices) if prices else None
    if product.stock_status == "out_of_stock":
        return None
    return effective_unit_price(product)


def tax_percentage(entity) -> float:
    product = getattr(entity, "product", None)
    source = product if product is not None else entity
    return float(getattr(source, "tax_percentage", None) or 0)


def _unrounded_line_tax(entity, quantity: int, tax_percentage_override: Optional[float] = None) -> float:
    rate = tax_percentage(entity) if tax_percentage_override is None else float(tax_percentage_override or 0)
    return effective_unit_price(entity) * quantity * rate / 100


def line_tax(entity, quantity: int, tax_percentage_override: Optional[float] = None) -> float:
    return money(_unrounded_line_tax(entity, quantity, tax_percentage_override))


def line_total(entity, quantity: int) -> float:
    return money(effective_unit_price(entity) * quantity)


def line_total_with_tax(entity, quantity: int, tax_percentage_override: Optional[float] = None) -> float:
    return money(line_total(entity, quantity) + line_tax(entity, quantity, tax_percentage_override))


# ---------- Multi-item totals ----------
# Subtotal and tax are each summed unrounded and rounded once; the total with
# tax is the sum of those two rounded figures, so the displayed amounts add up.

def subtotal(items: Iterable) -> float:
    return money(sum(effective_unit_price(item) * item.quantity for item in items))


def total_tax(items: Iterable) -> float:
    return money(sum(_unrounded_line_tax(item, item.quantity) for item in items))


def total_with_tax(items: Iterable) -> float:
    items = list(items)
    return money(subtotal(items) + total_tax(items))


def item_count(items: Iterable) -> int:
    return sum(item.quantity for item in items)
