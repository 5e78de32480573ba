"""
Highlighted ("featured") products across several sellers.
"""
import logging
from typing import Iterable, List

from backend import StoreApiClient
from errors import ApiError
from schemas import Product

logger = logging.getLogger(__name__)


def normalize_product_id(product_id: str) -> str:
    return (product_id or "").strip().upper()


def _key(product: Product) -> str:
    return normalize_product_id(product.product_id or "") or product.id or ""


def merge_highlighted(product_lists: Iterable[Iterable[Product]]) -> List[Product]:
    """Concatenate per-seller lists, keeping the first occurrence of each product."""
    seen = set()
    merged = []
    for products in product_lists:
        for product in products:
            key = _key(product)
            if key in seen:
                continue
            seen.add(key)
            merged.append(product)
    return merged


def fetch_highlighted_products(client: StoreApiClient, seller_ids: Iterable[str]) -> List[Product]:
    per_seller = []
    for seller_id in seller_ids:
        try:
            ids = [normalize_product_id(pid) for pid in client.highlighted_product_ids(seller_id)]
            ids = [pid for pid in ids if pid]
            if not ids:
                continue
            by_id = {normalize_product_id(p.product_id or ""): p for p in client.products_by_product_ids(ids)}
        except ApiError as e:
            logger.warning(f"Skipping highlighted products for seller {seller_id}: {e.message}")
            continue
        # keep the seller's chosen order
        per_seller.append([by_id[pid] for pid in ids if pid in by_id])
    return merge_highlighted(per_seller)
