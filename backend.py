"""
HTTP client for the store backend REST API.

Every call either returns parsed data or raises ApiError carrying the
backend's own error text, so callers can show it to the user verbatim.
"""
import os
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from errors import ApiError
from schemas import (
    Cart,
    Category,
    HighlightedProducts,
    Identity,
    Order,
    OrderPayload,
    Product,
    UserProfile,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:5000/api"
DEFAULT_TIMEOUT = 10.0

M = TypeVar("M", bound=BaseModel)


class StoreApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url or os.getenv("STORE_API_URL", DEFAULT_API_URL)
        if timeout is None:
            timeout = float(os.getenv("STORE_API_TIMEOUT", DEFAULT_TIMEOUT))
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, path: str, json: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self._http.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out: {e}")
            raise ApiError("The server took too long to respond. Please try again.") from e
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ApiError("Could not reach the server. Please check your connection.") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"{method} {path} returned malformed JSON ({response.status_code})")
            raise ApiError("Unexpected response from server", response.status_code) from e

        if response.is_error:
            message = None
            if isinstance(data, dict):
                message = data.get("error") or data.get("message")
            logger.info(f"{method} {path} rejected ({response.status_code}): {message}")
            raise ApiError(message or f"Request failed with status {response.status_code}", response.status_code)
        return data

    @staticmethod
    def _parse(model: Type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Backend sent an invalid {model.__name__}: {e.error_count()} error(s)")
            raise ApiError("Unexpected response from server") from e

    # ---------- Users ----------

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/users/login", json={"email": email, "password": password})

    def signup(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/users", json=payload)

    @staticmethod
    def _profile_path(identity: Identity) -> str:
        collection = "customers" if identity.kind == "customer" else "users"
        return f"/{collection}/{identity.user_id}"

    def get_profile(self, identity: Identity) -> UserProfile:
        data = self._request("GET", self._profile_path(identity))
        return self._parse(UserProfile, data.get("customer") or data.get("user") or data)

    def update_profile(self, identity: Identity, changes: Dict[str, Any]) -> UserProfile:
        data = self._request("PUT", self._profile_path(identity), json=changes)
        return self._parse(UserProfile, data.get("customer") or data.get("user") or data)

    # ---------- Catalog ----------

    def list_categories(self) -> List[Category]:
        data = self._request("GET", "/categories")
        items = data.get("categories", []) if isinstance(data, dict) else data
        return [self._parse(Category, c) for c in items]

    def list_products(
        self,
        category: Optional[str] = None,
        seller: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> List[Product]:
        params = {"page": page, "limit": limit}
        if category:
            params["category"] = category
        if seller:
            params["seller"] = seller
        if search:
            params["search"] = search
        data = self._request("GET", "/products", params=params)
        items = data.get("products", []) if isinstance(data, dict) else data
        return [self._parse(Product, p) for p in items]

    def get_product(self, product_id: str) -> Product:
        data = self._request("GET", f"/products/{product_id}")
        return self._parse(Product, data.get("product", data))

    def products_by_product_ids(self, product_ids: List[str]) -> List[Product]:
        data = self._request("POST", "/products/by-product-ids", json={"productIds": product_ids})
        items = data.get("products", []) if isinstance(data, dict) else data
        return [self._parse(Product, p) for p in items]

    def seller_products(self, seller_id: str) -> List[Product]:
        data = self._request("GET", f"/products/seller/{seller_id}")
        items = data.get("products", []) if isinstance(data, dict) else data
        return [self._parse(Product, p) for p in items]

    def create_product(self, product: Product) -> Product:
        data = self._request("POST", "/products", json=product.model_dump(mode="json", by_alias=True, exclude_none=True))
        return self._parse(Product, data.get("product", data))

    def update_product(self, product_id: str, product: Product) -> Product:
        data = self._request("PUT", f"/products/{product_id}", json=product.model_dump(mode="json", by_alias=True, exclude_none=True))
        return self._parse(Product, data.get("product", data))

    def highlighted_product_ids(self, seller_id: str) -> List[str]:
        data = self._request("GET", f"/highlighted-products/seller/{seller_id}")
        return self._parse(HighlightedProducts, data.get("highlighted") or {}).product_ids

    # ---------- Cart ----------

    def _cart(self, data: Any) -> Cart:
        return self._parse(Cart, (data or {}).get("cart") or {})

    def get_cart(self, user_id: str) -> Cart:
        return self._cart(self._request("GET", f"/cart/{user_id}"))

    def add_to_cart(self, payload: Dict[str, Any]) -> Cart:
        return self._cart(self._request("POST", "/cart/add", json=payload))

    def update_cart_item(self, user_id: str, product_id: str, quantity: int) -> Cart:
        payload = {"userId": user_id, "productId": product_id, "quantity": quantity}
        return self._cart(self._request("PUT", "/cart/update", json=payload))

    def remove_cart_item(self, user_id: str, product_id: str) -> Cart:
        payload = {"userId": user_id, "productId": product_id}
        return self._cart(self._request("DELETE", "/cart/remove", json=payload))

    def clear_cart(self, user_id: str) -> Cart:
        return self._cart(self._request("DELETE", "/cart/clear", json={"userId": user_id}))

    # ---------- Orders ----------

    def create_order(self, payload: OrderPayload) -> Order:
        data = self._request("POST", "/orders", json=payload.model_dump(mode="json", by_alias=True, exclude_none=True))
        return self._parse(Order, data.get("order", data))

    def get_order(self, order_id: str) -> Order:
        data = self._request("GET", f"/orders/{order_id}")
        return self._parse(Order, data.get("order", data))

    def customer_orders(self, user_id: str) -> List[Order]:
        data = self._request("GET", f"/orders/customer/{user_id}")
        items = data.get("orders", []) if isinstance(data, dict) else data
        return [self._parse(Order, o) for o in items]

    def mark_orders_viewed(self, user_id: str) -> None:
        self._request("PUT", f"/orders/customer/{user_id}/mark-viewed")

    def update_order_status(self, order_id: str, status: str, notes: Optional[str] = None, tracking_number: Optional[str] = None) -> Order:
        payload = {"status": status, "notes": notes, "trackingNumber": tracking_number}
        data = self._request("PUT", f"/orders/{order_id}/status", json={k: v for k, v in payload.items() if v is not None})
        return self._parse(Order, data.get("order", data))

    def update_delivery_status(self, order_id: str, delivery_status: str, tracking_number: Optional[str] = None) -> Order:
        payload = {"deliveryStatus": delivery_status, "trackingNumber": tracking_number}
        data = self._request("PUT", f"/orders/{order_id}/delivery", json={k: v for k, v in payload.items() if v is not None})
        return self._parse(Order, data.get("order", data))
