"""
Cart session store: a read replica of the user's server-side cart.

The local snapshot and item count are only ever replaced by a cart the server
returned; nothing is incremented locally. Each request takes a sequence
token, and a response is discarded if a newer one has already been applied.
"""
import logging
import threading
from collections import OrderedDict
from typing import Callable, Optional

import pricing
from backend import StoreApiClient
from errors import ApiError, AuthenticationError, DuplicateSubmissionError, InputError
from inflight import InFlightGuard
from schemas import Cart, Identity, OperationResult, Product, Variant
from session import require_user_id

logger = logging.getLogger(__name__)


class CartSessionStore:
    def __init__(self, client: StoreApiClient, identity: Optional[Identity], guard: Optional[InFlightGuard] = None):
        self.client = client
        self.identity = identity
        self.guard = guard or InFlightGuard()
        self.cart = Cart()
        self._lock = threading.Lock()
        self._issued = 0
        self._applied = 0

    @property
    def item_count(self) -> int:
        return self.cart.item_count

    # ---------- response ordering ----------

    def begin_request(self) -> int:
        with self._lock:
            self._issued += 1
            return self._issued

    def apply_response(self, token: int, cart: Cart) -> bool:
        with self._lock:
            if token < self._applied:
                logger.debug(f"Discarding cart response {token}; {self._applied} already applied")
                return False
            self._applied = token
            self.cart = cart
            return True

    def _reset(self) -> None:
        self.apply_response(self.begin_request(), Cart())

    # ---------- operations ----------

    def _run(self, action: str, target: str, call: Callable[[str], Cart], success_message: str) -> OperationResult:
        try:
            user_id = require_user_id(self.identity)
            with self.guard.hold((action, user_id, target)):
                token = self.begin_request()
                cart = call(user_id)
                self.apply_response(token, cart)
        except (AuthenticationError, DuplicateSubmissionError) as e:
            return OperationResult(success=False, message=e.message)
        except ApiError as e:
            if e.is_rejection:
                # the server refused on stock/price/state grounds; reconcile with its view
                self.fetch()
            return OperationResult(success=False, message=e.message)
        return OperationResult(success=True, message=success_message)

    def fetch(self) -> OperationResult:
        try:
            user_id = require_user_id(self.identity)
        except AuthenticationError as e:
            self._reset()
            return OperationResult(success=False, message=e.message)

        token = self.begin_request()
        try:
            cart = self.client.get_cart(user_id)
        except ApiError as e:
            logger.warning(f"Failed to fetch cart for {user_id}: {e.message}")
            return OperationResult(success=False, message=e.message)
        self.apply_response(token, cart)
        return OperationResult(success=True, message="Cart loaded")

    def _add_payload(self, user_id: str, product: Product, quantity: int, variant: Optional[Variant]) -> dict:
        payload = {"userId": user_id, "productId": product.id, "quantity": quantity}
        if product.has_variations:
            payload["variant"] = {
                "combination": variant.combination,
                "price": pricing.effective_unit_price(variant),
                "originalPrice": variant.price,
                "stock": variant.stock,
            }
        return payload

    def _check_add(self, product: Product, quantity: int, variant: Optional[Variant]) -> None:
        if not isinstance(quantity, int) or quantity < 1:
            raise InputError("Quantity must be at least 1")
        if not product.id:
            raise InputError("Product not found")
        if product.has_variations:
            if variant is None:
                raise InputError("Please select a variant before adding to cart")
            priced, stock = variant, variant.stock
        else:
            priced, stock = product, product.stock_status
        if not pricing.is_priced(priced):
            raise InputError("This item is not available for purchase")
        if stock == "out_of_stock":
            raise InputError("This item is out of stock")

    def add(self, product: Product, quantity: int = 1, variant: Optional[Variant] = None) -> OperationResult:
        if self.identity is None:
            return OperationResult(success=False, message="Please log in to add items to cart")
        try:
            self._check_add(product, quantity, variant)
        except InputError as e:
            return OperationResult(success=False, message=e.message)

        target = product.id
        if variant is not None:
            target = f"{product.id}:{sorted(variant.combination.items())}"
        return self._run(
            "add",
            target,
            lambda user_id: self.client.add_to_cart(self._add_payload(user_id, product, quantity, variant)),
            f"{quantity} item(s) added to cart successfully!",
        )

    def update_quantity(self, product_id: str, quantity: int) -> OperationResult:
        if not isinstance(quantity, int) or quantity < 1:
            return OperationResult(success=False, message="Quantity must be at least 1. Use remove to delete the item.")
        return self._run(
            "update",
            product_id,
            lambda user_id: self.client.update_cart_item(user_id, product_id, quantity),
            "Cart updated successfully!",
        )

    def remove(self, product_id: str) -> OperationResult:
        return self._run(
            "remove",
            product_id,
            lambda user_id: self.client.remove_cart_item(user_id, product_id),
            "Item removed from cart!",
        )

    def clear(self) -> OperationResult:
        return self._run(
            "clear",
            "*",
            lambda user_id: self.client.clear_cart(user_id),
            "Cart cleared successfully!",
        )


class CartStoreRegistry:
    """Per-session cart replicas, evicting the least recently used past ``capacity``.

    An evicted replica is rebuilt from the server on the session's next request.
    """

    def __init__(self, capacity: int = 1000):
        self.capacity = capacity
        self._stores: "OrderedDict[str, CartSessionStore]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._stores)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._stores

    def get(self, session_id: str, factory: Callable[[], CartSessionStore]) -> CartSessionStore:
        with self._lock:
            store = self._stores.get(session_id)
            if store is None:
                store = factory()
                self._stores[session_id] = store
            self._stores.move_to_end(session_id)
            while len(self._stores) > self.capacity:
                evicted, _ = self._stores.popitem(last=False)
                logger.debug(f"Evicted cart replica for session {evicted}")
            return store

    def pop(self, session_id: str) -> Optional[CartSessionStore]:
        with self._lock:
            return self._stores.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._stores.clear()
