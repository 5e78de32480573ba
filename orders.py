"""
Order drafts and checkout.

Cart checkout and buy-now both produce the same OrderDraft, so the summary,
edit and submit steps do not care which path the customer took. Line prices
are snapshotted when the draft is built; the customer's profile is fetched
fresh right before the order is submitted.
"""
import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

import pricing
from backend import StoreApiClient
from cart import CartSessionStore
from errors import ApiError, AuthenticationError, DuplicateSubmissionError, InputError
from inflight import InFlightGuard
from profile_gate import check_gate, is_complete, release_intent
from schemas import (
    ApiModel,
    Cart,
    CartItem,
    CartVariant,
    CustomerDetails,
    Order,
    OrderDraft,
    OrderLine,
    OrderLineVariant,
    OrderPayload,
    PendingIntent,
    Product,
    UserProfile,
    Variant,
)
from session import Session, require_user_id

logger = logging.getLogger(__name__)


class CheckoutState(ApiModel):
    status: Literal["ready", "profile_required"]
    draft: Optional[OrderDraft] = None
    missing: List[str] = Field(default_factory=list)


class SubmitResult(ApiModel):
    success: bool
    message: str = ""
    order: Optional[Order] = None


# ---------- Draft building ----------

def buy_now_line(product: Product, variant: Optional[Variant], quantity: int) -> CartItem:
    if not isinstance(quantity, int) or quantity < 1:
        raise InputError("Quantity must be at least 1")
    snapshot = product.model_copy(deep=True)
    if product.has_variations:
        if variant is None:
            raise InputError("Please select a variant before buying")
        if not pricing.is_priced(variant):
            raise InputError("This item is not available for purchase")
        return CartItem(
            product=snapshot,
            quantity=quantity,
            price=variant.price,
            discounted_price=variant.discounted_price,
            variant=CartVariant(
                combination=dict(variant.combination),
                price=pricing.effective_unit_price(variant),
                original_price=variant.price,
                stock=variant.stock,
            ),
        )
    if not pricing.is_priced(product):
        raise InputError("This item is not available for purchase")
    return CartItem(
        product=snapshot,
        quantity=quantity,
        price=product.price,
        discounted_price=product.discounted_price,
    )


def build_from_cart(cart: Cart, user: UserProfile) -> OrderDraft:
    if not cart.items:
        raise InputError("Your cart is empty")
    return OrderDraft(user=user.model_copy(deep=True), cart=cart.model_copy(deep=True), is_buy_now=False)


def build_from_buy_now(product: Product, variant: Optional[Variant], quantity: int, user: UserProfile) -> OrderDraft:
    line = buy_now_line(product, variant, quantity)
    return OrderDraft(user=user.model_copy(deep=True), cart=Cart(items=[line]), is_buy_now=True)


def to_order_payload(draft: OrderDraft, customer_id: str, user: Optional[UserProfile] = None, notes: str = "") -> OrderPayload:
    user = user or draft.user
    lines = []
    for item in draft.cart.items:
        if not item.product_id:
            raise InputError("An item in this order is no longer available")
        lines.append(OrderLine(
            product=item.product_id,
            quantity=item.quantity,
            price=item.price,
            discounted_price=item.discounted_price if pricing.has_discount(item) else None,
            variant=OrderLineVariant(combination=item.variant.combination) if item.variant else None,
        ))
    return OrderPayload(
        customer=customer_id,
        customer_details=CustomerDetails(
            name=user.name or "",
            email=user.email,
            phone=user.phone or "",
            address=user.address,
        ),
        items=lines,
        total_amount=draft.total_amount,
        notes=notes,
    )


# ---------- Checkout flow ----------

class CheckoutService:
    def __init__(self, client: StoreApiClient, guard: Optional[InFlightGuard] = None):
        self.client = client
        self.guard = guard or InFlightGuard()

    def _draft_for(self, intent: PendingIntent, user: UserProfile) -> OrderDraft:
        if intent.kind == "cart":
            return build_from_cart(intent.cart or Cart(), user)
        if intent.product is None:
            raise InputError("Product not found")
        return build_from_buy_now(intent.product, intent.variant, intent.quantity, user)

    def start(self, session: Session, intent: PendingIntent) -> CheckoutState:
        """Build a draft for ``intent``, or park it on the session until the profile is complete."""
        require_user_id(session.identity)
        # validate the intent up front so a bad selection is never parked
        self._draft_for(intent, session.identity.record)

        decision = check_gate(session, intent)
        if not decision.proceed:
            return CheckoutState(status="profile_required", missing=decision.missing)

        session.draft = self._draft_for(intent, session.identity.record)
        return CheckoutState(status="ready", draft=session.draft)

    def start_from_cart(self, session: Session, cart: Cart) -> CheckoutState:
        return self.start(session, PendingIntent(kind="cart", cart=cart.model_copy(deep=True)))

    def start_buy_now(self, session: Session, product: Product, variant: Optional[Variant], quantity: int) -> CheckoutState:
        return self.start(session, PendingIntent(kind="buy_now", product=product, variant=variant, quantity=quantity))

    def update_profile(self, session: Session, changes: Dict[str, Any]) -> Optional[CheckoutState]:
        """Save profile changes; resume a parked checkout once the profile is complete.

        ApiError propagates so the caller can show the server's message.
        """
        require_user_id(session.identity)
        record = self.client.update_profile(session.identity, changes)
        session.identity = session.identity.model_copy(update={"record": record})
        if session.draft is not None:
            session.draft.user = record.model_copy(deep=True)

        if session.pending_intent is None or not is_complete(record):
            return None
        intent = session.pending_intent
        logger.info(f"Resuming {intent.kind} checkout for session {session.session_id}")
        # the intent stays held if the replay fails
        state = self.start(session, intent)
        release_intent(session)
        return state

    def set_quantity(
        self, session: Session, product_id: str, quantity: int, combination: Optional[Dict[str, str]] = None
    ) -> OrderDraft:
        if session.draft is None:
            raise InputError("There is no order in progress")
        session.draft.set_quantity(product_id, quantity, combination)
        return session.draft

    def submit(
        self,
        session: Session,
        cart_store: Optional[CartSessionStore] = None,
        payment_method: str = "cod",
    ) -> SubmitResult:
        try:
            user_id = require_user_id(session.identity)
        except AuthenticationError as e:
            return SubmitResult(success=False, message=e.message)

        draft = session.draft
        if draft is None or not draft.cart.items:
            return SubmitResult(success=False, message="There is no order to place")

        try:
            with self.guard.hold(("order", user_id), "Your order is already being placed"):
                fresh = self.client.get_profile(session.identity)
                session.identity = session.identity.model_copy(update={"record": fresh})
                draft.user = fresh.model_copy(deep=True)
                if not is_complete(fresh):
                    return SubmitResult(success=False, message="Please complete all customer and address fields")
                payload = to_order_payload(draft, user_id, fresh, notes=f"Payment method: {payment_method}")
                order = self.client.create_order(payload)
        except (DuplicateSubmissionError, InputError) as e:
            return SubmitResult(success=False, message=e.message)
        except ApiError as e:
            logger.error(f"Order creation failed for {user_id}: {e.message}")
            return SubmitResult(success=False, message=e.message)

        logger.info(f"Order {order.order_id or order.id} created for {user_id}")
        session.draft = None
        if not draft.is_buy_now and cart_store is not None:
            cleared = cart_store.clear()
            if not cleared.success:
                logger.warning(f"Order placed but cart was not cleared for {user_id}: {cleared.message}")
        return SubmitResult(success=True, message="Order placed successfully!", order=order)
