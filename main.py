import os
import logging
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from typing import Any, Dict, List, Optional

import database
import pricing
from backend import StoreApiClient
from cart import CartSessionStore, CartStoreRegistry
from catalog import apply_discount_percent, prepare_for_save
from errors import ApiError, AuthenticationError, DuplicateSubmissionError, InputError, StoreError
from highlights import fetch_highlighted_products
from inflight import InFlightGuard
from orders import CheckoutService
from profile_gate import is_complete, missing_fields
from schemas import (
    ApiModel,
    Attribute,
    DeliveryStatus,
    OrderStatus,
    Product,
    Variant,
)
from session import Session, SessionStore, normalize_identity, require_user_id
from variants import default_selection, generate_variants, resolve_variant

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront Gateway")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_client = StoreApiClient()
session_store = SessionStore()
cart_guard = InFlightGuard()
order_guard = InFlightGuard()
# per-session cart replicas; rebuilt from the backend on first use
cart_stores = CartStoreRegistry(int(os.getenv("CART_CACHE_SIZE", 1000)))


def get_client() -> StoreApiClient:
    return api_client


def get_sessions() -> SessionStore:
    return session_store


@app.exception_handler(StoreError)
async def store_error_handler(request, exc: StoreError):
    status = 500
    if isinstance(exc, InputError):
        status = 400
    elif isinstance(exc, AuthenticationError):
        status = 401
    elif isinstance(exc, DuplicateSubmissionError):
        status = 409
    elif isinstance(exc, ApiError):
        status = exc.status_code if exc.is_rejection else 502
    return JSONResponse(status_code=status, content={"detail": exc.message})


# ---------- Helpers ----------

def load_session(session_id: str, sessions: SessionStore) -> Session:
    session = sessions.load(session_id)
    if session is None:
        cart_stores.pop(session_id)
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def cart_store_for(session: Session, client: StoreApiClient) -> CartSessionStore:
    store = cart_stores.get(
        session.session_id, lambda: CartSessionStore(client, session.identity, guard=cart_guard)
    )
    store.identity = session.identity
    return store


def cart_view(store: CartSessionStore, result) -> Dict[str, Any]:
    cart = store.cart
    return {
        "success": result.success,
        "message": result.message,
        "cart": cart,
        "itemCount": cart.item_count,
        "taxAmount": pricing.total_tax(cart.items),
        "totalWithTax": pricing.total_with_tax(cart.items),
    }


def session_view(session: Session) -> Dict[str, Any]:
    record = session.identity.record if session.identity else None
    return {
        "sessionId": session.session_id,
        "identity": session.identity,
        "profileComplete": is_complete(record),
        "missing": missing_fields(record),
        "hasPendingCheckout": session.pending_intent is not None,
    }


# ---------- Health ----------

@app.get("/")
def read_root():
    return {"message": "Storefront Gateway is running"}


@app.get("/test")
def test_backend(client: StoreApiClient = Depends(get_client)):
    response = {
        "gateway": "✅ Running",
        "backend": "❌ Not Available",
        "backend_url": client.base_url,
        "database": "⚠️  Not configured (sessions in memory)",
        "collections": []
    }
    try:
        client.list_categories()
        response["backend"] = "✅ Connected & Working"
    except ApiError as e:
        response["backend"] = f"❌ Error: {e.message[:50]}"
    try:
        if database.db is not None:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


# ---------- Sessions ----------

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class SignupRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    phone: Optional[str] = None


class AddressUpdate(ApiModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    country: Optional[str] = None


class ProfileUpdate(ApiModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[AddressUpdate] = None


def start_session(blob: Any, sessions: SessionStore) -> Dict[str, Any]:
    identity = normalize_identity(blob)
    if identity is None or not identity.user_id:
        raise HTTPException(status_code=401, detail="Login response did not identify a user")
    return session_view(sessions.create(identity))


@app.post("/session/login")
def login(payload: LoginRequest, client: StoreApiClient = Depends(get_client), sessions: SessionStore = Depends(get_sessions)):
    return start_session(client.login(payload.email, payload.password), sessions)


@app.post("/session/signup")
def signup(payload: SignupRequest, client: StoreApiClient = Depends(get_client), sessions: SessionStore = Depends(get_sessions)):
    return start_session(client.signup(payload.model_dump(exclude_none=True)), sessions)


@app.get("/session/{session_id}")
def get_session(session_id: str, sessions: SessionStore = Depends(get_sessions)):
    return session_view(load_session(session_id, sessions))


@app.delete("/session/{session_id}")
def logout(session_id: str, sessions: SessionStore = Depends(get_sessions)):
    sessions.clear(session_id)
    cart_stores.pop(session_id)
    return {"status": "ok"}


@app.put("/session/{session_id}/profile")
def update_profile(
    session_id: str,
    payload: ProfileUpdate,
    client: StoreApiClient = Depends(get_client),
    sessions: SessionStore = Depends(get_sessions),
):
    session = load_session(session_id, sessions)
    try:
        checkout = CheckoutService(client, order_guard).update_profile(
            session, payload.model_dump(by_alias=True, exclude_none=True)
        )
    finally:
        sessions.save(session)
    view = session_view(session)
    view["checkout"] = checkout
    return view


# ---------- Catalog ----------

class ProductCard(ApiModel):
    product: Product
    effective_price: Optional[float] = None
    starting_price: Optional[float] = None
    discount_badge: Optional[int] = None
    out_of_stock: bool = False


def product_card(product: Product) -> ProductCard:
    starting = pricing.starting_price(product)
    return ProductCard(
        product=product,
        effective_price=None if product.has_variations else pricing.effective_unit_price(product),
        starting_price=starting,
        discount_badge=pricing.product_discount_badge(product) if starting is not None else None,
        out_of_stock=starting is None,
    )


@app.get("/categories")
def list_categories(client: StoreApiClient = Depends(get_client)):
    return client.list_categories()


@app.get("/products")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    seller: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    client: StoreApiClient = Depends(get_client),
):
    products = client.list_products(category=category, seller=seller, search=search, page=page, limit=limit)
    return [product_card(p) for p in products]


class VariantSelection(ApiModel):
    selected: Dict[str, str] = Field(default_factory=dict)


@app.post("/products/{product_id}/variant")
def select_variant(product_id: str, payload: VariantSelection, client: StoreApiClient = Depends(get_client)):
    product = client.get_product(product_id)
    if payload.selected:
        selected, variant = payload.selected, resolve_variant(product, payload.selected)
    else:
        variant, selected = default_selection(product)
    return {
        "selected": selected,
        "variant": variant,
        "effectivePrice": pricing.effective_unit_price(variant) if variant else None,
        "discountAmount": pricing.discount_amount(variant) if variant else None,
        "discountBadge": pricing.discount_badge(variant) if variant else None,
        "available": variant is not None and variant.stock == "in_stock",
    }


@app.get("/highlighted")
def highlighted_products(sellers: str = Query(..., description="Comma-separated seller ids"), client: StoreApiClient = Depends(get_client)):
    seller_ids = [s.strip() for s in sellers.split(",") if s.strip()]
    return [product_card(p) for p in fetch_highlighted_products(client, seller_ids)]


# ---------- Cart ----------

class AddToCartRequest(ApiModel):
    product_id: str = Field(..., description="Backend product _id")
    quantity: int = 1
    selected: Optional[Dict[str, str]] = None


class UpdateCartRequest(ApiModel):
    product_id: str
    quantity: int


class RemoveFromCartRequest(ApiModel):
    product_id: str


def selected_variant(product: Product, selected: Optional[Dict[str, str]]) -> Optional[Variant]:
    if not product.has_variations:
        return None
    return resolve_variant(product, selected or {})


@app.get("/cart/{session_id}")
def get_cart(session_id: str, client: StoreApiClient = Depends(get_client), sessions: SessionStore = Depends(get_sessions)):
    store = cart_store_for(load_session(session_id, sessions), client)
    return cart_view(store, store.fetch())


@app.post("/cart/{session_id}/add")
def add_to_cart(
    session_id: str,
    payload: AddToCartRequest,
    client: StoreApiClient = Depends(get_client),
    sessions: SessionStore = Depends(get_sessions),
):
    store = cart_store_for(load_session(session_id, sessions), client)
    product = client.get_product(payload.product_id)
    result = store.add(product, payload.quantity, selected_variant(product, payload.selected))
    return cart_view(store, result)


@app.put("/cart/{session_id}/update")
def update_cart_item(
    session_id: str,
    payload: UpdateCartRequest,
    client: StoreApiClient = Depends(get_client),
    sessions: SessionStore = Depends(get_sessions),
):
    store = cart_store_for(load_session(session_id, sessions), client)
    return cart_view(store, store.update_quantity(payload.product_id, payload.quantity))


@app.delete("/cart/{session_id}/remove")
def remove_from_cart(
    session_id: str,
    payload: RemoveFromCartRequest,
    client: StoreApiClient = Depends(get_client),
    sessions: SessionStore = Depends(get_sessions),
):
    store = cart_store_for(load_session(session_id, sessions), client)
    return cart_view(store, store.remove(payload.product_id))


@app.delete("/cart/{session_id}/clear")
def clear_cart(session_id: str, client: StoreApiClient = Depends(get_client), sessions: SessionStore = Depends(get_sessions)):
    store = cart_store_for(load_session(session_id, sessions), client)
    return cart_view(store, store.clear())


# ---------- Checkout ----------

class BuyNowRequest(ApiModel):
    product_id: str
    quantity: int = 1
    selected: Optional[Dict[str, str]] = None


class DraftQuantityRequest(ApiModel):
    product_id: str
    quantity: int
    combination: Optional[Dict[str, str]] = None


class SubmitOrderRequest(ApiModel):
    payment_method: str = "cod"


@app.post("/checkout/{session_id}/cart")
def checkout_cart(session_id: str, client: StoreApiClient = Depends(get_client), sessions: SessionStore = Depends(get_sessions)):
    session = load_session(session_id, sessions)
    store = cart_store_for(session, client)
    fetched = store.fetch()
    if not fetched.success:
        raise HTTPException(status_code=502, detail=fetched.message)
    state = CheckoutService(client, order_guard).start_from_cart(session, store.cart)
    sessions.save(session)
    return state


@app.post("/checkout/{session_id}/buy-now")
def checkout_buy_now(
    session_id: str,
    payload: BuyNowRequest,
    client: StoreApiClient = Depends(get_client),
    sessions: SessionStore = Depends(get_sessions),
):
    session = load_session(session_id, sessions)
    product = client.get_product(payload.product_id)
    state = CheckoutService(client, order_guard).start_buy_now(
        session, product, selected_variant(product, payload.selected), payload.quantity
    )
    sessions.save(session)
    return state


@app.get("/checkout/{session_id}/draft")
def get_draft(session_id: str, sessions: SessionStore = Depends(get_sessions)):
    session = load_session(session_id, sessions)
    if session.draft is None:
        raise HTTPException(status_code=404, detail="There is no order in progress")
    return session.draft


@app.put("/checkout/{session_id}/quantity")
def update_draft_quantity(
    session_id: str,
    payload: DraftQuantityRequest,
    client: StoreApiClient = Depends(get_client),
    sessions: SessionStore = Depends(get_sessions),
):
    session = load_session(session_id, sessions)
    draft = CheckoutService(client, order_guard).set_quantity(
        session, payload.product_id, payload.quantity, payload.combination
    )
    sessions.save(session)
    return draft


@app.post("/checkout/{session_id}/submit")
def submit_order(
    session_id: str,
    payload: SubmitOrderRequest,
    client: StoreApiClient = Depends(get_client),
    sessions: SessionStore = Depends(get_sessions),
):
    session = load_session(session_id, sessions)
    store = cart_store_for(session, client)
    result = CheckoutService(client, order_guard).submit(session, store, payload.payment_method)
    sessions.save(session)
    return result


# ---------- Orders ----------

@app.get("/orders/{session_id}")
def customer_orders(session_id: str, client: StoreApiClient = Depends(get_client), sessions: SessionStore = Depends(get_sessions)):
    session = load_session(session_id, sessions)
    if session.identity is None or not session.identity.user_id:
        raise AuthenticationError("Please log in to view your orders")
    return client.customer_orders(session.identity.user_id)


@app.put("/orders/{session_id}/mark-viewed")
def mark_orders_viewed(session_id: str, client: StoreApiClient = Depends(get_client), sessions: SessionStore = Depends(get_sessions)):
    session = load_session(session_id, sessions)
    if session.identity is None or not session.identity.user_id:
        raise AuthenticationError("Please log in to view your orders")
    client.mark_orders_viewed(session.identity.user_id)
    return {"status": "ok"}


@app.get("/orders/{session_id}/{order_id}")
def order_details(
    session_id: str,
    order_id: str,
    client: StoreApiClient = Depends(get_client),
    sessions: SessionStore = Depends(get_sessions),
):
    user_id = require_user_id(load_session(session_id, sessions).identity)
    order = client.get_order(order_id)
    customer = order.customer.get("_id") if isinstance(order.customer, dict) else order.customer
    if customer != user_id:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


# ---------- Seller ----------

class VariantPreviewRequest(ApiModel):
    attributes: List[Attribute] = Field(default_factory=list)
    previous: List[Variant] = Field(default_factory=list)


class DiscountPreviewRequest(ApiModel):
    price: float = Field(..., ge=0)
    discount_percent: float = 0


class OrderStatusRequest(ApiModel):
    status: OrderStatus
    notes: Optional[str] = None
    tracking_number: Optional[str] = None


class DeliveryStatusRequest(ApiModel):
    delivery_status: DeliveryStatus
    tracking_number: Optional[str] = None


@app.post("/seller/variants/preview")
def preview_variants(payload: VariantPreviewRequest):
    return generate_variants(payload.attributes, payload.previous)


@app.post("/seller/pricing/discount")
def preview_discount(payload: DiscountPreviewRequest):
    variant = apply_discount_percent(Variant(combination={}, price=payload.price), payload.discount_percent)
    return {
        "discountPercent": variant.discount_percent,
        "discountedPrice": variant.discounted_price,
        "effectivePrice": pricing.effective_unit_price(variant),
    }


@app.get("/seller/{seller_id}/products")
def seller_products(seller_id: str, client: StoreApiClient = Depends(get_client)):
    return [product_card(p) for p in client.seller_products(seller_id)]


@app.post("/seller/products")
def create_product(product: Product, client: StoreApiClient = Depends(get_client)):
    return client.create_product(prepare_for_save(product))


@app.put("/seller/products/{product_id}")
def update_product(product_id: str, product: Product, client: StoreApiClient = Depends(get_client)):
    return client.update_product(product_id, prepare_for_save(product))


@app.put("/seller/orders/{order_id}/status")
def update_order_status(order_id: str, payload: OrderStatusRequest, client: StoreApiClient = Depends(get_client)):
    return client.update_order_status(order_id, payload.status, payload.notes, payload.tracking_number)


@app.put("/seller/orders/{order_id}/delivery")
def update_delivery_status(order_id: str, payload: DeliveryStatusRequest, client: StoreApiClient = Depends(get_client)):
    return client.update_delivery_status(order_id, payload.delivery_status, payload.tracking_number)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
