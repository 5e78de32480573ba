"""
Data Schemas for the Storefront Gateway

Each Pydantic model mirrors a JSON shape exchanged with the store backend.
Field names are snake_case in Python and camelCase on the wire
(e.g. discounted_price <-> "discountedPrice"); MongoDB ids travel as "_id".

Totals on Cart and OrderDraft are computed properties: they are always derived
from the current line items and never stored or accepted from input.
"""
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional, Union
from datetime import datetime

import pricing
from errors import InputError

DEFAULT_COUNTRY = "India"

StockStatus = Literal["in_stock", "out_of_stock"]
IdentityKind = Literal["user", "customer", "flat"]
OrderStatus = Literal["pending", "accepted", "shipped", "delivered", "cancelled"]
DeliveryStatus = Literal["pending", "shipped", "out_for_delivery", "delivered"]


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


# ---------- Catalog ----------

class Category(ApiModel):
    id: Optional[str] = Field(None, alias="_id")
    name: str = Field(..., description="Category display name")
    description: Optional[str] = Field(None, description="Short description")
    is_active: bool = True


class AttributeOption(ApiModel):
    name: str = Field(..., description="Option value, e.g. 'M'")
    display_name: Optional[str] = Field(None, description="Label shown to customers")


class Attribute(ApiModel):
    name: str = Field(..., description="Axis of variation, e.g. 'Size'")
    options: List[AttributeOption] = Field(default_factory=list)


class Variant(ApiModel):
    combination: Dict[str, str] = Field(..., description="Attribute name -> option name")
    price: float = Field(0, ge=0, description="Unit price of this variant")
    discounted_price: Optional[float] = Field(None, ge=0)
    discount_percent: Optional[float] = Field(None, ge=0, le=100)
    stock: StockStatus = "in_stock"
    images: List[str] = Field(default_factory=list)
    is_active: bool = True


class Product(ApiModel):
    id: Optional[str] = Field(None, alias="_id", description="Backend document id")
    product_id: Optional[str] = Field(None, description="Seller-assigned product code")
    name: str = ""
    description: str = ""
    category: str = ""
    brand: Optional[str] = None
    price: Optional[float] = Field(None, ge=0, description="Base unit price")
    discounted_price: Optional[float] = Field(None, ge=0)
    discount_percent: Optional[float] = Field(None, ge=0, le=100)
    tax_percentage: Optional[float] = Field(None, ge=0, le=100, description="Applied to line subtotal")
    stock_status: StockStatus = "in_stock"
    has_variations: bool = False
    attributes: List[Attribute] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list)
    photos: List[str] = Field(default_factory=list)
    seller: Optional[Union[str, Dict[str, Any]]] = None
    seller_name: Optional[str] = None
    is_active: bool = True


class HighlightedProducts(ApiModel):
    seller: Optional[Union[str, Dict[str, Any]]] = None
    product_ids: List[str] = Field(default_factory=list)


# ---------- Cart ----------

class CartVariant(ApiModel):
    combination: Dict[str, str]
    price: float = Field(0, ge=0, description="Unit price charged for this line")
    original_price: Optional[float] = Field(None, ge=0)
    stock: StockStatus = "in_stock"


class CartItem(ApiModel):
    product: Optional[Product] = Field(None, description="Denormalized product snapshot")
    quantity: int = Field(1, ge=1)
    price: float = Field(0, ge=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    variant: Optional[CartVariant] = None

    @field_validator("product", mode="before")
    @classmethod
    def _unpopulated_product(cls, value):
        # the backend leaves the reference as a bare id when it does not populate
        if isinstance(value, str):
            return {"_id": value}
        return value

    @property
    def product_id(self) -> Optional[str]:
        return self.product.id if self.product else None


class Cart(ApiModel):
    id: Optional[str] = Field(None, alias="_id")
    items: List[CartItem] = Field(default_factory=list)

    @computed_field(alias="totalAmount")
    @property
    def total_amount(self) -> float:
        return pricing.subtotal(self.items)

    @computed_field(alias="itemCount")
    @property
    def item_count(self) -> int:
        return pricing.item_count(self.items)


# ---------- Users ----------

class Address(ApiModel):
    street: Optional[str] = ""
    city: Optional[str] = ""
    state: Optional[str] = ""
    pincode: Optional[str] = ""
    country: Optional[str] = DEFAULT_COUNTRY


class UserProfile(ApiModel):
    id: Optional[str] = Field(None, alias="_id")
    name: Optional[str] = ""
    email: Optional[str] = None
    phone: Optional[str] = ""
    address: Address = Field(default_factory=Address)
    profile_complete: Optional[bool] = Field(None, description="Backend-computed completeness flag")
    role: Optional[str] = None

    @field_validator("address", mode="before")
    @classmethod
    def _missing_address(cls, value):
        return value if value is not None else {}


class Identity(ApiModel):
    kind: IdentityKind = Field(..., description="Which login shape the session came from")
    record: UserProfile
    token: Optional[str] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.record.id


# ---------- Checkout ----------

class OrderDraft(ApiModel):
    user: UserProfile
    cart: Cart = Field(default_factory=Cart)
    is_buy_now: bool = False

    @computed_field(alias="totalAmount")
    @property
    def total_amount(self) -> float:
        return self.cart.total_amount

    @computed_field(alias="taxAmount")
    @property
    def tax_amount(self) -> float:
        return pricing.total_tax(self.cart.items)

    @computed_field(alias="totalWithTax")
    @property
    def total_with_tax(self) -> float:
        return pricing.total_with_tax(self.cart.items)

    def set_quantity(self, product_id: str, quantity: int, combination: Optional[Dict[str, str]] = None) -> None:
        """Change one line's quantity.

        A line is identified by product id plus variant combination; the
        combination may be omitted only when the product has a single line.
        """
        if quantity < 1:
            raise InputError("Quantity must be at least 1")
        lines = [item for item in self.cart.items if item.product_id == product_id]
        if combination is not None:
            lines = [item for item in lines if (item.variant.combination if item.variant else {}) == combination]
        if not lines:
            raise InputError("Item not found in order")
        if len(lines) > 1:
            raise InputError("Please choose which variant to update")
        lines[0].quantity = quantity


class PendingIntent(ApiModel):
    kind: Literal["cart", "buy_now"]
    cart: Optional[Cart] = None
    product: Optional[Product] = None
    variant: Optional[Variant] = None
    quantity: int = Field(1, ge=1)


class OrderLineVariant(ApiModel):
    combination: Dict[str, str]


class OrderLine(ApiModel):
    product: str = Field(..., description="Backend product id; the seller is derived from it")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    discounted_price: Optional[float] = None
    variant: Optional[OrderLineVariant] = None


class CustomerDetails(ApiModel):
    name: str
    email: Optional[str] = None
    phone: str
    address: Address


class OrderPayload(ApiModel):
    customer: str
    customer_details: CustomerDetails
    items: List[OrderLine]
    total_amount: float = Field(..., ge=0, description="Subtotal before tax")
    notes: str = ""


class Order(ApiModel):
    id: Optional[str] = Field(None, alias="_id")
    order_id: Optional[str] = None
    customer: Optional[Union[str, Dict[str, Any]]] = None
    items: List[Dict[str, Any]] = Field(default_factory=list)
    total_amount: float = 0.0
    status: OrderStatus = "pending"
    payment_status: Optional[str] = None
    delivery_status: Optional[DeliveryStatus] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


# ---------- Results ----------

class OperationResult(ApiModel):
    success: bool
    message: str = ""
