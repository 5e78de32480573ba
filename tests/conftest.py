import json
import re
from copy import deepcopy

import httpx
import pytest
from fastapi.testclient import TestClient

import main
from backend import StoreApiClient
from schemas import Identity, Product, UserProfile
from session import Session, SessionStore

BASE_URL = "http://backend.test/api"

PRODUCTS = [
    {
        "_id": "p1",
        "productId": "TSHIRT01",
        "name": "Cotton T-Shirt",
        "description": "Plain crew neck",
        "category": "Clothing",
        "price": 100,
        "discountedPrice": 80,
        "taxPercentage": 10,
        "stockStatus": "in_stock",
        "seller": {"_id": "s1", "name": "Seller One"},
    },
    {
        "_id": "p2",
        "productId": "SHOE01",
        "name": "Running Shoe",
        "description": "Lightweight trainer",
        "category": "Footwear",
        "hasVariations": True,
        "attributes": [{"name": "Size", "options": [{"name": "S"}, {"name": "M"}]}],
        "variants": [
            {"combination": {"Size": "S"}, "price": 450, "stock": "in_stock"},
            {"combination": {"Size": "M"}, "price": 500, "discountedPrice": 400, "stock": "in_stock"},
        ],
        "seller": "s2",
    },
    {
        "_id": "p3",
        "productId": "MUG01",
        "name": "Coffee Mug",
        "description": "Ceramic",
        "category": "Kitchen",
        "price": 50,
        "stockStatus": "out_of_stock",
        "seller": "s3",
    },
]

COMPLETE_USER = {
    "_id": "u1",
    "name": "Asha Rao",
    "email": "asha@example.com",
    "phone": "9876543210",
    "address": {"street": "1 MG Road", "city": "Pune", "state": "MH", "pincode": "411001", "country": "India"},
    "profileComplete": True,
}

INCOMPLETE_USER = {
    "_id": "u2",
    "name": "Ravi",
    "email": "ravi@example.com",
    "phone": "9123456780",
    "address": {"street": "22 Park St", "city": "Kolkata", "state": "WB", "pincode": ""},
    "profileComplete": False,
}


class FakeBackend:
    """In-memory stand-in for the store REST API, served through httpx.MockTransport."""

    def __init__(self):
        self.products = {p["_id"]: deepcopy(p) for p in PRODUCTS}
        self.users = {"u1": deepcopy(COMPLETE_USER), "u2": deepcopy(INCOMPLETE_USER)}
        self.carts = {}
        self.orders = []
        self.highlighted = {"s1": ["tshirt01", "SHOE01"], "s2": ["SHOE01"], "s3": ["MUG01", "TSHIRT01"]}
        self.login_blob = {"token": "dummy-token", "user": deepcopy(COMPLETE_USER)}
        self.requests = []
        self.failures = {}

    def fail(self, method, path, status=None, body=None, exc=None):
        self.failures[(method, path)] = exc if exc is not None else (status, body)

    def calls(self, method, path):
        return [r for r in self.requests if r[0] == method and r[1] == path]

    @staticmethod
    def _seller(product):
        seller = product.get("seller")
        return seller.get("_id") if isinstance(seller, dict) else seller

    # ---------- cart helpers ----------

    def _cart(self, user_id):
        cart = self.carts.setdefault(user_id, {"_id": f"cart-{user_id}", "items": []})
        return {
            "_id": cart["_id"],
            "items": [{**item, "product": deepcopy(self.products[item["product"]])} for item in cart["items"]],
            "totalAmount": 999999,
        }

    def _add(self, body):
        product = self.products.get(body.get("productId"))
        if product is None:
            return 404, {"error": "Product not found"}
        variant = body.get("variant")
        if product.get("hasVariations"):
            if not variant or not variant.get("combination"):
                return 400, {"error": "Variant selection is required for this product"}
            price = variant["price"]
            discounted = variant["price"] if variant["price"] < variant.get("originalPrice", price) else None
        else:
            if product.get("stockStatus") == "out_of_stock":
                return 400, {"error": "Insufficient stock available"}
            price, discounted = product["price"], product.get("discountedPrice")

        cart = self.carts.setdefault(body["userId"], {"_id": f"cart-{body['userId']}", "items": []})
        for item in cart["items"]:
            same_variant = (item.get("variant") or {}).get("combination") == (variant or {}).get("combination")
            if item["product"] == product["_id"] and same_variant:
                item["quantity"] += body["quantity"]
                break
        else:
            item = {"product": product["_id"], "quantity": body["quantity"], "price": price, "discountedPrice": discounted}
            if variant:
                item["variant"] = {
                    "combination": variant["combination"],
                    "price": price,
                    "originalPrice": variant.get("originalPrice", price),
                    "stock": variant.get("stock", "in_stock"),
                }
            cart["items"].append(item)
        return 200, {"message": "Item added to cart successfully", "cart": self._cart(body["userId"])}

    def _update(self, body):
        cart = self.carts.get(body["userId"])
        if cart is None:
            return 404, {"error": "Cart not found"}
        for item in cart["items"]:
            if item["product"] == body["productId"]:
                item["quantity"] = body["quantity"]
                return 200, {"message": "Cart updated successfully", "cart": self._cart(body["userId"])}
        return 404, {"error": "Item not found in cart"}

    def _remove(self, body):
        cart = self.carts.get(body["userId"])
        if cart is None:
            return 404, {"error": "Cart not found"}
        cart["items"] = [i for i in cart["items"] if i["product"] != body["productId"]]
        return 200, {"message": "Item removed from cart successfully", "cart": self._cart(body["userId"])}

    def _update_user(self, user_id, body):
        user = self.users.get(user_id)
        if user is None:
            return 404, {"error": "User not found"}
        if body.get("name"):
            user["name"] = body["name"]
        if body.get("phone"):
            user["phone"] = body["phone"]
        if body.get("address"):
            merged = dict(user.get("address") or {})
            merged.update({k: v for k, v in body["address"].items() if v})
            user["address"] = merged
        addr = user.get("address") or {}
        user["profileComplete"] = all([
            user.get("name"), user.get("phone"),
            addr.get("street"), addr.get("city"), addr.get("state"), addr.get("pincode"),
        ])
        return 200, {"message": "Profile updated successfully", "user": deepcopy(user)}

    # ---------- dispatch ----------

    def route(self, method, path, body):
        if method == "POST" and path == "/users/login":
            return 200, deepcopy(self.login_blob)
        if method == "POST" and path == "/users":
            user = {"_id": "u9", **{k: v for k, v in body.items() if k != "password"}}
            self.users["u9"] = user
            return 201, deepcopy(user)
        m = re.fullmatch(r"/(users|customers)/(\w+)", path)
        if m:
            key = "customer" if m.group(1) == "customers" else "user"
            if method == "GET":
                user = self.users.get(m.group(2))
                return (200, {key: deepcopy(user)}) if user else (404, {"error": "User not found"})
            if method == "PUT":
                status, data = self._update_user(m.group(2), body)
                if key == "customer" and "user" in data:
                    data = {"message": data["message"], "customer": data["user"]}
                return status, data
        if method == "GET" and path == "/categories":
            return 200, {"categories": [{"_id": "c1", "name": "Clothing"}, {"_id": "c2", "name": "Footwear"}]}
        if method == "GET" and path == "/products":
            return 200, {"products": [deepcopy(p) for p in self.products.values()], "pagination": {"current": 1}}
        if method == "POST" and path == "/products/by-product-ids":
            wanted = [pid.upper() for pid in body["productIds"]]
            found = [deepcopy(p) for p in self.products.values() if p["productId"] in wanted]
            return 200, {"products": found}
        if method == "POST" and path == "/products":
            product = {"_id": "p-new", **body}
            self.products["p-new"] = product
            return 201, {"message": "Product created", "product": deepcopy(product)}
        m = re.fullmatch(r"/products/seller/(\w+)", path)
        if m and method == "GET":
            return 200, {"products": [deepcopy(p) for p in self.products.values() if self._seller(p) == m.group(1)]}
        m = re.fullmatch(r"/products/([\w-]+)", path)
        if m and method == "GET":
            product = self.products.get(m.group(1))
            return (200, deepcopy(product)) if product else (404, {"error": "Product not found"})
        m = re.fullmatch(r"/highlighted-products/seller/(\w+)", path)
        if m:
            return 200, {"highlighted": {"seller": m.group(1), "productIds": self.highlighted.get(m.group(1), [])}}
        m = re.fullmatch(r"/cart/(\w+)", path)
        if m and method == "GET":
            return 200, {"cart": self._cart(m.group(1))}
        if method == "POST" and path == "/cart/add":
            return self._add(body)
        if method == "PUT" and path == "/cart/update":
            return self._update(body)
        if method == "DELETE" and path == "/cart/remove":
            return self._remove(body)
        if method == "DELETE" and path == "/cart/clear":
            if body["userId"] not in self.carts:
                return 404, {"error": "Cart not found"}
            self.carts[body["userId"]]["items"] = []
            return 200, {"message": "Cart cleared successfully", "cart": self._cart(body["userId"])}
        if method == "POST" and path == "/orders":
            order = {"_id": f"o{len(self.orders) + 1}", "orderId": f"ORD{len(self.orders) + 1}", "status": "pending", **body}
            self.orders.append(order)
            return 201, {"message": "Order created successfully", "order": deepcopy(order)}
        m = re.fullmatch(r"/orders/customer/(\w+)", path)
        if m and method == "GET":
            return 200, {"orders": [deepcopy(o) for o in self.orders if o["customer"] == m.group(1)]}
        m = re.fullmatch(r"/orders/(\w+)", path)
        if m and method == "GET":
            order = next((o for o in self.orders if o["_id"] == m.group(1)), None)
            return (200, {"order": deepcopy(order)}) if order else (404, {"error": "Order not found"})
        m = re.fullmatch(r"/orders/customer/(\w+)/mark-viewed", path)
        if m and method == "PUT":
            return 200, {"message": "Orders marked as viewed"}
        m = re.fullmatch(r"/orders/(\w+)/(status|delivery)", path)
        if m and method == "PUT":
            order = next((o for o in self.orders if o["_id"] == m.group(1)), None)
            if order is None:
                return 404, {"error": "Order not found"}
            if m.group(2) == "status":
                order["status"] = body["status"]
            else:
                order["deliveryStatus"] = body["deliveryStatus"]
            return 200, {"order": deepcopy(order)}
        return 404, {"error": f"No route for {method} {path}"}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        path = request.url.path[len("/api"):]
        self.requests.append((request.method, path, body))

        failure = self.failures.pop((request.method, path), None)
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            status, payload = failure
            return httpx.Response(status, json=payload)

        status, payload = self.route(request.method, path, body)
        return httpx.Response(status, json=payload)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def api(backend):
    client = StoreApiClient(base_url=BASE_URL, timeout=5, transport=httpx.MockTransport(backend))
    yield client
    client.close()


@pytest.fixture
def gateway(api):
    sessions = SessionStore()
    main.app.dependency_overrides[main.get_client] = lambda: api
    main.app.dependency_overrides[main.get_sessions] = lambda: sessions
    main.cart_stores.clear()
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()
    main.cart_stores.clear()


@pytest.fixture
def simple_product():
    return Product.model_validate(deepcopy(PRODUCTS[0]))


@pytest.fixture
def variable_product():
    return Product.model_validate(deepcopy(PRODUCTS[1]))


@pytest.fixture
def out_of_stock_product():
    return Product.model_validate(deepcopy(PRODUCTS[2]))


@pytest.fixture
def complete_user():
    return UserProfile.model_validate(deepcopy(COMPLETE_USER))


@pytest.fixture
def incomplete_user():
    return UserProfile.model_validate(deepcopy(INCOMPLETE_USER))


@pytest.fixture
def identity(complete_user):
    return Identity(kind="user", record=complete_user, token="dummy-token")


@pytest.fixture
def session(identity):
    return Session(session_id="sess-1", identity=identity)
