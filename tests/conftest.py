"""Shared fixtures: an in-memory stand-in for MongoStorage and an API client."""
from __future__ import annotations

import copy
import itertools
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from shared.security_config import limiter
from shared.utils import TransactionException, create_access_token
from storefront.main import app, get_storage

PRODUCTS = [
    {"id": "1", "name": "Cupcake", "price": 50.0, "category": "Cupcakes", "image_url": "cupcake.png"},
    {"id": "2", "name": "Donut", "price": 80.0, "category": "Donuts", "image_url": "donut.png"},
    {"id": "5", "name": "Ensaymada", "price": 100.0, "category": "Breads", "image_url": "ensaymada.png"},
    {"id": "7", "name": "Retired Pie", "price": 300.0, "category": "Pies", "is_active": False},
]


def _plain(doc: dict) -> dict:
    out = {}
    for key, value in doc.items():
        if isinstance(value, Decimal):
            value = float(value)
        elif isinstance(value, Enum):
            value = value.value
        out[key] = value
    return out


class InMemoryTransaction:
    def __init__(self, storage: "InMemoryStorage"):
        self.storage = storage

    def _check(self, operation: str) -> None:
        if self.storage.fail_on == operation:
            raise TransactionException()

    async def find_active_products(self, product_ids):
        self._check("find_active_products")
        return {
            pid: copy.deepcopy(self.storage.products[pid])
            for pid in product_ids
            if pid in self.storage.products and self.storage.products[pid].get("is_active", True)
        }

    async def find_order_by_idempotency_key(self, customer_id, key):
        for order in self.storage.orders.values():
            if order["customer_id"] == customer_id and order.get("idempotency_key") == key:
                return copy.deepcopy(order)
        return None

    async def insert_order(self, order: dict) -> str:
        self._check("insert_order")
        order_id = f"order-{next(self.storage._ids)}"
        self.storage.orders[order_id] = dict(_plain(order), id=order_id)
        self.storage.writes += 1
        return order_id

    async def insert_order_items(self, items):
        self._check("insert_order_items")
        for item in items:
            self.storage.order_items.append(_plain(item))
        self.storage.writes += 1

    async def update_delivery_defaults(self, customer_id, defaults):
        self._check("update_delivery_defaults")
        if customer_id in self.storage.users:
            self.storage.users[customer_id].update(defaults)
        self.storage.writes += 1


class InMemoryStorage:
    def __init__(self):
        self.products: dict[str, dict] = {}
        self.users: dict[str, dict] = {}
        self.orders: dict[str, dict] = {}
        self.order_items: list[dict] = []
        self.fail_on: Optional[str] = None
        self.writes = 0
        self.healthy = True
        self.transactions_opened = 0
        self._ids = itertools.count(1)

    def add_product(self, product: dict) -> None:
        self.products[product["id"]] = dict({"is_active": True, "description": ""}, **product)

    def add_user(self, user: dict) -> None:
        self.users[user["id"]] = dict(user)

    def _snapshot(self):
        return copy.deepcopy((self.orders, self.order_items, self.users, self.writes))

    @asynccontextmanager
    async def transaction(self):
        self.transactions_opened += 1
        snapshot = self._snapshot()
        try:
            yield InMemoryTransaction(self)
        except BaseException:
            self.orders, self.order_items, self.users, self.writes = snapshot
            raise

    async def ping(self) -> bool:
        return self.healthy

    def close(self) -> None:
        pass

    def _active(self, **match):
        return [
            p for p in self.products.values()
            if p.get("is_active", True) and all(p.get(k) == v for k, v in match.items())
        ]

    async def list_products(self):
        return sorted(copy.deepcopy(self._active()), key=lambda p: (p["category"], p["name"]))

    def _newest(self, products, limit):
        ordered = sorted(products, key=lambda p: p.get("created_at", datetime.min), reverse=True)
        return copy.deepcopy(ordered[:limit])

    async def list_featured_products(self, limit=3):
        return self._newest(self._active(is_featured=True), limit)

    async def list_best_sellers(self, limit=3):
        return self._newest(self._active(is_best_seller=True), limit)

    async def list_products_by_category(self, category, limit=3):
        return sorted(copy.deepcopy(self._active(category=category)), key=lambda p: p["name"])[:limit]

    async def get_product(self, product_id):
        product = self.products.get(product_id)
        if not product or not product.get("is_active", True):
            return None
        return copy.deepcopy(product)

    async def find_user_by_email(self, email):
        for user in self.users.values():
            if user["email"] == email.lower():
                return copy.deepcopy(user)
        return None

    async def get_user(self, user_id):
        user = self.users.get(user_id)
        return copy.deepcopy(user) if user else None

    async def update_user(self, user_id, fields):
        if user_id not in self.users:
            return False
        self.users[user_id].update(fields)
        return True

    async def list_orders(self, customer_id=None):
        orders = [o for o in self.orders.values() if customer_id is None or o["customer_id"] == customer_id]
        return sorted(copy.deepcopy(orders), key=lambda o: o["order_date"], reverse=True)

    async def count_orders(self, customer_id, order_status):
        return sum(
            1 for o in self.orders.values()
            if o["customer_id"] == customer_id and o["order_status"] == order_status
        )

    async def get_order(self, order_id, customer_id=None):
        order = self.orders.get(order_id)
        if not order or (customer_id and order["customer_id"] != customer_id):
            return None
        return copy.deepcopy(order)

    async def list_order_items(self, order_id):
        items = []
        for item in self.order_items:
            if item["order_id"] != order_id:
                continue
            product = self.products.get(item["product_id"], {})
            items.append(dict(
                item,
                name=product.get("name"),
                image_url=product.get("image_url"),
                category=product.get("category"),
            ))
        return items

    async def update_order(self, order_id, fields):
        if order_id not in self.orders:
            return False
        self.orders[order_id].update(_plain(dict(fields, updated_at=datetime.utcnow())))
        return True


@pytest.fixture(autouse=True)
def _disable_rate_limits():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture
def storage() -> InMemoryStorage:
    store = InMemoryStorage()
    for product in PRODUCTS:
        store.add_product(product)
    store.add_user({
        "id": "user-1",
        "email": "baker@example.com",
        "password_hash": "not-used",
        "first_name": "Juana",
        "last_name": "Cruz",
        "created_at": datetime(2024, 1, 1),
    })
    store.add_user({
        "id": "user-2",
        "email": "other@example.com",
        "password_hash": "not-used",
        "created_at": datetime(2024, 1, 1),
    })
    return store


@pytest.fixture
def client(storage: InMemoryStorage):
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


def bearer(sub: str, is_admin: bool = False) -> dict:
    token = create_access_token({"sub": sub, "is_admin": is_admin})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers() -> dict:
    return bearer("user-1")


@pytest.fixture
def other_user_headers() -> dict:
    return bearer("user-2")


@pytest.fixture
def admin_headers() -> dict:
    return bearer("flourever_admin", is_admin=True)


@pytest.fixture
def auth_headers():
    """Factory for Authorization headers: ``auth_headers(sub, is_admin=False)``."""
    return bearer
