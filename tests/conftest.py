"""Pytest fixtures for storefront tests."""

import tempfile
from pathlib import Path

import pytest

from storefront.cart_store import CartStore
from storefront.catalog import build_product_registry
from storefront.checkout import Pricing, compute_totals, generate_reference
from storefront.database import Database
from storefront.inventory import InventoryEngine, InventoryRollback
from storefront.lifecycle import OrderLifecycle
from storefront.models import Order, OrderItem, OrderStatus, SizeStock, Variation, _generate_id
from storefront.order_store import OrderStore
from storefront.product_store import ProductStore

WEBHOOK_SECRET = "sk_test_webhook_secret"
ADMIN_EMAIL = "admin@shop.test"
ADMIN_PASSWORD = "correct horse battery"

NO_FEES = Pricing(shipping_fee=0.0, free_shipping_threshold=0.0, tax_rate=0.0)


class RecordingNotifier:
    """Notifier that remembers what it was told."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.confirmed: list[str] = []
        self.changed: list[tuple[str, str]] = []

    def order_confirmed(self, order):
        if self.fail:
            raise RuntimeError("mail server down")
        self.confirmed.append(order.id)

    def order_status_changed(self, order):
        if self.fail:
            raise RuntimeError("mail server down")
        self.changed.append((order.id, order.status))


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db(temp_dir):
    return Database(temp_dir / "storefront.json")


@pytest.fixture
def registry():
    return build_product_registry()


@pytest.fixture
def product_store(db, registry):
    return ProductStore(db, registry)


@pytest.fixture
def order_store(db):
    return OrderStore(db)


@pytest.fixture
def cart_store(db):
    return CartStore(db)


@pytest.fixture
def engine(db, registry, cart_store):
    return InventoryEngine(db, registry, cart_store)


@pytest.fixture
def rollback(db):
    return InventoryRollback(db)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def lifecycle(order_store, engine, rollback, notifier):
    return OrderLifecycle(order_store, engine, rollback, notifier=notifier)


@pytest.fixture
def shirt(product_store):
    """Cloth with two variations; Black has M=5, L=2."""
    return product_store.create_product(
        "cloth",
        "Logo Tee",
        8000.0,
        [
            Variation(1, "Black", sizes=[SizeStock("M", 5), SizeStock("L", 2)]),
            Variation(2, "White", sizes=[SizeStock("M", 4)]),
        ],
    )


@pytest.fixture
def sneaker(product_store):
    """Shoe with one variation; size 42 has 3."""
    return product_store.create_product(
        "shoe",
        "Runner",
        30000.0,
        [Variation(1, "Red", sizes=[SizeStock("42", 3), SizeStock("43", 0)])],
    )


@pytest.fixture
def cap(product_store):
    """Direct-stock cap; Navy has 3, Olive has 1."""
    return product_store.create_product(
        "cap",
        "Snapback",
        5000.0,
        [Variation(1, "Navy", stock=3), Variation(2, "Olive", stock=1)],
    )


@pytest.fixture
def make_order(order_store):
    """
    Factory for orders written straight to the store.

    Each line is ``(product, quantity)`` or ``(product, quantity, size)``,
    optionally followed by a variation index (default 1).
    """

    def _make(*lines, user_id=None, status=OrderStatus.PENDING):
        items = []
        for line in lines:
            product, quantity = line[0], line[1]
            size = line[2] if len(line) > 2 else None
            variation_index = line[3] if len(line) > 3 else 1
            items.append(
                OrderItem(
                    product_id=product.id,
                    product_type=product.kind,
                    quantity=quantity,
                    price=product.price,
                    variation_index=variation_index,
                    size=size,
                    name=product.name,
                )
            )
        order = Order(
            id=_generate_id(),
            reference=generate_reference(),
            items=items,
            status=status.value,
            user_id=user_id,
            is_guest=user_id is None,
            guest_email=None if user_id else "guest@shop.test",
            **compute_totals(items, NO_FEES),
        )
        return order_store.create_order(order)

    return _make


def leaf_stock(product_store, product, variation_index=1, size=None):
    """Read one leaf counter back from storage."""
    fresh = product_store.get_product(product.kind, product.id)
    variation = fresh.find_variation(variation_index)
    if size is None:
        return variation.stock
    return next(s.stock for s in variation.sizes if s.size == size)


@pytest.fixture
def stock_of(product_store):
    def _stock(product, variation_index=1, size=None):
        return leaf_stock(product_store, product, variation_index, size)

    return _stock


@pytest.fixture
def api_env(temp_dir, monkeypatch):
    """Point the app at a temporary data directory."""
    monkeypatch.setenv("STOREFRONT_DATA_DIR", str(temp_dir))
    monkeypatch.setenv("PAYSTACK_SECRET_KEY", WEBHOOK_SECRET)
    monkeypatch.setenv("PAYSTACK_BASE_URL", "https://paystack.test")
    monkeypatch.setenv("ADMIN_EMAIL", ADMIN_EMAIL)
    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setenv("SHIPPING_FEE", "0")
    monkeypatch.setenv("FREE_SHIPPING_THRESHOLD", "0")
    monkeypatch.setenv("TAX_RATE", "0")
    return temp_dir


@pytest.fixture
def api_client(api_env):
    """Create a test client; entering it runs startup (admin seed)."""
    from fastapi.testclient import TestClient

    from storefront.api import app

    with TestClient(app) as client:
        yield client


@pytest.fixture
def admin_headers(api_client):
    response = api_client.post(
        "/api/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD}
    )
    assert response.status_code == 200
    return {"X-Admin-Id": response.json()["id"]}


@pytest.fixture
def services(api_env):
    """Stores and services sharing the API's data directory."""
    from storefront.config import get_settings
    from storefront.services import build_services

    return build_services(get_settings())
