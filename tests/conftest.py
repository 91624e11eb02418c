import os
import tempfile

# Point the app at a throwaway database before anything imports app.config
_tmpdir = tempfile.mkdtemp(prefix="cart-api-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_tmpdir, "test.db")
os.environ["CART_LOCK_DIR"] = _tmpdir
os.environ["SECRET_KEY"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.db import SessionLocal, init_db
from app.main import app
from app.models.cart import Cart
from app.models.cart_item import CartItem
from app.models.product import Product
from app.security import create_access_token

TEST_PRODUCTS = [
    {"sku": "TEA", "name": "Tea 100g", "price": Decimal("3.00"), "stock": 5},
    {"sku": "COFFEE", "name": "Coffee 200g", "price": Decimal("6.50"), "stock": 10},
    {"sku": "MUG", "name": "Ceramic Mug", "price": Decimal("9.99"), "stock": 2},
    {"sku": "OLD", "name": "Discontinued Kettle", "price": Decimal("19.00"), "stock": 3, "is_active": False},
    {"sku": "EMPTY", "name": "Dark Chocolate", "price": Decimal("2.49"), "stock": 0},
]


@pytest.fixture(autouse=True)
def products():
    """Fresh schema per test; returns {sku: product id}."""
    init_db(reset=True)
    db = SessionLocal()
    try:
        rows = [Product(**p) for p in TEST_PRODUCTS]
        db.add_all(rows)
        db.commit()
        return {p.sku: p.id for p in rows}
    finally:
        db.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    def _headers(user_id: int = 1):
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


@pytest.fixture
def cart_state():
    """Return (total_amount, {product_id: (quantity, line_total)}, sum of line totals) for a user."""

    def _state(user_id: int):
        db = SessionLocal()
        try:
            cart = (
                db.query(Cart)
                .filter(Cart.user_id == user_id, Cart.status == "active")
                .first()
            )
            if cart is None:
                return None
            items = db.query(CartItem).filter(CartItem.cart_id == cart.id).all()
            lines = {i.product_id: (i.quantity, Decimal(i.line_total)) for i in items}
            line_sum = sum((Decimal(i.line_total) for i in items), Decimal("0.00"))
            return Decimal(cart.total_amount), lines, line_sum
        finally:
            db.close()

    return _state
