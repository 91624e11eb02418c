import os
import threading
from decimal import Decimal

import pytest
from sqlalchemy import text

from app.config import settings
from app.db import SessionLocal
from app.models.cart_item import CartItem
from app.models.product import Product
from app.services.cart_service import (
    CartBusy,
    CartItemNotFound,
    CartNotFound,
    CartService,
    CartValidationError,
    InsufficientStock,
    ProductUnavailable,
)
from app.utils.transactions import lock_path, user_cart_lock

USER = 1
OTHER_USER = 2


def add(user_id, product_id, qty):
    db = SessionLocal()
    try:
        res = CartService(db).add_item(user_id, product_id, qty)
        return res.item.id, res.item.quantity, res.created
    finally:
        db.close()


def test_add_new_item_snapshots_price(products, cart_state):
    db = SessionLocal()
    try:
        res = CartService(db).add_item(USER, products["TEA"], 2)
        assert res.created is True
        assert res.item.quantity == 2
        assert res.item.unit_price == Decimal("3.00")
        assert res.item.line_total == Decimal("6.00")
        assert res.item.user_id == USER
        assert res.cart.total_amount == Decimal("6.00")
    finally:
        db.close()

    total, lines, line_sum = cart_state(USER)
    assert total == line_sum == Decimal("6.00")


def test_add_same_product_twice_merges_rows(products, cart_state):
    add(USER, products["TEA"], 2)
    item_id, qty, created = add(USER, products["TEA"], 3)
    assert created is False
    assert qty == 5

    total, lines, line_sum = cart_state(USER)
    assert lines == {products["TEA"]: (5, Decimal("15.00"))}
    assert total == line_sum


def test_merge_keeps_first_unit_price(products, cart_state):
    add(USER, products["COFFEE"], 1)
    db = SessionLocal()
    try:
        db.get(Product, products["COFFEE"]).price = Decimal("8.00")
        db.commit()
    finally:
        db.close()

    add(USER, products["COFFEE"], 1)
    total, lines, _ = cart_state(USER)
    assert lines[products["COFFEE"]] == (2, Decimal("13.00"))
    assert total == Decimal("13.00")


def test_add_more_than_stock_writes_nothing(products, cart_state):
    db = SessionLocal()
    try:
        with pytest.raises(InsufficientStock) as exc:
            CartService(db).add_item(USER, products["TEA"], 6)
    finally:
        db.close()
    assert exc.value.message == "Insufficient stock available. Only 5 items in stock."
    assert cart_state(USER) is None


def test_incremental_stock_check_counts_quantity_in_cart(products, cart_state):
    add(USER, products["TEA"], 3)
    db = SessionLocal()
    try:
        with pytest.raises(InsufficientStock) as exc:
            CartService(db).add_item(USER, products["TEA"], 3)
    finally:
        db.close()
    assert "Only 5 items in stock" in exc.value.message
    assert "You already have 3 in cart" in exc.value.message
    assert exc.value.in_cart == 3

    total, lines, _ = cart_state(USER)
    assert lines[products["TEA"]] == (3, Decimal("9.00"))
    assert total == Decimal("9.00")


def test_add_rejects_inactive_and_unknown_products(products, cart_state):
    db = SessionLocal()
    try:
        svc = CartService(db)
        with pytest.raises(ProductUnavailable):
            svc.add_item(USER, products["OLD"], 1)
        with pytest.raises(CartValidationError) as exc:
            svc.add_item(USER, 9999, 1)
        assert "product_id" in exc.value.errors
        with pytest.raises(CartValidationError) as exc:
            svc.add_item(USER, products["TEA"], 0)
        assert "quantity" in exc.value.errors
    finally:
        db.close()
    assert cart_state(USER) is None


def test_out_of_stock_product_cannot_be_added(products):
    db = SessionLocal()
    try:
        with pytest.raises(InsufficientStock):
            CartService(db).add_item(USER, products["EMPTY"], 1)
    finally:
        db.close()


def test_update_quantity_is_absolute_and_uses_stored_price(products, cart_state):
    item_id, _, _ = add(USER, products["TEA"], 4)
    add(USER, products["MUG"], 1)

    db = SessionLocal()
    try:
        db.get(Product, products["TEA"]).price = Decimal("100.00")
        db.commit()
        res = CartService(db).update_item_quantity(USER, item_id, 5)
        assert res.item.quantity == 5
        assert res.item.line_total == Decimal("15.00")
    finally:
        db.close()

    total, lines, line_sum = cart_state(USER)
    assert total == line_sum == Decimal("24.99")


def test_update_beyond_stock_leaves_item_unchanged(products, cart_state):
    item_id, _, _ = add(USER, products["MUG"], 1)
    db = SessionLocal()
    try:
        with pytest.raises(InsufficientStock):
            CartService(db).update_item_quantity(USER, item_id, 3)
    finally:
        db.close()

    total, lines, _ = cart_state(USER)
    assert lines[products["MUG"]] == (1, Decimal("9.99"))
    assert total == Decimal("9.99")


def test_items_of_other_users_are_not_found(products, cart_state):
    item_id, _, _ = add(USER, products["TEA"], 1)
    db = SessionLocal()
    try:
        svc = CartService(db)
        with pytest.raises(CartItemNotFound):
            svc.update_item_quantity(OTHER_USER, item_id, 2)
        with pytest.raises(CartItemNotFound):
            svc.remove_item(OTHER_USER, item_id)
        with pytest.raises(CartItemNotFound):
            svc.remove_item(USER, 424242)
    finally:
        db.close()
    assert cart_state(USER)[1] == {products["TEA"]: (1, Decimal("3.00"))}


def test_removing_only_item_zeroes_total(products, cart_state):
    item_id, _, _ = add(USER, products["COFFEE"], 2)
    db = SessionLocal()
    try:
        res = CartService(db).remove_item(USER, item_id)
        assert res.cart.total_amount == Decimal("0.00")
    finally:
        db.close()
    total, lines, _ = cart_state(USER)
    assert lines == {}
    assert total == Decimal("0.00")


def test_clear_cart(products, cart_state):
    db = SessionLocal()
    try:
        with pytest.raises(CartNotFound):
            CartService(db).clear_cart(USER)
    finally:
        db.close()

    add(USER, products["TEA"], 2)
    add(USER, products["COFFEE"], 1)
    for _ in range(2):
        db = SessionLocal()
        try:
            res = CartService(db).clear_cart(USER)
            assert res.cart.total_amount == Decimal("0.00")
        finally:
            db.close()
        total, lines, _ = cart_state(USER)
        assert lines == {}
        assert total == Decimal("0.00")


def test_get_cart_and_count(products):
    db = SessionLocal()
    try:
        svc = CartService(db)
        assert svc.get_cart(USER) is None
        counts = svc.get_cart_count(USER)
        assert (counts.count, counts.total_items) == (0, 0)
    finally:
        db.close()

    add(USER, products["TEA"], 2)
    add(USER, products["COFFEE"], 3)

    db = SessionLocal()
    try:
        svc = CartService(db)
        summary = svc.get_cart(USER)
        assert summary.total_items == 5
        assert summary.total_amount == Decimal("25.50")
        assert [i.product.sku for i in summary.items] == ["TEA", "COFFEE"]
        counts = svc.get_cart_count(USER)
        assert (counts.count, counts.total_items) == (2, 5)
        assert svc.get_cart(OTHER_USER) is None
    finally:
        db.close()


def test_total_tracks_items_through_a_session(products, cart_state):
    tea_id, _, _ = add(USER, products["TEA"], 1)
    assert cart_state(USER)[0] == cart_state(USER)[2]
    add(USER, products["COFFEE"], 2)
    assert cart_state(USER)[0] == cart_state(USER)[2]
    add(USER, products["TEA"], 2)
    assert cart_state(USER)[0] == cart_state(USER)[2]

    db = SessionLocal()
    try:
        CartService(db).update_item_quantity(USER, tea_id, 1)
    finally:
        db.close()
    assert cart_state(USER)[0] == cart_state(USER)[2] == Decimal("16.00")

    db = SessionLocal()
    try:
        CartService(db).remove_item(USER, tea_id)
    finally:
        db.close()
    assert cart_state(USER)[0] == cart_state(USER)[2] == Decimal("13.00")


def test_held_cart_lock_reports_busy(products, monkeypatch):
    monkeypatch.setattr(settings, "CART_LOCK_TIMEOUT_SECONDS", 0.2)
    db = SessionLocal()
    try:
        with user_cart_lock(USER):
            with pytest.raises(CartBusy):
                CartService(db).add_item(USER, products["TEA"], 1)
    finally:
        db.close()


def test_operations_commit_after_earlier_reads_on_same_session(products, cart_state):
    db = SessionLocal()
    try:
        svc = CartService(db)
        assert svc.get_cart_count(USER).count == 0
        assert db.in_transaction()
        svc.add_item(USER, products["TEA"], 2)
        assert not db.in_transaction()
        db.rollback()
    finally:
        db.close()

    total, lines, _ = cart_state(USER)
    assert lines == {products["TEA"]: (2, Decimal("6.00"))}
    assert total == Decimal("6.00")


def test_missing_cart_row_skips_total_update(products):
    tea_id, _, _ = add(USER, products["TEA"], 1)
    mug_id, _, _ = add(USER, products["MUG"], 1)

    db = SessionLocal()
    try:
        db.execute(text("DELETE FROM carts WHERE user_id = :uid"), {"uid": USER})
        db.commit()

        svc = CartService(db)
        res = svc.update_item_quantity(USER, tea_id, 3)
        assert res.cart is None
        assert res.item.quantity == 3
        assert res.item.line_total == Decimal("9.00")

        res = svc.remove_item(USER, mug_id)
        assert res.cart is None
    finally:
        db.close()

    db = SessionLocal()
    try:
        remaining = {i.id: i.quantity for i in db.query(CartItem).all()}
        assert remaining == {tea_id: 3}
    finally:
        db.close()


def test_lock_files_are_bounded(products, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "CART_LOCK_DIR", str(tmp_path))
    monkeypatch.setattr(settings, "CART_LOCK_BUCKETS", 4)
    assert lock_path(1) == lock_path(5)
    assert lock_path(1) != lock_path(2)

    for user_id in range(1, 11):
        add(user_id, products["COFFEE"], 1)

    lock_files = {f for f in os.listdir(os.path.dirname(lock_path(1))) if f.endswith(".lock")}
    assert lock_files <= {f"cart_{n}.lock" for n in range(4)}


def test_concurrent_adds_of_one_product_merge(products, cart_state):
    workers = 6
    barrier = threading.Barrier(workers)
    errors = []

    def worker():
        db = SessionLocal()
        try:
            barrier.wait()
            CartService(db).add_item(USER, products["COFFEE"], 1)
        except Exception as e:
            errors.append(e)
        finally:
            db.close()

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    total, lines, line_sum = cart_state(USER)
    assert lines == {products["COFFEE"]: (workers, Decimal("39.00"))}
    assert total == line_sum == Decimal("39.00")
