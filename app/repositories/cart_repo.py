from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.models.cart import CART_STATUS_ACTIVE, Cart
from app.models.cart_item import CartItem


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_active_cart(self, user_id: int, with_items: bool = False) -> Optional[Cart]:
        qry = self.db.query(Cart).filter(
            Cart.user_id == user_id, Cart.status == CART_STATUS_ACTIVE
        )
        if with_items:
            qry = qry.options(selectinload(Cart.items).selectinload(CartItem.product))
        return qry.order_by(Cart.id).first()

    def get_by_id(self, cart_id: int) -> Optional[Cart]:
        return self.db.get(Cart, cart_id)

    def get_or_create_active_cart(self, user_id: int) -> Tuple[Cart, bool]:
        """
        Explicit lookup-or-insert of the user's active cart. Callers hold the
        per-user cart lock, so two requests cannot both take the insert branch.
        """
        cart = self.get_active_cart(user_id)
        if cart:
            return cart, False
        cart = Cart(user_id=user_id, status=CART_STATUS_ACTIVE, total_amount=Decimal("0.00"))
        self.db.add(cart)
        self.db.flush()
        return cart, True

    def get_item(self, cart_id: int, product_id: int) -> Optional[CartItem]:
        return (
            self.db.query(CartItem)
            .filter(CartItem.cart_id == cart_id, CartItem.product_id == product_id)
            .first()
        )

    def get_item_for_user(self, item_id: int, user_id: int) -> Optional[CartItem]:
        # ownership is checked on the item's user_id, not on the cart
        return (
            self.db.query(CartItem)
            .filter(CartItem.id == item_id, CartItem.user_id == user_id)
            .first()
        )

    def list_items(self, cart_id: int) -> List[CartItem]:
        return (
            self.db.query(CartItem)
            .options(selectinload(CartItem.product))
            .filter(CartItem.cart_id == cart_id)
            .order_by(CartItem.id)
            .all()
        )

    def add_item(
        self,
        cart: Cart,
        product_id: int,
        quantity: int,
        unit_price: Decimal,
        line_total: Decimal,
    ) -> CartItem:
        item = CartItem(
            cart_id=cart.id,
            product_id=product_id,
            user_id=cart.user_id,
            quantity=quantity,
            unit_price=unit_price,
            line_total=line_total,
        )
        self.db.add(item)
        self.db.flush()
        return item

    def delete_item(self, item: CartItem):
        self.db.delete(item)
        self.db.flush()

    def delete_all_items(self, cart: Cart) -> int:
        deleted = (
            self.db.query(CartItem)
            .filter(CartItem.cart_id == cart.id)
            .delete(synchronize_session=False)
        )
        self.db.expire(cart, ["items"])
        return deleted

    def sum_line_totals(self, cart_id: int) -> Decimal:
        self.db.flush()
        total = (
            self.db.query(func.coalesce(func.sum(CartItem.line_total), 0))
            .filter(CartItem.cart_id == cart_id)
            .scalar()
        )
        return Decimal(str(total or 0))

    def count_items(self, cart_id: int) -> Tuple[int, int]:
        """Return (number of item rows, sum of quantities) for a cart."""
        count, quantity = (
            self.db.query(
                func.count(CartItem.id),
                func.coalesce(func.sum(CartItem.quantity), 0),
            )
            .filter(CartItem.cart_id == cart_id)
            .one()
        )
        return int(count or 0), int(quantity or 0)
