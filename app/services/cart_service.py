import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterator, List, Optional

from sqlalchemy.orm import Session

from app.models.cart import Cart
from app.models.cart_item import CartItem
from app.repositories.cart_repo import CartRepository
from app.repositories.product_repo import ProductRepository
from app.utils.transactions import LockTimeout, smart_transaction, user_cart_lock

log = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize any numeric (or None) to a 2-place Decimal."""
    if value is None:
        value = 0
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class CartServiceException(Exception):
    status_code = 400

    def __init__(self, message: str, errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class CartValidationError(CartServiceException):
    status_code = 422


class BusinessRuleViolation(CartServiceException):
    status_code = 400


class ProductUnavailable(BusinessRuleViolation):
    def __init__(self, product_id: int):
        super().__init__("Product is not available")
        self.product_id = product_id


class InsufficientStock(BusinessRuleViolation):
    def __init__(self, available: int, requested: int, in_cart: Optional[int] = None):
        message = f"Insufficient stock available. Only {available} items in stock."
        if in_cart is not None:
            message += f" You already have {in_cart} in cart."
        super().__init__(message)
        self.available = available
        self.requested = requested
        self.in_cart = in_cart


class CartNotFound(CartServiceException):
    status_code = 404

    def __init__(self, message: str = "No active cart found"):
        super().__init__(message)


class CartItemNotFound(CartServiceException):
    status_code = 404

    def __init__(self, message: str = "Cart item not found"):
        super().__init__(message)


class CartBusy(CartServiceException):
    status_code = 409

    def __init__(self, message: str = "Cart is busy, please try again"):
        super().__init__(message)


@dataclass
class CartMutation:
    cart: Optional[Cart]
    item: Optional[CartItem] = None
    created: bool = False


@dataclass
class CartSummary:
    cart: Cart
    items: List[CartItem] = field(default_factory=list)
    total_items: int = 0
    total_amount: Decimal = Decimal("0.00")


@dataclass
class CartCount:
    count: int = 0
    total_items: int = 0


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise CartValidationError(
            "Validation failed",
            errors={"quantity": ["The quantity must be an integer of at least 1."]},
        )
    return quantity


class CartService:
    """
    Cart use cases for one authenticated user.

    Every mutating method runs as a single transaction (commit on success,
    rollback on any error) while holding the user's cart lock, and leaves
    cart.total_amount equal to the sum of its items' line totals.
    """

    def __init__(self, db: Session):
        self.db = db
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)

    @contextmanager
    def _cart_scope(self, user_id: int) -> Iterator:
        try:
            with user_cart_lock(user_id):
                with smart_transaction(self.db):
                    yield
        except LockTimeout:
            raise CartBusy()

    def _recompute_total(self, cart: Cart) -> Decimal:
        cart.total_amount = to_money(self.cart_repo.sum_line_totals(cart.id))
        self.db.flush()
        return cart.total_amount

    def add_item(self, user_id: int, product_id: int, quantity: int) -> CartMutation:
        """
        Add `quantity` of a product to the user's active cart, creating the
        cart on first use. A product already in the cart has its quantity
        increased; the stock check then covers the combined quantity.
        """
        _check_quantity(quantity)
        with self._cart_scope(user_id):
            product = self.product_repo.get_by_id(product_id, for_update=True)
            if not product:
                raise CartValidationError(
                    "Validation failed",
                    errors={"product_id": ["The selected product id is invalid."]},
                )
            if not product.is_active:
                log.warning("User %s tried to add inactive product %s", user_id, product_id)
                raise ProductUnavailable(product_id)
            if product.stock < quantity:
                log.warning(
                    "Stock check failed for product %s: stock=%s requested=%s",
                    product_id, product.stock, quantity,
                )
                raise InsufficientStock(product.stock, quantity)

            cart, cart_created = self.cart_repo.get_or_create_active_cart(user_id)
            if cart_created:
                log.info("Created active cart %s for user %s", cart.id, user_id)

            item = self.cart_repo.get_item(cart.id, product_id)
            if item:
                new_quantity = item.quantity + quantity
                if product.stock < new_quantity:
                    log.warning(
                        "Stock check failed for product %s: stock=%s in_cart=%s requested=%s",
                        product_id, product.stock, item.quantity, quantity,
                    )
                    raise InsufficientStock(product.stock, new_quantity, in_cart=item.quantity)
                item.quantity = new_quantity
                item.line_total = to_money(new_quantity * to_money(item.unit_price))
                created = False
            else:
                unit_price = to_money(product.price)
                item = self.cart_repo.add_item(
                    cart,
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    line_total=to_money(quantity * unit_price),
                )
                created = True

            self._recompute_total(cart)
            log.info(
                "%s product %s in cart %s (qty=%s total=%s)",
                "Added" if created else "Updated",
                product_id, cart.id, item.quantity, cart.total_amount,
            )

        return CartMutation(cart=cart, item=item, created=created)

    def get_cart(self, user_id: int) -> Optional[CartSummary]:
        """Return the user's active cart with items, or None when there is none yet."""
        cart = self.cart_repo.get_active_cart(user_id, with_items=True)
        if not cart:
            return None
        items = list(cart.items)
        return CartSummary(
            cart=cart,
            items=items,
            total_items=sum(i.quantity for i in items),
            total_amount=to_money(cart.total_amount),
        )

    def update_item_quantity(self, user_id: int, item_id: int, quantity: int) -> CartMutation:
        """Set an item's quantity outright; stock is checked against the new value only."""
        _check_quantity(quantity)
        with self._cart_scope(user_id):
            item = self.cart_repo.get_item_for_user(item_id, user_id)
            if not item:
                raise CartItemNotFound()

            product = self.product_repo.get_by_id(item.product_id, for_update=True)
            available = product.stock if product else 0
            if available < quantity:
                log.warning(
                    "Stock check failed for item %s: stock=%s requested=%s",
                    item_id, available, quantity,
                )
                raise InsufficientStock(available, quantity)

            item.quantity = quantity
            item.line_total = to_money(quantity * to_money(item.unit_price))

            cart = self.cart_repo.get_by_id(item.cart_id)
            if cart:
                self._recompute_total(cart)
            log.info("Set quantity of cart item %s to %s", item_id, quantity)

        return CartMutation(cart=cart, item=item)

    def remove_item(self, user_id: int, item_id: int) -> CartMutation:
        with self._cart_scope(user_id):
            item = self.cart_repo.get_item_for_user(item_id, user_id)
            if not item:
                raise CartItemNotFound()

            cart_id = item.cart_id
            self.cart_repo.delete_item(item)

            # a vanished cart only skips the total update
            cart = self.cart_repo.get_by_id(cart_id)
            if cart:
                self._recompute_total(cart)
            log.info("Removed cart item %s from cart %s", item_id, cart_id)

        return CartMutation(cart=cart)

    def clear_cart(self, user_id: int) -> CartMutation:
        with self._cart_scope(user_id):
            cart = self.cart_repo.get_active_cart(user_id)
            if not cart:
                raise CartNotFound()
            deleted = self.cart_repo.delete_all_items(cart)
            cart.total_amount = Decimal("0.00")
            self.db.flush()
            log.info("Cleared cart %s (%s items removed)", cart.id, deleted)

        return CartMutation(cart=cart)

    def get_cart_count(self, user_id: int) -> CartCount:
        cart = self.cart_repo.get_active_cart(user_id)
        if not cart:
            return CartCount()
        count, total_items = self.cart_repo.count_items(cart.id)
        return CartCount(count=count, total_items=total_items)
