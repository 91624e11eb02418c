import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.cart import Cart
from app.models.cart_item import CartItem
from app.schemas.cart_schema import (
    AddItemIn,
    CartContentsOut,
    CartCountOut,
    CartItemOut,
    CartOut,
    MAX_ID,
    UpdateItemIn,
)
from app.security import CurrentUser, get_current_user
from app.services.cart_service import CartService, CartServiceException

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])


def _cart_dict(cart: Optional[Cart]):
    if cart is None:
        return None
    return CartOut.model_validate(cart).model_dump(mode="json")


def _item_dict(item: CartItem):
    return CartItemOut.model_validate(item).model_dump(mode="json")


def _ok(data, message: Optional[str] = None, status_code: int = status.HTTP_200_OK):
    body = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def _fail(exc: CartServiceException):
    body = {"success": False, "message": exc.message}
    if exc.errors:
        body["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=body)


def _unexpected(action: str, user: CurrentUser):
    log.exception("Failed to %s for user %s", action, user.id)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": f"Failed to {action}"},
    )


@router.post("/add", summary="Add product to cart", status_code=status.HTTP_201_CREATED)
def add_to_cart(
    payload: AddItemIn,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        result = svc.add_item(user.id, payload.product_id, payload.quantity)
        message = (
            "Product added to cart successfully"
            if result.created
            else "Product quantity updated in cart successfully"
        )
        return _ok(
            {"cart": _cart_dict(result.cart), "cart_item": _item_dict(result.item)},
            message=message,
            status_code=status.HTTP_201_CREATED,
        )
    except CartServiceException as e:
        return _fail(e)
    except Exception:
        return _unexpected("add product to cart", user)


@router.get("", summary="Get cart")
def get_cart(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        summary = svc.get_cart(user.id)
        if summary is None:
            return _ok(CartContentsOut().model_dump(mode="json"), message="Your cart is empty")
        contents = CartContentsOut(
            cart=CartOut.model_validate(summary.cart),
            items=[CartItemOut.model_validate(i) for i in summary.items],
            total_items=summary.total_items,
            total_amount=summary.total_amount,
        )
        return _ok(contents.model_dump(mode="json"))
    except Exception:
        return _unexpected("retrieve cart", user)


@router.get("/count", summary="Get cart item count")
def get_cart_count(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        counts = svc.get_cart_count(user.id)
        return _ok(CartCountOut(count=counts.count, total_items=counts.total_items).model_dump())
    except Exception:
        return _unexpected("get cart count", user)


@router.api_route("/items/{item_id}", methods=["PUT", "PATCH"], summary="Update item quantity")
def update_cart_item(
    payload: UpdateItemIn,
    item_id: int = Path(..., gt=0, le=MAX_ID),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        result = svc.update_item_quantity(user.id, item_id, payload.quantity)
        return _ok(
            {"cart": _cart_dict(result.cart), "cart_item": _item_dict(result.item)},
            message="Cart item updated successfully",
        )
    except CartServiceException as e:
        return _fail(e)
    except Exception:
        return _unexpected("update cart item", user)


@router.delete("/items/{item_id}", summary="Remove item")
def remove_cart_item(
    item_id: int = Path(..., gt=0, le=MAX_ID),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        result = svc.remove_item(user.id, item_id)
        return _ok({"cart": _cart_dict(result.cart)}, message="Item removed from cart successfully")
    except CartServiceException as e:
        return _fail(e)
    except Exception:
        return _unexpected("remove cart item", user)


@router.delete("/clear", summary="Clear cart")
def clear_cart(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        result = svc.clear_cart(user.id)
        return _ok({"cart": _cart_dict(result.cart)}, message="Cart cleared successfully")
    except CartServiceException as e:
        return _fail(e)
    except Exception:
        return _unexpected("clear cart", user)
