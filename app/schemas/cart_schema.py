from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.product_schema import ProductOut

# largest id a signed 64-bit integer column can hold
MAX_ID = 2**63 - 1


class AddItemIn(BaseModel):
    product_id: int = Field(..., gt=0, le=MAX_ID)
    quantity: int = Field(..., ge=1, le=MAX_ID)


class UpdateItemIn(BaseModel):
    quantity: int = Field(..., ge=1, le=MAX_ID)


class CartOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: int
    status: str
    total_amount: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CartItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    cart_id: int
    product_id: int
    user_id: int
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    product: Optional[ProductOut] = None


class CartCountOut(BaseModel):
    count: int
    total_items: int


class CartContentsOut(BaseModel):
    cart: Optional[CartOut] = None
    items: List[CartItemOut] = []
    total_items: int = 0
    total_amount: Decimal = Decimal("0.00")
