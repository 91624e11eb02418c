from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    sku: str
    name: str
    description: Optional[str] = None
    price: Decimal
    image: Optional[str] = None
    stock: int
    is_active: bool
