from sqlalchemy import Column, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from app.db import Base

CART_STATUS_ACTIVE = "active"
CART_STATUS_CHECKED_OUT = "checked_out"
CART_STATUS_ABANDONED = "abandoned"


class Cart(Base):
    __tablename__ = "carts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    status = Column(
        String(32), nullable=False, default=CART_STATUS_ACTIVE, index=True
    )  # active, checked_out, abandoned
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    def __repr__(self):
        return f"<Cart id={self.id} user_id={self.user_id} status={self.status}>"
