from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from app.models.product import Product


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, product_id: int, for_update: bool = False) -> Optional[Product]:
        """
        Return product by id, active or not. With for_update the row is locked
        until the surrounding transaction ends (ignored by SQLite).
        """
        qry = self.db.query(Product).filter(Product.id == product_id)
        if for_update:
            qry = qry.with_for_update()
        return qry.first()

    def get_by_sku(self, sku: str) -> Optional[Product]:
        return self.db.query(Product).filter(Product.sku == sku).first()

    def create_or_update(
        self,
        sku: str,
        name: str,
        price: Decimal,
        stock: int = 0,
        description: str = None,
        image: str = None,
        is_active: bool = True,
    ) -> Product:
        p = self.get_by_sku(sku)
        if p:
            p.name = name
            p.price = price
            p.stock = stock
            p.description = description
            p.image = image
            p.is_active = is_active
        else:
            p = Product(
                sku=sku,
                name=name,
                price=price,
                stock=stock,
                description=description,
                image=image,
                is_active=is_active,
            )
            self.db.add(p)
        self.db.flush()
        return p
