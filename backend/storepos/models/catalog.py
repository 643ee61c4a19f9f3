from __future__ import annotations

from ..extensions import db
from ..money import money_str, qty_str
from storepos.time_utils import to_utc_z, utcnow


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Product master data.

    SKU and barcode are unique across the whole catalog, including
    soft-deleted rows, so a restored product can never collide.

    SOFT DELETE: deleted_at hides the product from the catalog and from
    checkout. Rows are never hard-deleted because sale items and stock
    movements reference them.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active_deleted", "is_active", "deleted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    sku = db.Column(db.String(100), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(120), nullable=True, unique=True)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    cost = db.Column(db.Numeric(12, 2), nullable=True)
    uom = db.Column(db.String(40), nullable=False, default="each")

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    deleted_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    stock = db.relationship("InventoryStock", uselist=False, back_populates="product")

    @property
    def is_sellable(self) -> bool:
        return self.is_active and self.deleted_at is None

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "barcode": self.barcode,
            "price": money_str(self.price),
            "cost": money_str(self.cost),
            "uom": self.uom,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "is_active": self.is_active,
            "qty_on_hand": qty_str(self.stock.qty_on_hand if self.stock else 0),
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
