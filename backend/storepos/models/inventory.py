from __future__ import annotations

import enum

from ..extensions import db
from ..money import money_str, qty_str
from storepos.time_utils import to_utc_z, utcnow


class MovementType(str, enum.Enum):
    """
    Closed set of stock movement causes.

    The sign rule is part of the type: receive and void only add stock,
    sale only removes it, adjust may go either way but never by zero.
    """
    RECEIVE = "receive"
    ADJUST = "adjust"
    SALE = "sale"
    VOID = "void"

    def accepts(self, qty_delta) -> bool:
        if self is MovementType.RECEIVE or self is MovementType.VOID:
            return qty_delta > 0
        if self is MovementType.SALE:
            return qty_delta < 0
        return qty_delta != 0


class InventoryStock(db.Model):
    """
    Materialized quantity on hand, one row per product.

    Only the stock ledger service writes qty_on_hand, and always in the
    same transaction as the StockMovement that explains the change.
    No CHECK constraint: adjustments may legitimately drive it negative.
    """
    __tablename__ = "inventory_stocks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True)
    qty_on_hand = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", back_populates="stock")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "qty_on_hand": qty_str(self.qty_on_hand),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    INVARIANT: for every product, SUM(qty) over its movements equals
    InventoryStock.qty_on_hand. Rows are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_type", "product_id", "type"),
        db.Index("ix_stock_movements_ref", "ref_type", "ref_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(
        db.Enum(
            MovementType,
            name="movement_type",
            native_enum=False,
            length=16,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )

    # Signed delta applied to qty_on_hand
    qty = db.Column(db.Numeric(12, 3), nullable=False)
    unit_cost = db.Column(db.Numeric(12, 2), nullable=True)

    ref_type = db.Column(db.String(32), nullable=True)
    ref_id = db.Column(db.Integer, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    note = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")
    creator = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.name if self.product else None,
            "type": self.type.value,
            "qty": qty_str(self.qty),
            "unit_cost": money_str(self.unit_cost),
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "created_by": self.creator.username if self.creator else None,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
