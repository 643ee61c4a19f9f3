from __future__ import annotations

import enum

from ..extensions import db
from ..money import money_str, qty_str
from storepos.time_utils import to_utc_z, utcnow


class SaleStatus(str, enum.Enum):
    # posted -> voided is the only transition
    POSTED = "posted"
    VOIDED = "voided"


class Sale(db.Model):
    """
    Sale header.

    total equals the sum of its items' line_total when posted and is
    never recomputed. Voiding flips status and stamps the void fields;
    the row and its items stay for audit.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable receipt number (e.g., "20260112-0007")
    receipt_no = db.Column(db.String(32), nullable=False, unique=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)
    payment_type = db.Column(db.String(32), nullable=False, default="cash")
    cash_received = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    change = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(
        db.Enum(
            SaleStatus,
            name="sale_status",
            native_enum=False,
            length=16,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=SaleStatus.POSTED,
    )

    # Void audit trail
    void_reason = db.Column(db.String(255), nullable=True)
    voided_at = db.Column(db.DateTime, nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.id",
        cascade="all, delete-orphan",
    )
    creator = db.relationship("User", foreign_keys=[created_by_user_id])

    @property
    def is_voided(self) -> bool:
        return self.status == SaleStatus.VOIDED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_no": self.receipt_no,
            "subtotal": money_str(self.subtotal),
            "total": money_str(self.total),
            "payment_type": self.payment_type,
            "cash_received": money_str(self.cash_received),
            "change": money_str(self.change),
            "status": self.status.value,
            "void_reason": self.void_reason,
            "voided_at": to_utc_z(self.voided_at),
            "items_count": len(self.items),
            "created_by": self.creator.username if self.creator else None,
            "created_at": to_utc_z(self.created_at),
        }


class SaleItem(db.Model):
    """Line item with price and cost snapshots taken at posting time."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    qty = db.Column(db.Numeric(12, 3), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    cost_snapshot = db.Column(db.Numeric(12, 2), nullable=True)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.product.name if self.product else None,
            "qty": qty_str(self.qty),
            "price": money_str(self.price),
            "line_total": money_str(self.line_total),
        }


class ReceiptSequence(db.Model):
    """
    Per-day receipt counter.

    WHY: counting today's sales and adding one hands out the same number
    to concurrent checkouts. The counter row is bumped with an atomic
    UPDATE inside the posting transaction instead.
    """
    __tablename__ = "receipt_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sequence_date = db.Column(db.Date, nullable=False, unique=True)
    last_number = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
