# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrencyConflict, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryStock, MovementType, Product, StockMovement
from ..money import ZERO, parse_money, parse_qty, quantize_qty, qty_str
from ..permissions import ActorContext
from storepos.time_utils import store_day_bounds, to_utc_z
from .concurrency import begin_write, lock_for_update, run_with_retry

"""
Stock Ledger Invariants (authoritative)

- StockMovement is append-only: no updates, no deletes.
- InventoryStock.qty_on_hand is a materialized counter; it is only changed
  by apply_movement(), in the same transaction as the movement row that
  explains the change. Reads never replay the ledger.
- For every product: qty_on_hand == SUM(StockMovement.qty).
- apply_movement() never rejects a negative result. Callers that must not
  oversell (sale posting) check availability under lock beforehand.
- apply_movement() never commits; it joins the caller's unit of work.
"""

ADJUST_REASON_MAX = 120


def get_quantity(product_id: int) -> Decimal:
    """Current qty_on_hand; 0 when the product has no stock row yet."""
    qty = (
        db.session.query(InventoryStock.qty_on_hand)
        .filter(InventoryStock.product_id == product_id)
        .scalar()
    )
    return Decimal(qty) if qty is not None else ZERO


def ensure_stock_row(product_id: int, *, lock: bool = False) -> InventoryStock:
    """
    Fetch the product's stock row, creating it with qty 0 when absent.

    A concurrent creator wins the unique(product_id) race; the loser raises
    ConcurrencyConflict so the whole unit of work is retried.
    """
    query = db.session.query(InventoryStock).filter_by(product_id=product_id)
    if lock:
        query = lock_for_update(query)
    stock = query.first()
    if stock is not None:
        return stock

    stock = InventoryStock(product_id=product_id, qty_on_hand=ZERO)
    db.session.add(stock)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConcurrencyConflict(f"stock row for product {product_id} created concurrently") from exc
    return stock


def apply_movement(
    *,
    product_id: int,
    movement_type: MovementType,
    qty_delta: Decimal,
    actor: ActorContext,
    unit_cost: Decimal | None = None,
    ref_type: str | None = None,
    ref_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """
    Add qty_delta to the product's stock and append the matching movement.

    Must run inside the caller's transaction; flushes but does not commit.
    """
    movement_type = MovementType(movement_type)
    if not movement_type.accepts(qty_delta):
        raise ValidationError(
            f"quantity {qty_delta} is not valid for a {movement_type.value} movement",
            details={"type": movement_type.value, "qty": qty_str(qty_delta)},
        )

    stock = ensure_stock_row(product_id)
    # Rendered as qty_on_hand = qty_on_hand + :delta
    stock.qty_on_hand = InventoryStock.qty_on_hand + qty_delta

    movement = StockMovement(
        product_id=product_id,
        type=movement_type,
        qty=qty_delta,
        unit_cost=unit_cost,
        ref_type=ref_type,
        ref_id=ref_id,
        created_by_user_id=actor.user_id,
        note=note,
    )
    db.session.add(movement)
    db.session.flush()

    current_app.logger.debug(
        "Stock movement %s product=%s qty=%s ref=%s:%s",
        movement_type.value, product_id, qty_delta, ref_type, ref_id,
    )
    return movement


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or product.deleted_at is not None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def receive_stock(
    *,
    product_id: int,
    qty,
    actor: ActorContext,
    unit_cost=None,
    note: str | None = None,
) -> StockMovement:
    """Record incoming stock. qty must be > 0; unit_cost, if given, >= 0."""
    qty = parse_qty("qty", qty)
    if qty <= 0:
        raise ValidationError("qty must be > 0 for receive")
    if unit_cost is not None:
        unit_cost = parse_money("unit_cost", unit_cost)

    def _op():
        begin_write()
        _require_product(product_id)
        movement = apply_movement(
            product_id=product_id,
            movement_type=MovementType.RECEIVE,
            qty_delta=qty,
            unit_cost=unit_cost,
            ref_type="receive",
            actor=actor,
            note=note,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def adjust_stock(
    *,
    product_id: int,
    qty,
    actor: ActorContext,
    reason: str | None = None,
    note: str | None = None,
) -> StockMovement:
    """
    Correct stock by a signed, non-zero qty.

    No floor: a count correction may leave qty_on_hand negative.
    """
    qty = parse_qty("qty", qty)
    if qty == 0:
        raise ValidationError("qty must be non-zero for adjust")
    if reason is not None and len(reason) > ADJUST_REASON_MAX:
        raise ValidationError(f"reason exceeds max length {ADJUST_REASON_MAX}")

    if reason:
        stored_note = f"{reason}: {note or ''}".strip()
    else:
        stored_note = note

    def _op():
        begin_write()
        _require_product(product_id)
        movement = apply_movement(
            product_id=product_id,
            movement_type=MovementType.ADJUST,
            qty_delta=qty,
            ref_type="adjust",
            actor=actor,
            note=stored_note,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def get_stock_summary(product_id: int) -> dict:
    product = _require_product(product_id)
    row = db.session.query(
        func.count(StockMovement.id),
        func.max(StockMovement.created_at),
    ).filter(StockMovement.product_id == product_id).one()

    return {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "qty_on_hand": qty_str(get_quantity(product_id)),
        "movement_count": int(row[0] or 0),
        "last_movement_at": to_utc_z(row[1]),
    }


def list_movements(
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    day: date | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """Newest-first page of the ledger, optionally filtered."""
    page = max(page or 1, 1)
    per_page = min(100, max(10, per_page or 20))

    query = db.session.query(StockMovement)
    if product_id:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type:
        try:
            query = query.filter(StockMovement.type == MovementType(movement_type))
        except ValueError:
            raise ValidationError(
                "type must be one of: " + ", ".join(m.value for m in MovementType)
            )
    if day is not None:
        start, end = store_day_bounds(day)
        query = query.filter(StockMovement.created_at >= start, StockMovement.created_at < end)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page

    movements = (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return {
        "items": [m.to_dict() for m in movements],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
        },
    }


def reconcile_stock(*, fix: bool = False) -> list[dict]:
    """
    Compare every stock counter with the sum of its movements.

    Returns one entry per drifting product. With fix=True the counter is
    reset to the ledger sum; the ledger itself is never touched.
    """
    ledger_sums = dict(
        db.session.query(StockMovement.product_id, func.coalesce(func.sum(StockMovement.qty), 0))
        .group_by(StockMovement.product_id)
        .all()
    )

    drift = []
    for stock in db.session.query(InventoryStock).order_by(InventoryStock.product_id).all():
        expected = quantize_qty(Decimal(str(ledger_sums.pop(stock.product_id, 0) or 0)))
        actual = quantize_qty(Decimal(str(stock.qty_on_hand)))
        if expected != actual:
            drift.append({
                "product_id": stock.product_id,
                "qty_on_hand": qty_str(actual),
                "ledger_qty": qty_str(expected),
            })
            if fix:
                stock.qty_on_hand = expected

    # Movements without a stock row at all
    for product_id, total in ledger_sums.items():
        expected = quantize_qty(Decimal(str(total or 0)))
        if expected == 0:
            continue
        drift.append({
            "product_id": product_id,
            "qty_on_hand": None,
            "ledger_qty": qty_str(expected),
        })
        if fix:
            db.session.add(InventoryStock(product_id=product_id, qty_on_hand=expected))

    if fix and drift:
        db.session.commit()
        current_app.logger.warning("Reconciled %d stock counters against the ledger", len(drift))
    return drift
