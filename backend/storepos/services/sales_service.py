"""
Sales Service - cart posting and voids

WHY: A sale is one atomic unit: price snapshots, stock check, receipt
number, header, items, and the matching stock movements either all commit
or none do.

Posting order (all inside one write transaction):
1. Resolve cart products (active, not deleted).
2. Lock every involved stock row (product-id order) and snapshot price/cost.
3. Check availability per distinct product, then payment.
4. Allocate the receipt number, write Sale + SaleItems + sale movements.

Voiding is a compensating transaction: void movements restore stock, the
sale is flipped to voided, and nothing written by the posting is changed.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..errors import (
    AlreadyVoidedError,
    AuthorizationError,
    ConcurrencyConflict,
    InsufficientPaymentError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import InventoryStock, MovementType, Product, Sale, SaleItem, SaleStatus
from ..money import ZERO, money_str, parse_money, parse_qty, quantize_money, qty_str
from ..permissions import ROLE_ADMIN, ActorContext
from storepos.time_utils import store_day_bounds, to_store_date, to_utc_z, utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
from .receipt_service import next_receipt_number
from .stock_ledger import apply_movement, get_quantity

DEFAULT_PAYMENT_TYPE = "cash"
PAYMENT_TYPE_MAX = 32
VOID_REASON_MAX = 255
DEFAULT_VOID_NOTE = "Sale voided"


def _parse_cart(items) -> list[tuple[int, Decimal]]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    cart = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = item.get("product_id")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError(f"items[{index}].product_id must be an integer")
        qty = parse_qty(f"items[{index}].qty", item.get("qty"))
        if qty <= 0:
            raise ValidationError(f"items[{index}].qty must be > 0")
        cart.append((product_id, qty))
    return cart


def _parse_payment_type(payment_type) -> str:
    if payment_type is None or (isinstance(payment_type, str) and not payment_type.strip()):
        return DEFAULT_PAYMENT_TYPE
    if not isinstance(payment_type, str):
        raise ValidationError("payment_type must be a string")
    payment_type = payment_type.strip()
    if len(payment_type) > PAYMENT_TYPE_MAX:
        raise ValidationError(f"payment_type exceeds max length {PAYMENT_TYPE_MAX}")
    return payment_type


def _load_sellable_products(product_ids: set[int]) -> dict[int, Product]:
    products = (
        db.session.query(Product)
        .filter(Product.id.in_(product_ids))
        .all()
    )
    found = {p.id: p for p in products if p.is_sellable}
    missing = sorted(product_ids - set(found))
    if missing:
        raise ValidationError(
            "One or more products are unavailable.",
            details={"product_ids": missing},
        )
    return found


def _lock_stock_rows(product_ids) -> None:
    # Fixed order so two carts sharing products can't deadlock
    for product_id in sorted(product_ids):
        lock_for_update(db.session.query(InventoryStock).filter_by(product_id=product_id)).first()


def _check_availability(requested: dict[int, Decimal], products: dict[int, Product]) -> None:
    for product_id, qty in requested.items():
        available = get_quantity(product_id)
        if available < qty:
            product = products[product_id]
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}.",
                details={
                    "product_id": product_id,
                    "product": product.name,
                    "requested_qty": qty_str(qty),
                    "available_qty": qty_str(available),
                },
            )


def post_sale(
    *,
    items,
    cash_received,
    actor: ActorContext,
    payment_type: str | None = None,
) -> Sale:
    """
    Validate a cart and post it as a sale.

    Raises ValidationError (bad input, unavailable product),
    InsufficientStockError, InsufficientPaymentError, or RetryableError when
    lock contention / receipt collisions outlast the retry budget.
    """
    cart = _parse_cart(items)
    cash = parse_money("cash_received", cash_received)
    payment_type = _parse_payment_type(payment_type)

    requested: "OrderedDict[int, Decimal]" = OrderedDict()
    for product_id, qty in cart:
        requested[product_id] = requested.get(product_id, ZERO) + qty

    def _op() -> Sale:
        begin_write()

        products = _load_sellable_products(set(requested))
        _lock_stock_rows(requested)

        lines = []
        for product_id, qty in cart:
            product = products[product_id]
            price = Decimal(product.price)
            lines.append({
                "product": product,
                "qty": qty,
                "price": price,
                "cost_snapshot": product.cost,
                "line_total": quantize_money(qty * price),
            })

        subtotal = sum((line["line_total"] for line in lines), ZERO)
        total = subtotal

        _check_availability(requested, products)

        if cash < total:
            raise InsufficientPaymentError(
                "Cash received is below the total.",
                details={"total": money_str(total), "cash_received": money_str(cash)},
            )

        now = utcnow()
        sale = Sale(
            receipt_no=next_receipt_number(to_store_date(now)),
            subtotal=subtotal,
            total=total,
            payment_type=payment_type,
            cash_received=cash,
            change=cash - total,
            status=SaleStatus.POSTED,
            created_by_user_id=actor.user_id,
            created_at=now,
        )
        db.session.add(sale)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflict(f"receipt number {sale.receipt_no} already used") from exc

        for line in lines:
            product = line["product"]
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                qty=line["qty"],
                price=line["price"],
                cost_snapshot=line["cost_snapshot"],
                line_total=line["line_total"],
            ))
            apply_movement(
                product_id=product.id,
                movement_type=MovementType.SALE,
                qty_delta=-line["qty"],
                unit_cost=line["cost_snapshot"],
                ref_type="sale",
                ref_id=sale.id,
                actor=actor,
                note="POS sale",
            )

        db.session.commit()
        current_app.logger.info(
            "Posted sale %s total=%s items=%d by user %s",
            sale.receipt_no, total, len(lines), actor.user_id,
        )
        return sale

    return run_with_retry(_op)


def void_sale(*, sale_id: int, actor: ActorContext, reason: str | None = None) -> Sale:
    """
    Void a posted sale and restore its stock.

    The original sale, its items, and its sale movements stay untouched;
    one void movement per item brings each product's net delta back to zero.
    """
    if reason is not None:
        if not isinstance(reason, str):
            raise ValidationError("reason must be a string")
        reason = reason.strip() or None
    if reason is not None and len(reason) > VOID_REASON_MAX:
        raise ValidationError(f"reason exceeds max length {VOID_REASON_MAX}")

    def _op() -> Sale:
        begin_write()

        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found", details={"sale_id": sale_id})

        if sale.is_voided:
            raise AlreadyVoidedError("Sale already voided.", details={"sale_id": sale_id})

        _lock_stock_rows({item.product_id for item in sale.items})

        for item in sale.items:
            apply_movement(
                product_id=item.product_id,
                movement_type=MovementType.VOID,
                qty_delta=Decimal(item.qty),
                unit_cost=item.cost_snapshot,
                ref_type="sale_void",
                ref_id=sale.id,
                actor=actor,
                note=reason or DEFAULT_VOID_NOTE,
            )

        sale.status = SaleStatus.VOIDED
        sale.void_reason = reason
        sale.voided_at = utcnow()
        sale.voided_by_user_id = actor.user_id

        db.session.commit()
        current_app.logger.info("Voided sale %s by user %s", sale.receipt_no, actor.user_id)
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = (
        db.session.query(Sale)
        .options(selectinload(Sale.items).selectinload(SaleItem.product))
        .filter_by(id=sale_id)
        .first()
    )
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def receipt_payload(sale: Sale) -> dict:
    """Everything needed to render or reprint a receipt."""
    return {
        "sale_id": sale.id,
        "receipt_no": sale.receipt_no,
        "status": sale.status.value,
        "payment_type": sale.payment_type,
        "subtotal": money_str(sale.subtotal),
        "total": money_str(sale.total),
        "cash_received": money_str(sale.cash_received),
        "change": money_str(sale.change),
        "created_at": to_utc_z(sale.created_at),
        "void_reason": sale.void_reason,
        "voided_at": to_utc_z(sale.voided_at),
        "items": [
            {
                "name": item.product.name if item.product else None,
                "qty": qty_str(item.qty),
                "price": money_str(item.price),
                "line_total": money_str(item.line_total),
            }
            for item in sale.items
        ],
    }


def get_receipt(sale_id: int, actor: ActorContext | None = None) -> dict:
    """
    Receipt for one sale. With an actor, only an admin or the cashier who
    rang the sale up may see it.
    """
    sale = get_sale(sale_id)
    if actor is not None and actor.role != ROLE_ADMIN and sale.created_by_user_id != actor.user_id:
        raise AuthorizationError(
            "Only an admin or the cashier who posted this sale can view its receipt.",
            details={"sale_id": sale_id},
        )
    return receipt_payload(sale)


def list_sales(*, day: date | None = None, limit: int = 50) -> list[dict]:
    """Most recent sales first, optionally restricted to one store-local day."""
    query = db.session.query(Sale).options(
        selectinload(Sale.items),
        selectinload(Sale.creator),
    )
    if day is not None:
        start, end = store_day_bounds(day)
        query = query.filter(Sale.created_at >= start, Sale.created_at < end)

    sales = query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
    return [sale.to_dict() for sale in sales]
