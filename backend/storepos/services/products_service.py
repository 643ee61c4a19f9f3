# backend/storepos/services/products_service.py
"""
Products Service

Catalog CRUD with soft delete. Opening stock given at creation is posted
through the stock ledger as a receive movement, so every unit on hand is
explained by a movement.
"""
from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, MovementType, Product
from ..permissions import ActorContext
from storepos.time_utils import utcnow
from .concurrency import begin_write, run_with_retry
from .stock_ledger import apply_movement, ensure_stock_row

PRODUCT_STATUSES = {"", "active", "inactive", "deleted"}


def get_product(product_id: int, *, include_deleted: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or (product.deleted_at is not None and not include_deleted):
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def get_product_by_barcode(barcode: str) -> Product:
    product = (
        db.session.query(Product)
        .filter(Product.barcode == barcode, Product.deleted_at.is_(None))
        .first()
    )
    if product is None:
        raise NotFoundError("Product not found", details={"barcode": barcode})
    return product


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    status: str | None = None,
    active_only: bool = False,
) -> list[Product]:
    """
    Catalog listing ordered by name.

    status: "active", "inactive", "deleted" (soft-deleted only), or empty
    for every non-deleted product.
    """
    status = (status or "").strip().lower()
    if status not in PRODUCT_STATUSES:
        raise ValidationError("status must be one of: active, inactive, deleted")

    query = db.session.query(Product).options(
        selectinload(Product.stock),
        selectinload(Product.category),
    )

    if status == "deleted":
        query = query.filter(Product.deleted_at.isnot(None))
    else:
        query = query.filter(Product.deleted_at.is_(None))

    if category_id:
        query = query.filter(Product.category_id == category_id)
    if active_only or status == "active":
        query = query.filter(Product.is_active.is_(True))
    if status == "inactive":
        query = query.filter(Product.is_active.is_(False))

    search = (search or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.barcode.ilike(pattern),
        ))

    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def list_categories() -> list[Category]:
    return (
        db.session.query(Category)
        .filter(Category.is_active.is_(True))
        .order_by(Category.name.asc())
        .all()
    )


def _check_unique(patch: dict, *, exclude_id: int | None = None) -> None:
    for field in ("sku", "barcode"):
        value = patch.get(field)
        if value is None:
            continue
        query = db.session.query(Product.id).filter(getattr(Product, field) == value)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(f"{field} already exists.", details={field: value})


def _check_category(patch: dict) -> None:
    category_id = patch.get("category_id")
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise ValidationError("category not found", details={"category_id": category_id})


def create_product(*, patch: dict, actor: ActorContext, opening_qty=None) -> Product:
    """
    Create a product from a validated patch.

    opening_qty (if non-zero) becomes a receive movement noted "Opening stock";
    otherwise the product starts with a zero stock row.
    """
    def _op() -> Product:
        begin_write()
        _check_unique(patch)
        _check_category(patch)

        product = Product(**patch)
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("sku or barcode already exists.") from exc

        if opening_qty is not None and opening_qty != 0:
            # receive accepts only positive quantities; a negative opening count is a correction
            apply_movement(
                product_id=product.id,
                movement_type=MovementType.RECEIVE if opening_qty > 0 else MovementType.ADJUST,
                qty_delta=opening_qty,
                unit_cost=product.cost,
                ref_type="opening",
                actor=actor,
                note="Opening stock",
            )
        else:
            ensure_stock_row(product.id)

        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(*, product_id: int, patch: dict) -> Product:
    def _op() -> Product:
        begin_write()
        product = get_product(product_id)
        _check_unique(patch, exclude_id=product.id)
        _check_category(patch)

        for key, value in patch.items():
            setattr(product, key, value)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("sku or barcode already exists.") from exc

        db.session.commit()
        return product

    return run_with_retry(_op)


def delete_product(*, product_id: int) -> Product:
    """Soft delete: hide from catalog and checkout, keep history."""
    def _op() -> Product:
        product = get_product(product_id)
        product.deleted_at = utcnow()
        db.session.commit()
        return product

    return run_with_retry(_op)


def restore_product(*, product_id: int) -> Product:
    def _op() -> Product:
        product = get_product(product_id, include_deleted=True)
        product.deleted_at = None
        db.session.commit()
        return product

    return run_with_retry(_op)
