# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import InventoryStock, Product, Sale, SaleItem, SaleStatus
from ..money import ZERO, money_str
from storepos.time_utils import store_day_bounds, store_today

TOP_ITEMS_LIMIT = 3
LOW_STOCK_ITEMS_LIMIT = 3


def _low_stock_query(threshold):
    # Soft-deleted products no longer count as stock to reorder
    return (
        db.session.query(InventoryStock)
        .join(Product, Product.id == InventoryStock.product_id)
        .filter(
            InventoryStock.qty_on_hand <= threshold,
            Product.deleted_at.is_(None),
        )
    )


def daily_summary(day: date | None = None) -> dict:
    """
    Read-only rollup for one store-local day.

    - sales_today / transactions: posted sales created that day
    - top_items: product names with the highest summed qty sold that day
      (posted sales only), ties in product-id order
    - low_stock / low_stock_items: stock rows at or below the threshold,
      lowest quantity first
    """
    day = day or store_today()
    start, end = store_day_bounds(day)
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)

    posted_today = [
        Sale.status == SaleStatus.POSTED,
        Sale.created_at >= start,
        Sale.created_at < end,
    ]

    total_sales, transactions = db.session.query(
        func.coalesce(func.sum(Sale.total), 0),
        func.count(Sale.id),
    ).filter(*posted_today).one()

    qty_sold = func.sum(SaleItem.qty).label("qty_sold")
    top_rows = (
        db.session.query(SaleItem.product_id, qty_sold)
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(*posted_today)
        .group_by(SaleItem.product_id)
        .order_by(qty_sold.desc(), SaleItem.product_id.asc())
        .limit(TOP_ITEMS_LIMIT)
        .all()
    )
    names = dict(
        db.session.query(Product.id, Product.name)
        .filter(Product.id.in_([row.product_id for row in top_rows]))
        .all()
    ) if top_rows else {}
    # A product that vanished is reported as absent, not as an error
    top_items = [names[row.product_id] for row in top_rows if names.get(row.product_id)]

    low_stock_count = _low_stock_query(threshold).count()
    low_stock_items = [
        stock.product.name
        for stock in _low_stock_query(threshold)
        .order_by(InventoryStock.qty_on_hand.asc(), InventoryStock.product_id.asc())
        .limit(LOW_STOCK_ITEMS_LIMIT)
        .all()
    ]

    return {
        "date": day.isoformat(),
        "sales_today": money_str(Decimal(str(total_sales or ZERO))),
        "transactions": int(transactions or 0),
        "low_stock": low_stock_count,
        "top_items": top_items,
        "low_stock_items": low_stock_items,
    }
