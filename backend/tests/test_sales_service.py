"""
Sale posting tests.

Verifies:
- Totals, change, and line totals are computed from price snapshots
- Stock check is all-or-nothing per cart (duplicate lines aggregate)
- Payment shortfalls and unavailable products post nothing
- Receipt numbers are unique per store-local day
"""

import re
from datetime import date
from decimal import Decimal

import pytest

from storepos.errors import InsufficientPaymentError, InsufficientStockError, ValidationError
from storepos.extensions import db
from storepos.models import MovementType, Sale, SaleItem, SaleStatus, StockMovement
from storepos.services import products_service, sales_service, stock_ledger
from storepos.services.receipt_service import format_receipt_no, next_receipt_number
from storepos.time_utils import store_today


def sale_count() -> int:
    return db.session.query(Sale).count()


def sale_movements() -> list[StockMovement]:
    return db.session.query(StockMovement).filter_by(type=MovementType.SALE).all()


# =============================================================================
# HAPPY PATH
# =============================================================================


class TestPostSale:

    def test_round_trip(self, product, cashier_actor):
        sale = sales_service.post_sale(
            items=[{"product_id": product.id, "qty": 2}],
            cash_received="120.00",
            actor=cashier_actor,
        )

        assert sale.status == SaleStatus.POSTED
        assert sale.subtotal == Decimal("100.00")
        assert sale.total == Decimal("100.00")
        assert sale.cash_received == Decimal("120.00")
        assert sale.change == Decimal("20.00")
        assert sale.payment_type == "cash"
        assert sale.created_by_user_id == cashier_actor.user_id
        assert stock_ledger.get_quantity(product.id) == Decimal("8")

        (item,) = sale.items
        assert item.qty == Decimal("2")
        assert item.price == Decimal("50.00")
        assert item.cost_snapshot == Decimal("30.00")
        assert item.line_total == Decimal("100.00")

        (movement,) = sale_movements()
        assert movement.qty == Decimal("-2")
        assert movement.ref_type == "sale"
        assert movement.ref_id == sale.id
        assert movement.unit_cost == Decimal("30.00")

    def test_exact_cash_gives_zero_change(self, product, cashier_actor):
        sale = sales_service.post_sale(
            items=[{"product_id": product.id, "qty": 2}],
            cash_received="100.00",
            actor=cashier_actor,
        )
        assert sale.change == Decimal("0.00")

    def test_total_is_sum_of_line_totals(self, make_product, cashier_actor):
        a = make_product(name="Coffee", price="19.99")
        b = make_product(name="Rice (kg)", price="80.00", uom="kg")

        sale = sales_service.post_sale(
            items=[
                {"product_id": a.id, "qty": "1.5"},
                {"product_id": b.id, "qty": "0.333"},
                {"product_id": a.id, "qty": 1},
            ],
            cash_received="200",
            actor=cashier_actor,
        )

        # 19.99 * 1.5 = 29.985 rounds half-up to 29.99; 80 * 0.333 = 26.64
        assert [item.line_total for item in sale.items] == [
            Decimal("29.99"), Decimal("26.64"), Decimal("19.99"),
        ]
        assert sale.total == sum(item.line_total for item in sale.items)
        assert sale.total == Decimal("76.62")
        assert len(sale_movements()) == 3

    def test_price_snapshot_survives_price_change(self, product, cashier_actor):
        sale = sales_service.post_sale(
            items=[{"product_id": product.id, "qty": 1}],
            cash_received="50",
            actor=cashier_actor,
        )
        products_service.update_product(product_id=product.id, patch={"price": Decimal("75.00")})

        receipt = sales_service.get_receipt(sale.id)
        assert receipt["items"][0]["price"] == "50.00"
        assert receipt["total"] == "50.00"

    def test_payment_type_passed_through(self, product, cashier_actor):
        sale = sales_service.post_sale(
            items=[{"product_id": product.id, "qty": 1}],
            cash_received="50",
            payment_type="card",
            actor=cashier_actor,
        )
        assert sale.payment_type == "card"

    def test_can_sell_entire_stock(self, product, cashier_actor):
        sales_service.post_sale(
            items=[{"product_id": product.id, "qty": 10}],
            cash_received="500",
            actor=cashier_actor,
        )
        assert stock_ledger.get_quantity(product.id) == Decimal("0")


# =============================================================================
# REJECTIONS: nothing is written
# =============================================================================


class TestPostSaleRejections:

    def test_one_cent_short(self, product, cashier_actor):
        with pytest.raises(InsufficientPaymentError):
            sales_service.post_sale(
                items=[{"product_id": product.id, "qty": 2}],
                cash_received="99.99",
                actor=cashier_actor,
            )

        assert sale_count() == 0
        assert sale_movements() == []
        assert stock_ledger.get_quantity(product.id) == Decimal("10")

    def test_fractional_cent_cash_is_not_rounded_up(self, product, cashier_actor):
        with pytest.raises(ValidationError, match="2 decimal places"):
            sales_service.post_sale(
                items=[{"product_id": product.id, "qty": 2}],
                cash_received="99.995",
                actor=cashier_actor,
            )

        assert sale_count() == 0
        assert stock_ledger.get_quantity(product.id) == Decimal("10")

    def test_insufficient_stock(self, product, cashier_actor):
        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.post_sale(
                items=[{"product_id": product.id, "qty": 11}],
                cash_received="1000",
                actor=cashier_actor,
            )

        assert exc_info.value.details["available_qty"] == "10.000"
        assert exc_info.value.details["requested_qty"] == "11.000"
        assert "Widget" in exc_info.value.message
        assert sale_count() == 0
        assert stock_ledger.get_quantity(product.id) == Decimal("10")

    def test_duplicate_lines_are_checked_together(self, product, cashier_actor):
        with pytest.raises(InsufficientStockError):
            sales_service.post_sale(
                items=[
                    {"product_id": product.id, "qty": 6},
                    {"product_id": product.id, "qty": 6},
                ],
                cash_received="1000",
                actor=cashier_actor,
            )
        assert stock_ledger.get_quantity(product.id) == Decimal("10")

    def test_one_bad_line_rejects_whole_cart(self, make_product, cashier_actor):
        plenty = make_product(name="Plenty", qty="100")
        scarce = make_product(name="Scarce", qty="1")

        with pytest.raises(InsufficientStockError):
            sales_service.post_sale(
                items=[
                    {"product_id": plenty.id, "qty": 5},
                    {"product_id": scarce.id, "qty": 2},
                ],
                cash_received="1000",
                actor=cashier_actor,
            )

        assert stock_ledger.get_quantity(plenty.id) == Decimal("100")
        assert db.session.query(SaleItem).count() == 0

    def test_inactive_product_unavailable(self, make_product, cashier_actor):
        inactive = make_product(is_active=False)
        with pytest.raises(ValidationError) as exc_info:
            sales_service.post_sale(
                items=[{"product_id": inactive.id, "qty": 1}],
                cash_received="100",
                actor=cashier_actor,
            )
        assert exc_info.value.details == {"product_ids": [inactive.id]}

    def test_deleted_product_unavailable(self, product, cashier_actor):
        products_service.delete_product(product_id=product.id)
        with pytest.raises(ValidationError):
            sales_service.post_sale(
                items=[{"product_id": product.id, "qty": 1}],
                cash_received="100",
                actor=cashier_actor,
            )
        assert sale_count() == 0

    def test_unknown_product(self, cashier_actor):
        with pytest.raises(ValidationError):
            sales_service.post_sale(
                items=[{"product_id": 4242, "qty": 1}],
                cash_received="100",
                actor=cashier_actor,
            )

    @pytest.mark.parametrize(
        "items",
        [
            [],
            None,
            "not-a-list",
            [{"qty": 1}],
            [{"product_id": "1", "qty": 1}],
            [{"product_id": 1, "qty": 0}],
            [{"product_id": 1, "qty": -2}],
            [{"product_id": 1, "qty": "0.0001"}],
            [{"product_id": 1}],
        ],
    )
    def test_malformed_cart(self, product, cashier_actor, items):
        with pytest.raises(ValidationError):
            sales_service.post_sale(items=items, cash_received="100", actor=cashier_actor)

    @pytest.mark.parametrize("cash", ["-1", "abc", None])
    def test_malformed_cash(self, product, cashier_actor, cash):
        with pytest.raises(ValidationError):
            sales_service.post_sale(
                items=[{"product_id": product.id, "qty": 1}],
                cash_received=cash,
                actor=cashier_actor,
            )


# =============================================================================
# RECEIPTS / LISTING
# =============================================================================


class TestReceiptNumbers:

    def test_format(self):
        assert format_receipt_no(date(2026, 1, 12), 7) == "20260112-0007"
        assert format_receipt_no(date(2026, 1, 12), 12345) == "20260112-12345"

    def test_sequential_per_day(self, product, cashier_actor):
        receipts = [
            sales_service.post_sale(
                items=[{"product_id": product.id, "qty": 1}],
                cash_received="50",
                actor=cashier_actor,
            ).receipt_no
            for _ in range(3)
        ]

        prefix = store_today().strftime("%Y%m%d")
        assert receipts == [f"{prefix}-0001", f"{prefix}-0002", f"{prefix}-0003"]
        assert all(re.fullmatch(r"\d{8}-\d{4,}", r) for r in receipts)

    def test_counter_is_separate_per_day(self):
        assert next_receipt_number(date(2026, 3, 1)) == "20260301-0001"
        assert next_receipt_number(date(2026, 3, 2)) == "20260302-0001"
        assert next_receipt_number(date(2026, 3, 1)) == "20260301-0002"
        db.session.rollback()

    def test_failed_posting_does_not_consume_a_number(self, product, cashier_actor):
        with pytest.raises(InsufficientPaymentError):
            sales_service.post_sale(
                items=[{"product_id": product.id, "qty": 1}],
                cash_received="1",
                actor=cashier_actor,
            )
        sale = sales_service.post_sale(
            items=[{"product_id": product.id, "qty": 1}],
            cash_received="50",
            actor=cashier_actor,
        )
        assert sale.receipt_no.endswith("-0001")


class TestListSales:

    def test_newest_first(self, product, cashier_actor):
        first = sales_service.post_sale(
            items=[{"product_id": product.id, "qty": 1}], cash_received="50", actor=cashier_actor,
        )
        second = sales_service.post_sale(
            items=[{"product_id": product.id, "qty": 2}], cash_received="100", actor=cashier_actor,
        )

        listed = sales_service.list_sales()
        assert [s["id"] for s in listed] == [second.id, first.id]
        assert listed[0]["items_count"] == 1
        assert listed[0]["created_by"] == "cashier"
        assert listed[0]["total"] == "100.00"

    def test_day_filter(self, product, cashier_actor):
        sales_service.post_sale(
            items=[{"product_id": product.id, "qty": 1}], cash_received="50", actor=cashier_actor,
        )
        assert len(sales_service.list_sales(day=store_today())) == 1
        assert sales_service.list_sales(day=date(2001, 1, 1)) == []

    def test_receipt_payload(self, product, cashier_actor):
        sale = sales_service.post_sale(
            items=[{"product_id": product.id, "qty": "1.5"}], cash_received="100", actor=cashier_actor,
        )
        receipt = sales_service.get_receipt(sale.id)

        assert receipt["receipt_no"] == sale.receipt_no
        assert receipt["status"] == "posted"
        assert receipt["change"] == "25.00"
        assert receipt["items"] == [
            {"name": "Widget", "qty": "1.500", "price": "50.00", "line_total": "75.00"},
        ]
        assert receipt["created_at"].endswith("Z")
