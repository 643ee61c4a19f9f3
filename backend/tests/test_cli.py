"""
Flask CLI command tests.
"""

from decimal import Decimal

from sqlalchemy import update

from storepos.extensions import db
from storepos.models import InventoryStock, Product, User
from storepos.services import stock_ledger


class TestStockCommands:

    def test_reconcile_clean(self, app, product):
        result = app.test_cli_runner().invoke(args=["stock", "reconcile"])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_reconcile_reports_and_fixes(self, app, product):
        db.session.execute(
            update(InventoryStock)
            .where(InventoryStock.product_id == product.id)
            .values(qty_on_hand=Decimal("3"))
        )
        db.session.commit()
        runner = app.test_cli_runner()

        result = runner.invoke(args=["stock", "reconcile"])
        assert result.exit_code == 1
        assert f"DRIFT product {product.id}: on hand 3.000 vs ledger 10.000" in result.output

        result = runner.invoke(args=["stock", "reconcile", "--fix"])
        assert result.exit_code == 0
        assert "FIXED 1 counter(s)." in result.output
        assert stock_ledger.get_quantity(product.id) == Decimal("10")


class TestUserCommands:

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--username", "jane", "--role", "cashier", "--password", "Secret123",
        ])
        assert result.exit_code == 0, result.output
        assert db.session.query(User).filter_by(username="jane", role="cashier").count() == 1

        result = runner.invoke(args=["users", "list"])
        assert "jane" in result.output

    def test_weak_password_rejected(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            "users", "create", "--username", "bob", "--password", "weak",
        ])
        assert result.exit_code == 1
        assert "at least 8 characters" in result.output


class TestSeedDemo:

    def test_requires_admin(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "seed-demo"])
        assert result.exit_code == 1

    def test_seeds_catalog_with_opening_stock(self, app, admin_user):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["system", "seed-demo"])
        assert result.exit_code == 0, result.output

        water = db.session.query(Product).filter_by(sku="BEV-001").one()
        assert stock_ledger.get_quantity(water.id) == Decimal("48")
        assert stock_ledger.reconcile_stock() == []

        # Second run skips what already exists
        result = runner.invoke(args=["system", "seed-demo"])
        assert "already exists" in result.output
        assert db.session.query(Product).count() == 5
