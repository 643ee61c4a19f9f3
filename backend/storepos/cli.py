# Overview: Flask CLI command groups for bootstrap, users, and stock maintenance.

# backend/storepos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to storepos (PowerShell: $env:FLASK_APP="storepos").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create tables (when not using migrations) and the default admin/cashier users.
# - python -m flask system seed-demo
#   Add sample categories and products with opening stock.
#
# Users:
# - python -m flask users create --username jane --role cashier
#   Create a user (prompts for the password).
# - python -m flask users list
#
# Stock:
# - python -m flask stock reconcile [--fix]
#   Compare every stock counter with its movement ledger; --fix resets drifted counters.

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import Category, Product, User
from .permissions import ROLES, ROLE_ADMIN, ROLE_CASHIER, ActorContext
from .services import auth_service, products_service, stock_ledger

DEFAULT_PASSWORD = "Password123!"

DEMO_CATALOG = [
    # (category, sku, name, barcode, price, cost, uom, opening qty)
    ("Beverages", "BEV-001", "Bottled Water 500ml", "4800000000011", "15.00", "9.50", "each", "48"),
    ("Beverages", "BEV-002", "Iced Tea 1L", "4800000000028", "55.00", "38.00", "each", "24"),
    ("Snacks", "SNK-001", "Potato Chips 60g", "4800000000035", "32.00", "21.00", "each", "30"),
    ("Snacks", "SNK-002", "Chocolate Bar", "4800000000042", "45.00", "30.00", "each", "4"),
    ("Produce", "PRD-001", "Bananas (kg)", None, "80.00", "55.00", "kg", "12.5"),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and the default users.

    Creates:
    - admin   / Password123!  (role admin)
    - cashier / Password123!  (role cashier)

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing store POS...")
    db.create_all()

    for username, role in (("admin", ROLE_ADMIN), ("cashier", ROLE_CASHIER)):
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        auth_service.create_user(username=username, password=DEFAULT_PASSWORD, role=role)
        click.echo(f"PASS Created user: {username} with role '{role}'")

    click.echo(f"DONE Default password is {DEFAULT_PASSWORD!r}; change it in production.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Add a small demo catalog with opening stock."""
    admin = db.session.query(User).filter_by(role=ROLE_ADMIN).order_by(User.id).first()
    if admin is None:
        raise click.ClickException("No admin user. Run: python -m flask system init")
    actor = ActorContext.for_user(admin)

    categories = {}
    for category_name, sku, name, barcode, price, cost, uom, qty in DEMO_CATALOG:
        if category_name not in categories:
            category = db.session.query(Category).filter_by(name=category_name).first()
            if category is None:
                category = Category(name=category_name)
                db.session.add(category)
                db.session.commit()
            categories[category_name] = category

        if db.session.query(Product).filter_by(sku=sku).first():
            click.echo(f"WARN  Product {sku} already exists, skipping...")
            continue

        patch = {
            "category_id": categories[category_name].id,
            "sku": sku,
            "name": name,
            "barcode": barcode,
            "price": Decimal(price),
            "cost": Decimal(cost),
            "uom": uom,
        }
        products_service.create_product(patch=patch, actor=actor, opening_qty=Decimal(qty))
        click.echo(f"PASS Created {sku} {name} ({qty} {uom})")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--role', type=click.Choice(ROLES), default=ROLE_CASHIER, show_default=True)
@click.option('--name', default=None)
@click.password_option()
@with_appcontext
def create_user_cli(username, role, name, password):
    """Create a user."""
    try:
        user = auth_service.create_user(username=username, password=password, role=role, name=name)
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List users with role and active status."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return
    click.echo(f"{'ID':<5} {'Username':<24} {'Role':<10} {'Active'}")
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<24} {user.role:<10} {'yes' if user.is_active else 'no'}")


@click.group('stock')
def stock_group():
    """Stock ledger maintenance."""


@stock_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Reset drifted counters to the ledger sum')
@with_appcontext
def reconcile(fix):
    """Check qty_on_hand against the sum of stock movements."""
    drift = stock_ledger.reconcile_stock(fix=fix)
    if not drift:
        click.echo("PASS All stock counters match the ledger.")
        return

    for row in drift:
        click.echo(
            f"DRIFT product {row['product_id']}: on hand {row['qty_on_hand']} "
            f"vs ledger {row['ledger_qty']}"
        )
    if fix:
        click.echo(f"FIXED {len(drift)} counter(s).")
    else:
        raise click.ClickException(f"{len(drift)} counter(s) drifted; rerun with --fix to repair.")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
