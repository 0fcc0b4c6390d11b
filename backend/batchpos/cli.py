# Overview: Flask CLI command groups for bootstrap, catalog seeding and inspection.

# backend/batchpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP=batchpos:create_app
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog add-product --name "Burger Buns" --price-cents 1500 --cost-cents 900 --quantity 40
#   Create a product; a quantity becomes its first stock batch.
# - python -m flask catalog restock 3 --quantity 24 --cost-cents 950 --price-cents 1600
#   Receive a new batch for product 3.
# - python -m flask catalog seed-demo
#   Add a handful of demo products with two batches each.
# - python -m flask catalog levels --threshold 10
#   Print stock levels.
#
# Sales:
# - python -m flask sales list --limit 20
#   Recent transactions with item counts.
# - python -m flask sales summary
#   Revenue, cost of goods and gross profit over completed transactions.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services import stock_service, transaction_service
from .services.inventory_store import StoreError


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


@click.group('system')
def system_group():
    """Database bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate every table."""
    if not yes:
        click.confirm("This deletes ALL data. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('catalog')
def catalog_group():
    """Products and stock batches."""


@catalog_group.command('add-product')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=click.IntRange(min=0), required=True, help='Catalog unit price in cents')
@click.option('--cost-cents', type=click.IntRange(min=0), default=None, help='Catalog unit cost in cents')
@click.option('--quantity', type=click.IntRange(min=0), default=0, show_default=True, help='Opening stock')
@click.option('--category', default=None, help='Category label')
@with_appcontext
def add_product_cli(name, price_cents, cost_cents, quantity, category):
    """Create a product."""
    try:
        product = stock_service.create_product(
            name=name,
            price_cents=price_cents,
            cost_cents=cost_cents,
            quantity=quantity,
            category=category,
        )
    except StoreError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created product {product.name!r} (ID: {product.id}, stock: {product.stock_quantity})")


@catalog_group.command('restock')
@click.argument('product_id', type=int)
@click.option('--quantity', type=click.IntRange(min=1), required=True, help='Units received')
@click.option('--cost-cents', type=click.IntRange(min=0), default=None, help='Unit cost of this batch')
@click.option('--price-cents', type=click.IntRange(min=0), default=None, help='Unit price of this batch')
@click.option('--note', default=None)
@with_appcontext
def restock_cli(product_id, quantity, cost_cents, price_cents, note):
    """Receive a stock batch for PRODUCT_ID."""
    try:
        batch = stock_service.restock_product(
            product_id,
            quantity=quantity,
            cost_cents=cost_cents,
            price_cents=price_cents,
            note=note,
        )
    except stock_service.UnknownProductError as e:
        raise click.ClickException(str(e))
    except StoreError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Batch {batch.id}: {batch.quantity_received} units for product {product_id}")


DEMO_PRODUCTS = [
    # name, category, price, cost, first batch qty, second batch (qty, cost, price)
    ("Burger Buns", "Bakery", 1500, 900, 30, (20, 950, 1600)),
    ("Tomatoes (kg)", "Vegetables", 8000, 5500, 12, (25, 6000, 8500)),
    ("Cheddar Slices", "Dairy", 4500, 3000, 40, (40, 3100, None)),
    ("Ground Beef (kg)", "Meat", 38000, 29000, 8, (10, 30500, 39500)),
    ("Cola 330ml", "Beverages", 3500, 2200, 48, (48, 2300, None)),
]


@catalog_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Add demo products with two batches each."""
    for name, category, price, cost, qty, (qty2, cost2, price2) in DEMO_PRODUCTS:
        product = stock_service.create_product(
            name=name,
            category=category,
            price_cents=price,
            cost_cents=cost,
            quantity=qty,
        )
        stock_service.restock_product(
            product.id,
            quantity=qty2,
            cost_cents=cost2,
            price_cents=price2,
            note="Demo restock",
        )
        click.echo(f"PASS {name} (ID: {product.id})")
    click.echo(f"DONE Seeded {len(DEMO_PRODUCTS)} products")


@catalog_group.command('levels')
@click.option('--threshold', type=click.IntRange(min=0), default=None, help='Low-stock threshold')
@with_appcontext
def levels_cli(threshold):
    """Print stock levels."""
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    levels = stock_service.get_stock_levels(low_stock_threshold=threshold)
    for item in levels["items"]:
        click.echo(
            f"{item['product_id']:>5}  {item['name']:<30} {item['stock_quantity']:>6}  "
            f"batches={item['open_batches']}  {item['status'].upper()}"
        )
    summary = levels["summary"]
    click.echo(
        f"{summary['total_items']} items, {summary['low_stock_alerts']} low, "
        f"{summary['well_stocked']} well stocked"
    )


@click.group('sales')
def sales_group():
    """Transaction history."""


@sales_group.command('list')
@click.option('--limit', type=click.IntRange(min=1), default=20, show_default=True)
@click.option('--status', type=click.Choice(['completed', 'pending', 'refunded']), default=None)
@with_appcontext
def list_sales(limit, status):
    """Recent transactions, newest first."""
    rows = transaction_service.list_transactions(limit=limit, status=status)
    if not rows:
        click.echo("No transactions")
        return
    for trx in rows:
        click.echo(
            f"{trx['id']:>6}  {trx['created_at']}  {trx['status']:<9} "
            f"{trx['item_count']:>4} items  {_money(trx['total_cents']):>12}  {trx['payment_method']}"
        )


@sales_group.command('summary')
@with_appcontext
def sales_summary():
    """Revenue and gross profit over completed transactions."""
    summary = transaction_service.summarize_transactions()
    click.echo(f"Transactions:   {summary['transaction_count']}")
    click.echo(f"Revenue:        {_money(summary['revenue_cents'])}")
    click.echo(f"Cost of goods:  {_money(summary['cost_of_goods_cents'])}")
    click.echo(f"Gross profit:   {_money(summary['gross_profit_cents'])}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(sales_group)
