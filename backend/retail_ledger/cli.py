# Overview: Flask CLI command groups for bootstrap, stock adjustments and reporting.

# backend/retail_ledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to retail_ledger (PowerShell: $env:FLASK_APP="retail_ledger").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Store directory and catalog:
# - python -m flask stores create --name "Downtown" --location "Main St"
# - python -m flask stores list
# - python -m flask items create --name "Widget" --category "Tools" --price-cents 1299 [--sku W-1]
# - python -m flask items list [--category Tools]
# - python -m flask items init-stores 1
#   Create zero-quantity stock records for item 1 in every store.
#
# Stock ledger:
# - python -m flask stock add 1 1 25            (item, store, quantity)
# - python -m flask stock remove 1 1 3
# - python -m flask stock reserve 1 1 2
# - python -m flask stock release 1 1 2
# - python -m flask stock transfer 1 1 2 5      (item, from store, to store, quantity)
# - python -m flask stock show 1 1
# - python -m flask stock low --store-id 1 [--threshold 10]
#   Without --threshold, lists records at or below their own min_stock_level.
#
# Sales reporting:
# - python -m flask sales report --store-id 1 --start 2026-01-01 --end 2026-01-31T23:59:59

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import catalog_service, inventory_service, sales_service
from .services.errors import RetailLedgerError
from .time_utils import parse_iso_datetime


def _fail(exc: RetailLedgerError) -> None:
    click.echo(f"FAIL {exc.message}")


def _echo_record(record) -> None:
    click.echo(
        f"item={record.item_id} store={record.store_id} quantity={record.quantity} "
        f"reserved={record.reserved_quantity} available={record.available_quantity} "
        f"min={record.min_stock_level} max={record.max_stock_level}"
        + (" LOW" if record.is_low_stock else "")
        + (" OVER" if record.is_overstocked else "")
    )


# =============================================================================
# SYSTEM COMMANDS
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema is ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


# =============================================================================
# STORE DIRECTORY
# =============================================================================

@click.group('stores')
def stores_group():
    """Store directory commands."""


@stores_group.command('create')
@click.option('--name', required=True, help='Store name (unique)')
@click.option('--location', required=True, help='Store location')
@click.option('--address', help='Street address')
@click.option('--phone', help='Phone number')
@click.option('--manager', help='Manager name')
@with_appcontext
def create_store_cli(name, location, address, phone, manager):
    """Create a store."""
    try:
        store = catalog_service.create_store(
            name, location, address=address, phone=phone, manager=manager
        )
    except RetailLedgerError as exc:
        _fail(exc)
        return
    click.echo(f"PASS Created store: {store.name} (ID: {store.id})")


@stores_group.command('list')
@with_appcontext
def list_stores_cli():
    """List all stores."""
    stores = catalog_service.list_stores()
    if not stores:
        click.echo("No stores found.")
        return
    for store in stores:
        click.echo(f"{store.id:<5} {store.name:<30} {store.location}")


# =============================================================================
# CATALOG
# =============================================================================

@click.group('items')
def items_group():
    """Catalog item commands."""


@items_group.command('create')
@click.option('--name', required=True, help='Item name')
@click.option('--category', required=True, help='Item category')
@click.option('--price-cents', type=int, required=True, help='Price in cents')
@click.option('--sku', help='Opaque SKU identifier')
@click.option('--upc', help='Opaque UPC identifier')
@click.option('--brand', help='Brand')
@with_appcontext
def create_item_cli(name, category, price_cents, sku, upc, brand):
    """Create a catalog item."""
    try:
        item = catalog_service.create_item(
            name, category, price_cents, sku=sku, upc=upc, brand=brand
        )
    except RetailLedgerError as exc:
        _fail(exc)
        return
    click.echo(f"PASS Created item: {item.name} (ID: {item.id}, price_cents: {item.price_cents})")


@items_group.command('list')
@click.option('--category', help='Filter by category')
@with_appcontext
def list_items_cli(category):
    """List catalog items."""
    items = catalog_service.list_items(category=category)
    if not items:
        click.echo("No items found.")
        return
    for item in items:
        click.echo(f"{item.id:<5} {item.name:<30} {item.category:<20} {item.price_cents}")


@items_group.command('init-stores')
@click.argument('item_id', type=int)
@with_appcontext
def init_item_stores_cli(item_id):
    """Create zero-quantity stock records for ITEM_ID in every store."""
    try:
        created = inventory_service.initialize_item_in_all_stores(item_id)
    except RetailLedgerError as exc:
        _fail(exc)
        return
    click.echo(f"PASS Initialized item {item_id} in {len(created)} store(s)")


# =============================================================================
# STOCK LEDGER
# =============================================================================

@click.group('stock')
def stock_group():
    """Inventory ledger commands."""


def _run_stock_command(operation, *args) -> None:
    try:
        record = operation(*args)
    except RetailLedgerError as exc:
        _fail(exc)
        return
    _echo_record(record)


@stock_group.command('add')
@click.argument('item_id', type=int)
@click.argument('store_id', type=int)
@click.argument('quantity', type=int)
@with_appcontext
def add_stock_cli(item_id, store_id, quantity):
    """Add QUANTITY units of ITEM_ID to STORE_ID."""
    _run_stock_command(inventory_service.add_stock, item_id, store_id, quantity)


@stock_group.command('remove')
@click.argument('item_id', type=int)
@click.argument('store_id', type=int)
@click.argument('quantity', type=int)
@with_appcontext
def remove_stock_cli(item_id, store_id, quantity):
    """Remove QUANTITY available units of ITEM_ID from STORE_ID."""
    _run_stock_command(inventory_service.remove_stock, item_id, store_id, quantity)


@stock_group.command('reserve')
@click.argument('item_id', type=int)
@click.argument('store_id', type=int)
@click.argument('quantity', type=int)
@with_appcontext
def reserve_stock_cli(item_id, store_id, quantity):
    """Reserve QUANTITY units of ITEM_ID at STORE_ID."""
    _run_stock_command(inventory_service.reserve_stock, item_id, store_id, quantity)


@stock_group.command('release')
@click.argument('item_id', type=int)
@click.argument('store_id', type=int)
@click.argument('quantity', type=int)
@with_appcontext
def release_stock_cli(item_id, store_id, quantity):
    """Release QUANTITY reserved units of ITEM_ID at STORE_ID."""
    _run_stock_command(inventory_service.release_reservation, item_id, store_id, quantity)


@stock_group.command('transfer')
@click.argument('item_id', type=int)
@click.argument('from_store_id', type=int)
@click.argument('to_store_id', type=int)
@click.argument('quantity', type=int)
@with_appcontext
def transfer_stock_cli(item_id, from_store_id, to_store_id, quantity):
    """Move QUANTITY units of ITEM_ID between stores."""
    try:
        source, destination = inventory_service.transfer_stock(
            item_id, from_store_id, to_store_id, quantity
        )
    except RetailLedgerError as exc:
        _fail(exc)
        return
    _echo_record(source)
    _echo_record(destination)


@stock_group.command('show')
@click.argument('item_id', type=int)
@click.argument('store_id', type=int)
@with_appcontext
def show_stock_cli(item_id, store_id):
    """Show the stock record for ITEM_ID at STORE_ID."""
    record = inventory_service.get_stock_record(item_id, store_id)
    if record is None:
        click.echo(f"item={item_id} store={store_id} quantity=0 (no record)")
        return
    _echo_record(record)


@stock_group.command('low')
@click.option('--store-id', type=int, help='Limit to one store (required with --threshold)')
@click.option('--threshold', type=int, help='List quantity below this value instead of min levels')
@with_appcontext
def low_stock_cli(store_id, threshold):
    """List low-stock records."""
    if threshold is not None:
        if store_id is None:
            click.echo("FAIL --store-id is required with --threshold")
            return
        records = inventory_service.list_low_stock(store_id, threshold)
    else:
        records = inventory_service.list_below_min_level(store_id)

    if not records:
        click.echo("No low-stock records.")
        return
    for record in records:
        _echo_record(record)


# =============================================================================
# SALES
# =============================================================================

@click.group('sales')
def sales_group():
    """Sales reporting commands."""


@sales_group.command('report')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--start', required=True, help='ISO-8601 start (inclusive)')
@click.option('--end', required=True, help='ISO-8601 end (inclusive)')
@with_appcontext
def sales_report_cli(store_id, start, end):
    """Total amount and transaction count for a date range."""
    try:
        start_dt = parse_iso_datetime(start)
        end_dt = parse_iso_datetime(end)
    except ValueError:
        start_dt = end_dt = None
    if start_dt is None or end_dt is None:
        click.echo("FAIL --start and --end must be ISO-8601 datetimes")
        return

    try:
        total = sales_service.total_sales_amount(store_id, start_dt, end_dt)
        count = sales_service.transaction_count(store_id, start_dt, end_dt)
    except RetailLedgerError as exc:
        _fail(exc)
        return

    click.echo(f"store={store_id} transactions={count} total_cents={total}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(items_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(sales_group)
