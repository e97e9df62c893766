# Overview: Flask CLI command groups for bootstrap and transfer/inventory inspection.

# backend/transferhub/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use "flask db upgrade" for managed schemas).
# - python -m flask system init
#   Idempotent bootstrap: default admin user and main warehouse.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Transfer inspection:
# - python -m flask transfers list [--status in_transit] [--warehouse-id 1]
#   List transfers, newest first.
# - python -m flask transfers show 12
#   Show one transfer with its items and audit history.
#
# Inventory inspection:
# - python -m flask inventory available --warehouse-id 1 [--batches]
#   Quantities that can go on a new outgoing transfer.
# - python -m flask inventory ledger --warehouse-id 1 --product-id 3 [--limit 20]
#   Stock movements of one product at one warehouse.

import click
from flask.cli import with_appcontext

from .errors import TransferError
from .extensions import db
from .models import User, Warehouse
from .services import availability_service, transfer_service
from .services.ledger_service import get_product_ledger
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('init')
@click.option('--warehouse', 'warehouse_name', default='Main Warehouse', help='Default warehouse name')
@with_appcontext
def init_system(warehouse_name):
    """
    Ensure a default admin user and a default warehouse exist.

    Safe to run repeatedly; existing rows are left untouched.
    """
    click.echo("START Initializing transferhub...")
    db.create_all()

    admin = db.session.query(User).filter_by(username="admin").first()
    if admin is None:
        admin = User(username="admin", full_name="Administrator", email="admin@transferhub.local", is_active=True)
        db.session.add(admin)
        db.session.commit()
        click.echo(f"PASS Created user: admin (ID: {admin.id})")
    else:
        click.echo(f"PASS Using existing user: admin (ID: {admin.id})")

    warehouse = db.session.query(Warehouse).filter_by(name=warehouse_name).first()
    if warehouse is None:
        warehouse = Warehouse(name=warehouse_name, is_active=True)
        db.session.add(warehouse)
        db.session.commit()
        click.echo(f"PASS Created warehouse: {warehouse.name} (ID: {warehouse.id})")
    else:
        click.echo(f"PASS Using existing warehouse: {warehouse.name} (ID: {warehouse.id})")

    click.echo("DONE Initialization complete.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('transfers')
def transfers_group():
    """Transfer inspection commands."""


@transfers_group.command('list')
@click.option('--status', default=None, help='Filter by transfer status')
@click.option('--warehouse-id', type=int, default=None, help='Source or target warehouse')
@with_appcontext
def list_transfers(status, warehouse_id):
    """List transfers, newest first."""
    try:
        transfers = transfer_service.list_transfers(status=status, warehouse_id=warehouse_id)
    except TransferError as exc:
        raise click.ClickException(str(exc))

    if not transfers:
        click.echo("No transfers found.")
        return

    for t in transfers:
        click.echo(
            f"{t.id:>5}  {t.transfer_number}  {t.status.value:<16} "
            f"{t.source_warehouse_id} -> {t.target_warehouse_id}  "
            f"items={len(t.items)}  initiated={to_utc_z(t.initiated_at)}"
        )


@transfers_group.command('show')
@click.argument('transfer_id', type=int)
@with_appcontext
def show_transfer(transfer_id):
    """Show one transfer with items and audit history."""
    try:
        detail = transfer_service.get_transfer_detail(transfer_id)
    except TransferError as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Transfer {detail['transfer_number']} [{detail['status']}]")
    click.echo(f"  From warehouse {detail['source_warehouse_id']} to {detail['target_warehouse_id']}")
    if detail["courier_name"] or detail["tracking_number"]:
        click.echo(f"  Courier: {detail['courier_name'] or '-'}  Tracking: {detail['tracking_number'] or '-'}")

    click.echo("  Items:")
    for item in detail["items"]:
        batch = f" batch={item['batch_number']}" if item["batch_number"] else ""
        click.echo(
            f"    #{item['id']} product={item['product_id']}{batch} sent={item['quantity_sent']} "
            f"received={item['quantity_received']} rejected={item['quantity_rejected']} "
            f"disposed={item['quantity_disposed']} returned={item['quantity_returned']} "
            f"[{item['item_status']}]"
        )

    click.echo("  History:")
    for log in detail["logs"]:
        change = f" {log['previous_status'] or '-'} -> {log['new_status']}" if log["new_status"] else ""
        click.echo(f"    {log['action_at']}  {log['action']}{change}  by user {log['action_by']}")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('available')
@click.option('--warehouse-id', type=int, required=True)
@click.option('--batches', is_flag=True, help='Show batch-level availability')
@with_appcontext
def show_available(warehouse_id, batches):
    """Quantities a warehouse can still put on a new outgoing transfer."""
    try:
        if batches:
            rows = availability_service.get_available_batches(warehouse_id)
        else:
            rows = availability_service.get_warehouse_inventory(warehouse_id)
    except TransferError as exc:
        raise click.ClickException(str(exc))

    if not rows:
        click.echo("Nothing available.")
        return

    for row in rows:
        if batches:
            expiry = row.expiry_date.isoformat() if row.expiry_date else "-"
            click.echo(
                f"{row.product_name:<30} batch={row.batch_number:<15} "
                f"available={row.available_quantity}  expires={expiry}"
            )
        else:
            click.echo(f"{row.product_name:<30} sku={row.product_sku or '-':<12} available={row.available_quantity}")


@inventory_group.command('ledger')
@click.option('--warehouse-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def show_ledger(warehouse_id, product_id, limit):
    """Stock movements of one product at one warehouse, newest first."""
    entries = get_product_ledger(warehouse_id, product_id, limit=limit)
    if not entries:
        click.echo("No ledger entries.")
        return

    for entry in entries:
        direction = "IN " if entry.target_warehouse_id == warehouse_id else "OUT"
        batch = f" batch={entry.batch_number}" if entry.batch_number else ""
        click.echo(
            f"{to_utc_z(entry.occurred_at)}  {direction} {entry.type.value:<16} "
            f"qty={entry.quantity}{batch}  ref={entry.reference or '-'}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(transfers_group)
    app.cli.add_command(inventory_group)
