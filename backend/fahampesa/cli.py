# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/fahampesa/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to fahampesa (PowerShell: $env:FLASK_APP="fahampesa").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use `flask db upgrade` for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Branch inspection:
# - python -m flask branches list --user-id U [--status ACTIVE]
#
# Inventory maintenance:
# - python -m flask inventory verify --user-id U [--branch-id 1]
#   Replay the stock ledger and report rows whose materialized stock drifted.
#
# Purchase orders:
# - python -m flask purchase-orders mark-delayed --user-id U
#   Move overdue SENT/ACKNOWLEDGED orders to DELAYED.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import branch_service, inventory_service, purchase_order_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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


@click.group('branches')
def branches_group():
    """Branch inspection commands."""


@branches_group.command('list')
@click.option('--user-id', required=True, help='Tenant user id')
@click.option('--status', default=None, help='Filter by status')
@with_appcontext
def list_branches(user_id, status):
    """List a tenant's branches."""
    branches = branch_service.list_branches(user_id, status=status)
    if not branches:
        click.echo("No branches found.")
        return
    for branch in branches:
        click.echo(f"{branch.id:>4}  {branch.branch_code:<8} {branch.status:<20} {branch.name}")


@click.group('inventory')
def inventory_group():
    """Inventory maintenance commands."""


@inventory_group.command('verify')
@click.option('--user-id', required=True, help='Tenant user id')
@click.option('--branch-id', type=int, default=None, help='Limit to one branch')
@with_appcontext
def verify_inventory(user_id, branch_id):
    """Compare materialized stock with the movement ledger."""
    drift = inventory_service.verify_inventory(user_id, branch_id)
    if not drift:
        click.echo("PASS Inventory matches the ledger.")
        return

    for row in drift:
        click.echo(
            f"FAIL product={row['product_id']} branch={row['branch_id']} "
            f"current={row['current_stock']} ledger={row['ledger_stock']} "
            f"reserved={row['reserved_stock']} available={row['available_stock']}"
        )
    raise SystemExit(1)


@click.group('purchase-orders')
def purchase_orders_group():
    """Purchase order maintenance commands."""


@purchase_orders_group.command('mark-delayed')
@click.option('--user-id', required=True, help='Tenant user id')
@with_appcontext
def mark_delayed(user_id):
    """Move overdue purchase orders to DELAYED."""
    moved = purchase_order_service.mark_overdue_purchase_orders(user_id)
    for po in moved:
        click.echo(f"DELAYED {po.po_number} (expected {po.expected_delivery_date})")
    click.echo(f"PASS {len(moved)} purchase order(s) marked delayed.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(purchase_orders_group)
