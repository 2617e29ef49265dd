# Overview: Flask CLI command groups for bootstrap, stock reconciliation and maintenance.

# backend/catalog/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users (actors for the X-User-Id header):
# - python -m flask users list
# - python -m flask users create --username wh1 --email wh1@example.com --role WAREHOUSE
#
# Stock reconciliation:
# - python -m flask stock sync-all
#   Resync every product without a warehouse override (follow-up for bulk batch updates).
# - python -m flask stock sync 42
#   Resync one product (skipped if its override is on).
# - python -m flask stock validate [42 43 ...]
#   Audit stock consistency; no ids = every product.
# - python -m flask stock disable-override 42
#   Turn off the warehouse override and resync from batches.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, User
from .models.catalog import USER_SUB_ROLES
from .validation import NotFoundError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their sub-role."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<12} {'Active'}")
    click.echo("=" * 80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.sub_role:<12} {active_str}")
    click.echo("=" * 80 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--name', default=None)
@click.option('--role', 'sub_role', type=click.Choice(USER_SUB_ROLES), default='STAFF', show_default=True)
@with_appcontext
def create_user(username, email, name, sub_role):
    """Create an actor user."""
    if db.session.query(User).filter_by(username=username).first():
        raise click.ClickException(f"User '{username}' already exists")

    user = User(username=username, email=email, name=name, sub_role=sub_role)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.username} (id={user.id}, role={user.sub_role})")


@click.group('stock')
def stock_group():
    """Stock reconciliation commands."""


@stock_group.command('sync-all')
@with_appcontext
def sync_all():
    """Resync every product that is not under a warehouse override."""
    from .services.stock_sync_service import sync_all_from_batches

    result = sync_all_from_batches()
    click.echo(
        f"PASS Synced {result['syncedCount']}/{result['totalProducts']} products "
        f"({result['errorCount']} errors)"
    )
    if result["errorCount"]:
        raise SystemExit(1)


@stock_group.command('sync')
@click.argument('product_id', type=int)
@with_appcontext
def sync_product(product_id):
    """Resync one product from its batches."""
    from .services.stock_sync_service import force_sync_product

    try:
        result = force_sync_product(product_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    status = "PASS" if result["synced"] else "SKIP"
    click.echo(f"{status} Product {product_id}: {result['reason']} (stock={result['currentStock']})")


@stock_group.command('validate')
@click.argument('product_ids', type=int, nargs=-1)
@with_appcontext
def validate_stock(product_ids):
    """Audit stock consistency for the given products (default: all)."""
    from .services.stock_sync_service import validate_multiple_products_stock

    if not product_ids:
        product_ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id.asc()).all()]

    result = validate_multiple_products_stock(product_ids)
    click.echo(
        f"Checked {result['totalChecked']}: "
        f"{result['consistent']} consistent, {result['inconsistent']} inconsistent"
    )
    for entry in result["results"]:
        click.echo(f"FAIL Product {entry['productId']}")
        for issue in entry["issues"]:
            click.echo(f"  - {issue}")
    if result["inconsistent"]:
        raise SystemExit(1)


@stock_group.command('disable-override')
@click.argument('product_id', type=int)
@with_appcontext
def disable_override(product_id):
    """Turn off the warehouse override for a product and resync from batches."""
    from .services.stock_sync_service import disable_override_and_sync

    try:
        result = disable_override_and_sync(product_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS {result['message']} (stock={result['newStock']})")


@stock_group.command('activity')
@click.option('--product', 'product_id', type=int, default=None, help='Only entries for this product')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def show_activity(product_id, limit):
    """Print the latest warehouse activity entries."""
    from .services.activity_service import get_activity_log

    entries = get_activity_log(product_id=product_id, limit=limit)
    if not entries:
        click.echo("No warehouse activity recorded")
        return
    for entry in entries:
        who = entry.user.username if entry.user is not None else "system"
        target = entry.target_sku or entry.target_name or entry.target_type
        click.echo(f"{entry.created_at:%Y-%m-%d %H:%M:%S} {entry.action} {target} by {who}: {entry.notes or ''}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
