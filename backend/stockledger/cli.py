# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role, store and active status.
# - python -m flask users create --email admin@example.com --password "Password123" --role ADMIN
#   Create a user (prompts if options are omitted).
#
# Ledger inspection:
# - python -m flask ledger reconcile [--inventory-id 7] [--strict]
#   Replay the inventory ledger and report drift. --strict exits 1 on drift.
#
# Maintenance:
# - python -m flask maintenance cleanup-tokens --retention-days 7
#   Delete refresh tokens that expired more than the retention window ago.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .errors import StockLedgerError
from .extensions import db
from .models import User
from .models.auth import ROLES
from .services import reconciliation_service, token_service
from .services.auth_service import create_user
from .services.unit_of_work import UnitOfWork


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate every table."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), prompt=True, help='Role')
@click.option('--store-id', type=int, default=None, help='Home store ID')
@click.option('--first-name', default='', help='First name')
@click.option('--last-name', default='', help='Last name')
@with_appcontext
def create_user_cli(email, password, role, store_id, first_name, last_name):
    """Create a new user with a bcrypt-hashed password."""
    try:
        user = create_user(
            UnitOfWork(db.session),
            email=email,
            password=password,
            role=role,
            store_id=store_id,
            first_name=first_name,
            last_name=last_name,
        )
        click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")
    except StockLedgerError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "active" if user.is_active else "disabled"
        click.echo(f"{user.id:>4}  {user.email:<32} {user.role:<8} store={user.store_id} {status}")


@click.group('ledger')
def ledger_group():
    """Inventory ledger inspection commands."""


@ledger_group.command('reconcile')
@click.option('--inventory-id', type=int, default=None, help='Only check this inventory record')
@click.option('--strict', is_flag=True, help='Exit with status 1 when drift is found')
@with_appcontext
def reconcile_cli(inventory_id, strict):
    """
    Replay the ledger against live quantities.

    Reports only; nothing is corrected.
    """
    try:
        reports = reconciliation_service.validate_integrity(UnitOfWork(db.session), inventory_id)
    except StockLedgerError as e:
        raise click.ClickException(e.message)

    for report in reports:
        if report.is_valid and not report.chain_breaks:
            continue
        click.echo(
            f"DRIFT inventory={report.inventory_id} {report.product_name} @ {report.store_name}: "
            f"quantity={report.current_quantity} calculated={report.calculated_quantity} "
            f"discrepancy={report.discrepancy} chain_breaks={report.chain_breaks}"
        )

    summary = reconciliation_service.summarize(reports)
    click.echo(f"Checked {summary['checked']} record(s): {summary['valid']} valid, {summary['invalid']} invalid")

    if strict and summary["invalid"]:
        raise SystemExit(1)


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-tokens')
@click.option('--retention-days', type=int, default=7, show_default=True)
@with_appcontext
def cleanup_tokens_cli(retention_days):
    """Delete refresh tokens expired longer than the retention window."""
    deleted = token_service.cleanup_expired_tokens(
        UnitOfWork(db.session), retention=timedelta(days=retention_days)
    )
    click.echo(f"Deleted {deleted} refresh tokens expired more than {retention_days} days ago.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(maintenance_group)
