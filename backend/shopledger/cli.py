# Overview: Flask CLI command group for database bootstrap and ledger checks.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask ledger <command> [options]
#
# - python -m flask ledger init-db
#   Create any missing tables (use `flask db upgrade` for migrated deployments).
# - python -m flask ledger reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask ledger verify-balances
#   Report accounts whose stored balance differs from SUM(credit) - SUM(debit).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Account
from .services.ledger_service import verify_account_balance


@click.group('ledger')
def ledger_group():
    """Database bootstrap and ledger consistency commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@ledger_group.command('reset-db')
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


@ledger_group.command('verify-balances')
@with_appcontext
def verify_balances():
    """Recompute every account balance from its entries; exit 1 on drift."""
    drifted = 0
    account_ids = [account_id for (account_id,) in db.session.query(Account.id).order_by(Account.id).all()]
    for account_id in account_ids:
        result = verify_account_balance(account_id)
        if not result["consistent"]:
            drifted += 1
            click.echo(
                f"FAIL account {account_id}: stored={result['stored_balance_cents']} "
                f"computed={result['computed_balance_cents']} drift={result['drift_cents']}"
            )

    if drifted:
        click.echo(f"FAIL {drifted} of {len(account_ids)} accounts drifted")
        raise SystemExit(1)
    click.echo(f"PASS {len(account_ids)} accounts consistent")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
