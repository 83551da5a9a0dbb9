# Overview: Flask CLI command groups for bootstrap, tenant provisioning and integrity audits.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create any missing tables (use `flask db upgrade` once migrations exist).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Company (tenant) management:
# - python -m flask companies list
# - python -m flask companies create --name "Acme Bakery" --code "ACME"
#
# Chart of accounts:
# - python -m flask accounts seed --company-id 1
#   Add any default accounts the company is missing.
#
# Integrity audits (exit code 1 when problems are found):
# - python -m flask audit debts --company-id 1
#   Stored customer debt vs the sum of debt adjustments.
# - python -m flask audit stock --company-id 1
#   Stored stock levels vs the movement log and open lots.
# - python -m flask audit journal --company-id 1
#   Journal records whose lines do not balance.

import click
from flask.cli import with_appcontext

from .errors import TenantAccessError, ValidationError
from .extensions import db
from .models import Company, Customer, Location
from .services import catalog_service, debt_service, inventory_service, journal_service
from .services.catalog_service import ConflictError


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
    click.echo("PASS Database tables created")


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
    db.create_all()
    click.echo("PASS Database reset complete")


# =============================================================================
# COMPANY MANAGEMENT
# =============================================================================

@click.group('companies')
def companies_group():
    """Company (tenant) management commands."""


@companies_group.command('list')
@with_appcontext
def list_companies():
    """List all companies."""
    companies = catalog_service.list_companies()

    if not companies:
        click.echo("No companies found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Locations':<10} {'Customers'}")
    click.echo("="*80)

    for company in companies:
        location_count = db.session.query(Location).filter_by(company_id=company.id).count()
        customer_count = db.session.query(Customer).filter_by(company_id=company.id).count()
        active_str = "Yes" if company.is_active else "No"
        click.echo(
            f"{company.id:<5} {company.name:<30} {company.code or '-':<15} "
            f"{active_str:<8} {location_count:<10} {customer_count}"
        )

    click.echo("="*80 + "\n")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--code', default=None, help='Short code (unique)')
@with_appcontext
def create_company_cli(name, code):
    """Create a company with default settings and chart of accounts."""
    try:
        company = catalog_service.create_company(name=name, code=code)
    except (ConflictError, ValidationError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code or '-'})")


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================

@click.group('accounts')
def accounts_group():
    """Chart of accounts commands."""


@accounts_group.command('seed')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def seed_accounts_cli(company_id):
    """Add missing default accounts for a company."""
    try:
        created = journal_service.seed_accounts(company_id)
    except TenantAccessError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Seeded {created} account(s) for company {company_id}")


# =============================================================================
# INTEGRITY AUDITS
# =============================================================================

@click.group('audit')
def audit_group():
    """Rebuild derived state and compare it with what is stored."""


def _require_company(company_id):
    if db.session.get(Company, company_id) is None:
        click.echo(f"FAIL Company ID {company_id} not found")
        raise SystemExit(1)


def _report(label, problems, columns):
    if not problems:
        click.echo(f"PASS {label}: no discrepancies")
        return

    click.echo(f"FAIL {label}: {len(problems)} discrepancy(ies)")
    click.echo("="*80)
    click.echo("  ".join(f"{c:<20}" for c in columns))
    click.echo("="*80)
    for row in problems:
        click.echo("  ".join(f"{str(row.get(c)):<20}" for c in columns))
    click.echo("="*80)
    raise SystemExit(1)


@audit_group.command('debts')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def audit_debts_cli(company_id):
    """Compare stored customer debt with the adjustment history."""
    _require_company(company_id)
    _report(
        "Customer debts",
        debt_service.audit_debts(company_id),
        ["customer_id", "name", "stored_cents", "reconstructed_cents"],
    )


@audit_group.command('stock')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def audit_stock_cli(company_id):
    """Compare stored stock levels with the movement log."""
    _require_company(company_id)
    _report(
        "Stock levels",
        inventory_service.audit_stock_levels(company_id),
        ["item_id", "location_id", "stored_quantity", "movement_quantity", "open_lot_quantity"],
    )


@audit_group.command('journal')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def audit_journal_cli(company_id):
    """Check that every journal record balances."""
    _require_company(company_id)
    _report(
        "Journal records",
        journal_service.audit_journal(company_id),
        ["record_id", "entry_number", "line_debit_cents", "line_credit_cents"],
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(audit_group)
