# Overview: Flask CLI command groups for bootstrap, lot maintenance and event redrive.

# backend/wms/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and seeds default approval tiers.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Lot maintenance:
# - python -m flask lots expire [--as-of 2026-01-31T00:00:00Z]
#   Retire active, unreserved lots whose expiry date has passed.
#
# Event delivery:
# - python -m flask events failures [--all]
#   List open (or all) handler delivery failures.
# - python -m flask events redrive [--id 12]
#   Re-run the failed handler for one failure, or for every open failure.

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db, wms_runtime
from .services import approval_service, event_service, inventory_service
from .services.concurrency import run_in_transaction
from .validation import parse_iso_datetime


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables and seed default approval tiers (safe to re-run)."""
    click.echo("START Initializing WMS...")
    db.create_all()
    click.echo("PASS Tables ready")

    created = run_in_transaction(approval_service.seed_default_tiers)
    approval_service.invalidate_cache()
    if created:
        click.echo(f"PASS Seeded {created} approval tier(s)")
    else:
        click.echo("PASS Approval tiers already configured")


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
    approval_service.invalidate_cache()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to seed tiers.")


@click.group('lots')
def lots_group():
    """Inventory lot maintenance."""


@lots_group.command('expire')
@click.option('--as-of', 'as_of', default=None, help='ISO-8601 cutoff (default: now)')
@with_appcontext
def expire_lots(as_of):
    """Expire active, unreserved lots whose expiry_date <= as-of."""
    try:
        cutoff = parse_iso_datetime(as_of, "as_of")
    except DomainError as e:
        raise click.BadParameter(str(e), param_hint="--as-of")

    lot_ids = inventory_service.expire_lots(bus=wms_runtime().bus, as_of=cutoff)
    if not lot_ids:
        click.echo("PASS No lots due for expiry")
        return
    click.echo(f"PASS Expired {len(lot_ids)} lot(s): {', '.join(str(i) for i in lot_ids)}")


@click.group('events')
def events_group():
    """Event delivery failure inspection and redrive."""


@events_group.command('failures')
@click.option('--all', 'show_all', is_flag=True, help='Include resolved failures')
@with_appcontext
def list_failures(show_all):
    failures = event_service.list_failures(status=None if show_all else event_service.FAILURE_OPEN)
    if not failures:
        click.echo("No delivery failures.")
        return

    click.echo(f"{'ID':<6} {'Event':<8} {'Handler':<40} {'Status':<10} {'Tries':<6} Error")
    click.echo("-" * 100)
    for f in failures:
        click.echo(f"{f.id:<6} {f.event_id:<8} {f.handler_name:<40} {f.status:<10} {f.attempts:<6} {f.error[:60]}")


@events_group.command('redrive')
@click.option('--id', 'failure_id', type=int, default=None, help='Failure id (default: every open failure)')
@with_appcontext
def redrive(failure_id):
    """Re-run failed handlers with their stored events."""
    bus = wms_runtime().bus
    if failure_id is not None:
        try:
            results = [event_service.redrive_failure(failure_id, bus)]
        except DomainError as e:
            raise click.ClickException(str(e))
    else:
        results = event_service.redrive_open_failures(bus)

    if not results:
        click.echo("PASS Nothing to redrive")
        return
    for f in results:
        marker = "PASS" if f.status == event_service.FAILURE_RESOLVED else "FAIL"
        click.echo(f"{marker} #{f.id} {f.handler_name} -> {f.status} (attempts: {f.attempts})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(lots_group)
    app.cli.add_command(events_group)
