# Overview: Flask CLI command groups for bootstrap and target maintenance.

# backend/bizops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Targets:
# - python -m flask targets recalc
#   Recalculate every active target now.
# - python -m flask targets list
#   List targets with progress and status.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import target_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("OK Tables created")


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

    click.echo("OK Database reset")


@click.group('targets')
def targets_group():
    """Sales target commands."""


@targets_group.command('recalc')
@with_appcontext
def recalc_targets():
    """Recalculate every active target."""
    updated = target_service.recalculate_targets()
    for target in updated:
        click.echo(
            f"  {target.id:>4}  {target.title:<30} {target.current_amount_cents:>12} / "
            f"{target.target_amount_cents:<12} {target.status}"
        )
    click.echo(f"OK {len(updated)} active target(s) recalculated")


@targets_group.command('list')
@click.option('--no-refresh', is_flag=True, help='Show stored values without recalculating')
@with_appcontext
def list_targets(no_refresh):
    """List targets with progress."""
    targets = target_service.list_targets(refresh=not no_refresh)
    if not targets:
        click.echo("No targets found")
        return

    click.echo(f"{'ID':>4}  {'Title':<30} {'Period':<8} {'Progress':>9}  Status")
    for target in targets:
        click.echo(
            f"{target.id:>4}  {target.title:<30} {target.period:<8} "
            f"{target.progress_pct:>8.1f}%  {target.status}"
        )


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(targets_group)
