# Overview: Flask CLI command groups for bootstrap, inspection, and payroll runs.

# backend/posledger/cli.py
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
# Users:
# - python -m flask users create --username admin --email admin@pos.local --name Admin --role admin
#   Create a user (prompts for the password).
# - python -m flask users list [--role cashier]
#
# Payroll:
# - python -m flask payroll calculate --month 3 --year 2025 [--user-id 4]
#   Recalculate monthly payroll (approved months are skipped).

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models.auth import ROLES
from .money import cents_to_display
from .services import auth_service, payroll_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Database tables created.")


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
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, name, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = auth_service.create_user(username, email, password, name, role)
    except LedgerError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(ROLES)), help='Filter by role')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated users')
@with_appcontext
def list_users(role, include_inactive):
    """List users."""
    users = auth_service.list_users(role=role, include_inactive=include_inactive)

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<10} {'Active'}")
    click.echo("=" * 80)
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<10} {user.is_active}")


@click.group('payroll')
def payroll_group():
    """Payroll runs."""


@payroll_group.command('calculate')
@click.option('--month', type=int, required=True)
@click.option('--year', type=int, required=True)
@click.option('--user-id', type=int, help='Only this user')
@with_appcontext
def calculate_payroll_cli(month, year, user_id):
    """Recalculate monthly payroll from closed work sessions."""
    try:
        if user_id is not None:
            summaries = [payroll_service.calculate_monthly_payroll(user_id, month, year)]
            skipped = []
        else:
            result = payroll_service.calculate_all_payroll(month, year)
            summaries, skipped = result["summaries"], result["skipped"]
    except LedgerError as e:
        raise click.ClickException(e.message)

    for s in summaries:
        click.echo(
            f"User {s.user_id}: {s.to_dict()['total_hours']}h "
            f"(OT {s.to_dict()['overtime_hours']}h) -> {cents_to_display(s.total_pay_cents)}"
        )
    for item in skipped:
        click.echo(f"SKIP user {item['user_id']}: {item['reason']}")
    click.echo(f"PASS {len(summaries)} payroll summaries calculated for {month:02d}/{year}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(payroll_group)
