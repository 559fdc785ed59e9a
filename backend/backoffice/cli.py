# Overview: Flask CLI command groups for bootstrap, scheduled sweeps and inspection.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to backoffice (PowerShell: $env:FLASK_APP="backoffice").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--branch "Main Branch"] [--admin admin]
#   Idempotent: creates tables, a default branch, an admin user and the branch balance row.
#
# Stock (scheduler entry point):
# - python -m flask stock sweep-expiry [--today 2026-01-31]
#   Raise expiry alerts for batches expiring within EXPIRY_ALERT_WINDOW_DAYS. Safe to re-run.
#
# Branch balances:
# - python -m flask balances show --branch-id 1
# - python -m flask balances reset --branch-id 1 --yes
#   Administrative reset of the branch balance to zero.
#
# Shifts:
# - python -m flask shifts list --branch-id 1 [--status OPEN]
#
# Goals:
# - python -m flask goals create --user-id 3 --target-cents 150000 [--branch-id 1]
#   Start a sales goal; shift closes feed its progress.

from datetime import date

import click
from flask.cli import with_appcontext

from .errors import BackofficeError
from .extensions import db
from .models import Branch, User
from .services import balance_service, expiry_service, goal_service, shift_service
from .services.concurrency import run_with_retry


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--branch', 'branch_name', default='Main Branch', help='Default branch name')
@click.option('--branch-code', default='MAIN', help='Default branch code')
@click.option('--admin', 'admin_username', default='admin', help='Admin username')
@with_appcontext
def init_system(branch_name, branch_code, admin_username):
    """Create tables, a default branch, an admin user and an empty branch balance."""
    click.echo("START Initializing back office...")
    db.create_all()

    branch = db.session.query(Branch).filter_by(code=branch_code).first()
    if not branch:
        branch = Branch(name=branch_name, code=branch_code, is_active=True)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    admin = db.session.query(User).filter_by(username=admin_username).first()
    if not admin:
        admin = User(username=admin_username, full_name="Administrator", role="ADMIN", branch_id=branch.id)
        db.session.add(admin)
        db.session.commit()
        click.echo(f"PASS Created admin user: {admin.username} (ID: {admin.id})")
    else:
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")

    balance_service.ensure_branch_balance(branch.id)
    db.session.commit()
    click.echo("DONE Back office initialized")


@click.group('stock')
def stock_group():
    """Stock maintenance commands."""


@stock_group.command('sweep-expiry')
@click.option('--today', 'today_str', default=None, help='Business date to sweep from (YYYY-MM-DD)')
@with_appcontext
def sweep_expiry(today_str):
    """Raise expiry alerts and notify admins (idempotent)."""
    today = None
    if today_str:
        try:
            today = date.fromisoformat(today_str)
        except ValueError:
            raise click.BadParameter("must be YYYY-MM-DD", param_hint="--today")

    result = run_with_retry(lambda: expiry_service.sweep_expiring_batches(today=today))
    click.echo(
        f"PASS Sweep {result['today']}: {result['batches_in_window']} batches in window, "
        f"{result['alerts_created']} new alerts, {result['notifications_sent']} notifications"
    )


@click.group('balances')
def balances_group():
    """Branch balance inspection and reset."""


@balances_group.command('show')
@click.option('--branch-id', type=int, required=True)
@with_appcontext
def show_balance(branch_id):
    try:
        balance = balance_service.get_branch_balance(branch_id)
    except BackofficeError as e:
        raise click.ClickException(e.message)
    click.echo(f"Branch {branch_id}")
    click.echo(f"  accumulated: {balance['accumulated_balance_cents'] / 100:.2f}")
    click.echo(f"  income:      {balance['total_income_cents'] / 100:.2f}")
    click.echo(f"  outflow:     {balance['total_outflow_cents'] / 100:.2f}")


@balances_group.command('reset')
@click.option('--branch-id', type=int, required=True)
@click.option('--yes', is_flag=True, help='Confirm the reset')
@with_appcontext
def reset_balance(branch_id, yes):
    """Reset a branch balance to zero (administrative)."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    try:
        run_with_retry(lambda: balance_service.reset_branch_balance(branch_id))
    except BackofficeError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Branch {branch_id} balance reset to zero")


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--branch-id', type=int, required=True)
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED'], case_sensitive=False), default=None)
@with_appcontext
def list_shifts(branch_id, status):
    shifts = shift_service.list_branch_shifts(branch_id, status=status)
    if not shifts:
        click.echo("No shifts found")
        return
    for s in shifts:
        closing = f"{s.closing_balance_cents / 100:.2f}" if s.closing_balance_cents is not None else "-"
        click.echo(
            f"{s.id:>5}  {s.status:<6}  user={s.user_id:<4}  "
            f"opening={s.opening_balance_cents / 100:.2f}  closing={closing}"
        )


@click.group('goals')
def goals_group():
    """Sales goal commands."""


@goals_group.command('create')
@click.option('--user-id', type=int, required=True)
@click.option('--target-cents', type=int, required=True, help='Target in cents, e.g. 150000')
@click.option('--branch-id', type=int, default=None)
@with_appcontext
def create_goal(user_id, target_cents, branch_id):
    try:
        goal = run_with_retry(lambda: goal_service.create_goal(user_id, branch_id, target_cents))
    except BackofficeError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created goal {goal.id} for user {user_id}: target {goal.target_cents / 100:.2f}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(balances_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(goals_group)
