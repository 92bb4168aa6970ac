# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/smerp/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-password "Password123!"]
#   Idempotent bootstrap: creates tables, the admin user and the posting accounts.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username kim --name Kim --password "Password123!" --role staff
#
# Inventory and notifications:
# - python -m flask inventory verify [--item-id 3]
#   Replay the ledger; exits non-zero on any discrepancy.
# - python -m flask notifications scan
#   Create stock_low / unpaid notifications (safe to repeat, cron-friendly).
#
# Maintenance:
# - python -m flask maintenance backup
# - python -m flask maintenance scheduled-backup
#   Back up only when the stored schedule says one is due (cron-friendly).
# - python -m flask maintenance cleanup-sessions --retention-days 30

import click
from flask.cli import with_appcontext

from .errors import SmerpError
from .extensions import db
from .models import User
from .services.auth_service import USER_ROLES, create_user
from .services import (
    accounting_service,
    backup_service,
    inventory_service,
    notification_service,
    permission_service,
    session_service,
    settings_service,
)
from .time_utils import utcnow


DEFAULT_ADMIN_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-password', default=DEFAULT_ADMIN_PASSWORD, help='Password for the admin user')
@with_appcontext
def init_system(admin_password):
    """
    Initialize SMERP: tables, admin user with full permissions, posting accounts.

    Existing rows are left alone, so running it twice is harmless.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing SMERP...")
    db.create_all()

    admin = db.session.query(User).filter_by(username="admin").first()
    if admin:
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        try:
            admin = create_user("admin", admin_password, "Administrator", role="admin", commit=False)
        except SmerpError as e:
            db.session.rollback()
            raise click.ClickException(f"Failed to create admin: {e}")
        click.echo("PASS Created user: admin with role 'admin'")

    permission_service.grant_default_permissions(admin.id, full=True)

    created = accounting_service.ensure_posting_accounts()
    for account in created:
        click.echo(f"PASS Created account {account.code} {account.name}")
    if not created:
        click.echo("WARN  Posting accounts already exist, skipping...")

    db.session.commit()

    click.echo("\n" + "="*60)
    click.echo("DONE SMERP Initialized Successfully!")
    click.echo("="*60)
    if admin_password == DEFAULT_ADMIN_PASSWORD:
        click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
        click.echo(f"   admin -> {DEFAULT_ADMIN_PASSWORD}")
    click.echo("")


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


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', default=None, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(USER_ROLES), default='staff', show_default=True, help='Role')
@with_appcontext
def create_user_cli(username, name, email, password, role):
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
        user = create_user(username, password, name, email=email, role=role, commit=False)
        permission_service.grant_default_permissions(user.id, full=(role == "admin"))
        db.session.commit()
    except SmerpError as e:
        db.session.rollback()
        raise click.ClickException(f"Failed to create user: {e}")

    click.echo(f"PASS Created user: {username} with role '{role}'")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<30} {'Active':<8} {'Role'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.name:<30} {active_str:<8} {user.role}")
    click.echo("="*80 + "\n")


@click.group('inventory')
def inventory_group():
    """Inventory ledger commands."""


@inventory_group.command('verify')
@click.option('--item-id', type=int, default=None, help='Check a single item')
@with_appcontext
def verify_inventory_cli(item_id):
    """Replay the inventory history and report discrepancies."""
    problems = inventory_service.verify_ledger(item_id)
    if not problems:
        click.echo("PASS Inventory ledger is consistent.")
        return

    for problem in problems:
        if problem["kind"] == "row":
            click.echo(
                f"FAIL history #{problem['history_id']} item {problem['item_id']}: "
                f"{problem['quantity_before']} + {problem['change']} != {problem['quantity_after']}"
            )
        else:
            click.echo(
                f"FAIL item {problem['item_id']}: history sums to {problem['replayed_quantity']}, "
                f"stored quantity is {problem['stored_quantity']}"
            )
    raise click.ClickException(f"{len(problems)} ledger discrepancies found")


@click.group('notifications')
def notifications_group():
    """Notification commands."""


@notifications_group.command('scan')
@with_appcontext
def scan_notifications_cli():
    """Create stock_low and unpaid notifications for current conditions."""
    created = notification_service.scan_notifications()
    click.echo(f"Created {len(created)} notification(s).")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('backup')
@with_appcontext
def backup_cli():
    """Write a verified snapshot of the database to BACKUP_DIR."""
    now = utcnow()
    try:
        info = backup_service.create_backup(now)
    except SmerpError as e:
        raise click.ClickException(str(e))
    settings_service.record_backup_time(now)
    click.echo(f"PASS Backup written: {info['filename']} ({info['size_bytes']} bytes)")


@maintenance_group.command('scheduled-backup')
@with_appcontext
def scheduled_backup_cli():
    """Back up if the backup schedule is enabled and an interval has passed."""
    try:
        info = backup_service.run_scheduled_backup()
    except SmerpError as e:
        raise click.ClickException(str(e))
    if info is None:
        click.echo("No backup due.")
        return
    click.echo(f"PASS Backup written: {info['filename']}")
    for filename in info["pruned"]:
        click.echo(f"DELETE  Pruned {filename}")


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """
    Delete expired or revoked session tokens.

    Default retention: 30 days.
    """
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(notifications_group)
    app.cli.add_command(maintenance_group)
