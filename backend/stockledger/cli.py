# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--sample-data]
#   Idempotent bootstrap: creates tables and the default users (admin, manager, clerk).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system wipe --yes
#   Clear products, sales, sessions and logs but keep users.
#
# Users:
# - python -m flask users list
# - python -m flask users create --username ana --password "secret1" --role clerk
#
# Permissions:
# - python -m flask perms list [--role manager]
#
# Catalog:
# - python -m flask catalog seed
#   Load the sample hardware products into an empty catalog.
# - python -m flask catalog stats
#
# Backup:
# - python -m flask backup export [--out PATH]
# - python -m flask backup import PATH --yes
#
# Maintenance:
# - python -m flask maintenance cleanup-security-events --retention-days 30
#   Delete security events older than the retention window.

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db, get_ledger
from .models import AuditEvent, AuthSession, LedgerSequence, LoginThrottle, Product, Sale, SecurityEvent, User
from .permissions import DEFAULT_ROLE_PERMISSIONS, ROLES, get_permission_definition
from .services import auth_service, backup_service, security_service
from .services.auth_service import PasswordValidationError
from .services.backup_service import ImportValidationError
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--sample-data', is_flag=True, help='Seed sample products into an empty catalog')
@with_appcontext
def init_system(sample_data):
    """
    Initialize the terminal: schema and default users.

    Creates:
    - All tables (if missing)
    - Users: admin / CG2024, manager / FERR2024, clerk / VENTA2024

    SECURITY: Change passwords immediately after first login!
    """
    click.echo("START Initializing stockledger...")

    db.create_all()
    click.echo("PASS Schema ready")

    created = auth_service.ensure_default_users(rounds=current_app.config["BCRYPT_ROUNDS"])
    if created:
        click.echo(f"PASS Created users: {', '.join(created)}")
    else:
        click.echo("PASS Default users already exist")

    if sample_data:
        ledger = get_ledger()
        ledger.reload()
        if ledger.get_all_products():
            click.echo("SKIP Catalog not empty, sample data not loaded")
        else:
            added = ledger.seed_sample_data()
            click.echo(f"PASS Seeded {len(added)} sample products")

    click.echo("\nDefault credentials:")
    for username, password, role in auth_service.DEFAULT_USERS:
        click.echo(f"   {username:<8} -> {password:<10} ({role})")


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


@system_group.command('wipe')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def wipe_data(yes):
    """
    Clear catalog and log data while keeping users.

    Removes: products, sales, the product id sequence, audit and security
    events, sessions and the lockout counter.
    """
    if not yes:
        click.confirm("WARN This will DELETE all catalog data. Are you sure?", abort=True)

    click.echo("WIPE  Clearing catalog data...")
    for model in (Sale, Product, LedgerSequence, AuditEvent, SecurityEvent, AuthSession, LoginThrottle):
        count = db.session.query(model).delete()
        click.echo(f"   {model.__tablename__:<20} {count}")
    db.session.commit()
    click.echo("PASS Wipe complete")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, password, role):
    """Create a user."""
    try:
        user = auth_service.create_user(username, password, role, rounds=current_app.config["BCRYPT_ROUNDS"])
    except (PasswordValidationError, ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}", err=True)
        raise SystemExit(1)
    click.echo(f"PASS Created user {user.username} ({user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 70)
    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<10} {'Active':<8} {'Last login'}")
    click.echo("=" * 70)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        last_login = user.to_dict()["last_login_at"] or "never"
        click.echo(f"{user.id:<5} {user.username:<20} {user.role:<10} {active_str:<8} {last_login}")
    click.echo("=" * 70 + "\n")


@click.group('perms')
def perms_group():
    """Permission inspection."""


@perms_group.command('list')
@click.option('--role', type=click.Choice(list(ROLES)), help='Only this role')
def list_permissions(role):
    """List permissions granted to each role."""
    for role_name in ([role] if role else ROLES):
        click.echo(f"\n{role_name}:")
        for code in sorted(DEFAULT_ROLE_PERMISSIONS[role_name]):
            definition = get_permission_definition(code)
            name = definition["name"] if definition else code
            click.echo(f"   {code:<20} {name}")


@click.group('catalog')
def catalog_group():
    """Catalog inspection and seeding."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Load the sample products into an empty catalog."""
    ledger = get_ledger()
    ledger.reload()
    if ledger.get_all_products():
        click.echo("SKIP Catalog not empty")
        return
    added = ledger.seed_sample_data()
    click.echo(f"PASS Seeded {len(added)} sample products")


@catalog_group.command('stats')
@with_appcontext
def catalog_stats():
    """Print inventory statistics."""
    stats = get_ledger().get_statistics()
    click.echo(f"Products:        {stats.total_products}")
    click.echo(f"Categories:      {stats.categories_count}")
    click.echo(f"Low stock:       {stats.low_stock_count}")
    click.echo(f"Inventory value: {stats.total_value:.2f}")
    click.echo(f"Average value:   {stats.average_product_value:.2f}")
    for p in stats.low_stock_products:
        click.echo(f"   LOW {p.sku:<12} {p.quantity:>6} / min {p.min_stock}")


@click.group('backup')
def backup_group():
    """Backup export and import."""


@backup_group.command('export')
@click.option('--out', 'out_path', type=click.Path(dir_okay=False), help='Output file (default: generated name)')
@with_appcontext
def export_backup(out_path):
    data = backup_service.export_data(get_ledger())
    path = out_path or backup_service.generate_backup_filename()
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    meta = data["metadata"]
    click.echo(f"PASS Exported {meta['totalProducts']} products and {meta['totalSales']} sales to {path}")


@backup_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def import_backup(path, yes):
    """Replace all products and sales with a backup file."""
    if not yes:
        click.confirm("WARN This will REPLACE all products and sales. Are you sure?", abort=True)

    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            click.echo(f"FAIL Not a JSON document: {e}", err=True)
            raise SystemExit(1)

    try:
        summary = backup_service.import_data(get_ledger(), data)
    except ImportValidationError as e:
        click.echo("FAIL Invalid import data:", err=True)
        for error in e.errors:
            click.echo(f"   {error}", err=True)
        raise SystemExit(1)
    click.echo(f"PASS Imported {summary['products']} products and {summary['sales']} sales")


@click.group('maintenance')
def maintenance_group():
    """Maintenance utilities."""


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=None, help='Days of history to keep')
@with_appcontext
def cleanup_security_events_cli(retention_days):
    days = retention_days if retention_days is not None else current_app.config["SECURITY_LOG_RETENTION_DAYS"]
    deleted = security_service.cleanup_security_events(retention_days=days)
    click.echo(f"PASS Deleted {deleted} security events older than {days} days")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(backup_group)
    app.cli.add_command(maintenance_group)
