# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/retailhub/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--store "Main Store"]
#   Idempotent bootstrap: creates tables, the default store and default users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
# - python -m flask users create --username admin --email admin@retailhub.local --password "Password123!" --role admin
#
# Licenses:
# - python -m flask licenses issue --type yearly --client-name "Acme" --client-email owner@acme.example
# - python -m flask licenses list [--status active]
# - python -m flask licenses expire
#   Sweep: flip every overdue active/suspended license to expired (schedule with cron).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Store, User
from .models.auth import USER_ROLES
from .models.licensing import LICENSE_STATUSES, LICENSE_TYPES
from .services import license_service
from .services.auth_service import PasswordValidationError, create_user
from .services.license_service import LicenseError
from .time_utils import to_utc_z
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--store', 'store_name', default='Main Store', help='Default store name')
@click.option('--store-code', default='MAIN', help='Default store code')
@with_appcontext
def init_system(store_name, store_code):
    """
    Initialize RetailHub: tables, default store and default users.

    Creates:
    - Default store (if none exists)
    - Users: admin/admin@retailhub.local, manager/manager@retailhub.local,
      cashier/cashier@retailhub.local
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing RetailHub...")
    db.create_all()

    store = db.session.query(Store).first()
    if not store:
        store = Store(name=store_name, code=store_code)
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    # Default password meets requirements:
    # - Minimum 8 characters
    # - Uppercase, lowercase, digit, special char
    default_password = "Password123!"

    for role in USER_ROLES:
        username = role
        email = f"{role}@retailhub.local"
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(
                username=username,
                email=email,
                password=default_password,
                role=role,
                store_id=store.id,
            )
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except (PasswordValidationError, ValueError) as e:
            click.echo(f"FAIL Failed to create user '{username}': {e}")

    click.echo("\nDONE RetailHub initialized.")
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for role in USER_ROLES:
        click.echo(f"   {role:<9} -> {role}@retailhub.local / {default_password}")


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
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(USER_ROLES), prompt=True, help='Role')
@click.option('--store-id', type=int, help='Home store (defaults to the first store)')
@with_appcontext
def create_user_cli(username, email, password, role, store_id):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter, one lowercase letter, one digit
      and one special character
    """
    if store_id is None:
        store = db.session.query(Store).first()
        store_id = store.id if store else None

    try:
        user = create_user(username=username, email=email, password=password, role=role, store_id=store_id)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {e}")
        return

    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}' (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<32} {'Role':<10} {'Store':<6} {'Active'}")
    click.echo("=" * 90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        store_str = str(user.store_id) if user.store_id else "-"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<32} {user.role:<10} {store_str:<6} {active_str}")
    click.echo("=" * 90 + "\n")


@click.group('licenses')
def licenses_group():
    """License issuing and maintenance commands."""


@licenses_group.command('issue')
@click.option('--type', 'license_type', type=click.Choice(LICENSE_TYPES), required=True)
@click.option('--client-name', required=True)
@click.option('--client-email', required=True)
@click.option('--max-users', type=int, default=1, show_default=True)
@click.option('--max-stores', type=int, default=1, show_default=True)
@click.option('--max-activations', type=int, help='Defaults to LICENSE_MAX_ACTIVATIONS_DEFAULT')
@click.option('--domain', 'domains', multiple=True, help='Allowed domain (repeatable)')
@click.option('--count', type=int, default=1, show_default=True, help='Issue a batch (1..100)')
@with_appcontext
def issue_license_cli(license_type, client_name, client_email, max_users, max_stores, max_activations, domains, count):
    """Issue one or more licenses and print their keys."""
    fields = {
        "license_type": license_type,
        "client_name": client_name,
        "client_email": client_email,
        "max_users": max_users,
        "max_stores": max_stores,
        "max_activations": max_activations,
        "allowed_domains": list(domains) or None,
        "created_by": "cli",
    }
    try:
        if count == 1:
            licenses = [license_service.create_license(**fields)]
        else:
            licenses = license_service.generate_batch(count, **fields)
    except (LicenseError, ValidationError) as e:
        click.echo(f"FAIL {e}")
        return

    for lic in licenses:
        expires = to_utc_z(lic.expires_at) if lic.expires_at else "never"
        click.echo(f"PASS {lic.license_key}  {lic.type:<8} {lic.client_name}  expires: {expires}")


@licenses_group.command('list')
@click.option('--status', type=click.Choice(LICENSE_STATUSES), help='Filter by status')
@with_appcontext
def list_licenses_cli(status):
    """List licenses, newest first."""
    licenses = license_service.list_licenses(status=status)

    if not licenses:
        click.echo("No licenses found.")
        return

    click.echo("\n" + "=" * 110)
    click.echo(f"{'ID':<5} {'Key':<21} {'Type':<9} {'Status':<10} {'Active':<8} {'Expires':<22} {'Client'}")
    click.echo("=" * 110)
    for lic in licenses:
        active = f"{len(lic.active_activations)}/{lic.max_activations}"
        expires = to_utc_z(lic.expires_at) if lic.expires_at else "never"
        click.echo(
            f"{lic.id:<5} {lic.license_key:<21} {lic.type:<9} {lic.status:<10} {active:<8} {expires:<22} "
            f"{lic.client_name} <{lic.client_email}>"
        )
    click.echo("=" * 110 + "\n")


@licenses_group.command('expire')
@with_appcontext
def expire_licenses_cli():
    """Flip every overdue active/suspended license to expired."""
    expired = license_service.expire_overdue_licenses()
    click.echo(f"Expired {expired} overdue license(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(licenses_group)
