# Overview: Flask CLI command groups for bootstrap and tenant/user inspection.

# backend/laundrypro/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: super admin plus a demo business with owner, store and settings.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions
#   Delete expired or revoked sessions older than 30 days.
#
# Business (tenant) management:
# - python -m flask businesses list
# - python -m flask businesses create --name "Sparkle Laundry" --email owner@sparkle.in --store "Koramangala"
#   New businesses start on the trial plan.
#
# User inspection/bootstrap:
# - python -m flask users list [--business-id 1]
# - python -m flask users create --business-id 1 --name "Asha" --email asha@sparkle.in --role STAFF
#   Prompts for the password. Respects the plan's max_staff.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Business, Store, User
from .models.auth import USER_ROLES
from .services.auth_service import create_user
from .services.session_service import cleanup_expired_sessions
from .services.tenant_service import create_business
from .validation import ConflictError, NotFoundError, ValidationError


DEMO_PASSWORD = "Password123"
SUPER_ADMIN_EMAIL = "admin@laundrypro.local"
DEMO_OWNER_EMAIL = "owner@demo.laundrypro.local"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--business', 'business_name', default='Demo Laundry', help='Demo business name')
@with_appcontext
def init_system(business_name):
    """
    Initialize LaundryPro: super admin, demo business, store and owner.

    Safe to re-run; existing rows are reused.

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing LaundryPro...")

    if db.session.query(User).filter_by(email=SUPER_ADMIN_EMAIL).first():
        click.echo(f"WARN  Super admin '{SUPER_ADMIN_EMAIL}' already exists, skipping...")
    else:
        create_user(
            name="Platform Admin",
            email=SUPER_ADMIN_EMAIL,
            password=DEMO_PASSWORD,
            business_id=None,
            role="OWNER",
            is_super_admin=True,
        )
        click.echo(f"PASS Created super admin: {SUPER_ADMIN_EMAIL}")

    business = db.session.query(Business).filter_by(name=business_name).first()
    if business:
        click.echo(f"PASS Using existing business: {business.name} (ID: {business.id})")
    else:
        business = create_business(business_name, store_name="Main Store")
        click.echo(f"PASS Created business: {business.name} (ID: {business.id}, trial)")

    store = db.session.query(Store).filter_by(business_id=business.id).first()
    if not store:
        store = Store(business_id=business.id, name="Main Store")
        db.session.add(store)
        db.session.commit()
    click.echo(f"PASS Store: {store.name} (ID: {store.id})")

    if db.session.query(User).filter_by(email=DEMO_OWNER_EMAIL).first():
        click.echo(f"WARN  Owner '{DEMO_OWNER_EMAIL}' already exists, skipping...")
    else:
        create_user(
            name="Demo Owner",
            email=DEMO_OWNER_EMAIL,
            password=DEMO_PASSWORD,
            business_id=business.id,
            role="OWNER",
            store_id=store.id,
        )
        click.echo(f"PASS Created owner: {DEMO_OWNER_EMAIL}")

    click.echo("\n" + "=" * 60)
    click.echo("DONE LaundryPro Initialized Successfully!")
    click.echo("=" * 60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   super admin -> {SUPER_ADMIN_EMAIL} / {DEMO_PASSWORD}")
    click.echo(f"   owner       -> {DEMO_OWNER_EMAIL} / {DEMO_PASSWORD}")
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


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired or revoked sessions older than 30 days."""
    count = cleanup_expired_sessions()
    click.echo(f"PASS Deleted {count} stale session(s)")


# =============================================================================
# BUSINESS MANAGEMENT COMMANDS (MULTI-TENANT)
# =============================================================================

@click.group('businesses')
def businesses_group():
    """Business (tenant) management commands."""


@businesses_group.command('list')
@with_appcontext
def list_businesses():
    """List all businesses with plan state."""
    businesses = db.session.query(Business).order_by(Business.id).all()

    if not businesses:
        click.echo("No businesses found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Name':<30} {'Plan':<14} {'Status':<11} {'Active':<8} {'Stores':<8} {'Users'}")
    click.echo("=" * 90)

    for business in businesses:
        store_count = db.session.query(Store).filter_by(business_id=business.id).count()
        user_count = db.session.query(User).filter_by(business_id=business.id).count()
        active_str = "Yes" if business.is_active else "No"
        click.echo(
            f"{business.id:<5} {business.name[:30]:<30} {business.plan_type:<14} "
            f"{business.plan_status:<11} {active_str:<8} {store_count:<8} {user_count}"
        )

    click.echo("=" * 90 + "\n")


@businesses_group.command('create')
@click.option('--name', required=True, help='Business name')
@click.option('--email', help='Contact email')
@click.option('--phone', help='Contact phone')
@click.option('--store', 'store_name', help='Name of the first store')
@with_appcontext
def create_business_cli(name, email, phone, store_name):
    """Create a new business (tenant) on the trial plan."""
    try:
        business = create_business(name, email=email, phone=phone, store_name=store_name)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created business: {business.name} (ID: {business.id})")
    click.echo(f"     Trial ends: {business.to_dict()['trial_ends_at']}")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--business-id', type=int, help='Filter by business ID')
@with_appcontext
def list_users(business_id):
    """List users with role and active status."""
    query = db.session.query(User)
    if business_id:
        query = query.filter_by(business_id=business_id)
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Business':<10} {'Role':<8} {'Super':<7} {'Active'}")
    click.echo("=" * 90)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.email[:35]:<35} {str(user.business_id or '-'):<10} {user.role:<8} "
            f"{'Yes' if user.is_super_admin else 'No':<7} {'Yes' if user.is_active else 'No'}"
        )
    click.echo("=" * 90 + "\n")


@users_group.command('create')
@click.option('--business-id', type=int, required=True, help='Business ID')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), default='STAFF', help='Role')
@click.option('--store-id', type=int, help='Home store')
@with_appcontext
def create_user_cli(business_id, name, email, password, role, store_id):
    """
    Create a user inside a business.

    Password must be at least 8 characters with a letter and a digit.
    """
    try:
        user = create_user(
            name=name,
            email=email,
            password=password,
            business_id=business_id,
            role=role,
            store_id=store_id,
        )
    except (ValidationError, ConflictError, NotFoundError) as e:
        click.echo(f"FAIL Failed to create user: {e.args[0] if e.args else e}")
        return

    click.echo(f"PASS Created user: {user.email} with role '{user.role}'")
    click.echo(f"     Business ID: {business_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(businesses_group)
    app.cli.add_command(users_group)
