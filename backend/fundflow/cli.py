# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/fundflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init --name "한빛교회" --code HANBIT --admin-email admin@example.org --admin-password "..."
#   Idempotent bootstrap: tenant + root unit, standard role catalogue, SUPER_ADMIN account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenants:
# - python -m flask tenants list
# - python -m flask tenants create --name "한빛교회" --code HANBIT
#
# Roles:
# - python -m flask roles seed --tenant-id 1
#   Create the standard role catalogue (existing names are left alone).
# - python -m flask roles list --tenant-id 1
#   List roles with the authority tier each name resolves to.
#
# Authority:
# - python -m flask authority resolve "회계"
# - python -m flask authority mappings
#
# Accounts:
# - python -m flask accounts list [--tenant-id 1]
# - python -m flask accounts create-admin --tenant-id 1 --email admin@example.org --name "관리자"
#
# Notifications:
# - python -m flask notifications pending [--limit 50]
# - python -m flask notifications mark-delivered 12

import click
from flask.cli import with_appcontext

from .authority import all_role_mappings, resolve_authority
from .errors import FundflowError
from .extensions import db
from .models import Tenant, UserAccount
from .services import credential_service, hierarchy_service, notification_service
from .services.credential_service import CredentialValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--name', 'tenant_name', default='Default Church', help='Tenant (organization) name')
@click.option('--code', 'tenant_code', default='DEFAULT', help='Tenant code')
@click.option('--admin-email', default='admin@fundflow.local', help='SUPER_ADMIN login email')
@click.option('--admin-name', default='Administrator', help='SUPER_ADMIN display name')
@click.option('--admin-password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def init_system(tenant_name, tenant_code, admin_email, admin_name, admin_password):
    """
    Initialize a tenant: root unit, standard roles and an administrator.

    Safe to run twice; existing records are reported and kept.
    """
    click.echo("START Initializing fundflow...")

    tenant = db.session.query(Tenant).filter_by(code=tenant_code).first()
    if not tenant:
        tenant = hierarchy_service.create_tenant(tenant_name, tenant_code)
        click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")
    else:
        click.echo(f"PASS Using existing tenant: {tenant.name} (ID: {tenant.id})")

    root = hierarchy_service.get_root_unit(tenant.id)
    click.echo(f"PASS Root unit: {root.name} (ID: {root.id})")

    created = hierarchy_service.seed_standard_roles(tenant.id)
    click.echo(f"PASS Standard roles: {created} created")

    existing = db.session.query(UserAccount).filter_by(email=admin_email.strip().lower()).first()
    if existing:
        click.echo(f"WARN  Account '{existing.email}' already exists, skipping...")
    else:
        try:
            account = credential_service.create_admin_account(
                tenant_id=tenant.id,
                email=admin_email,
                name=admin_name,
                credential=admin_password,
            )
            click.echo(f"PASS Created SUPER_ADMIN: {account.email}")
        except CredentialValidationError as e:
            click.echo(f"FAIL Password validation failed: {e.message}")
            raise SystemExit(1)

    click.echo("DONE fundflow initialized")


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
    click.echo("PASS Database reset complete")


@click.group('tenants')
def tenants_group():
    """Tenant management."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    tenants = db.session.query(Tenant).order_by(Tenant.id.asc()).all()
    if not tenants:
        click.echo("No tenants found.")
        return
    for tenant in tenants:
        status = "active" if tenant.is_active else "inactive"
        click.echo(f"{tenant.id:>4}  {tenant.code or '-':<12} {tenant.name} ({status})")


@tenants_group.command('create')
@click.option('--name', required=True)
@click.option('--code', default=None)
@click.option('--root-name', default=None, help='Root unit name (defaults to the tenant name)')
@with_appcontext
def create_tenant(name, code, root_name):
    try:
        tenant = hierarchy_service.create_tenant(name, code, root_unit_name=root_name)
    except FundflowError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id})")


@click.group('roles')
def roles_group():
    """Organization role catalogue."""


@roles_group.command('seed')
@click.option('--tenant-id', type=int, required=True)
@with_appcontext
def seed_roles(tenant_id):
    created = hierarchy_service.seed_standard_roles(tenant_id)
    click.echo(f"PASS {created} roles created")


@roles_group.command('list')
@click.option('--tenant-id', type=int, required=True)
@with_appcontext
def list_roles(tenant_id):
    for role in hierarchy_service.list_roles(tenant_id):
        profile = resolve_authority(role.name)
        flag = "" if role.is_active else " (inactive)"
        click.echo(
            f"{role.id:>4}  {role.name:<10} level={role.level:<4} tier={profile.authority_tier} "
            f"system_role={profile.system_role}{flag}"
        )


@click.group('authority')
def authority_group():
    """Role-name to authority resolution."""


@authority_group.command('resolve')
@click.argument('role_name')
def resolve(role_name):
    profile = resolve_authority(role_name)
    click.echo(f"role_name:      {profile.role_name}")
    click.echo(f"system_role:    {profile.system_role}")
    click.echo(f"authority_tier: {profile.authority_tier}")
    click.echo(f"needs_account:  {profile.needs_account}")
    click.echo(f"can_originate:  {profile.can_originate_request}")
    click.echo(f"description:    {profile.description}")


@authority_group.command('mappings')
def mappings():
    for profile in all_role_mappings():
        click.echo(f"{profile.authority_tier}  {profile.system_role:<22} {profile.role_name}")


@click.group('accounts')
def accounts_group():
    """Login account inspection and bootstrap."""


@accounts_group.command('list')
@click.option('--tenant-id', type=int, default=None)
@with_appcontext
def list_accounts(tenant_id):
    query = db.session.query(UserAccount)
    if tenant_id is not None:
        query = query.filter_by(tenant_id=tenant_id)
    accounts = query.order_by(UserAccount.id.asc()).all()
    if not accounts:
        click.echo("No accounts found.")
        return
    for account in accounts:
        flags = []
        if not account.is_active:
            flags.append("inactive")
        if account.must_change_credential:
            flags.append("must-change")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(f"{account.id:>4}  {account.email:<32} {account.system_role:<22} {account.name}{suffix}")


@accounts_group.command('create-admin')
@click.option('--tenant-id', type=int, required=True)
@click.option('--email', required=True)
@click.option('--name', required=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_admin(tenant_id, email, name, password):
    if db.session.get(Tenant, tenant_id) is None:
        click.echo(f"FAIL Tenant {tenant_id} not found")
        raise SystemExit(1)
    try:
        account = credential_service.create_admin_account(
            tenant_id=tenant_id, email=email, name=name, credential=password
        )
    except FundflowError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created SUPER_ADMIN: {account.email} (ID: {account.id})")


@click.group('notifications')
def notifications_group():
    """Notification outbox inspection."""


@notifications_group.command('pending')
@click.option('--limit', type=int, default=50)
@with_appcontext
def pending_notifications(limit):
    rows = notification_service.list_pending(limit)
    if not rows:
        click.echo("No pending notifications.")
        return
    for row in rows:
        click.echo(f"{row.id:>5}  {row.template:<20} person={row.person_id} account={row.account_id}")


@notifications_group.command('mark-delivered')
@click.argument('notification_id', type=int)
@with_appcontext
def mark_delivered(notification_id):
    if notification_service.mark_delivered(notification_id):
        click.echo(f"PASS Notification {notification_id} marked delivered")
    else:
        click.echo(f"WARN Notification {notification_id} not found or already delivered")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(roles_group)
    app.cli.add_command(authority_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(notifications_group)
