# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/brfportal/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init --org "BRF Exempel" --admin-email admin@example.se
#   Idempotent bootstrap: first organization plus a superadmin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organizations:
# - python -m flask orgs list
# - python -m flask orgs create --name "BRF Exempel" --org-number 769600-1234
#
# Users:
# - python -m flask users list [--org-id 1]
# - python -m flask users create-superadmin --email ops@example.se
#
# Invitations:
# - python -m flask invites create --org-id 1 --email board@example.se --role brf_admin
#   Prints the invitation token for delivery.
#
# Invoices:
# - python -m flask invoices verify [--org-id 1]
#   Check every invoice's status against its event log.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, User, UserProfile
from .permissions import ALL_ROLES, Role
from .services import invoice_lifecycle_service, session_service
from .services.auth_service import PasswordValidationError, assign_role, create_user, get_user_by_email
from .services.invitation_service import issue_invitation
from .services.organization_service import create_organization
from .validation import ConflictError, ValidationError


def _create_superadmin(email: str, password: str, org_id: int | None = None) -> User:
    """Principal + profile + superadmin role in one commit."""
    user = create_user(email, password, commit=False)
    db.session.add(UserProfile(user_id=user.id, org_id=org_id, email=user.email, first_name="Super", last_name="Admin"))
    assign_role(user.id, Role.SUPERADMIN, commit=False)
    db.session.commit()
    return user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Demo BRF', help='Organization name')
@click.option('--admin-email', default='admin@example.se', help='Superadmin email')
@click.option('--admin-password', default='Password123!', help='Superadmin password')
@with_appcontext
def init_system(org_name, admin_email, admin_password):
    """
    Initialize the portal: one organization and a superadmin.

    Further users join through invitations.
    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing portal...")

    org = db.session.query(Organization).first()
    if not org:
        org = create_organization({"name": org_name})
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    if get_user_by_email(admin_email):
        click.echo(f"PASS Superadmin already exists: {admin_email}")
    else:
        try:
            _create_superadmin(admin_email, admin_password, org.id)
        except (PasswordValidationError, ValidationError, ConflictError) as e:
            click.echo(f"FAIL Could not create superadmin: {e}")
            return
        click.echo(f"PASS Created superadmin: {admin_email}")

    click.echo("\nDONE Portal initialized.")


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


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Org number':<15} {'Active':<8} {'Members'}")
    click.echo("="*80)

    for org in orgs:
        member_count = db.session.query(UserProfile).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.org_number or '-':<15} {active_str:<8} {member_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--org-number', default=None, help='Registration number (unique)')
@with_appcontext
def create_org_cli(name, org_number):
    """Create a new organization (tenant)."""
    try:
        org = create_organization({"name": name, "org_number": org_number})
    except (ConflictError, ValidationError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id})")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-superadmin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--org-id', type=int, default=None, help='Home organization (optional)')
@with_appcontext
def create_superadmin_cli(email, password, org_id):
    """Create a platform superadmin (cross-organization access)."""
    try:
        user = _create_superadmin(email, password, org_id)
    except (PasswordValidationError, ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created superadmin: {user.email} (ID: {user.id})")


@users_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    """List all users with their roles."""
    query = db.session.query(User).outerjoin(UserProfile, UserProfile.user_id == User.id)
    if org_id:
        query = query.filter(UserProfile.org_id == org_id)

    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Org':<5} {'Email':<35} {'Active':<8} {'Roles'}")
    click.echo("="*90)

    for user in users:
        org = user.profile.org_id if user.profile and user.profile.org_id else "-"
        roles_str = ", ".join(sorted(r.role for r in user.user_roles)) or "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {org:<5} {user.email:<35} {active_str:<8} {roles_str}")

    click.echo("="*90 + "\n")


@click.group('invites')
def invites_group():
    """Invitation commands."""


@invites_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--email', required=True, help='Invitee email')
@click.option('--role', type=click.Choice(sorted(ALL_ROLES)), default=Role.BRF_USER, help='Role to grant')
@with_appcontext
def create_invite_cli(org_id, email, role):
    """Issue an invitation and print its token."""
    if not db.session.get(Organization, org_id):
        click.echo(f"FAIL Organization {org_id} not found")
        return
    try:
        invitation = issue_invitation(org_id, email, role)
    except (ConflictError, ValidationError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Invitation {invitation.id} for {invitation.email} ({invitation.role})")
    click.echo(f"TOKEN {invitation.token}")


@click.group('invoices')
def invoices_group():
    """Invoice inspection commands."""


@invoices_group.command('verify')
@click.option('--org-id', type=int, help='Limit to one organization')
@with_appcontext
def verify_invoices(org_id):
    """Check every invoice's cached status against its event log."""
    broken = invoice_lifecycle_service.find_inconsistent_invoices(org_id)
    if not broken:
        click.echo("PASS All invoice statuses match their event logs")
        return

    for invoice in broken:
        click.echo(f"FAIL Invoice {invoice.id} (org {invoice.org_id}): status '{invoice.status}' does not match events")
    raise SystemExit(1)


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired or revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} sessions")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(users_group)
    app.cli.add_command(invites_group)
    app.cli.add_command(invoices_group)
    app.cli.add_command(maintenance_group)
