# Overview: Organization (tenant) administration.

"""
Organization Service

Organizations are created by superadmins and never deleted;
deactivation is the only way out. A brf_admin manages the settings of
its own organization (MANAGE_ORGANIZATION) but cannot change is_active.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Organization, UserProfile
from ..validation import ConflictError, ModelValidationPolicy, normalize_email, validate_payload
from .permission_service import require_capability
from .role_resolver import RoleContext
from .tenant_service import TenantAccessError, has_cross_org_access

logger = logging.getLogger(__name__)


ORGANIZATION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "org_number", "address", "postal_code", "city", "contact_email", "contact_phone"},
    required_on_create={"name"},
)
SUPERADMIN_ORGANIZATION_POLICY = ModelValidationPolicy(
    writable_fields=ORGANIZATION_POLICY.writable_fields | {"is_active"},
    required_on_create={"name"},
)


def _normalize(patch: dict) -> dict:
    if patch.get("contact_email"):
        patch["contact_email"] = normalize_email(patch["contact_email"], "contact_email")
    return patch


def _check_org_number_free(org_number: str | None, exclude_id: int | None = None) -> None:
    if not org_number:
        return
    query = db.session.query(Organization).filter(Organization.org_number == org_number)
    if exclude_id is not None:
        query = query.filter(Organization.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Organization number {org_number} is already registered")


def create_organization(payload: dict) -> Organization:
    """Unchecked creation, for superadmin routes and the CLI."""
    patch = _normalize(validate_payload(
        model=Organization, payload=payload, policy=SUPERADMIN_ORGANIZATION_POLICY, partial=False,
    ))
    _check_org_number_free(patch.get("org_number"))

    org = Organization(**patch)
    db.session.add(org)
    db.session.commit()
    logger.info("organization %s created: %s", org.id, org.name, extra={"org_id": org.id})
    return org


def create_organization_as(actor: RoleContext, payload: dict) -> Organization:
    require_capability(actor, "ADMIN_CROSS_ORGANIZATION")
    return create_organization(payload)


def list_organizations(actor: RoleContext) -> list[Organization]:
    """Superadmins see every organization, everyone else only their own."""
    require_capability(actor, "ACCESS_PORTAL")
    query = db.session.query(Organization)
    if not has_cross_org_access(actor):
        if actor.organization_id is None:
            return []
        query = query.filter(Organization.id == actor.organization_id)
    return query.order_by(Organization.name.asc(), Organization.id.asc()).all()


def get_organization(org_id: int, actor: RoleContext) -> Organization:
    require_capability(actor, "ACCESS_PORTAL")
    if not has_cross_org_access(actor) and org_id != actor.organization_id:
        raise TenantAccessError("Organization not found")
    org = db.session.get(Organization, org_id)
    if org is None:
        raise TenantAccessError("Organization not found")
    return org


def update_organization(org_id: int, actor: RoleContext, payload: dict) -> Organization:
    require_capability(actor, "MANAGE_ORGANIZATION")
    org = get_organization(org_id, actor)

    policy = SUPERADMIN_ORGANIZATION_POLICY if has_cross_org_access(actor) else ORGANIZATION_POLICY
    patch = _normalize(validate_payload(model=Organization, payload=payload, policy=policy, partial=True))
    if "org_number" in patch:
        _check_org_number_free(patch["org_number"], exclude_id=org.id)

    for key, value in patch.items():
        setattr(org, key, value)
    db.session.commit()
    return org


def list_members(org_id: int, actor: RoleContext) -> list[dict]:
    """Profiles of an organization with their roles."""
    require_capability(actor, "MANAGE_ORGANIZATION")
    get_organization(org_id, actor)

    profiles = (
        db.session.query(UserProfile)
        .filter(UserProfile.org_id == org_id)
        .order_by(UserProfile.last_name.asc(), UserProfile.first_name.asc(), UserProfile.id.asc())
        .all()
    )
    members = []
    for profile in profiles:
        data = profile.to_dict()
        data["roles"] = sorted(r.role for r in profile.user.user_roles)
        members.append(data)
    return members
