"""
Tenant Validation and Scoping Helpers

Every invoice, vendor and attachment belongs to one organization. Reads
and writes are scoped to the actor's organization; superadmins (the
ADMIN_CROSS_ORGANIZATION capability) may reach any organization.

SECURITY INVARIANTS:
1. IDs from client input are validated against the actor's org before use
2. A record in another org is reported exactly like a missing record
3. Cross-tenant access attempts are logged as security events

USAGE:
    invoice = require_invoice_in_org(invoice_id, g.role_context)
    q = scoped_query(Vendor, g.role_context)
"""

from __future__ import annotations

from ..extensions import db
from ..models import Invoice, Organization, Vendor
from ..validation import optional_int
from . import access_policy
from .permission_service import log_security_event
from .role_resolver import RoleContext


class TenantAccessError(Exception):
    """Raised when a record is missing or belongs to another organization."""


def has_cross_org_access(context: RoleContext) -> bool:
    return access_policy.can(context.roles, "ADMIN_CROSS_ORGANIZATION")


def require_org_context(context: RoleContext) -> int:
    """
    Organization of the actor.

    Raises TenantAccessError for principals that are not assigned to an
    organization yet.
    """
    if context.organization_id is None:
        raise TenantAccessError("No organization assigned to this account")
    return context.organization_id


def resolve_target_org(context: RoleContext, requested_org_id: int | None = None) -> int:
    """
    Organization a write should land in.

    Regular users always write into their own organization; a superadmin
    may target another organization explicitly.
    """
    requested_org_id = optional_int(requested_org_id, "org_id")
    if requested_org_id is not None and requested_org_id != context.organization_id:
        if not has_cross_org_access(context):
            _log_cross_tenant_attempt(
                context,
                f"Requested org {requested_org_id} differs from own org {context.organization_id}",
            )
            raise TenantAccessError("Organization not found")
        validate_org_active(requested_org_id)
        return requested_org_id
    return require_org_context(context)


def _require_in_org(model, record_id: int, context: RoleContext, label: str):
    record = db.session.get(model, record_id)

    if record is None:
        _log_cross_tenant_attempt(context, f"{label} {record_id} not found")
        raise TenantAccessError(f"{label} not found")

    if has_cross_org_access(context):
        return record

    if context.organization_id is None or record.org_id != context.organization_id:
        _log_cross_tenant_attempt(
            context,
            f"{label} {record_id} belongs to org {record.org_id}, not {context.organization_id}",
        )
        raise TenantAccessError(f"{label} not found")  # Don't reveal it exists in another org

    return record


def require_invoice_in_org(invoice_id: int, context: RoleContext) -> Invoice:
    return _require_in_org(Invoice, invoice_id, context, "Invoice")


def require_vendor_in_org(vendor_id: int, context: RoleContext) -> Vendor:
    return _require_in_org(Vendor, vendor_id, context, "Vendor")


def validate_org_active(org_id: int) -> Organization:
    org = db.session.get(Organization, org_id)

    if not org:
        raise TenantAccessError("Organization not found")

    if not org.is_active:
        raise TenantAccessError("Organization is not active")

    return org


def scoped_query(model, context: RoleContext, org_id: int | None = None):
    """
    Base query for an org-owned model (must have org_id).

    Regular users are always pinned to their own organization. Superadmins
    see every organization unless org_id narrows it.
    """
    query = db.session.query(model)

    if has_cross_org_access(context):
        if org_id is not None:
            query = query.filter(model.org_id == org_id)
        return query

    own_org = require_org_context(context)
    return query.filter(model.org_id == own_org)


def _log_cross_tenant_attempt(context: RoleContext, reason: str) -> None:
    log_security_event(
        user_id=context.user_id,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        reason=reason,
        org_id=context.organization_id,
    )
