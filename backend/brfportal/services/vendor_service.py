# Overview: Organization-scoped supplier register.

"""
Vendor Service

Vendors are the suppliers invoices are billed by. They are scoped to one
organization; an invoice may reference a vendor of its own organization
only.

Reading requires VIEW_INVOICES, writing MANAGE_INVOICES.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Vendor
from ..validation import ModelValidationPolicy, normalize_email, validate_payload
from .permission_service import require_capability
from .role_resolver import RoleContext
from .tenant_service import require_vendor_in_org, resolve_target_org, scoped_query

logger = logging.getLogger(__name__)


VENDOR_POLICY = ModelValidationPolicy(
    writable_fields={"name", "org_number", "address", "bankgiro", "plusgiro", "email", "phone"},
    required_on_create={"name"},
)


def _normalize(patch: dict) -> dict:
    if patch.get("email"):
        patch["email"] = normalize_email(patch["email"])
    return patch


def list_vendors(actor: RoleContext, org_id: int | None = None) -> list[Vendor]:
    require_capability(actor, "VIEW_INVOICES")
    return scoped_query(Vendor, actor, org_id).order_by(Vendor.name.asc(), Vendor.id.asc()).all()


def get_vendor(vendor_id: int, actor: RoleContext) -> Vendor:
    require_capability(actor, "VIEW_INVOICES")
    return require_vendor_in_org(vendor_id, actor)


def create_vendor(actor: RoleContext, payload: dict, org_id: int | None = None) -> Vendor:
    require_capability(actor, "MANAGE_INVOICES")
    target_org = resolve_target_org(actor, org_id)

    patch = _normalize(validate_payload(model=Vendor, payload=payload, policy=VENDOR_POLICY, partial=False))
    vendor = Vendor(org_id=target_org, **patch)
    db.session.add(vendor)
    db.session.commit()

    logger.info("vendor %s created in org %s", vendor.id, target_org,
                extra={"org_id": target_org, "user_id": actor.user_id})
    return vendor


def update_vendor(vendor_id: int, actor: RoleContext, payload: dict) -> Vendor:
    require_capability(actor, "MANAGE_INVOICES")
    vendor = require_vendor_in_org(vendor_id, actor)

    patch = _normalize(validate_payload(model=Vendor, payload=payload, policy=VENDOR_POLICY, partial=True))
    for key, value in patch.items():
        setattr(vendor, key, value)
    db.session.commit()
    return vendor
