# Overview: Identity & Role Resolver - principal id -> organization + role set.

"""
Role Resolver

Read-only aggregation of UserProfile.org_id and user_roles for one
principal. Invoked only after authentication, so user_id is never None.

A principal without a profile is "unprovisioned": empty roles and no
organization. That is a normal result, not an error; callers render a
"no permissions yet" view for it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..extensions import db
from ..models import UserProfile, UserRole
from ..permissions import Role, is_valid_role
from . import access_policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleContext:
    user_id: int
    organization_id: int | None
    roles: frozenset[str]
    provisioned: bool

    @property
    def has_portal_access(self) -> bool:
        return bool(self.roles)

    @property
    def is_superadmin(self) -> bool:
        return Role.SUPERADMIN in self.roles

    def can(self, capability: str, *, invoice_status: str | None = None) -> bool:
        return access_policy.can(self.roles, capability, invoice_status=invoice_status)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "roles": sorted(self.roles),
            "provisioned": self.provisioned,
            "capabilities": access_policy.capabilities_for(self.roles),
        }


def unprovisioned(user_id: int) -> RoleContext:
    return RoleContext(user_id=user_id, organization_id=None, roles=frozenset(), provisioned=False)


def get_role_names(user_id: int) -> frozenset[str]:
    """All known role strings assigned to a principal."""
    rows = db.session.query(UserRole.role).filter_by(user_id=user_id).all()

    roles = set()
    for (role,) in rows:
        if is_valid_role(role):
            roles.add(role)
        else:
            logger.warning("Ignoring unknown role %r assigned to user %s", role, user_id)
    return frozenset(roles)


def resolve(user_id: int) -> RoleContext:
    profile = db.session.query(UserProfile).filter_by(user_id=user_id).first()
    if profile is None:
        return unprovisioned(user_id)

    return RoleContext(
        user_id=user_id,
        organization_id=profile.org_id,
        roles=get_role_names(user_id),
        provisioned=True,
    )
