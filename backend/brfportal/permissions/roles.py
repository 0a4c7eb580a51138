# Overview: The fixed role vocabulary of the portal.

"""
Roles are stored as plain strings in user_roles.role and are
organization-agnostic: a role is interpreted in the context of the
organization on the holder's UserProfile.

superadmin  - platform operator, sees every organization
brf_admin   - administrator of one housing association (BRF)
brf_user    - board member / staff who reviews and attests invoices
"""


class Role:
    SUPERADMIN = "superadmin"
    BRF_ADMIN = "brf_admin"
    BRF_USER = "brf_user"


ALL_ROLES = frozenset({Role.SUPERADMIN, Role.BRF_ADMIN, Role.BRF_USER})

# Roles a brf_admin may hand out through invitations
ORGANIZATION_ASSIGNABLE_ROLES = frozenset({Role.BRF_ADMIN, Role.BRF_USER})


def is_valid_role(value) -> bool:
    return value in ALL_ROLES


def normalize_roles(values) -> frozenset[str]:
    """Keep only known role strings."""
    return frozenset(v for v in (values or ()) if v in ALL_ROLES)
