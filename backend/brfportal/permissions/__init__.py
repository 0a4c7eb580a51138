# Overview: Role and capability vocabulary.
# Re-exports all public APIs for convenient imports.

from .categories import CapabilityCategory
from .roles import Role, ALL_ROLES, ORGANIZATION_ASSIGNABLE_ROLES, is_valid_role, normalize_roles
from .definitions import (
    CAPABILITY_DEFINITIONS,
    PORTAL_CAPABILITIES,
    INVOICE_CAPABILITIES,
    ORGANIZATION_CAPABILITIES,
    PLATFORM_CAPABILITIES,
    CAPABILITY_ROLES,
    ATTESTABLE_STATUSES,
    STATUS_GATED_CAPABILITIES,
)
from .helpers import (
    get_all_capability_codes,
    get_capabilities_by_category,
    get_capability_definition,
    validate_capability_code,
)

__all__ = [
    "CapabilityCategory",
    "Role",
    "ALL_ROLES",
    "ORGANIZATION_ASSIGNABLE_ROLES",
    "is_valid_role",
    "normalize_roles",
    "CAPABILITY_DEFINITIONS",
    "PORTAL_CAPABILITIES",
    "INVOICE_CAPABILITIES",
    "ORGANIZATION_CAPABILITIES",
    "PLATFORM_CAPABILITIES",
    "CAPABILITY_ROLES",
    "ATTESTABLE_STATUSES",
    "STATUS_GATED_CAPABILITIES",
    "get_all_capability_codes",
    "get_capabilities_by_category",
    "get_capability_definition",
    "validate_capability_code",
]
