# Overview: All capability definitions and the roles that satisfy them.
# Each capability is defined as: (code, name, description, category)

from .categories import CapabilityCategory
from .roles import Role


# -- PORTAL --

PORTAL_CAPABILITIES = [
    (
        "ACCESS_PORTAL",
        "Access Portal",
        "Use the customer portal at all (any assigned role)",
        CapabilityCategory.PORTAL,
    ),
]


# -- INVOICES --

INVOICE_CAPABILITIES = [
    (
        "VIEW_INVOICES",
        "View Invoices",
        "View the own organization's invoices, vendors and activity log",
        CapabilityCategory.INVOICES,
    ),
    (
        "ATTEST_INVOICE",
        "Attest Invoice",
        "Approve or reject an invoice awaiting attestation",
        CapabilityCategory.INVOICES,
    ),
    (
        "RECORD_ACCOUNTING",
        "Record Accounting",
        "Edit account code, cost center, project and VAT code of an invoice",
        CapabilityCategory.INVOICES,
    ),
    (
        "COMMENT_INVOICE",
        "Comment Invoice",
        "Add comments to an invoice's activity log",
        CapabilityCategory.INVOICES,
    ),
    (
        "MANAGE_INVOICES",
        "Manage Invoices",
        "Register invoices and vendors, send for attestation, mark paid, manage attachments",
        CapabilityCategory.INVOICES,
    ),
]


# -- ORGANIZATION --

ORGANIZATION_CAPABILITIES = [
    (
        "MANAGE_ORGANIZATION",
        "Manage Organization",
        "Edit organization settings and invite users",
        CapabilityCategory.ORGANIZATION,
    ),
]


# -- PLATFORM --

PLATFORM_CAPABILITIES = [
    (
        "ADMIN_CROSS_ORGANIZATION",
        "Cross-Organization Admin",
        "Access administrative views spanning every organization",
        CapabilityCategory.PLATFORM,
    ),
]


CAPABILITY_DEFINITIONS = (
    PORTAL_CAPABILITIES
    + INVOICE_CAPABILITIES
    + ORGANIZATION_CAPABILITIES
    + PLATFORM_CAPABILITIES
)


_ORG_MEMBERS = frozenset({Role.BRF_USER, Role.BRF_ADMIN, Role.SUPERADMIN})
_ORG_ADMINS = frozenset({Role.BRF_ADMIN, Role.SUPERADMIN})

# Roles that satisfy each capability. superadmin is listed explicitly for
# readability, but the evaluator treats it as satisfying every capability
# whether or not it is listed here. ACCESS_PORTAL is any non-empty role set.
CAPABILITY_ROLES: dict[str, frozenset[str]] = {
    "ACCESS_PORTAL": _ORG_MEMBERS,
    "VIEW_INVOICES": _ORG_MEMBERS,
    "ATTEST_INVOICE": _ORG_MEMBERS,
    "RECORD_ACCOUNTING": _ORG_MEMBERS,
    "COMMENT_INVOICE": _ORG_MEMBERS,
    "MANAGE_INVOICES": _ORG_ADMINS,
    "MANAGE_ORGANIZATION": _ORG_ADMINS,
    "ADMIN_CROSS_ORGANIZATION": frozenset({Role.SUPERADMIN}),
}

# Invoice statuses in which ATTEST_INVOICE can be exercised
ATTESTABLE_STATUSES = frozenset({"new", "pending_attestation"})

# Capabilities whose decision also depends on the invoice's current status
STATUS_GATED_CAPABILITIES: dict[str, frozenset[str]] = {
    "ATTEST_INVOICE": ATTESTABLE_STATUSES,
}
