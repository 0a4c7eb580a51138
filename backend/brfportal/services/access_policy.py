# Overview: Pure capability evaluation; no database access, never raises.

"""
Access Policy Evaluator

can(roles, capability, invoice_status=...) decides allow/deny from a role
set plus, for status-gated capabilities, the relevant entity state. The
answer never depends on request history or UI navigation.

RULES:
- Unknown capability or empty role set -> False
- superadmin is the top element: it satisfies the role part of EVERY
  capability, including ones added to CAPABILITY_ROLES later
- Status-gated capabilities (ATTEST_INVOICE) additionally require the
  entity to be in an allowed status, for superadmin too
"""

from __future__ import annotations

from typing import Iterable

from ..permissions import (
    CAPABILITY_ROLES,
    STATUS_GATED_CAPABILITIES,
    Role,
    normalize_roles,
)


def role_satisfies(roles: Iterable[str] | None, capability: str) -> bool:
    """Role part of a capability check, ignoring entity state."""
    required = CAPABILITY_ROLES.get(capability)
    if required is None:
        return False

    try:
        role_set = normalize_roles(roles)
    except TypeError:
        return False

    if not role_set:
        return False
    if Role.SUPERADMIN in role_set:
        return True
    return bool(role_set & required)


def state_satisfies(capability: str, invoice_status: str | None) -> bool:
    """Entity-state part of a capability check."""
    allowed = STATUS_GATED_CAPABILITIES.get(capability)
    if allowed is None:
        return True
    return invoice_status in allowed


def can(roles: Iterable[str] | None, capability: str, *, invoice_status: str | None = None) -> bool:
    """
    Full capability check.

    For ATTEST_INVOICE pass the invoice's current status; omitting it
    means the state is unknown and the answer is False.
    """
    return role_satisfies(roles, capability) and state_satisfies(capability, invoice_status)


def can_attest(roles: Iterable[str] | None, invoice_status: str | None) -> bool:
    return can(roles, "ATTEST_INVOICE", invoice_status=invoice_status)


def capabilities_for(roles: Iterable[str] | None) -> list[str]:
    """
    Capability codes whose role part is satisfied, for UI gating
    (navigation items, buttons). Status-gated capabilities are included;
    the UI still has to apply the entity-state part per record.
    """
    return sorted(code for code in CAPABILITY_ROLES if role_satisfies(roles, code))
