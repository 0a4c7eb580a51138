# Overview: Capability enforcement and security event logging.

"""
Capability Enforcement and Security Event Logging

Wraps the pure access_policy evaluator for service and route use:
a denial is written to security_events and raised as
PermissionDeniedError, which routes map to HTTP 403.

DESIGN PRINCIPLES:
- Fail closed: unknown capability or empty role set is a denial
- Log denials only: grants are not logged
- Tenant context: events carry the actor's org_id
"""

from __future__ import annotations

import logging

from flask import has_request_context, request

from ..extensions import db
from ..models import SecurityEvent
from brfportal.time_utils import utcnow
from . import access_policy
from .role_resolver import RoleContext

logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """Raised when the actor's roles do not satisfy a capability."""

    def __init__(self, capability: str, message: str | None = None):
        self.capability = capability
        super().__init__(message or f"Permission denied: {capability}")


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    org_id: int | None = None,
) -> SecurityEvent:
    """
    Append a security event to the audit trail.

    event_type examples:
    - PERMISSION_DENIED
    - CROSS_TENANT_ACCESS_DENIED
    - LOGIN_FAILED
    - LOGIN_SUCCEEDED
    - INVITATION_ACCEPTED
    - PASSWORD_RESET
    """
    if has_request_context():
        resource = resource or request.path
        ip_address = ip_address or request.remote_addr
        user_agent = user_agent or request.headers.get("User-Agent")

    event = SecurityEvent(
        user_id=user_id,
        org_id=org_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    logger.info(
        "security event %s user=%s org=%s success=%s",
        event_type, user_id, org_id, success,
        extra={"event_type": event_type, "user_id": user_id, "org_id": org_id},
    )
    return event


def require_capability(
    context: RoleContext,
    capability: str,
    *,
    invoice_status: str | None = None,
    check_state: bool = False,
) -> None:
    """
    Require the actor to hold a capability, raise PermissionDeniedError if not.

    By default only the role part is enforced: services check entity state
    themselves so that, e.g., attesting a paid invoice is reported as an
    invalid transition rather than a permission problem. Pass
    check_state=True to enforce the full policy including entity state.
    """
    if check_state:
        allowed = access_policy.can(context.roles, capability, invoice_status=invoice_status)
    else:
        allowed = access_policy.role_satisfies(context.roles, capability)

    if allowed:
        return

    log_security_event(
        user_id=context.user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        action=capability,
        reason=f"Missing capability: {capability} (roles: {', '.join(sorted(context.roles)) or 'none'})",
        org_id=context.organization_id,
    )
    raise PermissionDeniedError(capability)
