"""
Login Throttling Service

Limits failed sign-in attempts per email. Failures are read back from
security_events (LOGIN_FAILED rows keep the attempted email in `action`),
so no extra table is needed.
"""

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import SecurityEvent
from brfportal.time_utils import as_naive_utc, utcnow
from .permission_service import log_security_event


MAX_FAILED_ATTEMPTS = 10
LOCKOUT_WINDOW = timedelta(minutes=15)
LOCKOUT_DURATION = timedelta(minutes=15)

LOGIN_RESOURCE = "/api/auth/sign-in"


def get_recent_failed_attempts(identifier: str) -> int:
    cutoff = utcnow() - LOCKOUT_WINDOW
    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.action == identifier,
        SecurityEvent.occurred_at >= cutoff,
    ).count()


def is_account_locked(identifier: str) -> tuple[bool, int | None]:
    """(True, seconds_remaining) while locked, else (False, None)."""
    if get_recent_failed_attempts(identifier) < MAX_FAILED_ATTEMPTS:
        return False, None

    most_recent = db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.action == identifier,
    ).order_by(SecurityEvent.occurred_at.desc()).first()

    if most_recent:
        lockout_end = as_naive_utc(most_recent.occurred_at) + LOCKOUT_DURATION
        now = utcnow()
        if now < lockout_end:
            return True, int((lockout_end - now).total_seconds())

    return False, None


def record_failed_attempt(identifier: str, user_id: int | None = None, reason: str = "Invalid credentials") -> int:
    """Returns the number of recent failures including this one."""
    log_security_event(
        user_id=user_id,
        event_type="LOGIN_FAILED",
        success=False,
        resource=LOGIN_RESOURCE,
        action=identifier,
        reason=reason,
    )
    return get_recent_failed_attempts(identifier)


def record_successful_login(user_id: int, identifier: str, org_id: int | None = None) -> None:
    log_security_event(
        user_id=user_id,
        event_type="LOGIN_SUCCESS",
        success=True,
        resource=LOGIN_RESOURCE,
        action=identifier,
        org_id=org_id,
    )
