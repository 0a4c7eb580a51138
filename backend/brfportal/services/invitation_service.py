# Overview: Invitation issue, lookup, acceptance and revocation.

"""
Invitation Service

An invitation offers an email address a role in one organization.
Acceptance provisions the invitee: principal, profile and role are
created and the invitation is stamped accepted, all in ONE transaction.

RULES:
- Valid iff accepted_at IS NULL AND expires_at > now
- Single-use: accepted_at is set with a conditional UPDATE, so two
  concurrent acceptances cannot both succeed
- Used, expired, revoked and unknown tokens are indistinguishable to
  the invitee (InvitationInvalidError, terminal)
- brf_admin invites into its own organization only and never grants
  superadmin
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Invitation, Organization, UserProfile, UserRole
from ..permissions import ORGANIZATION_ASSIGNABLE_ROLES, Role, is_valid_role
from ..validation import (
    ConflictError,
    ValidationError,
    normalize_email,
    require_matching_passwords,
    require_text,
)
from brfportal.time_utils import to_utc_z, utcnow
from .auth_service import create_user, get_user_by_email, validate_password_strength
from .permission_service import PermissionDeniedError, log_security_event, require_capability
from .role_resolver import RoleContext
from .tenant_service import TenantAccessError, resolve_target_org, scoped_query

logger = logging.getLogger(__name__)

DEFAULT_TTL_DAYS = 7


class InvitationInvalidError(Exception):
    """Token unknown, expired, revoked or already used."""

    def __init__(self, message: str = "This invitation is invalid or has expired"):
        super().__init__(message)


class InvitationStoreError(Exception):
    """Acceptance could not be persisted; nothing was written."""


@dataclass(frozen=True)
class InvitationDetails:
    """What an invitee may see before accepting."""
    email: str
    organization_id: int
    organization_name: str
    role: str
    expires_at: object

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "organization_id": self.organization_id,
            "organization_name": self.organization_name,
            "role": self.role,
            "expires_at": to_utc_z(self.expires_at),
        }


def generate_invitation_token() -> str:
    return secrets.token_urlsafe(32)


def create_invitation(
    actor: RoleContext,
    email: str,
    role: str = Role.BRF_USER,
    org_id: int | None = None,
) -> Invitation:
    """
    Issue an invitation. Returns the Invitation; its token is what gets
    delivered to the invitee.

    Raises:
        PermissionDeniedError: actor lacks MANAGE_ORGANIZATION, or tries to grant superadmin
        TenantAccessError: target organization outside the actor's reach
        ValidationError: malformed email or unknown role
        ConflictError: the email already has an account
    """
    require_capability(actor, "MANAGE_ORGANIZATION")

    if role is None or role == "":
        role = Role.BRF_USER
    if not isinstance(role, str):
        raise ValidationError("role must be a string", "role")
    role = role.strip()
    if not is_valid_role(role):
        raise ValidationError(f"Unknown role: {role}", "role")
    if role not in ORGANIZATION_ASSIGNABLE_ROLES and not actor.is_superadmin:
        log_security_event(
            user_id=actor.user_id,
            event_type="PERMISSION_DENIED",
            success=False,
            action="INVITE_ROLE",
            reason=f"Attempt to invite with role {role}",
            org_id=actor.organization_id,
        )
        raise PermissionDeniedError("ADMIN_CROSS_ORGANIZATION", f"Cannot invite users with role {role}")

    target_org = resolve_target_org(actor, org_id)
    return issue_invitation(target_org, email, role, invited_by_user_id=actor.user_id)


def issue_invitation(org_id: int, email: str, role: str, invited_by_user_id: int | None = None) -> Invitation:
    """Unchecked issue, for create_invitation and the CLI."""
    email = normalize_email(email)

    if get_user_by_email(email) is not None:
        raise ConflictError("An account with this email already exists")

    ttl_days = current_app.config.get("INVITATION_TTL_DAYS", DEFAULT_TTL_DAYS)
    now = utcnow()
    invitation = Invitation(
        org_id=org_id,
        email=email,
        role=role,
        token=generate_invitation_token(),
        expires_at=now + timedelta(days=ttl_days),
        invited_by_user_id=invited_by_user_id,
        created_at=now,
    )
    db.session.add(invitation)
    db.session.commit()

    logger.info(
        "invitation %s created for org %s role %s", invitation.id, org_id, role,
        extra={"org_id": org_id, "user_id": invited_by_user_id},
    )
    return invitation


def _valid_invitation(token: str | None) -> Invitation | None:
    if not token:
        return None
    invitation = db.session.query(Invitation).filter_by(token=token).first()
    if invitation is None or not invitation.is_valid():
        return None
    return invitation


def lookup_invitation(token: str | None) -> InvitationDetails | None:
    """None for any token that cannot be accepted."""
    invitation = _valid_invitation(token)
    if invitation is None:
        return None

    org = db.session.get(Organization, invitation.org_id)
    return InvitationDetails(
        email=invitation.email,
        organization_id=invitation.org_id,
        organization_name=org.name if org else "",
        role=invitation.role,
        expires_at=invitation.expires_at,
    )


def accept_invitation(
    token: str | None,
    first_name: str | None,
    last_name: str | None,
    password: str | None,
    confirm_password: str | None,
    phone: str | None = None,
):
    """
    Consume an invitation and provision the invitee.

    Input is validated before anything is written. Then, in one
    transaction: principal, profile (with the invitation's organization),
    role assignment, accepted_at. Any failure rolls all of it back.

    Returns the new User.
    """
    first_name = require_text(first_name, "first_name", "First name")
    last_name = require_text(last_name, "last_name", "Last name")
    require_matching_passwords(password, confirm_password)
    validate_password_strength(password)

    invitation = _valid_invitation(token)
    if invitation is None:
        raise InvitationInvalidError()

    if get_user_by_email(invitation.email) is not None:
        raise ConflictError("An account with this email already exists")

    invitation_id = invitation.id
    now = utcnow()
    try:
        user = create_user(invitation.email, password, commit=False)
        db.session.add(UserProfile(
            user_id=user.id,
            org_id=invitation.org_id,
            first_name=first_name,
            last_name=last_name,
            email=invitation.email,
            phone=(phone or "").strip() or None,
        ))
        db.session.add(UserRole(user_id=user.id, role=invitation.role))

        stamped = (
            db.session.query(Invitation)
            .filter(Invitation.id == invitation_id, Invitation.accepted_at.is_(None))
            .update({"accepted_at": now}, synchronize_session=False)
        )
        if stamped != 1:
            db.session.rollback()
            raise InvitationInvalidError()

        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning("invitation %s acceptance rolled back (%s)", invitation_id, e.__class__.__name__)
        raise InvitationStoreError("Your account could not be created. Please retry.") from e

    db.session.refresh(invitation)
    log_security_event(
        user_id=user.id,
        event_type="INVITATION_ACCEPTED",
        success=True,
        action=invitation.role,
        org_id=invitation.org_id,
    )
    return user


def list_invitations(actor: RoleContext, org_id: int | None = None, pending_only: bool = True) -> list[Invitation]:
    require_capability(actor, "MANAGE_ORGANIZATION")
    query = scoped_query(Invitation, actor, org_id)
    if pending_only:
        query = query.filter(Invitation.accepted_at.is_(None), Invitation.expires_at > utcnow())
    return query.order_by(Invitation.created_at.desc(), Invitation.id.desc()).all()


def revoke_invitation(invitation_id: int, actor: RoleContext) -> None:
    """Delete a pending invitation. Accepted invitations are kept as history."""
    require_capability(actor, "MANAGE_ORGANIZATION")

    invitation = scoped_query(Invitation, actor).filter(Invitation.id == invitation_id).first()
    if invitation is None:
        raise TenantAccessError("Invitation not found")
    if invitation.accepted_at is not None:
        raise ConflictError("Invitation has already been accepted")

    db.session.delete(invitation)
    db.session.commit()
