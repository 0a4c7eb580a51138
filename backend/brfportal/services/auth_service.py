# Overview: Credentials, password policy and password reset.

"""
Authentication Service

Stands in for the external authentication provider: principals (User)
carry only credentials; organization and roles come from the profile and
user_roles (see role_resolver).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12 unless BCRYPT_ROUNDS says otherwise)
- Minimum 8 characters with uppercase, lowercase, digit and special char
- Email is the login name, normalized with email-validator, globally unique
- Session tokens managed separately (see session_service.py)
- Password reset tokens are single-use, stored as SHA-256 hashes
"""

from __future__ import annotations

import logging
import re
import secrets
from datetime import timedelta

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import PasswordResetToken, User, UserRole
from ..permissions import is_valid_role
from ..validation import ConflictError, normalize_email
from brfportal.time_utils import as_naive_utc, utcnow
from .session_service import hash_token, revoke_all_user_sessions

logger = logging.getLogger(__name__)

DEFAULT_RESET_TTL_MINUTES = 60


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class AuthenticationError(Exception):
    """Wrong credentials or inactive account."""


class PasswordResetError(Exception):
    """Reset token unknown, used or expired."""


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt (BCRYPT_ROUNDS, default 12)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def get_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter(User.email == email.strip().lower()).first()


def create_user(email: str, password: str, *, commit: bool = True) -> User:
    """
    Create a principal with a bcrypt password hash.

    commit=False only flushes, so callers (invitation acceptance) can
    create user, profile and role in a single transaction.

    Raises:
        ValidationError: malformed email
        ConflictError: email already registered
        PasswordValidationError: weak password
    """
    email = normalize_email(email)

    if get_user_by_email(email) is not None:
        raise ConflictError("An account with this email already exists")

    user = User(email=email, password_hash=hash_password(password), is_active=True)
    db.session.add(user)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return user


def assign_role(user_id: int, role: str, *, commit: bool = True) -> UserRole:
    """Assign role to user. Idempotent."""
    if not is_valid_role(role):
        raise ValueError(f"Role {role} not found")

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role=role).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role=role)
    db.session.add(user_role)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return user_role


def authenticate(email: str, password: str) -> User | None:
    """
    Check credentials. Returns the User, or None for unknown email, wrong
    password or a deactivated account. Updates last_login_at on success.
    """
    if not email or not password:
        return None

    user = get_user_by_email(email)
    if not user or not user.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def update_password(user: User, current_password: str, new_password: str) -> None:
    """Self-service password change; all other sessions stay valid."""
    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    db.session.commit()
    logger.info("password changed for user %s", user.id, extra={"user_id": user.id})


def request_password_reset(email: str) -> str | None:
    """
    Create a single-use reset token when the email belongs to an active
    account. Returns the plaintext token (for delivery) or None.

    Callers must answer identically in both cases so the endpoint does not
    reveal which emails are registered.
    """
    user = get_user_by_email(email or "")
    if user is None or not user.is_active:
        logger.info("password reset requested for unknown or inactive email")
        return None

    ttl = current_app.config.get("PASSWORD_RESET_TTL_MINUTES", DEFAULT_RESET_TTL_MINUTES)
    now = utcnow()
    token = secrets.token_urlsafe(32)

    db.session.add(PasswordResetToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=now,
        expires_at=now + timedelta(minutes=ttl),
    ))
    db.session.commit()

    logger.info("password reset token issued for user %s", user.id, extra={"user_id": user.id})
    return token


def reset_password(token: str, new_password: str) -> User:
    """
    Consume a reset token and set a new password. Every open session of
    the user is revoked.
    """
    if not token:
        raise PasswordResetError("Reset link is invalid or has expired")

    record = db.session.query(PasswordResetToken).filter_by(token_hash=hash_token(token)).first()
    if (
        record is None
        or record.used_at is not None
        or as_naive_utc(record.expires_at) <= utcnow()
        or not record.user.is_active
    ):
        raise PasswordResetError("Reset link is invalid or has expired")

    user = record.user
    user.password_hash = hash_password(new_password)
    record.used_at = utcnow()
    db.session.commit()

    revoke_all_user_sessions(user.id, reason="Password reset")
    logger.info("password reset completed for user %s", user.id, extra={"user_id": user.id})
    return user
