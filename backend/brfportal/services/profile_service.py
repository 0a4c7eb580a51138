"""
Self-service profile: the signed-in user's names and phone.

Email and organization are not editable here; email is the login name
and organization is assigned by invitation or by an administrator.
"""

from __future__ import annotations

from ..extensions import db
from ..models import UserProfile
from ..validation import ModelValidationPolicy, validate_payload
from .tenant_service import TenantAccessError

PROFILE_POLICY = ModelValidationPolicy(writable_fields={"first_name", "last_name", "phone"})


def get_profile(user_id: int) -> UserProfile:
    profile = db.session.query(UserProfile).filter_by(user_id=user_id).first()
    if profile is None:
        raise TenantAccessError("Profile not found")
    return profile


def update_profile(user_id: int, payload: dict) -> UserProfile:
    profile = get_profile(user_id)
    patch = validate_payload(model=UserProfile, payload=payload, policy=PROFILE_POLICY, partial=True)
    for key, value in patch.items():
        setattr(profile, key, value)
    db.session.commit()
    return profile
