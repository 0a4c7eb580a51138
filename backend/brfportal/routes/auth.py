# Overview: Flask API routes for sign-in, sign-out and passwords; parses input and returns JSON responses.

# backend/brfportal/routes/auth.py
"""
Authentication API routes

There is no self-registration: accounts are created by accepting an
invitation (see routes/invitations.py) or through the CLI.

SECURITY FEATURES:
- Login throttling and temporary lockout after repeated failures
- Session management with bearer tokens
- Password reset answers identically for known and unknown emails
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import login_throttle_service
from ..services import role_resolver
from ..services import access_policy
from ..permissions import (
    CapabilityCategory,
    get_all_capability_codes,
    get_capabilities_by_category,
    get_capability_definition,
)
from ..services.auth_service import AuthenticationError, PasswordResetError, PasswordValidationError
from ..validation import ValidationError, json_payload, require_matching_passwords
from ..decorators import require_auth, bearer_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

CATALOG_ORDER = (
    CapabilityCategory.PORTAL,
    CapabilityCategory.INVOICES,
    CapabilityCategory.ORGANIZATION,
    CapabilityCategory.PLATFORM,
)


def _me_payload() -> dict:
    profile = g.current_user.profile
    return {
        "user": g.current_user.to_dict(),
        "profile": profile.to_dict() if profile else None,
        "access": g.role_context.to_dict(),
    }


@auth_bp.post("/sign-in")
def sign_in_route():
    """
    Authenticate and create a session token.

    The token goes in the Authorization header ("Bearer <token>") of
    every protected request.
    """
    data = json_payload()
    try:
        email = data.get("email")
        email = email.strip().lower() if isinstance(email, str) else ""
        password = data.get("password")

        if not email or not isinstance(password, str) or not password:
            return jsonify({"error": "email and password required"}), 400

        is_locked, seconds_remaining = login_throttle_service.is_account_locked(email)
        if is_locked:
            return jsonify({
                "error": "Account temporarily locked due to too many failed sign-in attempts",
                "locked": True,
                "retry_after_seconds": seconds_remaining,
            }), 429

        user = auth_service.authenticate(email, password)

        if not user:
            known = auth_service.get_user_by_email(email)
            failed_count = login_throttle_service.record_failed_attempt(
                identifier=email,
                user_id=known.id if known else None,
            )
            remaining = login_throttle_service.MAX_FAILED_ATTEMPTS - failed_count
            if remaining <= 0:
                return jsonify({
                    "error": "Account locked due to too many failed sign-in attempts",
                    "locked": True,
                }), 429
            return jsonify({"error": "Invalid email or password"}), 401

        profile = user.profile
        login_throttle_service.record_successful_login(
            user_id=user.id,
            identifier=email,
            org_id=profile.org_id if profile else None,
        )

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "access": role_resolver.resolve(user.id).to_dict(),
            "token": token,
            "session": session.to_dict(),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to sign in user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/sign-out")
@require_auth
def sign_out_route():
    session_service.revoke_session(bearer_token(), reason="User sign-out")
    return jsonify({"message": "Signed out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    """
    Current principal with profile and resolved access.

    An unprovisioned principal gets profile=null and empty roles; the UI
    shows a "no permissions yet" page for it.
    """
    return jsonify(_me_payload())


@auth_bp.get("/capabilities")
@require_auth
def capability_catalog_route():
    """Capability catalog grouped by category; "granted" marks what the caller's roles satisfy."""
    held = set(access_policy.capabilities_for(g.role_context.roles))
    categories = {
        category: [
            {**get_capability_definition(cap[0]), "granted": cap[0] in held}
            for cap in get_capabilities_by_category(category)
        ]
        for category in CATALOG_ORDER
    }
    return jsonify({"categories": categories, "total": len(get_all_capability_codes())})


@auth_bp.post("/password")
@require_auth
def update_password_route():
    data = json_payload()
    try:
        require_matching_passwords(data.get("new_password"), data.get("confirm_password"))
        auth_service.update_password(g.current_user, data.get("current_password") or "", data["new_password"])
        return jsonify({"message": "Password updated"}), 200
    except AuthenticationError as e:
        return jsonify({"error": str(e)}), 400
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400


@auth_bp.post("/password-reset")
def request_password_reset_route():
    """Always 202, whether or not the email is registered."""
    data = json_payload()
    auth_service.request_password_reset((data.get("email") or "").strip().lower())
    return jsonify({"message": "If the email is registered, a reset link has been sent"}), 202


@auth_bp.post("/password-reset/confirm")
def reset_password_route():
    data = json_payload()
    try:
        require_matching_passwords(data.get("new_password"), data.get("confirm_password"))
        auth_service.reset_password(data.get("token"), data["new_password"])
        return jsonify({"message": "Password has been reset"}), 200
    except PasswordResetError as e:
        return jsonify({"error": str(e)}), 410
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
