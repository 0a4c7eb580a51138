# Overview: Flask API routes for invitations; parses input and returns JSON responses.

"""
Invitation Routes

Admin side (authenticated, MANAGE_ORGANIZATION):
- POST   /api/invitations                 issue an invitation
- GET    /api/invitations                 pending invitations
- DELETE /api/invitations/<id>            revoke a pending invitation

Invitee side (public, the token is the credential):
- GET    /api/invitations/<token>         what is being offered
- POST   /api/invitations/<token>/accept  create the account

Invalid, expired and used tokens all answer 410 Gone.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_capability
from ..services import invitation_service, session_service
from ..services.auth_service import PasswordValidationError
from ..services.invitation_service import InvitationInvalidError, InvitationStoreError
from ..services.permission_service import PermissionDeniedError
from ..services.tenant_service import TenantAccessError
from ..validation import ConflictError, ValidationError, json_payload


invitations_bp = Blueprint("invitations", __name__, url_prefix="/api/invitations")

INVALID_INVITATION = {"error": "This invitation is invalid or has expired", "code": "invitation_invalid"}


@invitations_bp.post("")
@require_auth
@require_capability("MANAGE_ORGANIZATION")
def create_invitation_route():
    """
    Request body:
    {
        "email": "board.member@example.se",  // required
        "role": "brf_user",                   // optional, default brf_user
        "org_id": 3                           // superadmin only
    }

    Returns the invitation and its token; delivering the link is up to
    the caller.
    """
    data = json_payload()
    try:
        invitation = invitation_service.create_invitation(
            g.role_context,
            email=data.get("email"),
            role=data.get("role") or "brf_user",
            org_id=data.get("org_id"),
        )
        return jsonify({"invitation": invitation.to_dict(), "token": invitation.token}), 201
    except PermissionDeniedError as e:
        return jsonify({"error": "Permission denied", "message": str(e)}), 403
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e), "field": e.field}), 400


@invitations_bp.get("")
@require_auth
@require_capability("MANAGE_ORGANIZATION")
def list_invitations_route():
    org_id = request.args.get("org_id", type=int)
    try:
        invitations = invitation_service.list_invitations(g.role_context, org_id=org_id)
        return jsonify({"items": [i.to_dict() for i in invitations], "count": len(invitations)})
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404


@invitations_bp.delete("/<int:invitation_id>")
@require_auth
@require_capability("MANAGE_ORGANIZATION")
def revoke_invitation_route(invitation_id: int):
    try:
        invitation_service.revoke_invitation(invitation_id, g.role_context)
        return "", 204
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409


@invitations_bp.get("/<token>")
def lookup_invitation_route(token: str):
    details = invitation_service.lookup_invitation(token)
    if details is None:
        return jsonify(INVALID_INVITATION), 410
    return jsonify({"invitation": details.to_dict()})


@invitations_bp.post("/<token>/accept")
def accept_invitation_route(token: str):
    """
    Request body:
    {
        "first_name": "Anna",
        "last_name": "Berg",
        "password": "...",
        "confirm_password": "...",
        "phone": "..."            // optional
    }

    Creates the account and signs the new user in.
    """
    data = json_payload()
    try:
        user = invitation_service.accept_invitation(
            token,
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            password=data.get("password"),
            confirm_password=data.get("confirm_password"),
            phone=data.get("phone"),
        )
    except InvitationInvalidError:
        return jsonify(INVALID_INVITATION), 410
    except ValidationError as e:
        return jsonify({"error": str(e), "field": e.field}), 400
    except PasswordValidationError as e:
        return jsonify({"error": str(e), "field": "password"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except InvitationStoreError as e:
        return jsonify({"error": str(e)}), 503

    try:
        session, session_token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except Exception:
        current_app.logger.exception("Account created but sign-in failed")
        return jsonify({"user": user.to_dict(), "token": None}), 201

    return jsonify({"user": user.to_dict(), "token": session_token, "session": session.to_dict()}), 201
