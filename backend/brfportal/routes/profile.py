# Overview: Flask API routes for the signed-in user's own profile.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import profile_service
from ..services.tenant_service import TenantAccessError
from ..validation import ValidationError, json_payload


profile_bp = Blueprint("profile", __name__, url_prefix="/api/profile")


@profile_bp.get("")
@require_auth
def get_profile_route():
    try:
        return jsonify(profile_service.get_profile(g.current_user.id).to_dict())
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404


@profile_bp.patch("")
@require_auth
def update_profile_route():
    """Request body: any of first_name, last_name, phone."""
    try:
        profile = profile_service.update_profile(g.current_user.id, json_payload())
        return jsonify(profile.to_dict())
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e), "field": e.field}), 400
