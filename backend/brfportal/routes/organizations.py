# Overview: Flask API routes for organizations; parses input and returns JSON responses.

"""
Organization Routes

- GET   /api/organizations            superadmin: all; others: own
- POST  /api/organizations            superadmin only
- GET   /api/organizations/<id>       own organization (any role) or superadmin
- PATCH /api/organizations/<id>       MANAGE_ORGANIZATION on own, superadmin on any
- GET   /api/organizations/<id>/members
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_capability, require_portal_access, require_superadmin
from ..services import organization_service
from ..services.tenant_service import TenantAccessError
from ..validation import ConflictError, ValidationError, json_payload


organizations_bp = Blueprint("organizations", __name__, url_prefix="/api/organizations")


@organizations_bp.get("")
@require_auth
@require_portal_access
def list_organizations_route():
    orgs = organization_service.list_organizations(g.role_context)
    return jsonify({"items": [o.to_dict() for o in orgs], "count": len(orgs)})


@organizations_bp.post("")
@require_auth
@require_superadmin
def create_organization_route():
    try:
        org = organization_service.create_organization_as(g.role_context, json_payload())
        return jsonify(org.to_dict()), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e), "field": e.field}), 400


@organizations_bp.get("/<int:org_id>")
@require_auth
@require_portal_access
def get_organization_route(org_id: int):
    try:
        return jsonify(organization_service.get_organization(org_id, g.role_context).to_dict())
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404


@organizations_bp.patch("/<int:org_id>")
@require_auth
@require_capability("MANAGE_ORGANIZATION")
def update_organization_route(org_id: int):
    try:
        org = organization_service.update_organization(org_id, g.role_context, json_payload())
        return jsonify(org.to_dict())
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e), "field": e.field}), 400


@organizations_bp.get("/<int:org_id>/members")
@require_auth
@require_capability("MANAGE_ORGANIZATION")
def list_members_route(org_id: int):
    try:
        members = organization_service.list_members(org_id, g.role_context)
        return jsonify({"items": members, "count": len(members)})
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
