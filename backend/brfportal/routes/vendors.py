# Overview: Flask API routes for vendor operations; parses input and returns JSON responses.

"""
Vendor Routes

SECURITY: All routes require authentication.
- View operations require VIEW_INVOICES
- Create/update require MANAGE_INVOICES

Vendors are scoped to organizations.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_capability
from ..services import vendor_service
from ..services.tenant_service import TenantAccessError
from ..validation import ValidationError, json_payload


vendors_bp = Blueprint("vendors", __name__, url_prefix="/api/vendors")


@vendors_bp.get("")
@require_auth
@require_capability("VIEW_INVOICES")
def list_vendors_route():
    try:
        vendors = vendor_service.list_vendors(g.role_context, org_id=request.args.get("org_id", type=int))
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"items": [v.to_dict() for v in vendors], "count": len(vendors)})


@vendors_bp.post("")
@require_auth
@require_capability("MANAGE_INVOICES")
def create_vendor_route():
    """
    Request body:
    {
        "name": "Fastighetsservice AB",  // required
        "org_number": "556677-8899",
        "address": "...",
        "bankgiro": "123-4567",
        "plusgiro": "...",
        "email": "...",
        "phone": "...",
        "org_id": 2                      // superadmin only
    }
    """
    data = dict(json_payload())
    org_id = data.pop("org_id", None)
    try:
        vendor = vendor_service.create_vendor(g.role_context, data, org_id=org_id)
        return jsonify(vendor.to_dict()), 201
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e), "field": e.field}), 400


@vendors_bp.get("/<int:vendor_id>")
@require_auth
@require_capability("VIEW_INVOICES")
def get_vendor_route(vendor_id: int):
    try:
        return jsonify(vendor_service.get_vendor(vendor_id, g.role_context).to_dict())
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404


@vendors_bp.patch("/<int:vendor_id>")
@require_auth
@require_capability("MANAGE_INVOICES")
def update_vendor_route(vendor_id: int):
    try:
        vendor = vendor_service.update_vendor(vendor_id, g.role_context, json_payload())
        return jsonify(vendor.to_dict())
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e), "field": e.field}), 400
