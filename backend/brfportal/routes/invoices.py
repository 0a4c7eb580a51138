# Overview: Flask API routes for invoices, attestation and attachments; parses input and returns JSON responses.

"""
Invoice Routes

SECURITY: All routes require authentication and are scoped to the
caller's organization (superadmins may pass org_id).
- Reading requires VIEW_INVOICES
- Attest/reject requires ATTEST_INVOICE (and an attestable status)
- Accounting requires RECORD_ACCOUNTING, comments COMMENT_INVOICE
- Registering, sending, paying and attachments require MANAGE_INVOICES

ERRORS:
- 400 invalid input
- 403 missing capability
- 404 invoice not found in the caller's organization
- 409 status does not allow the action (e.g. attesting a paid invoice)
- 503 the store rejected the write; nothing was saved, retry
"""

from flask import Blueprint, request, jsonify, g, send_file

from ..decorators import require_auth, require_capability
from ..services import attachment_service, invoice_lifecycle_service, invoice_service
from ..services.invoice_lifecycle_service import InvalidTransitionError, InvoiceStoreError, LifecycleError
from ..services.permission_service import PermissionDeniedError
from ..services.storage_service import StorageError
from ..services.tenant_service import TenantAccessError
from ..validation import ValidationError, json_payload


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

DOMAIN_ERRORS = (
    PermissionDeniedError,
    TenantAccessError,
    LifecycleError,
    InvoiceStoreError,
    StorageError,
    ValidationError,
)


def _error_response(e: Exception):
    if isinstance(e, PermissionDeniedError):
        return jsonify({"error": "Permission denied", "required_capability": e.capability, "message": str(e)}), 403
    if isinstance(e, TenantAccessError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, InvalidTransitionError):
        return jsonify({"error": str(e), "status": e.from_status}), 409
    if isinstance(e, ValidationError):
        return jsonify({"error": str(e), "field": e.field}), 400
    if isinstance(e, LifecycleError):
        return jsonify({"error": str(e)}), 400
    if isinstance(e, InvoiceStoreError):
        return jsonify({"error": str(e)}), 503
    return jsonify({"error": "Attachment storage unavailable"}), 503


@invoices_bp.get("")
@require_auth
@require_capability("VIEW_INVOICES")
def list_invoices_route():
    """
    Query parameters:
    - status: new | pending_attestation | attested | rejected | paid
    - search: text matched against invoice number, OCR number, vendor name, description
    - org_id: superadmin only
    """
    try:
        invoices = invoice_service.list_invoices(
            g.role_context,
            status=request.args.get("status") or None,
            search=request.args.get("search"),
            org_id=request.args.get("org_id", type=int),
        )
        return jsonify({"items": [i.to_dict(include_vendor=True) for i in invoices], "count": len(invoices)})
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.post("")
@require_auth
@require_capability("MANAGE_INVOICES")
def create_invoice_route():
    """
    Request body:
    {
        "amount_cents": 1250000,      // required, öre
        "invoice_date": "2024-03-01", // required
        "due_date": "2024-03-31",     // required
        "vendor_id": 4,
        "invoice_number": "F-1001",
        "ocr_number": "...",
        "vat_amount_cents": 250000,
        "currency": "SEK",
        "description": "...",
        "org_id": 2                   // superadmin only
    }
    """
    data = dict(json_payload())
    org_id = data.pop("org_id", None)
    try:
        invoice = invoice_lifecycle_service.create_invoice(g.role_context, data, org_id=org_id)
        return jsonify(invoice.to_dict(include_vendor=True)), 201
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.get("/stats")
@require_auth
@require_capability("VIEW_INVOICES")
def dashboard_stats_route():
    try:
        stats = invoice_service.dashboard_stats(g.role_context, org_id=request.args.get("org_id", type=int))
        return jsonify(stats)
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.get("/upcoming")
@require_auth
@require_capability("VIEW_INVOICES")
def upcoming_invoices_route():
    """Unpaid invoices due within 30 days, soonest first, at most 5."""
    try:
        invoices = invoice_service.upcoming_invoices(g.role_context, org_id=request.args.get("org_id", type=int))
        return jsonify({"items": [i.to_dict(include_vendor=True) for i in invoices]})
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.get("/<int:invoice_id>")
@require_auth
@require_capability("VIEW_INVOICES")
def get_invoice_route(invoice_id: int):
    """Invoice with vendor, accounting lines, events (newest first) and attachments."""
    try:
        return jsonify(invoice_service.get_invoice_detail(invoice_id, g.role_context))
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.post("/<int:invoice_id>/send")
@require_auth
@require_capability("MANAGE_INVOICES")
def send_for_attestation_route(invoice_id: int):
    data = json_payload()
    try:
        event = invoice_lifecycle_service.send_for_attestation(invoice_id, g.role_context, data.get("comment"))
        return jsonify({"status": "pending_attestation", "event": event.to_dict()})
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.post("/<int:invoice_id>/attest")
@require_auth
@require_capability("ATTEST_INVOICE")
def attest_invoice_route(invoice_id: int):
    """
    Request body:
    {
        "approve": true,   // true -> attested, false -> rejected
        "comment": "..."   // optional
    }
    """
    data = json_payload()
    approve = data.get("approve")
    if not isinstance(approve, bool):
        return jsonify({"error": "approve must be true or false", "field": "approve"}), 400

    try:
        result = invoice_lifecycle_service.attest(invoice_id, g.role_context, approve, data.get("comment"))
        return jsonify({"status": result.status, "event": result.event.to_dict()})
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.post("/<int:invoice_id>/pay")
@require_auth
@require_capability("MANAGE_INVOICES")
def mark_paid_route(invoice_id: int):
    data = json_payload()
    try:
        event = invoice_lifecycle_service.mark_paid(invoice_id, g.role_context, data.get("comment"))
        return jsonify({"status": "paid", "event": event.to_dict()})
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.put("/<int:invoice_id>/accounting")
@require_auth
@require_capability("RECORD_ACCOUNTING")
def record_accounting_route(invoice_id: int):
    """
    Request body (all optional, blank clears):
    {"account_code": "6210", "cost_center": "...", "project": "...", "vat_code": "25"}
    """
    try:
        line = invoice_lifecycle_service.record_accounting(
            invoice_id, g.role_context, json_payload()
        )
        return jsonify(line.to_dict())
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.get("/<int:invoice_id>/events")
@require_auth
@require_capability("VIEW_INVOICES")
def list_events_route(invoice_id: int):
    newest_first = request.args.get("order", "desc").lower() != "asc"
    try:
        events = invoice_lifecycle_service.list_events(invoice_id, g.role_context, newest_first=newest_first)
        return jsonify({"items": [e.to_dict() for e in events]})
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.post("/<int:invoice_id>/comments")
@require_auth
@require_capability("COMMENT_INVOICE")
def append_comment_route(invoice_id: int):
    data = json_payload()
    try:
        event = invoice_lifecycle_service.append_comment(invoice_id, g.role_context, data.get("comment"))
        return jsonify(event.to_dict()), 201
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.post("/<int:invoice_id>/attachments")
@require_auth
@require_capability("MANAGE_INVOICES")
def upload_attachment_route(invoice_id: int):
    """multipart/form-data with a single "file" part."""
    if "file" not in request.files:
        return jsonify({"error": "file is required", "field": "file"}), 400

    file = request.files["file"]
    try:
        attachment = attachment_service.upload_attachment(
            invoice_id,
            g.role_context,
            file_name=file.filename or "",
            stream=file.stream,
            content_type=file.mimetype,
        )
        return jsonify(attachment.to_dict()), 201
    except DOMAIN_ERRORS as e:
        return _error_response(e)


@invoices_bp.get("/<int:invoice_id>/attachments/<int:attachment_id>")
@require_auth
@require_capability("VIEW_INVOICES")
def download_attachment_route(invoice_id: int, attachment_id: int):
    try:
        attachment, path = attachment_service.get_attachment_file(invoice_id, attachment_id, g.role_context)
    except DOMAIN_ERRORS as e:
        return _error_response(e)
    return send_file(
        path,
        mimetype=attachment.file_type or "application/octet-stream",
        as_attachment=True,
        download_name=attachment.file_name,
    )


@invoices_bp.delete("/<int:invoice_id>/attachments/<int:attachment_id>")
@require_auth
@require_capability("MANAGE_INVOICES")
def delete_attachment_route(invoice_id: int, attachment_id: int):
    try:
        attachment_service.delete_attachment(invoice_id, attachment_id, g.role_context)
        return "", 204
    except DOMAIN_ERRORS as e:
        return _error_response(e)
