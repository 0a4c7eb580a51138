# Overview: Read side of invoices: lists, detail view, dashboard figures.

"""
Invoice queries for the portal views. Nothing here writes; all status
changes go through invoice_lifecycle_service.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import or_

from ..extensions import db
from ..models import INVOICE_STATUSES, Invoice, InvoiceAttachment, InvoiceLine, Vendor
from ..validation import ValidationError
from brfportal.time_utils import utcnow
from . import access_policy
from .invoice_lifecycle_service import events_for
from .permission_service import require_capability
from .role_resolver import RoleContext
from .tenant_service import require_invoice_in_org, scoped_query

UPCOMING_WINDOW_DAYS = 30
UPCOMING_LIMIT = 5


def list_invoices(actor: RoleContext, status: str | None = None, org_id: int | None = None,
                  search: str | None = None) -> list[Invoice]:
    """
    Newest first, optionally narrowed to one status.

    search matches case-insensitively anywhere in the invoice number,
    OCR number, vendor name or description.
    """
    require_capability(actor, "VIEW_INVOICES")

    query = scoped_query(Invoice, actor, org_id)
    if status:
        if status not in INVOICE_STATUSES:
            raise ValidationError(f"Unknown status: {status}", "status")
        query = query.filter(Invoice.status == status)

    term = (search or "").strip()
    if term:
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        query = query.outerjoin(Vendor, Vendor.id == Invoice.vendor_id).filter(or_(
            Invoice.invoice_number.ilike(pattern, escape="\\"),
            Invoice.ocr_number.ilike(pattern, escape="\\"),
            Vendor.name.ilike(pattern, escape="\\"),
            Invoice.description.ilike(pattern, escape="\\"),
        ))
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def get_invoice_detail(invoice_id: int, actor: RoleContext) -> dict:
    require_capability(actor, "VIEW_INVOICES")
    invoice = require_invoice_in_org(invoice_id, actor)

    lines = (
        db.session.query(InvoiceLine)
        .filter_by(invoice_id=invoice.id)
        .order_by(InvoiceLine.id.asc())
        .all()
    )
    attachments = (
        db.session.query(InvoiceAttachment)
        .filter_by(invoice_id=invoice.id)
        .order_by(InvoiceAttachment.created_at.desc(), InvoiceAttachment.id.desc())
        .all()
    )

    data = invoice.to_dict(include_vendor=True)
    data["lines"] = [line.to_dict() for line in lines]
    data["events"] = [event.to_dict() for event in events_for(invoice, newest_first=True)]
    data["attachments"] = [a.to_dict() for a in attachments]
    data["can_attest"] = access_policy.can_attest(actor.roles, invoice.status)
    return data


def dashboard_stats(actor: RoleContext, org_id: int | None = None) -> dict:
    """Invoice count per status; every status is present, zero included."""
    require_capability(actor, "VIEW_INVOICES")

    query = scoped_query(Invoice, actor, org_id).with_entities(Invoice.status, db.func.count(Invoice.id))
    counts = dict(query.group_by(Invoice.status).all())

    stats = {status: counts.get(status, 0) for status in INVOICE_STATUSES}
    stats["total"] = sum(stats.values())
    return stats


def upcoming_invoices(actor: RoleContext, org_id: int | None = None,
                      days: int = UPCOMING_WINDOW_DAYS, limit: int = UPCOMING_LIMIT) -> list[Invoice]:
    """Unpaid invoices falling due between today and today + days, soonest first."""
    require_capability(actor, "VIEW_INVOICES")

    today = utcnow().date()
    return (
        scoped_query(Invoice, actor, org_id)
        .filter(
            Invoice.status != "paid",
            Invoice.due_date >= today,
            Invoice.due_date <= today + timedelta(days=days),
        )
        .order_by(Invoice.due_date.asc(), Invoice.id.asc())
        .limit(limit)
        .all()
    )
