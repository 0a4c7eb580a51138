# Overview: Invoice status machine and its append-only activity log.

"""
Invoice Lifecycle Engine

================================================================================
PURPOSE: Enforce the invoice status machine and keep the activity log
================================================================================

STATE MACHINE:
    (none) -> new -> pending_attestation -> {attested, rejected}
    new -> {attested, rejected}          (new is attestable too)
    attested -> paid

    new:                 registered, awaiting review
    pending_attestation: sent to the board for attestation
    attested:            approved, may be paid
    rejected:            TERMINAL
    paid:                TERMINAL

RULES (NON-NEGOTIABLE):
1. Every status change appends exactly one InvoiceEvent of the matching type
2. Status and event are written in ONE transaction: both or neither
3. Terminal invoices never change status; attempts append nothing
4. Events are append-only (enforced at ORM level on InvoiceEvent)
5. Accounting edits and comments never change status

Invoice.status is a cached projection of the latest status-changing event.
derive_status()/verify_consistency() recompute it from the log.

Concurrency: Invoice carries a version counter. Two actors attesting the
same invoice at once cannot both commit; the loser gets InvoiceStoreError
and, on retry, sees the new status and an InvalidTransitionError.
Accounting edits are last-write-wins.
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Invoice, InvoiceEvent, InvoiceLine, Vendor
from ..permissions import ATTESTABLE_STATUSES
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_invoice,
    optional_text,
    validate_payload,
)
from brfportal.time_utils import utcnow
from .permission_service import require_capability
from .role_resolver import RoleContext
from .tenant_service import TenantAccessError, require_invoice_in_org, resolve_target_org

logger = logging.getLogger(__name__)


VALID_STATUSES = {"new", "pending_attestation", "attested", "rejected", "paid"}
TERMINAL_STATUSES = {"rejected", "paid"}

# The only transitions the engine performs
VALID_TRANSITIONS = {
    ("new", "pending_attestation"),
    ("new", "attested"),
    ("new", "rejected"),
    ("pending_attestation", "attested"),
    ("pending_attestation", "rejected"),
    ("attested", "paid"),
}

# Event type that records entry into each status
STATUS_EVENT = {
    "new": "created",
    "pending_attestation": "sent",
    "attested": "attested",
    "rejected": "rejected",
    "paid": "paid",
}
EVENT_STATUS = {v: k for k, v in STATUS_EVENT.items()}

ACCOUNTING_FIELDS = ("account_code", "cost_center", "project", "vat_code")

INVOICE_POLICY = ModelValidationPolicy(
    writable_fields={
        "vendor_id",
        "invoice_number",
        "ocr_number",
        "amount_cents",
        "vat_amount_cents",
        "currency",
        "invoice_date",
        "due_date",
        "description",
    },
    required_on_create={"amount_cents", "invoice_date", "due_date"},
)


class LifecycleError(ValueError):
    """Base class for lifecycle rule violations (domain errors, not technical ones)."""


class InvalidTransitionError(LifecycleError):
    """Requested status change is not allowed from the invoice's current status."""

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot change invoice status from '{from_status}' to '{to_status}'")


class InvoiceStoreError(Exception):
    """
    The store rejected a write (constraint, connection, concurrent update).
    Nothing was persisted; the caller may retry.
    """


@dataclass(frozen=True)
class AttestationResult:
    invoice: Invoice
    event: InvoiceEvent

    @property
    def status(self) -> str:
        return self.invoice.status


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise LifecycleError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in VALID_TRANSITIONS


def _commit(action: str, invoice_id: int | None) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning(
            "invoice %s: %s failed, rolled back (%s)", invoice_id, action, e.__class__.__name__,
            extra={"invoice_id": invoice_id},
        )
        raise InvoiceStoreError("The invoice could not be saved. Please retry.") from e


def _new_event(invoice: Invoice, event_type: str, actor: RoleContext | None, comment: str | None = None,
               metadata: dict | None = None) -> InvoiceEvent:
    event = InvoiceEvent(
        invoice=invoice,
        event_type=event_type,
        comment=comment,
        event_metadata=metadata,
        user_id=actor.user_id if actor else None,
        created_at=utcnow(),
    )
    db.session.add(event)
    return event


def _transition(invoice: Invoice, to_status: str, actor: RoleContext, comment: str | None = None) -> InvoiceEvent:
    """Status change plus its event in one commit. Caller has done the checks."""
    from_status = invoice.status
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)

    invoice.status = to_status
    event = _new_event(
        invoice,
        STATUS_EVENT[to_status],
        actor,
        comment=comment,
        metadata={"from_status": from_status, "to_status": to_status},
    )
    _commit(f"transition {from_status}->{to_status}", invoice.id)

    logger.info(
        "invoice %s %s -> %s by user %s", invoice.id, from_status, to_status, actor.user_id,
        extra={"invoice_id": invoice.id, "user_id": actor.user_id, "org_id": invoice.org_id,
               "event_type": event.event_type},
    )
    return event


def create_invoice(actor: RoleContext, payload: dict, org_id: int | None = None) -> Invoice:
    """
    Register an invoice in status 'new' with its 'created' event.

    org_id is only honoured for superadmins; everyone else registers
    into their own organization.
    """
    require_capability(actor, "MANAGE_INVOICES")
    target_org = resolve_target_org(actor, org_id)

    patch = validate_payload(model=Invoice, payload=payload, policy=INVOICE_POLICY, partial=False)
    enforce_rules_invoice(patch)

    vendor_id = patch.get("vendor_id")
    if vendor_id is not None:
        vendor = db.session.get(Vendor, vendor_id)
        if vendor is None or vendor.org_id != target_org:
            raise ValidationError("Vendor not found", "vendor_id")

    invoice = Invoice(org_id=target_org, status="new", created_by_user_id=actor.user_id, **patch)
    db.session.add(invoice)
    _new_event(invoice, STATUS_EVENT["new"], actor)
    _commit("create", None)

    logger.info(
        "invoice %s created in org %s", invoice.id, target_org,
        extra={"invoice_id": invoice.id, "org_id": target_org, "user_id": actor.user_id},
    )
    return invoice


def send_for_attestation(invoice_id: int, actor: RoleContext, comment: str | None = None) -> InvoiceEvent:
    """new -> pending_attestation."""
    require_capability(actor, "MANAGE_INVOICES")
    invoice = require_invoice_in_org(invoice_id, actor)
    return _transition(invoice, "pending_attestation", actor, optional_text(comment))


def attest(invoice_id: int, actor: RoleContext, approve: bool, comment: str | None = None) -> AttestationResult:
    """
    Approve (-> attested) or reject (-> rejected) an invoice.

    Checks, in order, before anything is written:
    1. actor's roles satisfy ATTEST_INVOICE        -> PermissionDeniedError
    2. invoice exists in the actor's organization  -> TenantAccessError
    3. status is new or pending_attestation        -> InvalidTransitionError

    The status change and the attested/rejected event (carrying comment)
    are committed together. A store failure rolls back both and raises
    InvoiceStoreError.
    """
    require_capability(actor, "ATTEST_INVOICE")
    invoice = require_invoice_in_org(invoice_id, actor)

    to_status = "attested" if approve else "rejected"
    if invoice.status not in ATTESTABLE_STATUSES:
        raise InvalidTransitionError(invoice.status, to_status)

    event = _transition(invoice, to_status, actor, optional_text(comment))
    return AttestationResult(invoice=invoice, event=event)


def mark_paid(invoice_id: int, actor: RoleContext, comment: str | None = None) -> InvoiceEvent:
    """attested -> paid."""
    require_capability(actor, "MANAGE_INVOICES")
    invoice = require_invoice_in_org(invoice_id, actor)
    return _transition(invoice, "paid", actor, optional_text(comment))


def record_accounting(invoice_id: int, actor: RoleContext, fields: dict) -> InvoiceLine:
    """
    Upsert the invoice's single accounting line.

    Blank strings are stored as NULL. A new line takes the invoice amount.
    Status is untouched and no event is appended.
    """
    require_capability(actor, "RECORD_ACCOUNTING")
    invoice = require_invoice_in_org(invoice_id, actor)

    if fields is None:
        fields = {}
    if not isinstance(fields, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(k for k in fields if k not in ACCOUNTING_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}", unknown[0])

    values = {}
    for name in ACCOUNTING_FIELDS:
        if name not in fields:
            continue
        value = optional_text(fields[name])
        max_len = InvoiceLine.__table__.c[name].type.length
        if value is not None and max_len and len(value) > max_len:
            raise ValidationError(f"{name} exceeds max length {max_len}", name)
        values[name] = value

    line = (
        db.session.query(InvoiceLine)
        .filter_by(invoice_id=invoice.id)
        .order_by(InvoiceLine.id.asc())
        .first()
    )
    if line is None:
        line = InvoiceLine(invoice_id=invoice.id, amount_cents=invoice.amount_cents)
        db.session.add(line)

    for name, value in values.items():
        setattr(line, name, value)

    _commit("record accounting", invoice.id)
    return line


def append_comment(invoice_id: int, actor: RoleContext, text: str | None) -> InvoiceEvent:
    require_capability(actor, "COMMENT_INVOICE")
    invoice = require_invoice_in_org(invoice_id, actor)

    comment = optional_text(text)
    if comment is None:
        raise ValidationError("Comment is required", "comment")

    event = _new_event(invoice, "comment", actor, comment=comment)
    _commit("comment", invoice.id)
    return event


def list_events(invoice_id: int, actor: RoleContext, newest_first: bool = True) -> list[InvoiceEvent]:
    """
    Activity log of one invoice.

    Canonical order is (created_at, id) ascending; the portal displays
    newest first.
    """
    require_capability(actor, "VIEW_INVOICES")
    invoice = require_invoice_in_org(invoice_id, actor)
    return events_for(invoice, newest_first=newest_first)


def events_for(invoice: Invoice, newest_first: bool = True) -> list[InvoiceEvent]:
    query = db.session.query(InvoiceEvent).filter_by(invoice_id=invoice.id)
    if newest_first:
        query = query.order_by(InvoiceEvent.created_at.desc(), InvoiceEvent.id.desc())
    else:
        query = query.order_by(InvoiceEvent.created_at.asc(), InvoiceEvent.id.asc())
    return query.all()


def derive_status(events: Iterable[InvoiceEvent]) -> str | None:
    """Status implied by the latest status-changing event (events in canonical order)."""
    status = None
    for event in events:
        if event.event_type in EVENT_STATUS:
            status = EVENT_STATUS[event.event_type]
    return status


def verify_consistency(invoice: Invoice) -> bool:
    """True when the cached status matches the event log projection."""
    events = events_for(invoice, newest_first=False)
    return bool(events) and derive_status(events) == invoice.status


def find_inconsistent_invoices(org_id: int | None = None) -> list[Invoice]:
    query = db.session.query(Invoice).order_by(Invoice.id.asc())
    if org_id is not None:
        query = query.filter(Invoice.org_id == org_id)
    return [invoice for invoice in query.all() if not verify_consistency(invoice)]


__all__ = [
    "LifecycleError",
    "InvalidTransitionError",
    "InvoiceStoreError",
    "TenantAccessError",
    "AttestationResult",
    "can_transition",
    "create_invoice",
    "send_for_attestation",
    "attest",
    "mark_paid",
    "record_accounting",
    "append_comment",
    "list_events",
    "events_for",
    "derive_status",
    "verify_consistency",
    "find_inconsistent_invoices",
]
