from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from brfportal.time_utils import to_utc_z, to_iso_date


INVOICE_STATUSES = ("new", "pending_attestation", "attested", "rejected", "paid")
INVOICE_EVENT_TYPES = ("created", "sent", "attested", "rejected", "paid", "comment", "updated")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


class Vendor(db.Model):
    """
    Billing counterparty (supplier) scoped to one organization.

    Payment references follow Swedish practice: bankgiro / plusgiro.
    """
    __tablename__ = "vendors"
    __table_args__ = (
        db.Index("ix_vendors_org_name", "org_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    org_number = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    bankgiro = db.Column(db.String(32), nullable=True)
    plusgiro = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("vendors", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "org_number": self.org_number,
            "address": self.address,
            "bankgiro": self.bankgiro,
            "plusgiro": self.plusgiro,
            "email": self.email,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Invoice(db.Model):
    """
    Supplier invoice awaiting review/attestation by the organization.

    STATUS is a cached projection of the InvoiceEvent log:
        new -> pending_attestation -> {attested, rejected}; attested -> paid

    Status may only change through services.invoice_lifecycle_service,
    which writes the status and its event in one transaction.

    Amounts are integer minor units (öre) and never negative. due_date is
    advisory; it is not validated against invoice_date.

    version_id guards the status write: two concurrent attestations of the
    same invoice cannot both commit.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_org_status", "org_id", "status"),
        db.Index("ix_invoices_org_due", "org_id", "due_date"),
        db.CheckConstraint("amount_cents >= 0", name="ck_invoices_amount_nonneg"),
        db.CheckConstraint("vat_amount_cents IS NULL OR vat_amount_cents >= 0", name="ck_invoices_vat_nonneg"),
        db.CheckConstraint(_in_list("status", INVOICE_STATUSES), name="ck_invoices_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True, index=True)

    invoice_number = db.Column(db.String(64), nullable=True)
    ocr_number = db.Column(db.String(64), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    vat_amount_cents = db.Column(db.Integer, nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="SEK")

    invoice_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(32), nullable=False, default="new", index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("invoices", lazy=True))
    vendor = db.relationship("Vendor", backref=db.backref("invoices", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status}>"

    def to_dict(self, include_vendor: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "vendor_id": self.vendor_id,
            "invoice_number": self.invoice_number,
            "ocr_number": self.ocr_number,
            "amount_cents": self.amount_cents,
            "vat_amount_cents": self.vat_amount_cents,
            "currency": self.currency,
            "invoice_date": to_iso_date(self.invoice_date),
            "due_date": to_iso_date(self.due_date),
            "description": self.description,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_vendor:
            data["vendor"] = self.vendor.to_dict() if self.vendor else None
        return data


class InvoiceLine(db.Model):
    """
    Accounting annotation (kontering) for an invoice.

    The portal keeps at most one line per invoice, though the table permits
    many. Editing a line never touches Invoice.status and does not append an
    InvoiceEvent.
    """
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    account_code = db.Column(db.String(32), nullable=True)  # free text, e.g. BAS "6210"
    cost_center = db.Column(db.String(64), nullable=True)
    project = db.Column(db.String(128), nullable=True)
    vat_code = db.Column(db.String(32), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", backref=db.backref("lines", lazy=True, order_by="InvoiceLine.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "account_code": self.account_code,
            "cost_center": self.cost_center,
            "project": self.project,
            "vat_code": self.vat_code,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceEvent(db.Model):
    """
    Invoice activity log entry.

    IMMUTABLE: append-only. The ordered sequence of events (created_at, id)
    is the authoritative history; Invoice.status is derived from the latest
    status-changing event. user_id is NULL for system-generated events.
    """
    __tablename__ = "invoice_events"
    __table_args__ = (
        db.Index("ix_invoice_events_invoice_created", "invoice_id", "created_at"),
        db.CheckConstraint(_in_list("event_type", INVOICE_EVENT_TYPES), name="ck_invoice_events_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    event_type = db.Column(db.String(32), nullable=False)
    comment = db.Column(db.Text, nullable=True)
    event_metadata = db.Column("metadata", db.JSON, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", backref=db.backref("events", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "event_type": self.event_type,
            "comment": self.comment,
            "metadata": self.event_metadata,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceAttachment(db.Model):
    """Stored file (scan, PDF) attached to an invoice. Immutable except deletion."""
    __tablename__ = "invoice_attachments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(512), nullable=False, unique=True)  # storage key
    file_size = db.Column(db.Integer, nullable=True)
    file_type = db.Column(db.String(128), nullable=True)

    uploaded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", backref=db.backref("attachments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "file_name": self.file_name,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "file_type": self.file_type,
            "uploaded_by_user_id": self.uploaded_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to update or delete an append-only record."""


@event.listens_for(InvoiceEvent, "before_update")
def _refuse_event_update(mapper, connection, target):
    raise ImmutableRecordError(f"InvoiceEvent {target.id} is append-only and cannot be updated")


@event.listens_for(InvoiceEvent, "before_delete")
def _refuse_event_delete(mapper, connection, target):
    raise ImmutableRecordError(f"InvoiceEvent {target.id} is append-only and cannot be deleted")
