# Overview: Invoice attachments (scans, PDFs): metadata rows plus stored files.

"""
Attachment Service

Upload and delete need MANAGE_INVOICES, download VIEW_INVOICES. The row
and the file are kept in step: a failed commit removes the just-written
file, and a delete removes the row before the file.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InvoiceAttachment
from ..validation import ValidationError
from . import storage_service
from .invoice_lifecycle_service import InvoiceStoreError
from .permission_service import require_capability
from .role_resolver import RoleContext
from .tenant_service import TenantAccessError, require_invoice_in_org

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/tiff",
    "application/octet-stream",
}


def upload_attachment(invoice_id: int, actor: RoleContext, file_name: str, stream,
                      content_type: str | None = None) -> InvoiceAttachment:
    require_capability(actor, "MANAGE_INVOICES")
    invoice = require_invoice_in_org(invoice_id, actor)

    if not file_name:
        raise ValidationError("file is required", "file")
    content_type = (content_type or "application/octet-stream").split(";")[0].strip().lower()
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(f"Unsupported file type: {content_type}", "file")

    key = storage_service.build_key(invoice.org_id, invoice.id, file_name)
    size = storage_service.save(key, stream)

    attachment = InvoiceAttachment(
        invoice_id=invoice.id,
        file_name=file_name[:255],
        file_path=key,
        file_size=size,
        file_type=content_type,
        uploaded_by_user_id=actor.user_id,
    )
    db.session.add(attachment)
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        storage_service.delete(key)
        raise InvoiceStoreError("The attachment could not be saved. Please retry.") from e

    logger.info("attachment %s stored for invoice %s", attachment.id, invoice.id,
                extra={"invoice_id": invoice.id, "user_id": actor.user_id, "org_id": invoice.org_id})
    return attachment


def _attachment_in_invoice(invoice_id: int, attachment_id: int, actor: RoleContext) -> InvoiceAttachment:
    invoice = require_invoice_in_org(invoice_id, actor)
    attachment = db.session.get(InvoiceAttachment, attachment_id)
    if attachment is None or attachment.invoice_id != invoice.id:
        raise TenantAccessError("Attachment not found")
    return attachment


def get_attachment_file(invoice_id: int, attachment_id: int, actor: RoleContext) -> tuple[InvoiceAttachment, str]:
    """(attachment, absolute path) for sending the file."""
    require_capability(actor, "VIEW_INVOICES")
    attachment = _attachment_in_invoice(invoice_id, attachment_id, actor)
    if not storage_service.exists(attachment.file_path):
        logger.error("attachment %s file missing at %s", attachment.id, attachment.file_path,
                     extra={"invoice_id": invoice_id})
        raise TenantAccessError("Attachment file not found")
    return attachment, storage_service.resolve_path(attachment.file_path)


def delete_attachment(invoice_id: int, attachment_id: int, actor: RoleContext) -> None:
    require_capability(actor, "MANAGE_INVOICES")
    attachment = _attachment_in_invoice(invoice_id, attachment_id, actor)
    key = attachment.file_path

    db.session.delete(attachment)
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise InvoiceStoreError("The attachment could not be deleted. Please retry.") from e

    storage_service.delete(key)
