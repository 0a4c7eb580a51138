from .tenancy import Organization
from .auth import User, UserProfile, UserRole, SessionToken, PasswordResetToken
from .invitations import Invitation
from .invoices import (
    Vendor, Invoice, InvoiceLine, InvoiceEvent, InvoiceAttachment,
    INVOICE_STATUSES, INVOICE_EVENT_TYPES, ImmutableRecordError,
)
from .security import SecurityEvent

__all__ = [
    'Organization',
    'User', 'UserProfile', 'UserRole', 'SessionToken', 'PasswordResetToken',
    'Invitation',
    'Vendor', 'Invoice', 'InvoiceLine', 'InvoiceEvent', 'InvoiceAttachment',
    'INVOICE_STATUSES', 'INVOICE_EVENT_TYPES', 'ImmutableRecordError',
    'SecurityEvent',
]
