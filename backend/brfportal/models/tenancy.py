from __future__ import annotations

from ..extensions import db
from brfportal.time_utils import to_utc_z


class Organization(db.Model):
    """
    Tenant root: every housing association (BRF) is an Organization.

    All vendors, invoices and user profiles belong to exactly one
    organization (profiles may have none while unassigned). Queries
    touching tenant data must be scoped by org_id.

    Organizations are created by a superadmin, rarely mutated and never
    deleted; is_active=False is the only retirement path.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    org_number = db.Column(db.String(32), nullable=True, unique=True, index=True)  # Swedish organisationsnummer

    address = db.Column(db.String(255), nullable=True)
    postal_code = db.Column(db.String(16), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "org_number": self.org_number,
            "address": self.address,
            "postal_code": self.postal_code,
            "city": self.city,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
