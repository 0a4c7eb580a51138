from __future__ import annotations

from ..extensions import db
from brfportal.time_utils import as_naive_utc, to_utc_z, utcnow


class Invitation(db.Model):
    """
    Pending offer to join an Organization with a given role.

    Valid for acceptance iff accepted_at IS NULL AND expires_at > now.
    Once accepted the invitation is terminal and never reopened.
    The token is single-use and is never returned by to_dict().
    """
    __tablename__ = "user_invitations"
    __table_args__ = (
        db.Index("ix_user_invitations_org_email", "org_id", "email"),
        db.CheckConstraint("role IN ('superadmin', 'brf_admin', 'brf_user')", name="ck_user_invitations_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False, default="brf_user")

    token = db.Column(db.String(128), nullable=False, unique=True, index=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    invited_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("invitations", lazy=True))
    invited_by = db.relationship("User", foreign_keys=[invited_by_user_id])

    def is_valid(self, now=None) -> bool:
        now = now or utcnow()
        return self.accepted_at is None and as_naive_utc(self.expires_at) > now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "email": self.email,
            "role": self.role,
            "expires_at": to_utc_z(self.expires_at),
            "accepted_at": to_utc_z(self.accepted_at) if self.accepted_at else None,
            "invited_by_user_id": self.invited_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
