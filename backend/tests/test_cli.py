"""
CLI command tests (flask system/orgs/users/invites/invoices/maintenance).
"""

import pytest
from sqlalchemy import text

from brfportal.extensions import db
from brfportal.models import Invitation, Organization, UserRole
from brfportal.permissions import Role
from brfportal.services import role_resolver
from brfportal.services.auth_service import get_user_by_email


@pytest.fixture
def runner(app, db_session):
    return app.test_cli_runner()


class TestSystemInit:

    def test_init_is_idempotent(self, runner):
        args = ["system", "init", "--org", "BRF Exempel", "--admin-email", "ops@example.se",
                "--admin-password", "Password123!"]

        result = runner.invoke(args=args)
        assert result.exit_code == 0, result.output
        assert "PASS Created organization: BRF Exempel" in result.output
        assert "PASS Created superadmin: ops@example.se" in result.output

        result = runner.invoke(args=args)
        assert "Using existing organization" in result.output
        assert "Superadmin already exists" in result.output

        assert db.session.query(Organization).count() == 1
        user = get_user_by_email("ops@example.se")
        assert role_resolver.resolve(user.id).is_superadmin

    def test_init_weak_password(self, runner):
        result = runner.invoke(args=["system", "init", "--admin-email", "ops@example.se", "--admin-password", "weak"])
        assert "FAIL Could not create superadmin" in result.output
        assert get_user_by_email("ops@example.se") is None


class TestOrgsAndUsers:

    def test_create_and_list_orgs(self, runner):
        result = runner.invoke(args=["orgs", "create", "--name", "BRF Eken", "--org-number", "769600-4711"])
        assert "PASS Created organization: BRF Eken" in result.output

        result = runner.invoke(args=["orgs", "create", "--name", "BRF Kopia", "--org-number", "769600-4711"])
        assert "FAIL" in result.output

        result = runner.invoke(args=["orgs", "list"])
        assert "BRF Eken" in result.output
        assert "BRF Kopia" not in result.output

    def test_create_superadmin(self, runner):
        result = runner.invoke(args=["users", "create-superadmin", "--email", "root@example.se",
                                     "--password", "Password123!"])
        assert "PASS Created superadmin: root@example.se" in result.output

        user = get_user_by_email("root@example.se")
        roles = db.session.query(UserRole).filter_by(user_id=user.id).all()
        assert [r.role for r in roles] == [Role.SUPERADMIN]

    def test_list_users(self, runner, admin_a, user_a, org_a):
        result = runner.invoke(args=["users", "list", "--org-id", str(org_a.id)])
        assert admin_a.email in result.output
        assert "brf_admin" in result.output
        assert user_a.email in result.output


class TestInvitesAndInvoices:

    def test_create_invite(self, runner, org_a):
        result = runner.invoke(args=["invites", "create", "--org-id", str(org_a.id), "--email", "ny@almen.se",
                                     "--role", Role.BRF_ADMIN])
        assert "PASS Invitation" in result.output

        invitation = db.session.query(Invitation).filter_by(email="ny@almen.se").one()
        assert f"TOKEN {invitation.token}" in result.output
        assert invitation.invited_by_user_id is None

    def test_invite_unknown_org(self, runner):
        result = runner.invoke(args=["invites", "create", "--org-id", "999", "--email", "ny@almen.se"])
        assert "FAIL Organization 999 not found" in result.output

    def test_verify_consistent(self, runner, invoice_a):
        result = runner.invoke(args=["invoices", "verify"])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_verify_detects_drift(self, runner, invoice_a):
        db.session.execute(text("UPDATE invoices SET status = 'attested' WHERE id = :id"), {"id": invoice_a.id})
        db.session.commit()
        db.session.expire_all()

        result = runner.invoke(args=["invoices", "verify"])
        assert result.exit_code == 1
        assert f"FAIL Invoice {invoice_a.id}" in result.output

    def test_cleanup_sessions(self, runner):
        result = runner.invoke(args=["maintenance", "cleanup-sessions"])
        assert "PASS Deleted 0 sessions" in result.output
