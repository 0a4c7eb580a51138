"""
Invoice lifecycle tests.

Verifies:
- Attest / reject / send / pay transitions and their events
- Settled invoices never change status and gain no events
- Cached status always matches the event log
- Status + event are written together or not at all
- Events are append-only
- Accounting lines and comments never touch status
"""

import warnings

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from brfportal.extensions import db
from brfportal.models import ImmutableRecordError, Invoice, InvoiceEvent, InvoiceLine, SecurityEvent, Vendor
from brfportal.services import invoice_lifecycle_service as lifecycle
from brfportal.services.invoice_lifecycle_service import (
    InvalidTransitionError,
    InvoiceStoreError,
    LifecycleError,
)
from brfportal.services.permission_service import PermissionDeniedError
from brfportal.services.tenant_service import TenantAccessError
from brfportal.validation import ValidationError


def _event_types(invoice):
    return [e.event_type for e in lifecycle.events_for(invoice, newest_first=False)]


def _event_count(invoice_id):
    return db.session.query(InvoiceEvent).filter_by(invoice_id=invoice_id).count()


# =============================================================================
# TRANSITION TABLE
# =============================================================================


class TestTransitionTable:

    @pytest.mark.parametrize("from_status,to_status", [
        ("new", "pending_attestation"),
        ("new", "attested"),
        ("new", "rejected"),
        ("pending_attestation", "attested"),
        ("pending_attestation", "rejected"),
        ("attested", "paid"),
    ])
    def test_allowed(self, from_status, to_status):
        assert lifecycle.can_transition(from_status, to_status)

    @pytest.mark.parametrize("from_status,to_status", [
        ("attested", "rejected"),
        ("rejected", "attested"),
        ("paid", "attested"),
        ("rejected", "paid"),
        ("new", "paid"),
        ("pending_attestation", "new"),
        ("paid", "new"),
    ])
    def test_forbidden(self, from_status, to_status):
        assert not lifecycle.can_transition(from_status, to_status)

    def test_unknown_status(self):
        with pytest.raises(LifecycleError):
            lifecycle.can_transition("new", "archived")


# =============================================================================
# CREATE
# =============================================================================


class TestCreateInvoice:

    def test_created_in_own_org_with_event(self, admin_a, org_a, context_of):
        invoice = lifecycle.create_invoice(context_of(admin_a), {
            "amount_cents": "125000",
            "invoice_date": "2026-10-01",
            "due_date": "2026-10-31",
            "currency": "sek",
            "description": "  ",
        })

        assert invoice.org_id == org_a.id
        assert invoice.status == "new"
        assert invoice.amount_cents == 125000
        assert invoice.currency == "SEK"
        assert invoice.description is None
        assert invoice.created_by_user_id == admin_a.id
        assert _event_types(invoice) == ["created"]
        assert lifecycle.verify_consistency(invoice)

    def test_missing_required_fields(self, admin_a, context_of):
        with pytest.raises(ValidationError) as exc:
            lifecycle.create_invoice(context_of(admin_a), {"amount_cents": 100})
        assert exc.value.field == "due_date"

    @pytest.mark.parametrize("amount", [-1, 1.5, "1e5", "abc", True])
    def test_invalid_amount(self, admin_a, context_of, amount):
        with pytest.raises(ValidationError):
            lifecycle.create_invoice(context_of(admin_a), {
                "amount_cents": amount, "invoice_date": "2026-10-01", "due_date": "2026-10-31",
            })

    def test_status_not_writable(self, admin_a, context_of):
        with pytest.raises(ValidationError) as exc:
            lifecycle.create_invoice(context_of(admin_a), {
                "amount_cents": 1, "invoice_date": "2026-10-01", "due_date": "2026-10-31", "status": "paid",
            })
        assert exc.value.field == "status"

    def test_due_date_not_compared_with_invoice_date(self, admin_a, context_of):
        invoice = lifecycle.create_invoice(context_of(admin_a), {
            "amount_cents": 1, "invoice_date": "2026-10-31", "due_date": "2026-10-01",
        })
        assert invoice.status == "new"

    def test_vendor_from_other_org_rejected(self, admin_a, org_b, context_of):
        foreign = Vendor(org_id=org_b.id, name="Fjärrvärme AB")
        db.session.add(foreign)
        db.session.commit()

        with pytest.raises(ValidationError) as exc:
            lifecycle.create_invoice(context_of(admin_a), {
                "amount_cents": 1, "invoice_date": "2026-10-01", "due_date": "2026-10-31",
                "vendor_id": foreign.id,
            })
        assert exc.value.field == "vendor_id"

    def test_brf_user_cannot_register(self, user_a, context_of):
        with pytest.raises(PermissionDeniedError):
            lifecycle.create_invoice(context_of(user_a), {
                "amount_cents": 1, "invoice_date": "2026-10-01", "due_date": "2026-10-31",
            })

    def test_superadmin_targets_org(self, superadmin, org_b, context_of):
        invoice = lifecycle.create_invoice(context_of(superadmin), {
            "amount_cents": 1, "invoice_date": "2026-10-01", "due_date": "2026-10-31",
        }, org_id=org_b.id)
        assert invoice.org_id == org_b.id

    def test_superadmin_without_org_needs_target(self, superadmin, context_of):
        with pytest.raises(TenantAccessError):
            lifecycle.create_invoice(context_of(superadmin), {
                "amount_cents": 1, "invoice_date": "2026-10-01", "due_date": "2026-10-31",
            })


# =============================================================================
# ATTESTATION
# =============================================================================


class TestAttest:

    def test_reject_example(self, invoice_a, user_a, context_of):
        """new invoice rejected by a brf_user, then a second attempt fails."""
        actor = context_of(user_a)

        result = lifecycle.attest(invoice_a.id, actor, approve=False, comment="missing PO")

        assert result.status == "rejected"
        assert result.event.event_type == "rejected"
        assert result.event.comment == "missing PO"
        assert result.event.user_id == user_a.id
        assert result.event.event_metadata == {"from_status": "new", "to_status": "rejected"}

        with pytest.raises(InvalidTransitionError) as exc:
            lifecycle.attest(invoice_a.id, actor, approve=False)
        assert exc.value.from_status == "rejected"

        assert _event_types(invoice_a) == ["created", "rejected"]

    def test_approve_once(self, invoice_a, user_a, context_of):
        result = lifecycle.attest(invoice_a.id, context_of(user_a), approve=True)
        assert result.status == "attested"
        assert _event_types(invoice_a).count("attested") == 1

        with pytest.raises(InvalidTransitionError):
            lifecycle.attest(invoice_a.id, context_of(user_a), approve=True)
        assert _event_types(invoice_a).count("attested") == 1

    def test_attest_pending_invoice(self, invoice_a, admin_a, user_a, context_of):
        lifecycle.send_for_attestation(invoice_a.id, context_of(admin_a), comment="Please review")
        result = lifecycle.attest(invoice_a.id, context_of(user_a), approve=True)

        assert result.status == "attested"
        assert _event_types(invoice_a) == ["created", "sent", "attested"]

    @pytest.mark.parametrize("approve", [True, False])
    def test_settled_invoices_never_change(self, invoice_a, admin_a, user_a, context_of, approve):
        lifecycle.attest(invoice_a.id, context_of(user_a), approve=True)
        lifecycle.mark_paid(invoice_a.id, context_of(admin_a))
        before = _event_count(invoice_a.id)

        with pytest.raises(InvalidTransitionError):
            lifecycle.attest(invoice_a.id, context_of(admin_a), approve=approve)

        db.session.expire_all()
        assert db.session.get(Invoice, invoice_a.id).status == "paid"
        assert _event_count(invoice_a.id) == before

    def test_comment_blank_is_stored_as_null(self, invoice_a, user_a, context_of):
        result = lifecycle.attest(invoice_a.id, context_of(user_a), approve=True, comment="   ")
        assert result.event.comment is None

    def test_unprovisioned_denied(self, invoice_a, unprovisioned, context_of):
        with pytest.raises(PermissionDeniedError) as exc:
            lifecycle.attest(invoice_a.id, context_of(unprovisioned), approve=True)
        assert exc.value.capability == "ATTEST_INVOICE"

        denial = db.session.query(SecurityEvent).filter_by(
            user_id=unprovisioned.id, event_type="PERMISSION_DENIED"
        ).one()
        assert denial.action == "ATTEST_INVOICE"
        assert _event_types(invoice_a) == ["created"]

    def test_other_org_reported_as_missing(self, invoice_b, user_a, context_of):
        with pytest.raises(TenantAccessError):
            lifecycle.attest(invoice_b.id, context_of(user_a), approve=True)
        assert _event_types(invoice_b) == ["created"]

    def test_superadmin_attests_any_org(self, invoice_b, superadmin, context_of):
        assert lifecycle.attest(invoice_b.id, context_of(superadmin), approve=True).status == "attested"

    def test_unknown_invoice(self, user_a, context_of):
        with pytest.raises(TenantAccessError):
            lifecycle.attest(424242, context_of(user_a), approve=True)


class TestOtherTransitions:

    def test_send_twice_fails(self, invoice_a, admin_a, context_of):
        lifecycle.send_for_attestation(invoice_a.id, context_of(admin_a))
        with pytest.raises(InvalidTransitionError):
            lifecycle.send_for_attestation(invoice_a.id, context_of(admin_a))

    def test_pay_requires_attested(self, invoice_a, admin_a, context_of):
        with pytest.raises(InvalidTransitionError) as exc:
            lifecycle.mark_paid(invoice_a.id, context_of(admin_a))
        assert exc.value.from_status == "new"
        assert exc.value.to_status == "paid"

    def test_brf_user_cannot_pay(self, invoice_a, user_a, context_of):
        lifecycle.attest(invoice_a.id, context_of(user_a), approve=True)
        with pytest.raises(PermissionDeniedError):
            lifecycle.mark_paid(invoice_a.id, context_of(user_a))

    def test_full_flow_stays_consistent(self, invoice_a, admin_a, user_a, context_of):
        assert lifecycle.verify_consistency(invoice_a)

        lifecycle.send_for_attestation(invoice_a.id, context_of(admin_a))
        assert lifecycle.verify_consistency(invoice_a)

        lifecycle.append_comment(invoice_a.id, context_of(user_a), "Looks right")
        assert lifecycle.verify_consistency(invoice_a)

        lifecycle.attest(invoice_a.id, context_of(user_a), approve=True)
        assert lifecycle.verify_consistency(invoice_a)

        lifecycle.record_accounting(invoice_a.id, context_of(user_a), {"account_code": "6210"})
        assert lifecycle.verify_consistency(invoice_a)

        lifecycle.mark_paid(invoice_a.id, context_of(admin_a))
        assert lifecycle.verify_consistency(invoice_a)

        assert _event_types(invoice_a) == ["created", "sent", "comment", "attested", "paid"]
        assert lifecycle.find_inconsistent_invoices() == []


# =============================================================================
# ATOMICITY / CONCURRENCY
# =============================================================================


class TestAtomicity:

    def test_commit_failure_rolls_back_status_and_event(self, invoice_a, user_a, context_of, monkeypatch):
        actor = context_of(user_a)

        def failing_commit():
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(db.session, "commit", failing_commit)
        with pytest.raises(InvoiceStoreError):
            lifecycle.attest(invoice_a.id, actor, approve=True)
        monkeypatch.undo()

        db.session.expire_all()
        assert db.session.get(Invoice, invoice_a.id).status == "new"
        assert _event_count(invoice_a.id) == 1

    def test_concurrent_update_detected(self, invoice_a, user_a, context_of):
        """A write based on a stale read of the invoice is refused."""
        actor = context_of(user_a)
        invoice = db.session.get(Invoice, invoice_a.id)
        assert invoice.status == "new"

        # Another writer bumps the row version behind this session's back
        db.session.connection().execute(
            text("UPDATE invoices SET version_id = version_id + 1 WHERE id = :id"),
            {"id": invoice_a.id},
        )

        with pytest.raises(InvoiceStoreError):
            lifecycle.attest(invoice_a.id, actor, approve=True)

        db.session.expire_all()
        assert db.session.get(Invoice, invoice_a.id).status == "new"
        assert _event_count(invoice_a.id) == 1

    def test_inconsistency_detected(self, invoice_a):
        db.session.connection().execute(
            text("UPDATE invoices SET status = 'paid' WHERE id = :id"), {"id": invoice_a.id}
        )
        db.session.commit()
        db.session.expire_all()

        assert [i.id for i in lifecycle.find_inconsistent_invoices()] == [invoice_a.id]


class TestEventLog:

    def test_events_are_immutable(self, invoice_a):
        event = db.session.query(InvoiceEvent).filter_by(invoice_id=invoice_a.id).one()
        event.comment = "rewritten history"

        with pytest.raises(ImmutableRecordError):
            db.session.commit()
        db.session.rollback()

    def test_events_cannot_be_deleted(self, invoice_a):
        event = db.session.query(InvoiceEvent).filter_by(invoice_id=invoice_a.id).one()
        db.session.delete(event)

        with pytest.raises(ImmutableRecordError):
            db.session.commit()
        db.session.rollback()

    def test_order(self, invoice_a, admin_a, user_a, context_of):
        lifecycle.append_comment(invoice_a.id, context_of(user_a), "first")
        lifecycle.append_comment(invoice_a.id, context_of(user_a), "second")

        newest = lifecycle.list_events(invoice_a.id, context_of(user_a))
        oldest = lifecycle.list_events(invoice_a.id, context_of(user_a), newest_first=False)

        assert [e.comment for e in newest][:2] == ["second", "first"]
        assert [e.id for e in oldest] == [e.id for e in reversed(newest)]
        assert oldest[0].event_type == "created"

    def test_blank_comment_rejected(self, invoice_a, user_a, context_of):
        with pytest.raises(ValidationError) as exc:
            lifecycle.append_comment(invoice_a.id, context_of(user_a), "  ")
        assert exc.value.field == "comment"

    def test_list_events_other_org(self, invoice_b, user_a, context_of):
        with pytest.raises(TenantAccessError):
            lifecycle.list_events(invoice_b.id, context_of(user_a))

    def test_derive_status(self, invoice_a, user_a, context_of):
        lifecycle.attest(invoice_a.id, context_of(user_a), approve=False)
        lifecycle.append_comment(invoice_a.id, context_of(user_a), "noted")

        events = lifecycle.events_for(invoice_a, newest_first=False)
        assert lifecycle.derive_status(events) == "rejected"
        assert lifecycle.derive_status([]) is None


# =============================================================================
# ACCOUNTING
# =============================================================================


class TestRecordAccounting:

    def test_creates_line_with_invoice_amount(self, invoice_a, user_a, context_of):
        line = lifecycle.record_accounting(invoice_a.id, context_of(user_a), {
            "account_code": "6210",
            "cost_center": "",
            "vat_code": " 25 ",
        })

        assert line.amount_cents == invoice_a.amount_cents
        assert line.account_code == "6210"
        assert line.cost_center is None
        assert line.vat_code == "25"
        assert invoice_a.status == "new"
        assert _event_types(invoice_a) == ["created"]

    def test_updates_single_line_in_place(self, invoice_a, user_a, context_of):
        first = lifecycle.record_accounting(invoice_a.id, context_of(user_a), {"account_code": "6210"})
        second = lifecycle.record_accounting(invoice_a.id, context_of(user_a), {"project": "Stambyte 2026"})

        assert first.id == second.id
        assert second.account_code == "6210"
        assert second.project == "Stambyte 2026"
        assert db.session.query(InvoiceLine).filter_by(invoice_id=invoice_a.id).count() == 1

    def test_blank_clears_field(self, invoice_a, user_a, context_of):
        lifecycle.record_accounting(invoice_a.id, context_of(user_a), {"account_code": "6210"})
        line = lifecycle.record_accounting(invoice_a.id, context_of(user_a), {"account_code": ""})
        assert line.account_code is None

    def test_allowed_on_settled_invoice(self, invoice_a, user_a, context_of):
        lifecycle.attest(invoice_a.id, context_of(user_a), approve=False)
        line = lifecycle.record_accounting(invoice_a.id, context_of(user_a), {"account_code": "4010"})
        assert line.account_code == "4010"
        assert invoice_a.status == "rejected"

    def test_unknown_field(self, invoice_a, user_a, context_of):
        with pytest.raises(ValidationError) as exc:
            lifecycle.record_accounting(invoice_a.id, context_of(user_a), {"amount_cents": 1})
        assert exc.value.field == "amount_cents"

    def test_too_long(self, invoice_a, user_a, context_of):
        with pytest.raises(ValidationError):
            lifecycle.record_accounting(invoice_a.id, context_of(user_a), {"account_code": "9" * 33})

    def test_other_org(self, invoice_b, user_a, context_of):
        with pytest.raises(TenantAccessError):
            lifecycle.record_accounting(invoice_b.id, context_of(user_a), {"account_code": "6210"})


class TestModuleSource:

    def test_compiles_without_warnings(self):
        with open(lifecycle.__file__, encoding="utf-8") as f:
            source = f.read()
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(source, lifecycle.__file__, "exec")
