"""
Invoice API tests: listing, dashboard figures, detail view and the
lifecycle endpoints' HTTP contract.
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from brfportal.extensions import db
from brfportal.models import Invoice, InvoiceEvent, SecurityEvent
from brfportal.services import invoice_lifecycle_service, vendor_service
from brfportal.time_utils import utcnow


def _due(days: int) -> str:
    return (utcnow().date() + timedelta(days=days)).isoformat()


class TestListInvoices:

    def test_newest_first(self, client, admin_a, user_a_headers, invoice_factory):
        first = invoice_factory(admin_a, invoice_number="F-1")
        second = invoice_factory(admin_a, invoice_number="F-2")

        resp = client.get("/api/invoices", headers=user_a_headers)
        assert resp.status_code == 200
        assert [i["id"] for i in resp.json["items"]] == [second.id, first.id]
        assert resp.json["count"] == 2

    def test_filter_by_status(self, client, admin_a, user_a, user_a_headers, invoice_factory, context_of):
        keep = invoice_factory(admin_a, invoice_number="F-1")
        rejected = invoice_factory(admin_a, invoice_number="F-2")
        invoice_lifecycle_service.attest(rejected.id, context_of(user_a), approve=False)

        resp = client.get("/api/invoices?status=rejected", headers=user_a_headers)
        assert [i["id"] for i in resp.json["items"]] == [rejected.id]

        resp = client.get("/api/invoices?status=new", headers=user_a_headers)
        assert [i["id"] for i in resp.json["items"]] == [keep.id]

    def test_unknown_status_filter(self, client, user_a_headers):
        resp = client.get("/api/invoices?status=archived", headers=user_a_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "status"

    def test_includes_vendor(self, client, admin_a_headers):
        vendor = client.post("/api/vendors", json={"name": "Elbolaget AB", "bankgiro": "123-4567"},
                             headers=admin_a_headers).json
        created = client.post("/api/invoices", json={
            "vendor_id": vendor["id"], "amount_cents": 99000, "invoice_date": _due(0), "due_date": _due(30),
        }, headers=admin_a_headers)
        assert created.status_code == 201

        resp = client.get("/api/invoices", headers=admin_a_headers)
        assert resp.json["items"][0]["vendor"]["name"] == "Elbolaget AB"

    def test_search_matches_each_field(self, client, admin_a, user_a_headers, invoice_factory, context_of):
        vendor = vendor_service.create_vendor(context_of(admin_a), {"name": "Elbolaget AB"})
        by_number = invoice_factory(admin_a, invoice_number="F-7788")
        by_ocr = invoice_factory(admin_a, invoice_number="F-2", ocr_number="55501234")
        by_vendor = invoice_factory(admin_a, invoice_number="F-3", vendor_id=vendor.id)
        by_text = invoice_factory(admin_a, invoice_number="F-4", description="Snöröjning januari")
        invoice_factory(admin_a, invoice_number="F-5", description="Trappstädning")

        def found(term):
            resp = client.get("/api/invoices", query_string={"search": term}, headers=user_a_headers)
            assert resp.status_code == 200
            return [i["id"] for i in resp.json["items"]]

        assert found("f-77") == [by_number.id]
        assert found("5550") == [by_ocr.id]
        assert found("ELBOLAGET") == [by_vendor.id]
        assert found("januari") == [by_text.id]
        assert len(found("  ")) == 5

    def test_search_without_match(self, client, invoice_a, user_a_headers):
        resp = client.get("/api/invoices?search=zzz-no-match", headers=user_a_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 0

    def test_search_wildcards_are_literal(self, client, invoice_a, user_a_headers):
        resp = client.get("/api/invoices", query_string={"search": "%"}, headers=user_a_headers)
        assert resp.json["count"] == 0

    def test_search_stays_in_own_org(self, client, admin_b, invoice_a, user_a_headers, user_b_headers, invoice_factory):
        foreign = invoice_factory(admin_b, invoice_number="B-9", description="Takrenovering")

        resp = client.get("/api/invoices?search=takrenovering", headers=user_a_headers)
        assert resp.json["count"] == 0

        resp = client.get("/api/invoices?search=takrenovering", headers=user_b_headers)
        assert [i["id"] for i in resp.json["items"]] == [foreign.id]


class TestDashboard:

    def test_stats_cover_every_status(self, client, admin_a, user_a, user_a_headers, invoice_factory, context_of):
        invoice_factory(admin_a, invoice_number="F-1")
        attested = invoice_factory(admin_a, invoice_number="F-2")
        invoice_lifecycle_service.attest(attested.id, context_of(user_a), approve=True)

        resp = client.get("/api/invoices/stats", headers=user_a_headers)
        assert resp.status_code == 200
        assert resp.json == {
            "new": 1,
            "pending_attestation": 0,
            "attested": 1,
            "rejected": 0,
            "paid": 0,
            "total": 2,
        }

    def test_upcoming(self, client, admin_a, user_a, user_a_headers, invoice_factory, context_of):
        later = invoice_factory(admin_a, due_in_days=20, invoice_number="later")
        sooner = invoice_factory(admin_a, due_in_days=3, invoice_number="sooner")
        invoice_factory(admin_a, due_in_days=45, invoice_number="outside")
        invoice_factory(admin_a, due_in_days=-2, invoice_number="overdue")
        paid = invoice_factory(admin_a, due_in_days=5, invoice_number="paid")
        invoice_lifecycle_service.attest(paid.id, context_of(user_a), approve=True)
        invoice_lifecycle_service.mark_paid(paid.id, context_of(admin_a))

        resp = client.get("/api/invoices/upcoming", headers=user_a_headers)
        assert resp.status_code == 200
        assert [i["id"] for i in resp.json["items"]] == [sooner.id, later.id]

    def test_upcoming_limited_to_five(self, client, admin_a, user_a_headers, invoice_factory):
        for n in range(7):
            invoice_factory(admin_a, due_in_days=n + 1, invoice_number=f"F-{n}")

        resp = client.get("/api/invoices/upcoming", headers=user_a_headers)
        assert len(resp.json["items"]) == 5


class TestDetail:

    def test_detail(self, client, invoice_a, user_a, user_a_headers):
        client.put(f"/api/invoices/{invoice_a.id}/accounting", json={"account_code": "6210"}, headers=user_a_headers)
        client.post(f"/api/invoices/{invoice_a.id}/comments", json={"comment": "Kontrollerad"}, headers=user_a_headers)

        resp = client.get(f"/api/invoices/{invoice_a.id}", headers=user_a_headers)
        assert resp.status_code == 200
        body = resp.json
        assert body["status"] == "new"
        assert body["can_attest"] is True
        assert body["lines"][0]["account_code"] == "6210"
        assert [e["event_type"] for e in body["events"]] == ["comment", "created"]
        assert body["events"][0]["user_id"] == user_a.id
        assert body["attachments"] == []

    def test_can_attest_false_when_settled(self, client, invoice_a, user_a_headers):
        client.post(f"/api/invoices/{invoice_a.id}/attest", json={"approve": False}, headers=user_a_headers)
        resp = client.get(f"/api/invoices/{invoice_a.id}", headers=user_a_headers)
        assert resp.json["can_attest"] is False

    def test_missing(self, client, user_a_headers):
        assert client.get("/api/invoices/999", headers=user_a_headers).status_code == 404


class TestLifecycleEndpoints:

    def test_register(self, client, admin_a_headers, org_a):
        resp = client.post("/api/invoices", json={
            "amount_cents": 1250000,
            "vat_amount_cents": 250000,
            "invoice_date": "2026-10-01",
            "due_date": "2026-10-31",
            "invoice_number": "F-1001",
            "ocr_number": "1234567890",
        }, headers=admin_a_headers)
        assert resp.status_code == 201
        assert resp.json["status"] == "new"
        assert resp.json["org_id"] == org_a.id
        assert resp.json["currency"] == "SEK"

    def test_register_invalid(self, client, admin_a_headers):
        resp = client.post("/api/invoices", json={"amount_cents": -5, "invoice_date": "2026-10-01",
                                                   "due_date": "2026-10-31"}, headers=admin_a_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "amount_cents"

    def test_full_flow(self, client, invoice_a, admin_a_headers, user_a_headers):
        base = f"/api/invoices/{invoice_a.id}"

        resp = client.post(f"{base}/send", json={"comment": "Till attest"}, headers=admin_a_headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "pending_attestation"

        resp = client.post(f"{base}/attest", json={"approve": True, "comment": "OK"}, headers=user_a_headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "attested"
        assert resp.json["event"]["comment"] == "OK"

        resp = client.post(f"{base}/pay", headers=admin_a_headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "paid"

        resp = client.get(f"{base}/events?order=asc", headers=user_a_headers)
        assert [e["event_type"] for e in resp.json["items"]] == ["created", "sent", "attested", "paid"]

    def test_attest_settled_is_conflict(self, client, invoice_a, user_a_headers):
        base = f"/api/invoices/{invoice_a.id}"
        assert client.post(f"{base}/attest", json={"approve": False}, headers=user_a_headers).status_code == 200

        resp = client.post(f"{base}/attest", json={"approve": True}, headers=user_a_headers)
        assert resp.status_code == 409
        assert resp.json["status"] == "rejected"

        db.session.expire_all()
        assert db.session.query(InvoiceEvent).filter_by(invoice_id=invoice_a.id).count() == 2

    @pytest.mark.parametrize("body", [{}, {"approve": "yes"}, {"approve": 1}, {"approve": None}])
    def test_attest_requires_boolean(self, client, invoice_a, user_a_headers, body):
        resp = client.post(f"/api/invoices/{invoice_a.id}/attest", json=body, headers=user_a_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "approve"

    @pytest.mark.parametrize("path, body", [
        ("attest", ["approve"]),
        ("attest", "approve"),
        ("send", [1, 2]),
        ("pay", 7),
        ("comments", ["Kontrollerad"]),
        ("accounting", ["6210"]),
    ])
    def test_non_object_body_rejected(self, client, invoice_a, admin_a_headers, path, body):
        method = client.put if path == "accounting" else client.post
        resp = method(f"/api/invoices/{invoice_a.id}/{path}", json=body, headers=admin_a_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Invalid JSON payload"

        db.session.expire_all()
        assert db.session.query(InvoiceEvent).filter_by(invoice_id=invoice_a.id).count() == 1

    def test_register_non_object_body(self, client, admin_a_headers):
        resp = client.post("/api/invoices", json=[{"amount_cents": 100}], headers=admin_a_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Invalid JSON payload"

    def test_register_with_own_org_id_as_string(self, client, admin_a_headers, org_a):
        resp = client.post("/api/invoices", json={
            "amount_cents": 50000, "invoice_date": _due(0), "due_date": _due(30), "org_id": str(org_a.id),
        }, headers=admin_a_headers)
        assert resp.status_code == 201
        assert resp.json["org_id"] == org_a.id

        db.session.expire_all()
        assert db.session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").count() == 0

    def test_register_with_malformed_org_id(self, client, admin_a_headers):
        resp = client.post("/api/invoices", json={
            "amount_cents": 50000, "invoice_date": _due(0), "due_date": _due(30), "org_id": "ett",
        }, headers=admin_a_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "org_id"

    def test_pay_before_attest_is_conflict(self, client, invoice_a, admin_a_headers):
        resp = client.post(f"/api/invoices/{invoice_a.id}/pay", headers=admin_a_headers)
        assert resp.status_code == 409

    def test_store_failure_is_503(self, client, invoice_a, user_a_headers, monkeypatch):
        original_commit = db.session.commit
        calls = {"n": 0}

        def flaky_commit():
            # The session touch during authentication must still succeed
            calls["n"] += 1
            if calls["n"] > 1:
                raise SQLAlchemyError("database is locked")
            return original_commit()

        monkeypatch.setattr(db.session, "commit", flaky_commit)
        resp = client.post(f"/api/invoices/{invoice_a.id}/attest", json={"approve": True}, headers=user_a_headers)
        monkeypatch.undo()

        assert resp.status_code == 503
        db.session.expire_all()
        assert db.session.get(Invoice, invoice_a.id).status == "new"

    def test_accounting(self, client, invoice_a, user_a_headers):
        resp = client.put(f"/api/invoices/{invoice_a.id}/accounting",
                          json={"account_code": "6210", "cost_center": "Hus B"}, headers=user_a_headers)
        assert resp.status_code == 200
        assert resp.json["amount_cents"] == invoice_a.amount_cents

        resp = client.put(f"/api/invoices/{invoice_a.id}/accounting", json={"status": "paid"}, headers=user_a_headers)
        assert resp.status_code == 400

    def test_comment_required(self, client, invoice_a, user_a_headers):
        resp = client.post(f"/api/invoices/{invoice_a.id}/comments", json={"comment": " "}, headers=user_a_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "comment"


class TestVendors:

    def test_create_and_update(self, client, admin_a_headers, org_a):
        resp = client.post("/api/vendors", json={"name": "Sotarn AB", "email": "Faktura@Sotarn.se"},
                           headers=admin_a_headers)
        assert resp.status_code == 201
        assert resp.json["org_id"] == org_a.id
        assert resp.json["email"] == "faktura@sotarn.se"

        resp = client.patch(f"/api/vendors/{resp.json['id']}", json={"bankgiro": "555-1234"}, headers=admin_a_headers)
        assert resp.status_code == 200
        assert resp.json["bankgiro"] == "555-1234"
        assert resp.json["name"] == "Sotarn AB"

    def test_name_required(self, client, admin_a_headers):
        resp = client.post("/api/vendors", json={"org_number": "556677-8899"}, headers=admin_a_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "name"

    def test_list_sorted(self, client, admin_a_headers, user_a_headers):
        for name in ("Vattenbolaget", "Avfall AB"):
            client.post("/api/vendors", json={"name": name}, headers=admin_a_headers)
        resp = client.get("/api/vendors", headers=user_a_headers)
        assert [v["name"] for v in resp.json["items"]] == ["Avfall AB", "Vattenbolaget"]


class TestProfileAndSystem:

    def test_profile(self, client, admin_a_headers):
        resp = client.patch("/api/profile", json={"phone": "08-123 456", "last_name": "Andersson"},
                            headers=admin_a_headers)
        assert resp.status_code == 200
        assert resp.json["last_name"] == "Andersson"

        resp = client.get("/api/profile", headers=admin_a_headers)
        assert resp.json["phone"] == "08-123 456"

    def test_profile_email_not_editable(self, client, admin_a_headers):
        resp = client.patch("/api/profile", json={"email": "other@almen.se"}, headers=admin_a_headers)
        assert resp.status_code == 400

    def test_profile_unprovisioned(self, client, unprovisioned_headers):
        assert client.get("/api/profile", headers=unprovisioned_headers).status_code == 404

    def test_members(self, client, admin_a, user_a, admin_a_headers, org_a):
        resp = client.get(f"/api/organizations/{org_a.id}/members", headers=admin_a_headers)
        assert resp.status_code == 200
        roles = {m["user_id"]: m["roles"] for m in resp.json["items"]}
        assert roles == {admin_a.id: ["brf_admin"], user_a.id: ["brf_user"]}
        names = {m["user_id"]: m["full_name"] for m in resp.json["items"]}
        assert names[admin_a.id] == "Anna Admin"
        assert names[user_a.id] == "Bo Board"

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"

    def test_version(self, client):
        assert client.get("/version").json["api_version"] == "1.0.0"
