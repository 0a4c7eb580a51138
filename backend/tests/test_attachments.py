"""
Invoice attachment tests: upload, download, delete and storage keys.
"""

import io
import os

import pytest
from brfportal.extensions import db
from brfportal.models import InvoiceAttachment
from brfportal.services import attachment_service, storage_service
from brfportal.services.storage_service import StorageError
from brfportal.services.tenant_service import TenantAccessError
from brfportal.validation import ValidationError


PDF_BYTES = b"%PDF-1.4\n% faktura\n"


def _upload(client, invoice_id, headers, name="faktura.pdf", data=PDF_BYTES, content_type="application/pdf"):
    return client.post(
        f"/api/invoices/{invoice_id}/attachments",
        data={"file": (io.BytesIO(data), name, content_type)},
        content_type="multipart/form-data",
        headers=headers,
    )


class TestUpload:

    def test_upload_and_download(self, client, invoice_a, org_a, admin_a_headers, user_a_headers):
        resp = _upload(client, invoice_a.id, admin_a_headers)
        assert resp.status_code == 201
        attachment = resp.json
        assert attachment["file_name"] == "faktura.pdf"
        assert attachment["file_size"] == len(PDF_BYTES)
        assert attachment["file_type"] == "application/pdf"
        assert attachment["file_path"].startswith(f"{org_a.id}/{invoice_a.id}/")

        resp = client.get(f"/api/invoices/{invoice_a.id}/attachments/{attachment['id']}", headers=user_a_headers)
        assert resp.status_code == 200
        assert resp.data == PDF_BYTES
        assert "faktura.pdf" in resp.headers["Content-Disposition"]
        resp.close()

        detail = client.get(f"/api/invoices/{invoice_a.id}", headers=user_a_headers).json
        assert [a["id"] for a in detail["attachments"]] == [attachment["id"]]

    def test_missing_file_part(self, client, invoice_a, admin_a_headers):
        resp = client.post(f"/api/invoices/{invoice_a.id}/attachments", headers=admin_a_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "file"

    def test_unsupported_type(self, client, invoice_a, admin_a_headers):
        resp = _upload(client, invoice_a.id, admin_a_headers, name="macro.xlsm",
                       content_type="application/vnd.ms-excel.sheet.macroEnabled.12")
        assert resp.status_code == 400
        assert db.session.query(InvoiceAttachment).count() == 0

    def test_unsafe_filename_is_sanitized(self, client, invoice_a, admin_a_headers):
        resp = _upload(client, invoice_a.id, admin_a_headers, name="../../etc/passwd.pdf")
        assert resp.status_code == 201
        key = resp.json["file_path"]
        assert ".." not in key
        assert os.path.isfile(storage_service.resolve_path(key))

    def test_other_org_invoice(self, client, invoice_b, admin_a_headers):
        resp = _upload(client, invoice_b.id, admin_a_headers)
        assert resp.status_code == 404


class TestDownloadAndDelete:

    def test_attachment_of_other_invoice(self, client, admin_a, invoice_a, invoice_factory, admin_a_headers):
        other = invoice_factory(admin_a, invoice_number="F-2")
        attachment_id = _upload(client, invoice_a.id, admin_a_headers).json["id"]

        resp = client.get(f"/api/invoices/{other.id}/attachments/{attachment_id}", headers=admin_a_headers)
        assert resp.status_code == 404

    def test_foreign_org_download(self, client, invoice_b, admin_b_headers, user_b_headers, user_a_headers):
        attachment_id = _upload(client, invoice_b.id, admin_b_headers).json["id"]

        assert client.get(f"/api/invoices/{invoice_b.id}/attachments/{attachment_id}",
                          headers=user_b_headers).status_code == 200
        assert client.get(f"/api/invoices/{invoice_b.id}/attachments/{attachment_id}",
                          headers=user_a_headers).status_code == 404

    def test_delete_removes_row_and_file(self, client, invoice_a, admin_a_headers):
        uploaded = _upload(client, invoice_a.id, admin_a_headers).json
        path = storage_service.resolve_path(uploaded["file_path"])
        assert os.path.isfile(path)

        resp = client.delete(f"/api/invoices/{invoice_a.id}/attachments/{uploaded['id']}", headers=admin_a_headers)
        assert resp.status_code == 204
        assert not os.path.exists(path)
        assert db.session.get(InvoiceAttachment, uploaded["id"]) is None

    def test_missing_file_on_disk(self, invoice_a, admin_a, context_of):
        actor = context_of(admin_a)
        attachment = attachment_service.upload_attachment(invoice_a.id, actor, "scan.png", io.BytesIO(b"png"), "image/png")
        os.remove(storage_service.resolve_path(attachment.file_path))

        with pytest.raises(TenantAccessError):
            attachment_service.get_attachment_file(invoice_a.id, attachment.id, actor)

    def test_empty_file_name(self, invoice_a, admin_a, context_of):
        with pytest.raises(ValidationError):
            attachment_service.upload_attachment(invoice_a.id, context_of(admin_a), "", io.BytesIO(b"x"))


class TestStorageKeys:

    def test_key_layout(self, app):
        key = storage_service.build_key(3, 17, "Faktura mars.pdf")
        org, invoice, name = key.split("/")
        assert (org, invoice) == ("3", "17")
        assert name.endswith("-Faktura_mars.pdf")

    def test_keys_are_unique(self, app):
        assert storage_service.build_key(1, 1, "a.pdf") != storage_service.build_key(1, 1, "a.pdf")

    def test_escape_rejected(self, app):
        with pytest.raises(StorageError):
            storage_service.resolve_path("../outside.pdf")

    def test_root_from_config(self, app):
        assert storage_service.storage_root() == os.path.abspath(app.config["ATTACHMENT_STORAGE_DIR"])
