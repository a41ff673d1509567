import base64

import pytest
import requests

from agencyops.core.config import settings
from agencyops.models import EmailLog, EmailStatus, InvoiceStatus
from agencyops.services import email_service
from agencyops.services.email_service import EmailService
from agencyops.services.invoice_service import InvoiceService

from conftest import FAKE_PDF


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


@pytest.fixture
def resend(monkeypatch):
    """Route Resend calls to a recorder; returns the list of captured requests."""
    calls = []
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers})
        return FakeResponse(200, {"id": f"msg_{len(calls)}"})

    monkeypatch.setattr(email_service.requests, "post", fake_post)
    return calls


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.started_tls = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, username, password):
        self.credentials = (username, password)

    def send_message(self, message):
        FakeSMTP.sent.append((self, message))


@pytest.fixture
def invoice(db, owner_ctx):
    invoice = InvoiceService(db).create_invoice(owner_ctx, {
        "client_business_name": "Harbour Cafe",
        "client_email": "sam@harbourcafe.test",
        "line_items": [{"description": "Website build", "unit_price": 200}],
    })
    db.commit()
    return invoice


def test_unconfigured_transport(db):
    result = EmailService(db).send_email("a@example.com", "Hi", "<p>Hi</p>")
    assert result == {"success": False, "message_id": None, "error": "Email service not configured"}


def test_resend_payload(db, resend):
    attachment = {"filename": "INV-1.pdf", "content": FAKE_PDF}
    result = EmailService(db).send_email("a@example.com", "Hi", "<p>Hi</p>", reply_to="studio@example.com",
                                         attachments=[attachment])
    assert result["success"] is True
    assert result["message_id"] == "msg_1"

    sent = resend[0]
    assert sent["url"] == settings.RESEND_API_URL
    assert sent["headers"]["Authorization"] == "Bearer re_test"
    assert sent["json"]["to"] == ["a@example.com"]
    assert sent["json"]["reply_to"] == "studio@example.com"
    assert base64.b64decode(sent["json"]["attachments"][0]["content"]) == FAKE_PDF


def test_resend_error_is_reported(db, monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(email_service.requests, "post",
                        lambda *a, **kw: FakeResponse(422, {"message": "Invalid recipient"}))
    result = EmailService(db).send_email("a@example.com", "Hi", "<p>Hi</p>")
    assert result["success"] is False
    assert result["error"] == "Invalid recipient"


def test_resend_network_failure(db, monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")

    def boom(*args, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(email_service.requests, "post", boom)
    assert EmailService(db).send_email("a@example.com", "Hi", "<p>Hi</p>")["success"] is False


def test_smtp_fallback(db, monkeypatch):
    FakeSMTP.sent.clear()
    monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")
    monkeypatch.setattr(settings, "SMTP_USERNAME", "mailer")
    monkeypatch.setattr(settings, "SMTP_PASSWORD", "secret")
    monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)

    result = EmailService(db).send_email("a@example.com", "Hi", "<p>Hi</p>")
    assert result["success"] is True
    smtp, message = FakeSMTP.sent[0]
    assert smtp.started_tls is True
    assert smtp.credentials == ("mailer", "secret")
    assert message["To"] == "a@example.com"


class TestDocumentEmails:
    def test_invoice_email_marks_sent_and_logs(self, db, owner_ctx, invoice, resend):
        result = EmailService(db).send_invoice_email(owner_ctx, invoice.id, "Thanks for your business")
        assert result["success"] is True
        assert invoice.status == InvoiceStatus.SENT

        log = db.query(EmailLog).filter(EmailLog.id == result["email_log_id"]).one()
        assert log.status == EmailStatus.SENT
        assert log.has_attachment is True
        assert log.invoice_id == invoice.id
        assert "Thanks for your business" in resend[0]["json"]["html"]

    def test_failed_delivery_keeps_draft(self, db, owner_ctx, invoice):
        result = EmailService(db).send_invoice_email(owner_ctx, invoice.id)
        assert result["success"] is False
        assert invoice.status == InvoiceStatus.DRAFT
        log = db.query(EmailLog).one()
        assert log.status == EmailStatus.FAILED
        assert log.error_message == "Email service not configured"

    def test_resend_creates_retry_log(self, db, owner_ctx, invoice, resend):
        first = EmailService(db).send_invoice_email(owner_ctx, invoice.id)
        retry = EmailService(db).resend_email(owner_ctx, first["email_log_id"])
        log = db.query(EmailLog).filter(EmailLog.id == retry["email_log_id"]).one()
        assert log.retry_count == 1
        assert log.invoice_id == invoice.id

    def test_member_cannot_view_logs(self, client, member_headers, owner_headers, invoice):
        assert client.get("/api/v1/emails", headers=member_headers).status_code == 403
        assert client.get("/api/v1/emails", headers=owner_headers).status_code == 200

    def test_email_route(self, client, owner_headers, invoice, resend):
        response = client.post(f"/api/v1/invoices/{invoice.id}/email", json={"custom_message": "See attached"},
                               headers=owner_headers)
        assert response.status_code == 200
        assert response.json()["success"] is True
