from datetime import timedelta
from decimal import Decimal

import pytest

from agencyops.core.utils import utcnow
from agencyops.models import InvoiceStatus
from agencyops.services.invoice_service import (
    InvoiceService, build_line_items, calculate_due_date, calculate_invoice_totals
)
from agencyops.services.profile_service import AgencyProfileService, format_document_number


def _invoice_data(**overrides):
    data = {
        "client_business_name": "Harbour Cafe",
        "client_email": "hello@harbourcafe.test",
        "line_items": [{"description": "Website build", "quantity": 1, "unit_price": 200}],
    }
    data.update(overrides)
    return data


class TestTotals:
    def test_gst_on_taxable_lines(self):
        totals = calculate_invoice_totals([{"amount": 200, "is_taxable": True}], True, 10)
        assert totals == {"subtotal": Decimal("200.00"), "gst_amount": Decimal("20.00"), "total": Decimal("220.00")}

    def test_untaxed_lines_skip_gst(self):
        totals = calculate_invoice_totals(
            [{"amount": 100, "is_taxable": True}, {"amount": 50, "is_taxable": False}], True, 10
        )
        assert totals["subtotal"] == Decimal("150.00")
        assert totals["gst_amount"] == Decimal("10.00")
        assert totals["total"] == Decimal("160.00")

    def test_not_registered_and_discount(self):
        totals = calculate_invoice_totals([{"amount": 300}], False, 10, discount_amount=50)
        assert totals["gst_amount"] == Decimal("0.00")
        assert totals["total"] == Decimal("250.00")

    def test_mixed_quantities(self):
        lines = build_line_items([
            {"description": "Page design", "quantity": 2, "unit_price": 50},
            {"description": "Hosting setup", "quantity": 1, "unit_price": 100},
        ])
        totals = calculate_invoice_totals(lines, True, 10)
        assert totals == {"subtotal": Decimal("200.00"), "gst_amount": Decimal("20.00"), "total": Decimal("220.00")}

    def test_line_amount_is_quantity_times_price(self):
        lines = build_line_items([{"description": "Hours", "quantity": "2.5", "unit_price": "80"}])
        assert lines[0].amount == Decimal("200.00")
        assert lines[0].is_taxable is True

    def test_due_date_from_terms(self):
        issued = utcnow()
        assert calculate_due_date(issued, "NET_7") == issued + timedelta(days=7)
        assert calculate_due_date(issued, "DUE_ON_RECEIPT") == issued
        assert calculate_due_date(issued, None) == issued + timedelta(days=14)


class TestNumbering:
    def test_format(self):
        assert format_document_number("INV", 7, 2025) == "INV-2025-0007"

    def test_numbers_strictly_increase(self, db, agency):
        service = AgencyProfileService(db)
        numbers = [service.get_next_document_number(agency.id, "invoice") for _ in range(3)]
        year = utcnow().year
        assert numbers == [f"INV-{year}-0001", f"INV-{year}-0002", f"INV-{year}-0003"]

    def test_counters_are_per_type(self, db, agency):
        service = AgencyProfileService(db)
        service.get_next_document_number(agency.id, "invoice")
        assert service.get_next_document_number(agency.id, "contract").endswith("-0001")

    def test_unknown_type(self, db, agency):
        with pytest.raises(ValueError):
            AgencyProfileService(db).get_next_document_number(agency.id, "receipt")


class TestLifecycle:
    def test_create_uses_profile_gst(self, db, owner_ctx):
        invoice = InvoiceService(db).create_invoice(owner_ctx, _invoice_data())
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.total == Decimal("220.00")
        assert invoice.invoice_number.startswith("INV-")

    def test_only_drafts_can_be_deleted(self, db, owner_ctx):
        service = InvoiceService(db)
        invoice = service.create_invoice(owner_ctx, _invoice_data())
        service.send_invoice(owner_ctx, invoice.id)
        with pytest.raises(ValueError, match="draft"):
            service.delete_invoice(owner_ctx, invoice.id)

    def test_payment_then_refund(self, db, owner_ctx):
        service = InvoiceService(db)
        invoice = service.create_invoice(owner_ctx, _invoice_data())
        with pytest.raises(ValueError):
            service.record_payment(owner_ctx, invoice.id, {"payment_method": "bitcoin"})

        service.record_payment(owner_ctx, invoice.id, {"payment_method": "bank_transfer", "payment_reference": "TX1"})
        assert invoice.status == InvoiceStatus.PAID
        with pytest.raises(ValueError):
            service.cancel_invoice(owner_ctx, invoice.id)

        service.refund_invoice(owner_ctx, invoice.id, "Project cancelled")
        assert invoice.status == InvoiceStatus.REFUNDED
        assert "Refund reason: Project cancelled" in invoice.notes

    def test_admin_cannot_refund(self, db, owner_ctx, admin_ctx):
        service = InvoiceService(db)
        invoice = service.create_invoice(owner_ctx, _invoice_data())
        service.record_payment(owner_ctx, invoice.id, {"payment_method": "cash"})
        with pytest.raises(PermissionError):
            service.refund_invoice(admin_ctx, invoice.id)

    def test_overdue_applied_on_read(self, db, owner_ctx):
        service = InvoiceService(db)
        invoice = service.create_invoice(owner_ctx, _invoice_data())
        service.send_invoice(owner_ctx, invoice.id)
        invoice.due_date = utcnow() - timedelta(days=3)
        db.flush()

        service.get_invoices(owner_ctx)
        assert invoice.status == InvoiceStatus.OVERDUE

    def test_member_deletes_only_own_drafts(self, db, owner_ctx, member_ctx):
        service = InvoiceService(db)
        theirs = service.create_invoice(owner_ctx, _invoice_data())
        mine = service.create_invoice(member_ctx, _invoice_data(client_business_name="Member Client"))
        with pytest.raises(PermissionError):
            service.delete_invoice(member_ctx, theirs.id)
        assert service.delete_invoice(member_ctx, mine.id) is True

    def test_payment_rejected_once_closed(self, db, owner_ctx):
        service = InvoiceService(db)
        paid = service.create_invoice(owner_ctx, _invoice_data())
        service.record_payment(owner_ctx, paid.id, {"payment_method": "card"})
        with pytest.raises(ValueError, match="Invoice is already paid"):
            service.record_payment(owner_ctx, paid.id, {"payment_method": "card"})

        service.refund_invoice(owner_ctx, paid.id)
        with pytest.raises(ValueError, match="cancelled or refunded"):
            service.record_payment(owner_ctx, paid.id, {"payment_method": "card"})

        cancelled = service.create_invoice(owner_ctx, _invoice_data())
        service.cancel_invoice(owner_ctx, cancelled.id, "Client went elsewhere")
        with pytest.raises(ValueError, match="cancelled or refunded"):
            service.record_payment(owner_ctx, cancelled.id, {"payment_method": "cash"})


class TestUpdates:
    MIXED_LINES = [
        {"description": "Page design", "quantity": 2, "unit_price": 50},
        {"description": "Hosting setup", "quantity": 1, "unit_price": 100},
    ]

    def test_discount_only_update_recalculates_total(self, db, owner_ctx):
        service = InvoiceService(db)
        invoice = service.create_invoice(owner_ctx, _invoice_data(line_items=self.MIXED_LINES))
        assert invoice.total == Decimal("220.00")

        service.update_invoice(owner_ctx, invoice.id, {"discount_amount": 50})
        assert invoice.discount_amount == Decimal("50.00")
        assert invoice.gst_amount == Decimal("20.00")
        assert invoice.total == Decimal("170.00")
        assert invoice.total == invoice.subtotal - invoice.discount_amount + invoice.gst_amount

    def test_line_update_keeps_total_invariant(self, db, owner_ctx):
        service = InvoiceService(db)
        invoice = service.create_invoice(owner_ctx, _invoice_data(discount_amount=20))
        service.update_invoice(owner_ctx, invoice.id, {"line_items": self.MIXED_LINES})
        assert invoice.subtotal == Decimal("200.00")
        assert invoice.total == invoice.subtotal - invoice.discount_amount + invoice.gst_amount

    def test_update_uses_invoice_gst_snapshot(self, db, owner_ctx, agency):
        service = InvoiceService(db)
        invoice = service.create_invoice(owner_ctx, _invoice_data())
        profile = AgencyProfileService(db).get_profile(agency.id)
        profile.gst_registered = False
        db.flush()

        service.update_invoice(owner_ctx, invoice.id, {"line_items": self.MIXED_LINES})
        assert invoice.gst_registered is True
        assert invoice.gst_amount == Decimal("20.00")

        before = (invoice.subtotal, invoice.gst_amount, invoice.total)
        service.recalculate_invoice_totals(owner_ctx, invoice.id)
        assert (invoice.subtotal, invoice.gst_amount, invoice.total) == before


class TestInvoiceApi:
    def test_create_and_list(self, client, owner_headers):
        response = client.post("/api/v1/invoices", json=_invoice_data(), headers=owner_headers)
        assert response.status_code == 201
        body = response.json()
        assert Decimal(str(body["total"])) == Decimal("220.00")

        listed = client.get("/api/v1/invoices", headers=owner_headers)
        assert listed.status_code == 200
        assert [i["id"] for i in listed.json()] == [body["id"]]

    def test_requires_line_items(self, client, owner_headers):
        response = client.post("/api/v1/invoices", json=_invoice_data(line_items=[]), headers=owner_headers)
        assert response.status_code == 422

    def test_delete_sent_invoice_is_rejected(self, client, owner_headers):
        invoice_id = client.post("/api/v1/invoices", json=_invoice_data(), headers=owner_headers).json()["id"]
        assert client.post(f"/api/v1/invoices/{invoice_id}/send", headers=owner_headers).status_code == 200
        response = client.delete(f"/api/v1/invoices/{invoice_id}", headers=owner_headers)
        assert response.status_code == 400

    def test_member_cannot_refund(self, client, owner_headers, member_headers):
        invoice_id = client.post("/api/v1/invoices", json=_invoice_data(), headers=owner_headers).json()["id"]
        client.post(f"/api/v1/invoices/{invoice_id}/payment", json={"payment_method": "card"}, headers=owner_headers)
        response = client.post(f"/api/v1/invoices/{invoice_id}/refund", headers=member_headers)
        assert response.status_code == 403

    def test_pdf_download(self, client, owner_headers):
        invoice_id = client.post("/api/v1/invoices", json=_invoice_data(), headers=owner_headers).json()["id"]
        response = client.get(f"/api/v1/invoices/{invoice_id}/pdf", headers=owner_headers)
        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")

    def test_public_view_marks_viewed(self, client, owner_headers):
        created = client.post("/api/v1/invoices", json=_invoice_data(notes="internal only"),
                              headers=owner_headers).json()
        client.post(f"/api/v1/invoices/{created['id']}/send", headers=owner_headers)

        response = client.get(f"/api/v1/public/invoices/{created['slug']}")
        assert response.status_code == 200
        body = response.json()
        assert body["invoice"]["status"] == InvoiceStatus.VIEWED
        assert "notes" not in body["invoice"]
