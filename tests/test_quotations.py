from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from agencyops.core.utils import utcnow
from agencyops.models import QuotationStatus
from agencyops.services.quotation_service import (
    QuotationService, calculate_quotation_totals, effective_quotation_status
)


def _quotation_data(**overrides):
    data = {
        "client_business_name": "Harbour Cafe",
        "client_email": "hello@harbourcafe.test",
        "sections": [
            {"title": "Design", "section_price": Decimal("1000")},
            {"title": "Build", "section_price": Decimal("500")},
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def sent_quotation(db, owner_ctx):
    service = QuotationService(db)
    quotation = service.create_quotation(owner_ctx, _quotation_data())
    service.send_quotation(owner_ctx, quotation.id)
    db.commit()
    return quotation


def test_gst_applies_after_discount():
    totals = calculate_quotation_totals([{"section_price": 1000}, {"section_price": 500}], True, 10, 100)
    assert totals == {"subtotal": Decimal("1500.00"), "gst_amount": Decimal("140.00"), "total": Decimal("1540.00")}


def test_expiry_is_end_of_day():
    today = utcnow()
    quotation = SimpleNamespace(status=QuotationStatus.SENT, expiry_date=today)
    assert effective_quotation_status(quotation, today) == QuotationStatus.SENT
    assert effective_quotation_status(quotation, today + timedelta(days=1)) == QuotationStatus.EXPIRED

    accepted = SimpleNamespace(status=QuotationStatus.ACCEPTED, expiry_date=today - timedelta(days=30))
    assert effective_quotation_status(accepted) == QuotationStatus.ACCEPTED


def test_create_sets_number_client_and_expiry(db, owner_ctx):
    quotation = QuotationService(db).create_quotation(owner_ctx, _quotation_data())
    assert quotation.quotation_number.startswith("QUO-")
    assert quotation.client_id is not None
    assert quotation.total == Decimal("1650.00")
    assert [s.section_total for s in quotation.sections] == [Decimal("1100.00"), Decimal("550.00")]
    assert (quotation.expiry_date - quotation.prepared_date).days == 60


def test_resend_keeps_first_sent_at(db, owner_ctx, sent_quotation):
    first = sent_quotation.sent_at
    QuotationService(db).send_quotation(owner_ctx, sent_quotation.id)
    assert sent_quotation.sent_at == first


def test_discount_only_update_recalculates_gst_and_total(db, owner_ctx):
    service = QuotationService(db)
    quotation = service.create_quotation(owner_ctx, _quotation_data(
        sections=[{"title": "Design", "section_price": Decimal("1000")}]
    ))
    assert quotation.total == Decimal("1100.00")

    service.update_quotation(owner_ctx, quotation.id, {"discount_amount": 100})
    assert quotation.gst_amount == Decimal("90.00")
    assert quotation.total == Decimal("990.00")
    assert quotation.total == quotation.subtotal - quotation.discount_amount + quotation.gst_amount


def test_section_update_keeps_total_invariant(db, owner_ctx):
    service = QuotationService(db)
    quotation = service.create_quotation(owner_ctx, _quotation_data(discount_amount=Decimal("50")))
    service.update_quotation(owner_ctx, quotation.id, {"sections": [{"title": "Build", "section_price": Decimal("750")}]})
    assert quotation.subtotal == Decimal("750.00")
    assert quotation.gst_amount == Decimal("70.00")
    assert quotation.total == quotation.subtotal - quotation.discount_amount + quotation.gst_amount


def test_draft_cannot_be_accepted(db, owner_ctx):
    quotation = QuotationService(db).create_quotation(owner_ctx, _quotation_data())
    with pytest.raises(ValueError):
        QuotationService(db).accept_quotation(quotation.slug, "Sam Lee")


def test_expired_quotation_cannot_be_accepted(db, sent_quotation):
    sent_quotation.expiry_date = utcnow() - timedelta(days=2)
    db.flush()
    with pytest.raises(ValueError):
        QuotationService(db).accept_quotation(sent_quotation.slug, "Sam Lee")


class TestPublicQuotation:
    def test_view_then_accept(self, client, sent_quotation):
        viewed = client.get(f"/api/v1/public/quotations/{sent_quotation.slug}")
        assert viewed.status_code == 200
        assert viewed.json()["quotation"]["effective_status"] == QuotationStatus.VIEWED

        response = client.post(f"/api/v1/public/quotations/{sent_quotation.slug}/accept",
                               json={"accepted_by_name": "Sam Lee", "accepted_by_title": "Owner"})
        assert response.status_code == 200
        assert response.json()["success"] is True

        again = client.post(f"/api/v1/public/quotations/{sent_quotation.slug}/decline", json={"reason": "Changed mind"})
        assert again.status_code == 400

    def test_decline(self, client, db, sent_quotation):
        response = client.post(f"/api/v1/public/quotations/{sent_quotation.slug}/decline",
                               json={"reason": "Over budget"})
        assert response.status_code == 200
        db.refresh(sent_quotation)
        assert sent_quotation.status == QuotationStatus.DECLINED
        assert sent_quotation.decline_reason == "Over budget"

    def test_accept_requires_name(self, client, sent_quotation):
        response = client.post(f"/api/v1/public/quotations/{sent_quotation.slug}/accept", json={"accepted_by_name": ""})
        assert response.status_code == 422

    def test_unknown_slug(self, client):
        assert client.get("/api/v1/public/quotations/nope").status_code == 404

    def test_pdf(self, client, sent_quotation):
        response = client.get(f"/api/v1/public/quotations/{sent_quotation.slug}/pdf")
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
