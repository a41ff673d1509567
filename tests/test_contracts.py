from datetime import timedelta

import pytest

from agencyops.core.utils import utcnow
from agencyops.models import ContractStatus, EmailLog, Invoice, QuestionnaireStatus
from agencyops.services.contract_service import ContractService
from agencyops.services.invoice_service import InvoiceService
from agencyops.services.proposal_service import ProposalService


@pytest.fixture
def contract(db, owner_ctx):
    proposals = ProposalService(db)
    proposal = proposals.create_proposal(owner_ctx, title="Cafe website")
    proposals.update_proposal(owner_ctx, proposal.id, {
        "client_business_name": "Harbour Cafe",
        "client_contact_name": "Sam Lee",
        "client_email": "sam@harbourcafe.test",
        "custom_pricing": {"setupFee": "1000"},
    })
    contract = ContractService(db).create_contract_from_proposal(owner_ctx, proposal.id)
    db.commit()
    return contract


@pytest.fixture
def sent_contract(db, owner_ctx, contract):
    ContractService(db).send_contract(owner_ctx, contract.id)
    db.commit()
    return contract


def _sign(client, slug, **overrides):
    payload = {"signatory_name": "Sam Lee", "signatory_title": "Director", "agreed_to_terms": True}
    payload.update(overrides)
    return client.post(f"/api/v1/public/contracts/{slug}/sign", json=payload,
                       headers={"User-Agent": "pytest-browser"})


def test_contract_takes_proposal_pricing(contract):
    assert contract.contract_number.startswith("CON-")
    assert contract.status == ContractStatus.DRAFT
    assert str(contract.total_price) == "1100.00"
    assert contract.client_id is not None


def test_send_logs_undelivered_email(db, sent_contract):
    assert sent_contract.status == ContractStatus.SENT
    assert sent_contract.agency_signed_at is not None
    log = db.query(EmailLog).filter(EmailLog.contract_id == sent_contract.id).one()
    assert log.status == "failed"


def test_draft_cannot_be_signed(client, contract):
    response = _sign(client, contract.slug)
    assert response.status_code == 400


def test_terms_must_be_agreed(client, sent_contract):
    response = _sign(client, sent_contract.slug, agreed_to_terms=False)
    assert response.status_code == 400


def test_sign_records_evidence(client, db, sent_contract):
    response = _sign(client, sent_contract.slug)
    assert response.status_code == 200
    assert response.json()["success"] is True

    db.refresh(sent_contract)
    assert sent_contract.status == ContractStatus.SIGNED
    assert sent_contract.client_signatory_name == "Sam Lee"
    assert sent_contract.client_signature_user_agent == "pytest-browser"

    assert _sign(client, sent_contract.slug).status_code == 400


def test_expired_contract_cannot_be_signed(client, db, sent_contract):
    sent_contract.valid_until = utcnow() - timedelta(days=1)
    db.commit()
    assert _sign(client, sent_contract.slug).status_code == 400


def test_signed_contract_is_locked(db, owner_ctx, sent_contract):
    ContractService(db).sign_contract(sent_contract.slug, "Sam Lee", agreed_to_terms=True)
    with pytest.raises(ValueError):
        ContractService(db).update_contract(owner_ctx, sent_contract.id, {"special_conditions": "None"})


class TestQuestionnaireAccess:
    def test_requires_signature(self, client, sent_contract):
        body = client.get(f"/api/v1/public/contracts/{sent_contract.slug}/questionnaire").json()
        assert body["allowed"] is False
        assert body["reason"] == "contract_not_signed"

    def test_requires_first_invoice_paid(self, client, db, owner_ctx, sent_contract):
        ContractService(db).sign_contract(sent_contract.slug, "Sam Lee", agreed_to_terms=True)
        invoice = InvoiceService(db).create_invoice_from_contract(owner_ctx, sent_contract.id)
        db.commit()

        body = client.get(f"/api/v1/public/contracts/{sent_contract.slug}/questionnaire").json()
        assert body["reason"] == "payment_required"

        InvoiceService(db).record_payment(owner_ctx, invoice.id, {"payment_method": "bank_transfer"})
        db.commit()
        body = client.get(f"/api/v1/public/contracts/{sent_contract.slug}/questionnaire").json()
        assert body["allowed"] is True
        assert body["questionnaire"]["status"] == QuestionnaireStatus.NOT_STARTED

    def test_unknown_contract(self, client):
        assert client.get("/api/v1/public/contracts/nope/questionnaire").status_code == 404


def test_invoice_from_unsigned_contract_is_rejected(db, owner_ctx, sent_contract):
    with pytest.raises(ValueError):
        InvoiceService(db).create_invoice_from_contract(owner_ctx, sent_contract.id)
    assert db.query(Invoice).count() == 0
