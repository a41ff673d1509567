from datetime import timedelta

import pytest

from agencyops.core.utils import utcnow
from agencyops.models import Contract, ContractStatus, ProposalStatus
from agencyops.services.proposal_service import ProposalService, effective_proposal_status

CLIENT = {
    "client_business_name": "Harbour Cafe",
    "client_contact_name": "Sam Lee",
    "client_email": "sam@harbourcafe.test",
}


@pytest.fixture
def sent_proposal(db, owner_ctx):
    service = ProposalService(db)
    proposal = service.create_proposal(owner_ctx, title="Cafe website")
    service.update_proposal(owner_ctx, proposal.id, dict(CLIENT))
    service.send_proposal(owner_ctx, proposal.id)
    db.commit()
    return proposal


def test_create_numbers_and_validity(db, owner_ctx):
    proposal = ProposalService(db).create_proposal(owner_ctx)
    assert proposal.proposal_number.startswith("PROP-")
    assert proposal.status == ProposalStatus.DRAFT
    assert proposal.title == "Website Proposal"
    assert proposal.valid_until > utcnow() + timedelta(days=29)


def test_expired_status_is_computed(db, sent_proposal):
    sent_proposal.valid_until = utcnow() - timedelta(minutes=1)
    assert effective_proposal_status(sent_proposal) == ProposalStatus.EXPIRED
    sent_proposal.status = ProposalStatus.ACCEPTED
    assert effective_proposal_status(sent_proposal) == ProposalStatus.ACCEPTED


def test_member_cannot_send_others_proposal(db, owner_ctx, member_ctx):
    proposal = ProposalService(db).create_proposal(owner_ctx)
    with pytest.raises(PermissionError):
        ProposalService(db).send_proposal(member_ctx, proposal.id)


def test_revision_notes_length(db, sent_proposal):
    with pytest.raises(ValueError):
        ProposalService(db).request_proposal_revision(sent_proposal.slug, "too short")


class TestPublicProposal:
    def test_view_counts_and_hides_internal_fields(self, client, db, sent_proposal):
        response = client.get(f"/api/v1/public/proposals/{sent_proposal.slug}")
        assert response.status_code == 200
        body = response.json()
        assert body["proposal"]["effective_status"] == ProposalStatus.VIEWED
        assert "created_by" not in body["proposal"]
        assert body["agency"]["slug"] == "acme"

        db.refresh(sent_proposal)
        assert sent_proposal.view_count == 1

    def test_accept_creates_draft_contract(self, client, db, sent_proposal):
        response = client.post(f"/api/v1/public/proposals/{sent_proposal.slug}/accept", json={"comments": "Great"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True

        contract = db.query(Contract).filter(Contract.slug == body["contract_slug"]).one()
        assert contract.status == ContractStatus.DRAFT
        assert contract.proposal_id == sent_proposal.id
        assert contract.client_email == CLIENT["client_email"]

    def test_cannot_respond_twice(self, client, sent_proposal):
        client.post(f"/api/v1/public/proposals/{sent_proposal.slug}/decline", json={"reason": "Budget"})
        response = client.post(f"/api/v1/public/proposals/{sent_proposal.slug}/accept", json={})
        assert response.status_code == 400

    def test_expired_proposal_rejects_responses(self, client, db, sent_proposal):
        sent_proposal.valid_until = utcnow() - timedelta(days=1)
        db.commit()
        response = client.post(f"/api/v1/public/proposals/{sent_proposal.slug}/accept", json={})
        assert response.status_code == 400
        assert response.json()["detail"] == "Proposal has expired"

    def test_revision_request(self, client, db, sent_proposal):
        response = client.post(f"/api/v1/public/proposals/{sent_proposal.slug}/revision",
                               json={"notes": "Please add an online ordering page."})
        assert response.status_code == 200
        db.refresh(sent_proposal)
        assert sent_proposal.status == ProposalStatus.REVISION_REQUESTED

    def test_draft_is_not_respondable(self, client, db, owner_ctx):
        proposal = ProposalService(db).create_proposal(owner_ctx)
        db.commit()
        response = client.post(f"/api/v1/public/proposals/{proposal.slug}/decline", json={})
        assert response.status_code == 400

    def test_unknown_slug(self, client):
        assert client.get("/api/v1/public/proposals/missing").status_code == 404


def test_api_create_and_list(client, owner_headers):
    response = client.post("/api/v1/proposals", json={"title": "Bakery refresh"}, headers=owner_headers)
    assert response.status_code == 201
    listed = client.get("/api/v1/proposals", headers=owner_headers)
    assert listed.status_code == 200
    assert [p["title"] for p in listed.json()] == ["Bakery refresh"]
