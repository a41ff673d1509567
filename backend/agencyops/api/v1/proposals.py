"""
Proposal API Routes
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from agencyops.core.database import get_db
from agencyops.core.responses import file_response
from agencyops.core.security import get_agency_context
from agencyops.schemas import (
    ProposalCreate, ProposalUpdate, ProposalStatusUpdate, ProposalResponse,
    PackageResponse, AddonResponse, ConsultationResponse, CustomMessageRequest,
    EmailResult, EmailLogResponse, MessageResponse
)
from agencyops.services.email_service import EmailService
from agencyops.services.pdf_service import PdfService
from agencyops.services.permission_service import AgencyContext
from agencyops.services.proposal_service import ProposalService, effective_proposal_status

router = APIRouter(prefix="/proposals", tags=["Proposals"])


def _proposal_dict(proposal, **extra) -> dict:
    data = ProposalResponse.model_validate(proposal).model_dump()
    data["effective_status"] = effective_proposal_status(proposal)
    data.update(extra)
    return data


@router.get("")
async def list_proposals(
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    rows = ProposalService(db).get_proposals(ctx, status, min(limit, 200), offset)
    return [_proposal_dict(row["proposal"], creator_name=row["creator_name"]) for row in rows]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_proposal(
    proposal_data: ProposalCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Create a draft, prefilled from a completed consultation when given"""
    try:
        proposal = ProposalService(db).create_proposal(
            ctx, proposal_data.consultation_id, proposal_data.selected_package_id, proposal_data.title
        )
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _proposal_dict(proposal)


@router.get("/{proposal_id}")
async def get_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    result = ProposalService(db).get_proposal_with_relations(ctx, proposal_id)
    if not result:
        raise HTTPException(status_code=404, detail="Proposal not found")
    package = result["selected_package"]
    consultation = result["consultation"]
    return {
        "proposal": _proposal_dict(result["proposal"]),
        "selected_package": PackageResponse.model_validate(package) if package else None,
        "selected_addons": [AddonResponse.model_validate(a) for a in result["selected_addons"]],
        "consultation": ConsultationResponse.model_validate(consultation) if consultation else None,
    }


@router.patch("/{proposal_id}")
async def update_proposal(
    proposal_id: int,
    proposal_data: ProposalUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    proposal = ProposalService(db).update_proposal(ctx, proposal_id, proposal_data.model_dump(exclude_unset=True))
    if not proposal:
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return _proposal_dict(proposal)


@router.post("/{proposal_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    proposal = ProposalService(db).duplicate_proposal(ctx, proposal_id)
    if not proposal:
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return _proposal_dict(proposal)


@router.post("/{proposal_id}/ready")
async def mark_proposal_ready(
    proposal_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        proposal = ProposalService(db).mark_proposal_ready(ctx, proposal_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not proposal:
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return _proposal_dict(proposal)


@router.post("/{proposal_id}/send")
async def send_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Mark as sent without emailing; the link is shared by hand"""
    proposal = ProposalService(db).send_proposal(ctx, proposal_id)
    if not proposal:
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return _proposal_dict(proposal)


@router.patch("/{proposal_id}/status")
async def update_proposal_status(
    proposal_id: int,
    status_data: ProposalStatusUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        proposal = ProposalService(db).update_proposal_status(ctx, proposal_id, status_data.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not proposal:
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return _proposal_dict(proposal)


@router.post("/{proposal_id}/email", response_model=EmailResult)
async def email_proposal(
    proposal_id: int,
    message: Optional[CustomMessageRequest] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Email the proposal link with the PDF attached"""
    try:
        result = EmailService(db).send_proposal_email(ctx, proposal_id, message.custom_message if message else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return result


@router.get("/{proposal_id}/emails", response_model=List[EmailLogResponse])
async def list_proposal_emails(
    proposal_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return EmailService(db).get_entity_email_logs(ctx.agency_id, "proposal", proposal_id)


@router.get("/{proposal_id}/pdf")
async def download_proposal_pdf(
    proposal_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    proposal = ProposalService(db).get_proposal(ctx, proposal_id)
    if not proposal:
        raise HTTPException(status_code=404, detail="Proposal not found")
    content = PdfService(db).render_document("proposal", proposal)
    return file_response(content, f"{proposal.proposal_number}.pdf")


@router.delete("/{proposal_id}", response_model=MessageResponse)
async def delete_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    if not ProposalService(db).delete_proposal(ctx, proposal_id):
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return {"message": "Proposal deleted"}
