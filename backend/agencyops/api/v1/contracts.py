"""
Contract API Routes
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from agencyops.core.database import get_db
from agencyops.core.responses import file_response
from agencyops.core.security import get_agency_context
from agencyops.schemas import (
    ContractCreateFromProposal, ContractUpdate, ContractStatusUpdate, LinkTemplateRequest,
    ContractResponse, QuestionnaireResponseSchema, CustomMessageRequest, EmailResult,
    EmailLogResponse, MessageResponse
)
from agencyops.services.contract_service import ContractService, effective_contract_status
from agencyops.services.email_service import EmailService
from agencyops.services.merge_field_service import get_available_merge_fields
from agencyops.services.pdf_service import PdfService
from agencyops.services.permission_service import AgencyContext
from agencyops.services.questionnaire_service import QuestionnaireService

router = APIRouter(prefix="/contracts", tags=["Contracts"])


def _contract_dict(contract, **extra) -> dict:
    data = ContractResponse.model_validate(contract).model_dump()
    data["effective_status"] = effective_contract_status(contract)
    data.update(extra)
    return data


def _found(contract):
    if not contract:
        raise HTTPException(status_code=404, detail="Contract not found")
    return contract


@router.get("")
async def list_contracts(
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    rows = ContractService(db).get_contracts(ctx, status, min(limit, 200), offset)
    return [_contract_dict(row["contract"], creator_name=row["creator_name"]) for row in rows]


@router.get("/merge-fields")
async def list_merge_fields(
    source: Optional[str] = None,
    ctx: AgencyContext = Depends(get_agency_context)
):
    return get_available_merge_fields(source)


@router.post("/from-proposal", status_code=status.HTTP_201_CREATED)
async def create_contract_from_proposal(
    contract_data: ContractCreateFromProposal,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Generate a draft contract from a proposal and a template"""
    try:
        contract = ContractService(db).create_contract_from_proposal(
            ctx, contract_data.proposal_id, contract_data.template_id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not contract:
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return _contract_dict(contract)


@router.get("/{contract_id}")
async def get_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return _contract_dict(_found(ContractService(db).get_contract(ctx, contract_id)))


@router.patch("/{contract_id}")
async def update_contract(
    contract_id: int,
    contract_data: ContractUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        contract = ContractService(db).update_contract(ctx, contract_id, contract_data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(contract)
    db.commit()
    return _contract_dict(contract)


@router.patch("/{contract_id}/status")
async def update_contract_status(
    contract_id: int,
    status_data: ContractStatusUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        contract = ContractService(db).update_contract_status(ctx, contract_id, status_data.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(contract)
    db.commit()
    return _contract_dict(contract)


@router.post("/{contract_id}/link-template")
async def link_template(
    contract_id: int,
    link_data: LinkTemplateRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        contract = ContractService(db).link_template_to_contract(ctx, contract_id, link_data.template_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(contract)
    db.commit()
    return _contract_dict(contract)


@router.post("/{contract_id}/regenerate-terms")
async def regenerate_terms(
    contract_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Re-render the terms from the linked template's current content"""
    try:
        contract = ContractService(db).regenerate_contract_terms(ctx, contract_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(contract)
    db.commit()
    return _contract_dict(contract)


@router.post("/{contract_id}/send")
async def send_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Mark as sent, sign for the agency and email the client"""
    try:
        contract = ContractService(db).send_contract(ctx, contract_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(contract)
    db.commit()
    return _contract_dict(contract)


@router.post("/{contract_id}/resend")
async def resend_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        contract = ContractService(db).resend_contract(ctx, contract_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(contract)
    db.commit()
    return _contract_dict(contract)


@router.post("/{contract_id}/email", response_model=EmailResult)
async def email_contract(
    contract_id: int,
    message: Optional[CustomMessageRequest] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        result = EmailService(db).send_contract_email_for(ctx, contract_id, message.custom_message if message else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Contract not found")
    db.commit()
    return result


@router.get("/{contract_id}/emails", response_model=List[EmailLogResponse])
async def list_contract_emails(
    contract_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return EmailService(db).get_entity_email_logs(ctx.agency_id, "contract", contract_id)


@router.get("/{contract_id}/questionnaire", response_model=Optional[QuestionnaireResponseSchema])
async def get_contract_questionnaire(
    contract_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    contract = _found(ContractService(db).get_by_id(contract_id, ctx.agency_id))
    return QuestionnaireService(db).get_questionnaire_by_contract(ctx, contract)


@router.get("/{contract_id}/pdf")
async def download_contract_pdf(
    contract_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    contract = _found(ContractService(db).get_contract(ctx, contract_id))
    content = PdfService(db).render_document("contract", contract)
    return file_response(content, f"{contract.contract_number}.pdf")


@router.delete("/{contract_id}", response_model=MessageResponse)
async def delete_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        deleted = ContractService(db).delete_contract(ctx, contract_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Contract not found")
    db.commit()
    return {"message": "Contract deleted"}
