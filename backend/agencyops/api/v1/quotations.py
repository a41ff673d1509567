"""
Quotation API Routes
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from agencyops.core.database import get_db
from agencyops.core.responses import file_response
from agencyops.core.security import get_agency_context
from agencyops.schemas import (
    QuotationCreate, QuotationUpdate, QuotationResponse, QuotationTemplateResponse,
    CustomMessageRequest, EmailResult, EmailLogResponse, MessageResponse
)
from agencyops.services.email_service import EmailService
from agencyops.services.pdf_service import PdfService
from agencyops.services.permission_service import AgencyContext
from agencyops.services.quotation_service import QuotationService, effective_quotation_status

router = APIRouter(prefix="/quotations", tags=["Quotations"])


def _quotation_dict(quotation, **extra) -> dict:
    data = QuotationResponse.model_validate(quotation).model_dump()
    data.setdefault("effective_status", effective_quotation_status(quotation))
    data.update(extra)
    return data


def _found(quotation):
    if not quotation:
        raise HTTPException(status_code=404, detail="Quotation not found")
    return quotation


@router.get("")
async def list_quotations(
    status: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Quotations with display status; ``status=expired`` filters on it"""
    rows = QuotationService(db).get_quotations(ctx, status, search)
    return [
        _quotation_dict(row["quotation"], effective_status=row["effective_status"], creator_name=row["creator_name"])
        for row in rows
    ]


@router.get("/stats")
async def get_quotation_stats(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return QuotationService(db).get_quotation_stats(ctx.agency_id)


@router.get("/from-template/{template_id}")
async def get_template_for_quotation(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Sections and terms to pre-populate a new quotation"""
    result = QuotationService(db).get_template_for_quotation(ctx, template_id)
    if not result:
        raise HTTPException(status_code=404, detail="Quotation template not found")
    result["template"] = QuotationTemplateResponse.model_validate(result["template"])
    return result


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_quotation(
    quotation_data: QuotationCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        quotation = QuotationService(db).create_quotation(ctx, quotation_data.model_dump())
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _quotation_dict(quotation)


@router.get("/{quotation_id}")
async def get_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return _quotation_dict(_found(QuotationService(db).get_quotation(ctx, quotation_id)))


@router.patch("/{quotation_id}")
async def update_quotation(
    quotation_id: int,
    quotation_data: QuotationUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        quotation = QuotationService(db).update_quotation(
            ctx, quotation_id, quotation_data.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(quotation)
    db.commit()
    return _quotation_dict(quotation)


@router.post("/{quotation_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    quotation = _found(QuotationService(db).duplicate_quotation(ctx, quotation_id))
    db.commit()
    return _quotation_dict(quotation)


@router.post("/{quotation_id}/send")
async def send_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        quotation = QuotationService(db).send_quotation(ctx, quotation_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(quotation)
    db.commit()
    return _quotation_dict(quotation)


@router.post("/{quotation_id}/email", response_model=EmailResult)
async def email_quotation(
    quotation_id: int,
    message: Optional[CustomMessageRequest] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        result = EmailService(db).send_quotation_email(ctx, quotation_id, message.custom_message if message else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Quotation not found")
    db.commit()
    return result


@router.get("/{quotation_id}/emails", response_model=List[EmailLogResponse])
async def list_quotation_emails(
    quotation_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return EmailService(db).get_entity_email_logs(ctx.agency_id, "quotation", quotation_id)


@router.get("/{quotation_id}/pdf")
async def download_quotation_pdf(
    quotation_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    quotation = _found(QuotationService(db).get_quotation(ctx, quotation_id))
    content = PdfService(db).render_document("quotation", quotation)
    return file_response(content, f"{quotation.quotation_number}.pdf")


@router.delete("/{quotation_id}", response_model=MessageResponse)
async def delete_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        deleted = QuotationService(db).delete_quotation(ctx, quotation_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Quotation not found")
    db.commit()
    return {"message": "Quotation deleted"}
