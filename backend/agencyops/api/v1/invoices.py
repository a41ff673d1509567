"""
Invoice API Routes
"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from agencyops.core.database import get_db
from agencyops.core.responses import file_response, XLSX_MEDIA_TYPE
from agencyops.core.security import get_agency_context, PermissionChecker
from agencyops.core.utils import utcnow
from agencyops.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceResponse, RecordPaymentRequest, ReasonRequest,
    CustomMessageRequest, EmailResult, EmailLogResponse, MessageResponse
)
from agencyops.services.email_service import EmailService
from agencyops.services.invoice_service import InvoiceService
from agencyops.services.pdf_service import PdfService
from agencyops.services.permission_service import AgencyContext

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def _found(invoice):
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


@router.get("", response_model=List[InvoiceResponse])
async def list_invoices(
    status: Optional[str] = None,
    client_id: Optional[int] = None,
    search: Optional[str] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Invoices with overdue status applied on read"""
    invoices = InvoiceService(db).get_invoices(ctx, status, client_id, search, from_date, to_date)
    db.commit()
    return invoices


@router.get("/stats")
async def get_invoice_stats(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return InvoiceService(db).get_invoice_stats(ctx.agency_id)


@router.get("/export")
async def export_invoices(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["data:export"]))
):
    content = InvoiceService(db).export_invoices_xlsx(ctx)
    db.commit()
    filename = f"invoices_{utcnow().strftime('%Y%m%d')}.xlsx"
    return file_response(content, filename, XLSX_MEDIA_TYPE)


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    invoice_data: InvoiceCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        invoice = InvoiceService(db).create_invoice(ctx, invoice_data.model_dump())
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return invoice


@router.post("/from-proposal/{proposal_id}", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice_from_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Draft invoice priced from the proposal's package and addons"""
    try:
        invoice = InvoiceService(db).create_invoice_from_proposal(ctx, proposal_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not invoice:
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return invoice


@router.post("/from-contract/{contract_id}", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice_from_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        invoice = InvoiceService(db).create_invoice_from_contract(ctx, contract_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not invoice:
        raise HTTPException(status_code=404, detail="Contract not found")
    db.commit()
    return invoice


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    invoice = _found(InvoiceService(db).get_invoice(ctx, invoice_id))
    db.commit()
    return invoice


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    invoice_data: InvoiceUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        invoice = InvoiceService(db).update_invoice(ctx, invoice_id, invoice_data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(invoice)
    db.commit()
    return invoice


@router.post("/{invoice_id}/recalculate", response_model=InvoiceResponse)
async def recalculate_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        invoice = InvoiceService(db).recalculate_invoice_totals(ctx, invoice_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(invoice)
    db.commit()
    return invoice


@router.post("/{invoice_id}/duplicate", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    invoice = _found(InvoiceService(db).duplicate_invoice(ctx, invoice_id))
    db.commit()
    return invoice


@router.post("/{invoice_id}/send", response_model=InvoiceResponse)
async def send_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Mark a draft as sent without emailing"""
    try:
        invoice = InvoiceService(db).send_invoice(ctx, invoice_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(invoice)
    db.commit()
    return invoice


@router.post("/{invoice_id}/email", response_model=EmailResult)
async def email_invoice(
    invoice_id: int,
    message: Optional[CustomMessageRequest] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    result = EmailService(db).send_invoice_email(ctx, invoice_id, message.custom_message if message else None)
    if result is None:
        raise HTTPException(status_code=404, detail="Invoice not found")
    db.commit()
    return result


@router.post("/{invoice_id}/reminder", response_model=EmailResult)
async def send_invoice_reminder(
    invoice_id: int,
    message: Optional[CustomMessageRequest] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        result = EmailService(db).send_invoice_reminder(ctx, invoice_id, message.custom_message if message else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Invoice not found")
    db.commit()
    return result


@router.get("/{invoice_id}/emails", response_model=List[EmailLogResponse])
async def list_invoice_emails(
    invoice_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return EmailService(db).get_entity_email_logs(ctx.agency_id, "invoice", invoice_id)


@router.post("/{invoice_id}/payment", response_model=InvoiceResponse)
async def record_payment(
    invoice_id: int,
    payment_data: RecordPaymentRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    data = payment_data.model_dump()
    data["payment_method"] = payment_data.payment_method.value
    try:
        invoice = InvoiceService(db).record_payment(ctx, invoice_id, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(invoice)
    db.commit()
    return invoice


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    invoice_id: int,
    reason_data: Optional[ReasonRequest] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        invoice = InvoiceService(db).cancel_invoice(ctx, invoice_id, reason_data.reason if reason_data else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(invoice)
    db.commit()
    return invoice


@router.post("/{invoice_id}/refund", response_model=InvoiceResponse)
async def refund_invoice(
    invoice_id: int,
    reason_data: Optional[ReasonRequest] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        invoice = InvoiceService(db).refund_invoice(ctx, invoice_id, reason_data.reason if reason_data else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _found(invoice)
    db.commit()
    return invoice


@router.get("/{invoice_id}/pdf")
async def download_invoice_pdf(
    invoice_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    invoice = _found(InvoiceService(db).get_invoice(ctx, invoice_id))
    db.commit()
    content = PdfService(db).render_document("invoice", invoice)
    return file_response(content, f"{invoice.invoice_number}.pdf")


@router.delete("/{invoice_id}", response_model=MessageResponse)
async def delete_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        deleted = InvoiceService(db).delete_invoice(ctx, invoice_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Invoice not found")
    db.commit()
    return {"message": "Invoice deleted"}
