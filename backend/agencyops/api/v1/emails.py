"""
Email Log API Routes
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from agencyops.core.database import get_db
from agencyops.core.security import get_agency_context
from agencyops.schemas import EmailLogResponse, EmailResult
from agencyops.services.email_service import EmailService
from agencyops.services.permission_service import AgencyContext

router = APIRouter(prefix="/emails", tags=["Emails"])


@router.get("", response_model=List[EmailLogResponse])
async def list_email_logs(
    proposal_id: Optional[int] = None,
    invoice_id: Optional[int] = None,
    contract_id: Optional[int] = None,
    quotation_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return EmailService(db).get_email_logs(
        ctx, proposal_id, invoice_id, contract_id, quotation_id, status, min(limit, 200), offset
    )


@router.post("/{email_log_id}/resend", response_model=EmailResult)
async def resend_email(
    email_log_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Send a logged email again; a new log row records the retry"""
    result = EmailService(db).resend_email(ctx, email_log_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Email log not found")
    db.commit()
    return result
