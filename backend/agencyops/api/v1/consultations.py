"""
Consultation API Routes - Four-step discovery wizard
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from agencyops.core.database import get_db
from agencyops.core.security import get_agency_context, PermissionChecker
from agencyops.schemas import (
    ConsultationContactBusiness, ConsultationSituation, ConsultationGoalsBudget,
    ConsultationPreferencesNotes, ConsultationResponse, MessageResponse
)
from agencyops.services.consultation_service import ConsultationService
from agencyops.services.permission_service import AgencyContext

router = APIRouter(prefix="/consultations", tags=["Consultations"])


def _step_result(consultation):
    if not consultation:
        raise HTTPException(status_code=404, detail="Consultation not found")
    return consultation


@router.get("", response_model=List[ConsultationResponse])
async def list_consultations(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["consultation:view"]))
):
    return ConsultationService(db).get_consultations(ctx, status)


@router.get("/completed", response_model=List[ConsultationResponse])
async def list_completed_consultations(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["consultation:view"]))
):
    """Completed consultations, used when starting a proposal"""
    return ConsultationService(db).get_completed_consultations(ctx)


@router.get("/draft", response_model=Optional[ConsultationResponse])
async def get_existing_draft(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return ConsultationService(db).get_existing_draft(ctx)


@router.post("", response_model=ConsultationResponse, status_code=status.HTTP_201_CREATED)
async def create_consultation(
    step_data: ConsultationContactBusiness,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    consultation = ConsultationService(db).create_consultation(ctx, step_data.model_dump())
    db.commit()
    return consultation


@router.get("/{consultation_id}", response_model=ConsultationResponse)
async def get_consultation(
    consultation_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return _step_result(ConsultationService(db).get_consultation(ctx, consultation_id))


@router.patch("/{consultation_id}/contact-business", response_model=ConsultationResponse)
async def update_contact_business(
    consultation_id: int,
    step_data: ConsultationContactBusiness,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    consultation = _step_result(ConsultationService(db).update_contact_business(
        ctx, consultation_id, step_data.model_dump(exclude_unset=True)
    ))
    db.commit()
    return consultation


@router.patch("/{consultation_id}/situation", response_model=ConsultationResponse)
async def update_situation(
    consultation_id: int,
    step_data: ConsultationSituation,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    consultation = _step_result(ConsultationService(db).update_situation(
        ctx, consultation_id, step_data.model_dump(exclude_unset=True)
    ))
    db.commit()
    return consultation


@router.patch("/{consultation_id}/goals-budget", response_model=ConsultationResponse)
async def update_goals_budget(
    consultation_id: int,
    step_data: ConsultationGoalsBudget,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    consultation = _step_result(ConsultationService(db).update_goals_budget(
        ctx, consultation_id, step_data.model_dump(exclude_unset=True)
    ))
    db.commit()
    return consultation


@router.patch("/{consultation_id}/preferences-notes", response_model=ConsultationResponse)
async def update_preferences_notes(
    consultation_id: int,
    step_data: ConsultationPreferencesNotes,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    consultation = _step_result(ConsultationService(db).update_preferences_notes(
        ctx, consultation_id, step_data.model_dump(exclude_unset=True)
    ))
    db.commit()
    return consultation


@router.post("/{consultation_id}/complete", response_model=ConsultationResponse)
async def complete_consultation(
    consultation_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    consultation = _step_result(ConsultationService(db).complete_consultation(ctx, consultation_id))
    db.commit()
    return consultation


@router.delete("/{consultation_id}", response_model=MessageResponse)
async def delete_consultation(
    consultation_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    if not ConsultationService(db).delete_consultation(ctx, consultation_id):
        raise HTTPException(status_code=404, detail="Consultation not found")
    db.commit()
    return {"message": "Consultation deleted"}
