"""
Questionnaire API Routes - Agency side of the client onboarding questionnaire
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from agencyops.core.database import get_db
from agencyops.core.security import get_agency_context
from agencyops.schemas import QuestionnaireCreate, QuestionnaireResponseSchema, MessageResponse
from agencyops.services.permission_service import AgencyContext
from agencyops.services.questionnaire_service import QuestionnaireService

router = APIRouter(prefix="/questionnaires", tags=["Questionnaires"])


@router.get("", response_model=List[QuestionnaireResponseSchema])
async def list_questionnaires(
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return QuestionnaireService(db).get_questionnaires(ctx.agency_id, status, min(limit, 200), offset)


@router.post("", response_model=QuestionnaireResponseSchema, status_code=status.HTTP_201_CREATED)
async def create_questionnaire(
    questionnaire_data: QuestionnaireCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        questionnaire = QuestionnaireService(db).create_questionnaire(ctx, questionnaire_data.model_dump())
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return questionnaire


@router.get("/{questionnaire_id}", response_model=QuestionnaireResponseSchema)
async def get_questionnaire(
    questionnaire_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    questionnaire = QuestionnaireService(db).get_questionnaire(questionnaire_id, ctx.agency_id)
    if not questionnaire:
        raise HTTPException(status_code=404, detail="Questionnaire not found")
    return questionnaire


@router.delete("/{questionnaire_id}", response_model=MessageResponse)
async def delete_questionnaire(
    questionnaire_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        deleted = QuestionnaireService(db).delete_questionnaire(ctx, questionnaire_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Questionnaire not found")
    db.commit()
    return {"message": "Questionnaire deleted"}
