"""
Form API Routes - Agency forms, template library, option sets and submissions
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from agencyops.core.database import get_db
from agencyops.core.security import get_agency_context
from agencyops.core.utils import slugify
from agencyops.schemas import (
    FormCreate, FormUpdate, FormResponse, FormFromTemplateRequest, FormTemplateResponse,
    FieldOptionSetResponse, ClientSubmissionCreate, SubmissionStatusUpdate, SubmissionResponse,
    MessageResponse
)
from agencyops.services.client_service import ClientService
from agencyops.services.form_service import FormService
from agencyops.services.form_template_service import FormTemplateService
from agencyops.services.permission_service import AgencyContext

router = APIRouter(prefix="/forms", tags=["Forms"])


def _form_found(form):
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


def _submission_recipient(db: Session, ctx: AgencyContext, recipient: ClientSubmissionCreate) -> dict:
    """Resolve the client a draft submission is addressed to."""
    data = recipient.model_dump()
    if recipient.client_id:
        client = ClientService(db).get_by_id(recipient.client_id, ctx.agency_id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")
        data["client_business_name"] = data.get("client_business_name") or client.business_name
        data["client_email"] = data.get("client_email") or client.email
    if not data.get("client_email") or not data.get("client_business_name"):
        raise HTTPException(status_code=400, detail="Client business name and email are required")
    return data


# ==================== TEMPLATE LIBRARY ====================

@router.get("/templates", response_model=List[FormTemplateResponse])
async def list_form_templates(
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return FormTemplateService(db).get_templates(category)


@router.get("/templates/by-slug/{slug}", response_model=FormTemplateResponse)
async def get_form_template_by_slug(
    slug: str,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    template = FormTemplateService(db).get_template_by_slug(slug)
    if not template:
        raise HTTPException(status_code=404, detail="Form template not found")
    return template


@router.get("/templates/{template_id}", response_model=FormTemplateResponse)
async def get_form_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    template = FormTemplateService(db).get_template(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Form template not found")
    return template


@router.post("/templates/{template_id}/submissions", response_model=SubmissionResponse,
             status_code=status.HTTP_201_CREATED)
async def create_submission_from_template(
    template_id: int,
    recipient: ClientSubmissionCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Draft submission for a client, using the agency's copy of the template"""
    data = _submission_recipient(db, ctx, recipient)
    submission = FormService(db).create_submission_from_template(ctx, template_id, data)
    if not submission:
        raise HTTPException(status_code=404, detail="Form template not found")
    db.commit()
    return submission


# ==================== OPTION SETS ====================

@router.get("/option-sets", response_model=List[FieldOptionSetResponse])
async def list_field_option_sets(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return FormService(db).get_field_option_sets(ctx.agency_id)


@router.get("/option-sets/{slug}", response_model=FieldOptionSetResponse)
async def get_field_option_set(
    slug: str,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    option_set = FormService(db).get_field_option_set(ctx.agency_id, slug)
    if not option_set:
        raise HTTPException(status_code=404, detail="Option set not found")
    return option_set


# ==================== SUBMISSIONS ====================

@router.get("/submissions", response_model=List[SubmissionResponse])
async def list_submissions(
    form_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return FormService(db).get_form_submissions(ctx.agency_id, form_id, status, min(limit, 200), offset)


@router.get("/submissions/{submission_id}", response_model=SubmissionResponse)
async def get_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    submission = FormService(db).get_submission(submission_id, ctx.agency_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    return submission


@router.patch("/submissions/{submission_id}/status", response_model=SubmissionResponse)
async def update_submission_status(
    submission_id: int,
    status_data: SubmissionStatusUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        submission = FormService(db).update_submission_status(
            ctx, submission_id, status_data.status, status_data.consultation_id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    db.commit()
    return submission


@router.delete("/submissions/{submission_id}", response_model=MessageResponse)
async def delete_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    if not FormService(db).delete_submission(ctx, submission_id):
        raise HTTPException(status_code=404, detail="Submission not found")
    db.commit()
    return {"message": "Submission deleted"}


# ==================== FORMS ====================

@router.get("", response_model=List[FormResponse])
async def list_forms(
    form_type: Optional[str] = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return FormService(db).get_agency_forms(ctx.agency_id, form_type, active_only)


@router.post("", response_model=FormResponse, status_code=status.HTTP_201_CREATED)
async def create_form(
    form_data: FormCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    data = form_data.model_dump(by_alias=True)
    data["slug"] = slugify(data.get("slug") or data["name"]) or "form"
    try:
        form = FormService(db).create_form(ctx, data)
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return form


@router.post("/from-template", response_model=FormResponse, status_code=status.HTTP_201_CREATED)
async def create_form_from_template(
    template_data: FormFromTemplateRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    form = FormService(db).create_form_from_template(
        ctx, template_data.template_id, template_data.name, template_data.slug
    )
    if not form:
        raise HTTPException(status_code=404, detail="Form template not found")
    db.commit()
    return form


@router.get("/default/{form_type}", response_model=FormResponse)
async def get_default_form(
    form_type: str,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return _form_found(FormService(db).get_default_form(ctx.agency_id, form_type))


@router.get("/{form_id}", response_model=FormResponse)
async def get_form(
    form_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return _form_found(FormService(db).get_form(form_id, ctx.agency_id))


@router.patch("/{form_id}", response_model=FormResponse)
async def update_form(
    form_id: int,
    form_data: FormUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        form = FormService(db).update_form(ctx, form_id, form_data.model_dump(exclude_unset=True, by_alias=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _form_found(form)
    db.commit()
    return form


@router.post("/{form_id}/duplicate", response_model=FormResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_form(
    form_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    form = _form_found(FormService(db).duplicate_form(ctx, form_id))
    db.commit()
    return form


@router.post("/{form_id}/submissions", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def create_submission_for_client(
    form_id: int,
    recipient: ClientSubmissionCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    data = _submission_recipient(db, ctx, recipient)
    submission = FormService(db).create_submission_for_client(ctx, form_id, data)
    _form_found(submission)
    db.commit()
    return submission


@router.delete("/{form_id}", response_model=MessageResponse)
async def delete_form(
    form_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    if not FormService(db).delete_form(ctx, form_id):
        raise HTTPException(status_code=404, detail="Form not found")
    db.commit()
    return {"message": "Form deleted"}
