"""
Quotation Template API Routes - Scope blocks, terms blocks and the templates built from them
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from agencyops.core.database import get_db
from agencyops.core.security import get_agency_context
from agencyops.schemas import (
    ScopeTemplateCreate, ScopeTemplateUpdate, ScopeTemplateResponse,
    TermsTemplateCreate, TermsTemplateUpdate, TermsTemplateResponse,
    QuotationTemplateCreate, QuotationTemplateUpdate, QuotationTemplateResponse,
    TemplateSectionResponse, TemplateTermsResponse, AddTemplateSectionRequest, AddTemplateTermsRequest,
    ReorderRequest, MessageResponse
)
from agencyops.services.permission_service import AgencyContext
from agencyops.services.quotation_template_service import QuotationTemplateService

router = APIRouter(prefix="/quotation-templates", tags=["Quotation Templates"])


def _template_found(template):
    if not template:
        raise HTTPException(status_code=404, detail="Quotation template not found")
    return template


# ==================== SCOPE TEMPLATES ====================

@router.get("/scopes", response_model=List[ScopeTemplateResponse])
async def list_scope_templates(
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return QuotationTemplateService(db).get_scope_templates(ctx, category)


@router.post("/scopes", response_model=ScopeTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_scope_template(
    scope_data: ScopeTemplateCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    scope = QuotationTemplateService(db).create_scope_template(ctx, scope_data.model_dump())
    db.commit()
    return scope


@router.get("/scopes/{scope_id}", response_model=ScopeTemplateResponse)
async def get_scope_template(
    scope_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    scope = QuotationTemplateService(db).get_scope_template(ctx, scope_id)
    if not scope:
        raise HTTPException(status_code=404, detail="Scope template not found")
    return scope


@router.patch("/scopes/{scope_id}", response_model=ScopeTemplateResponse)
async def update_scope_template(
    scope_id: int,
    scope_data: ScopeTemplateUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    scope = QuotationTemplateService(db).update_scope_template(ctx, scope_id, scope_data.model_dump(exclude_unset=True))
    if not scope:
        raise HTTPException(status_code=404, detail="Scope template not found")
    db.commit()
    return scope


@router.delete("/scopes/{scope_id}", response_model=MessageResponse)
async def delete_scope_template(
    scope_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    """Delete the block; quotations keep their copied sections"""
    if not QuotationTemplateService(db).delete_scope_template(ctx, scope_id):
        raise HTTPException(status_code=404, detail="Scope template not found")
    db.commit()
    return {"message": "Scope template deleted"}


# ==================== TERMS TEMPLATES ====================

@router.get("/terms", response_model=List[TermsTemplateResponse])
async def list_terms_templates(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return QuotationTemplateService(db).get_terms_templates(ctx)


@router.post("/terms", response_model=TermsTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_terms_template(
    terms_data: TermsTemplateCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    terms = QuotationTemplateService(db).create_terms_template(ctx, terms_data.model_dump())
    db.commit()
    return terms


@router.patch("/terms/{terms_id}", response_model=TermsTemplateResponse)
async def update_terms_template(
    terms_id: int,
    terms_data: TermsTemplateUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    terms = QuotationTemplateService(db).update_terms_template(ctx, terms_id, terms_data.model_dump(exclude_unset=True))
    if not terms:
        raise HTTPException(status_code=404, detail="Terms template not found")
    db.commit()
    return terms


@router.delete("/terms/{terms_id}", response_model=MessageResponse)
async def delete_terms_template(
    terms_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    if not QuotationTemplateService(db).delete_terms_template(ctx, terms_id):
        raise HTTPException(status_code=404, detail="Terms template not found")
    db.commit()
    return {"message": "Terms template deleted"}


# ==================== QUOTATION TEMPLATES ====================

@router.get("", response_model=List[QuotationTemplateResponse])
async def list_templates(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return QuotationTemplateService(db).get_templates(ctx)


@router.post("", response_model=QuotationTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    template_data: QuotationTemplateCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    template = QuotationTemplateService(db).create_template(ctx, template_data.model_dump())
    db.commit()
    return template


@router.get("/{template_id}", response_model=QuotationTemplateResponse)
async def get_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    return _template_found(QuotationTemplateService(db).get_template(ctx, template_id))


@router.patch("/{template_id}", response_model=QuotationTemplateResponse)
async def update_template(
    template_id: int,
    template_data: QuotationTemplateUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    template = _template_found(QuotationTemplateService(db).update_template(
        ctx, template_id, template_data.model_dump(exclude_unset=True)
    ))
    db.commit()
    return template


@router.post("/{template_id}/duplicate", response_model=QuotationTemplateResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    template = _template_found(QuotationTemplateService(db).duplicate_template(ctx, template_id))
    db.commit()
    return template


@router.post("/{template_id}/default", response_model=QuotationTemplateResponse)
async def set_default_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    template = _template_found(QuotationTemplateService(db).set_default_template(ctx, template_id))
    db.commit()
    return template


@router.delete("/{template_id}", response_model=MessageResponse)
async def delete_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    if not QuotationTemplateService(db).delete_template(ctx, template_id):
        raise HTTPException(status_code=404, detail="Quotation template not found")
    db.commit()
    return {"message": "Quotation template deleted"}


# ==================== TEMPLATE CONTENTS ====================

@router.post("/{template_id}/sections", response_model=TemplateSectionResponse, status_code=status.HTTP_201_CREATED)
async def add_section(
    template_id: int,
    section_data: AddTemplateSectionRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        link = QuotationTemplateService(db).add_section_to_template(
            ctx, template_id, section_data.scope_template_id, section_data.default_section_price
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _template_found(link)
    db.commit()
    return link


@router.post("/{template_id}/sections/reorder", response_model=QuotationTemplateResponse)
async def reorder_sections(
    template_id: int,
    order: ReorderRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    template = _template_found(QuotationTemplateService(db).reorder_template_sections(ctx, template_id, order.ordered_ids))
    db.commit()
    return template


@router.delete("/sections/{section_id}", response_model=MessageResponse)
async def remove_section(
    section_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    if not QuotationTemplateService(db).remove_section_from_template(ctx, section_id):
        raise HTTPException(status_code=404, detail="Template section not found")
    db.commit()
    return {"message": "Section removed"}


@router.post("/{template_id}/terms", response_model=TemplateTermsResponse, status_code=status.HTTP_201_CREATED)
async def add_terms(
    template_id: int,
    terms_data: AddTemplateTermsRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        link = QuotationTemplateService(db).add_terms_to_template(ctx, template_id, terms_data.terms_template_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _template_found(link)
    db.commit()
    return link


@router.post("/{template_id}/terms/reorder", response_model=QuotationTemplateResponse)
async def reorder_terms(
    template_id: int,
    order: ReorderRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    template = _template_found(QuotationTemplateService(db).reorder_template_terms(ctx, template_id, order.ordered_ids))
    db.commit()
    return template


@router.delete("/template-terms/{link_id}", response_model=MessageResponse)
async def remove_terms(
    link_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    if not QuotationTemplateService(db).remove_terms_from_template(ctx, link_id):
        raise HTTPException(status_code=404, detail="Template terms not found")
    db.commit()
    return {"message": "Terms removed"}
