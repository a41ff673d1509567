"""
Contract Template API Routes - Templates and per-package schedules
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from agencyops.core.database import get_db
from agencyops.core.security import PermissionChecker
from agencyops.schemas import (
    ContractTemplateCreate, ContractTemplateUpdate, ContractTemplateResponse, ContractTemplateDetailResponse,
    ContractScheduleCreate, ContractScheduleUpdate, ContractScheduleResponse,
    ReorderRequest, MessageResponse
)
from agencyops.services.contract_template_service import ContractTemplateService
from agencyops.services.merge_field_service import get_available_merge_fields
from agencyops.services.permission_service import AgencyContext

router = APIRouter(prefix="/contract-templates", tags=["Contract Templates"])


@router.get("", response_model=List[ContractTemplateResponse])
async def list_templates(
    active_only: bool = False,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:view"]))
):
    return ContractTemplateService(db).get_templates(ctx.agency_id, active_only)


@router.get("/merge-fields")
async def list_merge_fields(
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:view"]))
):
    """Placeholders available to terms and schedule content, by source"""
    return get_available_merge_fields()


@router.get("/default", response_model=ContractTemplateResponse)
async def get_default_template(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:view"]))
):
    template = ContractTemplateService(db).get_default_template(ctx.agency_id)
    if not template:
        raise HTTPException(status_code=404, detail="No default contract template")
    return template


@router.post("", response_model=ContractTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    template_data: ContractTemplateCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:create"]))
):
    template = ContractTemplateService(db).create_template(ctx, template_data.model_dump())
    db.commit()
    return template


@router.get("/{template_id}", response_model=ContractTemplateDetailResponse)
async def get_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:view"]))
):
    template = ContractTemplateService(db).get_template(template_id, ctx.agency_id)
    if not template:
        raise HTTPException(status_code=404, detail="Contract template not found")
    return template


@router.patch("/{template_id}", response_model=ContractTemplateResponse)
async def update_template(
    template_id: int,
    template_data: ContractTemplateUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:edit"]))
):
    template = ContractTemplateService(db).update_template(
        ctx, template_id, template_data.model_dump(exclude_unset=True)
    )
    if not template:
        raise HTTPException(status_code=404, detail="Contract template not found")
    db.commit()
    return template


@router.post("/{template_id}/duplicate", response_model=ContractTemplateResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:create"]))
):
    template = ContractTemplateService(db).duplicate_template(ctx, template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Contract template not found")
    db.commit()
    return template


@router.post("/{template_id}/default", response_model=ContractTemplateResponse)
async def set_default_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:edit"]))
):
    template = ContractTemplateService(db).set_default_template(ctx, template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Contract template not found")
    db.commit()
    return template


@router.delete("/{template_id}", response_model=MessageResponse)
async def delete_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:delete"]))
):
    if not ContractTemplateService(db).delete_template(ctx, template_id):
        raise HTTPException(status_code=404, detail="Contract template not found")
    db.commit()
    return {"message": "Contract template deleted"}


# ==================== SCHEDULES ====================

@router.get("/{template_id}/schedules", response_model=List[ContractScheduleResponse])
async def list_schedules(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:view"]))
):
    schedules = ContractTemplateService(db).get_schedules(template_id, ctx.agency_id)
    if schedules is None:
        raise HTTPException(status_code=404, detail="Contract template not found")
    return schedules


@router.post("/{template_id}/schedules", response_model=ContractScheduleResponse, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    template_id: int,
    schedule_data: ContractScheduleCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:edit"]))
):
    schedule = ContractTemplateService(db).create_schedule(ctx, template_id, schedule_data.model_dump())
    if not schedule:
        raise HTTPException(status_code=404, detail="Contract template not found")
    db.commit()
    return schedule


@router.post("/{template_id}/schedules/reorder", response_model=List[ContractScheduleResponse])
async def reorder_schedules(
    template_id: int,
    order: ReorderRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:edit"]))
):
    schedules = ContractTemplateService(db).reorder_schedules(ctx, template_id, order.ordered_ids)
    if schedules is None:
        raise HTTPException(status_code=404, detail="Contract template not found")
    db.commit()
    return schedules


@router.patch("/schedules/{schedule_id}", response_model=ContractScheduleResponse)
async def update_schedule(
    schedule_id: int,
    schedule_data: ContractScheduleUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:edit"]))
):
    schedule = ContractTemplateService(db).update_schedule(
        ctx, schedule_id, schedule_data.model_dump(exclude_unset=True)
    )
    if not schedule:
        raise HTTPException(status_code=404, detail="Schedule not found")
    db.commit()
    return schedule


@router.delete("/schedules/{schedule_id}", response_model=MessageResponse)
async def delete_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["contract_template:edit"]))
):
    if not ContractTemplateService(db).delete_schedule(ctx, schedule_id):
        raise HTTPException(status_code=404, detail="Schedule not found")
    db.commit()
    return {"message": "Schedule deleted"}
