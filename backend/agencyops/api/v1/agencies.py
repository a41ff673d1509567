"""
Agency API Routes - Tenancy, team, form options, profile and activity
"""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
from typing import Dict, List, Optional

from agencyops.core.config import settings
from agencyops.core.database import get_db
from agencyops.core.security import get_current_user, get_agency_context, PermissionChecker, AGENCY_COOKIE
from agencyops.schemas import (
    AgencyCreate, AgencyBrandingUpdate, AgencyContactUpdate, AgencyResponse, SlugCheckResponse,
    SwitchAgencyRequest, InviteMemberRequest, UpdateMemberRoleRequest, MemberResponse,
    FormOptionsUpdate, FormOptionResponse, AgencyProfileUpdate, AgencyProfileResponse,
    ActivityLogResponse, MessageResponse
)
from agencyops.services.activity_service import ActivityService
from agencyops.services.agency_service import AgencyService
from agencyops.services.permission_service import AgencyContext, get_permissions_for_role
from agencyops.services.profile_service import AgencyProfileService

router = APIRouter(prefix="/agencies", tags=["Agencies"])


def _member_dict(membership) -> dict:
    data = MemberResponse.model_validate(membership).model_dump()
    data["user_email"] = membership.user.email if membership.user else None
    return data


# ==================== AGENCIES ====================

@router.get("")
async def list_my_agencies(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Agencies the user belongs to, highest role first"""
    return AgencyService(db).get_user_agencies(current_user.id)


@router.post("", response_model=AgencyResponse, status_code=status.HTTP_201_CREATED)
async def create_agency(
    agency_data: AgencyCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    agency_service = AgencyService(db)
    if agency_data.slug and not agency_service.is_slug_available(agency_data.slug):
        raise HTTPException(status_code=400, detail="Slug is invalid or already taken")
    try:
        agency = agency_service.create_agency(current_user, agency_data.name, agency_data.slug)
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return agency


@router.get("/check-slug", response_model=SlugCheckResponse)
async def check_slug(
    slug: str,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    return AgencyService(db).check_slug_available(slug.strip().lower())


@router.get("/current")
async def get_current_agency(ctx: AgencyContext = Depends(get_agency_context)):
    """The resolved agency with the caller's role and permissions"""
    return {
        "agency": AgencyResponse.model_validate(ctx.agency),
        "role": ctx.role,
        "permissions": sorted(get_permissions_for_role(ctx.role)),
        "is_impersonating": ctx.is_impersonating,
    }


@router.post("/switch", response_model=MessageResponse)
async def switch_agency(
    switch_data: SwitchAgencyRequest,
    response: Response,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Verify membership and remember the agency in a cookie"""
    AgencyService(db).verify_switch(current_user, switch_data.agency_id)
    response.set_cookie(
        key=AGENCY_COOKIE,
        value=str(switch_data.agency_id),
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite=settings.SESSION_COOKIE_SAMESITE,
        max_age=settings.AGENCY_COOKIE_MAX_AGE_DAYS * 86400,
    )
    return {"message": "Agency switched"}


@router.post("/default", response_model=MessageResponse)
async def set_default_agency(
    switch_data: SwitchAgencyRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    AgencyService(db).set_default_agency(current_user, switch_data.agency_id)
    db.commit()
    return {"message": "Default agency updated"}


@router.patch("/current/branding", response_model=AgencyResponse)
async def update_branding(
    branding_data: AgencyBrandingUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["branding:edit"]))
):
    try:
        agency = AgencyService(db).update_branding(ctx, branding_data.model_dump(exclude_unset=True))
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return agency


@router.patch("/current/contact", response_model=AgencyResponse)
async def update_contact(
    contact_data: AgencyContactUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["settings:edit"]))
):
    agency = AgencyService(db).update_contact(ctx, contact_data.model_dump(exclude_unset=True))
    db.commit()
    return agency


# ==================== MEMBERS ====================

@router.get("/current/members")
async def list_members(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["member:view"]))
):
    return [_member_dict(m) for m in AgencyService(db).get_agency_members(ctx.agency_id)]


@router.post("/current/members", status_code=status.HTTP_201_CREATED)
async def invite_member(
    invite_data: InviteMemberRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["member:invite"]))
):
    try:
        membership = AgencyService(db).invite_member(ctx, invite_data.email, invite_data.role.value)
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _member_dict(membership)


@router.patch("/current/members/{membership_id}")
async def update_member_role(
    membership_id: int,
    role_data: UpdateMemberRoleRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(get_agency_context)
):
    try:
        membership = AgencyService(db).update_member_role(ctx, membership_id, role_data.role)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not membership:
        raise HTTPException(status_code=404, detail="Member not found")
    db.commit()
    return _member_dict(membership)


@router.delete("/current/members/{membership_id}", response_model=MessageResponse)
async def remove_member(
    membership_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["member:remove"]))
):
    try:
        removed = AgencyService(db).remove_member(ctx, membership_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not removed:
        raise HTTPException(status_code=404, detail="Member not found")
    db.commit()
    return {"message": "Member removed"}


# ==================== FORM OPTIONS ====================

@router.get("/current/form-options", response_model=Dict[str, List[FormOptionResponse]])
async def get_form_options(
    active_only: bool = True,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["form_options:view"]))
):
    return AgencyService(db).get_form_options(ctx.agency_id, active_only)


@router.get("/current/form-options/{category}", response_model=List[FormOptionResponse])
async def get_form_options_by_category(
    category: str,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["form_options:view"]))
):
    return AgencyService(db).get_form_options_by_category(ctx.agency_id, category)


@router.put("/current/form-options/{category}", response_model=List[FormOptionResponse])
async def update_form_options(
    category: str,
    options_data: FormOptionsUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["form_options:edit"]))
):
    options = AgencyService(db).update_form_options(
        ctx, category, [o.model_dump() for o in options_data.options]
    )
    db.commit()
    return options


# ==================== PROFILE ====================

@router.get("/current/profile")
async def get_agency_profile(
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["profile:view"]))
):
    result = AgencyProfileService(db).get_agency_profile(ctx.agency_id)
    db.commit()
    return {
        "agency": AgencyResponse.model_validate(result["agency"]),
        "profile": AgencyProfileResponse.model_validate(result["profile"]),
    }


@router.patch("/current/profile", response_model=AgencyProfileResponse)
async def update_agency_profile(
    profile_data: AgencyProfileUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["profile:edit"]))
):
    try:
        profile = AgencyProfileService(db).update_profile(ctx, profile_data.model_dump(exclude_unset=True))
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return profile


# ==================== ACTIVITY ====================

@router.get("/current/activity", response_model=List[ActivityLogResponse])
async def get_activity_log(
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["analytics:view"]))
):
    return ActivityService(db).get_activity_log(
        ctx.agency_id, entity_type=entity_type, entity_id=entity_id, action=action,
        limit=min(limit, 200), offset=offset
    )
