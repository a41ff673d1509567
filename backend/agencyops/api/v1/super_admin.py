"""
Super Admin API Routes - Platform administration, impersonation, beta invites and form library
"""
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from agencyops.core.config import settings
from agencyops.core.database import get_db
from agencyops.core.security import require_super_admin, IMPERSONATION_COOKIE
from agencyops.schemas import (
    AgencyResponse, AgencyStatusUpdate, FreemiumGrantRequest, FreemiumExpiryUpdate,
    UserResponse, UserAccessUpdate, SuspendUserRequest, MemberResponse, ActivityLogResponse,
    BetaInviteCreate, BetaInviteResponse, FormTemplateCreate, FormTemplateUpdate, FormTemplateResponse,
    TemplateReorderRequest, MessageResponse
)
from agencyops.services.beta_invite_service import BetaInviteService
from agencyops.services.form_template_service import FormTemplateService
from agencyops.services.super_admin_service import SuperAdminService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/super-admin", tags=["Super Admin"])


def _agency(agency) -> dict:
    return AgencyResponse.model_validate(agency).model_dump()


def _user(user) -> dict:
    data = UserResponse.model_validate(user).model_dump()
    data.update(
        suspended=user.suspended,
        suspended_at=user.suspended_at,
        suspended_reason=user.suspended_reason,
    )
    return data


def _agency_found(agency):
    if not agency:
        raise HTTPException(status_code=404, detail="Agency not found")
    return agency


def _user_found(user):
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ==================== DASHBOARD ====================

@router.get("/stats")
async def get_stats(db: Session = Depends(get_db), admin=Depends(require_super_admin)):
    stats = SuperAdminService(db).get_super_admin_stats()
    stats["recent_agencies"] = [_agency(a) for a in stats["recent_agencies"]]
    return stats


# ==================== AGENCIES ====================

@router.get("/agencies")
async def list_agencies(
    search: Optional[str] = None,
    status: Optional[str] = None,
    tier: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    result = SuperAdminService(db).get_agencies(search, status, tier, min(limit, 200), offset)
    result["agencies"] = [
        {**_agency(row["agency"]), "member_count": row["member_count"]} for row in result["agencies"]
    ]
    return result


@router.get("/agencies/{agency_id}")
async def get_agency(agency_id: int, db: Session = Depends(get_db), admin=Depends(require_super_admin)):
    details = SuperAdminService(db).get_agency_details(agency_id)
    if not details:
        raise HTTPException(status_code=404, detail="Agency not found")

    members = []
    for row in details["members"]:
        member = MemberResponse.model_validate(row["membership"]).model_dump()
        member["user_email"] = row["user_email"]
        members.append(member)
    return {"agency": _agency(details["agency"]), "members": members, "stats": details["stats"]}


@router.patch("/agencies/{agency_id}/status", response_model=AgencyResponse)
async def update_agency_status(
    agency_id: int,
    status_data: AgencyStatusUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    try:
        agency = SuperAdminService(db).update_agency_status(
            agency_id, status_data.status, status_data.subscription_tier
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _agency_found(agency)
    db.commit()
    return agency


@router.post("/agencies/{agency_id}/impersonate", response_model=MessageResponse)
async def impersonate_agency(
    agency_id: int,
    response: Response,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    """Act inside an agency as its owner until impersonation is stopped"""
    agency = _agency_found(SuperAdminService(db).get_agency_for_impersonation(agency_id))
    response.set_cookie(
        key=IMPERSONATION_COOKIE,
        value=str(agency.id),
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite=settings.SESSION_COOKIE_SAMESITE,
        max_age=settings.IMPERSONATION_COOKIE_MAX_AGE_HOURS * 3600,
    )
    logger.warning(f"Super admin {admin.id} impersonating agency {agency.id}")
    return {"message": f"Now viewing {agency.name}"}


@router.post("/stop-impersonation", response_model=MessageResponse)
async def stop_impersonation(response: Response, admin=Depends(require_super_admin)):
    response.delete_cookie(IMPERSONATION_COOKIE)
    return {"message": "Impersonation ended"}


# ==================== FREEMIUM ====================

@router.get("/freemium")
async def list_freemium_agencies(
    search: Optional[str] = None,
    reason: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    result = SuperAdminService(db).get_freemium_agencies(search, reason, min(limit, 200), offset)
    result["agencies"] = [
        {**_agency(row["agency"]), "owner_email": row["owner_email"]} for row in result["agencies"]
    ]
    return result


@router.post("/agencies/{agency_id}/freemium", response_model=AgencyResponse)
async def grant_freemium(
    agency_id: int,
    grant: FreemiumGrantRequest,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    try:
        agency = SuperAdminService(db).grant_agency_freemium(agency_id, grant.reason, admin.email, grant.expires_at)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _agency_found(agency)
    db.commit()
    return agency


@router.delete("/agencies/{agency_id}/freemium", response_model=AgencyResponse)
async def revoke_freemium(agency_id: int, db: Session = Depends(get_db), admin=Depends(require_super_admin)):
    try:
        agency = SuperAdminService(db).revoke_agency_freemium(agency_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _agency_found(agency)
    db.commit()
    return agency


@router.patch("/agencies/{agency_id}/freemium", response_model=AgencyResponse)
async def update_freemium_expiry(
    agency_id: int,
    expiry: FreemiumExpiryUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    try:
        agency = SuperAdminService(db).update_freemium_expiry(agency_id, expiry.expires_at)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _agency_found(agency)
    db.commit()
    return agency


# ==================== USERS ====================

@router.get("/users")
async def list_users(
    search: Optional[str] = None,
    super_admin_only: bool = False,
    owners_only: bool = False,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    result = SuperAdminService(db).get_users(search, super_admin_only, owners_only, min(limit, 200), offset)
    result["users"] = [
        {
            **_user(row["user"]),
            "agency_count": row["agency_count"],
            "agency_name": row["agency_name"],
            "primary_role": row["primary_role"],
        }
        for row in result["users"]
    ]
    return result


@router.get("/users/{user_id}")
async def get_user(user_id: int, db: Session = Depends(get_db), admin=Depends(require_super_admin)):
    details = _user_found(SuperAdminService(db).get_user_details(user_id))
    return {
        "user": _user(details["user"]),
        "memberships": [
            {
                **MemberResponse.model_validate(row["membership"]).model_dump(),
                "agency": _agency(row["agency"]),
            }
            for row in details["memberships"]
        ],
    }


@router.patch("/users/{user_id}/access")
async def update_user_access(
    user_id: int,
    access: UserAccessUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    try:
        user = SuperAdminService(db).update_user_access(
            admin.id, user_id, access.grant_super_admin, access.revoke_super_admin
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _user_found(user)
    db.commit()
    return _user(user)


@router.post("/users/{user_id}/suspend")
async def suspend_user(
    user_id: int,
    suspend_data: Optional[SuspendUserRequest] = None,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    """Suspended users cannot log in or use existing tokens"""
    try:
        user = SuperAdminService(db).suspend_user(admin.id, user_id, suspend_data.reason if suspend_data else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _user_found(user)
    db.commit()
    return _user(user)


@router.post("/users/{user_id}/unsuspend")
async def unsuspend_user(user_id: int, db: Session = Depends(get_db), admin=Depends(require_super_admin)):
    try:
        user = SuperAdminService(db).unsuspend_user(user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _user_found(user)
    db.commit()
    return _user(user)


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(user_id: int, db: Session = Depends(get_db), admin=Depends(require_super_admin)):
    try:
        deleted = SuperAdminService(db).delete_user(admin.id, user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _user_found(deleted)
    db.commit()
    return {"message": "User deleted"}


@router.delete("/users/{user_id}/agencies/{agency_id}", response_model=MessageResponse)
async def remove_user_from_agency(
    user_id: int,
    agency_id: int,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    try:
        SuperAdminService(db).remove_user_from_agency(user_id, agency_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    return {"message": "User removed from agency"}


# ==================== AUDIT ====================

@router.get("/audit-logs")
async def list_audit_logs(
    agency_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    result = SuperAdminService(db).get_system_audit_logs(agency_id, action, min(limit, 200), offset)
    result["logs"] = [
        {
            **ActivityLogResponse.model_validate(row["log"]).model_dump(),
            "agency_name": row["agency_name"],
            "user_email": row["user_email"],
        }
        for row in result["logs"]
    ]
    return result


# ==================== BETA INVITES ====================

@router.get("/beta-invites")
async def list_beta_invites(
    search: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    result = BetaInviteService(db).get_beta_invites(search, status, min(limit, 200), offset)
    result["invites"] = [
        {
            **BetaInviteResponse.model_validate(row["invite"]).model_dump(),
            "created_by_email": row["created_by_email"],
            "is_expired": row["is_expired"],
        }
        for row in result["invites"]
    ]
    return result


@router.post("/beta-invites", response_model=BetaInviteResponse, status_code=status.HTTP_201_CREATED)
async def create_beta_invite(
    invite_data: BetaInviteCreate,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    try:
        invite = BetaInviteService(db).create_beta_invite(invite_data.email, admin.id, invite_data.notes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    return invite


@router.post("/beta-invites/{invite_id}/revoke", response_model=BetaInviteResponse)
async def revoke_beta_invite(invite_id: int, db: Session = Depends(get_db), admin=Depends(require_super_admin)):
    try:
        invite = BetaInviteService(db).revoke_beta_invite(invite_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not invite:
        raise HTTPException(status_code=404, detail="Invite not found")
    db.commit()
    return invite


@router.post("/beta-invites/{invite_id}/resend", response_model=BetaInviteResponse)
async def resend_beta_invite(invite_id: int, db: Session = Depends(get_db), admin=Depends(require_super_admin)):
    try:
        invite = BetaInviteService(db).resend_beta_invite(invite_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not invite:
        raise HTTPException(status_code=404, detail="Invite not found")
    return invite


# ==================== FORM TEMPLATE LIBRARY ====================

def _template_found(template):
    if not template:
        raise HTTPException(status_code=404, detail="Form template not found")
    return template


@router.post("/form-templates", response_model=FormTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_form_template(
    template_data: FormTemplateCreate,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    try:
        template = FormTemplateService(db).create_template(template_data.model_dump(by_alias=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    return template


@router.post("/form-templates/reorder", response_model=List[FormTemplateResponse])
async def reorder_form_templates(
    order: TemplateReorderRequest,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    templates = FormTemplateService(db).reorder_templates([item.model_dump() for item in order.items])
    db.commit()
    return templates


@router.patch("/form-templates/{template_id}", response_model=FormTemplateResponse)
async def update_form_template(
    template_id: int,
    template_data: FormTemplateUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    try:
        template = FormTemplateService(db).update_template(
            template_id, template_data.model_dump(exclude_unset=True, by_alias=True)
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _template_found(template)
    db.commit()
    return template


@router.delete("/form-templates/{template_id}", response_model=MessageResponse)
async def delete_form_template(template_id: int, db: Session = Depends(get_db), admin=Depends(require_super_admin)):
    """Agency copies stay; they just lose the link to the template"""
    if not FormTemplateService(db).delete_template(template_id):
        raise HTTPException(status_code=404, detail="Form template not found")
    db.commit()
    return {"message": "Form template deleted"}


@router.get("/form-templates/{template_id}/push-preview")
async def preview_form_template_push(
    template_id: int,
    db: Session = Depends(get_db),
    admin=Depends(require_super_admin)
):
    service = FormTemplateService(db)
    _template_found(service.get_template(template_id))
    return service.get_template_push_preview(template_id)


@router.post("/form-templates/{template_id}/push")
async def push_form_template(template_id: int, db: Session = Depends(get_db), admin=Depends(require_super_admin)):
    result = _template_found(FormTemplateService(db).push_template_update(template_id))
    db.commit()
    return result


@router.post("/form-templates/{template_id}/rollback")
async def rollback_form_template(template_id: int, db: Session = Depends(get_db),
                                 admin=Depends(require_super_admin)):
    service = FormTemplateService(db)
    _template_found(service.get_template(template_id))
    result = service.rollback_template_push(template_id)
    db.commit()
    return result
