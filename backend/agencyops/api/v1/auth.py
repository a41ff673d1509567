"""
Authentication API Routes
"""
from fastapi import APIRouter, Depends, HTTPException, status, Response, Request
from sqlalchemy.orm import Session
import logging

from agencyops.core.config import settings
from agencyops.core.database import get_db
from agencyops.core.security import (
    create_access_token, get_current_user, get_agency_context, get_client_info,
    AGENCY_COOKIE, IMPERSONATION_COOKIE
)
from agencyops.schemas import (
    LoginRequest, SignupRequest, ChangePasswordRequest, UserProfileUpdate,
    UserResponse, MeResponse, MessageResponse
)
from agencyops.services.agency_service import AgencyService
from agencyops.services.beta_invite_service import BetaInviteService
from agencyops.services.permission_service import AgencyContext
from agencyops.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _set_auth_cookie(response: Response, token: str):
    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite=settings.SESSION_COOKIE_SAMESITE,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    signup_data: SignupRequest,
    response: Response,
    db: Session = Depends(get_db)
):
    """Register a user, optionally with a first agency and a beta invite"""
    user_service = UserService(db)
    invites = BetaInviteService(db)

    if signup_data.invite_token:
        check = invites.validate_invite_token(signup_data.invite_token)
        if not check["valid"]:
            db.commit()
            raise HTTPException(status_code=400, detail=check["reason"])

    try:
        user = user_service.create(
            email=signup_data.email,
            password=signup_data.password,
            display_name=signup_data.display_name or "",
        )
        agency = None
        if signup_data.agency_name:
            agency = AgencyService(db).create_agency(user, signup_data.agency_name, signup_data.agency_slug)
        if signup_data.invite_token and agency:
            invites.mark_invite_used(signup_data.invite_token, agency.id)
        db.commit()
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"New user signed up: {user.email}")
    access_token = create_access_token(data={"sub": str(user.id)})
    _set_auth_cookie(response, access_token)
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": UserResponse.model_validate(user),
        "agency_id": agency.id if agency else None,
    }


@router.post("/login")
async def login(
    login_data: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """Login and get access token"""
    user_service = UserService(db)
    user = user_service.authenticate(login_data.email, login_data.password)

    if not user:
        ip_address, _ = get_client_info(request)
        logger.warning(f"Failed login attempt for {login_data.email} from {ip_address}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    if user.suspended or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account has been suspended"
        )

    user_service.record_login(user)
    db.commit()

    access_token = create_access_token(data={"sub": str(user.id)})
    _set_auth_cookie(response, access_token)
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    """Clear session cookies"""
    for cookie in ("access_token", AGENCY_COOKIE, IMPERSONATION_COOKIE):
        response.delete_cookie(cookie)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=MeResponse)
async def me(
    request: Request,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Current user with their agencies and the resolved agency, if any"""
    agencies = AgencyService(db).get_user_agencies(current_user.id)
    result = {"user": current_user, "agencies": agencies}
    try:
        ctx: AgencyContext = await get_agency_context(request, current_user, db)
    except HTTPException:
        return result
    result.update(current_agency_id=ctx.agency_id, role=ctx.role, is_impersonating=ctx.is_impersonating)
    return result


@router.patch("/me", response_model=UserResponse)
async def update_me(
    profile_data: UserProfileUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    user = UserService(db).update_profile(current_user.id, profile_data.model_dump(exclude_unset=True))
    db.commit()
    return user


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    password_data: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    if password_data.new_password != password_data.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")
    try:
        UserService(db).change_password(current_user.id, password_data.current_password, password_data.new_password)
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": "Password changed successfully"}
