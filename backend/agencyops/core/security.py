"""
Security Module - Authentication, Agency Context & Authorization
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Tuple
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from agencyops.core.config import settings
from agencyops.core.database import get_db
from agencyops.core.utils import parse_int
from agencyops.models import AgencyStatus, MemberRole, MembershipStatus
from agencyops.services.permission_service import AgencyContext, has_all_permissions, ROLE_HIERARCHY

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)

AGENCY_COOKIE = "current_agency_id"
IMPERSONATION_COOKIE = "super_admin_agency_id"
AGENCY_HEADER = "X-Agency-Id"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def get_client_info(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """(ip_address, user_agent) for audit entries and contract signatures"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.headers.get("X-Real-IP") or (request.client.host if request.client else None)
    return ip, request.headers.get("User-Agent")


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db)
):
    """
    Dependency to get the current authenticated user from JWT token.
    Supports both Authorization header and cookies.
    """
    from agencyops.services.user_service import UserService

    token = credentials.credentials if credentials else None
    if not token:
        token = request.cookies.get("access_token")

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = parse_int(payload.get("sub"))
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = UserService(db).get_by_id(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active or user.suspended:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is suspended"
        )

    return user


async def get_agency_context(
    request: Request,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db)
) -> AgencyContext:
    """
    Resolve which agency the request acts on.

    Order: super-admin impersonation cookie, the agency cookie or header when
    the user is an active member, the user's default agency, then the
    membership with the highest role.
    """
    from agencyops.services.agency_service import AgencyService

    agencies = AgencyService(db)
    ip_address, user_agent = get_client_info(request)

    def build(agency, role: str, impersonating: bool = False) -> AgencyContext:
        return AgencyContext(
            agency_id=agency.id,
            user_id=current_user.id,
            role=role,
            agency=agency,
            user=current_user,
            is_impersonating=impersonating,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    if current_user.is_super_admin:
        impersonated_id = parse_int(request.cookies.get(IMPERSONATION_COOKIE))
        if impersonated_id:
            agency = agencies.get_by_id(impersonated_id)
            if agency:
                return build(agency, MemberRole.OWNER, impersonating=True)

    membership = None
    requested_id = parse_int(request.cookies.get(AGENCY_COOKIE) or request.headers.get(AGENCY_HEADER))
    if requested_id:
        membership = agencies.get_membership(current_user.id, requested_id)

    if not membership and current_user.default_agency_id:
        membership = agencies.get_membership(current_user.id, current_user.default_agency_id)

    if not membership:
        active = [m for m in current_user.memberships if m.status == MembershipStatus.ACTIVE]
        if active:
            membership = max(active, key=lambda m: ROLE_HIERARCHY.get(m.role, 0))

    if not membership:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No agency access. Please create or join an agency."
        )

    if membership.agency.status != AgencyStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Agency is {membership.agency.status}"
        )

    return build(membership.agency, membership.role)


class PermissionChecker:
    """Dependency for checking role permissions within the current agency"""

    def __init__(self, required_permissions: List[str]):
        self.required_permissions = list(required_permissions)

    def __call__(self, ctx: AgencyContext = Depends(get_agency_context)) -> AgencyContext:
        if not has_all_permissions(ctx.role, self.required_permissions):
            missing = [p for p in self.required_permissions if not ctx.can(p)]
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required permissions: {', '.join(missing)}"
            )
        return ctx


async def require_super_admin(current_user=Depends(get_current_user)):
    if not current_user.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required"
        )
    return current_user
