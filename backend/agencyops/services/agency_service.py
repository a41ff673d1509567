"""
Agency Service - Tenants, memberships and form options
"""
import re
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session, joinedload

from agencyops.models import (
    Agency, AgencyMembership, AgencyFormOption, User,
    MemberRole, MembershipStatus, AgencyStatus
)
from agencyops.core.utils import utcnow, slugify
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.permission_service import AgencyContext, ROLE_HIERARCHY, require_role, MANAGERS

RESERVED_SLUGS = [
    "admin", "dashboard", "settings", "agencies", "api", "auth", "super-admin",
    "consultation", "login", "logout", "signup", "register", "profile", "account",
]

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{1,48}[a-z0-9]$")
COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")


def is_valid_slug(slug: str) -> bool:
    if slug in RESERVED_SLUGS:
        return False
    return bool(SLUG_PATTERN.match(slug or ""))


class AgencyService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    # ---------- lookup ----------

    def get_by_id(self, agency_id: int) -> Optional[Agency]:
        return self.db.query(Agency).filter(Agency.id == agency_id).first()

    def get_by_slug(self, slug: str) -> Optional[Agency]:
        return self.db.query(Agency).filter(Agency.slug == slug).first()

    def get_membership(self, user_id: int, agency_id: int, active_only: bool = True) -> Optional[AgencyMembership]:
        query = self.db.query(AgencyMembership).filter(
            AgencyMembership.user_id == user_id,
            AgencyMembership.agency_id == agency_id
        )
        if active_only:
            query = query.filter(AgencyMembership.status == MembershipStatus.ACTIVE)
        return query.first()

    def get_user_agencies(self, user_id: int) -> List[Dict[str, Any]]:
        memberships = self.db.query(AgencyMembership)\
            .options(joinedload(AgencyMembership.agency))\
            .filter(
                AgencyMembership.user_id == user_id,
                AgencyMembership.status == MembershipStatus.ACTIVE
            )\
            .all()
        memberships.sort(key=lambda m: (-ROLE_HIERARCHY.get(m.role, 0), m.agency.name.lower()))
        return [
            {
                "id": m.agency.id,
                "name": m.agency.name,
                "slug": m.agency.slug,
                "logo_url": m.agency.logo_url,
                "primary_color": m.agency.primary_color,
                "status": m.agency.status,
                "role": m.role,
            }
            for m in memberships
        ]

    def get_agency_members(self, agency_id: int) -> List[AgencyMembership]:
        return self.db.query(AgencyMembership)\
            .options(joinedload(AgencyMembership.user))\
            .filter(AgencyMembership.agency_id == agency_id)\
            .order_by(AgencyMembership.created_at)\
            .all()

    # ---------- slugs ----------

    def is_slug_available(self, slug: str) -> bool:
        if not is_valid_slug(slug):
            return False
        return self.get_by_slug(slug) is None

    def check_slug_available(self, slug: str) -> Dict[str, bool]:
        valid = is_valid_slug(slug)
        return {"valid": valid, "available": valid and self.get_by_slug(slug) is None}

    def _unique_slug(self, base: str) -> str:
        slug = base
        counter = 1
        while not self.is_slug_available(slug):
            slug = f"{base}-{counter}"
            counter += 1
            if counter > 100:
                raise ValueError("Unable to generate unique slug")
        return slug

    # ---------- lifecycle ----------

    def create_agency(self, user: User, name: str, slug: Optional[str] = None) -> Agency:
        """Create an agency with ``user`` as its owner."""
        from agencyops.services.profile_service import AgencyProfileService

        base = slug or slugify(name)
        if len(base) < 3:
            base = f"{base or 'agency'}-agency"
        slug = self._unique_slug(base)

        agency = Agency(name=name, slug=slug)
        self.db.add(agency)
        self.db.flush()

        now = utcnow()
        self.db.add(AgencyMembership(
            user_id=user.id,
            agency_id=agency.id,
            role=MemberRole.OWNER,
            status=MembershipStatus.ACTIVE,
            accepted_at=now,
        ))

        if user.default_agency_id is None:
            user.default_agency_id = agency.id

        AgencyProfileService(self.db).ensure_agency_profile(agency.id)
        self.db.flush()

        self.activity.log(
            agency_id=agency.id,
            user_id=user.id,
            action=ActivityAction.AGENCY_CREATED,
            entity_type="agency",
            entity_id=agency.id,
            new_values={"name": name, "slug": slug}
        )
        return agency

    def update_branding(self, ctx: AgencyContext, data: dict) -> Agency:
        require_role(ctx, MANAGERS, "Only owners and admins can update branding")
        agency = self.get_by_id(ctx.agency_id)

        updates = {}
        for key in ("name", "logo_url", "logo_avatar_url", "primary_color", "secondary_color",
                    "accent_color", "accent_gradient"):
            if data.get(key) is None:
                continue
            if key.endswith("_color") and not COLOR_PATTERN.match(data[key]):
                raise ValueError(f"Invalid color for {key}: must be #RRGGBB")
            updates[key] = data[key]

        for key, value in updates.items():
            setattr(agency, key, value)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.BRANDING_UPDATED, "agency", agency.id, new_values=updates)
        return agency

    def update_contact(self, ctx: AgencyContext, data: dict) -> Agency:
        require_role(ctx, MANAGERS, "Only owners and admins can update contact details")
        agency = self.get_by_id(ctx.agency_id)

        updates = {k: data[k] for k in ("email", "phone", "website") if data.get(k) is not None}
        for key, value in updates.items():
            setattr(agency, key, value)
        self.db.flush()

        self.activity.log_for(ctx, "agency.contact.updated", "agency", agency.id, new_values=updates)
        return agency

    def set_default_agency(self, user: User, agency_id: int) -> User:
        if not self.get_membership(user.id, agency_id):
            raise PermissionError("You do not have access to this agency")
        user.default_agency_id = agency_id
        self.db.flush()
        return user

    def verify_switch(self, user: User, agency_id: int) -> AgencyMembership:
        membership = self.get_membership(user.id, agency_id)
        if not membership:
            raise PermissionError("You do not have access to this agency")
        agency = self.get_by_id(agency_id)
        if agency.status != AgencyStatus.ACTIVE and not user.is_super_admin:
            raise PermissionError("This agency is not active")
        return membership

    # ---------- team ----------

    def invite_member(self, ctx: AgencyContext, email: str, role: str) -> AgencyMembership:
        require_role(ctx, MANAGERS, "Only owners and admins can invite members")
        if role not in (MemberRole.ADMIN, MemberRole.MEMBER):
            raise ValueError("Role must be admin or member")

        user = self.db.query(User).filter(User.email == email.strip().lower()).first()
        if not user:
            raise ValueError("User not found. Email invitations coming soon.")

        if self.get_membership(user.id, ctx.agency_id, active_only=False):
            raise ValueError("User is already a member of this agency")

        now = utcnow()
        membership = AgencyMembership(
            user_id=user.id,
            agency_id=ctx.agency_id,
            role=role,
            status=MembershipStatus.ACTIVE,
            invited_at=now,
            invited_by=ctx.user_id,
            accepted_at=now,
        )
        self.db.add(membership)
        self.db.flush()

        self.activity.log_for(
            ctx, ActivityAction.MEMBER_INVITED, "membership", membership.id,
            new_values={"email": user.email, "role": role, "user_id": user.id}
        )
        return membership

    def get_agency_membership(self, agency_id: int, membership_id: int) -> Optional[AgencyMembership]:
        return self.db.query(AgencyMembership).filter(
            AgencyMembership.id == membership_id,
            AgencyMembership.agency_id == agency_id
        ).first()

    def update_member_role(self, ctx: AgencyContext, membership_id: int, role: str) -> Optional[AgencyMembership]:
        require_role(ctx, MANAGERS, "Only owners and admins can change roles")
        if role not in (MemberRole.ADMIN, MemberRole.MEMBER):
            raise ValueError("Role must be admin or member")

        membership = self.get_agency_membership(ctx.agency_id, membership_id)
        if not membership:
            return None
        if membership.role == MemberRole.OWNER:
            raise ValueError("Cannot change owner role. Transfer ownership instead.")
        if role == MemberRole.ADMIN and ctx.role != MemberRole.OWNER:
            raise PermissionError("Only the owner can promote members to admin")

        old_role = membership.role
        membership.role = role
        self.db.flush()

        self.activity.log_for(
            ctx, ActivityAction.MEMBER_ROLE_CHANGED, "membership", membership.id,
            old_values={"role": old_role}, new_values={"role": role},
            metadata={"user_id": membership.user_id}
        )
        return membership

    def remove_member(self, ctx: AgencyContext, membership_id: int) -> bool:
        require_role(ctx, MANAGERS, "Only owners and admins can remove members")
        membership = self.get_agency_membership(ctx.agency_id, membership_id)
        if not membership:
            return False

        if membership.role == MemberRole.OWNER:
            raise ValueError("Cannot remove owner. Transfer ownership first.")
        if membership.role == MemberRole.ADMIN and ctx.role != MemberRole.OWNER:
            raise PermissionError("Only the owner can remove admins")

        old_values = {"user_id": membership.user_id, "role": membership.role}
        self.db.delete(membership)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.MEMBER_REMOVED, "membership", membership_id, old_values=old_values)
        return True

    # ---------- form options ----------

    def get_form_options(self, agency_id: int, active_only: bool = True) -> Dict[str, List[AgencyFormOption]]:
        query = self.db.query(AgencyFormOption).filter(AgencyFormOption.agency_id == agency_id)
        if active_only:
            query = query.filter(AgencyFormOption.is_active == True)  # noqa: E712
        grouped: Dict[str, List[AgencyFormOption]] = {}
        for option in query.order_by(AgencyFormOption.category, AgencyFormOption.sort_order).all():
            grouped.setdefault(option.category, []).append(option)
        return grouped

    def get_form_options_by_category(self, agency_id: int, category: str) -> List[AgencyFormOption]:
        return self.db.query(AgencyFormOption).filter(
            AgencyFormOption.agency_id == agency_id,
            AgencyFormOption.category == category,
            AgencyFormOption.is_active == True  # noqa: E712
        ).order_by(AgencyFormOption.sort_order).all()

    def update_form_options(self, ctx: AgencyContext, category: str, options: List[dict]) -> List[AgencyFormOption]:
        """Replace every option in ``category``."""
        require_role(ctx, MANAGERS, "Only owners and admins can update form options")

        self.db.query(AgencyFormOption).filter(
            AgencyFormOption.agency_id == ctx.agency_id,
            AgencyFormOption.category == category
        ).delete(synchronize_session=False)

        created = []
        for index, opt in enumerate(options):
            sort_order = opt.get("sort_order")
            option = AgencyFormOption(
                agency_id=ctx.agency_id,
                category=category,
                value=opt["value"],
                label=opt["label"],
                sort_order=index if sort_order is None else sort_order,
                is_default=bool(opt.get("is_default", False)),
                is_active=opt.get("is_active", True) is not False,
                option_metadata=opt.get("metadata") or {},
            )
            self.db.add(option)
            created.append(option)
        self.db.flush()

        self.activity.log_for(
            ctx, ActivityAction.FORM_OPTIONS_UPDATED, "form_options",
            new_values={"category": category, "option_count": len(options)}
        )
        return created
