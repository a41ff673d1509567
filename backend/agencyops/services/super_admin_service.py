"""
Super Admin Service - Platform-wide administration of agencies and users
"""
from datetime import datetime
from typing import Optional, Dict, Any
import logging

from sqlalchemy import or_, func, desc
from sqlalchemy.orm import Session

from agencyops.core.utils import utcnow
from agencyops.models import (
    Agency, AgencyMembership, AgencyStatus, MemberRole, MembershipStatus,
    User, UserAccess, Proposal, Contract, Invoice, ActivityLog
)

logger = logging.getLogger(__name__)

AGENCY_STATUSES = (AgencyStatus.ACTIVE, AgencyStatus.SUSPENDED, AgencyStatus.CANCELLED)
FREEMIUM_REASONS = ("beta_tester", "partner", "promotional", "internal", "other")


class SuperAdminService:
    def __init__(self, db: Session):
        self.db = db

    def _agency_search(self, query, search: Optional[str]):
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Agency.name.ilike(pattern),
                Agency.slug.ilike(pattern),
                Agency.email.ilike(pattern),
            ))
        return query

    def _owner_count(self, agency_id: int) -> int:
        return self.db.query(AgencyMembership).filter(
            AgencyMembership.agency_id == agency_id,
            AgencyMembership.role == MemberRole.OWNER
        ).count()

    # ---------- dashboard ----------

    def get_super_admin_stats(self) -> Dict[str, Any]:
        status_counts = dict(
            self.db.query(Agency.status, func.count(Agency.id)).group_by(Agency.status).all()
        )
        tier_counts = dict(
            self.db.query(Agency.subscription_tier, func.count(Agency.id)).group_by(Agency.subscription_tier).all()
        )
        super_admins = self.db.query(User).filter(
            User.access.op("&")(UserAccess.SUPER_ADMIN) != 0
        ).count()

        return {
            "agencies": {
                "total": sum(status_counts.values()),
                "active": status_counts.get(AgencyStatus.ACTIVE, 0),
                "suspended": status_counts.get(AgencyStatus.SUSPENDED, 0),
            },
            "users": {
                "total": self.db.query(User).count(),
                "super_admins": super_admins,
            },
            "agencies_by_tier": tier_counts,
            "recent_agencies": self.db.query(Agency).order_by(desc(Agency.created_at)).limit(10).all(),
        }

    # ---------- agencies ----------

    def get_agencies(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        tier: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Dict[str, Any]:
        query = self.db.query(Agency)
        if status:
            query = query.filter(Agency.status == status)
        if tier:
            query = query.filter(Agency.subscription_tier == tier)
        query = self._agency_search(query, search)

        total = query.count()
        agencies = query.order_by(desc(Agency.created_at)).offset(offset).limit(limit).all()

        ids = [a.id for a in agencies]
        member_counts = {}
        if ids:
            member_counts = dict(
                self.db.query(AgencyMembership.agency_id, func.count(AgencyMembership.id))
                .filter(AgencyMembership.agency_id.in_(ids), AgencyMembership.status == MembershipStatus.ACTIVE)
                .group_by(AgencyMembership.agency_id).all()
            )

        return {
            "agencies": [{"agency": a, "member_count": member_counts.get(a.id, 0)} for a in agencies],
            "total": total,
            "limit": limit,
            "offset": offset,
        }

    def get_agency_details(self, agency_id: int) -> Optional[Dict[str, Any]]:
        agency = self.db.query(Agency).filter(Agency.id == agency_id).first()
        if not agency:
            return None

        members = self.db.query(AgencyMembership, User.email).join(
            User, AgencyMembership.user_id == User.id
        ).filter(AgencyMembership.agency_id == agency_id).all()

        return {
            "agency": agency,
            "members": [{"membership": m, "user_email": email} for m, email in members],
            "stats": {
                "proposals": self.db.query(Proposal).filter(Proposal.agency_id == agency_id).count(),
                "contracts": self.db.query(Contract).filter(Contract.agency_id == agency_id).count(),
                "invoices": self.db.query(Invoice).filter(Invoice.agency_id == agency_id).count(),
            },
        }

    def update_agency_status(self, agency_id: int, status: Optional[str] = None,
                             subscription_tier: Optional[str] = None) -> Optional[Agency]:
        if status and status not in AGENCY_STATUSES:
            raise ValueError("Invalid agency status")
        agency = self.db.query(Agency).filter(Agency.id == agency_id).first()
        if not agency:
            return None
        if status:
            agency.status = status
        if subscription_tier:
            agency.subscription_tier = subscription_tier
        self.db.flush()
        logger.info(f"Agency {agency_id} status={agency.status} tier={agency.subscription_tier}")
        return agency

    def get_agency_for_impersonation(self, agency_id: int) -> Optional[Agency]:
        return self.db.query(Agency).filter(Agency.id == agency_id).first()

    # ---------- freemium ----------

    def get_freemium_agencies(
        self,
        search: Optional[str] = None,
        reason: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Dict[str, Any]:
        query = self.db.query(Agency).filter(Agency.is_freemium == True)  # noqa: E712
        if reason:
            query = query.filter(Agency.freemium_reason == reason)
        query = self._agency_search(query, search)

        total = query.count()
        agencies = query.order_by(desc(Agency.freemium_granted_at)).offset(offset).limit(limit).all()

        ids = [a.id for a in agencies]
        owners = {}
        if ids:
            owners = dict(
                self.db.query(AgencyMembership.agency_id, User.email)
                .join(User, AgencyMembership.user_id == User.id)
                .filter(AgencyMembership.agency_id.in_(ids), AgencyMembership.role == MemberRole.OWNER).all()
            )

        reason_counts = self.db.query(Agency.freemium_reason, func.count(Agency.id)).filter(
            Agency.is_freemium == True  # noqa: E712
        ).group_by(Agency.freemium_reason).all()

        return {
            "agencies": [{"agency": a, "owner_email": owners.get(a.id)} for a in agencies],
            "total": total,
            "stats": {(r or "unknown"): c for r, c in reason_counts},
            "limit": limit,
            "offset": offset,
        }

    def grant_agency_freemium(self, agency_id: int, reason: str, granted_by: str,
                              expires_at: Optional[datetime] = None) -> Optional[Agency]:
        if reason not in FREEMIUM_REASONS:
            raise ValueError("Invalid freemium reason")
        agency = self.db.query(Agency).filter(Agency.id == agency_id).first()
        if not agency:
            return None
        agency.is_freemium = True
        agency.freemium_reason = reason
        agency.freemium_expires_at = expires_at
        agency.freemium_granted_at = utcnow()
        agency.freemium_granted_by = granted_by
        self.db.flush()
        return agency

    def _freemium_agency(self, agency_id: int) -> Optional[Agency]:
        agency = self.db.query(Agency).filter(Agency.id == agency_id).first()
        if agency and not agency.is_freemium:
            raise ValueError("Agency does not have freemium status")
        return agency

    def revoke_agency_freemium(self, agency_id: int) -> Optional[Agency]:
        agency = self._freemium_agency(agency_id)
        if not agency:
            return None
        agency.is_freemium = False
        self.db.flush()
        return agency

    def update_freemium_expiry(self, agency_id: int, expires_at: Optional[datetime]) -> Optional[Agency]:
        agency = self._freemium_agency(agency_id)
        if not agency:
            return None
        agency.freemium_expires_at = expires_at
        self.db.flush()
        return agency

    # ---------- users ----------

    def get_users(
        self,
        search: Optional[str] = None,
        super_admin_only: bool = False,
        owners_only: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> Dict[str, Any]:
        query = self.db.query(User)
        if super_admin_only:
            query = query.filter(User.access.op("&")(UserAccess.SUPER_ADMIN) != 0)
        if search:
            query = query.filter(User.email.ilike(f"%{search}%"))
        if owners_only:
            owner_ids = self.db.query(AgencyMembership.user_id).filter(
                AgencyMembership.role == MemberRole.OWNER,
                AgencyMembership.status == MembershipStatus.ACTIVE
            )
            query = query.filter(User.id.in_(owner_ids))

        total = query.count()
        users = query.order_by(desc(User.created_at)).offset(offset).limit(limit).all()

        summary: Dict[int, Dict[str, Any]] = {}
        ids = [u.id for u in users]
        if ids:
            rows = self.db.query(AgencyMembership.user_id, AgencyMembership.role, Agency.name).join(
                Agency, AgencyMembership.agency_id == Agency.id
            ).filter(
                AgencyMembership.user_id.in_(ids),
                AgencyMembership.status == MembershipStatus.ACTIVE
            ).all()
            for user_id, role, agency_name in rows:
                entry = summary.get(user_id)
                if entry is None:
                    summary[user_id] = {"agency_name": agency_name, "role": role, "count": 1}
                    continue
                entry["count"] += 1
                # Owned agency wins as the headline membership
                if role == MemberRole.OWNER and entry["role"] != MemberRole.OWNER:
                    entry.update(agency_name=agency_name, role=role)

        return {
            "users": [
                {
                    "user": u,
                    "agency_count": summary.get(u.id, {}).get("count", 0),
                    "agency_name": summary.get(u.id, {}).get("agency_name"),
                    "primary_role": summary.get(u.id, {}).get("role"),
                }
                for u in users
            ],
            "total": total,
            "limit": limit,
            "offset": offset,
        }

    def get_user_details(self, user_id: int) -> Optional[Dict[str, Any]]:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return None
        memberships = self.db.query(AgencyMembership, Agency).join(
            Agency, AgencyMembership.agency_id == Agency.id
        ).filter(AgencyMembership.user_id == user_id).all()
        return {
            "user": user,
            "memberships": [{"membership": m, "agency": a} for m, a in memberships],
        }

    def update_user_access(self, admin_id: int, user_id: int, grant_super_admin: bool = False,
                           revoke_super_admin: bool = False) -> Optional[User]:
        if user_id == admin_id:
            raise ValueError("Cannot modify your own super admin status")
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return None

        access = user.access or 0
        if grant_super_admin:
            access |= UserAccess.SUPER_ADMIN
        if revoke_super_admin:
            access &= ~UserAccess.SUPER_ADMIN
        user.access = access
        self.db.flush()
        logger.info(f"User {user_id} access changed to {access:#x} by {admin_id}")
        return user

    def remove_user_from_agency(self, user_id: int, agency_id: int) -> bool:
        membership = self.db.query(AgencyMembership).filter(
            AgencyMembership.user_id == user_id,
            AgencyMembership.agency_id == agency_id
        ).first()
        if not membership:
            raise ValueError("User is not a member of this agency")
        if membership.role == MemberRole.OWNER and self._owner_count(agency_id) <= 1:
            raise ValueError("Cannot remove the only owner from an agency")
        self.db.delete(membership)
        self.db.flush()
        return True

    def suspend_user(self, admin_id: int, user_id: int, reason: Optional[str] = None) -> Optional[User]:
        if user_id == admin_id:
            raise ValueError("Cannot suspend your own account")
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return None
        if user.suspended:
            raise ValueError("User is already suspended")
        user.suspended = True
        user.suspended_at = utcnow()
        user.suspended_reason = reason or None
        self.db.flush()
        logger.warning(f"User {user_id} suspended by {admin_id}")
        return user

    def unsuspend_user(self, user_id: int) -> Optional[User]:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return None
        if not user.suspended:
            raise ValueError("User is not suspended")
        user.suspended = False
        user.suspended_at = None
        user.suspended_reason = None
        self.db.flush()
        return user

    def delete_user(self, admin_id: int, user_id: int) -> bool:
        if user_id == admin_id:
            raise ValueError("Cannot delete your own account")
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return False

        owned = self.db.query(AgencyMembership.agency_id, Agency.name).join(
            Agency, AgencyMembership.agency_id == Agency.id
        ).filter(AgencyMembership.user_id == user_id, AgencyMembership.role == MemberRole.OWNER).all()
        for agency_id, agency_name in owned:
            if self._owner_count(agency_id) <= 1:
                raise ValueError(
                    f'Cannot delete user: they are the only owner of "{agency_name}". Transfer ownership first.'
                )

        self.db.query(AgencyMembership).filter(AgencyMembership.user_id == user_id).delete(synchronize_session=False)
        self.db.delete(user)
        self.db.flush()
        logger.warning(f"User {user_id} deleted by {admin_id}")
        return True

    # ---------- audit ----------

    def get_system_audit_logs(
        self,
        agency_id: Optional[int] = None,
        action: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Dict[str, Any]:
        query = self.db.query(ActivityLog, Agency.name, User.email).outerjoin(
            Agency, ActivityLog.agency_id == Agency.id
        ).outerjoin(User, ActivityLog.user_id == User.id)
        if agency_id:
            query = query.filter(ActivityLog.agency_id == agency_id)
        if action:
            query = query.filter(ActivityLog.action.ilike(f"%{action}%"))

        total = query.count()
        rows = query.order_by(desc(ActivityLog.created_at), desc(ActivityLog.id)).offset(offset).limit(limit).all()
        return {
            "logs": [{"log": log, "agency_name": name, "user_email": email} for log, name, email in rows],
            "total": total,
            "limit": limit,
            "offset": offset,
        }
