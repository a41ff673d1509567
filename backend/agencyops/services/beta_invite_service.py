"""
Beta Invite Service - Invitation tokens that gate signup during the beta
"""
from datetime import timedelta
from typing import Optional, Dict, Any
import logging
import uuid

from sqlalchemy import func
from sqlalchemy.orm import Session

from agencyops.core.config import settings
from agencyops.core.utils import utcnow
from agencyops.models import BetaInvite, BetaInviteStatus, User

logger = logging.getLogger(__name__)

INVALID_REASONS = {
    BetaInviteStatus.USED: "This invite has already been used",
    BetaInviteStatus.REVOKED: "This invite is no longer valid",
    BetaInviteStatus.EXPIRED: "This invite has expired",
}


def invite_url(token: str) -> str:
    return f"{settings.PUBLIC_CLIENT_URL.rstrip('/')}/invite/{token}"


def is_date_expired(invite: BetaInvite) -> bool:
    return invite.status == BetaInviteStatus.PENDING and invite.expires_at is not None and invite.expires_at < utcnow()


class BetaInviteService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, invite_id: int) -> Optional[BetaInvite]:
        return self.db.query(BetaInvite).filter(BetaInvite.id == invite_id).first()

    def get_by_token(self, token: str) -> Optional[BetaInvite]:
        return self.db.query(BetaInvite).filter(BetaInvite.token == token).first()

    def _send(self, invite: BetaInvite):
        from agencyops.services.email_service import EmailService
        try:
            EmailService(self.db).send_beta_invite_email(invite, invite_url(invite.token))
        except Exception as e:
            logger.error(f"Failed to send beta invite email to {invite.email}: {e}")

    def create_beta_invite(self, email: str, created_by: int, notes: Optional[str] = None) -> BetaInvite:
        email = email.strip().lower()
        pending = self.db.query(BetaInvite.id).filter(
            BetaInvite.email == email,
            BetaInvite.status == BetaInviteStatus.PENDING
        ).first()
        if pending:
            raise ValueError("A pending invite already exists for this email. Revoke it first to create a new one.")

        invite = BetaInvite(
            email=email,
            token=str(uuid.uuid4()),
            status=BetaInviteStatus.PENDING,
            created_by=created_by,
            expires_at=utcnow() + timedelta(days=settings.BETA_INVITE_EXPIRY_DAYS),
            notes=notes or None,
        )
        self.db.add(invite)
        self.db.flush()

        self._send(invite)
        return invite

    def get_beta_invites(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Dict[str, Any]:
        query = self.db.query(BetaInvite, User.email).outerjoin(User, BetaInvite.created_by == User.id)
        if status:
            query = query.filter(BetaInvite.status == status)
        if search:
            query = query.filter(BetaInvite.email.ilike(f"%{search}%"))

        total = query.count()
        rows = query.order_by(BetaInvite.created_at.desc()).offset(offset).limit(limit).all()

        stats = {s: 0 for s in (BetaInviteStatus.PENDING, BetaInviteStatus.USED,
                                BetaInviteStatus.EXPIRED, BetaInviteStatus.REVOKED)}
        for invite_status, count in self.db.query(BetaInvite.status, func.count(BetaInvite.id)).group_by(BetaInvite.status):
            if invite_status in stats:
                stats[invite_status] = count

        return {
            "invites": [
                {"invite": invite, "created_by_email": creator_email, "is_expired": is_date_expired(invite)}
                for invite, creator_email in rows
            ],
            "total": total,
            "stats": stats,
        }

    def revoke_beta_invite(self, invite_id: int) -> Optional[BetaInvite]:
        invite = self.get_by_id(invite_id)
        if not invite:
            return None
        if invite.status != BetaInviteStatus.PENDING:
            raise ValueError(f"Cannot revoke invite with status: {invite.status}")
        invite.status = BetaInviteStatus.REVOKED
        self.db.flush()
        return invite

    def resend_beta_invite(self, invite_id: int) -> Optional[BetaInvite]:
        invite = self.get_by_id(invite_id)
        if not invite:
            return None
        if invite.status != BetaInviteStatus.PENDING:
            raise ValueError(f"Cannot resend invite with status: {invite.status}")
        if is_date_expired(invite):
            raise ValueError("Invite has expired. Create a new invite instead.")
        self._send(invite)
        return invite

    # ---------- public ----------

    def validate_invite_token(self, token: str) -> Dict[str, Any]:
        """Date-expired pending invites are persisted as expired on first check."""
        invite = self.get_by_token(token)
        if not invite:
            return {"valid": False, "reason": "Invalid invite token"}
        if invite.status in INVALID_REASONS:
            return {"valid": False, "reason": INVALID_REASONS[invite.status]}
        if is_date_expired(invite):
            invite.status = BetaInviteStatus.EXPIRED
            self.db.flush()
            return {"valid": False, "reason": INVALID_REASONS[BetaInviteStatus.EXPIRED]}
        return {"valid": True, "email": invite.email}

    def get_invite_by_token(self, token: str) -> Optional[Dict[str, Any]]:
        invite = self.get_by_token(token)
        if not invite:
            return None
        return {
            "email": invite.email,
            "status": BetaInviteStatus.EXPIRED if is_date_expired(invite) else invite.status,
            "expires_at": invite.expires_at,
        }

    def mark_invite_used(self, token: str, agency_id: int):
        invite = self.get_by_token(token)
        if invite:
            invite.status = BetaInviteStatus.USED
            invite.used_at = utcnow()
            invite.used_by_agency_id = agency_id
            self.db.flush()
