"""
Proposal Service - Sales proposals with public sharing by slug
"""
from datetime import timedelta
from typing import Optional, List, Dict, Any
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from agencyops.core.config import settings
from agencyops.core.utils import utcnow, generate_unique_slug
from agencyops.models import (
    Proposal, ProposalStatus, Consultation, AgencyMembership, User
)
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.client_service import ClientService
from agencyops.services.permission_service import (
    AgencyContext, require_permission, require_access, require_modify, require_delete
)
from agencyops.services.product_service import AddonService
from agencyops.services.profile_service import AgencyProfileService

logger = logging.getLogger(__name__)

CLIENT_FIELDS = (
    "client_business_name", "client_contact_name", "client_email", "client_phone", "client_website",
)

CONTENT_FIELDS = (
    "title", "cover_image", "performance_data", "opportunity_content", "current_issues",
    "compliance_issues", "roi_analysis", "performance_standards", "local_advantage_content",
    "proposed_pages", "timeline", "closing_content", "executive_summary", "next_steps",
)

PRICING_FIELDS = ("selected_package_id", "selected_addons", "custom_pricing")

# Copied onto a duplicate; tracking and client responses start fresh
DUPLICATE_FIELDS = CLIENT_FIELDS + CONTENT_FIELDS + PRICING_FIELDS + (
    "consultation_id", "client_id", "consultation_pain_points", "consultation_goals",
    "consultation_challenges",
)

RESPONDABLE = (ProposalStatus.SENT, ProposalStatus.VIEWED)
FINAL = (ProposalStatus.ACCEPTED, ProposalStatus.DECLINED)


def effective_proposal_status(proposal: Proposal) -> str:
    """Stored status, or ``expired`` once ``valid_until`` has passed on an open proposal."""
    if proposal.status in FINAL:
        return proposal.status
    if proposal.valid_until and proposal.valid_until < utcnow():
        return ProposalStatus.EXPIRED
    return proposal.status


class ProposalService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    # ---------- queries ----------

    def get_by_id(self, proposal_id: int, agency_id: int) -> Optional[Proposal]:
        return self.db.query(Proposal).filter(
            Proposal.id == proposal_id,
            Proposal.agency_id == agency_id
        ).first()

    def get_by_slug(self, slug: str) -> Optional[Proposal]:
        return self.db.query(Proposal).filter(Proposal.slug == slug).first()

    def get_proposals(
        self,
        ctx: AgencyContext,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Agency proposals with the creator's display name, newest first."""
        creator_name = func.coalesce(func.nullif(AgencyMembership.display_name, ""), User.email)
        query = self.db.query(Proposal, creator_name)\
            .outerjoin(User, Proposal.created_by == User.id)\
            .outerjoin(AgencyMembership, (AgencyMembership.user_id == Proposal.created_by) &
                       (AgencyMembership.agency_id == Proposal.agency_id))\
            .filter(Proposal.agency_id == ctx.agency_id)
        if status:
            query = query.filter(Proposal.status == status)

        rows = query.order_by(Proposal.created_at.desc(), Proposal.id.desc()).offset(offset).limit(limit).all()
        return [{"proposal": proposal, "creator_name": name} for proposal, name in rows]

    def get_proposal(self, ctx: AgencyContext, proposal_id: int) -> Optional[Proposal]:
        proposal = self.get_by_id(proposal_id, ctx.agency_id)
        if proposal:
            require_access(ctx, "proposal", proposal.created_by)
        return proposal

    def get_proposal_with_relations(self, ctx: AgencyContext, proposal_id: int) -> Optional[Dict[str, Any]]:
        proposal = self.get_proposal(ctx, proposal_id)
        if not proposal:
            return None
        return {
            "proposal": proposal,
            "selected_package": proposal.selected_package,
            "selected_addons": AddonService(self.db).get_many(ctx.agency_id, proposal.selected_addons or []),
            "consultation": proposal.consultation,
        }

    # ---------- commands ----------

    def create_proposal(
        self,
        ctx: AgencyContext,
        consultation_id: Optional[int] = None,
        selected_package_id: Optional[int] = None,
        title: Optional[str] = None
    ) -> Proposal:
        require_permission(ctx, "proposal:create")
        profiles = AgencyProfileService(self.db)
        profiles.ensure_agency_profile(ctx.agency_id)

        proposal = Proposal(
            agency_id=ctx.agency_id,
            consultation_id=None,
            proposal_number=profiles.get_next_document_number(ctx.agency_id, "proposal"),
            slug=generate_unique_slug(self.db, Proposal),
            title=title or "Website Proposal",
            selected_package_id=selected_package_id,
            valid_until=utcnow() + timedelta(days=settings.PROPOSAL_VALIDITY_DAYS),
            created_by=ctx.user_id,
        )

        if consultation_id:
            consultation = self.db.query(Consultation).filter(
                Consultation.id == consultation_id,
                Consultation.agency_id == ctx.agency_id
            ).first()
            if consultation:
                self._prefill_from_consultation(proposal, consultation)

        self.db.add(proposal)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.PROPOSAL_CREATED, "proposal", proposal.id, new_values={
            "proposal_number": proposal.proposal_number,
            "consultation_id": proposal.consultation_id,
            "selected_package_id": selected_package_id,
        })
        return proposal

    def _prefill_from_consultation(self, proposal: Proposal, consultation: Consultation):
        proposal.consultation_id = consultation.id
        proposal.client_business_name = consultation.business_name or ""
        proposal.client_contact_name = consultation.contact_person or ""
        proposal.client_email = consultation.email or ""
        proposal.client_phone = consultation.phone or ""
        proposal.client_website = consultation.website or ""
        proposal.consultation_pain_points = {
            "primary_challenges": consultation.primary_challenges or [],
            "urgency_level": consultation.urgency_level or "",
        }
        proposal.consultation_goals = {
            "primary_goals": consultation.primary_goals or [],
            "conversion_goal": consultation.conversion_goal or "",
            "budget_range": consultation.budget_range or "",
        }
        proposal.consultation_challenges = list(consultation.primary_challenges or [])

        proposal.client_id = consultation.client_id
        if not proposal.client_id and consultation.email and consultation.business_name:
            client, _ = ClientService(self.db).get_or_create_client(
                consultation.agency_id, consultation.business_name, consultation.email,
                contact_name=consultation.contact_person, phone=consultation.phone
            )
            proposal.client_id = client.id

    def update_proposal(self, ctx: AgencyContext, proposal_id: int, data: dict) -> Optional[Proposal]:
        """Apply every key present in ``data``; ``None`` clears nullable fields."""
        proposal = self.get_by_id(proposal_id, ctx.agency_id)
        if not proposal:
            return None
        require_modify(ctx, "proposal", proposal.created_by)

        updates = {}
        for key in CLIENT_FIELDS + CONTENT_FIELDS + PRICING_FIELDS + ("valid_until",):
            if key in data:
                updates[key] = data[key]

        if "selected_addons" in updates:
            updates["selected_addons"] = list(updates["selected_addons"] or [])

        old_title = proposal.title
        for key, value in updates.items():
            setattr(proposal, key, value)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.PROPOSAL_UPDATED, "proposal", proposal.id,
                              old_values={"title": old_title}, new_values=updates)
        return proposal

    def delete_proposal(self, ctx: AgencyContext, proposal_id: int) -> bool:
        proposal = self.get_by_id(proposal_id, ctx.agency_id)
        if not proposal:
            return False
        require_delete(ctx, "proposal", proposal.created_by)

        snapshot = {"proposal_number": proposal.proposal_number, "title": proposal.title}
        self.db.delete(proposal)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.PROPOSAL_DELETED, "proposal", proposal_id, old_values=snapshot)
        return True

    def duplicate_proposal(self, ctx: AgencyContext, proposal_id: int) -> Optional[Proposal]:
        source = self.get_by_id(proposal_id, ctx.agency_id)
        if not source:
            return None
        require_access(ctx, "proposal", source.created_by)

        values = {key: getattr(source, key) for key in DUPLICATE_FIELDS}
        values["title"] = f"{source.title} (Copy)"

        copy = Proposal(
            agency_id=ctx.agency_id,
            proposal_number=AgencyProfileService(self.db).get_next_document_number(ctx.agency_id, "proposal"),
            slug=generate_unique_slug(self.db, Proposal),
            status=ProposalStatus.DRAFT,
            valid_until=utcnow() + timedelta(days=settings.PROPOSAL_VALIDITY_DAYS),
            created_by=ctx.user_id,
            **values,
        )
        self.db.add(copy)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.PROPOSAL_DUPLICATED, "proposal", copy.id,
                              metadata={"source_proposal_id": proposal_id})
        return copy

    def mark_proposal_ready(self, ctx: AgencyContext, proposal_id: int) -> Optional[Proposal]:
        proposal = self.get_by_id(proposal_id, ctx.agency_id)
        if not proposal:
            return None
        require_modify(ctx, "proposal", proposal.created_by)
        if proposal.status != ProposalStatus.DRAFT:
            raise ValueError("Only draft proposals can be marked as ready")

        proposal.status = ProposalStatus.READY
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.PROPOSAL_READY, "proposal", proposal.id,
                              new_values={"status": ProposalStatus.READY})
        return proposal

    def send_proposal(self, ctx: AgencyContext, proposal_id: int) -> Optional[Proposal]:
        proposal = self.get_by_id(proposal_id, ctx.agency_id)
        if not proposal:
            return None
        require_modify(ctx, "proposal", proposal.created_by)
        require_permission(ctx, "proposal:send")

        proposal.status = ProposalStatus.SENT
        proposal.sent_at = utcnow()
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.PROPOSAL_SENT, "proposal", proposal.id,
                              new_values={"status": ProposalStatus.SENT, "sent_at": proposal.sent_at})
        return proposal

    def record_proposal_view(self, slug: str) -> None:
        """Public view counter; unknown slugs are ignored."""
        proposal = self.get_by_slug(slug)
        if not proposal:
            return
        proposal.view_count = Proposal.view_count + 1
        proposal.last_viewed_at = utcnow()
        if proposal.status == ProposalStatus.SENT:
            proposal.status = ProposalStatus.VIEWED
        self.db.flush()

    def update_proposal_status(self, ctx: AgencyContext, proposal_id: int, status: str) -> Optional[Proposal]:
        if status not in ProposalStatus.ALL:
            raise ValueError(f"Invalid proposal status: {status}")
        proposal = self.get_by_id(proposal_id, ctx.agency_id)
        if not proposal:
            return None
        require_modify(ctx, "proposal", proposal.created_by)

        old_status = proposal.status
        proposal.status = status
        if status == ProposalStatus.ACCEPTED:
            proposal.accepted_at = utcnow()
        elif status == ProposalStatus.DECLINED:
            proposal.declined_at = utcnow()
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.PROPOSAL_STATUS_CHANGED, "proposal", proposal.id,
                              old_values={"status": old_status}, new_values={"status": status})
        return proposal

    # ---------- public responses ----------

    def _respondable(self, slug: str, verb: str) -> Optional[Proposal]:
        proposal = self.get_by_slug(slug)
        if not proposal:
            return None
        if proposal.status not in RESPONDABLE:
            raise ValueError(f"Proposal cannot {verb}")
        if effective_proposal_status(proposal) == ProposalStatus.EXPIRED:
            raise ValueError("Proposal has expired")
        return proposal

    def accept_proposal(self, slug: str, comments: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Client acceptance. A draft contract is created alongside; if that fails
        the acceptance still stands and the contract can be created manually.
        """
        from agencyops.services.contract_service import ContractService

        proposal = self._respondable(slug, "be accepted")
        if not proposal:
            return None
        proposal.status = ProposalStatus.ACCEPTED
        proposal.accepted_at = utcnow()
        proposal.client_comments = comments or ""
        self.db.flush()

        self.activity.log(
            agency_id=proposal.agency_id,
            action=ActivityAction.PROPOSAL_ACCEPTED,
            entity_type="proposal",
            entity_id=proposal.id,
            new_values={"status": ProposalStatus.ACCEPTED}
        )

        contract_slug = None
        try:
            with self.db.begin_nested():
                contract = ContractService(self.db).create_draft_for_accepted_proposal(proposal)
                contract_slug = contract.slug
        except Exception as e:
            logger.error(f"Failed to auto-create contract for proposal {proposal.id}: {e}")

        return {"success": True, "contract_slug": contract_slug}

    def decline_proposal(self, slug: str, reason: Optional[str] = None) -> Optional[Dict[str, Any]]:
        proposal = self._respondable(slug, "be declined")
        if not proposal:
            return None
        proposal.status = ProposalStatus.DECLINED
        proposal.declined_at = utcnow()
        proposal.decline_reason = reason or ""
        self.db.flush()

        self.activity.log(
            agency_id=proposal.agency_id,
            action=ActivityAction.PROPOSAL_DECLINED,
            entity_type="proposal",
            entity_id=proposal.id,
            new_values={"status": ProposalStatus.DECLINED, "reason": reason or ""}
        )
        return {"success": True}

    def request_proposal_revision(self, slug: str, notes: str) -> Optional[Dict[str, Any]]:
        notes = (notes or "").strip()
        if not 10 <= len(notes) <= 2000:
            raise ValueError("Revision notes must be between 10 and 2000 characters")

        proposal = self._respondable(slug, "request revision")
        if not proposal:
            return None
        proposal.status = ProposalStatus.REVISION_REQUESTED
        proposal.revision_requested_at = utcnow()
        proposal.revision_request_notes = notes
        self.db.flush()

        self.activity.log(
            agency_id=proposal.agency_id,
            action=ActivityAction.PROPOSAL_REVISION_REQUESTED,
            entity_type="proposal",
            entity_id=proposal.id
        )
        return {"success": True}
