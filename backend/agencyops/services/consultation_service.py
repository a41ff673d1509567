"""
Consultation Service - Multi-step discovery sessions with prospects
"""
from typing import Optional, List
from sqlalchemy.orm import Session, joinedload

from agencyops.models import Consultation, ConsultationStatus
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.client_service import ClientService
from agencyops.services.permission_service import (
    AgencyContext, has_permission, require_access, require_modify, require_delete
)

CONTACT_BUSINESS_FIELDS = (
    "business_name", "contact_person", "email", "phone", "website",
    "social_linkedin", "social_facebook", "social_instagram", "industry", "business_type",
)
SITUATION_FIELDS = ("website_status", "primary_challenges", "urgency_level")
GOALS_BUDGET_FIELDS = ("primary_goals", "conversion_goal", "budget_range", "timeline")
PREFERENCES_NOTES_FIELDS = ("design_styles", "admired_websites", "consultation_notes")

LIST_FIELDS = ("primary_challenges", "primary_goals", "design_styles", "admired_websites")


class ConsultationService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    def get_by_id(self, consultation_id: int, agency_id: int) -> Optional[Consultation]:
        return self.db.query(Consultation).options(joinedload(Consultation.user)).filter(
            Consultation.id == consultation_id,
            Consultation.agency_id == agency_id
        ).first()

    def get_consultation(self, ctx: AgencyContext, consultation_id: int) -> Optional[Consultation]:
        consultation = self.get_by_id(consultation_id, ctx.agency_id)
        if consultation:
            require_access(ctx, "consultation", consultation.user_id)
        return consultation

    def get_consultations(self, ctx: AgencyContext, status: Optional[str] = None) -> List[Consultation]:
        query = self.db.query(Consultation).options(joinedload(Consultation.user)).filter(
            Consultation.agency_id == ctx.agency_id
        )
        if not has_permission(ctx.role, "consultation:view_all"):
            query = query.filter(Consultation.user_id == ctx.user_id)
        if status:
            query = query.filter(Consultation.status == status)
        return query.order_by(Consultation.updated_at.desc()).all()

    def get_completed_consultations(self, ctx: AgencyContext) -> List[Consultation]:
        return self.get_consultations(ctx, status=ConsultationStatus.COMPLETED)

    def get_existing_draft(self, ctx: AgencyContext) -> Optional[Consultation]:
        return self.db.query(Consultation).filter(
            Consultation.agency_id == ctx.agency_id,
            Consultation.user_id == ctx.user_id,
            Consultation.status == ConsultationStatus.DRAFT
        ).order_by(Consultation.updated_at.desc()).first()

    def _link_client(self, consultation: Consultation):
        if consultation.client_id or not consultation.email or not consultation.business_name:
            return
        client, _ = ClientService(self.db).get_or_create_client(
            consultation.agency_id,
            consultation.business_name,
            consultation.email,
            contact_name=consultation.contact_person,
            phone=consultation.phone,
        )
        consultation.client_id = client.id

    def create_consultation(self, ctx: AgencyContext, data: dict) -> Consultation:
        if not has_permission(ctx.role, "consultation:create"):
            raise PermissionError("You do not have permission to create consultations")

        values = {k: data.get(k) or None for k in CONTACT_BUSINESS_FIELDS}
        consultation = Consultation(
            agency_id=ctx.agency_id,
            user_id=ctx.user_id,
            **values,
            website_status="none",
            primary_challenges=[],
            urgency_level="low",
            primary_goals=[],
            budget_range="tbd",
            design_styles=[],
            admired_websites=[],
            status=ConsultationStatus.DRAFT,
        )
        self.db.add(consultation)
        self.db.flush()
        self._link_client(consultation)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CONSULTATION_CREATED, "consultation", consultation.id,
                              new_values={"business_name": consultation.business_name})
        return consultation

    def _update_step(self, ctx: AgencyContext, consultation_id: int, data: dict, fields) -> Optional[Consultation]:
        consultation = self.get_by_id(consultation_id, ctx.agency_id)
        if not consultation:
            return None
        require_modify(ctx, "consultation", consultation.user_id)

        for key in fields:
            if key not in data:
                continue
            value = data[key]
            if key in LIST_FIELDS:
                value = list(value or [])
            setattr(consultation, key, value)
        self._link_client(consultation)
        self.db.flush()
        return consultation

    def update_contact_business(self, ctx: AgencyContext, consultation_id: int, data: dict):
        return self._update_step(ctx, consultation_id, data, CONTACT_BUSINESS_FIELDS)

    def update_situation(self, ctx: AgencyContext, consultation_id: int, data: dict):
        return self._update_step(ctx, consultation_id, data, SITUATION_FIELDS)

    def update_goals_budget(self, ctx: AgencyContext, consultation_id: int, data: dict):
        return self._update_step(ctx, consultation_id, data, GOALS_BUDGET_FIELDS)

    def update_preferences_notes(self, ctx: AgencyContext, consultation_id: int, data: dict):
        return self._update_step(ctx, consultation_id, data, PREFERENCES_NOTES_FIELDS)

    def complete_consultation(self, ctx: AgencyContext, consultation_id: int) -> Optional[Consultation]:
        consultation = self.get_by_id(consultation_id, ctx.agency_id)
        if not consultation:
            return None
        require_modify(ctx, "consultation", consultation.user_id)

        consultation.status = ConsultationStatus.COMPLETED
        self._link_client(consultation)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CONSULTATION_COMPLETED, "consultation", consultation.id)
        return consultation

    def delete_consultation(self, ctx: AgencyContext, consultation_id: int) -> bool:
        consultation = self.get_by_id(consultation_id, ctx.agency_id)
        if not consultation:
            return False
        require_delete(ctx, "consultation", consultation.user_id)

        self.db.delete(consultation)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.CONSULTATION_DELETED, "consultation", consultation_id)
        return True
