"""
Questionnaire Service - Initial website questionnaire unlocked by a signed contract
"""
from typing import Optional, List, Dict, Any
import logging

from sqlalchemy.orm import Session

from agencyops.core.utils import utcnow, generate_unique_slug
from agencyops.models import (
    Contract, ContractStatus, Invoice, InvoiceStatus, QuestionnaireResponse, QuestionnaireStatus
)
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.permission_service import AgencyContext, require_access
from agencyops.services.profile_service import AgencyProfileService

logger = logging.getLogger(__name__)

MAX_SECTION = 7

REQUIRED_FIELDS = (
    "first_name", "last_name", "email",
    "company_name", "registered_address",
    "displayed_business_name",
    "has_domain", "has_google_business",
    "business_story", "areas_served", "target_customers", "top_services", "differentiators",
    "pages_wanted", "customer_actions", "key_information", "calls_to_action",
    "reference_websites", "aesthetic_description",
    "timeline", "google_analytics",
)


class AccessReason:
    CONTRACT_NOT_FOUND = "contract_not_found"
    CONTRACT_NOT_SIGNED = "contract_not_signed"
    PAYMENT_REQUIRED = "payment_required"
    ALREADY_COMPLETED = "already_completed"


def calculate_completion_percentage(responses: Optional[dict]) -> int:
    responses = responses or {}
    filled = sum(1 for key in REQUIRED_FIELDS if responses.get(key) not in (None, "", []))
    return round(filled * 100 / len(REQUIRED_FIELDS))


def prefill_from_contract(contract: Contract) -> Dict[str, str]:
    first, _, rest = (contract.client_contact_name or "").partition(" ")
    return {
        "first_name": first,
        "last_name": rest,
        "email": contract.client_email or "",
        "company_name": contract.client_business_name or "",
        "displayed_business_name": contract.client_business_name or "",
    }


class QuestionnaireService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    def _new_questionnaire(self, agency_id: int, business_name: str, email: str, responses: dict, **links) -> QuestionnaireResponse:
        questionnaire = QuestionnaireResponse(
            agency_id=agency_id,
            slug=generate_unique_slug(self.db, QuestionnaireResponse),
            client_business_name=business_name or "",
            client_email=email or "",
            responses=responses,
            current_section=0,
            completion_percentage=calculate_completion_percentage(responses),
            status=QuestionnaireStatus.NOT_STARTED,
            **links
        )
        self.db.add(questionnaire)
        self.db.flush()
        return questionnaire

    # ---------- authenticated ----------

    def get_questionnaires(
        self,
        agency_id: int,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[QuestionnaireResponse]:
        query = self.db.query(QuestionnaireResponse).filter(QuestionnaireResponse.agency_id == agency_id)
        if status:
            query = query.filter(QuestionnaireResponse.status == status)
        return query.order_by(QuestionnaireResponse.created_at).offset(offset).limit(limit).all()

    def get_questionnaire(self, questionnaire_id: int, agency_id: int) -> Optional[QuestionnaireResponse]:
        return self.db.query(QuestionnaireResponse).filter(
            QuestionnaireResponse.id == questionnaire_id,
            QuestionnaireResponse.agency_id == agency_id
        ).first()

    def get_questionnaire_by_contract(self, ctx: AgencyContext, contract: Contract) -> Optional[QuestionnaireResponse]:
        require_access(ctx, "contract", contract.created_by)
        return self.db.query(QuestionnaireResponse).filter(
            QuestionnaireResponse.contract_id == contract.id,
            QuestionnaireResponse.agency_id == ctx.agency_id
        ).first()

    def create_questionnaire(self, ctx: AgencyContext, data: dict) -> QuestionnaireResponse:
        contract_id = data.get("contract_id")
        if contract_id:
            exists = self.db.query(Contract.id).filter(
                Contract.id == contract_id,
                Contract.agency_id == ctx.agency_id
            ).first()
            if not exists:
                raise ValueError("Contract not found")

        business_name = data["client_business_name"]
        email = data["client_email"]
        prefill = {
            "email": email,
            "company_name": business_name,
            "displayed_business_name": business_name,
        }
        questionnaire = self._new_questionnaire(
            ctx.agency_id, business_name, email, prefill,
            contract_id=contract_id,
            proposal_id=data.get("proposal_id"),
            consultation_id=data.get("consultation_id"),
        )
        self.activity.log_for(ctx, ActivityAction.QUESTIONNAIRE_CREATED, "questionnaire", questionnaire.id,
                              new_values={"client_business_name": business_name, "client_email": email})
        return questionnaire

    def delete_questionnaire(self, ctx: AgencyContext, questionnaire_id: int) -> bool:
        questionnaire = self.get_questionnaire(questionnaire_id, ctx.agency_id)
        if not questionnaire:
            return False
        if questionnaire.status == QuestionnaireStatus.COMPLETED:
            raise ValueError("Cannot delete completed questionnaire")

        snapshot = {
            "client_business_name": questionnaire.client_business_name,
            "client_email": questionnaire.client_email,
            "status": questionnaire.status,
        }
        self.db.delete(questionnaire)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.QUESTIONNAIRE_DELETED, "questionnaire", questionnaire_id,
                              old_values=snapshot)
        return True

    # ---------- public ----------

    def check_questionnaire_access(self, contract_slug: str) -> Dict[str, Any]:
        """
        Gate the public questionnaire behind a signed contract and, when the
        contract has been invoiced, payment of its first invoice. Creates the
        questionnaire with contract pre-fill on first access.
        """
        contract = self.db.query(Contract).filter(Contract.slug == contract_slug).first()
        if not contract:
            return {"allowed": False, "reason": AccessReason.CONTRACT_NOT_FOUND}

        result = {
            "allowed": False,
            "contract": contract,
            "agency": contract.agency,
            "agency_profile": AgencyProfileService(self.db).get_profile(contract.agency_id),
        }

        if contract.status not in (ContractStatus.SIGNED, ContractStatus.COMPLETED):
            result["reason"] = AccessReason.CONTRACT_NOT_SIGNED
            return result

        first_invoice = self.db.query(Invoice).filter(
            Invoice.contract_id == contract.id
        ).order_by(Invoice.created_at.asc(), Invoice.id.asc()).first()
        if first_invoice and first_invoice.status != InvoiceStatus.PAID:
            result["reason"] = AccessReason.PAYMENT_REQUIRED
            return result

        questionnaire = self.db.query(QuestionnaireResponse).filter(
            QuestionnaireResponse.contract_id == contract.id
        ).first()
        result["allowed"] = True

        if questionnaire and questionnaire.status == QuestionnaireStatus.COMPLETED:
            result["reason"] = AccessReason.ALREADY_COMPLETED
        elif not questionnaire:
            questionnaire = self._new_questionnaire(
                contract.agency_id,
                contract.client_business_name,
                contract.client_email,
                prefill_from_contract(contract),
                contract_id=contract.id,
            )
        result["questionnaire"] = questionnaire
        return result

    def get_questionnaire_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        questionnaire = self.db.query(QuestionnaireResponse).filter(QuestionnaireResponse.slug == slug).first()
        if not questionnaire:
            return None
        return {
            "questionnaire": questionnaire,
            "agency": questionnaire.agency,
            "agency_profile": AgencyProfileService(self.db).get_profile(questionnaire.agency_id),
            "contract": questionnaire.contract,
        }

    def save_questionnaire_progress(self, slug: str, responses: dict, current_section: int) -> Optional[QuestionnaireResponse]:
        if current_section < 0 or current_section > MAX_SECTION:
            raise ValueError(f"Section must be between 0 and {MAX_SECTION}")

        questionnaire = self.db.query(QuestionnaireResponse).filter(QuestionnaireResponse.slug == slug).first()
        if not questionnaire:
            return None
        if questionnaire.status == QuestionnaireStatus.COMPLETED:
            raise ValueError("Questionnaire already completed")

        merged = dict(questionnaire.responses or {})
        merged.update(responses or {})
        completion = calculate_completion_percentage(merged)
        status = QuestionnaireStatus.IN_PROGRESS if completion > 0 else QuestionnaireStatus.NOT_STARTED

        now = utcnow()
        questionnaire.responses = merged
        questionnaire.current_section = current_section
        questionnaire.completion_percentage = completion
        questionnaire.status = status
        if not questionnaire.started_at and status == QuestionnaireStatus.IN_PROGRESS:
            questionnaire.started_at = now
        questionnaire.last_activity_at = now
        self.db.flush()
        return questionnaire

    def submit_questionnaire(self, slug: str) -> Optional[QuestionnaireResponse]:
        questionnaire = self.db.query(QuestionnaireResponse).filter(QuestionnaireResponse.slug == slug).first()
        if not questionnaire:
            return None
        if questionnaire.status == QuestionnaireStatus.COMPLETED:
            raise ValueError("Questionnaire already submitted")

        now = utcnow()
        questionnaire.status = QuestionnaireStatus.COMPLETED
        questionnaire.completion_percentage = 100
        questionnaire.completed_at = now
        questionnaire.last_activity_at = now
        self.db.flush()

        contract = questionnaire.contract
        self.activity.log(
            agency_id=questionnaire.agency_id,
            action=ActivityAction.QUESTIONNAIRE_COMPLETED,
            entity_type="questionnaire",
            entity_id=questionnaire.id,
            new_values={
                "contract_id": questionnaire.contract_id,
                "client_name": (contract.client_contact_name if contract else None)
                or questionnaire.client_business_name or "Unknown",
            }
        )

        from agencyops.services.email_service import EmailService
        try:
            EmailService(self.db).send_questionnaire_completed_email(questionnaire)
        except Exception as e:
            logger.error(f"Failed to send questionnaire completion email: {e}")
        return questionnaire
