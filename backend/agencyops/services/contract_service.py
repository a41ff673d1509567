"""
Contract Service - Service agreements generated from proposals and templates
"""
from datetime import timedelta
from typing import Optional, List, Dict, Any
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from agencyops.core.config import settings
from agencyops.core.utils import utcnow, generate_unique_slug, format_currency
from agencyops.models import (
    Agency, Contract, ContractStatus, ContractTemplate, Proposal, AgencyMembership, User
)
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.client_service import ClientService
from agencyops.services.contract_template_service import ContractTemplateService
from agencyops.services.merge_field_service import (
    build_merge_data, proposal_pricing, resolve_merge_fields, sanitize_html
)
from agencyops.services.permission_service import (
    AgencyContext, require_permission, require_access, require_modify, require_delete
)
from agencyops.services.product_service import AddonService
from agencyops.services.profile_service import AgencyProfileService

logger = logging.getLogger(__name__)

LOCKED = (ContractStatus.SIGNED, ContractStatus.COMPLETED)
SIGNABLE = (ContractStatus.SENT, ContractStatus.VIEWED)

UPDATE_FIELDS = (
    "client_business_name", "client_contact_name", "client_email", "client_phone", "client_address",
    "services_description", "commencement_date", "completion_date", "special_conditions",
    "total_price", "price_includes_gst", "payment_terms", "valid_until",
    "agency_signatory_name", "agency_signatory_title", "visible_fields", "included_schedule_ids",
)


def effective_contract_status(contract: Contract) -> str:
    if contract.status in LOCKED:
        return contract.status
    if contract.valid_until and contract.valid_until < utcnow():
        return ContractStatus.EXPIRED
    return contract.status


def build_payment_terms(setup_fee, monthly_price) -> str:
    terms = []
    if setup_fee and setup_fee > 0:
        terms.append(f"Setup fee of {format_currency(setup_fee)} due on contract signing")
    if monthly_price and monthly_price > 0:
        terms.append(f"Monthly hosting/maintenance of {format_currency(monthly_price)} billed in advance")
    if not terms:
        return "Payment terms to be agreed upon signing."
    return ". ".join(terms) + "."


class ContractService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    # ---------- queries ----------

    def get_by_id(self, contract_id: int, agency_id: int) -> Optional[Contract]:
        return self.db.query(Contract).filter(
            Contract.id == contract_id,
            Contract.agency_id == agency_id
        ).first()

    def get_by_slug(self, slug: str) -> Optional[Contract]:
        return self.db.query(Contract).filter(Contract.slug == slug).first()

    def get_contracts(
        self,
        ctx: AgencyContext,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        creator_name = func.coalesce(func.nullif(AgencyMembership.display_name, ""), User.email)
        query = self.db.query(Contract, creator_name)\
            .outerjoin(User, Contract.created_by == User.id)\
            .outerjoin(AgencyMembership, (AgencyMembership.user_id == Contract.created_by) &
                       (AgencyMembership.agency_id == Contract.agency_id))\
            .filter(Contract.agency_id == ctx.agency_id)
        if status:
            query = query.filter(Contract.status == status)
        rows = query.order_by(Contract.created_at.desc(), Contract.id.desc()).offset(offset).limit(limit).all()
        return [{"contract": contract, "creator_name": name} for contract, name in rows]

    def get_contract(self, ctx: AgencyContext, contract_id: int) -> Optional[Contract]:
        contract = self.get_by_id(contract_id, ctx.agency_id)
        if contract:
            require_access(ctx, "contract", contract.created_by)
        return contract

    def get_contract_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        """Public view with agency and profile for branding."""
        contract = self.get_by_slug(slug)
        if not contract:
            return None
        return {
            "contract": contract,
            "effective_status": effective_contract_status(contract),
            "agency": contract.agency,
            "agency_profile": AgencyProfileService(self.db).get_profile(contract.agency_id),
        }

    # ---------- generation ----------

    def _resolve_template(self, agency_id: int, template_id: Optional[int]) -> Optional[ContractTemplate]:
        query = self.db.query(ContractTemplate).filter(
            ContractTemplate.agency_id == agency_id,
            ContractTemplate.is_active == True  # noqa: E712
        )
        if template_id:
            return query.filter(ContractTemplate.id == template_id).first()
        return query.filter(ContractTemplate.is_default == True).first()  # noqa: E712

    def _merge_data(self, agency_id: int, proposal: Optional[Proposal], contract: Optional[Contract] = None):
        agency = self.db.query(Agency).filter(Agency.id == agency_id).first()
        profile = AgencyProfileService(self.db).get_profile(agency_id)
        package = proposal.selected_package if proposal else None
        addons = AddonService(self.db).get_many(agency_id, proposal.selected_addons or []) if proposal else []
        return build_merge_data(
            agency=agency,
            profile=profile,
            proposal=proposal,
            consultation=proposal.consultation if proposal else None,
            package=package,
            addons=addons,
            contract=contract,
        )

    def _build_from_proposal(self, proposal: Proposal, template_id: Optional[int], created_by: Optional[int]) -> Contract:
        agency_id = proposal.agency_id
        template = self._resolve_template(agency_id, template_id)
        if template_id and not template:
            raise ValueError("Template not found")

        package = proposal.selected_package
        addons = AddonService(self.db).get_many(agency_id, proposal.selected_addons or [])
        pricing = proposal_pricing(proposal, package, addons)

        schedule = None
        if template:
            schedule = ContractTemplateService(self.db).find_schedule_for_package(
                template, package.id if package else None
            )

        client_id = proposal.client_id
        if not client_id and proposal.client_email:
            client, _ = ClientService(self.db).get_or_create_client(
                agency_id,
                proposal.client_business_name or proposal.client_contact_name or "Unknown",
                proposal.client_email,
                contact_name=proposal.client_contact_name
            )
            client_id = client.id

        signature = (template.signature_config if template else None) or {}
        contract = Contract(
            agency_id=agency_id,
            proposal_id=proposal.id,
            template_id=template.id if template else None,
            client_id=client_id,
            contract_number=AgencyProfileService(self.db).get_next_document_number(agency_id, "contract"),
            slug=generate_unique_slug(self.db, Contract),
            status=ContractStatus.DRAFT,
            client_business_name=proposal.client_business_name or "",
            client_contact_name=proposal.client_contact_name or "",
            client_email=proposal.client_email or "",
            client_phone=proposal.client_phone or "",
            client_address="",
            total_price=pricing["total"],
            price_includes_gst=True,
            payment_terms=build_payment_terms(pricing["setup_fee"], pricing["monthly_price"]),
            agency_signatory_name=signature.get("agencySignatory") or None,
            agency_signatory_title=signature.get("agencyTitle") or None,
            valid_until=utcnow() + timedelta(days=settings.CONTRACT_VALIDITY_DAYS),
            created_by=created_by,
        )

        merge_data = self._merge_data(agency_id, proposal)
        contract.generated_terms_html = sanitize_html(
            resolve_merge_fields(template.terms_content, merge_data)
        ) if template else ""
        contract.generated_schedule_html = sanitize_html(
            resolve_merge_fields(schedule.content, merge_data)
        ) if schedule else ""
        if schedule:
            contract.included_schedule_ids = [schedule.id]

        self.db.add(contract)
        self.db.flush()
        return contract

    def create_contract_from_proposal(self, ctx: AgencyContext, proposal_id: int, template_id: Optional[int] = None) -> Optional[Contract]:
        require_permission(ctx, "contract:create")
        proposal = self.db.query(Proposal).filter(
            Proposal.id == proposal_id,
            Proposal.agency_id == ctx.agency_id
        ).first()
        if not proposal:
            return None

        contract = self._build_from_proposal(proposal, template_id, ctx.user_id)
        self.activity.log_for(ctx, ActivityAction.CONTRACT_CREATED, "contract", contract.id, new_values={
            "contract_number": contract.contract_number,
            "proposal_id": proposal.id,
            "template_id": contract.template_id,
        })
        return contract

    def create_draft_for_accepted_proposal(self, proposal: Proposal) -> Contract:
        """Draft contract raised on the proposal creator's behalf when a client accepts."""
        contract = self._build_from_proposal(proposal, None, proposal.created_by)
        self.activity.log(
            agency_id=proposal.agency_id,
            action=ActivityAction.CONTRACT_CREATED,
            entity_type="contract",
            entity_id=contract.id,
            new_values={"contract_number": contract.contract_number, "proposal_id": proposal.id},
            metadata={"source": "proposal_accepted"}
        )
        return contract

    # ---------- commands ----------

    def _editable(self, ctx: AgencyContext, contract_id: int) -> Optional[Contract]:
        contract = self.get_by_id(contract_id, ctx.agency_id)
        if not contract:
            return None
        require_modify(ctx, "contract", contract.created_by)
        if contract.status in LOCKED:
            raise ValueError("Cannot modify signed contract")
        return contract

    def update_contract(self, ctx: AgencyContext, contract_id: int, data: dict) -> Optional[Contract]:
        contract = self._editable(ctx, contract_id)
        if not contract:
            return None

        updates = {k: data[k] for k in UPDATE_FIELDS if k in data}
        for key in ("visible_fields", "included_schedule_ids"):
            if key in updates:
                updates[key] = list(updates[key] or [])

        old_name = contract.client_business_name
        for key, value in updates.items():
            setattr(contract, key, value)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CONTRACT_UPDATED, "contract", contract.id,
                              old_values={"client_business_name": old_name}, new_values=updates)
        return contract

    def delete_contract(self, ctx: AgencyContext, contract_id: int) -> bool:
        contract = self.get_by_id(contract_id, ctx.agency_id)
        if not contract:
            return False
        require_delete(ctx, "contract", contract.created_by)
        if contract.status in LOCKED:
            raise ValueError("Cannot delete signed contract")

        snapshot = {"contract_number": contract.contract_number}
        self.db.delete(contract)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.CONTRACT_DELETED, "contract", contract_id, old_values=snapshot)
        return True

    def _email_client(self, contract: Contract, sent_by: Optional[int]):
        from agencyops.services.email_service import EmailService
        try:
            result = EmailService(self.db).send_contract_email(contract, sent_by=sent_by)
            if not result.get("success"):
                logger.warning(f"Contract email for {contract.contract_number} not delivered: {result.get('error')}")
        except Exception as e:
            logger.error(f"Failed to send contract email for {contract.contract_number}: {e}")

    def send_contract(self, ctx: AgencyContext, contract_id: int) -> Optional[Contract]:
        contract = self.get_by_id(contract_id, ctx.agency_id)
        if not contract:
            return None
        require_permission(ctx, "contract:send")
        if not contract.client_email:
            raise ValueError("Client email is required to send contract")
        if contract.status in LOCKED:
            raise ValueError("Cannot modify signed contract")

        now = utcnow()
        contract.status = ContractStatus.SENT
        contract.sent_at = now
        contract.agency_signed_at = now
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CONTRACT_SENT, "contract", contract.id,
                              new_values={"status": ContractStatus.SENT, "sent_at": now})
        self._email_client(contract, ctx.user_id)
        return contract

    def resend_contract(self, ctx: AgencyContext, contract_id: int) -> Optional[Contract]:
        contract = self.get_by_id(contract_id, ctx.agency_id)
        if not contract:
            return None
        require_permission(ctx, "contract:send")
        if contract.status not in SIGNABLE:
            raise ValueError("Contract must be sent before resending")

        self.activity.log_for(ctx, ActivityAction.CONTRACT_SENT, "contract", contract.id,
                              metadata={"resent_at": utcnow()})
        self._email_client(contract, ctx.user_id)
        return contract

    def _regenerate_terms(self, contract: Contract, template: ContractTemplate):
        proposal = contract.proposal
        merge_data = self._merge_data(contract.agency_id, proposal, contract)
        contract.generated_terms_html = sanitize_html(resolve_merge_fields(template.terms_content, merge_data))

    def regenerate_contract_terms(self, ctx: AgencyContext, contract_id: int) -> Optional[Contract]:
        contract = self._editable(ctx, contract_id)
        if not contract:
            return None
        if not contract.template_id:
            raise ValueError("Contract has no linked template")
        template = self.db.query(ContractTemplate).filter(
            ContractTemplate.id == contract.template_id,
            ContractTemplate.agency_id == ctx.agency_id
        ).first()
        if not template:
            raise ValueError("Template not found")
        if not template.terms_content:
            raise ValueError("Template has no terms content")

        self._regenerate_terms(contract, template)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.CONTRACT_TERMS_REGENERATED, "contract", contract.id,
                              metadata={"template_id": template.id})
        return contract

    def link_template_to_contract(self, ctx: AgencyContext, contract_id: int, template_id: int) -> Optional[Contract]:
        contract = self._editable(ctx, contract_id)
        if not contract:
            return None
        template = self._resolve_template(ctx.agency_id, template_id)
        if not template:
            raise ValueError("Template not found")

        contract.template_id = template.id
        if template.terms_content:
            self._regenerate_terms(contract, template)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CONTRACT_UPDATED, "contract", contract.id,
                              metadata={"template_id": template.id, "template_name": template.name})
        return contract

    def update_contract_status(self, ctx: AgencyContext, contract_id: int, status: str) -> Optional[Contract]:
        if status not in ContractStatus.ALL:
            raise ValueError(f"Invalid contract status: {status}")
        contract = self.get_by_id(contract_id, ctx.agency_id)
        if not contract:
            return None
        require_modify(ctx, "contract", contract.created_by)

        old_status = contract.status
        contract.status = status
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.CONTRACT_STATUS_CHANGED, "contract", contract.id,
                              old_values={"status": old_status}, new_values={"status": status})
        return contract

    # ---------- public ----------

    def record_contract_view(self, slug: str) -> None:
        contract = self.get_by_slug(slug)
        if not contract:
            return
        contract.view_count = Contract.view_count + 1
        contract.last_viewed_at = utcnow()
        if contract.status == ContractStatus.SENT:
            contract.status = ContractStatus.VIEWED
        self.db.flush()

    def sign_contract(
        self,
        slug: str,
        signatory_name: str,
        signatory_title: Optional[str] = None,
        agreed_to_terms: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Optional[Contract]:
        if agreed_to_terms is not True:
            raise ValueError("You must agree to the terms to sign")
        if not (signatory_name or "").strip():
            raise ValueError("Signatory name is required")

        contract = self.get_by_slug(slug)
        if not contract:
            return None
        if contract.status not in SIGNABLE:
            raise ValueError("Contract cannot be signed in current state")
        if contract.valid_until and contract.valid_until < utcnow():
            raise ValueError("Contract has expired")

        now = utcnow()
        contract.status = ContractStatus.SIGNED
        contract.client_signatory_name = signatory_name.strip()
        contract.client_signatory_title = signatory_title or None
        contract.client_signed_at = now
        contract.client_signature_ip = ip_address
        contract.client_signature_user_agent = (user_agent or "")[:500] or None
        self.db.flush()

        self.activity.log(
            agency_id=contract.agency_id,
            action=ActivityAction.CONTRACT_SIGNED,
            entity_type="contract",
            entity_id=contract.id,
            new_values={"status": ContractStatus.SIGNED, "client_signatory_name": contract.client_signatory_name,
                        "client_signed_at": now},
            ip_address=ip_address,
            user_agent=user_agent
        )

        from agencyops.services.email_service import EmailService
        try:
            EmailService(self.db).send_contract_signed_emails(contract)
        except Exception as e:
            logger.error(f"Failed to send contract signed emails for {contract.contract_number}: {e}")
        return contract
