"""
Agency Profile Service - Business details and document numbering
"""
from typing import Optional, Dict, Any
from sqlalchemy import update
from sqlalchemy.orm import Session

from agencyops.models import Agency, AgencyProfile
from agencyops.core.utils import utcnow
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.permission_service import AgencyContext, require_role, MANAGERS

# document type -> (counter column, prefix column)
DOCUMENT_COUNTERS = {
    "proposal": ("next_proposal_number", "proposal_prefix"),
    "contract": ("next_contract_number", "contract_prefix"),
    "invoice": ("next_invoice_number", "invoice_prefix"),
    "quotation": ("next_quotation_number", "quotation_prefix"),
}

DEFAULT_PREFIXES = {
    "proposal": "PROP",
    "contract": "CON",
    "invoice": "INV",
    "quotation": "QUO",
}

PROFILE_FIELDS = (
    "abn", "acn", "legal_entity_name", "trading_name",
    "address_line_1", "address_line_2", "city", "state", "postcode", "country",
    "bank_name", "bsb", "account_number", "account_name",
    "gst_registered", "tax_file_number", "gst_rate",
    "tagline", "social_linkedin", "social_facebook", "social_instagram", "social_twitter", "brand_font",
    "default_payment_terms", "default_quotation_validity_days",
    "invoice_prefix", "invoice_footer", "contract_prefix", "contract_footer",
    "proposal_prefix", "quotation_prefix",
)


def format_document_number(prefix: str, sequence: int, year: Optional[int] = None) -> str:
    year = year or utcnow().year
    return f"{prefix}-{year}-{sequence:04d}"


class AgencyProfileService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    def get_profile(self, agency_id: int) -> Optional[AgencyProfile]:
        return self.db.query(AgencyProfile).filter(AgencyProfile.agency_id == agency_id).first()

    def ensure_agency_profile(self, agency_id: int) -> AgencyProfile:
        profile = self.get_profile(agency_id)
        if profile:
            return profile
        profile = AgencyProfile(agency_id=agency_id)
        self.db.add(profile)
        self.db.flush()
        return profile

    def get_agency_profile(self, agency_id: int) -> Dict[str, Any]:
        agency = self.db.query(Agency).filter(Agency.id == agency_id).first()
        return {"agency": agency, "profile": self.get_profile(agency_id)}

    def update_profile(self, ctx: AgencyContext, data: dict) -> AgencyProfile:
        require_role(ctx, MANAGERS, "Only owners and admins can update the agency profile")
        profile = self.ensure_agency_profile(ctx.agency_id)

        old_values = {}
        new_values = {}
        for key in PROFILE_FIELDS:
            if key not in data or data[key] is None:
                continue
            old_values[key] = getattr(profile, key)
            setattr(profile, key, data[key])
            new_values[key] = data[key]

        if "default_quotation_validity_days" in new_values and int(new_values["default_quotation_validity_days"]) < 1:
            raise ValueError("Quotation validity must be at least 1 day")

        self.db.flush()
        self.activity.log_for(
            ctx, ActivityAction.PROFILE_UPDATED, "agency_profile", profile.id,
            old_values=old_values, new_values=new_values
        )
        return profile

    def get_next_document_number(self, agency_id: int, document_type: str) -> str:
        """
        Reserve the next number for ``document_type``.

        The counter is incremented and read back in one UPDATE ... RETURNING
        statement, so two concurrent callers can never receive the same value.
        """
        if document_type not in DOCUMENT_COUNTERS:
            raise ValueError(f"Unknown document type: {document_type}")

        counter_name, prefix_name = DOCUMENT_COUNTERS[document_type]
        counter = getattr(AgencyProfile, counter_name)
        prefix = getattr(AgencyProfile, prefix_name)

        stmt = (
            update(AgencyProfile)
            .where(AgencyProfile.agency_id == agency_id)
            .values({counter_name: counter + 1, "updated_at": utcnow()})
            .returning(counter, prefix)
            .execution_options(synchronize_session=False)
        )
        row = self.db.execute(stmt).first()
        if row is None:
            raise ValueError("Agency profile not found. Complete the agency profile first.")

        # RETURNING yields the incremented value; the reserved number is the one before it
        sequence = row[0] - 1
        return format_document_number(row[1] or DEFAULT_PREFIXES[document_type], sequence)
