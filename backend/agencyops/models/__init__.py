"""
SQLAlchemy Models for the Agency Operations System
"""
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Boolean, DateTime, Numeric, JSON,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from agencyops.core.database import Base
from agencyops.core.utils import utcnow


# ==================== STATUS CONSTANTS ====================

class MemberRole:
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    ALL = (OWNER, ADMIN, MEMBER)


class MembershipStatus:
    INVITED = "invited"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class AgencyStatus:
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"
    ALL = (ACTIVE, SUSPENDED, CANCELLED)


class ClientStatus:
    ACTIVE = "active"
    ARCHIVED = "archived"


class ConsultationStatus:
    DRAFT = "draft"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    CONVERTED = "converted"


class ProposalStatus:
    DRAFT = "draft"
    READY = "ready"
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    REVISION_REQUESTED = "revision_requested"
    EXPIRED = "expired"
    ALL = (DRAFT, READY, SENT, VIEWED, ACCEPTED, DECLINED, REVISION_REQUESTED, EXPIRED)


class ContractStatus:
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    SIGNED = "signed"
    COMPLETED = "completed"
    EXPIRED = "expired"
    TERMINATED = "terminated"
    ALL = (DRAFT, SENT, VIEWED, SIGNED, COMPLETED, EXPIRED, TERMINATED)


class InvoiceStatus:
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    ALL = (DRAFT, SENT, VIEWED, PAID, OVERDUE, CANCELLED, REFUNDED)


class QuotationStatus:
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"  # virtual, never stored


class QuestionnaireStatus:
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SubmissionStatus:
    DRAFT = "draft"
    COMPLETED = "completed"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ARCHIVED = "archived"
    ALL = (DRAFT, COMPLETED, PROCESSING, PROCESSED, ARCHIVED)


class BetaInviteStatus:
    PENDING = "pending"
    USED = "used"
    EXPIRED = "expired"
    REVOKED = "revoked"


class EmailStatus:
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    BOUNCED = "bounced"
    FAILED = "failed"


class EmailType:
    PROPOSAL_SENT = "proposal_sent"
    INVOICE_SENT = "invoice_sent"
    INVOICE_REMINDER = "invoice_reminder"
    CONTRACT_SENT = "contract_sent"
    CONTRACT_SIGNED = "contract_signed"
    QUOTATION_SENT = "quotation_sent"
    QUESTIONNAIRE_COMPLETED = "questionnaire_completed"
    BETA_INVITE = "beta_invite"
    CUSTOM = "custom"


class UserAccess:
    """Bit flags stored on users.access"""
    USER = 0x1
    SUPER_ADMIN = 0x10000


DEFAULT_UI_CONFIG = {
    "layout": "single-column",
    "showProgressBar": True,
    "showStepNumbers": True,
    "submitButtonText": "Submit",
    "successMessage": "Thank you for your submission!",
}

DEFAULT_VISIBLE_FIELDS = [
    "services",
    "commencementDate",
    "completionDate",
    "price",
    "paymentTerms",
    "specialConditions",
]


class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


# ==================== USERS & TENANCY ====================

class User(Base, TimestampMixin):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    display_name = Column(String(255), default="")
    phone = Column(String(50), default="")
    avatar = Column(Text, default="")
    access = Column(BigInteger, default=UserAccess.USER, nullable=False)
    default_agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='SET NULL'))
    is_active = Column(Boolean, default=True)
    last_login_at = Column(DateTime)

    suspended = Column(Boolean, default=False, nullable=False)
    suspended_at = Column(DateTime)
    suspended_reason = Column(Text)

    memberships = relationship(
        "AgencyMembership", back_populates="user",
        foreign_keys="AgencyMembership.user_id", cascade="all, delete-orphan"
    )
    default_agency = relationship("Agency", foreign_keys=[default_agency_id])

    @property
    def is_super_admin(self) -> bool:
        return bool((self.access or 0) & UserAccess.SUPER_ADMIN)


class Agency(Base, TimestampMixin):
    __tablename__ = 'agencies'

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)

    # Branding
    logo_url = Column(Text, default="")
    logo_avatar_url = Column(Text, default="")
    primary_color = Column(String(7), default="#4F46E5")
    secondary_color = Column(String(7), default="#1E40AF")
    accent_color = Column(String(7), default="#F59E0B")
    accent_gradient = Column(Text, default="")

    # Contact
    email = Column(String(255), default="")
    phone = Column(String(50), default="")
    website = Column(Text, default="")

    status = Column(String(50), default=AgencyStatus.ACTIVE, nullable=False)
    subscription_tier = Column(String(50), default="free", nullable=False)

    # Freemium access (beta/partner programs)
    is_freemium = Column(Boolean, default=False, nullable=False)
    freemium_reason = Column(String(50))
    freemium_expires_at = Column(DateTime)
    freemium_granted_at = Column(DateTime)
    freemium_granted_by = Column(String(255))

    memberships = relationship("AgencyMembership", back_populates="agency", cascade="all, delete-orphan")
    profile = relationship("AgencyProfile", back_populates="agency", uselist=False, cascade="all, delete-orphan")
    form_options = relationship("AgencyFormOption", back_populates="agency", cascade="all, delete-orphan")
    packages = relationship("AgencyPackage", back_populates="agency", cascade="all, delete-orphan")
    addons = relationship("AgencyAddon", back_populates="agency", cascade="all, delete-orphan")
    clients = relationship("Client", back_populates="agency", cascade="all, delete-orphan")


class AgencyMembership(Base, TimestampMixin):
    __tablename__ = 'agency_memberships'
    __table_args__ = (
        UniqueConstraint('user_id', 'agency_id', name='uq_membership_user_agency'),
        Index('ix_memberships_agency_role', 'agency_id', 'role'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(20), default=MemberRole.MEMBER, nullable=False)
    status = Column(String(20), default=MembershipStatus.ACTIVE, nullable=False)
    display_name = Column(String(255), default="")
    invited_at = Column(DateTime)
    invited_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))
    accepted_at = Column(DateTime)

    user = relationship("User", back_populates="memberships", foreign_keys=[user_id])
    agency = relationship("Agency", back_populates="memberships")


class AgencyFormOption(Base, TimestampMixin):
    """Configurable dropdown values (industries, budget ranges, ...) per agency"""
    __tablename__ = 'agency_form_options'
    __table_args__ = (
        UniqueConstraint('agency_id', 'category', 'value', name='uq_form_option_value'),
    )

    id = Column(Integer, primary_key=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False)
    category = Column(String(100), nullable=False)
    value = Column(Text, nullable=False)
    label = Column(Text, nullable=False)
    sort_order = Column(Integer, default=0)
    is_default = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    option_metadata = Column("metadata", JSON, default=dict)

    agency = relationship("Agency", back_populates="form_options")


class AgencyProfile(Base, TimestampMixin):
    """Registration, address, banking, tax and numbering details used on documents"""
    __tablename__ = 'agency_profiles'

    id = Column(Integer, primary_key=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), unique=True, nullable=False)

    # Business registration
    abn = Column(String(20), default="")
    acn = Column(String(20), default="")
    legal_entity_name = Column(Text, default="")
    trading_name = Column(Text, default="")

    # Address
    address_line_1 = Column(Text, default="")
    address_line_2 = Column(Text, default="")
    city = Column(String(100), default="")
    state = Column(String(50), default="")
    postcode = Column(String(20), default="")
    country = Column(String(100), default="Australia")

    # Banking
    bank_name = Column(String(100), default="")
    bsb = Column(String(10), default="")
    account_number = Column(String(30), default="")
    account_name = Column(Text, default="")

    # Tax
    gst_registered = Column(Boolean, default=True, nullable=False)
    tax_file_number = Column(String(20), default="")
    gst_rate = Column(Numeric(5, 2), default=Decimal("10.00"), nullable=False)

    # Social & branding
    tagline = Column(Text, default="")
    social_linkedin = Column(Text, default="")
    social_facebook = Column(Text, default="")
    social_instagram = Column(Text, default="")
    social_twitter = Column(Text, default="")
    brand_font = Column(String(100), default="")

    # Document defaults
    default_payment_terms = Column(String(50), default="NET_14")
    default_quotation_validity_days = Column(Integer, default=60, nullable=False)
    invoice_prefix = Column(String(20), default="INV")
    invoice_footer = Column(Text, default="")
    next_invoice_number = Column(Integer, default=1, nullable=False)
    contract_prefix = Column(String(20), default="CON")
    contract_footer = Column(Text, default="")
    next_contract_number = Column(Integer, default=1, nullable=False)
    proposal_prefix = Column(String(20), default="PROP")
    next_proposal_number = Column(Integer, default=1, nullable=False)
    quotation_prefix = Column(String(20), default="QUO")
    next_quotation_number = Column(Integer, default=1, nullable=False)

    agency = relationship("Agency", back_populates="profile")


# ==================== PRODUCTS ====================

class AgencyPackage(Base, TimestampMixin):
    __tablename__ = 'agency_packages'
    __table_args__ = (
        UniqueConstraint('agency_id', 'slug', name='uq_package_agency_slug'),
    )

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(100), nullable=False)
    slug = Column(String(50), nullable=False)
    description = Column(Text, default="")
    pricing_model = Column(String(50), nullable=False)  # subscription, lump_sum, hybrid
    setup_fee = Column(Numeric(10, 2), default=Decimal("0.00"))
    monthly_price = Column(Numeric(10, 2), default=Decimal("0.00"))
    one_time_price = Column(Numeric(10, 2), default=Decimal("0.00"))
    hosting_fee = Column(Numeric(10, 2), default=Decimal("0.00"))
    minimum_term_months = Column(Integer, default=12)
    cancellation_fee_type = Column(String(50))  # none, fixed, remaining_balance
    cancellation_fee_amount = Column(Numeric(10, 2), default=Decimal("0.00"))
    included_features = Column(JSON, default=list)
    max_pages = Column(Integer)  # NULL = unlimited
    display_order = Column(Integer, default=0)
    is_featured = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)

    agency = relationship("Agency", back_populates="packages")


class AgencyAddon(Base, TimestampMixin):
    __tablename__ = 'agency_addons'
    __table_args__ = (
        UniqueConstraint('agency_id', 'slug', name='uq_addon_agency_slug'),
    )

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(100), nullable=False)
    slug = Column(String(50), nullable=False)
    description = Column(Text, default="")
    price = Column(Numeric(10, 2), nullable=False)
    pricing_type = Column(String(50), nullable=False)  # one_time, monthly, per_unit
    unit_label = Column(String(50))
    available_packages = Column(JSON, default=list)  # package slugs, empty = all
    display_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)

    agency = relationship("Agency", back_populates="addons")


# ==================== CLIENTS ====================

class Client(Base, TimestampMixin):
    __tablename__ = 'clients'
    __table_args__ = (
        UniqueConstraint('agency_id', 'email', name='uq_client_agency_email'),
        Index('ix_clients_agency_status', 'agency_id', 'status'),
    )

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False)
    business_name = Column(Text, nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50))
    contact_name = Column(Text)
    notes = Column(Text)
    status = Column(String(20), default=ClientStatus.ACTIVE, nullable=False)

    agency = relationship("Agency", back_populates="clients")


# ==================== SALES PIPELINE ====================

class Consultation(Base, TimestampMixin):
    __tablename__ = 'consultations'

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    client_id = Column(Integer, ForeignKey('clients.id', ondelete='SET NULL'))

    # Contact & business
    business_name = Column(Text)
    contact_person = Column(Text)
    email = Column(Text)
    phone = Column(Text)
    website = Column(Text)
    social_linkedin = Column(Text)
    social_facebook = Column(Text)
    social_instagram = Column(Text)
    industry = Column(Text)
    business_type = Column(Text)

    # Situation
    website_status = Column(Text)
    primary_challenges = Column(JSON, default=list)
    urgency_level = Column(Text)

    # Goals & budget
    primary_goals = Column(JSON, default=list)
    conversion_goal = Column(Text)
    budget_range = Column(Text)
    timeline = Column(Text)

    # Preferences & notes
    design_styles = Column(JSON, default=list)
    admired_websites = Column(JSON, default=list)
    consultation_notes = Column(Text)

    performance_data = Column(JSON, default=dict)
    custom_data = Column(JSON, default=dict)
    form_id = Column(Integer, ForeignKey('agency_forms.id', ondelete='SET NULL'))

    status = Column(String(50), default=ConsultationStatus.DRAFT, nullable=False)

    client = relationship("Client")
    user = relationship("User")


class Proposal(Base, TimestampMixin):
    __tablename__ = 'proposals'
    __table_args__ = (
        UniqueConstraint('agency_id', 'proposal_number', name='uq_proposal_agency_number'),
        Index('ix_proposals_agency_status', 'agency_id', 'status'),
    )

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False)
    consultation_id = Column(Integer, ForeignKey('consultations.id', ondelete='SET NULL'))
    client_id = Column(Integer, ForeignKey('clients.id', ondelete='SET NULL'))
    proposal_number = Column(String(50), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    status = Column(String(50), default=ProposalStatus.DRAFT, nullable=False)

    # Client snapshot
    client_business_name = Column(Text, default="")
    client_contact_name = Column(Text, default="")
    client_email = Column(String(255), default="")
    client_phone = Column(String(50), default="")
    client_website = Column(Text, default="")

    title = Column(Text, default="Website Proposal")
    cover_image = Column(Text)

    # Content
    performance_data = Column(JSON, default=dict)
    opportunity_content = Column(Text, default="")
    current_issues = Column(JSON, default=list)
    compliance_issues = Column(JSON, default=list)
    roi_analysis = Column(JSON, default=dict)
    performance_standards = Column(JSON, default=list)
    local_advantage_content = Column(Text, default="")
    proposed_pages = Column(JSON, default=list)
    timeline = Column(JSON, default=list)
    closing_content = Column(Text, default="")
    executive_summary = Column(Text, default="")
    next_steps = Column(JSON, default=list)
    consultation_pain_points = Column(JSON, default=dict)
    consultation_goals = Column(JSON, default=dict)
    consultation_challenges = Column(JSON, default=list)

    # Pricing
    selected_package_id = Column(Integer, ForeignKey('agency_packages.id', ondelete='SET NULL'))
    selected_addons = Column(JSON, default=list)  # addon ids
    custom_pricing = Column(JSON)  # setupFee, monthlyPrice, oneTimePrice, hostingFee, discountPercent, discountNote

    # Tracking
    valid_until = Column(DateTime)
    view_count = Column(Integer, default=0, nullable=False)
    last_viewed_at = Column(DateTime)
    sent_at = Column(DateTime)
    accepted_at = Column(DateTime)
    declined_at = Column(DateTime)

    # Client responses
    client_comments = Column(Text, default="")
    decline_reason = Column(Text, default="")
    revision_request_notes = Column(Text, default="")
    revision_requested_at = Column(DateTime)

    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))

    agency = relationship("Agency")
    consultation = relationship("Consultation")
    client = relationship("Client")
    selected_package = relationship("AgencyPackage")


class ContractTemplate(Base, TimestampMixin):
    __tablename__ = 'contract_templates'

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    version = Column(Integer, default=1, nullable=False)
    cover_page_config = Column(JSON, default=dict)
    terms_content = Column(Text, default="")
    signature_config = Column(JSON, default=dict)  # agencySignatory, agencyTitle
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))

    schedules = relationship(
        "ContractSchedule", back_populates="template",
        cascade="all, delete-orphan", order_by="ContractSchedule.display_order"
    )


class ContractSchedule(Base, TimestampMixin):
    __tablename__ = 'contract_schedules'

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey('contract_templates.id', ondelete='CASCADE'), nullable=False)
    package_id = Column(Integer, ForeignKey('agency_packages.id', ondelete='SET NULL'))
    name = Column(String(255), nullable=False)
    display_order = Column(Integer, default=0)
    section_category = Column(String(100), default="custom")
    content = Column(Text, default="")
    is_active = Column(Boolean, default=True)

    template = relationship("ContractTemplate", back_populates="schedules")


class Contract(Base, TimestampMixin):
    __tablename__ = 'contracts'
    __table_args__ = (
        UniqueConstraint('agency_id', 'contract_number', name='uq_contract_agency_number'),
        Index('ix_contracts_agency_status', 'agency_id', 'status'),
    )

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False)
    proposal_id = Column(Integer, ForeignKey('proposals.id', ondelete='SET NULL'))
    template_id = Column(Integer, ForeignKey('contract_templates.id', ondelete='SET NULL'))
    client_id = Column(Integer, ForeignKey('clients.id', ondelete='SET NULL'))
    contract_number = Column(String(50), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    version = Column(Integer, default=1, nullable=False)
    status = Column(String(50), default=ContractStatus.DRAFT, nullable=False)

    # Client snapshot
    client_business_name = Column(Text, default="")
    client_contact_name = Column(Text, default="")
    client_email = Column(String(255), default="")
    client_phone = Column(String(50), default="")
    client_address = Column(Text, default="")

    # Terms
    services_description = Column(Text, default="")
    commencement_date = Column(DateTime)
    completion_date = Column(DateTime)
    special_conditions = Column(Text, default="")
    total_price = Column(Numeric(10, 2), default=Decimal("0.00"))
    price_includes_gst = Column(Boolean, default=True)
    payment_terms = Column(Text, default="")

    # Generated content
    generated_cover_html = Column(Text)
    generated_terms_html = Column(Text)
    generated_schedule_html = Column(Text)

    valid_until = Column(DateTime)

    # Signatures
    agency_signatory_name = Column(String(255))
    agency_signatory_title = Column(String(100))
    agency_signed_at = Column(DateTime)
    client_signatory_name = Column(String(255))
    client_signatory_title = Column(String(100))
    client_signed_at = Column(DateTime)
    client_signature_ip = Column(String(50))
    client_signature_user_agent = Column(Text)

    view_count = Column(Integer, default=0, nullable=False)
    last_viewed_at = Column(DateTime)
    sent_at = Column(DateTime)
    signed_pdf_url = Column(Text)
    visible_fields = Column(JSON, default=lambda: list(DEFAULT_VISIBLE_FIELDS))
    included_schedule_ids = Column(JSON, default=list)

    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))

    agency = relationship("Agency")
    proposal = relationship("Proposal")
    template = relationship("ContractTemplate")
    client = relationship("Client")


class QuestionnaireResponse(Base, TimestampMixin):
    __tablename__ = 'questionnaire_responses'

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False, index=True)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    contract_id = Column(Integer, ForeignKey('contracts.id', ondelete='SET NULL'))
    proposal_id = Column(Integer, ForeignKey('proposals.id', ondelete='SET NULL'))
    consultation_id = Column(Integer, ForeignKey('consultations.id', ondelete='SET NULL'))

    client_business_name = Column(Text, default="")
    client_email = Column(String(255), default="")

    responses = Column(JSON, default=dict)
    current_section = Column(Integer, default=0, nullable=False)  # 0-7
    completion_percentage = Column(Integer, default=0, nullable=False)
    status = Column(String(50), default=QuestionnaireStatus.NOT_STARTED, nullable=False)

    started_at = Column(DateTime)
    last_activity_at = Column(DateTime)
    completed_at = Column(DateTime)

    agency = relationship("Agency")
    contract = relationship("Contract")


# ==================== INVOICING ====================

class Invoice(Base, TimestampMixin):
    __tablename__ = 'invoices'
    __table_args__ = (
        UniqueConstraint('agency_id', 'invoice_number', name='uq_invoice_agency_number'),
        Index('ix_invoices_agency_status', 'agency_id', 'status'),
    )

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False)
    proposal_id = Column(Integer, ForeignKey('proposals.id', ondelete='SET NULL'))
    contract_id = Column(Integer, ForeignKey('contracts.id', ondelete='SET NULL'))
    client_id = Column(Integer, ForeignKey('clients.id', ondelete='SET NULL'))
    invoice_number = Column(String(50), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    status = Column(String(50), default=InvoiceStatus.DRAFT, nullable=False)

    # Client snapshot
    client_business_name = Column(Text, nullable=False)
    client_contact_name = Column(Text, default="")
    client_email = Column(String(255), nullable=False)
    client_phone = Column(String(50), default="")
    client_address = Column(Text, default="")
    client_abn = Column(String(20), default="")

    issue_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)

    # Amounts
    subtotal = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    discount_amount = Column(Numeric(10, 2), default=Decimal("0.00"))
    discount_description = Column(Text, default="")
    gst_amount = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    total = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    gst_registered = Column(Boolean, default=True, nullable=False)
    gst_rate = Column(Numeric(5, 2), default=Decimal("10.00"), nullable=False)

    payment_terms = Column(String(50), default="NET_14")
    payment_terms_custom = Column(Text, default="")
    notes = Column(Text, default="")  # internal
    public_notes = Column(Text, default="")  # shown on invoice

    view_count = Column(Integer, default=0, nullable=False)
    last_viewed_at = Column(DateTime)
    sent_at = Column(DateTime)
    paid_at = Column(DateTime)
    payment_method = Column(String(50))
    payment_reference = Column(Text)
    payment_notes = Column(Text)

    pdf_url = Column(Text)
    pdf_generated_at = Column(DateTime)
    online_payment_enabled = Column(Boolean, default=True)

    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))

    agency = relationship("Agency")
    proposal = relationship("Proposal")
    contract = relationship("Contract")
    client = relationship("Client")
    line_items = relationship(
        "InvoiceLineItem", back_populates="invoice",
        cascade="all, delete-orphan", order_by="InvoiceLineItem.sort_order"
    )


class InvoiceLineItem(Base, TimestampMixin):
    __tablename__ = 'invoice_line_items'

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False, index=True)
    description = Column(Text, nullable=False)
    quantity = Column(Numeric(10, 2), default=Decimal("1.00"), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    is_taxable = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0)
    category = Column(String(50))  # setup, development, hosting, addon, other
    package_id = Column(Integer, ForeignKey('agency_packages.id', ondelete='SET NULL'))
    addon_id = Column(Integer, ForeignKey('agency_addons.id', ondelete='SET NULL'))

    invoice = relationship("Invoice", back_populates="line_items")


# ==================== QUOTATIONS ====================

class QuotationScopeTemplate(Base, TimestampMixin):
    """Reusable block of work items with a default price"""
    __tablename__ = 'quotation_scope_templates'

    id = Column(Integer, primary_key=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    work_items = Column(JSON, default=list)
    default_price = Column(Numeric(10, 2), default=Decimal("0.00"))
    category = Column(String(100))
    is_active = Column(Boolean, default=True)


class QuotationTermsTemplate(Base, TimestampMixin):
    __tablename__ = 'quotation_terms_templates'

    id = Column(Integer, primary_key=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, default="")
    is_active = Column(Boolean, default=True)


class QuotationTemplate(Base, TimestampMixin):
    __tablename__ = 'quotation_templates'

    id = Column(Integer, primary_key=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    options_notes = Column(Text, default="")
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))

    sections = relationship(
        "QuotationTemplateSection", back_populates="template",
        cascade="all, delete-orphan", order_by="QuotationTemplateSection.sort_order"
    )
    terms = relationship(
        "QuotationTemplateTerms", back_populates="template",
        cascade="all, delete-orphan", order_by="QuotationTemplateTerms.sort_order"
    )


class QuotationTemplateSection(Base):
    __tablename__ = 'quotation_template_sections'
    __table_args__ = (
        UniqueConstraint('template_id', 'scope_template_id', name='uq_template_scope'),
    )

    id = Column(Integer, primary_key=True)
    template_id = Column(Integer, ForeignKey('quotation_templates.id', ondelete='CASCADE'), nullable=False)
    scope_template_id = Column(Integer, ForeignKey('quotation_scope_templates.id', ondelete='CASCADE'), nullable=False)
    default_section_price = Column(Numeric(10, 2))
    sort_order = Column(Integer, default=0)

    template = relationship("QuotationTemplate", back_populates="sections")
    scope_template = relationship("QuotationScopeTemplate")


class QuotationTemplateTerms(Base):
    __tablename__ = 'quotation_template_terms'
    __table_args__ = (
        UniqueConstraint('template_id', 'terms_template_id', name='uq_template_terms'),
    )

    id = Column(Integer, primary_key=True)
    template_id = Column(Integer, ForeignKey('quotation_templates.id', ondelete='CASCADE'), nullable=False)
    terms_template_id = Column(Integer, ForeignKey('quotation_terms_templates.id', ondelete='CASCADE'), nullable=False)
    sort_order = Column(Integer, default=0)

    template = relationship("QuotationTemplate", back_populates="terms")
    terms_template = relationship("QuotationTermsTemplate")


class Quotation(Base, TimestampMixin):
    __tablename__ = 'quotations'
    __table_args__ = (
        UniqueConstraint('agency_id', 'quotation_number', name='uq_quotation_agency_number'),
        Index('ix_quotations_agency_status', 'agency_id', 'status'),
    )

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False)
    client_id = Column(Integer, ForeignKey('clients.id', ondelete='SET NULL'))
    template_id = Column(Integer, ForeignKey('quotation_templates.id', ondelete='SET NULL'))
    quotation_number = Column(String(50), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    quotation_name = Column(Text, default="")
    status = Column(String(50), default=QuotationStatus.DRAFT, nullable=False)

    # Client snapshot
    client_business_name = Column(Text, default="")
    client_contact_name = Column(Text, default="")
    client_email = Column(String(255), default="")
    client_phone = Column(String(50), default="")
    client_address = Column(Text, default="")
    site_address = Column(Text, default="")
    site_reference = Column(Text, default="")

    prepared_date = Column(DateTime, nullable=False)
    expiry_date = Column(DateTime, nullable=False)

    subtotal = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    discount_amount = Column(Numeric(10, 2), default=Decimal("0.00"))
    discount_description = Column(Text, default="")
    gst_amount = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    total = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    gst_registered = Column(Boolean, default=True, nullable=False)
    gst_rate = Column(Numeric(5, 2), default=Decimal("10.00"), nullable=False)

    terms_blocks = Column(JSON, default=list)  # [{title, content, sortOrder}]
    options_notes = Column(Text, default="")
    notes = Column(Text, default="")

    view_count = Column(Integer, default=0, nullable=False)
    last_viewed_at = Column(DateTime)
    sent_at = Column(DateTime)
    accepted_at = Column(DateTime)
    accepted_by_name = Column(String(255))
    accepted_by_title = Column(String(255))
    declined_at = Column(DateTime)
    decline_reason = Column(Text)

    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))

    agency = relationship("Agency")
    client = relationship("Client")
    sections = relationship(
        "QuotationScopeSection", back_populates="quotation",
        cascade="all, delete-orphan", order_by="QuotationScopeSection.sort_order"
    )


class QuotationScopeSection(Base, TimestampMixin):
    __tablename__ = 'quotation_scope_sections'

    id = Column(Integer, primary_key=True)
    quotation_id = Column(Integer, ForeignKey('quotations.id', ondelete='CASCADE'), nullable=False, index=True)
    scope_template_id = Column(Integer, ForeignKey('quotation_scope_templates.id', ondelete='SET NULL'))
    title = Column(String(255), nullable=False)
    work_items = Column(JSON, default=list)
    section_price = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    section_gst = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    section_total = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    sort_order = Column(Integer, default=0)

    quotation = relationship("Quotation", back_populates="sections")


# ==================== FORMS ====================

class FormTemplate(Base, TimestampMixin):
    """System-wide form blueprint that agencies copy into AgencyForm rows"""
    __tablename__ = 'form_templates'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False)
    description = Column(Text)
    category = Column(String(100), nullable=False)
    schema = Column(JSON, nullable=False)
    ui_config = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_UI_CONFIG))
    preview_image_url = Column(Text)
    is_featured = Column(Boolean, default=False)
    display_order = Column(Integer, default=0)
    new_until = Column(DateTime)
    usage_count = Column(Integer, default=0, nullable=False)


class AgencyForm(Base, TimestampMixin):
    __tablename__ = 'agency_forms'
    __table_args__ = (
        UniqueConstraint('agency_id', 'slug', name='uq_form_agency_slug'),
        Index('ix_agency_forms_agency_type', 'agency_id', 'form_type'),
    )

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text)
    form_type = Column(String(50), nullable=False)  # questionnaire, consultation, feedback, intake, custom
    schema = Column(JSON, nullable=False)
    ui_config = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_UI_CONFIG))
    branding = Column(JSON)
    is_active = Column(Boolean, default=True, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    requires_auth = Column(Boolean, default=False, nullable=False)
    source_template_id = Column(Integer, ForeignKey('form_templates.id', ondelete='SET NULL'))
    is_customized = Column(Boolean, default=False, nullable=False)
    previous_schema = Column(JSON)
    version = Column(Integer, default=1, nullable=False)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))

    source_template = relationship("FormTemplate")
    submissions = relationship("FormSubmission", back_populates="form", cascade="all, delete-orphan")


class FormSubmission(Base):
    __tablename__ = 'form_submissions'

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey('agency_forms.id', ondelete='CASCADE'))
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False, index=True)
    slug = Column(String(100), unique=True, index=True)

    client_id = Column(Integer, ForeignKey('clients.id', ondelete='SET NULL'))
    client_business_name = Column(Text, default="")
    client_email = Column(String(255), default="")

    data = Column(JSON, nullable=False, default=dict)
    current_step = Column(Integer, default=0, nullable=False)
    completion_percentage = Column(Integer, default=0, nullable=False)
    started_at = Column(DateTime)
    last_activity_at = Column(DateTime)

    consultation_id = Column(Integer, ForeignKey('consultations.id', ondelete='SET NULL'))
    proposal_id = Column(Integer, ForeignKey('proposals.id', ondelete='SET NULL'))
    contract_id = Column(Integer, ForeignKey('contracts.id', ondelete='SET NULL'))

    submission_metadata = Column("metadata", JSON, default=dict)
    status = Column(String(50), default=SubmissionStatus.DRAFT, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    submitted_at = Column(DateTime)
    processed_at = Column(DateTime)
    form_version = Column(Integer, default=1, nullable=False)

    form = relationship("AgencyForm", back_populates="submissions")


class FieldOptionSet(Base, TimestampMixin):
    __tablename__ = 'field_option_sets'
    __table_args__ = (
        UniqueConstraint('agency_id', 'slug', name='uq_option_set_agency_slug'),
    )

    id = Column(Integer, primary_key=True)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'))  # NULL = system-wide
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text)
    options = Column(JSON, nullable=False, default=list)
    is_system = Column(Boolean, default=False, nullable=False)


# ==================== PLATFORM ====================

class BetaInvite(Base):
    __tablename__ = 'beta_invites'

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    email = Column(String(255), nullable=False, index=True)
    token = Column(String(100), unique=True, nullable=False, index=True)
    status = Column(String(20), default=BetaInviteStatus.PENDING, nullable=False, index=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))
    used_at = Column(DateTime)
    used_by_agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='SET NULL'))
    expires_at = Column(DateTime, nullable=False)
    notes = Column(Text)


class EmailLog(Base):
    __tablename__ = 'email_logs'

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False, index=True)
    proposal_id = Column(Integer, ForeignKey('proposals.id', ondelete='SET NULL'), index=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='SET NULL'), index=True)
    contract_id = Column(Integer, ForeignKey('contracts.id', ondelete='SET NULL'), index=True)
    quotation_id = Column(Integer, ForeignKey('quotations.id', ondelete='SET NULL'), index=True)
    form_submission_id = Column(Integer, ForeignKey('form_submissions.id', ondelete='SET NULL'))

    email_type = Column(String(50), nullable=False)
    recipient_email = Column(String(255), nullable=False)
    recipient_name = Column(String(255))
    subject = Column(String(500), nullable=False)
    body_html = Column(Text, nullable=False)

    has_attachment = Column(Boolean, default=False, nullable=False)
    attachment_filename = Column(String(255))

    provider_message_id = Column(String(100))
    status = Column(String(50), default=EmailStatus.PENDING, nullable=False)
    sent_at = Column(DateTime)
    error_message = Column(Text)
    retry_count = Column(Integer, default=0, nullable=False)
    sent_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))


class ActivityLog(Base):
    """Append-only record of agency-scoped actions"""
    __tablename__ = 'agency_activity_log'
    __table_args__ = (
        Index('ix_activity_agency_created', 'agency_id', 'created_at'),
        Index('ix_activity_entity', 'entity_type', 'entity_id'),
    )

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    agency_id = Column(Integer, ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))
    action = Column(String(100), nullable=False)  # e.g. member.invited, invoice.paid
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer)
    old_values = Column(JSON)
    new_values = Column(JSON)
    ip_address = Column(String(100))
    user_agent = Column(Text)
    log_metadata = Column("metadata", JSON, default=dict)

    user = relationship("User")
