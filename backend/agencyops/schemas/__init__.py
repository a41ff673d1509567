"""
Pydantic Schemas for API Validation
"""
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Any, Dict, List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum


# ==================== ENUMS ====================

class InviteRoleEnum(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class DocumentTypeEnum(str, Enum):
    PROPOSAL = "proposal"
    CONTRACT = "contract"
    INVOICE = "invoice"
    QUOTATION = "quotation"


class PaymentMethodEnum(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    CASH = "cash"
    OTHER = "other"


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ==================== COMMON ====================

class MessageResponse(BaseModel):
    message: str
    success: bool = True


class ReorderRequest(BaseModel):
    ordered_ids: List[int] = Field(..., min_length=1)


class CustomMessageRequest(BaseModel):
    custom_message: Optional[str] = Field(None, max_length=5000)


# ==================== AUTH SCHEMAS ====================

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    display_name: Optional[str] = Field(None, max_length=255)
    agency_name: Optional[str] = Field(None, min_length=2, max_length=255)
    agency_slug: Optional[str] = Field(None, max_length=50)
    invite_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)
    confirm_password: str


class UserProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    avatar: Optional[str] = None


class UserResponse(ORMModel):
    id: int
    email: str
    display_name: Optional[str] = ""
    phone: Optional[str] = ""
    avatar: Optional[str] = ""
    default_agency_id: Optional[int] = None
    is_super_admin: bool = False
    last_login_at: Optional[datetime] = None
    created_at: datetime


class UserAgencySummary(BaseModel):
    id: int
    name: str
    slug: str
    logo_url: Optional[str] = ""
    primary_color: Optional[str] = None
    status: str
    role: str


class MeResponse(BaseModel):
    user: UserResponse
    agencies: List[UserAgencySummary] = []
    current_agency_id: Optional[int] = None
    role: Optional[str] = None
    is_impersonating: bool = False


# ==================== AGENCY SCHEMAS ====================

class AgencyCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    slug: Optional[str] = Field(None, max_length=50)


class AgencyBrandingUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    logo_url: Optional[str] = None
    logo_avatar_url: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    accent_color: Optional[str] = None
    accent_gradient: Optional[str] = None


class AgencyContactUpdate(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    website: Optional[str] = None


class AgencyResponse(ORMModel):
    id: int
    name: str
    slug: str
    logo_url: Optional[str] = ""
    logo_avatar_url: Optional[str] = ""
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    accent_color: Optional[str] = None
    accent_gradient: Optional[str] = ""
    email: Optional[str] = ""
    phone: Optional[str] = ""
    website: Optional[str] = ""
    status: str
    subscription_tier: str
    is_freemium: bool = False
    freemium_reason: Optional[str] = None
    freemium_expires_at: Optional[datetime] = None
    created_at: datetime


class SlugCheckResponse(BaseModel):
    valid: bool
    available: bool


class SwitchAgencyRequest(BaseModel):
    agency_id: int


class InviteMemberRequest(BaseModel):
    email: EmailStr
    role: InviteRoleEnum = InviteRoleEnum.MEMBER


class UpdateMemberRoleRequest(BaseModel):
    role: str


class MemberResponse(ORMModel):
    id: int
    user_id: int
    agency_id: int
    role: str
    status: str
    display_name: Optional[str] = ""
    invited_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    user_email: Optional[str] = None


class FormOptionItem(BaseModel):
    value: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    sort_order: Optional[int] = None
    is_default: bool = False
    is_active: bool = True
    metadata: Optional[Dict[str, Any]] = None


class FormOptionsUpdate(BaseModel):
    options: List[FormOptionItem]


class FormOptionResponse(ORMModel):
    id: int
    category: str
    value: str
    label: str
    sort_order: Optional[int] = 0
    is_default: bool = False
    is_active: bool = True


# ==================== PROFILE SCHEMAS ====================

class AgencyProfileUpdate(BaseModel):
    abn: Optional[str] = Field(None, max_length=20)
    acn: Optional[str] = Field(None, max_length=20)
    legal_entity_name: Optional[str] = None
    trading_name: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=50)
    postcode: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    bank_name: Optional[str] = Field(None, max_length=100)
    bsb: Optional[str] = Field(None, max_length=10)
    account_number: Optional[str] = Field(None, max_length=30)
    account_name: Optional[str] = None
    gst_registered: Optional[bool] = None
    tax_file_number: Optional[str] = Field(None, max_length=20)
    gst_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    tagline: Optional[str] = None
    social_linkedin: Optional[str] = None
    social_facebook: Optional[str] = None
    social_instagram: Optional[str] = None
    social_twitter: Optional[str] = None
    brand_font: Optional[str] = Field(None, max_length=100)
    default_payment_terms: Optional[str] = Field(None, max_length=50)
    default_quotation_validity_days: Optional[int] = Field(None, ge=1, le=365)
    invoice_prefix: Optional[str] = Field(None, min_length=1, max_length=20)
    invoice_footer: Optional[str] = None
    contract_prefix: Optional[str] = Field(None, min_length=1, max_length=20)
    contract_footer: Optional[str] = None
    proposal_prefix: Optional[str] = Field(None, min_length=1, max_length=20)
    quotation_prefix: Optional[str] = Field(None, min_length=1, max_length=20)


class AgencyProfileResponse(ORMModel):
    id: int
    agency_id: int
    abn: Optional[str] = ""
    acn: Optional[str] = ""
    legal_entity_name: Optional[str] = ""
    trading_name: Optional[str] = ""
    address_line_1: Optional[str] = ""
    address_line_2: Optional[str] = ""
    city: Optional[str] = ""
    state: Optional[str] = ""
    postcode: Optional[str] = ""
    country: Optional[str] = ""
    bank_name: Optional[str] = ""
    bsb: Optional[str] = ""
    account_number: Optional[str] = ""
    account_name: Optional[str] = ""
    gst_registered: bool
    gst_rate: Decimal
    tagline: Optional[str] = ""
    brand_font: Optional[str] = ""
    default_payment_terms: Optional[str] = None
    default_quotation_validity_days: int
    invoice_prefix: Optional[str] = None
    invoice_footer: Optional[str] = ""
    next_invoice_number: int
    contract_prefix: Optional[str] = None
    contract_footer: Optional[str] = ""
    next_contract_number: int
    proposal_prefix: Optional[str] = None
    next_proposal_number: int
    quotation_prefix: Optional[str] = None
    next_quotation_number: int


class DocumentNumberResponse(BaseModel):
    document_type: str
    number: str


# ==================== PRODUCT SCHEMAS ====================

class PackageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = ""
    pricing_model: str
    setup_fee: Decimal = Field(default=Decimal("0"), ge=0)
    monthly_price: Decimal = Field(default=Decimal("0"), ge=0)
    one_time_price: Decimal = Field(default=Decimal("0"), ge=0)
    hosting_fee: Decimal = Field(default=Decimal("0"), ge=0)
    minimum_term_months: Optional[int] = Field(12, ge=0)
    cancellation_fee_type: Optional[str] = None
    cancellation_fee_amount: Decimal = Field(default=Decimal("0"), ge=0)
    included_features: List[str] = []
    max_pages: Optional[int] = None
    display_order: Optional[int] = None
    is_featured: bool = False
    is_active: bool = True


class PackageUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    pricing_model: Optional[str] = None
    setup_fee: Optional[Decimal] = Field(None, ge=0)
    monthly_price: Optional[Decimal] = Field(None, ge=0)
    one_time_price: Optional[Decimal] = Field(None, ge=0)
    hosting_fee: Optional[Decimal] = Field(None, ge=0)
    minimum_term_months: Optional[int] = Field(None, ge=0)
    cancellation_fee_type: Optional[str] = None
    cancellation_fee_amount: Optional[Decimal] = Field(None, ge=0)
    included_features: Optional[List[str]] = None
    max_pages: Optional[int] = None
    display_order: Optional[int] = None
    is_featured: Optional[bool] = None
    is_active: Optional[bool] = None


class PackageResponse(ORMModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = ""
    pricing_model: str
    setup_fee: Optional[Decimal] = None
    monthly_price: Optional[Decimal] = None
    one_time_price: Optional[Decimal] = None
    hosting_fee: Optional[Decimal] = None
    minimum_term_months: Optional[int] = None
    cancellation_fee_type: Optional[str] = None
    cancellation_fee_amount: Optional[Decimal] = None
    included_features: Optional[List[Any]] = []
    max_pages: Optional[int] = None
    display_order: Optional[int] = 0
    is_featured: bool = False
    is_active: bool = True


class AddonCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = ""
    price: Decimal = Field(..., ge=0)
    pricing_type: str
    unit_label: Optional[str] = None
    available_packages: List[str] = []
    display_order: Optional[int] = None
    is_active: bool = True


class AddonUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    pricing_type: Optional[str] = None
    unit_label: Optional[str] = None
    available_packages: Optional[List[str]] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class AddonResponse(ORMModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = ""
    price: Decimal
    pricing_type: str
    unit_label: Optional[str] = None
    available_packages: Optional[List[str]] = []
    display_order: Optional[int] = 0
    is_active: bool = True


# ==================== CLIENT SCHEMAS ====================

class ClientCreate(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)
    contact_name: Optional[str] = None
    notes: Optional[str] = None


class ClientUpdate(BaseModel):
    business_name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    contact_name: Optional[str] = None
    notes: Optional[str] = None


class ClientResponse(ORMModel):
    id: int
    business_name: str
    email: str
    phone: Optional[str] = None
    contact_name: Optional[str] = None
    notes: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime


# ==================== CONSULTATION SCHEMAS ====================

class ConsultationContactBusiness(BaseModel):
    business_name: Optional[str] = None
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    social_linkedin: Optional[str] = None
    social_facebook: Optional[str] = None
    social_instagram: Optional[str] = None
    industry: Optional[str] = None
    business_type: Optional[str] = None


class ConsultationSituation(BaseModel):
    website_status: Optional[str] = None
    primary_challenges: Optional[List[str]] = None
    urgency_level: Optional[str] = None


class ConsultationGoalsBudget(BaseModel):
    primary_goals: Optional[List[str]] = None
    conversion_goal: Optional[str] = None
    budget_range: Optional[str] = None
    timeline: Optional[str] = None


class ConsultationPreferencesNotes(BaseModel):
    design_styles: Optional[List[str]] = None
    admired_websites: Optional[List[str]] = None
    consultation_notes: Optional[str] = None


class ConsultationResponse(ORMModel):
    id: int
    user_id: int
    client_id: Optional[int] = None
    business_name: Optional[str] = None
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    social_linkedin: Optional[str] = None
    social_facebook: Optional[str] = None
    social_instagram: Optional[str] = None
    industry: Optional[str] = None
    business_type: Optional[str] = None
    website_status: Optional[str] = None
    primary_challenges: Optional[List[Any]] = None
    urgency_level: Optional[str] = None
    primary_goals: Optional[List[Any]] = None
    conversion_goal: Optional[str] = None
    budget_range: Optional[str] = None
    timeline: Optional[str] = None
    design_styles: Optional[List[Any]] = None
    admired_websites: Optional[List[Any]] = None
    consultation_notes: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime


# ==================== PROPOSAL SCHEMAS ====================

class ProposalCreate(BaseModel):
    consultation_id: Optional[int] = None
    selected_package_id: Optional[int] = None
    title: Optional[str] = Field(None, max_length=255)


class ProposalUpdate(BaseModel):
    client_business_name: Optional[str] = None
    client_contact_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    client_website: Optional[str] = None
    title: Optional[str] = None
    cover_image: Optional[str] = None
    performance_data: Optional[Dict[str, Any]] = None
    opportunity_content: Optional[str] = None
    current_issues: Optional[List[Any]] = None
    compliance_issues: Optional[List[Any]] = None
    roi_analysis: Optional[Dict[str, Any]] = None
    performance_standards: Optional[List[Any]] = None
    local_advantage_content: Optional[str] = None
    proposed_pages: Optional[List[Any]] = None
    timeline: Optional[List[Any]] = None
    closing_content: Optional[str] = None
    executive_summary: Optional[str] = None
    next_steps: Optional[List[Any]] = None
    selected_package_id: Optional[int] = None
    selected_addons: Optional[List[int]] = None
    custom_pricing: Optional[Dict[str, Any]] = None
    valid_until: Optional[datetime] = None


class ProposalStatusUpdate(BaseModel):
    status: str


class ProposalResponse(ORMModel):
    id: int
    proposal_number: str
    slug: str
    status: str
    consultation_id: Optional[int] = None
    client_id: Optional[int] = None
    client_business_name: Optional[str] = ""
    client_contact_name: Optional[str] = ""
    client_email: Optional[str] = ""
    client_phone: Optional[str] = ""
    client_website: Optional[str] = ""
    title: Optional[str] = None
    cover_image: Optional[str] = None
    performance_data: Optional[Dict[str, Any]] = None
    opportunity_content: Optional[str] = ""
    current_issues: Optional[List[Any]] = None
    compliance_issues: Optional[List[Any]] = None
    roi_analysis: Optional[Dict[str, Any]] = None
    performance_standards: Optional[List[Any]] = None
    local_advantage_content: Optional[str] = ""
    proposed_pages: Optional[List[Any]] = None
    timeline: Optional[List[Any]] = None
    closing_content: Optional[str] = ""
    executive_summary: Optional[str] = ""
    next_steps: Optional[List[Any]] = None
    selected_package_id: Optional[int] = None
    selected_addons: Optional[List[Any]] = None
    custom_pricing: Optional[Dict[str, Any]] = None
    valid_until: Optional[datetime] = None
    view_count: int = 0
    last_viewed_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    client_comments: Optional[str] = ""
    decline_reason: Optional[str] = ""
    revision_request_notes: Optional[str] = ""
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class ProposalAcceptRequest(BaseModel):
    comments: Optional[str] = Field(None, max_length=2000)


class ProposalDeclineRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class ProposalRevisionRequest(BaseModel):
    notes: str = Field(..., min_length=10, max_length=2000)


# ==================== CONTRACT TEMPLATE SCHEMAS ====================

class ContractTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = ""
    cover_page_config: Dict[str, Any] = {}
    terms_content: Optional[str] = ""
    signature_config: Dict[str, Any] = {}
    is_active: bool = True


class ContractTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    cover_page_config: Optional[Dict[str, Any]] = None
    terms_content: Optional[str] = None
    signature_config: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class ContractScheduleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    content: Optional[str] = ""
    package_id: Optional[int] = None
    display_order: Optional[int] = None
    section_category: Optional[str] = "custom"
    is_active: bool = True


class ContractScheduleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = None
    package_id: Optional[int] = None
    display_order: Optional[int] = None
    section_category: Optional[str] = None
    is_active: Optional[bool] = None


class ContractScheduleResponse(ORMModel):
    id: int
    template_id: int
    package_id: Optional[int] = None
    name: str
    display_order: Optional[int] = 0
    section_category: Optional[str] = None
    content: Optional[str] = ""
    is_active: Optional[bool] = True


class ContractTemplateResponse(ORMModel):
    id: int
    name: str
    description: Optional[str] = ""
    version: int
    cover_page_config: Optional[Dict[str, Any]] = None
    terms_content: Optional[str] = ""
    signature_config: Optional[Dict[str, Any]] = None
    is_default: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ContractTemplateDetailResponse(ContractTemplateResponse):
    schedules: List[ContractScheduleResponse] = []


# ==================== CONTRACT SCHEMAS ====================

class ContractCreateFromProposal(BaseModel):
    proposal_id: int
    template_id: Optional[int] = None


class ContractUpdate(BaseModel):
    client_business_name: Optional[str] = None
    client_contact_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    client_address: Optional[str] = None
    services_description: Optional[str] = None
    commencement_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    special_conditions: Optional[str] = None
    total_price: Optional[Decimal] = Field(None, ge=0)
    price_includes_gst: Optional[bool] = None
    payment_terms: Optional[str] = None
    valid_until: Optional[datetime] = None
    agency_signatory_name: Optional[str] = None
    agency_signatory_title: Optional[str] = None
    visible_fields: Optional[List[str]] = None
    included_schedule_ids: Optional[List[int]] = None


class ContractStatusUpdate(BaseModel):
    status: str


class LinkTemplateRequest(BaseModel):
    template_id: int


class ContractResponse(ORMModel):
    id: int
    contract_number: str
    slug: str
    version: int
    status: str
    proposal_id: Optional[int] = None
    template_id: Optional[int] = None
    client_id: Optional[int] = None
    client_business_name: Optional[str] = ""
    client_contact_name: Optional[str] = ""
    client_email: Optional[str] = ""
    client_phone: Optional[str] = ""
    client_address: Optional[str] = ""
    services_description: Optional[str] = ""
    commencement_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    special_conditions: Optional[str] = ""
    total_price: Optional[Decimal] = None
    price_includes_gst: Optional[bool] = True
    payment_terms: Optional[str] = ""
    generated_terms_html: Optional[str] = None
    generated_schedule_html: Optional[str] = None
    valid_until: Optional[datetime] = None
    agency_signatory_name: Optional[str] = None
    agency_signatory_title: Optional[str] = None
    agency_signed_at: Optional[datetime] = None
    client_signatory_name: Optional[str] = None
    client_signatory_title: Optional[str] = None
    client_signed_at: Optional[datetime] = None
    view_count: int = 0
    sent_at: Optional[datetime] = None
    visible_fields: Optional[List[Any]] = None
    included_schedule_ids: Optional[List[Any]] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class ContractSignRequest(BaseModel):
    signatory_name: str = Field(..., min_length=1, max_length=255)
    signatory_title: Optional[str] = Field(None, max_length=100)
    agreed_to_terms: bool


# ==================== QUESTIONNAIRE SCHEMAS ====================

class QuestionnaireCreate(BaseModel):
    client_business_name: str = Field(..., min_length=1)
    client_email: EmailStr
    contract_id: Optional[int] = None
    proposal_id: Optional[int] = None
    consultation_id: Optional[int] = None


class QuestionnaireProgress(BaseModel):
    responses: Dict[str, Any] = {}
    current_section: int = Field(0, ge=0, le=7)


class QuestionnaireResponseSchema(ORMModel):
    id: int
    slug: str
    contract_id: Optional[int] = None
    proposal_id: Optional[int] = None
    consultation_id: Optional[int] = None
    client_business_name: Optional[str] = ""
    client_email: Optional[str] = ""
    responses: Optional[Dict[str, Any]] = None
    current_section: int
    completion_percentage: int
    status: str
    started_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime


# ==================== INVOICE SCHEMAS ====================

class InvoiceLineItemCreate(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal
    is_taxable: bool = True
    category: Optional[str] = None
    package_id: Optional[int] = None
    addon_id: Optional[int] = None


class InvoiceLineItemResponse(ORMModel):
    id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    is_taxable: bool
    sort_order: Optional[int] = 0
    category: Optional[str] = None


class InvoiceCreate(BaseModel):
    client_business_name: str = Field(..., min_length=1)
    client_contact_name: Optional[str] = ""
    client_email: EmailStr
    client_phone: Optional[str] = ""
    client_address: Optional[str] = ""
    client_abn: Optional[str] = ""
    client_id: Optional[int] = None
    proposal_id: Optional[int] = None
    contract_id: Optional[int] = None
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    payment_terms: Optional[str] = None
    payment_terms_custom: Optional[str] = ""
    notes: Optional[str] = ""
    public_notes: Optional[str] = ""
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    discount_description: Optional[str] = ""
    line_items: List[InvoiceLineItemCreate] = Field(..., min_length=1)


class InvoiceUpdate(BaseModel):
    client_business_name: Optional[str] = None
    client_contact_name: Optional[str] = None
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = None
    client_address: Optional[str] = None
    client_abn: Optional[str] = None
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    payment_terms: Optional[str] = None
    payment_terms_custom: Optional[str] = None
    notes: Optional[str] = None
    public_notes: Optional[str] = None
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    discount_description: Optional[str] = None
    line_items: Optional[List[InvoiceLineItemCreate]] = None


class RecordPaymentRequest(BaseModel):
    payment_method: PaymentMethodEnum
    paid_at: Optional[datetime] = None
    payment_reference: Optional[str] = None
    payment_notes: Optional[str] = None


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class InvoiceResponse(ORMModel):
    id: int
    invoice_number: str
    slug: str
    status: str
    proposal_id: Optional[int] = None
    contract_id: Optional[int] = None
    client_id: Optional[int] = None
    client_business_name: str
    client_contact_name: Optional[str] = ""
    client_email: str
    client_phone: Optional[str] = ""
    client_address: Optional[str] = ""
    client_abn: Optional[str] = ""
    issue_date: datetime
    due_date: datetime
    subtotal: Decimal
    discount_amount: Optional[Decimal] = None
    discount_description: Optional[str] = ""
    gst_amount: Decimal
    total: Decimal
    gst_registered: bool
    gst_rate: Decimal
    payment_terms: Optional[str] = None
    payment_terms_custom: Optional[str] = ""
    notes: Optional[str] = ""
    public_notes: Optional[str] = ""
    view_count: int = 0
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    line_items: List[InvoiceLineItemResponse] = []


# ==================== QUOTATION SCHEMAS ====================

class QuotationSectionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    work_items: List[Any] = []
    section_price: Decimal = Field(default=Decimal("0"), ge=0)
    scope_template_id: Optional[int] = None


class QuotationSectionResponse(ORMModel):
    id: int
    scope_template_id: Optional[int] = None
    title: str
    work_items: Optional[List[Any]] = None
    section_price: Decimal
    section_gst: Decimal
    section_total: Decimal
    sort_order: Optional[int] = 0


class TermsBlock(BaseModel):
    title: str
    content: str = ""
    sortOrder: Optional[int] = None


class QuotationCreate(BaseModel):
    client_business_name: str = Field(..., min_length=1)
    client_email: EmailStr
    client_contact_name: Optional[str] = ""
    client_phone: Optional[str] = ""
    client_address: Optional[str] = ""
    site_address: Optional[str] = ""
    site_reference: Optional[str] = ""
    quotation_name: Optional[str] = ""
    template_id: Optional[int] = None
    prepared_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    discount_description: Optional[str] = ""
    sections: List[QuotationSectionCreate] = []
    terms_blocks: List[TermsBlock] = []
    options_notes: Optional[str] = ""
    notes: Optional[str] = ""


class QuotationUpdate(BaseModel):
    quotation_name: Optional[str] = None
    client_business_name: Optional[str] = None
    client_contact_name: Optional[str] = None
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = None
    client_address: Optional[str] = None
    site_address: Optional[str] = None
    site_reference: Optional[str] = None
    prepared_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    options_notes: Optional[str] = None
    notes: Optional[str] = None
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    discount_description: Optional[str] = None
    sections: Optional[List[QuotationSectionCreate]] = None
    terms_blocks: Optional[List[TermsBlock]] = None


class QuotationResponse(ORMModel):
    id: int
    quotation_number: str
    slug: str
    quotation_name: Optional[str] = ""
    status: str
    client_id: Optional[int] = None
    template_id: Optional[int] = None
    client_business_name: Optional[str] = ""
    client_contact_name: Optional[str] = ""
    client_email: Optional[str] = ""
    client_phone: Optional[str] = ""
    client_address: Optional[str] = ""
    site_address: Optional[str] = ""
    site_reference: Optional[str] = ""
    prepared_date: datetime
    expiry_date: datetime
    subtotal: Decimal
    discount_amount: Optional[Decimal] = None
    discount_description: Optional[str] = ""
    gst_amount: Decimal
    total: Decimal
    gst_registered: bool
    gst_rate: Decimal
    terms_blocks: Optional[List[Any]] = None
    options_notes: Optional[str] = ""
    notes: Optional[str] = ""
    view_count: int = 0
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    accepted_by_name: Optional[str] = None
    accepted_by_title: Optional[str] = None
    declined_at: Optional[datetime] = None
    decline_reason: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    sections: List[QuotationSectionResponse] = []


class QuotationAcceptRequest(BaseModel):
    accepted_by_name: str = Field(..., min_length=1, max_length=255)
    accepted_by_title: Optional[str] = Field(None, max_length=255)


# ==================== QUOTATION TEMPLATE SCHEMAS ====================

class ScopeTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = ""
    work_items: List[Any] = []
    default_price: Decimal = Field(default=Decimal("0"), ge=0)
    category: Optional[str] = None
    is_active: bool = True


class ScopeTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    work_items: Optional[List[Any]] = None
    default_price: Optional[Decimal] = Field(None, ge=0)
    category: Optional[str] = None
    is_active: Optional[bool] = None


class ScopeTemplateResponse(ORMModel):
    id: int
    name: str
    description: Optional[str] = ""
    work_items: Optional[List[Any]] = None
    default_price: Optional[Decimal] = None
    category: Optional[str] = None
    is_active: Optional[bool] = True


class TermsTemplateCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: Optional[str] = ""
    is_active: bool = True


class TermsTemplateUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = None
    is_active: Optional[bool] = None


class TermsTemplateResponse(ORMModel):
    id: int
    title: str
    content: Optional[str] = ""
    is_active: Optional[bool] = True


class QuotationTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = ""
    options_notes: Optional[str] = ""
    is_active: bool = True


class QuotationTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    options_notes: Optional[str] = None
    is_active: Optional[bool] = None


class TemplateSectionResponse(ORMModel):
    id: int
    scope_template_id: int
    default_section_price: Optional[Decimal] = None
    sort_order: Optional[int] = 0
    scope_template: Optional[ScopeTemplateResponse] = None


class TemplateTermsResponse(ORMModel):
    id: int
    terms_template_id: int
    sort_order: Optional[int] = 0
    terms_template: Optional[TermsTemplateResponse] = None


class QuotationTemplateResponse(ORMModel):
    id: int
    name: str
    description: Optional[str] = ""
    options_notes: Optional[str] = ""
    is_default: bool
    is_active: Optional[bool] = True
    created_at: datetime
    updated_at: datetime
    sections: List[TemplateSectionResponse] = []
    terms: List[TemplateTermsResponse] = []


class AddTemplateSectionRequest(BaseModel):
    scope_template_id: int
    default_section_price: Optional[Decimal] = Field(None, ge=0)


class AddTemplateTermsRequest(BaseModel):
    terms_template_id: int


# ==================== FORM SCHEMAS ====================

class FormCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    form_type: str
    schema_: Dict[str, Any] = Field(..., alias="schema")
    ui_config: Optional[Dict[str, Any]] = None
    branding: Optional[Dict[str, Any]] = None
    is_active: bool = True
    is_default: bool = False
    requires_auth: bool = False

    model_config = ConfigDict(populate_by_name=True)


class FormUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    form_type: Optional[str] = None
    schema_: Optional[Dict[str, Any]] = Field(None, alias="schema")
    ui_config: Optional[Dict[str, Any]] = None
    branding: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None
    requires_auth: Optional[bool] = None

    model_config = ConfigDict(populate_by_name=True)


class FormResponse(ORMModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    form_type: str
    schema_: Optional[Dict[str, Any]] = Field(None, alias="schema")
    ui_config: Optional[Dict[str, Any]] = None
    branding: Optional[Dict[str, Any]] = None
    is_active: bool
    is_default: bool
    requires_auth: bool
    source_template_id: Optional[int] = None
    is_customized: bool
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class FormFromTemplateRequest(BaseModel):
    template_id: int
    name: Optional[str] = Field(None, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)


class FormTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    category: str
    schema_: Dict[str, Any] = Field(..., alias="schema")
    ui_config: Optional[Dict[str, Any]] = None
    preview_image_url: Optional[str] = None
    is_featured: bool = False
    display_order: Optional[int] = None
    new_until: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)


class FormTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    schema_: Optional[Dict[str, Any]] = Field(None, alias="schema")
    ui_config: Optional[Dict[str, Any]] = None
    preview_image_url: Optional[str] = None
    is_featured: Optional[bool] = None
    display_order: Optional[int] = None
    new_until: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)


class FormTemplateResponse(ORMModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    category: str
    schema_: Optional[Dict[str, Any]] = Field(None, alias="schema")
    ui_config: Optional[Dict[str, Any]] = None
    preview_image_url: Optional[str] = None
    is_featured: Optional[bool] = False
    display_order: Optional[int] = 0
    new_until: Optional[datetime] = None
    usage_count: int = 0

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class TemplateOrderItem(BaseModel):
    id: int
    display_order: int


class TemplateReorderRequest(BaseModel):
    items: List[TemplateOrderItem] = Field(..., min_length=1)


class FieldOptionSetResponse(ORMModel):
    id: int
    agency_id: Optional[int] = None
    name: str
    slug: str
    description: Optional[str] = None
    options: List[Any] = []
    is_system: bool = False


class SubmissionCreate(BaseModel):
    data: Dict[str, Any] = {}
    metadata: Optional[Dict[str, Any]] = None


class ClientSubmissionCreate(BaseModel):
    client_id: Optional[int] = None
    client_business_name: Optional[str] = ""
    client_email: Optional[EmailStr] = None


class SubmissionProgress(BaseModel):
    data: Dict[str, Any] = {}
    current_step: int = Field(0, ge=0)
    completion_percentage: Optional[int] = Field(None, ge=0, le=100)


class SubmissionComplete(BaseModel):
    data: Dict[str, Any] = {}


class SubmissionStatusUpdate(BaseModel):
    status: str
    consultation_id: Optional[int] = None


class SubmissionResponse(ORMModel):
    id: int
    form_id: Optional[int] = None
    slug: Optional[str] = None
    client_id: Optional[int] = None
    client_business_name: Optional[str] = ""
    client_email: Optional[str] = ""
    data: Dict[str, Any] = {}
    current_step: int = 0
    completion_percentage: int = 0
    status: str
    consultation_id: Optional[int] = None
    form_version: int = 1
    created_at: datetime
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


# ==================== EMAIL SCHEMAS ====================

class EmailResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    email_log_id: Optional[int] = None


class EmailLogResponse(ORMModel):
    id: int
    email_type: str
    recipient_email: str
    recipient_name: Optional[str] = None
    subject: str
    status: str
    has_attachment: bool
    attachment_filename: Optional[str] = None
    provider_message_id: Optional[str] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    proposal_id: Optional[int] = None
    invoice_id: Optional[int] = None
    contract_id: Optional[int] = None
    quotation_id: Optional[int] = None
    created_at: datetime


# ==================== ACTIVITY SCHEMAS ====================

class ActivityLogResponse(ORMModel):
    id: int
    agency_id: int
    user_id: Optional[int] = None
    action: str
    entity_type: str
    entity_id: Optional[int] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime


# ==================== SUPER ADMIN SCHEMAS ====================

class AgencyStatusUpdate(BaseModel):
    status: Optional[str] = None
    subscription_tier: Optional[str] = None


class FreemiumGrantRequest(BaseModel):
    reason: str
    expires_at: Optional[datetime] = None


class FreemiumExpiryUpdate(BaseModel):
    expires_at: Optional[datetime] = None


class UserAccessUpdate(BaseModel):
    grant_super_admin: bool = False
    revoke_super_admin: bool = False


class SuspendUserRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class BetaInviteCreate(BaseModel):
    email: EmailStr
    notes: Optional[str] = Field(None, max_length=2000)


class BetaInviteResponse(ORMModel):
    id: int
    email: str
    token: str
    status: str
    created_by: Optional[int] = None
    used_at: Optional[datetime] = None
    used_by_agency_id: Optional[int] = None
    expires_at: datetime
    notes: Optional[str] = None
    created_at: datetime
