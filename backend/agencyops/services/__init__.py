# Services Package
from agencyops.services.user_service import UserService
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.permission_service import AgencyContext
from agencyops.services.agency_service import AgencyService
from agencyops.services.profile_service import AgencyProfileService
from agencyops.services.product_service import PackageService, AddonService
from agencyops.services.client_service import ClientService
from agencyops.services.consultation_service import ConsultationService
from agencyops.services.proposal_service import ProposalService
from agencyops.services.contract_template_service import ContractTemplateService
from agencyops.services.contract_service import ContractService
from agencyops.services.questionnaire_service import QuestionnaireService
from agencyops.services.invoice_service import InvoiceService
from agencyops.services.quotation_template_service import QuotationTemplateService
from agencyops.services.quotation_service import QuotationService
from agencyops.services.form_template_service import FormTemplateService
from agencyops.services.form_service import FormService, seed_field_option_sets
from agencyops.services.beta_invite_service import BetaInviteService
from agencyops.services.email_service import EmailService
from agencyops.services.pdf_service import PdfService
from agencyops.services.super_admin_service import SuperAdminService

__all__ = [
    'UserService',
    'ActivityService',
    'ActivityAction',
    'AgencyContext',
    'AgencyService',
    'AgencyProfileService',
    'PackageService',
    'AddonService',
    'ClientService',
    'ConsultationService',
    'ProposalService',
    'ContractTemplateService',
    'ContractService',
    'QuestionnaireService',
    'InvoiceService',
    'QuotationTemplateService',
    'QuotationService',
    'FormTemplateService',
    'FormService',
    'seed_field_option_sets',
    'BetaInviteService',
    'EmailService',
    'PdfService',
    'SuperAdminService',
]
