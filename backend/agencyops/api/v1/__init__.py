# API v1 Package
from agencyops.api.v1 import auth, agencies, products, clients, consultations, proposals, contract_templates, contracts, questionnaires, invoices, quotations, quotation_templates, forms, emails, public, super_admin

__all__ = [
    'auth',
    'agencies',
    'products',
    'clients',
    'consultations',
    'proposals',
    'contract_templates',
    'contracts',
    'questionnaires',
    'invoices',
    'quotations',
    'quotation_templates',
    'forms',
    'emails',
    'public',
    'super_admin',
]
