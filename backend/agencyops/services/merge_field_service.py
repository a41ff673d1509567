"""
Merge Field Service

Resolves ``{{source.field}}`` placeholders in template HTML from a flat map of
agency, client, proposal, contract, invoice and computed values.
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Dict, Any
import re

import nh3

from agencyops.core.utils import utcnow, money, format_currency, to_decimal

MERGE_FIELD_PATTERN = re.compile(r"\{\{(\w+)\.([a-zA-Z0-9_.]+)\}\}")

CURRENCY_HINTS = ("fee", "price", "total", "amount", "value", "gst")

ALLOWED_TAGS = {
    "h1", "h2", "h3", "h4", "h5", "h6",
    "p", "br", "hr", "ul", "ol", "li",
    "strong", "em", "b", "i", "u", "s",
    "a", "img",
    "table", "thead", "tbody", "tr", "th", "td",
    "div", "span", "blockquote", "pre", "code", "sub", "sup",
}
ALLOWED_ATTRIBUTES = {
    "*": {"class", "style"},
    "a": {"href", "target", "rel"},
    "img": {"src", "alt", "width", "height"},
    "td": {"colspan", "rowspan"},
    "th": {"colspan", "rowspan"},
}

AVAILABLE_MERGE_FIELDS = {
    "agency": [
        "business_name", "trading_name", "legal_entity_name", "abn", "acn",
        "email", "phone", "website", "logo_url",
        "address_line1", "address_line2", "city", "state", "postcode", "country", "full_address",
        "bank_name", "bank_bsb", "bank_account_number", "bank_account_name",
        "gst_registered", "gst_rate",
        "primary_color", "secondary_color", "accent_color", "tagline",
        "social_linkedin", "social_facebook", "social_instagram", "social_twitter",
    ],
    "client": [
        "business_name", "contact_person", "email", "phone", "website",
        "industry", "business_type", "primary_challenges", "urgency_level",
        "primary_goals", "conversion_goal", "budget_range", "timeline",
    ],
    "proposal": [
        "number", "title", "date", "valid_until", "package_name", "package_description",
        "setup_fee", "monthly_price", "one_time_price", "hosting_fee",
        "addons", "subtotal", "gst", "total",
    ],
    "contract": [
        "number", "date", "valid_until", "total_price", "payment_terms",
        "minimum_term", "cancellation_terms", "start_date", "end_date",
        "commencement_date", "completion_date", "services_description", "special_conditions",
        "agency_signatory_name", "agency_signatory_title",
    ],
    "invoice": [
        "number", "date", "due_date", "payment_terms",
        "subtotal", "gst", "total", "amount_paid", "amount_due",
    ],
    "computed": ["current_date", "current_year", "project_duration", "total_contract_value"],
}

PAYMENT_TERMS_LABELS = {
    "DUE_ON_RECEIPT": "Due on Receipt",
    "NET_7": "Net 7 Days",
    "NET_14": "Net 14 Days",
    "NET_30": "Net 30 Days",
}


# ==================== FORMATTING ====================

def format_date(value: Optional[datetime]) -> str:
    """``25 Dec 2025``"""
    if not value:
        return ""
    return f"{value.day} {value.strftime('%b %Y')}"


def format_list(items) -> str:
    return ", ".join(str(item) for item in items or [] if item is not None)


def format_value(field_path: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return format_list(value)
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (datetime, date)):
        return format_date(value)
    if isinstance(value, (int, float, Decimal)):
        if any(hint in field_path for hint in CURRENCY_HINTS):
            return format_currency(value)
        return str(value)
    return str(value)


def sanitize_html(html: Optional[str]) -> str:
    """Strip everything outside the document allow-list."""
    if not html:
        return ""
    return nh3.clean(html, tags=ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES, link_rel=None)


def resolve_merge_fields(template: Optional[str], data: Dict[str, Dict[str, Any]]) -> str:
    """
    Replace each ``{{source.field}}`` token with its formatted value.

    Tokens whose source or field is unknown are left in place so authors can
    spot them in the rendered document.
    """
    if not template:
        return ""

    def replace(match):
        source, field_path = match.group(1), match.group(2)
        value = data.get(source)
        if value is None:
            return match.group(0)
        for part in field_path.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return match.group(0)
        return format_value(field_path, value)

    return MERGE_FIELD_PATTERN.sub(replace, template)


def get_available_merge_fields(source: Optional[str] = None):
    if source:
        return [f"{{{{{source}.{field}}}}}" for field in AVAILABLE_MERGE_FIELDS.get(source, [])]
    return {
        src: [f"{{{{{src}.{field}}}}}" for field in fields]
        for src, fields in AVAILABLE_MERGE_FIELDS.items()
    }


# ==================== BUILDERS ====================

def build_agency_fields(agency, profile) -> Dict[str, Any]:
    address_parts = []
    if profile:
        address_parts = [
            profile.address_line_1, profile.address_line_2, profile.city,
            profile.state, profile.postcode, profile.country,
        ]

    def p(attr, default=""):
        return (getattr(profile, attr, None) if profile else None) or default

    return {
        "business_name": agency.name,
        "trading_name": p("trading_name", agency.name),
        "legal_entity_name": p("legal_entity_name", agency.name),
        "abn": p("abn"),
        "acn": p("acn"),
        "email": agency.email or "",
        "phone": agency.phone or "",
        "website": agency.website or "",
        "logo_url": agency.logo_url or "",
        "address_line1": p("address_line_1"),
        "address_line2": p("address_line_2"),
        "city": p("city"),
        "state": p("state"),
        "postcode": p("postcode"),
        "country": p("country", "Australia"),
        "full_address": ", ".join(part for part in address_parts if part),
        "bank_name": p("bank_name"),
        "bank_bsb": p("bsb"),
        "bank_account_number": p("account_number"),
        "bank_account_name": p("account_name"),
        "gst_registered": profile.gst_registered if profile else True,
        "gst_rate": str(profile.gst_rate) if profile else "10.00",
        "primary_color": agency.primary_color,
        "secondary_color": agency.secondary_color,
        "accent_color": agency.accent_color,
        "tagline": p("tagline"),
        "social_linkedin": p("social_linkedin"),
        "social_facebook": p("social_facebook"),
        "social_instagram": p("social_instagram"),
        "social_twitter": p("social_twitter"),
    }


def build_client_fields(proposal=None, consultation=None) -> Dict[str, Any]:
    """Client values from the proposal snapshot, falling back to the consultation."""
    def pick(proposal_attr, consultation_attr):
        value = getattr(proposal, proposal_attr, None) if proposal and proposal_attr else None
        if not value and consultation:
            value = getattr(consultation, consultation_attr, None)
        return value or ""

    return {
        "business_name": pick("client_business_name", "business_name"),
        "contact_person": pick("client_contact_name", "contact_person"),
        "email": pick("client_email", "email"),
        "phone": pick("client_phone", "phone"),
        "website": pick("client_website", "website"),
        "industry": pick(None, "industry"),
        "business_type": pick(None, "business_type"),
        "primary_challenges": list(getattr(consultation, "primary_challenges", None) or []),
        "urgency_level": pick(None, "urgency_level"),
        "primary_goals": list(getattr(consultation, "primary_goals", None) or []),
        "conversion_goal": pick(None, "conversion_goal"),
        "budget_range": pick(None, "budget_range"),
        "timeline": pick(None, "timeline"),
    }


def proposal_pricing(proposal, package, addons) -> Dict[str, Decimal]:
    """
    Custom pricing overrides package pricing field by field. One-off addons
    join the subtotal; the percentage discount applies before GST.
    """
    custom = (proposal.custom_pricing if proposal else None) or {}

    def price(custom_key, package_attr):
        if custom.get(custom_key) not in (None, ""):
            return to_decimal(custom[custom_key])
        return to_decimal(getattr(package, package_attr, None) if package else None)

    setup_fee = price("setupFee", "setup_fee")
    monthly_price = price("monthlyPrice", "monthly_price")
    one_time_price = price("oneTimePrice", "one_time_price")
    hosting_fee = price("hostingFee", "hosting_fee")
    addons_total = sum(
        (to_decimal(a.price) for a in addons or [] if a.pricing_type != "monthly"),
        Decimal("0")
    )
    discount_percent = to_decimal(custom.get("discountPercent") or 0)

    subtotal = (setup_fee + one_time_price + addons_total) * (Decimal("1") - discount_percent / Decimal("100"))
    gst = subtotal * Decimal("0.1")
    return {
        "setup_fee": money(setup_fee),
        "monthly_price": money(monthly_price),
        "one_time_price": money(one_time_price),
        "hosting_fee": money(hosting_fee),
        "addons_total": money(addons_total),
        "discount_percent": discount_percent,
        "subtotal": money(subtotal),
        "gst": money(gst),
        "total": money(subtotal + gst),
    }


def build_proposal_fields(proposal, package=None, addons: Optional[List] = None) -> Dict[str, Any]:
    pricing = proposal_pricing(proposal, package, addons)
    return {
        "number": proposal.proposal_number if proposal else "",
        "title": proposal.title if proposal else "",
        "date": proposal.created_at if proposal else None,
        "valid_until": proposal.valid_until if proposal else None,
        "package_name": package.name if package else "",
        "package_description": package.description if package else "",
        "setup_fee": pricing["setup_fee"],
        "monthly_price": pricing["monthly_price"],
        "one_time_price": pricing["one_time_price"],
        "hosting_fee": pricing["hosting_fee"],
        "addons": format_list(a.name for a in addons or []),
        "subtotal": pricing["subtotal"],
        "gst": pricing["gst"],
        "total": pricing["total"],
    }


def build_contract_fields(contract, package=None) -> Dict[str, Any]:
    minimum_term = ""
    cancellation_terms = ""
    if package:
        if package.minimum_term_months:
            minimum_term = f"{package.minimum_term_months} months"
        if package.cancellation_fee_type == "fixed":
            cancellation_terms = f"Cancellation fee of {format_currency(package.cancellation_fee_amount)}"
        elif package.cancellation_fee_type == "remaining_balance":
            cancellation_terms = "Remaining balance of the minimum term is payable on cancellation"

    return {
        "number": contract.contract_number or "",
        "date": contract.created_at or utcnow(),
        "valid_until": contract.valid_until,
        "total_price": contract.total_price,
        "payment_terms": contract.payment_terms or "",
        "minimum_term": minimum_term,
        "cancellation_terms": cancellation_terms,
        "start_date": contract.commencement_date,
        "end_date": contract.completion_date,
        "commencement_date": contract.commencement_date,
        "completion_date": contract.completion_date,
        "services_description": contract.services_description or "",
        "special_conditions": contract.special_conditions or "",
        "agency_signatory_name": contract.agency_signatory_name or "",
        "agency_signatory_title": contract.agency_signatory_title or "",
    }


def build_invoice_fields(invoice) -> Dict[str, Any]:
    paid = invoice.total if invoice.status == "paid" else Decimal("0")
    return {
        "number": invoice.invoice_number,
        "date": invoice.issue_date,
        "due_date": invoice.due_date,
        "payment_terms": PAYMENT_TERMS_LABELS.get(invoice.payment_terms, invoice.payment_terms or ""),
        "subtotal": invoice.subtotal,
        "gst": invoice.gst_amount,
        "total": invoice.total,
        "amount_paid": money(paid),
        "amount_due": money(to_decimal(invoice.total) - to_decimal(paid)),
    }


def build_computed_fields(contract=None, package=None) -> Dict[str, Any]:
    now = utcnow()
    project_duration = ""
    if contract and contract.commencement_date and contract.completion_date:
        days = (contract.completion_date - contract.commencement_date).days
        weeks = max(1, round(days / 7))
        project_duration = f"{weeks} week{'s' if weeks != 1 else ''}"

    total_contract_value = ""
    if contract and contract.total_price is not None:
        value = to_decimal(contract.total_price)
        if package and package.monthly_price and package.minimum_term_months:
            value += to_decimal(package.monthly_price) * package.minimum_term_months
        total_contract_value = format_currency(value)

    return {
        "current_date": format_date(now),
        "current_year": str(now.year),
        "project_duration": project_duration,
        "total_contract_value": total_contract_value,
    }


def build_merge_data(
    agency=None,
    profile=None,
    proposal=None,
    consultation=None,
    package=None,
    addons: Optional[List] = None,
    contract=None,
    invoice=None,
) -> Dict[str, Dict[str, Any]]:
    """Assemble the source map; sources without data are omitted so their tokens stay unresolved."""
    data = {"computed": build_computed_fields(contract, package)}
    if proposal:
        data["proposal"] = build_proposal_fields(proposal, package, addons)
    if agency:
        data["agency"] = build_agency_fields(agency, profile)
    if proposal or consultation:
        data["client"] = build_client_fields(proposal, consultation)
    if contract:
        data["contract"] = build_contract_fields(contract, package)
    if invoice:
        data["invoice"] = build_invoice_fields(invoice)
    return data
