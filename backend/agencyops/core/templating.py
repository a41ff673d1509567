"""
Jinja2 rendering for branded emails and PDF documents
"""
from pathlib import Path
from typing import Any, Dict

from jinja2 import Environment, FileSystemLoader, select_autoescape

from agencyops.core.utils import format_currency

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def currency_filter(value):
    """Format number as currency, e.g. $1,234.56"""
    try:
        return format_currency(value or 0)
    except (ValueError, TypeError, ArithmeticError):
        return "$0.00"


def date_filter(value, format=None):
    """``25 Dec 2025`` unless a strftime format is given"""
    if not value:
        return ""
    if format:
        return value.strftime(format)
    return f"{value.day} {value.strftime('%b %Y')}"


env.filters["currency"] = currency_filter
env.filters["date"] = date_filter


def render_template(name: str, **context: Any) -> str:
    return env.get_template(name).render(**context)


def agency_branding(agency, profile=None) -> Dict[str, Any]:
    """Agency identity shared by every email and document layout."""
    address = ""
    if profile:
        parts = [profile.address_line_1, profile.address_line_2, profile.city,
                 profile.state, profile.postcode]
        address = ", ".join(p for p in parts if p)
    return {
        "name": (profile.trading_name if profile else None) or (agency.name if agency else ""),
        "primary_color": (agency.primary_color if agency else None) or "#4F46E5",
        "logo_url": agency.logo_url if agency else "",
        "email": agency.email if agency else "",
        "phone": agency.phone if agency else "",
        "abn": profile.abn if profile else "",
        "address": address,
        "font": profile.brand_font if profile else "",
    }
