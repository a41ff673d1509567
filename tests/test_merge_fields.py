from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

from agencyops.services.merge_field_service import (
    build_merge_data, format_date, get_available_merge_fields, proposal_pricing, resolve_merge_fields, sanitize_html
)

DATA = {
    "client": {"business_name": "Harbour Cafe", "contact_person": "Sam Lee"},
    "contract": {"total_price": Decimal("1234.5"), "start_date": datetime(2025, 12, 25), "minimum_term": 12},
    "agency": {"gst_registered": True},
}


def test_resolves_known_tokens():
    text = resolve_merge_fields("Dear {{client.contact_person}} of {{client.business_name}}", DATA)
    assert text == "Dear Sam Lee of Harbour Cafe"


def test_unknown_tokens_stay_in_place():
    text = resolve_merge_fields("{{client.shoe_size}} {{nowhere.field}}", DATA)
    assert text == "{{client.shoe_size}} {{nowhere.field}}"


def test_value_formatting():
    assert resolve_merge_fields("{{contract.total_price}}", DATA) == "$1,234.50"
    assert resolve_merge_fields("{{contract.start_date}}", DATA) == "25 Dec 2025"
    assert resolve_merge_fields("{{contract.minimum_term}}", DATA) == "12"
    assert resolve_merge_fields("{{agency.gst_registered}}", DATA) == "Yes"


def test_empty_template():
    assert resolve_merge_fields(None, DATA) == ""
    assert format_date(None) == ""


def test_missing_proposal_leaves_tokens_visible():
    data = build_merge_data()
    assert set(data) == {"computed"}
    text = resolve_merge_fields("{{proposal.total}} by {{computed.current_year}}", data)
    assert text.startswith("{{proposal.total}} by ")
    assert not text.endswith("{{computed.current_year}}")


def test_available_fields():
    assert "{{invoice.amount_due}}" in get_available_merge_fields("invoice")
    assert get_available_merge_fields("unknown") == []
    assert set(get_available_merge_fields()) >= {"agency", "client", "proposal", "contract", "invoice", "computed"}


def test_sanitize_strips_scripts():
    cleaned = sanitize_html('<p onclick="x()">Hi</p><script>alert(1)</script>')
    assert "<script>" not in cleaned
    assert "onclick" not in cleaned
    assert "<p>Hi</p>" in cleaned


def test_custom_pricing_overrides_package():
    package = SimpleNamespace(setup_fee=Decimal("1000"), monthly_price=Decimal("99"),
                              one_time_price=Decimal("0"), hosting_fee=Decimal("0"))
    proposal = SimpleNamespace(custom_pricing={"setupFee": "2000", "discountPercent": 10})
    addons = [SimpleNamespace(price=Decimal("500"), pricing_type="one_time"),
              SimpleNamespace(price=Decimal("30"), pricing_type="monthly")]

    pricing = proposal_pricing(proposal, package, addons)
    assert pricing["setup_fee"] == Decimal("2000.00")
    assert pricing["monthly_price"] == Decimal("99.00")
    assert pricing["subtotal"] == Decimal("2250.00")
    assert pricing["total"] == Decimal("2475.00")
