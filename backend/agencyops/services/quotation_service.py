"""
Quotation Service - Scoped quotations with per-section GST and expiry dates
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from agencyops.core.utils import utcnow, end_of_day, to_decimal, money, generate_unique_slug
from agencyops.models import (
    Quotation, QuotationScopeSection, QuotationStatus, QuotationTemplate,
    AgencyMembership, User
)
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.client_service import ClientService
from agencyops.services.permission_service import (
    AgencyContext, require_permission, require_access, require_modify, require_delete
)
from agencyops.services.profile_service import AgencyProfileService

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY_DAYS = 60
RESPONDABLE = (QuotationStatus.SENT, QuotationStatus.VIEWED)

EDITABLE_FIELDS = (
    "quotation_name", "client_business_name", "client_contact_name", "client_email",
    "client_phone", "client_address", "site_address", "site_reference",
    "prepared_date", "expiry_date", "options_notes", "notes",
    "discount_amount", "discount_description",
)


def effective_quotation_status(quotation: Quotation, now: Optional[datetime] = None) -> str:
    """Sent or viewed quotations expire after the end of their expiry day."""
    if quotation.status in RESPONDABLE and (now or utcnow()) > end_of_day(quotation.expiry_date):
        return QuotationStatus.EXPIRED
    return quotation.status


def calculate_section_totals(section_price, gst_registered: bool, gst_rate) -> Dict[str, Decimal]:
    price = to_decimal(section_price)
    gst = price * to_decimal(gst_rate) / Decimal("100") if gst_registered else Decimal("0")
    return {"section_gst": money(gst), "section_total": money(price + gst)}


def calculate_quotation_totals(sections, gst_registered: bool, gst_rate, discount_amount=0) -> Dict[str, Decimal]:
    """GST applies to the discounted subtotal."""
    subtotal = sum((to_decimal(_section_price(s)) for s in sections), Decimal("0"))
    discount = to_decimal(discount_amount)
    gst = (subtotal - discount) * to_decimal(gst_rate) / Decimal("100") if gst_registered else Decimal("0")
    return {
        "subtotal": money(subtotal),
        "gst_amount": money(gst),
        "total": money(subtotal - discount + gst),
    }


def _section_price(section):
    if isinstance(section, dict):
        return section.get("section_price")
    return section.section_price


def normalize_terms_blocks(blocks: Optional[List[dict]]) -> List[dict]:
    return [
        {"title": b["title"], "content": b.get("content") or "", "sortOrder": b.get("sort_order", b.get("sortOrder", i))}
        for i, b in enumerate(blocks or [])
    ]


class QuotationService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    def _gst_settings(self, agency_id: int):
        profile = AgencyProfileService(self.db).get_profile(agency_id)
        if not profile:
            return True, Decimal("10.00"), DEFAULT_VALIDITY_DAYS
        return profile.gst_registered, profile.gst_rate, profile.default_quotation_validity_days or DEFAULT_VALIDITY_DAYS

    def _build_sections(self, sections: List[dict], gst_registered: bool, gst_rate) -> List[QuotationScopeSection]:
        built = []
        for index, section in enumerate(sections or []):
            price = money(section.get("section_price"))
            built.append(QuotationScopeSection(
                title=section["title"],
                work_items=list(section.get("work_items") or []),
                section_price=price,
                sort_order=section.get("sort_order", index),
                scope_template_id=section.get("scope_template_id"),
                **calculate_section_totals(price, gst_registered, gst_rate)
            ))
        return built

    # ---------- queries ----------

    def get_by_id(self, quotation_id: int, agency_id: int) -> Optional[Quotation]:
        return self.db.query(Quotation).options(joinedload(Quotation.sections)).filter(
            Quotation.id == quotation_id,
            Quotation.agency_id == agency_id
        ).first()

    def get_by_slug(self, slug: str) -> Optional[Quotation]:
        return self.db.query(Quotation).filter(Quotation.slug == slug).first()

    def get_quotations(self, ctx: AgencyContext, status: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        creator_name = func.coalesce(func.nullif(AgencyMembership.display_name, ""), User.email)
        query = self.db.query(Quotation, creator_name)\
            .outerjoin(User, Quotation.created_by == User.id)\
            .outerjoin(AgencyMembership, (AgencyMembership.user_id == Quotation.created_by) &
                       (AgencyMembership.agency_id == Quotation.agency_id))\
            .filter(Quotation.agency_id == ctx.agency_id)
        if not ctx.can("quotation:view_all"):
            query = query.filter(Quotation.created_by == ctx.user_id)
        if status and status != QuotationStatus.EXPIRED:
            query = query.filter(Quotation.status == status)

        now = utcnow()
        results = []
        for quotation, name in query.order_by(Quotation.created_at.desc(), Quotation.id.desc()).all():
            effective = effective_quotation_status(quotation, now)
            if status == QuotationStatus.EXPIRED and effective != QuotationStatus.EXPIRED:
                continue
            if search:
                needle = search.lower()
                haystack = (quotation.quotation_number, quotation.client_business_name,
                            quotation.client_email, quotation.quotation_name)
                if not any(needle in (value or "").lower() for value in haystack):
                    continue
            results.append({"quotation": quotation, "effective_status": effective, "creator_name": name})
        return results

    def get_quotation(self, ctx: AgencyContext, quotation_id: int) -> Optional[Quotation]:
        quotation = self.get_by_id(quotation_id, ctx.agency_id)
        if quotation:
            require_access(ctx, "quotation", quotation.created_by)
        return quotation

    def get_quotation_stats(self, agency_id: int) -> Dict[str, Any]:
        stats = {f"{bucket}_{kind}": (0 if kind == "count" else Decimal("0.00"))
                 for bucket in ("draft", "awaiting", "accepted", "expired") for kind in ("count", "total")}
        now = utcnow()
        for quotation in self.db.query(Quotation).filter(Quotation.agency_id == agency_id).all():
            bucket = {
                QuotationStatus.DRAFT: "draft",
                QuotationStatus.SENT: "awaiting",
                QuotationStatus.VIEWED: "awaiting",
                QuotationStatus.ACCEPTED: "accepted",
                QuotationStatus.EXPIRED: "expired",
            }.get(effective_quotation_status(quotation, now))
            if bucket:
                stats[f"{bucket}_count"] += 1
                stats[f"{bucket}_total"] += to_decimal(quotation.total)
        return stats

    def get_quotation_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        quotation = self.get_by_slug(slug)
        if not quotation:
            return None
        return {
            "quotation": quotation,
            "effective_status": effective_quotation_status(quotation),
            "agency": quotation.agency,
            "agency_profile": AgencyProfileService(self.db).get_profile(quotation.agency_id),
        }

    def get_template_for_quotation(self, ctx: AgencyContext, template_id: int) -> Optional[Dict[str, Any]]:
        """Sections and terms blocks ready to pre-populate a new quotation."""
        template = self.db.query(QuotationTemplate).filter(
            QuotationTemplate.id == template_id,
            QuotationTemplate.agency_id == ctx.agency_id,
            QuotationTemplate.is_active == True  # noqa: E712
        ).first()
        if not template:
            return None

        sections = [
            {
                "title": link.scope_template.name,
                "work_items": list(link.scope_template.work_items or []),
                "section_price": link.default_section_price if link.default_section_price is not None
                else (link.scope_template.default_price or Decimal("0.00")),
                "scope_template_id": link.scope_template_id,
                "sort_order": link.sort_order,
            }
            for link in template.sections
        ]
        terms_blocks = [
            {"title": link.terms_template.title, "content": link.terms_template.content, "sort_order": link.sort_order}
            for link in template.terms
        ]
        return {"template": template, "sections": sections, "terms_blocks": terms_blocks}

    # ---------- commands ----------

    def create_quotation(self, ctx: AgencyContext, data: dict) -> Quotation:
        require_permission(ctx, "quotation:create")
        gst_registered, gst_rate, validity_days = self._gst_settings(ctx.agency_id)

        client, _ = ClientService(self.db).get_or_create_client(
            ctx.agency_id,
            data["client_business_name"],
            data["client_email"],
            contact_name=data.get("client_contact_name")
        )

        prepared_date = data.get("prepared_date") or utcnow()
        expiry_date = data.get("expiry_date") or prepared_date + timedelta(days=validity_days)
        discount = money(data.get("discount_amount") or 0)
        sections = self._build_sections(data.get("sections") or [], gst_registered, gst_rate)

        quotation = Quotation(
            agency_id=ctx.agency_id,
            client_id=client.id,
            template_id=data.get("template_id"),
            quotation_number=AgencyProfileService(self.db).get_next_document_number(ctx.agency_id, "quotation"),
            slug=generate_unique_slug(self.db, Quotation, fallback_prefix="quo"),
            quotation_name=data.get("quotation_name") or "",
            status=QuotationStatus.DRAFT,
            client_business_name=data["client_business_name"],
            client_contact_name=data.get("client_contact_name") or "",
            client_email=data["client_email"],
            client_phone=data.get("client_phone") or "",
            client_address=data.get("client_address") or "",
            site_address=data.get("site_address") or "",
            site_reference=data.get("site_reference") or "",
            prepared_date=prepared_date,
            expiry_date=expiry_date,
            discount_amount=discount,
            discount_description=data.get("discount_description") or "",
            gst_registered=gst_registered,
            gst_rate=gst_rate,
            terms_blocks=normalize_terms_blocks(data.get("terms_blocks")),
            options_notes=data.get("options_notes") or "",
            notes=data.get("notes") or "",
            created_by=ctx.user_id,
            **calculate_quotation_totals(sections, gst_registered, gst_rate, discount)
        )
        quotation.sections = sections
        self.db.add(quotation)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.QUOTATION_CREATED, "quotation", quotation.id,
                              new_values={"quotation_number": quotation.quotation_number})
        return quotation

    def update_quotation(self, ctx: AgencyContext, quotation_id: int, data: dict) -> Optional[Quotation]:
        quotation = self.get_by_id(quotation_id, ctx.agency_id)
        if not quotation:
            return None
        require_modify(ctx, "quotation", quotation.created_by)
        if quotation.status != QuotationStatus.DRAFT:
            raise ValueError("Can only edit draft quotations")

        updates = {k: data[k] for k in EDITABLE_FIELDS if k in data and data[k] is not None}
        if "discount_amount" in updates:
            updates["discount_amount"] = money(updates["discount_amount"])
        old_values = {k: getattr(quotation, k) for k in updates}
        for key, value in updates.items():
            setattr(quotation, key, value)
        if data.get("terms_blocks") is not None:
            quotation.terms_blocks = normalize_terms_blocks(data["terms_blocks"])

        if data.get("sections") is not None:
            quotation.sections = self._build_sections(data["sections"], quotation.gst_registered, quotation.gst_rate)
            updates["sections"] = len(quotation.sections)
        if "sections" in updates or "discount_amount" in updates:
            totals = calculate_quotation_totals(
                quotation.sections, quotation.gst_registered, quotation.gst_rate, quotation.discount_amount
            )
            for key, value in totals.items():
                setattr(quotation, key, value)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.QUOTATION_UPDATED, "quotation", quotation.id,
                              old_values=old_values, new_values=updates)
        return quotation

    def delete_quotation(self, ctx: AgencyContext, quotation_id: int) -> bool:
        quotation = self.get_by_id(quotation_id, ctx.agency_id)
        if not quotation:
            return False
        require_delete(ctx, "quotation", quotation.created_by)
        if quotation.status != QuotationStatus.DRAFT:
            raise ValueError("Can only delete draft quotations")

        number = quotation.quotation_number
        self.db.delete(quotation)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.QUOTATION_DELETED, "quotation", quotation_id,
                              old_values={"quotation_number": number})
        return True

    def duplicate_quotation(self, ctx: AgencyContext, quotation_id: int) -> Optional[Quotation]:
        require_permission(ctx, "quotation:create")
        original = self.get_by_id(quotation_id, ctx.agency_id)
        if not original:
            return None
        _, _, validity_days = self._gst_settings(ctx.agency_id)

        prepared_date = utcnow()
        copy = Quotation(
            agency_id=ctx.agency_id,
            client_id=original.client_id,
            template_id=original.template_id,
            quotation_number=AgencyProfileService(self.db).get_next_document_number(ctx.agency_id, "quotation"),
            slug=generate_unique_slug(self.db, Quotation, fallback_prefix="quo"),
            quotation_name=f"{original.quotation_name} (Copy)" if original.quotation_name else "",
            status=QuotationStatus.DRAFT,
            client_business_name=original.client_business_name,
            client_contact_name=original.client_contact_name,
            client_email=original.client_email,
            client_phone=original.client_phone,
            client_address=original.client_address,
            site_address=original.site_address,
            site_reference=original.site_reference,
            prepared_date=prepared_date,
            expiry_date=prepared_date + timedelta(days=validity_days),
            subtotal=original.subtotal,
            discount_amount=original.discount_amount,
            discount_description=original.discount_description,
            gst_amount=original.gst_amount,
            total=original.total,
            gst_registered=original.gst_registered,
            gst_rate=original.gst_rate,
            terms_blocks=list(original.terms_blocks or []),
            options_notes=original.options_notes,
            notes=original.notes,
            created_by=ctx.user_id,
        )
        copy.sections = [
            QuotationScopeSection(
                title=s.title,
                work_items=list(s.work_items or []),
                section_price=s.section_price,
                section_gst=s.section_gst,
                section_total=s.section_total,
                sort_order=s.sort_order,
                scope_template_id=s.scope_template_id,
            )
            for s in original.sections
        ]
        self.db.add(copy)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.QUOTATION_DUPLICATED, "quotation", copy.id,
                              new_values={"quotation_number": copy.quotation_number, "original_id": original.id})
        return copy

    def send_quotation(self, ctx: AgencyContext, quotation_id: int) -> Optional[Quotation]:
        """Mark as sent; re-sending keeps the first sent_at."""
        require_permission(ctx, "quotation:send")
        quotation = self.get_by_id(quotation_id, ctx.agency_id)
        if not quotation:
            return None
        if quotation.status not in (QuotationStatus.DRAFT, QuotationStatus.SENT):
            raise ValueError("Quotation must be in draft or sent status to send")

        now = utcnow()
        quotation.status = QuotationStatus.SENT
        quotation.sent_at = quotation.sent_at or now
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.QUOTATION_SENT, "quotation", quotation.id,
                              new_values={"sent_at": now})
        return quotation

    # ---------- public ----------

    def record_quotation_view(self, slug: str) -> bool:
        quotation = self.get_by_slug(slug)
        if not quotation:
            return False
        quotation.view_count = Quotation.view_count + 1
        quotation.last_viewed_at = utcnow()
        if quotation.status == QuotationStatus.SENT:
            quotation.status = QuotationStatus.VIEWED
        self.db.flush()
        return True

    def accept_quotation(self, slug: str, accepted_by_name: str, accepted_by_title: Optional[str] = None) -> Optional[Quotation]:
        if not (accepted_by_name or "").strip():
            raise ValueError("Name is required to accept")
        quotation = self.get_by_slug(slug)
        if not quotation:
            return None
        if effective_quotation_status(quotation) not in RESPONDABLE:
            raise ValueError("Quotation is not available for acceptance")

        now = utcnow()
        quotation.status = QuotationStatus.ACCEPTED
        quotation.accepted_by_name = accepted_by_name.strip()
        quotation.accepted_by_title = accepted_by_title or None
        quotation.accepted_at = now
        self.db.flush()

        self.activity.log(
            agency_id=quotation.agency_id,
            action=ActivityAction.QUOTATION_ACCEPTED,
            entity_type="quotation",
            entity_id=quotation.id,
            new_values={"accepted_by_name": quotation.accepted_by_name, "accepted_at": now}
        )
        return quotation

    def decline_quotation(self, slug: str, reason: Optional[str] = None) -> Optional[Quotation]:
        quotation = self.get_by_slug(slug)
        if not quotation:
            return None
        if effective_quotation_status(quotation) not in RESPONDABLE:
            raise ValueError("Quotation is not available for declining")

        now = utcnow()
        quotation.status = QuotationStatus.DECLINED
        quotation.declined_at = now
        quotation.decline_reason = reason or ""
        self.db.flush()

        self.activity.log(
            agency_id=quotation.agency_id,
            action=ActivityAction.QUOTATION_DECLINED,
            entity_type="quotation",
            entity_id=quotation.id,
            new_values={"declined_at": now, "reason": reason or ""}
        )
        return quotation
