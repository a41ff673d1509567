"""
Invoice Service - Invoices, line items, payments and exports
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any, Iterable
import logging

from sqlalchemy import or_, func
from sqlalchemy.orm import Session, joinedload

from agencyops.core.utils import utcnow, end_of_day, to_decimal, money, generate_unique_slug
from agencyops.models import (
    Contract, ContractStatus, Invoice, InvoiceLineItem, InvoiceStatus, Proposal, ProposalStatus
)
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.permission_service import (
    AgencyContext, require_permission, require_access, require_modify, require_delete
)
from agencyops.services.product_service import AddonService
from agencyops.services.profile_service import AgencyProfileService

logger = logging.getLogger(__name__)

PAYMENT_TERMS_DAYS = {
    "DUE_ON_RECEIPT": 0,
    "NET_7": 7,
    "NET_14": 14,
    "NET_30": 30,
}
DEFAULT_TERMS_DAYS = 14
PAYMENT_METHODS = ("bank_transfer", "card", "cash", "other")
LINE_CATEGORIES = ("setup", "development", "hosting", "addon", "other")

AWAITING = (InvoiceStatus.SENT, InvoiceStatus.VIEWED)
CLOSED = (InvoiceStatus.PAID, InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED)

CLIENT_FIELDS = (
    "client_business_name", "client_contact_name", "client_email",
    "client_phone", "client_address", "client_abn",
)
EDITABLE_FIELDS = CLIENT_FIELDS + (
    "issue_date", "due_date", "payment_terms", "payment_terms_custom",
    "notes", "public_notes", "discount_amount", "discount_description",
)


def calculate_due_date(issue_date: datetime, payment_terms: Optional[str]) -> datetime:
    return issue_date + timedelta(days=PAYMENT_TERMS_DAYS.get(payment_terms, DEFAULT_TERMS_DAYS))


def calculate_invoice_totals(line_items: Iterable, gst_registered: bool, gst_rate, discount_amount=0) -> Dict[str, Decimal]:
    """
    Sum line amounts, apply GST to the taxable lines only, then subtract the discount.

    ``line_items`` may be ORM rows or dicts carrying ``amount`` and ``is_taxable``.
    """
    subtotal = Decimal("0")
    taxable = Decimal("0")
    for item in line_items:
        if isinstance(item, dict):
            amount, is_taxable = item.get("amount"), item.get("is_taxable", True)
        else:
            amount, is_taxable = item.amount, item.is_taxable
        amount = to_decimal(amount)
        subtotal += amount
        if is_taxable is not False:
            taxable += amount

    gst = taxable * to_decimal(gst_rate) / Decimal("100") if gst_registered else Decimal("0")
    return {
        "subtotal": money(subtotal),
        "gst_amount": money(gst),
        "total": money(subtotal - to_decimal(discount_amount) + gst),
    }


def build_line_items(items: List[dict]) -> List[InvoiceLineItem]:
    lines = []
    for index, item in enumerate(items or []):
        quantity = to_decimal(item.get("quantity") or 1)
        unit_price = to_decimal(item.get("unit_price"))
        lines.append(InvoiceLineItem(
            description=item["description"],
            quantity=money(quantity),
            unit_price=money(unit_price),
            amount=money(quantity * unit_price),
            is_taxable=item.get("is_taxable", True) is not False,
            sort_order=index,
            category=item.get("category") or None,
            package_id=item.get("package_id"),
            addon_id=item.get("addon_id"),
        ))
    return lines


def is_past_due(invoice: Invoice, now: Optional[datetime] = None) -> bool:
    return invoice.status in AWAITING and (now or utcnow()) > end_of_day(invoice.due_date)


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    # ---------- overdue ----------

    def _mark_overdue(self, invoices: List[Invoice]) -> List[Invoice]:
        """Persist the overdue status for awaiting invoices past their due date."""
        now = utcnow()
        changed = False
        for invoice in invoices:
            if is_past_due(invoice, now):
                invoice.status = InvoiceStatus.OVERDUE
                changed = True
        if changed:
            self.db.flush()
        return invoices

    # ---------- queries ----------

    def get_by_id(self, invoice_id: int, agency_id: int) -> Optional[Invoice]:
        return self.db.query(Invoice).options(joinedload(Invoice.line_items)).filter(
            Invoice.id == invoice_id,
            Invoice.agency_id == agency_id
        ).first()

    def get_invoices(
        self,
        ctx: AgencyContext,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        search: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None
    ) -> List[Invoice]:
        query = self.db.query(Invoice).filter(Invoice.agency_id == ctx.agency_id)
        if not ctx.can("invoice:view_all"):
            query = query.filter(Invoice.created_by == ctx.user_id)
        if status:
            query = query.filter(Invoice.status == status)
        if client_id:
            query = query.filter(Invoice.client_id == client_id)
        if from_date:
            query = query.filter(Invoice.issue_date >= from_date)
        if to_date:
            query = query.filter(Invoice.issue_date <= to_date)
        if search:
            term = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(Invoice.invoice_number).like(term),
                func.lower(Invoice.client_business_name).like(term),
                func.lower(Invoice.client_email).like(term),
            ))
        invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
        return self._mark_overdue(invoices)

    def get_invoice(self, ctx: AgencyContext, invoice_id: int) -> Optional[Invoice]:
        invoice = self.get_by_id(invoice_id, ctx.agency_id)
        if not invoice:
            return None
        require_access(ctx, "invoice", invoice.created_by)
        self._mark_overdue([invoice])
        return invoice

    def get_invoice_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        invoice = self.db.query(Invoice).options(joinedload(Invoice.line_items)).filter(
            Invoice.slug == slug
        ).first()
        if not invoice:
            return None
        self._mark_overdue([invoice])
        return {
            "invoice": invoice,
            "agency": invoice.agency,
            "agency_profile": AgencyProfileService(self.db).get_profile(invoice.agency_id),
        }

    def get_invoice_stats(self, agency_id: int) -> Dict[str, Any]:
        rows = self.db.query(Invoice.status, Invoice.total, Invoice.due_date).filter(
            Invoice.agency_id == agency_id
        ).all()

        stats = {f"{bucket}_{kind}": (0 if kind == "count" else Decimal("0.00"))
                 for bucket in ("draft", "awaiting", "overdue", "paid") for kind in ("count", "total")}
        now = utcnow()
        for status, total, due_date in rows:
            if status in AWAITING and now > end_of_day(due_date):
                status = InvoiceStatus.OVERDUE
            bucket = {
                InvoiceStatus.DRAFT: "draft",
                InvoiceStatus.SENT: "awaiting",
                InvoiceStatus.VIEWED: "awaiting",
                InvoiceStatus.OVERDUE: "overdue",
                InvoiceStatus.PAID: "paid",
            }.get(status)
            if bucket:
                stats[f"{bucket}_count"] += 1
                stats[f"{bucket}_total"] += to_decimal(total)
        return stats

    # ---------- creation ----------

    def _new_invoice(self, ctx: AgencyContext, values: dict, items: List[dict], discount_amount=0) -> Invoice:
        profile_service = AgencyProfileService(self.db)
        profile = profile_service.get_profile(ctx.agency_id)
        gst_registered = profile.gst_registered if profile else True
        gst_rate = profile.gst_rate if profile else Decimal("10.00")

        issue_date = values.pop("issue_date", None) or utcnow()
        payment_terms = values.pop("payment_terms", None) or (profile.default_payment_terms if profile else None) or "NET_14"
        due_date = values.pop("due_date", None) or calculate_due_date(issue_date, payment_terms)

        lines = build_line_items(items)
        totals = calculate_invoice_totals(lines, gst_registered, gst_rate, discount_amount)

        invoice = Invoice(
            agency_id=ctx.agency_id,
            invoice_number=profile_service.get_next_document_number(ctx.agency_id, "invoice"),
            slug=generate_unique_slug(self.db, Invoice, fallback_prefix="inv"),
            status=InvoiceStatus.DRAFT,
            issue_date=issue_date,
            due_date=due_date,
            payment_terms=payment_terms,
            discount_amount=money(discount_amount),
            gst_registered=gst_registered,
            gst_rate=gst_rate,
            created_by=ctx.user_id,
            **totals,
            **values
        )
        invoice.line_items = lines
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def create_invoice(self, ctx: AgencyContext, data: dict) -> Invoice:
        require_permission(ctx, "invoice:create")

        values = {k: data.get(k) or "" for k in CLIENT_FIELDS}
        for key in ("proposal_id", "contract_id", "client_id", "issue_date", "due_date", "payment_terms"):
            values[key] = data.get(key)
        for key in ("payment_terms_custom", "notes", "public_notes", "discount_description"):
            values[key] = data.get(key) or ""

        invoice = self._new_invoice(ctx, values, data.get("line_items") or [], data.get("discount_amount") or 0)
        self.activity.log_for(ctx, ActivityAction.INVOICE_CREATED, "invoice", invoice.id,
                              new_values={"invoice_number": invoice.invoice_number})
        return invoice

    def create_invoice_from_proposal(self, ctx: AgencyContext, proposal_id: int) -> Optional[Invoice]:
        require_permission(ctx, "invoice:create")
        proposal = self.db.query(Proposal).filter(
            Proposal.id == proposal_id,
            Proposal.agency_id == ctx.agency_id
        ).first()
        if not proposal:
            return None
        if proposal.status != ProposalStatus.ACCEPTED:
            raise ValueError("Can only create invoice from accepted proposal")

        items = []
        package = proposal.selected_package
        if package:
            if to_decimal(package.setup_fee) > 0:
                items.append({"description": f"{package.name} - Setup & Development", "unit_price": package.setup_fee,
                              "category": "setup", "package_id": package.id})
            if package.pricing_model == "lump_sum" and to_decimal(package.one_time_price) > 0:
                items.append({"description": f"{package.name} - Website Development", "unit_price": package.one_time_price,
                              "category": "development", "package_id": package.id})

        for addon in AddonService(self.db).get_many(ctx.agency_id, proposal.selected_addons or []):
            if addon.pricing_type == "one_time" and addon.price:
                items.append({"description": addon.name, "unit_price": addon.price,
                              "category": "addon", "addon_id": addon.id})

        custom = proposal.custom_pricing or {}
        if not items and custom:
            custom_price = custom.get("setupFee") or custom.get("oneTimePrice")
            if custom_price and to_decimal(custom_price) > 0:
                items.append({"description": "Website Design & Development", "unit_price": custom_price,
                              "category": "development"})

        values = {
            "proposal_id": proposal.id,
            "client_id": proposal.client_id,
            "client_business_name": proposal.client_business_name or "",
            "client_contact_name": proposal.client_contact_name or "",
            "client_email": proposal.client_email or "",
            "client_phone": proposal.client_phone or "",
        }
        invoice = self._new_invoice(ctx, values, items)
        self.activity.log_for(ctx, ActivityAction.INVOICE_CREATED, "invoice", invoice.id,
                              new_values={"invoice_number": invoice.invoice_number, "proposal_id": proposal.id})
        return invoice

    def create_invoice_from_contract(self, ctx: AgencyContext, contract_id: int) -> Optional[Invoice]:
        require_permission(ctx, "invoice:create")
        contract = self.db.query(Contract).filter(
            Contract.id == contract_id,
            Contract.agency_id == ctx.agency_id
        ).first()
        if not contract:
            return None
        if contract.status not in (ContractStatus.SIGNED, ContractStatus.COMPLETED):
            raise ValueError("Can only create invoice from signed or completed contract")

        items = [{
            "description": contract.services_description or "Services as per contract",
            "unit_price": contract.total_price,
            "category": "development",
        }]
        values = {
            "contract_id": contract.id,
            "proposal_id": contract.proposal_id,
            "client_id": contract.client_id,
            "client_business_name": contract.client_business_name or "",
            "client_contact_name": contract.client_contact_name or "",
            "client_email": contract.client_email or "",
            "client_phone": contract.client_phone or "",
            "client_address": contract.client_address or "",
        }
        invoice = self._new_invoice(ctx, values, items)
        self.activity.log_for(ctx, ActivityAction.INVOICE_CREATED, "invoice", invoice.id,
                              new_values={"invoice_number": invoice.invoice_number, "contract_id": contract.id})
        return invoice

    def duplicate_invoice(self, ctx: AgencyContext, invoice_id: int) -> Optional[Invoice]:
        require_permission(ctx, "invoice:create")
        original = self.get_by_id(invoice_id, ctx.agency_id)
        if not original:
            return None

        issue_date = utcnow()
        copy = Invoice(
            agency_id=ctx.agency_id,
            client_id=original.client_id,
            invoice_number=AgencyProfileService(self.db).get_next_document_number(ctx.agency_id, "invoice"),
            slug=generate_unique_slug(self.db, Invoice, fallback_prefix="inv"),
            status=InvoiceStatus.DRAFT,
            issue_date=issue_date,
            due_date=calculate_due_date(issue_date, original.payment_terms),
            subtotal=original.subtotal,
            discount_amount=original.discount_amount,
            discount_description=original.discount_description,
            gst_amount=original.gst_amount,
            total=original.total,
            gst_registered=original.gst_registered,
            gst_rate=original.gst_rate,
            payment_terms=original.payment_terms,
            payment_terms_custom=original.payment_terms_custom,
            notes=original.notes,
            public_notes=original.public_notes,
            created_by=ctx.user_id,
            **{k: getattr(original, k) for k in CLIENT_FIELDS}
        )
        copy.line_items = [
            InvoiceLineItem(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                amount=item.amount,
                is_taxable=item.is_taxable,
                sort_order=item.sort_order,
                category=item.category,
                package_id=item.package_id,
                addon_id=item.addon_id,
            )
            for item in original.line_items
        ]
        self.db.add(copy)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.INVOICE_DUPLICATED, "invoice", copy.id,
                              new_values={"invoice_number": copy.invoice_number, "original_invoice_id": original.id})
        return copy

    # ---------- updates ----------

    def update_invoice(self, ctx: AgencyContext, invoice_id: int, data: dict) -> Optional[Invoice]:
        """
        Apply the given fields. When ``line_items`` is present the lines are
        replaced; totals are recalculated from the invoice's GST snapshot
        whenever lines or the discount change.
        """
        invoice = self.get_by_id(invoice_id, ctx.agency_id)
        if not invoice:
            return None
        require_modify(ctx, "invoice", invoice.created_by)
        if invoice.status in CLOSED:
            raise ValueError("Cannot edit paid, cancelled, or refunded invoices")

        updates = {k: data[k] for k in EDITABLE_FIELDS if k in data and data[k] is not None}
        if "discount_amount" in updates:
            updates["discount_amount"] = money(updates["discount_amount"])
        old_values = {k: getattr(invoice, k) for k in updates}
        for key, value in updates.items():
            setattr(invoice, key, value)

        if data.get("line_items") is not None:
            invoice.line_items = build_line_items(data["line_items"])
            self.db.flush()
            updates["line_items"] = len(invoice.line_items)
        if "line_items" in updates or "discount_amount" in updates:
            totals = calculate_invoice_totals(
                invoice.line_items, invoice.gst_registered, invoice.gst_rate, invoice.discount_amount
            )
            for key, value in totals.items():
                setattr(invoice, key, value)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.INVOICE_UPDATED, "invoice", invoice.id,
                              old_values=old_values, new_values=updates)
        return invoice

    def recalculate_invoice_totals(self, ctx: AgencyContext, invoice_id: int) -> Optional[Invoice]:
        invoice = self.get_by_id(invoice_id, ctx.agency_id)
        if not invoice:
            return None
        require_modify(ctx, "invoice", invoice.created_by)
        if invoice.status != InvoiceStatus.DRAFT:
            raise ValueError("Can only recalculate draft invoices")

        totals = calculate_invoice_totals(
            invoice.line_items, invoice.gst_registered, invoice.gst_rate, invoice.discount_amount
        )
        for key, value in totals.items():
            setattr(invoice, key, value)
        self.db.flush()
        return invoice

    def delete_invoice(self, ctx: AgencyContext, invoice_id: int) -> bool:
        invoice = self.get_by_id(invoice_id, ctx.agency_id)
        if not invoice:
            return False
        require_delete(ctx, "invoice", invoice.created_by)
        if invoice.status != InvoiceStatus.DRAFT:
            raise ValueError("Can only delete draft invoices")

        number = invoice.invoice_number
        self.db.delete(invoice)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.INVOICE_DELETED, "invoice", invoice_id,
                              old_values={"invoice_number": number})
        return True

    # ---------- lifecycle ----------

    def mark_sent(self, invoice: Invoice):
        invoice.status = InvoiceStatus.SENT
        invoice.sent_at = utcnow()
        self.db.flush()

    def send_invoice(self, ctx: AgencyContext, invoice_id: int) -> Optional[Invoice]:
        require_permission(ctx, "invoice:send")
        invoice = self.get_by_id(invoice_id, ctx.agency_id)
        if not invoice:
            return None
        if invoice.status != InvoiceStatus.DRAFT:
            raise ValueError("Can only send draft invoices")

        self.mark_sent(invoice)
        self.activity.log_for(ctx, ActivityAction.INVOICE_SENT, "invoice", invoice.id,
                              new_values={"status": InvoiceStatus.SENT})
        return invoice

    def record_invoice_view(self, slug: str) -> bool:
        invoice = self.db.query(Invoice).filter(Invoice.slug == slug).first()
        if not invoice:
            return False
        invoice.view_count = Invoice.view_count + 1
        invoice.last_viewed_at = utcnow()
        if invoice.status == InvoiceStatus.SENT:
            invoice.status = InvoiceStatus.VIEWED
        self.db.flush()
        return True

    def record_payment(self, ctx: AgencyContext, invoice_id: int, data: dict) -> Optional[Invoice]:
        require_permission(ctx, "invoice:record_payment")
        invoice = self.get_by_id(invoice_id, ctx.agency_id)
        if not invoice:
            return None
        if invoice.status == InvoiceStatus.PAID:
            raise ValueError("Invoice is already paid")
        if invoice.status in (InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED):
            raise ValueError("Cannot record payment for cancelled or refunded invoice")

        method = data.get("payment_method")
        if method not in PAYMENT_METHODS:
            raise ValueError(f"Invalid payment method: {method}")

        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = data.get("paid_at") or utcnow()
        invoice.payment_method = method
        invoice.payment_reference = data.get("payment_reference") or None
        invoice.payment_notes = data.get("payment_notes") or None
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.INVOICE_PAID, "invoice", invoice.id, new_values={
            "payment_method": method,
            "payment_reference": invoice.payment_reference,
            "paid_at": invoice.paid_at,
        })
        return invoice

    def _close(self, invoice: Invoice, status: str, label: str, reason: Optional[str]):
        invoice.status = status
        if reason:
            invoice.notes = f"{invoice.notes or ''}\n\n{label} reason: {reason}"
        self.db.flush()

    def cancel_invoice(self, ctx: AgencyContext, invoice_id: int, reason: Optional[str] = None) -> Optional[Invoice]:
        require_permission(ctx, "invoice:cancel")
        invoice = self.get_by_id(invoice_id, ctx.agency_id)
        if not invoice:
            return None
        if invoice.status == InvoiceStatus.PAID:
            raise ValueError("Cannot cancel a paid invoice. Use refund instead.")
        if invoice.status == InvoiceStatus.CANCELLED:
            raise ValueError("Invoice is already cancelled")

        self._close(invoice, InvoiceStatus.CANCELLED, "Cancellation", reason)
        self.activity.log_for(ctx, ActivityAction.INVOICE_CANCELLED, "invoice", invoice.id,
                              new_values={"status": InvoiceStatus.CANCELLED, "reason": reason})
        return invoice

    def refund_invoice(self, ctx: AgencyContext, invoice_id: int, reason: Optional[str] = None) -> Optional[Invoice]:
        require_permission(ctx, "invoice:refund")
        invoice = self.get_by_id(invoice_id, ctx.agency_id)
        if not invoice:
            return None
        if invoice.status != InvoiceStatus.PAID:
            raise ValueError("Can only refund paid invoices")

        self._close(invoice, InvoiceStatus.REFUNDED, "Refund", reason)
        self.activity.log_for(ctx, ActivityAction.INVOICE_REFUNDED, "invoice", invoice.id,
                              new_values={"status": InvoiceStatus.REFUNDED, "reason": reason})
        return invoice

    # ---------- export ----------

    def export_invoices_xlsx(self, ctx: AgencyContext) -> bytes:
        """Spreadsheet of every agency invoice, newest first."""
        require_permission(ctx, "data:export")
        from io import BytesIO
        from openpyxl import Workbook
        from openpyxl.styles import Font, Alignment, PatternFill
        from openpyxl.utils import get_column_letter

        invoices = self.get_invoices(ctx)

        wb = Workbook()
        ws = wb.active
        ws.title = "Invoices"

        header_font = Font(bold=True, color="FFFFFF", size=11)
        header_fill = PatternFill(start_color="1e40af", end_color="1e40af", fill_type="solid")

        headers = ["Invoice #", "Status", "Client", "Email", "Issue Date", "Due Date",
                   "Subtotal", "Discount", "GST", "Total", "Paid At", "Payment Method"]
        for col, header in enumerate(headers, 1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")

        for row, invoice in enumerate(invoices, 2):
            values = [
                invoice.invoice_number,
                invoice.status,
                invoice.client_business_name,
                invoice.client_email,
                invoice.issue_date.strftime("%Y-%m-%d") if invoice.issue_date else "",
                invoice.due_date.strftime("%Y-%m-%d") if invoice.due_date else "",
                float(invoice.subtotal or 0),
                float(invoice.discount_amount or 0),
                float(invoice.gst_amount or 0),
                float(invoice.total or 0),
                invoice.paid_at.strftime("%Y-%m-%d") if invoice.paid_at else "",
                invoice.payment_method or "",
            ]
            for col, value in enumerate(values, 1):
                cell = ws.cell(row=row, column=col, value=value)
                if 7 <= col <= 10:
                    cell.number_format = "#,##0.00"

        for col in range(1, len(headers) + 1):
            ws.column_dimensions[get_column_letter(col)].width = 18

        buffer = BytesIO()
        wb.save(buffer)
        logger.info(f"Exported {len(invoices)} invoices for agency {ctx.agency_id}")
        return buffer.getvalue()
