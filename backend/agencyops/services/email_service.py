"""
Email Service - Transactional email delivery and the per-agency email log
"""
from email.message import EmailMessage
from typing import Optional, List, Dict, Any
import base64
import logging
import smtplib

import requests
from sqlalchemy import desc
from sqlalchemy.orm import Session

from agencyops.core.config import settings
from agencyops.core.templating import render_template, agency_branding
from agencyops.core.utils import utcnow, format_currency
from agencyops.models import (
    Agency, Contract, ContractStatus, EmailLog, EmailStatus, EmailType, Invoice, InvoiceStatus,
    Proposal, ProposalStatus, Quotation, QuotationStatus, QuestionnaireResponse
)
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.permission_service import AgencyContext, require_permission
from agencyops.services.profile_service import AgencyProfileService
from agencyops.services.pdf_service import PdfService

logger = logging.getLogger(__name__)

REMINDABLE = (InvoiceStatus.SENT, InvoiceStatus.VIEWED, InvoiceStatus.OVERDUE)
ENTITY_COLUMNS = {
    "proposal": EmailLog.proposal_id,
    "invoice": EmailLog.invoice_id,
    "contract": EmailLog.contract_id,
    "quotation": EmailLog.quotation_id,
}


def public_url(prefix: str, slug: str) -> str:
    return f"{settings.PUBLIC_CLIENT_URL.rstrip('/')}/{prefix}/{slug}"


def _failed(error: str) -> Dict[str, Any]:
    return {"success": False, "message_id": None, "error": error}


class EmailService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    # ---------- transport ----------

    def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        reply_to: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        Deliver one message through Resend when an API key is configured,
        otherwise SMTP. Never raises; returns ``{success, message_id, error}``.
        """
        sender = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM_ADDRESS}>"
        if settings.RESEND_API_KEY:
            return self._send_via_resend(sender, to, subject, html, reply_to, attachments)
        if settings.SMTP_HOST:
            return self._send_via_smtp(sender, to, subject, html, reply_to, attachments)
        logger.error("No email service configured (RESEND_API_KEY or SMTP_HOST required)")
        return _failed("Email service not configured")

    def _send_via_resend(self, sender, to, subject, html, reply_to, attachments) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"from": sender, "to": [to], "subject": subject, "html": html}
        if reply_to:
            payload["reply_to"] = reply_to
        if attachments:
            payload["attachments"] = [
                {"filename": a["filename"], "content": base64.b64encode(a["content"]).decode("ascii")}
                for a in attachments
            ]
        headers = {
            "Authorization": f"Bearer {settings.RESEND_API_KEY}",
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(settings.RESEND_API_URL, json=payload, headers=headers,
                                     timeout=settings.EMAIL_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            logger.error(f"Failed to send email via Resend to {to}: {e}")
            return _failed(str(e))

        if 200 <= response.status_code < 300:
            message_id = response.json().get("id")
            logger.info(f"Email sent via Resend to {to}: {message_id}")
            return {"success": True, "message_id": message_id, "error": None}

        try:
            detail = response.json().get("message")
        except ValueError:
            detail = response.text
        logger.error(f"Resend API error for {to}: {response.status_code} - {detail}")
        return _failed(detail or f"Resend API error: {response.status_code}")

    def _send_via_smtp(self, sender, to, subject, html, reply_to, attachments) -> Dict[str, Any]:
        message = EmailMessage()
        message["From"] = sender
        message["To"] = to
        message["Subject"] = subject
        if reply_to:
            message["Reply-To"] = reply_to
        message.set_content("This message requires an HTML capable email client.")
        message.add_alternative(html, subtype="html")
        for attachment in attachments or []:
            message.add_attachment(attachment["content"], maintype="application", subtype="pdf",
                                   filename=attachment["filename"])
        try:
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT,
                              timeout=settings.EMAIL_TIMEOUT_SECONDS) as smtp:
                if settings.SMTP_USE_TLS:
                    smtp.starttls()
                if settings.SMTP_USERNAME:
                    smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email via SMTP to {to}: {e}")
            return _failed(str(e))

        logger.info(f"Email sent via SMTP to {to}")
        return {"success": True, "message_id": message.get("Message-ID"), "error": None}

    # ---------- logged delivery ----------

    def _brand(self, agency_id: int):
        agency = self.db.query(Agency).filter(Agency.id == agency_id).first()
        profile = AgencyProfileService(self.db).get_profile(agency_id)
        return agency, profile, agency_branding(agency, profile)

    def _deliver(
        self,
        agency: Agency,
        email_type: str,
        to: str,
        recipient_name: Optional[str],
        subject: str,
        html: str,
        attachment: Optional[Dict[str, Any]] = None,
        sent_by: Optional[int] = None,
        retry_count: int = 0,
        **links
    ) -> Dict[str, Any]:
        log = EmailLog(
            agency_id=agency.id,
            email_type=email_type,
            recipient_email=to,
            recipient_name=recipient_name,
            subject=subject,
            body_html=html,
            has_attachment=attachment is not None,
            attachment_filename=attachment["filename"] if attachment else None,
            status=EmailStatus.PENDING,
            sent_by=sent_by,
            retry_count=retry_count,
            **links
        )
        self.db.add(log)
        self.db.flush()

        result = self.send_email(
            to, subject, html,
            reply_to=agency.email or None,
            attachments=[attachment] if attachment else None,
        )
        log.status = EmailStatus.SENT if result["success"] else EmailStatus.FAILED
        log.provider_message_id = result.get("message_id")
        log.sent_at = utcnow() if result["success"] else None
        log.error_message = result.get("error")
        self.db.flush()
        result["email_log_id"] = log.id
        return result

    def _log_outcome(self, ctx: Optional[AgencyContext], agency_id: int, entity_type: str, entity_id: int,
                     to: str, result: Dict[str, Any]):
        action = ActivityAction.EMAIL_SENT if result["success"] else ActivityAction.EMAIL_FAILED
        metadata = {"recipient_email": to, "error": result.get("error")}
        if ctx:
            self.activity.log_for(ctx, action, entity_type, entity_id, metadata=metadata)
        else:
            self.activity.log(agency_id=agency_id, action=action, entity_type=entity_type,
                              entity_id=entity_id, metadata=metadata)

    def _document_html(self, brand: dict, subject: str, recipient_name: str, intro: str, details: list,
                       url: str, action_label: str, custom_message: Optional[str], has_attachment: bool) -> str:
        return render_template(
            "email/document.html",
            subject=subject,
            brand=brand,
            recipient_name=recipient_name,
            intro=intro,
            details=details,
            url=url,
            action_label=action_label,
            custom_message=custom_message,
            has_attachment=has_attachment,
        )

    # ---------- documents ----------

    def send_proposal_email(self, ctx: AgencyContext, proposal_id: int,
                            custom_message: Optional[str] = None) -> Optional[Dict[str, Any]]:
        require_permission(ctx, "email:send")
        proposal = self.db.query(Proposal).filter(
            Proposal.id == proposal_id, Proposal.agency_id == ctx.agency_id
        ).first()
        if not proposal:
            return None
        if not proposal.client_email:
            raise ValueError("Client email is required to send proposal")

        agency, profile, brand = self._brand(ctx.agency_id)
        attachment = PdfService(self.db).get_attachment("proposal", proposal, proposal.proposal_number)
        subject = f"Proposal {proposal.proposal_number} from {brand['name']}"
        recipient = proposal.client_contact_name or proposal.client_business_name
        details = [("Proposal", proposal.proposal_number), ("Title", proposal.title)]
        if proposal.valid_until:
            details.append(("Valid until", f"{proposal.valid_until.day} {proposal.valid_until.strftime('%b %Y')}"))
        html = self._document_html(
            brand, subject, recipient,
            f"{brand['name']} has prepared a proposal for {proposal.client_business_name or 'you'}.",
            details, public_url("p", proposal.slug), "View proposal", custom_message, attachment is not None,
        )

        result = self._deliver(agency, EmailType.PROPOSAL_SENT, proposal.client_email, recipient, subject, html,
                               attachment, sent_by=ctx.user_id, proposal_id=proposal.id)
        if result["success"]:
            if not proposal.sent_at:
                proposal.sent_at = utcnow()
            if proposal.status in (ProposalStatus.DRAFT, ProposalStatus.READY):
                proposal.status = ProposalStatus.SENT
            self.db.flush()
        self._log_outcome(ctx, ctx.agency_id, "proposal", proposal.id, proposal.client_email, result)
        return result

    def _invoice_details(self, invoice: Invoice) -> list:
        return [
            ("Invoice", invoice.invoice_number),
            ("Amount due", format_currency(invoice.total)),
            ("Due date", f"{invoice.due_date.day} {invoice.due_date.strftime('%b %Y')}"),
        ]

    def send_invoice_email(self, ctx: AgencyContext, invoice_id: int,
                           custom_message: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Send the invoice with its PDF attached; a draft invoice becomes sent."""
        require_permission(ctx, "email:send")
        from agencyops.services.invoice_service import InvoiceService

        invoices = InvoiceService(self.db)
        invoice = invoices.get_by_id(invoice_id, ctx.agency_id)
        if not invoice:
            return None

        agency, profile, brand = self._brand(ctx.agency_id)
        attachment = PdfService(self.db).get_attachment("invoice", invoice, invoice.invoice_number)
        subject = f"Invoice {invoice.invoice_number} from {brand['name']}"
        recipient = invoice.client_contact_name or invoice.client_business_name
        html = self._document_html(
            brand, subject, recipient,
            f"Please find invoice {invoice.invoice_number} from {brand['name']}.",
            self._invoice_details(invoice), public_url("i", invoice.slug), "View invoice",
            custom_message, attachment is not None,
        )

        result = self._deliver(agency, EmailType.INVOICE_SENT, invoice.client_email, recipient, subject, html,
                               attachment, sent_by=ctx.user_id, invoice_id=invoice.id)
        if result["success"] and invoice.status == InvoiceStatus.DRAFT:
            invoices.mark_sent(invoice)
        self._log_outcome(ctx, ctx.agency_id, "invoice", invoice.id, invoice.client_email, result)
        return result

    def send_invoice_reminder(self, ctx: AgencyContext, invoice_id: int,
                              custom_message: Optional[str] = None) -> Optional[Dict[str, Any]]:
        require_permission(ctx, "email:send")
        invoice = self.db.query(Invoice).filter(
            Invoice.id == invoice_id, Invoice.agency_id == ctx.agency_id
        ).first()
        if not invoice:
            return None
        if invoice.status not in REMINDABLE:
            raise ValueError("Can only send reminders for sent, viewed, or overdue invoices")

        agency, profile, brand = self._brand(ctx.agency_id)
        now = utcnow()
        days_overdue = (now - invoice.due_date).days if now > invoice.due_date else 0
        prefix = "Overdue: " if days_overdue > 0 else "Reminder: "
        subject = f"{prefix}Invoice {invoice.invoice_number} from {brand['name']}"
        if days_overdue > 0:
            intro = f"Invoice {invoice.invoice_number} is now {days_overdue} day{'s' if days_overdue != 1 else ''} overdue."
        else:
            intro = f"This is a friendly reminder that invoice {invoice.invoice_number} is due soon."
        recipient = invoice.client_contact_name or invoice.client_business_name
        html = self._document_html(brand, subject, recipient, intro, self._invoice_details(invoice),
                                   public_url("i", invoice.slug), "View invoice", custom_message, False)

        result = self._deliver(agency, EmailType.INVOICE_REMINDER, invoice.client_email, recipient, subject, html,
                               sent_by=ctx.user_id, invoice_id=invoice.id)
        if result["success"]:
            self.activity.log_for(ctx, ActivityAction.INVOICE_REMINDER_SENT, "invoice", invoice.id,
                                  metadata={"days_overdue": days_overdue})
        else:
            self._log_outcome(ctx, ctx.agency_id, "invoice", invoice.id, invoice.client_email, result)
        return result

    def send_contract_email(self, contract: Contract, sent_by: Optional[int] = None,
                            custom_message: Optional[str] = None) -> Dict[str, Any]:
        if not contract.client_email:
            return _failed("Client email is required")

        agency, profile, brand = self._brand(contract.agency_id)
        if not agency:
            return _failed("Agency not found")
        attachment = PdfService(self.db).get_attachment("contract", contract, contract.contract_number)
        subject = f"Contract from {brand['name']} - Please Review and Sign"
        recipient = contract.client_contact_name or contract.client_business_name
        details = [("Contract", contract.contract_number), ("Total", format_currency(contract.total_price))]
        html = self._document_html(
            brand, subject, recipient,
            f"{brand['name']} has sent you a contract to review and sign online.",
            details, public_url("c", contract.slug), "Review and sign", custom_message, attachment is not None,
        )
        return self._deliver(agency, EmailType.CONTRACT_SENT, contract.client_email, recipient, subject, html,
                             attachment, sent_by=sent_by, contract_id=contract.id)

    def send_contract_email_for(self, ctx: AgencyContext, contract_id: int,
                                custom_message: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Email an existing contract; a draft contract becomes sent."""
        require_permission(ctx, "email:send")
        contract = self.db.query(Contract).filter(
            Contract.id == contract_id, Contract.agency_id == ctx.agency_id
        ).first()
        if not contract:
            return None

        result = self.send_contract_email(contract, sent_by=ctx.user_id, custom_message=custom_message)
        if result["success"] and not contract.sent_at:
            contract.sent_at = utcnow()
            if contract.status == ContractStatus.DRAFT:
                contract.status = ContractStatus.SENT
            self.db.flush()
        self._log_outcome(ctx, ctx.agency_id, "contract", contract.id, contract.client_email, result)
        return result

    def send_contract_signed_emails(self, contract: Contract):
        """Confirmation to the signer and a notification to the agency."""
        agency, profile, brand = self._brand(contract.agency_id)
        if not agency:
            logger.error(f"Contract signed emails: agency {contract.agency_id} not found")
            return
        client_name = contract.client_business_name or contract.client_signatory_name or "Client"
        url = public_url("c", contract.slug)
        details = [
            ("Contract", contract.contract_number),
            ("Signed by", contract.client_signatory_name or ""),
            ("Total", format_currency(contract.total_price)),
        ]

        if contract.client_email:
            subject = f"Contract Signed - {contract.contract_number}"
            html = render_template(
                "email/notification.html", subject=subject, brand=brand,
                heading="Thank you for signing",
                paragraphs=[f"Your contract with {brand['name']} has been signed. "
                            "You can view the signed copy at any time."],
                details=details, url=url, action_label="View contract",
            )
            self._deliver(agency, EmailType.CONTRACT_SIGNED, contract.client_email,
                          contract.client_signatory_name, subject, html, contract_id=contract.id)

        if agency.email:
            subject = f"Contract Signed by {client_name} - {contract.contract_number}"
            html = render_template(
                "email/notification.html", subject=subject, brand=brand,
                heading="A contract has been signed",
                paragraphs=[f"{client_name} signed contract {contract.contract_number}."],
                details=details, url=url, action_label="View contract",
            )
            self._deliver(agency, EmailType.CONTRACT_SIGNED, agency.email, brand["name"], subject, html,
                          contract_id=contract.id)

    def send_quotation_email(self, ctx: AgencyContext, quotation_id: int,
                             custom_message: Optional[str] = None) -> Optional[Dict[str, Any]]:
        require_permission(ctx, "email:send")
        quotation = self.db.query(Quotation).filter(
            Quotation.id == quotation_id, Quotation.agency_id == ctx.agency_id
        ).first()
        if not quotation:
            return None
        if not quotation.client_email:
            raise ValueError("Client email is required to send quotation")

        agency, profile, brand = self._brand(ctx.agency_id)
        attachment = PdfService(self.db).get_attachment("quotation", quotation, quotation.quotation_number)
        subject = f"Quotation {quotation.quotation_number} from {brand['name']}"
        recipient = quotation.client_contact_name or quotation.client_business_name
        details = [
            ("Quotation", quotation.quotation_number),
            ("Total", format_currency(quotation.total)),
            ("Valid until", f"{quotation.expiry_date.day} {quotation.expiry_date.strftime('%b %Y')}"),
        ]
        html = self._document_html(
            brand, subject, recipient,
            f"{brand['name']} has prepared a quotation{' for ' + quotation.quotation_name if quotation.quotation_name else ''}.",
            details, public_url("q", quotation.slug), "View quotation", custom_message, attachment is not None,
        )

        result = self._deliver(agency, EmailType.QUOTATION_SENT, quotation.client_email, recipient, subject, html,
                               attachment, sent_by=ctx.user_id, quotation_id=quotation.id)
        if result["success"]:
            if not quotation.sent_at:
                quotation.sent_at = utcnow()
            if quotation.status == QuotationStatus.DRAFT:
                quotation.status = QuotationStatus.SENT
            self.db.flush()
        self._log_outcome(ctx, ctx.agency_id, "quotation", quotation.id, quotation.client_email, result)
        return result

    def send_questionnaire_completed_email(self, questionnaire: QuestionnaireResponse):
        agency, profile, brand = self._brand(questionnaire.agency_id)
        if not agency or not agency.email:
            logger.warning(f"No agency email for questionnaire {questionnaire.id} notification")
            return
        client_name = questionnaire.client_business_name or questionnaire.client_email or "A client"
        subject = f"{client_name} has completed their Website Questionnaire"
        html = render_template(
            "email/notification.html", subject=subject, brand=brand,
            heading="Questionnaire completed",
            paragraphs=[f"{client_name} has submitted their website questionnaire."],
            details=[("Client", client_name), ("Email", questionnaire.client_email or "")],
            url=public_url("questionnaire", questionnaire.slug), action_label="View responses",
        )
        self._deliver(agency, EmailType.QUESTIONNAIRE_COMPLETED, agency.email, brand["name"], subject, html,
                      contract_id=questionnaire.contract_id)

    def send_beta_invite_email(self, invite, invite_url: str) -> Dict[str, Any]:
        """Platform email, so it is not written to any agency's email log."""
        brand = {
            "name": settings.EMAIL_FROM_NAME,
            "primary_color": "#4F46E5",
            "logo_url": "",
            "email": settings.EMAIL_FROM_ADDRESS,
            "phone": "",
            "abn": "",
        }
        subject = f"You're invited to the {settings.EMAIL_FROM_NAME} beta"
        html = render_template(
            "email/beta_invite.html", subject=subject, brand=brand, invite_url=invite_url,
            expires_at=f"{invite.expires_at.day} {invite.expires_at.strftime('%b %Y')}",
        )
        return self.send_email(invite.email, subject, html)

    # ---------- log ----------

    def resend_email(self, ctx: AgencyContext, email_log_id: int) -> Optional[Dict[str, Any]]:
        require_permission(ctx, "email:send")
        original = self.db.query(EmailLog).filter(
            EmailLog.id == email_log_id, EmailLog.agency_id == ctx.agency_id
        ).first()
        if not original:
            return None

        agency = self.db.query(Agency).filter(Agency.id == ctx.agency_id).first()
        return self._deliver(
            agency, original.email_type, original.recipient_email, original.recipient_name,
            original.subject, original.body_html,
            sent_by=ctx.user_id,
            retry_count=(original.retry_count or 0) + 1,
            proposal_id=original.proposal_id,
            invoice_id=original.invoice_id,
            contract_id=original.contract_id,
            quotation_id=original.quotation_id,
            form_submission_id=original.form_submission_id,
        )

    def get_email_logs(
        self,
        ctx: AgencyContext,
        proposal_id: Optional[int] = None,
        invoice_id: Optional[int] = None,
        contract_id: Optional[int] = None,
        quotation_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[EmailLog]:
        require_permission(ctx, "email:view_logs")
        query = self.db.query(EmailLog).filter(EmailLog.agency_id == ctx.agency_id)
        for column, value in ((EmailLog.proposal_id, proposal_id), (EmailLog.invoice_id, invoice_id),
                              (EmailLog.contract_id, contract_id), (EmailLog.quotation_id, quotation_id)):
            if value:
                query = query.filter(column == value)
        if status:
            query = query.filter(EmailLog.status == status)
        return query.order_by(desc(EmailLog.created_at), desc(EmailLog.id)).offset(offset).limit(limit).all()

    def get_entity_email_logs(self, agency_id: int, entity_type: str, entity_id: int) -> List[EmailLog]:
        column = ENTITY_COLUMNS.get(entity_type)
        if column is None:
            return []
        return self.db.query(EmailLog).filter(
            EmailLog.agency_id == agency_id,
            column == entity_id
        ).order_by(desc(EmailLog.created_at), desc(EmailLog.id)).limit(20).all()
