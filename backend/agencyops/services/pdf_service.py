"""
PDF Service - Branded invoice, quotation, contract and proposal documents
"""
from typing import Optional, Dict, Any
import io
import logging

import requests
from sqlalchemy.orm import Session

from agencyops.core.config import settings
from agencyops.core.templating import render_template, agency_branding
from agencyops.models import Agency, AgencyAddon, AgencyPackage
from agencyops.services.merge_field_service import proposal_pricing
from agencyops.services.profile_service import AgencyProfileService

logger = logging.getLogger(__name__)


def html_to_pdf(html: str) -> bytes:
    from weasyprint import HTML

    buffer = io.BytesIO()
    HTML(string=html).write_pdf(buffer)
    return buffer.getvalue()


class PdfService:
    def __init__(self, db: Session):
        self.db = db

    def _brand(self, agency_id: int):
        agency = self.db.query(Agency).filter(Agency.id == agency_id).first()
        profile = AgencyProfileService(self.db).get_profile(agency_id)
        return agency_branding(agency, profile), profile

    # ---------- HTML ----------

    def invoice_html(self, invoice) -> str:
        brand, profile = self._brand(invoice.agency_id)
        return render_template("pdf/invoice.html", title="Tax Invoice" if invoice.gst_registered else "Invoice",
                               number=invoice.invoice_number, brand=brand, profile=profile, invoice=invoice)

    def quotation_html(self, quotation) -> str:
        brand, profile = self._brand(quotation.agency_id)
        return render_template("pdf/quotation.html", title="Quotation", number=quotation.quotation_number,
                               brand=brand, profile=profile, quotation=quotation)

    def contract_html(self, contract) -> str:
        brand, profile = self._brand(contract.agency_id)
        return render_template(
            "pdf/contract.html",
            title="Service Agreement",
            number=contract.contract_number,
            brand=brand,
            profile=profile,
            contract=contract,
            terms_html=contract.generated_terms_html,
            schedule_html=contract.generated_schedule_html,
        )

    def proposal_html(self, proposal) -> str:
        brand, profile = self._brand(proposal.agency_id)
        package = None
        if proposal.selected_package_id:
            package = self.db.query(AgencyPackage).filter(AgencyPackage.id == proposal.selected_package_id).first()
        addons = []
        if proposal.selected_addons:
            addons = self.db.query(AgencyAddon).filter(
                AgencyAddon.agency_id == proposal.agency_id,
                AgencyAddon.id.in_(proposal.selected_addons)
            ).all()
        return render_template(
            "pdf/proposal.html",
            title=proposal.title or "Proposal",
            number=proposal.proposal_number,
            brand=brand,
            profile=profile,
            proposal=proposal,
            package=package,
            addons=addons,
            pricing=proposal_pricing(proposal, package, addons),
        )

    # ---------- PDF ----------

    def render_document(self, kind: str, document) -> bytes:
        """PDF for an already loaded invoice, quotation, contract or proposal."""
        html = getattr(self, f"{kind}_html")(document)
        return html_to_pdf(html)

    def fetch_pdf(self, endpoint: str, cookies: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch a rendered PDF from the remote PDF service. Never raises;
        failures come back as ``{"success": False, "error": ...}``.
        """
        if not settings.PDF_SERVICE_URL:
            return {"success": False, "error": "PDF service not configured"}

        url = f"{settings.PDF_SERVICE_URL.rstrip('/')}/{endpoint.lstrip('/')}"
        headers = {"Cookie": cookies} if cookies else {}
        try:
            response = requests.get(url, headers=headers, timeout=settings.PDF_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            logger.error(f"PDF fetch failed for {endpoint}: {e}")
            return {"success": False, "error": str(e)}

        if response.status_code != 200:
            logger.warning(f"PDF service returned {response.status_code} for {endpoint}")
            return {"success": False, "error": f"PDF service error: {response.status_code}"}

        filename = None
        disposition = response.headers.get("Content-Disposition", "")
        if "filename=" in disposition:
            filename = disposition.split("filename=", 1)[1].strip('"; ')
        return {"success": True, "content": response.content, "filename": filename}

    def get_attachment(self, kind: str, document, number: str, cookies: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Attachment dict for outbound email, from the remote service when
        configured and local rendering otherwise. Returns None on failure.
        """
        filename = f"{number}.pdf"
        if settings.PDF_SERVICE_URL:
            result = self.fetch_pdf(f"/api/v1/{kind}s/{document.id}/pdf", cookies)
            if result["success"]:
                return {"filename": result.get("filename") or filename, "content": result["content"]}
            return None
        try:
            return {"filename": filename, "content": self.render_document(kind, document)}
        except Exception as e:
            logger.error(f"Failed to render {kind} PDF {number}: {e}")
            return None
