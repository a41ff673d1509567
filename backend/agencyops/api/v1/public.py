"""
Public API Routes - Client-facing document links, forms, questionnaires and invites.

No authentication; every resource is addressed by its unguessable slug or token.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from agencyops.core.database import get_db
from agencyops.core.responses import file_response
from agencyops.core.security import get_client_info
from agencyops.schemas import (
    AgencyResponse, ProposalResponse, ProposalAcceptRequest, ProposalDeclineRequest, ProposalRevisionRequest,
    ContractResponse, ContractSignRequest, InvoiceResponse, QuotationResponse, QuotationAcceptRequest,
    ReasonRequest, FormResponse, SubmissionCreate, SubmissionProgress, SubmissionComplete, SubmissionResponse,
    QuestionnaireProgress, QuestionnaireResponseSchema, MessageResponse
)
from agencyops.services.agency_service import AgencyService
from agencyops.services.beta_invite_service import BetaInviteService
from agencyops.services.contract_service import ContractService
from agencyops.services.form_service import FormService
from agencyops.services.invoice_service import InvoiceService
from agencyops.services.pdf_service import PdfService
from agencyops.services.profile_service import AgencyProfileService
from agencyops.services.proposal_service import ProposalService, effective_proposal_status
from agencyops.services.questionnaire_service import QuestionnaireService
from agencyops.services.quotation_service import QuotationService, effective_quotation_status

router = APIRouter(prefix="/public", tags=["Public"])

PUBLIC_PROFILE_FIELDS = (
    "abn", "legal_entity_name", "trading_name", "address_line_1", "address_line_2", "city", "state",
    "postcode", "country", "bank_name", "bsb", "account_number", "account_name", "gst_registered",
    "gst_rate", "tagline", "brand_font", "invoice_footer", "contract_footer",
)
# Agency-only fields never shown to clients
INTERNAL_FIELDS = {"notes", "created_by"}


def _branding(agency, profile) -> dict:
    """Agency identity and the profile details printed on client documents."""
    branding = AgencyResponse.model_validate(agency).model_dump(
        include={"name", "slug", "logo_url", "logo_avatar_url", "primary_color", "secondary_color",
                 "accent_color", "accent_gradient", "email", "phone", "website"}
    )
    branding["profile"] = {key: getattr(profile, key, None) for key in PUBLIC_PROFILE_FIELDS} if profile else None
    return branding


def _public(schema, obj) -> dict:
    return schema.model_validate(obj).model_dump(exclude=INTERNAL_FIELDS)


# ==================== PROPOSALS ====================

@router.get("/proposals/{slug}")
async def view_proposal(slug: str, db: Session = Depends(get_db)):
    """Proposal page; each load counts as a view"""
    proposal_service = ProposalService(db)
    proposal = proposal_service.get_by_slug(slug)
    if not proposal:
        raise HTTPException(status_code=404, detail="Proposal not found")
    proposal_service.record_proposal_view(slug)
    db.commit()
    db.refresh(proposal)

    profile = AgencyProfileService(db).get_profile(proposal.agency_id)
    data = _public(ProposalResponse, proposal)
    data["effective_status"] = effective_proposal_status(proposal)
    return {
        "proposal": data,
        "selected_package": proposal.selected_package and {
            "name": proposal.selected_package.name,
            "slug": proposal.selected_package.slug,
        },
        "agency": _branding(proposal.agency, profile),
    }


@router.post("/proposals/{slug}/accept")
async def accept_proposal(slug: str, accept_data: ProposalAcceptRequest, db: Session = Depends(get_db)):
    try:
        result = ProposalService(db).accept_proposal(slug, accept_data.comments)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return result


@router.post("/proposals/{slug}/decline")
async def decline_proposal(slug: str, decline_data: ProposalDeclineRequest, db: Session = Depends(get_db)):
    try:
        result = ProposalService(db).decline_proposal(slug, decline_data.reason)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return result


@router.post("/proposals/{slug}/revision")
async def request_proposal_revision(slug: str, revision_data: ProposalRevisionRequest,
                                    db: Session = Depends(get_db)):
    try:
        result = ProposalService(db).request_proposal_revision(slug, revision_data.notes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Proposal not found")
    db.commit()
    return result


# ==================== CONTRACTS ====================

@router.get("/contracts/{slug}")
async def view_contract(slug: str, db: Session = Depends(get_db)):
    contract_service = ContractService(db)
    result = contract_service.get_contract_by_slug(slug)
    if not result:
        raise HTTPException(status_code=404, detail="Contract not found")
    contract_service.record_contract_view(slug)
    db.commit()
    contract = result["contract"]
    db.refresh(contract)

    data = _public(ContractResponse, contract)
    data["effective_status"] = result["effective_status"]
    return {"contract": data, "agency": _branding(result["agency"], result["agency_profile"])}


@router.post("/contracts/{slug}/sign")
async def sign_contract(slug: str, sign_data: ContractSignRequest, request: Request,
                        db: Session = Depends(get_db)):
    """Client signature; the caller's IP and user agent are kept as evidence"""
    ip_address, user_agent = get_client_info(request)
    try:
        contract = ContractService(db).sign_contract(
            slug, sign_data.signatory_name, sign_data.signatory_title, sign_data.agreed_to_terms,
            ip_address, user_agent
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not contract:
        raise HTTPException(status_code=404, detail="Contract not found")
    db.commit()
    return {"success": True, "signed_at": contract.client_signed_at}


@router.get("/contracts/{slug}/pdf")
async def download_contract_pdf(slug: str, db: Session = Depends(get_db)):
    contract = ContractService(db).get_by_slug(slug)
    if not contract:
        raise HTTPException(status_code=404, detail="Contract not found")
    content = PdfService(db).render_document("contract", contract)
    return file_response(content, f"{contract.contract_number}.pdf")


# ==================== QUESTIONNAIRES ====================

@router.get("/contracts/{slug}/questionnaire")
async def check_questionnaire_access(slug: str, db: Session = Depends(get_db)):
    """Whether the client may fill in the onboarding questionnaire yet"""
    result = QuestionnaireService(db).check_questionnaire_access(slug)
    if result.get("contract") is None:
        raise HTTPException(status_code=404, detail="Contract not found")
    db.commit()
    questionnaire = result.get("questionnaire")
    return {
        "allowed": result["allowed"],
        "reason": result.get("reason"),
        "questionnaire": QuestionnaireResponseSchema.model_validate(questionnaire) if questionnaire else None,
        "agency": _branding(result["agency"], result["agency_profile"]),
    }


@router.get("/questionnaires/{slug}")
async def view_questionnaire(slug: str, db: Session = Depends(get_db)):
    result = QuestionnaireService(db).get_questionnaire_by_slug(slug)
    if not result:
        raise HTTPException(status_code=404, detail="Questionnaire not found")
    return {
        "questionnaire": QuestionnaireResponseSchema.model_validate(result["questionnaire"]),
        "agency": _branding(result["agency"], result["agency_profile"]),
    }


@router.put("/questionnaires/{slug}/progress", response_model=QuestionnaireResponseSchema)
async def save_questionnaire_progress(slug: str, progress: QuestionnaireProgress, db: Session = Depends(get_db)):
    try:
        questionnaire = QuestionnaireService(db).save_questionnaire_progress(
            slug, progress.responses, progress.current_section
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not questionnaire:
        raise HTTPException(status_code=404, detail="Questionnaire not found")
    db.commit()
    return questionnaire


@router.post("/questionnaires/{slug}/submit", response_model=QuestionnaireResponseSchema)
async def submit_questionnaire(slug: str, db: Session = Depends(get_db)):
    try:
        questionnaire = QuestionnaireService(db).submit_questionnaire(slug)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not questionnaire:
        raise HTTPException(status_code=404, detail="Questionnaire not found")
    db.commit()
    return questionnaire


# ==================== INVOICES ====================

@router.get("/invoices/{slug}")
async def view_invoice(slug: str, db: Session = Depends(get_db)):
    invoice_service = InvoiceService(db)
    result = invoice_service.get_invoice_by_slug(slug)
    if not result:
        raise HTTPException(status_code=404, detail="Invoice not found")
    invoice_service.record_invoice_view(slug)
    db.commit()
    invoice = result["invoice"]
    db.refresh(invoice)
    return {
        "invoice": _public(InvoiceResponse, invoice),
        "agency": _branding(result["agency"], result["agency_profile"]),
    }


@router.get("/invoices/{slug}/pdf")
async def download_invoice_pdf(slug: str, db: Session = Depends(get_db)):
    result = InvoiceService(db).get_invoice_by_slug(slug)
    if not result:
        raise HTTPException(status_code=404, detail="Invoice not found")
    db.commit()
    invoice = result["invoice"]
    content = PdfService(db).render_document("invoice", invoice)
    return file_response(content, f"{invoice.invoice_number}.pdf")


# ==================== QUOTATIONS ====================

@router.get("/quotations/{slug}")
async def view_quotation(slug: str, db: Session = Depends(get_db)):
    quotation_service = QuotationService(db)
    result = quotation_service.get_quotation_by_slug(slug)
    if not result:
        raise HTTPException(status_code=404, detail="Quotation not found")
    quotation_service.record_quotation_view(slug)
    db.commit()
    quotation = result["quotation"]
    db.refresh(quotation)

    data = _public(QuotationResponse, quotation)
    data["effective_status"] = effective_quotation_status(quotation)
    return {"quotation": data, "agency": _branding(result["agency"], result["agency_profile"])}


@router.post("/quotations/{slug}/accept")
async def accept_quotation(slug: str, accept_data: QuotationAcceptRequest, db: Session = Depends(get_db)):
    try:
        quotation = QuotationService(db).accept_quotation(
            slug, accept_data.accepted_by_name, accept_data.accepted_by_title
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not quotation:
        raise HTTPException(status_code=404, detail="Quotation not found")
    db.commit()
    return {"success": True, "accepted_at": quotation.accepted_at}


@router.post("/quotations/{slug}/decline")
async def decline_quotation(slug: str, decline_data: ReasonRequest, db: Session = Depends(get_db)):
    try:
        quotation = QuotationService(db).decline_quotation(slug, decline_data.reason)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not quotation:
        raise HTTPException(status_code=404, detail="Quotation not found")
    db.commit()
    return {"success": True, "declined_at": quotation.declined_at}


@router.get("/quotations/{slug}/pdf")
async def download_quotation_pdf(slug: str, db: Session = Depends(get_db)):
    quotation = QuotationService(db).get_by_slug(slug)
    if not quotation:
        raise HTTPException(status_code=404, detail="Quotation not found")
    content = PdfService(db).render_document("quotation", quotation)
    return file_response(content, f"{quotation.quotation_number}.pdf")


# ==================== FORMS ====================

@router.get("/forms/{agency_slug}/{form_slug}")
async def view_form(agency_slug: str, form_slug: str, db: Session = Depends(get_db)):
    """Active form with the agency branding it renders under"""
    agency = AgencyService(db).get_by_slug(agency_slug)
    if not agency:
        raise HTTPException(status_code=404, detail="Form not found")
    form = FormService(db).get_form_by_slug(agency.id, form_slug)
    if not form or form.requires_auth:
        raise HTTPException(status_code=404, detail="Form not found")
    profile = AgencyProfileService(db).get_profile(agency.id)
    return {
        "form": FormResponse.model_validate(form).model_dump(by_alias=True),
        "agency": _branding(agency, profile),
    }


@router.post("/forms/{agency_slug}/{form_slug}/submit", response_model=MessageResponse,
             status_code=status.HTTP_201_CREATED)
async def submit_form_by_slug(agency_slug: str, form_slug: str, submission_data: SubmissionCreate,
                              request: Request, db: Session = Depends(get_db)):
    agency = AgencyService(db).get_by_slug(agency_slug)
    form = FormService(db).get_form_by_slug(agency.id, form_slug) if agency else None
    if not form or form.requires_auth:
        raise HTTPException(status_code=404, detail="Form not found")
    return _submit(db, form.id, submission_data, request)


@router.post("/forms/{form_id}/submit", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def submit_form(form_id: int, submission_data: SubmissionCreate, request: Request,
                      db: Session = Depends(get_db)):
    return _submit(db, form_id, submission_data, request)


def _submit(db: Session, form_id: int, submission_data: SubmissionCreate, request: Request) -> dict:
    ip_address, user_agent = get_client_info(request)
    metadata = dict(submission_data.metadata or {})
    metadata.setdefault("ip_address", ip_address)
    metadata.setdefault("user_agent", user_agent)
    submission = FormService(db).submit_form(form_id, submission_data.data, metadata)
    if not submission:
        raise HTTPException(status_code=404, detail="Form not found")
    db.commit()
    return {"message": "Form submitted"}


# ==================== SUBMISSIONS ====================

@router.get("/submissions/{slug}")
async def view_submission(slug: str, db: Session = Depends(get_db)):
    """Draft submission a client was asked to fill in"""
    result = FormService(db).get_submission_by_slug(slug)
    if not result:
        raise HTTPException(status_code=404, detail="Submission not found")
    form = result["form"]
    return {
        "submission": SubmissionResponse.model_validate(result["submission"]),
        "form": FormResponse.model_validate(form).model_dump(by_alias=True) if form else None,
        "agency": _branding(result["agency"], result["agency_profile"]),
    }


@router.put("/submissions/{slug}/progress", response_model=SubmissionResponse)
async def save_submission_progress(slug: str, progress: SubmissionProgress, db: Session = Depends(get_db)):
    form_service = FormService(db)
    completion = progress.completion_percentage
    if completion is None:
        existing = form_service.get_submission_by_slug(slug)
        completion = existing["submission"].completion_percentage if existing else 0
    try:
        submission = form_service.save_submission_progress(slug, progress.data, progress.current_step, completion)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    db.commit()
    return submission


@router.post("/submissions/{slug}/complete", response_model=SubmissionResponse)
async def complete_submission(slug: str, completion: SubmissionComplete, db: Session = Depends(get_db)):
    try:
        submission = FormService(db).complete_submission(slug, completion.data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    db.commit()
    return submission


# ==================== INVITES ====================

@router.get("/invites/{token}")
async def get_invite(token: str, db: Session = Depends(get_db)):
    invite = BetaInviteService(db).get_invite_by_token(token)
    if not invite:
        raise HTTPException(status_code=404, detail="Invite not found")
    return invite


@router.get("/invites/{token}/validate")
async def validate_invite(token: str, db: Session = Depends(get_db)):
    result = BetaInviteService(db).validate_invite_token(token)
    db.commit()
    return result
