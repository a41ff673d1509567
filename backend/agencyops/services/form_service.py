"""
Form Service - Agency form builder copies, option sets and client submissions
"""
from typing import Optional, List, Dict, Any
import copy
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from agencyops.core.utils import utcnow, generate_unique_slug
from agencyops.models import (
    Agency, AgencyForm, FormTemplate, FormSubmission, FieldOptionSet, SubmissionStatus, DEFAULT_UI_CONFIG
)
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.permission_service import AgencyContext, require_role, MANAGERS, OWNER_ONLY, ALL_ROLES
from agencyops.services.profile_service import AgencyProfileService

logger = logging.getLogger(__name__)

FORM_TYPES = ("questionnaire", "consultation", "feedback", "intake", "custom")
TEMPLATE_CATEGORY_TO_FORM_TYPE = {
    "questionnaire": "questionnaire",
    "consultation": "consultation",
    "feedback": "feedback",
    "intake": "intake",
    "general": "custom",
}
FORM_FIELDS = ("name", "slug", "description", "form_type", "schema", "ui_config", "branding",
               "is_active", "is_default", "requires_auth")


def form_type_for_category(category: Optional[str]) -> str:
    return TEMPLATE_CATEGORY_TO_FORM_TYPE.get(category or "", "custom")


class FormService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    # ---------- forms ----------

    def get_agency_forms(self, agency_id: int, form_type: Optional[str] = None, active_only: bool = False) -> List[AgencyForm]:
        query = self.db.query(AgencyForm).filter(AgencyForm.agency_id == agency_id)
        if form_type:
            query = query.filter(AgencyForm.form_type == form_type)
        if active_only:
            query = query.filter(AgencyForm.is_active == True)  # noqa: E712
        return query.order_by(AgencyForm.updated_at.desc()).all()

    def get_form(self, form_id: int, agency_id: int) -> Optional[AgencyForm]:
        return self.db.query(AgencyForm).filter(
            AgencyForm.id == form_id,
            AgencyForm.agency_id == agency_id
        ).first()

    def get_form_by_slug(self, agency_id: int, slug: str) -> Optional[AgencyForm]:
        """Active form by slug, as rendered on the public form page."""
        return self.db.query(AgencyForm).filter(
            AgencyForm.agency_id == agency_id,
            AgencyForm.slug == slug,
            AgencyForm.is_active == True  # noqa: E712
        ).first()

    def get_default_form(self, agency_id: int, form_type: str) -> Optional[AgencyForm]:
        return self.db.query(AgencyForm).filter(
            AgencyForm.agency_id == agency_id,
            AgencyForm.form_type == form_type,
            AgencyForm.is_default == True,  # noqa: E712
            AgencyForm.is_active == True  # noqa: E712
        ).first()

    def _slug_taken(self, agency_id: int, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(AgencyForm.id).filter(
            AgencyForm.agency_id == agency_id,
            AgencyForm.slug == slug
        )
        if exclude_id:
            query = query.filter(AgencyForm.id != exclude_id)
        return query.first() is not None

    def _free_slug(self, agency_id: int, base: str) -> str:
        slug = base
        counter = 1
        while self._slug_taken(agency_id, slug):
            slug = f"{base}-{counter}"
            counter += 1
        return slug

    def _clear_default(self, agency_id: int, form_type: str, exclude_id: Optional[int] = None):
        query = self.db.query(AgencyForm).filter(
            AgencyForm.agency_id == agency_id,
            AgencyForm.form_type == form_type,
            AgencyForm.is_default == True  # noqa: E712
        )
        if exclude_id:
            query = query.filter(AgencyForm.id != exclude_id)
        for form in query.all():
            form.is_default = False

    def create_form(self, ctx: AgencyContext, data: dict) -> AgencyForm:
        require_role(ctx, MANAGERS, "Only owners and admins can create forms")
        if data.get("form_type") not in FORM_TYPES:
            raise ValueError("Invalid form type")
        if self._slug_taken(ctx.agency_id, data["slug"]):
            raise ValueError("A form with this slug already exists")

        if data.get("is_default"):
            self._clear_default(ctx.agency_id, data["form_type"])

        values = {k: data[k] for k in FORM_FIELDS if data.get(k) is not None}
        values.setdefault("ui_config", dict(DEFAULT_UI_CONFIG))
        form = AgencyForm(agency_id=ctx.agency_id, created_by=ctx.user_id, version=1, **values)
        self.db.add(form)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.FORM_CREATED, "form", form.id,
                              new_values={"name": form.name, "slug": form.slug, "form_type": form.form_type})
        return form

    def update_form(self, ctx: AgencyContext, form_id: int, data: dict) -> Optional[AgencyForm]:
        require_role(ctx, MANAGERS, "Only owners and admins can edit forms")
        form = self.get_form(form_id, ctx.agency_id)
        if not form:
            return None

        if data.get("slug") and data["slug"] != form.slug and self._slug_taken(ctx.agency_id, data["slug"], form.id):
            raise ValueError("A form with this slug already exists")
        if data.get("form_type") is not None and data["form_type"] not in FORM_TYPES:
            raise ValueError("Invalid form type")

        old_values = {"name": form.name, "slug": form.slug, "version": form.version}
        schema_changed = data.get("schema") is not None and data["schema"] != form.schema

        if data.get("is_default"):
            self._clear_default(ctx.agency_id, data.get("form_type") or form.form_type, exclude_id=form.id)

        for key in FORM_FIELDS:
            if key in data and data[key] is not None:
                setattr(form, key, data[key])

        # Editing a template copy detaches it from future template pushes
        if schema_changed:
            form.version = (form.version or 1) + 1
            if form.source_template_id:
                form.is_customized = True
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.FORM_UPDATED, "form", form.id,
                              old_values=old_values,
                              new_values={"name": form.name, "slug": form.slug, "version": form.version})
        return form

    def delete_form(self, ctx: AgencyContext, form_id: int) -> bool:
        require_role(ctx, OWNER_ONLY, "Only the owner can delete forms")
        form = self.get_form(form_id, ctx.agency_id)
        if not form:
            return False

        if form.source_template_id and not form.is_customized:
            template = self.db.query(FormTemplate).filter(FormTemplate.id == form.source_template_id).first()
            if template:
                template.usage_count = max((template.usage_count or 0) - 1, 0)

        snapshot = {"name": form.name, "slug": form.slug, "form_type": form.form_type}
        self.db.delete(form)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.FORM_DELETED, "form", form_id, old_values=snapshot)
        return True

    def duplicate_form(self, ctx: AgencyContext, form_id: int) -> Optional[AgencyForm]:
        require_role(ctx, MANAGERS, "Only owners and admins can create forms")
        source = self.get_form(form_id, ctx.agency_id)
        if not source:
            return None

        form = AgencyForm(
            agency_id=ctx.agency_id,
            name=f"{source.name} (Copy)",
            slug=self._free_slug(ctx.agency_id, f"{source.slug}-copy"),
            description=source.description,
            form_type=source.form_type,
            schema=copy.deepcopy(source.schema),
            ui_config=copy.deepcopy(source.ui_config),
            branding=copy.deepcopy(source.branding),
            is_active=False,
            is_default=False,
            requires_auth=source.requires_auth,
            version=1,
            created_by=ctx.user_id,
        )
        self.db.add(form)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.FORM_CREATED, "form", form.id,
                              new_values={"name": form.name, "duplicated_from": source.id})
        return form

    def create_form_from_template(self, ctx: AgencyContext, template_id: int, name: Optional[str] = None,
                                  slug: Optional[str] = None) -> Optional[AgencyForm]:
        """
        Copy a system template into the agency. The copy becomes the active
        default for its type when the agency has no active form of that type.
        """
        require_role(ctx, MANAGERS, "Only owners and admins can create forms")
        template = self.db.query(FormTemplate).filter(FormTemplate.id == template_id).first()
        if not template:
            return None

        form_type = form_type_for_category(template.category)
        has_active = self.db.query(AgencyForm.id).filter(
            AgencyForm.agency_id == ctx.agency_id,
            AgencyForm.form_type == form_type,
            AgencyForm.is_active == True  # noqa: E712
        ).first() is not None

        form = AgencyForm(
            agency_id=ctx.agency_id,
            name=name or template.name,
            slug=self._free_slug(ctx.agency_id, slug or template.slug),
            description=template.description,
            form_type=form_type,
            schema=copy.deepcopy(template.schema),
            ui_config=copy.deepcopy(template.ui_config) or dict(DEFAULT_UI_CONFIG),
            is_active=not has_active,
            is_default=not has_active,
            requires_auth=False,
            source_template_id=template.id,
            is_customized=False,
            version=1,
            created_by=ctx.user_id,
        )
        template.usage_count = (template.usage_count or 0) + 1
        self.db.add(form)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.FORM_CREATED, "form", form.id,
                              new_values={"name": form.name, "source_template_id": template.id,
                                          "is_default": form.is_default})
        return form

    # ---------- field option sets ----------

    def get_field_option_sets(self, agency_id: int) -> List[FieldOptionSet]:
        return self.db.query(FieldOptionSet).filter(
            or_(FieldOptionSet.agency_id.is_(None), FieldOptionSet.agency_id == agency_id)
        ).order_by(FieldOptionSet.name).all()

    def get_field_option_set(self, agency_id: int, slug: str) -> Optional[FieldOptionSet]:
        """Agency-specific sets shadow system sets with the same slug."""
        own = self.db.query(FieldOptionSet).filter(
            FieldOptionSet.agency_id == agency_id,
            FieldOptionSet.slug == slug
        ).first()
        if own:
            return own
        return self.db.query(FieldOptionSet).filter(
            FieldOptionSet.agency_id.is_(None),
            FieldOptionSet.slug == slug
        ).first()

    # ---------- submissions ----------

    def get_form_submissions(self, agency_id: int, form_id: Optional[int] = None, status: Optional[str] = None,
                             limit: int = 50, offset: int = 0) -> List[FormSubmission]:
        query = self.db.query(FormSubmission).filter(FormSubmission.agency_id == agency_id)
        if form_id:
            query = query.filter(FormSubmission.form_id == form_id)
        if status:
            query = query.filter(FormSubmission.status == status)
        return query.order_by(
            FormSubmission.submitted_at.desc(), FormSubmission.created_at.desc()
        ).offset(offset).limit(limit).all()

    def get_submission(self, submission_id: int, agency_id: int) -> Optional[FormSubmission]:
        return self.db.query(FormSubmission).filter(
            FormSubmission.id == submission_id,
            FormSubmission.agency_id == agency_id
        ).first()

    def _get_by_slug(self, slug: str) -> Optional[FormSubmission]:
        return self.db.query(FormSubmission).filter(FormSubmission.slug == slug).first()

    def get_submission_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        submission = self._get_by_slug(slug)
        if not submission:
            return None
        agency_profile = AgencyProfileService(self.db).get_profile(submission.agency_id)
        agency = self.db.query(Agency).filter(Agency.id == submission.agency_id).first()
        return {
            "submission": submission,
            "form": submission.form,
            "agency": agency,
            "agency_profile": agency_profile,
        }

    def submit_form(self, form_id: int, data: dict, metadata: Optional[dict] = None) -> Optional[FormSubmission]:
        """Public one-shot submission against an active form."""
        form = self.db.query(AgencyForm).filter(
            AgencyForm.id == form_id,
            AgencyForm.is_active == True  # noqa: E712
        ).first()
        if not form:
            return None

        now = utcnow()
        submission = FormSubmission(
            form_id=form.id,
            agency_id=form.agency_id,
            slug=generate_unique_slug(self.db, FormSubmission),
            data=data or {},
            submission_metadata=metadata or {},
            status=SubmissionStatus.COMPLETED,
            completion_percentage=100,
            started_at=now,
            last_activity_at=now,
            submitted_at=now,
            form_version=form.version,
        )
        self.db.add(submission)
        self.db.flush()

        self.activity.log(
            agency_id=form.agency_id,
            action=ActivityAction.FORM_SUBMITTED,
            entity_type="form_submission",
            entity_id=submission.id,
            new_values={"form_id": form.id, "form_name": form.name}
        )
        return submission

    def _new_draft(self, ctx: AgencyContext, form: AgencyForm, data: dict, metadata: dict) -> FormSubmission:
        submission = FormSubmission(
            form_id=form.id,
            agency_id=ctx.agency_id,
            slug=generate_unique_slug(self.db, FormSubmission),
            client_id=data.get("client_id"),
            client_business_name=data["client_business_name"],
            client_email=data["client_email"].strip().lower(),
            status=SubmissionStatus.DRAFT,
            current_step=0,
            completion_percentage=0,
            data={},
            submission_metadata=metadata,
            form_version=form.version,
        )
        self.db.add(submission)
        self.db.flush()
        return submission

    def create_submission_for_client(self, ctx: AgencyContext, form_id: int, data: dict) -> Optional[FormSubmission]:
        """Draft submission sent to a client to fill in via its public slug."""
        require_role(ctx, ALL_ROLES)
        form = self.get_form(form_id, ctx.agency_id)
        if not form:
            return None
        return self._new_draft(ctx, form, data, {})

    def create_submission_from_template(self, ctx: AgencyContext, template_id: int, data: dict) -> Optional[FormSubmission]:
        """
        Draft submission from a system template, reusing the agency's copy of
        the template when one already exists under the template's slug.
        """
        require_role(ctx, ALL_ROLES)
        template = self.db.query(FormTemplate).filter(FormTemplate.id == template_id).first()
        if not template:
            return None

        copies = self.db.query(AgencyForm).filter(
            AgencyForm.agency_id == ctx.agency_id,
            AgencyForm.slug == template.slug
        ).all()
        form = next((f for f in copies if f.is_active), copies[0] if copies else None)
        if form is None:
            form = AgencyForm(
                agency_id=ctx.agency_id,
                name=template.name,
                slug=template.slug,
                description=template.description,
                form_type=form_type_for_category(template.category),
                schema=copy.deepcopy(template.schema),
                ui_config=copy.deepcopy(template.ui_config) or dict(DEFAULT_UI_CONFIG),
                is_active=True,
                is_default=False,
                requires_auth=False,
                version=1,
                created_by=ctx.user_id,
            )
            self.db.add(form)
            self.db.flush()

        return self._new_draft(ctx, form, data, {
            "sourceTemplateId": template.id,
            "sourceTemplateSlug": template.slug,
        })

    def save_submission_progress(self, slug: str, data: dict, current_step: int,
                                 completion_percentage: int) -> Optional[FormSubmission]:
        if current_step < 0:
            raise ValueError("Step cannot be negative")
        if completion_percentage < 0 or completion_percentage > 100:
            raise ValueError("Completion percentage must be between 0 and 100")

        submission = self._get_by_slug(slug)
        if not submission:
            return None
        if submission.status != SubmissionStatus.DRAFT:
            raise ValueError("Cannot update a completed submission")

        now = utcnow()
        submission.data = data or {}
        submission.current_step = current_step
        submission.completion_percentage = completion_percentage
        submission.last_activity_at = now
        if not submission.started_at:
            submission.started_at = now
        self.db.flush()
        return submission

    def complete_submission(self, slug: str, data: dict) -> Optional[FormSubmission]:
        submission = self._get_by_slug(slug)
        if not submission:
            return None
        if submission.status in (SubmissionStatus.COMPLETED, SubmissionStatus.PROCESSED):
            raise ValueError("Submission has already been completed")

        now = utcnow()
        submission.data = data or {}
        submission.status = SubmissionStatus.COMPLETED
        submission.completion_percentage = 100
        submission.submitted_at = now
        submission.last_activity_at = now
        self.db.flush()

        self.activity.log(
            agency_id=submission.agency_id,
            action=ActivityAction.FORM_SUBMITTED,
            entity_type="form_submission",
            entity_id=submission.id,
            new_values={"form_id": submission.form_id, "client_email": submission.client_email}
        )
        return submission

    def update_submission_status(self, ctx: AgencyContext, submission_id: int, status: str,
                                 consultation_id: Optional[int] = None) -> Optional[FormSubmission]:
        require_role(ctx, ALL_ROLES)
        if status not in SubmissionStatus.ALL:
            raise ValueError("Invalid submission status")
        submission = self.get_submission(submission_id, ctx.agency_id)
        if not submission:
            return None

        old_status = submission.status
        submission.status = status
        if status == SubmissionStatus.PROCESSED:
            submission.processed_at = utcnow()
        if consultation_id:
            submission.consultation_id = consultation_id
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.SUBMISSION_STATUS_CHANGED, "form_submission", submission.id,
                              old_values={"status": old_status}, new_values={"status": status})
        return submission

    def delete_submission(self, ctx: AgencyContext, submission_id: int) -> bool:
        require_role(ctx, MANAGERS, "Only owners and admins can delete submissions")
        submission = self.get_submission(submission_id, ctx.agency_id)
        if not submission:
            return False

        snapshot = {"form_id": submission.form_id, "status": submission.status,
                    "client_email": submission.client_email}
        self.db.delete(submission)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.SUBMISSION_DELETED, "form_submission", submission_id,
                              old_values=snapshot)
        return True


def _options(*pairs) -> List[Dict[str, str]]:
    return [{"value": value, "label": label} for value, label in pairs]


def seed_field_option_sets(db: Session):
    """Seed the system-wide option sets shared by every agency"""
    system_sets = [
        {"name": "Industries", "slug": "industries", "options": _options(
            ("technology", "Technology & Software"), ("healthcare", "Healthcare & Medical"),
            ("finance", "Finance & Banking"), ("retail", "Retail & E-commerce"),
            ("manufacturing", "Manufacturing"), ("education", "Education"),
            ("real-estate", "Real Estate"), ("hospitality", "Hospitality & Tourism"),
            ("legal", "Legal Services"), ("marketing", "Marketing & Advertising"),
            ("construction", "Construction"), ("nonprofit", "Non-Profit"), ("other", "Other"),
        )},
        {"name": "Business Types", "slug": "business-types", "options": _options(
            ("startup", "Startup (< 2 years)"), ("small-business", "Small Business (2-10 employees)"),
            ("medium-business", "Medium Business (11-50 employees)"), ("enterprise", "Enterprise (50+ employees)"),
            ("freelancer", "Freelancer / Sole Proprietor"), ("nonprofit", "Non-Profit Organization"),
        )},
        {"name": "Budget Ranges", "slug": "budget-ranges", "options": _options(
            ("under-1k", "Under $1,000"), ("1k-5k", "$1,000 - $5,000"), ("5k-10k", "$5,000 - $10,000"),
            ("10k-25k", "$10,000 - $25,000"), ("25k-50k", "$25,000 - $50,000"), ("50k-plus", "$50,000+"),
            ("ongoing", "Ongoing Retainer"), ("not-sure", "Not Sure Yet"),
        )},
        {"name": "Urgency Levels", "slug": "urgency-levels", "options": _options(
            ("low", "Low - No rush, exploring options"), ("medium", "Medium - Want to start within 1-3 months"),
            ("high", "High - Need to start within 2-4 weeks"), ("urgent", "Urgent - Need to start immediately"),
        )},
        {"name": "Timeline Preferences", "slug": "timeline-preferences", "options": _options(
            ("asap", "ASAP - As soon as possible"), ("1-month", "Within 1 month"), ("1-3-months", "1-3 months"),
            ("3-6-months", "3-6 months"), ("flexible", "Flexible / No rush"),
        )},
        {"name": "Communication Preferences", "slug": "communication-preferences", "options": _options(
            ("email", "Email"), ("phone", "Phone Call"), ("video", "Video Call"), ("in-person", "In-Person Meeting"),
        )},
        {"name": "Yes No Maybe", "slug": "yes-no-maybe", "options": _options(
            ("yes", "Yes"), ("no", "No"), ("maybe", "Maybe / Not Sure"),
        )},
    ]

    existing = {
        slug for (slug,) in db.query(FieldOptionSet.slug).filter(FieldOptionSet.agency_id.is_(None)).all()
    }
    for set_data in system_sets:
        if set_data["slug"] not in existing:
            db.add(FieldOptionSet(agency_id=None, is_system=True, **set_data))

    db.commit()
