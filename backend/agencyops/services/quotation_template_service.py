"""
Quotation Template Service - Scope blocks, terms blocks and the templates that bundle them
"""
from typing import Optional, List
from sqlalchemy.orm import Session, joinedload

from agencyops.core.utils import money
from agencyops.models import (
    QuotationScopeTemplate, QuotationTermsTemplate, QuotationTemplate,
    QuotationTemplateSection, QuotationTemplateTerms, QuotationScopeSection
)
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.permission_service import AgencyContext, require_permission

SCOPE_FIELDS = ("name", "description", "work_items", "default_price", "category", "is_active")
TERMS_FIELDS = ("title", "content", "is_active")
TEMPLATE_FIELDS = ("name", "description", "options_notes", "is_active")


class QuotationTemplateService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    # ---------- scope templates ----------

    def get_scope_templates(self, ctx: AgencyContext, category: Optional[str] = None) -> List[QuotationScopeTemplate]:
        require_permission(ctx, "template:view")
        query = self.db.query(QuotationScopeTemplate).filter(QuotationScopeTemplate.agency_id == ctx.agency_id)
        if category:
            query = query.filter(QuotationScopeTemplate.category == category)
        return query.order_by(QuotationScopeTemplate.name).all()

    def get_scope_template(self, ctx: AgencyContext, scope_id: int) -> Optional[QuotationScopeTemplate]:
        require_permission(ctx, "template:view")
        return self.db.query(QuotationScopeTemplate).filter(
            QuotationScopeTemplate.id == scope_id,
            QuotationScopeTemplate.agency_id == ctx.agency_id
        ).first()

    def create_scope_template(self, ctx: AgencyContext, data: dict) -> QuotationScopeTemplate:
        require_permission(ctx, "template:create")
        scope = QuotationScopeTemplate(
            agency_id=ctx.agency_id,
            name=data["name"],
            description=data.get("description") or "",
            work_items=list(data.get("work_items") or []),
            default_price=money(data.get("default_price") or 0),
            category=data.get("category"),
        )
        self.db.add(scope)
        self.db.flush()
        return scope

    def update_scope_template(self, ctx: AgencyContext, scope_id: int, data: dict) -> Optional[QuotationScopeTemplate]:
        require_permission(ctx, "template:edit")
        scope = self.get_scope_template(ctx, scope_id)
        if not scope:
            return None
        for key in SCOPE_FIELDS:
            if data.get(key) is not None:
                value = data[key]
                if key == "default_price":
                    value = money(value)
                elif key == "work_items":
                    value = list(value)
                setattr(scope, key, value)
        self.db.flush()
        return scope

    def delete_scope_template(self, ctx: AgencyContext, scope_id: int) -> bool:
        require_permission(ctx, "template:delete")
        scope = self.get_scope_template(ctx, scope_id)
        if not scope:
            return False
        self.db.query(QuotationTemplateSection).filter(
            QuotationTemplateSection.scope_template_id == scope.id
        ).delete(synchronize_session="fetch")
        self.db.query(QuotationScopeSection).filter(
            QuotationScopeSection.scope_template_id == scope.id
        ).update({QuotationScopeSection.scope_template_id: None}, synchronize_session="fetch")
        self.db.delete(scope)
        self.db.flush()
        return True

    # ---------- terms templates ----------

    def get_terms_templates(self, ctx: AgencyContext) -> List[QuotationTermsTemplate]:
        require_permission(ctx, "template:view")
        return self.db.query(QuotationTermsTemplate).filter(
            QuotationTermsTemplate.agency_id == ctx.agency_id
        ).order_by(QuotationTermsTemplate.title).all()

    def _get_terms(self, agency_id: int, terms_id: int) -> Optional[QuotationTermsTemplate]:
        return self.db.query(QuotationTermsTemplate).filter(
            QuotationTermsTemplate.id == terms_id,
            QuotationTermsTemplate.agency_id == agency_id
        ).first()

    def create_terms_template(self, ctx: AgencyContext, data: dict) -> QuotationTermsTemplate:
        require_permission(ctx, "template:create")
        terms = QuotationTermsTemplate(
            agency_id=ctx.agency_id,
            title=data["title"],
            content=data.get("content") or "",
        )
        self.db.add(terms)
        self.db.flush()
        return terms

    def update_terms_template(self, ctx: AgencyContext, terms_id: int, data: dict) -> Optional[QuotationTermsTemplate]:
        require_permission(ctx, "template:edit")
        terms = self._get_terms(ctx.agency_id, terms_id)
        if not terms:
            return None
        for key in TERMS_FIELDS:
            if data.get(key) is not None:
                setattr(terms, key, data[key])
        self.db.flush()
        return terms

    def delete_terms_template(self, ctx: AgencyContext, terms_id: int) -> bool:
        require_permission(ctx, "template:delete")
        terms = self._get_terms(ctx.agency_id, terms_id)
        if not terms:
            return False
        self.db.query(QuotationTemplateTerms).filter(
            QuotationTemplateTerms.terms_template_id == terms.id
        ).delete(synchronize_session="fetch")
        self.db.delete(terms)
        self.db.flush()
        return True

    # ---------- quotation templates ----------

    def get_templates(self, ctx: AgencyContext) -> List[QuotationTemplate]:
        require_permission(ctx, "template:view")
        return self.db.query(QuotationTemplate).filter(
            QuotationTemplate.agency_id == ctx.agency_id
        ).order_by(QuotationTemplate.is_default.desc(), QuotationTemplate.created_at.desc()).all()

    def _get_template(self, agency_id: int, template_id: int) -> Optional[QuotationTemplate]:
        return self.db.query(QuotationTemplate).options(
            joinedload(QuotationTemplate.sections).joinedload(QuotationTemplateSection.scope_template),
            joinedload(QuotationTemplate.terms).joinedload(QuotationTemplateTerms.terms_template),
        ).filter(
            QuotationTemplate.id == template_id,
            QuotationTemplate.agency_id == agency_id
        ).first()

    def get_template(self, ctx: AgencyContext, template_id: int) -> Optional[QuotationTemplate]:
        require_permission(ctx, "template:view")
        return self._get_template(ctx.agency_id, template_id)

    def _clear_default(self, agency_id: int, exclude_id: Optional[int] = None):
        query = self.db.query(QuotationTemplate).filter(
            QuotationTemplate.agency_id == agency_id,
            QuotationTemplate.is_default == True  # noqa: E712
        )
        if exclude_id:
            query = query.filter(QuotationTemplate.id != exclude_id)
        query.update({QuotationTemplate.is_default: False}, synchronize_session="fetch")

    def create_template(self, ctx: AgencyContext, data: dict) -> QuotationTemplate:
        require_permission(ctx, "template:create")
        if data.get("is_default"):
            self._clear_default(ctx.agency_id)
        template = QuotationTemplate(
            agency_id=ctx.agency_id,
            name=data["name"],
            description=data.get("description") or "",
            options_notes=data.get("options_notes") or "",
            is_default=bool(data.get("is_default")),
            created_by=ctx.user_id,
        )
        self.db.add(template)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.QUOTATION_TEMPLATE_CREATED, "quotation_template", template.id,
                              new_values={"name": template.name})
        return template

    def update_template(self, ctx: AgencyContext, template_id: int, data: dict) -> Optional[QuotationTemplate]:
        require_permission(ctx, "template:edit")
        template = self._get_template(ctx.agency_id, template_id)
        if not template:
            return None
        if data.get("is_default") is True:
            self._clear_default(ctx.agency_id, exclude_id=template.id)
        if data.get("is_default") is not None:
            template.is_default = bool(data["is_default"])
        for key in TEMPLATE_FIELDS:
            if data.get(key) is not None:
                setattr(template, key, data[key])
        self.db.flush()
        return template

    def delete_template(self, ctx: AgencyContext, template_id: int) -> bool:
        require_permission(ctx, "template:delete")
        template = self._get_template(ctx.agency_id, template_id)
        if not template:
            return False
        name = template.name
        self.db.delete(template)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.QUOTATION_TEMPLATE_DELETED, "quotation_template", template_id,
                              old_values={"name": name})
        return True

    def duplicate_template(self, ctx: AgencyContext, template_id: int) -> Optional[QuotationTemplate]:
        require_permission(ctx, "template:create")
        source = self._get_template(ctx.agency_id, template_id)
        if not source:
            return None
        copy = QuotationTemplate(
            agency_id=ctx.agency_id,
            name=f"{source.name} (Copy)",
            description=source.description,
            options_notes=source.options_notes,
            is_default=False,
            is_active=source.is_active,
            created_by=ctx.user_id,
        )
        copy.sections = [
            QuotationTemplateSection(
                scope_template_id=s.scope_template_id,
                default_section_price=s.default_section_price,
                sort_order=s.sort_order,
            )
            for s in source.sections
        ]
        copy.terms = [
            QuotationTemplateTerms(terms_template_id=t.terms_template_id, sort_order=t.sort_order)
            for t in source.terms
        ]
        self.db.add(copy)
        self.db.flush()
        self.activity.log_for(ctx, ActivityAction.QUOTATION_TEMPLATE_CREATED, "quotation_template", copy.id,
                              metadata={"source_template_id": source.id})
        return copy

    def set_default_template(self, ctx: AgencyContext, template_id: int) -> Optional[QuotationTemplate]:
        require_permission(ctx, "template:edit")
        template = self._get_template(ctx.agency_id, template_id)
        if not template:
            return None
        self._clear_default(ctx.agency_id, exclude_id=template.id)
        template.is_default = True
        self.db.flush()
        return template

    # ---------- template links ----------

    def add_section_to_template(self, ctx: AgencyContext, template_id: int, scope_template_id: int,
                                default_section_price=None) -> Optional[QuotationTemplateSection]:
        require_permission(ctx, "template:edit")
        template = self._get_template(ctx.agency_id, template_id)
        if not template:
            return None
        scope = self.db.query(QuotationScopeTemplate).filter(
            QuotationScopeTemplate.id == scope_template_id,
            QuotationScopeTemplate.agency_id == ctx.agency_id
        ).first()
        if not scope:
            raise ValueError("Scope template not found")
        if any(s.scope_template_id == scope.id for s in template.sections):
            raise ValueError("Scope template is already part of this template")

        link = QuotationTemplateSection(
            scope_template_id=scope.id,
            default_section_price=money(default_section_price) if default_section_price is not None else None,
            sort_order=len(template.sections),
        )
        template.sections.append(link)
        self.db.flush()
        return link

    def remove_section_from_template(self, ctx: AgencyContext, section_id: int) -> bool:
        require_permission(ctx, "template:edit")
        link = self.db.query(QuotationTemplateSection).join(QuotationTemplate).filter(
            QuotationTemplateSection.id == section_id,
            QuotationTemplate.agency_id == ctx.agency_id
        ).first()
        if not link:
            return False
        self.db.delete(link)
        self.db.flush()
        return True

    def reorder_template_sections(self, ctx: AgencyContext, template_id: int, ordered_ids: List[int]) -> Optional[QuotationTemplate]:
        require_permission(ctx, "template:edit")
        template = self._get_template(ctx.agency_id, template_id)
        if not template:
            return None
        positions = {link_id: index for index, link_id in enumerate(ordered_ids)}
        for link in template.sections:
            if link.id in positions:
                link.sort_order = positions[link.id]
        self.db.flush()
        return template

    def add_terms_to_template(self, ctx: AgencyContext, template_id: int, terms_template_id: int) -> Optional[QuotationTemplateTerms]:
        require_permission(ctx, "template:edit")
        template = self._get_template(ctx.agency_id, template_id)
        if not template:
            return None
        terms = self._get_terms(ctx.agency_id, terms_template_id)
        if not terms:
            raise ValueError("Terms template not found")
        if any(t.terms_template_id == terms.id for t in template.terms):
            raise ValueError("Terms template is already part of this template")

        link = QuotationTemplateTerms(terms_template_id=terms.id, sort_order=len(template.terms))
        template.terms.append(link)
        self.db.flush()
        return link

    def remove_terms_from_template(self, ctx: AgencyContext, link_id: int) -> bool:
        require_permission(ctx, "template:edit")
        link = self.db.query(QuotationTemplateTerms).join(QuotationTemplate).filter(
            QuotationTemplateTerms.id == link_id,
            QuotationTemplate.agency_id == ctx.agency_id
        ).first()
        if not link:
            return False
        self.db.delete(link)
        self.db.flush()
        return True

    def reorder_template_terms(self, ctx: AgencyContext, template_id: int, ordered_ids: List[int]) -> Optional[QuotationTemplate]:
        require_permission(ctx, "template:edit")
        template = self._get_template(ctx.agency_id, template_id)
        if not template:
            return None
        positions = {link_id: index for index, link_id in enumerate(ordered_ids)}
        for link in template.terms:
            if link.id in positions:
                link.sort_order = positions[link.id]
        self.db.flush()
        return template
