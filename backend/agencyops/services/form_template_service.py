"""
Form Template Service - System-wide form template library managed by super admins
"""
from typing import Optional, List, Dict, Any
import copy
import logging

from sqlalchemy import update, null
from sqlalchemy.orm import Session

from agencyops.core.utils import utcnow, slugify
from agencyops.models import AgencyForm, FormTemplate, DEFAULT_UI_CONFIG

logger = logging.getLogger(__name__)

TEMPLATE_CATEGORIES = ("questionnaire", "consultation", "feedback", "intake", "general")
TEMPLATE_FIELDS = ("name", "slug", "description", "category", "schema", "ui_config",
                   "preview_image_url", "is_featured", "display_order", "new_until")


class FormTemplateService:
    def __init__(self, db: Session):
        self.db = db

    def get_templates(self, category: Optional[str] = None) -> List[FormTemplate]:
        query = self.db.query(FormTemplate)
        if category:
            query = query.filter(FormTemplate.category == category)
        return query.order_by(FormTemplate.display_order, FormTemplate.name).all()

    def get_template(self, template_id: int) -> Optional[FormTemplate]:
        return self.db.query(FormTemplate).filter(FormTemplate.id == template_id).first()

    def get_template_by_slug(self, slug: str) -> Optional[FormTemplate]:
        return self.db.query(FormTemplate).filter(FormTemplate.slug == slug).first()

    def _slug_taken(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(FormTemplate.id).filter(FormTemplate.slug == slug)
        if exclude_id:
            query = query.filter(FormTemplate.id != exclude_id)
        return query.first() is not None

    def _unique_slug(self, base: str) -> str:
        slug = base
        counter = 1
        while self._slug_taken(slug):
            slug = f"{base}-{counter}"
            counter += 1
        return slug

    def create_template(self, data: dict) -> FormTemplate:
        if data.get("category") not in TEMPLATE_CATEGORIES:
            raise ValueError("Invalid template category")

        slug = self._unique_slug(data.get("slug") or slugify(data["name"], max_length=255))
        values = {k: data[k] for k in TEMPLATE_FIELDS if data.get(k) is not None}
        values["slug"] = slug
        values.setdefault("ui_config", dict(DEFAULT_UI_CONFIG))

        template = FormTemplate(usage_count=0, **values)
        self.db.add(template)
        self.db.flush()
        logger.info(f"Form template '{template.slug}' created")
        return template

    def update_template(self, template_id: int, data: dict) -> Optional[FormTemplate]:
        template = self.get_template(template_id)
        if not template:
            return None
        if data.get("slug") and self._slug_taken(data["slug"], template.id):
            raise ValueError("A template with this slug already exists")
        if data.get("category") is not None and data["category"] not in TEMPLATE_CATEGORIES:
            raise ValueError("Invalid template category")

        for key in TEMPLATE_FIELDS:
            if key in data and (data[key] is not None or key in ("description", "new_until")):
                setattr(template, key, data[key])
        self.db.flush()
        return template

    def delete_template(self, template_id: int) -> bool:
        template = self.get_template(template_id)
        if not template:
            return False
        self.db.query(AgencyForm).filter(
            AgencyForm.source_template_id == template_id
        ).update({AgencyForm.source_template_id: None}, synchronize_session=False)
        self.db.delete(template)
        self.db.flush()
        logger.info(f"Form template {template_id} deleted")
        return True

    def reorder_templates(self, items: List[Dict[str, int]]) -> List[FormTemplate]:
        """``items`` is a list of ``{"id", "display_order"}`` pairs."""
        now = utcnow()
        for item in items:
            self.db.query(FormTemplate).filter(FormTemplate.id == item["id"]).update(
                {FormTemplate.display_order: item["display_order"], FormTemplate.updated_at: now},
                synchronize_session=False
            )
        self.db.flush()
        self.db.expire_all()
        return self.get_templates()

    def _linked_copies(self, template_id: int):
        return (
            AgencyForm.source_template_id == template_id,
            AgencyForm.is_customized == False,  # noqa: E712
        )

    def get_template_push_preview(self, template_id: int) -> Dict[str, int]:
        count = self.db.query(AgencyForm.id).filter(*self._linked_copies(template_id)).count()
        return {"count": count}

    def push_template_update(self, template_id: int) -> Optional[Dict[str, Any]]:
        """
        Overwrite the schema of every non-customised agency copy with the
        template's current schema, keeping the old one for rollback.
        """
        template = self.get_template(template_id)
        if not template:
            return None

        now = utcnow()
        stmt = (
            update(AgencyForm)
            .where(*self._linked_copies(template_id))
            .values(
                previous_schema=AgencyForm.schema,
                schema=copy.deepcopy(template.schema),
                ui_config=copy.deepcopy(template.ui_config),
                version=AgencyForm.version + 1,
                updated_at=now,
            )
            .returning(AgencyForm.id)
            .execution_options(synchronize_session=False)
        )
        updated_ids = self.db.execute(stmt).scalars().all()
        self.db.expire_all()
        logger.info(f"Pushed form template {template_id} to {len(updated_ids)} agency forms")
        return {
            "updated_count": len(updated_ids),
            "template_id": template_id,
            "pushed_at": now.isoformat(),
        }

    def rollback_template_push(self, template_id: int) -> Dict[str, int]:
        stmt = (
            update(AgencyForm)
            .where(*self._linked_copies(template_id), AgencyForm.previous_schema.isnot(None))
            .values(
                schema=AgencyForm.previous_schema,
                previous_schema=null(),
                version=AgencyForm.version + 1,
                updated_at=utcnow(),
            )
            .returning(AgencyForm.id)
            .execution_options(synchronize_session=False)
        )
        rolled_back = self.db.execute(stmt).scalars().all()
        self.db.expire_all()
        logger.info(f"Rolled back form template {template_id} on {len(rolled_back)} agency forms")
        return {"rolled_back_count": len(rolled_back)}
