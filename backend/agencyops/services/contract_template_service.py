"""
Contract Template Service - Reusable terms and per-package schedules
"""
from typing import Optional, List
from sqlalchemy.orm import Session, joinedload

from agencyops.models import ContractTemplate, ContractSchedule, Contract
from agencyops.services.activity_service import ActivityService, ActivityAction
from agencyops.services.permission_service import AgencyContext, require_permission

TEMPLATE_FIELDS = (
    "name", "description", "cover_page_config", "terms_content", "signature_config", "is_active",
)
# Changing any of these produces a new template version
VERSIONED_FIELDS = ("cover_page_config", "terms_content", "signature_config")

SCHEDULE_FIELDS = ("name", "content", "package_id", "display_order", "section_category", "is_active")


class ContractTemplateService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)

    # ---------- templates ----------

    def get_templates(self, agency_id: int, active_only: bool = False) -> List[ContractTemplate]:
        query = self.db.query(ContractTemplate).filter(ContractTemplate.agency_id == agency_id)
        if active_only:
            query = query.filter(ContractTemplate.is_active == True)  # noqa: E712
        return query.order_by(ContractTemplate.is_default.desc(), ContractTemplate.created_at.desc()).all()

    def get_template(self, template_id: int, agency_id: int) -> Optional[ContractTemplate]:
        return self.db.query(ContractTemplate).options(joinedload(ContractTemplate.schedules)).filter(
            ContractTemplate.id == template_id,
            ContractTemplate.agency_id == agency_id
        ).first()

    def get_default_template(self, agency_id: int) -> Optional[ContractTemplate]:
        return self.db.query(ContractTemplate).filter(
            ContractTemplate.agency_id == agency_id,
            ContractTemplate.is_default == True,  # noqa: E712
            ContractTemplate.is_active == True  # noqa: E712
        ).first()

    def _clear_default(self, agency_id: int, exclude_id: Optional[int] = None):
        query = self.db.query(ContractTemplate).filter(
            ContractTemplate.agency_id == agency_id,
            ContractTemplate.is_default == True  # noqa: E712
        )
        if exclude_id:
            query = query.filter(ContractTemplate.id != exclude_id)
        query.update({ContractTemplate.is_default: False}, synchronize_session="fetch")

    def create_template(self, ctx: AgencyContext, data: dict) -> ContractTemplate:
        require_permission(ctx, "contract_template:create")

        has_templates = self.db.query(ContractTemplate.id).filter(
            ContractTemplate.agency_id == ctx.agency_id
        ).first() is not None
        is_default = bool(data.get("is_default")) or not has_templates
        if is_default:
            self._clear_default(ctx.agency_id)

        template = ContractTemplate(
            agency_id=ctx.agency_id,
            name=data["name"],
            description=data.get("description") or "",
            cover_page_config=data.get("cover_page_config") or {},
            terms_content=data.get("terms_content") or "",
            signature_config=data.get("signature_config") or {},
            is_default=is_default,
            created_by=ctx.user_id,
        )
        self.db.add(template)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CONTRACT_TEMPLATE_CREATED, "contract_template", template.id,
                              new_values={"name": template.name, "is_default": is_default})
        return template

    def update_template(self, ctx: AgencyContext, template_id: int, data: dict) -> Optional[ContractTemplate]:
        require_permission(ctx, "contract_template:edit")
        template = self.get_template(template_id, ctx.agency_id)
        if not template:
            return None

        updates = {k: data[k] for k in TEMPLATE_FIELDS if data.get(k) is not None}
        if data.get("is_default") is True:
            self._clear_default(ctx.agency_id, exclude_id=template.id)
            updates["is_default"] = True
        elif data.get("is_default") is False:
            updates["is_default"] = False

        content_changed = any(
            key in updates and updates[key] != getattr(template, key) for key in VERSIONED_FIELDS
        )
        old_name = template.name
        for key, value in updates.items():
            setattr(template, key, value)
        if content_changed:
            template.version = (template.version or 1) + 1
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CONTRACT_TEMPLATE_UPDATED, "contract_template", template.id,
                              old_values={"name": old_name}, new_values=updates)
        return template

    def delete_template(self, ctx: AgencyContext, template_id: int) -> bool:
        """Remove the template; contracts keep their generated HTML and lose the link."""
        require_permission(ctx, "contract_template:delete")
        template = self.get_template(template_id, ctx.agency_id)
        if not template:
            return False

        self.db.query(Contract).filter(Contract.template_id == template.id).update(
            {Contract.template_id: None}, synchronize_session="fetch"
        )
        snapshot = {"name": template.name}
        self.db.delete(template)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CONTRACT_TEMPLATE_DELETED, "contract_template", template_id,
                              old_values=snapshot)
        return True

    def duplicate_template(self, ctx: AgencyContext, template_id: int) -> Optional[ContractTemplate]:
        require_permission(ctx, "contract_template:create")
        source = self.get_template(template_id, ctx.agency_id)
        if not source:
            return None

        copy = ContractTemplate(
            agency_id=ctx.agency_id,
            name=f"{source.name} (Copy)",
            description=source.description,
            cover_page_config=dict(source.cover_page_config or {}),
            terms_content=source.terms_content,
            signature_config=dict(source.signature_config or {}),
            is_default=False,
            created_by=ctx.user_id,
        )
        for schedule in source.schedules:
            copy.schedules.append(ContractSchedule(
                package_id=schedule.package_id,
                name=schedule.name,
                content=schedule.content,
                display_order=schedule.display_order,
                section_category=schedule.section_category,
                is_active=schedule.is_active,
            ))
        self.db.add(copy)
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CONTRACT_TEMPLATE_CREATED, "contract_template", copy.id,
                              metadata={"source_template_id": template_id})
        return copy

    def set_default_template(self, ctx: AgencyContext, template_id: int) -> Optional[ContractTemplate]:
        require_permission(ctx, "contract_template:edit")
        template = self.get_template(template_id, ctx.agency_id)
        if not template:
            return None
        self._clear_default(ctx.agency_id, exclude_id=template.id)
        template.is_default = True
        self.db.flush()

        self.activity.log_for(ctx, ActivityAction.CONTRACT_TEMPLATE_UPDATED, "contract_template", template.id,
                              new_values={"is_default": True})
        return template

    # ---------- schedules ----------

    def get_schedules(self, template_id: int, agency_id: int) -> Optional[List[ContractSchedule]]:
        template = self.get_template(template_id, agency_id)
        if not template:
            return None
        return list(template.schedules)

    def get_schedule(self, schedule_id: int, agency_id: int) -> Optional[ContractSchedule]:
        return self.db.query(ContractSchedule).join(ContractTemplate).filter(
            ContractSchedule.id == schedule_id,
            ContractTemplate.agency_id == agency_id
        ).first()

    def create_schedule(self, ctx: AgencyContext, template_id: int, data: dict) -> Optional[ContractSchedule]:
        require_permission(ctx, "contract_template:edit")
        template = self.get_template(template_id, ctx.agency_id)
        if not template:
            return None

        display_order = data.get("display_order")
        if display_order is None:
            display_order = len(template.schedules)

        schedule = ContractSchedule(
            template_id=template.id,
            package_id=data.get("package_id"),
            name=data["name"],
            content=data.get("content") or "",
            section_category=data.get("section_category") or "custom",
            display_order=display_order,
        )
        self.db.add(schedule)
        self.db.flush()
        return schedule

    def update_schedule(self, ctx: AgencyContext, schedule_id: int, data: dict) -> Optional[ContractSchedule]:
        require_permission(ctx, "contract_template:edit")
        schedule = self.get_schedule(schedule_id, ctx.agency_id)
        if not schedule:
            return None
        for key in SCHEDULE_FIELDS:
            if key in data and (data[key] is not None or key == "package_id"):
                setattr(schedule, key, data[key])
        self.db.flush()
        return schedule

    def delete_schedule(self, ctx: AgencyContext, schedule_id: int) -> bool:
        require_permission(ctx, "contract_template:edit")
        schedule = self.get_schedule(schedule_id, ctx.agency_id)
        if not schedule:
            return False
        self.db.delete(schedule)
        self.db.flush()
        return True

    def reorder_schedules(self, ctx: AgencyContext, template_id: int, ordered_ids: List[int]) -> Optional[List[ContractSchedule]]:
        require_permission(ctx, "contract_template:edit")
        template = self.get_template(template_id, ctx.agency_id)
        if not template:
            return None
        schedules = {s.id: s for s in template.schedules}
        for position, schedule_id in enumerate(ordered_ids):
            if schedule_id in schedules:
                schedules[schedule_id].display_order = position
        self.db.flush()
        return sorted(schedules.values(), key=lambda s: s.display_order)

    def find_schedule_for_package(self, template: ContractTemplate, package_id: Optional[int]) -> Optional[ContractSchedule]:
        """Schedule bound to the package, else the first active one by display order."""
        active = [s for s in template.schedules if s.is_active]
        if package_id:
            for schedule in active:
                if schedule.package_id == package_id:
                    return schedule
        active.sort(key=lambda s: s.display_order or 0)
        return active[0] if active else None
