"""
Product Service - Packages and add-ons offered by an agency
"""
from typing import Optional, List
from sqlalchemy.orm import Session

from agencyops.models import AgencyPackage, AgencyAddon
from agencyops.core.utils import slugify
from agencyops.services.permission_service import AgencyContext, require_permission

PRICING_MODELS = ("subscription", "lump_sum", "hybrid")
ADDON_PRICING_TYPES = ("one_time", "monthly", "per_unit")

PACKAGE_FIELDS = (
    "name", "slug", "description", "pricing_model", "setup_fee", "monthly_price", "one_time_price",
    "hosting_fee", "minimum_term_months", "cancellation_fee_type", "cancellation_fee_amount",
    "included_features", "max_pages", "display_order", "is_featured", "is_active",
)
ADDON_FIELDS = (
    "name", "slug", "description", "price", "pricing_type", "unit_label",
    "available_packages", "display_order", "is_active",
)


class _CatalogService:
    """Shared CRUD for per-agency catalog rows keyed by a unique slug"""
    model = None
    fields = ()
    permission = ""
    label = ""

    def __init__(self, db: Session):
        self.db = db

    def get_all(self, agency_id: int, active_only: bool = False) -> List:
        query = self.db.query(self.model).filter(self.model.agency_id == agency_id)
        if active_only:
            query = query.filter(self.model.is_active == True)  # noqa: E712
        return query.order_by(self.model.display_order, self.model.name).all()

    def get_by_id(self, item_id: int, agency_id: int):
        return self.db.query(self.model).filter(
            self.model.id == item_id,
            self.model.agency_id == agency_id
        ).first()

    def get_by_slug(self, slug: str, agency_id: int):
        return self.db.query(self.model).filter(
            self.model.slug == slug,
            self.model.agency_id == agency_id
        ).first()

    def _slug_taken(self, agency_id: int, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(self.model.id).filter(
            self.model.agency_id == agency_id,
            self.model.slug == slug
        )
        if exclude_id:
            query = query.filter(self.model.id != exclude_id)
        return query.first() is not None

    def _validate(self, data: dict):
        pass

    def create(self, ctx: AgencyContext, data: dict):
        require_permission(ctx, f"{self.permission}:create")
        self._validate(data)

        slug = data.get("slug") or slugify(data["name"])
        if self._slug_taken(ctx.agency_id, slug):
            raise ValueError(f"{self.label} with slug '{slug}' already exists")

        values = {k: data[k] for k in self.fields if data.get(k) is not None}
        values["slug"] = slug
        if "display_order" not in values:
            values["display_order"] = len(self.get_all(ctx.agency_id))

        item = self.model(agency_id=ctx.agency_id, **values)
        self.db.add(item)
        self.db.flush()
        return item

    def update(self, ctx: AgencyContext, item_id: int, data: dict):
        require_permission(ctx, f"{self.permission}:edit")
        item = self.get_by_id(item_id, ctx.agency_id)
        if not item:
            return None
        self._validate(data)

        if data.get("slug") and data["slug"] != item.slug and self._slug_taken(ctx.agency_id, data["slug"], item.id):
            raise ValueError(f"{self.label} with slug '{data['slug']}' already exists")

        for key in self.fields:
            if key in data and data[key] is not None:
                setattr(item, key, data[key])
        self.db.flush()
        return item

    def delete(self, ctx: AgencyContext, item_id: int) -> bool:
        require_permission(ctx, f"{self.permission}:delete")
        item = self.get_by_id(item_id, ctx.agency_id)
        if not item:
            return False
        self.db.delete(item)
        self.db.flush()
        return True

    def reorder(self, ctx: AgencyContext, ordered_ids: List[int]) -> List:
        require_permission(ctx, f"{self.permission}:edit")
        items = {i.id: i for i in self.get_all(ctx.agency_id)}
        for position, item_id in enumerate(ordered_ids):
            if item_id in items:
                items[item_id].display_order = position
        self.db.flush()
        return self.get_all(ctx.agency_id)

    def duplicate(self, ctx: AgencyContext, item_id: int):
        require_permission(ctx, f"{self.permission}:create")
        source = self.get_by_id(item_id, ctx.agency_id)
        if not source:
            return None

        slug = f"{source.slug}-copy"
        counter = 1
        while self._slug_taken(ctx.agency_id, slug):
            slug = f"{source.slug}-copy-{counter}"
            counter += 1

        values = {k: getattr(source, k) for k in self.fields}
        values.update({
            "name": f"{source.name} (Copy)",
            "slug": slug,
            "is_active": False,
            "display_order": len(self.get_all(ctx.agency_id)),
        })
        if "is_featured" in values:
            values["is_featured"] = False
        for key in ("included_features", "available_packages"):
            if key in values:
                values[key] = list(values[key] or [])

        copy = self.model(agency_id=ctx.agency_id, **values)
        self.db.add(copy)
        self.db.flush()
        return copy


class PackageService(_CatalogService):
    model = AgencyPackage
    fields = PACKAGE_FIELDS
    permission = "packages"
    label = "Package"

    def _validate(self, data: dict):
        if data.get("pricing_model") is not None and data["pricing_model"] not in PRICING_MODELS:
            raise ValueError(f"Invalid pricing model: {data['pricing_model']}")


class AddonService(_CatalogService):
    model = AgencyAddon
    fields = ADDON_FIELDS
    permission = "addons"
    label = "Add-on"

    def _validate(self, data: dict):
        if data.get("pricing_type") is not None and data["pricing_type"] not in ADDON_PRICING_TYPES:
            raise ValueError(f"Invalid pricing type: {data['pricing_type']}")

    def get_addons_for_package(self, agency_id: int, package_slug: str) -> List[AgencyAddon]:
        """Active add-ons available to a package; an empty availability list means all packages."""
        return [
            addon for addon in self.get_all(agency_id, active_only=True)
            if not addon.available_packages or package_slug in addon.available_packages
        ]

    def get_many(self, agency_id: int, addon_ids: List[int]) -> List[AgencyAddon]:
        if not addon_ids:
            return []
        return self.db.query(AgencyAddon).filter(
            AgencyAddon.agency_id == agency_id,
            AgencyAddon.id.in_(addon_ids)
        ).all()
