"""
Product API Routes - Packages and Addons
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from agencyops.core.database import get_db
from agencyops.core.security import PermissionChecker
from agencyops.schemas import (
    PackageCreate, PackageUpdate, PackageResponse,
    AddonCreate, AddonUpdate, AddonResponse,
    ReorderRequest, MessageResponse
)
from agencyops.services.permission_service import AgencyContext
from agencyops.services.product_service import PackageService, AddonService

router = APIRouter(prefix="/products", tags=["Products"])


# ==================== PACKAGES ====================

@router.get("/packages", response_model=List[PackageResponse])
async def list_packages(
    active_only: bool = False,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["packages:view"]))
):
    return PackageService(db).get_all(ctx.agency_id, active_only)


@router.post("/packages", response_model=PackageResponse, status_code=status.HTTP_201_CREATED)
async def create_package(
    package_data: PackageCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["packages:create"]))
):
    try:
        package = PackageService(db).create(ctx, package_data.model_dump())
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return package


@router.post("/packages/reorder", response_model=List[PackageResponse])
async def reorder_packages(
    order: ReorderRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["packages:edit"]))
):
    packages = PackageService(db).reorder(ctx, order.ordered_ids)
    db.commit()
    return packages


@router.get("/packages/by-slug/{slug}", response_model=PackageResponse)
async def get_package_by_slug(
    slug: str,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["packages:view"]))
):
    package = PackageService(db).get_by_slug(slug, ctx.agency_id)
    if not package:
        raise HTTPException(status_code=404, detail="Package not found")
    return package


@router.get("/packages/{package_id}", response_model=PackageResponse)
async def get_package(
    package_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["packages:view"]))
):
    package = PackageService(db).get_by_id(package_id, ctx.agency_id)
    if not package:
        raise HTTPException(status_code=404, detail="Package not found")
    return package


@router.patch("/packages/{package_id}", response_model=PackageResponse)
async def update_package(
    package_id: int,
    package_data: PackageUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["packages:edit"]))
):
    try:
        package = PackageService(db).update(ctx, package_id, package_data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not package:
        raise HTTPException(status_code=404, detail="Package not found")
    db.commit()
    return package


@router.post("/packages/{package_id}/duplicate", response_model=PackageResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_package(
    package_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["packages:create"]))
):
    package = PackageService(db).duplicate(ctx, package_id)
    if not package:
        raise HTTPException(status_code=404, detail="Package not found")
    db.commit()
    return package


@router.delete("/packages/{package_id}", response_model=MessageResponse)
async def delete_package(
    package_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["packages:delete"]))
):
    if not PackageService(db).delete(ctx, package_id):
        raise HTTPException(status_code=404, detail="Package not found")
    db.commit()
    return {"message": "Package deleted"}


# ==================== ADDONS ====================

@router.get("/addons", response_model=List[AddonResponse])
async def list_addons(
    active_only: bool = False,
    package_slug: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["addons:view"]))
):
    """All addons, or those offered with ``package_slug``"""
    addon_service = AddonService(db)
    if package_slug:
        return addon_service.get_addons_for_package(ctx.agency_id, package_slug)
    return addon_service.get_all(ctx.agency_id, active_only)


@router.post("/addons", response_model=AddonResponse, status_code=status.HTTP_201_CREATED)
async def create_addon(
    addon_data: AddonCreate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["addons:create"]))
):
    try:
        addon = AddonService(db).create(ctx, addon_data.model_dump())
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return addon


@router.post("/addons/reorder", response_model=List[AddonResponse])
async def reorder_addons(
    order: ReorderRequest,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["addons:edit"]))
):
    addons = AddonService(db).reorder(ctx, order.ordered_ids)
    db.commit()
    return addons


@router.get("/addons/{addon_id}", response_model=AddonResponse)
async def get_addon(
    addon_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["addons:view"]))
):
    addon = AddonService(db).get_by_id(addon_id, ctx.agency_id)
    if not addon:
        raise HTTPException(status_code=404, detail="Addon not found")
    return addon


@router.patch("/addons/{addon_id}", response_model=AddonResponse)
async def update_addon(
    addon_id: int,
    addon_data: AddonUpdate,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["addons:edit"]))
):
    try:
        addon = AddonService(db).update(ctx, addon_id, addon_data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not addon:
        raise HTTPException(status_code=404, detail="Addon not found")
    db.commit()
    return addon


@router.post("/addons/{addon_id}/duplicate", response_model=AddonResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_addon(
    addon_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["addons:create"]))
):
    addon = AddonService(db).duplicate(ctx, addon_id)
    if not addon:
        raise HTTPException(status_code=404, detail="Addon not found")
    db.commit()
    return addon


@router.delete("/addons/{addon_id}", response_model=MessageResponse)
async def delete_addon(
    addon_id: int,
    db: Session = Depends(get_db),
    ctx: AgencyContext = Depends(PermissionChecker(["addons:delete"]))
):
    if not AddonService(db).delete(ctx, addon_id):
        raise HTTPException(status_code=404, detail="Addon not found")
    db.commit()
    return {"message": "Addon deleted"}
