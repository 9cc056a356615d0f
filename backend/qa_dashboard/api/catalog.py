"""
Catalog API: sites, devices and features.

The three resources share one shape (a unique name, plus a script kind for
features), so their routers are built by one factory.
"""

from typing import Type

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from qa_dashboard.api.deps import get_db
from qa_dashboard.database import Base
from qa_dashboard.models import Device, Feature, Result, Site
from qa_dashboard.schemas.schemas import (
    CatalogCreate,
    CatalogItem,
    CatalogUpdate,
    FeatureCreate,
    FeatureItem,
    FeatureUpdate,
    MessageResponse,
)
from qa_dashboard.services.result_service import ResultService


def build_catalog_router(
    model: Type[Base],
    *,
    prefix: str,
    label: str,
    result_column,
    create_schema: Type[BaseModel] = CatalogCreate,
    update_schema: Type[BaseModel] = CatalogUpdate,
    item_schema: Type[BaseModel] = CatalogItem,
) -> APIRouter:
    router = APIRouter(prefix=f"/api/{prefix}", tags=[prefix])

    async def _get_or_404(item_id: int, db: AsyncSession):
        item = await db.get(model, item_id)
        if item is None:
            raise HTTPException(status_code=404, detail=f"{label} not found")
        return item

    async def _ensure_name_free(name: str, db: AsyncSession, exclude_id: int | None = None) -> None:
        query = select(model.id).where(model.name == name)
        if exclude_id is not None:
            query = query.where(model.id != exclude_id)
        if (await db.execute(query)).first() is not None:
            raise HTTPException(status_code=409, detail=f"{label} '{name}' already exists")

    async def _flush(db: AsyncSession, name: str) -> None:
        try:
            await db.flush()
        except IntegrityError:
            raise HTTPException(status_code=409, detail=f"{label} '{name}' already exists")

    @router.post("", response_model=item_schema, status_code=201)
    async def create_item(payload: create_schema, db: AsyncSession = Depends(get_db)):
        await _ensure_name_free(payload.name, db)
        item = model(**payload.model_dump(mode="json"))
        db.add(item)
        await _flush(db, payload.name)
        await db.refresh(item)
        return item

    @router.get("", response_model=list[item_schema])
    async def list_items(db: AsyncSession = Depends(get_db)):
        rows = await db.execute(select(model).order_by(model.id))
        return rows.scalars().all()

    @router.get("/{item_id}", response_model=item_schema)
    async def get_item(item_id: int, db: AsyncSession = Depends(get_db)):
        return await _get_or_404(item_id, db)

    @router.put("/{item_id}", response_model=item_schema)
    async def update_item(item_id: int, payload: update_schema, db: AsyncSession = Depends(get_db)):
        item = await _get_or_404(item_id, db)
        await _ensure_name_free(payload.name, db, exclude_id=item_id)
        for field, value in payload.model_dump(mode="json", exclude_unset=True).items():
            setattr(item, field, value)
        await _flush(db, payload.name)
        await db.refresh(item)
        return item

    @router.delete("/{item_id}", response_model=MessageResponse)
    async def delete_item(item_id: int, db: AsyncSession = Depends(get_db)):
        item = await _get_or_404(item_id, db)
        in_use = await ResultService(db).count_referencing(result_column, item_id)
        if in_use:
            raise HTTPException(
                status_code=409,
                detail=f"{label} is referenced by {in_use} result(s) and cannot be deleted",
            )
        await db.delete(item)
        await db.flush()
        return {"message": f"{label} deleted successfully"}

    return router


sites_router = build_catalog_router(
    Site, prefix="sites", label="Site", result_column=Result.site_id,
)
devices_router = build_catalog_router(
    Device, prefix="devices", label="Device", result_column=Result.device_id,
)
features_router = build_catalog_router(
    Feature,
    prefix="features",
    label="Feature",
    result_column=Result.feature_id,
    create_schema=FeatureCreate,
    update_schema=FeatureUpdate,
    item_schema=FeatureItem,
)
