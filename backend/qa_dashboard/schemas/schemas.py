"""
Pydantic schemas for API request/response models.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from qa_dashboard.models.catalog import FeatureKind


# ── Pagination ──

class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


# ── Catalog (sites / devices / features) ──

class CatalogCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class CatalogUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class CatalogItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class FeatureCreate(CatalogCreate):
    kind: FeatureKind | None = None


class FeatureUpdate(CatalogUpdate):
    kind: FeatureKind | None = None


class FeatureItem(CatalogItem):
    kind: str | None = None


# ── Results ──

class ResultDetailCreate(BaseModel):
    screenshot_path: str | None = Field(None, max_length=512)
    description: str | None = None


class ResultDetailSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    result_id: int
    screenshot_path: str | None = None
    description: str | None = None
    created_at: datetime | None = None


class ResultSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    site_id: int
    device_id: int
    feature_id: int
    status: str
    browser: str | None = None
    location: str | None = None
    duration: float | None = None
    error_log: str | None = None
    video_path: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    site: CatalogItem | None = None
    device: CatalogItem | None = None
    feature: FeatureItem | None = None
    details: list[ResultDetailSchema] = []


class ResultListResponse(BaseModel):
    data: list[ResultSchema]
    meta: PaginationMeta


class ResultUpdate(BaseModel):
    status: Literal["passed", "failed", "warning"] | None = None
    location: str | None = Field(None, max_length=255)
    video_path: str | None = Field(None, max_length=512)


class RunRequest(BaseModel):
    site_id: int = Field(..., gt=0)
    device_id: int = Field(..., gt=0)
    feature_id: int = Field(..., gt=0)


class RunResponse(BaseModel):
    message: str
    payload: RunRequest
    result_ids: list[int]


class MessageResponse(BaseModel):
    message: str
