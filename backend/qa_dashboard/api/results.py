"""
Results API

Run dispatch, the paginated results table, per-run screenshot details,
manual status review, cancellation and the spreadsheet export.
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from qa_dashboard.api.deps import get_db, get_run_queue, get_settings
from qa_dashboard.config import Settings
from qa_dashboard.models import Result
from qa_dashboard.models.result import STATUS_PROCESSING
from qa_dashboard.schemas.schemas import (
    MessageResponse,
    PaginationMeta,
    ResultDetailCreate,
    ResultDetailSchema,
    ResultListResponse,
    ResultSchema,
    ResultUpdate,
    RunRequest,
    RunResponse,
)
from qa_dashboard.services.dispatcher import DispatchError, QueueUnavailableError, dispatch_run
from qa_dashboard.services.export import XLSX_MEDIA_TYPE, build_results_workbook, export_filename
from qa_dashboard.services.job_queue import RunQueue
from qa_dashboard.services.result_service import ResultService, total_pages

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/results", tags=["results"])

StatusFilter = Literal["processing", "passed", "failed", "warning"]


# ── Helpers ──────────────────────────────────────────────────────────────────

async def _get_result_or_404(result_id: int, db: AsyncSession) -> Result:
    result = await ResultService(db).get(result_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Result not found")
    return result


# ── Listing / export ─────────────────────────────────────────────────────────

@router.get("", response_model=ResultListResponse)
async def list_results(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    site_id: int | None = None,
    device_id: int | None = None,
    feature_id: int | None = None,
    status: StatusFilter | None = None,
    db: AsyncSession = Depends(get_db),
):
    rows, total = await ResultService(db).list_page(
        page=page,
        limit=limit,
        site_id=site_id,
        device_id=device_id,
        feature_id=feature_id,
        status=status,
    )
    return ResultListResponse(
        data=[ResultSchema.model_validate(r) for r in rows],
        meta=PaginationMeta(total=total, page=page, limit=limit, total_pages=total_pages(total, limit)),
    )


@router.get("/export")
async def export_results(db: AsyncSession = Depends(get_db)):
    """Download every result as an .xlsx workbook, newest first."""
    results = await ResultService(db).list_for_export()
    content = build_results_workbook(results)
    filename = export_filename()
    logger.info("Exported %d results to %s", len(results), filename)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ── Dispatch ─────────────────────────────────────────────────────────────────

@router.post("", response_model=RunResponse)
async def start_run(
    payload: RunRequest,
    db: AsyncSession = Depends(get_db),
    queue: RunQueue = Depends(get_run_queue),
    settings: Settings = Depends(get_settings),
):
    """Create one `processing` result per browser and queue them for the worker."""
    try:
        result_ids = await dispatch_run(
            db, queue, settings, payload.site_id, payload.device_id, payload.feature_id
        )
    except DispatchError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except QueueUnavailableError as exc:
        raise HTTPException(status_code=503, detail=f"Run queue unavailable: {exc}")
    return RunResponse(message="Test started in background", payload=payload, result_ids=result_ids)


# ── Single result ────────────────────────────────────────────────────────────

@router.get("/{result_id}", response_model=ResultSchema)
async def get_result(result_id: int, db: AsyncSession = Depends(get_db)):
    return await _get_result_or_404(result_id, db)


@router.put("/{result_id}", response_model=ResultSchema)
async def update_result(result_id: int, payload: ResultUpdate, db: AsyncSession = Depends(get_db)):
    """Edit location / video path, or review the status of a finished run."""
    result = await _get_result_or_404(result_id, db)
    changes = payload.model_dump(exclude_unset=True)

    if "status" in changes:
        if changes["status"] is None:
            raise HTTPException(status_code=400, detail="status cannot be null")
        if result.status == STATUS_PROCESSING:
            raise HTTPException(
                status_code=409,
                detail="Result is still processing; its status is set by the running test",
            )

    for field, value in changes.items():
        setattr(result, field, value)
    await db.flush()
    return await _get_result_or_404(result_id, db)


@router.delete("/{result_id}", response_model=MessageResponse)
async def delete_result(result_id: int, db: AsyncSession = Depends(get_db)):
    await _get_result_or_404(result_id, db)
    await ResultService(db).delete(result_id)
    return {"message": "Result deleted successfully"}


@router.post("/{result_id}/cancel", response_model=MessageResponse, status_code=202)
async def cancel_result(
    result_id: int,
    db: AsyncSession = Depends(get_db),
    queue: RunQueue = Depends(get_run_queue),
):
    """Ask the worker to stop a running test; it finalizes the row as failed."""
    result = await _get_result_or_404(result_id, db)
    if result.status != STATUS_PROCESSING:
        raise HTTPException(status_code=409, detail=f"Result is already {result.status}")
    await queue.request_cancel(result_id)
    logger.info("Cancel requested for result %s", result_id)
    return {"message": "Cancel requested"}


# ── Details ──────────────────────────────────────────────────────────────────

@router.get("/{result_id}/details", response_model=list[ResultDetailSchema])
async def list_result_details(result_id: int, db: AsyncSession = Depends(get_db)):
    await _get_result_or_404(result_id, db)
    return await ResultService(db).list_details(result_id)


@router.post("/{result_id}/details", response_model=ResultDetailSchema, status_code=201)
async def create_result_detail(
    result_id: int,
    payload: ResultDetailCreate,
    db: AsyncSession = Depends(get_db),
):
    await _get_result_or_404(result_id, db)
    return await ResultService(db).add_detail(result_id, payload.screenshot_path, payload.description)


@router.delete("/{result_id}/details/{detail_id}", response_model=MessageResponse)
async def delete_result_detail(result_id: int, detail_id: int, db: AsyncSession = Depends(get_db)):
    if not await ResultService(db).delete_detail(result_id, detail_id):
        raise HTTPException(status_code=404, detail="Result detail not found")
    return {"message": "Result detail deleted successfully"}
