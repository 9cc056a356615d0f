"""
Result Service

Persistence for runs and their screenshot trail:
- Filtered, paginated listing (newest first)
- Creation of `processing` rows at dispatch time
- Guarded finalization (terminal status is written exactly once)
- ResultDetail append / list / delete
- Orphan sweep for rows abandoned by a dead worker
"""

import math
from datetime import timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from qa_dashboard.models import Result, ResultDetail
from qa_dashboard.models.result import STATUS_FAILED, STATUS_PROCESSING

ABANDONED_MESSAGE = "abandoned: worker restarted before completion"


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def created_before(minutes: int, dialect_name: str):
    """SQL expression for "*minutes* ago" on the database clock.

    `created_at` is filled by the database, so the cutoff is computed there
    too. PostgreSQL compares the naive column in the session time zone.
    """
    if dialect_name == "sqlite":
        return func.datetime("now", f"-{int(minutes)} minutes")
    return func.now() - timedelta(minutes=minutes)


class ResultService:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Reads ────────────────────────────────────────────────────────────

    async def get(self, result_id: int, *, with_details: bool = True) -> Result | None:
        query = select(Result).where(Result.id == result_id)
        if with_details:
            query = query.options(selectinload(Result.details))
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return result.unique().scalar_one_or_none()

    async def list_page(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        site_id: int | None = None,
        device_id: int | None = None,
        feature_id: int | None = None,
        status: str | None = None,
    ) -> tuple[list[Result], int]:
        """Return (rows, total) for one page, ordered created_at desc then id desc."""
        filters = []
        if site_id is not None:
            filters.append(Result.site_id == site_id)
        if device_id is not None:
            filters.append(Result.device_id == device_id)
        if feature_id is not None:
            filters.append(Result.feature_id == feature_id)
        if status:
            filters.append(Result.status == status)

        count_q = select(func.count(Result.id)).where(*filters)
        total = (await self.session.execute(count_q)).scalar() or 0

        query = (
            select(Result)
            .where(*filters)
            .options(selectinload(Result.details))
            .order_by(Result.created_at.desc(), Result.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rows = (await self.session.execute(query)).unique().scalars().all()
        return list(rows), total

    async def list_for_export(self) -> list[Result]:
        query = select(Result).order_by(Result.created_at.desc(), Result.id.desc())
        return list((await self.session.execute(query)).unique().scalars().all())

    async def count_referencing(self, column, value: int) -> int:
        """How many results point at a catalog row (column is e.g. Result.site_id)."""
        return (await self.session.execute(
            select(func.count(Result.id)).where(column == value)
        )).scalar() or 0

    # ── Writes ───────────────────────────────────────────────────────────

    async def create_processing(self, site_id: int, device_id: int, feature_id: int, browser: str) -> Result:
        result = Result(
            site_id=site_id,
            device_id=device_id,
            feature_id=feature_id,
            browser=browser,
            status=STATUS_PROCESSING,
        )
        self.session.add(result)
        await self.session.flush()
        return result

    async def finalize(
        self,
        result_id: int,
        status: str,
        duration: float | None,
        error_log: str | None = None,
    ) -> bool:
        """Move a processing row to *status*. False if it was already terminal."""
        values = {"status": status, "duration": duration, "updated_at": func.now()}
        if error_log is not None:
            values["error_log"] = error_log
        outcome = await self.session.execute(
            update(Result)
            .where(Result.id == result_id, Result.status == STATUS_PROCESSING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return outcome.rowcount == 1

    async def set_video_path(self, result_id: int, video_path: str) -> None:
        await self.session.execute(
            update(Result)
            .where(Result.id == result_id)
            .values(video_path=video_path, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )

    async def delete(self, result_id: int) -> None:
        await self.session.execute(delete(ResultDetail).where(ResultDetail.result_id == result_id))
        await self.session.execute(delete(Result).where(Result.id == result_id))

    # ── Details ──────────────────────────────────────────────────────────

    async def add_detail(
        self,
        result_id: int,
        screenshot_path: str | None,
        description: str | None,
    ) -> ResultDetail:
        detail = ResultDetail(
            result_id=result_id,
            screenshot_path=screenshot_path,
            description=description,
        )
        self.session.add(detail)
        await self.session.flush()
        await self.session.refresh(detail)
        return detail

    async def list_details(self, result_id: int) -> list[ResultDetail]:
        query = (
            select(ResultDetail)
            .where(ResultDetail.result_id == result_id)
            .order_by(ResultDetail.id)
        )
        return list((await self.session.execute(query)).scalars().all())

    async def delete_detail(self, result_id: int, detail_id: int) -> bool:
        outcome = await self.session.execute(
            delete(ResultDetail).where(
                ResultDetail.id == detail_id,
                ResultDetail.result_id == result_id,
            )
        )
        return outcome.rowcount == 1

    # ── Orphans ──────────────────────────────────────────────────────────

    async def sweep_orphans(self, threshold_minutes: int) -> int:
        """Fail processing rows older than *threshold_minutes*; returns how many."""
        cutoff = created_before(threshold_minutes, self.session.get_bind().dialect.name)
        outcome = await self.session.execute(
            update(Result)
            .where(Result.status == STATUS_PROCESSING, Result.created_at < cutoff)
            .values(status=STATUS_FAILED, error_log=ABANDONED_MESSAGE, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return outcome.rowcount
