"""Tests for the worker loop and the start-up orphan sweep."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from qa_dashboard.models import Result
from qa_dashboard.services.result_service import ABANDONED_MESSAGE, created_before
from worker import Worker, sweep_orphans


class StubExecutor:
    """Records jobs; optionally blocks until the run's token is cancelled."""

    def __init__(self, block: bool = False):
        self.block = block
        self.jobs: list[dict] = []
        self.reasons: list[str] = []
        self.started = asyncio.Event()

    async def run(self, job, token):
        self.jobs.append(job)
        self.started.set()
        if self.block:
            while not token.cancelled:
                await asyncio.sleep(0.01)
            self.reasons.append(token.reason)


@pytest.mark.asyncio
class TestWorker:
    async def test_drains_backlog_in_order(self, run_queue):
        await run_queue.enqueue(1, "chrome")
        await run_queue.enqueue(2, "firefox")
        executor = StubExecutor()
        worker = Worker(executor, run_queue, concurrency=2)

        serving = asyncio.create_task(worker.serve())
        while len(executor.jobs) < 2:
            await asyncio.sleep(0.01)
        worker.stop()
        await asyncio.wait_for(serving, timeout=2)

        assert [job["result_id"] for job in executor.jobs] == [1, 2]
        assert run_queue.jobs == []

    async def test_stop_cancels_in_flight_runs(self, run_queue):
        await run_queue.enqueue(7, "chrome")
        await run_queue.enqueue(8, "chrome")
        executor = StubExecutor(block=True)
        worker = Worker(executor, run_queue, concurrency=1)

        serving = asyncio.create_task(worker.serve())
        await asyncio.wait_for(executor.started.wait(), timeout=2)
        worker.stop()
        await asyncio.wait_for(serving, timeout=2)

        assert executor.reasons == ["worker shutting down"]
        # Only one slot, so the second job never left the backlog.
        assert run_queue.jobs == [{"result_id": 8, "browser": "chrome"}]


@pytest.mark.asyncio
class TestOrphanSweep:
    async def test_only_stale_processing_rows_are_failed(self, session_maker, catalog):
        stale = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(hours=2)
        common = {"site_id": catalog["senti"], "device_id": catalog["desktop"], "feature_id": catalog["chat"]}
        async with session_maker() as session:
            rows = [
                Result(status="processing", created_at=stale, **common),
                Result(status="processing", **common),
                Result(status="passed", created_at=stale, **common),
            ]
            session.add_all(rows)
            await session.commit()
            ids = [row.id for row in rows]

        assert await sweep_orphans(session_maker, 60) == 1

        async with session_maker() as session:
            found = {
                r.id: r for r in (await session.execute(select(Result))).unique().scalars().all()
            }
        assert found[ids[0]].status == "failed"
        assert found[ids[0]].error_log == ABANDONED_MESSAGE
        assert found[ids[1]].status == "processing"
        assert found[ids[2]].status == "passed"

    async def test_threshold_is_measured_on_database_clock(self, session_maker, catalog):
        half_hour_ago = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(minutes=30)
        async with session_maker() as session:
            row = Result(
                status="processing",
                created_at=half_hour_ago,
                site_id=catalog["senti"],
                device_id=catalog["desktop"],
                feature_id=catalog["chat"],
            )
            session.add(row)
            await session.commit()

        assert await sweep_orphans(session_maker, 60) == 0
        assert await sweep_orphans(session_maker, 15) == 1


class TestSweepCutoff:
    def test_postgres_cutoff_is_computed_in_sql(self):
        compiled = str(created_before(60, "postgresql").compile(dialect=postgresql.dialect()))
        assert compiled.startswith("now() - ")

    def test_sqlite_cutoff_uses_datetime_modifier(self):
        expression = created_before(90, "sqlite")
        assert str(expression.compile(dialect=sqlite.dialect())).startswith("datetime(")
        assert [clause.value for clause in expression.clauses] == ["now", "-90 minutes"]
