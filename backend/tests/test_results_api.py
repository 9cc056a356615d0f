"""Tests for run dispatch, the results table, details, review and export."""

from datetime import datetime
from io import BytesIO
from pathlib import Path

import pytest
import pytest_asyncio
from openpyxl import load_workbook
from sqlalchemy import select

from qa_dashboard.api.deps import get_settings
from qa_dashboard.config import Settings, settings
from qa_dashboard.main import app
from qa_dashboard.models import Result, ResultDetail

from fakes import PNG_BYTES


async def _add_result(session_maker, catalog, **values) -> int:
    fields = {
        "site_id": catalog["senti"],
        "device_id": catalog["desktop"],
        "feature_id": catalog["chat"],
        "status": "passed",
        "browser": "chrome",
    }
    fields.update(values)
    async with session_maker() as session:
        result = Result(**fields)
        session.add(result)
        await session.commit()
        return result.id


@pytest_asyncio.fixture
async def finished_result(session_maker, catalog) -> int:
    result_id = await _add_result(session_maker, catalog, duration=12.5)
    async with session_maker() as session:
        session.add_all([
            ResultDetail(result_id=result_id, screenshot_path="screenshots/a.png",
                         description="Screenshot of Login Page"),
            ResultDetail(result_id=result_id, screenshot_path="screenshots/b.png",
                         description="Screenshot of Chat Page"),
        ])
        await session.commit()
    return result_id


# ── Dispatch ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestDispatch:
    async def test_start_run_creates_processing_row_and_job(self, client, catalog, run_queue):
        payload = {"site_id": catalog["senti"], "device_id": catalog["desktop"], "feature_id": catalog["chat"]}
        resp = await client.post("/api/results", json=payload)

        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Test started in background"
        assert data["payload"] == payload
        # Non-production environments run chrome only.
        assert len(data["result_ids"]) == 1
        assert run_queue.jobs == [{"result_id": data["result_ids"][0], "browser": "chrome"}]

        resp = await client.get(f"/api/results/{data['result_ids'][0]}")
        assert resp.json()["status"] == "processing"
        assert resp.json()["browser"] == "chrome"

    async def test_production_runs_every_browser(self, client, catalog, run_queue, session_maker):
        production = Settings(
            _env_file=None,
            environment="production",
            browserstack_username="qa-bot",
            browserstack_access_key="secret",
            test_email="qa@example.com",
            test_password="hunter2",
            database_url="sqlite+aiosqlite://",
        )
        app.dependency_overrides[get_settings] = lambda: production

        resp = await client.post("/api/results", json={
            "site_id": catalog["senti"], "device_id": catalog["desktop"], "feature_id": catalog["chat"],
        })
        assert resp.status_code == 200
        result_ids = resp.json()["result_ids"]
        assert len(result_ids) == 4
        assert [job["browser"] for job in run_queue.jobs] == ["chrome", "firefox", "edge", "safari"]
        assert [job["result_id"] for job in run_queue.jobs] == result_ids

        async with session_maker() as session:
            rows = (await session.execute(select(Result).order_by(Result.id))).unique().scalars().all()
        assert [(r.browser, r.status) for r in rows] == [
            ("chrome", "processing"),
            ("firefox", "processing"),
            ("edge", "processing"),
            ("safari", "processing"),
        ]

    async def test_missing_field_is_bad_request(self, client, catalog, run_queue):
        resp = await client.post("/api/results", json={"site_id": catalog["senti"]})
        assert resp.status_code == 400
        assert run_queue.jobs == []

    async def test_unknown_catalog_row_is_bad_request(self, client, catalog, run_queue):
        resp = await client.post("/api/results", json={
            "site_id": catalog["senti"], "device_id": 999, "feature_id": catalog["chat"],
        })
        assert resp.status_code == 400
        assert "Device 999 not found" in resp.json()["detail"]
        assert run_queue.jobs == []

    async def test_queue_outage_fails_created_rows(self, client, catalog, run_queue, session_maker):
        run_queue.fail_enqueue = True
        resp = await client.post("/api/results", json={
            "site_id": catalog["senti"], "device_id": catalog["desktop"], "feature_id": catalog["chat"],
        })
        assert resp.status_code == 503

        async with session_maker() as session:
            rows = (await session.execute(select(Result))).unique().scalars().all()
        assert len(rows) == 1
        assert rows[0].status == "failed"
        assert rows[0].error_log.startswith("could not queue run")


# ── Listing ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestListResults:
    async def test_pagination_newest_first(self, client, catalog, session_maker):
        stamp = datetime(2026, 1, 1, 12, 0, 0)
        for _ in range(25):
            await _add_result(session_maker, catalog, created_at=stamp)

        resp = await client.get("/api/results", params={"page": 2, "limit": 10})
        assert resp.status_code == 200
        body = resp.json()
        assert body["meta"] == {"total": 25, "page": 2, "limit": 10, "total_pages": 3}
        # Same timestamp everywhere, so the id breaks the tie.
        assert [r["id"] for r in body["data"]] == list(range(15, 5, -1))

    async def test_page_past_the_end_is_empty(self, client, catalog, session_maker):
        await _add_result(session_maker, catalog)
        resp = await client.get("/api/results", params={"page": 5})
        body = resp.json()
        assert body["data"] == []
        assert body["meta"]["total"] == 1
        assert body["meta"]["total_pages"] == 1

    async def test_filters(self, client, catalog, session_maker):
        await _add_result(session_maker, catalog, status="failed")
        await _add_result(session_maker, catalog, site_id=catalog["shorts"])
        await _add_result(session_maker, catalog, feature_id=catalog["scroll"])

        resp = await client.get("/api/results", params={"status": "failed"})
        assert resp.json()["meta"]["total"] == 1

        resp = await client.get("/api/results", params={"site_id": catalog["shorts"]})
        assert [r["site"]["name"] for r in resp.json()["data"]] == ["shorts.senti.live"]

        resp = await client.get("/api/results", params={"feature_id": catalog["scroll"]})
        assert resp.json()["data"][0]["feature"]["kind"] == "scroll_home"

    async def test_invalid_paging_is_bad_request(self, client):
        assert (await client.get("/api/results", params={"page": 0})).status_code == 400
        assert (await client.get("/api/results", params={"limit": 101})).status_code == 400
        assert (await client.get("/api/results", params={"status": "exploded"})).status_code == 400

    async def test_rows_embed_details(self, client, finished_result):
        resp = await client.get("/api/results")
        row = resp.json()["data"][0]
        assert row["id"] == finished_result
        assert [d["description"] for d in row["details"]] == [
            "Screenshot of Login Page",
            "Screenshot of Chat Page",
        ]


# ── Single result ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestSingleResult:
    async def test_get_unknown_result(self, client):
        resp = await client.get("/api/results/404")
        assert resp.status_code == 404

    async def test_review_finished_result(self, client, finished_result):
        resp = await client.put(f"/api/results/{finished_result}", json={
            "status": "warning", "location": "Jakarta",
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "warning"
        assert data["location"] == "Jakarta"
        assert data["duration"] == 12.5

    async def test_status_of_processing_result_is_locked(self, client, catalog, session_maker):
        result_id = await _add_result(session_maker, catalog, status="processing")
        resp = await client.put(f"/api/results/{result_id}", json={"status": "passed"})
        assert resp.status_code == 409

        resp = await client.put(f"/api/results/{result_id}", json={"location": "Berlin"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "processing"

    async def test_cannot_set_processing_or_null(self, client, finished_result):
        resp = await client.put(f"/api/results/{finished_result}", json={"status": "processing"})
        assert resp.status_code == 400

        resp = await client.put(f"/api/results/{finished_result}", json={"status": None})
        assert resp.status_code == 400

    async def test_delete_removes_details(self, client, finished_result, session_maker):
        resp = await client.delete(f"/api/results/{finished_result}")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Result deleted successfully"}

        async with session_maker() as session:
            details = (await session.execute(select(ResultDetail))).scalars().all()
        assert details == []
        assert (await client.get(f"/api/results/{finished_result}")).status_code == 404

    async def test_cancel_processing_result(self, client, catalog, session_maker, run_queue):
        result_id = await _add_result(session_maker, catalog, status="processing")
        resp = await client.post(f"/api/results/{result_id}/cancel")
        assert resp.status_code == 202
        assert result_id in run_queue.cancelled

    async def test_cancel_finished_result_conflicts(self, client, finished_result, run_queue):
        resp = await client.post(f"/api/results/{finished_result}/cancel")
        assert resp.status_code == 409
        assert run_queue.cancelled == set()


# ── Details ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestResultDetails:
    async def test_list_details_in_insertion_order(self, client, finished_result):
        resp = await client.get(f"/api/results/{finished_result}/details")
        assert resp.status_code == 200
        assert [d["screenshot_path"] for d in resp.json()] == ["screenshots/a.png", "screenshots/b.png"]

    async def test_add_and_delete_detail(self, client, finished_result):
        resp = await client.post(f"/api/results/{finished_result}/details", json={
            "screenshot_path": "screenshots/c.png", "description": "manual note",
        })
        assert resp.status_code == 201
        detail = resp.json()
        assert detail["result_id"] == finished_result

        resp = await client.delete(f"/api/results/{finished_result}/details/{detail['id']}")
        assert resp.status_code == 200

        resp = await client.delete(f"/api/results/{finished_result}/details/{detail['id']}")
        assert resp.status_code == 404

    async def test_details_of_unknown_result(self, client):
        assert (await client.get("/api/results/77/details")).status_code == 404
        resp = await client.post("/api/results/77/details", json={"description": "x"})
        assert resp.status_code == 404


# ── Export / health ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestExportAndHealth:
    async def test_export_download(self, client, finished_result):
        resp = await client.get("/api/results/export")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert 'filename="test_results_' in resp.headers["content-disposition"]

        ws = load_workbook(BytesIO(resp.content)).active
        assert ws["A1"].value == "Created At"
        assert ws["C2"].value == "senti.live"
        assert ws["G2"].value == 12.5

    async def test_export_lists_every_result_newest_first(self, client, catalog, session_maker):
        older = datetime(2026, 2, 1, 8, 0, 0)
        newer = datetime(2026, 2, 3, 8, 0, 0)
        await _add_result(session_maker, catalog, created_at=newer, error_log="newer, lower id")
        await _add_result(session_maker, catalog, created_at=older, error_log="oldest")
        await _add_result(session_maker, catalog, created_at=newer, error_log="newer, higher id")

        resp = await client.get("/api/results/export")
        ws = load_workbook(BytesIO(resp.content)).active

        assert ws.max_row == 4
        assert [ws.cell(row=r, column=1).value for r in range(2, 5)] == [
            "2026-02-03 08:00:00",
            "2026-02-03 08:00:00",
            "2026-02-01 08:00:00",
        ]
        # Equal timestamps fall back to the newer id first.
        assert [ws.cell(row=r, column=8).value for r in range(2, 5)] == [
            "newer, higher id",
            "newer, lower id",
            "oldest",
        ]

    async def test_health(self, client, run_queue):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["components"]["redis"]["queue_depth"] == 0

    async def test_api_responses_are_not_cached(self, client):
        resp = await client.get("/api/health")
        assert resp.headers["cache-control"] == "no-store"
        assert resp.headers["x-frame-options"] == "DENY"

    async def test_screenshots_are_served_without_no_store(self, client):
        name = "screenshot_20260101_120000_000000_abc123.png"
        (Path(settings.screenshots_dir) / name).write_bytes(PNG_BYTES)

        resp = await client.get(f"/screenshots/{name}")
        assert resp.status_code == 200
        assert resp.content == PNG_BYTES
        assert resp.headers.get("cache-control") != "no-store"
        assert resp.headers["x-content-type-options"] == "nosniff"

    async def test_metrics_exposes_run_counters(self, client):
        resp = await client.get("/metrics")
        assert resp.status_code == 200
        assert "qa_queue_depth" in resp.text
        assert "qa_runs_in_flight" in resp.text
