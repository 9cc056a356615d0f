"""
Run executor (worker side).

Owns one Result from `processing` to its terminal status: opens the remote
browser session, runs the feature script in a thread, captures a failure
screenshot, closes the session and finalizes the row exactly once. A
watchdog cancels the run on timeout or when the API flags it for cancel.
"""

import asyncio
import logging
import time

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from qa_dashboard.automation.browser import BrowserSession, CancelToken, DriverFactory, open_session
from qa_dashboard.automation.errors import AutomationError
from qa_dashboard.automation.reporter import StepReporter
from qa_dashboard.automation.scripts import RunContext, ensure_implemented, run_feature
from qa_dashboard.automation.sites import get_site_profile
from qa_dashboard.config import Settings
from qa_dashboard.middleware.metrics import (
    qa_run_duration_seconds,
    qa_runs_finished_total,
    qa_runs_in_flight,
)
from qa_dashboard.models.result import STATUS_FAILED, STATUS_PASSED, STATUS_PROCESSING
from qa_dashboard.services.job_queue import RunQueue
from qa_dashboard.services.result_service import ResultService

logger = logging.getLogger(__name__)

CANCEL_POLL_SECONDS = 2.0
VIDEO_LOOKUP_TIMEOUT = 10.0


class RunExecutor:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        settings: Settings,
        queue: RunQueue | None = None,
        driver_factory: DriverFactory | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._session_maker = session_maker
        self._settings = settings
        self._queue = queue
        self._driver_factory = driver_factory
        self._http_client = http_client

    # ── Entry point ──────────────────────────────────────────────────────

    async def run(self, job: dict, token: CancelToken | None = None) -> str | None:
        """Execute *job* under a watchdog; returns the Result's final status."""
        token = token or CancelToken()
        result_id = job.get("result_id")
        watchdog = asyncio.create_task(self._watch(result_id, token))
        try:
            return await self.execute(job, token)
        finally:
            watchdog.cancel()
            await asyncio.gather(watchdog, return_exceptions=True)
            if self._queue is not None and result_id is not None:
                try:
                    await self._queue.clear_cancel(result_id)
                except Exception as exc:
                    logger.warning("Failed to clear cancel flag for result %s: %s", result_id, exc)

    async def _watch(self, result_id, token: CancelToken) -> None:
        loop = asyncio.get_running_loop()
        timeout = self._settings.job_timeout_seconds
        deadline = loop.time() + timeout
        while not token.cancelled:
            remaining = deadline - loop.time()
            if remaining <= 0:
                token.cancel(f"exceeded {timeout}s job timeout")
                return
            if self._queue is not None and result_id is not None:
                try:
                    if await self._queue.is_cancel_requested(result_id):
                        token.cancel("cancel requested")
                        return
                except Exception as exc:
                    logger.warning("Cancel check failed for result %s: %s", result_id, exc)
            await asyncio.sleep(min(CANCEL_POLL_SECONDS, remaining))

    # ── Execution ────────────────────────────────────────────────────────

    async def execute(self, job: dict, token: CancelToken) -> str | None:
        try:
            result_id = int(job["result_id"])
        except (KeyError, TypeError, ValueError):
            logger.error("Dropping job without a usable result_id: %r", job)
            return None

        started = time.monotonic()
        async with self._session_maker() as db:
            result = await ResultService(db).get(result_id, with_details=False)
        if result is None:
            logger.warning("Result %s no longer exists; skipping job", result_id)
            return None
        if result.status != STATUS_PROCESSING:
            logger.info("Result %s is already %s; skipping job", result_id, result.status)
            return result.status

        browser = result.browser or job.get("browser") or "chrome"
        site = get_site_profile(result.site.name)
        feature_name = result.feature.name
        kind = result.feature.feature_kind
        reporter = StepReporter(
            result_id, self._settings.screenshots_dir, self._persist_detail, asyncio.get_running_loop()
        )

        logger.info("Starting run %s: %s / %s on %s", result_id, site.name, feature_name, browser)
        qa_runs_in_flight.inc()
        session: BrowserSession | None = None
        error: str | None = None
        try:
            try:
                ensure_implemented(feature_name, kind, site)
                token.raise_if_cancelled()
                session = await asyncio.to_thread(
                    open_session, browser, self._settings, token, self._driver_factory
                )
                ctx = RunContext(
                    session=session,
                    site=site,
                    feature_name=feature_name,
                    reporter=reporter,
                    email=self._settings.test_email,
                    password=self._settings.test_password,
                    chat_room_id=self._settings.chat_room_ids.get(site.name, ""),
                    payment_fixture=self._settings.payment_fixture,
                )
                await asyncio.to_thread(run_feature, ctx, kind)
            except AutomationError as exc:
                error = str(exc)
            except Exception as exc:
                logger.error("Run %s raised unexpectedly: %s", result_id, exc, exc_info=True)
                error = f"unexpected error: {exc}"
        finally:
            try:
                if session is not None:
                    await asyncio.to_thread(self._teardown, session, reporter, error)
            except Exception as exc:
                logger.warning("Teardown failed for result %s: %s", result_id, exc, exc_info=True)
            finally:
                qa_runs_in_flight.dec()

        duration = round(time.monotonic() - started, 3)
        status = STATUS_FAILED if error else STATUS_PASSED
        if error:
            logger.warning("Run %s failed after %.1fs: %s", result_id, duration, error)
        else:
            logger.info("Run %s passed in %.1fs", result_id, duration)

        if await self._finalize(result_id, status, duration, error):
            qa_runs_finished_total.labels(browser=browser, status=status).inc()
            qa_run_duration_seconds.labels(browser=browser).observe(duration)
        else:
            logger.warning("Result %s was finalized elsewhere; keeping the stored status", result_id)

        if session is not None and self._settings.record_video:
            await self._store_video(result_id, session.session_id)
        return status

    def _teardown(self, session: BrowserSession, reporter: StepReporter, error: str | None) -> None:
        """Failure screenshot, BrowserStack status, quit. Runs in the script thread pool."""
        if error:
            reporter.capture(session, error)
        try:
            session.mark_status(error is None, error or "")
        except Exception as exc:
            logger.warning("Failed to report session status to BrowserStack: %s", exc)
        session.close()

    # ── Persistence ──────────────────────────────────────────────────────

    async def _persist_detail(self, result_id: int, screenshot_path: str, description: str) -> None:
        async with self._session_maker() as db:
            await ResultService(db).add_detail(result_id, screenshot_path, description)
            await db.commit()

    async def _finalize(self, result_id: int, status: str, duration: float, error: str | None) -> bool:
        async with self._session_maker() as db:
            changed = await ResultService(db).finalize(result_id, status, duration, error)
            await db.commit()
        return changed

    # ── Video ────────────────────────────────────────────────────────────

    async def fetch_video_url(self, session_id: str) -> str | None:
        """Look up the recording URL of a BrowserStack Automate session."""
        url = f"{self._settings.browserstack_api_url}/automate/sessions/{session_id}.json"
        auth = (self._settings.browserstack_username, self._settings.browserstack_access_key)
        client = self._http_client or httpx.AsyncClient(timeout=VIDEO_LOOKUP_TIMEOUT)
        try:
            resp = await client.get(url, auth=auth)
            resp.raise_for_status()
            data = resp.json()
        finally:
            if self._http_client is None:
                await client.aclose()
        return (data.get("automation_session") or {}).get("video_url")

    async def _store_video(self, result_id: int, session_id: str | None) -> None:
        if not session_id:
            return
        try:
            video_url = await self.fetch_video_url(session_id)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Video lookup failed for result %s: %s", result_id, exc)
            return
        if not video_url:
            return
        try:
            async with self._session_maker() as db:
                await ResultService(db).set_video_path(result_id, video_url)
                await db.commit()
        except Exception as exc:
            logger.warning("Failed to store video URL for result %s: %s", result_id, exc)
