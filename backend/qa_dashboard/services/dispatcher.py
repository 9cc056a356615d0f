"""
Run dispatcher (API side).

Validates the (site, device, feature) triple, creates one `processing`
Result per browser profile, commits them, then queues one job per row for
the worker. Nothing here touches a browser.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from qa_dashboard.config import Settings
from qa_dashboard.middleware.metrics import qa_runs_dispatched_total
from qa_dashboard.models import Device, Feature, Site
from qa_dashboard.models.result import STATUS_FAILED
from qa_dashboard.services.job_queue import RunQueue
from qa_dashboard.services.result_service import ResultService

logger = logging.getLogger(__name__)

PRODUCTION_BROWSERS = ("chrome", "firefox", "edge", "safari")
DEVELOPMENT_BROWSERS = ("chrome",)


class DispatchError(Exception):
    """The request references catalog rows that do not exist."""


class QueueUnavailableError(Exception):
    """Rows were created but could not be queued; they have been failed."""


def browsers_for(settings: Settings) -> tuple[str, ...]:
    return PRODUCTION_BROWSERS if settings.is_production else DEVELOPMENT_BROWSERS


async def dispatch_run(
    db: AsyncSession,
    queue: RunQueue,
    settings: Settings,
    site_id: int,
    device_id: int,
    feature_id: int,
) -> list[int]:
    """Create and queue one run per browser profile; returns the Result ids."""
    missing = [
        f"{model.__name__} {pk} not found"
        for model, pk in ((Site, site_id), (Device, device_id), (Feature, feature_id))
        if await db.get(model, pk) is None
    ]
    if missing:
        raise DispatchError("; ".join(missing))

    service = ResultService(db)
    results = [
        await service.create_processing(site_id, device_id, feature_id, browser)
        for browser in browsers_for(settings)
    ]
    await db.commit()

    result_ids = [r.id for r in results]
    queued = 0
    try:
        for result in results:
            await queue.enqueue(result.id, result.browser)
            qa_runs_dispatched_total.labels(browser=result.browser).inc()
            queued += 1
    except Exception as exc:
        logger.error("Failed to queue runs %s: %s", result_ids[queued:], exc)
        for result_id in result_ids[queued:]:
            await service.finalize(result_id, STATUS_FAILED, 0.0, f"could not queue run: {exc}")
        await db.commit()
        raise QueueUnavailableError(str(exc)) from exc

    logger.info(
        "Dispatched results %s (site=%s device=%s feature=%s)",
        result_ids, site_id, device_id, feature_id,
    )
    return result_ids
