"""
Prometheus metrics endpoint.

Exposes GET /metrics in Prometheus text exposition format. The backlog depth
gauge is refreshed from Redis on each scrape.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Gauge, generate_latest

from qa_dashboard.api.deps import get_run_queue
from qa_dashboard.services.job_queue import RunQueue

logger = logging.getLogger(__name__)

router = APIRouter(tags=["metrics"])

qa_queue_depth = Gauge("qa_queue_depth", "Browser runs waiting in the Redis backlog")


@router.get("/metrics")
async def prometheus_metrics(queue: RunQueue = Depends(get_run_queue)):
    try:
        qa_queue_depth.set(await queue.depth())
    except Exception as exc:
        logger.warning("Could not read queue depth: %s", exc)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
