"""
Prometheus metrics middleware.

Collects HTTP request metrics (counter + histogram) and exposes the run
counters shared by the API (dispatch) and the worker (outcomes).
"""

import time

from prometheus_client import Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# ── HTTP metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Run metrics ──────────────────────────────────────────────────────────────

qa_runs_dispatched_total = Counter(
    "qa_runs_dispatched_total",
    "Browser runs queued by the dispatcher",
    ["browser"],
)

qa_runs_finished_total = Counter(
    "qa_runs_finished_total",
    "Browser runs finished by the worker",
    ["browser", "status"],
)

qa_run_duration_seconds = Histogram(
    "qa_run_duration_seconds",
    "Wall-clock duration of a browser run",
    ["browser"],
    buckets=(5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)

qa_runs_in_flight = Gauge(
    "qa_runs_in_flight",
    "Browser runs currently executing in this worker",
)


def _normalize_path(path: str) -> str:
    """Collapse numeric IDs to keep label cardinality bounded.

    e.g. /api/results/42/details/7 → /api/results/{id}/details/{id}
    """
    if path.startswith("/screenshots/"):
        return "/screenshots/{file}"
    parts = path.strip("/").split("/")
    return "/" + "/".join("{id}" if part.isdigit() else part for part in parts)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.time()
        response = await call_next(request)
        duration = time.time() - start

        http_requests_total.labels(
            method=method,
            path=path,
            status_code=response.status_code,
        ).inc()

        http_request_duration_seconds.labels(
            method=method,
            path=path,
        ).observe(duration)

        return response
