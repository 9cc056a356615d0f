import logging
import traceback
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from qa_dashboard.api.catalog import devices_router, features_router, sites_router
from qa_dashboard.api.deps import get_db, get_run_queue
from qa_dashboard.api.metrics import router as metrics_router
from qa_dashboard.api.results import router as results_router
from qa_dashboard.config import settings
from qa_dashboard.database import build_engine, build_sessionmaker
from qa_dashboard.middleware.logging_config import configure_logging
from qa_dashboard.middleware.metrics import PrometheusMiddleware
from qa_dashboard.middleware.rate_limit import RateLimitMiddleware
from qa_dashboard.middleware.request_context import RequestContextMiddleware
from qa_dashboard.middleware.security_headers import SecurityHeadersMiddleware
from qa_dashboard.services.job_queue import RunQueue

configure_logging(settings.log_level, settings.log_format)
logger = logging.getLogger("qa_dashboard")

# Mounted at import time, so the directory must exist before the app is built.
Path(settings.screenshots_dir).mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = build_engine(settings)
    app.state.engine = engine
    app.state.session_maker = build_sessionmaker(engine)
    app.state.run_queue = RunQueue.from_url(settings.redis_url)

    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("QA dashboard API started (%s)", settings.environment)
    yield
    await app.state.run_queue.aclose()
    await engine.dispose()


app = FastAPI(
    title="QA Automation Dashboard",
    description="Browser test runs on BrowserStack with screenshot evidence",
    version="0.1.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────
origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "X-Request-ID"],
    expose_headers=["Content-Disposition", "X-Request-ID"],
)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    redis_url=settings.redis_url,
    limit=settings.rate_limit_per_minute,
)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(PrometheusMiddleware)


# ── Error handlers ───────────────────────────────────────────────────────────

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing input is a 400, as the dashboard expects."""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return detailed error info in development mode so 500s are debuggable."""
    tb = traceback.format_exc()
    logger.error(
        "Unhandled %s on %s %s: %s\n%s",
        type(exc).__name__, request.method, request.url.path, exc, tb,
    )
    if settings.environment == "development":
        return JSONResponse(
            status_code=500,
            content={"detail": f"{type(exc).__name__}: {exc}", "traceback": tb.splitlines()[-5:]},
        )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# Register API routers
app.include_router(sites_router)
app.include_router(devices_router)
app.include_router(features_router)
app.include_router(results_router)
app.include_router(metrics_router)

app.mount("/screenshots", StaticFiles(directory=settings.screenshots_dir), name="screenshots")


# ── Health check ─────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    queue: RunQueue = Depends(get_run_queue),
):
    components: dict = {}

    try:
        await db.execute(text("SELECT 1"))
        components["database"] = {"status": "connected"}
    except Exception as exc:
        components["database"] = {"status": "disconnected", "error": str(exc)}

    try:
        await queue.ping()
        components["redis"] = {"status": "connected", "queue_depth": await queue.depth()}
    except Exception as exc:
        components["redis"] = {"status": "disconnected", "error": str(exc)}

    db_ok = components["database"]["status"] == "connected"
    redis_ok = components["redis"]["status"] == "connected"

    if db_ok and redis_ok:
        overall = "healthy"
    elif not db_ok:
        overall = "unhealthy"
    else:
        overall = "degraded"

    return {
        "status": overall,
        "environment": settings.environment,
        "components": components,
    }
