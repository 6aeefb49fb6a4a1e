# coachcal/main.py
from __future__ import annotations

# Load .env early so settings and os.getenv agree
from dotenv import load_dotenv
load_dotenv()

import secrets

import sqlalchemy as sa
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.core.config import settings
from coachcal.core.errors import SchedulingError
from coachcal.core.logging import LoggingMiddleware, get_logger, setup_logging
from coachcal.db.base import init_db
from coachcal.db.session import get_session
from coachcal.services.redis_client import close_redis_client
from coachcal.utils.best_effort import with_timeout

# Routers
from coachcal.api.routes.appointments import router as appointments_router
from coachcal.api.routes.availability import router as availability_router
from coachcal.api.routes.leads import router as leads_router
from coachcal.api.routes.staff import router as staff_router

setup_logging(debug=settings.is_development, max_log_length=settings.MAX_LOG_LENGTH, level=settings.LOG_LEVEL)
logger = get_logger(__name__)

app = FastAPI(
    title="coachcal",
    description="Appointment slots and staff assignment for coaches",
    # no interactive docs in production
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None,
    openapi_url=None if settings.is_production else "/openapi.json",
)

logging_middleware = LoggingMiddleware(
    log_requests=settings.LOG_REQUESTS or settings.is_development,
    log_responses=settings.LOG_RESPONSES or settings.is_development,
    slow_threshold=settings.SLOW_REQUEST_THRESHOLD,
)
app.middleware("http")(logging_middleware)

if settings.allowed_origins_list:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# -------- Error mapping --------
@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    logger.info("request_rejected", code=exc.code, status_code=exc.status_code, error=exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else first.get("msg", "invalid request")
    return JSONResponse(
        {"detail": message, "code": "validation_error", "errors": [str(e.get("msg")) for e in errors]},
        status_code=400,
    )


# -------- Health / readiness (public) --------
@app.get("/healthz", include_in_schema=False)
async def healthz():
    return {"ok": True}


@app.get("/readyz", include_in_schema=False)
async def readyz(db: AsyncSession = Depends(get_session)):
    ok = await with_timeout(db.execute(sa.text("SELECT 1")), timeout_seconds=2.0, default_value=None)
    if ok is None:
        return JSONResponse({"db": "timeout"}, status_code=503)
    return {"db": "ok"}


# -------- Global security gate (single place) --------
PUBLIC_EXACT = {
    "/healthz",
    "/readyz",
    "/favicon.ico",
}


def _is_public(path: str) -> bool:
    return path in PUBLIC_EXACT


@app.middleware("http")
async def lock_all(request: Request, call_next):
    if _is_public(request.url.path):
        return await call_next(request)

    api_key = request.headers.get("X-API-Key", "")
    expected = settings.COACHCAL_API_KEY
    if not expected or not secrets.compare_digest(api_key, expected):
        logger.warning("api_key_rejected", endpoint=request.url.path, has_key=bool(api_key))
        return JSONResponse({"detail": "Invalid or missing API key", "code": "unauthorized"}, status_code=401)

    return await call_next(request)


# -------- Include routers --------
app.include_router(availability_router)
app.include_router(appointments_router)
app.include_router(staff_router)
app.include_router(leads_router)


@app.on_event("startup")
async def startup_event():
    # Local runs skip migrations; everywhere else alembic owns the schema
    if settings.is_development:
        await init_db()
    logger.info("application_startup", env=settings.APP_ENV)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("application_shutdown")
    await close_redis_client()
