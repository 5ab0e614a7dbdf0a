"""Influenza Dashboard API - Main Application.

Serves the surveillance dashboard: weekly influenza series, the local ETL
data API, prediction backtests and public-data proxies.

Usage:
    uvicorn flu_api.main:app --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

import os
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .dependencies import get_backtest_store, get_csv_dir, get_etl_store
from .routers import backtest, beds, datasets, etl_data, health, influenza, prediction, records
from .middleware.rate_limit import setup_rate_limiting

# =============================================================================
# CONFIGURATION
# =============================================================================

DEBUG_MODE = os.environ.get("DEBUG", "false").lower() == "true"
API_VERSION = "1.0.0"
API_TITLE = "Influenza Dashboard API"

# Dashboard dev servers, plus CORS_ORIGINS (comma separated) for deployments
ALLOWED_ORIGINS = ["http://localhost:3000", "http://localhost:5173"] + [
    origin.strip() for origin in os.environ.get("CORS_ORIGINS", "").split(",") if origin.strip()
]

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}
STRIPPED_HEADERS = ("server", "x-powered-by")

logging.basicConfig(
    level=logging.DEBUG if DEBUG_MODE else logging.INFO,
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
)
logger = logging.getLogger("api.main")


# =============================================================================
# LIFESPAN (Startup/Shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Report missing data sources at startup; the API still serves defaults."""
    logger.info(f"Starting {API_TITLE} v{API_VERSION} (debug={DEBUG_MODE})")

    csv_dir = get_csv_dir()
    if not csv_dir.exists():
        logger.warning(f"CSV history directory missing: {csv_dir}")

    store = get_etl_store()
    if not store.exists():
        logger.warning(f"ETL data directory missing: {store.data_dir}")

    get_backtest_store()
    yield
    logger.info(f"Shutting down {API_TITLE}")


# =============================================================================
# APPLICATION
# =============================================================================

# OpenAPI docs only in debug mode
_docs_kwargs = {} if DEBUG_MODE else {"docs_url": None, "redoc_url": None, "openapi_url": None}
app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan, **_docs_kwargs)


# =============================================================================
# MIDDLEWARE
# =============================================================================

setup_rate_limiting(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
    max_age=3600,
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    for name in STRIPPED_HEADERS:
        if name in response.headers:
            del response.headers[name]
    response.headers.update(SECURITY_HEADERS)
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.debug(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Uncaught errors: details only in debug mode, never a stack trace."""
    logger.exception(f"Unhandled exception on {request.url.path}")

    content = {"error": "Internal server error", "code": "INTERNAL_ERROR"}
    if DEBUG_MODE:
        content.update(error=str(exc), type=type(exc).__name__)
    return JSONResponse(status_code=500, content=content)


# =============================================================================
# ROUTERS
# =============================================================================

app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(datasets.router, prefix="/api", tags=["Datasets"])
app.include_router(influenza.router, prefix="/api", tags=["Influenza"])
app.include_router(backtest.router, prefix="/api", tags=["Backtest"])
app.include_router(beds.router, prefix="/api", tags=["Public Data"])
app.include_router(records.router, prefix="/api", tags=["Records"])
app.include_router(prediction.router, tags=["Model Proxy"])
app.include_router(etl_data.router, prefix="/data/api/v1/etl_data", tags=["ETL Data"])


@app.get("/")
async def root():
    return {"name": API_TITLE, "version": API_VERSION, "status": "running"}


@app.get("/api")
async def api_root():
    """Available endpoints."""
    return {
        "endpoints": {
            "health": "/api/health",
            "datasets": "/api/datasets",
            "indicators": "/api/indicators",
            "influenza": "/api/influenza",
            "backtest": "/api/backtest",
            "beds": "/api/beds",
            "equipment": "/api/equipment",
            "hospitals": "/api/hospitals",
            "patient_notes": "/api/patient/notes",
            "predict": "/predict",
            "analyze": "/analyze",
            "etl_data": "/data/api/v1/etl_data/statistics",
        }
    }
