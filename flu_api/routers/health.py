"""Health check router.

Endpoints:
    GET /api/health - Overall health status and data source availability
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from fastapi import APIRouter, Depends, Request

from flu_etl.etl_store import EtlPageStore

from ..dependencies import ETL_API_BASE_URL, get_csv_dir, get_etl_store
from ..middleware.rate_limit import rate_limit_health

router = APIRouter()
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


@router.get("/health")
@rate_limit_health
async def health_check(
    request: Request,
    store: EtlPageStore = Depends(get_etl_store),
    csv_dir: Path = Depends(get_csv_dir),
) -> dict:
    """Basic health check.

    "degraded" means neither CSV history nor any ETL source is available,
    so the dashboard would only show default series.
    """
    csv_ok = csv_dir.exists()
    etl_ok = bool(ETL_API_BASE_URL) or store.exists()
    return {
        "status": "healthy" if (csv_ok or etl_ok) else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": API_VERSION,
        "sources": {
            "csvHistory": csv_ok,
            "etlData": "remote" if ETL_API_BASE_URL else ("local" if store.exists() else "missing"),
        },
    }
