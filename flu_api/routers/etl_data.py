"""Local ETL data API served from ``ds_XXXX_page_N.json`` dumps.

Mirrors the remote ETL data API so the dashboard (and EtlApiClient) can run
against offline data. Every response is wrapped as ``{"body": {"data": [...]}}``.

Endpoints:
    GET /data/api/v1/etl_data/statistics
    GET /data/api/v1/etl_data/id/{dsid}/recent/{cnt}
    GET /data/api/v1/etl_data/id/{dsid}/from/{date_from}/to/{date_to}
    GET /data/api/v1/etl_data/id/{dsid}/origin/{origin}
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from flu_etl.etl_store import EtlDataError, EtlPageStore

from ..dependencies import get_etl_store
from ..middleware.rate_limit import rate_limit_read

router = APIRouter()
logger = logging.getLogger(__name__)


def _wrap(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"body": {"data": rows}}


def _data_fault(e: EtlDataError) -> HTTPException:
    logger.error(f"ETL page file error: {e}")
    return HTTPException(500, "ETL data file is unreadable")


@router.get("/statistics")
@rate_limit_read
async def statistics(
    request: Request,
    date_from: Optional[str] = Query(default=None, alias="from", description="Only count records collected from this date"),
    date_to: Optional[str] = Query(default=None, alias="to", description="Only count records collected up to this date"),
    store: EtlPageStore = Depends(get_etl_store),
) -> Dict[str, Any]:
    """Record count per dataset."""
    try:
        if date_from and date_to:
            return _wrap(store.statistics_by_date_range(date_from, date_to))
        return _wrap(store.statistics())
    except FileNotFoundError as e:
        logger.error(f"ETL statistics failed: {e}")
        raise HTTPException(500, "ETL data directory not found")
    except EtlDataError as e:
        raise _data_fault(e)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/id/{dsid}/recent/{cnt}")
@rate_limit_read
async def recent(
    request: Request,
    dsid: str,
    cnt: int,
    store: EtlPageStore = Depends(get_etl_store),
) -> Dict[str, Any]:
    """Newest ``cnt`` records (at most 1000) by collectedAt."""
    try:
        return _wrap(store.recent(dsid, cnt))
    except EtlDataError as e:
        raise _data_fault(e)


@router.get("/id/{dsid}/from/{date_from}/to/{date_to}")
@rate_limit_read
async def by_date_range(
    request: Request,
    dsid: str,
    date_from: str,
    date_to: str,
    store: EtlPageStore = Depends(get_etl_store),
) -> Dict[str, Any]:
    """Records collected between ``date_from`` and the end of ``date_to``."""
    try:
        return _wrap(store.by_date_range(dsid, date_from, date_to))
    except EtlDataError as e:
        raise _data_fault(e)
    except ValueError:
        raise HTTPException(400, "Invalid from/to date")


@router.get("/id/{dsid}/origin/{origin}")
@rate_limit_read
async def by_origin(
    request: Request,
    dsid: str,
    origin: str,
    store: EtlPageStore = Depends(get_etl_store),
) -> Dict[str, Any]:
    try:
        return _wrap(store.by_origin(dsid, origin))
    except EtlDataError as e:
        raise _data_fault(e)
