"""Influenza series router.

Endpoints:
    GET /api/influenza?season=&week=&dsid= - Dashboard indicator series
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool

from flu_etl.cache import TtlCache
from flu_etl.dataset_metadata import normalize_dsid
from flu_etl.series import DEFAULT_DSID, load_influenza_data

from ..dependencies import get_csv_dir, get_etl_fetch_range, get_series_cache
from ..middleware.rate_limit import rate_limit_read

router = APIRouter()
logger = logging.getLogger(__name__)


def series_cache_key(dsid: str, season: Optional[str], week: Optional[str]) -> str:
    return f"influenza:{dsid}:{season or ''}:{week or ''}"


def load_series_payload(
    season: Optional[str],
    week: Optional[str],
    dsid: str,
    csv_dir: Path,
    fetch_range: Callable,
    cache: TtlCache,
) -> Dict[str, Any]:
    """Cached dashboard payload; failed loads (defaults + error) are not cached."""
    key = series_cache_key(dsid, season, week)
    entry = cache.get(key)
    if entry is not None:
        return entry.value

    data = load_influenza_data(season=season, week=week, dsid=dsid, csv_dir=csv_dir, fetch_range=fetch_range)
    payload = data.to_dict()
    if data.error is None:
        cache.put(key, payload)
    return payload


@router.get("/influenza")
@rate_limit_read
async def get_influenza(
    request: Request,
    season: Optional[str] = Query(default=None, pattern=r"^\d{2}/\d{2}(절기)?$", description='Season key, e.g. "24/25"'),
    week: Optional[str] = Query(default=None, pattern=r"^\d{1,2}(주)?$", description="Last week to include"),
    dsid: str = Query(default=DEFAULT_DSID, pattern=r"^(ds_)?\d{4}$"),
    csv_dir: Path = Depends(get_csv_dir),
    fetch_range: Callable = Depends(get_etl_fetch_range),
    cache: TtlCache = Depends(get_series_cache),
) -> Dict[str, Any]:
    """ILI series from CSV history + ETL data, with placeholder series for the other indicators."""
    return await run_in_threadpool(
        load_series_payload, season, week, normalize_dsid(dsid), csv_dir, fetch_range, cache,
    )
