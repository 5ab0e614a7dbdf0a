"""Prediction backtest router.

A run is started in the background and tracked in the in-process registry
under its cache key; finished runs are read back from the persistent
backtest store.

Endpoints:
    GET  /api/backtest         - Cached result for a season (404 if none)
    POST /api/backtest/run     - Start a run (409 if one is already running)
    GET  /api/backtest/status  - Status and progress of the latest run
    POST /api/backtest/cancel  - Cancel a running backtest
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request

from flu_etl.backtest import STATUS_ERROR, STATUS_IDLE, STATUS_RUNNING, BacktestRunner, cache_key
from flu_etl.cache import BacktestStore
from flu_etl.dataset_metadata import normalize_dsid
from flu_etl.prediction_client import PredictionClient
from flu_etl.seasons import season_key
from flu_etl.series import DEFAULT_DSID, load_influenza_data

from ..dependencies import (
    BacktestRegistry,
    get_backtest_registry,
    get_backtest_store,
    get_csv_dir,
    get_etl_fetch_range,
    get_prediction_client,
)
from ..middleware.rate_limit import rate_limit_backtest, rate_limit_read
from ..models import BacktestKeyRequest, BacktestRunRequest, BacktestStatusResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def execute_backtest(
    runner: BacktestRunner,
    req: BacktestRunRequest,
    csv_dir: Path,
    fetch_range: Callable,
) -> None:
    """Background task: load the ILI series, then run the backtest."""
    season = season_key(req.season)
    data = load_influenza_data(season=season, week=req.week, dsid=req.dsid, csv_dir=csv_dir, fetch_range=fetch_range)
    if data.error:
        runner.status = STATUS_ERROR
        runner.error = data.error
        return

    ili = data.indicators["ili"]
    runner.run(
        season=season,
        dsid=req.dsid,
        weeks=ili["weeks"],
        values=ili["values"],
        window_size=req.windowSize,
        steps=req.steps,
    )


@router.get("/backtest")
@rate_limit_read
async def get_backtest(
    request: Request,
    season: str = Query(..., pattern=r"^\d{2}/\d{2}(절기)?$"),
    dsid: str = Query(default=DEFAULT_DSID, pattern=r"^(ds_)?\d{4}$"),
    windowSize: int = Query(default=12, ge=1, le=104),
    steps: int = Query(default=3, ge=1, le=26),
    store: BacktestStore = Depends(get_backtest_store),
) -> Dict[str, Any]:
    """Cached backtest result; never triggers a run."""
    result = store.load(normalize_dsid(dsid), season_key(season), windowSize, steps)
    if result is None:
        raise HTTPException(404, "No backtest result for this season")
    return {"result": result.to_dict()}


@router.post("/backtest/run", status_code=202)
@rate_limit_backtest
async def run_backtest(
    request: Request,
    req: BacktestRunRequest,
    background_tasks: BackgroundTasks,
    registry: BacktestRegistry = Depends(get_backtest_registry),
    store: BacktestStore = Depends(get_backtest_store),
    client: PredictionClient = Depends(get_prediction_client),
    csv_dir: Path = Depends(get_csv_dir),
    fetch_range: Callable = Depends(get_etl_fetch_range),
) -> Dict[str, Any]:
    """Start a backtest; always recomputes even when a cached result exists."""
    key = cache_key(req.dsid, season_key(req.season), req.windowSize, req.steps)
    runner = BacktestRunner(client.predict, store=store)
    if not registry.start(key, runner):
        raise HTTPException(409, "Backtest already running")

    background_tasks.add_task(execute_backtest, runner, req, csv_dir, fetch_range)
    logger.info(f"Backtest queued: {key}")
    return {"key": key, "status": STATUS_RUNNING}


@router.get("/backtest/status", response_model=BacktestStatusResponse)
async def backtest_status(
    season: str = Query(..., pattern=r"^\d{2}/\d{2}(절기)?$"),
    dsid: str = Query(default=DEFAULT_DSID, pattern=r"^(ds_)?\d{4}$"),
    windowSize: int = Query(default=12, ge=1, le=104),
    steps: int = Query(default=3, ge=1, le=26),
    registry: BacktestRegistry = Depends(get_backtest_registry),
) -> Dict[str, Any]:
    key = cache_key(normalize_dsid(dsid), season_key(season), windowSize, steps)
    runner = registry.get(key)
    if runner is None:
        return {"key": key, "status": STATUS_IDLE}
    return {"key": key, **runner.snapshot()}


@router.post("/backtest/cancel")
async def cancel_backtest(
    req: BacktestKeyRequest,
    registry: BacktestRegistry = Depends(get_backtest_registry),
) -> Dict[str, Any]:
    """Cancel takes effect before the next window; partial results are discarded."""
    key = cache_key(req.dsid, season_key(req.season), req.windowSize, req.steps)
    runner = registry.get(key)
    if runner is None or runner.status != STATUS_RUNNING:
        raise HTTPException(404, "No running backtest")
    runner.cancel()
    return {"key": key, "cancelled": True}
