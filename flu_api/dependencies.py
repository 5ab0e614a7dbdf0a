"""FastAPI dependencies: configuration and shared resources.

All endpoints use these dependencies for:
- ETL page-file store / remote ETL API access
- Prediction model client
- Backtest result store and the in-process run registry
- The short-lived series response cache
"""

from __future__ import annotations

import os
import logging
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from flu_etl.backtest import STATUS_RUNNING, BacktestRunner
from flu_etl.cache import BacktestStore, JsonFileCache, TtlCache
from flu_etl.csv_loader import CSV_DIR
from flu_etl.etl_client import EtlApiClient
from flu_etl.etl_store import ETL_DATA_DIR, EtlPageStore
from flu_etl.prediction_client import PREDICTION_API_URL, PredictionClient
from flu_etl.reference_data import CLINICAL_NOTE_CSV_PATH, HOSPITAL_CSV_PATH

# =============================================================================
# CONFIGURATION
# =============================================================================

DEBUG_MODE = os.environ.get("DEBUG", "false").lower() == "true"

# Remote ETL API is used when configured; otherwise the local page files
ETL_API_BASE_URL = os.environ.get("ETL_API_BASE_URL", "")

NER_API_URL = os.environ.get("NER_API_URL", "http://localhost:8001/analyze")
EMERGENCY_BED_API_KEY = os.environ.get("EMERGENCY_BED_API_KEY", "")
DEFAULT_EQUIPMENT_YKIHO = os.environ.get("DEFAULT_EQUIPMENT_YKIHO", "")
BACKTEST_CACHE_DIR = os.environ.get("BACKTEST_CACHE_DIR", "")
SERIES_CACHE_TTL_SECONDS = float(os.environ.get("SERIES_CACHE_TTL_SECONDS", "300"))
UPSTREAM_TIMEOUT_SECONDS = float(os.environ.get("UPSTREAM_TIMEOUT_SECONDS", "30"))

# Finished backtest runners kept for status lookups
MAX_FINISHED_RUNNERS = int(os.environ.get("MAX_FINISHED_BACKTESTS", "50"))

logger = logging.getLogger("api.dependencies")


# =============================================================================
# SINGLETONS
# =============================================================================

_etl_store: Optional[EtlPageStore] = None
_etl_client: Optional[EtlApiClient] = None
_prediction_client: Optional[PredictionClient] = None
_backtest_store: Optional[BacktestStore] = None
_series_cache: Optional[TtlCache] = None
_http_session: Optional[requests.Session] = None


def get_csv_dir() -> Path:
    return CSV_DIR


def get_hospital_csv_path() -> Path:
    return HOSPITAL_CSV_PATH


def get_clinical_note_csv_path() -> Path:
    return CLINICAL_NOTE_CSV_PATH


def get_etl_store() -> EtlPageStore:
    """Local ETL page-file store (singleton)."""
    global _etl_store

    if _etl_store is None:
        _etl_store = EtlPageStore(ETL_DATA_DIR)
        logger.info(f"ETL page store: {ETL_DATA_DIR}")

    return _etl_store


def get_etl_fetch_range() -> Callable[[str, str, str], List[Dict[str, Any]]]:
    """Date-range fetcher for recent ETL records: remote API if configured, else local files."""
    global _etl_client

    if ETL_API_BASE_URL:
        if _etl_client is None:
            _etl_client = EtlApiClient(ETL_API_BASE_URL)
            logger.info(f"ETL API client: {ETL_API_BASE_URL}")
        return _etl_client.get_by_date_range

    return get_etl_store().by_date_range


def get_prediction_client() -> PredictionClient:
    global _prediction_client

    if _prediction_client is None:
        _prediction_client = PredictionClient(PREDICTION_API_URL)
        logger.info(f"Prediction client: {PREDICTION_API_URL}")

    return _prediction_client


def get_backtest_store() -> BacktestStore:
    global _backtest_store

    if _backtest_store is None:
        cache = JsonFileCache(Path(BACKTEST_CACHE_DIR)) if BACKTEST_CACHE_DIR else JsonFileCache()
        _backtest_store = BacktestStore(cache)
        logger.info(f"Backtest cache: {cache.cache_dir}")

    return _backtest_store


def get_series_cache() -> TtlCache:
    global _series_cache

    if _series_cache is None:
        _series_cache = TtlCache(default_ttl=SERIES_CACHE_TTL_SECONDS)

    return _series_cache


def get_http_session() -> requests.Session:
    """Shared session for the public-data and NER proxies."""
    global _http_session

    if _http_session is None:
        _http_session = requests.Session()

    return _http_session


# =============================================================================
# BACKTEST REGISTRY
# =============================================================================

class BacktestRegistry:
    """In-process map of cache key -> runner, so status/cancel calls can reach a run.

    Finished runners are kept for status lookups but only the newest
    ``max_finished`` of them; running entries are never evicted.
    """

    def __init__(self, max_finished: int = MAX_FINISHED_RUNNERS):
        self._runners: Dict[str, BacktestRunner] = OrderedDict()
        self._lock = threading.Lock()
        self.max_finished = max_finished

    def __len__(self) -> int:
        with self._lock:
            return len(self._runners)

    def get(self, key: str) -> Optional[BacktestRunner]:
        with self._lock:
            return self._runners.get(key)

    def start(self, key: str, runner: BacktestRunner) -> bool:
        """Register ``runner`` unless a run for ``key`` is already in progress."""
        with self._lock:
            current = self._runners.get(key)
            if current is not None and current.status == STATUS_RUNNING:
                return False
            # Mark running before the background task starts so a second
            # request for the same key is rejected.
            runner.status = STATUS_RUNNING
            self._runners.pop(key, None)
            self._runners[key] = runner
            self._evict_finished()
            return True

    def _evict_finished(self) -> None:
        finished = [k for k, r in self._runners.items() if r.status != STATUS_RUNNING]
        for key in finished[: max(len(finished) - self.max_finished, 0)]:
            del self._runners[key]

    def clear(self) -> None:
        with self._lock:
            self._runners.clear()


_backtest_registry = BacktestRegistry()


def get_backtest_registry() -> BacktestRegistry:
    return _backtest_registry
