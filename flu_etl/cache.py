"""Cache layer: in-memory TTL cache and a persistent JSON-file cache.

Both implement ``get(key) -> Optional[CacheEntry]`` and ``put(key, value, ttl)``.
A ``ttl`` of None means the entry never expires.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .models import BacktestResult

logger = logging.getLogger(__name__)

PROJECT_DIR = Path(__file__).parent.parent
BACKTEST_CACHE_DIR = Path(
    os.environ.get("BACKTEST_CACHE_DIR", str(PROJECT_DIR / "data" / "cache" / "backtests"))
)

BACKTEST_KEY_VERSION = "v1"


def backtest_cache_key(dsid: str, season: str, window_size: int, steps: int) -> str:
    """``pred_backtest:v1:<dsid>:<season>:w<W>:s<H>``"""
    return f"pred_backtest:{BACKTEST_KEY_VERSION}:{dsid}:{season}:w{int(window_size)}:s{int(steps)}"


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    expires_at: Optional[float] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at


def _expiry(now: float, ttl: Optional[float]) -> Optional[float]:
    return None if ttl is None else now + float(ttl)


class TtlCache:
    """Thread-safe in-process cache."""

    def __init__(self, default_ttl: Optional[float] = None):
        self.default_ttl = default_ttl
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._entries[key]
                return None
            return entry

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> CacheEntry:
        now = time.time()
        entry = CacheEntry(value=value, stored_at=now, expires_at=_expiry(now, ttl if ttl is not None else self.default_ttl))
        with self._lock:
            self._entries[key] = entry
        return entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class JsonFileCache:
    """One JSON file per key under ``cache_dir``; values must be JSON-serializable."""

    def __init__(self, cache_dir: Optional[Path] = None):
        self.cache_dir = Path(cache_dir) if cache_dir is not None else BACKTEST_CACHE_DIR
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        return self.cache_dir / f"{digest}.json"

    def get(self, key: str) -> Optional[CacheEntry]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                doc = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Unreadable cache file %s: %s", path, e)
            return None
        if not isinstance(doc, dict):
            logger.warning("Malformed cache file %s: expected an object, got %s", path, type(doc).__name__)
            return None
        if doc.get("key") != key:
            return None

        entry = CacheEntry(value=doc.get("value"), stored_at=doc.get("storedAt") or 0.0, expires_at=doc.get("expiresAt"))
        if entry.is_expired():
            return None
        return entry

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> CacheEntry:
        now = time.time()
        entry = CacheEntry(value=value, stored_at=now, expires_at=_expiry(now, ttl))
        doc = {"key": key, "value": value, "storedAt": entry.stored_at, "expiresAt": entry.expires_at}

        path = self._path(key)
        with self._lock:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(doc, f, ensure_ascii=False)
            os.replace(tmp, path)
        return entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._path(key).unlink(missing_ok=True)


class BacktestStore:
    """Persists backtest results as ``{"result": <BacktestResult dict>}`` entries."""

    def __init__(self, cache: Any = None):
        self.cache = cache if cache is not None else JsonFileCache()

    def load(self, dsid: str, season: str, window_size: int, steps: int) -> Optional[BacktestResult]:
        entry = self.cache.get(backtest_cache_key(dsid, season, window_size, steps))
        if entry is None or not isinstance(entry.value, dict):
            return None
        raw = entry.value.get("result")
        if not isinstance(raw, dict):
            return None
        try:
            return BacktestResult.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding malformed cached backtest for %s/%s: %s", dsid, season, e)
            return None

    def save(self, result: BacktestResult) -> str:
        key = backtest_cache_key(result.dsid, result.season, result.window_size, result.steps)
        self.cache.put(key, {"result": result.to_dict()})
        logger.info("Cached backtest %s", key)
        return key
