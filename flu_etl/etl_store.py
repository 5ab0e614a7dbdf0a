"""Local ETL data store backed by page files.

Serves ``ds_XXXX_page_N.json`` dumps from ``ETL_DATA_DIR`` with the same
queries the remote ETL data API offers (statistics, recent, date range,
origin). Each page file is either a bare list of records or an envelope
(``{"body": {"data": [...]}}``, ``{"data": [...]}``, ``{"items": [...]}``).
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, time
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from .dataset_metadata import normalize_dsid

logger = logging.getLogger(__name__)

PROJECT_DIR = Path(__file__).parent.parent
ETL_DATA_DIR = Path(os.environ.get("ETL_DATA_DIR", str(PROJECT_DIR / "data")))

MAX_RECENT = 1000
PAGE_FILE_PATTERN = re.compile(r"^(ds_\d+)_page_(\d+)\.json$")


class EtlDataError(Exception):
    """A page file exists but cannot be read or decoded."""


def extract_rows(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    body = payload.get("body")
    if isinstance(body, dict) and isinstance(body.get("data"), list):
        return body["data"]
    if isinstance(payload.get("data"), list):
        return payload["data"]
    if isinstance(payload.get("items"), list):
        return payload["items"]
    return []


def _to_timestamp(value: Any) -> Optional[pd.Timestamp]:
    if value is None or value == "":
        return None
    ts = pd.to_datetime(value, errors="coerce", utc=True)
    if ts is None or pd.isna(ts):
        return None
    return ts


class EtlPageStore:
    """Read-only view over the page files of every dataset in ``data_dir``."""

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir is not None else ETL_DATA_DIR

    def exists(self) -> bool:
        return self.data_dir.exists()

    def list_dataset_files(self, dsid: str) -> List[Path]:
        dsid = normalize_dsid(dsid)
        if not dsid or not self.data_dir.exists():
            return []
        pages = []
        for path in self.data_dir.iterdir():
            match = PAGE_FILE_PATTERN.match(path.name)
            if match and match.group(1) == dsid:
                pages.append((int(match.group(2)), path))
        return [path for _, path in sorted(pages)]

    def load_dataset_rows(self, dsid: str) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for path in self.list_dataset_files(dsid):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    rows.extend(extract_rows(json.load(f)))
            except (OSError, ValueError) as e:
                raise EtlDataError(f"Unreadable page file {path.name}: {e}") from e
        return rows

    def dataset_ids(self) -> List[str]:
        if not self.data_dir.exists():
            return []
        found = {
            match.group(1)
            for match in (PAGE_FILE_PATTERN.match(p.name) for p in self.data_dir.iterdir())
            if match
        }
        return sorted(found)

    def statistics(self) -> List[Dict[str, Any]]:
        """Record count per dataset."""
        if not self.data_dir.exists():
            raise FileNotFoundError(f"ETL data dir not found: {self.data_dir}")
        return [
            {"dsId": dsid, "recordCount": len(self.load_dataset_rows(dsid))}
            for dsid in self.dataset_ids()
        ]

    def statistics_by_date_range(self, date_from: str, date_to: str) -> List[Dict[str, Any]]:
        """Record count per dataset, restricted to a collectedAt range."""
        return [
            {"dsId": dsid, "recordCount": len(self.by_date_range(dsid, date_from, date_to))}
            for dsid in self.dataset_ids()
        ]

    def recent(self, dsid: str, cnt: int) -> List[Dict[str, Any]]:
        """Newest ``cnt`` records by collectedAt (clamped to 0..1000)."""
        cnt = min(max(int(cnt or 0), 0), MAX_RECENT)
        rows = sorted(
            self.load_dataset_rows(dsid),
            key=lambda r: str(r.get("collectedAt") or ""),
            reverse=True,
        )
        return rows[:cnt]

    def by_date_range(self, dsid: str, date_from: str, date_to: str) -> List[Dict[str, Any]]:
        """Records with ``date_from <= collectedAt <= end of date_to``.

        Raises ValueError on unparseable dates.
        """
        start = _to_timestamp(date_from)
        end = _to_timestamp(date_to)
        if start is None or end is None:
            raise ValueError(f"Invalid from/to date: {date_from!r} / {date_to!r}")
        end = pd.Timestamp(datetime.combine(end.date(), time.max), tz="UTC")

        out = []
        for row in self.load_dataset_rows(dsid):
            ts = _to_timestamp(row.get("collectedAt"))
            if ts is not None and start <= ts <= end:
                out.append(row)
        return out

    def by_origin(self, dsid: str, origin: str) -> List[Dict[str, Any]]:
        origin = str(origin or "")
        return [r for r in self.load_dataset_rows(dsid) if str(r.get("origin") or "") == origin]
