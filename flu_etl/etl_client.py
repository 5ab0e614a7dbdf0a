"""HTTP client for the ETL data API (remote service or the local page-file mock)."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import requests

from .dataset_metadata import normalize_dsid
from .etl_store import extract_rows

logger = logging.getLogger(__name__)

ETL_API_BASE_URL = os.environ.get("ETL_API_BASE_URL", "http://localhost:8000/data/api/v1/etl_data")
ETL_API_TIMEOUT_SECONDS = float(os.environ.get("ETL_API_TIMEOUT_SECONDS", "30"))


class EtlApiError(Exception):
    """ETL data API request failed."""


class EtlApiClient:
    def __init__(
        self,
        base_url: str = ETL_API_BASE_URL,
        timeout: float = ETL_API_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, path: str) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug("GET %s", url)
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as e:
            raise EtlApiError(f"ETL API request failed ({url}): {e}") from e
        except ValueError as e:
            raise EtlApiError(f"ETL API returned invalid JSON ({url}): {e}") from e
        return extract_rows(payload)

    def get_statistics(self) -> List[Dict[str, Any]]:
        return self._get("statistics")

    def get_recent(self, dsid: str, cnt: int) -> List[Dict[str, Any]]:
        return self._get(f"id/{normalize_dsid(dsid)}/recent/{int(cnt)}")

    def get_by_date_range(self, dsid: str, date_from: str, date_to: str) -> List[Dict[str, Any]]:
        return self._get(f"id/{normalize_dsid(dsid)}/from/{date_from}/to/{date_to}")

    def get_by_origin(self, dsid: str, origin: str) -> List[Dict[str, Any]]:
        return self._get(f"id/{normalize_dsid(dsid)}/origin/{origin}")
