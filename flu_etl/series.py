"""Influenza dashboard series: CSV history merged with recent ETL API data.

History (2017 week 36 .. 2025 week 47) comes from the CSV snapshots; later
weeks come from the ETL data API. Only ILI is computed from data, the other
indicators are placeholder series until their datasets are wired in.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .aggregator import age_group_series, process_etl_data, weekly_series
from .csv_loader import HISTORY_END_WEEK, HISTORY_END_YEAR, convert_csv_to_etl_records, load_historical_csv
from .etl_client import EtlApiError
from .etl_store import EtlDataError
from .models import InfluenzaData
from .normalizer import BOM, WEEK_FIELD, YEAR_FIELD
from .seasons import date_range_from_season, leading_int

logger = logging.getLogger(__name__)

DEFAULT_DSID = os.environ.get("DEFAULT_DSID", "ds_0101")

# First API week is the week after the CSV history ends
API_START_DATE = os.environ.get("FLU_API_START_DATE", "2025-11-25")
API_CUTOFF_YEAR = HISTORY_END_YEAR
API_CUTOFF_WEEK = HISTORY_END_WEEK + 1

LOAD_FAILED_MESSAGE = "데이터를 불러오는데 실패했습니다. 기본 데이터를 표시합니다."

DEFAULT_INDICATORS: Dict[str, Dict[str, List[Any]]] = {
    "ili": {
        "weeks": ["37주", "38주", "39주", "40주", "41주", "42주", "43주", "44주"],
        "values": [10.5, 12.3, 14.8, 17.2, 19.5, 15.3, 18.7, 22.8],
    },
    "ari": {"weeks": ["34주", "35주", "36주", "37주"], "values": [18, 23, 28, 34]},
    "sari": {"weeks": ["34주", "35주", "36주", "37주"], "values": [8, 5, 4, 3]},
    "iriss": {
        "weeks": ["37주", "38주", "39주", "40주", "41주", "42주"],
        "values": [2.4, 3.1, 4.2, 5.6, 6.9, 7.8],
    },
    "kriss": {"weeks": ["40주", "41주", "42주", "43주"], "values": [3.5, 5.1, 6.8, 9.7]},
    "nedis": {"weeks": ["40주", "41주", "42주", "43주"], "values": [456, 623, 892, 1231]},
}

FetchRange = Callable[[str, str, str], List[Dict[str, Any]]]


def default_indicators() -> Dict[str, Dict[str, Any]]:
    return copy.deepcopy(DEFAULT_INDICATORS)


def _first_row_year_week(item: Dict[str, Any]) -> Optional[tuple]:
    """(year, week) of the first parsedData row; raises ValueError if undecodable."""
    parsed = item.get("parsedData")
    if isinstance(parsed, str):
        parsed = json.loads(parsed or "[]")
    if not isinstance(parsed, list) or not parsed or not isinstance(parsed[0], dict):
        return None
    first = parsed[0]
    year = leading_int(first.get(YEAR_FIELD) or first.get(BOM + YEAR_FIELD)) or 0
    week = leading_int(first.get(WEEK_FIELD)) or 0
    return year, week


def filter_api_records(
    items: List[Dict[str, Any]],
    cutoff_year: int = API_CUTOFF_YEAR,
    cutoff_week: int = API_CUTOFF_WEEK,
) -> List[Dict[str, Any]]:
    """Keep API records from the cutoff week on; the CSV history covers earlier weeks.

    Records whose payload cannot be decoded or is empty are kept.
    """
    kept = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            year_week = _first_row_year_week(item)
        except ValueError:
            kept.append(item)
            continue
        if year_week is None:
            kept.append(item)
            continue
        year, week = year_week
        if year == cutoff_year and week >= cutoff_week:
            kept.append(item)
    logger.info("API records filtered: %d -> %d (from %d week %d)", len(items), len(kept), cutoff_year, cutoff_week)
    return kept


def _api_end_date(season: Optional[str], week: Optional[str]) -> str:
    if season:
        return date_range_from_season(season, week)[1]
    return date.today().isoformat()


def _fetch_api_records(
    fetch_range: Optional[FetchRange],
    dsid: str,
    season: Optional[str],
    week: Optional[str],
) -> List[Dict[str, Any]]:
    if fetch_range is None:
        return []
    end_date = _api_end_date(season, week)
    logger.info("Loading API data for %s: %s .. %s", dsid, API_START_DATE, end_date)
    try:
        items = fetch_range(dsid, API_START_DATE, end_date)
    except (EtlApiError, EtlDataError, ValueError, OSError) as e:
        logger.warning("API data load failed, using CSV data only: %s", e)
        return []
    if not isinstance(items, list):
        logger.warning("Unexpected API payload type %s, ignoring", type(items).__name__)
        return []
    return filter_api_records(items)


def load_influenza_data(
    season: Optional[str] = None,
    week: Optional[str] = None,
    dsid: str = DEFAULT_DSID,
    csv_dir: Optional[Path] = None,
    fetch_range: Optional[FetchRange] = None,
) -> InfluenzaData:
    """Build the dashboard indicator payload for ``season``.

    Never raises: any failure yields the default series, with a message in
    ``error`` when something went wrong (empty data is not an error).
    """
    indicators = default_indicators()
    try:
        csv_rows = load_historical_csv(dsid, csv_dir=csv_dir)
        csv_records = convert_csv_to_etl_records(csv_rows, dsid)
        api_records = _fetch_api_records(fetch_range, dsid, season, week)

        all_records: List[Any] = [*csv_records, *api_records]
        logger.info(
            "Merged data for %s: %d CSV + %d API = %d record(s)",
            dsid, len(csv_records), len(api_records), len(all_records),
        )
        if not all_records:
            logger.warning("No data for %s, showing defaults", dsid)
            return InfluenzaData(indicators=indicators)

        result = process_etl_data(all_records)
        if result is None:
            logger.warning("Aggregation produced nothing for %s, showing defaults", dsid)
            return InfluenzaData(indicators=indicators, csv_count=len(csv_records), api_count=len(api_records))

        ili = weekly_series(result).to_dict()
        ili["ageGroups"] = {group: s.to_dict() for group, s in age_group_series(result).items()}
        ili["seasons"] = {label: bucket.to_dict() for label, bucket in result.seasons.items()}
        indicators["ili"] = ili
        return InfluenzaData(indicators=indicators, csv_count=len(csv_records), api_count=len(api_records))
    except Exception:
        logger.exception("Influenza data load failed for %s (season=%s)", dsid, season)
        return InfluenzaData(indicators=default_indicators(), error=LOAD_FAILED_MESSAGE)
