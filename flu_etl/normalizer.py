"""ETL row normalizer.

Source rows come in two layouts:

1. age group as column name: {"주차": "35", "65세 이상": "2.7", "0세": "3.4"}
2. age group as field value: {"주차": "35", "연령대": "65세이상", "의사환자 분율": "6.9"}

In layout 2 the "연령대" field may instead hold a season label ("24/25절기"),
in which case the row is a season row. The layout is decided once here and
returned as one of the tagged row types in ``flu_etl.models``.
"""

from __future__ import annotations

import json
import logging
import math
import os
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .models import (
    AgeColumnsRow,
    AgeFieldRow,
    EtlRecord,
    NormalizedRow,
    RawRow,
    SeasonFieldRow,
)
from .seasons import format_week, is_season_label, leading_int, week_from_text, year_from_text

logger = logging.getLogger(__name__)

BOM = "\ufeff"

YEAR_FIELD = "연도"
WEEK_FIELD = "주차"
PERIOD_FIELD = "수집 기간"
AGE_GROUP_FIELD = "연령대"
PREFERRED_VALUE_FIELD = "의사환자 분율"
INPATIENT_FIELD = "입원환자 수"
UNKNOWN_AGE_FIELD = "연령미상"
AGE_MARKER = "세"

# Fallback scan only accepts values in this range so year-like numbers are skipped
VALUE_MIN = 0.0
VALUE_MAX = 1000.0

FALLBACK_YEAR = int(os.environ.get("FLU_FALLBACK_YEAR", "2025"))

_METADATA_FIELDS = {PERIOD_FIELD, WEEK_FIELD, YEAR_FIELD, BOM + PERIOD_FIELD, BOM + YEAR_FIELD, AGE_GROUP_FIELD}
_METADATA_SUBSTRINGS = (YEAR_FIELD, WEEK_FIELD, PERIOD_FIELD)
_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_WHITESPACE = re.compile(r"\s+")


def parse_number(value: Any) -> Optional[float]:
    """Lenient float parse: leading number of the text, None if absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    match = _LEADING_FLOAT.match(str(value))
    if not match:
        return None
    number = float(match.group(1))
    return number if math.isfinite(number) else None


def normalize_age_group(label: str) -> str:
    """"65세 이상" -> "65세이상"."""
    return _WHITESPACE.sub("", str(label))


def _get(row: RawRow, field: str) -> Any:
    value = row.get(field)
    if value is None or value == "":
        value = row.get(BOM + field)
    return value


def resolve_week_year(row: RawRow, fallback_year: Optional[int] = FALLBACK_YEAR) -> Tuple[Optional[str], Optional[int]]:
    """(week label, year) for a raw row.

    Week: "<n>주" in the collection period, else the integer "주차" field.
    Year: "<yyyy>년" in the collection period, else "연도", else ``fallback_year``.
    """
    period = _get(row, PERIOD_FIELD)
    week = week_from_text(period) if period else None
    year = year_from_text(period) if period else None

    if week is None:
        week_number = leading_int(row.get(WEEK_FIELD))
        if week_number is not None:
            week = format_week(week_number)

    if year is None:
        year = leading_int(_get(row, YEAR_FIELD))
    if year is None:
        year = fallback_year
    return week, year


def _pick_value(row: RawRow, is_season: bool) -> Tuple[Optional[float], Optional[str]]:
    preferred = parse_number(row.get(PREFERRED_VALUE_FIELD))
    if preferred is not None:
        return preferred, PREFERRED_VALUE_FIELD

    for key, raw in row.items():
        if key in _METADATA_FIELDS or any(s in key for s in _METADATA_SUBSTRINGS):
            continue
        if not is_season and key == INPATIENT_FIELD:
            continue
        value = parse_number(raw)
        if value is not None and VALUE_MIN <= value <= VALUE_MAX:
            return value, key
    return None, None


def normalize_row(row: RawRow, fallback_year: Optional[int] = FALLBACK_YEAR) -> Optional[NormalizedRow]:
    """Classify a raw row into one of the tagged row types, or None to drop it."""
    if not isinstance(row, dict):
        return None

    week, year = resolve_week_year(row, fallback_year)
    if week is None or year is None:
        logger.debug("No week/year in row, dropping: %s", row)
        return None

    if AGE_GROUP_FIELD in row:
        group = str(row.get(AGE_GROUP_FIELD) or "").strip()
        season = is_season_label(group)
        if not season:
            group = normalize_age_group(group)
        if not group:
            logger.debug("Empty age group (week=%s), dropping", week)
            return None

        value, _field = _pick_value(row, season)
        if value is None:
            logger.debug("No numeric value field (week=%s, group=%s), dropping", week, group)
            return None
        if season:
            return SeasonFieldRow(year=year, week=week, season=group, value=value)
        return AgeFieldRow(year=year, week=week, age_group=group, value=value)

    values: Dict[str, float] = {}
    for key, raw in row.items():
        if key in _METADATA_FIELDS:
            continue
        if AGE_MARKER in key or key == UNKNOWN_AGE_FIELD:
            value = parse_number(raw)
            if value is not None:
                values[normalize_age_group(key)] = value
    if not values:
        logger.debug("No age-group columns (week=%s), dropping", week)
        return None
    return AgeColumnsRow(year=year, week=week, values=values)


def decode_parsed_data(parsed_data: Any) -> List[RawRow]:
    """``parsedData`` arrives as a JSON string from the ETL API or as a list from CSV."""
    if parsed_data is None or parsed_data == "":
        return []
    if isinstance(parsed_data, str):
        parsed_data = json.loads(parsed_data)
    if not isinstance(parsed_data, list):
        return []
    return [row for row in parsed_data if isinstance(row, dict)]


def record_from_dict(item: Dict[str, Any]) -> EtlRecord:
    """Build an EtlRecord from an ETL API / page-file item.

    Raises ValueError if ``parsedData`` is not decodable JSON.
    """
    try:
        rows = decode_parsed_data(item.get("parsedData"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed parsedData in record {item.get('id')}: {e}") from e
    return EtlRecord(
        id=str(item.get("id") or ""),
        dataset_id=str(item.get("dsId") or item.get("datasetId") or ""),
        parsed_data=rows,
        collected_at=item.get("collectedAt"),
        origin=item.get("origin"),
    )


def iter_normalized_rows(records: List[EtlRecord], fallback_year: Optional[int] = FALLBACK_YEAR) -> Iterator[NormalizedRow]:
    for record in records:
        for raw in record.parsed_data:
            row = normalize_row(raw, fallback_year)
            if row is not None:
                yield row
