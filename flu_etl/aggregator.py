"""Aggregate normalized ETL rows into weekly series and season buckets.

Grouping happens in two steps: rows are first averaged per (year, week,
age group), then the per-year averages are averaged per (week, age group).
The dashboard's weekly scalar is the plain mean of the per-age-group values
for that week (every age group weighs the same regardless of sample count).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd

from .models import (
    AgeColumnsRow,
    AgeFieldRow,
    AggregateResult,
    EtlRecord,
    SeasonBucket,
    SeasonFieldRow,
    WeeklySeries,
)
from .normalizer import FALLBACK_YEAR, iter_normalized_rows, record_from_dict
from .seasons import season_from_week, season_sort_key, sort_weeks_by_season

logger = logging.getLogger(__name__)

_OBS_COLUMNS = ["year", "week", "key", "value"]


def _coerce_records(raw_data: Iterable[Union[EtlRecord, Dict[str, Any]]]) -> List[EtlRecord]:
    records: List[EtlRecord] = []
    for item in raw_data:
        if isinstance(item, EtlRecord):
            records.append(item)
            continue
        if not isinstance(item, dict):
            logger.warning("Skipping non-record item: %r", item)
            continue
        try:
            records.append(record_from_dict(item))
        except ValueError as e:
            logger.warning("parsedData decode failed, skipping record: %s", e)
    return records


def _observations(records: List[EtlRecord], fallback_year: Optional[int]) -> tuple[pd.DataFrame, pd.DataFrame]:
    age_rows: List[Dict[str, Any]] = []
    season_rows: List[Dict[str, Any]] = []
    for row in iter_normalized_rows(records, fallback_year):
        if isinstance(row, AgeColumnsRow):
            for group, value in row.values.items():
                age_rows.append({"year": row.year, "week": row.week, "key": group, "value": value})
        elif isinstance(row, AgeFieldRow):
            age_rows.append({"year": row.year, "week": row.week, "key": row.age_group, "value": row.value})
        elif isinstance(row, SeasonFieldRow):
            season_rows.append({"year": row.year, "week": row.week, "key": row.season, "value": row.value})
    return pd.DataFrame(age_rows, columns=_OBS_COLUMNS), pd.DataFrame(season_rows, columns=_OBS_COLUMNS)


def _bucket_sorted(label: str, pairs: Dict[str, float]) -> SeasonBucket:
    ordered = sorted(pairs.items(), key=lambda kv: season_sort_key(kv[0]))
    return SeasonBucket(
        season_label=label,
        weeks=[w for w, _ in ordered],
        values=[float(v) for _, v in ordered],
    )


def process_etl_data(
    raw_data: Iterable[Union[EtlRecord, Dict[str, Any]]],
    fallback_year: Optional[int] = FALLBACK_YEAR,
) -> Optional[AggregateResult]:
    """Turn ETL records (CSV-derived and/or API-derived) into dashboard series.

    Returns None when no row could be interpreted.
    """
    records = _coerce_records(raw_data or [])
    if not records:
        logger.warning("process_etl_data: no records")
        return None

    age_df, season_df = _observations(records, fallback_year)
    if age_df.empty and season_df.empty:
        logger.warning("process_etl_data: no interpretable rows in %d record(s)", len(records))
        return None

    weeks = sort_weeks_by_season(set(age_df["week"]) | set(season_df["week"]))

    # Age groups: per (year, week, group) mean, then mean across years
    values: Dict[str, List[Optional[float]]] = {}
    per_year = pd.Series(dtype=float)
    if not age_df.empty:
        per_year = age_df.groupby(["year", "week", "key"])["value"].mean()
        per_week = per_year.groupby(level=["week", "key"]).mean()
        for group in sorted(age_df["key"].unique()):
            values[group] = [
                float(per_week[(week, group)]) if (week, group) in per_week.index else None
                for week in weeks
            ]

    seasons = _build_season_buckets(age_df, season_df, per_year)

    logger.info(
        "process_etl_data: %d week(s), %d age group(s), %d season(s)",
        len(weeks), len(values), len(seasons),
    )
    return AggregateResult(weeks=weeks, values=values, seasons=seasons)


def _build_season_buckets(
    age_df: pd.DataFrame,
    season_df: pd.DataFrame,
    per_year: pd.Series,
) -> Dict[str, SeasonBucket]:
    buckets: Dict[str, Dict[str, float]] = {}

    # Explicit season-tagged rows
    if not season_df.empty:
        explicit = season_df.groupby(["year", "week", "key"])["value"].mean()
        for (_year, week, label), value in explicit.items():
            bucket = buckets.setdefault(label, {})
            bucket.setdefault(week, float(value))

    # Fallback: season computed from (week, year), value = equal-weight age-group mean
    if not per_year.empty:
        week_means = per_year.groupby(level=["year", "week"]).mean()
        for (year, week), value in week_means.items():
            label = season_from_week(week, year)
            if label is None:
                continue
            bucket = buckets.setdefault(label, {})
            bucket.setdefault(week, float(value))

    return {label: _bucket_sorted(label, pairs) for label, pairs in sorted(buckets.items()) if pairs}


def weekly_series(result: AggregateResult) -> WeeklySeries:
    """One scalar per week: mean of the age-group values present that week."""
    out: List[Optional[float]] = []
    for index in range(len(result.weeks)):
        present = [
            series[index]
            for series in result.values.values()
            if index < len(series) and series[index] is not None
        ]
        out.append(sum(present) / len(present) if present else None)
    return WeeklySeries(weeks=list(result.weeks), values=out)


def age_group_series(result: AggregateResult) -> Dict[str, WeeklySeries]:
    return {
        group: WeeklySeries(weeks=list(result.weeks), values=list(series))
        for group, series in result.values.items()
    }
