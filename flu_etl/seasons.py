"""Influenza season helpers.

A season ("24/25") runs from week 36 of the first year through week 35 of
the following year. Week labels use the "<n>주" form found in the source
data ("36주"). Week 53 is kept as its own label; it sorts after 52.
"""

from __future__ import annotations

import math
import re
from datetime import date, timedelta
from functools import cmp_to_key
from typing import Iterable, List, Optional, Tuple, Union

SEASON_START_WEEK = 36
MAX_WEEK = 53
WEEK_SUFFIX = "주"
SEASON_SUFFIX = "절기"

SEASON_LABEL_PATTERN = re.compile(r"^\d{2}/\d{2}절기$")
SEASON_KEY_PATTERN = re.compile(r"^(\d{2})/(\d{2})$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_WEEK_IN_TEXT = re.compile(r"(\d+)주")
_YEAR_IN_TEXT = re.compile(r"(\d{4})년")


def leading_int(value: object) -> Optional[int]:
    """Parse the leading integer of a value ("35", "35주", " 7 ") or None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def format_week(week_number: int) -> str:
    return f"{int(week_number)}{WEEK_SUFFIX}"


def parse_week_number(week: Union[str, int, None]) -> Optional[int]:
    """Week number from "36주" / "36" / 36."""
    if week is None:
        return None
    return leading_int(str(week).replace(WEEK_SUFFIX, "").strip())


def week_from_text(text: object) -> Optional[str]:
    """Find "<n>주" inside a collection-period string like "2025년 32주"."""
    if text is None:
        return None
    match = _WEEK_IN_TEXT.search(str(text))
    return format_week(int(match.group(1))) if match else None


def year_from_text(text: object) -> Optional[int]:
    if text is None:
        return None
    match = _YEAR_IN_TEXT.search(str(text))
    return int(match.group(1)) if match else None


def is_season_label(value: object) -> bool:
    return isinstance(value, str) and bool(SEASON_LABEL_PATTERN.match(value))


def season_from_week(week: Union[str, int, None], year: Union[str, int, None]) -> Optional[str]:
    """Season label ("24/25절기") that a (week, year) pair belongs to."""
    week_number = parse_week_number(week)
    year_number = leading_int(year)
    if week_number is None or year_number is None:
        return None
    if week_number < 1 or week_number > MAX_WEEK:
        return None
    start_year = year_number if week_number >= SEASON_START_WEEK else year_number - 1
    return f"{start_year % 100:02d}/{(start_year + 1) % 100:02d}{SEASON_SUFFIX}"


def season_key(label: str) -> str:
    """"24/25절기" -> "24/25"."""
    return label[: -len(SEASON_SUFFIX)] if label.endswith(SEASON_SUFFIX) else label


def season_label(key: str) -> str:
    """"24/25" -> "24/25절기"."""
    return key if key.endswith(SEASON_SUFFIX) else f"{key}{SEASON_SUFFIX}"


def season_start_year(season: str) -> int:
    """Calendar year in which a season starts ("24/25" -> 2024)."""
    match = SEASON_KEY_PATTERN.match(season_key(season.strip()))
    if not match:
        raise ValueError(f"Invalid season: {season!r}")
    return 2000 + int(match.group(1))


def season_sort_key(week: Union[str, int, None]) -> Tuple[int, int, str]:
    """Position of a week inside a season: 36주 first, 35주 last.

    Unparseable labels sort after every valid week, by their text.
    """
    week_number = parse_week_number(week)
    if week_number is None:
        return (1, 0, str(week))
    if week_number >= SEASON_START_WEEK:
        offset = week_number - SEASON_START_WEEK
    else:
        offset = week_number + (MAX_WEEK - SEASON_START_WEEK)
    return (0, offset, str(week))


def compare_weeks_by_season(a: Union[str, int], b: Union[str, int]) -> int:
    ka, kb = season_sort_key(a), season_sort_key(b)
    return (ka > kb) - (ka < kb)


def sort_weeks_by_season(weeks: Iterable[Union[str, int]]) -> List:
    return sorted(weeks, key=cmp_to_key(compare_weeks_by_season))


def date_range_from_season(season: str, week: Union[str, int, None] = None) -> Tuple[str, str]:
    """ISO date range covered by a season.

    Without ``week`` the range spans Monday of week 36 through Sunday of
    week 35 of the next year. With ``week`` the range ends on the Sunday of
    that week inside the season.
    """
    start_year = season_start_year(season)
    start = date.fromisocalendar(start_year, SEASON_START_WEEK, 1)

    end_week = parse_week_number(week) if week is not None else None
    if end_week is None or end_week < 1 or end_week > MAX_WEEK:
        end = date.fromisocalendar(start_year + 1, SEASON_START_WEEK - 1, 7)
    else:
        end_year = start_year if end_week >= SEASON_START_WEEK else start_year + 1
        end = _iso_week_sunday(end_year, end_week)
    return start.isoformat(), end.isoformat()


def _iso_week_sunday(year: int, week_number: int) -> date:
    try:
        return date.fromisocalendar(year, week_number, 7)
    except ValueError:
        # Years with 52 ISO weeks: week 53 folds into the last week.
        return date.fromisocalendar(year, 52, 7) + timedelta(days=7)
