"""Historical CSV snapshot loader.

Snapshots are stored one file per dataset and year:

    <FLU_CSV_DIR>/flu-<dsidNumber>-<year>.csv     e.g. flu-0101-2023.csv

Headers are locale-specific (연도, 주차, 연령대, 의사환자 분율) and the first
header may carry a UTF-8 BOM. A missing or unreadable year contributes no
rows; the other years are still loaded.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .dataset_metadata import dsid_number, normalize_dsid
from .models import EtlRecord
from .seasons import leading_int

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).parent
PROJECT_DIR = PACKAGE_DIR.parent
DATA_DIR = Path(os.environ.get("FLU_DATA_DIR", str(PROJECT_DIR / "data")))
CSV_DIR = Path(os.environ.get("FLU_CSV_DIR", str(DATA_DIR / "before")))

# Historical range served from CSV; later weeks come from the ETL API
HISTORY_START_YEAR = 2017
HISTORY_START_WEEK = 36
HISTORY_END_YEAR = 2025
HISTORY_END_WEEK = 47

YEAR_FIELD = "연도"
WEEK_FIELD = "주차"
AGE_GROUP_FIELD = "연령대"
VALUE_FIELD = "의사환자 분율"
SNAPSHOT_FIELDS = (YEAR_FIELD, WEEK_FIELD, AGE_GROUP_FIELD, VALUE_FIELD)


def csv_file_name(dsid: str, year: int) -> str:
    return f"flu-{dsid_number(dsid)}-{year}.csv"


def load_csv_file(path: Path) -> List[Dict[str, str]]:
    """Read a CSV snapshot into a list of row dicts (all values as stripped strings).

    Rows whose column count does not match the header are skipped with a
    warning. Any read failure returns an empty list.
    """
    def _skip_bad_line(fields: List[str]) -> None:
        logger.warning("CSV %s: column count mismatch, skipping line: %s", path.name, ",".join(fields))
        return None

    try:
        df = pd.read_csv(
            path,
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
            engine="python",
            on_bad_lines=_skip_bad_line,
        )
    except FileNotFoundError:
        logger.warning("CSV file not found: %s", path)
        return []
    except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        logger.warning("CSV file load failed (%s): %s", path, e)
        return []

    df.columns = [str(c).replace("\ufeff", "").strip() for c in df.columns]

    # Short lines are padded with NaN by the parser
    short = df.isna().any(axis=1)
    if short.any():
        logger.warning("CSV %s: %d short line(s) skipped", path.name, int(short.sum()))
        df = df[~short].copy()

    for column in df.columns:
        df[column] = df[column].astype(str).str.strip()
    return df.to_dict(orient="records")


def _in_history_range(
    row_year: Optional[int],
    week: Optional[int],
    start_year: int,
    start_week: int,
    end_year: int,
    end_week: int,
) -> bool:
    if not row_year or not week or week < 1 or week > 53:
        return False
    if row_year < start_year or row_year > end_year:
        return False
    if row_year == start_year and week < start_week:
        return False
    if row_year == end_year and week > end_week:
        return False
    return True


def load_historical_csv(
    dsid: str = "ds_0101",
    csv_dir: Optional[Path] = None,
    start_year: int = HISTORY_START_YEAR,
    start_week: int = HISTORY_START_WEEK,
    end_year: int = HISTORY_END_YEAR,
    end_week: int = HISTORY_END_WEEK,
) -> List[Dict[str, str]]:
    """Load every yearly snapshot for ``dsid`` and keep rows inside the history range.

    Filtering uses the year/week columns of each row, not the file name.
    """
    base = Path(csv_dir) if csv_dir is not None else CSV_DIR
    all_rows: List[Dict[str, str]] = []

    for year in range(start_year, end_year + 1):
        path = base / csv_file_name(dsid, year)
        rows = load_csv_file(path)
        if not rows:
            logger.warning("No CSV data for %s year %d (%s)", dsid, year, path.name)
            continue

        kept = [
            row for row in rows
            if _in_history_range(
                leading_int(row.get(YEAR_FIELD)),
                leading_int(row.get(WEEK_FIELD)),
                start_year, start_week, end_year, end_week,
            )
        ]
        logger.info("CSV %s: %d/%d row(s) in range", path.name, len(kept), len(rows))
        all_rows.extend(kept)

    logger.info(
        "CSV history loaded for %s: %d row(s) (%d-%02d .. %d-%02d)",
        dsid, len(all_rows), start_year, start_week, end_year, end_week,
    )
    return all_rows


def project_csv_row(row: Dict[str, str]) -> Dict[str, str]:
    return {field: row.get(field) or "" for field in SNAPSHOT_FIELDS}


def convert_csv_to_etl_records(rows: List[Dict[str, str]], dsid: str = "ds_0101") -> List[EtlRecord]:
    """Wrap CSV rows as ETL records so CSV and API data share one aggregation path.

    Each row is projected to the four snapshot columns; other columns are dropped.
    """
    collected_at = datetime.now(timezone.utc).isoformat()
    dataset_id = normalize_dsid(dsid)
    return [
        EtlRecord(
            id=f"csv_{index}",
            dataset_id=dataset_id,
            parsed_data=[project_csv_row(row)],
            collected_at=collected_at,
            origin="csv",
        )
        for index, row in enumerate(rows)
    ]
