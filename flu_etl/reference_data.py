"""CSV-backed reference data: hospital locations and clinical notes.

Hospital locations feed the dashboard map (and the ``hpid`` passed to the
emergency bed lookup). Clinical notes are looked up per admission
(``subject_id`` + ``hadm_id``) from a large chart-event export, read in
chunks so a lookup stops as soon as enough notes are found.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from .csv_loader import DATA_DIR

logger = logging.getLogger(__name__)

HOSPITAL_CSV_PATH = Path(os.environ.get("HOSPITAL_CSV_PATH", str(DATA_DIR / "병원위치정보.csv")))
CLINICAL_NOTE_CSV_PATH = Path(os.environ.get("CLINICAL_NOTE_CSV_PATH", str(DATA_DIR / "clinical_notes.csv")))

HOSPITAL_FIELDS = ["병원이름", "시/도", "시/군/구", "주소", "전화번호", "암호화요양기호", "hpid"]
X_FIELD = "X좌표"
Y_FIELD = "Y좌표"

DEFAULT_NOTE_LIMIT = 50
MAX_NOTE_LIMIT = 200
NOTE_CHUNK_ROWS = 50_000


def _clean_columns(df: pd.DataFrame) -> pd.DataFrame:
    df.columns = [str(c).replace("\ufeff", "").strip() for c in df.columns]
    return df


def load_hospitals(path: Path = HOSPITAL_CSV_PATH) -> List[Dict[str, Any]]:
    """Hospitals with finite X/Y coordinates, in file order.

    Raises FileNotFoundError if the CSV is missing.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Hospital CSV not found: {path}")
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig", on_bad_lines="skip")
    except pd.errors.EmptyDataError:
        return []
    df = _clean_columns(df).fillna("")

    for field in HOSPITAL_FIELDS + [X_FIELD, Y_FIELD]:
        if field not in df.columns:
            df[field] = ""
    for field in HOSPITAL_FIELDS:
        df[field] = df[field].astype(str).str.strip()

    x = pd.to_numeric(df[X_FIELD].astype(str).str.strip(), errors="coerce")
    y = pd.to_numeric(df[Y_FIELD].astype(str).str.strip(), errors="coerce")
    located = np.isfinite(x) & np.isfinite(y)
    if (~located).any():
        logger.info("Hospital CSV %s: %d row(s) without coordinates skipped", path.name, int((~located).sum()))

    out = df.loc[located, HOSPITAL_FIELDS].copy()
    out[X_FIELD] = x[located].astype(float)
    out[Y_FIELD] = y[located].astype(float)
    return out[["병원이름", X_FIELD, Y_FIELD, "시/도", "시/군/구", "주소", "전화번호", "암호화요양기호", "hpid"]].to_dict(orient="records")


def find_clinical_notes(
    subject_id: str,
    hadm_id: str,
    limit: int = DEFAULT_NOTE_LIMIT,
    path: Path = CLINICAL_NOTE_CSV_PATH,
) -> List[Dict[str, Any]]:
    """Distinct non-empty notes for one admission, in file order, at most ``limit`` (capped at 200).

    Rows whose column count differs from the header are skipped.
    Raises FileNotFoundError if the CSV is missing.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Clinical note CSV not found: {path}")
    limit = min(max(int(limit), 1), MAX_NOTE_LIMIT)
    subject_id = str(subject_id).strip()
    hadm_id = str(hadm_id).strip()

    notes: List[Dict[str, Any]] = []
    seen = set()
    reader = pd.read_csv(
        path,
        dtype=str,
        keep_default_na=False,
        encoding="utf-8-sig",
        on_bad_lines="skip",
        chunksize=NOTE_CHUNK_ROWS,
    )
    with reader:
        for chunk in reader:
            chunk = _clean_columns(chunk)
            if not {"subject_id", "hadm_id", "clinical_note"} <= set(chunk.columns):
                logger.warning("Clinical note CSV %s: missing id/note columns", path.name)
                return []
            # Short lines are padded with NaN by the parser
            chunk = chunk[~chunk.isna().any(axis=1)]
            matches = chunk[(chunk["subject_id"] == subject_id) & (chunk["hadm_id"] == hadm_id)]
            for _, row in matches.iterrows():
                note = str(row["clinical_note"]).strip()
                if not note or note in seen:
                    continue
                seen.add(note)
                notes.append({
                    "id": str(len(notes) + 1),
                    "charttime": row.get("charttime") or None,
                    "clinical_note": note,
                })
                if len(notes) >= limit:
                    return notes

    logger.debug("Clinical notes for %s/%s: %d", subject_id, hadm_id, len(notes))
    return notes
