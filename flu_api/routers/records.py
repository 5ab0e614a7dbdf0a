"""Reference record router - hospital locations and clinical notes.

Endpoints:
    GET /api/hospitals     - Hospitals with map coordinates
    GET /api/patient/notes - Clinical notes for one admission
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool

from flu_etl.reference_data import DEFAULT_NOTE_LIMIT, MAX_NOTE_LIMIT, find_clinical_notes, load_hospitals

from ..dependencies import get_clinical_note_csv_path, get_hospital_csv_path
from ..middleware.rate_limit import rate_limit_read

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/hospitals")
@rate_limit_read
async def get_hospitals(
    request: Request,
    csv_path: Path = Depends(get_hospital_csv_path),
):
    """All hospitals whose X/Y coordinates parse as numbers."""
    try:
        return await run_in_threadpool(load_hospitals, csv_path)
    except FileNotFoundError:
        logger.warning(f"Hospital CSV missing: {csv_path}")
        raise HTTPException(404, "Hospital location file not found")
    except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
        logger.error(f"Hospital CSV unreadable: {e}")
        raise HTTPException(500, "Hospital location file is unreadable")


@router.get("/patient/notes")
@rate_limit_read
async def get_patient_notes(
    request: Request,
    subject_id: Optional[str] = Query(default=None),
    hadm_id: Optional[str] = Query(default=None),
    limit: int = Query(default=DEFAULT_NOTE_LIMIT, ge=1),
    csv_path: Path = Depends(get_clinical_note_csv_path),
):
    """Distinct notes for ``subject_id`` + ``hadm_id``; ``limit`` is capped at 200."""
    subject_id = (subject_id or "").strip()
    hadm_id = (hadm_id or "").strip()
    if not subject_id or not hadm_id:
        raise HTTPException(400, "subject_id and hadm_id are required")

    try:
        items = await run_in_threadpool(
            find_clinical_notes, subject_id, hadm_id, min(limit, MAX_NOTE_LIMIT), csv_path
        )
    except FileNotFoundError:
        logger.error(f"Clinical note CSV missing: {csv_path}")
        raise HTTPException(500, "Clinical note file not found")
    except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
        logger.error(f"Clinical note CSV unreadable: {e}")
        raise HTTPException(500, "Clinical note file is unreadable")

    return {"subject_id": subject_id, "hadm_id": hadm_id, "items": items}
