"""Reference data router - dataset registry and dashboard indicators."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, HTTPException

from flu_etl.dataset_metadata import (
    DATASET_METADATA,
    INFLUENZA_INDICATORS,
    get_dataset_metadata,
    get_datasets_by_provider,
)

router = APIRouter()


@router.get("/datasets")
async def list_datasets() -> Dict[str, Any]:
    """All known datasets, flat and grouped by provider."""
    return {
        "datasets": list(DATASET_METADATA.values()),
        "byProvider": get_datasets_by_provider(),
    }


@router.get("/datasets/{dsid}")
async def get_dataset(dsid: str) -> Dict[str, str]:
    meta = get_dataset_metadata(dsid)
    if meta is None:
        raise HTTPException(404, "Dataset not found")
    return meta


@router.get("/indicators")
async def list_indicators() -> Dict[str, Any]:
    return {"indicators": INFLUENZA_INDICATORS}
