"""Pydantic models for the Influenza Dashboard API.

Field names are camelCase to match the JSON the dashboard frontend consumes.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# INPUT VALIDATION PATTERNS
# =============================================================================

DSID_PATTERN = re.compile(r'^(ds_)?\d{4}$')
SEASON_PATTERN = re.compile(r'^\d{2}/\d{2}(절기)?$')


def _validate_dsid(v: str) -> str:
    if not DSID_PATTERN.match(v):
        raise ValueError('dsid must look like ds_0101')
    return v if v.startswith('ds_') else f'ds_{v}'


# =============================================================================
# REQUEST MODELS (Input Validation)
# =============================================================================

class BacktestRunRequest(BaseModel):
    """Request to start a rolling backtest for a season."""
    season: str = Field(..., description='Season key, e.g. "24/25"')
    dsid: str = Field(default="ds_0101", description="Dataset id")
    week: Optional[str] = Field(default=None, description="Last week to include")
    windowSize: int = Field(default=12, ge=1, le=104)
    steps: int = Field(default=3, ge=1, le=26)

    @field_validator('season')
    @classmethod
    def validate_season(cls, v: str) -> str:
        v = v.strip()
        if not SEASON_PATTERN.match(v):
            raise ValueError('season must look like 24/25')
        return v

    @field_validator('dsid')
    @classmethod
    def validate_dsid(cls, v: str) -> str:
        return _validate_dsid(v.strip())


class BacktestKeyRequest(BaseModel):
    """Identifies one backtest (status / cancel)."""
    season: str
    dsid: str = "ds_0101"
    windowSize: int = Field(default=12, ge=1, le=104)
    steps: int = Field(default=3, ge=1, le=26)

    @field_validator('dsid')
    @classmethod
    def validate_dsid(cls, v: str) -> str:
        return _validate_dsid(v.strip())


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response format."""
    error: str
    code: str
    details: Optional[Dict[str, Any]] = None


class BacktestProgress(BaseModel):
    current: int = 0
    total: int = 0


class BacktestStatusResponse(BaseModel):
    key: str
    status: str
    error: Optional[str] = None
    progress: BacktestProgress = Field(default_factory=BacktestProgress)


class EquipmentItem(BaseModel):
    code: str = ""
    name: str = ""
    count: int = 0


class EquipmentResponse(BaseModel):
    success: bool = True
    items: List[EquipmentItem] = Field(default_factory=list)
    totalCount: int = 0
    pageNo: int = 1
    numOfRows: int = 100


class BedStats(BaseModel):
    dutyName: str = ""
    hpid: str = ""
    totalBeds: int = 0
    availableBeds: int = 0
    occupiedBeds: int = 0
    emergencyAvailable: str = "N"
    inpatientAvailable: str = "N"
    emergencyTotal: int = 0
    emergencyAvailableCount: int = 0
    emergencyOccupiedCount: int = 0
    inpatientTotal: int = 0
    inpatientAvailableCount: int = 0
    inpatientOccupiedCount: int = 0
    hvidate: str = ""


class BedEquipment(BaseModel):
    ct: str = "N"
    mri: str = "N"
    ventilator: str = "N"
    ventilatorNeonatal: str = "N"
    angiography: str = "N"
    hyperbaricOxygen: str = "N"
    incubator: str = "N"


class BedsResponse(BaseModel):
    dutyName: str = ""
    dutyTel3: str = ""
    hpid: str = ""
    stats: BedStats
    equipment: BedEquipment
    raw: Dict[str, Any] = Field(default_factory=dict)
