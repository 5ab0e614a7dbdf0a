"""Public-data proxy router - emergency beds and medical equipment.

Endpoints:
    GET /api/beds      - Real-time emergency bed availability for one hospital (XML upstream)
    GET /api/equipment - Registered medical equipment for one institution (JSON upstream)
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

import requests
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ..dependencies import (
    DEBUG_MODE,
    DEFAULT_EQUIPMENT_YKIHO,
    EMERGENCY_BED_API_KEY,
    UPSTREAM_TIMEOUT_SECONDS,
    get_http_session,
)
from ..middleware.rate_limit import rate_limit_proxy
from ..models import BedsResponse, EquipmentResponse
from ..utils.address import parse_address_to_stage

router = APIRouter()
logger = logging.getLogger(__name__)

BEDS_API_URL = "http://apis.data.go.kr/B552657/ErmctInfoInqireService/getEmrrmRltmUsefulSckbdInfoInqire"
EQUIPMENT_API_URL = "https://apis.data.go.kr/B551182/MadmDtlInfoService2.7/getMedOftInfo2.7"

DEFAULT_STAGE1 = "서울특별시"
DEFAULT_STAGE2 = "영등포구"

# Upstream flag field -> response key
EQUIPMENT_FLAGS = {
    "hvctayn": "ct",
    "hvmriayn": "mri",
    "hvventiayn": "ventilator",
    "hvventisoayn": "ventilatorNeonatal",
    "hvangioayn": "angiography",
    "hvoxyayn": "hyperbaricOxygen",
    "hvincuayn": "incubator",
}

_NAME_NOISE = re.compile(r"[\s()\-]")


class UpstreamError(Exception):
    """Public data API unreachable or returned an unusable payload."""


# =============================================================================
# PARSING HELPERS
# =============================================================================

def normalize_hospital_name(name: Optional[str]) -> str:
    """"서울 성모 병원(본원)" -> "서울성모병원본원"."""
    return _NAME_NOISE.sub("", str(name or "")).strip().lower()


def _to_int(value: Any) -> int:
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return 0


def parse_bed_items(xml_text: str) -> List[Dict[str, str]]:
    """``response/body/items/item`` elements as flat tag -> text dicts."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise UpstreamError(f"Invalid XML from bed API: {e}") from e
    return [
        {child.tag: (child.text or "").strip() for child in item}
        for item in root.findall("./body/items/item")
    ]


def select_hospital(items: List[Dict[str, str]], hpid: str = "", hospital_name: str = "") -> Optional[Dict[str, str]]:
    """Pick by hpid, then exact normalized name, then name substring, else the first item."""
    if not items:
        return None
    if hpid:
        for item in items:
            if item.get("hpid") == hpid:
                return item
    target = normalize_hospital_name(hospital_name)
    if target:
        for item in items:
            if normalize_hospital_name(item.get("dutyName")) == target:
                return item
        for item in items:
            if target in normalize_hospital_name(item.get("dutyName")):
                return item
    return items[0]


def build_beds_payload(item: Dict[str, str]) -> Dict[str, Any]:
    emergency_total = _to_int(item.get("hvs01"))
    inpatient_total = _to_int(item.get("hvs38"))
    hvec = _to_int(item.get("hvec"))
    hvgc = _to_int(item.get("hvgc"))
    hvidate = item.get("hvidate", "")

    stats = {
        "dutyName": item.get("dutyName", ""),
        "hpid": item.get("hpid", ""),
        "totalBeds": emergency_total + inpatient_total,
        "availableBeds": hvec + hvgc,
        "occupiedBeds": (emergency_total - hvec) + (inpatient_total - hvgc),
        "emergencyAvailable": "Y" if hvec > 0 else "N",
        "inpatientAvailable": "Y" if hvgc > 0 else "N",
        "emergencyTotal": emergency_total,
        "emergencyAvailableCount": hvec,
        "emergencyOccupiedCount": emergency_total - hvec,
        "inpatientTotal": inpatient_total,
        "inpatientAvailableCount": hvgc,
        "inpatientOccupiedCount": inpatient_total - hvgc,
        "hvidate": hvidate,
    }
    equipment = {key: item.get(field) or "N" for field, key in EQUIPMENT_FLAGS.items()}
    return {
        "dutyName": item.get("dutyName", ""),
        "dutyTel3": item.get("dutyTel3", ""),
        "hpid": item.get("hpid", ""),
        "stats": stats,
        "equipment": equipment,
        "raw": {"hvec": hvec, "hvgc": hvgc, "hvidate": hvidate},
    }


def build_equipment_payload(data: Dict[str, Any], page_no: int, num_of_rows: int) -> Dict[str, Any]:
    body = ((data or {}).get("response") or {}).get("body") or {}
    items_node = body.get("items")
    raw_items = items_node.get("item") if isinstance(items_node, dict) else None
    if not raw_items:
        return {"success": True, "items": [], "totalCount": 0, "pageNo": page_no, "numOfRows": num_of_rows}
    if isinstance(raw_items, dict):
        raw_items = [raw_items]

    items = [
        {
            "code": str(item.get("oftCd") or ""),
            "name": str(item.get("oftCdNm") or ""),
            "count": _to_int(item.get("oftCnt")),
        }
        for item in raw_items
    ]
    return {
        "success": True,
        "items": items,
        "totalCount": _to_int(body.get("totalCount")) or len(items),
        "pageNo": _to_int(body.get("pageNo")) or page_no,
        "numOfRows": _to_int(body.get("numOfRows")) or num_of_rows,
    }


# =============================================================================
# UPSTREAM CALLS
# =============================================================================

def _fetch(session: requests.Session, url: str, params: Dict[str, Any]) -> requests.Response:
    try:
        resp = session.get(url, params=params, timeout=UPSTREAM_TIMEOUT_SECONDS)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise UpstreamError(f"Public data API request failed: {e}") from e
    return resp


def fetch_beds(session: requests.Session, params: Dict[str, Any], hpid: str, hospital_name: str) -> Optional[Dict[str, Any]]:
    resp = _fetch(session, BEDS_API_URL, params)
    target = select_hospital(parse_bed_items(resp.text), hpid=hpid, hospital_name=hospital_name)
    return build_beds_payload(target) if target is not None else None


def fetch_equipment(session: requests.Session, params: Dict[str, Any]) -> Dict[str, Any]:
    resp = _fetch(session, EQUIPMENT_API_URL, params)
    try:
        data = resp.json()
    except ValueError as e:
        raise UpstreamError(f"Invalid JSON from equipment API: {e}") from e
    return build_equipment_payload(data, params["pageNo"], params["numOfRows"])


def _require_service_key() -> str:
    if not EMERGENCY_BED_API_KEY:
        raise HTTPException(500, "EMERGENCY_BED_API_KEY is not configured")
    return EMERGENCY_BED_API_KEY


def _upstream_failure(message: str, exc: Exception) -> JSONResponse:
    logger.error(f"{message}: {exc}")
    content: Dict[str, Any] = {"error": message, "code": "UPSTREAM_ERROR"}
    if DEBUG_MODE:
        content["details"] = {"reason": str(exc)}
    return JSONResponse(status_code=502, content=content)


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/beds", response_model=BedsResponse)
@rate_limit_proxy
async def get_beds(
    request: Request,
    STAGE1: Optional[str] = Query(default=None, description="Province, e.g. 서울특별시"),
    STAGE2: Optional[str] = Query(default=None, description="District, e.g. 영등포구"),
    address: Optional[str] = Query(default=None, description="Free-form address; used when STAGE1 is not given"),
    pageNo: int = Query(default=1, ge=1),
    numOfRows: int = Query(default=20, ge=1, le=1000),
    hospitalName: str = Query(default=""),
    hpid: str = Query(default=""),
    session: requests.Session = Depends(get_http_session),
):
    """Bed statistics and equipment flags for the selected hospital."""
    service_key = _require_service_key()

    stage1, stage2 = STAGE1, STAGE2
    if not stage1 and address:
        parsed = parse_address_to_stage(address)
        stage1, stage2 = parsed["stage1"], stage2 or parsed["stage2"]
    params = {
        "serviceKey": service_key,
        "STAGE1": stage1 or DEFAULT_STAGE1,
        "STAGE2": stage2 or DEFAULT_STAGE2,
        "pageNo": pageNo,
        "numOfRows": numOfRows,
    }

    try:
        payload = await run_in_threadpool(fetch_beds, session, params, hpid, hospitalName)
    except UpstreamError as e:
        return _upstream_failure("Bed data lookup failed", e)
    if payload is None:
        raise HTTPException(404, "Hospital not found")
    return payload


@router.get("/equipment", response_model=EquipmentResponse)
@rate_limit_proxy
async def get_equipment(
    request: Request,
    pageNo: int = Query(default=1, ge=1),
    numOfRows: int = Query(default=100, ge=1, le=1000),
    ykiho: str = Query(default="", description="Encrypted institution code"),
    session: requests.Session = Depends(get_http_session),
):
    service_key = _require_service_key()
    code = ykiho or DEFAULT_EQUIPMENT_YKIHO
    if not code:
        raise HTTPException(400, "ykiho is required")

    params = {
        "serviceKey": service_key,
        "ykiho": code,
        "pageNo": pageNo,
        "numOfRows": numOfRows,
        "_type": "json",
    }
    try:
        return await run_in_threadpool(fetch_equipment, session, params)
    except UpstreamError as e:
        return _upstream_failure("Equipment data lookup failed", e)
