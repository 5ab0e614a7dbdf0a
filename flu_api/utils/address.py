"""Free-form Korean address -> emergency-bed API region parameters."""

from __future__ import annotations

import re
from typing import Dict

# Full province/city name -> short form used by the bed API (STAGE1)
STAGE1_MAP = {
    "서울특별시": "서울",
    "부산광역시": "부산",
    "대구광역시": "대구",
    "인천광역시": "인천",
    "광주광역시": "광주",
    "대전광역시": "대전",
    "울산광역시": "울산",
    "세종특별자치시": "세종",
    "경기도": "경기",
    "강원도": "강원",
    "충청북도": "충북",
    "충청남도": "충남",
    "전라북도": "전북",
    "전라남도": "전남",
    "경상북도": "경북",
    "경상남도": "경남",
    "제주특별자치도": "제주",
    "제주도": "제주",
}

_SUFFIX = re.compile(r"(특별자치시|특별자치도|광역시|특별시|시|도)$")


def parse_address_to_stage(address: str) -> Dict[str, str]:
    """"서울특별시 영등포구 ..." -> {"stage1": "서울", "stage2": "영등포구"}.

    Unknown provinces fall back to the first two whitespace-separated tokens,
    with the administrative suffix removed from the first.
    """
    if not address or not isinstance(address, str) or not address.strip():
        return {"stage1": "", "stage2": ""}
    trimmed = address.strip()

    for full, short in STAGE1_MAP.items():
        if trimmed.startswith(full):
            rest = trimmed[len(full):].split()
            return {"stage1": short, "stage2": rest[0] if rest else ""}

    parts = trimmed.split()
    stage1 = _SUFFIX.sub("", parts[0]) or parts[0]
    stage2 = parts[1] if len(parts) >= 2 else ""
    return {"stage1": stage1, "stage2": stage2}
