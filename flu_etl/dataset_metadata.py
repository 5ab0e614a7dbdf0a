"""Dataset registry: dsid -> dataset name / provider, plus dashboard indicators."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional

KDCA = "질병관리청 감염병 포털"
HIRA = "보건의료빅데이터개방시스템"
KOSIS = "국가통계포털"
SGIS = "통계지리정보서비스"
DATA_GO_KR = "공공데이터 포털"

_DATASETS = [
    # 질병관리청 감염병 포털
    ("ds_0101", "인플루엔자 의사환자 비율", KDCA),
    ("ds_0102", "인플루엔자 유행단계", KDCA),
    ("ds_0103", "급성호흡기감염증 환자 중 인플루엔자 환자 수(ARI)", KDCA),
    ("ds_0104", "중증급성호흡기감염증 환자 중 인플루엔자 환자 수(SARI)", KDCA),
    ("ds_0105", "의원급 의료기관 인플루엔자 검출률(K-RISS)-아형별", KDCA),
    ("ds_0106", "의원급 의료기관 인플루엔자 검출률(K-RISS)-연령대별", KDCA),
    ("ds_0107", "검사기관 인플루엔자 검출률-아형별", KDCA),
    ("ds_0108", "검사기관 인플루엔자 검출률-연령대별", KDCA),
    ("ds_0109", "응급실 인플루엔자 환자 수(NEDIS)", KDCA),
    ("ds_0110", "인플루엔자 예방접종률-어르신", KDCA),
    ("ds_0111", "인플루엔자 예방접종률-어린이", KDCA),
    # 보건의료빅데이터개방시스템
    ("ds_0201", "의료통계정보-지역별 종별 의료인력(의사 등)", HIRA),
    ("ds_0202", "질병 세분류(4단 상병) 통계-성별/연령5세구간별", HIRA),
    ("ds_0301", "성별 및 연령별 인구와 인구밀도", KOSIS),
    ("ds_0401", "전국 지역별 인구밀도", SGIS),
    # 공공데이터 포털
    ("ds_0501", "전국 응급의료기관 실시간 현황 정보", DATA_GO_KR),
    ("ds_0502", "감염성질환(인플루엔자) 의료이용정보", DATA_GO_KR),
    ("ds_0503", "대기오염 통계", DATA_GO_KR),
    ("ds_0504", "국경일(국경일, 공휴일, 대체공유일) 정보", DATA_GO_KR),
    ("ds_0505", "지점별 종관기상관측(ASOS) 시간자료 데이터", DATA_GO_KR),
    ("ds_0506", "의약품사용정보", DATA_GO_KR),
    ("ds_0507", "인플루엔자 시군구별 국가예방접종 현황", DATA_GO_KR),
    # 외부 트렌드
    ("ds_0601", "flunet", "WHO"),
    ("ds_0701", "구글 트렌드", "구글"),
    ("ds_0801", "네이버 트렌드", "네이버"),
    ("ds_0901", "X 트렌드", "X"),
]

DATASET_METADATA: Dict[str, Dict[str, str]] = {
    dsid: {"dsid": dsid, "dataname": name, "provider": provider}
    for dsid, name, provider in _DATASETS
}

# Dashboard indicator cards, in display order
INFLUENZA_INDICATORS: List[Dict[str, str]] = [
    {
        "key": "ili",
        "label": "ILI",
        "title": "인플루엔자 의사환자 분율",
        "description": "외래환자 1,000명당 인플루엔자 의심 증상(발열+기침/인후통 등)으로 내원한 비율",
    },
    {
        "key": "ari",
        "label": "ARI",
        "title": "급성호흡기감염증 환자 중 인플루엔자 환자 수",
        "description": "급성호흡기감염증(ARI) 환자 중 인플루엔자 확진(또는 양성) 환자 규모를 나타내는 지표",
    },
    {
        "key": "sari",
        "label": "SARI",
        "title": "중증급성호흡기감염증 환자 중 인플루엔자 환자 수",
        "description": "중증(입원 등) 급성호흡기감염증(SARI) 환자 중 인플루엔자 관련 규모를 나타내는 지표",
    },
    {
        "key": "iriss",
        "label": "I-RISS",
        "title": "검사기관 인플루엔자 검출률",
        "description": "검사기관에서 수행한 호흡기 바이러스 검사 중 인플루엔자 양성 비율",
    },
    {
        "key": "kriss",
        "label": "K-RISS",
        "title": "의원급 의료기관 인플루엔자 검출률",
        "description": "의원급 의료기관 기반 검사에서 인플루엔자 양성 비율을 나타내는 지표",
    },
    {
        "key": "nedis",
        "label": "NEDIS",
        "title": "응급실 인플루엔자 환자 수",
        "description": "응급실 내원 환자 중 인플루엔자 관련 환자 규모를 나타내는 지표",
    },
]


def normalize_dsid(dsid: object) -> str:
    """"0101" -> "ds_0101"; blank -> ""."""
    s = str(dsid or "").strip()
    if not s:
        return ""
    return s if s.startswith("ds_") else f"ds_{s}"


def dsid_number(dsid: str) -> str:
    """"ds_0101" -> "0101" (used in CSV snapshot file names)."""
    return normalize_dsid(dsid)[len("ds_"):]


def get_dataset_metadata(dsid: str) -> Optional[Dict[str, str]]:
    return DATASET_METADATA.get(normalize_dsid(dsid))


def get_dataset_name(dsid: str) -> Optional[str]:
    meta = get_dataset_metadata(dsid)
    return meta["dataname"] if meta else None


def get_dataset_provider(dsid: str) -> Optional[str]:
    meta = get_dataset_metadata(dsid)
    return meta["provider"] if meta else None


def get_all_dataset_ids() -> List[str]:
    return list(DATASET_METADATA.keys())


def get_datasets_by_provider() -> Dict[str, List[Dict[str, str]]]:
    grouped: Dict[str, List[Dict[str, str]]] = defaultdict(list)
    for meta in DATASET_METADATA.values():
        grouped[meta["provider"]].append(meta)
    return dict(grouped)
