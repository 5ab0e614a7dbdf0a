"""Shared fixtures: small on-disk CSV history and ETL page files."""

import json

import pytest


def etl_item(item_id, collected_at, rows, origin="api"):
    return {
        "id": item_id,
        "dsId": "ds_0101",
        "collectedAt": collected_at,
        "origin": origin,
        "parsedData": json.dumps(rows, ensure_ascii=False),
    }


def age_row(year, week, group, value):
    return {"연도": str(year), "주차": str(week), "연령대": group, "의사환자 분율": str(value)}


@pytest.fixture
def etl_data_dir(tmp_path):
    """ds_0101 split over two pages (one bare list, one envelope) plus ds_0102."""
    data_dir = tmp_path / "etl"
    data_dir.mkdir()

    page1 = [
        etl_item("1", "2025-11-20T09:00:00", [age_row(2025, 47, "0세", 9.0)], origin="csv"),
        etl_item("2", "2025-11-27T09:00:00", [age_row(2025, 48, "0세", 10.0)]),
    ]
    page2 = {"body": {"data": [
        etl_item("3", "2025-12-04T23:30:00", [age_row(2025, 49, "0세", 12.0)]),
    ]}}
    other = {"data": [etl_item("x", "2025-12-01T00:00:00", [])]}

    (data_dir / "ds_0101_page_1.json").write_text(json.dumps(page1, ensure_ascii=False), encoding="utf-8")
    (data_dir / "ds_0101_page_2.json").write_text(json.dumps(page2, ensure_ascii=False), encoding="utf-8")
    (data_dir / "ds_0102_page_1.json").write_text(json.dumps(other), encoding="utf-8")
    (data_dir / "notes.txt").write_text("ignored", encoding="utf-8")
    return data_dir


@pytest.fixture
def csv_dir(tmp_path):
    """2024/25 history for ds_0101: weeks 36..52 of 2024 and 1..10 of 2025."""
    base = tmp_path / "before"
    base.mkdir()
    header = "\ufeff연도,주차,연령대,의사환자 분율\n"

    lines_2024 = [f"2024,{w},0세,{w - 30}.0\n2024,{w},65세이상,{w - 34}.0\n" for w in range(36, 53)]
    lines_2025 = [f"2025,{w},0세,{w + 20}.0\n2025,{w},65세이상,{w + 16}.0\n" for w in range(1, 11)]
    (base / "flu-0101-2024.csv").write_text(header + "".join(lines_2024), encoding="utf-8")
    (base / "flu-0101-2025.csv").write_text(header + "".join(lines_2025), encoding="utf-8")
    return base
