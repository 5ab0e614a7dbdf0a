"""Tests for the dashboard series service (CSV history + ETL API data)."""

import json

from flu_etl.etl_client import EtlApiError
from flu_etl.etl_store import EtlPageStore
from flu_etl.series import (
    DEFAULT_INDICATORS,
    LOAD_FAILED_MESSAGE,
    filter_api_records,
    load_influenza_data,
)


def _item(rows):
    return {"id": "i", "parsedData": json.dumps(rows)}


class TestFilterApiRecords:
    """Only API weeks after the CSV history are kept."""

    def test_cutoff(self):
        items = [
            _item([{"연도": "2025", "주차": "47"}]),
            _item([{"연도": "2025", "주차": "48"}]),
            _item([{"\ufeff연도": "2025", "주차": "52"}]),
            _item([{"연도": "2024", "주차": "50"}]),
        ]
        kept = filter_api_records(items)
        assert [json.loads(i["parsedData"])[0]["주차"] for i in kept] == ["48", "52"]

    def test_undecodable_and_empty_kept(self):
        bad = {"id": "b", "parsedData": "{oops"}
        empty = {"id": "e", "parsedData": "[]"}
        assert filter_api_records([bad, empty]) == [bad, empty]


class TestLoadInfluenzaData:
    """Merging, fallbacks and error reporting."""

    def test_csv_and_api_merged(self, csv_dir, etl_data_dir):
        data = load_influenza_data(
            season="25/26", dsid="ds_0101", csv_dir=csv_dir,
            fetch_range=EtlPageStore(etl_data_dir).by_date_range,
        )
        assert data.error is None
        assert data.csv_count == 54
        assert data.api_count == 2

        ili = data.indicators["ili"]
        assert len(ili["weeks"]) == 27
        assert ili["weeks"][0] == "36주"
        assert ili["weeks"][-1] == "10주"
        assert ili["values"][0] == 4.0
        assert set(ili["ageGroups"]) == {"0세", "65세이상"}
        assert ili["seasons"]["25/26절기"]["weeks"] == ["48주", "49주"]
        assert ili["seasons"]["25/26절기"]["values"] == [10.0, 12.0]
        assert "24/25절기" in ili["seasons"]

    def test_other_indicators_are_defaults(self, csv_dir):
        data = load_influenza_data(season="24/25", csv_dir=csv_dir)
        for key in ("ari", "sari", "iriss", "kriss", "nedis"):
            assert data.indicators[key] == DEFAULT_INDICATORS[key]

    def test_api_failure_uses_csv_only(self, csv_dir):
        def failing(dsid, date_from, date_to):
            raise EtlApiError("down")

        data = load_influenza_data(season="25/26", csv_dir=csv_dir, fetch_range=failing)
        assert data.error is None
        assert data.api_count == 0
        assert len(data.indicators["ili"]["weeks"]) == 27

    def test_no_data_shows_defaults_without_error(self, tmp_path):
        data = load_influenza_data(season="24/25", csv_dir=tmp_path)
        assert data.error is None
        assert data.indicators == DEFAULT_INDICATORS

    def test_uninterpretable_data_shows_defaults(self, tmp_path):
        data = load_influenza_data(
            season="25/26", csv_dir=tmp_path,
            fetch_range=lambda dsid, a, b: [{"id": "b", "parsedData": "{oops"}],
        )
        assert data.error is None
        assert data.api_count == 1
        assert data.indicators["ili"] == DEFAULT_INDICATORS["ili"]

    def test_unexpected_failure_reports_message(self, tmp_path):
        def broken(dsid, date_from, date_to):
            raise RuntimeError("boom")

        data = load_influenza_data(season="25/26", csv_dir=tmp_path, fetch_range=broken)
        assert data.error == LOAD_FAILED_MESSAGE
        assert data.indicators == DEFAULT_INDICATORS

    def test_payload_shape(self, csv_dir):
        payload = load_influenza_data(season="24/25", csv_dir=csv_dir).to_dict()
        assert set(payload) == {"data", "error", "meta"}
        assert payload["meta"]["apiCount"] == 0
