"""Tests for the FastAPI application (routers wired through dependency overrides)."""

import pytest
import requests
from fastapi.testclient import TestClient

from flu_api.dependencies import (
    BacktestRegistry,
    get_backtest_registry,
    get_backtest_store,
    get_clinical_note_csv_path,
    get_csv_dir,
    get_etl_fetch_range,
    get_etl_store,
    get_hospital_csv_path,
    get_http_session,
    get_prediction_client,
    get_series_cache,
)
from flu_api.main import app
from flu_api.middleware.rate_limit import limiter
from flu_api.routers.influenza import series_cache_key
from flu_api.utils.client_ip import get_client_ip
from flu_etl.backtest import BacktestRunner, cache_key
from flu_etl.cache import BacktestStore, JsonFileCache, TtlCache
from flu_etl.etl_store import EtlPageStore
from flu_etl.prediction_client import PredictionError


class FakePredictionClient:
    """Predicts the last window value for every step."""

    def __init__(self, fail=False):
        self.fail = fail
        self.payloads = []

    def predict(self, values, steps):
        return [values[-1]] * steps

    def forward(self, payload):
        self.payloads.append(payload)
        if self.fail:
            raise PredictionError("model server down")
        return {"success": True, "predictions": [1.0] * payload["steps"]}


class FailingSession:
    def post(self, url, json=None, timeout=None):
        raise requests.ConnectionError("refused")


@pytest.fixture
def deps(tmp_path, csv_dir, etl_data_dir):
    limiter.reset()
    state = {
        "store": BacktestStore(JsonFileCache(tmp_path / "backtest")),
        "registry": BacktestRegistry(),
        "series_cache": TtlCache(default_ttl=60),
        "prediction": FakePredictionClient(),
    }
    app.dependency_overrides[get_csv_dir] = lambda: csv_dir
    app.dependency_overrides[get_etl_store] = lambda: EtlPageStore(etl_data_dir)
    app.dependency_overrides[get_etl_fetch_range] = lambda: (lambda dsid, date_from, date_to: [])
    app.dependency_overrides[get_series_cache] = lambda: state["series_cache"]
    app.dependency_overrides[get_backtest_store] = lambda: state["store"]
    app.dependency_overrides[get_backtest_registry] = lambda: state["registry"]
    app.dependency_overrides[get_prediction_client] = lambda: state["prediction"]
    app.dependency_overrides[get_http_session] = lambda: FailingSession()
    app.dependency_overrides[get_hospital_csv_path] = lambda: tmp_path / "hospitals.csv"
    app.dependency_overrides[get_clinical_note_csv_path] = lambda: tmp_path / "notes.csv"
    yield state
    app.dependency_overrides.clear()


@pytest.fixture
def client(deps):
    return TestClient(app)


class TestRootAndHealth:
    """Service info endpoints."""

    def test_root(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json()["status"] == "running"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"

    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["status"] == "healthy"
        assert body["sources"] == {"csvHistory": True, "etlData": "local"}


class TestDatasets:
    """Dataset registry endpoints."""

    def test_list(self, client):
        body = client.get("/api/datasets").json()
        assert any(d["dsid"] == "ds_0101" for d in body["datasets"])
        assert body["byProvider"]

    def test_single_and_missing(self, client):
        assert client.get("/api/datasets/ds_0101").status_code == 200
        assert client.get("/api/datasets/ds_9999").status_code == 404

    def test_indicators(self, client):
        assert client.get("/api/indicators").json()["indicators"]


class TestEtlData:
    """Local ETL data API over the page files."""

    base = "/data/api/v1/etl_data"

    def test_statistics(self, client):
        data = client.get(f"{self.base}/statistics").json()["body"]["data"]
        assert data == [{"dsId": "ds_0101", "recordCount": 3}, {"dsId": "ds_0102", "recordCount": 1}]

    def test_recent(self, client):
        data = client.get(f"{self.base}/id/ds_0101/recent/2").json()["body"]["data"]
        assert [r["id"] for r in data] == ["3", "2"]

    def test_date_range(self, client):
        data = client.get(f"{self.base}/id/ds_0101/from/2025-11-27/to/2025-12-04").json()["body"]["data"]
        assert [r["id"] for r in data] == ["2", "3"]

    def test_invalid_date(self, client):
        assert client.get(f"{self.base}/id/ds_0101/from/nope/to/2025-12-04").status_code == 400

    def test_corrupt_page_is_server_error(self, client, etl_data_dir):
        (etl_data_dir / "ds_0101_page_3.json").write_text("{broken", encoding="utf-8")
        resp = client.get(f"{self.base}/id/ds_0101/from/2025-11-27/to/2025-12-04")
        assert resp.status_code == 500
        assert client.get(f"{self.base}/id/ds_0101/recent/2").status_code == 500

    def test_origin(self, client):
        data = client.get(f"{self.base}/id/ds_0101/origin/csv").json()["body"]["data"]
        assert [r["id"] for r in data] == ["1"]


class TestInfluenza:
    """Dashboard series endpoint."""

    def test_series(self, client, deps):
        resp = client.get("/api/influenza", params={"season": "24/25"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["error"] is None
        assert len(body["data"]["ili"]["weeks"]) == 27
        assert body["meta"]["csvCount"] == 54
        assert deps["series_cache"].get(series_cache_key("ds_0101", "24/25", None)) is not None

    def test_invalid_season(self, client):
        assert client.get("/api/influenza", params={"season": "2024"}).status_code == 422


class TestPredictionProxy:
    """Model proxy endpoints."""

    def test_predict_forwards(self, client, deps):
        resp = client.post("/predict", json={"input": [1.0, 2.0], "steps": 2})
        assert resp.status_code == 200
        assert resp.json()["predictions"] == [1.0, 1.0]
        assert deps["prediction"].payloads == [{"input": [1.0, 2.0], "steps": 2}]

    def test_predict_upstream_failure(self, client, deps):
        deps["prediction"].fail = True
        resp = client.post("/predict", json={"input": [1.0], "steps": 1})
        assert resp.status_code == 502
        assert resp.json()["code"] == "UPSTREAM_ERROR"

    def test_predict_body_forwarded_unchanged(self, client, deps):
        body = {"input": [1.0, None], "steps": 3, "model": "lstm"}
        resp = client.post("/predict", json=body)
        assert resp.status_code == 200
        assert deps["prediction"].payloads == [body]

    def test_predict_requires_json_object(self, client):
        assert client.post("/predict", json=[1, 2]).status_code == 422

    def test_analyze_upstream_failure(self, client):
        resp = client.post("/analyze", json={"text": "발열 및 기침"})
        assert resp.status_code == 502
        assert resp.json()["code"] == "UPSTREAM_ERROR"


class TestBacktestApi:
    """Run / status / cancel / cached result."""

    key = cache_key("ds_0101", "24/25", 12, 3)

    def test_no_cached_result(self, client):
        assert client.get("/api/backtest", params={"season": "24/25"}).status_code == 404

    def test_run_then_read(self, client, deps):
        resp = client.post("/api/backtest/run", json={"season": "24/25"})
        assert resp.status_code == 202
        assert resp.json()["key"] == self.key

        status = client.get("/api/backtest/status", params={"season": "24/25"}).json()
        assert status["status"] == "done"
        assert status["progress"] == {"current": 13, "total": 13}

        result = client.get("/api/backtest", params={"season": "24/25"}).json()["result"]
        assert len(result["weeks"]) == 27
        assert result["meta"]["successCount"] == 13

    def test_run_conflict(self, client, deps):
        deps["registry"].start(self.key, BacktestRunner(lambda window, steps: []))
        resp = client.post("/api/backtest/run", json={"season": "24/25", "dsid": "0101"})
        assert resp.status_code == 409

    def test_status_idle(self, client):
        status = client.get("/api/backtest/status", params={"season": "23/24"}).json()
        assert status["status"] == "idle"
        assert status["progress"] == {"current": 0, "total": 0}

    def test_cancel(self, client, deps):
        runner = BacktestRunner(lambda window, steps: [])
        deps["registry"].start(self.key, runner)
        resp = client.post("/api/backtest/cancel", json={"season": "24/25"})
        assert resp.status_code == 200
        assert runner.cancelled

    def test_cancel_without_run(self, client):
        assert client.post("/api/backtest/cancel", json={"season": "24/25"}).status_code == 404

    def test_invalid_season_body(self, client):
        assert client.post("/api/backtest/run", json={"season": "season"}).status_code == 422


class FakeRequest:
    def __init__(self, headers=None, host="10.0.0.5"):
        self.headers = headers or {}
        self.client = type("Client", (), {"host": host})() if host else None


class TestClientIp:
    """Rate-limit key selection."""

    def test_proxy_headers_ignored_by_default(self):
        request = FakeRequest({"X-Forwarded-For": "1.2.3.4"})
        assert get_client_ip(request, trust_proxy=False) == "10.0.0.5"

    def test_trusted_proxy_order(self):
        request = FakeRequest({"CF-Connecting-IP": " 5.6.7.8 ", "X-Forwarded-For": "1.2.3.4, 10.0.0.1"})
        assert get_client_ip(request, trust_proxy=True) == "5.6.7.8"
        assert get_client_ip(FakeRequest({"X-Forwarded-For": "1.2.3.4, 10.0.0.1"}), trust_proxy=True) == "1.2.3.4"

    def test_no_client(self):
        assert get_client_ip(FakeRequest(host=None), trust_proxy=True) == "unknown"


class TestBacktestRegistry:
    """Runner bookkeeping for status/cancel."""

    def _finished(self, registry, key):
        runner = BacktestRunner(lambda window, steps: [])
        registry.start(key, runner)
        runner.status = "done"
        return runner

    def test_finished_runners_bounded(self):
        registry = BacktestRegistry(max_finished=2)
        for i in range(5):
            self._finished(registry, f"k{i}")
        # Eviction runs on start, while the newest runner is still running
        assert len(registry) == 3
        assert registry.get("k1") is None
        assert registry.get("k2") is not None

    def test_running_entries_kept(self):
        registry = BacktestRegistry(max_finished=0)
        running = BacktestRunner(lambda window, steps: [])
        registry.start("busy", running)
        self._finished(registry, "a")
        registry.start("b", BacktestRunner(lambda window, steps: []))
        assert registry.get("busy") is running
        assert registry.get("a") is None

    def test_restart_after_finish(self):
        registry = BacktestRegistry()
        self._finished(registry, "k")
        replacement = BacktestRunner(lambda window, steps: [])
        assert registry.start("k", replacement)
        assert registry.get("k") is replacement


class TestRecords:
    """Hospital locations and clinical notes."""

    def test_hospitals(self, client, tmp_path):
        (tmp_path / "hospitals.csv").write_text(
            "병원이름,X좌표,Y좌표,시/도,시/군/구,주소,전화번호,암호화요양기호,hpid\n"
            "서울병원,126.97,37.56,서울특별시,중구,서울 중구 1,,,A1100001\n"
            "좌표없음병원,,,서울특별시,중구,서울 중구 2,,,\n",
            encoding="utf-8",
        )
        resp = client.get("/api/hospitals")
        assert resp.status_code == 200
        body = resp.json()
        assert [h["병원이름"] for h in body] == ["서울병원"]
        assert body[0]["X좌표"] == 126.97
        assert body[0]["hpid"] == "A1100001"

    def test_hospitals_missing_file(self, client):
        assert client.get("/api/hospitals").status_code == 404

    def test_notes(self, client, tmp_path):
        (tmp_path / "notes.csv").write_text(
            "subject_id,hadm_id,charttime,clinical_note\n"
            "10,100,2150-01-01 08:00,Fever\n"
            "10,100,2150-01-01 09:00,Fever\n"
            "10,100,2150-01-01 10:00,Cough\n",
            encoding="utf-8",
        )
        resp = client.get("/api/patient/notes", params={"subject_id": "10", "hadm_id": "100", "limit": 500})
        assert resp.status_code == 200
        body = resp.json()
        assert body["subject_id"] == "10"
        assert body["hadm_id"] == "100"
        assert [n["clinical_note"] for n in body["items"]] == ["Fever", "Cough"]

    def test_notes_limit(self, client, tmp_path):
        rows = "".join(f"10,100,,note {i}\n" for i in range(250))
        (tmp_path / "notes.csv").write_text("subject_id,hadm_id,charttime,clinical_note\n" + rows, encoding="utf-8")
        params = {"subject_id": "10", "hadm_id": "100"}
        assert len(client.get("/api/patient/notes", params=params).json()["items"]) == 50
        params["limit"] = 1000
        assert len(client.get("/api/patient/notes", params=params).json()["items"]) == 200

    def test_notes_require_ids(self, client):
        assert client.get("/api/patient/notes", params={"subject_id": "10"}).status_code == 400

    def test_notes_missing_file(self, client):
        resp = client.get("/api/patient/notes", params={"subject_id": "10", "hadm_id": "100"})
        assert resp.status_code == 500
