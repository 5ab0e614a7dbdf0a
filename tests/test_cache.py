"""Tests for the TTL cache, the JSON-file cache and the backtest store."""

from flu_etl.cache import BacktestStore, JsonFileCache, TtlCache, backtest_cache_key
from flu_etl.models import BacktestMeta, BacktestResult, HorizonResult, Metrics


def _result():
    return BacktestResult(
        season="24/25",
        dsid="ds_0101",
        window_size=2,
        steps=2,
        weeks=["36주", "37주", "38주", "39주"],
        values=[1.0, 2.0, None, 4.0],
        horizons={
            1: HorizonResult(predicted=[None, None, 3.0, 4.5], metrics=Metrics(count=1, mae=0.5, rmse=0.5, mape=12.5)),
            2: HorizonResult(predicted=[None, None, None, 4.0], metrics=Metrics(count=1, mae=0.0, rmse=0.0, mape=0.0)),
        },
        meta=BacktestMeta(success_count=1, fail_count=1, created_at="2025-12-01T00:00:00+00:00"),
    )


class TestTtlCache:
    """In-memory cache."""

    def test_put_get(self):
        cache = TtlCache()
        cache.put("k", {"a": 1})
        assert cache.get("k").value == {"a": 1}
        assert cache.get("missing") is None

    def test_expired_entry(self):
        cache = TtlCache()
        cache.put("k", 1, ttl=0)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_default_ttl(self):
        cache = TtlCache(default_ttl=0)
        cache.put("k", 1)
        assert cache.get("k") is None
        cache.put("k", 1, ttl=60)
        assert cache.get("k").value == 1

    def test_delete_and_clear(self):
        cache = TtlCache()
        cache.put("a", 1)
        cache.put("b", 2)
        cache.delete("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0


class TestJsonFileCache:
    """Persistent cache, one file per key."""

    def test_round_trip(self, tmp_path):
        cache = JsonFileCache(tmp_path)
        cache.put("pred_backtest:v1:ds_0101:24/25:w12:s3", {"x": [1, None, "주"]})
        entry = JsonFileCache(tmp_path).get("pred_backtest:v1:ds_0101:24/25:w12:s3")
        assert entry.value == {"x": [1, None, "주"]}
        assert entry.expires_at is None

    def test_missing_and_expired(self, tmp_path):
        cache = JsonFileCache(tmp_path)
        assert cache.get("nope") is None
        cache.put("old", 1, ttl=0)
        assert cache.get("old") is None

    def test_corrupt_file_ignored(self, tmp_path):
        cache = JsonFileCache(tmp_path)
        cache.put("k", 1)
        cache._path("k").write_text("{broken", encoding="utf-8")
        assert cache.get("k") is None

    def test_non_object_file_ignored(self, tmp_path):
        store = BacktestStore(JsonFileCache(tmp_path))
        key = backtest_cache_key("ds_0101", "24/25", 12, 3)
        for body in ("[]", "null", "\"text\"", "3"):
            store.cache._path(key).write_text(body, encoding="utf-8")
            assert store.cache.get(key) is None
            assert store.load("ds_0101", "24/25", 12, 3) is None

    def test_delete(self, tmp_path):
        cache = JsonFileCache(tmp_path)
        cache.put("k", 1)
        cache.delete("k")
        assert cache.get("k") is None


class TestBacktestStore:
    """Backtest results survive a save/load cycle."""

    def test_round_trip_file(self, tmp_path):
        original = _result()
        key = BacktestStore(JsonFileCache(tmp_path)).save(original)
        assert key == backtest_cache_key("ds_0101", "24/25", 2, 2)

        loaded = BacktestStore(JsonFileCache(tmp_path)).load("ds_0101", "24/25", 2, 2)
        assert loaded.weeks == original.weeks
        assert loaded.values == original.values
        assert loaded.horizons[1].metrics == original.horizons[1].metrics
        assert loaded.horizons[2].predicted == original.horizons[2].predicted
        assert loaded.meta == original.meta

    def test_other_parameters_miss(self, tmp_path):
        store = BacktestStore(JsonFileCache(tmp_path))
        store.save(_result())
        assert store.load("ds_0101", "24/25", 12, 3) is None
        assert store.load("ds_0101", "23/24", 2, 2) is None

    def test_stored_shape(self):
        cache = TtlCache()
        BacktestStore(cache).save(_result())
        value = cache.get(backtest_cache_key("ds_0101", "24/25", 2, 2)).value
        assert set(value) == {"result"}
        assert value["result"]["windowSize"] == 2
        assert set(value["result"]["horizons"]) == {"1", "2"}
        assert value["result"]["meta"]["successCount"] == 1
