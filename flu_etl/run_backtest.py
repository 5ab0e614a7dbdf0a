#!/usr/bin/env python3
"""Command-line backtest of the prediction model on the ILI weekly series.

Writes two CSVs and stores the result in the backtest cache:
1) Per-horizon metrics (count, MAE, RMSE, MAPE)
2) Actual vs predicted series per week

Default output:
  logs/backtests/
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd

from .backtest import DEFAULT_STEPS, DEFAULT_WINDOW_SIZE, BacktestRunner
from .cache import BacktestStore, JsonFileCache
from .dataset_metadata import normalize_dsid
from .etl_client import ETL_API_BASE_URL, EtlApiClient
from .etl_store import EtlPageStore
from .models import BacktestResult
from .prediction_client import PREDICTION_API_URL, PredictionClient
from .seasons import season_key
from .series import DEFAULT_DSID, load_influenza_data


def metrics_frame(result: BacktestResult) -> pd.DataFrame:
    rows = []
    for h, horizon in sorted(result.horizons.items()):
        rows.append({"dsid": result.dsid, "season": result.season, "horizon": h, **horizon.metrics.to_dict()})
    return pd.DataFrame(rows)


def series_frame(result: BacktestResult) -> pd.DataFrame:
    data = {"week": result.weeks, "actual": result.values}
    for h, horizon in sorted(result.horizons.items()):
        data[f"pred_h{h}"] = horizon.predicted
    return pd.DataFrame(data)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rolling-window backtest for the influenza prediction model")
    parser.add_argument("--season", required=True, help='Season key, e.g. "24/25"')
    parser.add_argument("--dsid", default=DEFAULT_DSID, help="Dataset id (default: %(default)s)")
    parser.add_argument("--week", help="Last week to include (default: whole season)")
    parser.add_argument("--windowSize", type=int, default=DEFAULT_WINDOW_SIZE, help="History window length")
    parser.add_argument("--steps", type=int, default=DEFAULT_STEPS, help="Predicted steps per window")
    parser.add_argument("--csvDir", help="Directory with flu-<dsid>-<year>.csv snapshots")
    parser.add_argument(
        "--etlDataDir",
        help="Read API data from local ds_XXXX_page_N.json files instead of the ETL API",
    )
    parser.add_argument("--etlBaseUrl", default=ETL_API_BASE_URL, help="ETL data API base URL")
    parser.add_argument("--skipApi", action="store_true", help="Use the CSV history only")
    parser.add_argument("--predictionUrl", default=PREDICTION_API_URL, help="Prediction endpoint URL")
    parser.add_argument("--cacheDir", help="Backtest cache directory")
    parser.add_argument("--outputDir", default="logs/backtests", help="Directory for CSV outputs")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    # Same cache key as the API: "ds_0101", "24/25"
    dsid = normalize_dsid(args.dsid)
    season = season_key(args.season.strip())
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if args.skipApi:
        fetch_range = None
    elif args.etlDataDir:
        fetch_range = EtlPageStore(Path(args.etlDataDir)).by_date_range
    else:
        fetch_range = EtlApiClient(args.etlBaseUrl).get_by_date_range

    print(f"[backtest] Loading series for {dsid} season {season}...")
    data = load_influenza_data(
        season=season,
        week=args.week,
        dsid=dsid,
        csv_dir=Path(args.csvDir) if args.csvDir else None,
        fetch_range=fetch_range,
    )
    if data.error:
        raise SystemExit(f"[backtest] {data.error}")
    ili = data.indicators["ili"]
    print(f"[backtest] {len(ili['weeks'])} week(s) loaded ({data.csv_count} CSV, {data.api_count} API record(s))")

    store = BacktestStore(JsonFileCache(Path(args.cacheDir)) if args.cacheDir else None)

    def _progress(current: int, total: int) -> None:
        if current == total or current % 10 == 0:
            print(f"[backtest] {current}/{total}")

    runner = BacktestRunner(PredictionClient(args.predictionUrl), store=store, on_progress=_progress)
    result = runner.run(
        season=season,
        dsid=dsid,
        weeks=ili["weeks"],
        values=ili["values"],
        window_size=args.windowSize,
        steps=args.steps,
    )
    if result is None:
        raise SystemExit(f"[backtest] Failed: {runner.error}")

    out_dir = Path(args.outputDir)
    out_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    metrics_path = out_dir / f"backtest_metrics_{stamp}.csv"
    series_path = out_dir / f"backtest_series_{stamp}.csv"
    metrics_df = metrics_frame(result)
    metrics_df.to_csv(metrics_path, index=False)
    series_frame(result).to_csv(series_path, index=False)

    print(f"[backtest] Wrote metrics CSV: {metrics_path}")
    print(f"[backtest] Wrote series CSV: {series_path}")
    print(f"[backtest] Windows: {result.meta.success_count} ok, {result.meta.fail_count} failed")
    print(metrics_df.to_string(index=False))


if __name__ == "__main__":
    main()
