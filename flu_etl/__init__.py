"""Influenza surveillance data pipeline.

Loads weekly indicator snapshots (CSV history + ETL API), normalizes the
locale-keyed rows, aggregates them into weekly series and season buckets,
and evaluates the remote prediction model with a rolling-window backtest.
"""
