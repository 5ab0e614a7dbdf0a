"""Influenza Dashboard API.

FastAPI-based backend for the surveillance dashboard, providing:
- Weekly influenza series (CSV history + ETL data API)
- Local ETL data API over page-file dumps
- Prediction model proxy and rolling backtests
- Emergency bed / medical equipment lookups
"""
