"""Core dataclasses for the surveillance pipeline.

These classes are shared across loaders, the aggregator, the backtest runner
and the API so we have a typed contract for the data that moves between the
CSV snapshots, the ETL data API and the chart payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


# Common aliases
WeekLabel = str  # e.g. "36주"
SeasonLabel = str  # e.g. "24/25절기"
RawRow = Dict[str, Any]


@dataclass
class EtlRecord:
    """One collected ETL record. ``parsed_data`` holds the raw locale-keyed rows."""

    id: str
    dataset_id: str
    parsed_data: List[RawRow] = field(default_factory=list)
    collected_at: Optional[str] = None
    origin: Optional[str] = None


# -----------------------------------------------------------------------------
# Normalized rows (layout decided once at parse time)
# -----------------------------------------------------------------------------

@dataclass
class AgeColumnsRow:
    """Age group is the column name: {"65세 이상": "2.7", "0세": "3.4", ...}."""

    year: int
    week: WeekLabel
    values: Dict[str, float] = field(default_factory=dict)


@dataclass
class AgeFieldRow:
    """Age group is a field value next to a numeric field."""

    year: int
    week: WeekLabel
    age_group: str
    value: float


@dataclass
class SeasonFieldRow:
    """The age-group field carries a season label such as "24/25절기"."""

    year: int
    week: WeekLabel
    season: SeasonLabel
    value: float


NormalizedRow = Union[AgeColumnsRow, AgeFieldRow, SeasonFieldRow]


# -----------------------------------------------------------------------------
# Aggregated series
# -----------------------------------------------------------------------------

@dataclass
class WeeklySeries:
    weeks: List[WeekLabel] = field(default_factory=list)
    values: List[Optional[float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"weeks": list(self.weeks), "values": list(self.values)}


@dataclass
class SeasonBucket:
    season_label: SeasonLabel
    weeks: List[WeekLabel] = field(default_factory=list)
    values: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"seasonLabel": self.season_label, "weeks": list(self.weeks), "values": list(self.values)}


@dataclass
class AggregateResult:
    """Output of process_etl_data: per-age-group values aligned to ``weeks``."""

    weeks: List[WeekLabel]
    values: Dict[str, List[Optional[float]]] = field(default_factory=dict)
    seasons: Dict[SeasonLabel, SeasonBucket] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weeks": list(self.weeks),
            "values": {k: list(v) for k, v in self.values.items()},
            "seasons": {k: v.to_dict() for k, v in self.seasons.items()},
        }


# -----------------------------------------------------------------------------
# Backtest
# -----------------------------------------------------------------------------

@dataclass
class Metrics:
    count: int = 0
    mae: Optional[float] = None
    rmse: Optional[float] = None
    mape: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "mae": self.mae, "rmse": self.rmse, "mape": self.mape}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Metrics":
        return cls(
            count=int(data.get("count") or 0),
            mae=data.get("mae"),
            rmse=data.get("rmse"),
            mape=data.get("mape"),
        )


@dataclass
class HorizonResult:
    predicted: List[Optional[float]]
    metrics: Metrics

    def to_dict(self) -> Dict[str, Any]:
        return {"predicted": list(self.predicted), "metrics": self.metrics.to_dict()}


@dataclass
class BacktestMeta:
    success_count: int = 0
    fail_count: int = 0
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successCount": self.success_count,
            "failCount": self.fail_count,
            "createdAt": self.created_at,
        }


@dataclass
class BacktestResult:
    season: str
    dsid: str
    window_size: int
    steps: int
    weeks: List[WeekLabel]
    values: List[Optional[float]]
    horizons: Dict[int, HorizonResult] = field(default_factory=dict)
    meta: BacktestMeta = field(default_factory=BacktestMeta)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON shape the dashboard charts consume."""
        return {
            "season": self.season,
            "dsid": self.dsid,
            "windowSize": self.window_size,
            "steps": self.steps,
            "weeks": list(self.weeks),
            "values": list(self.values),
            "horizons": {str(h): r.to_dict() for h, r in sorted(self.horizons.items())},
            "meta": self.meta.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BacktestResult":
        horizons: Dict[int, HorizonResult] = {}
        for key, raw in (data.get("horizons") or {}).items():
            horizons[int(key)] = HorizonResult(
                predicted=list(raw.get("predicted") or []),
                metrics=Metrics.from_dict(raw.get("metrics") or {}),
            )
        meta = data.get("meta") or {}
        return cls(
            season=str(data.get("season") or ""),
            dsid=str(data.get("dsid") or ""),
            window_size=int(data["windowSize"]),
            steps=int(data["steps"]),
            weeks=list(data.get("weeks") or []),
            values=list(data.get("values") or []),
            horizons=horizons,
            meta=BacktestMeta(
                success_count=int(meta.get("successCount") or 0),
                fail_count=int(meta.get("failCount") or 0),
                created_at=meta.get("createdAt"),
            ),
        )


# -----------------------------------------------------------------------------
# Dashboard payload
# -----------------------------------------------------------------------------

@dataclass
class InfluenzaData:
    """Indicator series for the dashboard (``ili``, ``ari``, ...).

    ``error`` carries a user-facing message when defaults are shown because
    loading failed.
    """

    indicators: Dict[str, Dict[str, Any]]
    error: Optional[str] = None
    csv_count: int = 0
    api_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.indicators,
            "error": self.error,
            "meta": {"csvCount": self.csv_count, "apiCount": self.api_count},
        }
