from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .anomaly_record import AnomalyRecord

"""Time series domain models for normalized blood-test histories.

These are the value objects produced by ``bloodtrend.services.normalizer``:

- DateColumn: a header column that parsed as an observation date
- Observation: one numeric reading of a parameter at a date
- ParameterSeries: all readings of one parameter, chronologically ordered
- DataPoint: wide-format row (one date, many parameters) for chart consumers
- Metric: latest value / trend summary for card consumers
- NormalizedHistory: the full output of one normalize() call
"""

__all__ = [
    "NOT_AVAILABLE",
    "OTHER_CATEGORY",
    "DateColumn",
    "Observation",
    "ParameterSeries",
    "DataPoint",
    "Metric",
    "Status",
    "ValueStatus",
    "NormalizedHistory",
]

NOT_AVAILABLE = "N/A"
OTHER_CATEGORY = "Other"


@dataclass(frozen=True, order=True)
class DateColumn:
    """Header column holding one observation date.

    Ordering compares ``date`` first so a plain ``sorted()`` yields
    chronological order (column_index breaks ties deterministically).
    ``fallback_columns`` are later columns repeating the same date; they
    only fill cells that are empty in ``column_index``.
    """
    date: datetime
    column_index: int
    fallback_columns: tuple[int, ...] = ()

    @property
    def source_columns(self) -> tuple[int, ...]:
        return (self.column_index, *self.fallback_columns)


@dataclass(frozen=True)
class Observation:
    date: datetime
    value: float


@dataclass(frozen=True)
class ParameterSeries:
    """Readings of one parameter. ``observations`` is sorted by date."""
    name: str
    unit: str
    category: str
    observations: tuple[Observation, ...] = ()

    @property
    def latest(self) -> Observation | None:
        return self.observations[-1] if self.observations else None

    @property
    def previous(self) -> Observation | None:
        return self.observations[-2] if len(self.observations) > 1 else None

    def value_at(self, when: datetime) -> float | None:
        for obs in self.observations:
            if obs.date == when:
                return obs.value
        return None


@dataclass(frozen=True)
class DataPoint:
    """Wide-format row: parameters without a reading on ``date`` are absent keys."""
    date: datetime
    values: dict[str, float] = field(default_factory=dict)

    def __getitem__(self, name: str) -> float:
        return self.values[name]

    def __contains__(self, name: object) -> bool:
        return name in self.values


@dataclass(frozen=True)
class Metric:
    name: str
    value: str  # 最新値 (小数1桁) または "N/A"
    unit: str
    trend: float
    category: str


class Status(Enum):
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"


@dataclass(frozen=True)
class ValueStatus:
    """Reference-range verdict for a reading.

    Declared for presentation consumers; the normalizer never assigns one.
    """
    status: Status
    implications: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class NormalizedHistory:
    """Output of a single normalize() call."""
    data_points: tuple[DataPoint, ...]
    metrics: tuple[Metric, ...]
    parameter_names: tuple[str, ...]
    series: tuple[ParameterSeries, ...] = ()
    date_columns: tuple[DateColumn, ...] = ()
    anomalies: tuple[AnomalyRecord, ...] = ()

    @property
    def observation_count(self) -> int:
        return sum(len(s.observations) for s in self.series)
