"""Domain models for the blood-test history normalizer.

Cell variants for decoded sheets, time series value objects and the anomaly
record used for recoverable issues.
"""

from .anomaly_record import NO_POSITION, AnomalyRecord
from .cell import EMPTY_CELL, Cell, CellKind
from .history import (
    NOT_AVAILABLE,
    OTHER_CATEGORY,
    DataPoint,
    DateColumn,
    Metric,
    NormalizedHistory,
    Observation,
    ParameterSeries,
    Status,
    ValueStatus,
)
from .processing_result import FileStat, ProcessingResult

__all__ = [
    # Sheet cells
    "Cell",
    "CellKind",
    "EMPTY_CELL",
    # Time series
    "DateColumn",
    "Observation",
    "ParameterSeries",
    "DataPoint",
    "Metric",
    "NormalizedHistory",
    "Status",
    "ValueStatus",
    "NOT_AVAILABLE",
    "OTHER_CATEGORY",
    # Anomalies
    "AnomalyRecord",
    "NO_POSITION",
    # Batch results
    "FileStat",
    "ProcessingResult",
]
