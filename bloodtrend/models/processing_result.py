from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

"""Processing result models for batch normalization runs.

ProcessingResult aggregates one ``process_all()`` run over a source directory;
FileStat carries the per-file numbers used by the SUMMARY line and the
``--inspect-data`` output.
"""


@dataclass(frozen=True)
class FileStat:
    """Per-file processing statistics."""
    file_name: str
    status: str  # success/failed
    parameters: int = 0  # 検出パラメータ数
    observations: int = 0  # 数値セル数 (sparse)
    dates: int = 0  # 有効日付列数
    anomalies: int = 0  # 回復済み異常数
    elapsed_seconds: float = 0.0
    output_path: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results for a batch run (feeds the SUMMARY line)."""
    success_files: int
    failed_files: int
    total_parameters: int
    total_observations: int
    total_anomalies: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    file_stats: list[FileStat] | None = None
