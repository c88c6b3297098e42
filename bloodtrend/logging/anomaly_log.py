from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..models.anomaly_record import AnomalyRecord

"""Anomaly log buffering.

Recoverable normalization issues are collected per run and written once as
JSON Lines to ``logs/anomalies-YYYYMMDD-HHMMSS.log`` (UTC stamp). The file
path is fixed on first access; repeated flushes append to the same file.
"""

__all__ = [
    "AnomalyRecord",
    "AnomalyLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class AnomalyLogBuffer:
    """In-memory buffer for anomaly records. Flush writes JSON Lines.

    Serial use only (one batch run at a time).
    """
    def __init__(self, logs_dir: Path = LOGS_DIR) -> None:
        self._records: list[AnomalyRecord] = []
        self._logs_dir = logs_dir
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"anomalies-{stamp}.log"
        return self._file_path

    def append(self, record: AnomalyRecord) -> None:
        self._records.append(record)

    def extend(self, records: tuple[AnomalyRecord, ...] | list[AnomalyRecord]) -> None:
        self._records.extend(records)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records to the log file and clear the buffer.

        Returns the log path, or None when nothing was ever buffered (no file
        is created for clean runs).
        """
        if not self._records:
            return self._file_path
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
