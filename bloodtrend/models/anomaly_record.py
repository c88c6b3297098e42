from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""AnomalyRecord model for recoverable normalization issues.

Anything the normalizer recovers from instead of raising (a bad date header, a
non-numeric cell, a duplicate parameter row, ...) is described by one
AnomalyRecord. Records travel on the NormalizedHistory result and are written
as JSON Lines by the anomaly log buffer.

row / column use -1 when the issue is not tied to a specific row or column
(e.g. a file that could not be decoded at all).
"""

__all__ = [
    "AnomalyRecord",
    "NO_POSITION",
]

NO_POSITION = -1


@dataclass(frozen=True)
class AnomalyRecord:
    """Structured anomaly record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Source file name (or '<buffer>' for in-memory input)
        row: 0-based sheet row index, -1 when not row-specific
        column: 0-based sheet column index, -1 when not column-specific
        issue: Issue classification in UPPER_SNAKE_CASE format
        raw_value: Text rendering of the offending cell ('' if none)
        message: Human readable description
    """
    timestamp: str  # ISO8601 UTC
    file: str
    row: int
    column: int
    issue: str  # UPPER_SNAKE
    raw_value: str
    message: str

    @staticmethod
    def create(
        file: str,
        row: int,
        column: int,
        issue: str,
        raw_value: str,
        message: str,
    ) -> AnomalyRecord:
        """Create a new AnomalyRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return AnomalyRecord(
            timestamp=ts,
            file=file,
            row=row,
            column=column,
            issue=issue,
            raw_value=raw_value,
            message=message,
        )

    def to_dict(self) -> dict[str, object]:
        return asdict(self)

    def to_json_line(self) -> str:
        """Serialize to a single JSON line (no extra keys)."""
        return json.dumps(asdict(self), ensure_ascii=False)
