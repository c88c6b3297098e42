from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from ..models.history import NormalizedHistory

"""JSON rendering of a NormalizedHistory for presentation consumers.

data_points are flattened to the wide format charts expect::

    {"date": "2019-05-01T00:00:00", "Glucose": 5.4, "HbA1c": 6.1}

Parameters without a reading on that date are simply missing from the row.
"""

__all__ = [
    "history_to_dict",
    "history_to_json",
]


def _iso(value: datetime) -> str:
    return value.isoformat()


def history_to_dict(history: NormalizedHistory) -> dict[str, Any]:
    return {
        "data_points": [
            {"date": _iso(p.date), **p.values} for p in history.data_points
        ],
        "metrics": [
            {
                "name": m.name,
                "value": m.value,
                "unit": m.unit,
                "trend": m.trend,
                "category": m.category,
            }
            for m in history.metrics
        ],
        "parameter_names": list(history.parameter_names),
        "anomalies": [a.to_dict() for a in history.anomalies],
    }


def history_to_json(history: NormalizedHistory) -> str:
    return json.dumps(history_to_dict(history), ensure_ascii=False, indent=2)
