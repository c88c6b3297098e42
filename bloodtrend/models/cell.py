from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from numbers import Real
from typing import Any

"""Cell value variant for decoded spreadsheet grids.

A decoded workbook yields a mix of str / int / float / datetime / NaN values.
Instead of duck-typing those at every call site, each raw value is wrapped once
into a ``Cell`` tagged with a ``CellKind``. Consumers then apply their own
coercion rule:

- date header parsing reads DATE / NUMBER (date serial) / TEXT
- observation parsing reads NUMBER / TEXT (leading number) only
"""

__all__ = [
    "CellKind",
    "Cell",
    "EMPTY_CELL",
]

# 先頭の数値部分だけを読む (後続の "H" や "*" などのフラグは無視)
_LEADING_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class CellKind(Enum):
    """Kind tag for a spreadsheet cell."""
    EMPTY = "empty"
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"


@dataclass(frozen=True)
class Cell:
    kind: CellKind
    value: str | float | datetime | None = None

    @staticmethod
    def from_raw(raw: Any) -> Cell:
        """Classify a raw decoded value.

        pandas returns NaN / NaT for blank cells and ``Timestamp`` for date
        formatted cells; both are folded into the plain Python variants here.
        """
        if raw is None:
            return EMPTY_CELL
        # bool は int のサブクラスなので NUMBER 判定より先に処理
        if isinstance(raw, bool):
            return Cell(CellKind.TEXT, str(raw))
        if isinstance(raw, datetime):
            # pd.NaT は datetime のサブクラス
            if raw != raw:
                return EMPTY_CELL
            if hasattr(raw, "to_pydatetime"):
                raw = raw.to_pydatetime()
            return Cell(CellKind.DATE, raw)
        if isinstance(raw, date):
            return Cell(CellKind.DATE, datetime(raw.year, raw.month, raw.day))
        if isinstance(raw, Real):
            number = float(raw)
            if math.isnan(number):
                return EMPTY_CELL
            return Cell(CellKind.NUMBER, number)
        if isinstance(raw, str):
            stripped = raw.strip()
            if stripped == "":
                return EMPTY_CELL
            return Cell(CellKind.TEXT, stripped)
        text = str(raw).strip()
        return Cell(CellKind.TEXT, text) if text else EMPTY_CELL

    @property
    def is_empty(self) -> bool:
        return self.kind is CellKind.EMPTY

    def as_text(self) -> str:
        """Text rendering used for parameter names and units ('' for EMPTY)."""
        if self.kind is CellKind.EMPTY:
            return ""
        if self.kind is CellKind.NUMBER:
            number = float(self.value)  # type: ignore[arg-type]
            if number.is_integer():
                return str(int(number))
            return str(number)
        if self.kind is CellKind.DATE:
            return self.value.isoformat()  # type: ignore[union-attr]
        return str(self.value)

    def as_number(self) -> float | None:
        """Best-effort numeric coercion for observation cells.

        NUMBER passes through. TEXT yields its leading number, so flagged
        results such as ``"5.4 H"`` or ``"6.1*"`` keep their reading. Anything
        that is not a finite number (inf, nan, dates, text without a leading
        number) yields None.
        """
        if self.kind is CellKind.NUMBER:
            number = float(self.value)  # type: ignore[arg-type]
        elif self.kind is CellKind.TEXT:
            m = _LEADING_NUMBER.match(str(self.value))
            if m is None:
                return None
            number = float(m.group(0))
        else:
            return None
        if not math.isfinite(number):
            return None
        return number


EMPTY_CELL = Cell(CellKind.EMPTY)
