from __future__ import annotations

import logging
import math
import re
from collections.abc import Collection, Mapping
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pandas as pd

from ..excel.reader import RawSheet, SpreadsheetDecodeError, read_spreadsheet_bytes
from ..models.anomaly_record import NO_POSITION, AnomalyRecord
from ..models.cell import EMPTY_CELL, Cell, CellKind
from ..models.history import (
    NOT_AVAILABLE,
    OTHER_CATEGORY,
    DataPoint,
    DateColumn,
    Metric,
    NormalizedHistory,
    Observation,
    ParameterSeries,
)

logger = logging.getLogger(__name__)

"""Blood-test history normalizer.

Turns a spreadsheet export (rows = parameters, columns = dated observations)
into per-parameter time series, a wide-format date table and trend metrics.

Sheet layout:
- row 0: header row. column 0 / 1 are labels, columns >= 2 hold dates
- rows >= 1: column 0 parameter name, column 1 unit, columns >= 2 readings

Pipeline:
1. discover_date_columns(): parse header cells into DateColumns, sorted by date
2. extract_series(): classify rows, resolve categories, collect readings
3. build_data_points(): re-join the sparse series onto the shared date axis
4. compute_metric(): latest value / trend per parameter

Only three conditions are fatal (MalformedInputError): undecodable buffer,
no usable date column, no parameter row. Everything else is recovered and
reported as AnomalyRecords on the result.
"""

__all__ = [
    "NormalizationError",
    "MalformedInputError",
    "AnomalyCollector",
    "FIRST_DATE_COLUMN",
    "parse_header_date",
    "repair_slash_date",
    "discover_date_columns",
    "resolve_category",
    "extract_series",
    "build_data_points",
    "compute_metric",
    "format_value",
    "normalize_sheet",
    "normalize",
]

NAME_COLUMN = 0
UNIT_COLUMN = 1
FIRST_DATE_COLUMN = 2
HEADER_REPEAT_TOKEN = "Unit"
CATEGORY_HEADER_MARKER = "("

# Spreadsheet date serial epoch (1900 date system incl. the 1900 leap-year bug)
SERIAL_EPOCH = datetime(1899, 12, 30)
MAX_SERIAL = 2958466  # 9999-12-31 の翌日

# day/month/year; a corrupted day may grow to 3 digits (4 digits lead = year first)
_SLASH_DATE = re.compile(r"^(\d{1,3})/(\d{1,2})/(\d{2,4})$")
_MAX_DAY = 31
# 2 桁年は固定ピボット (POSIX %y と同じ): 69 以上は 1900 年代
_TWO_DIGIT_YEAR_PIVOT = 69
# 5 桁の数字文字列は日付シリアル (4 桁以下は年として汎用パーサへ)
_SERIAL_TEXT = re.compile(r"^\d{5}(\.\d+)?$")


class NormalizationError(Exception):
    """Base exception for normalization errors."""


class MalformedInputError(NormalizationError):
    """The buffer is not a usable blood-test history sheet."""


class AnomalyCollector:
    """Logs recoverable issues and keeps them as AnomalyRecords."""

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        self.records: list[AnomalyRecord] = []

    def record(
        self,
        issue: str,
        message: str,
        *,
        row: int = NO_POSITION,
        column: int = NO_POSITION,
        raw_value: str = "",
        level: int = logging.WARNING,
    ) -> None:
        logger.log(level, f"{self.source_name}: {message}")
        self.records.append(
            AnomalyRecord.create(
                file=self.source_name,
                row=row,
                column=column,
                issue=issue,
                raw_value=raw_value,
                message=message,
            )
        )


# ---------------------------------------------------------------------------
# Date header parsing
# ---------------------------------------------------------------------------

def _from_serial(serial: float) -> datetime | None:
    if not math.isfinite(serial) or serial < 1 or serial >= MAX_SERIAL:
        return None
    return SERIAL_EPOCH + timedelta(days=serial)


def _has_corrupted_day(text: str) -> bool:
    m = _SLASH_DATE.match(text.strip())
    return m is not None and int(m.group(1)) > _MAX_DAY


def _expand_year(token: str) -> int | None:
    if len(token) == 4:
        return int(token)
    if len(token) == 2:
        yy = int(token)
        return 1900 + yy if yy >= _TWO_DIGIT_YEAR_PIVOT else 2000 + yy
    return None


def repair_slash_date(text: str) -> datetime | None:
    """Repair ``D/M/Y`` strings whose day field is impossible (> 31).

    The day is dropped and the first of the month is used instead, e.g.
    ``36/5/2019`` -> 2019-05-01 and ``123/5/19`` -> 2019-05-01. Two digit
    years below 69 are read as 20xx, the rest as 19xx. Returns None when the
    text is not such a string or the month/year are themselves invalid.
    """
    m = _SLASH_DATE.match(text.strip())
    if m is None or int(m.group(1)) <= _MAX_DAY:
        return None
    year = _expand_year(m.group(3))
    if year is None:
        return None
    try:
        return datetime(year, int(m.group(2)), 1)
    except ValueError:
        return None


def _parse_date_text(text: str, dayfirst: bool) -> datetime | None:
    # "today" / "now" などの相対キーワードは実行時刻になるので数字の無い文字列は拒否
    if not any(ch.isdigit() for ch in text):
        return None
    try:
        ts = pd.to_datetime(text, dayfirst=dayfirst and "/" in text)
    except (ValueError, OverflowError, TypeError):
        return None
    if pd.isna(ts):
        return None
    parsed = ts.to_pydatetime()
    if parsed.tzinfo is not None:
        # 日付軸はナイーブ UTC に揃える
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_header_date(cell: Cell, *, dayfirst: bool = True) -> tuple[datetime | None, bool]:
    """Parse a header cell into a date.

    Tried in order: native date / date serial (numbers and 5 digit text),
    corrupted-day repair, generic string parsing. A slash date with a day
    above 31 is either repaired or rejected, never parsed generically.
    Returns ``(date, repaired)``; date is None if every attempt failed.
    """
    if cell.kind is CellKind.DATE:
        return cell.value, False  # type: ignore[return-value]
    if cell.kind is CellKind.NUMBER:
        return _from_serial(float(cell.value)), False  # type: ignore[arg-type]
    if cell.kind is not CellKind.TEXT:
        return None, False
    text = str(cell.value)
    if _SERIAL_TEXT.match(text):
        serial = _from_serial(float(text))
        if serial is not None:
            return serial, False
    if _has_corrupted_day(text):
        repaired = repair_slash_date(text)
        return repaired, repaired is not None
    return _parse_date_text(text, dayfirst), False


def _last_non_empty(cells: tuple[Cell, ...]) -> int:
    for idx in range(len(cells) - 1, -1, -1):
        if not cells[idx].is_empty:
            return idx
    return -1


def discover_date_columns(
    sheet: RawSheet,
    *,
    dayfirst: bool = True,
    anomalies: AnomalyCollector | None = None,
) -> list[DateColumn]:
    """Return the header's date columns sorted chronologically.

    Blank header cells are skipped silently; unparsable dates are dropped
    with a warning. A repeated date becomes a fallback of its first column.
    Source column order is never trusted.
    """
    anomalies = anomalies or AnomalyCollector("<sheet>")
    header = sheet.header
    columns: dict[datetime, DateColumn] = {}
    for col in range(FIRST_DATE_COLUMN, _last_non_empty(header) + 1):
        cell = header[col]
        if cell.is_empty:
            continue
        raw_text = cell.as_text()
        parsed, repaired = parse_header_date(cell, dayfirst=dayfirst)
        if parsed is None:
            anomalies.record(
                "INVALID_DATE_HEADER",
                f"invalid date format in column {col}: {raw_text!r}",
                row=0, column=col, raw_value=raw_text,
            )
            continue
        if repaired:
            anomalies.record(
                "REPAIRED_DATE_HEADER",
                f"repaired date in column {col}: {raw_text!r} -> {parsed.date().isoformat()}",
                row=0, column=col, raw_value=raw_text,
            )
        first = columns.get(parsed)
        if first is not None:
            anomalies.record(
                "DUPLICATE_DATE_COLUMN",
                f"column {col} repeats the date of column {first.column_index}, "
                f"used only for its empty cells: {raw_text!r}",
                row=0, column=col, raw_value=raw_text,
            )
            columns[parsed] = replace(first, fallback_columns=(*first.fallback_columns, col))
            continue
        columns[parsed] = DateColumn(date=parsed, column_index=col)
    return sorted(columns.values())


# ---------------------------------------------------------------------------
# Row classification / series extraction
# ---------------------------------------------------------------------------

def resolve_category(name: str, category_table: Mapping[str, Collection[str]]) -> str | None:
    """First category (table order) listing ``name`` exactly, else None."""
    for category, names in category_table.items():
        if name in names:
            return category
    return None


def _first_filled(sheet: RawSheet, row: int, dc: DateColumn) -> tuple[int, Cell]:
    for column in dc.source_columns:
        cell = sheet.cell(row, column)
        if not cell.is_empty:
            return column, cell
    return dc.column_index, EMPTY_CELL


def _is_parameter_name(name: str) -> bool:
    return name != HEADER_REPEAT_TOKEN and CATEGORY_HEADER_MARKER not in name


class _SeriesAccumulator:
    """Collects readings of one parameter keyed by date (later rows win)."""

    def __init__(self, name: str, unit: str, category: str) -> None:
        self.name = name
        self.unit = unit
        self.category = category
        self.values: dict[datetime, float] = {}

    def build(self) -> ParameterSeries:
        observations = tuple(Observation(date=d, value=v) for d, v in sorted(self.values.items()))
        return ParameterSeries(
            name=self.name,
            unit=self.unit,
            category=self.category,
            observations=observations,
        )


def extract_series(
    sheet: RawSheet,
    date_columns: list[DateColumn],
    category_table: Mapping[str, Collection[str]],
    *,
    anomalies: AnomalyCollector | None = None,
) -> list[ParameterSeries]:
    """Collect one chronologically ordered series per parameter name.

    Rows without a name, repeated header rows ("Unit") and category header
    rows (name contains "(") are skipped. Repeated names merge into the
    first row's series.
    """
    anomalies = anomalies or AnomalyCollector("<sheet>")
    accumulators: dict[str, _SeriesAccumulator] = {}

    for row in range(1, sheet.n_rows):
        name_cell = sheet.cell(row, NAME_COLUMN)
        if name_cell.is_empty:
            continue
        name = name_cell.as_text()
        if not _is_parameter_name(name):
            logger.debug(f"{anomalies.source_name}: row {row} skipped (header/category): {name!r}")
            continue
        unit = sheet.cell(row, UNIT_COLUMN).as_text()

        acc = accumulators.get(name)
        if acc is None:
            category = resolve_category(name, category_table)
            if category is None:
                anomalies.record(
                    "UNKNOWN_CATEGORY",
                    f"no category for parameter {name!r}, using {OTHER_CATEGORY!r}",
                    row=row, column=NAME_COLUMN, raw_value=name, level=logging.DEBUG,
                )
                category = OTHER_CATEGORY
            acc = accumulators[name] = _SeriesAccumulator(name, unit, category)
        else:
            anomalies.record(
                "DUPLICATE_PARAMETER",
                f"parameter {name!r} repeated in row {row}, merging series",
                row=row, column=NAME_COLUMN, raw_value=name,
            )
            if unit:
                acc.unit = unit

        for dc in date_columns:
            column, cell = _first_filled(sheet, row, dc)
            if cell.is_empty:
                continue
            value = cell.as_number()
            if value is None:
                anomalies.record(
                    "NON_NUMERIC_CELL",
                    f"non-numeric value for {name!r} at row {row} column {column}",
                    row=row, column=column, raw_value=cell.as_text(), level=logging.DEBUG,
                )
                continue
            if dc.date in acc.values:
                anomalies.record(
                    "OVERWRITTEN_OBSERVATION",
                    f"{name!r} on {dc.date.date().isoformat()} overwritten by row {row}",
                    row=row, column=column, raw_value=cell.as_text(),
                )
            acc.values[dc.date] = value

    return [acc.build() for acc in accumulators.values()]


# ---------------------------------------------------------------------------
# Wide format / metrics
# ---------------------------------------------------------------------------

def build_data_points(
    date_columns: list[DateColumn], series: list[ParameterSeries]
) -> tuple[DataPoint, ...]:
    """One DataPoint per date column; parameters without a reading are absent."""
    by_date = {s.name: {o.date: o.value for o in s.observations} for s in series}
    points: list[DataPoint] = []
    for dc in date_columns:
        values: dict[str, float] = {}
        for s in series:
            value = by_date[s.name].get(dc.date)
            if value is not None:
                values[s.name] = value
        points.append(DataPoint(date=dc.date, values=values))
    return tuple(points)


def format_value(value: float) -> str:
    return f"{value:.1f}"


def compute_metric(series: ParameterSeries) -> Metric:
    latest = series.latest
    previous = series.previous
    if latest is not None and previous is not None:
        trend = latest.value - previous.value
    else:
        trend = 0.0
    return Metric(
        name=series.name,
        value=format_value(latest.value) if latest is not None else NOT_AVAILABLE,
        unit=series.unit,
        trend=trend,
        category=series.category,
    )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def normalize_sheet(
    sheet: RawSheet,
    category_table: Mapping[str, Collection[str]],
    *,
    source_name: str = "<buffer>",
    dayfirst: bool = True,
) -> NormalizedHistory:
    """Normalize an already decoded sheet. See ``normalize``."""
    if sheet.n_rows == 0:
        raise MalformedInputError(f"{source_name}: sheet is empty")

    anomalies = AnomalyCollector(source_name)
    date_columns = discover_date_columns(sheet, dayfirst=dayfirst, anomalies=anomalies)
    if not date_columns:
        raise MalformedInputError(f"{source_name}: no valid date columns in header row")

    series = extract_series(sheet, date_columns, category_table, anomalies=anomalies)
    if not series:
        raise MalformedInputError(f"{source_name}: no valid parameter rows")

    history = NormalizedHistory(
        data_points=build_data_points(date_columns, series),
        metrics=tuple(compute_metric(s) for s in series),
        parameter_names=tuple(s.name for s in series),
        series=tuple(series),
        date_columns=tuple(date_columns),
        anomalies=tuple(anomalies.records),
    )
    logger.debug(
        f"{source_name}: dates={len(date_columns)} parameters={len(series)} "
        f"observations={history.observation_count} anomalies={len(history.anomalies)}"
    )
    return history


def normalize(
    buffer: bytes,
    category_table: Mapping[str, Collection[str]],
    *,
    source_name: str = "<buffer>",
    sheet: str | int = 0,
    dayfirst: bool = True,
    keep_na_strings: list[str] | None = None,
) -> NormalizedHistory:
    """Normalize a blood-test history spreadsheet.

    Args:
        buffer: Raw xlsx / xls / delimited text content
        category_table: Category name -> parameter names (exact match)
        source_name: Label used in log lines and anomaly records
        sheet: Worksheet name or index for workbook formats
        dayfirst: Read ambiguous slash dates as D/M/Y
        keep_na_strings: Strings pandas must keep as text instead of NaN

    Returns:
        NormalizedHistory with data_points (ascending by date), metrics and
        parameter_names (both in first-encounter order)

    Raises:
        MalformedInputError: undecodable buffer, no valid date column or no
            valid parameter row
    """
    try:
        raw = read_spreadsheet_bytes(buffer, sheet=sheet, keep_na_strings=keep_na_strings)
    except SpreadsheetDecodeError as e:
        raise MalformedInputError(f"{source_name}: {e}") from e
    return normalize_sheet(raw, category_table, source_name=source_name, dayfirst=dayfirst)
