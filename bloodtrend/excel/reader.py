from __future__ import annotations

import codecs
import csv
import io
from dataclasses import dataclass
from typing import Any, Literal

import pandas as pd
from charset_normalizer import from_bytes

from ..models.cell import EMPTY_CELL, Cell

"""Spreadsheet decoding collaborator.

Turns the raw bytes of an uploaded blood-test export into a RawSheet: a grid
of typed Cells addressed by (row, column), read without any header
interpretation (row 0 stays the header row).

Supported layouts:
- OOXML workbook (.xlsx) via pandas + openpyxl
- legacy binary workbook (.xls) via pandas + xlrd
- delimited text (.csv; ',' ';' TAB '|' sniffed) via pandas' python engine

Date formatted workbook cells come back as native datetimes, so the
normalizer only has to deal with serial numbers and text in the header row.
"""

__all__ = [
    "SpreadsheetDecodeError",
    "RawSheet",
    "SpreadsheetFormat",
    "detect_format",
    "read_spreadsheet_bytes",
]

SpreadsheetFormat = Literal["xlsx", "xls", "csv"]

_XLSX_MAGIC = b"PK\x03\x04"
_XLS_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_ENGINES = {"xlsx": "openpyxl", "xls": "xlrd"}
_CSV_DELIMITERS = ",;\t|"
_SNIFF_SAMPLE = 4096


class SpreadsheetDecodeError(Exception):
    """Raised when a buffer cannot be decoded as a spreadsheet."""


@dataclass(frozen=True)
class RawSheet:
    sheet_name: str
    rows: tuple[tuple[Cell, ...], ...]

    @property
    def n_rows(self) -> int:
        return len(self.rows)

    @property
    def header(self) -> tuple[Cell, ...]:
        return self.rows[0] if self.rows else ()

    def cell(self, row: int, column: int) -> Cell:
        """Cell at (row, column); out of range positions read as EMPTY."""
        if row < 0 or row >= len(self.rows):
            return EMPTY_CELL
        cells = self.rows[row]
        if column < 0 or column >= len(cells):
            return EMPTY_CELL
        return cells[column]

    @staticmethod
    def from_frame(df: pd.DataFrame, sheet_name: str) -> RawSheet:
        rows = tuple(
            tuple(Cell.from_raw(v) for v in raw)
            for raw in df.astype(object).itertuples(index=False, name=None)
        )
        return RawSheet(sheet_name=sheet_name, rows=rows)


def detect_format(buffer: bytes) -> SpreadsheetFormat:
    """Guess the container format from the leading magic bytes."""
    if buffer.startswith(_XLSX_MAGIC):
        return "xlsx"
    if buffer.startswith(_XLS_MAGIC):
        return "xls"
    return "csv"


def _na_options(keep_na_strings: list[str] | None) -> dict[str, Any]:
    # pandas 既定の NA 文字列から keep_na_strings を除外
    if not keep_na_strings:
        return {"keep_default_na": True, "na_values": None}
    import pandas._libs.parsers as parsers

    custom_na = parsers.STR_NA_VALUES.copy() - set(keep_na_strings)
    return {"keep_default_na": False, "na_values": list(custom_na)}


def _decode_text(buffer: bytes) -> str:
    """Decode a delimited text export.

    BOM-marked UTF-16 (Excel "Unicode Text") first, then UTF-8, then
    charset-normalizer's best guess. A result still holding NUL characters
    means the buffer is binary, not text.
    """
    if buffer.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        try:
            text = buffer.decode("utf-16")
        except UnicodeDecodeError as e:
            raise SpreadsheetDecodeError(f"invalid UTF-16 text: {e}") from e
    else:
        try:
            text = buffer.decode("utf-8-sig")
        except UnicodeDecodeError:
            text = None
        if text is None or "\x00" in text:
            # BOM 無し UTF-16 なども charset-normalizer に判定させる
            match = from_bytes(buffer).best()
            if match is None:
                raise SpreadsheetDecodeError("could not detect text encoding")
            text = str(match)
    if "\x00" in text:
        raise SpreadsheetDecodeError("binary content is not a delimited text sheet")
    return text


def _sniff_delimiter(text: str) -> str:
    try:
        return csv.Sniffer().sniff(text[:_SNIFF_SAMPLE], delimiters=_CSV_DELIMITERS).delimiter
    except csv.Error:
        return ","  # default


def _read_delimited(buffer: bytes, keep_na_strings: list[str] | None) -> pd.DataFrame:
    text = _decode_text(buffer)
    if not text.strip():
        raise SpreadsheetDecodeError("delimited text is empty")
    delimiter = _sniff_delimiter(text)
    # 行ごとに列数が異なる export があるため最大列数を先に確定
    width = max((len(r) for r in csv.reader(io.StringIO(text), delimiter=delimiter)), default=0)
    if width == 0:
        raise SpreadsheetDecodeError("delimited text has no columns")
    return pd.read_csv(
        io.StringIO(text),
        sep=delimiter,
        header=None,
        names=list(range(width)),
        dtype=object,
        engine="python",
        skip_blank_lines=False,
        **_na_options(keep_na_strings),
    )


def read_spreadsheet_bytes(
    buffer: bytes,
    sheet: str | int = 0,
    keep_na_strings: list[str] | None = None,
) -> RawSheet:
    """Decode ``buffer`` into a RawSheet.

    Parameters
    ----------
    buffer: raw file content (xlsx / xls / delimited text)
    sheet: worksheet name or 0-based index (ignored for delimited text)
    keep_na_strings: strings pandas must keep as text instead of NaN

    Raises
    ------
    SpreadsheetDecodeError: the buffer is empty or not a readable spreadsheet
    """
    if not buffer:
        raise SpreadsheetDecodeError("empty buffer")
    fmt = detect_format(buffer)
    try:
        if fmt == "csv":
            df = _read_delimited(buffer, keep_na_strings)
            sheet_name = "csv"
        else:
            df = pd.read_excel(
                io.BytesIO(buffer),
                sheet_name=sheet,
                header=None,
                engine=_ENGINES[fmt],
                **_na_options(keep_na_strings),
            )
            sheet_name = str(sheet)
    except (SpreadsheetDecodeError, ImportError):
        raise
    except Exception as e:
        raise SpreadsheetDecodeError(f"cannot decode {fmt} buffer: {e}") from e
    return RawSheet.from_frame(df, sheet_name)
