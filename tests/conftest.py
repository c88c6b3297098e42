# Shared pytest fixtures
from __future__ import annotations

import io
import tempfile
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest

from bloodtrend.logging.init import reset_logging


@pytest.fixture(autouse=True)
def _fresh_logging():
    # StreamHandler は生成時の sys.stdout を掴むので capsys ごとに再生成させる
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("BLOODTREND_CONFIG", raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
output_directory: ./output
dayfirst: true
categories:
  Diabetes: [Glucose, HbA1c]
  Lipid Profile: [Total Cholesterol, HDL, LDL]
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "bloodtrend.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def history_rows() -> list[list[object]]:
    """A small but messy history: columns out of order, category rows, gaps."""
    return [
        ["Parameter", "Unit", datetime(2021, 3, 1), datetime(2019, 6, 15), datetime(2020, 1, 10)],
        ["Diabetes (Glycemic)", None, None, None, None],
        ["Glucose", "mmol/L", 5.9, 5.1, 5.4],
        ["HbA1c", "%", 6.0, None, 5.8],
        ["Lipid Panel (Fasting)", None, None, None, None],
        ["HDL", "mmol/L", "1.4", "n.d.", 1.2],
        ["Ferritin", "ng/mL", None, None, None],
    ]


@pytest.fixture()
def xlsx_bytes() -> Callable[[list[list[object]]], bytes]:
    """Return a builder turning rows into an in-memory .xlsx workbook."""
    def _build(rows: list[list[object]], sheet_name: str = "History") -> bytes:
        buf = io.BytesIO()
        with pd.ExcelWriter(buf, engine="openpyxl") as writer:
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
        return buf.getvalue()
    return _build


@pytest.fixture()
def write_history_file(temp_workdir: Path, xlsx_bytes, history_rows) -> Callable[..., Path]:
    """Write a history workbook into ./data and return its path."""
    def _write(name: str = "history.xlsx", rows: list[list[object]] | None = None) -> Path:
        path = temp_workdir / "data" / name
        path.write_bytes(xlsx_bytes(rows if rows is not None else history_rows))
        return path
    return _write
