from __future__ import annotations

from datetime import datetime

import pytest

from bloodtrend.config.categories import DEFAULT_PARAMETER_CATEGORIES, freeze_category_table
from bloodtrend.excel.reader import RawSheet
from bloodtrend.models.cell import Cell
from bloodtrend.models.history import NOT_AVAILABLE, OTHER_CATEGORY
from bloodtrend.services.normalizer import (
    MalformedInputError,
    NormalizationError,
    normalize,
    normalize_sheet,
)

CATEGORIES = freeze_category_table({
    "Diabetes": ["Glucose", "HbA1c"],
    "Lipid Profile": ["HDL", "LDL"],
})

D1 = datetime(2019, 6, 15)
D2 = datetime(2020, 1, 10)
D3 = datetime(2021, 3, 1)


def _sheet(rows: list[list[object]]) -> RawSheet:
    return RawSheet(
        sheet_name="test",
        rows=tuple(tuple(Cell.from_raw(v) for v in row) for row in rows),
    )


def _metric(history, name):
    return next(m for m in history.metrics if m.name == name)


def test_reverse_source_order_produces_forward_chronology():
    sheet = _sheet([
        ["Parameter", "Unit", D3, D2, D1],
        ["Glucose", "mmol/L", 5.9, 5.4, 5.1],
        ["HDL", "mmol/L", 1.1, 1.3, 1.2],
    ])
    history = normalize_sheet(sheet, CATEGORIES)

    assert [p.date for p in history.data_points] == [D1, D2, D3]
    assert history.data_points[0].values == {"Glucose": 5.1, "HDL": 1.2}
    # latest = 2021 (5.9), second latest = 2020 (5.4)
    assert _metric(history, "Glucose").trend == pytest.approx(0.5)
    assert _metric(history, "Glucose").value == "5.9"
    assert _metric(history, "HDL").trend == pytest.approx(-0.2)


def test_data_points_sorted_without_duplicate_dates():
    sheet = _sheet([
        ["Parameter", "Unit", D2, D1, "2020-01-10", D3],
        ["Glucose", "mmol/L", 5.4, 5.1, 9.9, 5.9],
    ])
    history = normalize_sheet(sheet, CATEGORIES)
    dates = [p.date for p in history.data_points]
    assert dates == sorted(set(dates))
    # 重複日付は先の列が優先され、後の列は空欄の補完にだけ使う
    assert history.data_points[1]["Glucose"] == 5.4


def test_duplicate_date_column_fills_gaps_of_first_column():
    sheet = _sheet([
        ["Parameter", "Unit", D1, D2, "2020-01-10"],
        ["Glucose", "mmol/L", 5.1, None, 5.3],
        ["HDL", "mmol/L", 1.2, 1.4, 1.5],
        ["LDL", "mmol/L", 3.1, None, None],
    ])
    history = normalize_sheet(sheet, CATEGORIES)

    assert [p.date for p in history.data_points] == [D1, D2]
    assert history.data_points[1]["Glucose"] == 5.3
    assert history.data_points[1]["HDL"] == 1.4
    assert "LDL" not in history.data_points[1]
    assert history.date_columns[1].source_columns == (3, 4)
    assert [a.issue for a in history.anomalies] == ["DUPLICATE_DATE_COLUMN"]


def test_category_header_and_repeated_header_rows_are_skipped():
    sheet = _sheet([
        ["Parameter", "Unit", D1, D2],
        ["Lipid Panel (Fasting)", None, None, None],
        ["Unit", "Unit", None, None],
        [None, "mg/dL", 1, 2],
        ["HDL", "mmol/L", 1.2, 1.3],
    ])
    history = normalize_sheet(sheet, CATEGORIES)
    assert history.parameter_names == ("HDL",)


def test_sparse_cells_are_omitted_not_zeroed():
    sheet = _sheet([
        ["Parameter", "Unit", D1, D2, D3],
        ["Glucose", "mmol/L", 5.1, "", 5.9],
        ["HDL", "mmol/L", "n.d.", "1.3", None],
    ])
    history = normalize_sheet(sheet, CATEGORIES)

    glucose = history.series[0]
    assert [o.date for o in glucose.observations] == [D1, D3]
    assert "Glucose" not in history.data_points[1]
    assert "HDL" not in history.data_points[0]
    assert history.data_points[1]["HDL"] == 1.3
    assert _metric(history, "HDL").trend == 0
    assert [a.issue for a in history.anomalies] == ["NON_NUMERIC_CELL"]
    assert history.anomalies[0].raw_value == "n.d."


def test_parameter_without_readings_reports_not_available():
    sheet = _sheet([
        ["Parameter", "Unit", D1, D2],
        ["Ferritin", "ng/mL", None, "pending"],
        ["Glucose", "mmol/L", 5.1, None],
    ])
    history = normalize_sheet(sheet, CATEGORIES)

    ferritin = _metric(history, "Ferritin")
    assert ferritin.value == NOT_AVAILABLE
    assert ferritin.trend == 0
    glucose = _metric(history, "Glucose")
    assert glucose.value != NOT_AVAILABLE
    assert glucose.trend == 0
    assert history.parameter_names == ("Ferritin", "Glucose")


def test_value_is_formatted_with_one_decimal():
    sheet = _sheet([
        ["Parameter", "Unit", D1],
        ["Platelets", "10^9/L", 250],
        ["TSH", "mIU/L", 2.345],
    ])
    history = normalize_sheet(sheet, CATEGORIES)
    assert [m.value for m in history.metrics] == ["250.0", "2.3"]


def test_duplicate_parameter_rows_merge_in_date_order():
    sheet = _sheet([
        ["Parameter", "Unit", D3, D1, D2],
        ["Glucose", "mmol/L", 5.9, None, None],
        ["HDL", "mmol/L", 1.1, 1.2, 1.3],
        ["Glucose", "", None, 5.1, 5.4],
    ])
    history = normalize_sheet(sheet, CATEGORIES)

    assert history.parameter_names == ("Glucose", "HDL")
    glucose = history.series[0]
    assert [(o.date, o.value) for o in glucose.observations] == [(D1, 5.1), (D2, 5.4), (D3, 5.9)]
    assert glucose.unit == "mmol/L"
    assert _metric(history, "Glucose").trend == pytest.approx(0.5)
    assert "DUPLICATE_PARAMETER" in [a.issue for a in history.anomalies]


def test_duplicate_row_overwrites_same_date_reading():
    sheet = _sheet([
        ["Parameter", "Unit", D1, D2],
        ["Glucose", "mmol/L", 5.1, 5.4],
        ["Glucose", "mg/dL", None, 99.0],
    ])
    history = normalize_sheet(sheet, CATEGORIES)
    glucose = history.series[0]
    assert [o.value for o in glucose.observations] == [5.1, 99.0]
    assert glucose.unit == "mg/dL"
    assert [a.issue for a in history.anomalies] == ["DUPLICATE_PARAMETER", "OVERWRITTEN_OBSERVATION"]


def test_observations_are_chronological_for_every_parameter():
    sheet = _sheet([
        ["Parameter", "Unit", D2, D3, D1],
        ["Glucose", "mmol/L", 5.4, 5.9, 5.1],
        ["HbA1c", "%", None, 6.0, 5.7],
        ["Glucose", "mmol/L", None, None, 5.0],
    ])
    history = normalize_sheet(sheet, CATEGORIES)
    for s in history.series:
        dates = [o.date for o in s.observations]
        assert dates == sorted(dates)


def test_category_lookup_is_exact_with_other_fallback():
    sheet = _sheet([
        ["Parameter", "Unit", D1],
        ["Glucose", "mmol/L", 5.1],
        ["glucose", "mmol/L", 5.2],
        ["Vitamin D", "nmol/L", 60],
    ])
    history = normalize_sheet(sheet, CATEGORIES)
    categories = {m.name: m.category for m in history.metrics}
    assert categories == {
        "Glucose": "Diabetes",
        "glucose": OTHER_CATEGORY,
        "Vitamin D": OTHER_CATEGORY,
    }
    unknown = [a for a in history.anomalies if a.issue == "UNKNOWN_CATEGORY"]
    assert {a.raw_value for a in unknown} == {"glucose", "Vitamin D"}


def test_first_matching_category_wins():
    table = freeze_category_table({"A": ["Iron"], "B": ["Iron"]})
    sheet = _sheet([["Parameter", "Unit", D1], ["Iron", "umol/L", 15]])
    assert normalize_sheet(sheet, table).metrics[0].category == "A"


def test_header_only_sheet_without_dates_is_malformed():
    sheet = _sheet([["Parameter", "Unit", "Result", "Comment"]])
    with pytest.raises(MalformedInputError):
        normalize_sheet(sheet, CATEGORIES)


def test_no_parameter_rows_is_malformed():
    sheet = _sheet([
        ["Parameter", "Unit", D1],
        ["Liver Function Tests (LFT)", None, None],
        [None, None, 5],
    ])
    with pytest.raises(MalformedInputError) as e:
        normalize_sheet(sheet, CATEGORIES)
    assert "no valid parameter rows" in str(e.value)


def test_empty_sheet_is_malformed():
    with pytest.raises(MalformedInputError):
        normalize_sheet(RawSheet(sheet_name="s", rows=()), CATEGORIES)


def test_malformed_input_error_is_normalization_error():
    assert issubclass(MalformedInputError, NormalizationError)


def test_normalize_from_xlsx_bytes(xlsx_bytes, history_rows):
    history = normalize(xlsx_bytes(history_rows), DEFAULT_PARAMETER_CATEGORIES, source_name="h.xlsx")

    assert history.parameter_names == ("Glucose", "HbA1c", "HDL", "Ferritin")
    assert [p.date for p in history.data_points] == [D1, D2, D3]
    assert "Lipid Panel (Fasting)" not in history.parameter_names
    assert _metric(history, "HbA1c").trend == pytest.approx(0.2)
    assert _metric(history, "HDL").value == "1.4"
    assert _metric(history, "HDL").category == "Lipid Profile"
    assert _metric(history, "Ferritin").value == NOT_AVAILABLE
    assert _metric(history, "Ferritin").category == "Iron Studies"
    assert all(a.file == "h.xlsx" for a in history.anomalies)


def test_normalize_repairs_corrupted_header_in_csv():
    text = "Parameter,Unit,36/5/2019,12/06/2019\nGlucose,mmol/L,5.0,5.3\n"
    history = normalize(text.encode("utf-8"), CATEGORIES)
    assert [p.date for p in history.data_points] == [datetime(2019, 5, 1), datetime(2019, 6, 12)]
    assert history.metrics[0].trend == pytest.approx(0.3)
    assert "REPAIRED_DATE_HEADER" in [a.issue for a in history.anomalies]


def test_normalize_undecodable_buffer_is_malformed():
    with pytest.raises(MalformedInputError):
        normalize(b"PK\x03\x04 broken", CATEGORIES)


def test_category_table_is_not_mutated():
    table = {"Diabetes": {"Glucose"}}
    sheet = _sheet([["Parameter", "Unit", D1], ["Glucose", "mmol/L", 5.1], ["HDL", "mmol/L", 1.2]])
    normalize_sheet(sheet, table)
    assert table == {"Diabetes": {"Glucose"}}


def test_flagged_readings_keep_their_leading_number():
    sheet = _sheet([
        ["Parameter", "Unit", D1, D2],
        ["Glucose", "mmol/L", "5.4 H", "6.1*"],
    ])
    history = normalize_sheet(sheet, CATEGORIES)

    assert [o.value for o in history.series[0].observations] == [5.4, 6.1]
    assert _metric(history, "Glucose").value == "6.1"
    assert history.anomalies == ()


def test_csv_header_with_date_serials():
    buffer = b"Parameter,Unit,43831,44197\nGlucose,mmol/L,5.1,5.4\n"
    history = normalize(buffer, CATEGORIES, source_name="serials.csv")

    assert [p.date for p in history.data_points] == [datetime(2020, 1, 1), datetime(2021, 1, 1)]
    assert _metric(history, "Glucose").trend == pytest.approx(0.3)


def test_utf16_tab_export_is_normalized():
    text = "Parameter\tUnit\t2020-01-10\t2021-03-01\nGlucose\tmmol/L\t5.1\t5.4\n"
    history = normalize(text.encode("utf-16"), CATEGORIES, source_name="unicode.txt")

    assert history.parameter_names == ("Glucose",)
    assert [p.date for p in history.data_points] == [D2, D3]
