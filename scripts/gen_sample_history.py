#!/usr/bin/env python3
"""Sample history generation script.

Generates a synthetic blood-test history workbook in the layout lab portals
export:
- Row 1: Header row ("Parameter", "Unit", then one date per column)
- Row 2+: Category rows (name with parentheses) and parameter rows

The date columns are shuffled and a few cells are left blank so the file
exercises the normalizer the way real exports do. Optionally one header is
written as a corrupted "D/M/YYYY" string with an impossible day.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

# (category header, [(parameter, unit, typical value, spread)])
PANELS: list[tuple[str, list[tuple[str, str, float, float]]]] = [
    (
        "Complete Blood Count (CBC)",
        [
            ("Hemoglobin", "g/dL", 14.0, 1.0),
            ("WBC", "10^9/L", 6.5, 1.5),
            ("Platelets", "10^9/L", 250.0, 40.0),
        ],
    ),
    (
        "Lipid Profile (fasting)",
        [
            ("Total Cholesterol", "mmol/L", 5.0, 0.5),
            ("HDL", "mmol/L", 1.4, 0.2),
            ("LDL", "mmol/L", 3.0, 0.4),
            ("Triglycerides", "mmol/L", 1.3, 0.3),
        ],
    ),
    (
        "Diabetes (glycemic control)",
        [
            ("Glucose", "mmol/L", 5.3, 0.4),
            ("HbA1c", "%", 5.6, 0.3),
        ],
    ),
    (
        "Thyroid (screening)",
        [
            ("TSH", "mIU/L", 2.0, 0.6),
        ],
    ),
]


def generate_history_rows(
    visits: int,
    seed: int = 42,
    missing_ratio: float = 0.15,
    corrupt_header: bool = True,
) -> list[list[object]]:
    """Build the sheet rows of a synthetic history.

    Args:
        visits: Number of date columns
        seed: Random seed for reproducible data
        missing_ratio: Share of observation cells left blank
        corrupt_header: Write the last date as an impossible "D/M/YYYY" string

    Returns:
        Rows ready for ``pd.DataFrame(rows).to_excel(header=False)``
    """
    rng = np.random.default_rng(seed)

    dates = pd.date_range("2018-01-01", periods=visits, freq="91D")
    order = rng.permutation(visits)
    header_dates: list[object] = [dates[i].to_pydatetime() for i in order]
    if corrupt_header and visits > 1:
        # 日付欄の破損を再現 (36/M/YYYY → その月の1日として読まれる)
        last = dates[order[-1]]
        header_dates[-1] = f"36/{last.month}/{last.year}"

    rows: list[list[object]] = [["Parameter", "Unit", *header_dates]]
    for category, params in PANELS:
        rows.append([category, None, *([None] * visits)])
        for name, unit, typical, spread in params:
            values = np.round(rng.normal(typical, spread, visits), 2)
            blanks = rng.random(visits) < missing_ratio
            cells = [None if blank else float(v) for v, blank in zip(values, blanks)]
            rows.append([name, unit, *cells])
    return rows


def create_history_file(output_path: Path, visits: int, seed: int = 42, corrupt_header: bool = True) -> None:
    """Write a synthetic history workbook to ``output_path``."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    rows = generate_history_rows(visits, seed, corrupt_header=corrupt_header)

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name="History", header=False, index=False)

    n_params = sum(len(params) for _, params in PANELS)
    print(f"Created history file: {output_path}")
    print(f"  Visits (date columns): {visits}")
    print(f"  Parameters: {n_params} in {len(PANELS)} categories")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate a synthetic blood-test history workbook",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s data/sample.xlsx
  %(prog)s data/long.xlsx --visits 40 --seed 7
  %(prog)s data/clean.xlsx --no-corrupt-header
        """,
    )
    parser.add_argument("output", type=Path, help="Output .xlsx path")
    parser.add_argument("--visits", type=int, default=8, help="Number of date columns (default: 8)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument(
        "--no-corrupt-header",
        action="store_true",
        help="Write every date header as a real date",
    )
    args = parser.parse_args()

    if args.visits <= 0:
        print("Error: --visits must be positive", file=sys.stderr)
        return 1

    try:
        create_history_file(args.output, args.visits, args.seed, corrupt_header=not args.no_corrupt_header)
    except OSError as e:
        print(f"Error writing history file: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
