from __future__ import annotations

from collections.abc import Collection, Mapping
from types import MappingProxyType

"""Default parameter -> category lookup table.

The normalizer takes the table as an argument; this module only provides the
table used when the YAML config does not define ``categories``. Matching is
exact and case-sensitive, so names are spelled the way lab exports print them.
"""

__all__ = [
    "CategoryTable",
    "DEFAULT_PARAMETER_CATEGORIES",
    "freeze_category_table",
]

CategoryTable = Mapping[str, frozenset[str]]


def freeze_category_table(raw: Mapping[str, Collection[str]]) -> CategoryTable:
    """Return a read-only copy of ``raw`` (insertion order preserved)."""
    return MappingProxyType({str(k): frozenset(str(n) for n in v) for k, v in raw.items()})


DEFAULT_PARAMETER_CATEGORIES: CategoryTable = freeze_category_table(
    {
        "Complete Blood Count": [
            "Hemoglobin",
            "Hematocrit",
            "RBC",
            "WBC",
            "Platelets",
            "MCV",
            "MCH",
            "MCHC",
            "RDW",
            "Neutrophils",
            "Lymphocytes",
            "Monocytes",
            "Eosinophils",
            "Basophils",
        ],
        "Liver Function": [
            "ALT",
            "AST",
            "ALP",
            "GGT",
            "Total Bilirubin",
            "Direct Bilirubin",
            "Albumin",
            "Total Protein",
        ],
        "Kidney Function": [
            "Creatinine",
            "Urea",
            "BUN",
            "Uric Acid",
            "eGFR",
        ],
        "Lipid Profile": [
            "Total Cholesterol",
            "HDL",
            "LDL",
            "Triglycerides",
            "VLDL",
        ],
        "Diabetes": [
            "Glucose",
            "Fasting Glucose",
            "HbA1c",
            "Insulin",
        ],
        "Thyroid": [
            "TSH",
            "Free T4",
            "Free T3",
        ],
        "Electrolytes": [
            "Sodium",
            "Potassium",
            "Chloride",
            "Calcium",
            "Magnesium",
            "Phosphorus",
        ],
        "Vitamins & Minerals": [
            "Vitamin D",
            "Vitamin B12",
            "Folate",
            "Zinc",
        ],
        "Iron Studies": [
            "Iron",
            "Ferritin",
            "Transferrin",
            "TIBC",
        ],
        "Inflammation": [
            "CRP",
            "ESR",
        ],
    }
)
