from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from .categories import DEFAULT_PARAMETER_CATEGORIES, CategoryTable, freeze_category_table

"""YAML config loader for batch normalization runs.

Responsibilities:
- Load the YAML config (default ``config/bloodtrend.yml``)
- Validate it against the bundled JSON schema (unknown keys rejected)
- Apply defaults (output ./output, first sheet, day-first slash dates,
  bundled category table)
"""

if TYPE_CHECKING:
    import jsonschema
    from jsonschema.exceptions import ValidationError
else:
    try:
        import jsonschema
        from jsonschema.exceptions import ValidationError
    except ImportError:  # pragma: no cover
        jsonschema = None  # type: ignore[assignment]
        ValidationError = Exception  # type: ignore[misc,assignment]


SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/bloodtrend.yml")
DEFAULT_OUTPUT_DIRECTORY = "./output"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class NormalizerConfig:
    source_directory: str
    output_directory: str = DEFAULT_OUTPUT_DIRECTORY
    categories: CategoryTable = field(default_factory=lambda: DEFAULT_PARAMETER_CATEGORIES)
    sheet: str | int = 0
    dayfirst: bool = True
    keep_na_strings: list[str] | None = None


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: jsonschema missing, schema file missing or broken, or the
            data violates the schema (missing keys, wrong types, extra keys).
    """
    if jsonschema is None:
        raise ConfigError("jsonschema library is required for config validation")

    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path) -> NormalizerConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)

    raw_categories = data.get("categories")
    categories = (
        freeze_category_table(raw_categories)
        if raw_categories is not None
        else DEFAULT_PARAMETER_CATEGORIES
    )
    return NormalizerConfig(
        source_directory=data["source_directory"],
        output_directory=data.get("output_directory", DEFAULT_OUTPUT_DIRECTORY),
        categories=categories,
        sheet=data.get("sheet", 0),
        dayfirst=data.get("dayfirst", True),
        keep_na_strings=data.get("keep_na_strings"),
    )
