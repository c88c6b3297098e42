"""Blood-test history normalizer.

Spreadsheet export (rows = parameters, columns = dated observations) ->
per-parameter time series, wide-format date table and trend metrics.
"""

from .config.categories import DEFAULT_PARAMETER_CATEGORIES
from .models import DataPoint, Metric, NormalizedHistory
from .services.normalizer import MalformedInputError, NormalizationError, normalize

__all__ = [
    "normalize",
    "NormalizationError",
    "MalformedInputError",
    "NormalizedHistory",
    "DataPoint",
    "Metric",
    "DEFAULT_PARAMETER_CATEGORIES",
]

__version__ = "0.1.0"
