"""Statistical helpers shared by the analytics and insight reducers."""
import math
import re
from typing import Any, Iterable, Union
import pandas as pd

from price_insights.models import PriceObservation

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")

Values = Union[pd.Series, Iterable[float]]


def parse_price_text(value: Any) -> float:
    """Numeric part of a stored price (str or number), 0 when unparseable."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    cleaned = _NON_NUMERIC_RE.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def effective_price(obs: PriceObservation) -> float:
    """Price used by every reduction.

    precio_num when positive, else precio_lista_num when positive, else the
    numeric part of the raw price column.
    """
    for candidate in (obs.precio_num, obs.precio_lista_num):
        if candidate is not None and candidate > 0:
            return float(candidate)
    return parse_price_text(obs.price)


def as_series(values: Values) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype("float64")
    return pd.Series(list(values), dtype="float64")


def positive(values: Values) -> pd.Series:
    series = as_series(values)
    return series[series > 0]


def mean(values: Values) -> float:
    series = as_series(values)
    return float(series.mean()) if len(series) else 0.0


def median(values: Values) -> float:
    """True median (average of the middle pair for even counts)."""
    series = as_series(values)
    return float(series.median()) if len(series) else 0.0


def quantile_at(values: Values, fraction: float) -> float:
    """Element at floor(n * fraction) of the sorted values, no interpolation."""
    ordered = as_series(values).sort_values(ignore_index=True)
    if ordered.empty:
        return 0.0
    index = min(math.floor(len(ordered) * fraction), len(ordered) - 1)
    return float(ordered.iloc[index])


def upper_median(values: Values) -> float:
    """Element at floor(n/2) of the sorted values."""
    return quantile_at(values, 0.5)


def sample_std(values: Values) -> float:
    """Standard deviation with n-1 denominator, 0 below two values."""
    series = as_series(values)
    if len(series) < 2:
        return 0.0
    return float(series.std(ddof=1))


def population_std(values: Values) -> float:
    series = as_series(values)
    return float(series.std(ddof=0)) if len(series) else 0.0


def percent_change(current: float, previous: float) -> float:
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def round_half_up(value: float) -> int:
    """Round like JavaScript Math.round (halves go towards +infinity)."""
    return int(math.floor(value + 0.5))
