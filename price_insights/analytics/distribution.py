"""Price distributions: fixed CLP bands and quartile segments."""
import math
from typing import Any, Optional
import pandas as pd

from price_insights.analytics.filters import AnalyticsFilters, latest_per_product
from price_insights.analytics.frame import observations_frame
from price_insights.analytics.stats import (
    Values,
    as_series,
    median,
    positive,
    quantile_at,
    round_half_up,
)
from price_insights.models import PriceObservation

# Bands are closed on the right: (0, 300k], (300k, 600k], ...
PRICE_BAND_LABELS = [
    "Bajo ($0-$300k)",
    "Medio ($300k-$600k)",
    "Alto ($600k-$1M)",
    "Premium ($1M+)",
]
PRICE_BAND_EDGES = [-math.inf, 300_000, 600_000, 1_000_000, math.inf]

SEGMENT_LABELS = ("Muy Bajo", "Bajo", "Medio", "Alto")


def fixed_band_distribution(prices: Values) -> list[dict[str, Any]]:
    """Count prices per fixed band."""
    bands = pd.cut(as_series(prices), bins=PRICE_BAND_EDGES, labels=PRICE_BAND_LABELS, right=True)
    counts = bands.value_counts(sort=False)
    return [{"range": label, "count": int(counts.get(label, 0))} for label in PRICE_BAND_LABELS]


def format_price_short(price: float) -> str:
    """$1.2M from a million up, $350k below; halves round up."""
    if price >= 1_000_000:
        return f"${round_half_up(price / 100_000) / 10:.1f}M"
    return f"${round_half_up(price / 1_000)}k"


def quartile_distribution(prices: Values) -> list[dict[str, Any]]:
    """Four segments split at q1, median and q3 of the positive prices.

    The first segment is closed on both ends; the others exclude their lower
    bound so each price lands in exactly one segment.
    """
    values = positive(prices)
    if values.empty:
        return []

    low, high = float(values.min()), float(values.max())
    q1 = quantile_at(values, 0.25)
    med = median(values)
    q3 = quantile_at(values, 0.75)
    bounds = [(low, q1), (q1, med), (med, q3), (q3, high)]

    distribution = []
    for idx, (label, (seg_min, seg_max)) in enumerate(zip(SEGMENT_LABELS, bounds)):
        inclusive = "both" if idx == 0 else "right"
        distribution.append({
            "range": f"{label} ({format_price_short(seg_min)}-{format_price_short(seg_max)})",
            "count": int(values.between(seg_min, seg_max, inclusive=inclusive).sum()),
            "min_value": seg_min,
            "max_value": seg_max,
        })
    return distribution


def compute_price_distribution(
    history: list[PriceObservation],
    filters: Optional[AnalyticsFilters] = None,
) -> list[dict[str, Any]]:
    """Quartile distribution of the filtered latest-per-product snapshot."""
    filters = filters or AnalyticsFilters()
    newest_first = sorted(history, key=lambda r: r.date, reverse=True)
    snapshot = observations_frame(filters.apply(latest_per_product(newest_first)))
    return quartile_distribution(snapshot["price"])
