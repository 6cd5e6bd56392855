"""Market insights derived from the full price history.

Five independent heuristics run over the same rows:

* price_trend: brand average of the last 30 days against the 30 days before.
* best_value: latest prices more than 20% under the market median.
* price_stability: products whose coefficient of variation stays under 20%.
* category_comparison: most expensive and most affordable segment.
* historical_opportunity: products trading near their historical low.

Titles and descriptions are user-facing and stay in Spanish, the language of
the dashboard.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import pandas as pd

from price_insights.analytics.filters import latest_per_product
from price_insights.analytics.frame import observations_frame, text_value
from price_insights.analytics.stats import (
    mean,
    percent_change,
    population_std,
    positive,
    round_half_up,
    upper_median,
)
from price_insights.models import Insight, PriceObservation

logger = logging.getLogger(__name__)

TREND_WINDOW_DAYS = 30
TREND_THRESHOLD = 5.0
BEST_VALUE_RATIO = 0.8
STABILITY_MIN_POINTS = 5
STABILITY_MAX_CV = 20.0
CATEGORY_MIN_MODELS = 3
EXTREME_MIN_POINTS = 3
EXTREME_MIN_RATIO = 1.3
NEAR_LOW_BAND = 0.3
NEAR_HIGH_BAND = 0.7


def _group_key(row: PriceObservation) -> Optional[str]:
    return row.product.group_key if row.product else None


def product_groups(history: pd.DataFrame):
    """(key, rows) per brand/model/submodel, rows keeping the frame order."""
    return history.dropna(subset=["group_key"]).groupby("group_key", sort=False)


def _trend_priority(change: float) -> int:
    if abs(change) > 15:
        return 1
    if abs(change) > 10:
        return 2
    return 3


def price_trend_insights(history: pd.DataFrame, now: datetime) -> list[Insight]:
    """Brands whose recent average moved more than the threshold."""
    current_start = now - timedelta(days=TREND_WINDOW_DAYS)
    previous_start = now - timedelta(days=2 * TREND_WINDOW_DAYS)

    branded = history.dropna(subset=["brand"])
    in_current = branded["date"] >= current_start
    in_previous = ~in_current & (branded["date"] >= previous_start)
    current = branded[in_current].groupby("brand", sort=False)["price"].mean()
    previous = branded[in_previous].groupby("brand", sort=False)["price"].mean()

    insights = []
    for brand in branded["brand"].unique():
        if brand not in current.index or brand not in previous.index:
            continue
        current_avg = float(current[brand])
        previous_avg = float(previous[brand])
        change = percent_change(current_avg, previous_avg)
        if abs(change) <= TREND_THRESHOLD:
            continue

        rising = change > 0
        insights.append(Insight(
            insight_type="price_trend",
            title=f"{brand}: Incremento de Precios Detectado" if rising
            else f"{brand}: Reducción de Precios Detectada",
            description=(
                f"Los precios de {brand} {'subieron' if rising else 'bajaron'} "
                f"{abs(change):.1f}% en los últimos {TREND_WINDOW_DAYS} días"
            ),
            data={
                "brand": brand,
                "change_percent": round(change, 2),
                "current_avg": round_half_up(current_avg),
                "previous_avg": round_half_up(previous_avg),
                "direction": "up" if rising else "down",
            },
            priority=_trend_priority(change),
        ))
    return insights


def best_value_insight(latest: pd.DataFrame) -> Optional[Insight]:
    """Up to five models priced more than 20% under the median."""
    market_median = upper_median(positive(latest["price"]))
    if market_median <= 0:
        return None

    bargains = (
        latest[(latest["price"] > 0) & (latest["price"] < market_median * BEST_VALUE_RATIO)]
        .sort_values("price", kind="stable")
        .head(5)
    )
    if bargains.empty:
        return None

    data = [
        {
            "brand": text_value(row.brand),
            "model": text_value(row.model),
            "name": text_value(row.name),
            "category": text_value(row.category),
            "price": round_half_up(row.price),
            "savings_vs_median": round_half_up((market_median - row.price) / market_median * 100),
        }
        for row in bargains.itertuples(index=False)
    ]
    return Insight(
        insight_type="best_value",
        title="Mejores Oportunidades del Mercado",
        description=f"{len(data)} modelos con precios hasta 20% por debajo de la mediana del mercado",
        data=data,
        priority=1,
    )


def stability_insight(history: pd.DataFrame) -> Optional[Insight]:
    """Three products with the lowest coefficient of variation."""
    scores = []
    for _, rows in product_groups(history):
        if len(rows) < STABILITY_MIN_POINTS:
            continue
        prices = positive(rows["price"])
        avg = mean(prices)
        if avg <= 0:
            continue
        cv = population_std(prices) / avg * 100
        if cv >= STABILITY_MAX_CV:
            continue
        first = rows.iloc[0]
        scores.append({
            "brand": text_value(first["brand"]),
            "model": text_value(first["model"]),
            "name": text_value(first["name"]),
            "avg_price": round_half_up(avg),
            "stability_score": round(cv, 2),
            "data_points": len(rows),
        })

    if not scores:
        return None

    scores.sort(key=lambda item: item["stability_score"])
    top = scores[:3]
    return Insight(
        insight_type="price_stability",
        title="Modelos con Precios Estables",
        description=f"{len(top)} modelos mantienen precios consistentes en su historial",
        data=top,
        priority=2,
    )


def _category_summary(category: str, stats: pd.Series) -> dict[str, Any]:
    return {
        "category": category,
        "avg_price": round_half_up(stats["avg_price"]),
        "model_count": int(stats["model_count"]),
        "price_range": round_half_up(stats["price_range"]),
    }


def category_comparison_insight(latest: pd.DataFrame) -> Optional[Insight]:
    """Most expensive versus most affordable category."""
    priced = latest[latest["price"] > 0].dropna(subset=["category"])
    stats = (
        priced.groupby("category", sort=False)["price"]
        .agg(avg_price="mean", model_count="count", max_price="max", min_price="min")
        .loc[lambda df: df["model_count"] >= CATEGORY_MIN_MODELS]
        .assign(price_range=lambda df: df["max_price"] - df["min_price"])
    )
    if len(stats) < 2:
        return None

    stats = stats.sort_values("avg_price", ascending=False, kind="stable")
    return Insight(
        insight_type="category_comparison",
        title="Comparación de Segmentos de Mercado",
        description=f"Análisis de {len(stats)} segmentos diferentes en el mercado",
        data={
            "most_expensive_category": _category_summary(stats.index[0], stats.iloc[0]),
            "most_affordable_category": _category_summary(stats.index[-1], stats.iloc[-1]),
        },
        priority=2,
    )


def price_position(latest_price: float, low: float, high: float) -> str:
    """Where the latest price sits inside the historical [low, high] band."""
    spread = high - low
    if latest_price < low + spread * NEAR_LOW_BAND:
        return "near_low"
    if latest_price > low + spread * NEAR_HIGH_BAND:
        return "near_high"
    return "mid_range"


def historical_extremes(history: pd.DataFrame) -> list[dict[str, Any]]:
    """Products with a wide historical range, with the latest price position.

    ``history`` must be ordered newest first.
    """
    extremes = []
    for _, rows in product_groups(history):
        if len(rows) < EXTREME_MIN_POINTS:
            continue
        positives = positive(rows["price"])
        if positives.empty:
            continue
        high = float(rows["price"].max())
        low = float(positives.min())
        if high <= 0 or high / low <= EXTREME_MIN_RATIO:
            continue

        newest = rows.iloc[0]
        latest_price = float(newest["price"])
        extremes.append({
            "brand": text_value(newest["brand"]),
            "model": text_value(newest["model"]),
            "name": text_value(newest["name"]),
            "current_price": round_half_up(latest_price),
            "historical_high": round_half_up(high),
            "historical_low": round_half_up(low),
            "range_percent": round_half_up((high - low) / low * 100),
            "position": price_position(latest_price, low, high),
        })
    return extremes


def historical_opportunity_insight(history: pd.DataFrame) -> Optional[Insight]:
    near_lows = [item for item in historical_extremes(history) if item["position"] == "near_low"]
    if not near_lows:
        return None

    near_lows.sort(key=lambda item: item["range_percent"], reverse=True)
    top = near_lows[:3]
    return Insight(
        insight_type="historical_opportunity",
        title="Modelos Cerca de sus Mínimos Históricos",
        description=f"{len(top)} modelos están cerca de sus precios más bajos registrados",
        data=top,
        priority=1,
    )


def generate_insights(history: list[PriceObservation], now: Optional[datetime] = None) -> dict[str, Any]:
    """Run every heuristic over ``history`` and build the response payload."""
    now = now or datetime.now(timezone.utc)
    rows = sorted(history, key=lambda r: r.date, reverse=True)
    logger.info(f"Analyzing {len(rows)} price records for insights")

    frame = observations_frame(rows)
    latest = observations_frame(latest_per_product(rows, key=_group_key))

    insights: list[Insight] = price_trend_insights(frame, now)
    for candidate in (
        best_value_insight(latest),
        stability_insight(frame),
        category_comparison_insight(latest),
        historical_opportunity_insight(frame),
    ):
        if candidate is not None:
            insights.append(candidate)

    logger.info(f"Generated {len(insights)} insights from data analysis")

    return {
        "insights": [insight.model_dump() for insight in insights],
        "generated_at": now.isoformat(),
        "data_analyzed": {
            "total_records": len(rows),
            "products_tracked": int(frame["group_key"].nunique()),
            "date_range": {
                "from": rows[-1].date.isoformat(),
                "to": rows[0].date.isoformat(),
            } if rows else None,
        },
    }
