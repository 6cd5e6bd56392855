"""Cross-sectional analytics over the latest-per-product snapshot."""
import logging
from datetime import datetime, timezone
from typing import Any, Optional
import pandas as pd

from price_insights.analytics.distribution import fixed_band_distribution
from price_insights.analytics.filters import AnalyticsFilters, latest_per_product
from price_insights.analytics.frame import isoformat, observations_frame, text_value
from price_insights.analytics.stats import (
    mean,
    median,
    percent_change,
    quantile_at,
    sample_std,
)
from price_insights.config import config
from price_insights.models import PriceObservation

logger = logging.getLogger(__name__)

TOP_N = 5


def _group_stats(frame: pd.DataFrame, column: str) -> pd.DataFrame:
    """Price avg/min/max/count per value of ``column``, in first-appearance order."""
    return (
        frame.dropna(subset=[column])
        .groupby(column, sort=False)["price"]
        .agg(avg_price="mean", min_price="min", max_price="max", count="count")
    )


def _stats_record(stats: pd.Series) -> dict[str, Any]:
    return {
        "avg_price": float(stats["avg_price"]),
        "min_price": float(stats["min_price"]),
        "max_price": float(stats["max_price"]),
        "count": int(stats["count"]),
    }


def compute_metrics(snapshot: pd.DataFrame, history: pd.DataFrame) -> dict[str, Any]:
    """Headline metrics of the filtered snapshot."""
    prices = snapshot["price"]
    avg_price = mean(prices)
    std_dev = sample_std(prices)
    min_price = float(prices.min()) if len(prices) else 0
    max_price = float(prices.max()) if len(prices) else 0

    return {
        "total_models": len(snapshot),
        "total_brands": int(snapshot["brand"].nunique()),
        "total_categories": int(snapshot["category"].nunique()),
        "avg_price": avg_price,
        "median_price": median(prices),
        "min_price": min_price,
        "max_price": max_price,
        "price_std_dev": std_dev,
        "price_range": max_price - min_price,
        "variation_coefficient": (std_dev / avg_price * 100) if avg_price > 0 else 0,
        "lower_quartile": quantile_at(prices, 0.25),
        "upper_quartile": quantile_at(prices, 0.75),
        "current_scraping_date": isoformat(snapshot["date"].max()) if len(snapshot) else None,
        "total_scraping_sessions": int(history["date"].dt.date.nunique()),
    }


def brand_price_trend(brand_history: pd.DataFrame, window: int) -> float:
    """% change between the newest and oldest of the brand's most recent rows."""
    recent = brand_history.sort_values("date", ascending=False, kind="stable").head(window)
    if len(recent) < 2:
        return 0.0
    return percent_change(float(recent["price"].iloc[0]), float(recent["price"].iloc[-1]))


def prices_by_brand(
    snapshot: pd.DataFrame,
    history: pd.DataFrame,
    overall_avg: float,
    window: int,
) -> list[dict[str, Any]]:
    result = []
    for brand, stats in _group_stats(snapshot, "brand").iterrows():
        record = _stats_record(stats)
        result.append({
            "brand": brand,
            **record,
            "value_score": (overall_avg - record["avg_price"]) / overall_avg * 100 if overall_avg > 0 else 0,
            "price_trend": brand_price_trend(history[history["brand"] == brand], window),
        })
    return result


def prices_by_category(snapshot: pd.DataFrame) -> list[dict[str, Any]]:
    return [
        {"category": category, **_stats_record(stats)}
        for category, stats in _group_stats(snapshot, "category").iterrows()
    ]


def models_by_principal(snapshot: pd.DataFrame) -> list[dict[str, Any]]:
    return [
        {"model_principal": model, **_stats_record(stats)}
        for model, stats in _group_stats(snapshot, "model").iterrows()
    ]


def models_by_category(snapshot: pd.DataFrame) -> list[dict[str, Any]]:
    counts = snapshot.dropna(subset=["category"]).groupby("category", sort=False).size()
    return [{"category": category, "count": int(count)} for category, count in counts.items()]


def most_volatile(history: pd.DataFrame, limit: int = TOP_N) -> list[dict[str, Any]]:
    """Mean absolute % change between consecutive observations per brand-model."""
    analysis = []
    for _, group in history.dropna(subset=["brand_model"]).groupby("brand_model", sort=False):
        if len(group) < 2:
            continue
        ordered = group.sort_values("date", kind="stable")
        previous = ordered["price"].shift(1)
        steps = previous.notna() & (previous != 0)
        variations = ((ordered["price"][steps] - previous[steps]) / previous[steps] * 100).abs()

        first = ordered.iloc[0]
        analysis.append({
            "brand": text_value(first["brand"]),
            "model": text_value(first["model"]),
            "name": text_value(first["name"]),
            "avg_monthly_variation": mean(variations),
            "data_points": len(ordered),
        })

    analysis.sort(key=lambda item: item["avg_monthly_variation"], reverse=True)
    return analysis[:limit]


def brand_variation(brand: str, brand_history: pd.DataFrame) -> dict[str, Any]:
    """First vs last scraping-session average price of a brand."""
    daily = brand_history.groupby(brand_history["date"].dt.date)["price"].mean()

    if len(brand_history) > 1 and len(daily) > 1:
        first_avg = float(daily.iloc[0])
        last_avg = float(daily.iloc[-1])
        return {
            "brand": brand,
            "first_avg_price": first_avg,
            "last_avg_price": last_avg,
            "variation_percent": percent_change(last_avg, first_avg),
            "scraping_sessions": len(daily),
        }

    return {
        "brand": brand,
        "first_avg_price": 0,
        "last_avg_price": 0,
        "variation_percent": 0,
        "scraping_sessions": 0,
    }


def best_value_models(snapshot: pd.DataFrame, median_price: float) -> list[dict[str, Any]]:
    """Cheapest snapshot rows priced at or below the median."""
    if median_price <= 0:
        return []
    candidates = (
        snapshot[snapshot["price"] <= median_price]
        .sort_values("price", kind="stable")
        .head(TOP_N)
    )
    return [
        {
            "brand": text_value(row.brand),
            "name": text_value(row.name),
            "category": text_value(row.category),
            "price": float(row.price),
            "value_rating": f"{(median_price - row.price) / median_price * 100:.1f}",
        }
        for row in candidates.itertuples(index=False)
    ]


def _price_items(rows: pd.DataFrame) -> list[dict[str, Any]]:
    return [
        {"brand": text_value(row.brand), "name": text_value(row.name), "price": float(row.price)}
        for row in rows.itertuples(index=False)
    ]


def historical_prices(history: pd.DataFrame, model: str) -> list[dict[str, Any]]:
    """Every observation of one main model, oldest first."""
    rows = history[history["model"] == model].sort_values("date", kind="stable")
    return [
        {"date": isoformat(date), "price": float(price)}
        for date, price in zip(rows["date"], rows["price"])
    ]


def compute_analytics(
    history: list[PriceObservation],
    filters: Optional[AnalyticsFilters] = None,
    brand_trend_window: Optional[int] = None,
) -> dict[str, Any]:
    """Full analytics payload for the dashboard.

    ``history`` is every price observation (any order). Cross-sectional
    figures use the filtered latest-per-product snapshot; trends and
    volatility use the unfiltered history of the brands in that snapshot.
    """
    filters = filters or AnalyticsFilters()
    window = brand_trend_window or config.BRAND_TREND_WINDOW

    newest_first = sorted(history, key=lambda r: r.date, reverse=True)
    snapshot = observations_frame(filters.apply(latest_per_product(newest_first)))
    history_frame = observations_frame(history)
    logger.info(f"Analytics over {len(snapshot)} products ({len(history_frame)} history rows)")

    metrics = compute_metrics(snapshot, history_frame)
    by_brand = prices_by_brand(snapshot, history_frame, metrics["avg_price"], window)
    by_price_desc = snapshot.sort_values("price", ascending=False, kind="stable")

    return {
        "metrics": metrics,
        "chart_data": {
            "prices_by_brand": by_brand,
            "prices_by_category": prices_by_category(snapshot),
            "models_by_category": models_by_category(snapshot),
            "models_by_principal": models_by_principal(snapshot),
            "price_distribution": fixed_band_distribution(snapshot["price"]),
            "best_value_models": best_value_models(snapshot, metrics["median_price"]),
            "top_5_expensive": _price_items(by_price_desc.head(TOP_N)),
            "bottom_5_cheap": _price_items(by_price_desc.tail(TOP_N).iloc[::-1]),
            "brand_variations": [
                brand_variation(item["brand"], history_frame[history_frame["brand"] == item["brand"]])
                for item in by_brand
            ],
            "monthly_volatility": {"most_volatile": most_volatile(history_frame)},
        },
        "historical_data": historical_prices(history_frame, filters.model) if filters.model else [],
        "applied_filters": filters.as_applied(),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
