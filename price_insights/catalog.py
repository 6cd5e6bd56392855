"""Product browsing for the dashboard and side-by-side model comparison."""
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from price_insights.analytics.frame import isoformat, observations_frame, text_value
from price_insights.analytics.stats import mean, population_std, round_half_up
from price_insights.models import PriceObservation, Product

SORTABLE_FIELDS = ("created_at", "updated_at", "name", "brand", "model", "category")

MAX_COMPARED = 4
CATEGORY_BONUS = {"Sedán": 15, "SUV": 10}
DEFAULT_CATEGORY_BONUS = 5


def _search_matches(product: Product, term: str) -> bool:
    needle = term.lower()
    return any(
        value and needle in value.lower()
        for value in (product.name, product.brand, product.model)
    )


def _sort_key(field: str):
    def key(product: Product):
        value = getattr(product, field)
        # Missing values sort first, like NULLS FIRST on ascending order
        return (value is not None, value if value is not None else "")
    return key


def list_products(
    products: list[Product],
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    order: str = "desc",
) -> dict[str, Any]:
    """One page of products with pagination metadata."""
    if page < 1 or limit < 1:
        raise ValueError("page and limit must be positive")
    sort = sort or "created_at"
    if sort not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort by {sort!r}; expected one of {', '.join(SORTABLE_FIELDS)}")

    matches = [p for p in products if not search or _search_matches(p, search)]
    matches.sort(key=_sort_key(sort), reverse=order != "asc")

    total = len(matches)
    total_pages = math.ceil(total / limit)
    start = (page - 1) * limit
    return {
        "data": [p.model_dump(mode="json") for p in matches[start:start + limit]],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages,
            "hasNext": page < total_pages,
            "hasPrevious": page > 1,
        },
    }


def list_brands(products: list[Product]) -> list[str]:
    return sorted({p.brand for p in products if p.brand})


def list_categories(products: list[Product]) -> list[str]:
    return sorted({p.category for p in products if p.category})


def list_models(
    products: list[Product],
    brand: Optional[str] = None,
    category: Optional[str] = None,
) -> list[dict[str, Optional[str]]]:
    """Models, optionally restricted to one brand and/or category."""
    selected = [
        p for p in products
        if (not brand or p.brand == brand) and (not category or p.category == category)
    ]
    selected.sort(key=lambda p: p.model or "")
    return [{"model": p.model, "name": p.name, "brand": p.brand} for p in selected]


def recent_trends(
    history: list[PriceObservation],
    days: int = 30,
    limit: int = 50,
    now: Optional[datetime] = None,
) -> list[dict[str, Any]]:
    """Newest observations within the last ``days`` days."""
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=days)
    recent = sorted((row for row in history if row.date >= since), key=lambda r: r.date, reverse=True)
    return [row.model_dump(mode="json", by_alias=True) for row in recent[:limit]]


def _comparison_scores(
    latest_price: float,
    avg_price: float,
    price_variation: float,
    market_avg: float,
    category: Optional[str],
) -> dict[str, int]:
    """0-100 value, stability and recommendation scores of one product."""
    if market_avg > 0:
        value_score = min(100.0, max(0.0, (market_avg - latest_price) / market_avg * 100 + 50))
    else:
        value_score = 50.0
    stability_score = max(0.0, 100 - price_variation / avg_price * 100) if avg_price > 0 else 0.0

    recommendation = (
        value_score * 0.4
        + stability_score * 0.3
        + CATEGORY_BONUS.get(category, DEFAULT_CATEGORY_BONUS)
        + (10 if 0 < latest_price < market_avg else 0)
    )
    return {
        "value_score": round_half_up(value_score),
        "stability_score": round_half_up(stability_score),
        "recommendation_score": round_half_up(min(100.0, recommendation)),
    }


def compare_products(history: list[PriceObservation], product_ids: list[str]) -> list[dict[str, Any]]:
    """Side-by-side price summary and scores for up to four products.

    The value score compares each latest price with the average latest price
    of every product in ``history``.
    """
    ids = list(dict.fromkeys(pid for pid in product_ids if pid))
    if not ids:
        raise ValueError("At least one product id is required")
    if len(ids) > MAX_COMPARED:
        raise ValueError(f"At most {MAX_COMPARED} products can be compared")

    frame = observations_frame(history).dropna(subset=["product_id"])
    newest_first = frame.sort_values("date", ascending=False, kind="stable")
    market_avg = mean(newest_first.drop_duplicates("product_id")["price"])

    comparison = []
    for product_id in ids:
        rows = newest_first[newest_first["product_id"] == product_id]
        if rows.empty:
            raise ValueError(f"No price history for product {product_id}")

        prices = rows["price"]
        newest = rows.iloc[0]
        latest_price = float(newest["price"])
        avg_price = mean(prices)
        price_variation = population_std(prices) if len(prices) > 1 else 0.0
        category = text_value(newest["category"])

        oldest_first = rows.iloc[::-1]
        comparison.append({
            "product": {
                "id": product_id,
                "brand": text_value(newest["brand"]),
                "category": category,
                "model": text_value(newest["model"]),
                "name": text_value(newest["name"]),
                "latest_price": latest_price,
                "min_price": float(prices.min()),
                "max_price": float(prices.max()),
                "avg_price": avg_price,
                "price_history": [
                    {"date": isoformat(date), "price": float(price)}
                    for date, price in zip(oldest_first["date"], oldest_first["price"])
                ],
            },
            **_comparison_scores(latest_price, avg_price, price_variation, market_avg, category),
        })
    return comparison
