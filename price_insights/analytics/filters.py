"""Analytics filters and the latest-per-product snapshot."""
import math
from datetime import datetime
from typing import Callable, Iterable, Optional
import pandas as pd
from pydantic import BaseModel, Field, field_validator

from price_insights.analytics.stats import effective_price
from price_insights.models import PriceObservation, parse_timestamp


def parse_price_range(value: str) -> tuple[float, float]:
    """Parse "min-max" or "min+" into bounds; "min+" has no upper bound."""
    text = value.strip()
    try:
        if text.endswith("+"):
            return float(text[:-1]), math.inf
        low, high = text.split("-")
        return float(low), float(high)
    except ValueError:
        raise ValueError(f"Invalid price range: {value!r} (expected 'min-max' or 'min+')")


class AnalyticsFilters(BaseModel):
    """Filters applied to the latest-per-product snapshot."""

    brand: Optional[str] = None
    category: Optional[str] = None
    model: Optional[str] = None
    submodel: Optional[str] = None
    ctx_precio: Optional[str] = None
    price_range: Optional[str] = Field(default=None, description="'min-max' or 'min+'")
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    @field_validator("brand", "category", "model", "submodel", "ctx_precio", "price_range", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("price_range")
    @classmethod
    def _check_price_range(cls, value):
        if value is not None:
            parse_price_range(value)
        return value

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def _parse_dates(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return parse_timestamp(value)

    def matches(self, obs: PriceObservation) -> bool:
        """Whether a snapshot row passes every configured filter."""
        product = obs.product
        checks: list[tuple[Optional[str], Callable[[], Optional[str]]]] = [
            (self.brand, lambda: product.brand if product else None),
            (self.category, lambda: product.category if product else None),
            (self.model, lambda: product.model if product else None),
            (self.submodel, lambda: product.submodel if product else None),
            (self.ctx_precio, lambda: obs.ctx_precio),
        ]
        for expected, actual in checks:
            if expected is not None and actual() != expected:
                return False

        if self.price_range:
            low, high = parse_price_range(self.price_range)
            price = effective_price(obs)
            if price < low or price > high:
                return False

        if self.date_from and obs.date < self.date_from:
            return False
        if self.date_to and obs.date > self.date_to:
            return False
        return True

    def apply(self, rows: Iterable[PriceObservation]) -> list[PriceObservation]:
        return [row for row in rows if self.matches(row)]

    def as_applied(self) -> dict:
        """Echo of the filters in the response."""
        return {
            "brand": self.brand or "",
            "category": self.category or "",
            "model": self.model or "",
            "submodel": self.submodel or "",
            "ctx_precio": self.ctx_precio or "",
            "priceRange": self.price_range or "",
            "date_from": self.date_from.isoformat() if self.date_from else "",
            "date_to": self.date_to.isoformat() if self.date_to else "",
        }


def latest_per_product(
    rows: Iterable[PriceObservation],
    key: Optional[Callable[[PriceObservation], Optional[str]]] = None,
) -> list[PriceObservation]:
    """Most recent observation per product, in first-seen order.

    Rows without a key are skipped. On equal dates the first row seen wins.
    """
    rows = list(rows)
    key = key or (lambda obs: obs.product_key)
    frame = pd.DataFrame({
        "key": [key(row) for row in rows],
        "date": pd.to_datetime([row.date for row in rows], utc=True),
    }).dropna(subset=["key"])
    if frame.empty:
        return []

    frame["first_seen"] = frame.groupby("key", sort=False).ngroup()
    latest = (
        frame.sort_values("date", ascending=False, kind="stable")
        .drop_duplicates("key")
        .sort_values("first_seen", kind="stable")
    )
    return [rows[position] for position in latest.index]
