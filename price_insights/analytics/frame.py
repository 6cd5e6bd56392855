"""Price history as a pandas DataFrame."""
from typing import Any, Iterable, Optional
import pandas as pd

from price_insights.analytics.stats import effective_price
from price_insights.models import PriceObservation

COLUMNS = [
    "product_id",
    "group_key",
    "brand_model",
    "brand",
    "category",
    "model",
    "submodel",
    "name",
    "ctx_precio",
    "date",
    "price",
]


def observations_frame(rows: Iterable[PriceObservation]) -> pd.DataFrame:
    """One row per observation in input order, priced with the effective price.

    Empty product fields are stored as None so that groupby and nunique skip
    them. ``date`` is a UTC datetime column.
    """
    records = []
    for row in rows:
        product = row.product
        records.append({
            "product_id": row.product_key,
            "group_key": product.group_key if product else None,
            "brand_model": f"{product.brand}-{product.model}" if product else None,
            "brand": (product.brand or None) if product else None,
            "category": (product.category or None) if product else None,
            "model": (product.model or None) if product else None,
            "submodel": (product.submodel or None) if product else None,
            "name": (product.name or None) if product else None,
            "ctx_precio": row.ctx_precio,
            "date": row.date,
            "price": effective_price(row),
        })

    frame = pd.DataFrame(records, columns=COLUMNS)
    frame["date"] = pd.to_datetime(frame["date"], utc=True)
    frame["price"] = frame["price"].astype("float64")
    return frame


def text_value(value: Any) -> Optional[str]:
    """Frame cell as a JSON-friendly text value."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    return value


def isoformat(value: Any) -> str:
    return pd.Timestamp(value).isoformat()
