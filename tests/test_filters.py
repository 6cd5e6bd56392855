"""Tests for analytics filters and the latest snapshot."""
import math
import pytest

from price_insights.analytics.filters import AnalyticsFilters, latest_per_product, parse_price_range


def test_parse_price_range():
    """Both the closed and the open-ended forms are accepted."""
    assert parse_price_range("100-200") == (100, 200)
    assert parse_price_range("500+") == (500, math.inf)


def test_parse_price_range_invalid():
    """Anything else is a ValueError."""
    with pytest.raises(ValueError):
        parse_price_range("cheap")


def test_invalid_price_range_rejected_by_filters():
    """The filters model validates the price range up front."""
    with pytest.raises(ValueError):
        AnalyticsFilters(price_range="1-2-3")


def test_blank_filters_are_ignored(market):
    """Blank strings are treated as absent filters."""
    filters = AnalyticsFilters(brand="", category="  ", date_from="")
    assert filters.brand is None
    assert filters.category is None
    assert filters.date_from is None
    assert len(filters.apply(market)) == len(market)


def test_latest_per_product(market):
    """Each product keeps its newest observation."""
    latest = latest_per_product(sorted(market, key=lambda r: r.date, reverse=True))
    prices = {row.product.model: row.precio_num for row in latest}
    assert prices == {"RAV4": 30_000_000, "Corolla": 20_000_000, "Sportage": 25_000_000, "Rio": 10_000_000}


def test_latest_per_product_first_seen_wins_ties(make_product, make_obs):
    """On equal dates the earlier row is kept."""
    prod = make_product("p1")
    first = make_obs(prod, 100)
    second = make_obs(prod, 200)
    assert latest_per_product([first, second]) == [first]


def test_latest_per_product_keeps_first_seen_order(make_product, make_obs):
    """Output follows the first appearance of each product, even when a later row is newer."""
    a = make_product("a")
    b = make_product("b")
    rows = [make_obs(a, 100, days_ago=5), make_obs(b, 200, days_ago=1), make_obs(a, 150, days_ago=0)]

    latest = latest_per_product(rows)

    assert [row.product_id for row in latest] == ["a", "b"]
    assert latest[0].precio_num == 150


def test_latest_per_product_skips_rows_without_key(make_product, make_obs):
    """Rows whose key is None are left out."""
    rows = [make_obs(make_product("a"), 100), make_obs(make_product("b"), 200)]
    latest = latest_per_product(rows, key=lambda row: None if row.product_id == "a" else row.product_id)
    assert [row.product_id for row in latest] == ["b"]
    assert latest_per_product([]) == []


def test_filter_by_product_fields(market):
    """Brand, category and price context filters match exactly."""
    assert {r.product.model for r in AnalyticsFilters(brand="Kia").apply(market)} == {"Sportage", "Rio"}
    assert {r.product.model for r in AnalyticsFilters(category="Sedan").apply(market)} == {"Corolla", "Rio"}
    assert [r.product.model for r in AnalyticsFilters(ctx_precio="credito").apply(market)] == ["Rio"]


def test_filter_by_price_range_inclusive(market):
    """Range bounds are inclusive and "min+" has no upper bound."""
    selected = AnalyticsFilters(price_range="20000000-25000000").apply(market)
    assert sorted(r.precio_num for r in selected) == [20_000_000, 20_000_000, 25_000_000]

    open_ended = AnalyticsFilters(price_range="28000000+").apply(market)
    assert sorted(r.precio_num for r in open_ended) == [28_000_000, 30_000_000]


def test_filter_by_date_range(market, now):
    """Date bounds keep observations inside the window."""
    filters = AnalyticsFilters(date_from="2025-06-25", date_to=now.isoformat())
    selected = filters.apply(market)
    assert all(row.date.day >= 29 for row in selected)
    assert len(selected) == 4


def test_as_applied_echoes_filters():
    """The response echo uses empty strings for unset filters."""
    applied = AnalyticsFilters(brand="Kia", price_range="0-100").as_applied()
    assert applied["brand"] == "Kia"
    assert applied["priceRange"] == "0-100"
    assert applied["model"] == ""
