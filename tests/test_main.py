"""Tests for the CLI."""
import asyncio
import json
import pytest

from price_insights.main import build_filters, parse_args, run_command


@pytest.fixture
def export_file(tmp_path, market):
    """The market fixture written as a price_data export."""
    path = tmp_path / "export.json"
    path.write_text(json.dumps([obs.model_dump(mode="json", by_alias=True) for obs in market]))
    return path


def test_parse_args_upload():
    """Upload flags are parsed."""
    args = parse_args(["upload", "prices.json", "--fail-fast", "--max-errors", "5", "--dry-run"])
    assert args.command == "upload"
    assert args.fail_fast is True
    assert args.max_errors == 5
    assert args.dry_run is True


def test_command_is_required():
    """Running without a command exits."""
    with pytest.raises(SystemExit):
        parse_args([])


def test_build_filters():
    """CLI filter flags build analytics filters."""
    args = parse_args(["analytics", "--brand", "Kia", "--price-range", "0-100"])
    filters = build_filters(args)
    assert filters.brand == "Kia"
    assert filters.price_range == "0-100"


def test_analytics_from_export(export_file):
    """Analytics run over an exported file."""
    args = parse_args(["analytics", "--input", str(export_file), "--category", "SUV"])
    payload = asyncio.run(run_command(args))
    assert payload["metrics"]["total_models"] == 2


def test_insights_from_export(export_file, now):
    """Insights honour the --now clock."""
    args = parse_args(["insights", "--input", str(export_file), "--now", now.isoformat()])
    payload = asyncio.run(run_command(args))
    assert payload["generated_at"] == now.isoformat()
    assert payload["data_analyzed"]["total_records"] == 6


def test_distribution_from_export(export_file):
    """Distribution covers the latest snapshot."""
    args = parse_args(["distribution", "--input", str(export_file)])
    payload = asyncio.run(run_command(args))
    assert sum(segment["count"] for segment in payload) == 4


def test_compare_from_export(export_file):
    """The compare command scores the given products."""
    args = parse_args(["compare", "p-rav4", "p-rio", "--input", str(export_file)])
    payload = asyncio.run(run_command(args))
    assert [item["product"]["id"] for item in payload] == ["p-rav4", "p-rio"]
    assert payload[1]["recommendation_score"] == 85
