"""Main entry point with CLI."""
import argparse
import asyncio
import sys
import logging
from pathlib import Path
from typing import Any
import orjson

from price_insights.analytics.distribution import compute_price_distribution
from price_insights.analytics.filters import AnalyticsFilters
from price_insights.analytics.insights import generate_insights
from price_insights.analytics.reducer import compute_analytics
from price_insights.catalog import compare_products
from price_insights.config import config, Config, LOCAL_STORE_DIR
from price_insights.ingest.uploader import UploadIngester, UploadRequest
from price_insights.logging_conf import setup_logging
from price_insights.models import parse_timestamp
from price_insights.store.base import PriceStore
from price_insights.store.local_store import LocalStore
from price_insights.store.supabase_store import SupabaseStore

logger = logging.getLogger(__name__)


def _add_filter_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--brand", default=None, help="Filter by brand")
    parser.add_argument("--category", default=None, help="Filter by category")
    parser.add_argument("--model", default=None, help="Filter by main model")
    parser.add_argument("--submodel", default=None, help="Filter by submodel")
    parser.add_argument("--ctx-precio", default=None, help="Filter by price context tag")
    parser.add_argument("--price-range", default=None, help="Price range: 'min-max' or 'min+'")
    parser.add_argument("--date-from", default=None, help="Only observations on/after this ISO date")
    parser.add_argument("--date-to", default=None, help="Only observations on/before this ISO date")


def _add_source_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--input",
        type=Path,
        default=None,
        help="Read a price_data JSON export instead of Supabase",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help=f"Use the local store ({LOCAL_STORE_DIR}) instead of Supabase",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Automotive pricing analytics")
    parser.add_argument("--log-level", default=None, help=f"Log level (default: {config.LOG_LEVEL})")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analytics = subparsers.add_parser("analytics", help="Market metrics and chart data")
    _add_filter_args(analytics)
    _add_source_args(analytics)

    insights = subparsers.add_parser("insights", help="Generated market insights")
    insights.add_argument("--now", default=None, help="Reference time for trend windows (ISO)")
    _add_source_args(insights)

    distribution = subparsers.add_parser("distribution", help="Quartile price distribution")
    _add_filter_args(distribution)
    _add_source_args(distribution)

    compare = subparsers.add_parser("compare", help="Compare up to four products")
    compare.add_argument("product_ids", nargs="+", help="Product ids")
    _add_source_args(compare)

    upload = subparsers.add_parser("upload", help="Ingest a JSON pricing dataset")
    upload.add_argument("file", type=Path, help="JSON file: array of rows or {'data': [...]}")
    upload.add_argument("--batch-id", default=None, help="Job id (default: random UUID)")
    upload.add_argument("--max-errors", type=int, default=None, help="Stop if failed rows >= N")
    upload.add_argument(
        "--max-consecutive-errors",
        type=int,
        default=None,
        help="Stop if N consecutive rows fail",
    )
    upload.add_argument("--fail-fast", action="store_true", help="Stop on the first failed row")
    upload.add_argument(
        "--dry-run",
        action="store_true",
        help="Write into the local store instead of Supabase",
    )

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    return parser.parse_args(argv)


def build_store(args: argparse.Namespace) -> PriceStore:
    """Store selected by the source flags."""
    if getattr(args, "input", None):
        return LocalStore.from_export(args.input)
    if getattr(args, "local", False) or getattr(args, "dry_run", False):
        return LocalStore()
    Config.validate(require_supabase=True)
    return SupabaseStore()


def build_filters(args: argparse.Namespace) -> AnalyticsFilters:
    return AnalyticsFilters(
        brand=args.brand,
        category=args.category,
        model=args.model,
        submodel=args.submodel,
        ctx_precio=args.ctx_precio,
        price_range=args.price_range,
        date_from=args.date_from,
        date_to=args.date_to,
    )


def emit(payload: Any) -> None:
    """Write a JSON document to stdout."""
    sys.stdout.buffer.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2) + b"\n")
    sys.stdout.flush()


async def run_command(args: argparse.Namespace) -> Any:
    """Execute an analysis or upload command and return its payload."""
    store = build_store(args)

    if args.command == "upload":
        request = UploadRequest(content=args.file.read_text(encoding="utf-8"), filename=args.file.name,
                                batchId=args.batch_id)
        ingester = UploadIngester(
            store,
            max_errors=args.max_errors,
            max_consecutive_errors=args.max_consecutive_errors,
            fail_fast=args.fail_fast,
        )
        result = await ingester.ingest(request)
        return result.model_dump(by_alias=True)

    history = await store.fetch_price_history()
    if args.command == "analytics":
        return compute_analytics(history, build_filters(args))
    if args.command == "distribution":
        return compute_price_distribution(history, build_filters(args))
    if args.command == "insights":
        now = parse_timestamp(args.now) if args.now else None
        return generate_insights(history, now=now)
    if args.command == "compare":
        return compare_products(history, args.product_ids)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    if args.command == "serve":
        import uvicorn
        logger.info(f"Serving API on {args.host}:{args.port}")
        uvicorn.run("price_insights.api.main:app", host=args.host, port=args.port)
        return

    try:
        payload = asyncio.run(run_command(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Error: {e}")
        sys.exit(2)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    emit(payload)
    if args.command == "upload" and not payload.get("success"):
        sys.exit(1)


if __name__ == "__main__":
    main()
