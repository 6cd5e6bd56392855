"""FastAPI main application."""
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from pydantic import ValidationError

from price_insights import catalog
from price_insights.analytics.distribution import compute_price_distribution
from price_insights.analytics.filters import AnalyticsFilters
from price_insights.analytics.insights import generate_insights
from price_insights.analytics.reducer import compute_analytics
from price_insights.config import config, Config
from price_insights.ingest.uploader import UploadIngester, UploadRequest, UploadResult
from price_insights.models import Product, ScrapingJob
from price_insights.store.base import PriceStore
from price_insights.store.local_store import LocalStore
from price_insights.store.supabase_store import SupabaseStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Price Insights API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type", "x-api-key"],
)

# API Key security (if configured)
API_KEY_HEADER = APIKeyHeader(name="X-API-KEY", auto_error=False)


def verify_api_key(api_key: Optional[str] = Depends(API_KEY_HEADER)) -> bool:
    """Verify API key if configured."""
    expected_key = config.API_KEY
    if expected_key:
        if not api_key or api_key != expected_key:
            raise HTTPException(status_code=403, detail="Invalid API key")
    return True


@lru_cache(maxsize=1)
def _build_store() -> PriceStore:
    """Supabase when configured, the local store otherwise."""
    if config.SUPABASE_URL:
        Config.validate(require_supabase=True)
        return SupabaseStore()
    logger.warning("SUPABASE_URL not set, serving from the local store")
    return LocalStore()


def get_store() -> PriceStore:
    try:
        return _build_store()
    except Exception as e:
        logger.error(f"Store unavailable: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))


def get_filters(
    brand: Optional[str] = None,
    category: Optional[str] = None,
    model: Optional[str] = None,
    submodel: Optional[str] = None,
    ctx_precio: Optional[str] = None,
    price_range: Optional[str] = Query(default=None, alias="priceRange"),
    date_from: Optional[str] = Query(default=None, alias="dateFrom"),
    date_to: Optional[str] = Query(default=None, alias="dateTo"),
) -> AnalyticsFilters:
    """Analytics filters from the query string."""
    try:
        return AnalyticsFilters(
            brand=brand,
            category=category,
            model=model,
            submodel=submodel,
            ctx_precio=ctx_precio,
            price_range=price_range,
            date_from=date_from,
            date_to=date_to,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid filters: {e.errors()[0]['msg']}")


@app.get("/health")
async def health(store: PriceStore = Depends(get_store)):
    """Health check endpoint (no auth required)."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "store": store.name,
        "store_connected": await store.test_connection(),
    }


@app.get("/analytics")
async def get_analytics(
    filters: AnalyticsFilters = Depends(get_filters),
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
) -> dict[str, Any]:
    """Dashboard metrics and chart data for the filtered market."""
    logger.info(f"Received filters: {filters.as_applied()}")
    try:
        history = await store.fetch_price_history()
        return compute_analytics(history, filters)
    except Exception as e:
        logger.error(f"Error computing analytics: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/insights")
async def get_insights(
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
) -> dict[str, Any]:
    """Generated market insights over the full history."""
    try:
        history = await store.fetch_price_history()
        return generate_insights(history)
    except Exception as e:
        logger.error(f"Error generating insights: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/price-distribution")
async def get_price_distribution(
    filters: AnalyticsFilters = Depends(get_filters),
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
) -> list[dict[str, Any]]:
    """Quartile price segments of the filtered market."""
    try:
        history = await store.fetch_price_history()
        return compute_price_distribution(history, filters)
    except Exception as e:
        logger.error(f"Error computing price distribution: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/upload-json", response_model=UploadResult)
async def upload_json(
    request: UploadRequest,
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
):
    """Ingest an uploaded pricing dataset row by row."""
    try:
        return await UploadIngester(store).ingest(request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Upload failed: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/jobs", response_model=list[ScrapingJob])
async def list_jobs(
    limit: int = Query(default=10, ge=1, le=100),
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
):
    """Newest upload jobs."""
    try:
        return await store.list_jobs(limit)
    except Exception as e:
        logger.error(f"Error listing jobs: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))


async def _products(store: PriceStore) -> list[Product]:
    try:
        return await store.fetch_products()
    except Exception as e:
        logger.error(f"Error fetching products: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/products")
async def list_products(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=500),
    search: Optional[str] = None,
    sort: Optional[str] = None,
    order: str = Query(default="desc", pattern="^(asc|desc)$"),
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
) -> dict[str, Any]:
    """Paginated product list with optional search."""
    products = await _products(store)
    try:
        return catalog.list_products(products, page=page, limit=limit, search=search, sort=sort, order=order)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/products/brands")
async def list_brands(store: PriceStore = Depends(get_store), _: bool = Depends(verify_api_key)) -> list[str]:
    return catalog.list_brands(await _products(store))


@app.get("/products/categories")
async def list_categories(store: PriceStore = Depends(get_store), _: bool = Depends(verify_api_key)) -> list[str]:
    return catalog.list_categories(await _products(store))


@app.get("/products/models")
async def list_models(
    brand: Optional[str] = None,
    category: Optional[str] = None,
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
) -> list[dict[str, Optional[str]]]:
    return catalog.list_models(await _products(store), brand=brand, category=category)


@app.get("/products/compare")
async def compare_products(
    ids: list[str] = Query(...),
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
) -> list[dict[str, Any]]:
    """Price summary and value/stability scores of up to four products."""
    try:
        history = await store.fetch_price_history()
        return catalog.compare_products(history, ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error comparing products: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/price-data/recent")
async def recent_price_data(
    days: int = Query(default=30, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
) -> list[dict[str, Any]]:
    """Newest observations of the last ``days`` days."""
    try:
        history = await store.fetch_price_history()
        return catalog.recent_trends(history, days=days, limit=limit)
    except Exception as e:
        logger.error(f"Error fetching recent prices: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
