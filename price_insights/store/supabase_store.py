"""Supabase store with paginated reads; reads and updates are retried."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from supabase import create_client, Client
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from price_insights.config import config
from price_insights.models import PriceObservation, Product, ScrapingJob
from price_insights.store.base import PriceStore

logger = logging.getLogger(__name__)

PRICE_COLUMNS = (
    "id, product_id, price, date, store, ctx_precio, precio_num, precio_lista_num, "
    "bono_num, precio_texto, fuente_texto_raw, modelo_url, archivo_origen, url, "
    "products!inner (id, id_base, brand, category, model, name, submodel)"
)

retry_supabase = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((Exception,)),
    reraise=True,
)


class SupabaseStore(PriceStore):
    """Reads and writes the dashboard tables through the Supabase client."""

    name = "supabase"

    def __init__(self, client: Optional[Client] = None):
        if client is None:
            if not config.SUPABASE_URL or not config.supabase_key():
                raise ValueError("Supabase configuration missing")
            client = create_client(config.SUPABASE_URL, config.supabase_key())
        self.client = client
        self.products_table = config.PRODUCTS_TABLE
        self.price_table = config.PRICE_TABLE
        self.jobs_table = config.JOBS_TABLE
        self.page_size = config.FETCH_PAGE_SIZE

    async def _run(self, func, *args):
        """Run a sync Supabase call in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    # Reads

    @retry_supabase
    def _fetch_page(self, table: str, columns: str, start: int, order: str, desc: bool) -> list[dict]:
        response = (
            self.client.table(table)
            .select(columns)
            .order(order, desc=desc)
            .range(start, start + self.page_size - 1)
            .execute()
        )
        return response.data or []

    def _fetch_all_sync(self, table: str, columns: str, order: str, desc: bool) -> list[dict]:
        """Page through a table; PostgREST caps each response."""
        rows: list[dict] = []
        start = 0
        while True:
            page = self._fetch_page(table, columns, start, order, desc)
            rows.extend(page)
            if len(page) < self.page_size:
                break
            start += self.page_size
        return rows

    async def fetch_price_history(self) -> list[PriceObservation]:
        rows = await self._run(self._fetch_all_sync, self.price_table, PRICE_COLUMNS, "date", True)
        logger.info(f"Retrieved {len(rows)} price rows from Supabase")
        return [PriceObservation.model_validate(row) for row in rows]

    async def fetch_products(self) -> list[Product]:
        rows = await self._run(self._fetch_all_sync, self.products_table, "*", "brand", False)
        return [Product.model_validate(row) for row in rows]

    @retry_supabase
    def _find_product_sync(self, id_base: str) -> Optional[str]:
        response = (
            self.client.table(self.products_table)
            .select("id")
            .eq("id_base", id_base)
            .limit(1)
            .execute()
        )
        return str(response.data[0]["id"]) if response.data else None

    async def find_product_id(self, id_base: str) -> Optional[str]:
        return await self._run(self._find_product_sync, id_base)

    # Writes. Inserts run once; only updates are retried.

    def _insert_sync(self, table: str, row: dict[str, Any]) -> list[dict]:
        response = self.client.table(table).insert(row).execute()
        return response.data or []

    async def insert_product(self, product: dict[str, Any]) -> str:
        data = await self._run(self._insert_sync, self.products_table, product)
        if not data:
            raise RuntimeError(f"Product insert returned no row for id_base={product.get('id_base')}")
        return str(data[0]["id"])

    async def insert_price(self, price_row: dict[str, Any]) -> None:
        await self._run(self._insert_sync, self.price_table, price_row)

    @retry_supabase
    def _update_job_sync(self, job_id: str, values: dict[str, Any]) -> None:
        (
            self.client.table(self.jobs_table)
            .update(values)
            .eq("id", job_id)
            .execute()
        )

    async def create_job(self, job_id: str, total: int) -> ScrapingJob:
        data = await self._run(self._insert_sync, self.jobs_table, {
            "id": job_id,
            "status": "processing",
            "total_products": total,
            "completed_products": 0,
        })
        if data:
            return ScrapingJob.model_validate(data[0])
        return ScrapingJob(id=job_id, total_products=total)

    async def update_job_progress(self, job_id: str, completed: int) -> None:
        await self._run(self._update_job_sync, job_id, {"completed_products": completed})

    async def complete_job(
        self,
        job_id: str,
        status: str,
        results: list[dict[str, Any]],
        error_message: Optional[str] = None,
    ) -> None:
        values = {
            "status": status,
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "results": results,
        }
        if error_message:
            values["error_message"] = error_message[:1000]
        await self._run(self._update_job_sync, job_id, values)

    @retry_supabase
    def _list_jobs_sync(self, limit: int) -> list[dict]:
        response = (
            self.client.table(self.jobs_table)
            .select("*")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    async def list_jobs(self, limit: int = 10) -> list[ScrapingJob]:
        rows = await self._run(self._list_jobs_sync, limit)
        return [ScrapingJob.model_validate(row) for row in rows]

    async def test_connection(self) -> bool:
        """Test Supabase connection."""
        try:
            await self._run(
                lambda: (
                    self.client.table(self.products_table)
                    .select("id", count="exact")
                    .limit(1)
                    .execute()
                ),
            )
            logger.info("Supabase connection successful")
            return True
        except Exception as e:
            logger.error(f"Supabase connection test failed: {e}")
            return False
