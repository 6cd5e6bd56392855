"""Local JSON store for dry runs and offline analysis."""
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
import aiofiles
import orjson

from price_insights.config import LOCAL_STORE_DIR
from price_insights.models import PriceObservation, Product, ScrapingJob
from price_insights.store.base import PriceStore

logger = logging.getLogger(__name__)

TABLES = ("products", "price_data", "scraping_jobs")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class LocalStore(PriceStore):
    """Keeps the three tables as JSON files under one directory.

    Tables are loaded on first use and written back after every change.
    """

    name = "local"

    def __init__(self, store_dir: Path = LOCAL_STORE_DIR):
        self.store_dir = Path(store_dir)
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def _table_file(self, table: str) -> Path:
        return self.store_dir / f"{table}.json"

    async def _load(self) -> None:
        if self.tables:
            return
        self.store_dir.mkdir(parents=True, exist_ok=True)
        for table in TABLES:
            path = self._table_file(table)
            if not path.exists():
                self.tables[table] = []
                continue
            async with aiofiles.open(path, "rb") as f:
                content = await f.read()
            self.tables[table] = orjson.loads(content) if content.strip() else []
        logger.debug(
            f"Loaded local store from {self.store_dir}: "
            + ", ".join(f"{t}={len(rows)}" for t, rows in self.tables.items())
        )

    async def _flush(self, table: str) -> None:
        self.store_dir.mkdir(parents=True, exist_ok=True)
        path = self._table_file(table)
        async with aiofiles.open(path, "wb") as f:
            await f.write(orjson.dumps(self.tables[table], option=orjson.OPT_INDENT_2))

    @classmethod
    def from_export(cls, export_file: Path, store_dir: Optional[Path] = None) -> "LocalStore":
        """Store seeded from a price_data export with embedded products.

        Each row of the export must look like a Supabase ``price_data`` row
        selected with ``products(...)``.
        """
        rows = orjson.loads(Path(export_file).read_bytes())
        if isinstance(rows, dict):
            rows = rows.get("data", [])

        store = cls(store_dir or LOCAL_STORE_DIR)
        products: dict[str, dict[str, Any]] = {}
        prices = []
        for row in rows:
            product = row.get("products") or {}
            product_id = str(product.get("id") or row.get("product_id") or uuid.uuid4())
            products.setdefault(product_id, {**product, "id": product_id})
            price = {k: v for k, v in row.items() if k != "products"}
            price["product_id"] = product_id
            price.setdefault("id", str(uuid.uuid4()))
            prices.append(price)

        store.tables = {
            "products": list(products.values()),
            "price_data": prices,
            "scraping_jobs": [],
        }
        logger.info(f"Loaded {len(prices)} price rows for {len(products)} products from {export_file}")
        return store

    # Reads

    async def fetch_price_history(self) -> list[PriceObservation]:
        await self._load()
        products = {str(p["id"]): p for p in self.tables["products"]}
        observations = []
        for row in self.tables["price_data"]:
            product = products.get(str(row.get("product_id")))
            if product is None:
                continue
            observations.append(PriceObservation.model_validate({**row, "products": product}))
        observations.sort(key=lambda obs: obs.date, reverse=True)
        return observations

    async def fetch_products(self) -> list[Product]:
        await self._load()
        return [Product.model_validate(row) for row in self.tables["products"]]

    async def find_product_id(self, id_base: str) -> Optional[str]:
        await self._load()
        for row in self.tables["products"]:
            if row.get("id_base") == id_base:
                return str(row["id"])
        return None

    # Writes

    async def insert_product(self, product: dict[str, Any]) -> str:
        async with self._lock:
            await self._load()
            row = {**product, "id": str(uuid.uuid4()), "created_at": _now(), "updated_at": _now()}
            self.tables["products"].append(row)
            await self._flush("products")
            return row["id"]

    async def insert_price(self, price_row: dict[str, Any]) -> None:
        async with self._lock:
            await self._load()
            self.tables["price_data"].append({**price_row, "id": str(uuid.uuid4()), "created_at": _now()})
            await self._flush("price_data")

    async def create_job(self, job_id: str, total: int) -> ScrapingJob:
        async with self._lock:
            await self._load()
            if any(job["id"] == job_id for job in self.tables["scraping_jobs"]):
                raise ValueError(f"Job {job_id} already exists")
            row = {
                "id": job_id,
                "status": "processing",
                "total_products": total,
                "completed_products": 0,
                "created_at": _now(),
                "updated_at": _now(),
            }
            self.tables["scraping_jobs"].append(row)
            await self._flush("scraping_jobs")
            return ScrapingJob.model_validate(row)

    async def _update_job(self, job_id: str, values: dict[str, Any]) -> None:
        async with self._lock:
            await self._load()
            for job in self.tables["scraping_jobs"]:
                if job["id"] == job_id:
                    job.update(values, updated_at=_now())
                    break
            else:
                raise KeyError(f"Unknown job {job_id}")
            await self._flush("scraping_jobs")

    async def update_job_progress(self, job_id: str, completed: int) -> None:
        await self._update_job(job_id, {"completed_products": completed})

    async def complete_job(
        self,
        job_id: str,
        status: str,
        results: list[dict[str, Any]],
        error_message: Optional[str] = None,
    ) -> None:
        values = {"status": status, "completed_at": _now(), "results": results}
        if error_message:
            values["error_message"] = error_message[:1000]
        await self._update_job(job_id, values)

    async def list_jobs(self, limit: int = 10) -> list[ScrapingJob]:
        await self._load()
        jobs = sorted(self.tables["scraping_jobs"], key=lambda j: j.get("created_at") or "", reverse=True)
        return [ScrapingJob.model_validate(job) for job in jobs[:limit]]

    async def test_connection(self) -> bool:
        try:
            await self._load()
            return True
        except Exception as e:
            logger.error(f"Local store unavailable at {self.store_dir}: {e}")
            return False
