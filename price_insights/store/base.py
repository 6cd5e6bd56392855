"""Storage interface shared by the Supabase and local stores."""
from abc import ABC, abstractmethod
from typing import Any, Optional

from price_insights.models import PriceObservation, Product, ScrapingJob


class PriceStore(ABC):
    """Tables the service reads and writes: products, price_data, scraping_jobs."""

    name: str = "store"

    @abstractmethod
    async def fetch_price_history(self) -> list[PriceObservation]:
        """Every price observation joined with its product, newest first."""

    @abstractmethod
    async def fetch_products(self) -> list[Product]:
        """Every product."""

    @abstractmethod
    async def find_product_id(self, id_base: str) -> Optional[str]:
        """Id of the product with this natural key, if any."""

    @abstractmethod
    async def insert_product(self, product: dict[str, Any]) -> str:
        """Insert a product row and return its id."""

    @abstractmethod
    async def insert_price(self, price_row: dict[str, Any]) -> None:
        """Insert one price observation."""

    @abstractmethod
    async def create_job(self, job_id: str, total: int) -> ScrapingJob:
        """Create a scraping job in processing state."""

    @abstractmethod
    async def update_job_progress(self, job_id: str, completed: int) -> None:
        """Persist the completed row counter of a job."""

    @abstractmethod
    async def complete_job(
        self,
        job_id: str,
        status: str,
        results: list[dict[str, Any]],
        error_message: Optional[str] = None,
    ) -> None:
        """Close a job with its final status and per-row results."""

    @abstractmethod
    async def list_jobs(self, limit: int = 10) -> list[ScrapingJob]:
        """Newest jobs first."""

    @abstractmethod
    async def test_connection(self) -> bool:
        """Whether the backing storage is reachable."""
