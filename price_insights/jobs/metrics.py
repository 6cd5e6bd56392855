"""Progress metrics for upload ingestion."""
import time
import logging
from collections import Counter

logger = logging.getLogger(__name__)


class Metrics:
    """Row counters of one upload, with throughput and ETA."""

    def __init__(self, total: int, job_id: str = ""):
        self.total = total
        self.job_id = job_id
        self.start_time = time.time()
        self.counters: Counter = Counter()

    def increment(self, key: str, amount: int = 1) -> None:
        self.counters[key] += amount

    @property
    def processed(self) -> int:
        return self.counters["processed"]

    def get_rate(self) -> float:
        """Rows handled per second since the upload started."""
        elapsed = time.time() - self.start_time
        return self.processed / elapsed if elapsed > 0 else 0.0

    def get_eta(self) -> float:
        """Seconds left at the current rate."""
        rate = self.get_rate()
        if rate <= 0:
            return 0.0
        return max(self.total - self.processed, 0) / rate

    def report(self) -> None:
        """Log current progress."""
        percent = self.processed * 100 // self.total if self.total > 0 else 0
        logger.info(
            f"Job {self.job_id}: {self.processed}/{self.total} ({percent}%) | "
            f"Rate: {self.get_rate():.2f}/s | ETA: {self.get_eta():.0f}s | "
            f"OK: {self.counters['ok']} | Failed: {self.counters['failed']} | "
            f"New products: {self.counters['new_products']}"
        )

    def get_summary(self) -> dict:
        return {
            "total": self.total,
            "processed": self.processed,
            "ok": self.counters["ok"],
            "failed": self.counters["failed"],
            "new_products": self.counters["new_products"],
            "elapsed_seconds": round(time.time() - self.start_time, 2),
        }
