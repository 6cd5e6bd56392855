"""Run control: stop conditions for upload ingestion."""
from typing import Optional
from dataclasses import dataclass


@dataclass
class RunControl:
    """Decides when an ingest run must stop early."""

    max_errors: Optional[int] = None
    max_consecutive_errors: Optional[int] = None
    fail_fast: bool = False

    # Internal state
    error_count: int = 0
    consecutive_errors: int = 0
    last_error: Optional[str] = None

    def should_stop(self) -> tuple[bool, Optional[str]]:
        """Check if run should stop. Returns (should_stop, reason)."""
        if self.fail_fast and self.error_count > 0:
            return True, f"fail_fast: {self.last_error}"

        if self.max_errors and self.error_count >= self.max_errors:
            return True, f"Reached max_errors={self.max_errors}"

        if self.max_consecutive_errors and self.consecutive_errors >= self.max_consecutive_errors:
            return True, f"Reached max_consecutive_errors={self.max_consecutive_errors}"

        return False, None

    def record_error(self, message: str = "") -> None:
        """Record a failed row."""
        self.error_count += 1
        self.consecutive_errors += 1
        self.last_error = message or None

    def record_success(self) -> None:
        self.consecutive_errors = 0
