"""Upload ingestion: JSON pricing rows into products and price_data."""
import logging
import uuid
from typing import Any, Optional
import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from price_insights.config import config
from price_insights.jobs.metrics import Metrics
from price_insights.jobs.run_control import RunControl
from price_insights.models import UploadRecord
from price_insights.redact import redact_json
from price_insights.store.base import PriceStore

logger = logging.getLogger(__name__)


class UploadRequest(BaseModel):
    """Body of an upload: rows inline, or the raw text of an uploaded file."""

    model_config = ConfigDict(populate_by_name=True)

    data: Optional[list[Any]] = None
    batch_id: Optional[str] = Field(default=None, alias="batchId")
    content: Optional[str] = None
    filename: Optional[str] = None

    @model_validator(mode="after")
    def _require_rows(self) -> "UploadRequest":
        if self.data is None and self.content is None:
            raise ValueError("Either 'data' or 'content' is required")
        return self

    def rows(self) -> list[Any]:
        """Rows to ingest, parsing ``content`` when no inline data was sent."""
        if self.data is not None:
            return self.data

        try:
            parsed = orjson.loads(self.content)
        except orjson.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {self.filename or 'upload'}: {e}")
        if isinstance(parsed, dict):
            parsed = parsed.get("data")
        if not isinstance(parsed, list):
            raise ValueError("Upload must be a JSON array of rows or an object with a 'data' array")
        return parsed


class UploadResult(BaseModel):
    """Outcome of an upload run."""

    success: bool
    job_id: str = Field(serialization_alias="jobId")
    status: str
    processed: int
    failed: int
    total: int
    error_message: Optional[str] = None
    results: list[dict[str, Any]]


def _validation_message(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(loc) for loc in detail.get("loc", ()))
        parts.append(f"{location}: {detail.get('msg')}" if location else str(detail.get("msg")))
    return "; ".join(parts)


class UploadIngester:
    """Ingests rows one by one, tracking progress on a scraping job.

    Rows are independent: a failed row is reported in the results and the
    rows already written stay written.
    """

    def __init__(
        self,
        store: PriceStore,
        max_errors: Optional[int] = None,
        max_consecutive_errors: Optional[int] = None,
        fail_fast: bool = False,
        progress_every: Optional[int] = None,
    ):
        self.store = store
        self.run_control = RunControl(
            max_errors=max_errors,
            max_consecutive_errors=max_consecutive_errors,
            fail_fast=fail_fast,
        )
        self.progress_every = progress_every or config.PROGRESS_EVERY

    async def _ingest_row(self, record: UploadRecord, metrics: Metrics) -> None:
        product_id = await self.store.find_product_id(record.id_base)
        if product_id is None:
            product_id = await self.store.insert_product(record.to_product())
            metrics.increment("new_products")
            logger.debug(f"Created product {product_id} for id_base={record.id_base}")
        await self.store.insert_price(record.to_price_row(product_id))

    async def _ingest_rows(
        self,
        job_id: str,
        rows: list[Any],
        metrics: Metrics,
        results: list[dict[str, Any]],
    ) -> Optional[str]:
        """Process rows in order; returns the stop reason when one fired."""
        for item in rows:
            try:
                record = UploadRecord.model_validate(item)
                await self._ingest_row(record, metrics)
                results.append({"item": item, "success": True})
                metrics.increment("ok")
                self.run_control.record_success()
            except ValidationError as e:
                message = _validation_message(e)
                logger.warning(f"Invalid row in upload {job_id}: {message}")
                results.append({"item": item, "error": message})
                metrics.increment("failed")
                self.run_control.record_error(message)
            except Exception as e:
                logger.error(f"Error processing row in upload {job_id}: {e}", exc_info=True)
                results.append({"item": item, "error": str(e)})
                metrics.increment("failed")
                self.run_control.record_error(str(e))

            metrics.increment("processed")
            await self.store.update_job_progress(job_id, metrics.processed)
            if metrics.processed % self.progress_every == 0:
                metrics.report()

            should_stop, stop_reason = self.run_control.should_stop()
            if should_stop:
                logger.warning(f"Stopping upload {job_id}: {stop_reason}")
                return stop_reason
        return None

    async def ingest(self, request: UploadRequest) -> UploadResult:
        """Create the job, ingest every row, then close the job.

        A failure outside row processing (job progress writes) closes the job
        as failed with the partial results before the error propagates.
        """
        rows = request.rows()
        job_id = request.batch_id or str(uuid.uuid4())
        logger.info(f"Processing upload {job_id} ({len(rows)} rows) into {self.store.name} store")

        await self.store.create_job(job_id, len(rows))

        metrics = Metrics(len(rows), job_id=job_id)
        results: list[dict[str, Any]] = []
        try:
            stop_reason = await self._ingest_rows(job_id, rows, metrics, results)
        except Exception as e:
            logger.error(f"Upload {job_id} aborted after {metrics.processed} rows: {e}", exc_info=True)
            try:
                await self.store.complete_job(job_id, "failed", redact_json(results), error_message=str(e))
            except Exception as close_error:
                logger.error(f"Could not mark upload {job_id} as failed: {close_error}")
            raise

        status = "failed" if stop_reason else "completed"
        await self.store.complete_job(job_id, status, redact_json(results), error_message=stop_reason)

        summary = metrics.get_summary()
        logger.info(
            f"Upload {job_id} {status} in {summary['elapsed_seconds']}s. OK: {summary['ok']} | "
            f"Failed: {summary['failed']} | Total: {summary['total']} | New products: {summary['new_products']}"
        )

        return UploadResult(
            success=status == "completed",
            job_id=job_id,
            status=status,
            processed=summary["ok"],
            failed=summary["failed"],
            total=len(rows),
            error_message=stop_reason,
            results=results,
        )
