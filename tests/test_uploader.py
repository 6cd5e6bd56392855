"""Tests for upload ingestion."""
import asyncio
import json
import pytest

from price_insights.ingest.uploader import UploadIngester, UploadRequest
from price_insights.store.local_store import LocalStore


def _ingest(store, rows, batch_id="job-1", **kwargs):
    request = UploadRequest(data=rows, batchId=batch_id)
    return asyncio.run(UploadIngester(store, **kwargs).ingest(request))


def test_ingest_creates_products_and_prices(tmp_path, upload_rows):
    """Rows create one product per ID_Base and one price row each."""
    store = LocalStore(tmp_path)
    rows = [
        upload_rows("A1", fecha="2025-06-01"),
        upload_rows("A1", fecha="2025-06-08", precio=15_490_000),
        upload_rows("B2", modelo="Corolla 2.0 XEI"),
    ]

    result = _ingest(store, rows)

    assert result.success is True
    assert result.status == "completed"
    assert (result.processed, result.failed, result.total) == (3, 0, 3)
    assert len(store.tables["products"]) == 2
    assert len(store.tables["price_data"]) == 3

    product = store.tables["products"][0]
    assert product["id_base"] == "A1"
    assert product["brand"] == product["category"] == "Toyota"
    assert product["model"] == "Corolla"
    assert product["name"] == "Corolla 1.8 GLI"

    price = store.tables["price_data"][1]
    assert price["product_id"] == product["id"]
    assert price["price"] == price["precio_num"] == 15_490_000
    assert price["store"] == "Toyota"
    assert price["url"] == price["modelo_url"] == "https://example.com/A1"
    assert price["date"].startswith("2025-06-08T00:00:00")


def test_invalid_rows_are_reported_not_fatal(tmp_path, upload_rows):
    """An invalid row is reported and the job still completes."""
    store = LocalStore(tmp_path)
    bad = upload_rows("C3")
    del bad["Modelo"]
    rows = [upload_rows("A1"), bad, upload_rows("B2")]

    result = _ingest(store, rows)

    assert result.success is True
    assert (result.processed, result.failed) == (2, 1)
    assert "Modelo" in result.results[1]["error"]
    assert result.results[0] == {"item": rows[0], "success": True}

    job = store.tables["scraping_jobs"][0]
    assert job["status"] == "completed"
    assert job["completed_products"] == 3
    assert len(job["results"]) == 3


def test_store_failure_keeps_earlier_rows(tmp_path, upload_rows):
    """A store error fails only that row."""
    class FlakyStore(LocalStore):
        async def insert_price(self, price_row):
            if price_row["modelo_url"].endswith("B2"):
                raise RuntimeError("insert rejected")
            await super().insert_price(price_row)

    store = FlakyStore(tmp_path)
    result = _ingest(store, [upload_rows("A1"), upload_rows("B2")])

    assert (result.processed, result.failed) == (1, 1)
    assert result.results[1]["error"] == "insert rejected"
    assert len(store.tables["price_data"]) == 1


def test_fail_fast_stops_the_job(tmp_path, upload_rows):
    """fail_fast stops at the first failed row."""
    store = LocalStore(tmp_path)
    bad = upload_rows("X")
    bad["Fecha"] = "not a date"

    result = _ingest(store, [bad, upload_rows("A1")], fail_fast=True)

    assert result.success is False
    assert result.status == "failed"
    assert result.error_message.startswith("fail_fast")
    assert len(result.results) == 1
    assert store.tables["price_data"] == []
    assert store.tables["scraping_jobs"][0]["error_message"] == result.error_message


def test_max_consecutive_errors(tmp_path, upload_rows):
    """A run of failures stops the job."""
    store = LocalStore(tmp_path)
    rows = [{"ID_Base": "x"}, {"ID_Base": "y"}, upload_rows("A1")]

    result = _ingest(store, rows, max_consecutive_errors=2)

    assert result.status == "failed"
    assert result.error_message == "Reached max_consecutive_errors=2"
    assert len(result.results) == 2


def test_content_upload_with_generated_batch_id(tmp_path, upload_rows):
    """File content is parsed and a job id generated."""
    store = LocalStore(tmp_path)
    request = UploadRequest(content=json.dumps({"data": [upload_rows("A1")]}), filename="prices.json")

    result = asyncio.run(UploadIngester(store).ingest(request))

    assert result.processed == 1
    assert len(result.job_id) == 36
    assert result.model_dump(by_alias=True)["jobId"] == result.job_id


def test_invalid_content_raises():
    """Bad JSON or a missing data array is a ValueError."""
    with pytest.raises(ValueError):
        UploadRequest(content="{not json").rows()
    with pytest.raises(ValueError):
        UploadRequest(content='{"rows": []}').rows()


def test_request_requires_rows():
    """A request needs data or content."""
    with pytest.raises(ValueError):
        UploadRequest(batchId="job-1")


def test_duplicate_batch_id_rejected(tmp_path, upload_rows):
    """A batch id can only be used once."""
    store = LocalStore(tmp_path)
    _ingest(store, [upload_rows("A1")])
    with pytest.raises(ValueError):
        _ingest(store, [upload_rows("B2")])


def test_fail_fast_on_last_row_fails_the_job(tmp_path, upload_rows):
    """A stop condition first met on the final row still fails the job."""
    store = LocalStore(tmp_path)
    bad = upload_rows("X")
    bad["Fecha"] = "not a date"

    result = _ingest(store, [upload_rows("A1"), bad], fail_fast=True)

    assert result.success is False
    assert result.status == "failed"
    assert (result.processed, result.failed) == (1, 1)
    assert result.error_message.startswith("fail_fast")
    assert store.tables["scraping_jobs"][0]["status"] == "failed"


def test_max_errors_reached_on_last_row(tmp_path, upload_rows):
    """Reaching max_errors on the final row fails the job."""
    store = LocalStore(tmp_path)
    rows = [{"ID_Base": "x"}, upload_rows("A1"), {"ID_Base": "y"}]

    result = _ingest(store, rows, max_errors=2)

    assert result.status == "failed"
    assert result.error_message == "Reached max_errors=2"
    assert len(result.results) == 3
    assert store.tables["scraping_jobs"][0]["status"] == "failed"


def test_progress_write_failure_closes_job_as_failed(tmp_path, upload_rows):
    """An error outside row processing fails the job and propagates."""
    class BrokenProgressStore(LocalStore):
        async def update_job_progress(self, job_id, completed):
            raise RuntimeError("progress write rejected")

    store = BrokenProgressStore(tmp_path)

    with pytest.raises(RuntimeError, match="progress write rejected"):
        _ingest(store, [upload_rows("A1"), upload_rows("B2")])

    job = store.tables["scraping_jobs"][0]
    assert job["status"] == "failed"
    assert job["error_message"] == "progress write rejected"
    assert len(job["results"]) == 1
