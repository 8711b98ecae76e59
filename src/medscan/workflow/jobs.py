"""
Background extraction jobs (ARQ).

Large uploads are extracted by an ARQ worker instead of the caller. The
job applies the retry policy per error kind:

- rate_limit / api_error: retried with exponential backoff
  (``retry_backoff_base ** attempt`` seconds: 3s, 9s); the last attempt
  marks the record failed with ``retries_exhausted``
- configuration / authentication / extraction / not_found: failed at once
- record deleted or already handled: job discarded quietly
- unexpected exceptions: record marked failed with api_error, then re-raised

Usage:
    # Start the worker
    arq medscan.workflow.jobs.WorkerSettings

    # Or through the CLI
    medscan worker
"""

import asyncio
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from arq import Retry, create_pool
from arq.connections import RedisSettings
from arq.worker import func

from medscan.config import Settings, settings
from medscan.errors import ErrorKind, RecordNotFoundError
from medscan.log import setup_logging
from medscan.models import ExtractionFailure, ExtractionJobRequest
from medscan.storage import FileScanRepository, JsonCatalog, LocalBlobStore

from .lifecycle import CLAIMABLE_STATES, ScanWorkflow

logger = logging.getLogger(__name__)

RETRIES_EXHAUSTED_MESSAGE = "Extraction failed after maximum retry attempts"


def retry_delay(job_try: int, base: Optional[int] = None) -> int:
    """Seconds to wait before the next attempt after attempt ``job_try``."""
    if base is None:
        base = settings.retry_backoff_base
    return base ** job_try


async def extract_document(
    ctx: Dict[str, Any],
    record_type: str,
    record_id: str,
    blob_id: str,
) -> str:
    """
    Extract one scan record in the background.

    Args:
        ctx: ARQ context; needs ``workflow`` and provides ``job_try``
        record_type: Document type value, used for logging
        record_id: Scan record id
        blob_id: Blob holding the uploaded image

    Returns:
        Final state of the job: the record status value, or "discarded"
    """
    workflow: ScanWorkflow = ctx["workflow"]
    job_try = ctx.get("job_try", 1)
    max_attempts = ctx.get("max_attempts", settings.extraction_max_attempts)
    backoff_base = ctx.get("retry_backoff_base", settings.retry_backoff_base)
    record_uuid = UUID(str(record_id))

    record = await asyncio.to_thread(workflow.repository.get, record_uuid)
    if record is None:
        logger.info(
            "Extraction job discarded: record not found (type: %s, id: %s)",
            record_type, record_id,
        )
        return "discarded"
    if record.extraction_status not in CLAIMABLE_STATES:
        logger.info(
            "Extraction job discarded: %s scan %s already %s",
            record_type, record_id, record.extraction_status.value,
        )
        return "discarded"

    try:
        record = await asyncio.to_thread(workflow.begin_processing, record_uuid)
    except RecordNotFoundError:
        logger.info("Extraction job discarded: %s scan %s deleted", record_type, record_id)
        return "discarded"

    try:
        result = await asyncio.to_thread(workflow.execute, record, blob_id)
    except Exception as e:
        await asyncio.to_thread(workflow.abandon, record_uuid, e)
        raise

    if not result.success and result.error_kind.retryable:
        if job_try < max_attempts:
            delay = retry_delay(job_try, backoff_base)
            logger.warning(
                "Extraction attempt %d/%d for %s scan %s failed: type=%s; retrying in %ds",
                job_try, max_attempts, record_type, record_id, result.error_kind.value, delay,
            )
            raise Retry(defer=delay)

        logger.error(
            "Extraction job exhausted retries for %s scan %s (last type=%s)",
            record_type, record_id, result.error_kind.value,
        )
        result = ExtractionFailure(
            error_kind=ErrorKind.RETRIES_EXHAUSTED,
            message=RETRIES_EXHAUSTED_MESSAGE,
        )

    updated = await asyncio.to_thread(workflow.record_result, record_uuid, result)
    if updated is None:
        return "discarded"
    return updated.extraction_status.value


class ArqJobQueue:
    """JobQueue implementation that enqueues extraction jobs in Redis."""

    def __init__(self, redis_settings: Optional[RedisSettings] = None):
        self.redis_settings = redis_settings or RedisSettings.from_dsn(settings.redis_url)

    async def enqueue_async(self, request: ExtractionJobRequest) -> Optional[str]:
        pool = await create_pool(self.redis_settings)
        try:
            job = await pool.enqueue_job(
                "extract_document",
                request.record_type.value,
                str(request.record_id),
                request.blob_id,
                _job_id=request.job_id,
            )
        finally:
            await pool.aclose()

        if job is None:
            logger.info("Extraction job %s already queued", request.job_id)
            return None
        logger.info("Queued extraction job %s", job.job_id)
        return job.job_id

    def enqueue(self, request: ExtractionJobRequest) -> Optional[str]:
        """Enqueue from synchronous code (CLI, sync services)."""
        return asyncio.run(self.enqueue_async(request))


def build_workflow(config: Optional[Settings] = None) -> ScanWorkflow:
    """Wire a workflow with the file-backed stores and default client.

    The model client is built on first use, so a missing model setup
    fails each extraction with a configuration error instead of
    stopping the worker.
    """
    config = config or settings
    return ScanWorkflow(
        repository=FileScanRepository(config.records_dir),
        blob_store=LocalBlobStore(config.blob_dir),
        catalog=JsonCatalog.load(config.catalog_path),
        job_queue=ArqJobQueue(RedisSettings.from_dsn(config.redis_url)),
        config=config,
    )


async def startup(ctx: Dict[str, Any]) -> None:
    """Build the shared workflow once per worker."""
    setup_logging(settings.log_level)
    ctx["workflow"] = build_workflow()
    ctx["max_attempts"] = settings.extraction_max_attempts
    ctx["retry_backoff_base"] = settings.retry_backoff_base
    logger.info("Extraction worker ready")


async def shutdown(ctx: Dict[str, Any]) -> None:
    logger.info("Extraction worker shutting down")


class WorkerSettings:
    """
    ARQ Worker Settings.

    To start the worker:
        arq medscan.workflow.jobs.WorkerSettings
    """

    redis_settings = RedisSettings.from_dsn(settings.redis_url)

    functions = [
        func(extract_document, max_tries=settings.extraction_max_attempts),
    ]

    on_startup = startup
    on_shutdown = shutdown
