"""Scan record lifecycle.

States and transitions:

    pending ──> processing ──> extracted ──> confirmed
       │            │
       └────────────┴───────> failed

``processing -> processing`` is allowed so a background retry can claim a
record it already holds. Cancellation deletes the record from any state
except ``confirmed``, where it is a no-op.

The workflow also decides where an extraction runs: uploads at or above
the size threshold go to the background job queue unless the caller asks
for a synchronous run, smaller ones run inline unless the caller asks for
the background.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union
from uuid import UUID

from medscan.config import Settings, settings as default_settings
from medscan.errors import (
    ConfigurationError,
    ErrorKind,
    InvalidTransitionError,
    RecordNotFoundError,
)
from medscan.models import (
    DocumentType,
    ExecutionMode,
    ExtractionFailure,
    ExtractionJobRequest,
    ExtractionStatus,
    ExtractionSuccess,
    ScanRecord,
)
from medscan.pipeline import ImageNormalizer
from medscan.services.extraction import ExtractionService, extraction_service_for
from medscan.services.model_client import VisionModelClient
from medscan.storage.base import (
    BlobStore,
    BoundBlob,
    CatalogRepository,
    JobQueue,
    ScanRepository,
)

logger = logging.getLogger(__name__)

BYTES_PER_MEGABYTE = 1024 * 1024

ALLOWED_TRANSITIONS = {
    ExtractionStatus.PENDING: {ExtractionStatus.PROCESSING, ExtractionStatus.FAILED},
    ExtractionStatus.PROCESSING: {
        ExtractionStatus.PROCESSING,
        ExtractionStatus.EXTRACTED,
        ExtractionStatus.FAILED,
    },
    ExtractionStatus.EXTRACTED: {ExtractionStatus.CONFIRMED},
    ExtractionStatus.FAILED: set(),
    ExtractionStatus.CONFIRMED: set(),
}

# States in which an extraction job still has work to do
CLAIMABLE_STATES = {ExtractionStatus.PENDING, ExtractionStatus.PROCESSING}

ExtractionOutcome = Union[ExtractionSuccess, ExtractionFailure]


def choose_execution_mode(
    byte_size: int,
    requested_mode: Optional[Union[ExecutionMode, str]] = None,
    threshold: Optional[int] = None,
) -> ExecutionMode:
    """Pick sync or async execution for an upload.

    Args:
        byte_size: Upload size in bytes
        requested_mode: Explicit caller choice; always wins when given
        threshold: Size at which async becomes the default (default from settings)
    """
    if requested_mode is not None:
        return ExecutionMode(requested_mode)
    if threshold is None:
        threshold = default_settings.large_image_threshold_bytes
    return ExecutionMode.ASYNC if byte_size >= threshold else ExecutionMode.SYNC


def estimate_extraction_time(
    byte_size: int,
    base_seconds: Optional[float] = None,
    seconds_per_megabyte: Optional[float] = None,
) -> float:
    """Rough extraction time in seconds, for progress messages only."""
    if base_seconds is None:
        base_seconds = default_settings.base_extraction_seconds
    if seconds_per_megabyte is None:
        seconds_per_megabyte = default_settings.seconds_per_megabyte
    megabytes = max(byte_size, 0) / BYTES_PER_MEGABYTE
    return round(base_seconds + megabytes * seconds_per_megabyte, 1)


@dataclass
class ScanOutcome:
    """What start_scan did with a new upload."""

    record: ScanRecord
    mode: ExecutionMode
    estimated_seconds: float
    result: Optional[ExtractionOutcome] = None
    job_id: Optional[str] = None


class ScanWorkflow:
    """Drives scan records through extraction, review and confirmation."""

    def __init__(
        self,
        repository: ScanRepository,
        blob_store: BlobStore,
        catalog: CatalogRepository,
        client: Optional[VisionModelClient] = None,
        job_queue: Optional[JobQueue] = None,
        normalizer: Optional[ImageNormalizer] = None,
        config: Optional[Settings] = None,
        service_factory: Optional[Callable[[DocumentType], ExtractionService]] = None,
    ):
        """Initialize workflow.

        Args:
            repository: Scan record storage
            blob_store: Uploaded image storage
            catalog: Reference drugs and biomarkers
            client: Vision model client shared by both services
            job_queue: Background runner; required for async scans
            normalizer: Image normalizer shared by both services
            config: Settings (default: module-level settings)
            service_factory: Override for building extraction services
        """
        self.repository = repository
        self.blob_store = blob_store
        self.catalog = catalog
        self.client = client
        self.job_queue = job_queue
        self.normalizer = normalizer
        self.config = config or default_settings
        self._service_factory = service_factory
        self._services: dict[DocumentType, ExtractionService] = {}

    def service_for(self, document_type: DocumentType) -> ExtractionService:
        document_type = DocumentType(document_type)
        if document_type not in self._services:
            if self._service_factory is not None:
                service = self._service_factory(document_type)
            else:
                service = extraction_service_for(
                    document_type,
                    self.catalog,
                    client=self.client,
                    normalizer=self.normalizer,
                )
            self._services[document_type] = service
        return self._services[document_type]

    # Lifecycle entry point

    def start_scan(
        self,
        document_type: Union[DocumentType, str],
        blob_id: str,
        requested_mode: Optional[Union[ExecutionMode, str]] = None,
    ) -> ScanOutcome:
        """Create a pending record for an upload and start its extraction.

        Raises:
            RecordNotFoundError: If the blob does not exist
            ConfigurationError: If async was chosen and no job queue is set
        """
        blob = self.blob_store.get(blob_id)
        if blob is None:
            raise RecordNotFoundError("Blob", blob_id)

        mode = choose_execution_mode(
            blob.byte_size,
            requested_mode,
            threshold=self.config.large_image_threshold_bytes,
        )
        if mode == ExecutionMode.ASYNC and self.job_queue is None:
            raise ConfigurationError("Background extraction requested but no job queue is configured")

        estimated = estimate_extraction_time(
            blob.byte_size,
            self.config.base_extraction_seconds,
            self.config.seconds_per_megabyte,
        )
        record = self.repository.add(
            ScanRecord(document_type=DocumentType(document_type), blob_id=blob_id)
        )
        logger.info(
            "Started %s scan %s (%s mode)",
            record.document_type.value, record.id, mode.value,
        )

        if mode == ExecutionMode.SYNC:
            result = self.run_extraction(record.id)
            record = self.repository.get(record.id) or record
            return ScanOutcome(record=record, mode=mode, estimated_seconds=estimated, result=result)

        request = ExtractionJobRequest(
            record_type=record.document_type,
            record_id=record.id,
            blob_id=blob_id,
        )
        try:
            job_id = self.job_queue.enqueue(request)
        except Exception as e:
            # No job will ever claim this record
            self.fail(
                record.id,
                ErrorKind.API_ERROR,
                f"Could not queue background extraction: {e.__class__.__name__}",
            )
            raise
        return ScanOutcome(record=record, mode=mode, estimated_seconds=estimated, job_id=job_id)

    # Extraction steps (used by the sync path and the background job)

    def get_record(self, record_id: UUID) -> ScanRecord:
        record = self.repository.get(record_id)
        if record is None:
            raise RecordNotFoundError("Scan record", record_id)
        return record

    def begin_processing(self, record_id: UUID) -> ScanRecord:
        """Move a record to processing before the model call."""
        record = self.get_record(record_id)
        self._transition(record, ExtractionStatus.PROCESSING)
        if not self.repository.save(record):
            raise RecordNotFoundError("Scan record", record_id)
        return record

    def execute(self, record: ScanRecord, blob_id: Optional[str] = None) -> ExtractionOutcome:
        """Run the extraction service for a record without touching its state."""
        blob_id = blob_id or record.blob_id
        meta = self.blob_store.get(blob_id)
        if meta is None:
            logger.error(
                "Blob %s missing for %s scan %s",
                blob_id, record.document_type.value, record.id,
            )
            return ExtractionFailure(
                error_kind=ErrorKind.NOT_FOUND,
                message=f"Blob '{blob_id}' not found",
            )
        return self.service_for(record.document_type).extract(BoundBlob(self.blob_store, meta))

    def record_result(self, record_id: UUID, result: ExtractionOutcome) -> Optional[ScanRecord]:
        """Store an extraction outcome on its record.

        Returns None when the record was deleted in the meantime; the
        result is dropped.
        """
        record = self.repository.get(record_id)
        if record is None:
            logger.info("Scan %s was deleted during extraction; result dropped", record_id)
            return None

        target = ExtractionStatus.EXTRACTED if result.success else ExtractionStatus.FAILED
        self._transition(record, target)
        record.extracted_data = result.to_payload()

        if not self.repository.save(record):
            logger.info("Scan %s was deleted during extraction; result dropped", record_id)
            return None

        if result.success:
            logger.info(
                "%s scan %s extracted with %d items",
                record.document_type.value, record_id, len(result.items),
            )
        else:
            logger.warning(
                "%s scan %s failed: type=%s",
                record.document_type.value, record_id, result.error_kind.value,
            )
        return record

    def fail(self, record_id: UUID, kind: ErrorKind, message: str) -> Optional[ScanRecord]:
        return self.record_result(record_id, ExtractionFailure(error_kind=kind, message=message))

    def abandon(self, record_id: UUID, error: BaseException) -> Optional[ScanRecord]:
        """Fail a claimed record after an unexpected error so it never stays processing."""
        logger.error(
            "Scan %s abandoned after unexpected %s",
            record_id, error.__class__.__name__,
        )
        return self.fail(
            record_id,
            ErrorKind.API_ERROR,
            f"Unexpected extraction failure: {error.__class__.__name__}",
        )

    def run_extraction(self, record_id: UUID) -> ExtractionOutcome:
        """Synchronous path: claim, extract and store in one go."""
        record = self.begin_processing(record_id)
        try:
            result = self.execute(record)
        except Exception as e:
            self.abandon(record_id, e)
            raise
        self.record_result(record_id, result)
        return result

    # Review

    def confirm(self, record_id: UUID) -> ScanRecord:
        """Accept a reviewed extraction; the record becomes permanent."""
        record = self.get_record(record_id)
        self._transition(record, ExtractionStatus.CONFIRMED)
        if not self.repository.save(record):
            raise RecordNotFoundError("Scan record", record_id)
        logger.info("%s scan %s confirmed", record.document_type.value, record_id)
        return record

    def cancel(self, record_id: UUID) -> bool:
        """Delete a scan unless it is confirmed. Returns whether it was deleted."""
        record = self.repository.get(record_id)
        if record is None:
            return False
        if record.is_terminal:
            logger.info("Scan %s is confirmed; cancel ignored", record_id)
            return False
        deleted = self.repository.delete(record_id)
        if deleted:
            logger.info(
                "%s scan %s cancelled from %s",
                record.document_type.value, record_id, record.extraction_status.value,
            )
        return deleted

    def _transition(self, record: ScanRecord, target: ExtractionStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[record.extraction_status]:
            raise InvalidTransitionError(record.extraction_status.value, target.value)
        record.extraction_status = target
