"""Scan record and background job models."""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from .base import DocumentType, ExtractionStatus, FrozenModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredBlob(FrozenModel):
    """Metadata for an uploaded image held by a blob store."""

    blob_id: str
    content_type: str
    byte_size: int = Field(..., ge=0)
    filename: Optional[str] = None


class ScanRecord(BaseModel):
    """
    A prescription or biology report going through extraction.

    The surrounding application owns the record's domain fields; the
    pipeline only reads and writes ``extraction_status`` and
    ``extracted_data``.
    """

    id: UUID = Field(default_factory=uuid4)
    document_type: DocumentType
    blob_id: str
    extraction_status: ExtractionStatus = Field(default=ExtractionStatus.PENDING)
    extracted_data: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        """Confirmed records are permanent."""
        return self.extraction_status == ExtractionStatus.CONFIRMED

    @property
    def error_kind(self) -> Optional[str]:
        if self.extraction_status != ExtractionStatus.FAILED or not self.extracted_data:
            return None
        return self.extracted_data.get("error_type")


class ExtractionJobRequest(FrozenModel):
    """Unit of work handed to the background job runner."""

    record_type: DocumentType
    record_id: UUID
    blob_id: str

    @property
    def job_id(self) -> str:
        """Deterministic id so a record never has two queued extractions."""
        return f"extract:{self.record_id}"
