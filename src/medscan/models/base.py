"""Base models and common types for the medscan pipeline."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class DocumentType(str, Enum):
    """Kinds of medical documents the pipeline can extract."""

    PRESCRIPTION = "prescription"
    BIOLOGY_REPORT = "biology_report"


class ExtractionStatus(str, Enum):
    """Lifecycle status of a scan record."""

    PENDING = "pending"
    PROCESSING = "processing"
    EXTRACTED = "extracted"
    FAILED = "failed"
    CONFIRMED = "confirmed"


class ExecutionMode(str, Enum):
    """Where an extraction runs: in the caller's thread or in a background job."""

    SYNC = "sync"
    ASYNC = "async"


class FrozenModel(BaseModel):
    """Base class for immutable value objects produced by the pipeline."""

    model_config = ConfigDict(frozen=True, from_attributes=True)
