"""Interfaces the workflow needs from its collaborators."""

from typing import BinaryIO, ContextManager, Optional, Protocol, Sequence
from uuid import UUID

from medscan.models import Biomarker, Drug, ExtractionJobRequest, ScanRecord, StoredBlob


class BlobStore(Protocol):
    """Uploaded images addressed by an opaque id."""

    def get(self, blob_id: str) -> Optional[StoredBlob]:
        ...

    def open(self, blob_id: str) -> ContextManager[BinaryIO]:
        ...


class BoundBlob:
    """Stored blob metadata bound to its store, as consumed by extraction services."""

    def __init__(self, store: BlobStore, meta: StoredBlob):
        self.store = store
        self.meta = meta

    @property
    def blob_id(self) -> str:
        return self.meta.blob_id

    @property
    def content_type(self) -> str:
        return self.meta.content_type

    @property
    def byte_size(self) -> int:
        return self.meta.byte_size

    def open(self) -> ContextManager[BinaryIO]:
        return self.store.open(self.meta.blob_id)


class ScanRepository(Protocol):
    """Scan records; the workflow only touches status and extracted data."""

    def add(self, record: ScanRecord) -> ScanRecord:
        ...

    def get(self, record_id: UUID) -> Optional[ScanRecord]:
        ...

    def save(self, record: ScanRecord) -> bool:
        """Persist changes; returns False when the record no longer exists."""
        ...

    def delete(self, record_id: UUID) -> bool:
        ...


class CatalogRepository(Protocol):
    """Read-only reference catalog."""

    def drugs(self) -> Sequence[Drug]:
        ...

    def biomarkers(self) -> Sequence[Biomarker]:
        ...


class JobQueue(Protocol):
    """Background job runner for extraction requests."""

    def enqueue(self, request: ExtractionJobRequest) -> Optional[str]:
        ...
