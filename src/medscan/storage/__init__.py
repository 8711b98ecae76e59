"""Storage layer for medscan.

Protocols for the workflow's collaborators plus file-backed reference
implementations used by the CLI and the ARQ worker.
"""

from .base import BlobStore, BoundBlob, CatalogRepository, JobQueue, ScanRepository
from .catalog import JsonCatalog
from .files import FileScanRepository, LocalBlobStore, PathBlob, guess_content_type

__all__ = [
    # Interfaces
    "BlobStore",
    "BoundBlob",
    "CatalogRepository",
    "JobQueue",
    "ScanRepository",
    # Implementations
    "JsonCatalog",
    "FileScanRepository",
    "LocalBlobStore",
    "PathBlob",
    "guess_content_type",
]
