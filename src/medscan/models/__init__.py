"""IR models for the medscan extraction pipeline.

Values flowing through the pipeline are pydantic models. Everything an
extraction attempt produces is frozen; only the scan record, which the
workflow moves through its lifecycle, is mutable.

Model Hierarchy:
- CatalogEntry → Drug / Biomarker (read-only reference data)
- ProcessedImage → ExtractionResult (Success | Failure)
- ExtractionSuccess → PrescriptionData / BiologyReportData → line items
- ScanRecord ← ExtractionJobRequest
"""

from .base import (
    DocumentType,
    ExecutionMode,
    ExtractionStatus,
    FrozenModel,
)
from .catalog import (
    Biomarker,
    CatalogEntry,
    Drug,
)
from .extraction import (
    BiologyReportData,
    ExtractedLineItem,
    ExtractedMedication,
    ExtractedTestResult,
    ExtractionFailure,
    ExtractionResult,
    ExtractionSuccess,
    PrescriptionData,
    ProcessedImage,
)
from .scan import (
    ExtractionJobRequest,
    ScanRecord,
    StoredBlob,
)

__all__ = [
    # Base types
    "DocumentType",
    "ExecutionMode",
    "ExtractionStatus",
    "FrozenModel",
    # Catalog
    "CatalogEntry",
    "Drug",
    "Biomarker",
    # Extraction
    "ProcessedImage",
    "ExtractedLineItem",
    "ExtractedMedication",
    "ExtractedTestResult",
    "PrescriptionData",
    "BiologyReportData",
    "ExtractionSuccess",
    "ExtractionFailure",
    "ExtractionResult",
    # Scan lifecycle
    "ScanRecord",
    "StoredBlob",
    "ExtractionJobRequest",
]
