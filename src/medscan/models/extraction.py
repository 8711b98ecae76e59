"""Extraction IR models.

These are the values an extraction attempt produces: the normalized image
handed to the model, the reconciled line items and the tagged result
returned to the workflow. All of them are frozen; corrections made during
review build new objects instead of mutating these.
"""

import copy
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field, field_validator

from medscan.errors import ErrorKind, MedScanError

from .base import DocumentType, FrozenModel
from .catalog import Biomarker, Drug


class ProcessedImage(FrozenModel):
    """Image prepared for the vision model.

    Points at a temporary file owned by whoever asked for the
    normalization; it is never persisted.
    """

    path: str
    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)
    content_type: str


class ExtractedLineItem(FrozenModel):
    """Fields shared by every extracted line item."""

    confidence: float = Field(..., ge=0.0, le=1.0)
    requires_verification: bool = False


class ExtractedMedication(ExtractedLineItem):
    """One medication read from a prescription."""

    drug_name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    quantity: Optional[str] = None
    matched_drug: Optional[Drug] = None
    active_ingredients: Optional[tuple[str, ...]] = None
    rxcui: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "drug_name": self.drug_name,
            "dosage": self.dosage,
            "frequency": self.frequency,
            "duration": self.duration,
            "quantity": self.quantity,
            "confidence": self.confidence,
            "matched_drug_id": str(self.matched_drug.id) if self.matched_drug else None,
            "requires_verification": self.requires_verification,
        }


class ExtractedTestResult(ExtractedLineItem):
    """One test result read from a biology report."""

    biomarker_name: str
    value: Optional[str] = None
    unit: Optional[str] = None
    reference_range: Optional[str] = Field(
        None, description="Range text as printed on the report"
    )
    reference_min: Optional[float] = None
    reference_max: Optional[float] = None
    matched_biomarker: Optional[Biomarker] = None
    out_of_range: Optional[bool] = Field(
        None, description="None when the range or the value is unknown"
    )

    def to_payload(self) -> dict[str, Any]:
        return {
            "biomarker_name": self.biomarker_name,
            "value": self.value,
            "unit": self.unit,
            "reference_min": self.reference_min,
            "reference_max": self.reference_max,
            "confidence": self.confidence,
            "matched_biomarker_id": (
                str(self.matched_biomarker.id) if self.matched_biomarker else None
            ),
            "out_of_range": self.out_of_range,
            "requires_verification": self.requires_verification,
        }


class PrescriptionData(FrozenModel):
    """Structured content of a prescription."""

    doctor_name: Optional[str] = None
    prescription_date: Optional[str] = Field(None, description="YYYY-MM-DD when legible")
    medications: tuple[ExtractedMedication, ...] = ()

    @property
    def items(self) -> tuple[ExtractedMedication, ...]:
        return self.medications

    def to_payload(self) -> dict[str, Any]:
        return {
            "doctor_name": self.doctor_name,
            "prescription_date": self.prescription_date,
            "medications": [med.to_payload() for med in self.medications],
        }


class BiologyReportData(FrozenModel):
    """Structured content of a lab report."""

    lab_name: Optional[str] = None
    test_date: Optional[str] = Field(None, description="YYYY-MM-DD when legible")
    test_results: tuple[ExtractedTestResult, ...] = ()

    @property
    def items(self) -> tuple[ExtractedTestResult, ...]:
        return self.test_results

    def to_payload(self) -> dict[str, Any]:
        return {
            "lab_name": self.lab_name,
            "test_date": self.test_date,
            "test_results": [result.to_payload() for result in self.test_results],
        }


class ExtractionSuccess(FrozenModel):
    """Successful extraction: structured data plus the raw response for audit."""

    outcome: Literal["success"] = "success"
    document_type: DocumentType
    data: Union[PrescriptionData, BiologyReportData]
    raw_response: dict[str, Any] = Field(
        default_factory=dict, description="Parsed model response, kept for audit only"
    )

    @field_validator("raw_response")
    @classmethod
    def _detach_raw_response(cls, value: dict[str, Any]) -> dict[str, Any]:
        return copy.deepcopy(value)

    @property
    def success(self) -> bool:
        return True

    @property
    def items(self) -> tuple:
        return self.data.items

    def to_payload(self) -> dict[str, Any]:
        """Serialize into the ``extracted_data`` shape stored on a scan record."""
        payload = self.data.to_payload()
        payload["raw_response"] = copy.deepcopy(self.raw_response)
        return payload


class ExtractionFailure(FrozenModel):
    """Failed extraction with a typed error kind."""

    outcome: Literal["failure"] = "failure"
    error_kind: ErrorKind
    message: str

    @property
    def success(self) -> bool:
        return False

    @classmethod
    def from_error(cls, error: MedScanError) -> "ExtractionFailure":
        return cls(error_kind=error.kind or ErrorKind.API_ERROR, message=error.message)

    def to_payload(self) -> dict[str, Any]:
        return {"error_type": self.error_kind.value, "error_message": self.message}


ExtractionResult = Annotated[
    Union[ExtractionSuccess, ExtractionFailure],
    Field(discriminator="outcome"),
]
