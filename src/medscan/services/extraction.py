"""Extraction services for prescriptions and biology reports.

Each service runs one extraction attempt end to end:

    normalize image -> ask model -> parse -> validate -> match / score / range

and returns an ``ExtractionResult``. Expected failures (bad setup, rejected
credentials, throttling, network trouble, unreadable responses) come back
as ``ExtractionFailure`` values; callers never see them as exceptions.

Usage:
    service = PrescriptionExtractionService(catalog.drugs(), client=client)
    result = service.extract(blob)
    if result.success:
        for medication in result.items:
            ...
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, ContextManager, Iterable, Optional, Protocol, Union

from medscan.errors import ErrorKind, MedScanError, ModelAPIError
from medscan.models import (
    Biomarker,
    BiologyReportData,
    CatalogEntry,
    DocumentType,
    Drug,
    ExtractedMedication,
    ExtractedTestResult,
    ExtractionFailure,
    ExtractionSuccess,
    PrescriptionData,
    ProcessedImage,
)
from medscan.pipeline import (
    ConfidenceEvaluator,
    EntityMatcher,
    ImageNormalizer,
    RangeEvaluator,
    ResponseParser,
    SchemaValidator,
    ValidatedDocument,
    ValidatedItem,
)

from .model_client import VisionModelClient, build_model_client

logger = logging.getLogger(__name__)


PRESCRIPTION_PROMPT = """\
Analyze this prescription image and extract medication information.

Return a JSON object with exactly these fields:
- doctor_name: Prescribing doctor's name (string, optional)
- prescription_date: Date on prescription in YYYY-MM-DD format (string, optional)
- medications: Array of medication objects with:
  - drug_name: Name of the medication (string, required)
  - dosage: Dosage amount and unit e.g. "500mg" (string, optional)
  - frequency: How often to take e.g. "twice daily" (string, optional)
  - duration: Treatment duration e.g. "7 days" (string, optional)
  - quantity: Number of pills/doses prescribed (string, optional)
  - confidence: Your confidence in this extraction from 0.0 to 1.0 (number, required)

If you cannot confidently identify a field, omit it or set confidence below 0.5.
If the image is not a prescription, return an empty medications array.
Respond with ONLY valid JSON, no markdown formatting.
"""

BIOLOGY_REPORT_PROMPT = """\
Analyze this laboratory/biology report image and extract test results.

Return a JSON object with exactly these fields:
- lab_name: Name of the laboratory (string, optional)
- test_date: Date of the test in YYYY-MM-DD format (string, optional)
- test_results: Array of test result objects with:
  - biomarker_name: Name of the test/biomarker (string, required)
  - value: Measured value as string (string)
  - unit: Unit of measurement (string, optional)
  - reference_range: Normal range e.g. "3.5-5.0" (string, optional)
  - confidence: Your confidence in this extraction from 0.0 to 1.0 (number, required)

If you cannot confidently identify a field, omit it or set confidence below 0.5.
If the image is not a lab report, return an empty test_results array.
Respond with ONLY valid JSON, no markdown formatting.
"""


class ImageBlob(Protocol):
    """Uploaded image as seen by a service."""

    content_type: str
    byte_size: int

    def open(self) -> ContextManager[BinaryIO]:
        ...


class ExtractionService(ABC):
    """Base class for document-specific extraction services.

    Subclasses declare the document type and prompt, and build
    the typed payload from validated items.
    """

    document_type: DocumentType
    prompt: str

    def __init__(
        self,
        catalog: Iterable[CatalogEntry],
        client: Optional[VisionModelClient] = None,
        normalizer: Optional[ImageNormalizer] = None,
        confidence: Optional[ConfidenceEvaluator] = None,
        parser: Optional[ResponseParser] = None,
    ):
        """Initialize service.

        Args:
            catalog: Reference entries used to match extracted names
            client: Vision model client (built from settings on first use if None)
            normalizer: Image normalizer (default: settings-driven)
            confidence: Verification threshold policy
            parser: Model response parser
        """
        self.matcher = EntityMatcher(catalog)
        self.normalizer = normalizer or ImageNormalizer()
        self.parser = parser or ResponseParser()
        self.validator = SchemaValidator.for_document(self.document_type)
        self.confidence = confidence or ConfidenceEvaluator()
        self._client = client

    @property
    def client(self) -> VisionModelClient:
        if self._client is None:
            self._client = build_model_client()
        return self._client

    def extract(self, blob: ImageBlob) -> Union[ExtractionSuccess, ExtractionFailure]:
        """Run one extraction attempt.

        Args:
            blob: Uploaded image exposing content_type, byte_size and open()

        Returns:
            ExtractionSuccess with ordered items, or ExtractionFailure with a kind
        """
        try:
            with blob.open() as stream:
                with self.normalizer.processed(stream, blob.content_type) as image:
                    text = self._ask(image)
            parsed = self.parser.parse(text)
            document = self.validator.validate(parsed)
            data = self.build_data(document)
        except MedScanError as e:
            failure = ExtractionFailure.from_error(e)
            logger.warning(
                "%s extraction failed: %s",
                self.document_type.value, failure.error_kind.value,
            )
            return failure
        except Exception as e:
            logger.error(
                "%s extraction failed unexpectedly: %s",
                self.document_type.value, e.__class__.__name__,
            )
            return ExtractionFailure(
                error_kind=ErrorKind.API_ERROR,
                message=f"Unexpected extraction failure: {e.__class__.__name__}",
            )

        logger.info(
            "%s extraction succeeded with %d items",
            self.document_type.value, len(data.items),
        )
        return ExtractionSuccess(
            document_type=self.document_type,
            data=data,
            raw_response=parsed,
        )

    def _ask(self, image: ProcessedImage) -> str:
        client = self.client
        try:
            return client.ask(image, self.prompt)
        except MedScanError:
            raise
        except Exception as e:
            # Unknown client failures are treated like any other transient API error
            raise ModelAPIError(f"Vision model call failed: {e.__class__.__name__}") from e

    def requires_verification(self, item: ValidatedItem) -> bool:
        return self.confidence.requires_verification(item.confidence)

    @abstractmethod
    def build_data(self, document: ValidatedDocument) -> Any:
        """Build the document payload from validated items."""
        pass


class PrescriptionExtractionService(ExtractionService):
    """Extracts medications from prescription photos."""

    document_type = DocumentType.PRESCRIPTION
    prompt = PRESCRIPTION_PROMPT

    def build_medication(self, item: ValidatedItem) -> ExtractedMedication:
        drug: Optional[Drug] = self.matcher.match(item.name)
        return ExtractedMedication(
            drug_name=item.name,
            dosage=item.fields.get("dosage"),
            frequency=item.fields.get("frequency"),
            duration=item.fields.get("duration"),
            quantity=item.fields.get("quantity"),
            confidence=item.confidence,
            requires_verification=self.requires_verification(item),
            matched_drug=drug,
            active_ingredients=drug.active_ingredients if drug else None,
            rxcui=drug.rxcui if drug else None,
        )

    def build_data(self, document: ValidatedDocument) -> PrescriptionData:
        return PrescriptionData(
            doctor_name=document.metadata.get("doctor_name"),
            prescription_date=document.metadata.get("prescription_date"),
            medications=tuple(self.build_medication(item) for item in document.items),
        )


class BiologyReportExtractionService(ExtractionService):
    """Extracts test results from lab report photos and flags abnormal values."""

    document_type = DocumentType.BIOLOGY_REPORT
    prompt = BIOLOGY_REPORT_PROMPT

    def __init__(self, *args, range_evaluator: Optional[RangeEvaluator] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.range_evaluator = range_evaluator or RangeEvaluator()

    def build_test_result(self, item: ValidatedItem) -> ExtractedTestResult:
        biomarker: Optional[Biomarker] = self.matcher.match(item.name)
        evaluation = self.range_evaluator.evaluate(
            item.fields.get("value"),
            item.fields.get("reference_range"),
            biomarker,
        )
        return ExtractedTestResult(
            biomarker_name=item.name,
            value=item.fields.get("value"),
            unit=item.fields.get("unit"),
            reference_range=item.fields.get("reference_range"),
            reference_min=evaluation.reference_min,
            reference_max=evaluation.reference_max,
            confidence=item.confidence,
            requires_verification=self.requires_verification(item),
            matched_biomarker=biomarker,
            out_of_range=evaluation.out_of_range,
        )

    def build_data(self, document: ValidatedDocument) -> BiologyReportData:
        return BiologyReportData(
            lab_name=document.metadata.get("lab_name"),
            test_date=document.metadata.get("test_date"),
            test_results=tuple(self.build_test_result(item) for item in document.items),
        )


SERVICES = {
    DocumentType.PRESCRIPTION: PrescriptionExtractionService,
    DocumentType.BIOLOGY_REPORT: BiologyReportExtractionService,
}


def extraction_service_for(
    document_type: DocumentType,
    catalog_repository,
    client: Optional[VisionModelClient] = None,
    normalizer: Optional[ImageNormalizer] = None,
) -> ExtractionService:
    """Build the service for a document type with the matching catalog.

    Args:
        document_type: Prescription or biology report
        catalog_repository: Object exposing drugs() and biomarkers()
        client: Vision model client shared across services
        normalizer: Image normalizer shared across services
    """
    document_type = DocumentType(document_type)
    if document_type == DocumentType.PRESCRIPTION:
        catalog = catalog_repository.drugs()
    else:
        catalog = catalog_repository.biomarkers()
    return SERVICES[document_type](catalog, client=client, normalizer=normalizer)
