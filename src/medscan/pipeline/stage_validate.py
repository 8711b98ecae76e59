"""Schema Validation Stage - Check parsed responses per document type.

Both document types share one shape: a JSON object with a few optional
metadata fields and a list of line items. Each line item needs an identity
field and a confidence score; every other field is optional and defaults
to None. Violations raise ExtractionError naming the offending field.
"""

from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Optional

from medscan.errors import ExtractionError
from medscan.models import DocumentType


@dataclass(frozen=True)
class ExtractionSchema:
    """Required and optional fields for one document type."""

    document_type: DocumentType
    items_field: str
    identity_field: str
    metadata_fields: tuple[str, ...] = ()
    optional_item_fields: tuple[str, ...] = ()
    require_identity_non_blank: bool = False


PRESCRIPTION_SCHEMA = ExtractionSchema(
    document_type=DocumentType.PRESCRIPTION,
    items_field="medications",
    identity_field="drug_name",
    metadata_fields=("doctor_name", "prescription_date"),
    optional_item_fields=("dosage", "frequency", "duration", "quantity"),
    require_identity_non_blank=True,
)

BIOLOGY_REPORT_SCHEMA = ExtractionSchema(
    document_type=DocumentType.BIOLOGY_REPORT,
    items_field="test_results",
    identity_field="biomarker_name",
    metadata_fields=("lab_name", "test_date"),
    optional_item_fields=("value", "unit", "reference_range"),
)

SCHEMAS = {
    DocumentType.PRESCRIPTION: PRESCRIPTION_SCHEMA,
    DocumentType.BIOLOGY_REPORT: BIOLOGY_REPORT_SCHEMA,
}


@dataclass
class ValidatedItem:
    """One line item with required fields checked and optionals filled in."""

    name: str
    confidence: float
    fields: dict[str, Optional[str]] = field(default_factory=dict)


@dataclass
class ValidatedDocument:
    """Validated response: metadata plus ordered line items."""

    metadata: dict[str, Optional[str]] = field(default_factory=dict)
    items: list[ValidatedItem] = field(default_factory=list)


def schema_for(document_type: DocumentType) -> ExtractionSchema:
    return SCHEMAS[DocumentType(document_type)]


def _optional_text(value: Any, field_name: str) -> Optional[str]:
    # Models sometimes emit numbers for values and quantities
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ExtractionError(
        f"field '{field_name}' must be a string",
        {"field": field_name},
    )


def _validate_confidence(value: Any, index: int) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ExtractionError(
            f"item {index}: 'confidence' must be a number",
            {"field": "confidence", "index": index},
        )
    confidence = float(value)
    if not 0.0 <= confidence <= 1.0:
        raise ExtractionError(
            f"item {index}: 'confidence' must be between 0 and 1",
            {"field": "confidence", "index": index},
        )
    return confidence


def _validate_item(entry: Any, index: int, schema: ExtractionSchema) -> ValidatedItem:
    if not isinstance(entry, dict):
        raise ExtractionError(
            f"item {index}: entry is not an object",
            {"index": index},
        )

    for required in (schema.identity_field, "confidence"):
        if entry.get(required) is None:
            raise ExtractionError(
                f"item {index}: missing required field '{required}'",
                {"field": required, "index": index},
            )

    name = entry[schema.identity_field]
    if not isinstance(name, str):
        raise ExtractionError(
            f"item {index}: '{schema.identity_field}' must be a string",
            {"field": schema.identity_field, "index": index},
        )
    if schema.require_identity_non_blank and not name.strip():
        raise ExtractionError(
            f"item {index}: missing required field '{schema.identity_field}'",
            {"field": schema.identity_field, "index": index},
        )

    return ValidatedItem(
        name=name.strip(),
        confidence=_validate_confidence(entry["confidence"], index),
        fields={
            name_: _optional_text(entry.get(name_), name_)
            for name_ in schema.optional_item_fields
        },
    )


def validate(parsed: Any, schema: ExtractionSchema) -> ValidatedDocument:
    """Validate a parsed response against a document schema.

    Args:
        parsed: Value returned by the response parser
        schema: Schema of the expected document type

    Returns:
        ValidatedDocument with metadata and items in response order

    Raises:
        ExtractionError: On the first violation found
    """
    if not isinstance(parsed, dict):
        raise ExtractionError("response is not a JSON object")

    raw_items = parsed.get(schema.items_field)
    if raw_items is None:
        raw_items = []
    if not isinstance(raw_items, list):
        raise ExtractionError(
            f"'{schema.items_field}' must be an array",
            {"field": schema.items_field},
        )

    metadata = {
        name: _optional_text(parsed.get(name), name)
        for name in schema.metadata_fields
    }
    items = [
        _validate_item(entry, index, schema)
        for index, entry in enumerate(raw_items)
    ]
    return ValidatedDocument(metadata=metadata, items=items)


class SchemaValidator:
    """Validates parsed responses for one document type."""

    def __init__(self, schema: ExtractionSchema):
        self.schema = schema

    @classmethod
    def for_document(cls, document_type: DocumentType) -> "SchemaValidator":
        return cls(schema_for(document_type))

    def validate(self, parsed: Any) -> ValidatedDocument:
        return validate(parsed, self.schema)
