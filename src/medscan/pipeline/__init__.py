"""Pipeline stages for medical document extraction.

Deterministic Stages (no model call):
1. stage_normalize - Decode, orient, resize and re-encode the photo
2. stage_parse - Strip markdown fences and decode the model's JSON
3. stage_validate - Check required fields per document type
4. stage_match - Reconcile extracted names with the catalog
5. stage_range - Resolve reference ranges and flag out-of-range values
6. stage_confidence - Decide which items need human verification

The extraction services in ``medscan.services`` chain these stages around
the vision model call.
"""

from .stage_confidence import CONFIDENCE_THRESHOLD, ConfidenceEvaluator, requires_verification
from .stage_match import EntityMatcher
from .stage_normalize import MAX_DIMENSION, ImageNormalizer, compute_target_size
from .stage_parse import ResponseParser, parse_response, strip_code_fence
from .stage_range import (
    RangeEvaluation,
    RangeEvaluator,
    is_out_of_range,
    parse_numeric_value,
    parse_reference_range,
)
from .stage_validate import (
    BIOLOGY_REPORT_SCHEMA,
    PRESCRIPTION_SCHEMA,
    ExtractionSchema,
    SchemaValidator,
    ValidatedDocument,
    ValidatedItem,
    schema_for,
)

__all__ = [
    # Normalize
    "ImageNormalizer",
    "MAX_DIMENSION",
    "compute_target_size",
    # Parse
    "ResponseParser",
    "parse_response",
    "strip_code_fence",
    # Validate
    "ExtractionSchema",
    "SchemaValidator",
    "ValidatedDocument",
    "ValidatedItem",
    "PRESCRIPTION_SCHEMA",
    "BIOLOGY_REPORT_SCHEMA",
    "schema_for",
    # Match
    "EntityMatcher",
    # Range
    "RangeEvaluator",
    "RangeEvaluation",
    "parse_reference_range",
    "parse_numeric_value",
    "is_out_of_range",
    # Confidence
    "ConfidenceEvaluator",
    "CONFIDENCE_THRESHOLD",
    "requires_verification",
]
