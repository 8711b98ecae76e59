"""Error taxonomy for the extraction pipeline.

Every failure the pipeline knows about carries an ``ErrorKind``. Services
convert raised errors into typed ``ExtractionFailure`` results at their
boundary; the workflow uses the kind to decide between retrying and failing.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Kinds of extraction and workflow failures."""

    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    API_ERROR = "api_error"
    EXTRACTION = "extraction"
    NOT_FOUND = "not_found"
    RETRIES_EXHAUSTED = "retries_exhausted"

    @property
    def retryable(self) -> bool:
        """Whether a background job should try again after this failure."""
        return self in (ErrorKind.RATE_LIMIT, ErrorKind.API_ERROR)


class MedScanError(Exception):
    """Base exception for the medscan package."""

    kind: Optional[ErrorKind] = None

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def error_code(self) -> Optional[str]:
        return self.kind.value if self.kind else None


class ConfigurationError(MedScanError):
    """Raised when the model client or service setup is missing or invalid."""

    kind = ErrorKind.CONFIGURATION


class AuthenticationError(MedScanError):
    """Raised when the model endpoint rejects our credentials."""

    kind = ErrorKind.AUTHENTICATION


class RateLimitError(MedScanError):
    """Raised when the model endpoint throttles us."""

    kind = ErrorKind.RATE_LIMIT


class ModelAPIError(MedScanError):
    """Raised for any other model call failure (network, 5xx, timeout)."""

    kind = ErrorKind.API_ERROR


class ExtractionError(MedScanError):
    """Raised when a model response cannot be parsed or validated."""

    kind = ErrorKind.EXTRACTION


class ImageDecodeError(ExtractionError):
    """Raised when the source image cannot be decoded."""


class RecordNotFoundError(MedScanError):
    """Raised when a scan record or blob referenced by id does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, resource_id: Any) -> None:
        message = f"{resource} '{resource_id}' not found"
        super().__init__(message, {"resource": resource, "id": str(resource_id)})


class InvalidTransitionError(MedScanError):
    """Raised when a scan record is asked to move to a state it cannot reach."""

    def __init__(self, current: str, target: str) -> None:
        message = f"Cannot move scan record from '{current}' to '{target}'"
        super().__init__(message, {"current": current, "target": target})
