"""User-facing guidance for extraction failures.

The error kind drives the message; the raw error text only refines it
for ``extraction`` failures, where the wording tells us whether the model
saw no document at all or a document it could not read.
"""

import re
from typing import Optional, Union

from medscan.errors import ErrorKind

NO_DOCUMENT_HINTS = re.compile(
    r"no (medical )?document|not a (prescription|lab|biology)|wrong document|no (medications|test results) (found|detected)",
    re.IGNORECASE,
)
IMAGE_QUALITY_HINTS = re.compile(
    r"blur|illegible|unreadable|too dark|lighting|focus|could not be decoded|resolution",
    re.IGNORECASE,
)

GUIDANCE = {
    ErrorKind.CONFIGURATION: (
        "Document scanning is not configured. Contact your administrator."
    ),
    ErrorKind.AUTHENTICATION: (
        "Document scanning is temporarily unavailable. Contact your administrator."
    ),
    ErrorKind.RATE_LIMIT: (
        "The scanner is busy right now. Try again in a minute, or process the "
        "document in the background."
    ),
    ErrorKind.API_ERROR: (
        "The scanner could not be reached. Try again, or process the document "
        "in the background."
    ),
    ErrorKind.EXTRACTION: (
        "We could not read this document. Check the image and try again, or "
        "enter the details manually."
    ),
    ErrorKind.NOT_FOUND: "This scan no longer exists.",
    ErrorKind.RETRIES_EXHAUSTED: (
        "Extraction failed after several attempts. Try again later, or enter "
        "the details manually."
    ),
}

NO_DOCUMENT_GUIDANCE = (
    "No document was detected. Verify the document type selection and make "
    "sure the whole page is in frame."
)
IMAGE_QUALITY_GUIDANCE = (
    "The image is hard to read. Retake the photo with better lighting and focus."
)


def user_guidance(kind: Union[ErrorKind, str, None], message: Optional[str] = None) -> str:
    """Map an error kind (and optionally its message) to actionable guidance."""
    try:
        kind = ErrorKind(kind)
    except ValueError:
        return GUIDANCE[ErrorKind.API_ERROR]

    if kind == ErrorKind.EXTRACTION and message:
        if NO_DOCUMENT_HINTS.search(message):
            return NO_DOCUMENT_GUIDANCE
        if IMAGE_QUALITY_HINTS.search(message):
            return IMAGE_QUALITY_GUIDANCE
    return GUIDANCE[kind]
