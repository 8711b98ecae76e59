"""Response Parsing Stage - Turn raw model text into a JSON value.

Vision models wrap their answer in markdown often enough that we cannot
trust a bare ``json.loads``. The parser:
- Trims surrounding whitespace
- Extracts the content of the first ``` fence (with or without a language tag)
- Parses the result as strict JSON (NaN/Infinity rejected)
"""

import json
import re
from typing import Any

from medscan.errors import ExtractionError

FENCE = "```"

# A language tag is a single token on the fence line, e.g. json, javascript
LANGUAGE_TAG = re.compile(r"^[A-Za-z0-9_+.-]*\s*$")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard constant {name}")


def strip_code_fence(text: str) -> str:
    """Return the content of the first fenced block, or the trimmed text.

    An unterminated fence yields everything after the opening line.
    """
    text = text.strip()
    start = text.find(FENCE)
    if start == -1:
        return text

    body = text[start + len(FENCE):]
    end = body.find(FENCE)
    if end != -1:
        body = body[:end]

    first_line, newline, rest = body.partition("\n")
    if newline and LANGUAGE_TAG.match(first_line):
        body = rest

    return body.strip()


def parse_response(text: str) -> Any:
    """Parse raw model output into a JSON value.

    Args:
        text: Raw text returned by the model

    Returns:
        Decoded JSON value (usually a dict)

    Raises:
        ExtractionError: If the text is not valid JSON
    """
    if not isinstance(text, str):
        raise ExtractionError("invalid JSON: model returned no text")

    candidate = strip_code_fence(text)
    try:
        return json.loads(candidate, parse_constant=_reject_constant)
    except ValueError as e:
        raise ExtractionError(f"invalid JSON: {e}") from e


class ResponseParser:
    """Parser used by the extraction services; replaceable per service."""

    def parse(self, text: str) -> Any:
        return parse_response(text)
