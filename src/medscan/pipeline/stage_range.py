"""Range Evaluation Stage - Flag biology results outside their reference range.

The range printed on the report takes precedence over the catalog default.
The out-of-range flag is tri-state: True, False, or None when either the
range or the value is unusable. Boundary values are in range.
"""

import re
from dataclasses import dataclass
from typing import Optional

from medscan.models import Biomarker

RANGE_PATTERN = re.compile(
    r"^\s*(-?\d+(?:[.,]\d+)?)\s*[-–—]\s*(-?\d+(?:[.,]\d+)?)(?:\s*[^\d\s].*)?$"
)

# Leading number with an optional comparison qualifier, e.g. "<10", ">= 5.2 mmol/L"
VALUE_PATTERN = re.compile(r"^\s*(?:[<>]=?|=)?\s*(-?\d+(?:[.,]\d+)?)")


def _to_float(text: str) -> float:
    return float(text.replace(",", "."))


def parse_reference_range(text: Optional[str]) -> Optional[tuple[float, float]]:
    """Parse "min-max" or "min - max" into bounds.

    Returns None for blank, malformed or inverted ranges.
    """
    if not text:
        return None
    match = RANGE_PATTERN.match(text)
    if not match:
        return None
    low, high = _to_float(match.group(1)), _to_float(match.group(2))
    if low > high:
        return None
    return low, high


def parse_numeric_value(text: Optional[str]) -> Optional[float]:
    """Read the leading number of a result value ("95 mg/dL", "<10", "4,5")."""
    if text is None:
        return None
    match = VALUE_PATTERN.match(str(text))
    if not match:
        return None
    return _to_float(match.group(1))


def resolve_range(
    reference_range: Optional[str],
    biomarker: Optional[Biomarker] = None,
) -> Optional[tuple[float, float]]:
    """Pick the extracted range if usable, otherwise the catalog default."""
    parsed = parse_reference_range(reference_range)
    if parsed is not None:
        return parsed
    if biomarker is not None and biomarker.has_reference_range:
        if biomarker.ref_min <= biomarker.ref_max:
            return biomarker.ref_min, biomarker.ref_max
    return None


def is_out_of_range(
    value: Optional[float],
    ref_min: Optional[float],
    ref_max: Optional[float],
) -> Optional[bool]:
    """Compare a value with its bounds; None when anything is unknown."""
    if value is None or ref_min is None or ref_max is None:
        return None
    return value < ref_min or value > ref_max


@dataclass
class RangeEvaluation:
    """Resolved bounds and flag for one test result."""

    reference_min: Optional[float] = None
    reference_max: Optional[float] = None
    out_of_range: Optional[bool] = None


class RangeEvaluator:
    """Resolves reference ranges and computes out-of-range flags."""

    def evaluate(
        self,
        value: Optional[str],
        reference_range: Optional[str] = None,
        biomarker: Optional[Biomarker] = None,
    ) -> RangeEvaluation:
        bounds = resolve_range(reference_range, biomarker)
        if bounds is None:
            return RangeEvaluation()
        ref_min, ref_max = bounds
        return RangeEvaluation(
            reference_min=ref_min,
            reference_max=ref_max,
            out_of_range=is_out_of_range(parse_numeric_value(value), ref_min, ref_max),
        )
