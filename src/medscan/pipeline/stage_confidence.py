"""Confidence Stage - Decide which extracted items need human review."""

# Items scored below this need verification; exactly 0.5 is accepted
CONFIDENCE_THRESHOLD = 0.5


def requires_verification(confidence: float, threshold: float = CONFIDENCE_THRESHOLD) -> bool:
    return confidence < threshold


class ConfidenceEvaluator:
    """Applies the verification threshold to per-item confidence scores."""

    def __init__(self, threshold: float = CONFIDENCE_THRESHOLD):
        self.threshold = threshold

    def requires_verification(self, confidence: float) -> bool:
        return requires_verification(confidence, self.threshold)
