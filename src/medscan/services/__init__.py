"""Extraction services and their vision model client."""

from .extraction import (
    BiologyReportExtractionService,
    ExtractionService,
    PrescriptionExtractionService,
    extraction_service_for,
)
from .messages import user_guidance
from .model_client import OllamaVisionClient, VisionModelClient, build_model_client

__all__ = [
    "ExtractionService",
    "PrescriptionExtractionService",
    "BiologyReportExtractionService",
    "extraction_service_for",
    "VisionModelClient",
    "OllamaVisionClient",
    "build_model_client",
    "user_guidance",
]
