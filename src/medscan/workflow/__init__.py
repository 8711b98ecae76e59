"""Scan lifecycle and background extraction jobs."""

from .lifecycle import (
    ALLOWED_TRANSITIONS,
    ScanOutcome,
    ScanWorkflow,
    choose_execution_mode,
    estimate_extraction_time,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ScanOutcome",
    "ScanWorkflow",
    "choose_execution_mode",
    "estimate_extraction_time",
]
