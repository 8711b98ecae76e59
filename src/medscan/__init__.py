"""medscan - Extraction and reconciliation pipeline for medical document photos."""

__version__ = "0.1.0"
