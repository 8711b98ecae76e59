"""Pytest configuration and fixtures."""

import io
import json
from contextlib import contextmanager
from typing import Optional
from uuid import UUID

import pytest
from PIL import Image

from medscan.models import Biomarker, Drug, ScanRecord, StoredBlob
from medscan.pipeline import ImageNormalizer
from medscan.storage import JsonCatalog


def image_bytes(width: int = 64, height: int = 48, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    """Encode a small solid-color image."""
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color=(200, 200, 200) if mode == "RGB" else 200).save(
        buffer, format=fmt
    )
    return buffer.getvalue()


class FakeClient:
    """Vision model double that returns canned replies or raises."""

    def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls = []

    def ask(self, image, prompt):
        self.calls.append((image, prompt))
        if self.error is not None:
            raise self.error
        return self.reply


class MemoryBlob:
    """In-memory blob with the interface extraction services expect."""

    def __init__(self, data: bytes, content_type: str = "image/png"):
        self.data = data
        self.content_type = content_type
        self.byte_size = len(data)

    def open(self):
        return io.BytesIO(self.data)


class InMemoryBlobStore:
    def __init__(self):
        self.blobs = {}

    def put(self, blob_id: str, data: bytes, content_type: str = "image/png", byte_size: Optional[int] = None) -> StoredBlob:
        meta = StoredBlob(
            blob_id=blob_id,
            content_type=content_type,
            byte_size=len(data) if byte_size is None else byte_size,
        )
        self.blobs[blob_id] = (meta, data)
        return meta

    def get(self, blob_id: str) -> Optional[StoredBlob]:
        entry = self.blobs.get(blob_id)
        return entry[0] if entry else None

    @contextmanager
    def open(self, blob_id: str):
        yield io.BytesIO(self.blobs[blob_id][1])


class InMemoryScanRepository:
    def __init__(self):
        self.records = {}

    def add(self, record: ScanRecord) -> ScanRecord:
        self.records[record.id] = record.model_copy(deep=True)
        return record

    def get(self, record_id: UUID) -> Optional[ScanRecord]:
        record = self.records.get(record_id)
        return record.model_copy(deep=True) if record else None

    def save(self, record: ScanRecord) -> bool:
        if record.id not in self.records:
            return False
        self.records[record.id] = record.model_copy(deep=True)
        return True

    def delete(self, record_id: UUID) -> bool:
        return self.records.pop(record_id, None) is not None


class RecordingJobQueue:
    def __init__(self):
        self.requests = []

    def enqueue(self, request):
        self.requests.append(request)
        return request.job_id


@pytest.fixture
def drugs():
    return [
        Drug(name="Metformin", rxcui="6809", active_ingredients=["metformin"]),
        Drug(name="Amoxicillin", rxcui="723", active_ingredients=["amoxicillin"]),
        Drug(name="Metformin Hydrochloride Extended Release"),
    ]


@pytest.fixture
def biomarkers():
    return [
        Biomarker(name="Glucose", code="2345-7", unit="mg/dL", ref_min=70.0, ref_max=100.0),
        Biomarker(name="Hemoglobin", code="718-7", unit="g/dL", ref_min=13.5, ref_max=17.5),
        Biomarker(name="Hemoglobin A1c", code="4548-4", unit="%", ref_min=0.0, ref_max=5.7),
        Biomarker(name="Ferritin", code="2276-4", unit="ng/mL"),
    ]


@pytest.fixture
def catalog(drugs, biomarkers):
    return JsonCatalog(drugs=drugs, biomarkers=biomarkers)


@pytest.fixture
def normalizer(tmp_path):
    """Normalizer writing its temp files under tmp_path."""
    temp_dir = tmp_path / "processed"
    temp_dir.mkdir()
    return ImageNormalizer(max_dimension=1568, temp_dir=str(temp_dir))


@pytest.fixture
def png_blob():
    return MemoryBlob(image_bytes())


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def repository():
    return InMemoryScanRepository()


@pytest.fixture
def job_queue():
    return RecordingJobQueue()


@pytest.fixture
def glucose_reply():
    return json.dumps(
        {
            "lab_name": "City Lab",
            "test_date": "2024-03-01",
            "test_results": [
                {
                    "biomarker_name": "Glucose",
                    "value": "150",
                    "unit": "mg/dL",
                    "reference_range": "70-100",
                    "confidence": 0.9,
                }
            ],
        }
    )


@pytest.fixture
def prescription_reply():
    return json.dumps(
        {
            "doctor_name": "Dr. Smith",
            "prescription_date": "2024-02-10",
            "medications": [
                {
                    "drug_name": "Metformin",
                    "dosage": "500mg",
                    "frequency": "twice daily",
                    "confidence": 0.95,
                },
                {"drug_name": "Unknownium", "confidence": 0.3},
            ],
        }
    )
