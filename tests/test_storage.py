"""Tests for file-backed storage and the catalog."""

import json
from uuid import uuid4

import pytest

from conftest import image_bytes
from medscan.errors import ConfigurationError, RecordNotFoundError
from medscan.models import DocumentType, ExtractionStatus, ScanRecord
from medscan.storage import (
    FileScanRepository,
    JsonCatalog,
    LocalBlobStore,
    PathBlob,
    guess_content_type,
)
from medscan.storage.catalog import stable_entry_id


class TestGuessContentType:
    """Content types from file names."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("scan.jpg", "image/jpeg"),
            ("scan.PNG", "image/png"),
            ("IMG_0001.HEIC", "image/heic"),
            ("photo.heif", "image/heif"),
            ("notes", "application/octet-stream"),
        ],
    )
    def test_guess(self, name, expected):
        assert guess_content_type(name) == expected


class TestLocalBlobStore:
    """Tests for the blob directory."""

    @pytest.fixture
    def source(self, tmp_path):
        path = tmp_path / "upload.png"
        path.write_bytes(image_bytes())
        return path

    @pytest.fixture
    def store(self, tmp_path):
        return LocalBlobStore(tmp_path / "blobs")

    def test_put_and_get(self, store, source):
        meta = store.put_file(source)

        assert store.get(meta.blob_id) == meta
        assert meta.content_type == "image/png"
        assert meta.byte_size == source.stat().st_size
        assert meta.filename == "upload.png"

    def test_open_returns_bytes(self, store, source):
        meta = store.put_file(source)

        with store.open(meta.blob_id) as handle:
            assert handle.read() == source.read_bytes()

    def test_missing_blob(self, store):
        assert store.get("does-not-exist") is None
        with pytest.raises(RecordNotFoundError):
            with store.open("does-not-exist"):
                pass

    @pytest.mark.parametrize("blob_id", ["../secret", "a/b", "..\\x", ".hidden", ""])
    def test_rejects_path_ids(self, store, blob_id):
        assert store.get(blob_id) is None
        assert store.delete(blob_id) is False

    def test_delete(self, store, source):
        meta = store.put_file(source)

        assert store.delete(meta.blob_id) is True
        assert store.get(meta.blob_id) is None
        assert store.delete(meta.blob_id) is False


class TestPathBlob:
    """Local files as blobs."""

    def test_reads_file(self, tmp_path):
        path = tmp_path / "report.jpg"
        path.write_bytes(b"abc")
        blob = PathBlob(path)

        assert blob.content_type == "image/jpeg"
        assert blob.byte_size == 3
        with blob.open() as handle:
            assert handle.read() == b"abc"


class TestFileScanRepository:
    """Tests for JSON scan records."""

    @pytest.fixture
    def repository(self, tmp_path):
        return FileScanRepository(tmp_path / "records")

    @pytest.fixture
    def record(self):
        return ScanRecord(document_type=DocumentType.BIOLOGY_REPORT, blob_id="b1")

    def test_add_and_get(self, repository, record):
        repository.add(record)

        loaded = repository.get(record.id)

        assert loaded == record
        assert loaded.extraction_status == ExtractionStatus.PENDING

    def test_save_updates(self, repository, record):
        repository.add(record)
        record.extraction_status = ExtractionStatus.EXTRACTED
        record.extracted_data = {"test_results": []}

        assert repository.save(record) is True

        loaded = repository.get(record.id)
        assert loaded.extraction_status == ExtractionStatus.EXTRACTED
        assert loaded.extracted_data == {"test_results": []}
        assert loaded.updated_at >= loaded.created_at

    def test_save_after_delete(self, repository, record):
        repository.add(record)
        repository.delete(record.id)

        assert repository.save(record) is False
        assert repository.get(record.id) is None

    def test_delete_missing(self, repository):
        assert repository.delete(uuid4()) is False

    def test_get_bad_id(self, repository):
        assert repository.get("not-a-uuid") is None

    def test_list_records(self, repository):
        first = ScanRecord(document_type=DocumentType.PRESCRIPTION, blob_id="a")
        second = ScanRecord(document_type=DocumentType.PRESCRIPTION, blob_id="b")
        repository.add(second)
        repository.add(first)

        ids = [r.id for r in repository.list_records()]

        assert ids == [first.id, second.id]


class TestJsonCatalog:
    """Tests for catalog loading."""

    def test_bundled_catalog(self):
        catalog = JsonCatalog.load()

        assert len(catalog.drugs()) == 10
        assert len(catalog.biomarkers()) == 28
        glucose = next(b for b in catalog.biomarkers() if b.name == "Glucose")
        assert (glucose.ref_min, glucose.ref_max) == (70.0, 100.0)
        assert glucose.code == "2345-7"

    def test_ids_stable_across_loads(self):
        first = JsonCatalog.load()
        second = JsonCatalog.load()

        assert [d.id for d in first.drugs()] == [d.id for d in second.drugs()]
        assert first.drugs()[0].id == stable_entry_id("drug", "Metformin")

    def test_explicit_id_kept(self):
        entry_id = str(uuid4())
        catalog = JsonCatalog.from_dict({"drugs": [{"id": entry_id, "name": "Metformin"}]})

        assert str(catalog.drugs()[0].id) == entry_id
        assert catalog.biomarkers() == ()

    def test_user_file(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({"biomarkers": [{"name": "Glucose", "ref_min": 60, "ref_max": 99}]}))

        catalog = JsonCatalog.load(path)

        assert catalog.biomarkers()[0].ref_max == 99.0
        assert catalog.drugs() == ()

    @pytest.mark.parametrize(
        "content",
        ["not json", json.dumps({"drugs": [{"rxcui": "1"}]}), json.dumps({"drugs": [1]})],
    )
    def test_invalid_file(self, tmp_path, content):
        path = tmp_path / "catalog.json"
        path.write_text(content)

        with pytest.raises(ConfigurationError):
            JsonCatalog.load(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            JsonCatalog.load(tmp_path / "absent.json")
