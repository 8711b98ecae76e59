"""File-backed blob store and scan repository.

Both keep one file per object under ``settings.data_dir`` so the CLI and
the ARQ worker can share state without a database:

    data/blobs/<blob_id>            image bytes
    data/blobs/<blob_id>.json       StoredBlob sidecar
    data/records/<record_id>.json   ScanRecord document
"""

import logging
import mimetypes
import os
import shutil
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union
from uuid import UUID

from medscan.errors import RecordNotFoundError
from medscan.models import ScanRecord, StoredBlob
from medscan.models.scan import utcnow

logger = logging.getLogger(__name__)


def _atomic_write(path: Path, data: str) -> None:
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def guess_content_type(path: Union[str, Path]) -> str:
    """Guess an image content type from a file name."""
    suffix = Path(path).suffix.lower()
    if suffix in (".heic", ".heif"):
        return f"image/{suffix[1:]}"
    content_type, _ = mimetypes.guess_type(str(path))
    return content_type or "application/octet-stream"


class PathBlob:
    """A local file exposed with the blob interface, for one-off extractions."""

    def __init__(self, path: Union[str, Path], content_type: Optional[str] = None):
        self.path = Path(path)
        self.content_type = content_type or guess_content_type(self.path)
        self.byte_size = self.path.stat().st_size

    def open(self):
        return open(self.path, "rb")


class LocalBlobStore:
    """Directory of uploaded images with JSON metadata sidecars."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _data_path(self, blob_id: str) -> Path:
        # Blob ids are generated here; reject anything that could escape root
        if not blob_id or "/" in blob_id or "\\" in blob_id or blob_id.startswith("."):
            raise RecordNotFoundError("Blob", blob_id)
        return self.root / blob_id

    def _meta_path(self, blob_id: str) -> Path:
        return self._data_path(blob_id).with_name(f"{blob_id}.json")

    def put_file(self, path: Union[str, Path], content_type: Optional[str] = None) -> StoredBlob:
        """Copy a file into the store."""
        path = Path(path)
        blob_id = uuid.uuid4().hex
        target = self._data_path(blob_id)
        shutil.copyfile(path, target)

        meta = StoredBlob(
            blob_id=blob_id,
            content_type=content_type or guess_content_type(path),
            byte_size=target.stat().st_size,
            filename=path.name,
        )
        _atomic_write(self._meta_path(blob_id), meta.model_dump_json())
        logger.debug("Stored blob %s (%d bytes)", blob_id, meta.byte_size)
        return meta

    def get(self, blob_id: str) -> Optional[StoredBlob]:
        try:
            meta_path = self._meta_path(blob_id)
        except RecordNotFoundError:
            return None
        if not meta_path.exists() or not self._data_path(blob_id).exists():
            return None
        return StoredBlob.model_validate_json(meta_path.read_text(encoding="utf-8"))

    @contextmanager
    def open(self, blob_id: str) -> Iterator[BinaryIO]:
        path = self._data_path(blob_id)
        if not path.exists():
            raise RecordNotFoundError("Blob", blob_id)
        with open(path, "rb") as handle:
            yield handle

    def delete(self, blob_id: str) -> bool:
        try:
            data_path = self._data_path(blob_id)
        except RecordNotFoundError:
            return False
        removed = False
        for path in (data_path, self._meta_path(blob_id)):
            if path.exists():
                path.unlink()
                removed = True
        return removed


class FileScanRepository:
    """Scan records stored as one JSON document each."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, record_id: UUID) -> Path:
        return self.root / f"{UUID(str(record_id))}.json"

    def add(self, record: ScanRecord) -> ScanRecord:
        _atomic_write(self._path(record.id), record.model_dump_json())
        return record

    def get(self, record_id: UUID) -> Optional[ScanRecord]:
        try:
            path = self._path(record_id)
        except ValueError:
            return None
        if not path.exists():
            return None
        try:
            return ScanRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            # Deleted between the existence check and the read
            return None

    def save(self, record: ScanRecord) -> bool:
        path = self._path(record.id)
        if not path.exists():
            return False
        record.updated_at = utcnow()
        _atomic_write(path, record.model_dump_json())
        return True

    def delete(self, record_id: UUID) -> bool:
        try:
            path = self._path(record_id)
        except ValueError:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def list_records(self) -> list[ScanRecord]:
        records = []
        for path in sorted(self.root.glob("*.json")):
            records.append(ScanRecord.model_validate_json(path.read_text(encoding="utf-8")))
        return sorted(records, key=lambda r: r.created_at)
