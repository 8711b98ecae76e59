"""Tests for the command line interface."""

from unittest.mock import patch
from uuid import uuid4

import pytest
from typer.testing import CliRunner

from conftest import FakeClient, image_bytes
from medscan.cli import app
from medscan.config import Settings
from medscan.models import ExtractionStatus
from medscan.storage import FileScanRepository, JsonCatalog, LocalBlobStore
from medscan.workflow.lifecycle import ScanWorkflow

runner = CliRunner()


@pytest.fixture
def image_path(tmp_path):
    path = tmp_path / "report.png"
    path.write_bytes(image_bytes())
    return path


@pytest.fixture
def client(glucose_reply):
    return FakeClient(reply=glucose_reply)


@pytest.fixture
def workflow(tmp_path, client, normalizer):
    return ScanWorkflow(
        repository=FileScanRepository(tmp_path / "records"),
        blob_store=LocalBlobStore(tmp_path / "blobs"),
        catalog=JsonCatalog.load(),
        client=client,
        normalizer=normalizer,
        config=Settings(),
    )


class TestExtractCommand:
    """One-off extraction."""

    def test_extract_json(self, image_path, client):
        with patch("medscan.services.extraction.build_model_client", return_value=client):
            result = runner.invoke(app, ["extract", str(image_path), "--type", "biology_report", "--json"])

        assert result.exit_code == 0
        assert "City Lab" in result.output
        assert "matched_biomarker_id" in result.output

    def test_extract_failure_exits_nonzero(self, image_path):
        with patch(
            "medscan.services.extraction.build_model_client",
            return_value=FakeClient(reply="no json here"),
        ):
            result = runner.invoke(app, ["extract", str(image_path), "-t", "prescription"])

        assert result.exit_code == 1
        assert "extraction" in result.output


class TestScanCommands:
    """Scan lifecycle through the CLI."""

    def test_scan_then_confirm(self, workflow, image_path):
        with patch("medscan.cli._workflow", return_value=workflow):
            result = runner.invoke(app, ["scan", str(image_path), "--type", "biology_report", "--sync"])
            assert result.exit_code == 0
            assert "extracted" in result.output

            record = workflow.repository.list_records()[0]
            result = runner.invoke(app, ["confirm", str(record.id)])
            assert result.exit_code == 0

        assert workflow.repository.get(record.id).extraction_status == ExtractionStatus.CONFIRMED

    def test_background_without_queue_fails(self, workflow, image_path):
        with patch("medscan.cli._workflow", return_value=workflow):
            result = runner.invoke(app, ["scan", str(image_path), "-t", "prescription", "--background"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_status_unknown(self, workflow):
        with patch("medscan.cli._workflow", return_value=workflow):
            result = runner.invoke(app, ["status", str(uuid4())])

        assert result.exit_code == 1

    def test_cancel(self, workflow, image_path):
        with patch("medscan.cli._workflow", return_value=workflow):
            runner.invoke(app, ["scan", str(image_path), "-t", "biology_report", "--sync"])
            record = workflow.repository.list_records()[0]

            result = runner.invoke(app, ["cancel", str(record.id)])

        assert result.exit_code == 0
        assert workflow.repository.get(record.id) is None

    def test_confirm_twice_rejected(self, workflow, image_path):
        with patch("medscan.cli._workflow", return_value=workflow):
            runner.invoke(app, ["scan", str(image_path), "-t", "biology_report", "--sync"])
            record = workflow.repository.list_records()[0]
            runner.invoke(app, ["confirm", str(record.id)])

            result = runner.invoke(app, ["confirm", str(record.id)])

        assert result.exit_code == 1
