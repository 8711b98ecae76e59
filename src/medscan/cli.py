"""medscan CLI."""

import json
from pathlib import Path
from typing import Optional
from uuid import UUID

import typer
from arq.worker import run_worker
from rich.console import Console
from rich.table import Table

from medscan.config import settings
from medscan.errors import MedScanError
from medscan.log import setup_logging
from medscan.models import (
    DocumentType,
    ExecutionMode,
    ExtractionStatus,
    ScanRecord,
)
from medscan.services import extraction_service_for, user_guidance
from medscan.storage import JsonCatalog, PathBlob
from medscan.workflow.jobs import WorkerSettings, build_workflow

app = typer.Typer(
    name="medscan",
    help="Extract structured data from photos of prescriptions and lab reports",
    add_completion=False,
)
console = Console()

STATUS_STYLES = {
    ExtractionStatus.PENDING: "yellow",
    ExtractionStatus.PROCESSING: "cyan",
    ExtractionStatus.EXTRACTED: "green",
    ExtractionStatus.FAILED: "red",
    ExtractionStatus.CONFIRMED: "bold green",
}


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, help="Logging level"),
) -> None:
    setup_logging(log_level)


def _workflow():
    return build_workflow()


def _fail(error: MedScanError) -> None:
    console.print(f"[red]Error:[/red] {error.message}")
    raise typer.Exit(code=1)


def _format_flag(value: Optional[bool]) -> str:
    if value is None:
        return "[dim]unknown[/dim]"
    return "[red]yes[/red]" if value else "no"


def _print_payload(document_type: DocumentType, payload: dict) -> None:
    if document_type == DocumentType.PRESCRIPTION:
        console.print(f"[bold]Doctor:[/bold] {payload.get('doctor_name') or '-'}")
        console.print(f"[bold]Date:[/bold] {payload.get('prescription_date') or '-'}")
        table = Table(title="Medications")
        for column in ("Drug", "Dosage", "Frequency", "Duration", "Matched", "Confidence", "Verify"):
            table.add_column(column)
        for med in payload.get("medications", []):
            table.add_row(
                med["drug_name"],
                med.get("dosage") or "",
                med.get("frequency") or "",
                med.get("duration") or "",
                "yes" if med.get("matched_drug_id") else "no",
                f"{med['confidence']:.2f}",
                "[yellow]yes[/yellow]" if med["requires_verification"] else "no",
            )
    else:
        console.print(f"[bold]Lab:[/bold] {payload.get('lab_name') or '-'}")
        console.print(f"[bold]Date:[/bold] {payload.get('test_date') or '-'}")
        table = Table(title="Test results")
        for column in ("Biomarker", "Value", "Unit", "Range", "Out of range", "Confidence", "Verify"):
            table.add_column(column)
        for result in payload.get("test_results", []):
            ref_min, ref_max = result.get("reference_min"), result.get("reference_max")
            table.add_row(
                result["biomarker_name"],
                result.get("value") or "",
                result.get("unit") or "",
                f"{ref_min:g}-{ref_max:g}" if ref_min is not None and ref_max is not None else "",
                _format_flag(result.get("out_of_range")),
                f"{result['confidence']:.2f}",
                "[yellow]yes[/yellow]" if result["requires_verification"] else "no",
            )
    console.print(table)


def _print_record(record: ScanRecord) -> None:
    style = STATUS_STYLES.get(record.extraction_status, "white")
    console.print(f"[bold blue]Scan:[/bold blue] {record.id}")
    console.print(f"[dim]Type: {record.document_type.value}[/dim]")
    console.print(f"Status: [{style}]{record.extraction_status.value}[/{style}]")

    if record.extraction_status == ExtractionStatus.FAILED and record.extracted_data:
        console.print(
            f"[red]{user_guidance(record.error_kind, record.extracted_data.get('error_message'))}[/red]"
        )
    elif record.extracted_data and record.extraction_status in (
        ExtractionStatus.EXTRACTED,
        ExtractionStatus.CONFIRMED,
    ):
        _print_payload(record.document_type, record.extracted_data)


@app.command()
def extract(
    image_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image to extract"),
    document_type: DocumentType = typer.Option(..., "--type", "-t", help="Document type"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw payload as JSON"),
) -> None:
    """Extract a document directly, without creating a scan record."""
    try:
        catalog = JsonCatalog.load(settings.catalog_path)
    except MedScanError as e:
        _fail(e)

    service = extraction_service_for(document_type, catalog)
    console.print(f"[bold blue]Extracting:[/bold blue] {image_path}")
    result = service.extract(PathBlob(image_path))

    if as_json:
        console.print_json(json.dumps(result.to_payload()))
    elif result.success:
        _print_payload(document_type, result.to_payload())
    else:
        console.print(f"[red]Extraction failed ({result.error_kind.value})[/red]")
        console.print(user_guidance(result.error_kind, result.message))

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def scan(
    image_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image to scan"),
    document_type: DocumentType = typer.Option(..., "--type", "-t", help="Document type"),
    background: Optional[bool] = typer.Option(
        None,
        "--background/--sync",
        help="Force background or inline extraction (default: by image size)",
    ),
) -> None:
    """Upload an image and start a scan record through the workflow."""
    requested_mode = None
    if background is not None:
        requested_mode = ExecutionMode.ASYNC if background else ExecutionMode.SYNC

    try:
        workflow = _workflow()
        blob = workflow.blob_store.put_file(image_path)
        outcome = workflow.start_scan(document_type, blob.blob_id, requested_mode)
    except MedScanError as e:
        _fail(e)

    console.print(
        f"[dim]Mode: {outcome.mode.value}, "
        f"estimated time: {outcome.estimated_seconds:g}s[/dim]"
    )
    if outcome.mode == ExecutionMode.ASYNC:
        console.print(f"[bold blue]Queued:[/bold blue] {outcome.record.id}")
        console.print("[dim]Run `medscan status <id>` to follow progress[/dim]")
    else:
        _print_record(outcome.record)


@app.command()
def status(
    record_id: UUID = typer.Argument(..., help="Scan record id"),
) -> None:
    """Show a scan record and its extracted data."""
    record = _workflow().repository.get(record_id)
    if record is None:
        console.print(f"[red]Scan record {record_id} not found[/red]")
        raise typer.Exit(code=1)
    _print_record(record)


@app.command()
def confirm(
    record_id: UUID = typer.Argument(..., help="Scan record id"),
) -> None:
    """Confirm a reviewed extraction."""
    try:
        record = _workflow().confirm(record_id)
    except MedScanError as e:
        _fail(e)
    console.print(f"[green]Confirmed[/green] {record.id}")


@app.command()
def cancel(
    record_id: UUID = typer.Argument(..., help="Scan record id"),
) -> None:
    """Cancel a scan; confirmed records are kept."""
    if _workflow().cancel(record_id):
        console.print(f"[yellow]Cancelled[/yellow] {record_id}")
    else:
        console.print(f"[dim]Nothing to cancel for {record_id}[/dim]")


@app.command()
def worker() -> None:
    """Run the background extraction worker."""
    console.print("[bold blue]Starting extraction worker[/bold blue]")
    console.print(f"[dim]Redis: {settings.redis_url}[/dim]")
    run_worker(WorkerSettings)


if __name__ == "__main__":
    app()
