"""UtilSign CLI — operate the signing service from the command line.

Usage:
    utilsign burn <pdf> --placements signatures.json --out signed.pdf
    utilsign list --user <user-id> [--status completed]
    utilsign status <document-id> --user <user-id>
    utilsign audit <document-id> --user <user-id>
    utilsign serve [--port 8400]
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .burn import PdfBurnError, burn_signatures
from .config import ServiceConfig
from .engine import CompletionEngine
from .errors import SigningError
from .models import BurnInput, BurnStatus, Caller, DocumentStatus, SignerStatus

console = Console()

STATUS_COLORS = {
    DocumentStatus.DRAFT: "dim",
    DocumentStatus.SENT: "yellow",
    DocumentStatus.IN_PROGRESS: "blue",
    DocumentStatus.COMPLETED: "green",
    DocumentStatus.CANCELLED: "red",
}


@click.group()
@click.option(
    "--data-dir",
    type=click.Path(),
    default=None,
    help="UtilSign data directory (default: ~/.utilsign)",
)
@click.option("-v", "--verbose", is_flag=True, help="Log progress to stderr")
@click.pass_context
def main(ctx: click.Context, data_dir: Optional[str], verbose: bool) -> None:
    """UtilSign — document e-signatures, burned into the PDF."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")
    ctx.ensure_object(dict)
    config = ServiceConfig(**({"data_dir": Path(data_dir)} if data_dir else {}))
    ctx.obj["config"] = config
    ctx.obj["engine"] = CompletionEngine.from_config(config)


def _caller(user: str, email: Optional[str]) -> Caller:
    return Caller(user_id=user, email=email or user)


def _fail(message: str) -> None:
    console.print(f"[red]{escape(message)}[/]")
    sys.exit(1)


# ---------------------------------------------------------------------------
# Burn
# ---------------------------------------------------------------------------

@main.command()
@click.argument("pdf", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--placements",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON list of {placeholder: {...}, image_base64: ...} entries",
)
@click.option("--out", "out_path", required=True, type=click.Path(dir_okay=False), help="Output PDF")
def burn(pdf: str, placements: str, out_path: str) -> None:
    """Burn signature images into a PDF without touching the store."""
    try:
        raw = json.loads(Path(placements).read_text(encoding="utf-8"))
        inputs = [BurnInput.model_validate(item) for item in raw]
    except (json.JSONDecodeError, ValidationError, TypeError) as exc:
        _fail(f"Invalid placements file: {exc}")

    try:
        result = burn_signatures(Path(pdf).read_bytes(), inputs)
    except PdfBurnError as exc:
        _fail(str(exc))

    Path(out_path).write_bytes(result.pdf_bytes)

    table = Table(title=f"Burn: {Path(pdf).name}")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Page", justify="right")
    table.add_column("Result", justify="center")
    table.add_column("Reason")
    for outcome in result.report.outcomes:
        label = (
            "[bold green]BURNED[/]"
            if outcome.status == BurnStatus.BURNED
            else "[bold yellow]SKIPPED[/]"
        )
        table.add_row(str(outcome.index), str(outcome.page_number), label, outcome.reason or "")
    console.print(table)

    console.print(
        Panel(
            f"  Output:  {out_path}\n"
            f"  Burned:  {result.report.burned_count}\n"
            f"  Skipped: {len(result.report.skipped)}\n"
            f"  SHA-256: {CompletionEngine.hash_bytes(result.pdf_bytes)[:16]}...",
            title="UtilSign",
            border_style="green",
        )
    )


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------

@main.command("list")
@click.option("--user", required=True, help="Owning user id")
@click.option("--status", default=None, type=click.Choice([s.value for s in DocumentStatus]))
@click.pass_context
def list_docs(ctx: click.Context, user: str, status: Optional[str]) -> None:
    """List a user's documents."""
    engine: CompletionEngine = ctx.obj["engine"]
    status_filter = DocumentStatus(status) if status else None
    docs = engine.list_documents(_caller(user, None), status_filter)

    if not docs:
        console.print("[dim]No documents found.[/]")
        return

    table = Table(title="UtilSign Documents")
    table.add_column("ID", style="dim", max_width=12)
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Status", justify="center")
    table.add_column("Signers", justify="right")
    table.add_column("Created")

    for doc in docs:
        signers = engine.store.list_signers(doc.id)
        signed = sum(1 for s in signers if s.status == SignerStatus.SIGNED)
        color = STATUS_COLORS.get(doc.status, "white")
        table.add_row(
            doc.id[:12],
            doc.file_name,
            doc.type.value,
            f"[{color}]{doc.status.value}[/]",
            f"{signed}/{len(signers)}",
            doc.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

@main.command()
@click.argument("document_id")
@click.option("--user", required=True, help="Owning user id")
@click.pass_context
def status(ctx: click.Context, document_id: str, user: str) -> None:
    """Show a document and where each signer stands."""
    engine: CompletionEngine = ctx.obj["engine"]
    try:
        view = engine.document_status(_caller(user, None), document_id)
    except SigningError as exc:
        _fail(exc.message)

    doc = view.document
    color = STATUS_COLORS.get(doc.status, "white")
    console.print(
        Panel(
            f"  Document: {doc.file_name}\n"
            f"  ID:       {doc.id}\n"
            f"  Type:     {doc.type.value}\n"
            f"  Status:   [{color}]{doc.status.value}[/]",
            title="UtilSign",
        )
    )

    if not view.signers:
        return
    table = Table(title="Signers")
    table.add_column("Order", justify="right")
    table.add_column("Email", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Signed")
    for signer in view.signers:
        table.add_row(
            str(signer.priority),
            signer.email,
            signer.status.value,
            signer.signed_at.strftime("%Y-%m-%d %H:%M") if signer.signed_at else "—",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

@main.command()
@click.argument("document_id")
@click.option("--user", required=True, help="Owning user id")
@click.pass_context
def audit(ctx: click.Context, document_id: str, user: str) -> None:
    """Show the audit trail for a document, newest first."""
    engine: CompletionEngine = ctx.obj["engine"]
    try:
        entries = engine.audit_trail(_caller(user, None), document_id)
    except SigningError as exc:
        _fail(exc.message)

    if not entries:
        console.print("[dim]No audit entries found.[/]")
        return

    table = Table(title="Audit Trail")
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Event", style="cyan", no_wrap=True)
    table.add_column("Actor")
    table.add_column("Details")

    for e in entries:
        table.add_row(
            e.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            e.event_type.value,
            e.actor_email,
            json.dumps(e.metadata) if e.metadata else "",
        )

    console.print(table)


# ---------------------------------------------------------------------------
# Serve
# ---------------------------------------------------------------------------

@main.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8400, help="Port")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Start the UtilSign API server."""
    import uvicorn

    from .api import create_app

    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")
    console.print(f"[bold]UtilSign API[/] listening on [cyan]http://{host}:{port}[/]")
    console.print(f"[dim]Data directory: {ctx.obj['config'].data_dir}[/]\n")
    uvicorn.run(create_app(ctx.obj["config"]), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
