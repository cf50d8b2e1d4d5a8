"""Typer CLI for CertLedger."""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="certledger", help="CertLedger: ledger-anchored academic certificates")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the CertLedger API server."""
    import uvicorn
    from certledger.app import create_app

    console.print(f"[bold green]Starting CertLedger on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command("hash")
def hash_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Certificate PDF"),
):
    """Print the content hash of a certificate document (offline)."""
    from certledger.documents.renderer import content_hash

    console.print(f"[bold]{content_hash(path.read_bytes())}[/bold]")


@app.command("render-sample")
def render_sample(
    output: Path = typer.Option(Path("sample-certificate.pdf"), help="Output file"),
    student_name: str = typer.Option("Jane Doe", help="Name printed on the certificate"),
):
    """Render a sample certificate and print its content hash (offline, no ledger)."""
    from datetime import datetime, timezone

    from certledger.common.config import get_settings
    from certledger.common.exceptions import RenderError
    from certledger.documents.renderer import (
        CertificateData,
        content_hash,
        make_certificate_id,
        render_certificate,
    )

    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    data = CertificateData(
        student_id="ST000001",
        student_name=student_name,
        course="BSc Computer Science",
        gpa=3.6,
        graduation_date="2025-07-15",
        university=settings.default_university,
        batch_id="batch_sample",
        batch_name="Sample Batch",
        academic_year="2024/2025",
        semester="Semester 2",
        faculty="Technology",
        issued_by=settings.issuer,
        issued_at=issued_at.isoformat(),
        certificate_id=make_certificate_id("batch_sample", "ST000001", issued_at),
    )
    try:
        pdf = render_certificate(data)
    except RenderError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)
    output.write_bytes(pdf)
    console.print(f"Wrote {output} ({len(pdf)} bytes)")
    console.print(f"[bold]{content_hash(pdf)}[/bold]")


@app.command()
def verify(
    certificate: str = typer.Argument(..., help="Content hash, or path to a certificate PDF"),
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Verify a certificate against a running CertLedger server."""
    import httpx
    from certledger.common.config import get_settings
    from certledger.documents.renderer import content_hash

    path = Path(certificate)
    candidate = content_hash(path.read_bytes()) if path.is_file() else certificate
    prefix = get_settings().api_prefix

    try:
        resp = httpx.get(f"{url}{prefix}/verify/certificate/hash/{candidate}", timeout=30)
        resp.raise_for_status()
        data = resp.json()
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    table = Table(title=f"Verification of {candidate[:16]}…")
    table.add_column("Check")
    table.add_column("Result")
    for step, passed in data["verificationSteps"].items():
        table.add_row(step, "[green]pass[/green]" if passed else "[red]fail[/red]")
    console.print(table)

    if data["isValid"]:
        console.print(f"[bold green]VALID[/bold green] — {data['message']}")
    else:
        console.print(f"[bold red]INVALID[/bold red] — {data['message']}")
        raise typer.Exit(1)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check CertLedger server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command("ledger-status")
def ledger_status(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
    api_key: str = typer.Option(..., envvar="CERTLEDGER_API_KEY", help="Admin API key"),
):
    """Show the funding account balance and whether commits can proceed."""
    import httpx
    from certledger.common.config import get_settings

    prefix = get_settings().api_prefix
    try:
        resp = httpx.get(
            f"{url}{prefix}/ledger/status",
            headers={"X-CertLedger-Api-Key": api_key},
            timeout=30,
        )
        resp.raise_for_status()
        data = resp.json()
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"Address:  {data['address']} ({data['network']})")
    console.print(f"Balance:  {data['balance_ada']:.6f} ADA across {data['utxo_count']} UTXOs")
    if data["can_transact"]:
        console.print("[bold green]Ready to commit batches[/bold green]")
    else:
        console.print("[bold red]Insufficient funds to commit batches[/bold red]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
