"""Command-line interface for Branch Outreach.

Provides commands for configuration validation, customer analysis, letter
generation, email outreach and the API server.

Usage:
    python -m outreach validate-config
    python -m outreach analyze customers.xlsx --issue kyc_update
    python -m outreach letters customers.xlsx --issue account_closure --pdf --out-dir letters/
    python -m outreach send customers.xlsx --issue document_expiry --only-matched
    python -m outreach serve
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
import regex
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from outreach.classifier.rules import IssueType
from outreach.config import validate_config_file
from outreach.core.logging import configure_logging

if TYPE_CHECKING:
    from outreach.batch.processor import BatchProgress
    from outreach.services import Services

console = Console()

ISSUE_CHOICE = click.Choice([t.value for t in IssueType], case_sensitive=False)


def _safe_filename(value: str) -> str:
    """Reduce an account number to characters safe in a file name."""
    return regex.sub(r"[^A-Za-z0-9_-]+", "_", value).strip("_") or "unknown"


def _init_services(config_path: Path | None) -> Services:
    """Load config and wire services.

    Falls back to built-in defaults when no config file exists and no path
    was given. Prints an actionable message and exits on a bad config.
    """
    from outreach.config import get_config, load_config
    from outreach.core.errors import ConfigLoadError, ConfigValidationError
    from outreach.services import build_services

    try:
        config = load_config(config_path) if config_path else get_config(allow_missing=True)
    except (ConfigLoadError, ConfigValidationError) as e:
        console.print(
            f"[red]Config error:[/red] {e}\n\n"
            "Fix config/config.yaml or run [cyan]validate-config[/cyan] for details."
        )
        sys.exit(1)

    return build_services(config)


def _read_file(path: Path) -> list[dict[str, Any]]:
    """Read customers from a spreadsheet, exiting with a message on failure."""
    from outreach.core.errors import IngestionError, InputValidationError
    from outreach.ingest.spreadsheet import read_customers

    try:
        result = read_customers(path)
    except (InputValidationError, IngestionError) as e:
        console.print(f"[red]Could not read {path}:[/red] {e}")
        sys.exit(2)

    sheet = f" (sheet '{result.sheet_name}')" if result.sheet_name else ""
    console.print(f"Loaded [cyan]{len(result.customers)}[/cyan] customers from {path.name}{sheet}")
    return result.customers


async def _matched_customers(
    services: Services, customers: list[dict[str, Any]], issue: str
) -> list[dict[str, Any]]:
    """Narrow customers to rule matches for the issue type."""
    result = await services.engine.classify(customers, issue)
    console.print(
        f"[cyan]{result.final_matches}[/cyan] of {result.total_customers} customers "
        f"match [cyan]{issue}[/cyan]"
    )
    return [dict(m.customer) for m in result.matches]


def _run(coro: Any) -> Any:
    """Run a coroutine, mapping Ctrl-C and errors to exit codes."""
    from outreach.core.errors import InputValidationError

    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(130)
    except InputValidationError as e:
        console.print(f"\n[red]Invalid input:[/red] {e}")
        sys.exit(2)


config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)
issue_option = click.option(
    "--issue", "-i", "issue", type=ISSUE_CHOICE, required=True, help="Issue type"
)
file_argument = click.argument(
    "file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Branch Outreach - customer classification and letter outreach."""
    log_level = "DEBUG" if debug else "INFO"
    # Use human-readable output for CLI, JSON for server
    configure_logging(log_level=log_level, json_output=False)


@cli.command("validate-config")
@config_option
def validate_config(config_path: Path | None) -> None:
    """Validate the configuration file.

    Checks that config.yaml exists and passes Pydantic schema validation.
    Reports specific errors for invalid fields.
    """
    console.print(f"Validating config: [cyan]{config_path or 'config/config.yaml'}[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.command("templates")
def templates() -> None:
    """List the available letter templates."""
    from outreach.letters.templates import get_template_catalog

    table = Table(box=None, padding=(0, 2))
    table.add_column("Template", style="cyan")
    table.add_column("Name")
    table.add_column("Urgency")
    table.add_column("Follow-up", justify="right")

    for template_id, info in get_template_catalog().items():
        table.add_row(template_id, info["name"], info["urgency"], f"{info['follow_up_days']}d")
    console.print(table)


@cli.command("analyze")
@file_argument
@issue_option
@click.option(
    "--use-scoring/--no-use-scoring",
    default=None,
    help="Enrich matches with Claude scoring (default: from config)",
)
@click.option("--min-confidence", type=click.FloatRange(0.0, 1.0), default=None)
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
@config_option
def analyze(
    file: Path,
    issue: str,
    use_scoring: bool | None,
    min_confidence: float | None,
    as_json: bool,
    config_path: Path | None,
) -> None:
    """Classify customers in FILE for an issue type."""
    services = _init_services(config_path)
    customers = _read_file(file)
    result = _run(_run_analysis(services, customers, issue, use_scoring, min_confidence))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str, ensure_ascii=False))
        return

    console.print(
        f"\n[bold]{result.final_matches}[/bold] of {result.total_customers} customers "
        f"need [cyan]{issue}[/cyan] outreach ({result.method}, "
        f"{result.processing_time_ms} ms)"
    )
    if result.scoring_error:
        console.print(f"[yellow]Scoring unavailable:[/yellow] {result.scoring_error}")

    if result.matches:
        table = Table(box=None, padding=(0, 2))
        table.add_column("Account", style="cyan")
        table.add_column("Name")
        table.add_column("Priority")
        table.add_column("Confidence", justify="right")
        table.add_column("Reason")
        for match in result.matches:
            table.add_row(
                match.account_no,
                str(match.customer.get("NAME") or ""),
                match.priority.value,
                f"{match.confidence:.2f}",
                match.reason,
            )
        console.print(table)

    if result.recommendations:
        console.print("\n[bold]Recommendations[/bold]")
        for line in result.recommendations:
            console.print(f"  - {line}")


async def _run_analysis(
    services: Services,
    customers: list[dict[str, Any]],
    issue: str,
    use_scoring: bool | None,
    min_confidence: float | None,
):
    from outreach.classifier.engine import ClassificationOptions

    options = ClassificationOptions.from_config(
        services.config,
        use_external_scoring=use_scoring,
        min_confidence=min_confidence,
    )
    return await services.engine.classify(customers, issue, options)


@cli.command("letters")
@file_argument
@issue_option
@click.option("--message", "-m", default=None, help="Custom paragraph for every letter")
@click.option("--pdf/--no-pdf", default=None, help="Also render PDFs (default: from config)")
@click.option(
    "--out-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("letters"),
    show_default=True,
)
@click.option(
    "--only-matched/--all", default=True, help="Only customers matching the issue rule"
)
@config_option
def letters(
    file: Path,
    issue: str,
    message: str | None,
    pdf: bool | None,
    out_dir: Path,
    only_matched: bool,
    config_path: Path | None,
) -> None:
    """Generate letters for customers in FILE and write them to --out-dir."""
    services = _init_services(config_path)
    customers = _read_file(file)
    generate_pdf = services.config.letters.generate_pdf if pdf is None else pdf

    run = _run(_run_letters(services, customers, issue, message, generate_pdf, only_matched))
    if run is None:
        console.print("[yellow]No customers to write letters for.[/yellow]")
        return

    out_dir.mkdir(parents=True, exist_ok=True)
    written = 0
    for job in run.results:
        if job.payload is None:
            console.print(f"[red]✗[/red] {job.item_key}: {job.error_message}")
            continue
        letter = job.payload
        stem = f"{issue}_{_safe_filename(letter.account_no)}"
        (out_dir / f"{stem}.txt").write_text(letter.content, encoding="utf-8")
        if letter.pdf is not None:
            (out_dir / f"{stem}.pdf").write_bytes(letter.pdf)
        elif letter.pdf_error:
            console.print(
                f"[yellow]![/yellow] {letter.account_no}: PDF failed ({letter.pdf_error})"
            )
        written += 1

    stats = run.statistics
    console.print(
        f"\n[green]✓[/green] Wrote {written} letters to [cyan]{out_dir}[/cyan] "
        f"({stats.failed} failed, {stats.elapsed_ms} ms)"
    )


async def _run_letters(
    services: Services,
    customers: list[dict[str, Any]],
    issue: str,
    message: str | None,
    generate_pdf: bool,
    only_matched: bool,
):
    if only_matched:
        customers = await _matched_customers(services, customers, issue)
    if not customers:
        return None

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Generating letters...", total=len(customers))

        def on_progress(p: BatchProgress) -> None:
            progress.update(
                task,
                completed=p.processed,
                description=f"Generated batch {p.batch}/{p.total_batches}...",
            )

        return await services.letters.generate(
            customers, issue, message, generate_pdf=generate_pdf, on_progress=on_progress
        )


@cli.command("send")
@file_argument
@issue_option
@click.option("--message", "-m", default=None, help="Custom paragraph for every email")
@click.option("--attach-pdf/--no-attach-pdf", default=None, help="Attach the letter as a PDF")
@click.option(
    "--only-matched/--all", default=True, help="Only customers matching the issue rule"
)
@click.option("--yes", "-y", is_flag=True, help="Send without confirmation")
@config_option
def send(
    file: Path,
    issue: str,
    message: str | None,
    attach_pdf: bool | None,
    only_matched: bool,
    yes: bool,
    config_path: Path | None,
) -> None:
    """Email the letter for an issue type to customers in FILE."""
    services = _init_services(config_path)
    if not services.mailer.configured:
        console.print(
            "[red]SMTP is not configured.[/red] Set the [cyan]smtp[/cyan] section in "
            "config.yaml and OUTREACH_SMTP_PASSWORD in the environment."
        )
        sys.exit(1)

    customers = _read_file(file)
    if not yes and not click.confirm(f"Send {issue} emails?", default=False):
        console.print("[yellow]Cancelled.[/yellow]")
        return

    attach = services.config.email.attach_pdf if attach_pdf is None else attach_pdf
    run = _run(_run_send(services, customers, issue, message, attach, only_matched))
    if run is None:
        console.print("[yellow]No customers to email.[/yellow]")
        return

    from outreach.batch.processor import JobStatus
    from outreach.pipeline.emails import summarize

    for job in run.by_status(JobStatus.FAILED):
        console.print(f"[red]✗[/red] {job.item_key}: {job.error_message} ({job.error_code})")

    summary = summarize(run)
    console.print(
        f"\n[green]✓[/green] Sent {summary['sent']} of {summary['total']} "
        f"({summary['failed']} failed, {summary['skipped']} skipped, "
        f"{summary['success_rate']}% success)"
    )


async def _run_send(
    services: Services,
    customers: list[dict[str, Any]],
    issue: str,
    message: str | None,
    attach_pdf: bool,
    only_matched: bool,
):
    if only_matched:
        customers = await _matched_customers(services, customers, issue)
    if not customers:
        return None

    def on_progress(p: BatchProgress) -> None:
        console.print(
            f"  batch {p.batch}/{p.total_batches}: {p.processed}/{p.total} ({p.percentage}%)"
        )

    return await services.emails.dispatch(
        customers,
        issue,
        custom_message=message,
        attach_pdf=attach_pdf,
        on_progress=on_progress,
    )


@cli.command("serve")
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to (default: localhost only for security)",
)
@click.option(
    "--port",
    default=8000,
    type=int,
    help="Port to bind to",
)
def serve(host: str, port: int) -> None:
    """Start the JSON API server."""
    import uvicorn

    from outreach.web.app import create_app

    if host == "0.0.0.0":  # noqa: S104
        console.print(
            "[yellow]Warning:[/yellow] Binding to 0.0.0.0 exposes the server to the network.\n"
            "This app has no authentication. Use 127.0.0.1 for local-only access."
        )

    configure_logging(log_level="INFO", json_output=True)

    app = create_app()
    console.print(f"Starting server on [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run(app, host=host, port=port, log_level="info")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
