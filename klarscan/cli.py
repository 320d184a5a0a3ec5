"""CLI interface for klarscan."""

import asyncio
import logging
from collections import Counter

import typer
from rich.console import Console
from rich.table import Table

from klarscan.config.settings import resolve_config
from klarscan.exceptions import ForwardingError, KlarScanError
from klarscan.forwarding import ResultForwarder
from klarscan.models.model_config import Config, Severity
from klarscan.models.model_scanner import ScanOutcome, ScanResult, Vulnerability
from klarscan.scanner.scan_orchestrator import ScanOrchestrator

EXIT_FATAL = 1
EXIT_DEGRADED = 2

app = typer.Typer(
    name="klarscan",
    help="klarscan - Scan a container image for known vulnerabilities with Clair",
)

console = Console()

_SEVERITY_COLORS = {
    Severity.DEFCON1: "bold red",
    Severity.CRITICAL: "red",
    Severity.HIGH: "orange1",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "green",
    Severity.NEGLIGIBLE: "dim",
    Severity.UNKNOWN: "dim",
}


def _severity_of(vuln: Vulnerability) -> Severity:
    """Map a reported severity string onto the known levels."""
    try:
        return Severity(vuln.severity.strip().lower().title())
    except ValueError:
        return Severity.UNKNOWN


def _render_standard(config: Config, result: ScanResult) -> None:
    summary = Table(title=f"Scan of {config.docker.image_name}")
    summary.add_column("Field", style="cyan")
    summary.add_column("Value", style="magenta")
    summary.add_row("Digest", result.image_hash or "N/A")
    summary.add_row("Schema version", str(result.image_schema_version))
    summary.add_row("Layers", str(len(result.fs_layer_commands)))
    summary.add_row("Vulnerabilities", str(len(result.vulnerabilities)))
    console.print(summary)

    if not result.vulnerabilities:
        return

    counts = Counter(_severity_of(v) for v in result.vulnerabilities)
    severity_table = Table(title="Vulnerabilities by Severity")
    severity_table.add_column("Severity", style="cyan")
    severity_table.add_column("Count", justify="right")
    for severity in reversed(list(Severity)):
        if counts[severity]:
            color = _SEVERITY_COLORS[severity]
            severity_table.add_row(severity.value, f"[{color}]{counts[severity]}[/{color}]")
    console.print(severity_table)

    shown = [v for v in result.vulnerabilities if _severity_of(v).rank >= config.clair_output.rank]
    if not shown:
        return

    detail = Table(title=f"Vulnerabilities at or above {config.clair_output.value}")
    detail.add_column("ID", style="bold")
    detail.add_column("Severity")
    detail.add_column("Package", style="blue")
    detail.add_column("Fixed by", style="dim")
    for vuln in sorted(shown, key=lambda v: _severity_of(v).rank, reverse=True):
        color = _SEVERITY_COLORS[_severity_of(vuln)]
        detail.add_row(
            vuln.name,
            f"[{color}]{vuln.severity}[/{color}]",
            f"{vuln.feature_name} {vuln.feature_version}".strip(),
            vuln.fixed_by or "-",
        )
    console.print(detail)


def _render(config: Config, outcome: ScanOutcome) -> None:
    if config.json_output or config.format_style == "json":
        typer.echo(outcome.result.model_dump_json(indent=2))
    else:
        _render_standard(config, outcome.result)


@app.command()
def scan(
    image: str = typer.Argument(..., help="Image reference to scan (e.g. nginx:1.25)"),
    strict: bool = typer.Option(
        False, "--strict", help="Reject unparsable numeric and boolean settings"
    ),
    forward_url: str = typer.Option(
        None, "--forward-url", help="POST the final report as JSON to this URL"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress"),
) -> None:
    """Scan IMAGE; settings are read from the environment (CLAIR_ADDR, ...)."""
    # Configure logging
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        config = resolve_config(image, strict=strict, forwarding_target_url=forward_url)
    except KlarScanError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_FATAL)

    if config.trace:
        logging.getLogger("klarscan").setLevel(logging.DEBUG)

    orchestrator = ScanOrchestrator()
    try:
        outcome = asyncio.run(orchestrator.execute_scan(config))
    except KlarScanError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_FATAL)

    _render(config, outcome)

    if outcome.error is not None:
        console.print(f"[yellow]Vulnerability analysis failed:[/yellow] {outcome.error}")

    if config.forwarding_target_url:
        forwarder = ResultForwarder(config.forwarding_target_url)
        try:
            asyncio.run(forwarder.forward(config.docker.image_name, outcome))
        except ForwardingError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(EXIT_FATAL)

    if outcome.degraded:
        raise typer.Exit(EXIT_DEGRADED)


if __name__ == "__main__":
    app()
