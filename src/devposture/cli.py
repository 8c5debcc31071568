"""devposture CLI - Command Line Interface.

A Typer application for reviewing a single device profile exported from the
device API: scores, key-risk metrics, action plan, filtered lists and trends.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from devposture import __version__, normalize_profile
from devposture.config import get_settings
from devposture.models import CveFacets, NormalizedProfile, SoftwareFacets
from devposture.services import (
    ThreatIntelService,
    build_action_plan,
    build_kr_metrics,
    build_posture_summary,
    build_score_model,
    filter_cves,
    filter_software,
    get_app_exposure,
    get_device_presence,
    get_highlight_insights,
    get_risk_level_for_app,
    get_trend_metrics,
)

app = typer.Typer(
    name="devposture",
    help="devposture - Device Security Posture Review",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

_LEVEL_STYLES = {
    "critical": "bold red",
    "warning": "yellow",
    "info": "cyan",
    "success": "green",
}

ProfileArgument = Annotated[
    Path,
    typer.Argument(help="Path to a device profile JSON file ('-' reads stdin)."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]devposture[/] version [green]{__version__}[/]")
        raise typer.Exit()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity."""
    logger.remove()
    level = "DEBUG" if verbose else get_settings().log_level
    log_format = (
        "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
    )
    logger.add(sys.stderr, level=level, format=log_format)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
) -> None:
    """devposture - Score and review a device's security posture."""
    setup_logging(verbose)


def _load_profile(path: Path) -> NormalizedProfile:
    """Read and normalize a profile file, exiting on I/O or JSON errors."""
    try:
        text = sys.stdin.read() if str(path) == "-" else path.read_text(encoding="utf-8")
        payload = json.loads(text)
    except OSError as e:
        console.print(f"[red]✗[/] Cannot read {path}: {e}")
        raise typer.Exit(1) from e
    except json.JSONDecodeError as e:
        console.print(f"[red]✗[/] {path} is not valid JSON: {e}")
        raise typer.Exit(1) from e
    except UnicodeDecodeError as e:
        console.print(f"[red]✗[/] {path} is not valid UTF-8: {e}")
        raise typer.Exit(1) from e

    # Device API responses wrap the profile in a "data" envelope.
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        payload = payload["data"]
    return normalize_profile(payload)


def _metric_table(title: str, rows: list[tuple[str, Any]]) -> Table:
    table = Table(title=title, border_style="blue")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    for label, value in rows:
        table.add_row(label, str(value))
    return table


@app.command()
def analyze(
    profile_path: ProfileArgument,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the derived report as JSON."),
    ] = False,
) -> None:
    """Score a device and print its key-risk metrics and action plan."""
    profile = _load_profile(profile_path)
    score = build_score_model(profile)
    kr = build_kr_metrics(profile, score)
    posture = build_posture_summary(profile, score)
    presence = get_device_presence(profile)
    actions = build_action_plan(profile)
    insights = get_highlight_insights(profile)

    if as_json:
        report = {
            "score": score.to_dict(),
            "krMetrics": kr.to_dict(),
            "posture": posture.to_dict(),
            "presence": presence.to_dict(),
            "actions": [action.to_dict() for action in actions],
            "highlights": insights.to_dict(),
            "appExposure": get_app_exposure(profile).to_dict(),
        }
        console.print_json(json.dumps(report))
        return

    name = profile.device.device_name or "Unknown Device"
    console.print(Panel.fit(f"[bold blue]{name}[/] · {presence.status_text}", border_style="blue"))

    console.print(
        _metric_table(
            "Scores",
            [
                ("Security Score", f"{score.security_score} ({posture.security_label})"),
                ("Risk Score", score.risk_score),
                ("Backend Risk", f"{score.backend_risk:g}"),
                ("Derived Risk", score.derived_risk),
                ("Compliance Score", posture.compliance_score),
                ("Posture Score", posture.posture_score),
                ("Network Exposure", posture.network_exposure),
            ],
        )
    )
    console.print(
        _metric_table(
            "Key Risk Metrics",
            [
                ("Vulnerability Density", f"{kr.vulnerability_density:.2f}"),
                ("Critical Exposure", f"{kr.critical_exposure}%"),
                ("Exploitability Index", kr.exploitability_index),
                ("Remediation Readiness", f"{kr.remediation_readiness}%"),
                ("MTTR", kr.mttr_days),
                ("Known Exploited", score.known_exploit),
                ("Risky Apps", f"{score.risky_apps} / {score.installed}"),
                ("High EPSS (>= 70%)", insights.epss_high),
                ("Average EPSS", f"{insights.epss_avg:.1f}%"),
            ],
        )
    )

    match, remediation = insights.match, insights.remediation
    console.print(
        _metric_table(
            "Highlights",
            [
                ("First Detected", insights.first_detected_at or "N/A"),
                ("Last Detected", insights.last_detected_at or "N/A"),
                (
                    "Match (abs / heur / unk)",
                    f"{match.absolute} / {match.heuristic} / {match.unknown}",
                ),
                ("Patch Available", remediation.patch),
                ("Config Change", remediation.config),
                ("Mitigation", remediation.mitigate),
                ("No Fix", remediation.nofix),
                ("Unknown Remediation", remediation.unknown),
                ("Apps With Install Path", insights.apps.with_install_path),
                ("Running With Path", insights.apps.running_with_path),
            ],
        )
    )

    table = Table(title="Action Plan", border_style="blue")
    table.add_column("Level", no_wrap=True)
    table.add_column("Action", style="bold")
    table.add_column("Details", max_width=70)
    for action in actions:
        style = _LEVEL_STYLES.get(action.level, "")
        table.add_row(f"[{style}]{action.level}[/]", action.title, action.desc)
    console.print(table)


@app.command()
def apps(
    profile_path: ProfileArgument,
    search: Annotated[str, typer.Option("--search", "-s", help="Free-text filter")] = "",
    risk: Annotated[str, typer.Option("--risk", help="all, high, medium or low")] = "all",
    runtime: Annotated[
        str, typer.Option("--runtime", help="all, running or installPath")
    ] = "all",
    sort: Annotated[str, typer.Option("--sort", help="risk, name, vendor or version")] = "risk",
    limit: Annotated[int, typer.Option("--limit", "-l", help="Maximum rows")] = 25,
) -> None:
    """List installed applications with risk levels."""
    profile = _load_profile(profile_path)
    facets = SoftwareFacets(search=search, risk=risk, runtime=runtime, sort=sort)
    items = filter_software(profile, facets)

    if not items:
        console.print("[yellow]No applications match the selected filters[/]")
        raise typer.Exit(0)

    table = Table(title=f"Applications ({len(items)})", border_style="blue")
    table.add_column("Name", style="cyan")
    table.add_column("Vendor")
    table.add_column("Version")
    table.add_column("Latest", style="yellow")
    table.add_column("Status")
    table.add_column("CVEs", justify="right", style="red")
    table.add_column("Risk")

    for item in items[:limit]:
        table.add_row(
            item.name,
            item.vendor,
            item.version,
            item.latest_version or "",
            item.status + (" (running)" if item.is_running else ""),
            str(item.cve_count),
            get_risk_level_for_app(item),
        )
    console.print(table)


@app.command()
def vulns(
    profile_path: ProfileArgument,
    search: Annotated[str, typer.Option("--search", "-s", help="Free-text filter")] = "",
    severity: Annotated[
        str, typer.Option("--severity", help="ALL, CRITICAL, HIGH, MEDIUM or LOW")
    ] = "ALL",
    exploit_only: Annotated[
        bool, typer.Option("--exploit-only", help="Only known exploited CVEs")
    ] = False,
    match: Annotated[
        str, typer.Option("--match", help="all, absolute, heuristic or unknown")
    ] = "all",
    remediation: Annotated[
        str,
        typer.Option("--remediation", help="all, patch, config, mitigate, nofix or unknown"),
    ] = "all",
    app_name: Annotated[str, typer.Option("--app", help="Only CVEs for this app")] = "",
    sort: Annotated[
        str, typer.Option("--sort", help="risk, severity, exploitability or recent")
    ] = "risk",
    limit: Annotated[int, typer.Option("--limit", "-l", help="Maximum rows")] = 25,
) -> None:
    """List vulnerabilities detected on the device."""
    profile = _load_profile(profile_path)
    facets = CveFacets(
        search=search,
        severity=severity,
        known_exploit_only=exploit_only,
        match=match,
        remediation=remediation,
        app=app_name,
        sort=sort,
    )
    items = filter_cves(profile, facets)

    if not items:
        console.print("[yellow]No vulnerabilities match the selected filters[/]")
        raise typer.Exit(0)

    table = Table(title=f"Vulnerabilities ({len(items)})", border_style="blue")
    table.add_column("CVE ID", style="cyan", no_wrap=True)
    table.add_column("Score", style="yellow")
    table.add_column("Severity", style="red")
    table.add_column("EPSS", style="magenta")
    table.add_column("KEV", style="green")
    table.add_column("Application")
    table.add_column("Last Detected")

    for cve in items[:limit]:
        table.add_row(
            cve.cve_id,
            f"{cve.cvss_score:.1f}",
            cve.severity,
            f"{cve.epss_probability * 100:.2f}%" if cve.epss_probability else "N/A",
            "✓" if cve.has_known_exploit else "",
            cve.app_name,
            cve.last_detected or "",
        )
    console.print(table)


@app.command()
def trend(
    profile_path: ProfileArgument,
    days: Annotated[
        int | None,
        typer.Option("--days", "-d", help="Window length in days (1-30)."),
    ] = None,
) -> None:
    """Show daily CVE detections and exploit pressure."""
    profile = _load_profile(profile_path)
    buckets = get_trend_metrics(
        profile, days if days is not None else get_settings().trend_days
    )

    table = Table(title="Detection Trend", border_style="blue")
    table.add_column("Day", style="cyan")
    table.add_column("Detections", justify="right")
    table.add_column("Pressure", justify="right", style="yellow")
    table.add_column("Exploited", justify="right", style="red")
    for bucket in buckets:
        table.add_row(bucket.key, str(bucket.count), str(bucket.pressure), str(bucket.exploited))
    console.print(table)


@app.command()
def intel(
    cve_id: Annotated[str, typer.Argument(help="CVE identifier, e.g. CVE-2024-12345")],
) -> None:
    """Look a CVE up in public threat-intel sources (CIRCL, CISA KEV)."""
    service = ThreatIntelService(get_settings())
    result = asyncio.run(service.lookup(cve_id))

    if result.error:
        console.print(f"[yellow]{result.error}[/]")
        if not result.found:
            raise typer.Exit(0)

    table = Table(title=f"Threat Intel for {result.cve_id}", border_style="blue")
    table.add_column("Source", style="cyan")
    table.add_column("Field")
    table.add_column("Value", max_width=70)

    if result.circl:
        summary = result.circl.get("summary") or result.circl.get("descriptions") or ""
        table.add_row("CIRCL", "Summary", str(summary)[:200])
        if cvss := result.circl.get("cvss3") or result.circl.get("cvss"):
            table.add_row("CIRCL", "CVSS", str(cvss))
    if result.kev:
        table.add_row("CISA KEV", "Name", result.kev.vulnerability_name)
        table.add_row("CISA KEV", "Date Added", str(result.kev.date_added or "N/A"))
        table.add_row("CISA KEV", "Required Action", result.kev.required_action)
        table.add_row(
            "CISA KEV",
            "Ransomware Use",
            "Known" if result.kev.known_ransomware_campaign_use else "Unknown",
        )
    console.print(table)


@app.command()
def config() -> None:
    """Show current configuration."""
    settings = get_settings()

    table = Table(title="devposture Configuration", border_style="blue")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Log Level", settings.log_level)
    table.add_row("Trend Window", f"{settings.trend_days} days")
    table.add_row("", "")
    table.add_row("[bold]Threat Intel[/]", "")
    table.add_row("  CIRCL URL", settings.intel.circl_url)
    table.add_row("  KEV URL", settings.intel.kev_url)
    table.add_row("  Timeout", f"{settings.intel.timeout:g}s")

    console.print(table)


if __name__ == "__main__":
    app()
