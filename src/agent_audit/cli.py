"""CLI interface for agent-audit."""

import asyncio
import json
import sys

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import __version__
from .config import get_settings
from .models import DiagnosticResult, IndicatorStatus, ScoreCategory
from .observability import configure_logging
from .profile import PROFILE_DISPLAY_NAMES, PROFILES
from .service import (
    DiagnosticOptions,
    DiagnosticsService,
    Entitlement,
    InMemoryReportStore,
    InMemorySiteDirectory,
    Site,
    StaticEntitlements,
)


console = Console()

CLI_OWNER = "cli"
CLI_SITE_ID = "cli-site"


def status_style(status: IndicatorStatus) -> str:
    """Get Rich style for an indicator status."""
    return {
        IndicatorStatus.PASS: "green",
        IndicatorStatus.WARN: "yellow",
        IndicatorStatus.FAIL: "red",
        IndicatorStatus.NOT_APPLICABLE: "dim",
    }.get(status, "white")


def status_icon(status: IndicatorStatus) -> str:
    return {
        IndicatorStatus.PASS: "✓",
        IndicatorStatus.WARN: "⚠",
        IndicatorStatus.FAIL: "✗",
        IndicatorStatus.NOT_APPLICABLE: "–",
    }.get(status, "•")


def score_color(score: int) -> str:
    """Get color for a 0-100 score value."""
    if score >= 80:
        return "green"
    elif score >= 60:
        return "yellow"
    elif score >= 40:
        return "orange1"
    else:
        return "red"


def print_score_bar(score: int, width: int = 20) -> Text:
    """Create a visual score bar."""
    filled = int((score / 100) * width)
    empty = width - filled
    color = score_color(score)

    bar = Text()
    bar.append("█" * filled, style=color)
    bar.append("░" * empty, style="dim")
    bar.append(f" {score}/100", style=f"bold {color}")
    return bar


def print_result(result: DiagnosticResult, verbose: bool = False) -> None:
    """Print a diagnostic result to the console."""

    if not result.succeeded or result.report is None:
        console.print(f"\n[red]Error:[/red] {result.error}")
        return

    report = result.report
    profile = report.profile_detection
    profile_name = PROFILE_DISPLAY_NAMES.get(profile.profile, profile.profile)

    # Header
    console.print()
    console.print(Panel(
        f"[bold]{report.site_url}[/bold]\n"
        f"[dim]Profile: {profile_name} ({profile.method}, confidence {profile.confidence:.0%}) • "
        f"{result.duration_ms}ms{' • cached' if result.cached else ''}[/dim]",
        title="🤖 Agent Readiness Audit",
        border_style="blue"
    ))

    # Overall score
    console.print()
    score = report.overall.score_0_100
    console.print("  Agent Readiness: ", end="")
    console.print(print_score_bar(score, width=25))
    console.print(f"  [dim]Readiness: {report.summary.readiness} • AI access intent: {report.summary.access_intent}[/dim]")
    console.print()

    # Category table
    categories = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    categories.add_column("Category", style="cyan")
    categories.add_column("Weight", justify="right")
    categories.add_column("Score", justify="right")

    for category in ScoreCategory:
        pct = round(report.categories[category].score * 100)
        categories.add_row(
            category.value,
            f"{report.weights[category]:.2f}",
            f"[{score_color(pct)}]{pct}/100[/]",
        )

    console.print(categories)

    # Indicator table
    indicators = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    indicators.add_column("Indicator", style="cyan")
    indicators.add_column("Status")
    indicators.add_column("Score", justify="right")
    indicators.add_column("Applicability")
    indicators.add_column("Message")

    for name, indicator in report.indicators.items():
        style = status_style(indicator.status)
        applicability = indicator.applicability.status.value if indicator.applicability else "-"
        if indicator.applicability and not indicator.applicability.included_in_category_math:
            applicability += " (not counted)"
        indicators.add_row(
            name,
            f"[{style}]{status_icon(indicator.status)} {indicator.status.value}[/]",
            f"{indicator.score:.2f}",
            applicability,
            indicator.message,
        )

    console.print(indicators)

    if verbose:
        console.print("\n[bold]Profile signals:[/bold]\n")
        for signal in profile.signals:
            console.print(f"  • {signal}")
        console.print("\n[bold]Recommendations:[/bold]\n")
        for name, indicator in report.indicators.items():
            if indicator.recommendation:
                style = status_style(indicator.status)
                console.print(f"  [{style}]{status_icon(indicator.status)}[/] [bold]{name}[/bold]")
                console.print(f"    [cyan]→ {indicator.recommendation}[/cyan]")

    # Critical issues and top recommendations
    if report.summary.critical_issues:
        console.print("\n[bold red]Critical Issues:[/bold red]\n")
        for issue in report.summary.critical_issues:
            console.print(f"  [red]✗[/red] {issue}")

    if report.summary.top_recommendations:
        console.print("\n[bold]🎯 Top Recommendations:[/bold]\n")
        for i, recommendation in enumerate(report.summary.top_recommendations, 1):
            console.print(f"  {i}. {recommendation}")
        console.print()

    # Footer
    console.print("[dim]─" * 50 + "[/dim]")
    console.print(f"[dim]agent-audit v{__version__}[/dim]")
    console.print()


def emit(result: DiagnosticResult, json_output: bool, verbose: bool) -> None:
    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        print_result(result, verbose=verbose)
    if not result.succeeded:
        sys.exit(1)


def build_cli_service(url: str, max_pages: int, allow_sitemap: bool) -> DiagnosticsService:
    """A service wired to in-memory collaborators holding a single site."""
    sites = InMemorySiteDirectory((Site(id=CLI_SITE_ID, url=url, owner=CLI_OWNER),))
    entitlements = StaticEntitlements(Entitlement(max_pages=max_pages, extended_options=allow_sitemap))
    return DiagnosticsService(sites, InMemoryReportStore(), entitlements)


@click.group(invoke_without_command=True)
@click.option("--log-level", default=None, help="Log level for stderr output (default: AGENT_AUDIT_LOG_LEVEL or WARNING)")
@click.option("--log-json", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
@click.version_option(version=__version__)
def cli(ctx, log_level: str | None, log_json: bool):
    """Agent Audit - how ready is a website for AI agents?

    \b
    Quick start:
        agent-audit scan example.com
        agent-audit audit example.com --max-pages 5 --sitemap

    \b
    Commands:
        scan    Quick anonymous scan (up to 3 pages)
        audit   Full audit with page budget, sitemap and profile options
    """
    settings = get_settings()
    configure_logging(log_level or settings.log_level, json_output=log_json or settings.log_json)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("url")
@click.option("-v", "--verbose", is_flag=True, help="Show profile signals and every recommendation")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def scan(url: str, verbose: bool, json_output: bool):
    """Run a quick anonymous scan of a URL.

    \b
    Examples:
        agent-audit scan stripe.com
        agent-audit scan example.com --verbose
        agent-audit scan example.com --json
    """
    service = build_cli_service(url, max_pages=get_settings().anonymous_max_pages, allow_sitemap=False)

    with console.status(f"[bold blue]Scanning {url}...[/bold blue]"):
        result = asyncio.run(service.run_anonymous_diagnostic(url))

    emit(result, json_output, verbose)


@cli.command()
@click.argument("url")
@click.option("-n", "--max-pages", default=None, type=click.IntRange(min=1), help="Maximum pages to crawl")
@click.option("--sitemap", is_flag=True, help="Also crawl pages listed in robots.txt sitemaps")
@click.option("--profile", type=click.Choice(PROFILES), default=None, help="Declare the site profile")
@click.option("-v", "--verbose", is_flag=True, help="Show profile signals and every recommendation")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def audit(url: str, max_pages: int | None, sitemap: bool, profile: str | None, verbose: bool,
          json_output: bool):
    """Run the full audit pipeline against a URL.

    \b
    Examples:
        agent-audit audit example.com
        agent-audit audit example.com --max-pages 10 --sitemap
        agent-audit audit example.com --profile ecommerce --json
    """
    settings = get_settings()
    budget = max_pages or settings.default_max_pages
    service = build_cli_service(url, max_pages=budget, allow_sitemap=True)
    options = DiagnosticOptions(
        skip_cache=True,
        include_sitemap=sitemap,
        max_pages=budget,
        declared_profile=profile,
    )

    with console.status(f"[bold blue]Auditing {url}...[/bold blue]"):
        result = asyncio.run(service.run_diagnostic(CLI_OWNER, CLI_SITE_ID, options))

    emit(result, json_output, verbose)


# Convenience: allow `agent-audit URL` as shortcut for `agent-audit scan URL`
def main():
    """Entry point that handles both `agent-audit URL` and `agent-audit scan URL`."""
    args = sys.argv[1:]

    # If first arg looks like a URL (not a command), insert 'scan'
    if args and not args[0].startswith('-') and args[0] not in ['scan', 'audit', 'version']:
        # Check if it looks like a URL/domain
        if '.' in args[0] or args[0] == 'localhost':
            sys.argv.insert(1, 'scan')

    cli()


if __name__ == "__main__":
    main()
