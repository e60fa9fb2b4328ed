"""
SAMS Deploy - UI Components
Standardized headers and result tables
"""

from typing import Iterable, Optional

from rich.console import Console
from rich.table import Table

from samsdeploy.models.deployment import DeploymentRecord, DeploymentStatistics
from samsdeploy.models.rollback import RiskLevel, RollbackPlan
from samsdeploy.models.run import RunReport

BRAND = "sams-deploy"

# Color scheme
BRAND_COLOR = "cyan"
SUCCESS_COLOR = "green"
WARNING_COLOR = "yellow"
ERROR_COLOR = "red"

RISK_COLORS = {
    RiskLevel.LOW: SUCCESS_COLOR,
    RiskLevel.MEDIUM: WARNING_COLOR,
    RiskLevel.HIGH: ERROR_COLOR,
}


def show_header(
    title: str,
    subtitle: str = None,
    environment: str = None,
    component: str = None,
    details: dict = None,
    console: Console = None,
):
    """
    Display a standardized command header.

    Args:
        title: Main title (e.g., "Deploy", "Rollback")
        subtitle: Optional subtitle line
        environment: Target environment (if applicable)
        component: Target component (if applicable)
        details: Additional key-value pairs to display
        console: Rich Console instance (creates new if None)
    """
    if console is None:
        console = Console()

    prefix = f" [bold color(214)]{BRAND}[/bold color(214)] [dim]›[/dim]"
    console.print(f"{prefix} [bold white]{title}[/bold white]")
    if subtitle:
        console.print(f"{prefix} [dim]{subtitle}[/dim]")
    if environment:
        console.print(f"{prefix} Environment: [cyan]{environment}[/cyan]")
    if component:
        console.print(f"{prefix} Component: [cyan]{component}[/cyan]")
    if details:
        for key, value in details.items():
            console.print(f"{prefix} {key}: [cyan]{value}[/cyan]")
    console.print()


def _status(success: bool) -> str:
    return "[green]✓ success[/green]" if success else "[red]✗ failed[/red]"


def _timestamp(value: Optional[str]) -> str:
    if not value:
        return "-"
    return value.replace("T", " ").replace("Z", " UTC")


def run_summary_table(report: RunReport) -> Table:
    """Per-component summary shown at the end of a deploy run."""
    options = report.options
    table = Table(
        title=f"Deployment Summary - {options.environment.value}"
        + (" (dry run)" if options.dry_run else ""),
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("URL", style="white")
    table.add_column("Checks", justify="right")
    table.add_column("Duration", style="dim", justify="right")
    table.add_column("Details", style="dim")

    for outcome in report.outcomes:
        result = outcome.result
        if result.dry_run:
            status = "[yellow]● planned[/yellow]"
        else:
            status = _status(result.success)

        checks = "-"
        if result.verification and result.verification.checks:
            verification = result.verification
            checks = f"{len(verification.passed_checks)}/{len(verification.checks)}"

        details = []
        if result.error_message:
            details.append(result.error_message)
        if outcome.rollback:
            details.append(f"rollback: {outcome.rollback.state.value}")
        details.extend(outcome.warnings)

        table.add_row(
            result.component.value,
            status,
            result.url or "-",
            checks,
            f"{result.duration:.1f}s",
            "; ".join(details) or "-",
        )
    return table


def history_table(records: Iterable[DeploymentRecord], title: str = "Deployment History") -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan", padding=(0, 1))
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Component", style="cyan")
    table.add_column("Environment", style="magenta")
    table.add_column("Status", no_wrap=True)
    table.add_column("Deployed At", style="dim")
    table.add_column("Version", style="white")
    table.add_column("Commit", style="yellow")
    table.add_column("URL", style="white")

    for record in records:
        meta = record.metadata
        status = _status(record.success)
        if record.is_rolled_back:
            status += " [dim](rolled back)[/dim]"
        table.add_row(
            record.id,
            record.component,
            record.environment,
            status,
            _timestamp(record.timestamp),
            meta.version or "-",
            (meta.git_commit or "-")[:7],
            record.url or "-",
        )
    return table


def statistics_table(stats: DeploymentStatistics, days: int) -> Table:
    table = Table(
        title=f"Deployment Statistics (last {days} days)",
        show_header=False,
        padding=(0, 1),
    )
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white", justify="right")
    table.add_row("Total", str(stats.total))
    table.add_row("Successful", f"[green]{stats.successful}[/green]")
    table.add_row("Failed", f"[red]{stats.failed}[/red]" if stats.failed else "0")
    table.add_row("Success rate", f"{stats.success_rate:.1f}%")
    table.add_row("Average duration", f"{stats.average_duration:.1f}s")
    return table


def show_rollback_plan(plan: RollbackPlan, console: Console) -> None:
    """Print what a rollback is about to do."""
    color = RISK_COLORS[plan.risk]
    current, target = plan.current, plan.target
    console.print(f"[bold]Rollback plan[/bold] [dim]({plan.component} → {plan.environment})[/dim]")
    if current:
        console.print(
            f"  Current:  [cyan]{current.id}[/cyan] [dim]{_timestamp(current.timestamp)}[/dim] "
            f"{current.url or ''}"
        )
    if target:
        console.print(
            f"  Target:   [green]{target.id}[/green] [dim]{_timestamp(target.timestamp)}[/dim] "
            f"{target.url or ''}"
        )
    console.print(f"  Risk:     [{color}]{plan.risk.value}[/{color}]")
    for warning in plan.warnings:
        console.print(f"  [yellow]⚠[/yellow] [dim]{warning}[/dim]")
    console.print()
