"""SAMS Deploy CLI - History commands"""

from pathlib import Path
from typing import Optional

import click

from samsdeploy.base import BaseCommand
from samsdeploy.constants import DEFAULT_RETENTION_DAYS, DEFAULT_STATISTICS_DAYS
from samsdeploy.core.config_loader import (
    ConfigLoader,
    DeployConfig,
    validate_component,
    validate_environment,
)
from samsdeploy.exceptions import ConfigNotFound
from samsdeploy.logger import DeployLogger
from samsdeploy.services.tracker_service import DeploymentTracker
from samsdeploy.ui_components import history_table, statistics_table


def load_history_config(config_path: Optional[str] = None) -> Optional[DeployConfig]:
    """
    Config for the history commands, or None when there is no config file.

    History commands still work without a config file, against the
    default history location. An explicit path that does not exist is
    still an error.
    """
    try:
        return ConfigLoader(Path(config_path) if config_path else None).load()
    except ConfigNotFound:
        if config_path:
            raise
        return None


def build_tracker(
    config_path: Optional[str] = None,
    logger: Optional[DeployLogger] = None,
    config: Optional[DeployConfig] = None,
) -> DeploymentTracker:
    """Tracker honouring the config's history settings when a config exists."""
    if config is None:
        config = load_history_config(config_path)
    if config is None:
        return DeploymentTracker(logger=logger)
    settings = config.deployment
    return DeploymentTracker(
        history_file=settings.history_file,
        max_history_size=settings.max_history_size,
        logger=logger,
    )


def _filters(component: Optional[str], environment: Optional[str]):
    return (
        validate_component(component).value if component else None,
        validate_environment(environment).value if environment else None,
    )


class HistoryCommand(BaseCommand):
    """Show recorded deployments, newest first."""

    def __init__(
        self,
        component: Optional[str] = None,
        environment: Optional[str] = None,
        limit: int = 10,
        config_path: Optional[str] = None,
        json_output: bool = False,
    ):
        super().__init__(json_output=json_output)
        self.component = component
        self.environment = environment
        self.limit = limit
        self.config_path = config_path

    def execute(self) -> None:
        component, environment = _filters(self.component, self.environment)
        tracker = build_tracker(self.config_path)
        records = tracker.get_deployment_history(component, environment, limit=self.limit)

        if self.json_output:
            self.output_json({"deployments": [record.to_dict() for record in records]})
            return

        if not records:
            self.print_warning("No deployment history found")
            self.print_dim(f"History file: {tracker.history_file}")
            return

        self.console.print(history_table(records, title=f"Deployment History (last {len(records)})"))


class HistoryStatsCommand(BaseCommand):
    """Aggregate success rate and durations over a recent window."""

    def __init__(
        self,
        component: Optional[str] = None,
        environment: Optional[str] = None,
        days: int = DEFAULT_STATISTICS_DAYS,
        config_path: Optional[str] = None,
        json_output: bool = False,
    ):
        super().__init__(json_output=json_output)
        self.component = component
        self.environment = environment
        self.days = days
        self.config_path = config_path

    def execute(self) -> None:
        component, environment = _filters(self.component, self.environment)
        stats = build_tracker(self.config_path).get_statistics(component, environment, self.days)

        if self.json_output:
            self.output_json({"days": self.days, **stats.to_dict()})
            return

        self.console.print(statistics_table(stats, self.days))


class HistoryCleanupCommand(BaseCommand):
    """Remove records older than the retention window."""

    def __init__(self, days: Optional[int] = None, config_path: Optional[str] = None):
        super().__init__()
        self.days = days
        self.config_path = config_path

    def execute(self) -> None:
        logger = self.init_logger("history-cleanup")
        config = load_history_config(self.config_path)
        days = self.days
        if days is None:
            days = config.deployment.retention_days if config else DEFAULT_RETENTION_DAYS
        removed = build_tracker(logger=logger, config=config).cleanup(days)
        self.print_success(f"Removed {removed} record(s) older than {days} days")


class HistoryExportCommand(BaseCommand):
    """Write the full history to a JSON or CSV file."""

    def __init__(self, path: str, fmt: str = "json", config_path: Optional[str] = None):
        super().__init__()
        self.path = path
        self.fmt = fmt
        self.config_path = config_path

    def execute(self) -> None:
        written = build_tracker(self.config_path).export_history(Path(self.path), self.fmt)
        self.print_success(f"History exported to {written}")


@click.command(name="history")
@click.option("-c", "--component", default=None, help="Filter by component")
@click.option("-e", "--environment", default=None, help="Filter by environment")
@click.option("-n", "--limit", default=10, show_default=True, help="Number of records to show")
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def history(component, environment, limit, config_path, json_output):
    """
    Show deployment history

    \b
    Examples:
      sams-deploy history                       # Last 10 deployments
      sams-deploy history -c backend -e prod    # One component/environment
      sams-deploy history -n 50 --json          # Machine-readable
    """
    HistoryCommand(
        component, environment, limit=limit, config_path=config_path, json_output=json_output
    ).run()


@click.command(name="history:stats")
@click.option("-c", "--component", default=None, help="Filter by component")
@click.option("-e", "--environment", default=None, help="Filter by environment")
@click.option("--days", default=DEFAULT_STATISTICS_DAYS, show_default=True, help="Window in days")
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def history_stats(component, environment, days, config_path, json_output):
    """Show deployment statistics"""
    HistoryStatsCommand(
        component, environment, days=days, config_path=config_path, json_output=json_output
    ).run()


@click.command(name="history:cleanup")
@click.option(
    "--days",
    type=click.IntRange(min=1),
    default=None,
    help=f"Days to keep (default: retentionDays from the config, else {DEFAULT_RETENTION_DAYS})",
)
@click.option("--config", "config_path", default=None, help="Config file path")
def history_cleanup(days, config_path):
    """Remove deployment records older than N days"""
    HistoryCleanupCommand(days=days, config_path=config_path).run()


@click.command(name="history:export")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--format", "fmt", type=click.Choice(["json", "csv"]), default="json", show_default=True)
@click.option("--config", "config_path", default=None, help="Config file path")
def history_export(path, fmt, config_path):
    """Export deployment history to a file"""
    HistoryExportCommand(path, fmt=fmt, config_path=config_path).run()
