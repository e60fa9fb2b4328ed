"""SAMS Deploy CLI - Deploy command"""

from pathlib import Path
from typing import Optional

import click

from samsdeploy.base import BaseCommand
from samsdeploy.core.config_loader import (
    ConfigLoader,
    resolve_components,
    validate_environment,
)
from samsdeploy.models.deployment import DeploymentOptions
from samsdeploy.orchestrator import Orchestrator
from samsdeploy.ui_components import run_summary_table


class DeployCommand(BaseCommand):
    """Build, deploy, verify and record one or all components."""

    def __init__(
        self,
        environment: str,
        component: str = "all",
        dry_run: bool = False,
        monitor: bool = False,
        force: bool = False,
        firebase_project: Optional[str] = None,
        no_cache: bool = False,
        timeout: Optional[int] = None,
        parallel: bool = False,
        config_path: Optional[str] = None,
        verbose: bool = False,
        quiet: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, quiet=quiet, json_output=json_output)
        self.environment = environment
        self.component = component
        self.dry_run = dry_run
        self.monitor = monitor
        self.force = force
        self.firebase_project = firebase_project
        self.no_cache = no_cache
        self.timeout = timeout
        self.parallel = parallel
        self.config_path = config_path

    def build_options(self) -> DeploymentOptions:
        """
        Parse command input into immutable run options.

        Raises:
            EnvInvalid: Unknown environment
            ComponentInvalid: Unknown component
        """
        return DeploymentOptions(
            environment=validate_environment(self.environment),
            components=resolve_components(self.component),
            dry_run=self.dry_run,
            monitor=self.monitor,
            force=self.force,
            timeout=self.timeout,
            verbose=self.verbose,
            quiet=self.quiet,
            firebase_project=self.firebase_project,
            no_cache=self.no_cache,
            parallel=self.parallel,
        )

    def execute(self) -> None:
        """Execute deploy command."""
        options = self.build_options()

        details = {}
        if options.dry_run:
            details["Mode"] = "dry run"
        if options.monitor:
            details["Monitor"] = "enabled"
        self.show_header(
            title="Deploy",
            environment=options.environment.value,
            component=", ".join(options.component_names),
            details=details,
        )

        logger = self.init_logger(f"deploy-{options.environment.value}")
        loader = ConfigLoader(Path(self.config_path) if self.config_path else None)
        report = Orchestrator(options, config_loader=loader, logger=logger).run()

        if self.json_output:
            self.output_json(report.to_dict(), exit_code=report.exit_code)
            return

        self.console.print()
        self.console.print(run_summary_table(report))
        self.console.print()

        if report.success:
            self.print_success(
                "Dry run complete" if options.dry_run else f"Deployment to {options.environment.value} complete"
            )
        else:
            failed = ", ".join(outcome.result.component.value for outcome in report.failed)
            self.print_error(f"Deployment failed for: {failed}")
            if options.force:
                self.print_warning("--force set, exiting with status 0")

        self.console.print(f"[dim]Total time: {report.duration:.1f}s[/dim]")
        self._print_log_path()

        if report.exit_code:
            raise SystemExit(report.exit_code)


@click.command(name="deploy")
@click.option("-e", "--environment", required=True, help="Target environment (development, staging, production)")
@click.option("-c", "--component", default="all", show_default=True, help="Component (desktop, mobile, backend, firebase, all)")
@click.option("--dry-run", is_flag=True, help="Check prerequisites and show the plan only")
@click.option("--monitor", is_flag=True, help="Keep verifying on an interval after deploy")
@click.option("--force", is_flag=True, help="Exit 0 even when a component fails")
@click.option("--firebase-project", default=None, help="Override the firebase project id")
@click.option("--no-cache", is_flag=True, help="Force a fresh upload, ignoring platform build cache")
@click.option("--timeout", type=click.IntRange(min=1), default=None, help="Override build/deploy timeout (seconds)")
@click.option("--parallel", is_flag=True, help="Deploy components concurrently")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="Config file path")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors and the summary")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def deploy(
    environment,
    component,
    dry_run,
    monitor,
    force,
    firebase_project,
    no_cache,
    timeout,
    parallel,
    config_path,
    verbose,
    quiet,
    json_output,
):
    """
    Deploy SAMS components to an environment

    \b
    Examples:
      sams-deploy deploy -e production               # Everything
      sams-deploy deploy -e staging -c mobile        # One component
      sams-deploy deploy -e prod -c all --dry-run    # Plan only
      sams-deploy deploy -e production --monitor     # Watch after deploy

    \b
    Order for "all": firebase, backend, desktop, mobile
    """
    cmd = DeployCommand(
        environment,
        component=component,
        dry_run=dry_run,
        monitor=monitor,
        force=force,
        firebase_project=firebase_project,
        no_cache=no_cache,
        timeout=timeout,
        parallel=parallel,
        config_path=config_path,
        verbose=verbose,
        quiet=quiet,
        json_output=json_output,
    )
    cmd.run()
