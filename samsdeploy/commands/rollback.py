"""SAMS Deploy CLI - Rollback commands"""

from pathlib import Path
from typing import Optional

import click

from samsdeploy.base import BaseCommand
from samsdeploy.core.config_loader import (
    ConfigLoader,
    validate_component,
    validate_environment,
)
from samsdeploy.models.deployment import DeploymentOptions
from samsdeploy.models.rollback import RollbackState
from samsdeploy.orchestrator import Orchestrator
from samsdeploy.services.rollback_service import RollbackManager
from samsdeploy.ui_components import history_table, show_rollback_plan


class RollbackBaseCommand(BaseCommand):
    """Shared wiring: a rollback manager bound to one component/environment."""

    def __init__(
        self,
        component: str,
        environment: str,
        config_path: Optional[str] = None,
        firebase_project: Optional[str] = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.component_name = component
        self.environment_name = environment
        self.component = None
        self.environment = None
        self.config_path = config_path
        self.firebase_project = firebase_project

    def resolve_target(self) -> None:
        """
        Normalize the component and environment names.

        Raises:
            ComponentInvalid: Unknown component
            EnvInvalid: Unknown environment
        """
        self.component = validate_component(self.component_name)
        self.environment = validate_environment(self.environment_name)

    def build_manager(self) -> RollbackManager:
        """Reuse the orchestrator's service wiring for the redeploy path."""
        options = DeploymentOptions(
            environment=self.environment,
            components=(self.component,),
            verbose=self.verbose,
            firebase_project=self.firebase_project,
        )
        loader = ConfigLoader(Path(self.config_path) if self.config_path else None)
        orchestrator = Orchestrator(options, config_loader=loader, logger=self.logger)
        orchestrator.setup()
        return orchestrator.rollback_manager


class RollbackCommand(RollbackBaseCommand):
    """Redeploy an earlier successful deployment."""

    def __init__(
        self,
        component: str,
        environment: str,
        target_id: Optional[str] = None,
        dry_run: bool = False,
        force: bool = False,
        emergency: bool = False,
        config_path: Optional[str] = None,
        firebase_project: Optional[str] = None,
        verbose: bool = False,
    ):
        super().__init__(
            component,
            environment,
            config_path=config_path,
            firebase_project=firebase_project,
            verbose=verbose,
        )
        self.target_id = target_id
        self.dry_run = dry_run
        self.force = force
        self.emergency = emergency

    def execute(self) -> None:
        self.resolve_target()
        details = {}
        if self.target_id:
            details["Target"] = self.target_id
        if self.emergency:
            details["Mode"] = "[red]EMERGENCY[/red]"
        elif self.dry_run:
            details["Mode"] = "dry run"
        self.show_header(
            title="Rollback",
            environment=self.environment.value,
            component=self.component.value,
            details=details,
        )

        logger = self.init_logger(f"rollback-{self.component.value}-{self.environment.value}")
        manager = self.build_manager()

        plan = manager.create_plan(self.component, self.environment, self.target_id)
        if not plan.is_possible:
            self.print_warning(
                f"Nothing to roll back to for {self.component.value} in {self.environment.value}"
            )
            self.print_dim("A rollback needs at least two successful deployments")
            return

        show_rollback_plan(plan, self.console)

        if not (self.dry_run or self.force or self.emergency):
            if not self.confirm("Proceed with rollback?"):
                self.print_warning("Rollback cancelled")
                return

        result = manager.rollback(
            self.component,
            self.environment,
            target_id=plan.target.id,
            emergency=self.emergency,
            dry_run=self.dry_run,
        )

        if result.success:
            self.print_success(result.message)
            if result.redeploy and result.redeploy.url:
                self.print_dim(f"Live: {result.redeploy.url}")
        elif result.dry_run and result.state == RollbackState.ABORTED:
            self.print_dim(result.message)
        elif result.nothing_to_roll_back:
            self.print_warning(result.message)
        else:
            self.print_error(f"Rollback {result.state.value}: {result.message}")
            if result.verification:
                for check in result.verification.failed_checks:
                    self.print_dim(f"  {check.name}: {check.message}")
            if logger:
                self._print_log_path()
            raise SystemExit(1)

        if logger:
            self._print_log_path()


class RollbackCandidatesCommand(RollbackBaseCommand):
    """List earlier successful deployments that can be rolled back to."""

    def __init__(
        self,
        component: str,
        environment: str,
        limit: int = 10,
        config_path: Optional[str] = None,
        json_output: bool = False,
    ):
        super().__init__(
            component, environment, config_path=config_path, json_output=json_output
        )
        self.limit = limit

    def execute(self) -> None:
        self.resolve_target()
        manager = self.build_manager()
        candidates = manager.list_candidates(self.component, self.environment, self.limit)

        if self.json_output:
            self.output_json({"candidates": [record.to_dict() for record in candidates]})
            return

        if not candidates:
            self.print_warning(
                f"No rollback candidates for {self.component.value} in {self.environment.value}"
            )
            return

        self.console.print(
            history_table(
                candidates,
                title=f"Rollback Candidates - {self.component.value}/{self.environment.value}",
            )
        )
        self.print_dim(
            f"Roll back with: sams-deploy rollback -c {self.component.value} "
            f"-e {self.environment.value} --to <ID>"
        )


@click.command(name="rollback")
@click.option("-c", "--component", required=True, help="Component to roll back")
@click.option("-e", "--environment", required=True, help="Target environment")
@click.option("--to", "target_id", default=None, help="Record id to roll back to (default: previous success)")
@click.option("--dry-run", is_flag=True, help="Show the plan without redeploying")
@click.option("--force", is_flag=True, help="Skip the confirmation prompt")
@click.option("--emergency", is_flag=True, help="Skip prerequisite checks and confirmation")
@click.option("--firebase-project", default=None, help="Override the firebase project id")
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
def rollback(component, environment, target_id, dry_run, force, emergency, firebase_project, config_path, verbose):
    """
    Roll a component back to an earlier deployment

    \b
    Examples:
      sams-deploy rollback -c backend -e production            # Previous success
      sams-deploy rollback -c desktop -e prod --to dep_17...   # Specific record
      sams-deploy rollback -c mobile -e prod --emergency       # No safety checks
    """
    RollbackCommand(
        component,
        environment,
        target_id=target_id,
        dry_run=dry_run,
        force=force,
        emergency=emergency,
        config_path=config_path,
        firebase_project=firebase_project,
        verbose=verbose,
    ).run()


@click.command(name="rollback:candidates")
@click.option("-c", "--component", required=True, help="Component")
@click.option("-e", "--environment", required=True, help="Environment")
@click.option("-n", "--limit", default=10, show_default=True, help="Number of candidates to show")
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def rollback_candidates(component, environment, limit, config_path, json_output):
    """List rollback candidates for a component"""
    RollbackCandidatesCommand(
        component, environment, limit=limit, config_path=config_path, json_output=json_output
    ).run()
