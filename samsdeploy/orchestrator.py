"""
Deployment Orchestrator

Top-level control loop for one run: resolves the components, drives each
through prerequisites, build, deploy, verification and history recording,
and aggregates the outcomes into a RunReport.
"""

import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from samsdeploy.core.config_loader import ConfigLoader, DeployConfig
from samsdeploy.deployers import Deployer, DeploySupport, create_deployer
from samsdeploy.events import EventBus, RunCompleted
from samsdeploy.exceptions import (
    DeploymentVerificationFailed,
    HistoryError,
    SamsDeployError,
    UnexpectedError,
    VerificationError,
)
from samsdeploy.logger import DeployLogger
from samsdeploy.models.deployment import (
    Component,
    DeploymentMetadata,
    DeploymentOptions,
    DeploymentResult,
)
from samsdeploy.models.results import VerificationResult
from samsdeploy.models.run import ComponentOutcome, RunReport
from samsdeploy.services.cache_buster import CacheBuster
from samsdeploy.services.hosting_service import HostingService
from samsdeploy.services.notification_service import WebhookNotifier
from samsdeploy.services.process_service import ProcessExecutor
from samsdeploy.services.rollback_service import RollbackManager
from samsdeploy.services.tracker_service import DeploymentTracker
from samsdeploy.utils import get_git_info, get_operator
from samsdeploy.verifiers.battery import VerificationBattery

DeployerFactory = Callable[[Component, DeploySupport], Deployer]


class Orchestrator:
    """
    Runs every requested component pipeline and reports the aggregate.

    Responsibilities:
    - Load and validate configuration once, before anything is built
    - Isolate component failures (a failed component never stops the others)
    - Single-pass or monitored verification after each deploy
    - Record each attempt in the history and auto-rollback when configured
    - Emit RunCompleted for notification sinks

    Collaborators left as None are built from the loaded configuration.
    """

    def __init__(
        self,
        options: DeploymentOptions,
        config_loader: Optional[ConfigLoader] = None,
        tracker: Optional[DeploymentTracker] = None,
        executor: Optional[ProcessExecutor] = None,
        hosting: Optional[HostingService] = None,
        battery: Optional[VerificationBattery] = None,
        logger: Optional[DeployLogger] = None,
        bus: Optional[EventBus] = None,
        deployer_factory: Optional[DeployerFactory] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.options = options
        self.config_loader = config_loader or ConfigLoader()
        self.tracker = tracker
        self.executor = executor
        self.hosting = hosting
        self.battery = battery
        self.logger = logger
        self.bus = bus or EventBus(logger)
        self.deployer_factory = deployer_factory or create_deployer
        self.sleep = sleep

        self.config: Optional[DeployConfig] = None
        self.support: Optional[DeploySupport] = None
        self.rollback_manager: Optional[RollbackManager] = None

    # Setup

    def setup(self) -> DeployConfig:
        """
        Load configuration and build the shared services.

        Raises:
            ConfigurationError: Aborts the run before any component starts
        """
        config = self.config_loader.load()
        config.require(self.options.environment, self.options.components)
        self.config = config
        settings = config.deployment

        self.executor = self.executor or ProcessExecutor(logger=self.logger)
        self.hosting = self.hosting or HostingService(self.executor, logger=self.logger)
        cache_buster = CacheBuster(
            config.root_dir,
            hosting=self.hosting,
            version_file=settings.version_file,
            logger=self.logger,
        )
        self.support = DeploySupport(
            config,
            self.options.environment,
            self.executor,
            self.hosting,
            cache_buster,
            logger=self.logger,
            force_upload=self.options.no_cache,
            timeout_override=self.options.timeout,
            firebase_project=self.options.firebase_project,
        )
        self.tracker = self.tracker or DeploymentTracker(
            history_file=settings.history_file,
            max_history_size=settings.max_history_size,
            logger=self.logger,
        )
        self.battery = self.battery or VerificationBattery(config, logger=self.logger)
        self.rollback_manager = RollbackManager(
            self.tracker,
            self.create_deployer,
            battery=self.battery,
            logger=self.logger,
            bus=self.bus,
        )

        if settings.notification_webhook:
            WebhookNotifier(settings.notification_webhook, logger=self.logger).attach(self.bus)

        return config

    def create_deployer(self, component: Component) -> Deployer:
        return self.deployer_factory(component, self.support)

    # Run

    def run(self) -> RunReport:
        """
        Execute the run.

        Returns:
            RunReport with one outcome per requested component

        Raises:
            ConfigurationError: If configuration is missing or invalid
        """
        start = time.time()
        self.setup()

        report = RunReport(options=self.options)
        components = self.options.components

        if self.options.parallel and len(components) > 1:
            if self.logger:
                # Concurrent spinners would fight over the terminal
                self.logger.show_spinners = False
            with ThreadPoolExecutor(max_workers=len(components)) as pool:
                report.outcomes = list(pool.map(self.deploy_component, components))
        else:
            for component in components:
                report.outcomes.append(self.deploy_component(component))

        report.duration = time.time() - start
        self.bus.emit(RunCompleted(report))
        return report

    def deploy_component(self, component: Component) -> ComponentOutcome:
        """
        One component pipeline. Never raises for component-level errors.
        """
        start = time.time()
        environment = self.options.environment
        if self.logger:
            self.logger.step(f"Deploying {component.value} to {environment.value}")

        try:
            deployer = self.create_deployer(component)
            deployer.check_prerequisites()

            if self.options.dry_run:
                self._log(f"Dry run: prerequisites OK, would build and deploy {component.value}")
                return ComponentOutcome(
                    DeploymentResult(
                        success=True,
                        component=component,
                        environment=environment,
                        duration=time.time() - start,
                        dry_run=True,
                    )
                )

            deployer.build()
            result = deployer.deploy()
        except SamsDeployError as e:
            return self._failed(component, e, start)
        except Exception as e:
            if self.logger:
                self.logger.log(traceback.format_exc(), "DEBUG")
            return self._failed(component, UnexpectedError(e, component.value), start)

        outcome = ComponentOutcome(result)
        if isinstance(result.error, DeploymentVerificationFailed):
            # The upload went through, so the unverified build is what is serving
            outcome.record = self._record(result, outcome.warnings, "failed", live=True)
            self._auto_rollback(outcome)
            return outcome
        if not result.success:
            outcome.record = self._record(result, outcome.warnings)
            return outcome

        result.verification = self.verify(component, result.url)
        verification = "passed" if result.verification.checks else "skipped"
        if not result.verification.success:
            verification = "failed"

        # The record says whether the deployment went live
        outcome.record = self._record(result, outcome.warnings, verification)
        result.duration = time.time() - start

        if result.verification.success:
            if self.logger:
                self.logger.success(f"{component.value} deployed: {result.url}")
            return outcome

        failed = [check.name for check in result.verification.failed_checks]
        result.success = False
        result.error = VerificationError(
            f"Verification failed for {component.value}",
            context=", ".join(failed),
            details={"failedChecks": failed},
        )
        if self.logger:
            self.logger.log_error(result.error.message, context=result.error.context)

        self._auto_rollback(outcome)
        return outcome

    def _failed(self, component: Component, error: SamsDeployError, start: float) -> ComponentOutcome:
        """Turn a pipeline error into a failed outcome; dry runs record nothing."""
        if self.logger:
            self.logger.log_error(f"{component.value}: {error.message}", context=error.context)
        outcome = ComponentOutcome(
            DeploymentResult(
                success=False,
                component=component,
                environment=self.options.environment,
                duration=time.time() - start,
                error=error,
            )
        )
        if not self.options.dry_run:
            outcome.record = self._record(outcome.result, outcome.warnings)
        return outcome

    def _auto_rollback(self, outcome: ComponentOutcome) -> None:
        if not self.config.deployment.auto_rollback:
            return
        component = outcome.result.component
        outcome.rollback = self.rollback_manager.rollback(component, self.options.environment)
        if not outcome.rollback.success:
            outcome.warnings.append(f"Auto-rollback: {outcome.rollback.message}")

    # Verification

    def verify(self, component: Component, url: Optional[str]) -> VerificationResult:
        """
        Single verification pass, or monitored polling when requested.

        Monitoring stops at the first failing poll.
        """
        base_url = url if component.is_hosted else None
        environment = self.options.environment
        if not self.options.monitor or not base_url:
            return self.battery.run(component, environment, base_url)

        settings = self.config.deployment
        polls = max(1, int(settings.monitor_duration // settings.monitor_interval))
        for poll in range(1, polls + 1):
            result = self.battery.run(component, environment, base_url)
            self._log(
                f"Monitor poll {poll}/{polls} for {component.value}: "
                f"{len(result.passed_checks)}/{len(result.checks)} checks passed"
            )
            if not result.success or poll == polls:
                return result
            self.sleep(settings.monitor_interval)

    # History

    def _record(
        self,
        result: DeploymentResult,
        warnings: list,
        verification: Optional[str] = None,
        live: Optional[bool] = None,
    ):
        """History failures become warnings and never change the result."""
        git = get_git_info(self.config.root_dir)
        metadata = DeploymentMetadata(
            git_commit=git["commit"],
            git_branch=git["branch"],
            deployed_by=get_operator(),
            version=self._version(result.component),
            verification=verification,
        )
        try:
            return self.tracker.record_deployment(result, metadata, live=live)
        except HistoryError as e:
            message = f"History not recorded for {result.component.value}: {e.message}"
            warnings.append(message)
            if self.logger:
                self.logger.warning(message)
            return None

    def _version(self, component: Component) -> Optional[str]:
        try:
            return self.support.version(component)
        except SamsDeployError:
            return None

    def _log(self, message: str) -> None:
        if self.logger:
            self.logger.log(message)
