"""
Rollback Manager

Finds a prior good deployment in the history and redeploys it through the
component's normal deploy path, then re-verifies it.
"""

import time
from datetime import timedelta
from enum import Enum
from typing import Callable, List, Optional, Union

from samsdeploy.events import EventBus, RollbackCompleted
from samsdeploy.exceptions import (
    HistoryError,
    RollbackTargetInvalid,
    SamsDeployError,
)
from samsdeploy.logger import DeployLogger
from samsdeploy.models.deployment import Component, DeploymentRecord, Environment
from samsdeploy.models.rollback import (
    ROLLBACK_TRANSITIONS,
    RiskLevel,
    RollbackPlan,
    RollbackResult,
    RollbackState,
)
from samsdeploy.services.tracker_service import DeploymentTracker
from samsdeploy.utils import parse_timestamp, utc_now
from samsdeploy.verifiers.battery import VerificationBattery

NameOrEnum = Union[str, Enum]

# Target age thresholds for the risk assessment
HIGH_RISK_AGE = timedelta(days=30)
MEDIUM_RISK_AGE = timedelta(days=7)


class RollbackManager:
    """
    Drives one rollback through its state machine.

    Responsibilities:
    - Candidate lookup (second-newest success, or an explicit record id)
    - Redeploy via Deployer.deploy(artifact=record)
    - Re-verification with the standard verification battery
    - Stamping the superseded record in the history

    A failed rollback is reported and never triggers another rollback.
    """

    def __init__(
        self,
        tracker: DeploymentTracker,
        deployer_factory: Callable[[Component], object],
        battery: Optional[VerificationBattery] = None,
        logger: Optional[DeployLogger] = None,
        bus: Optional[EventBus] = None,
    ):
        """
        Initialize manager

        Args:
            tracker: History store
            deployer_factory: Returns the Deployer for a component
            battery: Verification battery (None skips re-verification)
            logger: Optional run logger
            bus: Event bus receiving RollbackCompleted
        """
        self.tracker = tracker
        self.deployer_factory = deployer_factory
        self.battery = battery
        self.logger = logger
        self.bus = bus

    # Queries

    def list_candidates(
        self, component: NameOrEnum, environment: NameOrEnum, limit: int = 10
    ) -> List[DeploymentRecord]:
        """Every successful record for the pair except the live (newest) one."""
        successful = self.tracker.get_successful_deployments(component, environment)
        return successful[1 : 1 + limit] if limit else successful[1:]

    def create_plan(
        self,
        component: NameOrEnum,
        environment: NameOrEnum,
        target_id: Optional[str] = None,
    ) -> RollbackPlan:
        """
        Describe what a rollback would do, with a risk assessment.

        Raises:
            RollbackTargetInvalid: If target_id is not a usable record for the pair
        """
        component, environment = _component(component), _environment(environment)
        current = self.tracker.get_latest_deployment(component, environment)
        target = self._find_target(component, environment, current, target_id)

        plan = RollbackPlan(
            component=component.value,
            environment=environment.value,
            current=current,
            target=target,
        )
        if target is None:
            plan.warnings.append("Nothing to roll back to")
            return plan

        plan.risk = self.assess_risk(current, target, plan.warnings)
        if current is None:
            plan.warnings.append("No live deployment recorded; history will not be stamped")
        if environment.is_production:
            plan.warnings.append("Target is production")
        return plan

    @staticmethod
    def assess_risk(
        current: Optional[DeploymentRecord],
        target: DeploymentRecord,
        warnings: Optional[List[str]] = None,
    ) -> RiskLevel:
        """Risk from the target's age and any major-version downgrade."""
        warnings = warnings if warnings is not None else []
        risk = RiskLevel.LOW

        try:
            age = utc_now() - parse_timestamp(target.timestamp)
        except ValueError:
            age = None
        if age is not None:
            if age > HIGH_RISK_AGE:
                risk = RiskLevel.HIGH
                warnings.append(f"Target is {age.days} days old")
            elif age > MEDIUM_RISK_AGE:
                risk = RiskLevel.MEDIUM
                warnings.append(f"Target is {age.days} days old")

        if current is not None:
            current_major = _major(current.metadata.version)
            target_major = _major(target.metadata.version)
            if current_major is not None and target_major is not None:
                if target_major < current_major:
                    risk = RiskLevel.HIGH
                    warnings.append(
                        f"Major version downgrade: {current.metadata.version} -> "
                        f"{target.metadata.version}"
                    )
        return risk

    # State machine

    def rollback(
        self,
        component: NameOrEnum,
        environment: NameOrEnum,
        target_id: Optional[str] = None,
        emergency: bool = False,
        dry_run: bool = False,
    ) -> RollbackResult:
        """
        Roll a component back to an earlier successful deployment.

        Args:
            component: Component to roll back
            environment: Target environment
            target_id: Explicit record id (default: second-newest success)
            emergency: Skip prerequisite checks before redeploying
            dry_run: Stop after candidate lookup

        Returns:
            RollbackResult in a terminal state. NO_CANDIDATE is a normal
            outcome, not an error.
        """
        start = time.time()
        component, environment = _component(component), _environment(environment)
        result = RollbackResult(
            state=RollbackState.IDLE,
            component=component.value,
            environment=environment.value,
            dry_run=dry_run,
        )

        try:
            self._run(result, component, environment, target_id, emergency, dry_run)
        finally:
            result.duration = time.time() - start

        if self.logger:
            level = "ERROR" if result.state == RollbackState.FAILED else "INFO"
            self.logger.log(
                f"Rollback {component.value}/{environment.value}: {result.state.value} - {result.message}",
                level,
            )
        if self.bus and not dry_run:
            self.bus.emit(RollbackCompleted(result))
        return result

    def _run(
        self,
        result: RollbackResult,
        component: Component,
        environment: Environment,
        target_id: Optional[str],
        emergency: bool,
        dry_run: bool,
    ) -> None:
        self._transition(result, RollbackState.CANDIDATE_LOOKUP)
        try:
            result.current = self.tracker.get_latest_deployment(component, environment)
            result.candidate = self._find_target(component, environment, result.current, target_id)
        except RollbackTargetInvalid as e:
            self._fail(result, RollbackState.ABORTED, e.message, e)
            return
        except HistoryError as e:
            self._fail(result, RollbackState.FAILED, "Deployment history unavailable", e)
            return

        if result.candidate is None:
            self._transition(result, RollbackState.NO_CANDIDATE)
            result.message = "Nothing to roll back to"
            return

        candidate = result.candidate
        if dry_run:
            self._transition(result, RollbackState.ABORTED)
            result.message = f"Dry run: would roll back to {candidate.id} ({candidate.url or candidate.deployment_id})"
            return

        self._transition(result, RollbackState.REDEPLOYING)
        if self.logger:
            self.logger.step(f"Rolling back {component.value} to {candidate.id}")
        try:
            deployer = self.deployer_factory(component)
            if emergency:
                if self.logger:
                    self.logger.warning("Emergency rollback: skipping prerequisite checks")
            else:
                deployer.check_prerequisites()
            result.redeploy = deployer.deploy(artifact=candidate)
        except SamsDeployError as e:
            self._fail(result, RollbackState.FAILED, f"Redeploy failed: {e.message}", e)
            return

        if not result.redeploy.success:
            self._fail(
                result,
                RollbackState.FAILED,
                f"Redeploy failed: {result.redeploy.error_message}",
                result.redeploy.error,
            )
            return

        self._transition(result, RollbackState.VERIFYING)
        if self.battery is not None:
            base_url = result.redeploy.url if component.is_hosted else None
            result.verification = self.battery.run(component, environment, base_url)
            if not result.verification.success:
                failed = ", ".join(check.name for check in result.verification.failed_checks)
                self._fail(result, RollbackState.FAILED, f"Re-verification failed: {failed}")
                return

        if result.current is not None:
            try:
                self.tracker.mark_rollback(result.current.id, candidate.id)
            except HistoryError as e:
                if self.logger:
                    self.logger.warning(f"Rollback not recorded in history: {e.message}")

        self._transition(result, RollbackState.SUCCEEDED)
        result.message = f"Rolled back to {candidate.id}"

    # Helpers

    def _find_target(
        self,
        component: Component,
        environment: Environment,
        current: Optional[DeploymentRecord],
        target_id: Optional[str],
    ) -> Optional[DeploymentRecord]:
        if target_id is None:
            return self.tracker.get_rollback_candidate(component, environment)

        target = self.tracker.get_deployment_by_id(target_id)
        if target is None:
            raise RollbackTargetInvalid(f"Deployment record {target_id} not found")
        if not target.matches(component.value, environment.value):
            raise RollbackTargetInvalid(
                f"Record {target_id} belongs to {target.component}/{target.environment}",
                context=f"Expected {component.value}/{environment.value}",
            )
        if not target.success:
            raise RollbackTargetInvalid(f"Record {target_id} is a failed deployment")
        if current is not None and current.id == target.id:
            raise RollbackTargetInvalid(f"Record {target_id} is already live")
        return target

    def _transition(self, result: RollbackResult, state: RollbackState) -> None:
        allowed = ROLLBACK_TRANSITIONS.get(result.state, set())
        if state not in allowed:
            raise RuntimeError(
                f"Illegal rollback transition {result.state.value} -> {state.value}"
            )
        if self.logger:
            self.logger.log(f"Rollback state: {result.state.value} -> {state.value}", "DEBUG")
        result.state = state

    def _fail(
        self,
        result: RollbackResult,
        state: RollbackState,
        message: str,
        error: Optional[Exception] = None,
    ) -> None:
        self._transition(result, state)
        result.message = message
        result.error = error


def _component(value: NameOrEnum) -> Component:
    return value if isinstance(value, Component) else Component(value)


def _environment(value: NameOrEnum) -> Environment:
    return value if isinstance(value, Environment) else Environment(value)


def _major(version: Optional[str]) -> Optional[int]:
    if not version:
        return None
    head = version.lstrip("vV").split(".", 1)[0]
    return int(head) if head.isdigit() else None
