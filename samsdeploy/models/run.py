"""
Run Models

Per-component outcomes and the aggregate report of one orchestrator run.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from samsdeploy.models.deployment import (
    DeploymentOptions,
    DeploymentRecord,
    DeploymentResult,
)
from samsdeploy.models.rollback import RollbackResult


@dataclass
class ComponentOutcome:
    """Everything that happened to one component during a run."""

    result: DeploymentResult
    record: Optional[DeploymentRecord] = None
    rollback: Optional[RollbackResult] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.result.success

    def to_dict(self) -> Dict[str, Any]:
        data = self.result.to_dict()
        data["recordId"] = self.record.id if self.record else None
        data["rollback"] = self.rollback.to_dict() if self.rollback else None
        data["warnings"] = self.warnings
        return data


@dataclass
class RunReport:
    """Aggregate outcome of one orchestrator run."""

    options: DeploymentOptions
    outcomes: List[ComponentOutcome] = field(default_factory=list)
    duration: float = 0.0

    @property
    def success(self) -> bool:
        """AND of all per-component results."""
        return all(outcome.success for outcome in self.outcomes)

    @property
    def failed(self) -> List[ComponentOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    @property
    def exit_code(self) -> int:
        if self.success or self.options.force:
            return 0
        return 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.options.environment.value,
            "components": self.options.component_names,
            "dryRun": self.options.dry_run,
            "success": self.success,
            "duration": round(self.duration, 3),
            "results": [outcome.to_dict() for outcome in self.outcomes],
        }
