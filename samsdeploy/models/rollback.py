"""
Rollback Models

State machine states and results for rollback operations.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from samsdeploy.models.deployment import DeploymentRecord, DeploymentResult
from samsdeploy.models.results import VerificationResult


class RollbackState(Enum):
    """Rollback state machine states."""

    IDLE = "idle"
    CANDIDATE_LOOKUP = "candidate_lookup"
    NO_CANDIDATE = "no_candidate"
    REDEPLOYING = "redeploying"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (
            RollbackState.NO_CANDIDATE,
            RollbackState.SUCCEEDED,
            RollbackState.FAILED,
            RollbackState.ABORTED,
        )


# Legal transitions; anything else is a programming error
ROLLBACK_TRANSITIONS = {
    RollbackState.IDLE: {RollbackState.CANDIDATE_LOOKUP},
    RollbackState.CANDIDATE_LOOKUP: {
        RollbackState.NO_CANDIDATE,
        RollbackState.REDEPLOYING,
        RollbackState.ABORTED,
        RollbackState.FAILED,
    },
    RollbackState.REDEPLOYING: {RollbackState.VERIFYING, RollbackState.FAILED},
    RollbackState.VERIFYING: {RollbackState.SUCCEEDED, RollbackState.FAILED},
}


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class RollbackPlan:
    """What a rollback would do, shown to the operator before acting."""

    component: str
    environment: str
    current: Optional[DeploymentRecord]
    target: Optional[DeploymentRecord]
    risk: RiskLevel = RiskLevel.LOW
    warnings: List[str] = field(default_factory=list)

    @property
    def is_possible(self) -> bool:
        return self.target is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "environment": self.environment,
            "current": self.current.to_dict() if self.current else None,
            "target": self.target.to_dict() if self.target else None,
            "risk": self.risk.value,
            "warnings": self.warnings,
        }


@dataclass
class RollbackResult:
    """Terminal outcome of one rollback attempt."""

    state: RollbackState
    component: str
    environment: str
    message: str = ""
    current: Optional[DeploymentRecord] = None
    candidate: Optional[DeploymentRecord] = None
    redeploy: Optional[DeploymentResult] = None
    verification: Optional[VerificationResult] = None
    error: Optional[Exception] = None
    duration: float = 0.0
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return self.state == RollbackState.SUCCEEDED

    @property
    def nothing_to_roll_back(self) -> bool:
        return self.state == RollbackState.NO_CANDIDATE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "success": self.success,
            "component": self.component,
            "environment": self.environment,
            "message": self.message,
            "current": self.current.id if self.current else None,
            "candidate": self.candidate.id if self.candidate else None,
            "url": self.redeploy.url if self.redeploy else None,
            "verification": self.verification.to_dict() if self.verification else None,
            "error": str(self.error) if self.error else None,
            "duration": round(self.duration, 3),
            "dryRun": self.dry_run,
        }

    def __repr__(self) -> str:
        return f"RollbackResult({self.component}/{self.environment}, state={self.state.value})"
