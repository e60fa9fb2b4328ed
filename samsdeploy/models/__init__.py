"""
SAMS Deploy Domain Models

Type-safe dataclass models for deployments, verification and history.
"""

from samsdeploy.models.deployment import (
    Component,
    DeploymentHistory,
    DeploymentMetadata,
    DeploymentOptions,
    DeploymentRecord,
    DeploymentResult,
    DeploymentStatistics,
    Environment,
)
from samsdeploy.models.results import (
    CacheBustResult,
    CheckType,
    ExecutionResult,
    VerificationCheck,
    VerificationResult,
)
from samsdeploy.models.rollback import (
    RiskLevel,
    RollbackPlan,
    RollbackResult,
    RollbackState,
)
from samsdeploy.models.run import ComponentOutcome, RunReport

__all__ = [
    "CacheBustResult",
    "CheckType",
    "Component",
    "ComponentOutcome",
    "DeploymentHistory",
    "DeploymentMetadata",
    "DeploymentOptions",
    "DeploymentRecord",
    "DeploymentResult",
    "DeploymentStatistics",
    "Environment",
    "ExecutionResult",
    "RiskLevel",
    "RollbackPlan",
    "RollbackResult",
    "RollbackState",
    "RunReport",
    "VerificationCheck",
    "VerificationResult",
]
