"""
Deployment Models

Dataclass models for deployment options, outcomes and persisted history.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from samsdeploy.models.results import VerificationResult


class Component(Enum):
    """Deployable unit."""

    DESKTOP = "desktop"
    MOBILE = "mobile"
    BACKEND = "backend"
    FIREBASE = "firebase"

    @property
    def is_hosted(self) -> bool:
        """Served from the hosting platform (has a URL to verify)."""
        return self != Component.FIREBASE

    @property
    def is_client(self) -> bool:
        """Browser client built to a static output directory."""
        return self in (Component.DESKTOP, Component.MOBILE)


class Environment(Enum):
    """Named deployment target."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"

    @property
    def is_production(self) -> bool:
        return self == Environment.PRODUCTION


@dataclass(frozen=True)
class DeploymentOptions:
    """Parsed input to one deployment run. Immutable once created."""

    environment: Environment
    components: Tuple[Component, ...]
    dry_run: bool = False
    monitor: bool = False
    force: bool = False
    timeout: Optional[int] = None
    verbose: bool = False
    quiet: bool = False
    firebase_project: Optional[str] = None
    no_cache: bool = False
    parallel: bool = False

    @property
    def component_names(self) -> List[str]:
        return [component.value for component in self.components]


@dataclass
class DeploymentResult:
    """Outcome of one component/environment deployment attempt."""

    success: bool
    component: Component
    environment: Environment
    deployment_id: Optional[str] = None
    url: Optional[str] = None
    duration: float = 0.0
    error: Optional[Exception] = None
    dry_run: bool = False
    verification: Optional[VerificationResult] = None

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return getattr(self.error, "message", None) or str(self.error)

    @property
    def error_code(self) -> Optional[str]:
        if self.error is None:
            return None
        return getattr(self.error, "code", type(self.error).__name__)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "component": self.component.value,
            "environment": self.environment.value,
            "deploymentId": self.deployment_id,
            "url": self.url,
            "duration": round(self.duration, 3),
            "error": self.error_message,
            "errorCode": self.error_code,
            "dryRun": self.dry_run,
            "verification": self.verification.to_dict() if self.verification else None,
        }

    def __repr__(self) -> str:
        status = "success" if self.success else "failed"
        return f"DeploymentResult({self.component.value}/{self.environment.value}, {status})"


@dataclass
class DeploymentMetadata:
    """Provenance attached to a persisted deployment record."""

    git_commit: Optional[str] = None
    git_branch: Optional[str] = None
    deployed_by: Optional[str] = None
    version: Optional[str] = None
    previous_deployment_id: Optional[str] = None
    rolled_back_to: Optional[str] = None
    rolled_back_at: Optional[str] = None
    verification: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "gitCommit": self.git_commit,
            "gitBranch": self.git_branch,
            "deployedBy": self.deployed_by,
            "version": self.version,
            "previousDeploymentId": self.previous_deployment_id,
            "rolledBackTo": self.rolled_back_to,
            "rolledBackAt": self.rolled_back_at,
            "verification": self.verification,
        }
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentMetadata":
        return cls(
            git_commit=data.get("gitCommit"),
            git_branch=data.get("gitBranch"),
            deployed_by=data.get("deployedBy"),
            version=data.get("version"),
            previous_deployment_id=data.get("previousDeploymentId"),
            rolled_back_to=data.get("rolledBackTo"),
            rolled_back_at=data.get("rolledBackAt"),
            verification=data.get("verification"),
        )


@dataclass
class DeploymentRecord:
    """One persisted historical deployment attempt."""

    id: str
    component: str
    environment: str
    timestamp: str
    success: bool
    deployment_id: Optional[str] = None
    url: Optional[str] = None
    duration: float = 0.0
    error: Optional[str] = None
    metadata: DeploymentMetadata = field(default_factory=DeploymentMetadata)

    @property
    def is_rolled_back(self) -> bool:
        return self.metadata.rolled_back_to is not None

    def matches(
        self, component: Optional[str] = None, environment: Optional[str] = None
    ) -> bool:
        """Check the record against optional component/environment filters."""
        if component and self.component != component:
            return False
        if environment and self.environment != environment:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "component": self.component,
            "environment": self.environment,
            "deploymentId": self.deployment_id,
            "url": self.url,
            "timestamp": self.timestamp,
            "duration": self.duration,
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentRecord":
        return cls(
            id=data["id"],
            component=data["component"],
            environment=data["environment"],
            timestamp=data["timestamp"],
            success=bool(data.get("success", False)),
            deployment_id=data.get("deploymentId"),
            url=data.get("url"),
            duration=float(data.get("duration") or 0.0),
            error=data.get("error"),
            metadata=DeploymentMetadata.from_dict(data.get("metadata") or {}),
        )

    def __repr__(self) -> str:
        status = "success" if self.success else "failed"
        return f"DeploymentRecord(id={self.id}, {self.component}/{self.environment}, {status})"


@dataclass
class DeploymentHistory:
    """Ordered collection of records, newest first."""

    deployments: List[DeploymentRecord] = field(default_factory=list)
    last_updated: Optional[str] = None

    def filter(
        self,
        component: Optional[str] = None,
        environment: Optional[str] = None,
        success: Optional[bool] = None,
    ) -> List[DeploymentRecord]:
        return [
            record
            for record in self.deployments
            if record.matches(component, environment)
            and (success is None or record.success == success)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployments": [record.to_dict() for record in self.deployments],
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentHistory":
        return cls(
            deployments=[
                DeploymentRecord.from_dict(item) for item in data.get("deployments", [])
            ],
            last_updated=data.get("lastUpdated"),
        )


@dataclass
class DeploymentStatistics:
    """Aggregate counters over a window of deployment history."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    average_duration: float = 0.0
    success_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "averageDuration": round(self.average_duration, 2),
            "successRate": round(self.success_rate, 1),
        }
