"""
Result Models

Dataclass models for process, verification and cache-bust results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class ExecutionResult:
    """Result of a command execution."""

    returncode: int
    stdout: str = ""
    stderr: str = ""
    command: str = ""
    duration: float = 0.0

    @property
    def is_success(self) -> bool:
        """Check if execution succeeded."""
        return self.returncode == 0

    @property
    def is_failure(self) -> bool:
        """Check if execution failed."""
        return self.returncode != 0

    def __repr__(self) -> str:
        return f"ExecutionResult(returncode={self.returncode}, command={self.command!r})"


class CheckType(Enum):
    """Kind of verification check."""

    HEALTH = "health"
    UI = "ui"
    PERFORMANCE = "performance"
    SECURITY = "security"
    CACHE = "cache"
    INTEGRATION = "integration"


@dataclass
class VerificationCheck:
    """One atomic pass/fail assertion against a live deployment."""

    name: str
    type: CheckType
    success: bool
    message: str
    duration: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "success": self.success,
            "message": self.message,
            "duration": round(self.duration, 3),
            "metadata": self.metadata,
            "error": self.error,
        }

    def __repr__(self) -> str:
        status = "pass" if self.success else "fail"
        return f"VerificationCheck(name={self.name}, {status})"


@dataclass
class VerificationResult:
    """Aggregate of all checks run for one component/environment."""

    component: str
    environment: str
    checks: List[VerificationCheck] = field(default_factory=list)
    duration: float = 0.0

    @property
    def success(self) -> bool:
        """True only when every check passed."""
        return all(check.success for check in self.checks)

    @property
    def failed_checks(self) -> List[VerificationCheck]:
        return [check for check in self.checks if not check.success]

    @property
    def passed_checks(self) -> List[VerificationCheck]:
        return [check for check in self.checks if check.success]

    def get_check(self, name: str) -> Optional[VerificationCheck]:
        for check in self.checks:
            if check.name == name:
                return check
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "environment": self.environment,
            "success": self.success,
            "duration": round(self.duration, 3),
            "checks": [check.to_dict() for check in self.checks],
        }

    def __repr__(self) -> str:
        return (
            f"VerificationResult(component={self.component}, "
            f"passed={len(self.passed_checks)}/{len(self.checks)})"
        )


@dataclass
class CacheBustResult:
    """Outcome of a cache-busting pass over a build output directory."""

    success: bool
    timestamp: str
    unique_id: str
    cache_version: str
    files_updated: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "timestamp": self.timestamp,
            "uniqueId": self.unique_id,
            "filesUpdated": self.files_updated,
            "cacheVersion": self.cache_version,
            "errors": self.errors,
        }

    def __repr__(self) -> str:
        return f"CacheBustResult(id={self.unique_id}, files={len(self.files_updated)}, errors={len(self.errors)})"
