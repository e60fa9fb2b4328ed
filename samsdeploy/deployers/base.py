"""
Deployer interface

Every component variant implements the same three operations. Shared
steps live in DeploySupport, which each variant calls explicitly.
"""

from abc import ABC, abstractmethod
from typing import Optional

from samsdeploy.deployers.support import DeploySupport
from samsdeploy.models.deployment import Component, DeploymentRecord, DeploymentResult


class Deployer(ABC):
    """
    Abstract component deployer.

    Lifecycle per run: check_prerequisites() -> build() -> deploy().
    Rollback calls deploy(artifact=record) without building.
    """

    component: Component

    def __init__(self, support: DeploySupport):
        self.support = support
        self.environment = support.environment

    @property
    def name(self) -> str:
        return self.component.value

    @abstractmethod
    def check_prerequisites(self) -> None:
        """
        Fail fast before any build is attempted.

        Raises:
            PrerequisiteError: Missing script, file or command
        """

    @abstractmethod
    def build(self) -> None:
        """
        Produce deployable output.

        Raises:
            ProcessError: Build command failed after retries or timed out
            BuildError: Expected output is missing
        """

    @abstractmethod
    def deploy(self, artifact: Optional[DeploymentRecord] = None) -> DeploymentResult:
        """
        Publish the built output, or redeploy an earlier artifact.

        Args:
            artifact: Earlier record to redeploy instead of the fresh build

        Raises:
            DeploymentError: The platform rejected the deploy
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(environment={self.environment.value})"
