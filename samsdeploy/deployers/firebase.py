"""Database rules deployer."""

import time
from typing import Optional

from samsdeploy.constants import FIREBASE_CONSOLE_URL, FIREBASE_RULES_FILES
from samsdeploy.deployers.base import Deployer
from samsdeploy.exceptions import PrerequisiteError
from samsdeploy.models.deployment import Component, DeploymentRecord, DeploymentResult
from samsdeploy.services.firebase_service import FirebaseService


class FirebaseDeployer(Deployer):
    """
    Security rules for the document database and storage bucket.

    Responsibilities:
    - Resolve the target project (CLI override, then environment config)
    - Snapshot the ruleset before each deploy so it can be redeployed
    - Deploy rules through the firebase CLI
    """

    component = Component.FIREBASE

    def __init__(self, support, service: Optional[FirebaseService] = None):
        super().__init__(support)
        self.service = service or FirebaseService(
            support.executor,
            support.project_dir(self.component),
            logger=support.logger,
        )
        self.rules_files = tuple(
            support.project(self.component).required_files or FIREBASE_RULES_FILES
        )

    @property
    def project(self) -> str:
        """
        Target project id.

        Raises:
            PrerequisiteError: If neither the CLI nor the environment names one
        """
        s = self.support
        env_config = s.config.get_environment_config(self.environment)
        project = s.firebase_project or env_config.firebase_project
        if not project:
            raise PrerequisiteError(
                f"No firebase project configured for {self.environment.value}",
                context="Set environments.<env>.firebaseProject or pass --firebase-project",
            )
        return project

    def check_prerequisites(self) -> None:
        s = self.support
        s.require_commands("firebase")
        project_dir = s.require_project_dir(self.component)
        s.require_files(project_dir, self.rules_files)
        s.log(f"Firebase project: {self.project}")

    def build(self) -> None:
        problems = self.service.validate_rules(self.rules_files)
        for problem in problems:
            self.support.warn(f"Rules check: {problem}")

    def _deploy_rules(self, project: str) -> None:
        s = self.support
        with s.progress(f"Deploying rules to {project}"):
            self.service.deploy_rules(
                project,
                self.rules_files,
                timeout=s.deploy_timeout,
                attempts=s.settings.retry_attempts,
                delay=s.settings.retry_delay,
                backoff=s.settings.retry_backoff,
            )

    def deploy(self, artifact: Optional[DeploymentRecord] = None) -> DeploymentResult:
        s = self.support
        start = time.time()
        project = self.project
        self.service.use_project(project, timeout=s.deploy_timeout)

        if artifact is not None:
            restored = self.service.restore_snapshot(
                self.environment.value, artifact.deployment_id, self.rules_files
            )
            s.log(f"Restored rules from snapshot {artifact.deployment_id}: {', '.join(restored)}")
            snapshot_id = artifact.deployment_id
        else:
            snapshot_id = s.cache_buster.generate_unique_id()
            self.service.snapshot_rules(self.environment.value, snapshot_id, self.rules_files)

        self._deploy_rules(project)
        s.log(f"Rules deployed to {project} (snapshot {snapshot_id})")

        return DeploymentResult(
            success=True,
            component=self.component,
            environment=self.environment,
            deployment_id=snapshot_id,
            url=FIREBASE_CONSOLE_URL.format(project=project),
            duration=time.time() - start,
        )
