"""Document-database rules adapter (firebase CLI)."""

import os
import shutil
from pathlib import Path
from typing import List, Optional, Sequence

from samsdeploy.constants import (
    FIREBASE_BACKUP_DIR,
    FIREBASE_RULES_FILES,
    FIREBASE_TOKEN_ENV_VAR,
)
from samsdeploy.exceptions import DeployFailed, ProcessError, RollbackTargetInvalid
from samsdeploy.logger import DeployLogger
from samsdeploy.services.process_service import ProcessExecutor
from samsdeploy.utils import epoch_ms

RULES_TARGETS = {
    "firestore.rules": "firestore:rules",
    "storage.rules": "storage",
}

RULES_MARKERS = {
    "firestore.rules": "service cloud.firestore",
    "storage.rules": "service firebase.storage",
}


class FirebaseService:
    """
    Applies security rules to a named database project.

    Rules are snapshotted under <root>/.firebase-rules-backup/<environment>/
    before each deploy so a rollback can redeploy an earlier ruleset.
    """

    def __init__(
        self,
        executor: ProcessExecutor,
        root_dir: Path,
        token: Optional[str] = None,
        logger: Optional[DeployLogger] = None,
    ):
        self.executor = executor
        self.root_dir = Path(root_dir)
        self.token = token if token is not None else os.environ.get(FIREBASE_TOKEN_ENV_VAR)
        self.logger = logger

    def _auth_args(self) -> List[str]:
        return ["--token", self.token] if self.token else []

    def _redact(self) -> List[str]:
        return [self.token] if self.token else []

    def rules_path(self, name: str) -> Path:
        return self.root_dir / name

    def validate_rules(self, files: Sequence[str] = FIREBASE_RULES_FILES) -> List[str]:
        """
        Basic static validation of rules files.

        Returns:
            List of problems found (empty when the rules look sane)
        """
        problems = []
        for name in files:
            path = self.rules_path(name)
            if not path.exists():
                problems.append(f"{name} not found")
                continue
            content = path.read_text()
            if not content.strip():
                problems.append(f"{name} is empty")
            elif RULES_MARKERS.get(name) and RULES_MARKERS[name] not in content:
                problems.append(f"{name} does not declare '{RULES_MARKERS[name]}'")
            if content.count("{") != content.count("}"):
                problems.append(f"{name} has unbalanced braces")
        return problems

    def use_project(self, project: str, timeout: Optional[float] = None) -> None:
        """
        Select the target project for subsequent commands.

        Raises:
            DeployFailed: If the project cannot be selected
        """
        try:
            self.executor.execute(
                "firebase",
                ["use", project] + self._auth_args(),
                cwd=self.root_dir,
                timeout=timeout,
                redact=self._redact(),
            )
        except ProcessError as e:
            raise DeployFailed(f"Could not select project {project}", context=e.message) from e

    def deploy_rules(
        self,
        project: str,
        files: Sequence[str] = FIREBASE_RULES_FILES,
        timeout: Optional[float] = None,
        attempts: int = 1,
        delay: float = 0,
        backoff: float = 1.0,
    ) -> None:
        """
        Deploy rules files to a project.

        Raises:
            DeployFailed: If the deploy fails after all attempts
        """
        targets = ",".join(RULES_TARGETS[name] for name in files if name in RULES_TARGETS)
        args = ["deploy", "--only", targets, "--project", project, "--non-interactive"]
        try:
            self.executor.execute_with_retry(
                "firebase",
                args + self._auth_args(),
                attempts=attempts,
                delay=delay,
                backoff=backoff,
                cwd=self.root_dir,
                timeout=timeout,
                redact=self._redact(),
            )
        except ProcessError as e:
            raise DeployFailed(
                f"Rules deploy to {project} failed", context=e.message, details=e.details
            ) from e

    def snapshot_dir(self, environment: str, snapshot_id: str) -> Path:
        return self.root_dir / FIREBASE_BACKUP_DIR / environment / snapshot_id

    def snapshot_rules(
        self,
        environment: str,
        snapshot_id: str,
        files: Sequence[str] = FIREBASE_RULES_FILES,
    ) -> Path:
        """Copy the current rules files into a named snapshot."""
        target = self.snapshot_dir(environment, snapshot_id)
        target.mkdir(parents=True, exist_ok=True)
        for name in files:
            source = self.rules_path(name)
            if source.exists():
                shutil.copy2(source, target / name)
        if self.logger:
            self.logger.log(f"Rules snapshot saved: {target}")
        return target

    def restore_snapshot(
        self,
        environment: str,
        snapshot_id: str,
        files: Sequence[str] = FIREBASE_RULES_FILES,
    ) -> List[str]:
        """
        Copy a snapshot's rules files back into the working tree.

        The working-tree files are first saved as a pre-restore snapshot
        so local edits survive the rollback.

        Returns:
            Names of the restored files

        Raises:
            RollbackTargetInvalid: If the snapshot does not exist
        """
        source = self.snapshot_dir(environment, snapshot_id)
        if not source.is_dir():
            raise RollbackTargetInvalid(
                f"Rules snapshot {snapshot_id} not found", context=str(source)
            )
        if any(self.rules_path(name).exists() for name in files):
            backup = self.snapshot_rules(environment, f"pre-restore-{epoch_ms()}", files)
            if self.logger:
                self.logger.warning(f"Working-tree rules saved to {backup} before restoring {snapshot_id}")
        restored = []
        for name in files:
            snapshot_file = source / name
            if snapshot_file.exists():
                shutil.copy2(snapshot_file, self.rules_path(name))
                restored.append(name)
        if not restored:
            raise RollbackTargetInvalid(
                f"Rules snapshot {snapshot_id} is empty", context=str(source)
            )
        return restored
