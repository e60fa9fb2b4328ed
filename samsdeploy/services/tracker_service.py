"""
Deployment Tracker

Single-writer JSON history of deployment attempts, shared by every
component and environment. Queries load the whole document and filter in
memory; mutations rewrite it atomically.
"""

import csv
import json
import os
import tempfile
import threading
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from samsdeploy.constants import (
    DEFAULT_HISTORY_FILE,
    DEFAULT_MAX_HISTORY_SIZE,
    DEFAULT_RETENTION_DAYS,
    DEFAULT_STATISTICS_DAYS,
    HISTORY_ENV_VAR,
)
from samsdeploy.exceptions import HistoryError
from samsdeploy.logger import DeployLogger
from samsdeploy.models.deployment import (
    DeploymentHistory,
    DeploymentMetadata,
    DeploymentRecord,
    DeploymentResult,
    DeploymentStatistics,
)
from samsdeploy.utils import generate_record_id, parse_timestamp, utc_now, utc_now_iso

NameOrEnum = Union[str, Enum, None]

CSV_HEADERS = [
    "ID",
    "Component",
    "Environment",
    "Deployment ID",
    "URL",
    "Timestamp",
    "Duration",
    "Success",
    "Error",
    "Git Commit",
    "Git Branch",
    "Deployed By",
    "Version",
    "Rolled Back To",
]


def _key(value: NameOrEnum) -> Optional[str]:
    return value.value if isinstance(value, Enum) else value


class DeploymentTracker:
    """
    Owns all reads and writes of the deployment history file.

    Responsibilities:
    - Record deployment attempts (newest first, size-capped)
    - Answer latest-deployment and rollback-candidate queries
    - Stamp records that were rolled back
    - Statistics, retention cleanup and export

    Mutating calls hold a lock so component pipelines running in threads
    cannot lose each other's updates. Separate processes writing the same
    file at once are not supported.
    """

    def __init__(
        self,
        history_file: Optional[Path] = None,
        max_history_size: int = DEFAULT_MAX_HISTORY_SIZE,
        logger: Optional[DeployLogger] = None,
    ):
        """
        Initialize tracker

        Args:
            history_file: History JSON path ($SAMS_HISTORY_FILE or ~/.sams/deployment-history.json)
            max_history_size: Records kept after each insert (newest win)
            logger: Optional run logger
        """
        if history_file is None:
            history_file = os.environ.get(HISTORY_ENV_VAR, DEFAULT_HISTORY_FILE)
        self.history_file = Path(history_file).expanduser()
        self.max_history_size = max_history_size
        self.logger = logger
        self._lock = threading.RLock()

    # Persistence

    def load_history(self) -> DeploymentHistory:
        """
        Read the full history document.

        Raises:
            HistoryError: If the file exists but cannot be read or parsed
        """
        if not self.history_file.exists():
            return DeploymentHistory()
        try:
            data = json.loads(self.history_file.read_text())
            return DeploymentHistory.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise HistoryError(
                f"Cannot load deployment history from {self.history_file}",
                context=str(e),
                details={"path": str(self.history_file)},
            ) from e

    def _save(self, history: DeploymentHistory) -> None:
        history.last_updated = utc_now_iso()
        tmp_path = None
        try:
            self.history_file.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                dir=self.history_file.parent,
                prefix=f".{self.history_file.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_path = tmp.name
                json.dump(history.to_dict(), tmp, indent=2)
            os.replace(tmp_path, self.history_file)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise HistoryError(
                f"Cannot write deployment history to {self.history_file}",
                context=str(e),
                details={"path": str(self.history_file)},
            ) from e

    # Mutations

    def record_deployment(
        self,
        result: DeploymentResult,
        metadata: Optional[DeploymentMetadata] = None,
        live: Optional[bool] = None,
    ) -> DeploymentRecord:
        """
        Persist one deployment attempt.

        The record's success flag says whether the deployment went live.
        It follows result.success unless live is given, which covers an
        upload that succeeded but then failed its own verification.

        The previous latest successful deployment for the same pair is
        stored as previous_deployment_id before the new record is prepended.

        Returns:
            The stored DeploymentRecord

        Raises:
            HistoryError: If the history cannot be loaded or written
        """
        metadata = metadata or DeploymentMetadata()
        component = result.component.value
        environment = result.environment.value

        with self._lock:
            history = self.load_history()
            previous = self._latest_successful(history, component, environment)
            if previous is not None:
                metadata.previous_deployment_id = previous.deployment_id

            record = DeploymentRecord(
                id=generate_record_id(),
                component=component,
                environment=environment,
                timestamp=utc_now_iso(),
                success=result.success if live is None else live,
                deployment_id=result.deployment_id,
                url=result.url,
                duration=round(result.duration, 3),
                error=result.error_message,
                metadata=metadata,
            )

            history.deployments.insert(0, record)
            del history.deployments[self.max_history_size :]
            self._save(history)

        if self.logger:
            self.logger.log(f"Recorded deployment {record.id} ({component}/{environment})")
        return record

    def mark_rollback(self, from_id: str, to_id: str) -> DeploymentRecord:
        """
        Stamp a record as rolled back to another record.

        Calling again with the same ids rewrites the same values.

        Raises:
            HistoryError: If from_id is not in the history
        """
        with self._lock:
            history = self.load_history()
            record = self._find(history, from_id)
            if record is None:
                raise HistoryError(
                    f"Deployment record {from_id} not found",
                    details={"id": from_id},
                )
            record.metadata.rolled_back_to = to_id
            record.metadata.rolled_back_at = utc_now_iso()
            self._save(history)

        if self.logger:
            self.logger.log(f"Marked {from_id} as rolled back to {to_id}")
        return record

    def cleanup(self, days_to_keep: int = DEFAULT_RETENTION_DAYS) -> int:
        """
        Drop records older than the retention window.

        Returns:
            Number of records removed
        """
        cutoff = utc_now() - timedelta(days=days_to_keep)
        with self._lock:
            history = self.load_history()
            kept = [
                record
                for record in history.deployments
                if not self._older_than(record, cutoff)
            ]
            removed = len(history.deployments) - len(kept)
            if removed:
                history.deployments = kept
                self._save(history)

        if self.logger:
            self.logger.log(f"History cleanup removed {removed} records older than {days_to_keep} days")
        return removed

    # Queries

    def get_latest_deployment(
        self, component: NameOrEnum, environment: NameOrEnum
    ) -> Optional[DeploymentRecord]:
        """Newest successful record for the pair, or None."""
        return self._latest_successful(self.load_history(), _key(component), _key(environment))

    def get_successful_deployments(
        self, component: NameOrEnum, environment: NameOrEnum
    ) -> List[DeploymentRecord]:
        return self.load_history().filter(_key(component), _key(environment), success=True)

    def get_rollback_candidate(
        self, component: NameOrEnum, environment: NameOrEnum
    ) -> Optional[DeploymentRecord]:
        """
        Second-newest successful record for the pair.

        The newest one is assumed to be live, so it is never a candidate.
        """
        successful = self.get_successful_deployments(component, environment)
        return successful[1] if len(successful) >= 2 else None

    def get_deployment_history(
        self,
        component: NameOrEnum = None,
        environment: NameOrEnum = None,
        limit: Optional[int] = 10,
    ) -> List[DeploymentRecord]:
        records = self.load_history().filter(_key(component), _key(environment))
        return records[:limit] if limit else records

    def get_deployment_by_id(self, record_id: str) -> Optional[DeploymentRecord]:
        return self._find(self.load_history(), record_id)

    def get_statistics(
        self,
        component: NameOrEnum = None,
        environment: NameOrEnum = None,
        days: int = DEFAULT_STATISTICS_DAYS,
    ) -> DeploymentStatistics:
        """Counts, average duration and success rate over the last N days."""
        cutoff = utc_now() - timedelta(days=days)
        records = [
            record
            for record in self.load_history().filter(_key(component), _key(environment))
            if not self._older_than(record, cutoff)
        ]
        if not records:
            return DeploymentStatistics()

        successful = sum(1 for record in records if record.success)
        return DeploymentStatistics(
            total=len(records),
            successful=successful,
            failed=len(records) - successful,
            average_duration=sum(record.duration for record in records) / len(records),
            success_rate=successful / len(records) * 100,
        )

    def export_history(self, path: Path, fmt: str = "json") -> Path:
        """
        Export the full history as JSON or CSV.

        Raises:
            ValueError: On an unknown format
            HistoryError: If the export cannot be written
        """
        fmt = fmt.lower()
        if fmt not in ("json", "csv"):
            raise ValueError(f"Unsupported export format: {fmt} (json|csv)")

        history = self.load_history()
        path = Path(path)
        try:
            if fmt == "json":
                path.write_text(json.dumps(history.to_dict(), indent=2))
            else:
                with open(path, "w", newline="") as handle:
                    writer = csv.writer(handle)
                    writer.writerow(CSV_HEADERS)
                    for record in history.deployments:
                        meta = record.metadata
                        writer.writerow(
                            [
                                record.id,
                                record.component,
                                record.environment,
                                record.deployment_id or "",
                                record.url or "",
                                record.timestamp,
                                record.duration,
                                record.success,
                                record.error or "",
                                meta.git_commit or "",
                                meta.git_branch or "",
                                meta.deployed_by or "",
                                meta.version or "",
                                meta.rolled_back_to or "",
                            ]
                        )
        except OSError as e:
            raise HistoryError(f"Cannot export history to {path}", context=str(e)) from e
        return path

    # Helpers

    @staticmethod
    def _latest_successful(
        history: DeploymentHistory, component: Optional[str], environment: Optional[str]
    ) -> Optional[DeploymentRecord]:
        successful = history.filter(component, environment, success=True)
        return successful[0] if successful else None

    @staticmethod
    def _find(history: DeploymentHistory, record_id: str) -> Optional[DeploymentRecord]:
        for record in history.deployments:
            if record.id == record_id:
                return record
        return None

    @staticmethod
    def _older_than(record: DeploymentRecord, cutoff) -> bool:
        try:
            return parse_timestamp(record.timestamp) < cutoff
        except ValueError:
            # Unparseable timestamps are kept rather than silently dropped
            return False
