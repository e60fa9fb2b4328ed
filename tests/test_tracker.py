"""Tests for the deployment history tracker."""

import csv
import json
import re

import pytest

from samsdeploy.exceptions import HistoryError
from samsdeploy.models.deployment import DeploymentMetadata
from samsdeploy.services.tracker_service import CSV_HEADERS, DeploymentTracker


class TestRecordDeployment:
    """Test persisting deployment attempts."""

    def test_record_then_latest(self, tracker, make_result):
        """Test a recorded success becomes the latest deployment."""
        record = tracker.record_deployment(make_result(deployment_id="dpl_a"))

        assert re.match(r"^dep_\d{13}_[0-9a-f]{9}$", record.id)
        assert record.timestamp.endswith("Z")
        latest = tracker.get_latest_deployment("backend", "production")
        assert latest.id == record.id
        assert latest.deployment_id == "dpl_a"

    def test_failures_never_become_latest(self, tracker, make_result):
        ok = tracker.record_deployment(make_result(deployment_id="dpl_ok"))
        tracker.record_deployment(make_result(success=False, deployment_id=None))

        assert tracker.get_latest_deployment("backend", "production").id == ok.id

    def test_previous_deployment_id(self, tracker, make_result):
        """Test the prior live deployment is linked on the new record."""
        tracker.record_deployment(make_result(deployment_id="dpl_old"))
        record = tracker.record_deployment(make_result(deployment_id="dpl_new"))

        assert record.metadata.previous_deployment_id == "dpl_old"

    def test_pairs_are_isolated(self, tracker, make_result):
        tracker.record_deployment(make_result(component="desktop"))

        assert tracker.get_latest_deployment("backend", "production") is None
        assert tracker.get_latest_deployment("desktop", "staging") is None

    def test_trims_to_cap_keeping_newest(self, history_file, make_result):
        """Test the history is capped after each insert."""
        tracker = DeploymentTracker(history_file=history_file, max_history_size=3)
        for n in range(5):
            tracker.record_deployment(make_result(deployment_id=f"dpl_{n}"))

        records = tracker.get_deployment_history(limit=None)
        assert [r.deployment_id for r in records] == ["dpl_4", "dpl_3", "dpl_2"]

    def test_metadata_persisted(self, tracker, make_result):
        metadata = DeploymentMetadata(git_commit="abc123", deployed_by="ci", version="1.2.0")
        record = tracker.record_deployment(make_result(), metadata)

        stored = json.loads(tracker.history_file.read_text())["deployments"][0]
        assert stored["id"] == record.id
        assert stored["metadata"]["gitCommit"] == "abc123"
        assert stored["metadata"]["version"] == "1.2.0"

    def test_corrupted_file(self, tracker, history_file, make_result):
        """Test an unreadable history raises instead of being overwritten."""
        history_file.write_text("{broken")

        with pytest.raises(HistoryError):
            tracker.record_deployment(make_result())
        assert history_file.read_text() == "{broken"

    def test_missing_file_is_empty(self, tracker):
        assert tracker.get_deployment_history() == []


class TestRollbackCandidate:
    """Test candidate selection."""

    def test_second_newest_success(self, tracker, write_history, make_record):
        """Test failures between successes are skipped."""
        newest = make_record()
        failed = make_record(success=False)
        candidate = make_record()
        older = make_record()
        write_history([newest, failed, candidate, older])

        assert tracker.get_rollback_candidate("backend", "production").id == candidate.id

    def test_single_success_has_no_candidate(self, tracker, write_history, make_record):
        write_history([make_record(), make_record(success=False)])

        assert tracker.get_rollback_candidate("backend", "production") is None

    def test_other_pairs_ignored(self, tracker, write_history, make_record):
        write_history(
            [make_record(), make_record(component="desktop"), make_record(environment="staging")]
        )

        assert tracker.get_rollback_candidate("backend", "production") is None


class TestMarkRollback:
    """Test rollback stamping."""

    def test_marks_record(self, tracker, write_history, make_record):
        live, target = make_record(), make_record()
        write_history([live, target])

        marked = tracker.mark_rollback(live.id, target.id)

        assert marked.metadata.rolled_back_to == target.id
        assert tracker.get_deployment_by_id(live.id).is_rolled_back

    def test_idempotent(self, tracker, write_history, make_record):
        """Test marking twice leaves the same target."""
        live, target = make_record(), make_record()
        write_history([live, target])

        tracker.mark_rollback(live.id, target.id)
        tracker.mark_rollback(live.id, target.id)

        records = tracker.get_deployment_history(limit=None)
        assert len(records) == 2
        assert records[0].metadata.rolled_back_to == target.id

    def test_unknown_id(self, tracker):
        with pytest.raises(HistoryError, match="not found"):
            tracker.mark_rollback("dep_missing", "dep_other")


class TestCleanupAndStatistics:
    """Test retention cleanup and aggregate statistics."""

    def test_cleanup_counts_removed(self, tracker, write_history, make_record):
        write_history(
            [make_record(days_ago=1), make_record(days_ago=100), make_record(days_ago=200)]
        )

        assert tracker.cleanup(90) == 2
        assert len(tracker.get_deployment_history(limit=None)) == 1

    def test_cleanup_nothing_to_remove(self, tracker, write_history, make_record, history_file):
        write_history([make_record(days_ago=1)])
        before = history_file.read_text()

        assert tracker.cleanup(90) == 0
        assert history_file.read_text() == before

    def test_statistics_window(self, tracker, write_history, make_record):
        """Test only records inside the window are counted."""
        write_history(
            [
                make_record(days_ago=1),
                make_record(success=False, days_ago=2),
                make_record(days_ago=3),
                make_record(days_ago=3),
                make_record(days_ago=45),
            ]
        )

        stats = tracker.get_statistics("backend", "production", days=30)

        assert stats.total == 4
        assert stats.successful == 3
        assert stats.failed == 1
        assert stats.success_rate == 75.0
        assert stats.average_duration == 10.0

    def test_statistics_empty(self, tracker):
        stats = tracker.get_statistics()
        assert stats.total == 0
        assert stats.success_rate == 0.0


class TestExport:
    """Test history export formats."""

    def test_json(self, tracker, write_history, make_record, tmp_path):
        write_history([make_record(), make_record()])
        path = tracker.export_history(tmp_path / "out.json", "json")

        assert len(json.loads(path.read_text())["deployments"]) == 2

    def test_csv(self, tracker, write_history, make_record, tmp_path):
        record = make_record(version="2.0.0")
        write_history([record])
        path = tracker.export_history(tmp_path / "out.csv", "CSV")

        with open(path, newline="") as handle:
            rows = list(csv.reader(handle))
        assert rows[0] == CSV_HEADERS
        assert rows[1][0] == record.id
        assert rows[1][CSV_HEADERS.index("Version")] == "2.0.0"

    def test_unknown_format(self, tracker, tmp_path):
        with pytest.raises(ValueError):
            tracker.export_history(tmp_path / "out.xml", "xml")
