"""Tests for the hosting, rules and notification adapters."""

from unittest.mock import MagicMock

import pytest
import requests

from samsdeploy.events import EventBus, RunCompleted
from samsdeploy.exceptions import CommandFailed, DeployFailed, MissingEnvVars, RollbackTargetInvalid
from samsdeploy.models.deployment import Component, DeploymentOptions, Environment
from samsdeploy.models.results import ExecutionResult
from samsdeploy.models.run import ComponentOutcome, RunReport
from samsdeploy.services.firebase_service import FirebaseService
from samsdeploy.services.hosting_service import HostingService
from samsdeploy.services.notification_service import WebhookNotifier

FIRESTORE_RULES = """rules_version = '2';
service cloud.firestore {
  match /databases/{database}/documents {
    match /{document=**} { allow read, write: if request.auth != null; }
  }
}
"""

STORAGE_RULES = """rules_version = '2';
service firebase.storage {
  match /b/{bucket}/o { allow read: if true; }
}
"""


class TestHostingService:
    """Test the hosting CLI wrapper."""

    def test_extract_url_last_match(self):
        output = "Inspect: https://vercel.com/x\nPreview: https://sams-a1.vercel.app\nhttps://sams-b2.vercel.app\n"
        assert HostingService.extract_url(output) == "https://sams-b2.vercel.app"
        assert HostingService.extract_url("no url here") is None

    def test_extract_deployment_id(self):
        assert HostingService.extract_deployment_id("https://sams-ui-k3j2h1.vercel.app") == "ui-k3j2h1"
        assert HostingService.extract_deployment_id("https://custom.example.com") == "https://custom.example.com"

    def test_deploy_arguments(self, tmp_path):
        """Test flags, credentials and secret redaction passed to the CLI."""
        executor = MagicMock()
        executor.execute_with_retry.return_value = ExecutionResult(
            returncode=0, stdout="https://sams-ui-abc.vercel.app\n"
        )
        hosting = HostingService(executor, token="tok", team_id="team_1")

        hosted = hosting.deploy(tmp_path, production=True, project_id="prj_1", force=True, attempts=2)

        args = executor.execute_with_retry.call_args.args[1]
        assert args[:4] == ["deploy", "--project", "prj_1", "--prod"]
        assert "--prebuilt" in args
        assert "--force" in args
        assert args[-5:] == ["--token", "tok", "--scope", "team_1", "--yes"]
        assert executor.execute_with_retry.call_args.kwargs["redact"] == ["tok"]
        assert executor.execute_with_retry.call_args.kwargs["attempts"] == 2
        assert hosted.url == "https://sams-ui-abc.vercel.app"

    def test_deploy_without_url(self, tmp_path):
        executor = MagicMock()
        executor.execute_with_retry.return_value = ExecutionResult(returncode=0, stdout="done")

        with pytest.raises(DeployFailed, match="URL"):
            HostingService(executor, token="").deploy(tmp_path, production=False)

    def test_deploy_process_failure(self, tmp_path):
        executor = MagicMock()
        executor.execute_with_retry.side_effect = CommandFailed("vercel deploy", 1, stderr="quota")

        with pytest.raises(DeployFailed) as exc_info:
            HostingService(executor, token="").deploy(tmp_path, production=False)
        assert exc_info.value.details["exit_code"] == 1

    def test_promote_production(self):
        executor = MagicMock()
        hosting = HostingService(executor, token="", team_id="")

        url = hosting.promote("https://sams-api-1.vercel.app", alias="api.example.com", production=True)

        assert executor.execute.call_args.args[1] == ["promote", "https://sams-api-1.vercel.app", "--yes"]
        assert url == "https://sams-api-1.vercel.app"

    def test_promote_alias(self):
        executor = MagicMock()
        hosting = HostingService(executor, token="", team_id="")

        url = hosting.promote("https://sams-api-1.vercel.app", alias="api-staging.example.com")

        assert executor.execute.call_args.args[1][:2] == ["alias", "set"]
        assert url == "https://api-staging.example.com"

    def test_purge_requires_token(self):
        with pytest.raises(MissingEnvVars):
            HostingService(MagicMock(), token="").purge_cache("cdn.example.com")

    def test_purge(self):
        session = MagicMock()
        hosting = HostingService(MagicMock(), token="tok", team_id="team_1", session=session)

        hosting.purge_cache("cdn.example.com")

        call = session.post.call_args
        assert call.args[0] == "https://api.vercel.com/v1/purge/cdn.example.com"
        assert call.kwargs["headers"]["Authorization"] == "Bearer tok"
        assert call.kwargs["params"] == {"teamId": "team_1"}


class TestFirebaseService:
    """Test rules validation, snapshots and deploy."""

    @pytest.fixture
    def rules_dir(self, tmp_path):
        (tmp_path / "firestore.rules").write_text(FIRESTORE_RULES)
        (tmp_path / "storage.rules").write_text(STORAGE_RULES)
        return tmp_path

    def test_validate_clean_rules(self, rules_dir):
        assert FirebaseService(MagicMock(), rules_dir, token="").validate_rules() == []

    def test_validate_problems(self, rules_dir):
        (rules_dir / "storage.rules").write_text("service firebase.storage {")
        (rules_dir / "firestore.rules").unlink()

        problems = FirebaseService(MagicMock(), rules_dir, token="").validate_rules()

        assert problems == ["firestore.rules not found", "storage.rules has unbalanced braces"]

    def test_snapshot_and_restore(self, rules_dir):
        """Test a snapshot brings back the rules that were live when it was taken."""
        service = FirebaseService(MagicMock(), rules_dir, token="")
        service.snapshot_rules("production", "snap1")
        (rules_dir / "firestore.rules").write_text("service cloud.firestore { }")

        restored = service.restore_snapshot("production", "snap1")

        assert restored == ["firestore.rules", "storage.rules"]
        assert (rules_dir / "firestore.rules").read_text() == FIRESTORE_RULES

    def test_restore_keeps_working_tree_copy(self, rules_dir):
        """Test local rules edits are saved before a snapshot overwrites them."""
        service = FirebaseService(MagicMock(), rules_dir, token="")
        service.snapshot_rules("production", "snap1")
        edited = "service cloud.firestore { match /drafts/{id} { allow read; } }"
        (rules_dir / "firestore.rules").write_text(edited)

        service.restore_snapshot("production", "snap1")

        backups = list((rules_dir / ".firebase-rules-backup" / "production").glob("pre-restore-*"))
        assert len(backups) == 1
        assert (backups[0] / "firestore.rules").read_text() == edited
        assert (rules_dir / "firestore.rules").read_text() == FIRESTORE_RULES

    def test_restore_missing_snapshot(self, rules_dir):
        with pytest.raises(RollbackTargetInvalid):
            FirebaseService(MagicMock(), rules_dir, token="").restore_snapshot("production", "nope")

    def test_deploy_rules_arguments(self, rules_dir):
        executor = MagicMock()
        service = FirebaseService(executor, rules_dir, token="fbtok")

        service.deploy_rules("sams-prod", attempts=3)

        args = executor.execute_with_retry.call_args.args[1]
        assert args[:6] == [
            "deploy",
            "--only",
            "firestore:rules,storage",
            "--project",
            "sams-prod",
            "--non-interactive",
        ]
        assert args[-2:] == ["--token", "fbtok"]

    def test_deploy_rules_failure(self, rules_dir):
        executor = MagicMock()
        executor.execute_with_retry.side_effect = CommandFailed("firebase deploy", 2)

        with pytest.raises(DeployFailed, match="sams-prod"):
            FirebaseService(executor, rules_dir, token="").deploy_rules("sams-prod")


class TestNotifications:
    """Test the event bus and webhook sink."""

    @pytest.fixture
    def report(self, make_result):
        options = DeploymentOptions(environment=Environment.STAGING, components=(Component.BACKEND,))
        return RunReport(options=options, outcomes=[ComponentOutcome(result=make_result(environment="staging"))])

    def test_run_summary_posted(self, report):
        session = MagicMock()
        bus = EventBus()
        WebhookNotifier("https://hooks.example.com/x", session=session).attach(bus)

        bus.emit(RunCompleted(report))

        payload = session.post.call_args.kwargs["json"]
        assert payload["event"] == "deployment.completed"
        assert payload["summary"]["environment"] == "staging"
        assert "succeeded" in payload["text"]

    def test_delivery_failure_is_warning(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("down")
        logger = MagicMock()

        sent = WebhookNotifier("https://hooks.example.com/x", logger=logger, session=session).send(
            {"event": "deployment.completed"}
        )

        assert sent is False
        logger.warning.assert_called_once()

    def test_failing_handler_does_not_break_emit(self, report):
        logger = MagicMock()
        bus = EventBus(logger=logger)
        received = []
        bus.subscribe(RunCompleted, MagicMock(side_effect=RuntimeError("boom")))
        bus.subscribe(RunCompleted, received.append)

        bus.emit(RunCompleted(report))

        assert len(received) == 1
        logger.warning.assert_called_once()
