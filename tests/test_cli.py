"""Tests for the command line interface."""

import importlib
import json
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from samsdeploy import __version__
from samsdeploy.exceptions import DeployFailed
from samsdeploy.main import cli
from samsdeploy.models.deployment import Component, Environment
from samsdeploy.models.run import ComponentOutcome, RunReport


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake_orchestrator(monkeypatch, make_result):
    """Replace the orchestrator behind `deploy` with one returning a canned report."""
    outcomes = []

    def build(options, config_loader=None, logger=None):
        instance = MagicMock()
        instance.run.return_value = RunReport(options=options, outcomes=list(outcomes), duration=1.0)
        return instance

    orchestrator_cls = MagicMock(side_effect=build)
    # The package re-exports the click command under the module's name
    deploy_module = importlib.import_module("samsdeploy.commands.deploy")
    monkeypatch.setattr(deploy_module, "Orchestrator", orchestrator_cls)
    orchestrator_cls.outcomes = outcomes
    return orchestrator_cls


class TestMain:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_banner_without_command(self, runner):
        result = runner.invoke(cli, [])

        assert result.exit_code == 0
        assert "sams-deploy --help" in result.output


class TestDeployCommand:
    """Test deploy option parsing and exit codes."""

    def test_invalid_environment(self, runner, config_file, fake_orchestrator):
        result = runner.invoke(cli, ["deploy", "-e", "qa", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "Invalid environment" in result.output
        fake_orchestrator.assert_not_called()

    def test_invalid_component(self, runner, config_file, fake_orchestrator):
        result = runner.invoke(cli, ["deploy", "-e", "prod", "-c", "watch", "--config", str(config_file)])

        assert result.exit_code == 1
        fake_orchestrator.assert_not_called()

    def test_options_passed_through(self, runner, config_file, fake_orchestrator, make_result):
        """Test aliases and flags reach the orchestrator as parsed options."""
        fake_orchestrator.outcomes.append(ComponentOutcome(result=make_result()))

        result = runner.invoke(
            cli,
            [
                "deploy",
                "-e",
                "prod",
                "-c",
                "api",
                "--no-cache",
                "--timeout",
                "90",
                "--firebase-project",
                "sams-sandbox",
                "--config",
                str(config_file),
                "--json",
            ],
        )

        assert result.exit_code == 0, result.output
        options = fake_orchestrator.call_args.args[0]
        assert options.environment == Environment.PRODUCTION
        assert options.components == (Component.BACKEND,)
        assert options.no_cache is True
        assert options.timeout == 90
        assert options.firebase_project == "sams-sandbox"

        payload = json.loads(result.output)
        assert payload["environment"] == "production"
        assert payload["success"] is True
        assert payload["results"][0]["component"] == "backend"

    def test_failure_exit_code(self, runner, config_file, fake_orchestrator, make_result):
        fake_orchestrator.outcomes.append(
            ComponentOutcome(result=make_result(success=False, url=None, error=DeployFailed("quota exceeded")))
        )

        result = runner.invoke(cli, ["deploy", "-e", "production", "-c", "backend", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "Deployment failed for: backend" in result.output

    def test_force_exits_zero(self, runner, config_file, fake_orchestrator, make_result):
        fake_orchestrator.outcomes.append(
            ComponentOutcome(result=make_result(success=False, url=None, error=DeployFailed("quota exceeded")))
        )

        result = runner.invoke(
            cli, ["deploy", "-e", "production", "-c", "backend", "--force", "--config", str(config_file)]
        )

        assert result.exit_code == 0
        assert "--force set" in result.output


class TestHistoryCommands:
    """Test history listing, statistics, cleanup and export."""

    def test_empty_history(self, runner, config_file):
        result = runner.invoke(cli, ["history", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "No deployment history found" in result.output

    def test_history_json(self, runner, config_file, write_history, make_record):
        records = [make_record(), make_record(component="desktop"), make_record()]
        write_history(records)

        result = runner.invoke(cli, ["history", "-c", "api", "--json", "--config", str(config_file)])

        assert result.exit_code == 0
        ids = [d["id"] for d in json.loads(result.output)["deployments"]]
        assert ids == [records[0].id, records[2].id]

    def test_history_table(self, runner, config_file, write_history, make_record):
        write_history([make_record(version="2.0.0")])

        result = runner.invoke(cli, ["history", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Deployment History" in result.output
        assert "dep_001" in result.output

    def test_missing_explicit_config(self, runner, tmp_path):
        result = runner.invoke(cli, ["history", "--config", str(tmp_path / "absent.json")])

        assert result.exit_code == 1

    def test_stats_json(self, runner, config_file, write_history, make_record):
        write_history([make_record(), make_record(success=False), make_record(days_ago=60)])

        result = runner.invoke(cli, ["history:stats", "--days", "30", "--json", "--config", str(config_file)])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["days"] == 30
        assert payload["total"] == 2
        assert payload["successful"] == 1

    def test_cleanup(self, runner, config_file, write_history, make_record, tracker):
        write_history([make_record(), make_record(days_ago=120)])

        result = runner.invoke(cli, ["history:cleanup", "--days", "90", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Removed 1 record(s)" in result.output
        assert len(tracker.get_deployment_history(limit=None)) == 1

    def test_cleanup_uses_configured_retention(
        self, runner, sample_config_dict, tmp_path, write_history, make_record, tracker
    ):
        """Test cleanup without --days keeps deploymentSettings.retentionDays worth of records."""
        sample_config_dict["deploymentSettings"]["retentionDays"] = 30
        path = tmp_path / "retention.config.json"
        path.write_text(json.dumps(sample_config_dict))
        kept = make_record(days_ago=10)
        write_history([kept, make_record(days_ago=45)])

        result = runner.invoke(cli, ["history:cleanup", "--config", str(path)])

        assert result.exit_code == 0
        assert "older than 30 days" in result.output
        assert [r.id for r in tracker.get_deployment_history(limit=None)] == [kept.id]

    def test_export_csv(self, runner, config_file, write_history, make_record, tmp_path):
        write_history([make_record(), make_record()])
        target = tmp_path / "export.csv"

        result = runner.invoke(
            cli, ["history:export", str(target), "--format", "csv", "--config", str(config_file)]
        )

        assert result.exit_code == 0
        lines = target.read_text().strip().splitlines()
        assert len(lines) == 3


class TestRollbackCommands:
    """Test rollback planning from the command line."""

    def test_candidates_json(self, runner, config_file, write_history, make_record):
        records = [make_record(), make_record(success=False), make_record()]
        write_history(records)

        result = runner.invoke(
            cli,
            ["rollback:candidates", "-c", "backend", "-e", "prod", "--json", "--config", str(config_file)],
        )

        assert result.exit_code == 0
        candidates = json.loads(result.output)["candidates"]
        assert [c["id"] for c in candidates] == [records[2].id]

    def test_nothing_to_roll_back(self, runner, config_file, write_history, make_record):
        write_history([make_record()])

        result = runner.invoke(
            cli, ["rollback", "-c", "backend", "-e", "production", "--force", "--config", str(config_file)]
        )

        assert result.exit_code == 0
        assert "Nothing to roll back to" in result.output

    def test_dry_run_shows_plan(self, runner, config_file, write_history, make_record):
        """Test a dry run prints the plan and leaves history untouched."""
        live, target = make_record(), make_record()
        write_history([live, target])

        result = runner.invoke(
            cli, ["rollback", "-c", "backend", "-e", "production", "--dry-run", "--config", str(config_file)]
        )

        assert result.exit_code == 0, result.output
        assert "Rollback plan" in result.output
        assert "would roll back" in result.output
        assert target.id in result.output

    def test_cancelled_at_prompt(self, runner, config_file, write_history, make_record):
        write_history([make_record(), make_record()])

        result = runner.invoke(
            cli,
            ["rollback", "-c", "backend", "-e", "production", "--config", str(config_file)],
            input="n\n",
        )

        assert result.exit_code == 0
        assert "Rollback cancelled" in result.output

    def test_invalid_component(self, runner, config_file):
        result = runner.invoke(
            cli, ["rollback", "-c", "watch", "-e", "production", "--config", str(config_file)]
        )

        assert result.exit_code == 1
