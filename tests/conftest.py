"""Pytest configuration and fixtures."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    """Keep logs, history and credentials out of the real home directory."""
    monkeypatch.setenv("SAMS_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("SAMS_HISTORY_FILE", str(tmp_path / "history.json"))
    monkeypatch.delenv("SAMS_DEPLOY_CONFIG", raising=False)
    monkeypatch.delenv("VERCEL_TOKEN", raising=False)
    monkeypatch.delenv("VERCEL_TEAM_ID", raising=False)
    monkeypatch.delenv("FIREBASE_TOKEN", raising=False)


@pytest.fixture
def sample_config_dict():
    """A complete configuration document for all four components."""
    return {
        "projects": {
            "desktop": {
                "path": "frontend/sams-ui",
                "projectId": "prj_desktop",
                "outputDirectory": "dist",
                "domain": "sams.example.com",
            },
            "mobile": {"path": "frontend/mobile-app", "projectId": "prj_mobile"},
            "backend": {"path": "backend", "projectId": "prj_backend"},
            "firebase": {"path": "."},
        },
        "environments": {
            "production": {
                "desktopUrl": "https://sams.example.com",
                "mobileUrl": "https://mobile.sams.example.com",
                "backendUrl": "https://api.sams.example.com",
                "firebaseProject": "sams-prod",
                "cdnDomains": ["cdn.sams.example.com"],
            },
            "staging": {
                "desktopUrl": "https://staging.sams.example.com",
                "backendUrl": "https://api-staging.sams.example.com",
                "firebaseProject": "sams-staging",
            },
        },
        "deploymentSettings": {
            "buildTimeout": 300,
            "deploymentTimeout": 600,
            "verificationTimeout": 30,
            "retryAttempts": 2,
            "retryDelay": 0.01,
        },
        "healthChecks": {
            "desktop": {"endpoint": "/", "expectedStatus": 200},
            "mobile": {"endpoint": "/", "expectedStatus": 200},
            "backend": {"endpoint": "/api/health", "expectedStatus": 200, "checkContent": "ok"},
        },
        "verification": {
            "ui": {"desktop": {"selector": "#root", "text": "SAMS"}},
        },
    }


@pytest.fixture
def config(sample_config_dict, tmp_path):
    """Parsed DeployConfig rooted at a temporary directory."""
    from samsdeploy.core.config_loader import parse_config

    return parse_config(sample_config_dict, default_root=tmp_path)


@pytest.fixture
def config_file(sample_config_dict, tmp_path):
    """Configuration written to disk as deploy.config.json."""
    import json

    path = tmp_path / "deploy.config.json"
    path.write_text(json.dumps(sample_config_dict))
    return path


@pytest.fixture
def history_file(tmp_path):
    return tmp_path / "history.json"


@pytest.fixture
def tracker(history_file):
    from samsdeploy.services.tracker_service import DeploymentTracker

    return DeploymentTracker(history_file=history_file)


@pytest.fixture
def logger():
    """Stand-in for DeployLogger that records calls."""
    mock = MagicMock()
    mock.show_spinners = True
    return mock


@pytest.fixture
def make_result():
    """Factory for DeploymentResult objects."""
    from samsdeploy.models.deployment import Component, DeploymentResult, Environment

    def _make(
        component="backend",
        environment="production",
        success=True,
        deployment_id="dpl_1",
        url="https://sams-backend-abc.vercel.app",
        duration=12.5,
        error=None,
    ):
        return DeploymentResult(
            success=success,
            component=Component(component),
            environment=Environment(environment),
            deployment_id=deployment_id,
            url=url,
            duration=duration,
            error=error,
        )

    return _make


@pytest.fixture
def make_record():
    """Factory for DeploymentRecord objects with a timestamp N days in the past."""
    from samsdeploy.models.deployment import DeploymentMetadata, DeploymentRecord
    from samsdeploy.utils import to_iso, utc_now

    counter = {"n": 0}

    def _make(
        component="backend",
        environment="production",
        success=True,
        days_ago=0,
        version=None,
        record_id=None,
    ):
        counter["n"] += 1
        n = counter["n"]
        return DeploymentRecord(
            id=record_id or f"dep_{n:03d}",
            component=component,
            environment=environment,
            timestamp=to_iso(utc_now() - timedelta(days=days_ago, seconds=n)),
            success=success,
            deployment_id=f"dpl_{n}",
            url=f"https://sams-{component}-{n}.vercel.app",
            duration=10.0,
            metadata=DeploymentMetadata(version=version),
        )

    return _make


@pytest.fixture
def write_history(history_file):
    """Write records (newest first) straight to the history file."""
    import json

    from samsdeploy.models.deployment import DeploymentHistory

    def _write(records):
        history = DeploymentHistory(deployments=list(records), last_updated=None)
        history_file.write_text(json.dumps(history.to_dict()))

    return _write
