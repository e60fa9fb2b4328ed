"""Tests for the component deployers and their shared support."""

import json
from unittest.mock import MagicMock

import pytest

from samsdeploy.deployers import (
    BackendDeployer,
    DesktopDeployer,
    FirebaseDeployer,
    MobileDeployer,
    create_deployer,
)
from samsdeploy.deployers.support import DeploySupport
from samsdeploy.exceptions import (
    BuildOutputMissing,
    CommandMissing,
    DeployFailed,
    DeploymentVerificationFailed,
    FileMissing,
    PrerequisiteError,
    PWAFileMissing,
    ScriptMissing,
)
from samsdeploy.models.deployment import Component, Environment
from samsdeploy.services.cache_buster import CacheBuster
from samsdeploy.services.hosting_service import HostedDeployment


def make_response(status=200, text="", payload=None):
    response = MagicMock()
    response.status_code = status
    response.text = text
    response.json.return_value = payload or {}
    return response


def write_package(project_dir, scripts=("build", "dev"), **extra):
    project_dir.mkdir(parents=True, exist_ok=True)
    package = {"name": project_dir.name, "version": "1.4.0", "scripts": {s: s for s in scripts}}
    package.update(extra)
    (project_dir / "package.json").write_text(json.dumps(package))
    (project_dir / ".env.production").write_text("VITE_FLAG=1\n")
    return project_dir


@pytest.fixture
def executor():
    mock = MagicMock()
    mock.command_exists.return_value = True
    return mock


@pytest.fixture
def hosting():
    mock = MagicMock()
    mock.deploy.return_value = HostedDeployment(
        url="https://sams-app-abc123.vercel.app", deployment_id="abc123"
    )
    return mock


@pytest.fixture
def session():
    mock = MagicMock()
    mock.request.return_value = make_response(200, "ok")
    mock.get.return_value = make_response(
        200, payload={"name": "SAMS Mobile", "short_name": "SAMS"}
    )
    return mock


@pytest.fixture
def support(config, executor, hosting, session, logger, tmp_path):
    return DeploySupport(
        config,
        Environment.PRODUCTION,
        executor=executor,
        hosting=hosting,
        cache_buster=CacheBuster(tmp_path),
        logger=logger,
        session=session,
    )


@pytest.fixture
def desktop_dir(tmp_path):
    project_dir = write_package(tmp_path / "frontend" / "sams-ui")
    dist = project_dir / "dist"
    dist.mkdir()
    (dist / "index.html").write_text("<html><head></head><body></body></html>")
    return project_dir


@pytest.fixture
def mobile_dir(tmp_path):
    project_dir = write_package(tmp_path / "frontend" / "mobile-app")
    dist = project_dir / "dist"
    dist.mkdir()
    (dist / "index.html").write_text("<html><head></head></html>")
    (dist / "manifest.json").write_text(json.dumps({"name": "SAMS", "start_url": "/"}))
    (dist / "sw.js").write_text("const CACHE_NAME = 'sams-v1';\n")
    return project_dir


class TestRegistry:
    """Test deployer lookup."""

    def test_create_deployer(self, support):
        assert isinstance(create_deployer("mobile", support), MobileDeployer)
        assert isinstance(create_deployer(Component.BACKEND, support), BackendDeployer)
        assert isinstance(create_deployer(Component.DESKTOP, support), DesktopDeployer)
        assert isinstance(create_deployer(Component.FIREBASE, support), FirebaseDeployer)

    def test_unknown_component(self, support):
        with pytest.raises(ValueError):
            create_deployer("worker", support)


class TestDesktopDeployer:
    """Test the desktop SPA lifecycle."""

    def test_prerequisites_missing_command(self, support, executor, desktop_dir):
        executor.command_exists.side_effect = lambda name: name != "vercel"

        with pytest.raises(CommandMissing) as exc_info:
            DesktopDeployer(support).check_prerequisites()
        assert "npm i -g vercel" in exc_info.value.context

    def test_prerequisites_missing_script(self, support, tmp_path):
        write_package(tmp_path / "frontend" / "sams-ui", scripts=("dev",))

        with pytest.raises(ScriptMissing):
            DesktopDeployer(support).check_prerequisites()

    def test_build_and_deploy(self, support, executor, hosting, desktop_dir):
        """Test a full build/publish with domain association in production."""
        deployer = DesktopDeployer(support)
        deployer.check_prerequisites()
        deployer.build()

        assert executor.execute_with_retry.call_count == 2
        build_call = executor.execute_with_retry.call_args_list[1]
        assert build_call.args[:2] == ("npm", ["run", "build"])
        env = build_call.kwargs["env"]
        assert env["VITE_BUILD_ID"] == deployer.unique_id
        assert env["VITE_FLAG"] == "1"
        assert env["VITE_API_BASE_URL"] == "https://api.sams.example.com"
        assert deployer.version == "1.4.0"
        assert (desktop_dir / "dist" / "build-id.json").exists()

        result = deployer.deploy()

        assert result.success
        assert result.deployment_id == "abc123"
        assert result.url == "https://sams-app-abc123.vercel.app"
        kwargs = hosting.deploy.call_args.kwargs
        assert kwargs["production"] is True
        assert kwargs["prebuilt"] is True
        assert kwargs["project_id"] == "prj_desktop"
        hosting.add_domain.assert_called_once()
        assert hosting.add_domain.call_args.args[0] == "sams.example.com"

    def test_missing_index_after_build(self, support, desktop_dir):
        (desktop_dir / "dist" / "index.html").unlink()

        with pytest.raises(BuildOutputMissing) as exc_info:
            DesktopDeployer(support).build()
        assert exc_info.value.path.endswith("index.html")

    def test_verification_failure(self, support, session, hosting, desktop_dir):
        """Test a failed health check returns a failed result without domain association."""
        session.request.return_value = make_response(502, "bad gateway")

        result = DesktopDeployer(support).deploy()

        assert not result.success
        assert isinstance(result.error, DeploymentVerificationFailed)
        hosting.add_domain.assert_not_called()

    def test_domain_failure_is_warning(self, support, hosting, logger, desktop_dir):
        hosting.add_domain.side_effect = DeployFailed("domain taken")

        result = DesktopDeployer(support).deploy()

        assert result.success
        assert any("sams.example.com" in c.args[0] for c in logger.warning.call_args_list)

    def test_force_upload(self, support, hosting, desktop_dir):
        support.force_upload = True

        DesktopDeployer(support).deploy()

        assert hosting.deploy.call_args.kwargs["force"] is True


class TestMobileDeployer:
    """Test the PWA lifecycle."""

    def test_missing_essential_file_stops_before_deploy(self, support, hosting, mobile_dir):
        """Test a build without sw.js fails and nothing is uploaded."""
        (mobile_dir / "dist" / "sw.js").unlink()
        deployer = MobileDeployer(support)

        with pytest.raises(PWAFileMissing) as exc_info:
            deployer.build()

        assert exc_info.value.file_name == "sw.js"
        hosting.deploy.assert_not_called()

    def test_build_stamps_outputs(self, support, logger, mobile_dir):
        deployer = MobileDeployer(support)
        deployer.build()

        script = (mobile_dir / "public" / "version-check.js").read_text()
        assert deployer.unique_id in script
        manifest = json.loads((mobile_dir / "dist" / "manifest.json").read_text())
        assert manifest["cache_bust_id"] == deployer.unique_id
        assert manifest["version"] == "1.4.0"
        assert (mobile_dir / "dist" / "cache-bust-manifest.json").exists()
        warnings = [c.args[0] for c in logger.warning.call_args_list]
        assert any("icon-192x192.png" in w for w in warnings)

    def test_icons_in_subdirectory(self, support, logger, mobile_dir):
        icons = mobile_dir / "dist" / "icons"
        icons.mkdir()
        (icons / "icon-192x192.png").write_bytes(b"")
        (icons / "icon-512x512.png").write_bytes(b"")

        MobileDeployer(support).validate_output(mobile_dir / "dist")

        logger.warning.assert_not_called()

    def test_verify_deployment(self, support):
        assert MobileDeployer(support).verify_deployment("https://sams-mobile-x.vercel.app") == []

    def test_verify_manifest_incomplete(self, support, session):
        session.get.return_value = make_response(200, payload={"name": "SAMS"})

        failures = MobileDeployer(support).verify_deployment("https://sams-mobile-x.vercel.app")

        assert failures == ["manifest.json missing 'short_name'"]

    def test_deploy_warms_pwa_paths(self, support, session, mobile_dir):
        MobileDeployer(support).deploy()

        urls = [c.args[0] for c in session.get.call_args_list]
        assert "https://sams-app-abc123.vercel.app/sw.js" in urls
        assert "https://sams-app-abc123.vercel.app/build-id.json" in urls


class TestBackendDeployer:
    """Test the serverless API lifecycle."""

    def test_missing_entry_file(self, support, tmp_path):
        backend = write_package(tmp_path / "backend", scripts=(), type="module")
        (backend / "vercel.json").write_text("{}")

        with pytest.raises(FileMissing) as exc_info:
            BackendDeployer(support).check_prerequisites()
        assert exc_info.value.path.endswith("index.js")

    def test_build_without_build_script(self, support, executor, logger, tmp_path):
        """Test only the install step runs when no build script exists."""
        backend = write_package(tmp_path / "backend", scripts=("start",))
        (backend / "index.js").write_text("export default {}")
        (backend / "vercel.json").write_text("{}")
        deployer = BackendDeployer(support)

        deployer.check_prerequisites()
        deployer.build()

        assert executor.execute_with_retry.call_count == 1
        assert executor.execute_with_retry.call_args.args[:2] == ("npm", ["install"])
        warnings = [c.args[0] for c in logger.warning.call_args_list]
        assert any('"type": "module"' in w for w in warnings)

    def test_deploy_source_upload(self, support, hosting, session, tmp_path):
        write_package(tmp_path / "backend")

        result = BackendDeployer(support).deploy()

        assert result.success
        assert hosting.deploy.call_args.kwargs["prebuilt"] is False
        session.request.assert_called_with(
            "GET",
            "https://sams-app-abc123.vercel.app/api/health",
            headers={},
            data=None,
            timeout=10,
        )

    def test_redeploy_artifact(self, support, hosting, make_record, tmp_path):
        """Test rollback redeploys point the environment alias back at the record."""
        write_package(tmp_path / "backend")
        record = make_record()

        result = BackendDeployer(support).deploy(artifact=record)

        assert result.success
        assert result.deployment_id == record.deployment_id
        hosting.deploy.assert_not_called()
        hosting.promote.assert_called_once_with(
            record.url, alias="api.sams.example.com", production=True, timeout=600
        )


class TestFirebaseDeployer:
    """Test the rules deployer."""

    @pytest.fixture
    def service(self):
        mock = MagicMock()
        mock.validate_rules.return_value = []
        mock.restore_snapshot.return_value = ["firestore.rules", "storage.rules"]
        return mock

    def test_project_from_environment(self, support, service):
        assert FirebaseDeployer(support, service).project == "sams-prod"

    def test_cli_override(self, support, service):
        support.firebase_project = "sams-sandbox"
        assert FirebaseDeployer(support, service).project == "sams-sandbox"

    def test_no_project(self, support, service, config):
        config.environments["production"].firebase_project = None

        with pytest.raises(PrerequisiteError, match="No firebase project"):
            FirebaseDeployer(support, service).deploy()
        service.deploy_rules.assert_not_called()

    def test_build_warns_on_problems(self, support, service, logger):
        service.validate_rules.return_value = ["storage.rules is empty"]

        FirebaseDeployer(support, service).build()

        logger.warning.assert_called_once_with("Rules check: storage.rules is empty")

    def test_deploy_snapshots_first(self, support, service):
        result = FirebaseDeployer(support, service).deploy()

        assert result.success
        assert result.url == "https://console.firebase.google.com/project/sams-prod"
        service.use_project.assert_called_once_with("sams-prod", timeout=600)
        snapshot_args = service.snapshot_rules.call_args.args
        assert snapshot_args[0] == "production"
        assert snapshot_args[1] == result.deployment_id
        service.deploy_rules.assert_called_once()

    def test_deploy_artifact_restores_snapshot(self, support, service, make_record):
        record = make_record(component="firebase")

        result = FirebaseDeployer(support, service).deploy(artifact=record)

        service.restore_snapshot.assert_called_once_with(
            "production", record.deployment_id, ("firestore.rules", "storage.rules")
        )
        service.snapshot_rules.assert_not_called()
        assert result.deployment_id == record.deployment_id
