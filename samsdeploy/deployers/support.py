"""
Deploy support

Composable helper that every deployer variant calls into for the steps
they share: prerequisite probes, build commands, cache busting, hosted
upload, lightweight verification, domain association and warm-up.
"""

import json
import shlex
import time
from contextlib import nullcontext
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import urlparse

import requests

from samsdeploy.core.config_loader import DeployConfig, ProjectSettings
from samsdeploy.exceptions import (
    CommandMissing,
    DeployFailed,
    DeploymentVerificationFailed,
    FileMissing,
    ProjectDirMissing,
    ScriptMissing,
)
from samsdeploy.logger import DeployLogger
from samsdeploy.models.deployment import (
    Component,
    DeploymentRecord,
    DeploymentResult,
    Environment,
)
from samsdeploy.models.results import CacheBustResult, ExecutionResult
from samsdeploy.services.cache_buster import CacheBuster
from samsdeploy.services.hosting_service import HostingService
from samsdeploy.services.process_service import ProcessExecutor
from samsdeploy.utils import epoch_ms, get_package_version, load_build_env
from samsdeploy.verifiers.http_checks import build_session, join_url

COMMAND_HINTS = {
    "npm": "Install Node.js from https://nodejs.org",
    "vercel": "Install with: npm i -g vercel",
    "firebase": "Install with: npm i -g firebase-tools",
}

Verifier = Callable[[str], List[str]]


class DeploySupport:
    """Shared deployment steps, bound to one run's config and environment."""

    def __init__(
        self,
        config: DeployConfig,
        environment: Environment,
        executor: ProcessExecutor,
        hosting: HostingService,
        cache_buster: CacheBuster,
        logger: Optional[DeployLogger] = None,
        session: Optional[requests.Session] = None,
        force_upload: bool = False,
        timeout_override: Optional[int] = None,
        firebase_project: Optional[str] = None,
    ):
        self.config = config
        self.environment = environment
        self.executor = executor
        self.hosting = hosting
        self.cache_buster = cache_buster
        self.logger = logger
        self.session = session or build_session()
        self.force_upload = force_upload
        self.timeout_override = timeout_override
        self.firebase_project = firebase_project

    # Settings

    @property
    def settings(self):
        return self.config.deployment

    @property
    def deploy_timeout(self) -> int:
        return self.timeout_override or self.settings.deployment_timeout

    @property
    def build_timeout(self) -> int:
        return self.timeout_override or self.settings.build_timeout

    def project(self, component: Component) -> ProjectSettings:
        return self.config.get_project_config(component)

    def project_dir(self, component: Component) -> Path:
        return self.config.project_dir(component)

    def output_dir(self, component: Component) -> Path:
        return self.project_dir(component) / self.project(component).output_directory

    def environment_url(self, component: Component) -> Optional[str]:
        return self.config.get_environment_config(self.environment).url_for(component)

    def version(self, component: Component) -> str:
        return get_package_version(self.project_dir(component)) or "0.0.0"

    def log(self, message: str, level: str = "INFO") -> None:
        if self.logger:
            self.logger.log(message, level)

    def warn(self, message: str) -> None:
        if self.logger:
            self.logger.warning(message)

    # Prerequisites

    def require_commands(self, *names: str) -> None:
        for name in names:
            if not self.executor.command_exists(name):
                raise CommandMissing(name, COMMAND_HINTS.get(name))

    def require_project_dir(self, component: Component) -> Path:
        project_dir = self.project_dir(component)
        if not project_dir.is_dir():
            raise ProjectDirMissing(str(project_dir))
        return project_dir

    def require_files(self, base_dir: Path, files: Iterable[str]) -> None:
        for name in files:
            if not (base_dir / name).exists():
                raise FileMissing(str(base_dir / name))

    def read_package_json(self, project_dir: Path) -> Dict:
        manifest = project_dir / "package.json"
        if not manifest.exists():
            raise FileMissing(str(manifest), context="Every Node project needs a package.json")
        try:
            return json.loads(manifest.read_text())
        except ValueError as e:
            raise FileMissing(str(manifest), context=f"Not valid JSON: {e}") from e

    def require_scripts(self, project_dir: Path, scripts: Iterable[str]) -> Dict:
        package = self.read_package_json(project_dir)
        available = package.get("scripts") or {}
        for script in scripts:
            if script not in available:
                raise ScriptMissing(script, str(project_dir / "package.json"))
        return package

    def require_env_files(self, component: Component, project_dir: Path) -> None:
        """
        Configured env files must exist; otherwise only warn when no
        environment-specific file is present.
        """
        required = self.project(component).required_env_files
        if required:
            self.require_files(project_dir, required)
            return
        candidates = [f".env.{self.environment.value}", ".env.local", ".env"]
        if not any((project_dir / name).exists() for name in candidates):
            self.warn(f"No env file found for {component.value} ({', '.join(candidates)})")

    # Build

    def build_env(self, component: Component, unique_id: str, version: str) -> Dict[str, str]:
        """Build-time variables merged over the project's .env files."""
        env_config = self.config.get_environment_config(self.environment)
        env = load_build_env(self.project_dir(component), self.environment.value)
        env.update(
            {
                "NODE_ENV": "development"
                if self.environment == Environment.DEVELOPMENT
                else "production",
                "VITE_APP_ENV": self.environment.value,
                "VITE_BUILD_VERSION": version,
                "VITE_BUILD_ID": unique_id,
                "VITE_CACHE_BUST": str(epoch_ms()),
            }
        )
        if env_config.backend_url:
            env["VITE_API_BASE_URL"] = env_config.backend_url
        return env

    def run_step(
        self,
        command_line: str,
        cwd: Path,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[int] = None,
        description: Optional[str] = None,
    ) -> ExecutionResult:
        """Run one build command with the configured retry policy."""
        parts = shlex.split(command_line)
        with self.progress(description or command_line):
            return self.executor.execute_with_retry(
                parts[0],
                parts[1:],
                attempts=self.settings.retry_attempts,
                delay=self.settings.retry_delay,
                backoff=self.settings.retry_backoff,
                cwd=cwd,
                env=env,
                timeout=timeout or self.build_timeout,
            )

    def bust_caches(
        self,
        component: Component,
        output_dir: Path,
        version: str,
        unique_id: Optional[str] = None,
        skip_file_rename: bool = False,
    ) -> CacheBustResult:
        env_config = self.config.get_environment_config(self.environment)
        domains = list(env_config.cdn_domains)
        domain = self.project(component).domain
        if domain and domain not in domains:
            domains.append(domain)
        return self.cache_buster.bust(
            output_dir,
            self.environment,
            version=version,
            project_dir=self.project_dir(component),
            purge_domains=domains,
            skip_file_rename=skip_file_rename,
            unique_id=unique_id,
        )

    # Deploy

    def publish(
        self,
        component: Component,
        prebuilt: bool,
        verify: Verifier,
        warm_paths: Iterable[str] = ("/",),
        output_dir: Optional[Path] = None,
        version: str = "0.0.0",
        unique_id: Optional[str] = None,
        build_env: Optional[Dict[str, str]] = None,
    ) -> DeploymentResult:
        """
        Upload, verify, associate the domain, re-bust caches and warm up.

        Verification failures come back as a failed DeploymentResult;
        platform failures raise DeployFailed.
        """
        start = time.time()
        project = self.project(component)
        project_dir = self.project_dir(component)
        production = self.environment.is_production

        with self.progress(f"Uploading {component.value} to hosting platform"):
            hosted = self.hosting.deploy(
                project_dir,
                production=production,
                project_id=project.project_id,
                prebuilt=prebuilt,
                force=self.force_upload,
                build_env=build_env,
                timeout=self.deploy_timeout,
                attempts=self.settings.retry_attempts,
                delay=self.settings.retry_delay,
                backoff=self.settings.retry_backoff,
            )
        self.log(f"Deployed {component.value}: {hosted.url}")

        failures = verify(hosted.url)
        if failures:
            error = DeploymentVerificationFailed(hosted.url, failures)
            if self.logger:
                self.logger.log_error(error.message, context=error.context)
            return DeploymentResult(
                success=False,
                component=component,
                environment=self.environment,
                deployment_id=hosted.deployment_id,
                url=hosted.url,
                duration=time.time() - start,
                error=error,
            )

        if production and project.domain:
            self.associate_domain(project.domain, project_dir)

        if output_dir is not None:
            self.bust_caches(
                component, output_dir, version, unique_id=unique_id, skip_file_rename=True
            )

        warmed = self.warm_up([join_url(hosted.url, path) for path in warm_paths])
        self.log(f"Warmed {warmed} URL(s) for {component.value}")

        return DeploymentResult(
            success=True,
            component=component,
            environment=self.environment,
            deployment_id=hosted.deployment_id,
            url=hosted.url,
            duration=time.time() - start,
        )

    def republish(
        self, component: Component, record: DeploymentRecord, verify: Verifier
    ) -> DeploymentResult:
        """Point traffic back at an earlier hosted deployment and verify it."""
        start = time.time()
        if not record.url:
            raise DeploymentVerificationFailed("<none>", [f"Record {record.id} has no URL"])

        alias = None
        env_url = self.environment_url(component)
        if env_url:
            alias = urlparse(env_url).netloc
        with self.progress(f"Switching {component.value} back to {record.deployment_id}"):
            self.hosting.promote(
                record.url,
                alias=alias,
                production=self.environment.is_production,
                timeout=self.deploy_timeout,
            )

        failures = verify(record.url)
        error = DeploymentVerificationFailed(record.url, failures) if failures else None
        return DeploymentResult(
            success=not failures,
            component=component,
            environment=self.environment,
            deployment_id=record.deployment_id,
            url=record.url,
            duration=time.time() - start,
            error=error,
        )

    def associate_domain(self, domain: str, project_dir: Path) -> bool:
        """Non-fatal: a failed association is only a warning."""
        try:
            self.hosting.add_domain(domain, project_dir, timeout=self.deploy_timeout)
        except DeployFailed as e:
            self.warn(f"Custom domain {domain} not associated: {getattr(e, 'message', e)}")
            return False
        self.log(f"Custom domain associated: {domain}")
        return True

    # Lightweight checks

    def check_status(self, url: str, expected: int = 200) -> Optional[str]:
        """Return a failure message, or None when the URL answers as expected."""
        try:
            response = self.session.get(url, timeout=self.settings.verification_timeout)
        except requests.RequestException as e:
            return f"{url} unreachable: {e}"
        if response.status_code != expected:
            return f"{url} returned {response.status_code} (expected {expected})"
        return None

    def check_health(self, component: Component, base_url: str) -> List[str]:
        health = self.config.get_health_check(component)
        url = join_url(base_url, health.endpoint)
        try:
            response = self.session.request(
                health.method,
                url,
                headers=health.headers,
                data=health.body,
                timeout=health.timeout,
            )
        except requests.RequestException as e:
            return [f"{url} unreachable: {e}"]

        failures = []
        if response.status_code != health.expected_status:
            failures.append(
                f"{url} returned {response.status_code} (expected {health.expected_status})"
            )
        if health.check_content and health.check_content not in response.text:
            failures.append(f"{url} body does not contain {health.check_content!r}")
        return failures

    def fetch_json(self, url: str) -> Dict:
        response = self.session.get(url, timeout=self.settings.verification_timeout)
        response.raise_for_status()
        return response.json()

    def warm_up(self, urls: Iterable[str]) -> int:
        """GET each URL once to prime edge caches; failures are ignored."""
        warmed = 0
        for url in urls:
            try:
                self.session.get(url, timeout=self.settings.verification_timeout)
                warmed += 1
            except requests.RequestException as e:
                self.log(f"Warm-up request failed for {url}: {e}", "DEBUG")
        return warmed

    def progress(self, description: str):
        if self.logger:
            return self.logger.progress(description)
        return nullcontext()
