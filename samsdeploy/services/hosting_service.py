"""Hosting platform adapter (vercel CLI for deploys, REST API for CDN purge)."""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import requests

from samsdeploy.constants import (
    PURGE_TIMEOUT,
    VERCEL_API_URL,
    VERCEL_TEAM_ENV_VAR,
    VERCEL_TOKEN_ENV_VAR,
    VERCEL_URL_PATTERN,
)
from samsdeploy.exceptions import DeployFailed, MissingEnvVars, ProcessError
from samsdeploy.logger import DeployLogger
from samsdeploy.services.process_service import ProcessExecutor

DEPLOYMENT_ID_PATTERN = re.compile(r"https://[^-]+-([^.]+)\.vercel\.app")


@dataclass
class HostedDeployment:
    """What the platform reports back for one upload."""

    url: str
    deployment_id: str
    output: str = ""


class HostingService:
    """
    Thin wrapper around the hosting platform.

    Responsibilities:
    - Upload a project (prebuilt output or source) and extract its URL
    - Promote/alias an earlier deployment (rollback)
    - Associate custom domains
    - Purge CDN cache per domain
    """

    def __init__(
        self,
        executor: ProcessExecutor,
        token: Optional[str] = None,
        team_id: Optional[str] = None,
        logger: Optional[DeployLogger] = None,
        session: Optional[requests.Session] = None,
    ):
        self.executor = executor
        self.token = token if token is not None else os.environ.get(VERCEL_TOKEN_ENV_VAR)
        self.team_id = team_id if team_id is not None else os.environ.get(VERCEL_TEAM_ENV_VAR)
        self.logger = logger
        self.session = session or requests.Session()

    @staticmethod
    def extract_url(output: str) -> Optional[str]:
        """Find the deployment URL in CLI output (last match wins)."""
        matches = re.findall(VERCEL_URL_PATTERN, output or "")
        return matches[-1] if matches else None

    @staticmethod
    def extract_deployment_id(url: str) -> str:
        """Deployment id from https://<project>-<id>.vercel.app, else the URL."""
        match = DEPLOYMENT_ID_PATTERN.match(url)
        return match.group(1) if match else url

    def _auth_args(self) -> List[str]:
        args = []
        if self.token:
            args += ["--token", self.token]
        if self.team_id:
            args += ["--scope", self.team_id]
        return args

    def _redact(self) -> List[str]:
        return [self.token] if self.token else []

    def deploy(
        self,
        project_dir: Path,
        production: bool,
        project_id: Optional[str] = None,
        prebuilt: bool = True,
        force: bool = False,
        build_env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        attempts: int = 1,
        delay: float = 0,
        backoff: float = 1.0,
    ) -> HostedDeployment:
        """
        Upload a project and return the reachable URL.

        Raises:
            DeployFailed: If the CLI fails or reports no URL
        """
        args = ["deploy"]
        if project_id:
            args += ["--project", project_id]
        if production:
            args.append("--prod")
        if prebuilt:
            args.append("--prebuilt")
        if force:
            args.append("--force")
        for key, value in (build_env or {}).items():
            args += ["--build-env", f"{key}={value}"]
        args += self._auth_args()
        args.append("--yes")

        try:
            result = self.executor.execute_with_retry(
                "vercel",
                args,
                attempts=attempts,
                delay=delay,
                backoff=backoff,
                cwd=project_dir,
                timeout=timeout,
                redact=self._redact(),
            )
        except ProcessError as e:
            raise DeployFailed(
                "Hosting platform deploy failed",
                context=e.message,
                details=e.details,
            ) from e

        url = self.extract_url(result.stdout) or self.extract_url(result.stderr)
        if not url:
            raise DeployFailed(
                "Could not find deployment URL in platform output",
                details={"stdout": result.stdout[-2000:]},
            )
        return HostedDeployment(
            url=url, deployment_id=self.extract_deployment_id(url), output=result.stdout
        )

    def promote(
        self,
        deployment_url: str,
        alias: Optional[str] = None,
        production: bool = False,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Make an earlier deployment live again.

        Production deployments are promoted; other environments get their
        alias pointed back at the earlier URL.

        Returns:
            The URL now serving the earlier deployment

        Raises:
            DeployFailed: If the platform rejects the switch
        """
        if production:
            args = ["promote", deployment_url]
        elif alias:
            args = ["alias", "set", deployment_url, alias]
        else:
            # Nothing to switch; the immutable deployment URL is still live
            return deployment_url

        args += self._auth_args() + ["--yes"]
        try:
            self.executor.execute("vercel", args, timeout=timeout, redact=self._redact())
        except ProcessError as e:
            raise DeployFailed(
                f"Could not switch traffic to {deployment_url}", context=e.message
            ) from e
        return f"https://{alias}" if alias and not production else deployment_url

    def add_domain(
        self, domain: str, project_dir: Path, timeout: Optional[float] = None
    ) -> None:
        """
        Associate a custom domain with the project.

        Raises:
            DeployFailed: If the platform rejects the domain
        """
        args = ["domains", "add", domain] + self._auth_args()
        try:
            self.executor.execute(
                "vercel", args, cwd=project_dir, timeout=timeout, redact=self._redact()
            )
        except ProcessError as e:
            raise DeployFailed(f"Could not add domain {domain}", context=e.message) from e

    def purge_cache(self, domain: str) -> None:
        """
        Purge the CDN cache for one domain.

        Raises:
            MissingEnvVars: If no API token is configured
            requests.RequestException: On transport or HTTP errors
        """
        if not self.token:
            raise MissingEnvVars([VERCEL_TOKEN_ENV_VAR])

        params = {"teamId": self.team_id} if self.team_id else None
        response = self.session.post(
            f"{VERCEL_API_URL}/v1/purge/{domain}",
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json",
            },
            params=params,
            timeout=PURGE_TIMEOUT,
        )
        response.raise_for_status()
        if self.logger:
            self.logger.log(f"CDN cache purged for {domain}")
