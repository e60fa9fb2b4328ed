"""Serverless API deployer."""

from typing import List, Optional

from samsdeploy.deployers.base import Deployer
from samsdeploy.exceptions import BuildOutputMissing
from samsdeploy.models.deployment import Component, DeploymentRecord, DeploymentResult

DEFAULT_REQUIRED_FILES = ["package.json", "index.js", "vercel.json"]


class BackendDeployer(Deployer):
    """
    Node serverless functions, built remotely by the hosting platform.

    Only installs (and builds, when the project defines a build script)
    locally to catch broken dependencies before upload.
    """

    component = Component.BACKEND

    def __init__(self, support):
        super().__init__(support)
        self.has_build_script = False

    def _required_files(self) -> List[str]:
        project = self.support.project(self.component)
        files = list(project.required_files or DEFAULT_REQUIRED_FILES)
        if project.entry_file and project.entry_file not in files:
            files.append(project.entry_file)
        return files

    def check_prerequisites(self) -> None:
        s = self.support
        s.require_commands("npm", "vercel")
        project_dir = s.require_project_dir(self.component)
        s.require_files(project_dir, self._required_files())

        package = s.read_package_json(project_dir)
        if package.get("type") != "module":
            s.warn('backend package.json does not declare "type": "module"')
        self.has_build_script = "build" in (package.get("scripts") or {})
        s.require_env_files(self.component, project_dir)

    def build(self) -> None:
        s = self.support
        project = s.project(self.component)
        project_dir = s.project_dir(self.component)

        s.run_step(project.install_command, project_dir, description="Installing dependencies")
        if self.has_build_script:
            s.run_step(project.build_command, project_dir, description="Building backend")

        for name in self._required_files():
            if not (project_dir / name).exists():
                raise BuildOutputMissing(str(project_dir / name))

    def verify_deployment(self, url: str) -> List[str]:
        return self.support.check_health(self.component, url)

    def deploy(self, artifact: Optional[DeploymentRecord] = None) -> DeploymentResult:
        s = self.support
        if artifact is not None:
            return s.republish(self.component, artifact, self.verify_deployment)

        health = s.config.get_health_check(self.component)
        return s.publish(
            self.component,
            prebuilt=False,
            verify=self.verify_deployment,
            warm_paths=[health.endpoint],
        )
