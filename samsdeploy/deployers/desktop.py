"""Desktop web client deployer."""

from typing import List, Optional

from samsdeploy.deployers.base import Deployer
from samsdeploy.exceptions import BuildOutputMissing
from samsdeploy.models.deployment import Component, DeploymentRecord, DeploymentResult


class DesktopDeployer(Deployer):
    """Static SPA built locally and uploaded prebuilt."""

    component = Component.DESKTOP
    default_scripts = ["build"]

    def __init__(self, support):
        super().__init__(support)
        self.unique_id: Optional[str] = None
        self.version = "0.0.0"

    def check_prerequisites(self) -> None:
        s = self.support
        s.require_commands("npm", "vercel")
        project_dir = s.require_project_dir(self.component)
        project = s.project(self.component)
        s.require_scripts(project_dir, project.required_scripts or self.default_scripts)
        s.require_files(project_dir, project.required_files)
        s.require_env_files(self.component, project_dir)

    def build(self) -> None:
        s = self.support
        project = s.project(self.component)
        project_dir = s.project_dir(self.component)
        self.version = s.version(self.component)
        self.unique_id = s.cache_buster.generate_unique_id()
        env = s.build_env(self.component, self.unique_id, self.version)

        s.run_step(project.install_command, project_dir, description="Installing dependencies")
        s.run_step(project.build_command, project_dir, env=env, description="Building desktop UI")

        output_dir = s.output_dir(self.component)
        if not (output_dir / "index.html").exists():
            raise BuildOutputMissing(str(output_dir / "index.html"))

        s.bust_caches(self.component, output_dir, self.version, unique_id=self.unique_id)

    def verify_deployment(self, url: str) -> List[str]:
        return self.support.check_health(self.component, url)

    def deploy(self, artifact: Optional[DeploymentRecord] = None) -> DeploymentResult:
        s = self.support
        if artifact is not None:
            return s.republish(self.component, artifact, self.verify_deployment)

        return s.publish(
            self.component,
            prebuilt=True,
            verify=self.verify_deployment,
            warm_paths=["/", "/build-id.json"],
            output_dir=s.output_dir(self.component),
            version=self.version,
            unique_id=self.unique_id,
        )
