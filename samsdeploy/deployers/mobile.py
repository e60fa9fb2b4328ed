"""Mobile PWA deployer."""

from pathlib import Path
from typing import List, Optional

import requests

from samsdeploy.constants import PWA_ESSENTIAL_FILES, PWA_OPTIONAL_FILES
from samsdeploy.deployers.base import Deployer
from samsdeploy.exceptions import PWAFileMissing
from samsdeploy.models.deployment import Component, DeploymentRecord, DeploymentResult
from samsdeploy.verifiers.http_checks import join_url

# Polls build-id.json and reloads the app once a newer build is live
VERSION_CHECK_SCRIPT = """// Generated by sams-deploy. Do not edit.
(function () {
  var CURRENT_BUILD = "%(build_id)s";
  var INTERVAL_MS = 5 * 60 * 1000;

  function check() {
    fetch("/build-id.json?t=" + Date.now(), { cache: "no-store" })
      .then(function (r) { return r.ok ? r.json() : null; })
      .then(function (data) {
        if (data && data.buildId && data.buildId !== CURRENT_BUILD) {
          try { localStorage.clear(); } catch (e) {}
          if (navigator.serviceWorker) {
            navigator.serviceWorker.getRegistrations().then(function (regs) {
              regs.forEach(function (reg) { reg.update(); });
            });
          }
          window.location.reload();
        }
      })
      .catch(function () {});
  }

  setInterval(check, INTERVAL_MS);
  document.addEventListener("visibilitychange", function () {
    if (!document.hidden) check();
  });
})();
"""


class MobileDeployer(Deployer):
    """PWA build with manifest/service-worker checks and cache stamping."""

    component = Component.MOBILE
    default_scripts = ["build", "dev"]

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

    def write_version_check(self, project_dir: Path) -> Path:
        public_dir = project_dir / "public"
        public_dir.mkdir(exist_ok=True)
        path = public_dir / "version-check.js"
        path.write_text(VERSION_CHECK_SCRIPT % {"build_id": self.unique_id})
        return path

    def validate_output(self, output_dir: Path) -> None:
        """
        Essential PWA files must exist; icons only warn.

        Raises:
            PWAFileMissing: Naming the first missing essential file
        """
        for name in PWA_ESSENTIAL_FILES:
            if not (output_dir / name).exists():
                raise PWAFileMissing(name, str(output_dir))
        for name in PWA_OPTIONAL_FILES:
            if not any((output_dir / sub / name).exists() for sub in ("", "icons")):
                self.support.warn(f"Optional PWA asset missing: {name}")

    def build(self) -> None:
        s = self.support
        project = s.project(self.component)
        project_dir = s.project_dir(self.component)
        self.version = s.version(self.component)
        self.unique_id = s.cache_buster.generate_unique_id()
        env = s.build_env(self.component, self.unique_id, self.version)

        self.write_version_check(project_dir)
        s.run_step(project.install_command, project_dir, description="Installing dependencies")
        s.run_step(project.build_command, project_dir, env=env, description="Building mobile PWA")

        output_dir = s.output_dir(self.component)
        self.validate_output(output_dir)

        s.bust_caches(self.component, output_dir, self.version, unique_id=self.unique_id)
        s.cache_buster.update_pwa_manifest(output_dir, self.unique_id, self.version)

    def verify_deployment(self, url: str) -> List[str]:
        s = self.support
        failures = s.check_health(self.component, url)

        try:
            manifest = s.fetch_json(join_url(url, "/manifest.json"))
        except (requests.RequestException, ValueError) as e:
            failures.append(f"manifest.json unreadable: {e}")
        else:
            for key in ("name", "short_name"):
                if not manifest.get(key):
                    failures.append(f"manifest.json missing '{key}'")

        sw_failure = s.check_status(join_url(url, "/sw.js"))
        if sw_failure:
            failures.append(sw_failure)
        return failures

    def deploy(self, artifact: Optional[DeploymentRecord] = None) -> DeploymentResult:
        s = self.support
        if artifact is not None:
            return s.republish(self.component, artifact, self.verify_deployment)

        return s.publish(
            self.component,
            prebuilt=True,
            verify=self.verify_deployment,
            warm_paths=["/", "/manifest.json", "/sw.js", "/build-id.json"],
            output_dir=s.output_dir(self.component),
            version=self.version,
            unique_id=self.unique_id,
        )
