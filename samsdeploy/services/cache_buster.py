"""
Cache Busting Service

Makes sure a new deployment is not masked by stale artifacts cached in
browsers, service workers or CDN edges.
"""

import json
import re
import secrets
from pathlib import Path
from typing import Iterable, List, Optional

import requests

from samsdeploy.constants import (
    BUILD_ID_FILE,
    CACHE_BUST_MANIFEST_FILE,
    CACHE_NAME_PREFIX,
    DEFAULT_VERSION_FILE,
    IMMUTABLE_CACHE_CONTROL,
    INVALIDATION_TARGETS,
    NO_CACHE_CONTROL,
    SERVICE_WORKER_FILES,
)
from samsdeploy.exceptions import SamsDeployError
from samsdeploy.logger import DeployLogger
from samsdeploy.models.deployment import Environment
from samsdeploy.models.results import CacheBustResult
from samsdeploy.services.hosting_service import HostingService
from samsdeploy.utils import epoch_ms, utc_now_iso

STYLESHEET_PATTERN = re.compile(r"""(<link\b[^>]*\bhref=["'])([^"'?#]+\.css)(?:\?[^"']*)?(["'][^>]*>)""")
SCRIPT_PATTERN = re.compile(r"""(<script\b[^>]*\bsrc=["'])([^"'?#]+\.js)(?:\?[^"']*)?(["'][^>]*>)""")
INJECTED_META_PATTERN = re.compile(
    r'\s*<meta http-equiv="(?:Cache-Control|Pragma|Expires)"[^>]*>|\s*<meta name="build-id"[^>]*>'
)

CACHE_NAME_PATTERNS = [
    re.compile(r"""((?:const|let|var)\s+(?:CACHE_NAME|APP_CACHE|STATIC_CACHE|RUNTIME_CACHE)\s*=\s*)([`'"])[^`'"]+\2"""),
    re.compile(r"""(cacheName:\s*)([`'"])[^`'"]+\2"""),
]
SW_HEADER_PATTERN = re.compile(r"\A// SAMS cache version: .*\n")

HTACCESS_CONTENT = f"""# Generated by sams-deploy
<IfModule mod_headers.c>
  <FilesMatch "\\.(html|htm|js|css)$">
    Header set Cache-Control "{NO_CACHE_CONTROL}"
    Header set Pragma "no-cache"
    Header set Expires "0"
  </FilesMatch>
  <FilesMatch "\\.(json|txt)$">
    Header set Cache-Control "no-cache, must-revalidate"
  </FilesMatch>
  <FilesMatch "\\.(png|jpg|jpeg|gif|svg|ico|woff|woff2)$">
    Header set Cache-Control "{IMMUTABLE_CACHE_CONTROL}"
  </FilesMatch>
</IfModule>
"""


def read_json_object(path: Path) -> dict:
    """
    Load a JSON file that must hold an object.

    Raises:
        ValueError: Invalid JSON, or a top-level value that is not an object
    """
    data = json.loads(path.read_text())
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} must contain a JSON object, got {type(data).__name__}")
    return data


class CacheBuster:
    """
    Cache invalidation for one build output directory.

    Every step is best effort: a failing step is recorded in the result's
    errors and the remaining steps still run. Only an unusable output
    directory fails the whole pass.
    """

    def __init__(
        self,
        root_dir: Path,
        hosting: Optional[HostingService] = None,
        version_file: str = DEFAULT_VERSION_FILE,
        logger: Optional[DeployLogger] = None,
    ):
        self.root_dir = Path(root_dir)
        self.hosting = hosting
        self.version_file = version_file
        self.logger = logger

    @staticmethod
    def generate_unique_id() -> str:
        """Timestamp plus random suffix, unique even within one clock tick."""
        return f"{epoch_ms()}-{secrets.token_hex(4)}"

    @staticmethod
    def cache_name(version: str, unique_id: str) -> str:
        return f"{CACHE_NAME_PREFIX}-v{version}-{unique_id}"

    def bust(
        self,
        output_dir: Path,
        environment: Environment,
        version: str = "0.0.0",
        project_dir: Optional[Path] = None,
        purge_domains: Iterable[str] = (),
        skip_purge: bool = False,
        skip_file_rename: bool = False,
        unique_id: Optional[str] = None,
    ) -> CacheBustResult:
        """
        Run the cache-busting pass.

        Args:
            output_dir: Build output directory
            environment: Target environment (purge only runs in production)
            version: Application version embedded in cache names
            project_dir: Where the platform headers config lives
            purge_domains: CDN domains to purge
            skip_purge: Never call the CDN purge API
            skip_file_rename: Leave build-id and entry HTML untouched (post-deploy pass)
            unique_id: Reuse an existing build id

        Returns:
            CacheBustResult
        """
        output_dir = Path(output_dir)
        unique_id = unique_id or self.generate_unique_id()
        result = CacheBustResult(
            success=True,
            timestamp=utc_now_iso(),
            unique_id=unique_id,
            cache_version=self.cache_name(version, unique_id),
        )

        if not output_dir.is_dir():
            result.success = False
            result.errors.append(f"Output directory not accessible: {output_dir}")
            if self.logger:
                self.logger.log_error("Cache busting skipped", context=result.errors[-1])
            return result

        steps = []
        if not skip_file_rename:
            steps += [
                ("build metadata", lambda: self._write_build_id(output_dir, result, environment, version)),
                ("entry HTML", lambda: self._rewrite_index(output_dir, result)),
            ]
        steps += [
            ("service worker", lambda: self._rewrite_service_workers(output_dir, result, version)),
            ("host cache headers", lambda: self._write_host_headers(output_dir, project_dir, result)),
            ("version metadata", lambda: self._update_version_file(result, environment, version)),
            ("cache-bust manifest", lambda: self._write_manifest(output_dir, result, environment, version)),
        ]

        for name, step in steps:
            try:
                step()
            except (OSError, ValueError) as e:
                result.errors.append(f"Failed to update {name}: {e}")

        if not skip_purge and environment.is_production:
            self._purge(purge_domains, result)

        if self.logger:
            self.logger.log(
                f"Cache bust {unique_id}: {len(result.files_updated)} files updated, "
                f"{len(result.errors)} errors"
            )
            for error in result.errors:
                self.logger.warning(error)
        return result

    def update_pwa_manifest(self, output_dir: Path, unique_id: str, version: str) -> bool:
        """
        Stamp manifest.json with the build id so installed PWAs notice the update.

        Returns:
            True if the manifest was rewritten
        """
        manifest_path = Path(output_dir) / "manifest.json"
        if not manifest_path.exists():
            return False

        try:
            manifest = read_json_object(manifest_path)
        except ValueError as e:
            if self.logger:
                self.logger.warning(f"manifest.json not stamped, invalid JSON: {e}")
            return False
        manifest["version"] = version
        manifest["cache_bust_id"] = unique_id
        manifest["last_updated"] = utc_now_iso()
        manifest["cache_strategy"] = "network-first"
        start_url = str(manifest.get("start_url") or "/")
        base, _, query = start_url.partition("?")
        params = [part for part in query.split("&") if part and not part.startswith("v=")]
        params.append(f"v={unique_id}")
        manifest["start_url"] = f"{base}?{'&'.join(params)}"
        manifest_path.write_text(json.dumps(manifest, indent=2))
        return True

    # Steps

    def _write_build_id(
        self, output_dir: Path, result: CacheBustResult, environment: Environment, version: str
    ) -> None:
        path = output_dir / BUILD_ID_FILE
        data = {
            "buildId": result.unique_id,
            "timestamp": result.timestamp,
            "environment": environment.value,
            "version": version,
        }
        path.write_text(json.dumps(data, indent=2))
        result.files_updated.append(str(path))

    def _rewrite_index(self, output_dir: Path, result: CacheBustResult) -> None:
        path = output_dir / "index.html"
        if not path.exists():
            return

        param = f"?v={result.unique_id}"
        content = path.read_text()
        content = STYLESHEET_PATTERN.sub(lambda m: f"{m.group(1)}{m.group(2)}{param}{m.group(3)}", content)
        content = SCRIPT_PATTERN.sub(lambda m: f"{m.group(1)}{m.group(2)}{param}{m.group(3)}", content)

        # Replace meta tags from an earlier pass instead of stacking them
        content = INJECTED_META_PATTERN.sub("", content)
        meta = (
            f'    <meta http-equiv="Cache-Control" content="{NO_CACHE_CONTROL}">\n'
            '    <meta http-equiv="Pragma" content="no-cache">\n'
            '    <meta http-equiv="Expires" content="0">\n'
            f'    <meta name="build-id" content="{result.unique_id}">\n'
        )
        if "</head>" in content:
            content = content.replace("</head>", meta + "  </head>", 1)
        path.write_text(content)
        result.files_updated.append(str(path))

    def _rewrite_service_workers(self, output_dir: Path, result: CacheBustResult, version: str) -> None:
        for name in SERVICE_WORKER_FILES:
            path = output_dir / name
            if not path.exists():
                continue

            content = SW_HEADER_PATTERN.sub("", path.read_text())
            for pattern in CACHE_NAME_PATTERNS:
                content = pattern.sub(
                    lambda m: f"{m.group(1)}'{result.cache_version}'", content
                )
            header = (
                f"// SAMS cache version: {result.cache_version} "
                f"(build {result.unique_id}, v{version}, {result.timestamp})\n"
            )
            path.write_text(header + content)
            result.files_updated.append(str(path))

    def _write_host_headers(
        self, output_dir: Path, project_dir: Optional[Path], result: CacheBustResult
    ) -> None:
        htaccess = output_dir / ".htaccess"
        htaccess.write_text(HTACCESS_CONTENT)
        result.files_updated.append(str(htaccess))

        if project_dir is None:
            return

        vercel_json = Path(project_dir) / "vercel.json"
        config = read_json_object(vercel_json) if vercel_json.exists() else {}
        existing = config.get("headers", [])
        if not isinstance(existing, list):
            raise ValueError("vercel.json \"headers\" must be a list")
        managed_sources = {"/(.*)", "/assets/(.*)", "/static/(.*)"}
        headers = [
            entry
            for entry in existing
            if isinstance(entry, dict) and entry.get("source") not in managed_sources
        ]
        immutable = [{"key": "Cache-Control", "value": IMMUTABLE_CACHE_CONTROL}]
        headers += [
            {"source": "/assets/(.*)", "headers": immutable},
            {"source": "/static/(.*)", "headers": immutable},
            {
                "source": "/(.*)",
                "headers": [
                    {"key": "Cache-Control", "value": NO_CACHE_CONTROL},
                    {"key": "X-Build-ID", "value": result.unique_id},
                ],
            },
        ]
        config["headers"] = headers
        vercel_json.write_text(json.dumps(config, indent=2))
        result.files_updated.append(str(vercel_json))

    def _update_version_file(
        self, result: CacheBustResult, environment: Environment, version: str
    ) -> None:
        path = self.root_dir / self.version_file
        if not path.parent.is_dir():
            return

        data = read_json_object(path) if path.exists() else {}
        data.setdefault("version", version)
        data["deployment"] = {
            "target": environment.value,
            "date": result.timestamp,
            "automated": True,
            "buildId": result.unique_id,
            "cacheBusted": True,
        }
        data["build"] = {
            "timestamp": result.timestamp,
            "buildId": result.unique_id,
            "cacheVersion": result.cache_version,
        }
        path.write_text(json.dumps(data, indent=2))
        result.files_updated.append(str(path))

    def _write_manifest(
        self, output_dir: Path, result: CacheBustResult, environment: Environment, version: str
    ) -> None:
        path = output_dir / CACHE_BUST_MANIFEST_FILE
        manifest = {
            "version": version,
            "buildId": result.unique_id,
            "timestamp": result.timestamp,
            "environment": environment.value,
            "cacheVersion": result.cache_version,
            "cacheStrategy": {
                "staticAssets": "immutable",
                "htmlFiles": "no-cache",
                "apiResponses": "revalidate",
                "serviceWorker": "immediate",
            },
            "invalidationTargets": list(INVALIDATION_TARGETS),
            "instructions": {
                "clearLocalStorage": True,
                "reloadServiceWorker": True,
                "forcePageReload": True,
                "purgeIndexedDB": False,
            },
            "filesUpdated": list(result.files_updated),
        }
        path.write_text(json.dumps(manifest, indent=2))
        result.files_updated.append(str(path))

    def _purge(self, domains: Iterable[str], result: CacheBustResult) -> None:
        targets: List[str] = [domain for domain in domains if domain]
        if not targets:
            return
        if self.hosting is None:
            result.errors.append("CDN purge skipped: no hosting adapter configured")
            return

        for domain in targets:
            try:
                self.hosting.purge_cache(domain)
            except (SamsDeployError, requests.RequestException) as e:
                result.errors.append(f"CDN purge failed for {domain}: {e}")
