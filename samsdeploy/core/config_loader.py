"""Configuration loading and validation for SAMS deployments"""

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

import yaml

from samsdeploy.constants import (
    ALL_COMPONENTS,
    COMPONENT_ALIASES,
    COMPONENT_ORDER,
    CONFIG_ENV_VAR,
    CONFIG_SEARCH_PATHS,
    DEFAULT_BUILD_TIMEOUT,
    DEFAULT_DEPLOYMENT_TIMEOUT,
    DEFAULT_HEALTH_TIMEOUT,
    DEFAULT_HISTORY_FILE,
    DEFAULT_LOAD_TIME_THRESHOLD_MS,
    DEFAULT_MAX_HISTORY_SIZE,
    DEFAULT_MONITOR_DURATION,
    DEFAULT_MONITOR_INTERVAL,
    DEFAULT_PROJECT_PATHS,
    DEFAULT_RETENTION_DAYS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY,
    DEFAULT_VERIFICATION_TIMEOUT,
    DEFAULT_VERSION_FILE,
    ENVIRONMENT_ALIASES,
    NO_CACHE_CONTROL,
    SECURITY_HEADERS,
)
from samsdeploy.exceptions import ComponentInvalid, ConfigInvalid, ConfigNotFound, EnvInvalid
from samsdeploy.models.deployment import Component, Environment

NameOrEnum = Union[str, Enum]


def _key(value: NameOrEnum) -> str:
    return value.value if isinstance(value, Enum) else value


@dataclass
class ProjectSettings:
    """Per-component build settings"""

    component: str
    path: str
    project_id: Optional[str] = None
    team_id: Optional[str] = None
    install_command: str = "npm install"
    build_command: str = "npm run build"
    output_directory: str = "dist"
    domain: Optional[str] = None
    entry_file: Optional[str] = None
    required_scripts: List[str] = field(default_factory=list)
    required_files: List[str] = field(default_factory=list)
    required_env_files: List[str] = field(default_factory=list)


@dataclass
class EnvironmentSettings:
    """Per-environment URLs and platform targets"""

    name: str
    desktop_url: Optional[str] = None
    mobile_url: Optional[str] = None
    backend_url: Optional[str] = None
    firebase_project: Optional[str] = None
    cdn_domains: List[str] = field(default_factory=list)

    def url_for(self, component: NameOrEnum) -> Optional[str]:
        """Public URL of a hosted component in this environment."""
        return {
            "desktop": self.desktop_url,
            "mobile": self.mobile_url,
            "backend": self.backend_url,
        }.get(_key(component))


@dataclass
class DeploymentSettings:
    """Global deployment policy. Timeouts and delays are in seconds."""

    build_timeout: int = DEFAULT_BUILD_TIMEOUT
    deployment_timeout: int = DEFAULT_DEPLOYMENT_TIMEOUT
    verification_timeout: int = DEFAULT_VERIFICATION_TIMEOUT
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    retry_backoff: float = 1.0
    auto_rollback: bool = False
    notification_webhook: Optional[str] = None
    monitor_interval: int = DEFAULT_MONITOR_INTERVAL
    monitor_duration: int = DEFAULT_MONITOR_DURATION
    history_file: Optional[str] = None
    max_history_size: int = DEFAULT_MAX_HISTORY_SIZE
    retention_days: int = DEFAULT_RETENTION_DAYS
    version_file: str = DEFAULT_VERSION_FILE


@dataclass
class HealthCheckConfig:
    """HTTP health check definition for one component"""

    endpoint: str = "/"
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    expected_status: int = 200
    timeout: int = DEFAULT_HEALTH_TIMEOUT
    check_content: Optional[str] = None
    check_pattern: Optional[str] = None


@dataclass
class UICheckConfig:
    path: str = "/"
    selector: Optional[str] = None
    text: Optional[str] = None
    check_console_errors: bool = True
    screenshot: Optional[str] = None
    timeout: int = 30


@dataclass
class PerformanceCheckConfig:
    path: str = "/"
    max_load_time_ms: int = DEFAULT_LOAD_TIME_THRESHOLD_MS


@dataclass
class SecurityCheckConfig:
    path: str = "/"
    required_headers: List[str] = field(default_factory=lambda: list(SECURITY_HEADERS))


@dataclass
class CacheCheckConfig:
    path: str = "/"
    header: str = "cache-control"
    expected: str = NO_CACHE_CONTROL
    match: str = "contains"


@dataclass
class VerificationConfig:
    """Optional verification rule sets, keyed by component"""

    ui: Dict[str, UICheckConfig] = field(default_factory=dict)
    performance: Dict[str, PerformanceCheckConfig] = field(default_factory=dict)
    security: Dict[str, SecurityCheckConfig] = field(default_factory=dict)
    cache: Dict[str, CacheCheckConfig] = field(default_factory=dict)


@dataclass
class DeployConfig:
    """Validated deployment configuration. Read-only once loaded."""

    root_dir: Path
    projects: Dict[str, ProjectSettings]
    environments: Dict[str, EnvironmentSettings]
    deployment: DeploymentSettings
    health_checks: Dict[str, HealthCheckConfig]
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    config_path: Optional[Path] = None

    def get_environment_config(self, environment: NameOrEnum) -> EnvironmentSettings:
        """
        Get settings for one environment.

        Raises:
            ConfigInvalid: If the environment is not configured
        """
        name = _key(environment)
        if name not in self.environments:
            raise ConfigInvalid(
                f"Environment '{name}' is not configured",
                context=f"Configured: {', '.join(sorted(self.environments)) or 'none'}",
                details={"environment": name},
            )
        return self.environments[name]

    def get_project_config(self, component: NameOrEnum) -> ProjectSettings:
        """
        Get build settings for one component.

        Raises:
            ConfigInvalid: If the component has no project config
        """
        name = _key(component)
        if name not in self.projects:
            raise ConfigInvalid(
                f"No project configuration for component '{name}'",
                context=f"Configured: {', '.join(sorted(self.projects)) or 'none'}",
                details={"component": name},
            )
        return self.projects[name]

    def get_health_check(self, component: NameOrEnum) -> HealthCheckConfig:
        """
        Get the health check definition for one component.

        Raises:
            ConfigInvalid: If the component has no health check
        """
        name = _key(component)
        if name not in self.health_checks:
            raise ConfigInvalid(
                f"No health check defined for component '{name}'",
                details={"component": name},
            )
        return self.health_checks[name]

    def project_dir(self, component: NameOrEnum) -> Path:
        return (self.root_dir / self.get_project_config(component).path).resolve()

    def require(
        self, environment: NameOrEnum, components: Iterable[NameOrEnum]
    ) -> None:
        """
        Check that a run's targets are fully configured before anything runs.

        Raises:
            ConfigInvalid: On the first missing environment, project or health check
        """
        self.get_environment_config(environment)
        for component in components:
            self.get_project_config(component)
            # Rules deploy has no URL to health check
            if _key(component) != Component.FIREBASE.value:
                self.get_health_check(component)


def validate_environment(name: str) -> Environment:
    """
    Normalize an environment name or alias.

    Raises:
        EnvInvalid: If the name is not a known environment
    """
    normalized = (name or "").strip().lower()
    normalized = ENVIRONMENT_ALIASES.get(normalized, normalized)
    try:
        return Environment(normalized)
    except ValueError:
        valid = [env.value for env in Environment] + sorted(ENVIRONMENT_ALIASES)
        raise EnvInvalid(name, valid) from None


def validate_component(name: str) -> Component:
    """
    Normalize a component name or alias.

    Raises:
        ComponentInvalid: If the name is not a known component
    """
    normalized = (name or "").strip().lower()
    normalized = COMPONENT_ALIASES.get(normalized, normalized)
    try:
        return Component(normalized)
    except ValueError:
        valid = list(COMPONENT_ORDER) + [ALL_COMPONENTS]
        raise ComponentInvalid(name, valid) from None


def resolve_components(name: str) -> Tuple[Component, ...]:
    """Expand "all" to the full ordered component set."""
    if (name or "").strip().lower() == ALL_COMPONENTS:
        return tuple(Component(value) for value in COMPONENT_ORDER)
    return (validate_component(name),)


class ConfigLoader:
    """
    Locates, parses and validates the deployment configuration.

    The parsed DeployConfig is cached on the loader instance, so one loader
    per run gives "load once" semantics without process-wide state.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        search_paths: Optional[Sequence[str]] = None,
        cwd: Optional[Path] = None,
    ):
        """
        Initialize loader

        Args:
            config_path: Explicit config file (skips discovery)
            search_paths: Candidate paths, relative to cwd unless absolute or ~
            cwd: Directory to search from (defaults to the process cwd)
        """
        self.config_path = Path(config_path) if config_path else None
        self.search_paths = list(search_paths or CONFIG_SEARCH_PATHS)
        self.cwd = Path(cwd) if cwd else Path.cwd()
        self._config: Optional[DeployConfig] = None

    def candidate_paths(self) -> List[Path]:
        candidates = []
        if os.environ.get(CONFIG_ENV_VAR):
            candidates.append(Path(os.environ[CONFIG_ENV_VAR]).expanduser())
        for raw in self.search_paths:
            path = Path(raw).expanduser()
            candidates.append(path if path.is_absolute() else self.cwd / path)
        return candidates

    def find_config(self) -> Path:
        """
        Find the first existing config file.

        Raises:
            ConfigNotFound: If no candidate exists
        """
        if self.config_path:
            if self.config_path.is_file():
                return self.config_path
            raise ConfigNotFound([str(self.config_path)])

        candidates = self.candidate_paths()
        for path in candidates:
            if path.is_file():
                return path
        raise ConfigNotFound([str(path) for path in candidates])

    def load(self, force_reload: bool = False) -> DeployConfig:
        """
        Load and validate configuration with caching.

        Args:
            force_reload: Ignore the cached config

        Returns:
            DeployConfig

        Raises:
            ConfigNotFound: If no config file exists
            ConfigInvalid: If parsing or validation fails
        """
        if self._config is None or force_reload:
            path = self.find_config()
            raw = self._read(path)
            self._config = parse_config(raw, config_path=path, default_root=self.cwd)
        return self._config

    def _read(self, path: Path) -> Dict[str, Any]:
        try:
            text = path.read_text()
        except OSError as e:
            raise ConfigInvalid(f"Cannot read config file {path}: {e}") from e

        try:
            if path.suffix in (".yml", ".yaml"):
                data = yaml.safe_load(text)
            else:
                data = json.loads(text)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigInvalid(
                f"Config file {path} is not valid {path.suffix.lstrip('.').upper() or 'JSON'}",
                context=str(e),
                details={"path": str(path)},
            ) from e

        if not isinstance(data, dict):
            raise ConfigInvalid(
                f"Config file {path} must contain an object at the top level"
            )
        return data


# Parsing / schema validation


def parse_config(
    raw: Dict[str, Any],
    config_path: Optional[Path] = None,
    default_root: Optional[Path] = None,
) -> DeployConfig:
    """
    Build a DeployConfig from a raw document.

    Raises:
        ConfigInvalid: On missing sections, wrong types or malformed values
    """
    for section in ("projects", "environments"):
        if section not in raw:
            raise ConfigInvalid(f"Missing required field: '{section}'")
        _expect(raw[section], dict, section)

    base_dir = config_path.parent if config_path else (default_root or Path.cwd())
    root_dir = Path(raw["rootDir"]).expanduser() if raw.get("rootDir") else None
    if root_dir is None:
        # Relative paths resolve against the config file's directory
        root_dir = base_dir
    elif not root_dir.is_absolute():
        root_dir = base_dir / root_dir

    projects = {
        _component_key(name, "projects"): _parse_project(name, data)
        for name, data in raw["projects"].items()
    }
    environments = {
        _environment_key(name): _parse_environment(name, data)
        for name, data in raw["environments"].items()
    }
    health_checks = {
        _component_key(name, "healthChecks"): _parse_health_check(name, data)
        for name, data in _expect(raw.get("healthChecks", {}), dict, "healthChecks").items()
    }

    return DeployConfig(
        root_dir=root_dir.resolve(),
        projects=projects,
        environments=environments,
        deployment=_parse_deployment(raw.get("deploymentSettings", {})),
        health_checks=health_checks,
        verification=_parse_verification(raw.get("verification", {})),
        config_path=config_path,
    )


def _expect(value: Any, kind, where: str):
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        expected = kind.__name__ if isinstance(kind, type) else "/".join(k.__name__ for k in kind)
        raise ConfigInvalid(
            f"Invalid type for '{where}': expected {expected}, got {type(value).__name__}"
        )
    return value


def _optional(data: Dict[str, Any], key: str, kind, where: str, default=None):
    value = data.get(key, default)
    if value is None:
        return default
    return _expect(value, kind, f"{where}.{key}")


def _positive(data: Dict[str, Any], key: str, where: str, default):
    value = _optional(data, key, (int, float), where, default)
    if isinstance(value, bool) or value <= 0:
        raise ConfigInvalid(f"Invalid '{where}.{key}': {value} (must be > 0)")
    return value


def _url(value: Optional[str], where: str) -> Optional[str]:
    if value is None:
        return None
    _expect(value, str, where)
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigInvalid(
            f"Malformed URL for '{where}': {value!r}",
            context="Expected http(s)://host[/path]",
        )
    return value.rstrip("/")


def _component_key(name: str, where: str) -> str:
    try:
        return validate_component(name).value
    except ComponentInvalid as e:
        raise ConfigInvalid(f"Unknown component '{name}' in '{where}'", context=e.context) from None


def _environment_key(name: str) -> str:
    try:
        return validate_environment(name).value
    except EnvInvalid as e:
        raise ConfigInvalid(f"Unknown environment '{name}' in 'environments'", context=e.context) from None


def _str_list(data: Dict[str, Any], key: str, where: str) -> List[str]:
    values = _optional(data, key, list, where, [])
    for item in values:
        _expect(item, str, f"{where}.{key}[]")
    return list(values)


def _parse_project(name: str, data: Any) -> ProjectSettings:
    where = f"projects.{name}"
    _expect(data, dict, where)
    component = _component_key(name, "projects")
    return ProjectSettings(
        component=component,
        path=_optional(data, "path", str, where, DEFAULT_PROJECT_PATHS[component]),
        project_id=_optional(data, "projectId", str, where),
        team_id=_optional(data, "teamId", str, where),
        install_command=_optional(data, "installCommand", str, where, "npm install"),
        build_command=_optional(data, "buildCommand", str, where, "npm run build"),
        output_directory=_optional(data, "outputDirectory", str, where, "dist"),
        domain=_optional(data, "domain", str, where),
        entry_file=_optional(data, "entryFile", str, where),
        required_scripts=_str_list(data, "requiredScripts", where),
        required_files=_str_list(data, "requiredFiles", where),
        required_env_files=_str_list(data, "requiredEnvFiles", where),
    )


def _parse_environment(name: str, data: Any) -> EnvironmentSettings:
    where = f"environments.{name}"
    _expect(data, dict, where)
    return EnvironmentSettings(
        name=_environment_key(name),
        desktop_url=_url(data.get("desktopUrl"), f"{where}.desktopUrl"),
        mobile_url=_url(data.get("mobileUrl"), f"{where}.mobileUrl"),
        backend_url=_url(data.get("backendUrl"), f"{where}.backendUrl"),
        firebase_project=_optional(data, "firebaseProject", str, where),
        cdn_domains=_str_list(data, "cdnDomains", where),
    )


def _parse_deployment(data: Any) -> DeploymentSettings:
    where = "deploymentSettings"
    _expect(data, dict, where)
    retry_attempts = _optional(data, "retryAttempts", int, where, DEFAULT_RETRY_ATTEMPTS)
    if retry_attempts < 0:
        raise ConfigInvalid(f"Invalid '{where}.retryAttempts': {retry_attempts} (must be >= 0)")
    retry_delay = _optional(data, "retryDelay", (int, float), where, DEFAULT_RETRY_DELAY)
    if retry_delay < 0:
        raise ConfigInvalid(f"Invalid '{where}.retryDelay': {retry_delay} (must be >= 0)")

    return DeploymentSettings(
        build_timeout=_positive(data, "buildTimeout", where, DEFAULT_BUILD_TIMEOUT),
        deployment_timeout=_positive(data, "deploymentTimeout", where, DEFAULT_DEPLOYMENT_TIMEOUT),
        verification_timeout=_positive(
            data, "verificationTimeout", where, DEFAULT_VERIFICATION_TIMEOUT
        ),
        # 0 configured attempts still means one try
        retry_attempts=max(retry_attempts, 1),
        retry_delay=retry_delay,
        retry_backoff=_positive(data, "retryBackoff", where, 1.0),
        auto_rollback=_optional(data, "autoRollback", bool, where, False),
        notification_webhook=_url(data.get("notificationWebhook"), f"{where}.notificationWebhook"),
        monitor_interval=_positive(data, "monitorInterval", where, DEFAULT_MONITOR_INTERVAL),
        monitor_duration=_positive(data, "monitorDuration", where, DEFAULT_MONITOR_DURATION),
        history_file=_optional(data, "historyFile", str, where),
        max_history_size=_positive(data, "maxHistorySize", where, DEFAULT_MAX_HISTORY_SIZE),
        retention_days=_positive(data, "retentionDays", where, DEFAULT_RETENTION_DAYS),
        version_file=_optional(data, "versionFile", str, where, DEFAULT_VERSION_FILE),
    )


def _parse_health_check(name: str, data: Any) -> HealthCheckConfig:
    where = f"healthChecks.{name}"
    _expect(data, dict, where)
    headers = _optional(data, "headers", dict, where, {})
    return HealthCheckConfig(
        endpoint=_optional(data, "endpoint", str, where, "/"),
        method=_optional(data, "method", str, where, "GET").upper(),
        headers={str(k): str(v) for k, v in headers.items()},
        body=_optional(data, "body", str, where),
        expected_status=_optional(data, "expectedStatus", int, where, 200),
        timeout=_positive(data, "timeout", where, DEFAULT_HEALTH_TIMEOUT),
        check_content=_optional(data, "checkContent", str, where),
        check_pattern=_optional(data, "checkPattern", str, where),
    )


def _parse_rule_set(data: Any, section: str, parse_one) -> Dict[str, Any]:
    _expect(data, dict, f"verification.{section}")
    return {
        _component_key(name, f"verification.{section}"): parse_one(
            _expect(item, dict, f"verification.{section}.{name}"),
            f"verification.{section}.{name}",
        )
        for name, item in data.items()
    }


def _parse_verification(data: Any) -> VerificationConfig:
    _expect(data, dict, "verification")

    def ui(item, where):
        return UICheckConfig(
            path=_optional(item, "path", str, where, "/"),
            selector=_optional(item, "selector", str, where),
            text=_optional(item, "text", str, where),
            check_console_errors=_optional(item, "checkConsoleErrors", bool, where, True),
            screenshot=_optional(item, "screenshot", str, where),
            timeout=_positive(item, "timeout", where, 30),
        )

    def performance(item, where):
        return PerformanceCheckConfig(
            path=_optional(item, "path", str, where, "/"),
            max_load_time_ms=_positive(
                item, "maxLoadTime", where, DEFAULT_LOAD_TIME_THRESHOLD_MS
            ),
        )

    def security(item, where):
        headers = _str_list(item, "requiredHeaders", where) or list(SECURITY_HEADERS)
        return SecurityCheckConfig(
            path=_optional(item, "path", str, where, "/"),
            required_headers=[header.lower() for header in headers],
        )

    def cache(item, where):
        match = _optional(item, "match", str, where, "contains")
        if match not in ("contains", "equals"):
            raise ConfigInvalid(f"Invalid '{where}.match': {match} (contains|equals)")
        return CacheCheckConfig(
            path=_optional(item, "path", str, where, "/"),
            header=_optional(item, "header", str, where, "cache-control").lower(),
            expected=_optional(item, "expected", str, where, NO_CACHE_CONTROL),
            match=match,
        )

    return VerificationConfig(
        ui=_parse_rule_set(data.get("ui", {}), "ui", ui),
        performance=_parse_rule_set(data.get("performance", {}), "performance", performance),
        security=_parse_rule_set(data.get("security", {}), "security", security),
        cache=_parse_rule_set(data.get("cache", {}), "cache", cache),
    )
