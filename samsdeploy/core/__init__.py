"""Core configuration components"""

from .config_loader import (
    CacheCheckConfig,
    ConfigLoader,
    DeployConfig,
    DeploymentSettings,
    EnvironmentSettings,
    HealthCheckConfig,
    PerformanceCheckConfig,
    ProjectSettings,
    SecurityCheckConfig,
    UICheckConfig,
    VerificationConfig,
    parse_config,
    resolve_components,
    validate_component,
    validate_environment,
)

__all__ = [
    "CacheCheckConfig",
    "ConfigLoader",
    "DeployConfig",
    "DeploymentSettings",
    "EnvironmentSettings",
    "HealthCheckConfig",
    "PerformanceCheckConfig",
    "ProjectSettings",
    "SecurityCheckConfig",
    "UICheckConfig",
    "VerificationConfig",
    "parse_config",
    "resolve_components",
    "validate_component",
    "validate_environment",
]
