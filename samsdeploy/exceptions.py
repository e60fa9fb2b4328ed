"""
SAMS Deploy Exception Hierarchy

Clean exception hierarchy for consistent error handling across the engine.
Every error carries a machine-readable code and a structured details payload
so failures can be reported and persisted without parsing messages.
"""

from typing import Any, Dict, List, Optional


class SamsDeployError(Exception):
    """Base exception for all SAMS Deploy errors."""

    code = "SAMS_DEPLOY_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message}\nContext: {self.context}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "details": self.details,
        }


class UnexpectedError(SamsDeployError):
    """Wraps an untyped exception raised inside one component's pipeline."""

    code = "UNEXPECTED_ERROR"

    def __init__(self, error: Exception, component: str):
        self.original = error
        super().__init__(
            f"Unexpected {type(error).__name__} while deploying {component}: {error}",
            context="See the run log for details",
            details={"component": component, "exceptionType": type(error).__name__},
        )


# Configuration errors: fatal, abort before any build


class ConfigurationError(SamsDeployError):
    """Raised when configuration is invalid or missing."""

    code = "CONFIG_ERROR"


class ConfigNotFound(ConfigurationError):
    """Raised when no config file exists at any candidate path."""

    code = "CONFIG_NOT_FOUND"

    def __init__(self, searched_paths: List[str]):
        self.searched_paths = searched_paths
        super().__init__(
            "Deployment configuration file not found",
            context="Searched: " + ", ".join(searched_paths),
            details={"searched_paths": searched_paths},
        )


class ConfigInvalid(ConfigurationError):
    """Raised when the config document cannot be parsed or fails validation."""

    code = "CONFIG_INVALID"


class EnvInvalid(ConfigurationError):
    """Raised when an environment name is not recognized."""

    code = "ENV_INVALID"

    def __init__(self, name: str, valid: List[str]):
        self.name = name
        super().__init__(
            f"Invalid environment '{name}'",
            context=f"Valid environments: {', '.join(valid)}",
            details={"environment": name, "valid": valid},
        )


class ComponentInvalid(ConfigurationError):
    """Raised when a component name is not recognized."""

    code = "COMPONENT_INVALID"

    def __init__(self, name: str, valid: List[str]):
        self.name = name
        super().__init__(
            f"Invalid component '{name}'",
            context=f"Valid components: {', '.join(valid)}",
            details={"component": name, "valid": valid},
        )


class MissingEnvVars(ConfigurationError):
    """Raised when required environment variables are not set."""

    code = "MISSING_ENV_VARS"

    def __init__(self, names: List[str]):
        self.names = names
        super().__init__(
            f"Missing required environment variables: {', '.join(names)}",
            details={"variables": names},
        )


# Prerequisite errors: fatal to one component


class PrerequisiteError(SamsDeployError):
    """Raised when a component cannot be built on this machine."""

    code = "PREREQUISITE_ERROR"


class ScriptMissing(PrerequisiteError):
    """Raised when package.json lacks a required script."""

    code = "SCRIPT_MISSING"

    def __init__(self, script: str, manifest: str):
        self.script = script
        super().__init__(
            f"Required script '{script}' not found in {manifest}",
            details={"script": script, "manifest": manifest},
        )


class FileMissing(PrerequisiteError):
    """Raised when a required source or environment file is absent."""

    code = "FILE_MISSING"

    def __init__(self, path: str, context: Optional[str] = None):
        self.path = path
        super().__init__(
            f"Required file not found: {path}",
            context=context,
            details={"path": path},
        )


class CommandMissing(PrerequisiteError):
    """Raised when a required command is not on PATH."""

    code = "COMMAND_MISSING"

    def __init__(self, command: str, hint: Optional[str] = None):
        self.command = command
        super().__init__(
            f"Required command '{command}' not found on PATH",
            context=hint,
            details={"command": command},
        )


class ProjectDirMissing(PrerequisiteError):
    """Raised when a component's project directory does not exist."""

    code = "PROJECT_DIR_MISSING"

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Project directory not found: {path}", details={"path": path}
        )


# Process errors


class ProcessError(SamsDeployError):
    """Raised when an external process cannot complete."""

    code = "PROCESS_ERROR"


class CommandFailed(ProcessError):
    """Raised when a child process exits non-zero."""

    code = "COMMAND_FAILED"

    def __init__(
        self,
        command: str,
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
        cwd: Optional[str] = None,
    ):
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        tail = stderr.strip().splitlines()[-5:] if stderr else []
        super().__init__(
            f"Command failed with exit code {exit_code}: {command}",
            context="\n".join(tail) if tail else None,
            details={
                "command": command,
                "exit_code": exit_code,
                "stdout": stdout,
                "stderr": stderr,
                "cwd": cwd,
            },
        )


class CommandTimeout(ProcessError):
    """Raised when a child process exceeds its timeout and is killed."""

    code = "COMMAND_TIMEOUT"

    def __init__(
        self, command: str, timeout: float, stdout: str = "", stderr: str = ""
    ):
        self.command = command
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"Command timed out after {timeout}s: {command}",
            details={
                "command": command,
                "timeout": timeout,
                "stdout": stdout,
                "stderr": stderr,
            },
        )


# Build errors


class BuildError(SamsDeployError):
    """Raised when a component build does not produce usable output."""

    code = "BUILD_ERROR"


class PWAFileMissing(BuildError):
    """Raised when an essential PWA file is absent from the build output."""

    code = "PWA_FILE_MISSING"

    def __init__(self, file_name: str, output_dir: str):
        self.file_name = file_name
        super().__init__(
            f"Essential PWA file missing from build output: {file_name}",
            context=f"Output directory: {output_dir}",
            details={"file": file_name, "output_dir": output_dir},
        )


class BuildOutputMissing(BuildError):
    """Raised when an expected build artifact is absent."""

    code = "BUILD_OUTPUT_MISSING"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Build output not found: {path}", details={"path": path})


# Deployment errors


class DeploymentError(SamsDeployError):
    """Raised when deployment operations fail."""

    code = "DEPLOYMENT_ERROR"


class DeployFailed(DeploymentError):
    """Raised when the hosting platform rejects or fails a deploy."""

    code = "DEPLOY_FAILED"


class DeploymentVerificationFailed(DeploymentError):
    """Raised when a freshly deployed URL fails its lightweight checks."""

    code = "DEPLOYMENT_VERIFICATION_FAILED"

    def __init__(self, url: str, failures: List[str]):
        self.url = url
        self.failures = failures
        super().__init__(
            f"Deployment verification failed for {url}",
            context="; ".join(failures),
            details={"url": url, "failures": failures},
        )


class VerificationError(SamsDeployError):
    """Raised when the verification battery cannot be run at all."""

    code = "VERIFICATION_ERROR"


# Rollback errors: reported apart from forward-deploy errors


class RollbackError(SamsDeployError):
    """Raised when a rollback cannot be performed."""

    code = "ROLLBACK_ERROR"


class NoRollbackCandidate(RollbackError):
    """Raised when no earlier successful deployment exists."""

    code = "NO_ROLLBACK_CANDIDATE"


class RollbackTargetInvalid(RollbackError):
    """Raised when an explicit rollback target is unusable."""

    code = "ROLLBACK_TARGET_INVALID"


class HistoryError(SamsDeployError):
    """Raised when the deployment history store cannot be read or written."""

    code = "HISTORY_ERROR"
