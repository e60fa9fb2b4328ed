"""
Utilities

Small helpers shared across SAMS Deploy: timestamps, ids, git/operator
provenance and .env loading.
"""

import getpass
import json
import os
import secrets
import subprocess
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import dotenv_values


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision and Z suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    return to_iso(utc_now())


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp written by this tool (or by hand).

    Naive timestamps are treated as UTC.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def epoch_ms() -> int:
    return int(time.time() * 1000)


def generate_record_id() -> str:
    """Generate a deployment record id: dep_<epoch-ms>_<random>."""
    return f"dep_{epoch_ms()}_{secrets.token_hex(5)[:9]}"


def get_git_info(cwd: Optional[Path] = None) -> Dict[str, Optional[str]]:
    """
    Read the current commit and branch.

    Returns None values when git is unavailable or cwd is not a repository.
    """
    info: Dict[str, Optional[str]] = {"commit": None, "branch": None}
    commands = {
        "commit": ["git", "rev-parse", "HEAD"],
        "branch": ["git", "rev-parse", "--abbrev-ref", "HEAD"],
    }
    for key, command in commands.items():
        try:
            result = subprocess.run(
                command, cwd=cwd, capture_output=True, text=True, timeout=5
            )
        except (OSError, subprocess.TimeoutExpired):
            continue
        if result.returncode == 0:
            info[key] = result.stdout.strip() or None
    return info


def get_operator() -> str:
    """Identity of whoever triggered the run."""
    for var in ("SAMS_DEPLOYED_BY", "GIT_AUTHOR_NAME", "USER", "USERNAME"):
        if os.environ.get(var):
            return os.environ[var]
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def get_package_version(project_dir: Path) -> Optional[str]:
    """Read "version" from a project's package.json, if any."""
    package_json = project_dir / "package.json"
    if not package_json.exists():
        return None
    try:
        return json.loads(package_json.read_text()).get("version")
    except (OSError, ValueError):
        return None


def find_env_files(project_dir: Path, environment: str) -> List[Path]:
    """Candidate .env files for a project, lowest precedence first."""
    candidates = [
        project_dir / ".env",
        project_dir / f".env.{environment}",
        project_dir / f".env.{environment}.local",
    ]
    return [path for path in candidates if path.exists()]


def load_build_env(project_dir: Path, environment: str) -> Dict[str, str]:
    """
    Merge .env files for a build step.

    Values are returned for the child process environment, never written
    into os.environ.
    """
    merged: Dict[str, str] = {}
    for env_file in find_env_files(project_dir, environment):
        for key, value in dotenv_values(env_file).items():
            if value is not None:
                merged[key] = value
    return merged
