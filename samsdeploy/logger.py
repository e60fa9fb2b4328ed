"""
Logging system for SAMS Deploy
Provides real-time logging to files with clean console output
"""

import os
import re
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

from rich.console import Console
from rich.live import Live
from rich.padding import Padding
from rich.spinner import Spinner
from rich.text import Text

from samsdeploy.constants import (
    DEFAULT_LOG_DIR,
    LOG_DATE_FORMAT,
    LOG_DIR_ENV_VAR,
    LOG_TIME_FORMAT,
)

console = Console()

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def get_log_root() -> Path:
    """Resolve the log root directory ($SAMS_LOG_DIR or ~/.sams/logs)."""
    return Path(os.environ.get(LOG_DIR_ENV_VAR, DEFAULT_LOG_DIR)).expanduser()


class DeployLogger:
    """
    Manages logging for deployment operations
    - Writes all output to log files in real-time
    - Shows clean progress UI in console (unless verbose or quiet)
    - Captures errors with context
    """

    def __init__(
        self,
        operation: str,
        verbose: bool = False,
        quiet: bool = False,
        log_dir: Optional[Path] = None,
    ):
        """
        Initialize logger

        Args:
            operation: Operation name (e.g., 'deploy-production', 'rollback')
            verbose: If True, show all output in console
            quiet: If True, only errors reach the console
            log_dir: Override for the log root directory
        """
        self.operation = operation
        self.verbose = verbose
        self.quiet = quiet and not verbose
        self.log_file: Optional[TextIO] = None
        self.log_path: Optional[Path] = None
        self.current_step = ""
        self.has_errors = False
        # Only one rich Live display may be active, so parallel runs turn this off
        self.show_spinners = True
        self._lock = threading.Lock()

        # Structure: {log_root}/{date}/{time}_{operation}.log
        now = datetime.now()
        logs_dir = (log_dir or get_log_root()) / now.strftime(LOG_DATE_FORMAT)
        logs_dir.mkdir(parents=True, exist_ok=True)

        self.log_path = logs_dir / f"{now.strftime(LOG_TIME_FORMAT)}_{operation}.log"

        # Line buffered for real-time tailing
        self.log_file = open(self.log_path, "w", buffering=1)

        self._write_log_header()

    def _write_log_header(self):
        """Write log file header"""
        header = f"""
{"=" * 80}
SAMS Deployment Log
{"=" * 80}
Operation: {self.operation}
Started: {datetime.now().isoformat()}
{"=" * 80}

"""
        self._write(header)

    def _write(self, text: str):
        with self._lock:
            if self.log_file:
                self.log_file.write(text)
                self.log_file.flush()

    def log(self, message: str, level: str = "INFO"):
        """
        Log a message to file and optionally console

        Args:
            message: Message to log
            level: Log level (INFO, WARNING, ERROR, DEBUG)
        """
        timestamp = datetime.now().strftime("%H:%M:%S")
        self._write(f"[{timestamp}] [{level}] {message}\n")

        if self.verbose:
            if level == "ERROR":
                console.print(f"[red]{message}[/red]")
            elif level == "WARNING":
                console.print(f"[yellow]{message}[/yellow]")
            elif level == "DEBUG":
                console.print(f"[dim]{message}[/dim]")
            else:
                console.print(message)

    def log_command(self, command: str):
        """Log a command being executed"""
        self.log(f"Executing: {command}", "DEBUG")

    def log_output(self, output: str, stream: str = "stdout"):
        """
        Log command output

        Always written to the log file, shown in console only when verbose.

        Args:
            output: Command output (single line or multiline)
            stream: Stream name (stdout, stderr)
        """
        if not output:
            return

        clean_output = ANSI_ESCAPE.sub("", output)
        lines = "".join(f"  [{stream}] {line}\n" for line in clean_output.splitlines())
        try:
            self._write(lines)
        except OSError:
            # Log file is best effort; console progress must keep going
            pass

        if self.verbose:
            console.print(output, markup=False, highlight=False)

    def log_error(self, error: str, context: Optional[str] = None):
        """
        Log an error with context

        Args:
            error: Error message
            context: Additional context (e.g., command that failed)
        """
        self.has_errors = True

        error_block = f"""
{"!" * 80}
ERROR OCCURRED
{"!" * 80}
{error}
"""
        if context:
            error_block += f"\nContext: {context}\n"
        error_block += f"{'!' * 80}\n\n"
        self._write(error_block)

        # Errors always reach the console, even in quiet mode
        console.print(f"[bold red]✗ {error}[/bold red]")
        if context:
            console.print(f"  [color(208)]{context}[/color(208)]")

    def step(self, step_name: str):
        """
        Start a new step

        Args:
            step_name: Name of the step
        """
        if self.current_step and not self.verbose and not self.quiet:
            console.print()

        self.current_step = step_name
        self.log(f"Step: {step_name}", "INFO")

        if not self.verbose and not self.quiet:
            console.print(f"[color(214)]▶[/color(214)] [white]{step_name}[/white]")

    def success(self, message: str):
        """Log a success message"""
        self.log(message, "INFO")

        if not self.verbose and not self.quiet:
            console.print(f"  [dim]✓ {message}[/dim]")

    def warning(self, message: str):
        """Log a warning message"""
        self.log(message, "WARNING")

        if not self.verbose and not self.quiet:
            console.print(f"  [yellow]⚠[/yellow] [dim]{message}[/dim]")

    @contextmanager
    def progress(self, description: str):
        """
        Show a spinner while a blocking operation runs.

        Verbose mode streams output instead, quiet mode shows nothing.
        """
        if self.verbose or self.quiet or not self.show_spinners:
            yield
            return

        spinner = Spinner("dots", text=f"[cyan]{description}...[/cyan]")
        with Live(
            Padding(spinner, (0, 0, 0, 2)), console=console, refresh_per_second=10
        ) as live:
            try:
                yield
            except BaseException:
                x_mark = Text("  ✗ ", style="red")
                x_mark.append(description, style="dim")
                live.update(x_mark)
                raise
            checkmark = Text("  ✓ ", style="dim")
            checkmark.append(description, style="dim")
            live.update(checkmark)

    def close(self):
        """Close log file"""
        if self.log_file:
            footer = f"""
{"=" * 80}
Completed: {datetime.now().isoformat()}
Status: {"FAILED" if self.has_errors else "SUCCESS"}
{"=" * 80}
"""
            self._write(footer)
            with self._lock:
                self.log_file.close()
                self.log_file = None

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, _exc_tb):
        """Context manager exit"""
        if exc_type is not None and exc_type != SystemExit:
            self.log_error(
                str(exc_val) if exc_val else "Operation failed",
                context=f"{exc_type.__name__}",
            )
        self.close()
        return False
