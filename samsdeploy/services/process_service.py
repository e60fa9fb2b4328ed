"""Process execution service for build and platform CLIs."""

import os
import shlex
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, Dict, IO, List, Optional, Sequence, Tuple, Type

from samsdeploy.constants import PROCESS_KILL_GRACE_PERIOD
from samsdeploy.exceptions import CommandFailed, CommandTimeout, ProcessError
from samsdeploy.logger import DeployLogger
from samsdeploy.models.results import ExecutionResult


class ProcessExecutor:
    """
    Runs external commands with timeouts, retries and streamed output.

    Responsibilities:
    - Stream stdout/stderr into the run log line by line while capturing it
    - Enforce timeouts (terminate, then kill after a grace period)
    - Surface non-zero exits as CommandFailed with captured output
    - Retry a command a fixed number of times

    Calls block; callers that want concurrency issue calls from threads.
    """

    def __init__(
        self,
        logger: Optional[DeployLogger] = None,
        kill_grace_period: float = PROCESS_KILL_GRACE_PERIOD,
    ):
        self.logger = logger
        self.kill_grace_period = kill_grace_period

    @staticmethod
    def command_exists(name: str) -> bool:
        """Check if an executable is on PATH."""
        return shutil.which(name) is not None

    @staticmethod
    def format_command(command: str, args: Sequence[str] = ()) -> str:
        return " ".join([command] + [shlex.quote(str(arg)) for arg in args])

    def execute(
        self,
        command: str,
        args: Sequence[str] = (),
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        input_text: Optional[str] = None,
        check: bool = True,
        redact: Sequence[str] = (),
    ) -> ExecutionResult:
        """
        Execute a command and wait for it.

        Args:
            command: Executable name or path
            args: Arguments (never passed through a shell)
            cwd: Working directory
            env: Extra environment variables merged over os.environ
            timeout: Seconds before the process is killed
            input_text: Text written to stdin
            check: Raise CommandFailed on non-zero exit
            redact: Secret values masked in logs and error messages

        Returns:
            ExecutionResult with exit code, output and duration

        Raises:
            CommandFailed: Non-zero exit (when check) or missing executable
            CommandTimeout: Timeout expired; the process was killed
        """
        display = self._redact(self.format_command(command, args), redact)
        if self.logger:
            self.logger.log_command(display + (f"  (cwd: {cwd})" if cwd else ""))

        start_time = time.time()
        try:
            process = subprocess.Popen(
                [command, *[str(arg) for arg in args]],
                cwd=str(cwd) if cwd else None,
                env={**os.environ, **(env or {})},
                stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except FileNotFoundError:
            raise CommandFailed(
                display, 127, stderr=f"{command}: command not found", cwd=str(cwd)
            ) from None

        stdout_lines: List[str] = []
        stderr_lines: List[str] = []
        readers = [
            self._start_reader(process.stdout, stdout_lines, "stdout"),
            self._start_reader(process.stderr, stderr_lines, "stderr"),
        ]

        if input_text is not None:
            try:
                process.stdin.write(input_text)
                process.stdin.close()
            except BrokenPipeError:
                pass

        try:
            returncode = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._stop(process)
            self._join(readers)
            stdout, stderr = self._collect(stdout_lines, stderr_lines, redact)
            if self.logger:
                self.logger.log(f"Timed out after {timeout}s: {display}", "ERROR")
            raise CommandTimeout(display, timeout, stdout=stdout, stderr=stderr)

        self._join(readers)
        stdout, stderr = self._collect(stdout_lines, stderr_lines, redact)
        duration = time.time() - start_time

        result = ExecutionResult(
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            command=display,
            duration=duration,
        )

        if check and result.is_failure:
            raise CommandFailed(
                display, returncode, stdout=stdout, stderr=stderr, cwd=str(cwd)
            )
        return result

    def execute_with_retry(
        self,
        command: str,
        args: Sequence[str] = (),
        attempts: int = 3,
        delay: float = 5,
        backoff: float = 1.0,
        retry_on: Tuple[Type[Exception], ...] = (ProcessError,),
        on_retry: Optional[Callable[[int, Exception], None]] = None,
        **kwargs,
    ) -> ExecutionResult:
        """
        Execute a command, retrying on failure.

        Args:
            attempts: Total tries (at least one)
            delay: Seconds to wait between tries
            backoff: Multiplier applied to the delay after each failure
            retry_on: Exception types that trigger a retry
            on_retry: Called with (attempt, error) before each wait

        Returns:
            ExecutionResult of the first successful try

        Raises:
            The last error once every attempt has failed
        """
        attempts = max(1, attempts)
        wait = delay
        for attempt in range(1, attempts + 1):
            try:
                return self.execute(command, args, **kwargs)
            except retry_on as e:
                if attempt == attempts:
                    raise
                if self.logger:
                    self.logger.warning(
                        f"Attempt {attempt}/{attempts} failed, retrying in {wait:g}s: "
                        f"{getattr(e, 'message', e)}"
                    )
                if on_retry:
                    on_retry(attempt, e)
                time.sleep(wait)
                wait *= backoff

        # Unreachable: the loop either returns or raises
        raise AssertionError("retry loop exited without result")

    def _start_reader(self, stream: IO[str], sink: List[str], name: str) -> threading.Thread:
        def pump():
            for line in iter(stream.readline, ""):
                line = line.rstrip("\n")
                sink.append(line)
                if self.logger:
                    self.logger.log_output(line, name)
            stream.close()

        thread = threading.Thread(target=pump, daemon=True)
        thread.start()
        return thread

    def _stop(self, process: subprocess.Popen) -> None:
        process.terminate()
        try:
            process.wait(timeout=self.kill_grace_period)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    @staticmethod
    def _join(readers: List[threading.Thread]) -> None:
        for reader in readers:
            reader.join(timeout=5)

    def _collect(
        self, stdout_lines: List[str], stderr_lines: List[str], redact: Sequence[str]
    ) -> Tuple[str, str]:
        return (
            self._redact("\n".join(stdout_lines), redact),
            self._redact("\n".join(stderr_lines), redact),
        )

    @staticmethod
    def _redact(text: str, secrets: Sequence[str]) -> str:
        for secret in secrets:
            if secret:
                text = text.replace(secret, "***")
        return text
