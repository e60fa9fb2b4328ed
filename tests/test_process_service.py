"""Tests for ProcessExecutor."""

import sys
from unittest.mock import MagicMock, patch

import pytest

from samsdeploy.exceptions import CommandFailed, CommandTimeout
from samsdeploy.services.process_service import ProcessExecutor


class TestExecute:
    """Test single command execution."""

    def test_captures_output(self):
        executor = ProcessExecutor()
        result = executor.execute(sys.executable, ["-c", "print('built')"])

        assert result.is_success
        assert result.stdout == "built"
        assert result.duration >= 0

    def test_non_zero_exit(self):
        """Test a failing command keeps its output on the error."""
        executor = ProcessExecutor()
        script = "import sys; print('partial'); sys.stderr.write('boom\\n'); sys.exit(3)"

        with pytest.raises(CommandFailed) as exc_info:
            executor.execute(sys.executable, ["-c", script])

        error = exc_info.value
        assert error.exit_code == 3
        assert error.stdout == "partial"
        assert "boom" in error.stderr
        assert error.context == "boom"

    def test_no_check(self):
        executor = ProcessExecutor()
        result = executor.execute(sys.executable, ["-c", "import sys; sys.exit(2)"], check=False)

        assert result.returncode == 2
        assert result.is_failure

    def test_missing_executable(self):
        """Test an unknown command maps to exit code 127."""
        with pytest.raises(CommandFailed) as exc_info:
            ProcessExecutor().execute("definitely-not-a-real-command-xyz")
        assert exc_info.value.exit_code == 127

    def test_timeout_kills_process(self):
        executor = ProcessExecutor(kill_grace_period=1)

        with pytest.raises(CommandTimeout) as exc_info:
            executor.execute(sys.executable, ["-c", "import time; time.sleep(30)"], timeout=0.5)
        assert exc_info.value.timeout == 0.5

    def test_env_and_input(self):
        executor = ProcessExecutor()
        script = "import os, sys; print(os.environ['SAMS_TEST'] + sys.stdin.read())"

        result = executor.execute(
            sys.executable, ["-c", script], env={"SAMS_TEST": "env-"}, input_text="stdin"
        )

        assert result.stdout == "env-stdin"

    def test_redacts_secrets(self):
        """Test secrets are masked in captured output and the logged command."""
        logger = MagicMock()
        executor = ProcessExecutor(logger=logger)

        result = executor.execute(
            sys.executable, ["-c", "print('tok_secret')", "tok_secret"], redact=["tok_secret"]
        )

        assert result.stdout == "***"
        assert "tok_secret" not in result.command
        logged = logger.log_command.call_args[0][0]
        assert "tok_secret" not in logged


class TestExecuteWithRetry:
    """Test retry behaviour."""

    def test_exhausts_attempts(self):
        """Test a persistently failing command is tried exactly N times."""
        executor = ProcessExecutor()
        failure = CommandFailed("vercel deploy", 1)

        with patch.object(executor, "execute", side_effect=failure) as mock_execute, patch(
            "samsdeploy.services.process_service.time.sleep"
        ) as mock_sleep:
            with pytest.raises(CommandFailed):
                executor.execute_with_retry("vercel", ["deploy"], attempts=3, delay=2, backoff=2)

        assert mock_execute.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [2, 4]

    def test_succeeds_after_failure(self):
        executor = ProcessExecutor()
        ok = MagicMock()
        on_retry = MagicMock()

        with patch.object(
            executor, "execute", side_effect=[CommandFailed("npm ci", 1), ok]
        ), patch("samsdeploy.services.process_service.time.sleep"):
            result = executor.execute_with_retry("npm", ["ci"], attempts=3, on_retry=on_retry)

        assert result is ok
        assert on_retry.call_count == 1

    def test_non_retryable_error(self):
        """Test errors outside retry_on propagate immediately."""
        executor = ProcessExecutor()

        with patch.object(executor, "execute", side_effect=ValueError("bad")) as mock_execute:
            with pytest.raises(ValueError):
                executor.execute_with_retry("npm", attempts=5)
        assert mock_execute.call_count == 1
