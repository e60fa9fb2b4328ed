"""
Verification battery

Fans out every configured check for one component against a deployed URL
and waits for all of them. A failing or crashing check never stops the
others from running or being reported.
"""

import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Tuple

from samsdeploy.core.config_loader import DeployConfig
from samsdeploy.logger import DeployLogger
from samsdeploy.models.deployment import Component, Environment
from samsdeploy.models.results import CheckType, VerificationCheck, VerificationResult
from samsdeploy.verifiers.http_checks import HttpVerifier
from samsdeploy.verifiers.ui_checks import BrowserVerifier

CheckTask = Tuple[CheckType, str, Callable[[], List[VerificationCheck]]]


class VerificationBattery:
    """
    Runs health, UI, performance, security and cache checks concurrently.

    Checks are never retried here; individual HTTP calls may still retry
    at the connection level.
    """

    def __init__(
        self,
        config: DeployConfig,
        http: Optional[HttpVerifier] = None,
        browser: Optional[BrowserVerifier] = None,
        logger: Optional[DeployLogger] = None,
        max_workers: int = 8,
    ):
        self.config = config
        self.http = http or HttpVerifier()
        self.browser = browser or BrowserVerifier()
        self.logger = logger
        self.max_workers = max_workers

    def plan(self, component: Component, base_url: str) -> List[CheckTask]:
        """Build the task list for one component from its configured rule sets."""
        name = component.value
        rules = self.config.verification
        tasks: List[CheckTask] = []

        health = self.config.health_checks.get(name)
        if health:
            tasks.append(
                (CheckType.HEALTH, "health", lambda: self.http.health_checks(name, base_url, health))
            )
        if name in rules.ui:
            ui = rules.ui[name]
            tasks.append((CheckType.UI, "ui", lambda: self.browser.ui_checks(name, base_url, ui)))
        if name in rules.performance:
            perf = rules.performance[name]
            tasks.append(
                (
                    CheckType.PERFORMANCE,
                    "performance",
                    lambda: [self.http.performance_check(name, base_url, perf)],
                )
            )
        if name in rules.security:
            security = rules.security[name]
            tasks.append(
                (
                    CheckType.SECURITY,
                    "security",
                    lambda: [self.http.security_check(name, base_url, security)],
                )
            )
        if name in rules.cache:
            cache = rules.cache[name]
            tasks.append(
                (CheckType.CACHE, "cache", lambda: [self.http.cache_check(name, base_url, cache)])
            )
        return tasks

    def run(
        self,
        component: Component,
        environment: Environment,
        base_url: Optional[str],
    ) -> VerificationResult:
        """
        Run every configured check and aggregate the results.

        Args:
            component: Component under test
            environment: Target environment
            base_url: Deployed URL (None means nothing to probe)

        Returns:
            VerificationResult whose success is the AND of all checks
        """
        start = time.time()
        result = VerificationResult(component=component.value, environment=environment.value)
        if not base_url:
            return result

        tasks = self.plan(component, base_url)
        if not tasks:
            return result

        if self.logger:
            self.logger.log(
                f"Running {len(tasks)} verification task(s) for {component.value} at {base_url}"
            )

        timeout = self.config.deployment.verification_timeout
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(tasks)))
        try:
            futures = [executor.submit(task) for _, _, task in tasks]
            wait(futures, timeout=timeout)

            for (check_type, label, _), future in zip(tasks, futures):
                if not future.done():
                    result.checks.append(
                        self._failed(check_type, label, component, f"Timed out after {timeout}s")
                    )
                    continue
                error = future.exception()
                if error is not None:
                    result.checks.append(
                        self._failed(check_type, label, component, f"Check crashed: {error}", error)
                    )
                else:
                    result.checks.extend(future.result())
        finally:
            # Do not block on checks that overran the timeout
            executor.shutdown(wait=False)

        result.duration = time.time() - start
        if self.logger:
            for check in result.checks:
                level = "INFO" if check.success else "WARNING"
                self.logger.log(f"[{check.name}] {check.message}", level)
        return result

    @staticmethod
    def _failed(
        check_type: CheckType,
        label: str,
        component: Component,
        message: str,
        error: Optional[BaseException] = None,
    ) -> VerificationCheck:
        return VerificationCheck(
            name=f"{label}-error-{component.value}",
            type=check_type,
            success=False,
            message=message,
            error=str(error) if error else message,
        )
