"""HTTP-level verification checks: health, performance, security and cache."""

import re
import socket
import ssl
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from samsdeploy.constants import HTTP_CONNECT_RETRIES
from samsdeploy.core.config_loader import (
    CacheCheckConfig,
    HealthCheckConfig,
    PerformanceCheckConfig,
    SecurityCheckConfig,
)
from samsdeploy.models.results import CheckType, VerificationCheck

USER_AGENT = "sams-deploy-verifier"


def build_session(connect_retries: int = HTTP_CONNECT_RETRIES) -> requests.Session:
    """
    Session with low-level connection retries only.

    Reads and HTTP statuses are never retried: a bad answer is a result.
    """
    retry = Retry(
        total=connect_retries,
        connect=connect_retries,
        read=0,
        status=0,
        redirect=5,
        backoff_factor=0.5,
        allowed_methods=None,
        raise_on_status=False,
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers["User-Agent"] = USER_AGENT
    return session


def join_url(base_url: str, path: str) -> str:
    return urljoin(base_url.rstrip("/") + "/", path.lstrip("/"))


class HttpVerifier:
    """Runs HTTP assertions against a deployed URL."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 10):
        self.session = session or build_session()
        self.timeout = timeout

    def health_checks(
        self, component: str, base_url: str, health: HealthCheckConfig
    ) -> List[VerificationCheck]:
        """
        One check per assertion: status, optional content, and certificate
        for HTTPS targets.
        """
        url = join_url(base_url, health.endpoint)
        checks = []
        start = time.time()
        response = None
        error = None
        try:
            response = self.session.request(
                health.method,
                url,
                headers=health.headers,
                data=health.body,
                timeout=health.timeout,
            )
        except requests.RequestException as e:
            error = str(e)
        elapsed = time.time() - start

        if response is not None:
            passed = response.status_code == health.expected_status
            checks.append(
                VerificationCheck(
                    name=f"health-status-{component}",
                    type=CheckType.HEALTH,
                    success=passed,
                    message=(
                        f"{url} returned {response.status_code}"
                        + ("" if passed else f" (expected {health.expected_status})")
                    ),
                    duration=elapsed,
                    metadata={"url": url, "status": response.status_code},
                )
            )
        else:
            checks.append(
                VerificationCheck(
                    name=f"health-status-{component}",
                    type=CheckType.HEALTH,
                    success=False,
                    message=f"{url} did not respond",
                    duration=elapsed,
                    metadata={"url": url},
                    error=error,
                )
            )

        if health.check_content or health.check_pattern:
            checks.append(self._content_check(component, url, health, response, error))

        if urlparse(url).scheme == "https":
            checks.append(self.certificate_check(component, url))

        return checks

    def _content_check(
        self,
        component: str,
        url: str,
        health: HealthCheckConfig,
        response: Optional[requests.Response],
        error: Optional[str],
    ) -> VerificationCheck:
        name = f"health-content-{component}"
        if response is None:
            return VerificationCheck(
                name=name,
                type=CheckType.HEALTH,
                success=False,
                message="No response body to inspect",
                error=error,
            )

        body = response.text
        failures = []
        if health.check_content and health.check_content not in body:
            failures.append(f"missing text {health.check_content!r}")
        if health.check_pattern:
            try:
                if not re.search(health.check_pattern, body):
                    failures.append(f"no match for /{health.check_pattern}/")
            except re.error as e:
                failures.append(f"invalid pattern /{health.check_pattern}/: {e}")

        return VerificationCheck(
            name=name,
            type=CheckType.HEALTH,
            success=not failures,
            message="Response body matches" if not failures else "; ".join(failures),
            metadata={"url": url, "bodyLength": len(body)},
        )

    def certificate_check(self, component: str, url: str) -> VerificationCheck:
        """Certificate is presented, valid for the host, and not expired."""
        name = f"health-certificate-{component}"
        parsed = urlparse(url)
        host, port = parsed.hostname, parsed.port or 443
        start = time.time()
        try:
            cert = self.fetch_certificate(host, port)
        except (OSError, ssl.SSLError) as e:
            return VerificationCheck(
                name=name,
                type=CheckType.HEALTH,
                success=False,
                message=f"TLS handshake with {host} failed",
                duration=time.time() - start,
                error=str(e),
            )

        if not cert or "notAfter" not in cert:
            return VerificationCheck(
                name=name,
                type=CheckType.HEALTH,
                success=False,
                message=f"No certificate presented by {host}",
                duration=time.time() - start,
            )

        expires = datetime.fromtimestamp(
            ssl.cert_time_to_seconds(cert["notAfter"]), tz=timezone.utc
        )
        days_left = (expires - datetime.now(timezone.utc)).days
        valid = days_left >= 0
        return VerificationCheck(
            name=name,
            type=CheckType.HEALTH,
            success=valid,
            message=(
                f"Certificate valid for {days_left} more days"
                if valid
                else f"Certificate expired on {expires.date()}"
            ),
            duration=time.time() - start,
            metadata={
                "host": host,
                "expires": expires.isoformat(),
                "daysRemaining": days_left,
                "issuer": _flatten_name(cert.get("issuer")),
            },
        )

    def fetch_certificate(self, host: str, port: int = 443) -> Dict[str, Any]:
        context = ssl.create_default_context()
        with socket.create_connection((host, port), timeout=self.timeout) as sock:
            with context.wrap_socket(sock, server_hostname=host) as tls:
                return tls.getpeercert()

    def performance_check(
        self, component: str, base_url: str, config: PerformanceCheckConfig
    ) -> VerificationCheck:
        url = join_url(base_url, config.path)
        start = time.time()
        response = self.session.get(url, timeout=self.timeout)
        _ = response.content
        load_ms = int((time.time() - start) * 1000)
        passed = response.ok and load_ms <= config.max_load_time_ms
        return VerificationCheck(
            name=f"performance-load-time-{component}",
            type=CheckType.PERFORMANCE,
            success=passed,
            message=f"Loaded in {load_ms}ms (threshold {config.max_load_time_ms}ms)"
            + ("" if response.ok else f", status {response.status_code}"),
            duration=load_ms / 1000,
            metadata={"url": url, "loadTimeMs": load_ms, "status": response.status_code},
        )

    def security_check(
        self, component: str, base_url: str, config: SecurityCheckConfig
    ) -> VerificationCheck:
        url = join_url(base_url, config.path)
        start = time.time()
        response = self.session.get(url, timeout=self.timeout)
        present = {key.lower() for key in response.headers.keys()}
        missing = [header for header in config.required_headers if header not in present]
        return VerificationCheck(
            name=f"security-headers-{component}",
            type=CheckType.SECURITY,
            success=not missing,
            message=(
                "All required security headers present"
                if not missing
                else f"Missing security headers: {', '.join(missing)}"
            ),
            duration=time.time() - start,
            metadata={"url": url, "missing": missing},
        )

    def cache_check(
        self, component: str, base_url: str, config: CacheCheckConfig
    ) -> VerificationCheck:
        url = join_url(base_url, config.path)
        start = time.time()
        response = self.session.get(url, timeout=self.timeout)
        actual = response.headers.get(config.header)
        if actual is None:
            passed = False
        elif config.match == "equals":
            passed = actual.strip().lower() == config.expected.strip().lower()
        else:
            passed = config.expected.lower() in actual.lower()
        return VerificationCheck(
            name=f"cache-control-{component}",
            type=CheckType.CACHE,
            success=passed,
            message=(
                f"{config.header}: {actual}"
                if passed
                else f"{config.header} is {actual!r}, expected {config.match} {config.expected!r}"
            ),
            duration=time.time() - start,
            metadata={"url": url, "header": config.header, "value": actual},
        )


def _flatten_name(name) -> Optional[str]:
    if not name:
        return None
    parts = []
    for rdn in name:
        for key, value in rdn:
            parts.append(f"{key}={value}")
    return ", ".join(parts)
