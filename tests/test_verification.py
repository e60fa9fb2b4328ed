"""Tests for HTTP checks, UI checks and the verification battery."""

import ssl
import time
from unittest.mock import MagicMock, patch

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from samsdeploy.core.config_loader import (
    CacheCheckConfig,
    HealthCheckConfig,
    PerformanceCheckConfig,
    SecurityCheckConfig,
    UICheckConfig,
)
from samsdeploy.models.deployment import Component, Environment
from samsdeploy.models.results import CheckType, VerificationCheck
from samsdeploy.verifiers.battery import VerificationBattery
from samsdeploy.verifiers.http_checks import HttpVerifier, join_url
from samsdeploy.verifiers.ui_checks import BrowserVerifier, PageSnapshot


def make_response(status=200, text="", headers=None):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.text = text
    response.content = text.encode()
    response.headers = CaseInsensitiveDict(headers or {})
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


def check(name, success=True, check_type=CheckType.HEALTH):
    return VerificationCheck(name=name, type=check_type, success=success, message=name)


class TestJoinUrl:
    def test_join(self):
        assert join_url("https://api.example.com/", "/api/health") == "https://api.example.com/api/health"
        assert join_url("https://api.example.com/v1", "health") == "https://api.example.com/v1/health"


class TestHealthChecks:
    """Test status and content assertions."""

    def test_status_and_content_pass(self, session):
        session.request.return_value = make_response(200, '{"status": "ok"}')
        verifier = HttpVerifier(session=session)
        health = HealthCheckConfig(endpoint="/api/health", check_content="ok")

        checks = verifier.health_checks("backend", "http://api.local", health)

        assert [c.name for c in checks] == ["health-status-backend", "health-content-backend"]
        assert all(c.success for c in checks)
        session.request.assert_called_once_with(
            "GET", "http://api.local/api/health", headers={}, data=None, timeout=health.timeout
        )

    def test_wrong_status(self, session):
        session.request.return_value = make_response(503, "down")
        checks = HttpVerifier(session=session).health_checks(
            "backend", "http://api.local", HealthCheckConfig()
        )

        assert not checks[0].success
        assert "expected 200" in checks[0].message

    def test_pattern_mismatch(self, session):
        session.request.return_value = make_response(200, "version: beta")
        health = HealthCheckConfig(check_pattern=r"version: \d+")

        checks = HttpVerifier(session=session).health_checks("backend", "http://api.local", health)

        assert checks[0].success
        assert not checks[1].success

    def test_no_response(self, session):
        """Test a connection error fails both the status and content checks."""
        session.request.side_effect = requests.ConnectionError("refused")
        health = HealthCheckConfig(check_content="ok")

        checks = HttpVerifier(session=session).health_checks("backend", "http://api.local", health)

        assert [c.success for c in checks] == [False, False]
        assert "refused" in checks[0].error

    def test_https_adds_certificate_check(self, session):
        session.request.return_value = make_response(200)
        verifier = HttpVerifier(session=session)

        with patch.object(verifier, "fetch_certificate", side_effect=ssl.SSLError("bad cert")):
            checks = verifier.health_checks("desktop", "https://sams.example.com", HealthCheckConfig())

        assert checks[-1].name == "health-certificate-desktop"
        assert not checks[-1].success

    def test_valid_certificate(self, session):
        verifier = HttpVerifier(session=session)
        not_after = time.strftime("%b %d %H:%M:%S %Y GMT", time.gmtime(time.time() + 90 * 86400))
        cert = {"notAfter": not_after, "issuer": ((("organizationName", "Let's Encrypt"),),)}

        with patch.object(verifier, "fetch_certificate", return_value=cert):
            result = verifier.certificate_check("desktop", "https://sams.example.com")

        assert result.success
        assert result.metadata["issuer"] == "organizationName=Let's Encrypt"

    def test_expired_certificate(self, session):
        verifier = HttpVerifier(session=session)
        not_after = time.strftime("%b %d %H:%M:%S %Y GMT", time.gmtime(time.time() - 3 * 86400))

        with patch.object(verifier, "fetch_certificate", return_value={"notAfter": not_after}):
            result = verifier.certificate_check("desktop", "https://sams.example.com")

        assert result.name == "health-certificate-desktop"
        assert not result.success
        assert "expired" in result.message
        assert result.metadata["daysRemaining"] < 0


class TestHeaderChecks:
    """Test performance, security and cache header checks."""

    def test_security_missing_headers(self, session):
        session.get.return_value = make_response(200, headers={"X-Frame-Options": "DENY"})
        config = SecurityCheckConfig()

        result = HttpVerifier(session=session).security_check("desktop", "http://x.local", config)

        assert not result.success
        assert result.metadata["missing"] == ["x-content-type-options", "strict-transport-security"]

    def test_cache_contains(self, session):
        session.get.return_value = make_response(
            200, headers={"Cache-Control": "no-cache, no-store, must-revalidate"}
        )
        config = CacheCheckConfig(header="cache-control", expected="no-store")

        result = HttpVerifier(session=session).cache_check("desktop", "http://x.local", config)

        assert result.name == "cache-control-desktop"
        assert result.success

    def test_cache_equals_missing_header(self, session):
        session.get.return_value = make_response(200)
        config = CacheCheckConfig(match="equals")

        assert not HttpVerifier(session=session).cache_check("desktop", "http://x.local", config).success

    def test_performance_threshold(self, session):
        session.get.return_value = make_response(500)
        config = PerformanceCheckConfig(max_load_time_ms=60000)

        result = HttpVerifier(session=session).performance_check("mobile", "http://x.local", config)

        assert result.name == "performance-load-time-mobile"
        assert not result.success


class TestUIChecks:
    """Test UI check assembly from a page snapshot."""

    def test_all_assertions_reported(self):
        verifier = BrowserVerifier()
        snapshot = PageSnapshot(
            url="https://sams.example.com/",
            status=200,
            load_time_ms=420,
            selector_found=True,
            text_found=False,
            console_errors=["Uncaught TypeError"],
        )
        config = UICheckConfig(selector="#root", text="SAMS")

        with patch.object(verifier, "capture", return_value=snapshot):
            checks = verifier.ui_checks("desktop", "https://sams.example.com", config)

        results = {c.name: c.success for c in checks}
        assert results == {
            "ui-page-load-desktop": True,
            "ui-selector-desktop": True,
            "ui-text-desktop": False,
            "ui-console-errors-desktop": False,
        }

    def test_page_failed_to_load(self):
        verifier = BrowserVerifier()
        snapshot = PageSnapshot(url="https://sams.example.com/", error="net::ERR_NAME_NOT_RESOLVED")

        with patch.object(verifier, "capture", return_value=snapshot):
            checks = verifier.ui_checks("desktop", "https://sams.example.com", UICheckConfig())

        assert [c.success for c in checks] == [False, False]
        assert checks[0].error == "net::ERR_NAME_NOT_RESOLVED"


class TestVerificationBattery:
    """Test fan-out and aggregation."""

    def test_health_passes_ui_fails(self, config):
        """Test the aggregate fails when any single check fails."""
        http = MagicMock()
        http.health_checks.return_value = [check("health-status-desktop")]
        browser = MagicMock()
        browser.ui_checks.return_value = [
            check("ui-page-load-desktop", check_type=CheckType.UI),
            check("ui-selector-desktop", success=False, check_type=CheckType.UI),
        ]
        battery = VerificationBattery(config, http=http, browser=browser)

        result = battery.run(Component.DESKTOP, Environment.PRODUCTION, "https://sams.example.com")

        assert not result.success
        assert result.get_check("health-status-desktop").success
        assert [c.name for c in result.failed_checks] == ["ui-selector-desktop"]
        assert result.duration >= 0

    def test_crashing_check_is_reported(self, config):
        """Test an exception in one task becomes a failed check and others still run."""
        http = MagicMock()
        http.health_checks.return_value = [check("health-status-desktop")]
        browser = MagicMock()
        browser.ui_checks.side_effect = RuntimeError("browser binary missing")
        battery = VerificationBattery(config, http=http, browser=browser)

        result = battery.run(Component.DESKTOP, Environment.STAGING, "https://staging.sams.example.com")

        names = [c.name for c in result.checks]
        assert "health-status-desktop" in names
        crashed = result.get_check("ui-error-desktop")
        assert crashed is not None
        assert not crashed.success
        assert "browser binary missing" in crashed.message

    def test_only_configured_rule_sets_run(self, config):
        http = MagicMock()
        http.health_checks.return_value = [check("health-status-backend")]
        browser = MagicMock()
        battery = VerificationBattery(config, http=http, browser=browser)

        result = battery.run(Component.BACKEND, Environment.PRODUCTION, "https://api.sams.example.com")

        assert result.success
        browser.ui_checks.assert_not_called()
        http.security_check.assert_not_called()

    def test_plan_includes_optional_rule_sets(self, config):
        config.verification.security["backend"] = SecurityCheckConfig()
        config.verification.cache["backend"] = CacheCheckConfig()
        battery = VerificationBattery(config, http=MagicMock(), browser=MagicMock())

        labels = [label for _, label, _ in battery.plan(Component.BACKEND, "https://api.sams.example.com")]

        assert labels == ["health", "security", "cache"]

    def test_no_url_is_empty_success(self, config):
        """Test rules deploys with no URL produce an empty passing result."""
        http = MagicMock()
        battery = VerificationBattery(config, http=http, browser=MagicMock())

        result = battery.run(Component.FIREBASE, Environment.PRODUCTION, None)

        assert result.success
        assert result.checks == []
        http.health_checks.assert_not_called()
