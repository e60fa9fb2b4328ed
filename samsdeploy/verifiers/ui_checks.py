"""Headless-browser UI checks (playwright)."""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from samsdeploy.core.config_loader import UICheckConfig
from samsdeploy.models.results import CheckType, VerificationCheck
from samsdeploy.verifiers.http_checks import USER_AGENT, join_url


@dataclass
class PageSnapshot:
    """What the browser observed while loading one page."""

    url: str
    status: Optional[int] = None
    load_time_ms: int = 0
    selector_found: Optional[bool] = None
    text_found: Optional[bool] = None
    console_errors: List[str] = field(default_factory=list)
    screenshot: Optional[str] = None
    error: Optional[str] = None

    @property
    def loaded(self) -> bool:
        return self.error is None and self.status is not None and self.status < 400


class BrowserVerifier:
    """
    Drives headless Chromium against a deployed URL.

    Each call starts its own playwright instance so calls from different
    verification threads never share a browser.
    """

    def __init__(self, timeout: float = 30):
        self.timeout = timeout

    def capture(self, url: str, config: UICheckConfig) -> PageSnapshot:
        """Load a page and record status, selector/text presence and console errors."""
        snapshot = PageSnapshot(url=url)
        timeout_ms = int((config.timeout or self.timeout) * 1000)

        with sync_playwright() as playwright:
            browser = playwright.chromium.launch(headless=True)
            try:
                page = browser.new_page(user_agent=USER_AGENT)
                page.on(
                    "console",
                    lambda msg: snapshot.console_errors.append(msg.text)
                    if msg.type == "error"
                    else None,
                )
                page.on("pageerror", lambda exc: snapshot.console_errors.append(str(exc)))

                start = time.time()
                try:
                    response = page.goto(url, timeout=timeout_ms, wait_until="load")
                except PlaywrightError as e:
                    snapshot.error = str(e)
                    return snapshot
                snapshot.load_time_ms = int((time.time() - start) * 1000)
                snapshot.status = response.status if response else None

                if config.selector:
                    try:
                        page.wait_for_selector(config.selector, timeout=min(timeout_ms, 10000))
                        snapshot.selector_found = True
                    except PlaywrightTimeoutError:
                        snapshot.selector_found = False

                if config.text:
                    snapshot.text_found = config.text in page.inner_text("body")

                if config.screenshot:
                    Path(config.screenshot).parent.mkdir(parents=True, exist_ok=True)
                    page.screenshot(path=config.screenshot, full_page=True)
                    snapshot.screenshot = config.screenshot
            finally:
                browser.close()

        return snapshot

    def ui_checks(
        self, component: str, base_url: str, config: UICheckConfig
    ) -> List[VerificationCheck]:
        """One check per UI assertion, all reported even when the page fails to load."""
        url = join_url(base_url, config.path)
        start = time.time()
        snapshot = self.capture(url, config)
        duration = time.time() - start

        checks = [
            VerificationCheck(
                name=f"ui-page-load-{component}",
                type=CheckType.UI,
                success=snapshot.loaded,
                message=(
                    f"Page loaded in {snapshot.load_time_ms}ms (status {snapshot.status})"
                    if snapshot.loaded
                    else f"Page failed to load (status {snapshot.status})"
                ),
                duration=duration,
                metadata={
                    "url": url,
                    "status": snapshot.status,
                    "loadTimeMs": snapshot.load_time_ms,
                    "screenshot": snapshot.screenshot,
                },
                error=snapshot.error,
            )
        ]

        if config.selector:
            checks.append(
                VerificationCheck(
                    name=f"ui-selector-{component}",
                    type=CheckType.UI,
                    success=bool(snapshot.selector_found),
                    message=(
                        f"Selector {config.selector!r} present"
                        if snapshot.selector_found
                        else f"Selector {config.selector!r} not found"
                    ),
                    metadata={"selector": config.selector},
                )
            )

        if config.text:
            checks.append(
                VerificationCheck(
                    name=f"ui-text-{component}",
                    type=CheckType.UI,
                    success=bool(snapshot.text_found),
                    message=(
                        f"Text {config.text!r} present"
                        if snapshot.text_found
                        else f"Text {config.text!r} not found"
                    ),
                    metadata={"text": config.text},
                )
            )

        if config.check_console_errors:
            errors = snapshot.console_errors
            checks.append(
                VerificationCheck(
                    name=f"ui-console-errors-{component}",
                    type=CheckType.UI,
                    success=snapshot.loaded and not errors,
                    message=(
                        f"{len(errors)} console error(s): {errors[0]}"
                        if errors
                        else "No console errors"
                        if snapshot.loaded
                        else "Page did not load"
                    ),
                    metadata={"errors": errors[:20]},
                )
            )

        return checks
