"""
Remote browser session driver (BrowserStack over Selenium WebDriver).

Wraps one WebDriver session: open it for a named browser profile, navigate,
find/click/type, screenshot, close. Every wait polls a condition with a
jittered interval until a timeout instead of sleeping a fixed amount, and
checks the run's CancelToken on each poll.
"""

from __future__ import annotations

import json
import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable
from uuid import uuid4

from selenium import webdriver
from selenium.common.exceptions import (
    NoSuchElementException,
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webelement import WebElement
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from qa_dashboard.automation.errors import (
    ActionFailedError,
    ElementNotFoundError,
    NavigationError,
    RunCancelledError,
    SessionInitError,
    UnsupportedBrowserError,
)
from qa_dashboard.config import Settings

logger = logging.getLogger(__name__)


# ── Browser profiles ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BrowserProfile:
    browser_name: str
    browser_version: str
    os: str
    os_version: str


BROWSER_PROFILES: dict[str, BrowserProfile] = {
    "chrome": BrowserProfile("Chrome", "latest", "Windows", "10"),
    "firefox": BrowserProfile("Firefox", "latest", "Windows", "10"),
    "edge": BrowserProfile("Edge", "latest", "Windows", "10"),
    "safari": BrowserProfile("Safari", "latest", "OS X", "Big Sur"),
}

_OPTION_CLASSES = {
    "chrome": webdriver.ChromeOptions,
    "firefox": webdriver.FirefoxOptions,
    "edge": webdriver.EdgeOptions,
    "safari": webdriver.SafariOptions,
}


def build_options(browser: str, settings: Settings, build_name: str | None = None):
    """Selenium options carrying the W3C + BrowserStack capabilities for *browser*."""
    profile = BROWSER_PROFILES.get(browser)
    if profile is None:
        raise UnsupportedBrowserError(browser)

    options = _OPTION_CLASSES[browser]()
    options.browser_version = profile.browser_version
    options.set_capability("bstack:options", {
        "os": profile.os,
        "osVersion": profile.os_version,
        "userName": settings.browserstack_username,
        "accessKey": settings.browserstack_access_key,
        "projectName": settings.browserstack_project_name,
        "buildName": build_name or f"Test Run {datetime.now():%Y-%m-%d %H:%M:%S}",
        "sessionName": f"{browser} Test",
    })
    return options


# ── Cancellation ─────────────────────────────────────────────────────────────

class CancelToken:
    """Thread-safe cancel flag shared between a run's thread and its watchdog."""

    def __init__(self):
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError(self.reason)

    def sleep(self, seconds: float) -> None:
        """Pause for *seconds*, waking early (and raising) on cancel."""
        if self._event.wait(seconds):
            raise RunCancelledError(self.reason)


# ── Session ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class WaitConfig:
    element_timeout: float = 10.0
    navigation_timeout: float = 15.0
    poll_interval: float = 0.5
    jitter: float = 0.25

    @classmethod
    def from_settings(cls, settings: Settings) -> "WaitConfig":
        return cls(
            element_timeout=settings.element_timeout_seconds,
            navigation_timeout=settings.navigation_timeout_seconds,
            poll_interval=settings.poll_interval_seconds,
            jitter=settings.poll_jitter,
        )


class BrowserSession:
    def __init__(
        self,
        driver,
        browser: str,
        waits: WaitConfig | None = None,
        token: CancelToken | None = None,
    ):
        self.driver = driver
        self.browser = browser
        self.waits = waits or WaitConfig()
        self.token = token or CancelToken()
        self._closed = False

    @property
    def session_id(self) -> str | None:
        return getattr(self.driver, "session_id", None)

    @property
    def current_url(self) -> str:
        try:
            return self.driver.current_url
        except WebDriverException:
            return ""

    # -- waiting -------------------------------------------------------------

    def until(self, condition: Callable[[Any], Any], timeout: float | None = None) -> Any:
        """Poll *condition* until truthy; raises TimeoutException or RunCancelledError."""
        timeout = self.waits.element_timeout if timeout is None else timeout
        spread = random.uniform(1 - self.waits.jitter, 1 + self.waits.jitter)
        wait = WebDriverWait(
            self.driver,
            timeout,
            poll_frequency=max(self.waits.poll_interval * spread, 0.05),
            ignored_exceptions=(NoSuchElementException, StaleElementReferenceException),
        )

        def _check(driver):
            self.token.raise_if_cancelled()
            return condition(driver)

        return wait.until(_check)

    def settle(self, seconds: float) -> None:
        """Give animations time to finish; cancellable."""
        self.token.sleep(seconds)

    # -- navigation ----------------------------------------------------------

    def navigate(self, url: str, expect_prefix: str | None = None) -> None:
        expected = expect_prefix or url
        self.token.raise_if_cancelled()
        try:
            self.driver.get(url)
        except WebDriverException as exc:
            raise NavigationError(f"failed to navigate to {url}: {exc.msg}") from exc

        def _landed(driver):
            return (
                driver.current_url.startswith(expected)
                and driver.execute_script("return document.readyState") == "complete"
            )

        try:
            self.until(_landed, self.waits.navigation_timeout)
        except TimeoutException as exc:
            raise NavigationError(
                f"navigation failed: expected {expected}, current URL: {self.current_url}"
            ) from exc

    def wait_for_url(self, predicate: Callable[[str], bool], message: str, timeout: float | None = None) -> None:
        try:
            self.until(lambda d: predicate(d.current_url), timeout or self.waits.navigation_timeout)
        except TimeoutException as exc:
            raise NavigationError(f"{message}, current URL: {self.current_url}") from exc

    # -- elements ------------------------------------------------------------

    def find(self, css: str, timeout: float | None = None) -> WebElement:
        try:
            return self.until(EC.presence_of_element_located((By.CSS_SELECTOR, css)), timeout)
        except TimeoutException as exc:
            raise ElementNotFoundError(css) from exc

    def find_all(self, css: str, min_count: int = 1, timeout: float | None = None) -> list[WebElement]:
        return self._find_many(By.CSS_SELECTOR, css, min_count, timeout)

    def find_by_tag(self, tag: str, min_count: int = 1, timeout: float | None = None) -> list[WebElement]:
        return self._find_many(By.TAG_NAME, tag, min_count, timeout)

    def _find_many(self, by: str, value: str, min_count: int, timeout: float | None) -> list[WebElement]:
        def _enough(driver):
            elements = driver.find_elements(by, value)
            return elements if len(elements) >= min_count else False

        try:
            return self.until(_enough, timeout)
        except TimeoutException as exc:
            raise ElementNotFoundError(value, f"expected at least {min_count}") from exc

    def wait_for_text(self, tag: str, predicate: Callable[[str], bool], description: str,
                      timeout: float | None = None) -> WebElement:
        """First *tag* element whose visible text satisfies *predicate*."""
        def _match(driver):
            for element in driver.find_elements(By.TAG_NAME, tag):
                if predicate(element.text or ""):
                    return element
            return False

        try:
            return self.until(_match, timeout)
        except TimeoutException as exc:
            raise ElementNotFoundError(tag, description) from exc

    def wait_for_page_text(self, text: str, timeout: float | None = None) -> None:
        try:
            self.until(lambda d: text in d.page_source, timeout)
        except TimeoutException as exc:
            raise ElementNotFoundError("page text", f"{text!r} never appeared") from exc

    # -- actions -------------------------------------------------------------

    def click(self, css: str, timeout: float | None = None) -> None:
        try:
            element = self.until(EC.element_to_be_clickable((By.CSS_SELECTOR, css)), timeout)
        except TimeoutException as exc:
            raise ElementNotFoundError(css, "not clickable") from exc
        self.click_element(element, css)

    def click_element(self, element: WebElement, label: str) -> None:
        self.token.raise_if_cancelled()
        try:
            element.click()
        except WebDriverException as exc:
            raise ActionFailedError(f"failed to click {label}: {exc.msg}") from exc

    def type_text(self, css: str, text: str) -> None:
        self.type_into(self.find(css), text, css)

    def type_into(self, element: WebElement, text: str, label: str) -> None:
        self.token.raise_if_cancelled()
        try:
            element.clear()
            element.send_keys(text)
        except WebDriverException as exc:
            raise ActionFailedError(f"failed to type into {label}: {exc.msg}") from exc

    def execute(self, script: str, *args) -> Any:
        self.token.raise_if_cancelled()
        try:
            return self.driver.execute_script(script, *args)
        except WebDriverException as exc:
            raise ActionFailedError(f"script failed: {exc.msg}") from exc

    # -- evidence / teardown -------------------------------------------------

    def screenshot(self, directory: str | Path) -> Path:
        """Write a PNG of the current viewport into *directory* and return its path."""
        png = self.driver.get_screenshot_as_png()
        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / f"screenshot_{datetime.now():%Y%m%d_%H%M%S_%f}_{uuid4().hex[:6]}.png"
        path.write_bytes(png)
        return path

    def mark_status(self, passed: bool, reason: str = "") -> None:
        """Report the outcome on the BrowserStack dashboard."""
        payload = {
            "action": "setSessionStatus",
            "arguments": {"status": "passed" if passed else "failed", "reason": reason[:250]},
        }
        self.driver.execute_script(f"browserstack_executor: {json.dumps(payload)}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.driver.quit()
        except Exception as exc:
            # Transport errors (dropped hub connection, expired session) surface here too.
            logger.warning("Failed to quit %s WebDriver session: %s", self.browser, exc)


DriverFactory = Callable[[Any], Any]


def remote_driver_factory(hub_url: str) -> DriverFactory:
    def _factory(options):
        return webdriver.Remote(command_executor=hub_url, options=options)
    return _factory


def open_session(
    browser: str,
    settings: Settings,
    token: CancelToken | None = None,
    driver_factory: DriverFactory | None = None,
) -> BrowserSession:
    """Open a remote session for *browser* and maximize its window."""
    options = build_options(browser, settings)
    factory = driver_factory or remote_driver_factory(settings.browserstack_hub_url)
    try:
        driver = factory(options)
    except Exception as exc:
        raise SessionInitError(f"failed to initialize {browser} WebDriver: {exc}") from exc

    try:
        driver.maximize_window()
    except WebDriverException as exc:
        try:
            driver.quit()
        except WebDriverException:
            logger.warning("Failed to quit %s session after init failure", browser)
        raise SessionInitError(f"failed to maximize {browser} window: {exc.msg}") from exc

    logger.info("Opened %s session %s", browser, getattr(driver, "session_id", "?"))
    return BrowserSession(driver, browser, WaitConfig.from_settings(settings), token)
