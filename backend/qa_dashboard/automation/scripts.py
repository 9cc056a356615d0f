"""
Per-feature browser scripts.

Every script runs after the login prelude, on a BrowserSession that is
already open, and reports evidence through RunContext.capture(). A script
either returns (the run passes) or raises an AutomationError (the run fails
with that message). Scripts are blocking and run in a worker thread.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Protocol

from selenium.webdriver.common.by import By

from qa_dashboard.automation.browser import BrowserSession
from qa_dashboard.automation.errors import (
    ActionFailedError,
    ConfigurationError,
    ElementNotFoundError,
    FeatureNotImplementedError,
)
from qa_dashboard.automation.sites import FEED_VIDEO, SiteProfile
from qa_dashboard.models.catalog import FeatureKind

logger = logging.getLogger(__name__)

PAYMENT_FIELDS = "CC_FIRST_NAME, CC_LAST_NAME, CC_NUMBER, CC_MONTH, CC_YEAR, CC_CVV"


class Reporter(Protocol):
    def capture(self, session: BrowserSession, step: str) -> str | None: ...


@dataclass
class RunContext:
    session: BrowserSession
    site: SiteProfile
    feature_name: str
    reporter: Reporter
    email: str = ""
    password: str = ""
    chat_room_id: str = ""
    payment_fixture: list[str] = field(default_factory=list)

    def capture(self, step: str) -> str | None:
        return self.reporter.capture(self.session, step)


def ensure_implemented(feature_name: str, kind: FeatureKind | None, site: SiteProfile) -> FeatureKind:
    """Raise FeatureNotImplementedError unless a script exists for (site, kind)."""
    if kind is None or kind not in SCRIPTS:
        raise FeatureNotImplementedError(f"{feature_name} feature has not been implemented yet")
    if not site.supports(kind):
        raise FeatureNotImplementedError(
            f"{feature_name} test has not been implemented yet for {site.name}"
        )
    return kind


def run_feature(ctx: RunContext, kind: FeatureKind | None) -> None:
    kind = ensure_implemented(ctx.feature_name, kind, ctx.site)
    login(ctx)
    logger.info("Running %s script on %s (%s)", kind.value, ctx.site.name, ctx.session.browser)
    SCRIPTS[kind](ctx)


# ── Login prelude ────────────────────────────────────────────────────────────

def login(ctx: RunContext) -> None:
    if not (ctx.email and ctx.password):
        raise ConfigurationError("SENTI_EMAIL and SENTI_PASSWORD are not set")

    session, site = ctx.session, ctx.site
    session.navigate(site.login_url)
    session.click(site.login_trigger_selector)
    session.wait_for_url(
        lambda url: url.startswith(site.login_url),
        "navigation failed: not on login page",
    )

    session.type_text(site.email_selector, ctx.email)
    session.type_text(site.password_selector, ctx.password)
    ctx.capture("Login Page")

    session.click(site.login_submit_selector)
    session.wait_for_url(
        lambda url: not url.startswith(site.login_url),
        "login failed: still on login page",
    )
    ctx.capture("After Successful Login")


# ── Scripts ──────────────────────────────────────────────────────────────────

def run_chat(ctx: RunContext) -> None:
    session, site = ctx.session, ctx.site

    session.navigate(site.url("/chat"))
    ctx.capture("Chat Page")

    if not ctx.chat_room_id:
        raise ConfigurationError(f"chat room ID not configured for site: {site.name}")
    session.navigate(site.url(f"/chat-rest/{ctx.chat_room_id}"))
    ctx.capture("Open Chat Page")

    message = f"Chat send on {datetime.now():%Y-%m-%d %H:%M:%S}"
    session.type_text(".v-field__input", message)
    session.click(".mdi-send")
    session.wait_for_page_text(message)
    ctx.capture("Sending Message to Chat")


def run_scroll_home(ctx: RunContext) -> None:
    session, site = ctx.session, ctx.site

    if site.feed_mode == FEED_VIDEO:
        # The feed autoplays after login.
        session.click(".video-player")
        session.settle(1)
        ctx.capture("Pause Video")

        session.click(".play-button-overlay")
        session.settle(1)
        ctx.capture("Play Video")

        session.execute(
            "arguments[0].dispatchEvent(new WheelEvent('wheel', {deltaY: arguments[1], deltaMode: 1}));",
            session.find(f".{site.video_feed_class}"),
            site.wheel_delta_y,
        )
    elif site.scroll_container_class:
        session.execute(
            "arguments[0].scrollTo({top: arguments[1], behavior: 'smooth'});",
            session.find(f".{site.scroll_container_class}"),
            site.scroll_top,
        )
    else:
        session.execute(
            "window.scrollTo({top: arguments[0], behavior: 'smooth'});",
            site.scroll_top,
        )

    session.settle(1)
    ctx.capture("After Scroll Event")


def run_age_verification(ctx: RunContext) -> None:
    session, feature = ctx.session, ctx.feature_name

    session.click(".mdi-comment")
    try:
        session.wait_for_text("p", lambda text: text.strip().lower() == "age verification",
                              "age verification heading")
        session.find("form")
    except ElementNotFoundError as exc:
        raise ElementNotFoundError("form", "Failed to find age verification form") from exc

    values = ctx.payment_fixture
    if len(values) < 6 or not all(values):
        raise ConfigurationError(f"{PAYMENT_FIELDS} are not set")

    inputs = [
        element for element in session.find_by_tag("input")
        if "input-" in (element.get_attribute("id") or "").lower()
    ]
    if len(inputs) < len(values):
        raise ElementNotFoundError(
            "input", f"age verification form has {len(inputs)} fields, expected {len(values)}"
        )
    for element, value in zip(inputs, values):
        session.type_into(element, value, element.get_attribute("id"))
    ctx.capture(f"{feature} Popup")

    session.click(".btn-chat-profile")
    session.settle(2)
    ctx.capture(f"Submit {feature}")


def run_premium_subscription(ctx: RunContext) -> None:
    session, feature = ctx.session, ctx.feature_name

    session.click(".mdi-comment")
    try:
        session.wait_for_text("h2", lambda text: "go premium and connect" in text.lower(),
                              "premium heading")
    except ElementNotFoundError as exc:
        raise ElementNotFoundError("h2", "Failed to find premium subscription form") from exc
    ctx.capture(f"{feature} Popup")

    session.click(".btn-price")
    session.settle(1)
    ctx.capture(f"{feature} Confirmation Popup")

    dialog = session.find(".payment-confirmation-dialog")
    buttons = dialog.find_elements(By.TAG_NAME, "button")
    if not buttons:
        raise ElementNotFoundError(
            ".payment-confirmation-dialog button",
            "No buttons found on the payment confirmation dialog.",
        )
    session.click_element(buttons[-1], "payment confirmation button")
    ctx.capture(f"{feature} Confirmation Process")

    session.settle(2)
    ctx.capture(f"{feature} Completed")


def run_slot_machine_iframe(ctx: RunContext) -> None:
    session, site = ctx.session, ctx.site

    session.navigate(site.url("/store"))
    ctx.capture("Store Page")

    try:
        buttons = session.find_all(".open-button", min_count=site.game_button_index + 1)
    except ElementNotFoundError as exc:
        raise ElementNotFoundError(".open-button", "No buttons found on the store page.") from exc

    try:
        session.click_element(buttons[site.game_button_index], ".open-button")
    except ActionFailedError:
        logger.info("Game button click failed on %s, opening %s directly", site.name, site.game_path)
        session.navigate(site.url(site.game_path))

    session.find("iframe")
    ctx.capture(ctx.feature_name)


SCRIPTS: dict[FeatureKind, Callable[[RunContext], None]] = {
    FeatureKind.CHAT: run_chat,
    FeatureKind.SCROLL_HOME: run_scroll_home,
    FeatureKind.AGE_VERIFICATION: run_age_verification,
    FeatureKind.PREMIUM_SUBSCRIPTION: run_premium_subscription,
    FeatureKind.SLOT_MACHINE_IFRAME: run_slot_machine_iframe,
}
