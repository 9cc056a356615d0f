"""
Step evidence: screenshot -> file under SCREENSHOTS_DIR -> ResultDetail row.

capture() is called from the script's worker thread; the ResultDetail insert
is an async DB write, so it is submitted back to the event loop that owns the
session maker. Nothing here ever fails a run.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable

from qa_dashboard.automation.browser import BrowserSession

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "screenshots"
PERSIST_TIMEOUT = 30  # seconds

PersistDetail = Callable[[int, str, str], Awaitable[object]]


def public_path(path: Path) -> str:
    """Path the dashboard uses to fetch a screenshot (served under /screenshots)."""
    return f"{PUBLIC_PREFIX}/{path.name}"


class StepReporter:
    def __init__(
        self,
        result_id: int,
        screenshots_dir: str | Path,
        persist: PersistDetail,
        loop: asyncio.AbstractEventLoop,
    ):
        self.result_id = result_id
        self.screenshots_dir = Path(screenshots_dir)
        self._persist = persist
        self._loop = loop

    def capture(self, session: BrowserSession, step: str) -> str | None:
        try:
            path = session.screenshot(self.screenshots_dir)
        except Exception as exc:
            logger.warning(
                "Failed to take %s screenshot for result %s (%s): %s",
                step, self.result_id, session.browser, exc,
            )
            return None

        screenshot_path = public_path(path)
        description = f"Screenshot of {step}"
        future = asyncio.run_coroutine_threadsafe(
            self._persist(self.result_id, screenshot_path, description), self._loop
        )
        try:
            future.result(timeout=PERSIST_TIMEOUT)
        except Exception as exc:
            logger.warning(
                "Failed to store %s screenshot for result %s: %s", step, self.result_id, exc
            )
            return None

        logger.info("%s screenshot saved for result %s: %s", step, self.result_id, screenshot_path)
        return screenshot_path
