"""
Automation error taxonomy.

Every error here terminates the run that raised it; the message text is what
ends up in Result.error_log.
"""


class AutomationError(Exception):
    """Base class for failures inside a browser run."""


class UnsupportedBrowserError(AutomationError):
    def __init__(self, browser: str):
        super().__init__(f"unsupported browser type: {browser}")
        self.browser = browser


class SessionInitError(AutomationError):
    """The remote WebDriver session could not be opened."""


class NavigationError(AutomationError):
    """The page did not land on the expected URL."""


class ElementNotFoundError(AutomationError):
    def __init__(self, selector: str, detail: str = ""):
        message = f"element not found: {selector}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.selector = selector


class ActionFailedError(AutomationError):
    """An element was found but the action on it failed."""


class FeatureNotImplementedError(AutomationError):
    pass


class ConfigurationError(AutomationError):
    """A run needs a setting that is not configured."""


class RunCancelledError(AutomationError):
    def __init__(self, reason: str):
        super().__init__(f"run cancelled: {reason}")
        self.reason = reason
