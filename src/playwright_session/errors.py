"""Exceptions raised inside the session manager.

Policy, not-found and timeout conditions are turned into failed action
results by :mod:`playwright_session.actions`; :class:`EngineError` is the only
one allowed to escape to the dispatch layer.
"""

from typing import Optional


class SessionError(Exception):
    """Base class for session manager errors."""

    kind = "action"


class NavigationPolicyError(SessionError):
    """Navigation target is malformed or outside the allow-list."""

    kind = "policy"


class NotFoundError(SessionError):
    """A referenced tab, annotation or download does not exist."""

    kind = "not_found"


class AnnotationNotFoundError(NotFoundError):
    def __init__(self, element_id: int):
        super().__init__(
            f"Element with ID {element_id} not found. "
            "Run annotate again to refresh the element IDs."
        )
        self.element_id = element_id


class NoDownloadError(NotFoundError):
    def __init__(self):
        super().__init__("Nothing downloaded yet in this session.")


class TabIndexError(NotFoundError):
    def __init__(self, index: int, tab_count: int):
        if tab_count:
            valid = f"valid range is [0,{tab_count - 1}]"
        else:
            valid = "no tabs are open"
        super().__init__(
            f"Invalid tab index {index}: {valid} ({tab_count} tabs open)."
        )
        self.index = index
        self.tab_count = tab_count


class InvalidArgumentError(SessionError):
    """A tool argument is missing or has the wrong type."""

    kind = "invalid_argument"


class ActionTimeoutError(SessionError):
    """An in-page operation did not finish within its time bound."""

    kind = "timeout"

    def __init__(self, timeout_ms: int):
        super().__init__(f"Timeout {timeout_ms}ms exceeded.")
        self.timeout_ms = timeout_ms


class EngineError(SessionError):
    """The browser process is gone or unusable."""

    kind = "engine"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
