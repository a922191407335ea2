"""Exception hierarchy for mailpilot.

Only host-side failures are raised. Conditions the automation layer branches
on routinely (a script that threw inside the page, a poll that never saw the
expected state) are returned as values instead; see
``mailpilot.cdp.views.EvaluationOutcome`` and
``mailpilot.compose.views.TimeoutExhausted``.
"""


class MailpilotError(Exception):
    """Base class for all mailpilot errors."""


class DiscoveryError(MailpilotError):
    """The DevTools target listing could not be fetched or parsed."""


class TransportError(MailpilotError):
    """The CDP socket failed or is unusable."""


class ConnectionClosedError(TransportError):
    """Raised for sends after close and for requests still pending at teardown."""

    def __init__(self, message: str = "connection closed"):
        super().__init__(message)


class CommandTimeoutError(TransportError):
    """No response arrived for a command within its timeout."""

    def __init__(self, method: str, timeout: float):
        self.method = method
        self.timeout = timeout
        super().__init__(f"CDP command {method} timed out after {timeout}s")


class CDPProtocolError(TransportError):
    """The remote side answered a command with an ``error`` object."""

    def __init__(self, method: str, error: dict):
        self.method = method
        self.code = error.get("code")
        self.message = error.get("message", "unknown CDP error")
        self.data = error.get("data")
        detail = f" ({self.data})" if self.data else ""
        super().__init__(f"CDP error for {method}: {self.message}{detail}")


class StaleDraftError(MailpilotError):
    """A draft key is no longer present in the remote compose registry."""

    def __init__(self, draft_key: str):
        self.draft_key = draft_key
        super().__init__(f"Draft {draft_key!r} is no longer open in the remote application")
