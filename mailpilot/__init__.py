"""mailpilot - drive a desktop mail client's compose UI over the Chrome DevTools Protocol."""

__version__ = "0.1.0"

from mailpilot.cdp import CDPSession, CDPTransport, EvaluationOutcome, EventBus, RemoteEvaluator, Target, connect, disconnect
from mailpilot.compose import ComposeAutomation, DraftState, Recipient, TimeoutExhausted, text_to_html
from mailpilot.exceptions import (
    CDPProtocolError,
    CommandTimeoutError,
    ConnectionClosedError,
    DiscoveryError,
    MailpilotError,
    StaleDraftError,
    TransportError,
)

__all__ = [
    "CDPProtocolError",
    "CDPSession",
    "CDPTransport",
    "CommandTimeoutError",
    "ComposeAutomation",
    "ConnectionClosedError",
    "DiscoveryError",
    "DraftState",
    "EvaluationOutcome",
    "EventBus",
    "MailpilotError",
    "Recipient",
    "RemoteEvaluator",
    "StaleDraftError",
    "Target",
    "TimeoutExhausted",
    "TransportError",
    "connect",
    "disconnect",
    "text_to_html",
]
