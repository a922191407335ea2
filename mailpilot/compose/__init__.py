from mailpilot.compose.polling import poll_until
from mailpilot.compose.service import ComposeAutomation, compose_draft
from mailpilot.compose.surface import ComposeSurface
from mailpilot.compose.views import (
    ActionCandidates,
    DraftPhase,
    DraftState,
    Recipient,
    RemoteMethod,
    TimeoutExhausted,
    text_to_html,
)

__all__ = [
    "ActionCandidates",
    "ComposeAutomation",
    "ComposeSurface",
    "DraftPhase",
    "DraftState",
    "Recipient",
    "RemoteMethod",
    "TimeoutExhausted",
    "compose_draft",
    "poll_until",
    "text_to_html",
]
