import html
import re
from dataclasses import dataclass
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

DraftField = Literal["subject", "body", "to", "cc", "bcc"]
RECIPIENT_FIELDS: tuple[str, ...] = ("to", "cc", "bcc")
REPLY_COMMANDS: dict[str, str] = {
    "reply": "REPLY_POP_OUT",
    "reply_all": "REPLY_ALL_POP_OUT",
    "forward": "FORWARD_POP_OUT",
}


class DraftPhase(str, Enum):
    """Lifecycle of one draft key as seen from this side of the wire."""

    ABSENT = "absent"
    OPENING = "opening"
    OPEN = "open"
    MUTATING = "mutating"
    SAVING = "saving"
    SAVED = "saved"
    CLOSING = "closing"


class Recipient(BaseModel):
    email: str
    name: str | None = None

    @classmethod
    def coerce(cls, value: "Recipient | str | dict") -> "Recipient":
        if isinstance(value, Recipient):
            return value
        if isinstance(value, str):
            return cls(email=value)
        return cls.model_validate(value)


class DraftState(BaseModel):
    """Point-in-time copy of a draft's essential fields.

    Stale as soon as anything mutates the draft remotely.
    """

    key: str
    id: str | None = None
    subject: str = ""
    to: list[Recipient] = Field(default_factory=list)
    cc: list[Recipient] = Field(default_factory=list)
    bcc: list[Recipient] = Field(default_factory=list)
    body: str = ""
    dirty: bool = False
    thread_id: str | None = None


@dataclass(frozen=True)
class TimeoutExhausted:
    """A poll loop ran out of attempts without observing the expected state.

    Falsy, so ``if not result`` covers both None and a timeout.
    """

    attempts: int
    interval: float
    description: str = ""

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.description or 'poll'} not observed after {self.attempts} attempts at {self.interval}s"


def text_to_html(text: str) -> str:
    """Convert plain text to the paragraph HTML the compose editor stores."""
    paragraphs = re.split(r"\n\s*\n", text.strip())
    return "".join(
        "<p>" + html.escape(p.strip("\n")).replace("\n", "<br>") + "</p>"
        for p in paragraphs
        if p.strip()
    )


class RemoteMethod(BaseModel):
    """One candidate method on a remote compose controller.

    ``wrap`` sends the value as ``{wrap: value}`` (the ``_updateDraft`` shape).
    ``recipients`` converts plain ``{email, name}`` records into the
    application's own recipient objects before the call.
    """

    name: str
    wrap: str | None = None
    recipients: bool = False


class ActionCandidates(BaseModel):
    """Ordered method names for one logical action, tried until one exists."""

    action: str
    methods: tuple[RemoteMethod, ...]


class InvocationResult(BaseModel):
    invoked: str | None = None
    missing: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.invoked is not None and self.error is None


def _field_candidates(field: str) -> ActionCandidates:
    if field == "subject":
        methods = (RemoteMethod(name="setSubject"), RemoteMethod(name="_updateDraft", wrap="subject"))
    elif field == "body":
        methods = (RemoteMethod(name="setBody"), RemoteMethod(name="_updateDraft", wrap="body"))
    else:
        methods = (RemoteMethod(name="_updateDraft", wrap=field, recipients=True),)
    return ActionCandidates(action=f"set_{field}", methods=methods)


FIELD_ACTIONS: dict[str, ActionCandidates] = {f: _field_candidates(f) for f in ("subject", "body", *RECIPIENT_FIELDS)}

SAVE_ACTION = ActionCandidates(
    action="save",
    methods=(RemoteMethod(name="_saveDraftAsync"), RemoteMethod(name="saveDraft")),
)

CLOSE_ACTION = ActionCandidates(
    action="close",
    methods=(RemoteMethod(name="discard"), RemoteMethod(name="_discardDraftAsync"), RemoteMethod(name="close")),
)

SEND_ACTION = ActionCandidates(
    action="send",
    methods=(RemoteMethod(name="_sendDraft"), RemoteMethod(name="sendDraft")),
)
