"""Retrying automation primitives for the remote compose UI.

The mail client applies changes on its own schedule (re-render cycles,
debounced autosave) and emits nothing we can wait on, so every primitive is a
remote call followed by re-querying until the expected state shows up. Poll
timeouts come back as ``TimeoutExhausted`` values rather than exceptions.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

from mailpilot.cdp.session import CDPSession
from mailpilot.compose.polling import poll_until
from mailpilot.compose.surface import COMPOSE_BUTTON_SELECTOR, COMPOSE_COMMANDS, ComposeSurface
from mailpilot.compose.views import (
    CLOSE_ACTION,
    FIELD_ACTIONS,
    RECIPIENT_FIELDS,
    REPLY_COMMANDS,
    SAVE_ACTION,
    SEND_ACTION,
    DraftField,
    DraftPhase,
    DraftState,
    InvocationResult,
    Recipient,
    TimeoutExhausted,
)
from mailpilot.config import CONFIG
from mailpilot.exceptions import StaleDraftError

logger = logging.getLogger(__name__)


class ComposeAutomation:
    """Open, edit, save and close drafts in the remote application.

    One instance per session. Keys handed out by ``open_compose`` are
    remembered so a later open never reports an already claimed key as new.
    """

    def __init__(
        self,
        surface: ComposeSurface,
        *,
        poll_attempts: int | None = None,
        poll_interval: float | None = None,
        write_retries: int | None = None,
        trigger_retries: int | None = None,
        trigger_backoff: float | None = None,
    ):
        self.surface = surface
        self.poll_attempts = CONFIG.POLL_ATTEMPTS if poll_attempts is None else poll_attempts
        self.poll_interval = CONFIG.POLL_INTERVAL if poll_interval is None else poll_interval
        self.write_retries = CONFIG.WRITE_RETRIES if write_retries is None else write_retries
        self.trigger_retries = CONFIG.TRIGGER_RETRIES if trigger_retries is None else trigger_retries
        self.trigger_backoff = CONFIG.TRIGGER_BACKOFF if trigger_backoff is None else trigger_backoff
        if self.write_retries < 1 or self.trigger_retries < 1:
            raise ValueError("write_retries and trigger_retries must be at least 1")
        self.phases: dict[str, DraftPhase] = {}
        self._claimed: set[str] = set()

    @classmethod
    def for_session(cls, session: CDPSession, **kwargs: Any) -> "ComposeAutomation":
        return cls(ComposeSurface(session.evaluator), **kwargs)

    def phase(self, key: str) -> DraftPhase:
        return self.phases.get(key, DraftPhase.ABSENT)

    # Opening

    async def open_compose(self) -> str | TimeoutExhausted | None:
        """Open a new compose window and return its draft key.

        Returns None when no compose trigger exists in the UI, and
        ``TimeoutExhausted`` when it was triggered but no new key appeared.
        """
        return await self._open_new(
            lambda: self.surface.trigger_command(COMPOSE_COMMANDS, COMPOSE_BUTTON_SELECTOR),
            "new compose session",
        )

    async def open_reply_compose(self, thread_id: str, mode: str = "reply") -> str | TimeoutExhausted | None:
        """Open a reply, reply-all or forward compose window for ``thread_id``.

        Selecting the thread and running the command is retried up to
        ``trigger_retries`` times with exponential backoff. A failed attempt
        opens nothing, so the baseline taken before the first one stays valid.
        """
        if mode not in REPLY_COMMANDS:
            raise ValueError(f"Unknown reply mode {mode!r}, expected one of {sorted(REPLY_COMMANDS)}")

        async def attempt() -> str | None:
            if not await self.surface.select_thread(thread_id):
                logger.warning(f"Could not select thread {thread_id}")
                return None
            # the thread pane re-renders before the command is registered
            await asyncio.sleep(self.poll_interval)
            return await self.surface.trigger_command([REPLY_COMMANDS[mode]])

        async def trigger() -> str | None:
            for n in range(self.trigger_retries):
                triggered = await attempt()
                if triggered is not None:
                    return triggered
                if n < self.trigger_retries - 1:
                    delay = self.trigger_backoff * 2**n
                    logger.info(f"{mode} trigger for {thread_id} failed, retrying in {delay}s")
                    await asyncio.sleep(delay)
            return None

        return await self._open_new(trigger, f"{mode} compose session for {thread_id}")

    async def _open_new(
        self,
        trigger: Callable[[], Awaitable[str | None]],
        description: str,
    ) -> str | TimeoutExhausted | None:
        baseline = await self.surface.list_draft_keys()
        if baseline is None:
            logger.warning(f"Cannot open {description}: compose registry unreadable")
            return None

        triggered = await trigger()
        if triggered is None:
            logger.warning(f"Cannot open {description}: no trigger available")
            return None
        logger.debug(f"Triggered {triggered} for {description}, baseline {baseline}")

        known = set(baseline)

        async def check() -> str | None:
            keys = await self.surface.list_draft_keys()
            if keys is None:
                return None
            fresh = [k for k in keys if k not in known and k not in self._claimed]
            if not fresh:
                return None
            if len(fresh) > 1:
                logger.info(f"{len(fresh)} new draft keys appeared ({fresh}), taking the most recent")
            key = fresh[-1]
            # claim before yielding so a concurrent open cannot pick it too
            self._claimed.add(key)
            return key

        result = await poll_until(
            check,
            attempts=self.poll_attempts,
            interval=self.poll_interval,
            description=description,
        )
        if isinstance(result, TimeoutExhausted):
            logger.warning(str(result))
            return result

        self.phases[result] = DraftPhase.OPEN
        logger.info(f"Opened {description}: {result}")
        return result

    # Mutation

    async def set_field(self, key: str, field: DraftField, value: Any) -> bool:
        """Write ``field`` and confirm it by reading it back.

        The mutation itself is retried when the read-back never matches, since
        the application drops writes that arrive before the compose window
        finished initializing. Returns True once the value is observed.
        """
        if field not in FIELD_ACTIONS:
            raise ValueError(f"Unsupported draft field {field!r}")
        payload, expected = self._normalize(field, value)

        self.phases[key] = DraftPhase.MUTATING
        try:
            for attempt in range(1, self.write_retries + 1):
                result = await self.surface.invoke(key, FIELD_ACTIONS[field], [payload])
                self._check_present(key, result)
                if result.invoked is None and result.error is None:
                    return False

                if result.error is None:
                    confirmed = await poll_until(
                        lambda: self._read_back(key, field, expected),
                        attempts=self.poll_attempts,
                        interval=self.poll_interval,
                        description=f"{field} on {key}",
                    )
                    if confirmed:
                        return True
                else:
                    await asyncio.sleep(self.poll_interval)

                logger.info(f"{field} on {key} not applied (attempt {attempt}/{self.write_retries})")
            return False
        finally:
            if key in self.phases:
                self.phases[key] = DraftPhase.OPEN

    async def set_subject(self, key: str, subject: str) -> bool:
        return await self.set_field(key, "subject", subject)

    async def set_body(self, key: str, body_html: str) -> bool:
        return await self.set_field(key, "body", body_html)

    async def add_recipient(self, key: str, email: str, name: str | None = None, field: str = "to") -> bool:
        if field not in RECIPIENT_FIELDS:
            raise ValueError(f"{field!r} is not a recipient field")
        present, current = await self.surface.get_field(key, field)
        if not present:
            self._mark_absent(key)
            raise StaleDraftError(key)
        current = current or []
        if any(r.email.lower() == email.lower() for r in current):
            return True
        return await self.set_field(key, field, [*current, Recipient(email=email, name=name)])

    def _normalize(self, field: str, value: Any) -> tuple[Any, Any]:
        if field in RECIPIENT_FIELDS:
            if isinstance(value, (str, Recipient, dict)):
                value = [value]
            recipients = [Recipient.coerce(v) for v in value]
            return [r.model_dump() for r in recipients], [r.email.lower() for r in recipients]
        if not isinstance(value, str):
            raise TypeError(f"{field} must be a string")
        return value, value

    async def _read_back(self, key: str, field: str, expected: Any) -> bool | None:
        present, value = await self.surface.get_field(key, field)
        if not present:
            self._mark_absent(key)
            raise StaleDraftError(key)
        if field in RECIPIENT_FIELDS:
            observed = [r.email.lower() for r in value or []]
        else:
            observed = value if value is not None else ""
        return True if observed == expected else None

    # Save / send / close

    async def save_draft(self, key: str) -> bool:
        """Run the draft's save entry point and wait for its promise.

        A settled promise does not prove the draft reached the server: the
        application debounces the network write. Use ``confirm_saved`` when
        that matters.
        """
        self.phases[key] = DraftPhase.SAVING
        result = await self.surface.invoke(key, SAVE_ACTION)
        self._check_present(key, result)
        self.phases[key] = DraftPhase.OPEN
        if result.error:
            logger.warning(f"Saving {key} failed: {result.error}")
        return result.ok

    async def confirm_saved(self, key: str) -> DraftState | TimeoutExhausted:
        """Poll until the application's own dirty flag clears."""

        async def check() -> DraftState | None:
            state = await self._require_state(key)
            if state is None or state.dirty:
                return None
            return state

        result = await poll_until(
            check,
            attempts=self.poll_attempts,
            interval=self.poll_interval,
            description=f"clean dirty flag on {key}",
        )
        if not isinstance(result, TimeoutExhausted):
            self.phases[key] = DraftPhase.SAVED
        return result

    async def send_draft(self, key: str) -> bool:
        result = await self.surface.invoke(key, SEND_ACTION)
        self._check_present(key, result)
        if result.ok:
            self._mark_absent(key)
        elif result.error:
            logger.warning(f"Sending {key} failed: {result.error}")
        return result.ok

    async def close_compose(self, key: str) -> bool:
        """Discard the compose window, trying each known close method in order."""
        self.phases[key] = DraftPhase.CLOSING
        result = await self.surface.invoke(key, CLOSE_ACTION)
        self._check_present(key, result)
        if result.ok:
            self._mark_absent(key)
            return True
        self.phases[key] = DraftPhase.OPEN
        if result.error:
            logger.warning(f"Closing {key} failed: {result.error}")
        return False

    # Reading

    async def get_draft_state(self, key: str | None = None) -> DraftState | None:
        """Snapshot one draft; without a key, the most recently opened one.

        Returns None when no key was given and no draft is open, or when the
        draft could not be read this instant.
        """
        if key is None:
            keys = await self.surface.list_draft_keys()
            if not keys:
                return None
            key = keys[-1]
        return await self._require_state(key)

    async def list_drafts(self) -> list[DraftState]:
        states = []
        for key in await self.surface.list_draft_keys() or []:
            state = await self.surface.read_draft(key)
            if state is not None:
                states.append(state)
        return states

    async def _require_state(self, key: str) -> DraftState | None:
        state = await self.surface.read_draft(key)
        if state is not None:
            return state
        # only a registry that was read and lacks the key proves the draft is gone
        if await self.surface.has_draft(key) is False:
            self._mark_absent(key)
            raise StaleDraftError(key)
        return None

    def _check_present(self, key: str, result: InvocationResult) -> None:
        if result.missing:
            self._mark_absent(key)
            raise StaleDraftError(key)

    def _mark_absent(self, key: str) -> None:
        self.phases.pop(key, None)
        self._claimed.discard(key)


async def compose_draft(
    automation: ComposeAutomation,
    *,
    to: Sequence[str] = (),
    cc: Sequence[str] = (),
    bcc: Sequence[str] = (),
    subject: str = "",
    body_html: str = "",
    save: bool = True,
) -> DraftState | TimeoutExhausted | None:
    """Open a compose window, fill it in and optionally save it.

    Returns the final snapshot, or the falsy result of the step that failed.
    """
    key = await automation.open_compose()
    if not key:
        return key

    steps: list[tuple[DraftField, Any]] = [("to", list(to)), ("cc", list(cc)), ("bcc", list(bcc))]
    steps += [("subject", subject), ("body", body_html)]
    for field, value in steps:
        if not value:
            continue
        if not await automation.set_field(key, field, value):
            logger.warning(f"Could not set {field} on {key}")
            return None

    if save:
        if not await automation.save_draft(key):
            return None
        return await automation.confirm_saved(key)
    return await automation.get_draft_state(key)
