"""Translation layer between Python calls and the remote application's object graph.

The mail client keeps its open compose windows in
``window.ViewState._composeFormController``, an object keyed by draft key
(``"draft..."``) in creation order. Each controller holds its draft in
``state.draft``. None of this is a published API: paths and method names are
observations, so every script that touches them lives here and nowhere else.
"""

import logging
from typing import Any, Sequence

from mailpilot.cdp.evaluator import RemoteEvaluator
from mailpilot.compose.views import (
    RECIPIENT_FIELDS,
    ActionCandidates,
    DraftState,
    InvocationResult,
    Recipient,
)

logger = logging.getLogger(__name__)

COMPOSE_COMMANDS = ("COMPOSE", "NEW_MESSAGE")
COMPOSE_BUTTON_SELECTOR = ".ThreadListView-compose"

_LIST_KEYS = """() => {
  const cfc = window.ViewState?._composeFormController;
  if (!cfc) return [];
  return Object.keys(cfc).filter(k => k.startsWith('draft'));
}"""

_READ_DRAFT = """(key) => {
  const ctrl = window.ViewState?._composeFormController?.[key];
  if (!ctrl) return null;
  const d = ctrl.state?.draft || {};
  const people = (list) => (list || []).map(r => ({ email: r.email, name: r.name || null }));
  return {
    key,
    id: d.id || null,
    subject: d.subject || '',
    to: people(d.to),
    cc: people(d.cc),
    bcc: people(d.bcc),
    body: typeof d.body === 'string' ? d.body : '',
    dirty: !!d.dirty,
    thread_id: d.threadId || null,
  };
}"""

_GET_FIELD = """(key, field, recipients) => {
  const ctrl = window.ViewState?._composeFormController?.[key];
  if (!ctrl) return { missing: true };
  const value = ctrl.state?.draft?.[field];
  if (recipients) {
    return { missing: false, value: (value || []).map(r => ({ email: r.email, name: r.name || null })) };
  }
  return { missing: false, value: value === undefined ? null : value };
}"""

_INVOKE = """async (key, methods, args) => {
  const ctrl = window.ViewState?._composeFormController?.[key];
  if (!ctrl) return { missing: true, invoked: null };
  const toRecipients = (list) => {
    const Ctor = ctrl.state?.draft?.from?.constructor;
    return (list || []).map(r => {
      const raw = r.name ? `${r.name} <${r.email}>` : r.email;
      const rec = { email: r.email, name: r.name || '', raw };
      return Ctor && Ctor !== Object ? new Ctor(rec) : rec;
    });
  };
  for (const m of methods) {
    if (typeof ctrl[m.name] !== 'function') continue;
    let callArgs = args;
    if (m.recipients) callArgs = [toRecipients(args[0])];
    if (m.wrap) callArgs = [{ [m.wrap]: callArgs[0] }];
    await ctrl[m.name](...callArgs);
    return { missing: false, invoked: m.name };
  }
  return { missing: false, invoked: null };
}"""

_TRIGGER_COMMAND = """(ids, fallbackSelector) => {
  const regions = window.ViewState?.regionalCommands || [];
  for (const region of regions) {
    const cmd = (region?.commands || []).find(c => ids.includes(c.id));
    if (cmd && typeof cmd.action === 'function') {
      cmd.action({ preventDefault: () => {}, stopPropagation: () => {} });
      return cmd.id;
    }
  }
  if (fallbackSelector) {
    const button = document.querySelector(fallbackSelector);
    if (button) {
      button.click();
      return fallbackSelector;
    }
  }
  return null;
}"""

_SELECT_THREAD = """(threadId) => {
  const tree = window.ViewState?.tree;
  if (!tree?.set) return false;
  tree.set(['threadPane', 'threadId'], threadId);
  tree.set(['threadListView', 'threadId'], threadId);
  return true;
}"""


class ComposeSurface:
    """Typed accessors over the remote compose registry.

    Every method is exactly one remote evaluation. Failures inside the page are
    logged and reported as None / ``InvocationResult.error``; transport errors
    propagate.
    """

    def __init__(self, evaluator: RemoteEvaluator):
        self._evaluator = evaluator

    async def list_draft_keys(self) -> list[str] | None:
        """Open draft keys in the application's own creation order."""
        outcome = await self._evaluator.call(_LIST_KEYS)
        if outcome.failed:
            logger.warning(f"Listing compose sessions failed: {outcome.message}")
            return None
        return list(outcome.value or [])

    async def has_draft(self, key: str) -> bool | None:
        """None when the registry could not be read."""
        keys = await self.list_draft_keys()
        if keys is None:
            return None
        return key in keys

    async def read_draft(self, key: str) -> DraftState | None:
        outcome = await self._evaluator.call(_READ_DRAFT, key)
        if outcome.failed:
            logger.warning(f"Reading draft {key} failed: {outcome.message}")
            return None
        if outcome.value is None:
            return None
        return DraftState.model_validate(outcome.value)

    async def get_field(self, key: str, field: str) -> tuple[bool, Any]:
        """Return ``(present, value)``; ``present`` is False when the key is gone.

        Recipient fields come back as a list of ``Recipient``.
        """
        is_recipients = field in RECIPIENT_FIELDS
        outcome = await self._evaluator.call(_GET_FIELD, key, field, is_recipients)
        if outcome.failed:
            logger.warning(f"Reading {field} of {key} failed: {outcome.message}")
            return True, None
        value = outcome.value or {}
        if value.get("missing"):
            return False, None
        if is_recipients:
            return True, [Recipient.model_validate(r) for r in value.get("value") or []]
        return True, value.get("value")

    async def invoke(
        self,
        key: str,
        candidates: ActionCandidates,
        args: Sequence[Any] = (),
        await_promise: bool = True,
    ) -> InvocationResult:
        """Call the first method in ``candidates`` that exists on the draft's controller.

        With ``await_promise`` the call's promise settles remotely before the
        response comes back, so a rejection surfaces as ``error``.
        """
        methods = [m.model_dump() for m in candidates.methods]
        outcome = await self._evaluator.call(_INVOKE, key, methods, list(args), await_promise=await_promise)
        if outcome.failed:
            logger.warning(f"{candidates.action} on {key} raised remotely: {outcome.message}")
            return InvocationResult(error=outcome.message)
        result = InvocationResult.model_validate(outcome.value or {})
        if result.invoked is None and not result.missing:
            logger.warning(f"No {candidates.action} method found on {key}, tried {[m.name for m in candidates.methods]}")
        return result

    async def trigger_command(self, command_ids: Sequence[str], fallback_selector: str | None = None) -> str | None:
        """Run the first registered UI command among ``command_ids``.

        Returns the command id (or the fallback selector when a button was
        clicked instead), or None when nothing could be triggered.
        """
        outcome = await self._evaluator.call(_TRIGGER_COMMAND, list(command_ids), fallback_selector)
        if outcome.failed:
            logger.warning(f"Triggering {list(command_ids)} failed: {outcome.message}")
            return None
        return outcome.value

    async def select_thread(self, thread_id: str) -> bool:
        outcome = await self._evaluator.call(_SELECT_THREAD, thread_id)
        if outcome.failed:
            logger.warning(f"Selecting thread {thread_id} failed: {outcome.message}")
            return False
        return bool(outcome.value)
