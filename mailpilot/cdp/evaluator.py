import json
import logging
from typing import Any

from mailpilot.cdp.domains import RuntimeDomain
from mailpilot.cdp.views import EvaluationOutcome

logger = logging.getLogger(__name__)


class RemoteEvaluator:
    """Runs script source in the page and normalizes the result.

    Exceptions thrown by the script come back as
    ``EvaluationOutcome(failed=True, message=...)``. Protocol-level failures
    (bad params, closed socket) still raise from the transport.
    """

    def __init__(self, runtime: RuntimeDomain):
        self._runtime = runtime

    async def evaluate(
        self,
        expression: str,
        *,
        await_promise: bool = False,
        return_by_value: bool = True,
    ) -> EvaluationOutcome:
        """Evaluate ``expression``.

        With ``await_promise`` the response is held back by the page until the
        returned promise settles; a rejection is reported like a throw. With
        ``return_by_value`` only JSON-serializable data survives the trip, so
        scripts must map live objects to plain records themselves.
        """
        response = await self._runtime.evaluate(
            {
                "expression": expression,
                "awaitPromise": await_promise,
                "returnByValue": return_by_value,
            }
        )
        outcome = EvaluationOutcome.from_response(response)
        if outcome.failed:
            logger.debug(f"Remote script failed: {outcome.message}")
        return outcome

    async def call(self, function_source: str, *args: Any, await_promise: bool = False) -> EvaluationOutcome:
        """Evaluate ``(function_source)(*args)`` with args embedded as JSON literals."""
        arg_list = ", ".join(json.dumps(arg) for arg in args)
        return await self.evaluate(f"({function_source})({arg_list})", await_promise=await_promise)

    async def evaluate_value(self, expression: str, *, await_promise: bool = False) -> Any:
        outcome = await self.evaluate(expression, await_promise=await_promise)
        if outcome.failed:
            logger.warning(f"Remote evaluation failed: {outcome.message}")
            return None
        return outcome.value
