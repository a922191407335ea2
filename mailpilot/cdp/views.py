import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Target(BaseModel):
    """A debuggable page as reported by the DevTools ``/json`` listing."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    url: str
    web_socket_debugger_url: str = Field(alias="webSocketDebuggerUrl")
    type: str = "page"
    title: str = ""

    @property
    def display_url(self) -> str:
        return self.url

    @property
    def socket_endpoint(self) -> str:
        return self.web_socket_debugger_url


class TargetMatchRule(BaseModel):
    """How to pick the application's foreground window out of a target listing.

    Patterns are regular expressions searched anywhere in the target URL.
    """

    model_config = ConfigDict(frozen=True)

    url_pattern: str
    exclude_pattern: str | None = "background_page"
    target_type: str | None = "page"

    def matches(self, target: Target) -> bool:
        if self.target_type is not None and target.type != self.target_type:
            return False
        if not re.search(self.url_pattern, target.url):
            return False
        if self.exclude_pattern and re.search(self.exclude_pattern, target.url):
            return False
        return True


class EvaluationOutcome(BaseModel):
    """Result of one ``Runtime.evaluate`` round trip.

    A script that throws (or a promise that rejects) inside the page is a
    normal outcome with ``failed=True``; callers branch on it instead of
    catching exceptions.
    """

    failed: bool = False
    value: Any = None
    message: str | None = None
    stack: str | None = None
    result_type: str | None = None

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> "EvaluationOutcome":
        details = response.get("exceptionDetails")
        if details:
            return cls(failed=True, message=_exception_message(details), stack=_exception_stack(details))

        result = response.get("result") or {}
        return cls(value=result.get("value"), result_type=result.get("type"))


_STACK_FRAME = re.compile(r"^\s+at ")


def _exception_message(details: dict[str, Any]) -> str:
    """The thrown message: ``description`` without its ``"<className>: "`` prefix and stack frames."""
    exception = details.get("exception") or {}
    description = exception.get("description")
    if description:
        lines = []
        for line in description.splitlines():
            if _STACK_FRAME.match(line):
                break
            lines.append(line)
        message = "\n".join(lines)
        class_name = exception.get("className")
        if class_name and message.startswith(f"{class_name}: "):
            message = message[len(class_name) + 2 :]
        elif class_name and message == class_name:
            message = ""
        return message or description.splitlines()[0]
    if "value" in exception:
        return str(exception["value"])
    return details.get("text") or "remote evaluation failed"


def _exception_stack(details: dict[str, Any]) -> str | None:
    exception = details.get("exception") or {}
    return exception.get("description")
