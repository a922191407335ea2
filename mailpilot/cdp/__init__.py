from mailpilot.cdp.domains import InputDomain, NetworkDomain, PageDomain, RuntimeDomain
from mailpilot.cdp.evaluator import RemoteEvaluator
from mailpilot.cdp.events import EventBus
from mailpilot.cdp.session import CDPSession, connect, disconnect
from mailpilot.cdp.targets import find_primary_target, list_targets, select_primary_target
from mailpilot.cdp.transport import CDPTransport
from mailpilot.cdp.views import EvaluationOutcome, Target, TargetMatchRule

__all__ = [
    "CDPSession",
    "CDPTransport",
    "EvaluationOutcome",
    "EventBus",
    "InputDomain",
    "NetworkDomain",
    "PageDomain",
    "RemoteEvaluator",
    "RuntimeDomain",
    "Target",
    "TargetMatchRule",
    "connect",
    "disconnect",
    "find_primary_target",
    "list_targets",
    "select_primary_target",
]
