# filechat/core/chat/__init__.py
from .controller import SendAndPollController, TEMP_PREFIX
from .keys import RowKey, SessionKey, parse_ref, format_ref
from .reconciler import MessageResolution, SessionReconciler
from .state import ChatState, PollPhase

__all__ = [
    "ChatState",
    "MessageResolution",
    "PollPhase",
    "RowKey",
    "SendAndPollController",
    "SessionKey",
    "SessionReconciler",
    "TEMP_PREFIX",
    "format_ref",
    "parse_ref",
]
