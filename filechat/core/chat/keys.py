# filechat/core/chat/keys.py
"""
Session identifiers.

The history table links rows to users only through `session_id`, a string of
the form "<millis>_<userId>". After a fallback match the client may instead be
pointed at a row's own primary key. The two are kept apart as SessionKey and
RowKey so that nothing ever sends a row id to the webhook as a session id.
"""
import time
from dataclasses import dataclass
from typing import Optional, Tuple, Union


def session_owner(session_id) -> Optional[str]:
    """User id encoded after the last underscore, or None when malformed."""
    if not isinstance(session_id, str):
        return None
    head, sep, tail = session_id.rpartition("_")
    if not sep or not head or not tail:
        return None
    return tail


def timestamp_rank(session_id) -> Tuple[int, str]:
    """Sort key for "most recent session": numeric prefix first, then text."""
    prefix = str(session_id).split("_", 1)[0]
    number = int(prefix) if prefix.isdigit() else -1
    return number, prefix


@dataclass(frozen=True)
class SessionKey:
    value: str

    kind = "session"

    @property
    def user_id(self) -> Optional[str]:
        return session_owner(self.value)

    @classmethod
    def new(cls, user_id: str, now_ms: Optional[int] = None) -> "SessionKey":
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return cls(f"{now_ms}_{user_id}")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class RowKey:
    value: str

    kind = "row"

    def __str__(self) -> str:
        return self.value


SessionRef = Union[SessionKey, RowKey]


def parse_ref(raw: str) -> SessionRef:
    """
    Client-facing ids are plain strings; "row:<id>" marks a row key, anything
    else is treated as a session key.
    """
    if raw.startswith("row:"):
        return RowKey(raw[len("row:"):])
    return SessionKey(raw)


def format_ref(ref: Optional[SessionRef]) -> Optional[str]:
    if ref is None:
        return None
    if isinstance(ref, RowKey):
        return f"row:{ref.value}"
    return ref.value
