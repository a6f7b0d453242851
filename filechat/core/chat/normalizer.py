# filechat/core/chat/normalizer.py
"""
Turns n8n_chat_histories rows into ChatMessage objects.

A row encodes either one turn in `message` ({"type": "human"|"ai", "content": ...},
possibly JSON-encoded) or a whole transcript in `chat_history` (a JSON array of
loosely shaped objects). Nothing here raises on bad data.
"""
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from filechat.schemas.chat import ChatMessage, RawHistoryRecord

logger = logging.getLogger(__name__)

_ROLE_ALIASES = {
    "user": "user",
    "human": "user",
    "system": "system",
    "ai": "system",
    "assistant": "assistant",
}


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else _now_iso()


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def parse_message_field(message: Any) -> Optional[Tuple[str, str]]:
    """
    (content, role) for a row's `message` field, or None when it is empty.

    Objects are read directly, strings are parsed as JSON. A string that is not
    a JSON object is kept as literal content with role "system".
    """
    if message is None or message == "":
        return None
    if isinstance(message, str):
        try:
            parsed = json.loads(message)
        except ValueError:
            logger.warning("Failed to parse message as JSON, using raw string")
            return message, "system"
        if not isinstance(parsed, dict):
            return message, "system"
        message = parsed
    if isinstance(message, dict):
        role = "user" if message.get("type") == "human" else "system"
        return _as_text(message.get("content")), role
    return _as_text(message), "system"


def normalize_record(record: RawHistoryRecord, session_id: str, index: int) -> Optional[ChatMessage]:
    """Message for one row via its `message` field; None if the row has none."""
    parsed = parse_message_field(record.message)
    if parsed is None:
        return None
    content, role = parsed

    message_id = f"{session_id}_{record.id}_{index}"
    if role == "system":
        # the same row is re-normalized on every poll
        message_id = f"{message_id}_system_{time.time_ns()}"

    return ChatMessage(
        id=message_id,
        session_id=session_id,
        content=content,
        role=role,
        created_at=_iso(record.created_at),
    )


def normalize_records(records: List[RawHistoryRecord], session_id: str) -> List[ChatMessage]:
    """Rows sorted oldest first, each through normalize_record."""
    ordered = sorted(enumerate(records), key=lambda pair: (pair[1].created_at or _EPOCH, pair[0]))
    messages = []
    for index, (_, record) in enumerate(ordered):
        msg = normalize_record(record, session_id, index)
        if msg is not None:
            messages.append(msg)
    return messages


def load_chat_history(raw: Any) -> List[Any]:
    """Decode a `chat_history` value into a list; anything unusable gives []."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            logger.error("Error parsing chat_history: %s", e)
            return []
    if not isinstance(raw, list):
        logger.warning("Chat history is not an array: %s", type(raw).__name__)
        return []
    return raw


def _history_role(item: dict) -> str:
    explicit = item.get("role")
    if isinstance(explicit, str) and explicit:
        return _ROLE_ALIASES.get(explicit.lower(), "system")
    return "user" if item.get("isUser") else "system"


def normalize_chat_history(raw: Any, session_id: str, row_id: Optional[str] = None) -> List[ChatMessage]:
    """
    One message per array element, in array order.

    Falsy elements become empty "user" placeholders so positions stay stable.
    """
    items = load_chat_history(raw)
    prefix = f"{session_id}_{row_id}" if row_id is not None else session_id

    messages = []
    for index, item in enumerate(items):
        message_id = f"{prefix}_{index}"
        if item is None or (not item and not isinstance(item, (dict, list))):
            logger.warning("Empty message at index %d", index)
            messages.append(ChatMessage(
                id=message_id,
                session_id=session_id,
                content="",
                role="user",
                created_at=_now_iso(),
            ))
            continue

        if not isinstance(item, dict):
            item = {"content": item}

        content = item.get("content") or item.get("message") or ""
        timestamp = item.get("timestamp")
        reference = item.get("file_reference") or item.get("fileReference")
        messages.append(ChatMessage(
            id=message_id,
            session_id=session_id,
            content=_as_text(content),
            role=_history_role(item),
            created_at=str(timestamp) if timestamp else _now_iso(),
            file_reference=str(reference) if reference else None,
        ))
    return messages
