# filechat/core/chat/reconciler.py
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from filechat.core.chat.keys import RowKey, SessionKey, SessionRef, session_owner, timestamp_rank
from filechat.core.chat.normalizer import (
    normalize_chat_history,
    normalize_records,
    parse_message_field,
)
from filechat.core.errors import ReconcileError, StoreError
from filechat.core.store import SessionStoreClient
from filechat.schemas.chat import ChatMessage, ChatSession, RawHistoryRecord

logger = logging.getLogger(__name__)

TITLE_LENGTH = 25

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class MessageResolution:
    """
    Result of get_session_messages.

    `source` says which branch produced the messages: "exact", "chat_history",
    "fallback" or "preserved". `redirect` is set only for "fallback" and names
    the row the active-session pointer should move to.
    """
    messages: List[ChatMessage]
    source: str
    session_id: Optional[str] = None
    redirect: Optional[RowKey] = None


def merge_preserved(resolved: List[ChatMessage], preserved: List[ChatMessage]) -> List[ChatMessage]:
    """Append preserved messages whose (content, role) pair is not already present."""
    seen = {(m.content, m.role) for m in resolved}
    merged = list(resolved)
    for msg in preserved:
        key = (msg.content, msg.role)
        if key not in seen:
            merged.append(msg)
            seen.add(key)
    return merged


def session_title(record: RawHistoryRecord) -> Optional[str]:
    parsed = parse_message_field(record.message)
    if parsed is None:
        return None
    content, role = parsed
    if role != "user" or not content:
        return None
    if len(content) > TITLE_LENGTH:
        return content[:TITLE_LENGTH] + "..."
    return content


def placeholder_title(created_at: Optional[datetime]) -> str:
    created = created_at or datetime.now(timezone.utc)
    return f"Chat {created.date().isoformat()}"


class SessionReconciler:
    """
    Builds the per-user session list and per-session message timelines from
    the n8n_chat_histories table.
    """

    def __init__(self, store: SessionStoreClient):
        self.store = store

    # ------------------------------------------------------------------
    # sessions
    # ------------------------------------------------------------------

    def list_sessions(self, user_id: str) -> List[ChatSession]:
        try:
            rows = self.store.fetch_history_rows()
        except StoreError as e:
            logger.error("Error fetching chat sessions: %s", e)
            raise ReconcileError(f"Failed to load chat sessions. {e}") from e

        latest: Dict[str, RawHistoryRecord] = {}
        for row in rows:
            if not isinstance(row.session_id, str) or not row.session_id:
                logger.warning("Skipping row %s with no usable session_id", row.id)
                continue
            current = latest.get(row.session_id)
            if current is None or (row.created_at or _EPOCH) >= (current.created_at or _EPOCH):
                latest[row.session_id] = row
        logger.info("Total unique session_ids: %d", len(latest))

        sessions = []
        for session_id, row in latest.items():
            owner = session_owner(session_id)
            if owner is None:
                logger.warning("Session ID does not contain underscore: %s", session_id)
                continue
            if owner != user_id:
                continue
            sessions.append(self._session_from_row(session_id, owner, row))

        sessions.sort(key=lambda s: s.id, reverse=True)
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        logger.info("Filtered sessions count: %d", len(sessions))
        return sessions

    def _session_from_row(self, session_id: str, owner: str, row: RawHistoryRecord) -> ChatSession:
        created_at = row.created_at or datetime.now(timezone.utc)
        updated_at = row.updated_at or created_at
        try:
            messages = normalize_records([row], session_id)
            for msg in messages:
                msg.id = f"{session_id}_initial"
            name = session_title(row) or placeholder_title(created_at)
        except (TypeError, ValueError) as e:
            # one bad row must not blank the whole list
            logger.error("Error creating chat session object for %s: %s", session_id, e)
            messages = []
            name = placeholder_title(created_at)

        return ChatSession(
            id=session_id,
            name=name,
            user_id=owner,
            created_at=created_at.isoformat(),
            updated_at=updated_at.isoformat(),
            messages=messages,
        )

    # ------------------------------------------------------------------
    # messages
    # ------------------------------------------------------------------

    def resolve_session_id(self, ref: SessionRef) -> Optional[str]:
        """The session_id a reference stands for; a RowKey is looked up."""
        if isinstance(ref, SessionKey):
            return ref.value
        row = self.store.get_history_row(ref.value)
        if row is None or not isinstance(row.session_id, str):
            return None
        return row.session_id

    def get_session_messages(self, ref: SessionRef, preserved: Optional[List[ChatMessage]] = None) -> MessageResolution:
        preserved = list(preserved or [])
        session_id = self.resolve_session_id(ref)
        if session_id is None:
            logger.warning("Could not resolve %s to a session id", ref)
            return MessageResolution(messages=preserved, source="preserved")

        exact = self.store.fetch_history_rows(session_id=session_id)
        logger.info("Specific records found for %s: %d", session_id, len(exact))

        if exact:
            messages = normalize_records(exact, session_id)
            if messages:
                return MessageResolution(
                    messages=merge_preserved(messages, preserved),
                    source="exact",
                    session_id=session_id,
                )
            earliest = exact[0]
            messages = normalize_chat_history(earliest.chat_history, session_id, earliest.id)
            if messages:
                return MessageResolution(
                    messages=merge_preserved(messages, preserved),
                    source="chat_history",
                    session_id=session_id,
                )
            logger.info("Exact rows for %s carry no messages", session_id)
            return MessageResolution(messages=preserved, source="preserved", session_id=session_id)

        owner = session_owner(session_id)
        if owner is not None:
            resolution = self.resolve_latest_for_user(owner, preserved)
            if resolution is not None:
                return resolution

        logger.info("No suitable record found for %s, keeping %d local messages", session_id, len(preserved))
        return MessageResolution(messages=preserved, source="preserved", session_id=session_id)

    def resolve_latest_for_user(self, user_id: str, preserved: Optional[List[ChatMessage]] = None) -> Optional[MessageResolution]:
        """
        Messages from the most recent row owned by user_id, taken from that row's
        chat_history. None when there is no such row or its history is empty.
        """
        preserved = list(preserved or [])
        rows = [
            row for row in self.store.fetch_history_rows()
            if session_owner(row.session_id) == user_id
        ]
        logger.info("Records owned by user %s: %d", user_id, len(rows))
        if not rows:
            return None

        latest = max(rows, key=lambda row: (timestamp_rank(row.session_id), row.created_at or _EPOCH))
        messages = normalize_chat_history(latest.chat_history, latest.session_id)
        if not messages:
            return None

        logger.info("Using most recent record %s (session_id %s)", latest.id, latest.session_id)
        return MessageResolution(
            messages=merge_preserved(messages, preserved),
            source="fallback",
            session_id=latest.session_id,
            redirect=RowKey(latest.id),
        )
