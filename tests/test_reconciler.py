from datetime import datetime, timedelta, timezone

import pytest

from conftest import history
from filechat.core.chat.keys import RowKey, SessionKey
from filechat.core.chat.reconciler import SessionReconciler, merge_preserved
from filechat.core.errors import ReconcileError, StoreError
from filechat.models.chat_history import N8nChatHistory
from filechat.schemas.chat import ChatMessage

BASE = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def add_row(db, session_id, minutes=0, message=None, chat_history=None, updated_minutes=None):
    row = N8nChatHistory(
        session_id=session_id,
        message=message,
        chat_history=chat_history,
        created_at=BASE + timedelta(minutes=minutes),
        updated_at=BASE + timedelta(minutes=updated_minutes) if updated_minutes is not None else None,
    )
    db.add(row)
    db.commit()
    return row


def local(content, role="user", session_id="1000_u1"):
    return ChatMessage(id=f"temp_{content}", session_id=session_id, content=content, role=role,
                       created_at=BASE.isoformat())


def test_list_sessions_filters_by_owner_suffix(db, store):
    add_row(db, "1000_u1", 0, message={"type": "human", "content": "first"})
    add_row(db, "2000_u2", 1, message={"type": "human", "content": "other user"})
    add_row(db, "3000_u1", 2, message={"type": "human", "content": "second"})

    sessions = SessionReconciler(store).list_sessions("u1")
    assert [s.id for s in sessions] == ["3000_u1", "1000_u1"]
    assert all(s.user_id == "u1" for s in sessions)


def test_list_sessions_one_entry_per_session_with_latest_row(db, store):
    add_row(db, "1000_u1", 0, message={"type": "human", "content": "early question"})
    add_row(db, "1000_u1", 5, message={"type": "ai", "content": "late answer"})

    sessions = SessionReconciler(store).list_sessions("u1")
    assert len(sessions) == 1
    # latest row is an ai turn, so no user text for the title
    assert sessions[0].name == "Chat 2024-03-01"
    assert sessions[0].updated_at == (BASE + timedelta(minutes=5)).isoformat()


def test_list_sessions_titles_are_truncated(db, store):
    add_row(db, "1000_u1", message={"type": "human", "content": "What was the revenue in the third quarter?"})
    sessions = SessionReconciler(store).list_sessions("u1")
    assert sessions[0].name == "What was the revenue in t..."


def test_list_sessions_skips_malformed_ids(db, store):
    add_row(db, "nounderscore", message={"type": "human", "content": "x"})
    add_row(db, None, message={"type": "human", "content": "y"})
    add_row(db, "1000_u1", message="{not json")

    sessions = SessionReconciler(store).list_sessions("u1")
    assert [s.id for s in sessions] == ["1000_u1"]
    assert sessions[0].name == "Chat 2024-03-01"


def test_list_sessions_is_stable_and_sorted_by_updated_at(db, store):
    add_row(db, "1000_u1", 0, updated_minutes=30)
    add_row(db, "2000_u1", 10)
    add_row(db, "3000_u1", 10)

    reconciler = SessionReconciler(store)
    first = [s.id for s in reconciler.list_sessions("u1")]
    assert first == ["1000_u1", "3000_u1", "2000_u1"]
    assert [s.id for s in reconciler.list_sessions("u1")] == first


def test_list_sessions_raises_when_fetch_fails(store, monkeypatch):
    def broken(session_id=None):
        raise StoreError("connection lost")

    monkeypatch.setattr(store, "fetch_history_rows", broken)
    with pytest.raises(ReconcileError):
        SessionReconciler(store).list_sessions("u1")


def test_exact_rows_are_used_first(db, store):
    add_row(db, "1000_u1", 0, message='{"type":"human","content":"Hi"}')
    add_row(db, "1000_u1", 1, message={"type": "ai", "content": "Hello"})

    resolution = SessionReconciler(store).get_session_messages(SessionKey("1000_u1"), [local("Hi")])
    assert resolution.source == "exact"
    assert [(m.content, m.role) for m in resolution.messages] == [("Hi", "user"), ("Hello", "system")]
    assert resolution.redirect is None


def test_chat_history_of_earliest_exact_row(db, store):
    add_row(db, "1000_u1", 0, chat_history=history({"content": "q", "isUser": True}, {"content": "a"}))
    add_row(db, "1000_u1", 1, chat_history=history({"content": "ignored", "isUser": True}))

    resolution = SessionReconciler(store).get_session_messages(SessionKey("1000_u1"))
    assert resolution.source == "chat_history"
    assert [m.content for m in resolution.messages] == ["q", "a"]


def test_missing_session_falls_back_to_latest_user_row(db, store):
    add_row(db, "1000_u1", 0, chat_history=history({"content": "old", "isUser": True}))
    newest = add_row(db, "5000_u1", 1, chat_history=history({"content": "new", "isUser": True}, {"content": "reply"}))
    add_row(db, "9000_u2", 2, chat_history=history({"content": "not mine", "isUser": True}))

    pending = local("unsent", session_id="7000_u1")
    resolution = SessionReconciler(store).get_session_messages(SessionKey("7000_u1"), [pending])
    assert resolution.source == "fallback"
    assert resolution.redirect == RowKey(str(newest.id))
    assert resolution.session_id == "5000_u1"
    assert [m.content for m in resolution.messages] == ["new", "reply", "unsent"]


def test_row_key_resolves_to_its_session(db, store):
    row = add_row(db, "5000_u1", message={"type": "human", "content": "by row"})
    reconciler = SessionReconciler(store)
    assert reconciler.resolve_session_id(RowKey(str(row.id))) == "5000_u1"
    assert reconciler.resolve_session_id(RowKey("not-a-number")) is None

    resolution = reconciler.get_session_messages(RowKey(str(row.id)))
    assert resolution.session_id == "5000_u1"
    assert resolution.messages[0].content == "by row"


def test_nothing_found_returns_preserved(store):
    pending = [local("waiting")]
    resolution = SessionReconciler(store).get_session_messages(SessionKey("1000_u1"), pending)
    assert resolution.source == "preserved"
    assert resolution.messages == pending


def test_merge_preserved_is_idempotent():
    resolved = [local("Hi"), local("Hello", role="system")]
    preserved = [local("Hi"), local("pending")]
    once = merge_preserved(resolved, preserved)
    assert [m.content for m in once] == ["Hi", "Hello", "pending"]
    assert merge_preserved(once, preserved) == once
