# filechat/routers/chat.py
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from filechat.core.chat.controller import SendAndPollController
from filechat.core.chat.keys import SessionKey, format_ref, parse_ref, session_owner
from filechat.core.chat.reconciler import SessionReconciler
from filechat.core.chat.state import ChatState, PollPhase
from filechat.core.deps import get_current_profile, get_reconciler, get_store
from filechat.core.errors import ReconcileError, SendRejected, StoreError
from filechat.core.store import SessionStoreClient
from filechat.models.profile import Profile
from filechat.schemas.chat import (
    ChatSession,
    ChatStateView,
    SendMessageRequest,
    SessionListResponse,
    SessionMessagesResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_owner(session_id: str, profile: Profile) -> None:
    if session_owner(session_id) != profile.id:
        raise HTTPException(status_code=404, detail="Chat session not found.")


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    profile: Profile = Depends(get_current_profile),
    reconciler: SessionReconciler = Depends(get_reconciler),
):
    """
    The caller's chat sessions, most recently updated first. One entry per
    distinct session_id in the history table.
    """
    try:
        return SessionListResponse(sessions=reconciler.list_sessions(profile.id))
    except ReconcileError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/sessions", response_model=ChatSession, status_code=201)
def create_session(profile: Profile = Depends(get_current_profile)):
    """
    Allocate a new session id for the caller.

    Nothing is written: the session only appears in GET /sessions once the
    workflow has stored its first row.
    """
    key = SessionKey.new(profile.id)
    now = datetime.now(timezone.utc)
    return ChatSession(
        id=key.value,
        name=f"New Chat {now.date().isoformat()}",
        user_id=profile.id,
        created_at=now.isoformat(),
        updated_at=now.isoformat(),
    )


@router.get("/sessions/{session_id}/messages", response_model=SessionMessagesResponse)
def get_session_messages(
    session_id: str,
    profile: Profile = Depends(get_current_profile),
    reconciler: SessionReconciler = Depends(get_reconciler),
):
    """
    Messages of one session. `session_id` may also be a "row:<id>" reference
    returned earlier in `redirect_to`.

    - **redirect_to**: set when no rows matched and the caller's most recent
      session was used instead; the client should switch to it.
    """
    ref = parse_ref(session_id)
    if isinstance(ref, SessionKey):
        _check_owner(ref.value, profile)
    try:
        resolution = reconciler.get_session_messages(ref)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load chat messages. {e}")
    if resolution.session_id is not None:
        _check_owner(resolution.session_id, profile)
    return SessionMessagesResponse(
        session_id=resolution.session_id or session_id,
        messages=resolution.messages,
        redirect_to=format_ref(resolution.redirect),
    )


@router.delete("/sessions/{session_id}")
def delete_session(
    session_id: str,
    profile: Profile = Depends(get_current_profile),
    store: SessionStoreClient = Depends(get_store),
):
    """
    Delete every history row of a session.
    """
    _check_owner(session_id, profile)
    try:
        count = store.delete_history_session(session_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete chat session. {e}")
    return {"detail": "Chat session deleted.", "session_id": session_id, "deleted_rows": count}


@router.post("/messages", response_model=ChatStateView)
async def send_message(
    payload: SendMessageRequest,
    request: Request,
    profile: Profile = Depends(get_current_profile),
    store: SessionStoreClient = Depends(get_store),
):
    """
    Send a question and wait for the answer.

    Runs the full send-and-poll cycle in this request and returns the final
    chat state. `phase` is "confirmed", or "exhausted" when no row showed
    up in time (local messages are kept). A webhook failure is a 502.

    - **session_id**: omit to start a new session.
    """
    app_state = request.app.state
    reconciler = SessionReconciler(store)
    state = ChatState(user_id=profile.id)

    if payload.session_id:
        ref = parse_ref(payload.session_id)
        session_id: Optional[str] = reconciler.resolve_session_id(ref)
        if session_id is None:
            raise HTTPException(status_code=404, detail="Chat session not found.")
        _check_owner(session_id, profile)
        state.active = SessionKey(session_id)
        try:
            resolution = reconciler.get_session_messages(state.active)
        except StoreError as e:
            logger.error("Error loading messages for %s: %s", session_id, e)
        else:
            # a fallback resolution belongs to another session
            if resolution.source in ("exact", "chat_history"):
                state.messages = resolution.messages

    controller = SendAndPollController(
        state,
        store,
        app_state.webhook,
        reconciler=reconciler,
        **app_state.poll_settings,
    )
    try:
        await controller.send_message(payload.content)
    except SendRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    if state.phase == PollPhase.FAILED:
        raise HTTPException(status_code=502, detail=state.error)
    return state.view()
