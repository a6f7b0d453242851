# filechat/routers/ws_router.py
import asyncio
import logging
from typing import Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from filechat.core.chat.controller import SendAndPollController
from filechat.core.chat.reconciler import SessionReconciler
from filechat.core.store import SessionStoreClient
from filechat.core.ws.ws_actions import handle_action
from filechat.core.ws.ws_disconnect import cleanup_on_disconnect
from filechat.core.ws.ws_initpayload import build_initial_payload
from filechat.schemas.chat import ChatStateView
from filechat.schemas.ws import WsStatePayload

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/{user_id}")
async def chat_ws(websocket: WebSocket, user_id: str):
    """
    Main WebSocket handler that:
      1) Loads the user's sessions and latest messages (via build_initial_payload).
      2) Sends the initial state to the client.
      3) Pushes a fresh state message after every change.
      4) Handles incoming actions in a loop.
      5) On disconnect, cancels any poll and releases the DB session.
    """
    await websocket.accept()

    app_state = websocket.app.state
    db: Session = app_state.session_factory()
    store = SessionStoreClient(db, app_state.bucket)
    reconciler = SessionReconciler(store)

    initial_data = build_initial_payload(store, reconciler, user_id)
    if "error" in initial_data:
        await websocket.send_json(initial_data)
        await websocket.close()
        db.close()
        return

    await websocket.send_json(initial_data["payload_json"])

    state = initial_data["state"]
    controller = SendAndPollController(
        state,
        store,
        app_state.webhook,
        reconciler=reconciler,
        **app_state.poll_settings,
    )

    async def push_state(view: ChatStateView):
        try:
            await websocket.send_json(WsStatePayload(state=view).model_dump(mode="json"))
        except (RuntimeError, OSError, WebSocketDisconnect) as e:
            logger.warning("Could not push state to %s: %s", user_id, e)

    unsubscribe = state.subscribe(push_state)
    pending: Set[asyncio.Task] = set()

    try:
        while True:
            raw_data = await websocket.receive_text()
            await handle_action(controller, websocket, raw_data, pending)
    except WebSocketDisconnect:
        await cleanup_on_disconnect(db, user_id, controller, pending, unsubscribe)
