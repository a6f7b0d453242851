# filechat/core/ws/ws_actions.py
import asyncio
import json
import logging
from typing import Set

from fastapi import WebSocket
from pydantic import ValidationError

from filechat.core.chat.controller import SendAndPollController
from filechat.core.chat.keys import parse_ref
from filechat.core.errors import FileChatError, SessionAccessError, StoreError
from filechat.schemas.ws import WsAction, WsErrorPayload

logger = logging.getLogger(__name__)


async def send_error(websocket: WebSocket, error: str, **detail) -> None:
    payload = WsErrorPayload(error=error, detail=detail or None)
    await websocket.send_json(payload.model_dump(mode="json"))


async def handle_action(
    controller: SendAndPollController,
    websocket: WebSocket,
    raw_data: str,
    pending: Set[asyncio.Task],
):
    """
    Reads raw_data, parses JSON, checks 'action' key, and calls the appropriate
    controller operation. State changes reach the client through the state
    listener; only errors are answered here directly.

    send_message runs in the background so that a later "cancel" on the same
    socket can still be received while the poll is waiting.
    """
    try:
        message_data = json.loads(raw_data)
    except ValueError:
        message_data = None

    if not isinstance(message_data, dict) or "action" not in message_data:
        await send_error(websocket, "Expected a JSON object with an 'action' key.")
        return

    try:
        data = WsAction.model_validate(message_data)
    except ValidationError as e:
        await send_error(websocket, "Invalid action payload.", errors=e.errors(include_url=False, include_context=False))
        return

    action = data.action
    if action == "send_message":
        task = asyncio.ensure_future(_run_send(controller, websocket, data.content or ""))
        pending.add(task)
        task.add_done_callback(pending.discard)
    elif action == "new_session":
        await controller.new_session()
    elif action == "select_session":
        if not data.session_id:
            await send_error(websocket, "Missing session_id.")
            return
        try:
            await controller.select_session(parse_ref(data.session_id))
        except SessionAccessError as e:
            await send_error(websocket, str(e), session_id=data.session_id)
        except StoreError as e:
            await send_error(websocket, f"Failed to load chat messages. {e}")
    elif action == "delete_session":
        if not data.session_id:
            await send_error(websocket, "Missing session_id.")
            return
        try:
            await controller.delete_session(data.session_id)
        except SessionAccessError as e:
            await send_error(websocket, str(e), session_id=data.session_id)
        except StoreError as e:
            await send_error(websocket, f"Failed to delete chat session. {e}")
    elif action == "refresh_sessions":
        await controller.refresh_sessions()
    elif action == "cancel":
        if not controller.cancel():
            await send_error(websocket, "Nothing to cancel.")
    else:
        await send_error(websocket, f"Unknown action: {action}")


async def _run_send(controller: SendAndPollController, websocket: WebSocket, content: str) -> None:
    try:
        await controller.send_message(content)
    except FileChatError as e:
        logger.info("Send rejected: %s", e)
        await send_error(websocket, str(e))
