# filechat/schemas/ws.py
from typing import Any, Dict, Optional

from pydantic import BaseModel

from filechat.schemas.chat import ChatStateView


class WsAction(BaseModel):
    action: str  # send_message | new_session | select_session | delete_session | refresh_sessions | cancel
    content: Optional[str] = None
    session_id: Optional[str] = None


class WsStatePayload(BaseModel):
    type: str = "state"
    initial: bool = False
    state: ChatStateView


class WsErrorPayload(BaseModel):
    type: str = "error"
    error: str
    detail: Optional[Dict[str, Any]] = None
