# filechat/schemas/chat.py
from datetime import datetime, timezone
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["user", "system", "assistant"]


class RawHistoryRecord(BaseModel):
    """Detached snapshot of one n8n_chat_histories row."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    session_id: Any = None  # Not guaranteed to be a string
    message: Any = None
    chat_history: Any = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]):
        # SQLite hands back naive datetimes even for timezone-aware columns
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class ChatMessage(BaseModel):
    id: str
    session_id: str
    content: str = ""
    role: Role
    created_at: str
    file_reference: Optional[str] = None


class ChatSession(BaseModel):
    id: str
    name: str
    user_id: str
    created_at: str
    updated_at: str
    messages: List[ChatMessage] = []


class SessionListResponse(BaseModel):
    sessions: List[ChatSession]


class SessionMessagesResponse(BaseModel):
    session_id: str
    messages: List[ChatMessage]
    redirect_to: Optional[str] = None


class SendMessageRequest(BaseModel):
    content: str
    session_id: Optional[str] = None


class ChatStateView(BaseModel):
    """What the client renders: the equivalent of the chat panel's state."""
    user_id: Optional[str] = None
    active_session_id: Optional[str] = None
    messages: List[ChatMessage] = []
    sessions: List[ChatSession] = []
    is_loading: bool = False
    error: Optional[str] = None
    phase: str = "idle"
    attempt: int = 0
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
