# filechat/core/chat/state.py
import inspect
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Union

from filechat.core.chat.keys import SessionRef, format_ref
from filechat.schemas.chat import ChatMessage, ChatSession, ChatStateView


Listener = Callable[[ChatStateView], Union[None, Awaitable[None]]]


class PollPhase(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ChatState:
    """
    Mutable chat state for one connected user: the active session pointer,
    the visible messages and the sidebar sessions.

    Only the controller mutates it; listeners get an immutable ChatStateView
    after every publish().
    """

    def __init__(self, user_id: Optional[str] = None):
        self.user_id = user_id
        self.active: Optional[SessionRef] = None
        self.messages: List[ChatMessage] = []
        self.sessions: List[ChatSession] = []
        self.is_loading = False
        self.busy = False
        self.error: Optional[str] = None
        self.phase = PollPhase.IDLE
        self.attempt = 0
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def view(self) -> ChatStateView:
        return ChatStateView(
            user_id=self.user_id,
            active_session_id=format_ref(self.active),
            messages=list(self.messages),
            sessions=list(self.sessions),
            is_loading=self.is_loading,
            error=self.error,
            phase=self.phase.value,
            attempt=self.attempt,
        )

    async def publish(self) -> None:
        snapshot = self.view()
        for listener in list(self._listeners):
            result = listener(snapshot)
            if inspect.isawaitable(result):
                await result
