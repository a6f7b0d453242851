# filechat/core/chat/controller.py
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from starlette.concurrency import run_in_threadpool

from filechat.core import config
from filechat.core.chat.keys import RowKey, SessionKey, SessionRef, session_owner
from filechat.core.chat.reconciler import MessageResolution, SessionReconciler
from filechat.core.chat.state import ChatState, PollPhase
from filechat.core.errors import ReconcileError, SendRejected, SessionAccessError, StoreError, WebhookError
from filechat.core.store import SessionStoreClient
from filechat.core.webhook import WebhookClient
from filechat.schemas.chat import ChatMessage, ChatSession

# Optimistic messages carry this id prefix until the store confirms them
TEMP_PREFIX = "temp_"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SendAndPollController:
    """
    Drives one user's chat: sends questions to the workflow webhook and polls
    the history table until the answer shows up.

    A send walks the phases
        sending -> awaiting_confirmation (attempt N) -> confirmed | exhausted
    or ends in failed (webhook error) or cancelled (cancel()). The poll runs
    as an asyncio task; at most one exists per controller.
    """

    def __init__(
        self,
        state: ChatState,
        store: SessionStoreClient,
        webhook: WebhookClient,
        reconciler: Optional[SessionReconciler] = None,
        max_attempts: int = config.POLL_MAX_ATTEMPTS,
        initial_delay: float = config.POLL_INITIAL_DELAY,
        interval: float = config.POLL_INTERVAL,
        logger: Optional[logging.Logger] = None,
    ):
        self.state = state
        self.store = store
        self.webhook = webhook
        self.reconciler = reconciler or SessionReconciler(store)
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.interval = interval
        self.log = logger or logging.getLogger(__name__)
        self._poll_task: Optional[asyncio.Task] = None
        self._cancel_requested = False

    # ------------------------------------------------------------------
    # sending
    # ------------------------------------------------------------------

    async def send_message(self, content: str) -> PollPhase:
        state = self.state
        if not content or not content.strip():
            raise SendRejected("Message is empty.")
        if not state.user_id:
            raise SendRejected("No user is signed in.")
        if state.busy:
            raise SendRejected("A message is already being sent.")

        state.busy = True
        self._cancel_requested = False
        try:
            key, is_new = self._target_session()
            optimistic = ChatMessage(
                id=f"{TEMP_PREFIX}{int(time.time() * 1000)}",
                session_id=key.value,
                content=content,
                role="user",
                created_at=_now().isoformat(),
            )
            if is_new:
                self.log.info("No active session, created %s", key.value)
                state.messages = [optimistic]
            else:
                state.messages = state.messages + [optimistic]
            state.phase = PollPhase.SENDING
            state.attempt = 0
            state.error = None
            state.is_loading = True
            await state.publish()

            try:
                await run_in_threadpool(self.webhook.submit, key.value, content)
            except WebhookError as e:
                self.log.error("Error sending message: %s", e)
                state.error = f"Failed to send message. {e}"
                state.phase = PollPhase.FAILED
                return state.phase

            if self._cancel_requested:
                self.log.info("Send to %s cancelled before polling", key.value)
                state.phase = PollPhase.CANCELLED
                return state.phase

            self._poll_task = asyncio.ensure_future(self._poll(key))
            try:
                return await self._poll_task
            except asyncio.CancelledError:
                state.phase = PollPhase.CANCELLED
                if not self._cancel_requested:
                    raise
                self.log.info("Polling for %s cancelled", key.value)
                return state.phase
        finally:
            self._poll_task = None
            state.busy = False
            state.is_loading = False
            await state.publish()

    def cancel(self) -> bool:
        """
        Stop the in-flight send. A poll already running is cancelled; a send
        still waiting on the webhook will not start polling. Returns False when
        nothing was in flight.
        """
        if not self.state.busy:
            return False
        self._cancel_requested = True
        task = self._poll_task
        if task is not None and not task.done():
            task.cancel()
        return True

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def _target_session(self) -> Tuple[SessionKey, bool]:
        state = self.state
        active = state.active
        if isinstance(active, RowKey):
            session_id = self.reconciler.resolve_session_id(active)
            if session_id is not None:
                state.active = SessionKey(session_id)
                return state.active, False
            self.log.warning("Active row %s no longer exists, starting a new session", active.value)
        elif isinstance(active, SessionKey):
            return active, False

        key = SessionKey.new(state.user_id)
        state.sessions = [self._placeholder_session(key)] + state.sessions
        state.active = key
        return key, True

    def _placeholder_session(self, key: SessionKey) -> ChatSession:
        now = _now()
        return ChatSession(
            id=key.value,
            name=f"New Chat {now.date().isoformat()}",
            user_id=self.state.user_id,
            created_at=now.isoformat(),
            updated_at=now.isoformat(),
        )

    def _unconfirmed(self) -> List[ChatMessage]:
        return [
            m for m in self.state.messages
            if m.role == "user" and m.id.startswith(TEMP_PREFIX)
        ]

    # ------------------------------------------------------------------
    # polling
    # ------------------------------------------------------------------

    def _session_exists(self, session_id: str) -> bool:
        rows = self.store.fetch_history_rows()
        self.log.info("%d records in the history table", len(rows))
        return any(row.session_id == session_id for row in rows)

    async def _poll(self, key: SessionKey) -> PollPhase:
        state = self.state
        state.phase = PollPhase.AWAITING_CONFIRMATION

        for attempt in range(1, self.max_attempts + 1):
            await asyncio.sleep(self.initial_delay if attempt == 1 else self.interval)
            state.attempt = attempt
            await state.publish()
            self.log.info("Attempt %d/%d to fetch messages for %s", attempt, self.max_attempts, key.value)

            try:
                if not self._session_exists(key.value):
                    continue
                resolution = self.reconciler.get_session_messages(key, self._unconfirmed())
            except StoreError as e:
                self.log.error("Error reading chat histories: %s", e)
                continue

            self.log.info("Found a record for %s (%s)", key.value, resolution.source)
            self._apply(resolution)
            state.phase = PollPhase.CONFIRMED
            await self.refresh_sessions()
            return state.phase

        self.log.warning("No record for %s after %d attempts", key.value, self.max_attempts)
        try:
            resolution = self.reconciler.resolve_latest_for_user(state.user_id, self._unconfirmed())
        except StoreError as e:
            self.log.error("Error looking up the latest record: %s", e)
            resolution = None
        if resolution is not None:
            self._apply(resolution)
        else:
            self.log.info("Keeping %d local messages", len(state.messages))
        state.phase = PollPhase.EXHAUSTED
        await self.refresh_sessions()
        return state.phase

    def _apply(self, resolution: MessageResolution) -> None:
        self.state.messages = resolution.messages
        if resolution.redirect is not None:
            self.log.info("Redirecting active session to row %s", resolution.redirect.value)
            self.state.active = resolution.redirect

    # ------------------------------------------------------------------
    # sidebar actions
    # ------------------------------------------------------------------

    async def refresh_sessions(self) -> List[ChatSession]:
        state = self.state
        if not state.user_id:
            self.log.warning("No user ID available")
            return state.sessions
        try:
            sessions = self.reconciler.list_sessions(state.user_id)
        except ReconcileError as e:
            state.error = str(e)
            await state.publish()
            return state.sessions

        # keep a locally created session visible until the workflow writes it
        active = state.active
        if isinstance(active, SessionKey) and all(s.id != active.value for s in sessions):
            local = next((s for s in state.sessions if s.id == active.value), None)
            if local is not None:
                sessions = [local] + sessions
        state.sessions = sessions
        await state.publish()
        return sessions

    async def new_session(self) -> SessionKey:
        if not self.state.user_id:
            raise SendRejected("No user is signed in.")
        self.cancel()
        key = SessionKey.new(self.state.user_id)
        self.state.sessions = [self._placeholder_session(key)] + self.state.sessions
        self.state.active = key
        self.state.messages = []
        await self.state.publish()
        return key

    def _require_owned(self, ref: SessionRef) -> None:
        """SessionAccessError unless ref names a session of the current user."""
        session_id = self.reconciler.resolve_session_id(ref)
        if session_id is not None and session_owner(session_id) != self.state.user_id:
            self.log.warning("User %s denied access to session %s", self.state.user_id, session_id)
            raise SessionAccessError("Chat session not found.")

    async def select_session(self, ref: SessionRef, preserved: Optional[List[ChatMessage]] = None) -> MessageResolution:
        state = self.state
        self._require_owned(ref)
        self.cancel()
        self.log.info("Switching to session %s", ref)
        state.active = ref
        state.messages = []
        state.error = None
        state.is_loading = True
        await state.publish()
        try:
            resolution = self.reconciler.get_session_messages(ref, preserved)
            self._apply(resolution)
            return resolution
        except StoreError as e:
            self.log.error("Error fetching session messages: %s", e)
            state.error = f"Failed to load chat messages. {e}"
            return MessageResolution(messages=list(preserved or []), source="preserved")
        finally:
            state.is_loading = False
            await state.publish()

    async def delete_session(self, session_id: str) -> int:
        state = self.state
        self._require_owned(SessionKey(session_id))
        active = state.active
        is_active = isinstance(active, SessionKey) and active.value == session_id
        if is_active:
            self.cancel()
        self.log.info("Attempting to delete session with ID: %s", session_id)
        try:
            count = self.store.delete_history_session(session_id)
        except StoreError as e:
            state.error = f"Failed to delete chat session. {e}"
            await state.publish()
            raise

        if count == 0:
            self.log.warning("Record not found for deletion, ID: %s", session_id)
        state.sessions = [s for s in state.sessions if s.id != session_id]
        if is_active:
            if state.sessions:
                await self.select_session(SessionKey(state.sessions[0].id))
            else:
                state.active = None
                state.messages = []
        await state.publish()
        return count
