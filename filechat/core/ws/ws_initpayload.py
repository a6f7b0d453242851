# filechat/core/ws/ws_initpayload.py
import logging

from filechat.core.chat.keys import SessionKey
from filechat.core.chat.reconciler import SessionReconciler
from filechat.core.chat.state import ChatState
from filechat.core.errors import AuthError, ReconcileError, StoreError
from filechat.core.store import SessionStoreClient
from filechat.schemas.ws import WsStatePayload

logger = logging.getLogger(__name__)


def build_initial_payload(store: SessionStoreClient, reconciler: SessionReconciler, user_id: str) -> dict:
    """
    Builds the initial data payload for a given user_id:
      1. Checks the profile exists.
      2. Loads the user's sessions and the messages of the most recent one.
      3. Returns a dict with:
         - "state": the ChatState the connection will keep mutating
         - "payload_json": the first state message to send to the client

    If there's an error, returns {"error": "..."}.
    """
    try:
        profile = store.require_profile(user_id)
    except AuthError as e:
        return {"error": str(e)}
    except StoreError as e:
        return {"error": f"Profile lookup failed. {e}"}

    state = ChatState(user_id=profile.id)
    try:
        state.sessions = reconciler.list_sessions(profile.id)
    except ReconcileError as e:
        state.error = str(e)

    if state.sessions:
        first = SessionKey(state.sessions[0].id)
        state.active = first
        try:
            resolution = reconciler.get_session_messages(first)
            state.messages = resolution.messages
            if resolution.redirect is not None:
                state.active = resolution.redirect
        except StoreError as e:
            logger.error("Error loading messages for %s: %s", first.value, e)
            state.error = f"Failed to load chat messages. {e}"

    logger.info("Initial payload for %s: %d sessions, %d messages", user_id, len(state.sessions), len(state.messages))
    payload = WsStatePayload(initial=True, state=state.view())
    return {"state": state, "payload_json": payload.model_dump(mode="json")}
