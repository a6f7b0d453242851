# filechat/routers/auth.py
import logging

from fastapi import APIRouter, Depends, HTTPException

from filechat.core.chat.reconciler import SessionReconciler
from filechat.core.deps import get_current_profile, get_store
from filechat.core.errors import ReconcileError, StoreError
from filechat.core.store import SessionStoreClient
from filechat.models.profile import Profile
from filechat.schemas.auth import AuthRequest, AuthResponse, ProfileResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=AuthResponse)
def login(payload: AuthRequest, store: SessionStoreClient = Depends(get_store)):
    """
    Receives an email and makes sure a profile exists for it.
    New profiles get the default "User" role.

    Returns the profile along with the user's files and chat sessions, so
    the client can render everything after a single call.
    """
    try:
        profile = store.ensure_profile(payload.email)
        files = store.list_files(profile.id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))

    try:
        sessions = SessionReconciler(store).list_sessions(profile.id)
    except ReconcileError as e:
        # sessions can be reloaded later; do not fail the login over them
        logger.error("Error loading sessions at login: %s", e)
        sessions = []

    return AuthResponse(
        user_id=profile.id,
        email=profile.email,
        role=profile.role,
        files=files,
        sessions=sessions,
    )


@router.get("/me", response_model=ProfileResponse)
def me(profile: Profile = Depends(get_current_profile)):
    """Profile of the caller named by the X-User-Id header."""
    return profile
