# filechat/core/deps.py
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from filechat.core.chat.reconciler import SessionReconciler
from filechat.core.database import get_db
from filechat.core.errors import AuthError, StoreError
from filechat.core.store import SessionStoreClient
from filechat.models.profile import Profile


def get_store(request: Request, db: Session = Depends(get_db)) -> SessionStoreClient:
    return SessionStoreClient(db, request.app.state.bucket)


def get_reconciler(store: SessionStoreClient = Depends(get_store)) -> SessionReconciler:
    return SessionReconciler(store)


def get_current_profile(
    x_user_id: Optional[str] = Header(default=None),
    store: SessionStoreClient = Depends(get_store),
) -> Profile:
    """
    Resolve the caller from the X-User-Id header. A missing or unknown id is
    a 401 so the client signs in again.
    """
    try:
        return store.require_profile(x_user_id)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
