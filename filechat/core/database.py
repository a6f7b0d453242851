# filechat/core/database.py

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from filechat.models import Base
from filechat.core.config import DATABASE_URL


def make_engine(url: str = DATABASE_URL, **kwargs):
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})  # only needed for SQLite
    return create_engine(url, **kwargs)


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)


def get_db(request: Request):
    """
    Yields a database session for FastAPI dependencies, from the session
    factory the app was built with.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
