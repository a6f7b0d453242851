import json
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from filechat.core.database import init_db
from filechat.core.errors import WebhookError
from filechat.core.logbuffer import LogBuffer
from filechat.core.storage import LocalBucket
from filechat.core.store import SessionStoreClient
from filechat.main import create_app
from filechat.models.chat_history import N8nChatHistory
from filechat.models.profile import Profile
from filechat.schemas.chat import RawHistoryRecord

FAST_POLL = {"max_attempts": 5, "initial_delay": 0, "interval": 0}


class FakeWebhook:
    """
    Stands in for the n8n workflow. `reply` is called with (session_id,
    question) and may write history rows the way the workflow would.
    """

    def __init__(self, reply=None, error=None):
        self.calls = []
        self.reply = reply
        self.error = error

    def submit(self, session_id, question):
        self.calls.append((session_id, question))
        if self.error is not None:
            raise self.error
        if self.reply is not None:
            self.reply(session_id, question)
        return {"text": "Workflow started"}


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def bucket(tmp_path):
    return LocalBucket(str(tmp_path / "storage"), "files", "http://testserver")


@pytest.fixture
def store(db, bucket):
    return SessionStoreClient(db, bucket)


class FakeWorkflow:
    """Writes n8n_chat_histories rows on its own DB session, as the n8n workflow would."""

    def __init__(self, db):
        self.db = db

    def append_history_row(
        self,
        session_id: str,
        message: Any = None,
        chat_history: Any = None,
        user_id: Optional[str] = None,
    ) -> RawHistoryRecord:
        if chat_history is not None and not isinstance(chat_history, str):
            chat_history = json.dumps(chat_history)
        row = N8nChatHistory(session_id=session_id, user_id=user_id, message=message, chat_history=chat_history)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return RawHistoryRecord.model_validate(row)


@pytest.fixture
def workflow(session_factory):
    session = session_factory()
    yield FakeWorkflow(session)
    session.close()


@pytest.fixture
def answering_webhook(workflow):
    def reply(session_id, question):
        workflow.append_history_row(session_id, message={"type": "human", "content": question})
        workflow.append_history_row(session_id, message={"type": "ai", "content": f"Answer to {question}"})

    return FakeWebhook(reply=reply)


@pytest.fixture
def silent_webhook():
    return FakeWebhook()


@pytest.fixture
def failing_webhook():
    return FakeWebhook(error=WebhookError("HTTP error! status: 500", status_code=500))


def add_profile(db, user_id, email, role="User"):
    profile = Profile(id=user_id, email=email, role=role)
    db.add(profile)
    db.commit()
    return profile


def history(*items):
    return json.dumps(list(items))


@pytest.fixture
def make_client(session_factory, bucket):
    clients = []

    def _make(webhook=None, log_buffer=None, poll_settings=None):
        app = create_app(
            session_factory=session_factory,
            bucket=bucket,
            webhook=webhook or FakeWebhook(),
            log_buffer=log_buffer or LogBuffer(50, enabled=False),
            poll_settings=poll_settings or FAST_POLL,
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)
