# filechat/models/chat_history.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, JSON, DateTime
from filechat.models.base import Base


class N8nChatHistory(Base):
    """
    Row of the table the n8n workflow writes to. FileChat does not own this
    schema: a row carries either one chat turn in `message` or a whole
    transcript in `chat_history`, and `session_id` is "<millis>_<userId>".
    """
    __tablename__ = "n8n_chat_histories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, index=True, nullable=True)
    user_id = Column(String, nullable=True)
    message = Column(JSON, nullable=True)  # object, or a JSON-encoded string
    chat_history = Column(Text, nullable=True)  # JSON-encoded array
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True)
