# filechat/models/file.py
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime
from filechat.models.base import Base


class File(Base):
    __tablename__ = "files"

    id = Column(String, primary_key=True, index=True)  # UUID as string
    user_id = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)  # Object path inside the bucket
    size = Column(Integer, nullable=False, default=0)
    type = Column(String, nullable=True)  # MIME type reported by the client
    storage_path = Column(String, nullable=False)  # Public URL
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
