# filechat/models/profile.py
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime
from filechat.models.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, index=True)  # Same id as the auth user
    email = Column(String, unique=True, nullable=False)
    role = Column(String, nullable=False, default="User")  # "User" or "Admin"
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
