# filechat/schemas/auth.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr

from filechat.schemas.file import FileRecord
from filechat.schemas.chat import ChatSession


class AuthRequest(BaseModel):
    email: EmailStr


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: EmailStr
    role: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    user_id: str
    email: EmailStr
    role: str
    files: List[FileRecord] = []
    sessions: List[ChatSession] = []
