# filechat/schemas/file.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class FileRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    file_path: str
    storage_path: str  # Public URL of the object
    size: int
    type: Optional[str] = None
    user_id: str
    created_at: Optional[datetime] = None


class FileListResponse(BaseModel):
    files: List[FileRecord]


class FileDeleteResponse(BaseModel):
    detail: str
    file_id: str
