# filechat/schemas/debug.py
from typing import List

from pydantic import BaseModel


class LogEntryResponse(BaseModel):
    message: str
    type: str  # info | warn | error
    timestamp: str


class LogListResponse(BaseModel):
    enabled: bool
    capacity: int
    logs: List[LogEntryResponse]
