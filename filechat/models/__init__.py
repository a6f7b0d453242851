# filechat/models/__init__.py
from filechat.models.base import Base
from filechat.models.file import File
from filechat.models.profile import Profile
from filechat.models.chat_history import N8nChatHistory

__all__ = ["Base", "File", "Profile", "N8nChatHistory"]
