# filechat/core/config.py
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./filechat.db")

# Public object URLs look like <PUBLIC_BASE_URL>/storage/v1/object/public/<bucket>/<path>
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
STORAGE_DIRECTORY = os.getenv("STORAGE_DIRECTORY", str(BASE_DIR / "uploads"))
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "files")
STORAGE_PREFIX = os.getenv("STORAGE_PREFIX", "Earnings")

# n8n workflow that answers questions and writes n8n_chat_histories rows
N8N_WEBHOOK_URL = os.getenv("N8N_WEBHOOK_URL", "")
N8N_AUTH_TOKEN = os.getenv("N8N_AUTH_TOKEN", "")
WEBHOOK_TIMEOUT = float(os.getenv("WEBHOOK_TIMEOUT", "30"))

ENABLE_LOGS = _env_bool("ENABLE_LOGS")
LOG_BUFFER_CAPACITY = int(os.getenv("LOG_BUFFER_CAPACITY", "50"))

POLL_MAX_ATTEMPTS = int(os.getenv("POLL_MAX_ATTEMPTS", "5"))
POLL_INITIAL_DELAY = float(os.getenv("POLL_INITIAL_DELAY", "2.0"))
POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "1.0"))

DEFAULT_ROLE = "User"
ELEVATED_ROLES = ("Admin",)
USER_UPLOAD_LIMIT_KB = int(os.getenv("USER_UPLOAD_LIMIT_KB", "200"))
