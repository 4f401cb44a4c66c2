"""Static configuration for chat-organizer.

All settings come from environment variables; a .env file in the project
root is loaded first so deployments can keep secrets out of the repo.
"""

import json
import os

from dotenv import load_dotenv

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

load_dotenv(os.path.join(PROJECT_ROOT, ".env"))


def _flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _csv(name: str) -> list[str]:
    raw = os.getenv(name) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


def _json_list(name: str) -> list:
    raw = os.getenv(name)
    if not raw:
        return []
    value = json.loads(raw)
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a JSON list")
    return value


# Where to store the SQLite database.
DB_PATH = os.getenv("DB_PATH") or os.path.join(PROJECT_ROOT, "chat_organizer.db")

# IANA timezone used for filter time windows and forward timestamps.
# Empty means the host's local timezone.
TIMEZONE = os.getenv("TIMEZONE", "")

# Operators allowed to edit filters from chat.
ADMIN_NUMBERS = _csv("ADMIN_NUMBERS")

# Forwarding switches per channel.
FORWARD_ENABLE_CLOUD = _flag("FORWARD_ENABLE_CLOUD")
FORWARD_ENABLE_SESSION = _flag("FORWARD_ENABLE_SESSION")
FORWARD_ENABLE_WEBHOOK = _flag("FORWARD_ENABLE_WEBHOOK")

# Broadcast ("separate chat") destinations. The shared number is the
# fallback for both messaging channels.
FORWARD_SEPARATE_CHAT_NUMBER = os.getenv("FORWARD_SEPARATE_CHAT_NUMBER") or None
FORWARD_CLOUD_SEPARATE_CHAT = os.getenv("FORWARD_CLOUD_SEPARATE_CHAT") or FORWARD_SEPARATE_CHAT_NUMBER
FORWARD_SESSION_SEPARATE_CHAT = os.getenv("FORWARD_SESSION_SEPARATE_CHAT") or FORWARD_SEPARATE_CHAT_NUMBER
FORWARD_WEBHOOK_URL = os.getenv("FORWARD_WEBHOOK_URL") or None

# WhatsApp Cloud API credentials.
WHATSAPP_ACCESS_TOKEN = os.getenv("WHATSAPP_ACCESS_TOKEN") or None
WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID") or None
WHATSAPP_REFRESH_TOKEN = os.getenv("WHATSAPP_REFRESH_TOKEN") or None
WHATSAPP_APP_ID = os.getenv("WHATSAPP_APP_ID") or None
WHATSAPP_APP_SECRET = os.getenv("WHATSAPP_APP_SECRET") or None

# Local session (Telethon) settings. Groups are either all accepted or
# limited to the named ones.
SESSION_ENABLED = _flag("SESSION_ENABLED", default=True)
SESSION_NAME = os.getenv("SESSION_NAME", "chat_organizer")
SESSION_GROUPS_ALL = _flag("SESSION_GROUPS_ALL")
SESSION_GROUPS_LIST = _csv("SESSION_GROUPS_LIST")

# Filters created once at startup when no filter with the same name exists.
DEFAULT_FILTERS = _json_list("DEFAULT_FILTERS")

# Logging configuration.
LOGGING = {
    "enabled": _flag("LOG_ENABLED", default=True),
    "level": os.getenv("LOG_LEVEL", "INFO"),
    "console": _flag("LOG_CONSOLE", default=True),
    "file": {
        "enabled": bool(os.getenv("LOG_FILE")),
        "path": os.getenv("LOG_FILE", "logs/chat_organizer.log"),
        "max_bytes": int(os.getenv("LOG_FILE_MAX_BYTES", str(5 * 1024 * 1024))),
        "backup_count": int(os.getenv("LOG_FILE_BACKUP_COUNT", "5")),
    },
    "redact": {
        "enabled": _flag("LOG_REDACT", default=True),
        "patterns": [
            "WHATSAPP_ACCESS_TOKEN",
            "WHATSAPP_REFRESH_TOKEN",
            "WHATSAPP_APP_SECRET",
            "API_HASH",
            "2FA",
        ],
    },
}
