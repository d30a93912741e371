"""Static configuration for tg-forward.

User-editable settings (rule storage, matching, forwarding target, API,
logging) live in a single JSON file for quick edits without touching Python.
Secrets (Telegram credentials, bot token, API token) come from the
environment or a .env file.
"""

import json
import os

from dotenv import load_dotenv

from core.config import ApiConfig, ForwardConfig, MatcherConfig, RepositoryConfig

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# TGFORWARD_CONFIG lets deployments point at a config file outside the checkout.
CONFIG_PATH = os.getenv("TGFORWARD_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _project_path(path: str) -> str:
    return path if os.path.isabs(path) else os.path.join(PROJECT_ROOT, path)


def _optional_int(value):
    if value in (None, ""):
        return None
    return int(value)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Rule storage backend: "json" (flat file), "sqlite", "mongo" or "memory".
# MONGODB_URI keeps credentials in the connection string out of config.json.
_rules = _CONFIG.get("rules", {})
REPOSITORY = RepositoryConfig(
    backend=_rules.get("backend", "json"),
    path=_project_path(_rules.get("path", "rules.json")),
    uri=os.getenv("MONGODB_URI") or _rules.get("uri") or None,
    database=_rules.get("database", "tgforward"),
    collection=_rules.get("collection", "rules"),
)

# Accent-insensitive matching is on by default; set false to compare accents.
_matching = _CONFIG.get("matching", {})
MATCHER = MatcherConfig(fold_diacritics=bool(_matching.get("fold_diacritics", True)))

# Forwarding method switches adapters without changing core logic.
# - "bot": deliver through the Bot API (requires BOT_API)
# - "client": deliver as the logged-in user
_forward = _CONFIG.get("forward", {})
FORWARD = ForwardConfig(
    method=_forward.get("method", "bot"),
    target_chat_id=_optional_int(_forward.get("target_chat_id")),
    target_username=_forward.get("target_username") or None,
)

_api = _CONFIG.get("api", {})
API = ApiConfig(
    enabled=bool(_api.get("enabled", True)),
    host=_api.get("host", "127.0.0.1"),
    port=int(_api.get("port", 8080)),
    token=os.getenv("API_TOKEN") or None,
)

BOT_TOKEN = os.getenv("BOT_API") or None

# Portable session string produced by `tgforward session`.
SESSION_STRING = os.getenv("SESSION_STRING") or None

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
