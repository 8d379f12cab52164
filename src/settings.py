"""Static configuration for triagedesk.

Runtime limits, channel aliases and logging live in a single JSON file for
quick edits without touching Python. Filter settings (monitored channels,
blocked senders, content rules, mode) are stored separately because the
application itself rewrites them.
"""

import json
import os

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# config.json sits in the project root unless TRIAGEDESK_CONFIG points elsewhere.
CONFIG_PATH = os.getenv("TRIAGEDESK_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(os.path.dirname(os.path.abspath(CONFIG_PATH)), path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Queue and reconciliation limits for the triage session.
# - MAX_MESSAGES: cap applied to the global and every per-channel queue
# - RECONCILE_INTERVAL_SECONDS: pause monitor cadence in assist mode
# - MESSAGE_TTL_HOURS: queued items older than this are dropped (0 = never)
_triage = _CONFIG.get("triage", {})
MAX_MESSAGES = int(_triage.get("max_messages", 100))
RECONCILE_INTERVAL_SECONDS = float(_triage.get("reconcile_interval_seconds", 10))
MESSAGE_TTL_HOURS = float(_triage.get("message_ttl_hours", 24))

# Filter settings document written by `settings mode` and the live session.
FILTER_SETTINGS_PATH = _resolve_path(_CONFIG.get("filter_settings_path", "filter_settings.json"))

# Display names for channel ids, keyed by the marked chat id string.
CHANNEL_ALIASES = {str(key): str(value) for key, value in _CONFIG.get("aliases", {}).items()}

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
