"""Static configuration for teledigest.

All user-editable settings (filter policy, storage, digest, retries, logging)
live in a single JSON file for quick edits without touching Python. Secrets
stay in .env and are read by the modules that need them.
"""

import json
import os
from typing import Optional

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Filter mode, storage paths and digest settings are loaded from config.json
# so users can switch modes or move the logs without editing code.
CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    """Resolve relative paths against the project root."""

    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


def _optional_float(value) -> Optional[float]:
    if value in (None, "", 0):
        return None
    return float(value)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Filter policy section, converted into a FilterPolicy by the app layer.
# - mode: smart, dm_only, no_channels, super_strict, exclude_keywords,
#   exclude_folders or allowlist
FILTER = _CONFIG.get("filter", {})
FILTER_MODE = str(FILTER.get("mode", "smart"))

# Daily JSON logs and digest reports.
_storage = _CONFIG.get("storage", {})
LOG_DIR = _resolve_path(_storage.get("log_dir", "logs"))
LOG_PREFIX = _storage.get("log_prefix", "telegram-log")
REPORTS_DIR = _resolve_path(_storage.get("reports_dir", "reports"))

# Digest window and summarizer call settings.
_digest = _CONFIG.get("digest", {})
DIGEST_DAYS = int(_digest.get("days", 7))
DIGEST_MODEL = _digest.get("model", "deepseek-chat")
DIGEST_TIMEOUT_SECONDS = float(_digest.get("timeout_seconds", 30))
INCLUDE_ARCHIVED = bool(_digest.get("include_archived", False))
FETCH_DELAY_SECONDS = float(_digest.get("fetch_delay_seconds", 0.1))
FETCH_LIMIT_PER_CHAT = int(_digest.get("fetch_limit_per_chat", 200))

# Retry policy for platform lookups.
_retry = _CONFIG.get("retry", {})
RETRY_MAX_ATTEMPTS = int(_retry.get("max_attempts", 3))
RETRY_INITIAL_DELAY = float(_retry.get("initial_delay_seconds", 1.0))
RETRY_BACKOFF_FACTOR = float(_retry.get("backoff_factor", 1.5))

# In-memory cache bounds for a single run.
# - high_water_mark: dedup keys kept before the oldest half is evicted
# - ttl_seconds: entity cache lifetime, 0 or missing keeps entries for the run
DEDUP_HIGH_WATER_MARK = int(_CONFIG.get("dedup", {}).get("high_water_mark", 10000))
LOOKUP_TTL_SECONDS = _optional_float(_CONFIG.get("lookup", {}).get("ttl_seconds"))

# Diagnostic toggles; they never change filtering decisions.
_debug = _CONFIG.get("debug", {})
DEBUG_FILTERING = bool(_debug.get("filtering", False))
DEBUG_FETCHING = bool(_debug.get("fetching", False))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
