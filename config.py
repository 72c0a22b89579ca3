"""
Runtime settings, read from the environment with sensible defaults.

Station-wide rotation rules live in a JSON file so operators can tune them
without a redeploy; per-request rules are merged on top.
"""
import json
import logging
import os

from engine.rules import DEFAULT_RULES, merge_rules

logger = logging.getLogger(__name__)

_BASE_DIR = os.path.dirname(os.path.abspath(__file__))

DB_PATH       = os.environ.get("PLAYLIST_DB_PATH", os.path.join(_BASE_DIR, "data", "playlists.db"))
EXPORT_DIR    = os.environ.get("PLAYLIST_EXPORT_DIR", os.path.join(_BASE_DIR, "data", "exports"))
EXPORT_FORMAT = os.environ.get("PLAYLIST_EXPORT_FORMAT", "m3u").lower()
RULES_FILE    = os.environ.get("PLAYLIST_RULES_FILE", os.path.join(_BASE_DIR, "data", "rules.json"))
LOG_LEVEL     = os.environ.get("PLAYLIST_LOG_LEVEL", "INFO").upper()
LOG_FILE      = os.environ.get("PLAYLIST_LOG_FILE")


def load_rules(path: str = None) -> dict:
    """Station rules from the rules file; DEFAULT_RULES when missing or unreadable."""
    path = path or RULES_FILE
    if not os.path.exists(path):
        return {**DEFAULT_RULES}
    try:
        with open(path) as f:
            stored = json.load(f)
        return merge_rules(stored if isinstance(stored, dict) else {})
    except (json.JSONDecodeError, OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable rules file {path}: {e}")
        return {**DEFAULT_RULES}


def save_rules(rules: dict, path: str = None) -> None:
    path = path or RULES_FILE
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w") as f:
        json.dump(rules, f, indent=2)
