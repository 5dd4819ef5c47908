from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

# --- Configuration ---
NEWS_API_BASE = "https://newsapi.org/v2"
RELAY_URL = "https://api.allorigins.win/get"
HTTP_TIMEOUT = 15
PAGE_SIZE = 50
DEFAULT_COUNTRY = "us"
DEFAULT_LANGUAGE = "en"
SEARCH_LOOKBACK_HOURS = 24
REMOVED_SENTINEL = "[Removed]"

API_KEY_ENV = "NEWS_API_KEY"

CONFIG_DIR = os.path.expanduser("~/.config/newsspeak")
CONFIG_PATH = os.path.join(CONFIG_DIR, "config.json")
STORAGE_DIR = os.path.join(CONFIG_DIR, "storage")
BOOKMARKS_KEY = "newsBookmarks"

REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:115.0) "
        "Gecko/20100101 Firefox/115.0"
    ),
    "Accept": "application/json",
}

# Voice names tried in order when picking a narration voice.
PREFERRED_VOICES = [
    "Samantha",
    "Victoria",
    "Allison",
    "Ava",
    "Susan",
    "Vicki",
    "Microsoft Zira",
    "Microsoft Hazel",
    "Google UK English Female",
    "Google US English Female",
    "Karen",
    "Moira",
    "Tessa",
    "Veena",
    "Female",
    "Woman",
]

DEFAULT_CONFIG: Dict[str, Any] = {
    "api_key": "",
    "country": DEFAULT_COUNTRY,
    "language": DEFAULT_LANGUAGE,
    "relay_url": RELAY_URL,
    "theme": "textual-dark",
    "default_category": None,
    "narration": {
        "preferred_voices": PREFERRED_VOICES,
        "rate": 0.9,
        "volume": 0.8,
    },
    "share_command": None,
}

# Default UI settings
UI_DEFAULTS = {
    "statusbar_keybindings": (
        "[b {color}]/[/] search  [b {color}]v[/] voice  [b {color}]t[/] listen  "
        "[b {color}]b[/] bookmark  [b {color}]o[/] sort"
    ),
}

# --- Logging ---
logger = logging.getLogger("newsspeak")


def setup_logging(debug: bool = False) -> Optional[str]:
    """Configure logging."""
    if not debug:
        logging.basicConfig(level=logging.CRITICAL, handlers=[logging.NullHandler()])
        return None

    ts = datetime.now().strftime("%Y%m%dT%H%M%S")
    pid = os.getpid()
    debug_path = f"/tmp/newsspeak_debug_{ts}_{pid}.log"

    logging.basicConfig(
        level=logging.DEBUG,
        filename=debug_path,
        filemode="a",
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    logger.debug("Debug logging enabled to %s", debug_path)
    return debug_path


def ensure_config_file_exists(path: str = CONFIG_PATH) -> None:
    """Write the default config file if the user's config file is not found."""
    if os.path.exists(path):
        return
    logger.info("Config file not found at %s, creating default.", path)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            json.dump(DEFAULT_CONFIG, f, indent=2)
    except (IOError, OSError) as e:
        logger.error("Failed to create default config file: %s", e)


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load the main configuration file, layered over the defaults."""
    ensure_config_file_exists(path)
    config = json.loads(json.dumps(DEFAULT_CONFIG))
    try:
        with open(path, "r") as f:
            user_config = json.load(f)
        logger.info("Loaded config from %s", path)
    except (IOError, json.JSONDecodeError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        return config

    if not isinstance(user_config, dict):
        logger.warning("Ignoring config at %s: expected a JSON object", path)
        return config

    for key, value in user_config.items():
        if isinstance(value, dict) and isinstance(config.get(key), dict):
            config[key].update(value)
        else:
            config[key] = value
    return config


def save_config(config: Dict[str, Any], path: str = CONFIG_PATH) -> None:
    """Save the main configuration file."""
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            json.dump(config, f, indent=2)
        logger.info("Saved config to %s", path)
    except IOError as e:
        logger.error("Failed to save config to %s: %s", path, e)


def resolve_api_key(config: Dict[str, Any]) -> str:
    """Return the NewsAPI key from the environment, falling back to the config file."""
    key = os.environ.get(API_KEY_ENV) or config.get("api_key") or ""
    if not key:
        logger.warning(
            "No NewsAPI key configured; set %s or api_key in %s", API_KEY_ENV, CONFIG_PATH
        )
    return key
