"""
Configuration for the ghostmessenger CLI.

Manages a JSON config file at ~/.ghostmessenger/config.json that stores:
  - cookies: the last known cookie jar, so `resume` works without a password
  - save_credentials / username / password: opt-in stored login
  - aliases: short names for thread ids
  - script_budget: seconds each sandboxed page script may run
  - session_file: where the bootstrapped session is persisted

Config file format:
    {
        "cookies": [{"name": "c_user", "value": "1000...", ...}],
        "save_credentials": false,
        "username": "",
        "password": "",
        "aliases": {"mum": "100004..."},
        "script_budget": 1.0,
        "session_file": null
    }
"""

import json
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .schemas import CookieRecord

# Config file location, alongside the browser profile in ~/.ghostmessenger/
CONFIG_PATH = Path.home() / ".ghostmessenger" / "config.json"

DEFAULT_CONFIG = {
    "cookies": [],
    "save_credentials": False,
    "username": "",
    "password": "",
    "aliases": {},
    "script_budget": 1.0,
    "session_file": None,
}


def load_config() -> dict:
    """Load config from disk, filling in defaults for anything missing.

    Returns a copy of DEFAULT_CONFIG if the file doesn't exist or can't be
    parsed.
    """
    config = json.loads(json.dumps(DEFAULT_CONFIG))
    if not CONFIG_PATH.exists():
        return config
    try:
        stored = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return config
    if isinstance(stored, dict):
        config.update(stored)
    return config


def save_config(config: dict) -> None:
    """Write config to disk, creating ~/.ghostmessenger/ if needed."""
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text(
        json.dumps(config, indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )


def session_path(config: Optional[dict] = None) -> Path:
    """Where the session is persisted; defaults to session.json beside the config."""
    if config is None:
        config = load_config()
    if config.get("session_file"):
        return Path(config["session_file"]).expanduser()
    return CONFIG_PATH.parent / "session.json"


def get_cookies(config: dict) -> list[CookieRecord]:
    """Saved cookies; malformed entries are dropped."""
    cookies = []
    for raw in config.get("cookies") or []:
        try:
            cookies.append(CookieRecord.model_validate(raw))
        except ValidationError:
            continue
    return cookies


def set_cookies(config: dict, cookies: list[CookieRecord]) -> None:
    config["cookies"] = [c.model_dump() for c in cookies]


def resolve_thread(name: str, config: Optional[dict] = None) -> str:
    """Map an alias to a thread id; unknown names pass through unchanged."""
    if config is None:
        config = load_config()
    return config.get("aliases", {}).get(name, name)
