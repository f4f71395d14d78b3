from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Dict

logger = logging.getLogger(__name__)

GUMROAD_API_BASE = "https://api.gumroad.com/v2"
FETCH_TIMEOUT = 30.0
VERIFY_TIMEOUT = 10.0
DEFAULT_PORT = 8086
DEFAULT_CONFIG_PATH = "config.json"
PLACEHOLDER_TOKEN = "YOUR_GUMROAD_ACCESS_TOKEN_HERE"


def bool_env(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return default


def int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def is_token_configured(token: str | None) -> bool:
    return bool(token) and token != PLACEHOLDER_TOKEN


class TokenStore:
    """Holds the Gumroad access token, persisted as JSON at ``path``."""

    def __init__(self, path: str = DEFAULT_CONFIG_PATH) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._token = ""
        self.reload()

    def reload(self) -> None:
        data: Dict[str, Any] = {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                loaded = json.load(fh)
            if isinstance(loaded, dict):
                data = loaded
        except FileNotFoundError:
            logger.info("No config file at %s; setup required", self.path)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read config %s: %s", self.path, exc)
        token = data.get("gumroad_token")
        with self._lock:
            self._token = token if isinstance(token, str) else ""

    @property
    def token(self) -> str:
        with self._lock:
            return self._token

    def is_configured(self) -> bool:
        return is_token_configured(self.token)

    def save(self, token: str) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        with self._lock:
            with open(self.path, "w", encoding="utf-8") as fh:
                json.dump({"gumroad_token": token}, fh, indent=2)
                fh.write("\n")
            self._token = token
