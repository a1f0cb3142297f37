"""
Code Studio Configuration

Handles environment configuration and the persisted settings file.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


# Server configuration
HOST = os.getenv("CODESTUDIO_HOST", "127.0.0.1")
PORT = int(os.getenv("CODESTUDIO_PORT", "7777"))

# Remote endpoints
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com")
GEMINI_API_URL = os.getenv(
    "GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

# Request timeout in seconds for both remote APIs
REQUEST_TIMEOUT = float(os.getenv("CODESTUDIO_TIMEOUT", "30"))

# Settings file - default to ~/.codestudio/settings.json
# Can be overridden with CODESTUDIO_SETTINGS environment variable
DEFAULT_SETTINGS_PATH = Path.home() / ".codestudio" / "settings.json"
SETTINGS_PATH = Path(os.getenv("CODESTUDIO_SETTINGS", str(DEFAULT_SETTINGS_PATH)))

# Durable keys. Everything else lives in memory only.
GITHUB_TOKEN_KEY = "github_token"
GEMINI_TOKEN_KEY = "gemini_token"
THEME_KEY = "editor_theme"

THEMES = ("light", "dark")


class SettingsStore:
    """
    Persisted credentials and UI preference.

    Holds exactly three keys: the GitHub bearer token, the Gemini API key
    and the editor theme. Values are written through to a JSON file on
    every change.
    """

    def __init__(self, path: Optional[Path] = None, seed_from_env: bool = True):
        self.path = Path(path) if path else SETTINGS_PATH
        self._values: Dict[str, str] = {}
        self._load()

        if seed_from_env:
            # Environment only fills gaps, a stored value wins
            if not self._values.get(GITHUB_TOKEN_KEY) and os.getenv("GITHUB_TOKEN"):
                self._values[GITHUB_TOKEN_KEY] = os.getenv("GITHUB_TOKEN", "")
            if not self._values.get(GEMINI_TOKEN_KEY) and os.getenv("GEMINI_API_KEY"):
                self._values[GEMINI_TOKEN_KEY] = os.getenv("GEMINI_API_KEY", "")

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable settings file {self.path}: {e}")
            return
        if isinstance(data, dict):
            for key in (GITHUB_TOKEN_KEY, GEMINI_TOKEN_KEY, THEME_KEY):
                value = data.get(key)
                if isinstance(value, str) and value:
                    self._values[key] = value

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._values, indent=2), encoding="utf-8")

    @property
    def github_token(self) -> str:
        return self._values.get(GITHUB_TOKEN_KEY, "")

    @property
    def gemini_token(self) -> str:
        return self._values.get(GEMINI_TOKEN_KEY, "")

    @property
    def theme(self) -> str:
        theme = self._values.get(THEME_KEY, "light")
        return theme if theme in THEMES else "light"

    @property
    def tokens_configured(self) -> bool:
        return bool(self.github_token and self.gemini_token)

    def set_tokens(self, github_token: str, gemini_token: str) -> None:
        self._values[GITHUB_TOKEN_KEY] = github_token.strip()
        self._values[GEMINI_TOKEN_KEY] = gemini_token.strip()
        self._write()

    def clear_tokens(self) -> None:
        self._values.pop(GITHUB_TOKEN_KEY, None)
        self._values.pop(GEMINI_TOKEN_KEY, None)
        self._write()

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme: {theme}")
        self._values[THEME_KEY] = theme
        self._write()
