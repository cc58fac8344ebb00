"""Simple JSON-based config store."""

from __future__ import annotations

import json
from pathlib import Path

DEFAULT_HOTKEY = "Key.alt_l"
DEFAULT_LANGUAGE = "en-US"
DEFAULT_WATCHDOG_TIMEOUT_S = 18.0
DEFAULT_MAX_RETRIES = 3


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voicetasks" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        return str(self._read_all().get("api_key", ""))

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_hotkey(self) -> str:
        return str(self._read_all().get("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_language(self) -> str:
        return str(self._read_all().get("language", DEFAULT_LANGUAGE))

    def set_language(self, language: str) -> None:
        self._set("language", language)

    def get_watchdog_timeout_s(self) -> float:
        value = self._read_all().get("watchdog_timeout_s", DEFAULT_WATCHDOG_TIMEOUT_S)
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            return DEFAULT_WATCHDOG_TIMEOUT_S
        return timeout if timeout > 0 else DEFAULT_WATCHDOG_TIMEOUT_S

    def get_max_retries(self) -> int:
        value = self._read_all().get("max_retries", DEFAULT_MAX_RETRIES)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            return DEFAULT_MAX_RETRIES
        return value

    def get_tasks_path(self) -> Path:
        value = self._read_all().get("tasks_path")
        if isinstance(value, str) and value:
            return Path(value).expanduser()
        return self._path.parent / "tasks.json"

    def _set(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
