"""JSON file task store."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from errors import TaskStoreError
from models import Task

logger = logging.getLogger(__name__)


class JsonTaskStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voicetasks" / "tasks.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def load_all(self) -> list[Task]:
        """Return stored tasks, or an empty list when nothing usable is on disk."""
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to load tasks from %s: %s", self._path, exc)
            return []
        if not isinstance(data, list):
            logger.warning("Ignoring task file %s: expected a list", self._path)
            return []
        return [Task.from_dict(item) for item in data if isinstance(item, dict)]

    def save_all(self, tasks: list[Task]) -> None:
        payload = json.dumps([t.to_dict() for t in tasks], ensure_ascii=False, indent=2)
        try:
            self._path.write_text(payload, encoding="utf-8")
        except OSError as exc:
            raise TaskStoreError(f"failed to save tasks to {self._path}: {exc}") from exc
