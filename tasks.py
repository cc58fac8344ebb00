"""Task list operations."""

from __future__ import annotations

import math
from dataclasses import replace

from models import Task

FILTER_MODES = ("all", "active", "completed")
SORT_MODES = ("created", "dueAsc", "dueDesc")


def build_voice_tasks(titles: list[str], now_ms: int) -> list[Task]:
    """Offsetting by index keeps ids unique within one batch."""
    return [
        Task(id=str(now_ms + i), title=title, created_at=now_ms + i)
        for i, title in enumerate(titles)
    ]


def prepend_tasks(new_tasks: list[Task], stored: list[Task]) -> list[Task]:
    return [*new_tasks, *stored]


def upsert_task(tasks: list[Task], task: Task) -> list[Task]:
    if any(t.id == task.id for t in tasks):
        return [task if t.id == task.id else t for t in tasks]
    return [task, *tasks]


def delete_task(tasks: list[Task], task_id: str) -> list[Task]:
    return [t for t in tasks if t.id != task_id]


def toggle_complete(tasks: list[Task], task_id: str) -> list[Task]:
    return [replace(t, completed=not t.completed) if t.id == task_id else t for t in tasks]


def filter_tasks(tasks: list[Task], mode: str = "all") -> list[Task]:
    if mode not in FILTER_MODES:
        raise ValueError(f"unknown filter mode: {mode}")
    if mode == "active":
        return [t for t in tasks if not t.completed]
    if mode == "completed":
        return [t for t in tasks if t.completed]
    return list(tasks)


def sort_tasks(tasks: list[Task], mode: str = "created") -> list[Task]:
    """Sort a copy of ``tasks``. Tasks without a due date go last in both due orders."""
    if mode == "created":
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)
    if mode == "dueAsc":
        return sorted(tasks, key=lambda t: t.due_date if t.due_date is not None else math.inf)
    if mode == "dueDesc":
        return sorted(
            tasks,
            key=lambda t: t.due_date if t.due_date is not None else -math.inf,
            reverse=True,
        )
    raise ValueError(f"unknown sort mode: {mode}")


def count_tasks(tasks: list[Task]) -> tuple[int, int]:
    """Return (active, completed)."""
    completed = sum(1 for t in tasks if t.completed)
    return len(tasks) - completed, completed
