"""Application entrypoint."""

from __future__ import annotations

import argparse
import logging
import os
import threading
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Optional

from config import JsonConfigStore
from errors import NOTICES, PERSISTENCE_FAILURE, TaskStoreError
from hotkey import PushToTalkHotkey
from models import SessionState, Task
from recognizer import DashscopeSpeechRecognizer
from session_controller import SessionController, now_ms
from task_store import JsonTaskStore
from tasks import (
    FILTER_MODES,
    SORT_MODES,
    count_tasks,
    delete_task,
    filter_tasks,
    sort_tasks,
    toggle_complete,
    upsert_task,
)

logger = logging.getLogger(__name__)


def format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    line = f"[{mark}] {task.title}  ({task.id})"
    if task.due_date is not None:
        due = datetime.fromtimestamp(task.due_date / 1000).strftime("%Y-%m-%d")
        line += f"  due {due}"
    return line


class App:
    def __init__(self, config_store: Optional[JsonConfigStore] = None) -> None:
        self.config_store = config_store or JsonConfigStore()
        self.task_store = JsonTaskStore(self.config_store.get_tasks_path())
        self.controller = SessionController(
            recognizer=DashscopeSpeechRecognizer(api_key=self.config_store.get_api_key()),
            store=self.task_store,
            language=self.config_store.get_language(),
            watchdog_timeout_s=self.config_store.get_watchdog_timeout_s(),
            max_retries=self.config_store.get_max_retries(),
            on_state_change=self._on_state_change,
            on_notice=self._on_notice,
            on_transcript=self._on_transcript,
            on_tasks_added=self._on_tasks_added,
        )
        self.hotkey = PushToTalkHotkey(hotkey_name=self.config_store.get_hotkey())
        self._done = threading.Event()

    # ------------------------------------------------------------------
    # Controller callbacks (called from worker and timer threads)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        if to_state == SessionState.LISTENING:
            print("Listening... release the hotkey when done.", flush=True)
        elif to_state == SessionState.STOPPING:
            print("Processing...", flush=True)

    def _on_notice(self, title: str, message: str) -> None:
        print(f"{title}: {message}", flush=True)

    def _on_transcript(self, interim: str, final: str) -> None:
        text = final or interim
        if text:
            logger.debug("Transcript: %s", text)

    def _on_tasks_added(self, tasks: list[Task]) -> None:
        for task in tasks:
            print(f"  + {task.title}", flush=True)

    # ------------------------------------------------------------------
    # Hotkey handlers
    # ------------------------------------------------------------------

    def _on_hotkey_press(self) -> None:
        self.controller.start_listening()

    def _on_hotkey_release(self) -> None:
        # stop_listening waits for the final result; keep it off the listener thread.
        threading.Thread(target=self.controller.stop_listening, daemon=True).start()

    def _on_cancel(self) -> None:
        threading.Thread(target=self.controller.close_session, daemon=True).start()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def print_tasks(self) -> None:
        tasks = sort_tasks(self.task_store.load_all(), "created")
        active, completed = count_tasks(tasks)
        print(f"{active} active, {completed} completed", flush=True)
        for task in tasks:
            print(f"  {format_task(task)}", flush=True)

    def run(self) -> int:
        self.print_tasks()
        self.controller.open_session()
        try:
            self.hotkey.start(
                on_press=self._on_hotkey_press,
                on_release=self._on_hotkey_release,
                on_cancel=self._on_cancel,
            )
        except Exception as exc:
            logger.error("Hotkey disabled: %s", exc)
            return 1
        print(f"Hold {self.config_store.get_hotkey()} and speak your tasks. Ctrl+C quits.", flush=True)
        try:
            while not self._done.wait(timeout=0.5):
                pass
        except KeyboardInterrupt:
            pass
        finally:
            self.quit()
        return 0

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.close_session()
        self._done.set()


# ----------------------------------------------------------------------
# Command line
# ----------------------------------------------------------------------

def _due_date(value: str) -> int:
    try:
        return int(datetime.strptime(value, "%Y-%m-%d").timestamp() * 1000)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from None


def _config_store(namespace: argparse.Namespace) -> JsonConfigStore:
    path = Path(namespace.config).expanduser() if namespace.config else None
    return JsonConfigStore(path=path)


def _task_store(namespace: argparse.Namespace) -> JsonTaskStore:
    return JsonTaskStore(_config_store(namespace).get_tasks_path())


def _save(store: JsonTaskStore, tasks: list[Task]) -> int:
    try:
        store.save_all(tasks)
    except TaskStoreError:
        logger.exception("Failed to save tasks")
        title, message = NOTICES[PERSISTENCE_FAILURE]
        print(f"{title}: {message}", flush=True)
        return 1
    return 0


def _find(tasks: list[Task], task_id: str) -> Optional[Task]:
    for task in tasks:
        if task.id == task_id:
            return task
    print(f"No task with id {task_id}", flush=True)
    return None


def listen_command(namespace: argparse.Namespace) -> int:
    return App(_config_store(namespace)).run()


def list_command(namespace: argparse.Namespace) -> int:
    tasks = _task_store(namespace).load_all()
    active, completed = count_tasks(tasks)
    print(f"{active} active, {completed} completed", flush=True)
    for task in sort_tasks(filter_tasks(tasks, namespace.filter), namespace.sort):
        print(f"  {format_task(task)}", flush=True)
    return 0


def add_command(namespace: argparse.Namespace) -> int:
    title = namespace.title.strip()
    if not title:
        print("Task title cannot be empty", flush=True)
        return 1
    created = now_ms()
    task = Task(id=str(created), title=title, created_at=created, due_date=namespace.due)
    store = _task_store(namespace)
    if _save(store, upsert_task(store.load_all(), task)):
        return 1
    print(f"  + {format_task(task)}", flush=True)
    return 0


def edit_command(namespace: argparse.Namespace) -> int:
    store = _task_store(namespace)
    tasks = store.load_all()
    task = _find(tasks, namespace.id)
    if task is None:
        return 1
    changes: dict[str, object] = {}
    if namespace.title is not None:
        if not namespace.title.strip():
            print("Task title cannot be empty", flush=True)
            return 1
        changes["title"] = namespace.title.strip()
    if namespace.description is not None:
        changes["description"] = namespace.description or None
    if namespace.due is not None:
        changes["due_date"] = namespace.due
    if namespace.clear_due:
        changes["due_date"] = None
    updated = replace(task, **changes)
    if _save(store, upsert_task(tasks, updated)):
        return 1
    print(f"  {format_task(updated)}", flush=True)
    return 0


def done_command(namespace: argparse.Namespace) -> int:
    store = _task_store(namespace)
    tasks = store.load_all()
    if _find(tasks, namespace.id) is None:
        return 1
    tasks = toggle_complete(tasks, namespace.id)
    if _save(store, tasks):
        return 1
    task = _find(tasks, namespace.id)
    print(f"  {format_task(task)}", flush=True)
    return 0


def delete_command(namespace: argparse.Namespace) -> int:
    store = _task_store(namespace)
    tasks = store.load_all()
    task = _find(tasks, namespace.id)
    if task is None:
        return 1
    if _save(store, delete_task(tasks, namespace.id)):
        return 1
    print(f"  - {task.title}", flush=True)
    return 0


def config_command(namespace: argparse.Namespace) -> int:
    store = _config_store(namespace)
    if namespace.api_key is not None:
        store.set_api_key(namespace.api_key)
    if namespace.hotkey is not None:
        store.set_hotkey(namespace.hotkey)
    if namespace.language is not None:
        store.set_language(namespace.language)
    print(f"api_key: {'set' if store.get_api_key() else 'not set'}", flush=True)
    print(f"hotkey: {store.get_hotkey()}", flush=True)
    print(f"language: {store.get_language()}", flush=True)
    print(f"tasks: {store.get_tasks_path()}", flush=True)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="voicetasks", description="Speak your tasks into a to-do list")
    parser.add_argument("--config", help="Path to config.json (defaults to ~/.config/voicetasks)")
    parser.set_defaults(func=listen_command)

    subparsers = parser.add_subparsers(dest="command")

    listen_parser = subparsers.add_parser("listen", help="Hold the hotkey and speak tasks (default)")
    listen_parser.set_defaults(func=listen_command)

    list_parser = subparsers.add_parser("list", help="Show saved tasks")
    list_parser.add_argument("--filter", choices=FILTER_MODES, default="all", help="Which tasks to show")
    list_parser.add_argument("--sort", choices=SORT_MODES, default="created", help="Sort order")
    list_parser.set_defaults(func=list_command)

    add_parser = subparsers.add_parser("add", help="Add a task by hand")
    add_parser.add_argument("title", help="Task title")
    add_parser.add_argument("--due", type=_due_date, help="Due date as YYYY-MM-DD")
    add_parser.set_defaults(func=add_command)

    edit_parser = subparsers.add_parser("edit", help="Change a saved task")
    edit_parser.add_argument("id", help="Task id as shown by list")
    edit_parser.add_argument("--title", help="New title")
    edit_parser.add_argument("--description", help="New description (empty string clears it)")
    due_group = edit_parser.add_mutually_exclusive_group()
    due_group.add_argument("--due", type=_due_date, help="Due date as YYYY-MM-DD")
    due_group.add_argument("--clear-due", action="store_true", help="Remove the due date")
    edit_parser.set_defaults(func=edit_command)

    done_parser = subparsers.add_parser("done", help="Toggle a task between active and completed")
    done_parser.add_argument("id", help="Task id as shown by list")
    done_parser.set_defaults(func=done_command)

    delete_parser = subparsers.add_parser("delete", help="Delete a task")
    delete_parser.add_argument("id", help="Task id as shown by list")
    delete_parser.set_defaults(func=delete_command)

    config_parser = subparsers.add_parser("config", help="Show or change settings")
    config_parser.add_argument("--api-key", help="DashScope API key")
    config_parser.add_argument("--hotkey", help="pynput key name, e.g. Key.alt_l")
    config_parser.add_argument("--language", help="Recognition language, e.g. en-US")
    config_parser.set_defaults(func=config_command)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=os.getenv("VOICETASKS_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
