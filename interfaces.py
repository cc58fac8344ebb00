"""Protocol interfaces used by SessionController."""

from __future__ import annotations

from typing import Callable, Protocol

from models import PermissionStatus, RecognitionEvent, RecognizerConfig, Task


class SpeechRecognizer(Protocol):
    def request_permission(self) -> PermissionStatus: ...

    def start(
        self,
        config: RecognizerConfig,
        on_event: Callable[[RecognitionEvent], None],
    ) -> None: ...

    def stop(self) -> None: ...


class TaskStore(Protocol):
    def load_all(self) -> list[Task]: ...

    def save_all(self, tasks: list[Task]) -> None: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...

