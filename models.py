"""Core data models for the app."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class SessionState(str, Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"
    STOPPING = "STOPPING"


class RecognitionKind(str, Enum):
    INTERIM = "interim"
    RESULT = "result"
    ERROR = "error"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class RecognitionEvent:
    """One event from the recognizer.

    ``payload`` is whatever the engine sent for interim/result events. Its shape
    is not trusted; see ``transcript.parse_payload``.
    """

    kind: str
    payload: dict = field(default_factory=dict)
    code: Union[str, int, None] = None
    message: str = ""


@dataclass
class RecognizerConfig:
    language: str = "en-US"
    interim_results: bool = True
    continuous: bool = True


@dataclass
class PermissionStatus:
    granted: bool


@dataclass
class Alternative:
    text: str
    confidence: Optional[float] = None


@dataclass
class ResultSegment:
    alternatives: list[Alternative] = field(default_factory=list)
    transcript: Optional[str] = None
    text: Optional[str] = None


# Payload variants, in the order extraction tries them.


@dataclass
class DirectTranscript:
    text: str


@dataclass
class AlternativesList:
    alternatives: list[Alternative]


@dataclass
class ResultSegments:
    segments: list[ResultSegment]


@dataclass
class PlainText:
    text: str


@dataclass
class PlainValue:
    text: str


Payload = Union[DirectTranscript, AlternativesList, ResultSegments, PlainText, PlainValue]


@dataclass
class TranscriptState:
    interim_text: str = ""
    final_text: str = ""

    def clear(self) -> None:
        self.interim_text = ""
        self.final_text = ""

    @property
    def is_empty(self) -> bool:
        return not self.interim_text and not self.final_text


@dataclass
class RetryState:
    count: int = 0
    max: int = 3

    def reset(self) -> None:
        self.count = 0

    @property
    def exhausted(self) -> bool:
        return self.count >= self.max


@dataclass
class Task:
    id: str
    title: str
    created_at: int
    description: Optional[str] = None
    completed: bool = False
    due_date: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "createdAt": self.created_at,
        }
        if self.description is not None:
            data["description"] = self.description
        if self.due_date is not None:
            data["dueDate"] = self.due_date
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Build a task from a stored record, filling defaults for bad fields."""
        created_at = data.get("createdAt")
        if not _is_number(created_at):
            created_at = int(time.time() * 1000)
        completed = data.get("completed")
        due_date = data.get("dueDate")
        description = data.get("description")
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            created_at=int(created_at),
            description=description if isinstance(description, str) else None,
            completed=completed if isinstance(completed, bool) else False,
            due_date=int(due_date) if _is_number(due_date) else None,
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
