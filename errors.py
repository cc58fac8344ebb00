"""Shared error codes and user-facing notices."""

from __future__ import annotations

from typing import Optional, Union

PERMISSION_DENIED = "PERMISSION_DENIED"
START_FAILED = "START_FAILED"
NO_SPEECH = "NO_SPEECH"
NO_SPEECH_EXHAUSTED = "NO_SPEECH_EXHAUSTED"
NETWORK_ERROR = "NETWORK_ERROR"
RECOGNITION_ERROR = "RECOGNITION_ERROR"
EMPTY_TRANSCRIPT = "EMPTY_TRANSCRIPT"
NO_TASKS = "NO_TASKS"
PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"

# Recognizer error codes as they appear on error events.
NO_SPEECH_CODE = "no-speech"
NETWORK_CODE = "network"

# Numeric codes used by platform speech engines.
_NO_SPEECH_NUMERIC = 7
_NETWORK_NUMERIC = 2

NOTICES = {
    PERMISSION_DENIED: (
        "Permission denied",
        "Please allow microphone / speech permissions in settings.",
    ),
    START_FAILED: ("Error", "Failed to start speech recognition."),
    NO_SPEECH: (
        "No speech detected",
        "No speech was captured. Try again with a quieter environment "
        "or check microphone permissions.",
    ),
    NO_SPEECH_EXHAUSTED: (
        "No speech detected",
        "We couldn't detect speech after several attempts. "
        "Make sure microphone is enabled and try again.",
    ),
    NETWORK_ERROR: (
        "Network error",
        "Speech recognition reported a network error. Check your internet "
        "connection and that speech services are reachable. You can retry.",
    ),
    RECOGNITION_ERROR: ("Speech error", "Unknown error"),
    EMPTY_TRANSCRIPT: ("No speech detected", "We didn't catch anything, try again."),
    NO_TASKS: ("No tasks found", "Could not parse tasks from speech."),
    PERSISTENCE_FAILURE: ("Error", "Failed to save tasks."),
}


class TaskStoreError(Exception):
    """Raised when the task list cannot be written."""


def _as_int(code: Union[str, int, None]) -> Optional[int]:
    if isinstance(code, bool):
        return None
    if isinstance(code, int):
        return code
    if isinstance(code, str) and code.strip().isdigit():
        return int(code.strip())
    return None


def classify_error(code: Union[str, int, None], message: str) -> str:
    """Map a recognizer error event to NO_SPEECH, NETWORK_ERROR or RECOGNITION_ERROR."""
    numeric = _as_int(code)
    low = (message or "").lower()
    if numeric == _NO_SPEECH_NUMERIC or code == NO_SPEECH_CODE or "no speech" in low:
        return NO_SPEECH
    if numeric == _NETWORK_NUMERIC or code == NETWORK_CODE or "network" in low:
        return NETWORK_ERROR
    return RECOGNITION_ERROR
