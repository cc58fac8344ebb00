"""State-machine based voice session orchestration."""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from config import DEFAULT_MAX_RETRIES, DEFAULT_WATCHDOG_TIMEOUT_S
from errors import (
    EMPTY_TRANSCRIPT,
    NETWORK_ERROR,
    NO_SPEECH,
    NO_SPEECH_EXHAUSTED,
    NO_TASKS,
    NOTICES,
    PERMISSION_DENIED,
    PERSISTENCE_FAILURE,
    RECOGNITION_ERROR,
    START_FAILED,
    classify_error,
)
from interfaces import Scheduler, SpeechRecognizer, TaskStore, TimerHandle
from models import (
    RecognitionEvent,
    RecognitionKind,
    RecognizerConfig,
    RetryState,
    SessionState,
    Task,
    TranscriptState,
)
from task_parser import extract_task_titles
from tasks import build_voice_tasks, prepend_tasks
from transcript import extract_transcript, fold_transcript, normalize_transcript

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
NoticeCallback = Callable[[str, str], None]
TranscriptCallback = Callable[[str, str], None]
TasksCallback = Callable[[list[Task]], None]

DEFAULT_RETRY_BACKOFF_S = 0.4


class ThreadingScheduler:
    def schedule(self, delay_s: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay_s, callback)
        timer.daemon = True
        timer.start()
        return timer


@dataclass
class SessionContext:
    """Everything a voice session mutates, shared by event handlers and timers.

    Timer callbacks receive the sequence number they were armed with and do
    nothing unless it still matches, so a cancelled timer that already started
    running cannot act on a newer session.
    """

    transcript: TranscriptState = field(default_factory=TranscriptState)
    retry: RetryState = field(default_factory=RetryState)
    open: bool = False
    processing: bool = False
    watchdog: Optional[TimerHandle] = None
    watchdog_seq: int = 0
    restart: Optional[TimerHandle] = None
    restart_seq: int = 0
    stop_error: Optional[tuple[str, Optional[str]]] = None
    _seq: int = 0

    def next_seq(self) -> int:
        self._seq += 1
        return self._seq


class SessionController:
    def __init__(
        self,
        recognizer: SpeechRecognizer,
        store: TaskStore,
        language: str = "en-US",
        watchdog_timeout_s: float = DEFAULT_WATCHDOG_TIMEOUT_S,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_s: float = DEFAULT_RETRY_BACKOFF_S,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Callable[[], int]] = None,
        rng: Optional[random.Random] = None,
        on_state_change: Optional[StateCallback] = None,
        on_notice: Optional[NoticeCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_tasks_added: Optional[TasksCallback] = None,
    ) -> None:
        self._recognizer = recognizer
        self._store = store
        self._language = language
        self._watchdog_timeout_s = watchdog_timeout_s
        self._retry_backoff_s = retry_backoff_s
        self._scheduler = scheduler or ThreadingScheduler()
        self._clock = clock or now_ms
        self._rng = rng or random.Random()
        self._on_state_change = on_state_change
        self._on_notice = on_notice
        self._on_transcript = on_transcript
        self._on_tasks_added = on_tasks_added

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._ctx = SessionContext(retry=RetryState(max=max_retries))

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def interim_text(self) -> str:
        return self._ctx.transcript.interim_text

    @property
    def final_text(self) -> str:
        return self._ctx.transcript.final_text

    @property
    def retry_count(self) -> int:
        return self._ctx.retry.count

    @property
    def max_retries(self) -> int:
        return self._ctx.retry.max

    @property
    def is_open(self) -> bool:
        return self._ctx.open

    # ------------------------------------------------------------------
    # Public actions
    # ------------------------------------------------------------------

    def open_session(self) -> None:
        """Mark the voice UI as shown. Listening still needs an explicit start."""
        with self._lock:
            self._ctx.open = True
            self._ctx.retry.reset()

    def start_listening(self) -> None:
        with self._lock:
            self._ctx.open = True
            self._begin_listening(reset_retries=True)

    def stop_listening(self) -> None:
        with self._lock:
            if self._ctx.processing:
                return
            if self._state == SessionState.IDLE and self._ctx.restart is not None:
                # Stopped during the no-speech backoff: there is nothing to process.
                self._cancel_restart()
                self._finish(EMPTY_TRANSCRIPT)
                return
            if self._state != SessionState.LISTENING:
                return
            self._ctx.processing = True
            self._cancel_watchdog()
            self._transition(SessionState.STOPPING)

        try:
            # Outside the lock: the recognizer delivers its last results while we wait.
            self._safe_stop_recognizer()
            with self._lock:
                if self._state == SessionState.STOPPING:
                    self._complete_session()
        finally:
            with self._lock:
                self._ctx.processing = False

    def close_session(self) -> None:
        """Abandon the session without persisting anything."""
        with self._lock:
            self._ctx.open = False
            self._cancel_watchdog()
            self._cancel_restart()
            self._clear_transcript()
            self._ctx.retry.reset()
            self._ctx.stop_error = None
            self._transition(SessionState.IDLE)
        self._safe_stop_recognizer()

    # ------------------------------------------------------------------
    # Listening lifecycle
    # ------------------------------------------------------------------

    def _begin_listening(self, reset_retries: bool) -> None:
        if self._state != SessionState.IDLE or self._ctx.processing:
            return
        self._cancel_restart()
        try:
            permission = self._recognizer.request_permission()
        except Exception:
            logger.exception("Speech permission request failed")
            self._notify(START_FAILED)
            return
        if not permission.granted:
            self._notify(PERMISSION_DENIED)
            return

        if reset_retries:
            self._ctx.retry.reset()
        self._clear_transcript()
        self._ctx.stop_error = None
        self._transition(SessionState.LISTENING)
        try:
            self._recognizer.start(
                RecognizerConfig(language=self._language, interim_results=True, continuous=True),
                self._handle_recognition_event,
            )
        except Exception:
            logger.exception("Speech recognizer failed to start")
            self._finish(START_FAILED)
            return
        if self._state == SessionState.LISTENING:
            self._arm_watchdog()

    def _complete_session(self) -> None:
        transcript = (self._ctx.transcript.final_text or self._ctx.transcript.interim_text).strip()
        self._clear_transcript()
        self._cancel_watchdog()
        if not transcript:
            if self._report_stop_error():
                return
            self._finish(EMPTY_TRANSCRIPT)
            return

        titles = extract_task_titles(transcript)
        if not titles:
            self._finish(NO_TASKS)
            return

        try:
            added = self._persist(titles)
        except Exception:
            logger.exception("Failed to save %d voice task(s)", len(titles))
            self._finish(PERSISTENCE_FAILURE)
            return

        self._transition(SessionState.IDLE)
        logger.info("Added %d task(s) from voice: %s", len(added), [t.title for t in added])
        if self._on_tasks_added:
            self._on_tasks_added(added)
        count = len(added)
        self._emit_notice("Added tasks", f"Added {count} task{'s' if count > 1 else ''}.")

    def _persist(self, titles: list[str]) -> list[Task]:
        stored = self._store.load_all()
        new_tasks = build_voice_tasks(titles, self._clock())
        self._store.save_all(prepend_tasks(new_tasks, stored))
        return new_tasks

    def _retry_or_give_up(self, exhausted_code: str) -> None:
        self._clear_transcript()
        self._cancel_watchdog()
        retry = self._ctx.retry
        if self._ctx.open and not retry.exhausted:
            retry.count += 1
            logger.info("No speech detected, restarting (%d/%d)", retry.count, retry.max)
            self._transition(SessionState.IDLE)
            seq = self._ctx.next_seq()
            self._ctx.restart_seq = seq
            self._ctx.restart = self._scheduler.schedule(
                self._retry_backoff_s, lambda: self._on_restart(seq)
            )
            return
        self._finish(exhausted_code)

    def _report_stop_error(self) -> bool:
        """Report an error the recognizer raised while it was being stopped."""
        if self._ctx.stop_error is None:
            return False
        category, message = self._ctx.stop_error
        self._ctx.stop_error = None
        if category == NETWORK_ERROR:
            self._finish(NETWORK_ERROR)
        else:
            self._finish(RECOGNITION_ERROR, message)
        return True

    def _finish(self, code: str, message: Optional[str] = None) -> None:
        self._clear_transcript()
        self._cancel_watchdog()
        self._transition(SessionState.IDLE)
        self._notify(code, message)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _arm_watchdog(self) -> None:
        self._cancel_watchdog()
        seq = self._ctx.next_seq()
        self._ctx.watchdog_seq = seq
        self._ctx.watchdog = self._scheduler.schedule(
            self._watchdog_timeout_s, lambda: self._on_watchdog(seq)
        )

    def _cancel_watchdog(self) -> None:
        if self._ctx.watchdog is not None:
            self._ctx.watchdog.cancel()
        self._ctx.watchdog = None
        self._ctx.watchdog_seq = 0

    def _cancel_restart(self) -> None:
        if self._ctx.restart is not None:
            self._ctx.restart.cancel()
        self._ctx.restart = None
        self._ctx.restart_seq = 0

    def _on_watchdog(self, seq: int) -> None:
        with self._lock:
            if (
                seq != self._ctx.watchdog_seq
                or self._state != SessionState.LISTENING
                or self._ctx.processing
            ):
                return
            self._ctx.watchdog = None
            self._ctx.watchdog_seq = 0
            self._ctx.processing = True
            logger.info("Watchdog fired after %.1fs", self._watchdog_timeout_s)
            self._transition(SessionState.STOPPING)

        try:
            self._safe_stop_recognizer()
            with self._lock:
                if self._state != SessionState.STOPPING:
                    return
                if self._ctx.transcript.is_empty:
                    if not self._report_stop_error():
                        self._retry_or_give_up(NO_SPEECH)
                else:
                    self._complete_session()
        finally:
            with self._lock:
                self._ctx.processing = False

    def _on_restart(self, seq: int) -> None:
        with self._lock:
            if seq != self._ctx.restart_seq:
                return
            self._ctx.restart = None
            self._ctx.restart_seq = 0
            if not self._ctx.open:
                return
            self._begin_listening(reset_retries=False)

    # ------------------------------------------------------------------
    # Recognition events
    # ------------------------------------------------------------------

    def _handle_recognition_event(self, event: RecognitionEvent) -> None:
        with self._lock:
            if self._state == SessionState.IDLE:
                logger.debug("Ignoring %s event while idle", event.kind)
                return
            kind = event.kind
            if kind == RecognitionKind.INTERIM.value:
                self._ctx.transcript.interim_text = extract_transcript(event.payload, self._rng) or ""
                self._emit_transcript()
                return
            if kind == RecognitionKind.RESULT.value:
                self._apply_result(event)
                return
            if kind == RecognitionKind.ERROR.value:
                self._apply_error(event)
                return
            logger.warning("Unknown recognition event kind: %s", kind)

    def _apply_result(self, event: RecognitionEvent) -> None:
        chunk = normalize_transcript(extract_transcript(event.payload, self._rng) or "")
        transcript = self._ctx.transcript
        if chunk:
            transcript.final_text = normalize_transcript(fold_transcript(transcript.final_text, chunk))
        transcript.interim_text = ""
        # A result means the recognizer is alive; the watchdog stays disarmed.
        self._cancel_watchdog()
        self._emit_transcript()

    def _apply_error(self, event: RecognitionEvent) -> None:
        category = classify_error(event.code, event.message)
        logger.warning("Recognizer error %s (%s): %s", event.code, category, event.message)
        if self._state != SessionState.LISTENING:
            # The stop pipeline reports it once the recognizer has returned.
            if category != NO_SPEECH and self._ctx.stop_error is None:
                self._ctx.stop_error = (category, event.message or None)
            return
        self._cancel_watchdog()
        self._safe_stop_recognizer()
        if category == NO_SPEECH:
            self._retry_or_give_up(NO_SPEECH_EXHAUSTED)
        elif category == NETWORK_ERROR:
            self._finish(NETWORK_ERROR)
        else:
            self._finish(RECOGNITION_ERROR, event.message or None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _clear_transcript(self) -> None:
        self._ctx.transcript.clear()
        self._emit_transcript()

    def _notify(self, code: str, message: Optional[str] = None) -> None:
        title, default_message = NOTICES[code]
        self._emit_notice(title, message or default_message)

    def _emit_notice(self, title: str, message: str) -> None:
        if self._on_notice:
            self._on_notice(title, message)

    def _emit_transcript(self) -> None:
        if self._on_transcript:
            self._on_transcript(self._ctx.transcript.interim_text, self._ctx.transcript.final_text)

    def _safe_stop_recognizer(self) -> None:
        try:
            self._recognizer.stop()
        except Exception:
            logger.warning("Speech recognizer stop failed", exc_info=True)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)


def now_ms() -> int:
    return int(time.time() * 1000)
