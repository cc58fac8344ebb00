"""Speech recognizer backed by DashScope qwen3-asr-flash.

The model takes complete audio and streams back recognition results, so the
adapter records until ``stop()`` closes the microphone, sends the captured WAV
and reports the streamed text as ``interim`` events followed by one ``result``
event. ``stop()`` returns once those events were delivered (or the finish
timeout ran out), which is what the session controller waits on.
"""

from __future__ import annotations

import base64
import io
import logging
import os
import threading
import wave
from queue import Empty, Queue
from typing import Any, Callable, Optional

from errors import NETWORK_CODE, NO_SPEECH_CODE
from models import (
    AudioFrame,
    PermissionStatus,
    RecognitionEvent,
    RecognitionKind,
    RecognizerConfig,
)
from recorder import DEFAULT_SILENCE_RMS, SoundDeviceRecorder, is_silent

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

AUTH_CODE = "auth"
UNAVAILABLE_CODE = "recognizer-unavailable"
RECOGNIZER_CODE = "recognizer"


def _pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    """Convert raw PCM bytes to a base64-encoded WAV string."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def _language_code(language: str) -> str:
    """'en-US' -> 'en'."""
    return language.split("-")[0].lower() if language else ""


class DashscopeSpeechRecognizer:
    def __init__(
        self,
        api_key: str,
        recorder: Optional[SoundDeviceRecorder] = None,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
        finish_timeout_s: float = 15.0,
        silence_rms: float = DEFAULT_SILENCE_RMS,
        queue_maxsize: int = 600,
    ) -> None:
        self._api_key = api_key
        self._recorder = recorder or SoundDeviceRecorder()
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._finish_timeout_s = finish_timeout_s
        self._silence_rms = silence_rms
        self._queue_maxsize = queue_maxsize
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._audio_queue: Optional[Queue[AudioFrame | None]] = None
        self._config = RecognizerConfig()
        self._on_event: Optional[Callable[[RecognitionEvent], None]] = None

    def request_permission(self) -> PermissionStatus:
        return PermissionStatus(granted=self._recorder.has_input_device())

    def start(
        self,
        config: RecognizerConfig,
        on_event: Callable[[RecognitionEvent], None],
    ) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._config = config
        self._on_event = on_event
        self._stop_event.clear()
        self._audio_queue = Queue(maxsize=self._queue_maxsize)
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()
        try:
            self._recorder.start(self._audio_queue)
        except Exception:
            self._stop_event.set()
            raise

    def stop(self) -> None:
        self._recorder.stop()
        thread = self._thread
        if thread is None or not thread.is_alive():
            return
        if thread is threading.current_thread():
            # Called from our own event callback; the worker returns after it.
            self._stop_event.set()
            return
        thread.join(timeout=self._finish_timeout_s)
        if thread.is_alive():
            logger.warning("Recognition did not finish within %.1fs", self._finish_timeout_s)
            self._stop_event.set()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        """Consume audio frames until the sentinel, then recognise."""
        if self._audio_queue is None or self._on_event is None:
            return

        pcm = bytearray()
        sample_rate = 16000
        channels = 1

        while not self._stop_event.is_set():
            try:
                frame = self._audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:
                break
            pcm.extend(frame.pcm16_bytes)
            sample_rate = frame.sample_rate
            channels = frame.channels

        if self._stop_event.is_set():
            return

        if not pcm or is_silent(bytes(pcm), self._silence_rms):
            self._emit_error(NO_SPEECH_CODE, "No speech detected")
            return

        self._recognize_stream(_pcm_to_wav_base64(bytes(pcm), sample_rate, channels))

    def _recognize_stream(self, wav_base64: str) -> None:
        """Send audio to dashscope and report streamed text."""
        if dashscope is None:
            self._emit_error(UNAVAILABLE_CODE, "dashscope is not installed")
            return

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            self._emit_error(AUTH_CODE, "No API key configured")
            return

        asr_options: dict[str, Any] = {"enable_itn": False}
        language = _language_code(self._config.language)
        if language:
            asr_options["language"] = language

        latest_text = ""
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": wav_base64}]},
                ],
                result_format="message",
                asr_options=asr_options,
                stream=True,
                timeout=self._request_timeout_s,
            )
            for chunk in response:
                if self._stop_event.is_set():
                    return
                self._raise_for_status(chunk)
                text = self._extract_text(chunk)
                if text and text != latest_text:
                    latest_text = text
                    if self._config.interim_results:
                        self._emit(RecognitionKind.INTERIM, {"transcript": text})
        except Exception as exc:
            self._emit_exception(exc)
            return

        if latest_text:
            self._emit(RecognitionKind.RESULT, {"transcript": latest_text})
        else:
            self._emit_error(NO_SPEECH_CODE, "No speech detected")

    @staticmethod
    def _raise_for_status(chunk: object) -> None:
        if not isinstance(chunk, dict):
            return
        status = chunk.get("status_code")
        if status is not None and status != 200:
            raise RuntimeError(f"{status} {chunk.get('code', '')}: {chunk.get('message', '')}")

    @staticmethod
    def _extract_text(chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        if not isinstance(chunk, dict):
            return ""
        choices = (chunk.get("output") or {}).get("choices") or []
        if not choices:
            return ""
        content = (choices[0].get("message") or {}).get("content") or []
        if not content or not isinstance(content[0], dict):
            return ""
        return str(content[0].get("text", ""))

    def _emit(self, kind: RecognitionKind, payload: dict) -> None:
        if self._on_event is not None:
            self._on_event(RecognitionEvent(kind=kind.value, payload=payload))

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_event is not None:
            self._on_event(
                RecognitionEvent(kind=RecognitionKind.ERROR.value, code=code, message=message)
            )

    def _emit_exception(self, exc: Exception) -> None:
        """Map an SDK/network exception to an error event."""
        message = str(exc)
        low = message.lower()
        if "401" in low or "auth" in low or "api key" in low:
            code = AUTH_CODE
        elif "timeout" in low or "network" in low or "connection" in low:
            code = NETWORK_CODE
        else:
            code = RECOGNIZER_CODE
        logger.warning("Recognition request failed (%s): %s", code, message)
        self._emit_error(code, message)
