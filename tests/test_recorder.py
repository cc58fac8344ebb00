"""Tests for SoundDeviceRecorder and silence detection."""

from __future__ import annotations

from queue import Queue
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

import recorder as rec_mod
from models import AudioFrame
from recorder import SoundDeviceRecorder, is_silent, pcm_rms


def _pcm(amplitude: int, n_samples: int = 1600) -> bytes:
    return np.full(n_samples, amplitude, dtype="<i2").tobytes()


def _block(n_samples: int = 1600, amplitude: int = 0) -> np.ndarray:
    """Shaped like the int16 block sounddevice hands to the callback."""
    return np.full((n_samples, 1), amplitude, dtype=np.int16)


# ---------------------------------------------------------------
# Silence detection
# ---------------------------------------------------------------

def test_pcm_rms_of_constant_signal() -> None:
    assert pcm_rms(_pcm(1000)) == pytest.approx(1000.0)
    assert pcm_rms(_pcm(-1000)) == pytest.approx(1000.0)


def test_pcm_rms_empty_and_odd_length() -> None:
    assert pcm_rms(b"") == 0.0
    assert pcm_rms(b"\x01") == 0.0


def test_is_silent_threshold() -> None:
    assert is_silent(_pcm(0)) is True
    assert is_silent(_pcm(50)) is True
    assert is_silent(_pcm(4000)) is False
    assert is_silent(_pcm(50), threshold=10.0) is False


# ---------------------------------------------------------------
# Device probe
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_has_input_device(mock_sd: MagicMock) -> None:
    assert SoundDeviceRecorder().has_input_device() is True
    mock_sd.query_devices.assert_called_once_with(kind="input")


@patch("recorder.sd")
def test_has_input_device_false_when_query_fails(mock_sd: MagicMock) -> None:
    mock_sd.query_devices.side_effect = ValueError("No input device matching")
    assert SoundDeviceRecorder().has_input_device() is False


def test_has_input_device_false_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(rec_mod, "sd", None)
    assert SoundDeviceRecorder().has_input_device() is False


# ---------------------------------------------------------------
# Start / stop
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_creates_stream_and_stop_emits_sentinel(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)

    assert recorder.running is True
    assert mock_sd.InputStream.call_args.kwargs["blocksize"] == 1600
    mock_stream.start.assert_called_once()

    recorder.stop()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert recorder.running is False
    assert q.get_nowait() is None


@patch("recorder.sd")
def test_start_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.start(q)

    assert mock_sd.InputStream.call_count == 1
    recorder.stop()


def test_start_raises_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(rec_mod, "sd", None)

    with pytest.raises(RuntimeError, match="sounddevice is not installed"):
        SoundDeviceRecorder().start(Queue())


def test_stop_before_start_is_safe() -> None:
    SoundDeviceRecorder().stop()


# ---------------------------------------------------------------
# Audio callback
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_pushes_audio_frames(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(sample_rate=16000, channels=1, chunk_ms=100)
    q: Queue[AudioFrame | None] = Queue(maxsize=50)
    recorder.start(q)
    recorder._on_audio(_block(1600, amplitude=12), frames=1600, time_info=None, status=None)

    frame = q.get_nowait()
    assert isinstance(frame, AudioFrame)
    assert frame.sample_rate == 16000
    assert len(frame.pcm16_bytes) == 1600 * 2
    assert pcm_rms(frame.pcm16_bytes) == pytest.approx(12.0)
    recorder.stop()


@patch("recorder.sd")
def test_queue_full_increments_dropped_chunks(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue(maxsize=1)
    recorder.start(q)

    recorder._on_audio(_block(), frames=1600, time_info=None, status=None)
    assert recorder.dropped_chunks == 0
    recorder._on_audio(_block(), frames=1600, time_info=None, status=None)
    assert recorder.dropped_chunks == 1

    recorder.stop()


@patch("recorder.sd")
def test_callback_after_stop_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.stop()
    q.get_nowait()

    recorder._on_audio(_block(), frames=1600, time_info=None, status=None)
    assert q.empty()
