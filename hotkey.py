"""Push-to-talk hotkey based on pynput."""

from __future__ import annotations

import threading
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

CANCEL_KEY = "Key.esc"


class PushToTalkHotkey:
    """Hold the hotkey to listen, release to stop, press Esc to abandon the session."""

    def __init__(self, hotkey_name: str = "Key.alt_l", cancel_key_name: str = CANCEL_KEY) -> None:
        self._hotkey_name = hotkey_name
        self._cancel_key_name = cancel_key_name
        self._listener: Optional[object] = None
        self._held = False
        self._lock = threading.Lock()
        self._on_press: Callable[[], None] = lambda: None
        self._on_release: Callable[[], None] = lambda: None
        self._on_cancel: Callable[[], None] = lambda: None

    def start(
        self,
        on_press: Callable[[], None],
        on_release: Callable[[], None],
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        self._on_press = on_press
        self._on_release = on_release
        self._on_cancel = on_cancel or (lambda: None)
        self._listener = keyboard.Listener(on_press=self.handle_press, on_release=self.handle_release)
        self._listener.start()

    def handle_press(self, key: object) -> None:
        name = str(key)
        if name == self._cancel_key_name:
            with self._lock:
                self._held = False
            self._on_cancel()
            return
        if name != self._hotkey_name:
            return
        with self._lock:
            # Key repeat sends press events while the key stays down.
            if self._held:
                return
            self._held = True
        self._on_press()

    def handle_release(self, key: object) -> None:
        if str(key) != self._hotkey_name:
            return
        with self._lock:
            if not self._held:
                return
            self._held = False
        self._on_release()

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
