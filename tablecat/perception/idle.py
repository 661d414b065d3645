import logging, threading, time
from typing import Callable, Optional
try: from pynput import keyboard, mouse
except Exception: keyboard = mouse = None

logger = logging.getLogger(__name__)

class InputIdleTracker:
    """Seconds since the last keyboard or mouse event, fed by pynput listeners."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._last_input = clock()
        self._lock = threading.Lock()
        self._listeners: list = []
        self.available = False

    def _touch(self, *_):
        with self._lock: self._last_input = self._clock()

    def start(self):
        if self._listeners:
            return
        if keyboard is None or mouse is None:
            logger.warning("pynput unavailable, idle time will read as 0")
            return
        try:
            self._listeners = [
                keyboard.Listener(on_press=self._touch),
                mouse.Listener(on_move=self._touch, on_click=self._touch, on_scroll=self._touch),
            ]
            for listener in self._listeners:
                listener.daemon = True
                listener.start()
            self.available = True
        except Exception:
            logger.exception("Input listeners failed to start, idle time will read as 0")
            self._listeners = []

    def stop(self):
        for listener in self._listeners:
            listener.stop()
        self._listeners, self.available = [], False

    def get_system_idle_seconds(self) -> float:
        if not self.available:
            return 0.0
        with self._lock:
            return max(0.0, self._clock() - self._last_input)
