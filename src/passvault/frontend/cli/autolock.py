"""Inactivity auto-lock.

A daemon thread checks once per ``interval`` whether ``timeout`` seconds have
passed since the last ``reset()``; if so it calls ``on_timeout`` exactly once
and stops. The TUI turns that callback into a message on its own queue.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class AutoLocker:
    def __init__(
        self,
        timeout: float,
        on_timeout: Callable[[], None],
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout = timeout
        self.on_timeout = on_timeout
        self.interval = interval
        self._clock = clock
        self._lock = threading.Lock()
        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_activity = clock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def start(self) -> None:
        """Start watching; no-op when already running or timeout <= 0."""
        with self._lock:
            if self._running or self.timeout <= 0:
                return
            self._running = True
            self._last_activity = self._clock()
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(self._stop_event,), name="passvault-autolock", daemon=True
            )
            self._thread.start()

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            if self.check():
                return

    def stop(self) -> None:
        """Stop watching. Safe to call repeatedly and from the callback itself."""
        with self._lock:
            self._running = False
            self._stop_event.set()
            thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval + 1)

    def reset(self) -> None:
        """Record user activity."""
        with self._lock:
            self._last_activity = self._clock()

    def set_timeout(self, timeout: float) -> None:
        """Apply a new timeout, counting from now; 0 stops the locker."""
        with self._lock:
            self.timeout = timeout
            self._last_activity = self._clock()
            running = self._running
        if timeout <= 0 and running:
            self.stop()

    def time_until_lock(self) -> float:
        with self._lock:
            if not self._running:
                return 0.0
            return max(0.0, self.timeout - (self._clock() - self._last_activity))

    def check(self) -> bool:
        """Fire ``on_timeout`` if the deadline passed. Returns True if it fired."""
        with self._lock:
            if not self._running:
                return False
            if self._clock() - self._last_activity < self.timeout:
                return False
            self._running = False
            self._stop_event.set()
        logger.info("auto-lock after %ss of inactivity", self.timeout)
        self.on_timeout()
        return True
