"""Clipboard utilities for the CLI frontend.

Uses pyperclip for cross-platform clipboard access. Secrets copied through
ClipboardManager are wiped again after a timeout.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

import pyperclip

logger = logging.getLogger(__name__)


def copy_to_clipboard(text: str) -> None:
    """Copy text to the system clipboard.

    Args:
        text: The text to copy.

    Raises:
        pyperclip.PyperclipException: If clipboard access fails.
    """
    pyperclip.copy(text)


class ClipboardManager:
    """Copy secrets and clear the clipboard ``timeout`` seconds later.

    Only clears if the clipboard still holds what we put there, so a value the
    user copied in the meantime survives. ``timeout <= 0`` disables clearing.
    ``on_cleared`` runs on the timer thread after an automatic clear.
    """

    def __init__(self, timeout: float = 30, on_cleared: Optional[Callable[[], None]] = None):
        self.timeout = timeout
        self.on_cleared = on_cleared
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._last_timer: Optional[threading.Timer] = None
        self._armed_value: Optional[str] = None

    @property
    def pending(self) -> bool:
        """True while an automatic clear is scheduled."""
        with self._lock:
            return self._timer is not None

    def wait(self) -> None:
        """Block until the most recently scheduled clear has run (or was cancelled)."""
        with self._lock:
            timer = self._last_timer
        if timer is not None and timer is not threading.current_thread():
            timer.join()

    def copy(self, text: str) -> None:
        """Copy ``text`` and (re)arm the clear timer.

        Raises:
            pyperclip.PyperclipException: If clipboard access fails.
        """
        copy_to_clipboard(text)
        with self._lock:
            self._cancel_timer()
            self._armed_value = text
            self._arm()

    def _arm(self) -> None:
        if self.timeout <= 0 or self._armed_value is None:
            return
        self._timer = self._last_timer = threading.Timer(self.timeout, self._on_timeout)
        self._timer.daemon = True
        self._timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self) -> None:
        if self.clear() and self.on_cleared is not None:
            self.on_cleared()

    def clear(self) -> bool:
        """Wipe our value from the clipboard; no-op if nothing is armed.

        Returns True when the clipboard was actually cleared.
        """
        with self._lock:
            self._cancel_timer()
            value, self._armed_value = self._armed_value, None
        if value is None:
            return False
        try:
            if pyperclip.paste() != value:
                return False
            pyperclip.copy("")
        except pyperclip.PyperclipException as exc:
            logger.warning("could not clear clipboard: %s", exc)
            return False
        logger.info("clipboard cleared")
        return True

    def cancel(self) -> None:
        """Stop a pending clear without touching the clipboard."""
        with self._lock:
            self._cancel_timer()
            self._armed_value = None

    def set_timeout(self, timeout: float) -> None:
        """Change the timeout; a pending clear restarts with the new value."""
        with self._lock:
            self.timeout = timeout
            self._cancel_timer()
            self._arm()
