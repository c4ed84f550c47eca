"""
Debounced persistence: coalesce rapid updates into one delayed write.

Only the last value set within the delay window is written.
"""

import threading
from typing import Any, Optional

from .logger import get_logger
from .storage import PersistentStore, QuotaExceededError

logger = get_logger()

_NOTHING = object()


class DebouncedWriter:
    def __init__(self, store: PersistentStore, key: str, delay: float = 0.3):
        self.store = store
        self.key = key
        self.delay = delay
        self._value: Any = _NOTHING
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._value is not _NOTHING

    def set(self, value: Any) -> None:
        """Schedule value to be written after the delay, replacing any pending value."""
        with self._lock:
            self._value = value
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> bool:
        """Write the pending value now. Returns False if nothing was written."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            value, self._value = self._value, _NOTHING
        if value is _NOTHING:
            return False
        try:
            return self.store.set_item(self.key, value)
        except QuotaExceededError as e:
            logger.error("Debounced write dropped, storage full", key=self.key, error=str(e))
            return False

    def cancel(self) -> None:
        """Drop the pending value without writing it."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._value = _NOTHING
