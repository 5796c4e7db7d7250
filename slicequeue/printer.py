"""Printer connection state as seen by the slicing worker.

The worker only slices while a printer is connected. Real connections live
outside this package; anything with an `is_connected` property will do.
"""

import threading
from typing import Callable, List

from slicequeue.utils import get_logger

logger = get_logger("printer")


class StaticPrinterLink:
    """A printer link whose connection state is set by the caller."""

    def __init__(self, connected: bool = False):
        self._connected = threading.Event()
        if connected:
            self._connected.set()
        self._callbacks: List[Callable[[bool], None]] = []
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def add_change_callback(self, callback: Callable[[bool], None]):
        """Add callback for connection changes."""
        with self._lock:
            self._callbacks.append(callback)

    def _notify(self, connected: bool):
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(connected)
            except Exception as e:
                logger.error(f"Connection callback error: {e}")

    def connect(self) -> bool:
        self._connected.set()
        logger.info("Printer connected")
        self._notify(True)
        return True

    def disconnect(self):
        self._connected.clear()
        logger.info("Printer disconnected")
        self._notify(False)
