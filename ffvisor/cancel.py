from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from .errors import CANCELLED, DEADLINE_EXCEEDED, error_for_reason

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation signal shared between a caller and running work.

    A token fires once, either through ``cancel()``, through its parent
    firing, or through its own deadline timer. Callbacks registered with
    ``add_callback`` run exactly once when that happens.
    """

    def __init__(self, parent: Optional["CancelToken"] = None, timeout: Optional[float] = None) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._reason: Optional[str] = None
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._next_key = 0
        self._timer: Optional[threading.Timer] = None
        self._unlink: Optional[Callable[[], None]] = None

        if timeout is not None and timeout > 0:
            self._timer = threading.Timer(timeout, self._fire, args=(DEADLINE_EXCEEDED,))
            self._timer.daemon = True
            self._timer.start()
        if parent is not None:
            self._unlink = parent.add_callback(lambda: self._fire(parent.reason or CANCELLED))

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self) -> None:
        self._fire(CANCELLED)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def child(self, timeout: Optional[float] = None) -> "CancelToken":
        return CancelToken(parent=self, timeout=timeout)

    def add_callback(self, fn: Callable[[], None]) -> Callable[[], None]:
        """Register ``fn`` and return a function that unregisters it."""
        with self._lock:
            if not self._event.is_set():
                key = self._next_key
                self._next_key += 1
                self._callbacks[key] = fn

                def remove() -> None:
                    with self._lock:
                        self._callbacks.pop(key, None)

                return remove
        _run_callback(fn)
        return lambda: None

    def raise_if_cancelled(self, message: str = "operation cancelled") -> None:
        if self._event.is_set():
            raise error_for_reason(self._reason, message)

    def release(self) -> None:
        """Stop the deadline timer and detach from the parent."""
        if self._timer is not None:
            self._timer.cancel()
        if self._unlink is not None:
            self._unlink()
            self._unlink = None

    def _fire(self, reason: str) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks: List[Callable[[], None]] = list(self._callbacks.values())
            self._callbacks.clear()
        if self._timer is not None:
            self._timer.cancel()
        for fn in callbacks:
            _run_callback(fn)


def _run_callback(fn: Callable[[], None]) -> None:
    try:
        fn()
    except Exception:
        logger.exception("Cancel callback failed")
