from __future__ import annotations

import threading
from typing import Any, Callable, Optional


class Debouncer:
    """Run ``fn`` once calls have been quiet for ``delay`` seconds.

    Each ``call`` restarts the timer with the newest arguments.
    """

    def __init__(self, fn: Callable[..., Any], delay: float):
        self.fn = fn
        self.delay = delay
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def call(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self.fn, args=args, kwargs=kwargs)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def pending(self) -> bool:
        timer = self._timer
        return timer is not None and timer.is_alive()
