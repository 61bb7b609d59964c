"""Background subscription delivering newly arrived inbox messages."""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Set

from .data_models import Message
from .errors import ReplyError

logger = logging.getLogger("replied.realtime")


class InboxSubscription:
    """Polls the pending inbox and reports messages not seen before.

    Acquire with ``start()``, release with ``unsubscribe()``; both are
    idempotent. The callback runs on the subscription's own thread.
    """

    def __init__(
        self,
        fetch: Callable[[], List[Message]],
        on_message: Callable[[Message], None],
        interval: float = 5.0,
        known_ids: Optional[Set[str]] = None,
    ):
        self._fetch = fetch
        self._on_message = on_message
        self.interval = interval
        self._seen: Set[str] = set(known_ids or ())
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and not self._stop.is_set()

    def start(self) -> "InboxSubscription":
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, name="replied-inbox", daemon=True)
            self._thread.start()
        return self

    def unsubscribe(self) -> None:
        self._stop.set()

    def poll_once(self) -> List[Message]:
        """Fetch once and deliver unseen pending messages, oldest first."""
        try:
            messages = self._fetch()
        except ReplyError as exc:
            logger.debug("inbox poll failed: %s", exc)
            return []
        fresh = [m for m in messages if m.status == "pending" and m.id not in self._seen]
        fresh.sort(key=lambda m: m.created_at)
        delivered = []
        for message in fresh:
            if self._stop.is_set():
                break
            self._seen.add(message.id)
            self._on_message(message)
            delivered.append(message)
        return delivered

    def _run(self) -> None:
        logger.debug("inbox subscription started (every %.1fs)", self.interval)
        while not self._stop.wait(self.interval):
            self.poll_once()
        logger.debug("inbox subscription stopped")
