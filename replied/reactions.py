"""Like / bookmark toggles with optimistic local state."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

from .composer import failure_message
from .data_models import Message
from .errors import ReplyError
from .notify import Notifier

logger = logging.getLogger("replied.reactions")

# reaction kind -> (flag attribute, count attribute)
_FIELDS = {
    "like": ("is_liked", "likes_count"),
    "bookmark": ("is_bookmarked", "bookmarks_count"),
}


class SocialActionController:
    """Applies a toggle locally first, then confirms it with the server.

    Toggles on the same message are serialised through a per-message lock,
    so a second click waits for the first request to settle and always
    snapshots confirmed state. A failed request restores the snapshot.
    """

    def __init__(self, api, notifier: Notifier, viewer_id: Callable[[], Optional[str]]):
        self.api = api
        self.notifier = notifier
        self.viewer_id = viewer_id
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def toggle_like(self, message: Message) -> bool:
        return self._toggle(message, "like")

    def toggle_bookmark(self, message: Message) -> bool:
        return self._toggle(message, "bookmark")

    def report(self, message: Message) -> bool:
        if not self.viewer_id():
            self.notifier.info("Sign in to report messages")
            return False
        try:
            self.api.report_message(message.id)
        except ReplyError as exc:
            logger.warning("report of %s failed: %s", message.id, exc)
            self.notifier.error(failure_message(exc, "Failed to report"))
            return False
        self.notifier.success("Reported. Thanks for keeping things kind.")
        return True

    def _lock_for(self, message_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(message_id, threading.Lock())

    def _toggle(self, message: Message, kind: str) -> bool:
        if not self.viewer_id():
            self.notifier.info(f"Sign in to {kind} messages")
            return False

        flag_attr, count_attr = _FIELDS[kind]
        with self._lock_for(message.id):
            was_active = getattr(message, flag_attr)
            previous_count = getattr(message, count_attr)

            setattr(message, flag_attr, not was_active)
            setattr(message, count_attr, max(0, previous_count + (-1 if was_active else 1)))
            try:
                self.api.set_reaction(message.id, kind, not was_active)
            except ReplyError as exc:
                logger.warning("%s toggle on %s failed: %s", kind, message.id, exc)
                setattr(message, flag_attr, was_active)
                setattr(message, count_attr, previous_count)
                self.notifier.error(failure_message(exc, f"Failed to update {kind}"))
                return False
        return True
