"""Receiver-side inbox: pending messages, publishing, silencing, deleting."""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from .composer import failure_message, validate_body
from .data_models import Message
from .errors import ReplyError, ValidationError
from .notify import Notifier
from .profile_fetcher import CancelToken
from .realtime import InboxSubscription

logger = logging.getLogger("replied.inbox")


class InboxController:
    def __init__(self, api, notifier: Notifier, poll_interval: float = 5.0):
        self.api = api
        self.notifier = notifier
        self.poll_interval = poll_interval
        self.messages: List[Message] = []
        self.history: List[Message] = []
        self.publishing = False
        self._publish_lock = threading.Lock()
        self._messages_lock = threading.Lock()
        self._subscription: Optional[InboxSubscription] = None
        self._listeners: List[Callable[[Message], None]] = []

    # --- loading ---
    def refresh(self, cancel: CancelToken | None = None) -> bool:
        try:
            messages = self.api.get_inbox()
        except ReplyError as exc:
            logger.warning("inbox fetch failed: %s", exc)
            if not (cancel and cancel.cancelled):
                self.notifier.error("Failed to fetch inbox")
            return False
        if cancel is not None and cancel.cancelled:
            return False
        self.messages = sorted(messages, key=lambda m: m.created_at, reverse=True)
        return True

    def load_history(self, cancel: CancelToken | None = None) -> bool:
        try:
            history = self.api.get_history()
        except ReplyError as exc:
            logger.warning("history fetch failed: %s", exc)
            if not (cancel and cancel.cancelled):
                self.notifier.error("Failed to fetch history")
            return False
        if cancel is not None and cancel.cancelled:
            return False
        self.history = history
        return True

    # --- realtime ---
    def subscribe(self, on_new: Callable[[Message], None] | None = None) -> InboxSubscription:
        """Start delivering new pending messages; replaces any prior subscription."""
        self.unsubscribe()
        if on_new is not None:
            self._listeners.append(on_new)
        self._subscription = InboxSubscription(
            self.api.get_inbox,
            self.receive,
            interval=self.poll_interval,
            known_ids={m.id for m in self.messages},
        ).start()
        return self._subscription

    def unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._listeners.clear()

    def receive(self, message: Message) -> bool:
        """Prepend a newly arrived pending message unless already listed."""
        with self._messages_lock:
            if message.status != "pending" or any(m.id == message.id for m in self.messages):
                return False
            self.messages = [message] + self.messages
        self.notifier.info("New message received!")
        for listener in list(self._listeners):
            listener(message)
        return True

    # --- actions ---
    def find(self, message_id: str) -> Optional[Message]:
        """Pending message by id; selections are tracked by id, not position."""
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def publish_reply(self, message_id: str, content: str) -> bool:
        if not self._publish_lock.acquire(blocking=False):
            return False
        try:
            try:
                body = validate_body(content)
            except ValidationError as exc:
                self.notifier.error(str(exc))
                return False
            if self.find(message_id) is None:
                logger.debug("%s is no longer pending", message_id)
                return False
            self.publishing = True
            try:
                self.api.publish_reply(message_id, body)
            except ReplyError as exc:
                logger.warning("publishing reply to %s failed: %s", message_id, exc)
                self.notifier.error(failure_message(exc, "Failed to publish"))
                return False
            self._drop(message_id)
        finally:
            self.publishing = False
            self._publish_lock.release()
        self.notifier.success("Replied and published!")
        return True

    def archive(self, message_id: str) -> bool:
        try:
            self.api.archive_message(message_id)
        except ReplyError as exc:
            logger.warning("archiving %s failed: %s", message_id, exc)
            self.notifier.error(failure_message(exc, "Failed to archive"))
            return False
        self._drop(message_id)
        self.notifier.success("Message silenced")
        return True

    def delete(self, message_id: str, confirm: Callable[[], bool]) -> bool:
        """Permanently delete after ``confirm()`` agrees."""
        if not confirm():
            return False
        try:
            self.api.delete_message(message_id)
        except ReplyError as exc:
            logger.warning("deleting %s failed: %s", message_id, exc)
            self.notifier.error(failure_message(exc, "Failed to delete"))
            return False
        self._drop(message_id)
        self.history = [m for m in self.history if m.id != message_id]
        self.notifier.success("Message deleted")
        return True

    def _drop(self, message_id: str) -> None:
        with self._messages_lock:
            self.messages = [m for m in self.messages if m.id != message_id]
