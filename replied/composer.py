"""Outgoing message composition."""
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Optional

from .config import MAX_MESSAGE_LENGTH
from .errors import ApiError, ConnectionFailure, NotAuthenticated, ValidationError
from .notify import Notifier

logger = logging.getLogger("replied.composer")


def validate_body(text: str) -> str:
    """Return the trimmed body or raise ValidationError."""
    body = (text or "").strip()
    if not body:
        raise ValidationError("Message cannot be empty")
    if len(body) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be {MAX_MESSAGE_LENGTH} characters or fewer")
    return body


def failure_message(exc: Exception, fallback: str) -> str:
    """User-facing text for a failed call: server error first, else fallback."""
    if isinstance(exc, ApiError) and exc.message:
        return exc.message
    if isinstance(exc, ConnectionFailure):
        return "Connection error"
    if isinstance(exc, NotAuthenticated):
        return "Please sign in first"
    return fallback


class ComposerState(Enum):
    IDLE = "idle"
    SENDING = "sending"


class Composer:
    """Message box on a profile page: idle -> sending -> idle."""

    def __init__(self, api, notifier: Notifier, receiver_id: str):
        self.api = api
        self.notifier = notifier
        self.receiver_id = receiver_id
        self.text = ""
        self.thread_id: Optional[str] = None
        self.state = ComposerState.IDLE
        self._submit_lock = threading.Lock()

    @property
    def sending(self) -> bool:
        return self.state is ComposerState.SENDING

    @property
    def remaining(self) -> int:
        return MAX_MESSAGE_LENGTH - len(self.text)

    def set_text(self, text: str) -> None:
        # input ceiling, same as the widget's max length
        self.text = (text or "")[:MAX_MESSAGE_LENGTH]

    def reply_in_thread(self, thread_id: str) -> None:
        self.thread_id = thread_id

    def leave_thread(self) -> None:
        self.thread_id = None

    def submit(self) -> bool:
        """Send the current text; returns True when the server accepted it."""
        # a press while a send is in flight is dropped, not queued
        if not self._submit_lock.acquire(blocking=False):
            return False
        try:
            try:
                body = validate_body(self.text)
            except ValidationError as exc:
                self.notifier.error(str(exc))
                return False

            self.state = ComposerState.SENDING
            try:
                self.api.send_message(self.receiver_id, body, thread_id=self.thread_id)
            except (ApiError, ConnectionFailure) as exc:
                logger.warning("send to %s failed: %s", self.receiver_id, exc)
                self.notifier.error(failure_message(exc, "Failed to send"))
                return False
            self.text = ""
            self.thread_id = None
        finally:
            self.state = ComposerState.IDLE
            self._submit_lock.release()

        self.notifier.success("Message sent! It will appear if replied to.")
        return True
