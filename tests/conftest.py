"""Shared fakes for the replied test-suite."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from replied.auth import AuthEvent, Subscription
from replied.data_models import Message, Profile, Session
from replied.notify import Notifier

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def make_message(id: str, minutes: int = 0, **overrides: Any) -> Message:
    fields: Dict[str, Any] = {"content": f"message {id}", "created_at": at(minutes)}
    fields.update(overrides)
    return Message(id=id, **fields)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.shown: List[tuple] = []

    def show(self, message: str, severity: str = "information") -> None:
        self.shown.append((severity, message))

    @property
    def messages(self) -> List[str]:
        return [m for _, m in self.shown]

    @property
    def errors(self) -> List[str]:
        return [m for s, m in self.shown if s == "error"]


class FakeProvider:
    """In-memory stand-in for OAuthProvider."""

    def __init__(self, session: Optional[Session] = None, fail: bool = False):
        self.current_session = session
        self.fail = fail
        self.listeners: List = []
        self.signed_out = False

    def get_session(self) -> Optional[Session]:
        if self.fail:
            from replied.errors import AuthError

            raise AuthError("storage unavailable")
        return self.current_session

    def on_auth_state_change(self, listener) -> Subscription:
        self.listeners.append(listener)
        return Subscription(lambda: self.listeners.remove(listener))

    def emit(self, event: AuthEvent, session: Optional[Session]) -> None:
        if event is AuthEvent.SIGNED_IN:
            self.current_session = session
        for listener in list(self.listeners):
            listener(event, session)

    def sign_out(self) -> None:
        self.signed_out = True
        self.current_session = None
        self.emit(AuthEvent.SIGNED_OUT, None)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def session() -> Session:
    return Session(access_token="token-abc", user_id="user-1", email="me@example.com")


@pytest.fixture
def profile() -> Profile:
    return Profile(id="user-1", username="alice", display_name="Alice")


def sync_runner(fn) -> None:
    fn()
