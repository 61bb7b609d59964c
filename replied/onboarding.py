"""Username claim for first-time users (the setup flow)."""
from __future__ import annotations

import logging
import re
import threading
from typing import Callable, Optional

from .composer import failure_message
from .config import USERNAME_CHECK_DEBOUNCE, USERNAME_MAX_LENGTH, USERNAME_MIN_LENGTH
from .debounce import Debouncer
from .errors import ApiError, ReplyError, ValidationError
from .notify import Notifier

logger = logging.getLogger("replied.onboarding")

_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def clean_username(raw: str) -> str:
    """Drop characters a handle may not contain, lowercase, cap the length."""
    return _INVALID_CHARS.sub("", raw or "").lower()[:USERNAME_MAX_LENGTH]


def validate_username(raw: str) -> str:
    username = clean_username(raw)
    if len(username) < USERNAME_MIN_LENGTH:
        raise ValidationError(f"Usernames need at least {USERNAME_MIN_LENGTH} characters")
    return username


class UsernameClaim:
    def __init__(self, api, notifier: Notifier, session, check_delay: float = USERNAME_CHECK_DEBOUNCE):
        self.api = api
        self.notifier = notifier
        self.session = session
        self.available: Optional[bool] = None
        self.checking = False
        self.claiming = False
        self._claim_lock = threading.Lock()
        self._debouncer = Debouncer(self._check_and_report, check_delay)
        self._on_result: Optional[Callable[[str, Optional[bool]], None]] = None

    def check_availability(self, raw: str) -> Optional[bool]:
        """True/False when known; None for too-short input or a failed check."""
        username = clean_username(raw)
        if len(username) < USERNAME_MIN_LENGTH:
            self.available = None
            return None
        self.checking = True
        try:
            self.api.get_public_profile(username)
            self.available = False
        except ApiError as exc:
            self.available = True if exc.not_found else None
        except ReplyError as exc:
            logger.warning("username availability check failed: %s", exc)
            self.available = None
        finally:
            self.checking = False
        return self.available

    def check_as_you_type(self, raw: str, on_result: Callable[[str, Optional[bool]], None]) -> None:
        self._on_result = on_result
        if len(clean_username(raw)) < USERNAME_MIN_LENGTH:
            self._debouncer.cancel()
            self.available = None
            on_result(clean_username(raw), None)
            return
        self._debouncer.call(raw)

    def _check_and_report(self, raw: str) -> None:
        result = self.check_availability(raw)
        if self._on_result is not None:
            self._on_result(clean_username(raw), result)

    def claim(self, raw: str) -> bool:
        if not self._claim_lock.acquire(blocking=False):
            return False
        try:
            return self._claim(raw)
        finally:
            self._claim_lock.release()

    def _claim(self, raw: str) -> bool:
        if not self.session.is_authenticated:
            self.notifier.error("Session expired. Please sign in again.")
            return False
        try:
            username = validate_username(raw)
        except ValidationError as exc:
            self.notifier.error(str(exc))
            return False
        self.claiming = True
        try:
            current = self.session.session
            self.api.update_profile(
                {
                    "username": username,
                    "display_name": username,
                    "avatar_url": current.avatar_url or "",
                    "email": current.email or "",
                }
            )
        except ReplyError as exc:
            logger.warning("claiming %s failed: %s", username, exc)
            self.notifier.error(failure_message(exc, "Could not claim that username"))
            return False
        finally:
            self.claiming = False
        self.session.mark_username(username)
        self.notifier.success("Profile created! Welcome to Replied.")
        return True

    def close(self) -> None:
        self._debouncer.cancel()
