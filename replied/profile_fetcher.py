"""Loading of public and private profiles together with their messages."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .data_models import Message, Profile
from .errors import ReplyError
from .notify import Notifier
from .threads import Thread, group_threads

logger = logging.getLogger("replied.profile_fetcher")


class CancelToken:
    """Cancellation handle tied to the lifetime of the view that asked."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ProfilePage:
    profile: Optional[Profile]
    messages: List[Message] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.profile is not None

    @property
    def threads(self) -> List[Thread]:
        return group_threads(self.messages)


def _published_only(messages: List[Message]) -> List[Message]:
    return [m for m in messages if m.status == "replied" and m.reply is not None]


class ProfileFetcher:
    """Fetches a profile page without ever raising into the render path.

    Failures are logged and shown as a notification, and come back as an
    empty page. A result whose cancel token fired meanwhile is dropped and
    ``None`` is returned instead.
    """

    def __init__(self, api, notifier: Notifier):
        self.api = api
        self.notifier = notifier

    def fetch_public(self, username: str, cancel: CancelToken | None = None) -> Optional[ProfilePage]:
        def load() -> ProfilePage:
            profile, messages = self.api.get_public_profile(username)
            # a public view only ever shows answered messages
            return ProfilePage(profile, _published_only(messages))

        return self._run(load, cancel, failure="Profile not found")

    def fetch_own(self, cancel: CancelToken | None = None) -> Optional[ProfilePage]:
        """The viewer's own profile with every message they received.

        Two requests: ``GET /profile`` then ``GET /history``. The backend has
        no combined endpoint for the owner, and unlike the public page the
        history includes unanswered and archived messages. Either failure
        yields the usual empty page.
        """
        def load() -> ProfilePage:
            profile = self.api.get_own_profile()
            return ProfilePage(profile, self.api.get_history())

        return self._run(load, cancel, failure="Could not load your profile")

    def fetch_saved(self, kind: str, cancel: CancelToken | None = None) -> Optional[List[Message]]:
        """The viewer's bookmarked (``kind="bookmark"``) or liked messages."""
        loader = self.api.get_bookmarks if kind == "bookmark" else self.api.get_likes
        page = self._run(lambda: ProfilePage(None, loader()), cancel, failure=f"Failed to load {kind}s")
        return None if page is None else page.messages

    def _run(self, load: Callable[[], ProfilePage], cancel: Optional[CancelToken], failure: str) -> Optional[ProfilePage]:
        try:
            page = load()
        except ReplyError as exc:
            if cancel is not None and cancel.cancelled:
                return None
            logger.warning("%s: %s", failure, exc)
            self.notifier.error(failure)
            return ProfilePage(None, [])
        if cancel is not None and cancel.cancelled:
            logger.debug("discarding late profile response")
            return None
        return page
