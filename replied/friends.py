"""Friend graph: friends, incoming requests, feed and directory search."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .composer import failure_message
from .config import SEARCH_DEBOUNCE, SEARCH_MIN_LENGTH
from .data_models import Friendship, Message, UserSummary
from .debounce import Debouncer
from .errors import ReplyError
from .notify import Notifier

logger = logging.getLogger("replied.friends")


class FriendGraphController:
    """Reads and mutations for the friends screen.

    Mutations are confirm-then-refetch: nothing changes locally until the
    server accepted the change, after which the affected list is reloaded.
    """

    def __init__(self, api, notifier: Notifier, search_delay: float = SEARCH_DEBOUNCE):
        self.api = api
        self.notifier = notifier
        self.friends: List[Friendship] = []
        self.requests: List[Friendship] = []
        self.feed: List[Message] = []
        self.search_results: List[UserSummary] = []
        self.searching = False
        self._on_results: Optional[Callable[[List[UserSummary]], None]] = None
        self._debouncer = Debouncer(self._debounced_search, search_delay)

    # --- lists ---
    def load_friends(self) -> bool:
        try:
            self.friends = self.api.list_friends()
        except ReplyError as exc:
            logger.warning("friends fetch failed: %s", exc)
            self.notifier.error("Failed to load friends")
            return False
        return True

    def load_requests(self) -> bool:
        try:
            self.requests = self.api.list_friend_requests()
        except ReplyError as exc:
            logger.warning("friend requests fetch failed: %s", exc)
            self.notifier.error("Failed to load requests")
            return False
        return True

    def load_feed(self) -> bool:
        try:
            self.feed = self.api.get_friend_feed()
        except ReplyError as exc:
            logger.warning("friend feed fetch failed: %s", exc)
            self.notifier.error("Failed to load feed")
            return False
        return True

    # --- search ---
    def search(self, query: str) -> List[UserSummary]:
        """Search the directory now; short queries clear the results."""
        query = query.strip()
        if len(query) < SEARCH_MIN_LENGTH:
            self.search_results = []
            return self.search_results
        self.searching = True
        try:
            self.search_results = self.api.search_users(query)
        except ReplyError as exc:
            logger.warning("user search failed: %s", exc)
            self.notifier.error("Search failed")
        finally:
            self.searching = False
        return self.search_results

    def search_as_you_type(self, query: str, on_results: Callable[[List[UserSummary]], None]) -> None:
        """Debounced search; ``on_results`` runs on the timer thread."""
        self._on_results = on_results
        if len(query.strip()) < SEARCH_MIN_LENGTH:
            self._debouncer.cancel()
            self.search_results = []
            on_results([])
            return
        self._debouncer.call(query)

    def _debounced_search(self, query: str) -> None:
        results = self.search(query)
        if self._on_results is not None:
            self._on_results(results)

    def close(self) -> None:
        self._debouncer.cancel()

    # --- mutations ---
    def send_request(self, user_id: str) -> bool:
        try:
            self.api.send_friend_request(user_id)
        except ReplyError as exc:
            logger.warning("friend request to %s failed: %s", user_id, exc)
            self.notifier.error(failure_message(exc, "Failed to send request"))
            return False
        self.notifier.success("Request sent!")
        return True

    def accept(self, request_id: str) -> bool:
        try:
            self.api.accept_friend_request(request_id)
        except ReplyError as exc:
            logger.warning("accepting %s failed: %s", request_id, exc)
            self.notifier.error(failure_message(exc, "Failed to accept"))
            return False
        self.notifier.success("Accepted!")
        self.load_requests()
        self.load_friends()
        return True

    def unfriend(self, friendship_id: str) -> bool:
        try:
            self.api.unfriend(friendship_id)
        except ReplyError as exc:
            logger.warning("unfriending %s failed: %s", friendship_id, exc)
            self.notifier.error(failure_message(exc, "Failed to remove friend"))
            return False
        self.notifier.success("Friend removed")
        self.load_friends()
        return True
