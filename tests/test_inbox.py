import threading

import pytest
from conftest import make_message

from replied.errors import ApiError, ConnectionFailure
from replied.inbox import InboxController
from replied.profile_fetcher import CancelToken


class FakeAPI:
    def __init__(self, inbox=None, error=None):
        self.inbox = inbox or []
        self.error = error
        self.calls = []

    def get_inbox(self):
        if self.error is not None:
            raise self.error
        return list(self.inbox)

    def get_history(self):
        return [make_message("old", 0, status="replied")]

    def publish_reply(self, message_id, content):
        self.calls.append(("publish", message_id, content))
        if self.error is not None:
            raise self.error

    def archive_message(self, message_id):
        self.calls.append(("archive", message_id))

    def delete_message(self, message_id):
        self.calls.append(("delete", message_id))


@pytest.fixture
def loaded(notifier):
    api = FakeAPI([make_message("a", 1), make_message("b", 5)])
    inbox = InboxController(api, notifier)
    inbox.refresh()
    return inbox, api


def test_refresh_sorts_newest_first(loaded):
    inbox, _ = loaded

    assert [m.id for m in inbox.messages] == ["b", "a"]


def test_refresh_failure_notifies(notifier):
    inbox = InboxController(FakeAPI(error=ConnectionFailure("down")), notifier)

    assert inbox.refresh() is False
    assert notifier.errors == ["Failed to fetch inbox"]


def test_cancelled_refresh_keeps_previous_state(notifier):
    token = CancelToken()
    token.cancel()
    inbox = InboxController(FakeAPI([make_message("a")]), notifier)

    assert inbox.refresh(token) is False
    assert inbox.messages == []


def test_publish_removes_message_from_pending(loaded, notifier):
    inbox, api = loaded

    assert inbox.publish_reply("a", "  my answer  ") is True
    assert api.calls == [("publish", "a", "my answer")]
    assert [m.id for m in inbox.messages] == ["b"]
    assert "Replied and published!" in notifier.messages


def test_empty_reply_is_rejected_locally(loaded, notifier):
    inbox, api = loaded

    assert inbox.publish_reply("a", "   ") is False
    assert api.calls == []


def test_publish_failure_keeps_message(notifier):
    api = FakeAPI([make_message("a")])
    inbox = InboxController(api, notifier)
    inbox.refresh()
    api.error = ApiError(409, "Already replied")

    assert inbox.publish_reply("a", "answer") is False
    assert [m.id for m in inbox.messages] == ["a"]
    assert notifier.errors[-1] == "Already replied"


def test_archive_and_delete(loaded, notifier):
    inbox, api = loaded
    inbox.load_history()

    assert inbox.archive("a") is True
    assert inbox.delete("b", confirm=lambda: False) is False
    assert inbox.delete("old", confirm=lambda: True) is True
    assert api.calls == [("archive", "a"), ("delete", "old")]
    assert inbox.history == []
    assert [m.id for m in inbox.messages] == ["b"]


def test_receive_prepends_once(loaded, notifier):
    inbox, _ = loaded
    arrivals = []
    inbox._listeners.append(arrivals.append)
    new = make_message("c", 9)

    assert inbox.receive(new) is True
    assert inbox.receive(new) is False
    assert inbox.receive(make_message("d", 10, status="replied")) is False
    assert [m.id for m in inbox.messages] == ["c", "b", "a"]
    assert arrivals == [new]
    assert notifier.messages.count("New message received!") == 1


def test_subscribe_and_unsubscribe(loaded):
    inbox, _ = loaded
    inbox.poll_interval = 60

    subscription = inbox.subscribe()
    assert subscription.active

    inbox.unsubscribe()
    assert not subscription.active


def test_find_returns_pending_message_by_id(loaded):
    inbox, _ = loaded

    assert inbox.find("a").id == "a"
    assert inbox.find("missing") is None


def test_selection_survives_a_message_arriving_before_publish(loaded, notifier):
    inbox, api = loaded
    selected_id = inbox.messages[0].id

    inbox.receive(make_message("c", 9))

    assert inbox.messages[0].id == "c"
    assert inbox.publish_reply(inbox.find(selected_id).id, "answer") is True
    assert api.calls == [("publish", "b", "answer")]
    assert [m.id for m in inbox.messages] == ["c", "a"]


class SlowPublishAPI(FakeAPI):
    def __init__(self, inbox):
        super().__init__(inbox)
        self.entered = threading.Event()
        self.release = threading.Event()

    def publish_reply(self, message_id, content):
        self.entered.set()
        self.release.wait(timeout=5)
        super().publish_reply(message_id, content)


def test_second_publish_while_publishing_is_dropped(notifier):
    api = SlowPublishAPI([make_message("a", 1)])
    inbox = InboxController(api, notifier)
    inbox.refresh()
    results = []
    first = threading.Thread(target=lambda: results.append(inbox.publish_reply("a", "yes")))
    first.start()
    assert api.entered.wait(timeout=5)

    assert inbox.publish_reply("a", "yes") is False
    api.release.set()
    first.join(timeout=5)

    assert results == [True]
    assert api.calls == [("publish", "a", "yes")]
    assert inbox.messages == []
    assert inbox.publishing is False


def test_publishing_an_already_answered_message_is_refused(loaded):
    inbox, api = loaded

    assert inbox.publish_reply("a", "first") is True
    assert inbox.publish_reply("a", "again") is False
    assert api.calls == [("publish", "a", "first")]
