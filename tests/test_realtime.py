import threading

from conftest import make_message

from replied.errors import ConnectionFailure
from replied.realtime import InboxSubscription


def test_poll_delivers_unseen_pending_messages_oldest_first():
    inbox = [make_message("new2", 5), make_message("known", 1), make_message("new1", 3), make_message("done", 4, status="replied")]
    received = []
    subscription = InboxSubscription(lambda: inbox, received.append, known_ids={"known"})

    delivered = subscription.poll_once()

    assert [m.id for m in delivered] == ["new1", "new2"]
    assert received == delivered
    assert subscription.poll_once() == []


def test_poll_failure_is_quiet():
    def broken():
        raise ConnectionFailure("offline")

    assert InboxSubscription(broken, lambda m: None).poll_once() == []


def test_nothing_delivered_after_unsubscribe():
    received = []
    subscription = InboxSubscription(lambda: [make_message("x")], received.append)
    subscription.unsubscribe()

    subscription.poll_once()

    assert received == []


def test_background_thread_polls_until_released():
    delivered = threading.Event()
    subscription = InboxSubscription(lambda: [make_message("x")], lambda m: delivered.set(), interval=0.01)

    subscription.start()
    assert delivered.wait(2)
    subscription.unsubscribe()
    subscription.unsubscribe()

    assert subscription.active is False
