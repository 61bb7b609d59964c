from datetime import timezone

from replied.data_models import Friendship, Message, Session, normalize_reply, parse_timestamp


def test_parse_timestamp_variants():
    zulu = parse_timestamp("2024-03-01T10:00:00Z")
    naive = parse_timestamp("2024-03-01T10:00:00")

    assert zulu == naive
    assert zulu.tzinfo == timezone.utc
    assert parse_timestamp("garbage").year == 1970
    assert parse_timestamp(None).year == 1970


def test_normalize_reply_accepts_every_embed_shape():
    assert normalize_reply({"content": "a"}).content == "a"
    assert normalize_reply([{"content": "b"}, {"content": "ignored"}]).content == "b"
    assert normalize_reply([]) is None
    assert normalize_reply(None) is None
    assert normalize_reply({"content": ""}) is None


def test_message_counts_from_aggregate_embeds():
    message = Message.from_dict(
        {"id": 7, "content": "q", "likes": [{"count": 5}], "bookmarks_count": "2", "is_liked": True}
    )

    assert message.id == "7"
    assert message.likes_count == 5
    assert message.bookmarks_count == 2
    assert message.is_liked is True


def test_message_explicit_status_wins_over_reply():
    message = Message.from_dict({"id": "m", "status": "archived", "reply": {"content": "x"}})

    assert message.status == "archived"
    assert message.is_published


def test_thread_key_defaults_to_own_id():
    assert Message.from_dict({"id": "m"}).thread_key == "m"
    assert Message.from_dict({"id": "m", "thread_id": "t"}).thread_key == "t"


def test_receiver_embed_is_exposed():
    message = Message.from_dict({"id": "m", "profiles": {"id": "u", "username": "alice"}})

    assert message.receiver.username == "alice"


def test_friendship_embed():
    friendship = Friendship.from_dict(
        {"id": "f", "sender_id": "a", "receiver_id": "b", "status": "accepted", "friend": {"id": "b", "username": "bob"}}
    )

    assert friendship.other.label == "bob"
    assert friendship.created_at is None


def test_session_expiry():
    assert Session("t", "u").is_expired() is False
    assert Session("t", "u", expires_at=0).is_expired() is True
