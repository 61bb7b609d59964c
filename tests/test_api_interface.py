import json

import pytest
import requests

from replied.api_interface import RealAPI
from replied.errors import ApiError, ConnectionFailure, NotAuthenticated


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode()

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class FakeSession:
    def __init__(self, *responses, error=None):
        self.responses = list(responses)
        self.error = error
        self.requests = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.requests.append({"method": method, "url": url, "params": params, "json": json, "headers": headers})
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)


def make_api(*responses, token="tok", error=None):
    session = FakeSession(*responses, error=error)
    api = RealAPI("https://api.test/", token_source=lambda: token, session=session)
    return api, session


def test_bearer_token_is_sent_on_every_request():
    api, session = make_api(FakeResponse(200, []))

    api.get_inbox()

    assert session.requests[0]["url"] == "https://api.test/inbox"
    assert session.requests[0]["headers"] == {"Authorization": "Bearer tok"}


def test_authenticated_call_without_token_never_hits_network():
    api, session = make_api(token=None)

    with pytest.raises(NotAuthenticated):
        api.get_inbox()
    assert session.requests == []


def test_anonymous_send_omits_authorization():
    api, session = make_api(FakeResponse(200, {"success": True}), token=None)

    api.send_message("rcv", "hello")

    sent = session.requests[0]
    assert sent["headers"] == {}
    assert sent["json"] == {"receiver_id": "rcv", "content": "hello"}


def test_follow_up_send_includes_thread():
    api, session = make_api(FakeResponse(200, {"success": True}))

    api.send_message("rcv", "again", thread_id="t-1")

    assert session.requests[0]["json"]["thread_id"] == "t-1"


def test_server_error_message_is_carried():
    api, _ = make_api(FakeResponse(400, {"error": "Message contains blocked content"}))

    with pytest.raises(ApiError) as info:
        api.send_message("rcv", "bad words")
    assert info.value.status_code == 400
    assert info.value.message == "Message contains blocked content"


def test_not_found_profile():
    api, _ = make_api(FakeResponse(404, {"error": "Profile not found"}))

    with pytest.raises(ApiError) as info:
        api.get_public_profile("ghost")
    assert info.value.not_found


def test_transport_failure_becomes_connection_failure():
    api, _ = make_api(error=requests.ConnectionError("refused"))

    with pytest.raises(ConnectionFailure):
        api.get_history()


def test_public_profile_parses_profile_and_messages():
    payload = {
        "profile": {"id": "u1", "username": "alice", "is_paused": True},
        "messages": [
            {"id": "m1", "content": "hi", "created_at": "2024-01-01T00:00:00Z", "replies": [{"content": "hey"}], "likes": [{"count": 2}]},
            {"content": "no id"},
        ],
    }
    api, _ = make_api(FakeResponse(200, payload))

    profile, messages = api.get_public_profile("alice")

    assert profile.username == "alice"
    assert profile.is_paused is True
    assert len(messages) == 1
    assert messages[0].reply.content == "hey"
    assert messages[0].likes_count == 2


def test_reaction_toggle_maps_to_post_and_delete():
    api, session = make_api(FakeResponse(200, {}), FakeResponse(204))

    api.set_reaction("m1", "like", True)
    api.set_reaction("m1", "bookmark", False)

    assert [(r["method"], r["url"]) for r in session.requests] == [
        ("POST", "https://api.test/messages/m1/like"),
        ("DELETE", "https://api.test/messages/m1/bookmark"),
    ]


def test_unknown_reaction_is_rejected():
    api, session = make_api()

    with pytest.raises(ValueError):
        api.set_reaction("m1", "love", True)
    assert session.requests == []


def test_update_profile_unwraps_list_response():
    api, _ = make_api(FakeResponse(200, {"profile": [{"id": "u1", "username": "alice", "bio": "hello"}]}))

    updated = api.update_profile({"bio": "hello"})

    assert updated.bio == "hello"


def test_search_users_passes_query():
    api, session = make_api(FakeResponse(200, [{"id": "u2", "username": "bob"}]))

    users = api.search_users("bo")

    assert session.requests[0]["params"] == {"q": "bo"}
    assert users[0].username == "bob"
