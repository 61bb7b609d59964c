from urllib.parse import parse_qs, urlparse

import pytest

from replied.auth import AuthEvent, OAuthProvider
from replied.config import Settings
from replied.data_models import Session
from replied.errors import AuthError


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload or {}
        self.text = str(self._payload)

    def json(self):
        return self._payload


class FakeHTTP:
    def __init__(self, token_status=200):
        self.token_status = token_status
        self.posts = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append((url, data))
        if url.endswith("/token"):
            return FakeResponse(self.token_status, {"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 3600})
        return FakeResponse(204)

    def get(self, url, headers=None, timeout=None):
        return FakeResponse(200, {"id": "user-9", "email": "z@example.com", "user_metadata": {"avatar_url": "https://img.test/z.png"}})


class FakeStorage:
    def __init__(self, stored=None, broken=False):
        self.stored = stored
        self.broken = broken
        self.cleared = False

    def load_session(self):
        if self.broken:
            raise RuntimeError("keyring locked")
        return self.stored

    def save_session(self, session):
        self.stored = session

    def clear_session(self):
        self.cleared = True
        self.stored = None


@pytest.fixture
def settings():
    return Settings(auth_url="https://auth.test", auth_client_id="client-1", auth_redirect_port=5999)


def test_authorize_url(settings):
    url = OAuthProvider(settings, storage=FakeStorage(), http_client=FakeHTTP()).authorize_url()
    parsed = urlparse(url)
    params = parse_qs(parsed.query)

    assert url.startswith("https://auth.test/authorize?")
    assert params["redirect_uri"] == ["http://localhost:5999/callback"]
    assert params["provider"] == ["google"]


def test_exchange_code_stores_session_and_emits_signed_in(settings):
    storage = FakeStorage()
    provider = OAuthProvider(settings, storage=storage, http_client=FakeHTTP())
    events = []
    provider.on_auth_state_change(lambda event, session: events.append((event, session)))

    session = provider.exchange_code("code-1")

    assert session.user_id == "user-9"
    assert session.avatar_url == "https://img.test/z.png"
    assert storage.stored == session
    assert provider.current_session == session
    assert events == [(AuthEvent.SIGNED_IN, session)]


def test_failed_token_exchange_raises(settings):
    provider = OAuthProvider(settings, storage=FakeStorage(), http_client=FakeHTTP(token_status=400))

    with pytest.raises(AuthError):
        provider.exchange_code("bad")
    assert provider.current_session is None


def test_expired_session_is_refreshed(settings):
    stored = Session("old", "user-1", refresh_token="r-1", expires_at=0)
    storage = FakeStorage(stored)
    provider = OAuthProvider(settings, storage=storage, http_client=FakeHTTP())
    events = []
    provider.on_auth_state_change(lambda event, session: events.append(event))

    session = provider.get_session()

    assert session.access_token == "new-access"
    assert session.user_id == "user-1"
    assert events == [AuthEvent.TOKEN_REFRESHED]


def test_expired_session_without_refresh_token_is_dropped(settings):
    storage = FakeStorage(Session("old", "user-1", expires_at=0))
    provider = OAuthProvider(settings, storage=storage, http_client=FakeHTTP())

    assert provider.get_session() is None
    assert storage.cleared is True


def test_unreadable_storage_raises_auth_error(settings):
    provider = OAuthProvider(settings, storage=FakeStorage(broken=True), http_client=FakeHTTP())

    with pytest.raises(AuthError):
        provider.get_session()


def test_sign_out_clears_and_emits(settings):
    storage = FakeStorage(Session("tok", "user-1"))
    http = FakeHTTP()
    provider = OAuthProvider(settings, storage=storage, http_client=http)
    provider.get_session()
    events = []
    subscription = provider.on_auth_state_change(lambda event, session: events.append(event))

    provider.sign_out()
    subscription.unsubscribe()
    provider.sign_out()

    assert http.posts[0][0] == "https://auth.test/logout"
    assert storage.cleared is True
    assert provider.current_session is None
    assert events == [AuthEvent.SIGNED_OUT]


def test_listener_errors_do_not_stop_other_listeners(settings):
    provider = OAuthProvider(settings, storage=FakeStorage(), http_client=FakeHTTP())
    seen = []

    def broken(event, session):
        raise RuntimeError("boom")

    provider.on_auth_state_change(broken)
    provider.on_auth_state_change(lambda event, session: seen.append(event))

    provider.sign_out()

    assert seen == [AuthEvent.SIGNED_OUT]
