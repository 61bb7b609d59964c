"""
OAuth sign-in against the managed auth provider.

The browser completes the provider login and is redirected to a short-lived
local callback server; the authorization code is exchanged for tokens, the
session is persisted through auth_storage and listeners are told about the
state change.
"""
from __future__ import annotations

import http.server
import logging
import threading
import time
import webbrowser
from enum import Enum
from typing import Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import requests

from . import auth_storage
from .config import BROWSER_LOGIN_TIMEOUT, Settings
from .data_models import Session
from .errors import AuthError

logger = logging.getLogger("replied.auth")

SCOPES = ["email", "openid", "profile"]


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


AuthListener = Callable[[AuthEvent, Optional[Session]], None]


class Subscription:
    """Handle returned by ``on_auth_state_change``; unsubscribing is idempotent."""

    def __init__(self, remove: Callable[[], None]):
        self._remove = remove
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._remove()


def _make_handler(auth_event: threading.Event, auth_response: Dict[str, str]):
    """Return a handler class bound to the given event and response dict."""

    class AuthCallbackHandler(http.server.BaseHTTPRequestHandler):
        def do_GET(self):
            parsed = urlparse(self.path)
            if parsed.path != "/callback":
                self.send_response(404)
                self.end_headers()
                return
            params = parse_qs(parsed.query)
            code = params.get("code", [None])[0]
            if code:
                auth_response["code"] = code
                status, title = 200, "Signed in to replied"
                body = "You can close this window and return to the terminal."
            else:
                error = params.get("error_description", params.get("error", ["No authorization code received"]))[0]
                auth_response["error"] = error
                status, title, body = 400, "Sign-in failed", error
            self.send_response(status)
            self.send_header("Content-type", "text/html; charset=utf-8")
            self.end_headers()
            page = f"<html><body style='font-family: system-ui; padding: 2em; text-align: center'><h1>{title}</h1><p>{body}</p></body></html>"
            self.wfile.write(page.encode("utf-8"))
            auth_event.set()

        def log_message(self, format, *args):
            # keep the terminal clean while the TUI is running
            return

    return AuthCallbackHandler


class OAuthProvider:
    """Session source wrapping the auth provider and keyring storage."""

    def __init__(self, settings: Settings, storage=auth_storage, http_client=None, open_browser=webbrowser.open):
        self.settings = settings
        self.storage = storage
        self.http = http_client or requests.Session()
        self._open_browser = open_browser
        self._session: Optional[Session] = None
        self._listeners: List[AuthListener] = []
        self._lock = threading.Lock()
        self._server: Optional[http.server.HTTPServer] = None
        self._callback_event = threading.Event()
        self._callback_response: Dict[str, str] = {}

    # --- auth state events ---
    def on_auth_state_change(self, listener: AuthListener) -> Subscription:
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return Subscription(remove)

    def _emit(self, event: AuthEvent, session: Optional[Session]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        logger.debug("auth event %s (%d listener(s))", event.value, len(listeners))
        for listener in listeners:
            try:
                listener(event, session)
            except Exception:
                logger.exception("auth listener failed on %s", event.value)

    # --- session ---
    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    def get_session(self) -> Optional[Session]:
        """Return the live session, loading and refreshing it as needed.

        Raises AuthError when stored credentials cannot be read or refreshed.
        """
        if self._session is None:
            try:
                self._session = self.storage.load_session()
            except Exception as exc:
                logger.exception("reading stored session failed")
                raise AuthError("Could not read stored session") from exc
        session = self._session
        if session is not None and session.is_expired():
            if not session.refresh_token:
                self._drop_session()
                return None
            session = self.refresh(session)
        return session

    def refresh(self, session: Session) -> Session:
        tokens = self._token_request({"grant_type": "refresh_token", "refresh_token": session.refresh_token})
        refreshed = Session(
            access_token=tokens["access_token"],
            user_id=session.user_id,
            refresh_token=tokens.get("refresh_token") or session.refresh_token,
            email=session.email,
            expires_at=self._expiry(tokens),
            avatar_url=session.avatar_url,
        )
        self._store(refreshed)
        self._emit(AuthEvent.TOKEN_REFRESHED, refreshed)
        return refreshed

    # --- sign in ---
    def authorize_url(self) -> str:
        params = {
            "client_id": self.settings.auth_client_id,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "redirect_uri": self.settings.redirect_uri,
            "provider": "google",
        }
        return f"{self.settings.auth_url}/authorize?{urlencode(params)}"

    def begin_sign_in(self) -> str:
        """Start the local callback server and open the provider login page."""
        self._callback_event.clear()
        self._callback_response.clear()
        handler_class = _make_handler(self._callback_event, self._callback_response)
        http.server.HTTPServer.allow_reuse_address = True
        try:
            self._server = http.server.HTTPServer(("localhost", self.settings.auth_redirect_port), handler_class)
        except OSError as exc:
            raise AuthError("Auth callback port already in use. Please try again in a few moments.") from exc
        threading.Thread(target=self._server.serve_forever, daemon=True).start()
        logger.debug("callback server listening on %s", self.settings.redirect_uri)

        url = self.authorize_url()
        try:
            self._open_browser(url)
        except Exception:
            logger.warning("failed to open browser automatically; open %s manually", url)
        return url

    def wait_for_code(self, timeout: float = BROWSER_LOGIN_TIMEOUT) -> str:
        """Block until the browser hits the callback; always closes the server."""
        try:
            if not self._callback_event.wait(timeout=timeout):
                raise AuthError("Authentication timed out")
            if "error" in self._callback_response:
                raise AuthError(self._callback_response["error"])
            return self._callback_response["code"]
        finally:
            self._close_server()

    def exchange_code(self, code: str) -> Session:
        """Trade an authorization code for a session and announce SIGNED_IN."""
        tokens = self._token_request({"grant_type": "authorization_code", "code": code, "redirect_uri": self.settings.redirect_uri})
        user_info = self._user_info(tokens["access_token"])
        metadata = user_info.get("user_metadata") or {}
        session = Session(
            access_token=tokens["access_token"],
            user_id=str(user_info.get("id") or user_info.get("sub") or ""),
            refresh_token=tokens.get("refresh_token"),
            email=user_info.get("email"),
            expires_at=self._expiry(tokens),
            avatar_url=metadata.get("avatar_url") or user_info.get("picture"),
        )
        if not session.user_id:
            raise AuthError("Provider did not return a user id")
        self._store(session)
        self._emit(AuthEvent.SIGNED_IN, session)
        return session

    # --- sign out ---
    def sign_out(self) -> None:
        session = self._session
        if session is not None and self.settings.auth_url:
            try:
                self.http.post(
                    f"{self.settings.auth_url}/logout",
                    headers={"Authorization": f"Bearer {session.access_token}"},
                    timeout=self.settings.request_timeout,
                )
            except requests.RequestException:
                logger.debug("provider logout call failed (ignored)")
        self._drop_session()

    def _drop_session(self) -> None:
        self._session = None
        try:
            self.storage.clear_session()
        except Exception:
            logger.exception("failed to clear stored session")
        self._emit(AuthEvent.SIGNED_OUT, None)

    # --- helpers ---
    def _store(self, session: Session) -> None:
        self._session = session
        try:
            self.storage.save_session(session)
        except Exception:
            # session stays usable in memory for this run
            logger.exception("failed to persist session (non-fatal)")

    def _token_request(self, data: Dict[str, Optional[str]]) -> Dict[str, str]:
        payload = dict(data, client_id=self.settings.auth_client_id)
        try:
            resp = self.http.post(
                f"{self.settings.auth_url}/token",
                data=payload,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.settings.request_timeout,
            )
        except requests.RequestException as exc:
            logger.exception("token request failed")
            raise AuthError(f"Token request failed: {exc}") from exc
        if not resp.ok:
            logger.debug("token request HTTP %s: %s", resp.status_code, resp.text)
            raise AuthError(f"Token request failed: {resp.text}")
        tokens = resp.json()
        if "access_token" not in tokens:
            raise AuthError("Token response did not include an access token")
        return tokens

    def _user_info(self, access_token: str) -> Dict[str, object]:
        try:
            resp = self.http.get(
                f"{self.settings.auth_url}/user",
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.settings.request_timeout,
            )
        except requests.RequestException as exc:
            logger.exception("user info request failed")
            raise AuthError(f"User info request failed: {exc}") from exc
        if not resp.ok:
            raise AuthError(f"Failed to get user info: {resp.text}")
        return resp.json()

    @staticmethod
    def _expiry(tokens: Dict[str, str]) -> Optional[float]:
        expires_in = tokens.get("expires_in")
        if expires_in in (None, ""):
            return None
        return time.time() + float(expires_in)

    def _close_server(self) -> None:
        server, self._server = self._server, None
        if server is None:
            return
        try:
            server.shutdown()
            server.server_close()
        except OSError:
            logger.exception("failed to close callback server cleanly")
