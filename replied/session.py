"""Session resolution, route guarding and the post-login callback wait."""
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, List, Optional

from .auth import AuthEvent, OAuthProvider, Subscription
from .config import (
    AUTH_CALLBACK_TIMEOUT,
    AUTH_ERROR_ROUTE,
    INBOX_ROUTE,
    LANDING_ROUTE,
    PROTECTED_ROUTES,
    RESERVED_PATHS,
    SETUP_ROUTE,
)
from .data_models import Session
from .errors import ApiError, ReplyError
from .onboarding import clean_username

logger = logging.getLogger("replied.session")

Runner = Callable[[Callable[[], None]], None]


def run_in_thread(fn: Callable[[], None]) -> None:
    threading.Thread(target=fn, daemon=True).start()


class UsernameState(Enum):
    UNKNOWN = "unknown"
    PRESENT = "present"
    MISSING = "missing"


def resolve_redirect(route: str, session: Optional[Session], username: UsernameState) -> Optional[str]:
    """Where a visit to ``route`` must be sent instead, or None to allow it.

    While the username lookup is still UNKNOWN a protected page is allowed to
    render its loading state; the redirect follows once it resolves.
    """
    path = route.split("?", 1)[0]
    if path == SETUP_ROUTE:
        if session is None:
            return LANDING_ROUTE
        if username is UsernameState.PRESENT:
            return INBOX_ROUTE
        return None
    if path in PROTECTED_ROUTES:
        if session is None:
            return LANDING_ROUTE
        if username is UsernameState.MISSING:
            return SETUP_ROUTE
    return None


def profile_route(username: str) -> str:
    return f"/{username}"


def profile_username(route: str) -> Optional[str]:
    """Handle named by a public profile route (``/alice`` or ``/@alice``), else None."""
    segment = route.split("?", 1)[0].strip("/").split("/", 1)[0]
    if f"/{segment}" in RESERVED_PATHS:
        return None
    return clean_username(segment.lstrip("@")) or None


class SessionResolver:
    """Single session context handed to every screen and controller.

    ``start()`` reads the current session (failures count as signed out) and
    subscribes to provider events until ``stop()``. For a signed-in user the
    username lookup runs through ``runner`` and flips ``username_state``
    from UNKNOWN to PRESENT or MISSING.
    """

    def __init__(self, provider: OAuthProvider, api, runner: Runner = run_in_thread):
        self.provider = provider
        self.api = api
        self._runner = runner
        self._session: Optional[Session] = None
        self.username_state = UsernameState.UNKNOWN
        self.username: Optional[str] = None
        self.loading = True
        self._subscription: Optional[Subscription] = None
        self._listeners: List[Callable[["SessionResolver"], None]] = []
        self._generation = 0
        self._lock = threading.Lock()

    # --- lifecycle ---
    def start(self) -> None:
        try:
            session = self.provider.get_session()
        except ReplyError:
            logger.warning("session retrieval failed; continuing signed out")
            session = None
        self._subscription = self.provider.on_auth_state_change(self._on_auth_event)
        self._apply(session)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def add_listener(self, listener: Callable[["SessionResolver"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # --- state ---
    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def user_id(self) -> Optional[str]:
        return self._session.user_id if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    def token(self) -> Optional[str]:
        """Bearer token source for the API client."""
        return self._session.access_token if self._session else None

    def redirect_for(self, route: str) -> Optional[str]:
        if self.loading:
            return None
        return resolve_redirect(route, self._session, self.username_state)

    def mark_username(self, username: str) -> None:
        """Record a freshly claimed username without another lookup."""
        self.username = username
        self.username_state = UsernameState.PRESENT
        self._notify()

    def sign_out(self) -> None:
        self.provider.sign_out()
        # the SIGNED_OUT event normally clears state; do it here as well in
        # case this resolver is no longer subscribed
        self._apply(None)

    # --- internals ---
    def _on_auth_event(self, event: AuthEvent, session: Optional[Session]) -> None:
        logger.debug("resolver received %s", event.value)
        if event is AuthEvent.TOKEN_REFRESHED and session is not None and self._session is not None \
                and session.user_id == self._session.user_id:
            self._session = session
            return
        self._apply(session)

    def _apply(self, session: Optional[Session]) -> None:
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._session = session
            self.username = None
            self.username_state = UsernameState.UNKNOWN if session else UsernameState.MISSING
        self.loading = False
        self._notify()
        if session is not None:
            self._runner(lambda: self._resolve_username(session, generation))

    def _resolve_username(self, session: Session, generation: int) -> None:
        username: Optional[str] = None
        try:
            profile = self.api.get_own_profile()
            username = profile.username or None
        except ApiError as exc:
            if not exc.not_found:
                logger.warning("profile lookup failed: %s", exc)
        except ReplyError as exc:
            logger.warning("profile lookup failed: %s", exc)
        with self._lock:
            if generation != self._generation:
                # a newer session replaced this one while we were waiting
                return
            self.username = username
            self.username_state = UsernameState.PRESENT if username else UsernameState.MISSING
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("session listener failed")


class AuthCallbackFlow:
    """Wait a fixed window for SIGNED_IN after the provider redirect.

    Navigates exactly once: to ``success_route`` on sign-in, or to
    ``error_route`` when the window lapses. The auth listener is removed as
    soon as the flow settles, so a late event changes nothing.
    """

    def __init__(
        self,
        provider: OAuthProvider,
        navigate: Callable[[str], None],
        timeout: float = AUTH_CALLBACK_TIMEOUT,
        success_route: str = INBOX_ROUTE,
        error_route: str = AUTH_ERROR_ROUTE,
    ):
        self.provider = provider
        self.navigate = navigate
        self.timeout = timeout
        self.success_route = success_route
        self.error_route = error_route
        self.outcome: Optional[str] = None
        self._lock = threading.Lock()
        self._settled = threading.Event()
        self._subscription: Optional[Subscription] = None
        self._timer: Optional[threading.Timer] = None

    def start(self) -> "AuthCallbackFlow":
        self._subscription = self.provider.on_auth_state_change(self._on_event)
        self._timer = threading.Timer(self.timeout, self._on_timeout)
        self._timer.daemon = True
        self._timer.start()
        if self.provider.current_session is not None:
            self._settle(self.success_route)
        return self

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._settled.wait(timeout)

    @property
    def settled(self) -> bool:
        return self._settled.is_set()

    def _on_event(self, event: AuthEvent, session: Optional[Session]) -> None:
        if event is AuthEvent.SIGNED_IN and session is not None:
            self._settle(self.success_route)

    def _on_timeout(self) -> None:
        logger.warning("no sign-in event within %.1fs; giving up", self.timeout)
        self._settle(self.error_route)

    def _settle(self, route: str) -> None:
        with self._lock:
            if self.outcome is not None:
                return
            self.outcome = route
        if self._timer is not None:
            self._timer.cancel()
        if self._subscription is not None:
            self._subscription.unsubscribe()
        try:
            self.navigate(route)
        finally:
            self._settled.set()
