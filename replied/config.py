"""Runtime configuration and constants for the replied client."""
from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Environment provided by the shell wins over .env defaults
load_dotenv(override=False)

# Keyring
KEYRING_SERVICE = "replied"

# Message / profile limits
MAX_MESSAGE_LENGTH = 500
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
SEARCH_MIN_LENGTH = 2

# Timing (seconds)
AUTH_CALLBACK_TIMEOUT = 4.0
BROWSER_LOGIN_TIMEOUT = 300
SEARCH_DEBOUNCE = 0.3
USERNAME_CHECK_DEBOUNCE = 0.5

# Routes
LANDING_ROUTE = "/"
SETUP_ROUTE = "/setup"
INBOX_ROUTE = "/inbox"
FRIENDS_ROUTE = "/friends"
SETTINGS_ROUTE = "/settings"
ME_ROUTE = "/me"
AUTH_ERROR_ROUTE = "/login?error=auth-failed"
PROTECTED_ROUTES = frozenset({INBOX_ROUTE, FRIENDS_ROUTE, SETTINGS_ROUTE, ME_ROUTE})
# first path segments that never name a profile
RESERVED_PATHS = PROTECTED_ROUTES | {LANDING_ROUTE, SETUP_ROUTE, "/login", "/auth"}


@dataclass(frozen=True)
class Settings:
    backend_url: str = "http://localhost:8080"
    public_base_url: str = "http://localhost:3000"
    auth_url: str = ""
    auth_client_id: str = ""
    auth_redirect_port: int = 5173
    storage_url: str = ""
    storage_bucket: str = "avatars"
    request_timeout: float = 10.0
    inbox_poll_interval: float = 5.0
    debug: bool = False

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.auth_redirect_port}/callback"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    """Build settings from the process environment."""
    auth_url = os.environ.get("AUTH_URL", "").rstrip("/")
    return Settings(
        backend_url=os.environ.get("BACKEND_URL", "http://localhost:8080").rstrip("/"),
        public_base_url=os.environ.get("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/"),
        auth_url=auth_url,
        auth_client_id=os.environ.get("AUTH_CLIENT_ID", ""),
        auth_redirect_port=int(_env_float("AUTH_REDIRECT_PORT", 5173)),
        storage_url=os.environ.get("STORAGE_URL", f"{auth_url}/storage/v1" if auth_url else "").rstrip("/"),
        storage_bucket=os.environ.get("STORAGE_BUCKET", "avatars"),
        request_timeout=_env_float("REPLIED_REQUEST_TIMEOUT", 10.0),
        inbox_poll_interval=_env_float("REPLIED_INBOX_POLL_INTERVAL", 5.0),
        debug=bool(os.environ.get("REPLIED_DEBUG")),
    )


__all__ = ["Settings", "load_settings"]
