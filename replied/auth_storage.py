"""Session persistence for replied.

The session is stored in the system keyring as one small entry per field
under the ``replied`` service. Some keyring backends (Windows Credential
Manager in particular) reject large values, so a token that does not fit in
a single entry is split into base64 chunks:

  {key}.part0 .. {key}.partN   chunk payloads
  {key}.parts                  chunk count

Functions:
  - save_session(session) -> None
  - load_session() -> Optional[Session]
  - clear_session() -> None
"""

from __future__ import annotations

import base64
import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError, PasswordSetError

from .config import KEYRING_SERVICE
from .data_models import Session

# Conservative per-credential size so chunking kicks in before backend limits
_CHUNK_SIZE = 1000
_FIELDS = ("access_token", "refresh_token", "user_id", "email", "expires_at", "avatar_url")
_TOKEN_FIELDS = ("access_token", "refresh_token")

logger = logging.getLogger("replied.auth_storage")


def _store_chunked_value(key_base: str, value: str) -> None:
    """Store ``value`` as base64 chunks, trying smaller chunk sizes on failure."""
    _delete_chunked_value(key_base)
    data = value.encode("utf-8")

    last_exc: Optional[Exception] = None
    for chunk_size in (_CHUNK_SIZE, 512, 256, 128):
        parts = [data[i : i + chunk_size] for i in range(0, len(data), chunk_size)]
        written = []
        try:
            for idx, part in enumerate(parts):
                part_key = f"{key_base}.part{idx}"
                encoded = base64.b64encode(part).decode("ascii")
                keyring.set_password(KEYRING_SERVICE, part_key, encoded)
                if keyring.get_password(KEYRING_SERVICE, part_key) != encoded:
                    raise RuntimeError(f"verification failed for {part_key}")
                written.append(part_key)
            keyring.set_password(KEYRING_SERVICE, f"{key_base}.parts", str(len(parts)))
            logger.debug("stored %s in %d chunk(s) (chunk_size=%d)", key_base, len(parts), chunk_size)
            return
        except Exception as exc:
            last_exc = exc
            logger.debug("chunked write with chunk_size=%d failed: %s", chunk_size, exc)
            for part_key in written:
                _delete_quietly(part_key)
            _delete_quietly(f"{key_base}.parts")

    logger.error("all chunked write attempts failed for %s", key_base)
    raise last_exc or RuntimeError("failed to store chunked value")


def _read_chunked_value(key_base: str) -> Optional[str]:
    count_s = keyring.get_password(KEYRING_SERVICE, f"{key_base}.parts")
    if not count_s:
        return None
    try:
        count = int(count_s)
    except ValueError:
        logger.debug("invalid parts index for %s: %r", key_base, count_s)
        return None

    parts = []
    for idx in range(count):
        encoded = keyring.get_password(KEYRING_SERVICE, f"{key_base}.part{idx}")
        if encoded is None:
            raise RuntimeError(f"missing chunk {key_base}.part{idx}")
        parts.append(base64.b64decode(encoded.encode("ascii")))
    return b"".join(parts).decode("utf-8")


def _delete_chunked_value(key_base: str) -> None:
    count_s = keyring.get_password(KEYRING_SERVICE, f"{key_base}.parts")
    if count_s:
        try:
            count = int(count_s)
        except ValueError:
            count = 0
        for idx in range(count):
            _delete_quietly(f"{key_base}.part{idx}")
    _delete_quietly(f"{key_base}.parts")


def _delete_quietly(key: str) -> None:
    try:
        keyring.delete_password(KEYRING_SERVICE, key)
    except PasswordDeleteError:
        pass


def save_session(session: Session) -> None:
    """Persist every session field; tokens fall back to chunked storage."""
    for key, value in session.to_dict().items():
        if value is None:
            _delete_quietly(key)
            continue
        text = str(value)
        if key in _TOKEN_FIELDS:
            try:
                keyring.set_password(KEYRING_SERVICE, key, text)
                _delete_chunked_value(key)
            except PasswordSetError:
                logger.debug("single %s write failed; using chunked storage", key)
                _store_chunked_value(key, text)
        else:
            keyring.set_password(KEYRING_SERVICE, key, text)
    logger.debug("session for user %s written to keyring", session.user_id)


def load_session() -> Optional[Session]:
    """Return the stored session, or None when nothing usable is stored."""
    values = {}
    for key in _FIELDS:
        value = keyring.get_password(KEYRING_SERVICE, key)
        if value is None and key in _TOKEN_FIELDS:
            value = _read_chunked_value(key)
        values[key] = value

    if not values["access_token"] or not values["user_id"]:
        return None
    return Session.from_dict(values)


def clear_session() -> None:
    """Remove stored session entries (best-effort per entry)."""
    for key in _FIELDS:
        _delete_quietly(key)
    for key in _TOKEN_FIELDS:
        try:
            _delete_chunked_value(key)
        except KeyringError:
            logger.debug("could not clear chunked %s", key)
    logger.debug("keyring session entries cleared")
