"""
Data models for the replied client.
These models define the client-visible shapes of backend records; the server
stays authoritative for all of them.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

MESSAGE_STATUSES = ("pending", "replied", "archived")
FRIENDSHIP_STATUSES = ("pending", "accepted")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return _EPOCH
    else:
        return _EPOCH
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _count(data: Dict[str, Any], count_key: str, embedded_key: str) -> int:
    if data.get(count_key) is not None:
        try:
            return int(data[count_key])
        except (TypeError, ValueError):
            return 0
    # aggregate embeds come back as [{"count": n}]
    embedded = data.get(embedded_key)
    if isinstance(embedded, list) and embedded and isinstance(embedded[0], dict):
        try:
            return int(embedded[0].get("count") or 0)
        except (TypeError, ValueError):
            return 0
    return 0


@dataclass
class Session:
    """An authenticated session held by the auth provider."""
    access_token: str
    user_id: str
    refresh_token: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[float] = None
    avatar_url: Optional[str] = None

    def is_expired(self, leeway: float = 30.0) -> bool:
        if self.expires_at is None:
            return False
        return time.time() + leeway >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "user_id": self.user_id,
            "refresh_token": self.refresh_token,
            "email": self.email,
            "expires_at": self.expires_at,
            "avatar_url": self.avatar_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        expires_at = data.get("expires_at")
        return cls(
            access_token=str(data["access_token"]),
            user_id=str(data["user_id"]),
            refresh_token=_optional_str(data.get("refresh_token")),
            email=_optional_str(data.get("email")),
            expires_at=float(expires_at) if expires_at not in (None, "") else None,
            avatar_url=_optional_str(data.get("avatar_url")),
        )


@dataclass
class Profile:
    """A user's profile. ``username`` is unique and immutable once set."""
    id: str
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    is_paused: bool = False
    blocked_phrases: List[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.display_name or self.username

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        phrases = data.get("blocked_phrases") or []
        return cls(
            id=str(data.get("id") or ""),
            username=data.get("username") or "",
            display_name=data.get("display_name") or None,
            avatar_url=data.get("avatar_url") or None,
            bio=data.get("bio") or None,
            is_paused=bool(data.get("is_paused") or False),
            blocked_phrases=[str(p) for p in phrases],
        )


@dataclass
class Reply:
    """The single published answer to a message."""
    content: str
    created_at: datetime
    id: Optional[str] = None
    message_id: Optional[str] = None
    sender_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Reply":
        return cls(
            content=data.get("content") or "",
            created_at=parse_timestamp(data.get("created_at")),
            id=_optional_str(data.get("id")),
            message_id=_optional_str(data.get("message_id")),
            sender_id=_optional_str(data.get("sender_id")),
        )


def normalize_reply(raw: Any) -> Optional[Reply]:
    """Collapse the reply embed to zero or one Reply.

    The backend returns either a single object, a list (normally holding one
    element), an empty list or null.
    """
    if isinstance(raw, Reply):
        return raw
    if isinstance(raw, (list, tuple)):
        raw = raw[0] if raw else None
    if not isinstance(raw, dict):
        return None
    if not raw.get("content"):
        return None
    return Reply.from_dict(raw)


@dataclass
class UserSummary:
    """A user as shown in search results and friend lists."""
    id: str
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.username

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserSummary":
        return cls(
            id=str(data.get("id") or ""),
            username=data.get("username") or "",
            display_name=data.get("display_name") or None,
            avatar_url=data.get("avatar_url") or None,
        )


@dataclass
class Message:
    """An anonymous message, optionally answered by one Reply."""
    id: str
    content: str
    created_at: datetime
    status: str = "pending"
    receiver_id: Optional[str] = None
    sender_id: Optional[str] = None
    thread_id: Optional[str] = None
    reply: Optional[Reply] = None
    is_liked: bool = False
    likes_count: int = 0
    is_bookmarked: bool = False
    bookmarks_count: int = 0
    receiver: Optional[UserSummary] = None

    @property
    def thread_key(self) -> str:
        """Grouping key; messages without a thread form their own."""
        return self.thread_id or self.id

    @property
    def is_published(self) -> bool:
        return self.reply is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        status = data.get("status") or "pending"
        reply = normalize_reply(data.get("replies", data.get("reply")))
        if reply is not None and "status" not in data:
            status = "replied"
        receiver = data.get("profiles")
        return cls(
            id=str(data.get("id")),
            content=data.get("content") or "",
            created_at=parse_timestamp(data.get("created_at")),
            status=status,
            receiver_id=_optional_str(data.get("receiver_id")),
            sender_id=_optional_str(data.get("sender_id")),
            thread_id=_optional_str(data.get("thread_id")),
            reply=reply,
            is_liked=bool(data.get("is_liked") or False),
            likes_count=_count(data, "likes_count", "likes"),
            is_bookmarked=bool(data.get("is_bookmarked") or False),
            bookmarks_count=_count(data, "bookmarks_count", "bookmarks"),
            receiver=UserSummary.from_dict(receiver) if isinstance(receiver, dict) else None,
        )


@dataclass
class Friendship:
    """A friendship edge; ``other`` is the counterpart profile when embedded."""
    id: str
    sender_id: str
    receiver_id: str
    status: str = "pending"
    created_at: Optional[datetime] = None
    other: Optional[UserSummary] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Friendship":
        embedded = data.get("profiles") or data.get("friend") or data.get("profile")
        return cls(
            id=str(data.get("id") or ""),
            sender_id=str(data.get("sender_id") or ""),
            receiver_id=str(data.get("receiver_id") or ""),
            status=data.get("status") or "pending",
            created_at=parse_timestamp(data["created_at"]) if data.get("created_at") else None,
            other=UserSummary.from_dict(embedded) if isinstance(embedded, dict) else None,
        )
