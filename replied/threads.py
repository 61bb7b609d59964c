"""Grouping of flat message records into conversation threads.

Everything here is a pure function of its input so it can be exercised
directly against literal message lists.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from .data_models import Message

MessageLike = Union[Message, Dict[str, Any]]


@dataclass
class Thread:
    """Messages sharing a thread key, oldest first."""
    thread_id: str
    messages: List[Message]

    @property
    def root(self) -> Message:
        return self.messages[0]

    @property
    def follow_ups(self) -> List[Message]:
        return self.messages[1:]

    @property
    def last_activity(self) -> datetime:
        return max(m.created_at for m in self.messages)

    def accepts_follow_up(self, viewer_id: Optional[str]) -> bool:
        return can_follow_up(self, viewer_id)


def _as_message(item: MessageLike) -> Message:
    if isinstance(item, Message):
        return item
    return Message.from_dict(item)


def group_threads(messages: Iterable[MessageLike]) -> List[Thread]:
    """Partition messages by thread and order them for display.

    Within a thread messages are ascending by ``created_at`` (input order on
    equal timestamps). Threads are descending by their latest message; equal
    latest timestamps fall back to ascending ``thread_id``.
    """
    partitions: Dict[str, List[Message]] = {}
    for item in messages:
        message = _as_message(item)
        partitions.setdefault(message.thread_key, []).append(message)

    threads = [
        Thread(thread_id=key, messages=sorted(members, key=lambda m: m.created_at))
        for key, members in partitions.items()
    ]
    threads.sort(key=lambda t: t.thread_id)
    threads.sort(key=lambda t: t.last_activity, reverse=True)
    return threads


def can_follow_up(thread: Thread, viewer_id: Optional[str]) -> bool:
    """Only the original asker may continue a thread.

    This is a display gate; the backend enforces the same rule on send.
    """
    if not viewer_id:
        return False
    return thread.root.sender_id == viewer_id


__all__ = ["Thread", "group_threads", "can_follow_up"]
