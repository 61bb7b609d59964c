from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from requests import Session

from .data_models import Friendship, Message, Profile, Reply, UserSummary
from .errors import ApiError, ConnectionFailure, NotAuthenticated

logger = logging.getLogger("replied.api")

TokenSource = Callable[[], Optional[str]]

REACTIONS = ("like", "bookmark")


class RealAPI:
    """API client that talks to the replied HTTP backend.

    It expects a base_url like https://api.example.com. The bearer token is
    read from ``token_source`` on every request, so a sign-in, refresh or
    sign-out is picked up without rebuilding the client.
    """

    def __init__(self, base_url: str, token_source: TokenSource | None = None, timeout: float = 10.0, session: Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token_source = token_source or (lambda: None)
        self.session: Session = session or requests.Session()

    # --- helpers ---
    def _headers(self, auth: str) -> Dict[str, str]:
        token = self.token_source()
        if token:
            return {"Authorization": f"Bearer {token}"}
        if auth == "required":
            raise NotAuthenticated("Sign in required")
        return {}

    def _request(self, method: str, path: str, *, auth: str = "required", json_payload: Any = None, params: Dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = self._headers(auth)
        try:
            resp = self.session.request(method, url, params=params, json=json_payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ConnectionFailure(str(exc)) from exc

        if not resp.ok:
            message = None
            try:
                body = resp.json()
                if isinstance(body, dict):
                    message = body.get("error")
            except ValueError:
                pass
            logger.debug("%s %s -> HTTP %s (%s)", method, path, resp.status_code, message)
            raise ApiError(resp.status_code, message)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return None

    def _get(self, path: str, params: Dict[str, Any] | None = None, auth: str = "required") -> Any:
        return self._request("GET", path, params=params, auth=auth)

    def _post(self, path: str, json_payload: Any = None, auth: str = "required") -> Any:
        return self._request("POST", path, json_payload=json_payload, auth=auth)

    def _put(self, path: str, json_payload: Any = None) -> Any:
        return self._request("PUT", path, json_payload=json_payload)

    def _delete(self, path: str) -> Any:
        return self._request("DELETE", path)

    # --- profiles ---
    def get_public_profile(self, username: str) -> Tuple[Profile, List[Message]]:
        data = self._get(f"/profile/{username}", auth="optional") or {}
        profile = self._convert_profile(data.get("profile") or {})
        return profile, self._convert_messages(data.get("messages"))

    def get_own_profile(self) -> Profile:
        return self._convert_profile(self._get("/profile") or {})

    def update_profile(self, payload: Dict[str, Any]) -> Optional[Profile]:
        data = self._put("/profile", json_payload=payload) or {}
        updated = data.get("profile")
        if isinstance(updated, list):
            updated = updated[0] if updated else None
        return self._convert_profile(updated) if isinstance(updated, dict) else None

    def set_paused(self, is_paused: bool) -> None:
        self._post("/profile/toggle-pause", json_payload={"is_paused": is_paused})

    def set_blocked_phrases(self, phrases: List[str]) -> None:
        self._post("/profile/blocked-phrases", json_payload={"phrases": list(phrases)})

    def delete_account(self) -> None:
        self._delete("/profile")

    # --- messages ---
    def get_inbox(self) -> List[Message]:
        return self._convert_messages(self._get("/inbox"))

    def get_history(self) -> List[Message]:
        return self._convert_messages(self._get("/history"))

    def send_message(self, receiver_id: str, content: str, thread_id: Optional[str] = None) -> None:
        payload = {"receiver_id": receiver_id, "content": content}
        if thread_id:
            payload["thread_id"] = thread_id
        self._post("/send", json_payload=payload, auth="optional")

    def publish_reply(self, message_id: str, content: str) -> Optional[Reply]:
        data = self._post("/reply", json_payload={"message_id": message_id, "content": content}) or {}
        reply = data.get("reply")
        if isinstance(reply, list):
            reply = reply[0] if reply else None
        return Reply.from_dict(reply) if isinstance(reply, dict) else None

    def archive_message(self, message_id: str) -> None:
        self._post(f"/messages/{message_id}/archive")

    def delete_message(self, message_id: str) -> None:
        self._delete(f"/messages/{message_id}")

    def report_message(self, message_id: str) -> None:
        self._post("/report", json_payload={"message_id": message_id})

    # --- reactions ---
    def set_reaction(self, message_id: str, kind: str, active: bool) -> None:
        if kind not in REACTIONS:
            raise ValueError(f"unknown reaction {kind!r}")
        path = f"/messages/{message_id}/{kind}"
        if active:
            self._post(path)
        else:
            self._delete(path)

    def get_bookmarks(self) -> List[Message]:
        return self._convert_messages(self._get("/bookmarks"))

    def get_likes(self) -> List[Message]:
        return self._convert_messages(self._get("/likes"))

    # --- friends ---
    def list_friends(self) -> List[Friendship]:
        return [Friendship.from_dict(f) for f in self._get("/friends/list") or []]

    def list_friend_requests(self) -> List[Friendship]:
        return [Friendship.from_dict(f) for f in self._get("/friends/requests") or []]

    def get_friend_feed(self) -> List[Message]:
        return self._convert_messages(self._get("/friends/feed"))

    def send_friend_request(self, receiver_id: str) -> None:
        self._post("/friends/request", json_payload={"receiver_id": receiver_id})

    def accept_friend_request(self, request_id: str) -> None:
        self._post("/friends/accept", json_payload={"request_id": request_id})

    def unfriend(self, friendship_id: str) -> None:
        self._delete(f"/friends/{friendship_id}")

    def search_users(self, query: str) -> List[UserSummary]:
        data = self._get("/users/search", params={"q": query})
        return [UserSummary.from_dict(u) for u in data or []]

    # --- conversion helpers ---
    def _convert_profile(self, p: Dict[str, Any]) -> Profile:
        return Profile.from_dict(p)

    def _convert_messages(self, data: Any) -> List[Message]:
        if not isinstance(data, list):
            return []
        out = []
        for m in data:
            if not isinstance(m, dict) or m.get("id") is None:
                logger.debug("skipping malformed message record: %r", m)
                continue
            out.append(Message.from_dict(m))
        return out
