"""Account settings: profile fields, avatar, inbox pause, blocked phrases."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from .composer import failure_message
from .data_models import Profile
from .errors import ReplyError, StorageError
from .notify import Notifier
from .storage import AvatarStorage, ImageSource, ascii_preview, prepare_avatar

logger = logging.getLogger("replied.settings")


@dataclass
class ProfileForm:
    """Fields committed together by ``SettingsController.save``."""
    display_name: str = ""
    bio: str = ""
    avatar_url: str = ""


class SettingsController:
    def __init__(self, api, notifier: Notifier, session, storage: AvatarStorage, public_base_url: str = ""):
        self.api = api
        self.notifier = notifier
        self.session = session
        self.storage = storage
        self.public_base_url = public_base_url.rstrip("/")
        self.profile: Optional[Profile] = None
        self.form = ProfileForm()
        self.avatar_preview = ""
        self.saving = False
        self.uploading = False
        self._save_lock = threading.Lock()

    @property
    def public_link(self) -> str:
        if self.profile is None:
            return ""
        return f"{self.public_base_url}/{self.profile.username}"

    def load(self) -> Optional[Profile]:
        try:
            profile = self.api.get_own_profile()
        except ReplyError as exc:
            logger.warning("loading settings failed: %s", exc)
            self.notifier.error("Failed to load profile")
            return None
        self.profile = profile
        self.form = ProfileForm(profile.display_name or "", profile.bio or "", profile.avatar_url or "")
        return profile

    # --- individually persisted settings ---
    def toggle_pause(self) -> bool:
        if self.profile is None:
            return False
        previous = self.profile.is_paused
        self.profile.is_paused = not previous
        try:
            self.api.set_paused(self.profile.is_paused)
        except ReplyError as exc:
            logger.warning("pause toggle failed: %s", exc)
            self.profile.is_paused = previous
            self.notifier.error(failure_message(exc, "Failed to update inbox status"))
            return False
        self.notifier.success("Inbox paused" if self.profile.is_paused else "Inbox open")
        return True

    def add_blocked_phrase(self, phrase: str) -> bool:
        if self.profile is None:
            return False
        phrase = phrase.strip()
        if not phrase or phrase in self.profile.blocked_phrases:
            return False
        return self._commit_phrases(self.profile.blocked_phrases + [phrase])

    def remove_blocked_phrase(self, phrase: str) -> bool:
        if self.profile is None or phrase not in self.profile.blocked_phrases:
            return False
        return self._commit_phrases([p for p in self.profile.blocked_phrases if p != phrase])

    def _commit_phrases(self, phrases: List[str]) -> bool:
        previous = self.profile.blocked_phrases
        self.profile.blocked_phrases = phrases
        try:
            self.api.set_blocked_phrases(phrases)
        except ReplyError as exc:
            logger.warning("blocked phrase update failed: %s", exc)
            self.profile.blocked_phrases = previous
            self.notifier.error(failure_message(exc, "Failed to update blocked phrases"))
            return False
        return True

    # --- avatar ---
    def upload_avatar(self, source: ImageSource) -> Optional[str]:
        """Upload an image and stage its URL in the form (saved by ``save``)."""
        if self.uploading:
            return None
        user_id = self.session.user_id
        if not user_id:
            self.notifier.error("Please sign in first")
            return None
        self.uploading = True
        try:
            image_bytes = prepare_avatar(source)
            url = self.storage.upload(user_id, image_bytes)
        except StorageError as exc:
            self.notifier.error(str(exc))
            return None
        finally:
            self.uploading = False
        self.form.avatar_url = url
        self.avatar_preview = ascii_preview(image_bytes)
        self.notifier.info("Avatar uploaded. Save to apply it.")
        return url

    # --- batched save ---
    def save(self) -> bool:
        if self.profile is None or not self._save_lock.acquire(blocking=False):
            return False
        try:
            return self._save()
        finally:
            self._save_lock.release()

    def _save(self) -> bool:
        payload = {
            "display_name": self.form.display_name.strip(),
            "bio": self.form.bio.strip(),
            "avatar_url": self.form.avatar_url,
            # the backend upserts the whole row, so send the live values too
            "is_paused": self.profile.is_paused,
            "blocked_phrases": list(self.profile.blocked_phrases),
        }
        self.saving = True
        try:
            updated = self.api.update_profile(payload)
        except ReplyError as exc:
            logger.warning("profile save failed: %s", exc)
            self.notifier.error(failure_message(exc, "Failed to update profile"))
            return False
        finally:
            self.saving = False
        self.profile.display_name = payload["display_name"] or None
        self.profile.bio = payload["bio"] or None
        self.profile.avatar_url = payload["avatar_url"] or None
        if updated is not None and updated.username:
            self.profile = updated
        self.notifier.success("Profile updated successfully")
        return True

    # --- account deletion ---
    def delete_account(self, confirm: Callable[[], bool]) -> bool:
        """Irreversibly delete the account after explicit confirmation."""
        if not confirm():
            return False
        try:
            self.api.delete_account()
        except ReplyError as exc:
            logger.warning("account deletion failed: %s", exc)
            self.notifier.error(failure_message(exc, "Failed to delete account"))
            return False
        self.profile = None
        self.form = ProfileForm()
        self.avatar_preview = ""
        self.session.sign_out()
        self.notifier.success("Account deleted")
        return True
