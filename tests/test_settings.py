from io import BytesIO

import pytest
from PIL import Image

from replied.data_models import Profile
from replied.errors import ApiError, StorageError
from replied.settings import SettingsController
from replied.storage import ascii_preview, prepare_avatar


class FakeAPI:
    def __init__(self):
        self.error = None
        self.calls = []

    def get_own_profile(self):
        return Profile(id="u1", username="alice", display_name="Alice", blocked_phrases=["spam"])

    def _record(self, *call):
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    def set_paused(self, is_paused):
        self._record("pause", is_paused)

    def set_blocked_phrases(self, phrases):
        self._record("phrases", list(phrases))

    def update_profile(self, payload):
        self._record("update", payload)
        return None

    def delete_account(self):
        self._record("delete")


class FakeStorage:
    def __init__(self, error=None):
        self.error = error
        self.uploads = []

    def upload(self, user_id, image_bytes):
        if self.error is not None:
            raise self.error
        self.uploads.append((user_id, image_bytes))
        return f"https://cdn.test/avatars/{user_id}/a.png"


class FakeSession:
    user_id = "u1"

    def __init__(self):
        self.signed_out = False

    def sign_out(self):
        self.signed_out = True


def png_bytes(size=(64, 32), color=(200, 10, 10)):
    out = BytesIO()
    Image.new("RGB", size, color).save(out, format="PNG")
    out.seek(0)
    return out


@pytest.fixture
def controller(notifier):
    ctl = SettingsController(FakeAPI(), notifier, FakeSession(), FakeStorage(), "https://replied.test/")
    ctl.load()
    return ctl


def test_load_fills_form_and_public_link(controller):
    assert controller.form.display_name == "Alice"
    assert controller.public_link == "https://replied.test/alice"


def test_pause_toggle_reverts_on_failure(controller, notifier):
    controller.api.error = ApiError(500)

    assert controller.toggle_pause() is False
    assert controller.profile.is_paused is False
    assert notifier.errors == ["Failed to update inbox status"]


def test_pause_toggle_persists_immediately(controller):
    assert controller.toggle_pause() is True
    assert controller.api.calls == [("pause", True)]
    assert controller.profile.is_paused is True


def test_blocked_phrases_commit_individually(controller):
    assert controller.add_blocked_phrase("  crypto  ") is True
    assert controller.add_blocked_phrase("spam") is False
    assert controller.remove_blocked_phrase("spam") is True

    assert controller.api.calls == [("phrases", ["spam", "crypto"]), ("phrases", ["crypto"])]
    assert controller.profile.blocked_phrases == ["crypto"]


def test_failed_phrase_update_reverts(controller):
    controller.api.error = ApiError(500)

    controller.add_blocked_phrase("crypto")

    assert controller.profile.blocked_phrases == ["spam"]


def test_save_sends_form_with_live_toggles(controller, notifier):
    controller.form.bio = "  asking questions  "

    assert controller.save() is True
    (call,) = controller.api.calls
    assert call[1] == {
        "display_name": "Alice",
        "bio": "asking questions",
        "avatar_url": "",
        "is_paused": False,
        "blocked_phrases": ["spam"],
    }
    assert controller.profile.bio == "asking questions"
    assert notifier.messages[-1] == "Profile updated successfully"


def test_avatar_upload_is_staged_until_save(controller):
    url = controller.upload_avatar(png_bytes())

    assert url == "https://cdn.test/avatars/u1/a.png"
    assert controller.form.avatar_url == url
    assert controller.profile.avatar_url is None
    assert controller.avatar_preview
    assert controller.uploading is False


def test_avatar_upload_rejects_non_images(controller, notifier):
    assert controller.upload_avatar(BytesIO(b"not an image")) is None
    assert notifier.errors == ["Not a readable image file"]
    assert controller.storage.uploads == []


def test_avatar_upload_failure_is_reported(notifier):
    ctl = SettingsController(FakeAPI(), notifier, FakeSession(), FakeStorage(StorageError("Upload failed (413)")))
    ctl.load()

    assert ctl.upload_avatar(png_bytes()) is None
    assert notifier.errors == ["Upload failed (413)"]


def test_delete_account_needs_confirmation_then_signs_out(controller, notifier):
    assert controller.delete_account(confirm=lambda: False) is False
    assert controller.api.calls == []

    assert controller.delete_account(confirm=lambda: True) is True
    assert controller.api.calls == [("delete",)]
    assert controller.session.signed_out is True
    assert controller.profile is None


def test_prepare_avatar_limits_size():
    data = prepare_avatar(png_bytes(size=(2048, 1024)), max_side=256)

    with Image.open(BytesIO(data)) as img:
        assert img.format == "PNG"
        assert img.size == (256, 128)


def test_ascii_preview_dimensions():
    preview = ascii_preview(prepare_avatar(png_bytes(size=(40, 40), color=(0, 0, 0))), width=10)
    rows = preview.splitlines()

    assert len(rows) == 5
    assert all(len(row) == 10 for row in rows)
    assert set(preview.replace("\n", "")) == {"@"}
