"""Avatar upload to object storage, plus a terminal-sized ASCII preview."""
from __future__ import annotations

import io
import logging
import uuid
from pathlib import Path
from typing import Callable, Optional, Union

import requests
from PIL import Image, UnidentifiedImageError

from .errors import StorageError

logger = logging.getLogger("replied.storage")

MAX_AVATAR_SIDE = 512
ASCII_RAMP = "@%#*+=-:. "

ImageSource = Union[str, Path, io.BytesIO]


def prepare_avatar(source: ImageSource, max_side: int = MAX_AVATAR_SIDE) -> bytes:
    """Validate an image and return it as PNG no larger than ``max_side``."""
    try:
        with Image.open(source) as img:
            img.load()
            img = img.convert("RGBA")
            img.thumbnail((max_side, max_side))
            out = io.BytesIO()
            img.save(out, format="PNG")
    except (UnidentifiedImageError, OSError) as exc:
        raise StorageError("Not a readable image file") from exc
    return out.getvalue()


def ascii_preview(image_bytes: bytes, width: int = 24) -> str:
    """Render image bytes as a small block of ASCII for the terminal."""
    with Image.open(io.BytesIO(image_bytes)) as img:
        gray = img.convert("L")
        # terminal cells are about twice as tall as they are wide
        height = max(1, int(gray.height * width / max(gray.width, 1) / 2))
        small = gray.resize((width, height))
        pixels = small.tobytes()
    scale = len(ASCII_RAMP) - 1
    rows = []
    for y in range(height):
        row = pixels[y * width : (y + 1) * width]
        rows.append("".join(ASCII_RAMP[p * scale // 255] for p in row))
    return "\n".join(rows)


class AvatarStorage:
    """Uploads avatars to ``{storage_url}/object/{bucket}/{user_id}/...``."""

    def __init__(
        self,
        storage_url: str,
        token_source: Callable[[], Optional[str]],
        bucket: str = "avatars",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        self.storage_url = storage_url.rstrip("/")
        self.bucket = bucket
        self.token_source = token_source
        self.timeout = timeout
        self.session = session or requests.Session()

    def public_url(self, key: str) -> str:
        return f"{self.storage_url}/object/public/{self.bucket}/{key}"

    def upload(self, user_id: str, image_bytes: bytes) -> str:
        """Store PNG bytes and return their public URL."""
        token = self.token_source()
        if not token:
            raise StorageError("Sign in required to upload an avatar")
        if not self.storage_url:
            raise StorageError("Object storage is not configured")
        key = f"{user_id}/{uuid.uuid4().hex}.png"
        url = f"{self.storage_url}/object/{self.bucket}/{key}"
        try:
            resp = self.session.post(
                url,
                data=image_bytes,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "image/png", "x-upsert": "true"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("avatar upload failed: %s", exc)
            raise StorageError("Upload failed: connection error") from exc
        if not resp.ok:
            logger.warning("avatar upload HTTP %s: %s", resp.status_code, resp.text)
            raise StorageError(f"Upload failed ({resp.status_code})")
        logger.debug("avatar stored at %s", key)
        return self.public_url(key)
