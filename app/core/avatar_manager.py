"""Avatar file management for uploading and serving profile images."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from app.core.config import settings

ALLOWED_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


class AvatarValidationError(ValueError):
    """Raised when an uploaded avatar is too large or not a supported image."""


class AvatarFileManager:
    """Stores avatars under ``<base>/<user>/<user>-<timestamp>.<ext>``."""

    def __init__(self, base_dir: str = "avatars", *, max_bytes: int = 2 * 1024 * 1024):
        self.base_dir = Path(base_dir)
        self.max_bytes = max_bytes
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def validate(self, data: bytes, content_type: Optional[str]) -> str:
        """Return the file extension for a valid upload or raise."""
        if len(data) > self.max_bytes:
            limit_mb = self.max_bytes // (1024 * 1024)
            raise AvatarValidationError(f"File size must be less than {limit_mb}MB")
        ext = ALLOWED_TYPES.get((content_type or "").lower())
        if not ext:
            raise AvatarValidationError("File must be an image (JPEG, PNG, or WebP)")
        return ext

    def _sanitize(self, name: str) -> str:
        """Sanitize an identity for safe filesystem usage."""
        unsafe_chars = '<>:"/\\|?* .'
        for char in unsafe_chars:
            name = name.replace(char, "_")
        return name[:64] or "anonymous"

    def save(
        self,
        user_id: str,
        data: bytes,
        content_type: Optional[str],
    ) -> str:
        """Validate and write an avatar; returns its path relative to the base dir."""
        ext = self.validate(data, content_type)
        owner = self._sanitize(user_id)
        user_dir = self.base_dir / owner
        user_dir.mkdir(exist_ok=True)
        timestamp = int(datetime.now().timestamp() * 1000)
        path = user_dir / f"{owner}-{timestamp}.{ext}"
        while path.exists():
            timestamp += 1
            path = user_dir / f"{owner}-{timestamp}.{ext}"
        path.write_bytes(data)
        return str(path.relative_to(self.base_dir).as_posix())

    def delete(self, relative_path: Optional[str]) -> bool:
        if not relative_path:
            return False
        path = (self.base_dir / relative_path).resolve()
        # Only remove files that live under the avatar directory
        if self.base_dir.resolve() not in path.parents:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def get_public_url(self, relative_path: str, base_url: str = "") -> str:
        return f"{base_url.rstrip('/')}/avatars/{relative_path}"


avatar_manager = AvatarFileManager(
    settings.storage.avatars_dir, max_bytes=settings.storage.max_avatar_bytes
)
