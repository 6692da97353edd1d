from __future__ import annotations

import logging
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional, Union
from urllib.parse import quote

from ..config import Settings, settings
from ..constants import ALLOWED_ATTACHMENT_MIME_TYPES, ATTACHMENT_DIRECTIONS
from ..core.errors import NotFoundError, PathTraversalError, ValidationError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")
_SAFE_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


def normalize_relative_path(raw_path: str, root: PathLike) -> str:
    """Return ``raw_path`` as a forward-slash path relative to ``root``.

    Backslashes are treated as separators and empty or ``.`` segments are
    dropped. Absolute paths, drive prefixes, ``..`` segments and anything that
    resolves outside ``root`` (symlinks included) raise ``PathTraversalError``.
    """
    if raw_path is None:
        raise PathTraversalError("Empty file path")
    candidate = str(raw_path).replace("\\", "/").strip()
    if not candidate or "\x00" in candidate:
        raise PathTraversalError("Empty or invalid file path")
    if candidate.startswith("/") or _DRIVE_PREFIX.match(candidate):
        raise PathTraversalError("Absolute file paths are not allowed")

    segments = [segment for segment in candidate.split("/") if segment not in ("", ".")]
    if not segments:
        raise PathTraversalError("Empty file path")
    if ".." in segments:
        raise PathTraversalError("Parent directory segments are not allowed")

    relative = "/".join(segments)
    root_path = Path(root).resolve()
    resolved = (root_path / relative).resolve()
    if resolved == root_path or not resolved.is_relative_to(root_path):
        raise PathTraversalError("File path escapes the storage root")
    return relative


def generate_file_name(original_name: str, timestamp: Optional[float] = None) -> str:
    """Collision-resistant on-disk name that keeps the original extension."""
    suffix = PurePosixPath((original_name or "").replace("\\", "/")).suffix
    if not _SAFE_EXTENSION.match(suffix):
        suffix = ""
    millis = int((timestamp if timestamp is not None else time.time()) * 1000)
    return f"{millis}-{secrets.randbelow(10**9)}{suffix}"


def content_disposition(original_name: str) -> str:
    name = (original_name or "download").replace("\r", " ").replace("\n", " ")
    encoded = quote(name, safe="")
    try:
        name.encode("ascii")
    except UnicodeEncodeError:
        fallback = encoded
    else:
        fallback = name.replace("\\", "\\\\").replace('"', '\\"')
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"


@dataclass
class StoredFile:
    file_name: str
    relative_path: str
    size: int
    absolute_path: Path


class AttachmentStorage:
    """Writes attachments under ``<root>/<incoming|outgoing>/`` and maps them back."""

    def __init__(
        self,
        root: PathLike,
        max_size: int = 10 * 1024 * 1024,
        allowed_mime_types: Iterable[str] = ALLOWED_ATTACHMENT_MIME_TYPES,
    ) -> None:
        self.root = Path(root).resolve()
        self.max_size = max_size
        self.allowed_mime_types = frozenset(allowed_mime_types)

    @classmethod
    def from_settings(cls, config: Settings) -> "AttachmentStorage":
        return cls(root=config.uploads_root_path, max_size=config.upload_max_size)

    def ensure_directories(self) -> None:
        for direction in ATTACHMENT_DIRECTIONS:
            (self.root / direction).mkdir(parents=True, exist_ok=True)

    def validate_direction(self, direction: Optional[str]) -> str:
        normalized = (direction or "incoming").strip().lower()
        if normalized not in ATTACHMENT_DIRECTIONS:
            raise ValidationError("Attachment type must be 'incoming' or 'outgoing'.")
        return normalized

    def validate_mime_type(self, mime_type: Optional[str]) -> str:
        normalized = (mime_type or "").split(";", 1)[0].strip().lower()
        if normalized not in self.allowed_mime_types:
            raise ValidationError("Invalid file type. Only PDF, Word, JPG, and PNG files are allowed.")
        return normalized

    def validate_size(self, size: int) -> None:
        if size <= 0:
            raise ValidationError("No file uploaded")
        if size > self.max_size:
            raise ValidationError(f"File exceeds the maximum upload size of {self.max_size} bytes.")

    def save(self, direction: str, original_name: str, content: bytes) -> StoredFile:
        direction = self.validate_direction(direction)
        self.validate_size(len(content))
        file_name = generate_file_name(original_name)
        relative = normalize_relative_path(f"{direction}/{file_name}", self.root)
        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        logger.info("Stored attachment %s (%d bytes)", relative, len(content))
        return StoredFile(file_name=file_name, relative_path=relative, size=len(content), absolute_path=target)

    def resolve(self, relative_path: str) -> Path:
        relative = normalize_relative_path(relative_path, self.root)
        target = self.root / relative
        if not target.is_file():
            raise NotFoundError("File not found")
        return target

    def remove(self, relative_path: str) -> bool:
        """Best-effort removal; returns ``True`` only when a file was deleted."""
        try:
            relative = normalize_relative_path(relative_path, self.root)
        except PathTraversalError:
            logger.warning("Refusing to remove attachment outside storage root: %r", relative_path)
            return False
        target = self.root / relative
        try:
            target.unlink()
        except FileNotFoundError:
            logger.info("Attachment %s already missing on disk", relative)
            return False
        except OSError:
            logger.warning("Could not remove attachment %s", relative, exc_info=True)
            return False
        logger.info("Removed attachment %s", relative)
        return True


attachment_storage = AttachmentStorage.from_settings(settings)


def get_attachment_storage() -> AttachmentStorage:
    return attachment_storage
