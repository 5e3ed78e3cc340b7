"""
Memories Backend: File Storage Service
=======================================

What:  Upload validation, file storage under STORAGE_ROOT, and background
       templates (the TemplateSource collaborator).
How:   Uploads are checked for size, then identified by Pillow from their
       header bytes; the file extension is never trusted. Stored files get
       UUID names in date directories. All disk I/O goes through aiofiles.
Who:   Page routes (uploads), LetterService (flattened letters), the files
       route (serving), PageController (templates).

Storage layout:
    storage/
    ├── letters/2026/10/19/<uuid>.jpg     flattened letters
    └── templates/letterbg1.png           background templates, by name

Every path derived from client input is resolved and checked to stay
inside the storage root.
"""

import io
import logging
import os
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles
from PIL import Image, UnidentifiedImageError

from memories.config import settings
from memories.exceptions import FileStorageError, NotFoundError, ValidationError
from memories.services.base import TemplateSource

logger = logging.getLogger(__name__)

# Pillow format name → stored extension
ALLOWED_FORMATS = {
    "PNG": ".png",
    "JPEG": ".jpg",
    "WEBP": ".webp",
    "GIF": ".gif",
}

TEMPLATE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")

MEDIA_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}

_TEMPLATE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")


class FileService(TemplateSource):
    """
    Manages uploaded and generated files beneath one storage root.

    Args:
        storage_root: Override for settings.storage_root (tests use a tmp dir)
    """

    def __init__(self, storage_root: Optional[str] = None):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.templates_root = self.storage_root / settings.templates_dir
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Rejects uploads over settings.max_file_size, using Content-Length when
        the client sent one and the real byte count in every case.
        """
        max_mb = settings.max_file_size / (1024 * 1024)
        if content_length and content_length > settings.max_file_size:
            raise ValidationError(
                message=f"Image exceeds the maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )
        if actual_size == 0:
            raise ValidationError(message="The uploaded file is empty.", field="file")
        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=(
                    f"Image ({actual_size / (1024 * 1024):.1f}MB) exceeds the "
                    f"maximum of {max_mb:.0f}MB."
                ),
                field="file",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def detect_format(self, content: bytes) -> str:
        """
        Identifies the image format from its header bytes.

        Returns:
            The extension to store it under (e.g. ".png").

        Raises:
            ValidationError: Not an image, or an unsupported format.
        """
        try:
            with Image.open(io.BytesIO(content)) as image:
                fmt = image.format
        except (UnidentifiedImageError, OSError) as e:
            raise ValidationError(
                message="The file is not a readable image.",
                field="file",
                context={"error": str(e)},
            ) from e

        if fmt not in ALLOWED_FORMATS:
            raise ValidationError(
                message=(
                    f"Image format '{fmt}' is not supported. "
                    f"Allowed: {', '.join(sorted(ALLOWED_FORMATS))}"
                ),
                field="file",
                context={"detected_format": fmt, "allowed": sorted(ALLOWED_FORMATS)},
            )
        return ALLOWED_FORMATS[fmt]

    def validate_upload(self, content: bytes, content_length: Optional[int] = None) -> str:
        """Size check, then format check. Returns the storage extension."""
        self.validate_size(content_length, len(content))
        return self.detect_format(content)

    # ── Storage ───────────────────────────────────────────────────────────

    def _generate_storage_path(self, folder: str, extension: str) -> Tuple[Path, str]:
        date_dir = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        relative_path = f"{folder}/{date_dir}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    async def store_file(self, content: bytes, extension: str, folder: str) -> Tuple[str, str]:
        """
        Writes `content` to <folder>/YYYY/MM/DD/<uuid><extension>.

        Returns:
            (absolute_path, relative_path)

        Raises:
            FileStorageError: The directory or file could not be written.
        """
        absolute_path, relative_path = self._generate_storage_path(folder, extension)
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, e)
            raise FileStorageError(
                message="Failed to save the image. Please try again.",
                context={"path": relative_path, "os_error": str(e)},
            ) from e

        logger.info("File stored: %s (%d bytes)", relative_path, len(content))
        return str(absolute_path), relative_path

    def resolve(self, relative_path: str) -> Path:
        """
        Maps a client-supplied relative path to a file under the root.

        Raises:
            ValidationError: The path escapes the storage root.
            NotFoundError:   No such file.
        """
        full_path = (self.storage_root / relative_path).resolve()
        if not full_path.is_relative_to(self.storage_root):
            raise ValidationError(message="Invalid file path", field="path")
        if not full_path.is_file():
            raise NotFoundError(resource="file", resource_id=relative_path)
        return full_path

    @staticmethod
    def media_type(path: Path) -> str:
        return MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream")

    async def cleanup_file(self, file_path: str) -> None:
        """Best-effort delete of a file written by a failed operation."""
        try:
            os.remove(file_path)
            logger.info("Cleaned up file: %s", Path(file_path).name)
        except FileNotFoundError:
            logger.debug("Cleanup: file already gone: %s", file_path)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, e)

    def check_storage(self) -> bool:
        """True when the storage root exists and is writable."""
        return self.storage_root.is_dir() and os.access(self.storage_root, os.W_OK)

    # ── Background Templates ──────────────────────────────────────────────

    def _template_path(self, name: str) -> Optional[Path]:
        if not _TEMPLATE_NAME.match(name):
            raise ValidationError(
                message=f"'{name}' is not a valid template name",
                field="name",
            )
        for ext in TEMPLATE_EXTENSIONS:
            candidate = self.templates_root / f"{name}{ext}"
            if candidate.is_file():
                return candidate
        return None

    def list_templates(self) -> List[str]:
        if not self.templates_root.is_dir():
            return []
        return sorted(
            p.stem for p in self.templates_root.iterdir()
            if p.is_file() and p.suffix.lower() in TEMPLATE_EXTENSIONS
        )

    async def load_template(self, name: str) -> bytes:
        path = self._template_path(name)
        if path is None:
            raise NotFoundError(resource="template", resource_id=name)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise FileStorageError(
                message="Failed to read the background template.",
                context={"template": name, "os_error": str(e)},
            ) from e


file_service = FileService()
