"""
Disk-backed storage for book cover images.

Files live in one flat directory under generated names of the form
``book-cover-<epoch ms>-<uuid4 hex><ext>`` and are served from
``<url prefix>/<filename>``.
"""

import asyncio
import mimetypes
import os
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

import structlog

from .exceptions import ImageNotFound, TooLarge, UnsupportedType, WriteFailed
from .models import ImageInfo, StoredImage

logger = structlog.get_logger(__name__)

DEFAULT_MAX_FILE_SIZE = 5 * 1024 * 1024

ALLOWED_EXTENSIONS = frozenset({"jpeg", "jpg", "png", "gif", "webp"})
ALLOWED_MIME_TYPES = frozenset({
    "image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp",
})

FILENAME_PREFIX = "book-cover-"

# Attempts at finding an unused filename before giving up
MAX_NAME_ATTEMPTS = 5


def is_allowed_image(original_name: str, content_type: Optional[str]) -> bool:
    """Accept when either the extension or the declared MIME type is an allowed image type."""
    extension = Path(original_name or "").suffix.lower().lstrip(".")
    mime = (content_type or "").split(";")[0].strip().lower()
    return extension in ALLOWED_EXTENSIONS or mime in ALLOWED_MIME_TYPES


def _extension_for(original_name: str, content_type: Optional[str]) -> str:
    extension = Path(original_name or "").suffix
    if extension:
        return extension
    mime = (content_type or "").split(";")[0].strip().lower()
    return mimetypes.guess_extension(mime) or ""


def _format_size(size: int) -> str:
    megabyte = 1024 * 1024
    if size >= megabyte and size % megabyte == 0:
        return f"{size // megabyte}MB"
    return f"{size} bytes"


class ImageStore:
    """Flat-directory image storage with type and size gating."""

    def __init__(
        self,
        upload_dir: Union[str, Path],
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        url_prefix: str = "/uploads",
    ):
        self.upload_dir = Path(upload_dir)
        self.max_file_size = max_file_size
        self.url_prefix = url_prefix.rstrip("/")
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def url_for(self, filename: str) -> str:
        return f"{self.url_prefix}/{filename}"

    def path_for(self, filename: str) -> Path:
        """
        Resolve a stored filename to its path.

        Raises:
            ImageNotFound: the name is not a plain filename, names an
                in-progress temporary file, or the file is missing
        """
        if not filename or filename != Path(filename).name or filename.startswith("."):
            raise ImageNotFound()
        path = self.upload_dir / filename
        if not path.is_file():
            raise ImageNotFound()
        return path

    def generate_filename(self, original_name: str, content_type: Optional[str] = None) -> str:
        extension = _extension_for(original_name, content_type)
        for _ in range(MAX_NAME_ATTEMPTS):
            filename = f"{FILENAME_PREFIX}{int(time.time() * 1000)}-{uuid.uuid4().hex}{extension}"
            if not (self.upload_dir / filename).exists():
                return filename
            logger.warning("Generated image filename already exists", filename=filename)
        raise WriteFailed()

    async def put(
        self,
        data: bytes,
        original_name: str,
        content_type: Optional[str] = None,
        size: Optional[int] = None,
    ) -> StoredImage:
        """
        Store an uploaded image.

        Args:
            data: File content
            original_name: Client-side filename
            content_type: Declared MIME type
            size: Declared size in bytes, defaults to len(data)

        Raises:
            TooLarge: size exceeds the configured limit
            UnsupportedType: neither extension nor MIME type is an allowed image
            WriteFailed: the file could not be written or verified
        """
        size = len(data) if size is None else size
        if size > self.max_file_size or len(data) > self.max_file_size:
            logger.warning("Rejected oversized image", original_name=original_name, size=size)
            raise TooLarge(f"File too large. Maximum size is {_format_size(self.max_file_size)}.")

        if not is_allowed_image(original_name, content_type):
            logger.warning("Rejected non-image upload",
                           original_name=original_name,
                           content_type=content_type)
            raise UnsupportedType()

        filename = self.generate_filename(original_name, content_type)
        path = self.upload_dir / filename

        await asyncio.to_thread(self._write, path, data)

        mime_type = mimetypes.guess_type(filename)[0] or (content_type or "application/octet-stream")
        logger.info("Image stored", filename=filename, original_name=original_name, size=len(data))

        return StoredImage(
            filename=filename,
            original_name=original_name,
            size=len(data),
            mime_type=mime_type,
            url=self.url_for(filename),
            path=str(path),
        )

    def _write(self, path: Path, data: bytes) -> None:
        """Write through a temporary file and verify the result."""
        partial = path.with_name(f".{path.name}.part")
        try:
            with open(partial, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(partial, path)
        except OSError as e:
            logger.error("Failed to write image", filename=path.name, error=str(e))
            partial.unlink(missing_ok=True)
            raise WriteFailed() from e

        if not path.is_file() or path.stat().st_size != len(data):
            logger.error("Image missing or truncated after write", filename=path.name)
            partial.unlink(missing_ok=True)
            path.unlink(missing_ok=True)
            raise WriteFailed()

    async def info(self, filename: str) -> ImageInfo:
        """
        Describe a stored image.

        Raises:
            ImageNotFound
        """
        path = self.path_for(filename)
        try:
            stats = await asyncio.to_thread(path.stat)
        except FileNotFoundError as e:
            raise ImageNotFound() from e

        created = getattr(stats, "st_birthtime", None) or stats.st_ctime
        return ImageInfo(
            filename=filename,
            size=stats.st_size,
            mime_type=mimetypes.guess_type(filename)[0],
            url=self.url_for(filename),
            created_at=datetime.fromtimestamp(created, tz=timezone.utc),
        )

    async def delete(self, filename: str) -> None:
        """
        Remove a stored image.

        Raises:
            ImageNotFound: also on a second delete of the same file
        """
        path = self.path_for(filename)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError as e:
            raise ImageNotFound() from e
        logger.info("Image deleted", filename=filename)
