"""Image storage for tie pictures.

Images live in a directory-backed object store under ``settings.media_path``
and are served as static files under ``/media``. Objects are keyed by owner
and tie:

    users/{owner_id}/ties/{tie_id}/tie_image_{millis}_{filename}
"""

from __future__ import annotations

import io
import re
import time
from pathlib import Path
from urllib.parse import quote, unquote, urlsplit

import aiofiles
import aiofiles.os
from PIL import Image, UnidentifiedImageError

from tietrack.core.config import settings
from tietrack.core.logging import get_logger

logger = get_logger(__name__)

# Used when an upload arrives without a usable filename
DEFAULT_IMAGE_NAME = "upload.webp"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ImageError(Exception):
    """Base exception for image storage errors."""

    pass


class ImageValidationError(ImageError):
    """Raised when uploaded bytes are not an acceptable image."""

    pass


class ImageUploadError(ImageError):
    """Raised when an image cannot be written to the store."""

    pass


class ImageDeleteError(ImageError):
    """Raised when an existing image cannot be removed."""

    pass


def validate_image_bytes(data: bytes, max_size_mb: int | None = None) -> str:
    """Check that bytes hold a decodable image within the size limit.

    Args:
        data: Raw file content.
        max_size_mb: Size limit, defaults to ``settings.image_max_size_mb``.

    Returns:
        The detected image format in lowercase, e.g. ``"png"``.

    Raises:
        ImageValidationError: If the content is empty, too large or not an image.
    """
    if not data:
        raise ImageValidationError("Image file is empty.")

    limit_mb = max_size_mb if max_size_mb is not None else settings.image_max_size_mb
    if len(data) > limit_mb * 1024 * 1024:
        raise ImageValidationError(f"Image exceeds maximum size of {limit_mb} MB.")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            image_format = (img.format or "").lower()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ImageValidationError("File is not a supported image.") from e

    return image_format


def safe_filename(filename: str | None) -> str:
    """Reduce a client-supplied filename to a safe object name."""
    name = Path(filename or "").name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    if not name:
        return DEFAULT_IMAGE_NAME
    return name[-80:]


class ImageStore:
    """Directory-backed object store for tie images."""

    def __init__(self, root: Path, url_prefix: str):
        """Initialize the store.

        Args:
            root: Directory holding every stored object.
            url_prefix: Public URL prefix mapped onto ``root``, ending in ``/``.
        """
        self.root = root
        self.url_prefix = url_prefix if url_prefix.endswith("/") else f"{url_prefix}/"

    def owns_url(self, url: str | None) -> bool:
        """Check whether a URL points into this store."""
        return bool(url) and url.startswith(self.url_prefix)

    def path_for_url(self, url: str) -> Path:
        """Map a store URL back to its file path.

        Raises:
            ImageDeleteError: If the URL escapes the store root.
        """
        relative = unquote(urlsplit(url[len(self.url_prefix):]).path)
        root = self.root.resolve()
        path = (root / relative).resolve()
        if root not in path.parents:
            raise ImageDeleteError(f"Image path outside of store: {relative}")
        return path

    def url_for_key(self, key: str) -> str:
        """Build the public URL for an object key."""
        return f"{self.url_prefix}{quote(key)}"

    async def upload_image(
        self,
        owner_id: str,
        data: bytes,
        filename: str | None,
        tie_id: str,
        previous_url: str | None = None,
    ) -> str:
        """Store an image for a tie and return its public URL.

        The previous image, if it belongs to this store, is deleted first.
        Failing to delete it is logged and does not stop the upload.

        Args:
            owner_id: User the image belongs to.
            data: Raw image bytes.
            filename: Original filename, used as a suffix of the object name.
            tie_id: Tie the image belongs to.
            previous_url: URL of the image being replaced.

        Returns:
            Publicly fetchable URL of the stored image.

        Raises:
            ImageValidationError: If ids are missing or the bytes are not an image.
            ImageUploadError: If writing the object fails.
        """
        if not owner_id or not tie_id:
            raise ImageValidationError("Owner id and tie id are required for image upload.")

        validate_image_bytes(data)

        if self.owns_url(previous_url):
            try:
                await self.delete_image(previous_url)
            except ImageError as e:
                logger.warning(
                    "previous_image_delete_failed",
                    tie_id=tie_id,
                    url=previous_url,
                    error=str(e),
                )

        object_name = f"tie_image_{int(time.time() * 1000)}_{safe_filename(filename)}"
        key = f"users/{safe_filename(owner_id)}/ties/{safe_filename(tie_id)}/{object_name}"
        path = self.root / key

        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("image_upload_failed", tie_id=tie_id, key=key, error=str(e))
            raise ImageUploadError(f"Failed to store image: {e}") from e

        url = self.url_for_key(key)
        logger.info("image_uploaded", tie_id=tie_id, key=key, size=len(data))
        return url

    async def delete_image(self, url: str | None) -> None:
        """Delete a stored image by its URL.

        URLs that do not belong to this store (such as the placeholder) are
        ignored. A missing object counts as deleted.

        Raises:
            ImageDeleteError: If the object exists but cannot be removed.
        """
        if not self.owns_url(url):
            logger.warning("image_delete_skipped_foreign_url", url=url)
            return

        path = self.path_for_url(url)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.debug("image_delete_not_found", url=url)
            return
        except OSError as e:
            logger.error("image_delete_failed", url=url, error=str(e))
            raise ImageDeleteError(f"Failed to delete image: {e}") from e

        logger.info("image_deleted", url=url)


def get_image_store() -> ImageStore:
    """Dependency returning the configured image store."""
    return ImageStore(settings.media_path, settings.media_url_prefix)
