"""Image sources: local files or URLs, encoded as base64 content blocks."""

from __future__ import annotations

import base64
import logging
import mimetypes
from pathlib import Path

import httpx

from .exceptions import ImageLoadError
from .models import ImageBlock, ImageSource

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "image/jpeg"
URL_SCHEMES = ("http://", "https://")


def is_url(source: str) -> bool:
    return source.lower().startswith(URL_SCHEMES)


def guess_media_type(source: str, content_type: str | None = None) -> str:
    """Pick a media type from an HTTP content type, else the file extension."""
    if content_type:
        media_type = content_type.split(";", 1)[0].strip().lower()
        if media_type.startswith("image/"):
            return media_type

    guessed, _ = mimetypes.guess_type(source)
    if guessed and guessed.startswith("image/"):
        return guessed
    return DEFAULT_MEDIA_TYPE


async def read_image_bytes(
    source: str, http_client: httpx.AsyncClient
) -> tuple[bytes, str]:
    """
    Read raw image bytes from a path or URL.

    Returns:
        Tuple of (image_bytes, media_type)

    Raises:
        ImageLoadError: If the file cannot be read or the download fails.
    """
    if is_url(source):
        try:
            response = await http_client.get(source, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ImageLoadError(
                f"Failed to download image: {e!s}", source=source
            ) from e
        media_type = guess_media_type(source, response.headers.get("content-type"))
        return response.content, media_type

    try:
        data = Path(source).expanduser().read_bytes()
    except OSError as e:
        raise ImageLoadError(f"Failed to read image: {e!s}", source=source) from e
    return data, guess_media_type(source)


async def load_image_block(
    source: str, http_client: httpx.AsyncClient
) -> ImageBlock:
    """Load an image and wrap it as a base64 image content block."""
    data, media_type = await read_image_bytes(source, http_client)
    logger.debug(f"Loaded image {source} ({len(data)} bytes, {media_type})")
    return ImageBlock(
        source=ImageSource(
            media_type=media_type,
            data=base64.b64encode(data).decode("ascii"),
        )
    )
