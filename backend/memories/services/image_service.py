"""
Memories Backend: Image Source Service
=======================================

What:  Decodes picked images to find their natural (display) size.
How:   Pillow, run in a worker thread through asyncio.to_thread so a large
       photo never blocks the event loop. EXIF orientation is honoured:
       a portrait photo stored sideways reports its upright size.
Who:   Page routes and any caller feeding PageController.add_image_from.
"""

import asyncio
import io
import logging
from typing import Awaitable, Callable, Tuple

from PIL import Image, UnidentifiedImageError

from memories.canvas.geometry import Size
from memories.exceptions import DecodeError

logger = logging.getLogger(__name__)

# EXIF orientations that swap width and height (transpose / rotate 90 / 270).
_SWAPPING_ORIENTATIONS = {5, 6, 7, 8}
_EXIF_ORIENTATION_TAG = 0x0112


def _probe_sync(content: bytes) -> Size:
    try:
        with Image.open(io.BytesIO(content)) as image:
            image.load()
            width, height = image.size
            orientation = image.getexif().get(_EXIF_ORIENTATION_TAG, 1)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(context={"error": str(e), "size": len(content)}) from e

    if orientation in _SWAPPING_ORIENTATIONS:
        width, height = height, width
    if width <= 0 or height <= 0:
        raise DecodeError(message="The image has no pixels", context={"size": (width, height)})
    return Size(width=width, height=height)


class ImageService:
    async def probe(self, content: bytes) -> Size:
        """
        Natural size of an encoded image.

        Raises:
            DecodeError: Empty, truncated or unrecognized bytes.
        """
        if not content:
            raise DecodeError(message="The image is empty")
        size = await asyncio.to_thread(_probe_sync, content)
        logger.debug("Probed image: %dx%d", size.width, size.height)
        return size

    def loader(self, content: bytes) -> Callable[[], Awaitable[Tuple[bytes, Size]]]:
        """An image loader for PageController.add_image_from."""

        async def load() -> Tuple[bytes, Size]:
            return content, await self.probe(content)

        return load


image_service = ImageService()
