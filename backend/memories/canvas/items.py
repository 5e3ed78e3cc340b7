"""
Memories Backend: Canvas Item Operations
=========================================

What:  Construction and mutation of the positioned elements on a page.
How:   Plain functions over a document's item list. They never decode
       images; callers pass the natural size an image source reported.

Absent ids are handled the same way everywhere in this module: updating
or removing an id that is not on the page changes nothing and returns False.
"""

import logging
import uuid
from typing import List

from memories.canvas.document import CanvasItem, ItemType
from memories.canvas.geometry import Point, Rect, Size
from memories.exceptions import InvalidImageError

logger = logging.getLogger(__name__)

# Display width of a newly inserted image, in virtual page units.
DEFAULT_IMAGE_WIDTH = 250.0

# Frame of a newly inserted legacy text box.
DEFAULT_TEXT_SIZE = Size(width=300, height=100)


def default_image_size(natural_size: Size) -> Size:
    """250 units wide, height following the image's own aspect ratio."""
    if natural_size.width <= 0 or natural_size.height <= 0:
        raise InvalidImageError(
            message="The image has no usable size",
            context={"natural_size": natural_size.as_tuple()},
        )
    height = DEFAULT_IMAGE_WIDTH * (natural_size.height / natural_size.width)
    return Size(width=DEFAULT_IMAGE_WIDTH, height=height)


def insert_image(image_bytes: bytes, natural_size: Size, center: Point) -> CanvasItem:
    """
    Builds a new image item centered on `center`.

    Args:
        image_bytes:  Encoded image as picked by the user (stored verbatim)
        natural_size: Decoded pixel size reported by the image source
        center:       Drop point in virtual page coordinates

    Returns:
        A CanvasItem with a fresh id and rotation 0. The caller appends it.

    Raises:
        InvalidImageError: No bytes, or a natural size with no area.
    """
    if not image_bytes:
        raise InvalidImageError(message="The image is empty")
    size = default_image_size(natural_size)
    return CanvasItem(
        frame=Rect.centered_at(center, size),
        rotation=0.0,
        type=ItemType.IMAGE,
        image_data=image_bytes,
    )


def insert_text(text: str, center: Point) -> CanvasItem:
    """Builds a legacy floating text box. Only old documents still carry these."""
    return CanvasItem(
        frame=Rect.centered_at(center, DEFAULT_TEXT_SIZE),
        type=ItemType.TEXT,
        text_content=text,
    )


def _index_of(items: List[CanvasItem], item_id: uuid.UUID) -> int:
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    return -1


def update_transform(
    items: List[CanvasItem],
    item_id: uuid.UUID,
    frame: Rect,
    rotation: float,
) -> bool:
    """Replaces frame and rotation of the matching item. False if absent."""
    index = _index_of(items, item_id)
    if index < 0:
        logger.debug("update_transform: item %s not on page", item_id)
        return False
    items[index] = items[index].model_copy(update={"frame": frame, "rotation": rotation})
    return True


def update_text_content(items: List[CanvasItem], item_id: uuid.UUID, text: str) -> bool:
    index = _index_of(items, item_id)
    if index < 0 or items[index].type is not ItemType.TEXT:
        return False
    items[index] = items[index].model_copy(update={"text_content": text})
    return True


def remove(items: List[CanvasItem], item_id: uuid.UUID) -> bool:
    """Deletes the matching item. Idempotent; returns whether one was removed."""
    index = _index_of(items, item_id)
    if index < 0:
        return False
    del items[index]
    return True
