"""
Memories Backend: Coordinate & Transform Engine
================================================

What:  Maps the fixed virtual page onto a screen viewport, and computes the
       rotation-aware resize used by the item resize handle.
How:   Pure functions over the geometry value types. Nothing here holds state
       between calls except GestureSnapshot, which freezes the starting
       frame of one continuous gesture.

Resize anchoring:

        before (w0 × h0)            after (w1 × h1)
        ┌───────┐                   ┌───────────┐
        │   c0  │         ──▶       │           │
        └───────┘                   │     c1    │
        ▲ top-left stays put        │           │
                                    └───────────┘

    In the item's local (unrotated) space the center moves by (Δw/2, Δh/2).
    On the page that offset is rotated by the item's rotation θ:

        c1 = c0 + R(θ)·(Δw/2, Δh/2)
"""

import math
from typing import Tuple

from pydantic import BaseModel

from memories.canvas.document import VIRTUAL_PAGE_SIZE
from memories.canvas.geometry import EdgeInsets, Point, Rect, Size
from memories.exceptions import ValidationError

# Smallest width (and height floor driver) a resize can produce.
MIN_ITEM_SIZE = 50.0


class ViewportFit(BaseModel):
    """
    Result of fitting the virtual page into a viewport.

    `center_offset` is the screen point the page's center is placed on.
    """

    scale: float
    center_offset: Point

    model_config = {"frozen": True}

    @property
    def page_origin(self) -> Point:
        """Screen position of the page's top-left corner."""
        return Point(
            x=self.center_offset.x - VIRTUAL_PAGE_SIZE.width * self.scale / 2,
            y=self.center_offset.y - VIRTUAL_PAGE_SIZE.height * self.scale / 2,
        )

    def to_screen(self, point: Point) -> Point:
        origin = self.page_origin
        return Point(x=origin.x + point.x * self.scale, y=origin.y + point.y * self.scale)

    def to_virtual(self, point: Point) -> Point:
        origin = self.page_origin
        return Point(x=(point.x - origin.x) / self.scale, y=(point.y - origin.y) / self.scale)


def fit_to_viewport(
    viewport: Size,
    padding: float = 0.0,
    safe_area: EdgeInsets = EdgeInsets(),
) -> ViewportFit:
    """
    Largest uniform scale at which the whole page fits the viewport.

    The viewport is shrunk by `padding` on every side and by the top and
    bottom safe-area insets. The page is centered in the full viewport.

    Raises:
        ValidationError: Nothing is left once padding and insets are removed.
    """
    available_w = viewport.width - 2 * padding
    available_h = viewport.height - 2 * padding - safe_area.top - safe_area.bottom
    if available_w <= 0 or available_h <= 0:
        raise ValidationError(
            message="The viewport has no room left for the page",
            field="viewport",
            context={"available": (available_w, available_h)},
        )
    scale = min(
        available_w / VIRTUAL_PAGE_SIZE.width,
        available_h / VIRTUAL_PAGE_SIZE.height,
    )
    return ViewportFit(
        scale=scale,
        center_offset=Point(x=viewport.width / 2, y=viewport.height / 2),
    )


def rotate_vector(vector: Point, angle: float) -> Point:
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    return Point(
        x=vector.x * cos_a - vector.y * sin_a,
        y=vector.x * sin_a + vector.y * cos_a,
    )


def rotation_from_affine(a: float, b: float) -> float:
    """Rotation angle of an affine transform [a b; c d] (scale-free)."""
    return math.atan2(b, a)


def resize_maintaining_aspect(
    initial_frame: Rect,
    initial_rotation: float,
    drag_delta: Point,
) -> Tuple[Rect, Point]:
    """
    Resizes an item from its gesture-start frame, keeping its aspect ratio.

    Args:
        initial_frame:    Unrotated frame captured when the gesture began
        initial_rotation: Rotation (radians) captured when the gesture began
        drag_delta:       Total handle translation, in the item's local space

    Returns:
        (new_frame, new_center). The new frame is unrotated and centered on
        new_center; the unrotated top-left corner stays anchored.
    """
    if initial_frame.is_empty:
        raise ValidationError(
            message="Cannot resize an item with no area",
            field="frame",
            context={"frame": [initial_frame.x, initial_frame.y,
                               initial_frame.width, initial_frame.height]},
        )
    aspect_ratio = initial_frame.width / initial_frame.height

    delta = max(drag_delta.x, drag_delta.y)
    new_width = max(MIN_ITEM_SIZE, initial_frame.width + delta)
    new_height = new_width / aspect_ratio
    # Wide items would otherwise drop below the floor on the height axis.
    if new_height < MIN_ITEM_SIZE:
        new_height = MIN_ITEM_SIZE
        new_width = new_height * aspect_ratio

    local_offset = Point(
        x=(new_width - initial_frame.width) / 2,
        y=(new_height - initial_frame.height) / 2,
    )
    new_center = initial_frame.center + rotate_vector(local_offset, initial_rotation)
    new_frame = Rect.centered_at(new_center, Size(width=new_width, height=new_height))
    return new_frame, new_center


class GestureSnapshot(BaseModel):
    """
    Frame and rotation frozen at the start of one continuous gesture.

    Every update of the gesture is computed from this snapshot plus the
    gesture's cumulative translation or angle, never from the previous
    update, so floating point error cannot accumulate mid-gesture.
    """

    initial_frame: Rect
    initial_rotation: float = 0.0

    model_config = {"frozen": True}

    def translated(self, dx: float, dy: float) -> Rect:
        return Rect(
            x=self.initial_frame.x + dx,
            y=self.initial_frame.y + dy,
            width=self.initial_frame.width,
            height=self.initial_frame.height,
        )

    def rotated(self, delta: float) -> float:
        return self.initial_rotation + delta

    def resized(self, drag_delta: Point) -> Rect:
        frame, _ = resize_maintaining_aspect(
            self.initial_frame, self.initial_rotation, drag_delta
        )
        return frame
