"""
Memories Backend: Canvas Geometry Primitives
=============================================

What:  Immutable value types for points, sizes, rectangles and insets.
How:   Frozen Pydantic models, so they validate on construction and
       serialize with the rest of the page document.

Virtual page space is y-down with the origin at the page's top-left corner.
A Rect persists in the CoreGraphics keyed form [[x, y], [width, height]]
so documents written by the mobile client load unchanged.
"""

from typing import Any, Tuple

from pydantic import BaseModel, model_serializer, model_validator


class Point(BaseModel):
    """A position (or a displacement) in virtual page units."""

    x: float = 0.0
    y: float = 0.0

    model_config = {"frozen": True}

    def __add__(self, other: "Point") -> "Point":
        return Point(x=self.x + other.x, y=self.y + other.y)

    def __sub__(self, other: "Point") -> "Point":
        return Point(x=self.x - other.x, y=self.y - other.y)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


class Size(BaseModel):
    """Width and height. May be zero or negative; callers validate."""

    width: float = 0.0
    height: float = 0.0

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_tuple(self) -> Tuple[float, float]:
        return (self.width, self.height)


class EdgeInsets(BaseModel):
    """Safe-area style insets, in screen points."""

    top: float = 0.0
    left: float = 0.0
    bottom: float = 0.0
    right: float = 0.0

    model_config = {"frozen": True}


class Rect(BaseModel):
    """
    An axis-aligned rectangle (origin + size).

    For canvas items this is the UNROTATED frame; the item's rotation is
    applied about `center`.
    """

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _accept_keyed_form(cls, data: Any) -> Any:
        # [[x, y], [w, h]] as written by CGRect's Codable conformance
        if isinstance(data, (list, tuple)):
            if len(data) != 2 or any(len(part) != 2 for part in data):
                raise ValueError("Rect must be [[x, y], [width, height]]")
            (x, y), (w, h) = data
            return {"x": x, "y": y, "width": w, "height": h}
        return data

    @model_serializer
    def _serialize(self) -> list:
        return [[self.x, self.y], [self.width, self.height]]

    @classmethod
    def centered_at(cls, center: Point, size: Size) -> "Rect":
        return cls(
            x=center.x - size.width / 2,
            y=center.y - size.height / 2,
            width=size.width,
            height=size.height,
        )

    @property
    def origin(self) -> Point:
        return Point(x=self.x, y=self.y)

    @property
    def size(self) -> Size:
        return Size(width=self.width, height=self.height)

    @property
    def center(self) -> Point:
        return Point(x=self.x + self.width / 2, y=self.y + self.height / 2)

    @property
    def min_x(self) -> float:
        return self.x

    @property
    def min_y(self) -> float:
        return self.y

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def scaled(self, factor: float) -> "Rect":
        """Scales origin and size uniformly about the coordinate origin."""
        return Rect(
            x=self.x * factor,
            y=self.y * factor,
            width=self.width * factor,
            height=self.height * factor,
        )
