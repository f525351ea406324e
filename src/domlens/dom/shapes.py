from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict


class Rect(BaseModel):
    """
    An axis-aligned box in CSS pixels, shaped like a DOMRect.

    Coordinates are floats because layout positions are fractional; callers that need
    pixel positions (mouse events, image drawing) round at the edge.
    """

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float
    height: float

    @property
    def left(self) -> float:
        return self.x

    @property
    def top(self) -> float:
        return self.y

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def has_area(self) -> bool:
        return self.width > 0 and self.height > 0

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def contains(self, x: float, y: float) -> bool:
        return (self.x <= x <= self.x + self.width) and (self.y <= y <= self.y + self.height)

    def intersects_with(self, other: "Rect") -> bool:
        return not (
            self.right < other.left
            or self.left > other.right
            or self.bottom < other.top
            or self.top > other.bottom
        )

    def translate(self, x: float, y: float) -> "Rect":
        return Rect(x=self.x + x, y=self.y + y, width=self.width, height=self.height)

    @classmethod
    def from_cdp(cls, rect: Sequence[float]) -> "Rect":
        return cls(x=rect[0], y=rect[1], width=rect[2], height=rect[3])

    @classmethod
    def empty(cls) -> "Rect":
        return cls(x=0, y=0, width=0, height=0)
