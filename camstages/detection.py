"""Object detection results."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Rectangle:
    """An axis-aligned rectangle with its top left corner at (x, y)."""

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    def area(self) -> int:
        return self.width * self.height

    def bounded_to(self, other: Rectangle) -> Rectangle:
        """The part of this rectangle that lies inside other."""
        left = max(self.x, other.x)
        top = max(self.y, other.y)
        right = min(self.x + self.width, other.x + other.width)
        bottom = min(self.y + self.height, other.y + other.height)
        return Rectangle(left, top, max(right - left, 0), max(bottom - top, 0))


@dataclass
class Detection:
    """One detected object: its class, label, confidence and bounding box."""

    category: int
    name: str
    confidence: float
    box: Rectangle

    def __str__(self) -> str:
        b = self.box
        return (
            f"{self.name}[{self.category}] ({self.confidence:.2g}) @ "
            f"{b.x},{b.y} {b.width}x{b.height}"
        )