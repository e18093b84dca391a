"""Piecewise linear functions."""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, TextIO

DEFAULT_EPS = 1e-6


@dataclass(frozen=True)
class Interval:
    """A closed interval [start, end]."""

    start: float
    end: float

    def contains(self, value: float) -> bool:
        return self.start <= value <= self.end

    def clip(self, value: float) -> float:
        if value < self.start:
            return self.start
        if value > self.end:
            return self.end
        return value

    def length(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class Point:
    """A 2D point, also used as a vector."""

    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)

    def __mul__(self, factor: float) -> Point:
        return Point(self.x * factor, self.y * factor)

    def __truediv__(self, factor: float) -> Point:
        return Point(self.x / factor, self.y / factor)

    def dot(self, other: Point) -> float:
        return self.x * other.x + self.y * other.y

    def len2(self) -> float:
        return self.x * self.x + self.y * self.y

    def length(self) -> float:
        return math.sqrt(self.len2())


class PerpType(Enum):
    """Kind of closest point found by :meth:`Pwl.invert`."""

    NOT_FOUND = "not_found"
    START = "start"
    END = "end"
    VERTEX = "vertex"
    PERPENDICULAR = "perpendicular"


class Pwl:
    """A piecewise linear function defined by control points of increasing x."""

    def __init__(self, points: Iterable[Point | tuple[float, float]] = ()):
        self._points = [p if isinstance(p, Point) else Point(*p) for p in points]

    @classmethod
    def from_params(cls, params: Iterable[float]) -> Pwl:
        """Build from a flat sequence x0, y0, x1, y1, ..."""
        values = [float(v) for v in params]
        if len(values) % 2:
            raise ValueError("Pwl: odd number of values")
        pwl = cls()
        for x, y in zip(values[::2], values[1::2]):
            if pwl._points and x <= pwl._points[-1].x:
                raise ValueError("Pwl: x values must be strictly increasing")
            pwl._points.append(Point(x, y))
        if len(pwl._points) < 2:
            raise ValueError("Pwl: at least two points are required")
        return pwl

    @property
    def points(self) -> tuple[Point, ...]:
        return tuple(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Pwl):
            return NotImplemented
        return self._points == other._points

    def __repr__(self) -> str:
        return f"Pwl({[(p.x, p.y) for p in self._points]!r})"

    def append(self, x: float, y: float, eps: float = DEFAULT_EPS) -> None:
        if not self._points or self._points[-1].x + eps < x:
            self._points.append(Point(x, y))

    def prepend(self, x: float, y: float, eps: float = DEFAULT_EPS) -> None:
        if not self._points or self._points[0].x - eps > x:
            self._points.insert(0, Point(x, y))

    def _require_points(self, count: int) -> None:
        if len(self._points) < count:
            raise ValueError(f"Pwl: at least {count} point(s) required")

    def domain(self) -> Interval:
        self._require_points(1)
        return Interval(self._points[0].x, self._points[-1].x)

    def range(self) -> Interval:
        self._require_points(1)
        ys = [p.y for p in self._points]
        return Interval(min(ys), max(ys))

    def empty(self) -> bool:
        return not self._points

    def _find_span(self, x: float, span: int) -> int:
        pts = self._points
        last_span = len(pts) - 2
        span = max(0, min(last_span, span))
        while span < last_span and x >= pts[span + 1].x:
            span += 1
        while span and x < pts[span].x:
            span -= 1
        return span

    def eval(self, x: float, span: int | None = None) -> float:
        """Evaluate at x, optionally starting the span search from a guess."""
        return self.eval_span(x, span)[0]

    def eval_span(self, x: float, span: int | None = None) -> tuple[float, int]:
        """Evaluate at x and also return the span that x fell in."""
        self._require_points(2)
        guess = len(self._points) // 2 - 1 if span is None or span == -1 else span
        span = self._find_span(x, guess)
        p0, p1 = self._points[span], self._points[span + 1]
        return p0.y + (x - p0.x) * (p1.y - p0.y) / (p1.x - p0.x), span

    def invert(
        self, xy: Point, span: int = -1, eps: float = DEFAULT_EPS
    ) -> tuple[PerpType, Point | None, int]:
        """Find the closest perpendicular to xy, searching from span + 1.

        Returns the kind of point found, the point itself and the span
        where the search stopped, so the call can be repeated.
        """
        if span < -1:
            raise ValueError("Pwl: span must be at least -1")
        pts = self._points
        last = len(pts) - 1
        first = span + 1
        prev_off_end = False
        for current in range(first, last):
            start = pts[current]
            span_vec = pts[current + 1] - start
            t = (xy - start).dot(span_vec) / span_vec.len2()
            if t < -eps:
                if current == 0:
                    return PerpType.START, start, current
                if prev_off_end:
                    return PerpType.VERTEX, start, current
            elif t > 1 + eps:
                if current == last - 1:
                    return PerpType.END, pts[current + 1], current
                prev_off_end = True
            else:
                return PerpType.PERPENDICULAR, start + span_vec * t, current
        return PerpType.NOT_FOUND, None, max(first, last)

    def compose(self, other: Pwl, eps: float = DEFAULT_EPS) -> Pwl:
        """Return the function that applies self first and other after."""
        pts, opts = self._points, other._points
        this_x, this_y = pts[0].x, pts[0].y
        this_span = 0
        other_span = other._find_span(this_y, 0)
        result = Pwl([Point(this_x, other.eval(this_y, other_span))])
        while this_span != len(pts) - 1:
            dx = pts[this_span + 1].x - pts[this_span].x
            dy = pts[this_span + 1].y - pts[this_span].y
            if (
                abs(dy) > eps
                and other_span + 1 < len(opts)
                and pts[this_span + 1].y >= opts[other_span + 1].x + eps
            ):
                this_x = pts[this_span].x + (opts[other_span + 1].x - pts[this_span].y) * dx / dy
                other_span += 1
                this_y = opts[other_span].x
            elif (
                abs(dy) > eps
                and other_span > 0
                and pts[this_span + 1].y <= opts[other_span - 1].x - eps
            ):
                this_x = pts[this_span].x + (opts[other_span + 1].x - pts[this_span].y) * dx / dy
                other_span -= 1
                this_y = opts[other_span].x
            else:
                this_span += 1
                this_x, this_y = pts[this_span].x, pts[this_span].y
            result.append(this_x, other.eval(this_y, other_span), eps)
        return result

    def map(self, f: Callable[[float, float], None]) -> None:
        """Call f(x, y) at every control point."""
        for p in self._points:
            f(p.x, p.y)

    @staticmethod
    def map2(pwl0: Pwl, pwl1: Pwl, f: Callable[[float, float, float], None]) -> None:
        """Call f(x, y0, y1) wherever either function has a control point."""
        p0, p1 = pwl0._points, pwl1._points
        span0 = span1 = 0
        x = min(p0[0].x, p1[0].x)
        f(x, pwl0.eval(x, span0), pwl1.eval(x, span1))
        while span0 < len(p0) - 1 or span1 < len(p1) - 1:
            if span0 == len(p0) - 1:
                span1 += 1
                x = p1[span1].x
            elif span1 == len(p1) - 1:
                span0 += 1
                x = p0[span0].x
            elif p0[span0 + 1].x > p1[span1 + 1].x:
                span1 += 1
                x = p1[span1].x
            else:
                span0 += 1
                x = p0[span0].x
            f(x, pwl0.eval(x, span0), pwl1.eval(x, span1))

    @staticmethod
    def combine(
        pwl0: Pwl,
        pwl1: Pwl,
        f: Callable[[float, float, float], float],
        eps: float = DEFAULT_EPS,
    ) -> Pwl:
        """Make a function whose y values are f(x, y0, y1) at every knot of either."""
        result = Pwl()
        Pwl.map2(pwl0, pwl1, lambda x, y0, y1: result.append(x, f(x, y0, y1), eps))
        return result

    def match_domain(self, domain: Interval, clip: bool = True, eps: float = DEFAULT_EPS) -> None:
        """Extend to cover domain, either flat (clip) or by extrapolation."""
        first_x = self._points[0].x
        self.prepend(domain.start, self.eval(first_x if clip else domain.start, 0), eps)
        last_x = self._points[-1].x
        self.append(
            domain.end,
            self.eval(last_x if clip else domain.end, len(self._points) - 2),
            eps,
        )

    def generate_lut(self, cast: Callable[[float], object] = float) -> list:
        """Tabulate the function at 0, 1, ... up to the end of its domain."""
        end = int(self.domain().end + 1)
        lut = []
        span = 0
        for x in range(end):
            value, span = self.eval_span(x, span)
            lut.append(cast(value))
        return lut

    def __imul__(self, d: float) -> Pwl:
        self._points = [replace(p, y=p.y * d) for p in self._points]
        return self

    def debug(self, file: TextIO | None = None) -> None:
        out = sys.stderr if file is None else file
        print("Pwl {", file=out)
        for p in self._points:
            print(f"\t({p.x:g}, {p.y:g})", file=out)
        print("}", file=out)