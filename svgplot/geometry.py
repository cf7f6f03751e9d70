"""Geometry model for svgplot.

This module defines the segment types that flow through the pipeline:

- ``Line``: a polyline of two or more points
- ``Arc``: a circular arc given by start, end, centre and winding direction
- ``Curve``: an unflattened quadratic or cubic Bezier (intermediate only)

Winding convention: ``Arc.clockwise`` is expressed in the raw coordinates of
the frame the arc lives in. ``True`` means the polar angle around the centre
(``atan2(y - cy, x - cx)``) decreases from start to end. In a Y-up machine
frame that is a G2 move; in SVG's Y-down frame it is what the screen shows as
counter-clockwise. Mirroring maps toggle the flag.
"""

import math
import re
from typing import Callable, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

# Relative tolerance for |start - center| == |end - center|
ARC_RADIUS_TOLERANCE = 0.01

# Default chord length used when an arc or ellipse has to be sampled
DEFAULT_SAMPLE_STEP = 0.5

NUMBER_PATTERN = r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"
NUMBER_RE = re.compile(NUMBER_PATTERN)

TWO_PI = 2 * math.pi


class Point(NamedTuple):
    """Immutable 2D point."""

    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def lerp(self, other: "Point", t: float) -> "Point":
        return Point(self.x + (other.x - self.x) * t, self.y + (other.y - self.y) * t)


PointFunc = Callable[[Point], Point]


def as_point(value: Union[Point, Tuple[float, float]]) -> Point:
    """Coerce an (x, y) pair into a Point."""
    if isinstance(value, Point):
        return value
    return Point(float(value[0]), float(value[1]))


def parse_numbers(text: Optional[str]) -> List[float]:
    """Extract every number from an attribute string.

    Args:
        text: Attribute value such as a points list or viewBox

    Returns:
        List of floats in order of appearance
    """
    if not text:
        return []
    return [float(match) for match in NUMBER_RE.findall(text)]


def circle_from_points(a: Point, b: Point, c: Point) -> Optional[Tuple[Point, float]]:
    """Fit the circle through three points.

    The centre is the intersection of the perpendicular bisectors of ab and bc.

    Returns:
        (center, radius), or None when the points are (nearly) collinear
    """
    d = 2.0 * (a.x * (b.y - c.y) + b.x * (c.y - a.y) + c.x * (a.y - b.y))
    scale = max(a.distance_to(b), b.distance_to(c), a.distance_to(c))
    if scale == 0 or abs(d) <= 1e-12 * scale * scale:
        return None

    a2 = a.x * a.x + a.y * a.y
    b2 = b.x * b.x + b.y * b.y
    c2 = c.x * c.x + c.y * c.y
    ux = (a2 * (b.y - c.y) + b2 * (c.y - a.y) + c2 * (a.y - b.y)) / d
    uy = (a2 * (c.x - b.x) + b2 * (a.x - c.x) + c2 * (b.x - a.x)) / d
    center = Point(ux, uy)
    return center, center.distance_to(a)


def cross(o: Point, a: Point, b: Point) -> float:
    """Z component of (a - o) x (b - o)."""
    return (a.x - o.x) * (b.y - o.y) - (a.y - o.y) * (b.x - o.x)


class Line:
    """A polyline; consecutive points are joined by straight moves."""

    def __init__(self, points: Iterable[Union[Point, Tuple[float, float]]]):
        self.points = tuple(as_point(p) for p in points)
        if len(self.points) < 2:
            raise ValueError("A line needs at least two points")

    @property
    def start_point(self) -> Point:
        return self.points[0]

    @property
    def end_point(self) -> Point:
        return self.points[-1]

    def length(self) -> float:
        return sum(a.distance_to(b) for a, b in zip(self.points, self.points[1:]))

    def map_points(self, func: PointFunc) -> "Line":
        return Line(func(p) for p in self.points)

    def __eq__(self, other) -> bool:
        return isinstance(other, Line) and self.points == other.points

    def __repr__(self) -> str:
        return f"Line({list(self.points)})"


class Arc:
    """A circular arc from ``start`` to ``end`` around ``center``."""

    def __init__(self, start, end, center, clockwise: bool):
        self.start = as_point(start)
        self.end = as_point(end)
        self.center = as_point(center)
        self.clockwise = bool(clockwise)

    @property
    def start_point(self) -> Point:
        return self.start

    @property
    def end_point(self) -> Point:
        return self.end

    @property
    def radius(self) -> float:
        return self.start.distance_to(self.center)

    def radius_error(self) -> float:
        """Absolute difference between the start and end radii."""
        return abs(self.start.distance_to(self.center) - self.end.distance_to(self.center))

    def is_valid(self, rel_tol: float = ARC_RADIUS_TOLERANCE) -> bool:
        """Check the circular-arc invariant.

        The start and end must be equidistant from the centre within
        ``rel_tol`` of the radius, the radius must be non-zero and the
        endpoints must not coincide.
        """
        r0 = self.start.distance_to(self.center)
        r1 = self.end.distance_to(self.center)
        radius = max(r0, r1)
        if radius <= 1e-9 or not math.isfinite(radius):
            return False
        if self.start.distance_to(self.end) <= 1e-9 * radius:
            return False
        return abs(r0 - r1) <= rel_tol * radius

    def start_angle(self) -> float:
        return math.atan2(self.start.y - self.center.y, self.start.x - self.center.x)

    def sweep(self) -> float:
        """Signed sweep angle in radians; negative when clockwise."""
        a0 = self.start_angle()
        a1 = math.atan2(self.end.y - self.center.y, self.end.x - self.center.x)
        delta = a1 - a0
        if self.clockwise:
            while delta >= 0:
                delta -= TWO_PI
            while delta < -TWO_PI:
                delta += TWO_PI
        else:
            while delta <= 0:
                delta += TWO_PI
            while delta > TWO_PI:
                delta -= TWO_PI
        return delta

    def point_at(self, fraction: float) -> Point:
        """Point at ``fraction`` (0..1) of the sweep.

        The radius is interpolated between the start and end radii so the
        endpoints are always reproduced exactly.
        """
        if fraction <= 0:
            return self.start
        if fraction >= 1:
            return self.end
        r0 = self.start.distance_to(self.center)
        r1 = self.end.distance_to(self.center)
        radius = r0 + (r1 - r0) * fraction
        angle = self.start_angle() + self.sweep() * fraction
        return Point(self.center.x + radius * math.cos(angle),
                     self.center.y + radius * math.sin(angle))

    def sample(self, step: float = DEFAULT_SAMPLE_STEP) -> Line:
        """Approximate the arc by a polyline with chords of at most ``step``."""
        length = abs(self.sweep()) * max(self.radius, self.end.distance_to(self.center))
        count = max(2, int(math.ceil(length / max(step, 1e-9))))
        return Line(self.point_at(i / count) for i in range(count + 1))

    def map_points(self, func: PointFunc, flip: bool = False) -> "Arc":
        """Map every point; ``flip`` toggles the winding (mirroring maps)."""
        return Arc(func(self.start), func(self.end), func(self.center),
                   self.clockwise != flip)

    def extreme_points(self) -> List[Point]:
        """Start, end and any axis-extreme points crossed by the sweep."""
        points = [self.start, self.end]
        a0 = self.start_angle()
        sweep = self.sweep()
        radius = self.radius
        for k in range(-8, 9):
            angle = k * math.pi / 2
            offset = angle - a0
            if sweep < 0:
                offset = -offset
            if 0 < offset < abs(sweep):
                points.append(Point(self.center.x + radius * math.cos(angle),
                                    self.center.y + radius * math.sin(angle)))
        return points

    def __eq__(self, other) -> bool:
        return (isinstance(other, Arc) and self.start == other.start and self.end == other.end
                and self.center == other.center and self.clockwise == other.clockwise)

    def __repr__(self) -> str:
        direction = "cw" if self.clockwise else "ccw"
        return f"Arc({self.start} -> {self.end}, center={self.center}, {direction})"


class Curve:
    """An unflattened quadratic (one control) or cubic (two controls) Bezier."""

    def __init__(self, start, controls: Sequence, end):
        self.start = as_point(start)
        self.controls = tuple(as_point(c) for c in controls)
        self.end = as_point(end)
        if len(self.controls) not in (1, 2):
            raise ValueError("A curve needs one or two control points")

    @property
    def kind(self) -> str:
        return "quadratic" if len(self.controls) == 1 else "cubic"

    @property
    def start_point(self) -> Point:
        return self.start

    @property
    def end_point(self) -> Point:
        return self.end

    def as_cubic(self) -> Tuple[Point, Point, Point, Point]:
        """Return the four cubic control points (quadratics are degree-elevated)."""
        if len(self.controls) == 2:
            return self.start, self.controls[0], self.controls[1], self.end
        control = self.controls[0]
        c1 = self.start.lerp(control, 2.0 / 3.0)
        c2 = self.end.lerp(control, 2.0 / 3.0)
        return self.start, c1, c2, self.end

    def is_degenerate(self) -> bool:
        return all(p == self.start for p in self.controls + (self.end,))

    def map_points(self, func: PointFunc) -> "Curve":
        return Curve(func(self.start), [func(c) for c in self.controls], func(self.end))

    def __eq__(self, other) -> bool:
        return (isinstance(other, Curve) and self.start == other.start
                and self.controls == other.controls and self.end == other.end)

    def __repr__(self) -> str:
        return f"Curve({self.kind}, {self.start} -> {self.end}, controls={list(self.controls)})"


Segment = Union[Line, Arc, Curve]


def segments_bounds(segments: Iterable[Segment]) -> Optional[Tuple[float, float, float, float]]:
    """Bounding box (min_x, min_y, max_x, max_y) of a segment list.

    Curves are bounded by their control polygon.
    """
    points: List[Point] = []
    for segment in segments:
        if isinstance(segment, Line):
            points.extend(segment.points)
        elif isinstance(segment, Arc):
            points.extend(segment.extreme_points())
        else:
            points.append(segment.start)
            points.extend(segment.controls)
            points.append(segment.end)

    if not points:
        return None
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return min(xs), min(ys), max(xs), max(ys)
