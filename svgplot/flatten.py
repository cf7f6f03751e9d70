"""Curve flattening and arc fitting for svgplot.

Bezier curves never reach the G-code generator. This module replaces them
with either short line segments (adaptive de Casteljau subdivision bounded
by a flatness tolerance) or circular arcs fitted to the curve, falling back
to subdivision where a single circle does not fit.
"""

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from .geometry import (
    DEFAULT_SAMPLE_STEP,
    Arc,
    Curve,
    Line,
    Point,
    Segment,
    circle_from_points,
    cross,
)

# Set up logging
logger = logging.getLogger(__name__)

FLATNESS_TOLERANCE = 0.05
MAX_FLATTEN_DEPTH = 20
ARC_TOLERANCE = 0.05
MAX_ARC_DEPTH = 6

# Four-bezier circle detection
CIRCLE_RADIUS_TOLERANCE = 0.05
CIRCLE_ANGLE_TOLERANCE = math.radians(25.0)

STRATEGIES = ("arcs", "lines")

CubicPoints = Tuple[Point, Point, Point, Point]


def cubic_point(p0: Point, p1: Point, p2: Point, p3: Point, t: float) -> Point:
    """Evaluate a cubic Bezier at parameter t."""
    # B(t) = (1-t)^3 P0 + 3(1-t)^2 t P1 + 3(1-t) t^2 P2 + t^3 P3
    t_inv = 1 - t
    a = t_inv * t_inv * t_inv
    b = 3 * t_inv * t_inv * t
    c = 3 * t_inv * t * t
    d = t * t * t
    return Point(a * p0.x + b * p1.x + c * p2.x + d * p3.x,
                 a * p0.y + b * p1.y + c * p2.y + d * p3.y)


def quadratic_point(p0: Point, p1: Point, p2: Point, t: float) -> Point:
    """Evaluate a quadratic Bezier at parameter t."""
    t_inv = 1 - t
    a = t_inv * t_inv
    b = 2 * t_inv * t
    c = t * t
    return Point(a * p0.x + b * p1.x + c * p2.x, a * p0.y + b * p1.y + c * p2.y)


def split_cubic(p0: Point, p1: Point, p2: Point, p3: Point,
                t: float = 0.5) -> Tuple[CubicPoints, CubicPoints]:
    """Split a cubic Bezier at t with de Casteljau's construction.

    Returns:
        Control points of the (left, right) halves
    """
    a1 = p0.lerp(p1, t)
    mid = p1.lerp(p2, t)
    b2 = p2.lerp(p3, t)
    a2 = a1.lerp(mid, t)
    b1 = mid.lerp(b2, t)
    split = a2.lerp(b1, t)
    return (p0, a1, a2, split), (split, b1, b2, p3)


def distance_to_chord(point: Point, a: Point, b: Point) -> float:
    """Perpendicular distance from ``point`` to the line through a and b."""
    length = a.distance_to(b)
    if length == 0:
        return point.distance_to(a)
    return abs(cross(a, b, point)) / length


def is_flat(p0: Point, p1: Point, p2: Point, p3: Point, tolerance: float) -> bool:
    """True when both control points lie within ``tolerance`` of the chord."""
    return (distance_to_chord(p1, p0, p3) <= tolerance
            and distance_to_chord(p2, p0, p3) <= tolerance)


def flatten_cubic(p0: Point, p1: Point, p2: Point, p3: Point,
                  tolerance: float = FLATNESS_TOLERANCE,
                  max_depth: int = MAX_FLATTEN_DEPTH) -> List[Point]:
    """Adaptively flatten a cubic Bezier into a polyline.

    Every returned vertex lies on the curve, and the curve stays within
    ``tolerance`` of the polyline (convex hull property).

    Returns:
        Points from p0 to p3 inclusive
    """
    points = [p0]
    _flatten(p0, p1, p2, p3, tolerance, max_depth, points)
    return points


def _flatten(p0, p1, p2, p3, tolerance, depth, out) -> None:
    if depth <= 0 or is_flat(p0, p1, p2, p3, tolerance):
        out.append(p3)
        return
    left, right = split_cubic(p0, p1, p2, p3)
    _flatten(*left, tolerance, depth - 1, out)
    _flatten(*right, tolerance, depth - 1, out)


def _fit_single_arc(p0: Point, p1: Point, p2: Point, p3: Point,
                    tolerance: float) -> Optional[Segment]:
    """Fit one arc (or a line for flat pieces) to a cubic, or return None."""
    if is_flat(p0, p1, p2, p3, tolerance):
        if p0.distance_to(p3) == 0:
            return None
        return Line([p0, p3])

    mid = cubic_point(p0, p1, p2, p3, 0.5)
    fit = circle_from_points(p0, mid, p3)
    if fit is None:
        return None
    center, radius = fit

    orientation = cross(p0, mid, p3)
    quarter = cubic_point(p0, p1, p2, p3, 0.25)
    three_quarter = cubic_point(p0, p1, p2, p3, 0.75)
    for sample in (quarter, three_quarter):
        if abs(sample.distance_to(center) - radius) > tolerance:
            return None

    # The samples must run around the circle in the same direction
    if cross(p0, quarter, mid) * orientation <= 0 or cross(mid, three_quarter, p3) * orientation <= 0:
        return None

    arc = Arc(p0, p3, center, clockwise=orientation < 0)
    if abs(arc.sweep()) >= math.pi:
        return None
    return arc


def fit_arcs(p0: Point, p1: Point, p2: Point, p3: Point,
             tolerance: float = ARC_TOLERANCE,
             max_depth: int = MAX_ARC_DEPTH) -> List[Segment]:
    """Approximate a cubic Bezier with circular arcs.

    A circle is fitted through t=0, 0.5 and 1 and checked at t=0.25 and 0.75.
    When the radial error is too large the cubic is split exactly at t=0.5
    and each half is fitted recursively; at the depth cap a straight line
    between the endpoints is used.

    Returns:
        List of Arc and Line segments from p0 to p3
    """
    fitted = _fit_single_arc(p0, p1, p2, p3, tolerance)
    if fitted is not None:
        return [fitted]
    if max_depth <= 0:
        if p0.distance_to(p3) == 0:
            return []
        return [Line([p0, p3])]

    left, right = split_cubic(p0, p1, p2, p3)
    return (fit_arcs(*left, tolerance=tolerance, max_depth=max_depth - 1)
            + fit_arcs(*right, tolerance=tolerance, max_depth=max_depth - 1))


def _normalize_angle(angle: float) -> float:
    """Wrap an angle into (-pi, pi]."""
    while angle <= -math.pi:
        angle += 2 * math.pi
    while angle > math.pi:
        angle -= 2 * math.pi
    return angle


def detect_circle(curves: Sequence[Segment],
                  radius_tolerance: float = CIRCLE_RADIUS_TOLERANCE,
                  angle_tolerance: float = CIRCLE_ANGLE_TOLERANCE) -> Optional[List[Arc]]:
    """Recognise a circle drawn as four cubic Beziers.

    Drawing tools commonly emit circles as exactly four cubics closing a
    subpath. When the joints fit one circle and sit roughly 90 degrees apart,
    the quartet is replaced by two semicircular arcs.

    Returns:
        Two Arcs, or None when the curves do not look like a circle
    """
    if len(curves) != 4:
        return None
    if not all(isinstance(c, Curve) and c.kind == "cubic" for c in curves):
        return None

    joints = [c.start for c in curves]
    center_fit = circle_from_points(joints[0], joints[1], joints[2])
    if center_fit is None:
        return None
    center, radius = center_fit
    gap = radius * 1e-3

    for index, curve in enumerate(curves):
        following = curves[(index + 1) % 4]
        if curve.end.distance_to(following.start) > gap:
            return None

    for curve in curves:
        for point in (curve.start, cubic_point(*curve.as_cubic(), 0.5)):
            if abs(point.distance_to(center) - radius) > radius_tolerance * radius:
                return None

    angles = [math.atan2(p.y - center.y, p.x - center.x) for p in joints]
    deltas = [_normalize_angle(angles[(i + 1) % 4] - angles[i]) for i in range(4)]
    if not (all(d > 0 for d in deltas) or all(d < 0 for d in deltas)):
        return None
    if any(abs(abs(d) - math.pi / 2) > angle_tolerance for d in deltas):
        return None

    clockwise = deltas[0] < 0
    logger.debug(f"Collapsed four-curve circle at {center} r={radius:.4f}")
    return [
        Arc(joints[0], joints[2], center, clockwise),
        Arc(joints[2], joints[0], center, clockwise),
    ]


def merge_lines(segments: Sequence[Segment]) -> List[Segment]:
    """Join consecutive Lines that share an endpoint into single polylines."""
    merged: List[Segment] = []
    for segment in segments:
        previous = merged[-1] if merged else None
        if (isinstance(segment, Line) and isinstance(previous, Line)
                and previous.end_point.distance_to(segment.start_point) <= 1e-9):
            merged[-1] = Line(previous.points + segment.points[1:])
        else:
            merged.append(segment)
    return merged


class CurveFlattener:
    """Replaces every Curve in a segment stream with Lines and/or Arcs."""

    def __init__(self,
                 strategy: str = "arcs",
                 tolerance: float = FLATNESS_TOLERANCE,
                 arc_tolerance: float = ARC_TOLERANCE,
                 max_depth: int = MAX_FLATTEN_DEPTH,
                 arc_max_depth: int = MAX_ARC_DEPTH,
                 detect_circles: bool = True,
                 sample_step: float = DEFAULT_SAMPLE_STEP):
        """Initialize flattener.

        Args:
            strategy: "arcs" to fit circular arcs, "lines" for adaptive flattening
            tolerance: Flatness tolerance in document units
            arc_tolerance: Maximum radial error of a fitted arc
            max_depth: Recursion cap for adaptive flattening
            arc_max_depth: Recursion cap for arc fitting
            detect_circles: Collapse four-cubic circles into two arcs
            sample_step: Chord length used when an invalid arc must be sampled
        """
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown flattening strategy: {strategy}")
        self.strategy = strategy
        self.tolerance = tolerance
        self.arc_tolerance = arc_tolerance
        self.max_depth = max_depth
        self.arc_max_depth = arc_max_depth
        self.detect_circles = detect_circles
        self.sample_step = sample_step

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> "CurveFlattener":
        """Create a flattener from the ``flatten`` section of a config dict."""
        settings = (config or {}).get("flatten", {})
        return cls(
            strategy=settings.get("strategy", "arcs"),
            tolerance=float(settings.get("tolerance", FLATNESS_TOLERANCE)),
            arc_tolerance=float(settings.get("arc_tolerance", ARC_TOLERANCE)),
            max_depth=int(settings.get("max_depth", MAX_FLATTEN_DEPTH)),
            arc_max_depth=int(settings.get("arc_max_depth", MAX_ARC_DEPTH)),
            detect_circles=bool(settings.get("detect_circles", True)),
            sample_step=float(settings.get("sample_step", DEFAULT_SAMPLE_STEP)),
        )

    def flatten_curve(self, curve: Curve) -> List[Segment]:
        """Convert one Bezier curve according to the strategy."""
        p0, p1, p2, p3 = curve.as_cubic()
        if self.strategy == "lines":
            return [Line(flatten_cubic(p0, p1, p2, p3, self.tolerance, self.max_depth))]
        return fit_arcs(p0, p1, p2, p3, self.arc_tolerance, self.arc_max_depth)

    def flatten_segment(self, segment: Segment) -> List[Segment]:
        if isinstance(segment, Curve):
            return self.flatten_curve(segment)
        if isinstance(segment, Arc):
            if segment.is_valid():
                return [segment]
            logger.debug(f"Sampling arc that fails the radius check: {segment}")
            if segment.start == segment.end:
                return []
            return [segment.sample(self.sample_step)]
        return [segment]

    def process(self, segments: Sequence[Segment]) -> List[Segment]:
        """Flatten a segment stream.

        Returns:
            Lines and Arcs only, with contiguous Lines merged
        """
        output: List[Segment] = []
        index = 0
        while index < len(segments):
            segment = segments[index]
            if self.detect_circles and self.strategy == "arcs" and isinstance(segment, Curve):
                arcs = detect_circle(segments[index:index + 4])
                if arcs is not None:
                    output.extend(arcs)
                    index += 4
                    continue
            output.extend(self.flatten_segment(segment))
            index += 1
        return merge_lines(output)
