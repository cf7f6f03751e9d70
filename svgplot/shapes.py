"""Basic shape normalisation for svgplot.

Converts the SVG primitives ``rect``, ``circle``, ``ellipse``, ``line``,
``polyline`` and ``polygon`` into the same segment model used for paths.
Straight edges stay explicit vertices; circles become two semicircular arcs.
"""

import logging
import math
from typing import Callable, Dict, List, Optional

from lxml import etree

from .geometry import (
    ARC_RADIUS_TOLERANCE,
    DEFAULT_SAMPLE_STEP,
    Arc,
    Line,
    Point,
    Segment,
    parse_numbers,
)
from .path_processor import sample_elliptical_arc
from .transforms import Transform

# Set up logging
logger = logging.getLogger(__name__)

SHAPE_TAGS = ("rect", "circle", "ellipse", "line", "polyline", "polygon")


def parse_length(value: Optional[str], default: float = 0.0) -> float:
    """Parse a length attribute, ignoring any unit suffix.

    Args:
        value: Attribute value (e.g., "10", "10px", "2.5mm")
        default: Value returned when missing or unparsable

    Returns:
        Parsed value as float
    """
    if value is None:
        return default
    numbers = parse_numbers(value)
    if not numbers:
        logger.warning(f"Could not parse length: {value}")
        return default
    return numbers[0]


def circle_arcs(cx: float, cy: float, r: float) -> List[Arc]:
    """Two semicircles covering a full circle.

    Both halves turn the same way so that together they close the circle.
    The start and end points sit on the horizontal diameter.
    """
    center = Point(cx, cy)
    left = Point(cx - r, cy)
    right = Point(cx + r, cy)
    return [
        Arc(left, right, center, clockwise=False),
        Arc(right, left, center, clockwise=False),
    ]


def rect_segments(x: float, y: float, width: float, height: float,
                  rx: float = 0.0, ry: float = 0.0,
                  sample_step: float = DEFAULT_SAMPLE_STEP) -> List[Segment]:
    """Outline of a (optionally rounded) rectangle, clockwise on screen."""
    if width <= 0 or height <= 0:
        return []

    rx = min(max(rx, 0.0), width / 2)
    ry = min(max(ry, 0.0), height / 2)
    if rx == 0 or ry == 0:
        corners = [Point(x, y), Point(x + width, y), Point(x + width, y + height),
                   Point(x, y + height)]
        return [Line([corners[i], corners[(i + 1) % 4]]) for i in range(4)]

    circular = abs(rx - ry) <= ARC_RADIUS_TOLERANCE * max(rx, ry)
    if circular:
        rx = ry = (rx + ry) / 2

    def corner_point(center: Point, angle: float) -> Point:
        return Point(center.x + rx * math.cos(angle), center.y + ry * math.sin(angle))

    # Corner centres, in drawing order: top-right, bottom-right, bottom-left, top-left
    centers = [
        Point(x + width - rx, y + ry),
        Point(x + width - rx, y + height - ry),
        Point(x + rx, y + height - ry),
        Point(x + rx, y + ry),
    ]
    segments: List[Segment] = []
    for index, center in enumerate(centers):
        start_angle = -math.pi / 2 + index * math.pi / 2
        end_angle = start_angle + math.pi / 2
        if circular:
            segments.append(Arc(corner_point(center, start_angle), corner_point(center, end_angle),
                                center, clockwise=False))
        else:
            corner = sample_elliptical_arc(center, rx, ry, 0.0, start_angle, math.pi / 2, sample_step)
            segments.append(Line(corner))

        edge_start = corner_point(center, end_angle)
        edge_end = corner_point(centers[(index + 1) % 4], end_angle)
        if edge_start.distance_to(edge_end) > 1e-9:
            segments.append(Line([edge_start, edge_end]))
    return segments


def ellipse_segments(cx: float, cy: float, rx: float, ry: float,
                     sample_step: float = DEFAULT_SAMPLE_STEP) -> List[Segment]:
    """Circle arcs when the radii match, otherwise a sampled closed polyline."""
    if rx <= 0 or ry <= 0:
        return []
    if abs(rx - ry) <= ARC_RADIUS_TOLERANCE * max(rx, ry):
        return circle_arcs(cx, cy, (rx + ry) / 2)
    points = sample_elliptical_arc(Point(cx, cy), rx, ry, 0.0, math.pi, 2 * math.pi, sample_step)
    points[-1] = points[0]
    return [Line(points)]


def polyline_segments(numbers: List[float], closed: bool) -> List[Segment]:
    """Straight segments between consecutive vertices."""
    if len(numbers) % 2:
        logger.warning("Dropping unpaired coordinate in points list")
        numbers = numbers[:-1]
    points = [Point(numbers[i], numbers[i + 1]) for i in range(0, len(numbers), 2)]
    if len(points) < 2:
        return []
    if closed and points[-1] != points[0]:
        points.append(points[0])
    return [Line([a, b]) for a, b in zip(points, points[1:]) if a != b]


def _rect(element, sample_step: float) -> List[Segment]:
    rx_attr = element.get("rx")
    ry_attr = element.get("ry")
    rx = parse_length(rx_attr if rx_attr is not None else ry_attr)
    ry = parse_length(ry_attr if ry_attr is not None else rx_attr)
    return rect_segments(
        parse_length(element.get("x")),
        parse_length(element.get("y")),
        parse_length(element.get("width")),
        parse_length(element.get("height")),
        rx, ry, sample_step,
    )


def _circle(element, sample_step: float) -> List[Segment]:
    r = parse_length(element.get("r"))
    if r <= 0:
        return []
    return circle_arcs(parse_length(element.get("cx")), parse_length(element.get("cy")), r)


def _ellipse(element, sample_step: float) -> List[Segment]:
    return ellipse_segments(
        parse_length(element.get("cx")),
        parse_length(element.get("cy")),
        parse_length(element.get("rx")),
        parse_length(element.get("ry")),
        sample_step,
    )


def _line(element, sample_step: float) -> List[Segment]:
    start = Point(parse_length(element.get("x1")), parse_length(element.get("y1")))
    end = Point(parse_length(element.get("x2")), parse_length(element.get("y2")))
    if start == end:
        return []
    return [Line([start, end])]


def _polyline(element, sample_step: float) -> List[Segment]:
    return polyline_segments(parse_numbers(element.get("points")), closed=False)


def _polygon(element, sample_step: float) -> List[Segment]:
    return polyline_segments(parse_numbers(element.get("points")), closed=True)


SHAPE_HANDLERS: Dict[str, Callable] = {
    "rect": _rect,
    "circle": _circle,
    "ellipse": _ellipse,
    "line": _line,
    "polyline": _polyline,
    "polygon": _polygon,
}


def normalize_shape(element, transform: Optional[Transform] = None,
                    sample_step: float = DEFAULT_SAMPLE_STEP) -> List[Segment]:
    """Convert a basic-shape element into segments in document space.

    Args:
        element: lxml element for one of SHAPE_TAGS
        transform: Cumulative transform of the element (identity if None)
        sample_step: Chord length for sampled ellipses

    Returns:
        List of segments (empty for degenerate or unknown shapes)
    """
    tag = etree.QName(element).localname
    handler = SHAPE_HANDLERS.get(tag)
    if handler is None:
        return []

    transform = transform or Transform.identity()
    segments = handler(element, sample_step)
    if not segments:
        logger.debug(f"Skipping degenerate <{tag}>")
    return [transform.map_segment(segment, sample_step) for segment in segments]
