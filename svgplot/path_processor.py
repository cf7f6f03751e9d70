"""
Path processing utilities for SVG path data.

This module tokenizes SVG path ``d`` strings into fixed-arity commands and
interprets them into geometric segments (lines, circular arcs and Bezier
curves). Malformed data is skipped rather than raised, so a bad command only
loses its own geometry.
"""

import logging
import math
import re
from typing import List, Optional, Tuple

from .geometry import (
    ARC_RADIUS_TOLERANCE,
    DEFAULT_SAMPLE_STEP,
    NUMBER_RE,
    Arc,
    Curve,
    Line,
    Point,
    Segment,
)
from .transforms import Transform

# Set up logging
logger = logging.getLogger(__name__)

COMMAND_LETTERS = "MmZzLlHhVvCcSsQqTtAa"

# Number of arguments consumed by one call of each command
COMMAND_ARITY = {
    "M": 2, "L": 2, "H": 1, "V": 1, "C": 6,
    "S": 4, "Q": 4, "T": 2, "A": 7, "Z": 0,
}

SEPARATOR_RE = re.compile(r"[\s,]*")
FLAG_RE = re.compile(r"[01]")

# Distance below which the current point counts as the subpath start
CLOSE_EPSILON = 1e-9


class PathCommand:
    """Represents a single SVG path command."""

    def __init__(self, command: str, params: List[float]):
        """
        Initialize a path command.

        Args:
            command (str): The SVG path command letter (M, L, C, etc.)
            params (List[float]): The parameters for one call of the command
        """
        self.command = command
        self.params = params
        self.absolute = command.isupper()

    def __eq__(self, other) -> bool:
        return (isinstance(other, PathCommand) and self.command == other.command
                and self.params == other.params)

    def __repr__(self) -> str:
        return f"{self.command}{self.params}"


def svg_arc_to_center(
    start: Point, end: Point,
    rx: float, ry: float,
    x_axis_rotation: float,
    large_arc_flag: bool,
    sweep_flag: bool,
) -> Optional[Tuple[Point, float, float, float, float, float]]:
    """
    Convert an endpoint-parameterized SVG arc to center parameterization.

    Radii that are too small to span the chord are scaled up uniformly until
    the arc is solvable.

    Args:
        start, end: Arc endpoints
        rx, ry: Radii of the ellipse
        x_axis_rotation: Rotation of the ellipse in degrees
        large_arc_flag: Use the large arc (> 180 degrees)
        sweep_flag: Sweep in the positive-angle direction if True

    Returns:
        (center, rx, ry, phi, start_angle, sweep_angle) with angles in
        radians, or None when a radius is zero
    """
    # Ensure rx and ry are positive
    rx, ry = abs(rx), abs(ry)
    if rx < 1e-9 or ry < 1e-9:
        return None

    phi = math.radians(x_axis_rotation % 360.0)
    cos_phi = math.cos(phi)
    sin_phi = math.sin(phi)

    # Step 1: Transform to origin and rotate to align with the axes
    dx = (start.x - end.x) / 2
    dy = (start.y - end.y) / 2
    x1 = cos_phi * dx + sin_phi * dy
    y1 = -sin_phi * dx + cos_phi * dy

    # Step 2: Ensure radii are large enough
    lambda_value = (x1 ** 2) / (rx ** 2) + (y1 ** 2) / (ry ** 2)
    if lambda_value > 1:
        rx *= math.sqrt(lambda_value)
        ry *= math.sqrt(lambda_value)

    # Step 3: Compute center
    sign = -1 if large_arc_flag == sweep_flag else 1
    den = rx ** 2 * y1 ** 2 + ry ** 2 * x1 ** 2
    if den == 0:
        return None
    sq = max(0.0, (rx ** 2 * ry ** 2 - rx ** 2 * y1 ** 2 - ry ** 2 * x1 ** 2) / den)
    coef = sign * math.sqrt(sq)
    cx1 = coef * rx * y1 / ry
    cy1 = -coef * ry * x1 / rx

    # Step 4: Transform center back
    cx = cos_phi * cx1 - sin_phi * cy1 + (start.x + end.x) / 2
    cy = sin_phi * cx1 + cos_phi * cy1 + (start.y + end.y) / 2

    # Step 5: Compute start and sweep angles
    ux = (x1 - cx1) / rx
    uy = (y1 - cy1) / ry
    vx = (-x1 - cx1) / rx
    vy = (-y1 - cy1) / ry

    start_angle = math.atan2(uy, ux)
    sweep_angle = math.atan2(ux * vy - uy * vx, ux * vx + uy * vy)
    if not sweep_flag and sweep_angle > 0:
        sweep_angle -= 2 * math.pi
    elif sweep_flag and sweep_angle < 0:
        sweep_angle += 2 * math.pi

    return Point(cx, cy), rx, ry, phi, start_angle, sweep_angle


def sample_elliptical_arc(
    center: Point, rx: float, ry: float, phi: float,
    start_angle: float, sweep_angle: float,
    step: float = DEFAULT_SAMPLE_STEP,
) -> List[Point]:
    """
    Sample an elliptical arc into points.

    Args:
        center: Ellipse center
        rx, ry: Ellipse radii
        phi: Rotation of the ellipse x-axis in radians
        start_angle: Parametric start angle in radians
        sweep_angle: Signed parametric sweep in radians
        step: Approximate chord length between samples

    Returns:
        List of points including both ends
    """
    cos_phi = math.cos(phi)
    sin_phi = math.sin(phi)
    length = abs(sweep_angle) * max(rx, ry)
    segments = max(4, int(math.ceil(length / max(step, 1e-9))))

    points = []
    for i in range(segments + 1):
        angle = start_angle + sweep_angle * i / segments
        ellipse_x = rx * math.cos(angle)
        ellipse_y = ry * math.sin(angle)
        # Rotate and translate back
        points.append(Point(cos_phi * ellipse_x - sin_phi * ellipse_y + center.x,
                            sin_phi * ellipse_x + cos_phi * ellipse_y + center.y))
    return points


class PathProcessor:
    """Processes SVG path data into geometric segments."""

    @staticmethod
    def parse_path(path_data: str) -> List[PathCommand]:
        """
        Tokenize SVG path data into one PathCommand per argument group.

        Implicit repetition is expanded, so "L 1 2 3 4" yields two L commands
        and extra pairs after "M"/"m" become "L"/"l". Arc flags may be packed
        without separators. An incomplete trailing argument group is dropped.

        Args:
            path_data (str): SVG path data string

        Returns:
            List[PathCommand]: List of parsed path commands
        """
        if not path_data:
            return []

        commands = []
        command = None
        pos = 0
        length = len(path_data)

        while True:
            pos = SEPARATOR_RE.match(path_data, pos).end()
            if pos >= length:
                break

            char = path_data[pos]
            if char in COMMAND_LETTERS:
                pos += 1
                if char in "Zz":
                    commands.append(PathCommand(char, []))
                    command = None
                else:
                    command = char
                continue

            if command is None:
                # Stray number or junk without a command
                match = NUMBER_RE.match(path_data, pos)
                skipped = match.group(0) if match else char
                logger.debug(f"Skipping unexpected path data: {skipped!r}")
                pos = match.end() if match else pos + 1
                continue

            params, new_pos = PathProcessor._read_group(path_data, pos, command)
            if params is None:
                logger.debug(f"Dropping incomplete arguments for '{command}' at {pos}")
                if new_pos >= length:
                    break
                if new_pos == pos or path_data[new_pos] not in COMMAND_LETTERS:
                    new_pos += 1
                pos = new_pos
                continue

            commands.append(PathCommand(command, params))
            pos = new_pos
            if command == "M":
                command = "L"
            elif command == "m":
                command = "l"

        return commands

    @staticmethod
    def _read_group(path_data: str, pos: int, command: str) -> Tuple[Optional[List[float]], int]:
        """Read one argument group for ``command`` starting at ``pos``."""
        upper = command.upper()
        params = []
        for index in range(COMMAND_ARITY[upper]):
            pos = SEPARATOR_RE.match(path_data, pos).end()
            if upper == "A" and index in (3, 4):
                match = FLAG_RE.match(path_data, pos)
            else:
                match = NUMBER_RE.match(path_data, pos)
            if match is None:
                return None, pos
            params.append(float(match.group(0)))
            pos = match.end()
        return params, pos

    @staticmethod
    def interpret(
        path_commands: List[PathCommand],
        transform: Optional[Transform] = None,
        sample_step: float = DEFAULT_SAMPLE_STEP,
    ) -> List[Segment]:
        """
        Convert path commands into segments.

        Coordinates are computed in the path's local space and then mapped
        through ``transform`` before being stored.

        Args:
            path_commands (List[PathCommand]): Commands from parse_path
            transform (Transform): Local to document transform (identity if None)
            sample_step (float): Chord length for sampling elliptical arcs

        Returns:
            List[Segment]: Line, Arc and Curve segments in document space
        """
        transform = transform or Transform.identity()
        segments: List[Segment] = []

        current = Point(0.0, 0.0)
        subpath_start = Point(0.0, 0.0)
        last_cubic_control = None
        last_quad_control = None

        def emit(segment: Optional[Segment]) -> None:
            if segment is not None:
                segments.append(transform.map_segment(segment, sample_step))

        for cmd in path_commands:
            command = cmd.command.upper()
            params = cmd.params
            ox, oy = (0.0, 0.0) if cmd.absolute else (current.x, current.y)
            cubic_control = None
            quad_control = None

            if command == "M":
                current = Point(params[0] + ox, params[1] + oy)
                subpath_start = current

            elif command in "LHV":
                if command == "L":
                    target = Point(params[0] + ox, params[1] + oy)
                elif command == "H":
                    target = Point(params[0] + ox, current.y)
                else:
                    target = Point(current.x, params[0] + oy)
                if target != current:
                    emit(Line([current, target]))
                current = target

            elif command == "C":
                c1 = Point(params[0] + ox, params[1] + oy)
                c2 = Point(params[2] + ox, params[3] + oy)
                target = Point(params[4] + ox, params[5] + oy)
                emit(PathProcessor._curve(current, [c1, c2], target))
                cubic_control = c2
                current = target

            elif command == "S":
                # First control point is the reflection of the previous second control point
                c1 = PathProcessor._reflect(current, last_cubic_control)
                c2 = Point(params[0] + ox, params[1] + oy)
                target = Point(params[2] + ox, params[3] + oy)
                emit(PathProcessor._curve(current, [c1, c2], target))
                cubic_control = c2
                current = target

            elif command == "Q":
                control = Point(params[0] + ox, params[1] + oy)
                target = Point(params[2] + ox, params[3] + oy)
                emit(PathProcessor._curve(current, [control], target))
                quad_control = control
                current = target

            elif command == "T":
                control = PathProcessor._reflect(current, last_quad_control)
                target = Point(params[0] + ox, params[1] + oy)
                emit(PathProcessor._curve(current, [control], target))
                quad_control = control
                current = target

            elif command == "A":
                target = Point(params[5] + ox, params[6] + oy)
                emit(PathProcessor._arc(current, target, params, sample_step))
                current = target

            elif command == "Z":
                # Close path command - draw line back to subpath start
                if current.distance_to(subpath_start) > CLOSE_EPSILON:
                    emit(Line([current, subpath_start]))
                current = subpath_start

            last_cubic_control = cubic_control
            last_quad_control = quad_control

        return segments

    @staticmethod
    def _reflect(current: Point, control: Optional[Point]) -> Point:
        if control is None:
            return current
        return Point(2 * current.x - control.x, 2 * current.y - control.y)

    @staticmethod
    def _curve(start: Point, controls: List[Point], end: Point) -> Optional[Curve]:
        curve = Curve(start, controls, end)
        if curve.is_degenerate():
            return None
        return curve

    @staticmethod
    def _arc(start: Point, end: Point, params: List[float], sample_step: float) -> Optional[Segment]:
        """Build the segment for one SVG arc call (in local coordinates)."""
        rx, ry, rotation, large_arc, sweep = params[:5]
        if start.distance_to(end) <= CLOSE_EPSILON:
            # Coincident endpoints: SVG omits the arc entirely
            return None

        if abs(rx) < 1e-9 or abs(ry) < 1e-9:
            return Line([start, end])

        rx, ry = abs(rx), abs(ry)
        if abs(rx - ry) <= ARC_RADIUS_TOLERANCE * max(rx, ry):
            radius = (rx + ry) / 2
            solved = svg_arc_to_center(start, end, radius, radius, 0.0, bool(large_arc), bool(sweep))
            if solved is None:
                return Line([start, end])
            center, _, _, _, _, sweep_angle = solved
            return Arc(start, end, center, clockwise=sweep_angle < 0)

        solved = svg_arc_to_center(start, end, rx, ry, rotation, bool(large_arc), bool(sweep))
        if solved is None:
            return Line([start, end])
        center, rx, ry, phi, start_angle, sweep_angle = solved
        points = sample_elliptical_arc(center, rx, ry, phi, start_angle, sweep_angle, sample_step)
        # Pin the exact endpoints
        points[0] = start
        points[-1] = end
        return Line(points)


def parse_path_data(
    path_data: str,
    transform: Optional[Transform] = None,
    sample_step: float = DEFAULT_SAMPLE_STEP,
) -> List[Segment]:
    """Tokenize and interpret a path ``d`` string in one call."""
    return PathProcessor.interpret(PathProcessor.parse_path(path_data), transform, sample_step)
