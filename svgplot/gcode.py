"""G-code generation module for svgplot.

This module turns bed-space segments into G-code for a pen plotter or a
pick-and-place head. Strokes are separated by tool lifts whenever two
segments do not connect; circular arcs are emitted as G2/G3 moves with I/J
centre offsets, everything else as G1 moves.
"""

import logging
import math
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .geometry import Arc, Curve, Line, Point, Segment
from .layout import Layout, MachineParams

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 3
DISCONTINUITY_THRESHOLD = 0.05  # mm; larger gaps start a new stroke
NOISE_THRESHOLD = 0.005  # mm; smaller moves are not emitted

WORD_RE = re.compile(r"([A-Z])\s*([-+]?(?:\d+\.?\d*|\.\d+))")


class GCodeGenerator:
    """G-code generator for plotter and pick-and-place heads."""

    def __init__(self, config: Dict = None):
        """Initialize G-code generator.

        Args:
            config: Configuration dictionary (optional)
        """
        self.config = config or {}
        gcode = self.config.get("gcode", {})
        self.decimals = int(gcode.get("decimals", DEFAULT_DECIMALS))
        self.discontinuity = float(gcode.get("discontinuity", DISCONTINUITY_THRESHOLD))
        self.noise = float(gcode.get("noise", NOISE_THRESHOLD))
        self.tool_on_commands = list(gcode.get("tool_on") or [])
        self.tool_off_commands = list(gcode.get("tool_off") or [])

        self.current_x = 0.0
        self.current_y = 0.0
        self.current_z = None
        self.tool_is_down = False
        self.last_endpoint: Optional[Point] = None
        self.output_lines = []

    @property
    def resolution(self) -> float:
        """Smallest representable step, e.g. 0.001 for 3 decimals."""
        return 10.0 ** -self.decimals

    def format_number(self, value: float) -> str:
        """Format a coordinate with the configured precision."""
        text = f"{value:.{self.decimals}f}"
        # Avoid "-0.000"
        if float(text) == 0:
            text = f"{0.0:.{self.decimals}f}"
        return text

    def round(self, value: float) -> float:
        return float(self.format_number(value))

    def comment(self, text: str) -> str:
        """Generate a comment.

        Args:
            text: Comment text

        Returns:
            G-code comment
        """
        return f"; {text}"

    def move_to(self, x: Optional[float] = None, y: Optional[float] = None,
                z: Optional[float] = None, feed_rate: Optional[float] = None) -> str:
        """Generate a linear move command.

        Args:
            x: X coordinate (optional)
            y: Y coordinate (optional)
            z: Z coordinate (optional)
            feed_rate: Feed rate in mm/min (optional)

        Returns:
            G-code move command
        """
        return "G1" + self._axes(x, y, z, feed_rate)

    def rapid_move_to(self, x: Optional[float] = None, y: Optional[float] = None,
                      z: Optional[float] = None, feed_rate: Optional[float] = None) -> str:
        """Generate a rapid move command.

        Args:
            x: X coordinate (optional)
            y: Y coordinate (optional)
            z: Z coordinate (optional)
            feed_rate: Feed rate in mm/min (optional)

        Returns:
            G-code rapid move command
        """
        return "G0" + self._axes(x, y, z, feed_rate)

    def arc_move(self, x: float, y: float, i: float, j: float, clockwise: bool,
                 feed_rate: Optional[float] = None) -> str:
        """Generate a circular interpolation move.

        Args:
            x, y: Arc end point
            i, j: Centre offset from the current position
            clockwise: G2 if True, G3 otherwise
            feed_rate: Feed rate in mm/min (optional)

        Returns:
            G-code arc command
        """
        command = "G2" if clockwise else "G3"
        command += f" X{self.format_number(x)} Y{self.format_number(y)}"
        command += f" I{self.format_number(i)} J{self.format_number(j)}"
        self.current_x = self.round(x)
        self.current_y = self.round(y)
        if feed_rate is not None:
            command += f" F{feed_rate:.0f}"
        return command

    def _axes(self, x, y, z, feed_rate) -> str:
        words = ""
        # Add coordinates if provided
        if x is not None:
            words += f" X{self.format_number(x)}"
            self.current_x = self.round(x)

        if y is not None:
            words += f" Y{self.format_number(y)}"
            self.current_y = self.round(y)

        if z is not None:
            words += f" Z{self.format_number(z)}"
            self.current_z = self.round(z)

        # Add feed rate if provided
        if feed_rate is not None:
            words += f" F{feed_rate:.0f}"
        return words

    def set_units(self, units: str = "mm") -> str:
        """Set units for G-code.

        Args:
            units: Units to use ("mm" or "in")

        Returns:
            G-code units command
        """
        if units.lower() == "mm":
            return "G21 ; Set units to millimeters"
        elif units.lower() == "in":
            return "G20 ; Set units to inches"
        else:
            logger.warning(f"Unknown units: {units}, defaulting to mm")
            return "G21 ; Set units to millimeters (default)"

    def set_absolute_positioning(self) -> str:
        """Set absolute positioning mode.

        Returns:
            G-code absolute positioning command
        """
        return "G90 ; Use absolute coordinates"

    def program_end(self) -> str:
        return "M2 ; End of program"

    def add_line(self, line: str) -> None:
        """Add a line to the output.

        Args:
            line: G-code line to add
        """
        self.output_lines.append(line)

    def add_lines(self, lines: List[str]) -> None:
        """Add multiple lines to the output.

        Args:
            lines: G-code lines to add
        """
        self.output_lines.extend(lines)

    # ------------------------------------------------------------------
    # Program structure
    # ------------------------------------------------------------------

    def begin_program(self, machine: MachineParams) -> None:
        """Emit the preamble: header comments, modes and initial tool lift."""
        header = self.config.get("gcode", {}).get("header", "Generated by svgplot")
        self.add_line(self.comment(header))
        self.add_line(self.comment(f"precision: {self.format_number(self.resolution)} mm"))
        self.add_line(self.set_absolute_positioning())
        self.add_line(self.set_units("mm"))
        self.add_line(self.rapid_move_to(z=machine.tool_up, feed_rate=machine.travel_feed))
        self.tool_is_down = False
        self.last_endpoint = None

    def end_program(self, machine: MachineParams) -> None:
        """Lift the tool, return to the origin and end the program."""
        self.tool_up(machine)
        self.add_line(self.rapid_move_to(x=0, y=0, feed_rate=machine.travel_feed))
        self.add_line(self.program_end())
        self.last_endpoint = None

    def tool_up(self, machine: MachineParams) -> None:
        if not self.tool_is_down:
            return
        self.add_lines(self.tool_off_commands)
        self.add_line(self.rapid_move_to(z=machine.tool_up))
        self.tool_is_down = False

    def tool_down(self, machine: MachineParams) -> None:
        if self.tool_is_down:
            return
        self.add_line(self.move_to(z=machine.tool_down, feed_rate=machine.work_feed))
        self.add_lines(self.tool_on_commands)
        self.tool_is_down = True

    def start_stroke(self, point: Point, machine: MachineParams) -> None:
        """Lift if needed, travel to ``point`` and lower the tool."""
        self.tool_up(machine)
        self.add_line(self.rapid_move_to(x=point.x, y=point.y, feed_rate=machine.travel_feed))
        self.tool_down(machine)

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------

    def emit_segments(self, segments: Iterable[Segment], machine: MachineParams) -> None:
        """Emit motion for bed-space segments.

        Args:
            segments: Lines and Arcs in bed coordinates (mm)
            machine: Tool heights and feed rates for these segments
        """
        for segment in segments:
            if isinstance(segment, Curve):
                raise TypeError("Curves must be flattened before G-code generation")

            start = segment.start_point
            if (self.last_endpoint is None or not self.tool_is_down
                    or self.last_endpoint.distance_to(start) > self.discontinuity):
                self.start_stroke(start, machine)

            if isinstance(segment, Arc):
                self._emit_arc(segment, machine)
            else:
                self._emit_line(segment.points[1:])
            self.last_endpoint = segment.end_point

    def _emit_line(self, points: Iterable[Point]) -> None:
        for point in points:
            x = self.round(point.x)
            y = self.round(point.y)
            # Skip tiny redundant moves
            if abs(x - self.current_x) < self.noise and abs(y - self.current_y) < self.noise:
                continue
            self.add_line(self.move_to(x=x, y=y))

    def _emit_arc(self, arc: Arc, machine: MachineParams) -> None:
        """Emit one G2/G3 move, re-centred on the formatted endpoints."""
        start = Point(self.current_x, self.current_y)
        end = Point(self.round(arc.end.x), self.round(arc.end.y))
        chord = start.distance_to(end)

        if chord < self.noise:
            if abs(arc.sweep()) > math.pi:
                # Nearly a full turn: keep the shape as line moves
                self._emit_line(arc.sample(max(self.noise * 10, 0.1)).points[1:])
            return

        center = self._recenter(start, end, arc.center)
        if center.distance_to(start) < self.noise:
            self._emit_line([end])
            return

        i = center.x - start.x
        j = center.y - start.y
        self.add_line(self.arc_move(end.x, end.y, i, j, arc.clockwise))

    @staticmethod
    def _recenter(start: Point, end: Point, center: Point) -> Point:
        """Project ``center`` onto the perpendicular bisector of start-end."""
        mid = Point((start.x + end.x) / 2, (start.y + end.y) / 2)
        dx = end.x - start.x
        dy = end.y - start.y
        length = math.hypot(dx, dy)
        nx, ny = -dy / length, dx / length
        offset = (center.x - mid.x) * nx + (center.y - mid.y) * ny
        return Point(mid.x + nx * offset, mid.y + ny * offset)

    def save_to_file(self, file_path: Union[str, Path]) -> bool:
        """Save G-code to file.

        Args:
            file_path: Path to output file

        Returns:
            True if file was saved successfully, False otherwise
        """
        try:
            with open(file_path, "w") as f:
                for line in self.output_lines:
                    f.write(line + "\n")

            logger.info(f"G-code saved to {file_path}")
            return True

        except OSError as e:
            logger.error(f"Error saving G-code to {file_path}: {e}")
            return False

    def get_output(self) -> str:
        """Get G-code output as a string.

        Returns:
            G-code output
        """
        return "\n".join(self.output_lines)

    def clear_output(self) -> None:
        """Clear G-code output."""
        self.output_lines = []


def generate_segments_gcode(segments: List[Segment], machine: Optional[MachineParams] = None,
                            config: Optional[Dict] = None) -> List[str]:
    """Generate a complete program for bed-space segments.

    Args:
        segments: Lines and Arcs in bed coordinates (mm)
        machine: Machine parameters (defaults if omitted)
        config: Configuration dictionary

    Returns:
        G-code lines
    """
    machine = machine or MachineParams()
    generator = GCodeGenerator(config)
    generator.begin_program(machine)
    generator.emit_segments(segments, machine)
    generator.end_program(machine)
    return generator.output_lines


def generate_gcode(layout: Layout, config: Optional[Dict] = None) -> List[str]:
    """Generate G-code for every item in a layout.

    Each item is drawn with its own machine parameters when it has them; the
    preamble and return-to-origin use the first item's parameters.

    Args:
        layout: Layout with placed items
        config: Configuration dictionary

    Returns:
        G-code lines, or an empty list when there is nothing to export
    """
    if not layout.items:
        logger.warning("Nothing to export: the layout has no items")
        return []

    generator = GCodeGenerator(config)
    first_machine = layout.machine_for(layout.items[0])
    generator.begin_program(first_machine)

    for item in layout.items:
        machine = layout.machine_for(item)
        generator.add_line(generator.comment(f"--- {item.name} ---"))
        generator.emit_segments(layout.to_bed(item), machine)

    generator.end_program(first_machine)
    logger.info(f"Generated {len(generator.output_lines)} G-code lines for "
                f"{len(layout.items)} item(s)")
    return generator.output_lines


def export_gcode(layout: Layout, file_path: Union[str, Path], config: Optional[Dict] = None) -> bool:
    """Write the layout's G-code to a file.

    Returns:
        True if a program was written, False if there was nothing to export
        or the file could not be written
    """
    lines = generate_gcode(layout, config)
    if not lines:
        return False
    generator = GCodeGenerator(config)
    generator.add_lines(lines)
    return generator.save_to_file(file_path)


def parse_gcode_words(line: str) -> Dict[str, float]:
    """Parse the address words of one G-code line (comments removed)."""
    code = line.split(";", 1)[0].strip().upper()
    return {letter: float(value) for letter, value in WORD_RE.findall(code)}


def parse_gcode_points(lines: Iterable[str]) -> List[Tuple[float, float]]:
    """Read back the XY positions visited while cutting.

    The position a cutting move starts from is included, so each stroke
    contributes its travel target followed by every cutting end point.
    Arc moves also contribute the axis-extreme points their sweep crosses,
    so the points span the full extent of the drawing.

    Args:
        lines: G-code lines

    Returns:
        List of (x, y) positions
    """
    points: List[Tuple[float, float]] = []
    x = y = 0.0
    stroke_open = False
    for line in lines:
        words = parse_gcode_words(line)
        if "G" not in words:
            continue
        code = int(words["G"])
        new_x = words.get("X", x)
        new_y = words.get("Y", y)
        if code in (1, 2, 3) and ("X" in words or "Y" in words):
            if not stroke_open:
                points.append((x, y))
                stroke_open = True
            if code in (2, 3):
                arc = Arc((x, y), (new_x, new_y),
                          (x + words.get("I", 0.0), y + words.get("J", 0.0)), clockwise=code == 2)
                points.extend((p.x, p.y) for p in arc.extreme_points()[2:])
            points.append((new_x, new_y))
        elif code == 0:
            stroke_open = False
        x, y = new_x, new_y
    return points
