"""Pick-and-place helpers for svgplot.

Builds block programs for a magnetic pick-and-place head, formats jog
moves and parses the position reports the controller sends back.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Optional, Tuple, Union

# Set up logging
logger = logging.getLogger(__name__)

PROGRAM_HEADER = "type: pickandplace"

# The head's vacuum valve is wired inverted: M05 engages, M03 releases
VACUUM_ON_COMMAND = "M05"
VACUUM_OFF_COMMAND = "M03"

Z_MIN = 0.0
Z_MAX = 200.0

JOG_AXES = ("x", "y", "z")

POSITION_RE = re.compile(
    r"POS:\s*([-\d.]+)\s*,\s*([-\d.]+)\s*,\s*([-\d.]+)\s*"
    r"\|\s*([-\d.]+)\s*,\s*([-\d.]+)\s*,\s*([-\d.]+)"
)


@dataclass
class MotionBlock:
    """Rapid move of the head to an absolute position (mm)."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def to_gcode(self) -> str:
        return f"G0 X{self.x:.1f} Y{self.y:.1f} Z{self.z:.1f}"


@dataclass
class VacuumBlock:
    """Switch the vacuum gripper on or off."""

    on: bool = True

    def to_gcode(self) -> str:
        return VACUUM_ON_COMMAND if self.on else VACUUM_OFF_COMMAND


Block = Union[MotionBlock, VacuumBlock]


class Position(NamedTuple):
    x: float
    y: float
    z: float


class PositionReport(NamedTuple):
    """Machine and work coordinates reported by the controller."""

    machine: Position
    work: Position


def generate_pnp_program(blocks: Iterable[Block], repeat: int = 1) -> str:
    """Generate a pick-and-place program from a block list.

    Args:
        blocks: Motion and vacuum blocks in execution order
        repeat: Number of times the block sequence is repeated

    Returns:
        Program text starting with the ``type: pickandplace`` header line
    """
    if repeat < 1:
        raise ValueError(f"Repeat count must be at least 1, got {repeat}")

    body = [block.to_gcode() for block in blocks]
    lines = [PROGRAM_HEADER] + body * repeat
    return "\n".join(lines) + "\n"


def program_lines(program: str) -> List[str]:
    """Split a program into sendable lines.

    Blank lines and the ``type:`` header are removed.
    """
    lines = []
    for line in program.splitlines():
        line = line.strip()
        if not line or line.startswith("type:"):
            continue
        lines.append(line)
    return lines


def jog_command(axis: str, direction: int, step: float, current: float) -> Tuple[str, float]:
    """Absolute rapid move for one jog step.

    The target is rounded to 0.1 mm; Z is kept within the head's travel.

    Args:
        axis: "x", "y" or "z" (case-insensitive)
        direction: +1 or -1
        step: Jog distance in mm
        current: Current position of the axis in mm

    Returns:
        (G-code command, new position)
    """
    axis = axis.lower()
    if axis not in JOG_AXES:
        raise ValueError(f"Unknown jog axis: {axis}")
    if direction not in (1, -1):
        raise ValueError(f"Jog direction must be 1 or -1, got {direction}")

    target = round(current + direction * step, 1)
    if axis == "z":
        target = max(Z_MIN, min(Z_MAX, target))
    return f"G0 {axis.upper()}{target:.1f}", target


def parse_position_report(message: Optional[str]) -> Optional[PositionReport]:
    """Parse a ``POS:mx,my,mz|wx,wy,wz`` report.

    Returns:
        PositionReport, or None if the message is not a position report
    """
    if not message:
        return None

    match = POSITION_RE.search(message.strip())
    if not match:
        return None

    values = []
    for text in match.groups():
        try:
            values.append(float(text))
        except ValueError:
            logger.debug(f"Unparsable coordinate {text!r} in position report")
            values.append(0.0)
    return PositionReport(Position(*values[:3]), Position(*values[3:]))
