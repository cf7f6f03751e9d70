"""svgplot: SVG to G-code for pen plotters and pick-and-place heads."""

__version__ = "0.1.0"

from .config import Config, load_config
from .flatten import CurveFlattener
from .gcode import GCodeGenerator, export_gcode, generate_gcode, generate_segments_gcode
from .geometry import Arc, Curve, Line, Point
from .layout import Bed, Layout, MachineParams, Placement, PlacedItem
from .path_processor import PathCommand, PathProcessor, parse_path_data
from .pnp import (
    MotionBlock,
    Position,
    PositionReport,
    VacuumBlock,
    generate_pnp_program,
    jog_command,
    parse_position_report,
    program_lines,
)
from .sequencer import JogSequencer, SequencerBusy, SequencerState, SequencerTimeout
from .svg import SVGDocument, SVGParseError, parse_svg, parse_svg_text
from .transforms import Transform, parse_transform
