#!/usr/bin/env python3
"""Test script for the path processing module.

This script tests path tokenizing and interpretation.
"""

import logging
import math
import sys

import pytest

from svgplot.geometry import Arc, Curve, Line, Point
from svgplot.path_processor import PathCommand, PathProcessor, parse_path_data, svg_arc_to_center
from svgplot.transforms import Transform

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("test_path_processor")


def commands(d):
    return [(c.command, c.params) for c in PathProcessor.parse_path(d)]


def test_basic_tokenizing():
    """Test simple absolute commands."""
    logger.info("Testing basic tokenizing...")
    assert commands("M10 20 L30 40") == [("M", [10, 20]), ("L", [30, 40])]
    assert commands("M 1,2 H 5 V 6 Z") == [("M", [1, 2]), ("H", [5]), ("V", [6]), ("Z", [])]
    assert commands("") == []


def test_implicit_repetition():
    """Extra argument groups repeat the command; after M they become L."""
    assert commands("M 0 0 10 10 20 0") == [("M", [0, 0]), ("L", [10, 10]), ("L", [20, 0])]
    assert commands("m1 2 3 4") == [("m", [1, 2]), ("l", [3, 4])]
    assert commands("L1 2 3 4") == [("L", [1, 2]), ("L", [3, 4])]
    assert len(commands("C0 0 1 1 2 2 3 3 4 4 5 5")) == 2


def test_number_lexing():
    """Numbers may run together without separators."""
    logger.info("Testing number lexing...")
    assert commands("M1.5.5L10-5") == [("M", [1.5, 0.5]), ("L", [10, -5])]
    assert commands("M1e2 -2E-1") == [("M", [100, -0.2])]
    assert commands("M.5,.5") == [("M", [0.5, 0.5])]
    assert commands("M+3-4") == [("M", [3, -4])]


def test_packed_arc_flags():
    """Arc flags are single digits and may be packed together."""
    parsed = commands("M0 0a1 1 0 00 10 10")
    assert parsed[1] == ("a", [1, 1, 0, 0, 0, 10, 10])

    parsed = commands("M0 0A5 5 30 1110 0")
    assert parsed[1] == ("A", [5, 5, 30, 1, 1, 10, 0])


def test_incomplete_groups_dropped():
    """A trailing incomplete group is dropped without raising."""
    assert commands("M0 0 L10") == [("M", [0, 0])]
    assert commands("M0 0 L10 Z") == [("M", [0, 0]), ("Z", [])]
    assert commands("M0 0 C1 1 2 2") == [("M", [0, 0])]


def test_unknown_characters_ignored():
    assert commands("M0 0 # L 5 5") == [("M", [0, 0]), ("L", [5, 5])]
    assert commands("10 20 M1 1") == [("M", [1, 1])]


def test_path_command():
    cmd = PathCommand("l", [1.0, 2.0])
    assert not cmd.absolute
    assert PathCommand("L", [1.0, 2.0]).absolute
    assert cmd == PathCommand("l", [1.0, 2.0])
    assert repr(cmd) == "l[1.0, 2.0]"


def test_lines_and_relative_commands():
    """Test line interpretation with relative commands."""
    logger.info("Testing line interpretation...")
    segments = parse_path_data("m10 10 l5 0 v5 h-5 z")
    assert all(isinstance(s, Line) for s in segments)
    assert [s.points for s in segments] == [
        (Point(10, 10), Point(15, 10)),
        (Point(15, 10), Point(15, 15)),
        (Point(15, 15), Point(10, 15)),
        (Point(10, 15), Point(10, 10)),
    ]


def test_zero_length_lines_skipped():
    segments = parse_path_data("M0 0 L0 0 L5 0 H5")
    assert len(segments) == 1


def test_closed_path_detection():
    """Z only draws a closing line when the path is not already closed."""
    closed = parse_path_data("M0 0 L10 0 L10 10 L0 0 Z")
    assert len(closed) == 3

    open_path = parse_path_data("M0 0 L10 0 L10 10 Z")
    assert len(open_path) == 3
    assert open_path[-1] == Line([(10, 10), (0, 0)])


def test_close_resets_current_point():
    segments = parse_path_data("M5 5 L10 5 L10 10 z l1 0")
    assert segments[-1] == Line([(5, 5), (6, 5)])


def test_smooth_cubic_reflection():
    """S reflects the previous cubic control point."""
    segments = parse_path_data("M0 0 C0 10 10 10 10 0 S20 -10 20 0")
    assert isinstance(segments[1], Curve)
    assert segments[1].controls[0] == Point(10, -10)

    # Without a preceding cubic the current point is used
    segments = parse_path_data("M0 0 Q5 10 10 0 S15 -10 20 0")
    assert segments[1].controls[0] == Point(10, 0)


def test_smooth_quadratic_reflection():
    segments = parse_path_data("M0 0 Q5 10 10 0 T20 0")
    assert segments[1].kind == "quadratic"
    assert segments[1].controls[0] == Point(15, -10)

    segments = parse_path_data("M0 0 L10 0 T20 0")
    assert segments[1].controls[0] == Point(10, 0)


def test_circular_arc():
    """Test circular arc interpretation."""
    logger.info("Testing arc interpretation...")
    segments = parse_path_data("M0 0 A5 5 0 0 1 10 0")
    assert len(segments) == 1
    arc = segments[0]
    assert isinstance(arc, Arc)
    assert arc.center.x == pytest.approx(5)
    assert arc.center.y == pytest.approx(0, abs=1e-9)
    assert not arc.clockwise
    assert arc.is_valid()

    arc = parse_path_data("M0 0 A5 5 0 0 0 10 0")[0]
    assert arc.clockwise


def test_arc_radius_correction():
    """Radii too small for the chord are scaled up."""
    solved = svg_arc_to_center(Point(0, 0), Point(10, 0), 1, 1, 0, False, True)
    center, rx, ry, phi, start_angle, sweep_angle = solved
    assert rx == pytest.approx(5)
    assert ry == pytest.approx(5)
    assert center.x == pytest.approx(5)
    assert abs(sweep_angle) == pytest.approx(math.pi)


def test_large_arc_flag():
    small = parse_path_data("M0 0 A10 10 0 0 1 10 0")[0]
    large = parse_path_data("M0 0 A10 10 0 1 1 10 0")[0]
    assert abs(small.sweep()) < math.pi
    assert abs(large.sweep()) > math.pi


def test_elliptical_arc_sampled():
    segments = parse_path_data("M0 0 A10 5 0 0 1 20 0")
    assert len(segments) == 1
    line = segments[0]
    assert isinstance(line, Line)
    assert line.start_point == Point(0, 0)
    assert line.end_point == Point(20, 0)
    assert len(line.points) > 4


def test_degenerate_arcs():
    """Zero radius becomes a line; coincident endpoints draw nothing."""
    assert parse_path_data("M0 0 A0 5 0 0 1 10 0") == [Line([(0, 0), (10, 0)])]
    assert parse_path_data("M0 0 A5 5 0 0 1 0 0") == []


def test_transform_applied():
    segments = parse_path_data("M0 0 L1 0", Transform.translation(5, 5))
    assert segments == [Line([(5, 5), (6, 5)])]


def test_mirror_toggles_arc_direction():
    arc = parse_path_data("M0 0 A5 5 0 0 1 10 0", Transform.scaling(1, -1))[0]
    assert isinstance(arc, Arc)
    assert arc.clockwise


def test_non_uniform_transform_samples_arc():
    segments = parse_path_data("M0 0 A5 5 0 0 1 10 0", Transform.scaling(2, 1))
    assert isinstance(segments[0], Line)
    assert segments[0].start_point == Point(0, 0)
    assert segments[0].end_point.x == pytest.approx(20)
