#!/usr/bin/env python3
"""Test script for the pick-and-place helpers."""

import logging
import sys

import pytest

import svgplot
from svgplot.pnp import (
    PROGRAM_HEADER,
    MotionBlock,
    Position,
    VacuumBlock,
    generate_pnp_program,
    jog_command,
    parse_position_report,
    program_lines,
)
from svgplot.sequencer import JogSequencer

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("test_pnp")


def test_block_gcode():
    assert MotionBlock(10, 20.26, 5).to_gcode() == "G0 X10.0 Y20.3 Z5.0"
    assert MotionBlock().to_gcode() == "G0 X0.0 Y0.0 Z0.0"
    assert VacuumBlock(True).to_gcode() == "M05"
    assert VacuumBlock(False).to_gcode() == "M03"


def test_generate_program():
    """Test program generation with repetition."""
    logger.info("Testing pick-and-place program...")
    blocks = [MotionBlock(1, 2, 3), VacuumBlock(True), MotionBlock(4, 5, 6), VacuumBlock(False)]
    program = generate_pnp_program(blocks)
    logger.info(program)
    assert program == (
        "type: pickandplace\n"
        "G0 X1.0 Y2.0 Z3.0\n"
        "M05\n"
        "G0 X4.0 Y5.0 Z6.0\n"
        "M03\n"
    )

    repeated = generate_pnp_program(blocks, repeat=2)
    lines = repeated.splitlines()
    assert lines[0] == PROGRAM_HEADER
    assert len(lines) == 1 + 8
    assert lines[1:5] == lines[5:9]

    assert generate_pnp_program([]) == "type: pickandplace\n"
    with pytest.raises(ValueError):
        generate_pnp_program(blocks, repeat=0)


def test_program_lines():
    program = generate_pnp_program([MotionBlock(1, 1, 1), VacuumBlock(True)])
    assert program_lines(program) == ["G0 X1.0 Y1.0 Z1.0", "M05"]
    assert program_lines("\n\n  \n") == []


def test_program_streams_through_sequencer():
    sent = []
    sequencer = JogSequencer(sent.append, delay=0)
    sequencer.start_run(program_lines(generate_pnp_program([MotionBlock(1, 1, 1), VacuumBlock(True)])))
    sequencer.handle_message("ok")
    sequencer.handle_message("ok")
    assert sent == ["G0 X1.0 Y1.0 Z1.0", "M05"]
    assert not sequencer.is_running


def test_jog_command():
    """Test jog steps and Z clamping."""
    logger.info("Testing jog commands...")
    assert jog_command("x", 1, 10, 0) == ("G0 X10.0", 10.0)
    assert jog_command("Y", -1, 0.1, 5) == ("G0 Y4.9", 4.9)
    assert jog_command("x", -1, 10, 5) == ("G0 X-5.0", -5.0)

    assert jog_command("z", 1, 10, 195) == ("G0 Z200.0", 200.0)
    assert jog_command("z", -1, 10, 5) == ("G0 Z0.0", 0.0)

    with pytest.raises(ValueError):
        jog_command("a", 1, 1, 0)
    with pytest.raises(ValueError):
        jog_command("x", 0, 1, 0)


def test_parse_position_report():
    logger.info("Testing position reports...")
    report = parse_position_report("POS:10.5,20,3.25|0.5,1,-2")
    assert report.machine == Position(10.5, 20, 3.25)
    assert report.work == Position(0.5, 1, -2)

    spaced = parse_position_report("  POS: 1 , 2 , 3 | 4 , 5 , 6\n")
    assert spaced.work.z == 6

    assert parse_position_report("ok") is None
    assert parse_position_report("") is None
    assert parse_position_report(None) is None


def test_unparsable_coordinates_default_to_zero():
    report = parse_position_report("POS:1.2.3,2,3|4,5,6")
    assert report.machine.x == 0.0
    assert report.machine.y == 2


def test_package_exports():
    assert svgplot.generate_pnp_program is generate_pnp_program
    assert svgplot.parse_position_report is parse_position_report
    assert svgplot.MotionBlock is MotionBlock
