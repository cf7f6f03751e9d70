#!/usr/bin/env python3
"""Test script for the layout module."""

import logging
import sys

import pytest

from svgplot.geometry import Arc, Line, Point
from svgplot.layout import Bed, Layout, MachineParams
from svgplot.shapes import circle_arcs

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("test_layout")

SQUARE = [Line([(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)])]


def test_add_item_defaults():
    """New items get the initial width and a staggered position."""
    logger.info("Testing item placement...")
    layout = Layout()
    first = layout.add_item("a", SQUARE, (10, 5))
    assert first.id == "plot_1"
    assert first.placement.width == 100
    assert first.placement.height == 50
    assert (first.placement.pos_x, first.placement.pos_y) == (0, 0)
    assert first.machine is None

    second = layout.add_item("b", SQUARE, (10, 10))
    assert second.id == "plot_2"
    assert (second.placement.pos_x, second.placement.pos_y) == (-22, 22)
    assert layout.get_item("plot_2") is second


def test_add_item_rejects_bad_input():
    layout = Layout()
    assert layout.add_item("empty", [], (10, 10)) is None
    with pytest.raises(ValueError):
        layout.add_item("flat", SQUARE, (0, 10))
    with pytest.raises(ValueError):
        layout.add_item("narrow", SQUARE, (10, 10), width=0)
    assert layout.items == []


def test_remove_and_reset():
    layout = Layout()
    item = layout.add_item("a", SQUARE, (10, 10))
    layout.add_item("b", SQUARE, (10, 10))
    layout.remove_item(item.id)
    assert [i.name for i in layout.items] == ["b"]
    with pytest.raises(KeyError):
        layout.get_item(item.id)
    with pytest.raises(KeyError):
        layout.remove_item("plot_99")
    layout.reset()
    assert layout.items == []


def test_resize_with_aspect_lock():
    logger.info("Testing resizing...")
    layout = Layout()
    item = layout.add_item("a", SQUARE, (20, 10))
    layout.set_width(item.id, 60)
    assert item.placement.height == 30
    layout.set_height(item.id, 40)
    assert item.placement.width == 80

    layout.set_keep_aspect(item.id, False)
    layout.set_height(item.id, 10)
    assert item.placement.width == 80
    assert item.placement.height == 10
    assert layout.item_scale(item) == (4, 1)

    layout.set_keep_aspect(item.id, True)
    assert item.placement.height == 40

    with pytest.raises(ValueError):
        layout.set_width(item.id, -5)
    with pytest.raises(ValueError):
        layout.set_height(item.id, 0)


def test_position_clamped_to_bed():
    layout = Layout(Bed(width=500, height=300))
    item = layout.add_item("a", SQUARE, (10, 10))
    layout.set_position(item.id, 1000, 1000)
    assert item.placement.pos_x == 150
    assert item.placement.pos_y == 200

    layout.set_position(item.id, -1000, -1000)
    assert item.placement.pos_x == -250
    assert item.placement.pos_y == 0

    layout.move_by(item.id, 10, 5)
    assert (item.placement.pos_x, item.placement.pos_y) == (-240, 5)


def test_to_bed_mapping():
    """Y is flipped and the item is offset from the bed centre."""
    logger.info("Testing bed mapping...")
    layout = Layout(Bed(center_x=250))
    item = layout.add_item("a", SQUARE, (10, 10))
    layout.set_position(item.id, 20, 30)
    line = layout.to_bed(item)[0]
    assert line.points[0] == Point(270, 130)
    assert line.points[2] == Point(370, 30)

    assert layout.bounding_box(item) == (270, 30, 370, 130)


def test_arcs_follow_the_y_flip():
    layout = Layout()
    item = layout.add_item("circle", circle_arcs(5, 5, 5), (10, 10))
    bed_segments = layout.to_bed(item)
    assert all(isinstance(s, Arc) for s in bed_segments)
    assert all(s.clockwise for s in bed_segments)
    assert bed_segments[0].center == Point(50, 50)
    assert bed_segments[0].start == Point(0, 50)


def test_non_uniform_scale_samples_arcs():
    layout = Layout()
    item = layout.add_item("circle", circle_arcs(5, 5, 5), (10, 10))
    layout.set_keep_aspect(item.id, False)
    layout.set_height(item.id, 50)
    bed_segments = layout.to_bed(item)
    assert all(isinstance(s, Line) for s in bed_segments)
    assert layout.bounding_box(item)[3] == pytest.approx(50, abs=0.01)


def test_machine_params():
    layout = Layout(default_machine=MachineParams(tool_up=3))
    item = layout.add_item("a", SQUARE, (10, 10))
    assert layout.machine_for(item).tool_up == 3

    custom = MachineParams(tool_up=8, work_feed=500)
    layout.set_machine_params(item.id, custom)
    assert layout.machine_for(item) is custom
    layout.set_machine_params(item.id, None)
    assert layout.machine_for(item).tool_up == 3


def test_from_config():
    config = {
        "bed": {"width": 300, "height": 200},
        "machine": {"tool_up": 2, "travel_feed": 3000},
        "layout": {"initial_width": 50, "stagger": 10},
    }
    layout = Layout.from_config(config)
    assert layout.bed.width == 300
    assert layout.bed.center_x == 0
    assert layout.default_machine.tool_up == 2
    assert layout.default_machine.work_feed == 1000
    assert layout.default_machine.travel_feed == 3000

    layout.add_item("a", SQUARE, (10, 10))
    second = layout.add_item("b", SQUARE, (10, 10))
    assert second.placement.width == 50
    assert second.placement.pos_x == -10


def test_import_svg():
    logger.info("Testing SVG import...")
    layout = Layout()
    item = layout.import_svg("square.svg", '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10">'
                                           '<rect width="10" height="10"/></svg>')
    assert item is not None
    assert item.name == "square.svg"
    assert item.natural_size == (10, 10)

    assert layout.import_svg("broken.svg", "<svg") is None
    assert layout.import_svg("empty.svg", '<svg xmlns="http://www.w3.org/2000/svg"/>') is None
    assert len(layout.items) == 1
