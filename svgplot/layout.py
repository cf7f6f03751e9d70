"""Layout model for svgplot.

A ``Layout`` owns the artwork items placed on the machine bed. Each item
keeps its segments in natural document units together with a placement
(size and position in millimetres) and optional per-item machine
parameters. ``Layout.to_bed`` maps an item's segments into bed coordinates,
flipping Y because SVG grows downwards and the bed grows upwards.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .geometry import DEFAULT_SAMPLE_STEP, Segment, segments_bounds
from .svg import SVGDocument, SVGParseError
from .transforms import Transform

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_INITIAL_WIDTH = 100.0  # mm
DEFAULT_STAGGER = 22.0  # mm between successively added items


@dataclass
class MachineParams:
    """Tool heights (mm) and feed rates (mm/min)."""

    tool_up: float = 5.0
    tool_down: float = 0.0
    work_feed: float = 1000.0
    travel_feed: float = 6000.0

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> "MachineParams":
        machine = (config or {}).get("machine", {})
        defaults = cls()
        return cls(
            tool_up=float(machine.get("tool_up", defaults.tool_up)),
            tool_down=float(machine.get("tool_down", defaults.tool_down)),
            work_feed=float(machine.get("work_feed", defaults.work_feed)),
            travel_feed=float(machine.get("travel_feed", defaults.travel_feed)),
        )


@dataclass
class Bed:
    """Physical work area. X is centred on ``center_x``; Y starts at the bottom edge."""

    width: float = 500.0
    height: float = 300.0
    center_x: float = 0.0

    @property
    def half_width(self) -> float:
        return self.width / 2

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> "Bed":
        bed = (config or {}).get("bed", {})
        defaults = cls()
        return cls(
            width=float(bed.get("width", defaults.width)),
            height=float(bed.get("height", defaults.height)),
            center_x=float(bed.get("center_x", defaults.center_x)),
        )


@dataclass
class Placement:
    """Size and position of an item on the bed, in millimetres."""

    width: float
    height: float
    pos_x: float = 0.0
    pos_y: float = 0.0
    keep_aspect: bool = True


@dataclass
class PlacedItem:
    """One imported artwork unit."""

    id: str
    name: str
    segments: List[Segment]
    natural_size: Tuple[float, float]
    placement: Placement
    machine: Optional[MachineParams] = None

    @property
    def aspect_ratio(self) -> float:
        """Natural height / width."""
        return self.natural_size[1] / self.natural_size[0]


def _clamp(value: float, low: float, high: float) -> float:
    if high < low:
        return low
    return max(low, min(high, value))


class Layout:
    """Holds placed artwork items and maps them to bed coordinates."""

    def __init__(self, bed: Optional[Bed] = None,
                 default_machine: Optional[MachineParams] = None,
                 initial_width: float = DEFAULT_INITIAL_WIDTH,
                 stagger: float = DEFAULT_STAGGER,
                 sample_step: float = DEFAULT_SAMPLE_STEP):
        """Initialize an empty layout.

        Args:
            bed: Bed dimensions
            default_machine: Machine parameters used by items without their own
            initial_width: Width (mm) given to newly added items
            stagger: Offset (mm) between successively added items
            sample_step: Chord length (mm) when arcs must be sampled
        """
        self.bed = bed or Bed()
        self.default_machine = default_machine or MachineParams()
        self.initial_width = initial_width
        self.stagger = stagger
        self.sample_step = sample_step
        self.items: List[PlacedItem] = []
        self._ids = itertools.count(1)

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> "Layout":
        config = config or {}
        layout = config.get("layout", {})
        return cls(
            bed=Bed.from_config(config),
            default_machine=MachineParams.from_config(config),
            initial_width=float(layout.get("initial_width", DEFAULT_INITIAL_WIDTH)),
            stagger=float(layout.get("stagger", DEFAULT_STAGGER)),
            sample_step=float(config.get("flatten", {}).get("sample_step", DEFAULT_SAMPLE_STEP)),
        )

    def add_item(self, name: str, segments: List[Segment], natural_size: Tuple[float, float],
                 width: Optional[float] = None, machine: Optional[MachineParams] = None
                 ) -> Optional[PlacedItem]:
        """Place a new item on the bed.

        The item gets the initial width (height by aspect ratio) and is
        staggered from the items already placed.

        Args:
            name: Display name
            segments: Segments in natural document units
            natural_size: (width, height) of the artwork in document units
            width: Initial width in mm (layout default if omitted)
            machine: Per-item machine parameters (None to use the default)

        Returns:
            The new PlacedItem, or None if there was nothing to place
        """
        if not segments:
            logger.warning(f"Nothing to place for {name}: no drawable segments")
            return None

        natural_w, natural_h = natural_size
        if natural_w <= 0 or natural_h <= 0:
            raise ValueError(f"Natural size must be positive, got {natural_size}")

        width = self.initial_width if width is None else width
        if width <= 0:
            raise ValueError(f"Width must be positive, got {width}")
        height = width * natural_h / natural_w

        offset = len(self.items) * self.stagger
        placement = Placement(
            width=width,
            height=height,
            pos_x=max(-self.bed.half_width, -offset),
            pos_y=min(self.bed.height - height, offset),
        )
        item = PlacedItem(
            id=f"plot_{next(self._ids)}",
            name=name,
            segments=list(segments),
            natural_size=(float(natural_w), float(natural_h)),
            placement=placement,
            machine=machine,
        )
        self._clamp_position(item)
        self.items.append(item)
        logger.info(f"Placed {name} as {item.id}: {width:.1f} x {height:.1f} mm")
        return item

    def import_document(self, document: SVGDocument, width: Optional[float] = None,
                        machine: Optional[MachineParams] = None) -> Optional[PlacedItem]:
        """Place a parsed SVG document."""
        return self.add_item(document.name, document.get_segments(), document.natural_size,
                             width=width, machine=machine)

    def import_svg(self, name: str, svg_text: str, flattener=None,
                   width: Optional[float] = None) -> Optional[PlacedItem]:
        """Parse SVG text and place it; unparsable documents are skipped.

        Returns:
            The new PlacedItem, or None when the document could not be used
        """
        try:
            document = SVGDocument(svg_text, name=name, flattener=flattener,
                                   sample_step=self.sample_step)
        except SVGParseError as e:
            logger.error(f"Skipping {name}: {e}")
            return None
        return self.import_document(document, width=width)

    def get_item(self, item_id: str) -> PlacedItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise KeyError(item_id)

    def remove_item(self, item_id: str) -> None:
        item = self.get_item(item_id)
        self.items.remove(item)
        logger.info(f"Removed {item.name} ({item_id})")

    def reset(self) -> None:
        """Remove every item."""
        self.items = []

    def set_width(self, item_id: str, width: float) -> PlacedItem:
        """Resize an item; the height follows when the aspect is locked."""
        if width <= 0:
            raise ValueError(f"Width must be positive, got {width}")
        item = self.get_item(item_id)
        item.placement.width = width
        if item.placement.keep_aspect:
            item.placement.height = width * item.aspect_ratio
        return item

    def set_height(self, item_id: str, height: float) -> PlacedItem:
        """Resize an item; the width follows when the aspect is locked."""
        if height <= 0:
            raise ValueError(f"Height must be positive, got {height}")
        item = self.get_item(item_id)
        item.placement.height = height
        if item.placement.keep_aspect:
            item.placement.width = height / item.aspect_ratio
        return item

    def set_keep_aspect(self, item_id: str, keep_aspect: bool) -> PlacedItem:
        """Toggle the aspect lock; locking snaps the height back to the width."""
        item = self.get_item(item_id)
        item.placement.keep_aspect = keep_aspect
        if keep_aspect:
            item.placement.height = item.placement.width * item.aspect_ratio
        return item

    def set_position(self, item_id: str, pos_x: float, pos_y: float) -> PlacedItem:
        """Move an item, clamped to the bed."""
        item = self.get_item(item_id)
        item.placement.pos_x = pos_x
        item.placement.pos_y = pos_y
        self._clamp_position(item)
        return item

    def move_by(self, item_id: str, dx: float, dy: float) -> PlacedItem:
        """Drag an item by an offset, clamped to the bed."""
        item = self.get_item(item_id)
        return self.set_position(item_id, item.placement.pos_x + dx, item.placement.pos_y + dy)

    def set_machine_params(self, item_id: str, machine: Optional[MachineParams]) -> PlacedItem:
        """Give an item its own machine parameters (None to use the default)."""
        item = self.get_item(item_id)
        item.machine = machine
        return item

    def machine_for(self, item: PlacedItem) -> MachineParams:
        return item.machine or self.default_machine

    def _clamp_position(self, item: PlacedItem) -> None:
        p = item.placement
        p.pos_x = _clamp(p.pos_x, -self.bed.half_width, self.bed.half_width - p.width)
        p.pos_y = _clamp(p.pos_y, 0.0, self.bed.height - p.height)

    def item_scale(self, item: PlacedItem) -> Tuple[float, float]:
        """(scale_x, scale_y) from natural units to millimetres."""
        natural_w, natural_h = item.natural_size
        scale_x = item.placement.width / natural_w
        if item.placement.keep_aspect:
            return scale_x, scale_x
        return scale_x, item.placement.height / natural_h

    def item_transform(self, item: PlacedItem) -> Transform:
        """Natural-unit to bed transform for an item (includes the Y flip)."""
        scale_x, scale_y = self.item_scale(item)
        p = item.placement
        return Transform.from_values(
            scale_x, 0, 0, -scale_y,
            self.bed.center_x + p.pos_x,
            p.pos_y + p.height,
        )

    def to_bed(self, item: PlacedItem) -> List[Segment]:
        """Map an item's segments into bed coordinates.

        Arcs keep their shape under uniform scaling (the Y flip reverses
        their winding); non-uniform scaling samples them into lines.
        """
        transform = self.item_transform(item)
        return [transform.map_segment(segment, self.sample_step) for segment in item.segments]

    def bounding_box(self, item: PlacedItem) -> Optional[Tuple[float, float, float, float]]:
        """Bed-space bounding box (min_x, min_y, max_x, max_y) of an item's geometry."""
        return segments_bounds(self.to_bed(item))
