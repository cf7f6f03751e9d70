"""SVG parsing module for svgplot.

This module parses SVG documents and turns every drawable element into the
shared segment model. It handles nested groups, ``transform`` attributes and
``<use>``/``<symbol>`` indirection, and runs the curve flattener so callers
receive Lines and Arcs in document coordinates.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from lxml import etree

from .flatten import CurveFlattener
from .geometry import DEFAULT_SAMPLE_STEP, Segment, parse_numbers
from .path_processor import PathProcessor
from .shapes import SHAPE_TAGS, normalize_shape, parse_length
from .transforms import Transform, parse_transform

# Set up logging
logger = logging.getLogger(__name__)

XLINK_HREF = "{http://www.w3.org/1999/xlink}href"

# Natural size used when the document declares neither viewBox nor size
DEFAULT_DOCUMENT_SIZE = 100.0

# <use> expansion depth cap; also breaks reference cycles
MAX_USE_DEPTH = 15

CONTAINER_TAGS = ("svg", "g", "a", "switch")

# Elements whose children are never drawn directly
NON_RENDERED_TAGS = (
    "defs", "symbol", "clipPath", "mask", "marker", "pattern", "style",
    "script", "title", "desc", "metadata", "linearGradient", "radialGradient",
    "filter", "text",
)


class SVGParseError(ValueError):
    """Raised when the input is not a usable SVG document."""


def _local_name(element) -> Optional[str]:
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).localname


class SVGDocument:
    """Class for handling SVG document parsing and segment extraction."""

    def __init__(self, svg_text: Union[str, bytes], name: str = "untitled",
                 flattener: Optional[CurveFlattener] = None,
                 sample_step: float = DEFAULT_SAMPLE_STEP):
        """Initialize SVG document from text.

        Args:
            svg_text: SVG document source
            name: Display name (usually the file name)
            flattener: Curve flattener (default settings if omitted)
            sample_step: Chord length for sampled ellipses and arcs
        """
        self.name = name
        self.flattener = flattener or CurveFlattener(sample_step=sample_step)
        self.sample_step = sample_step
        self.root = None
        self.width = 0.0
        self.height = 0.0
        self.viewbox: Optional[Tuple[float, float, float, float]] = None
        self.segments: List[Segment] = []
        self.element_count = 0
        self._ids: Dict[str, object] = {}

        self._parse(svg_text)

    @property
    def natural_size(self) -> Tuple[float, float]:
        """Width and height of the drawing in document units."""
        if self.viewbox and self.viewbox[2] > 0 and self.viewbox[3] > 0:
            return self.viewbox[2], self.viewbox[3]
        width = self.width if self.width > 0 else DEFAULT_DOCUMENT_SIZE
        height = self.height if self.height > 0 else DEFAULT_DOCUMENT_SIZE
        return width, height

    def _parse(self, svg_text: Union[str, bytes]):
        """Parse the SVG text and extract document properties and segments."""
        if isinstance(svg_text, str):
            svg_text = svg_text.encode("utf-8")

        parser = etree.XMLParser(remove_comments=True, resolve_entities=False, no_network=True)
        try:
            root = etree.fromstring(svg_text, parser)
        except etree.XMLSyntaxError as e:
            logger.error(f"Error parsing SVG document {self.name}: {e}")
            raise SVGParseError(f"Invalid SVG document {self.name}: {e}") from e

        if _local_name(root) != "svg":
            raise SVGParseError(f"Document {self.name} has no <svg> root element")
        self.root = root

        # Extract document dimensions
        self.width = parse_length(root.get("width"))
        self.height = parse_length(root.get("height"))

        # Extract viewBox if available
        viewbox = parse_numbers(root.get("viewBox"))
        if len(viewbox) == 4:
            self.viewbox = tuple(viewbox)
        elif root.get("viewBox"):
            logger.warning(f"Ignoring malformed viewBox: {root.get('viewBox')}")

        self._ids = {el.get("id"): el for el in root.iter() if isinstance(el.tag, str) and el.get("id")}

        origin = Transform.identity()
        if self.viewbox:
            origin = Transform.translation(-self.viewbox[0], -self.viewbox[1])

        self._walk_children(root, origin.compose(parse_transform(root.get("transform"))), 0)
        logger.info(f"Extracted {len(self.segments)} segments from {self.element_count} "
                    f"elements in {self.name}")

    def _walk_children(self, element, transform: Transform, depth: int):
        for child in element:
            self._walk(child, transform, depth)

    def _walk(self, element, parent_transform: Transform, depth: int):
        """Process one element and its subtree."""
        tag = _local_name(element)
        if tag is None or tag in NON_RENDERED_TAGS:
            return

        transform = parent_transform.compose(parse_transform(element.get("transform")))

        if tag == "use":
            self._expand_use(element, transform, depth)
        elif tag in CONTAINER_TAGS:
            if tag == "svg":
                transform = transform.compose(self._viewport_transform(element))
            self._walk_children(element, transform, depth)
        elif tag == "path":
            commands = PathProcessor.parse_path(element.get("d", ""))
            self._add(PathProcessor.interpret(commands, transform, self.sample_step))
        elif tag in SHAPE_TAGS:
            self._add(normalize_shape(element, transform, self.sample_step))
        else:
            logger.debug(f"Ignoring unsupported element <{tag}>")

    def _viewport_transform(self, element) -> Transform:
        """Offset and viewBox mapping of a nested <svg> element.

        The viewBox is fitted into the viewport the way the default
        preserveAspectRatio (xMidYMid meet) does: uniform scale, centred.
        """
        x = parse_length(element.get("x"))
        y = parse_length(element.get("y"))
        offset = Transform.translation(x, y)

        viewbox = parse_numbers(element.get("viewBox"))
        if len(viewbox) != 4 or viewbox[2] <= 0 or viewbox[3] <= 0:
            return offset
        vx, vy, vw, vh = viewbox

        # Percentages are relative to the parent viewport; treat them as the viewBox size
        width_attr = element.get("width")
        height_attr = element.get("height")
        width = vw if width_attr is None or width_attr.strip().endswith("%") else parse_length(width_attr, vw)
        height = vh if height_attr is None or height_attr.strip().endswith("%") else parse_length(height_attr, vh)
        if width <= 0 or height <= 0:
            logger.warning(f"Ignoring viewBox of nested <svg> with empty viewport ({width} x {height})")
            return offset

        scale = min(width / vw, height / vh)
        tx = x + (width - vw * scale) / 2 - vx * scale
        ty = y + (height - vh * scale) / 2 - vy * scale
        return Transform.from_values(scale, 0, 0, scale, tx, ty)

    def _expand_use(self, element, transform: Transform, depth: int):
        """Draw the element referenced by a <use>, offset by its x/y."""
        href = element.get("href") or element.get(XLINK_HREF) or ""
        if not href.startswith("#"):
            logger.warning(f"Ignoring <use> with unsupported reference: {href!r}")
            return

        target = self._ids.get(href[1:])
        if target is None:
            logger.warning(f"Ignoring <use> with missing target: {href}")
            return

        if depth >= MAX_USE_DEPTH:
            logger.warning(f"Stopping <use> expansion of {href} at depth {depth}")
            return

        offset = Transform.translation(parse_length(element.get("x")), parse_length(element.get("y")))
        transform = transform.compose(offset)

        if _local_name(target) == "symbol":
            self._walk_children(target, transform, depth + 1)
        else:
            # Bypass the non-rendered check so targets inside <defs> still draw
            target_tag = _local_name(target)
            if target_tag in NON_RENDERED_TAGS:
                return
            self._walk(target, transform, depth + 1)

    def _add(self, segments: List[Segment]):
        self.element_count += 1
        self.segments.extend(self.flattener.process(segments))

    def get_segments(self) -> List[Segment]:
        """Get all segments from the document.

        Returns:
            List of Line and Arc segments in document coordinates
        """
        return self.segments


def parse_svg_text(svg_text: Union[str, bytes], name: str = "untitled",
                   flattener: Optional[CurveFlattener] = None,
                   sample_step: float = DEFAULT_SAMPLE_STEP) -> SVGDocument:
    """Parse SVG text and return the document object."""
    return SVGDocument(svg_text, name=name, flattener=flattener, sample_step=sample_step)


def parse_svg(file_path: Union[str, Path],
              flattener: Optional[CurveFlattener] = None,
              sample_step: float = DEFAULT_SAMPLE_STEP) -> SVGDocument:
    """Parse an SVG file and return the document object.

    Args:
        file_path: Path to SVG file
        flattener: Curve flattener (default settings if omitted)
        sample_step: Chord length for sampled ellipses and arcs

    Returns:
        SVGDocument object
    """
    file_path = Path(file_path)
    return SVGDocument(file_path.read_bytes(), name=file_path.name,
                       flattener=flattener, sample_step=sample_step)
