"""Command-line interface for svgplot."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from . import __version__
from .config import FLATTEN_STRATEGIES, Config, load_config
from .flatten import CurveFlattener
from .gcode import export_gcode
from .layout import Layout
from .svg import SVGParseError, parse_svg

# Set up logging
logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def convert_svg_to_gcode(svg_files: Union[str, Path, Sequence[Union[str, Path]]],
                         gcode_file: Union[str, Path],
                         config: Optional[Union[Config, Dict]] = None,
                         width: Optional[float] = None,
                         height: Optional[float] = None,
                         x: Optional[float] = None,
                         y: Optional[float] = None,
                         strategy: Optional[str] = None) -> bool:
    """Convert one or more SVG files into a single G-code program.

    Each file becomes one placed item. Unreadable files are skipped.

    Args:
        svg_files: SVG file path or list of paths
        gcode_file: Output G-code file path
        config: Config object or plain configuration dict (defaults if omitted)
        width: Item width in mm (height follows the aspect ratio)
        height: Item height in mm (width follows the aspect ratio)
        x: Item X offset from the bed centre in mm
        y: Item Y offset from the bed bottom in mm
        strategy: Curve strategy override ("arcs" or "lines")

    Returns:
        True if a G-code file was written, False otherwise
    """
    if isinstance(svg_files, (str, Path)):
        svg_files = [svg_files]

    if isinstance(config, Config):
        settings = config.config
    else:
        settings = config or Config().config

    flattener = CurveFlattener.from_config(settings)
    if strategy:
        flattener.strategy = strategy
    layout = Layout.from_config(settings)

    for svg_file in svg_files:
        svg_file = Path(svg_file)
        try:
            document = parse_svg(svg_file, flattener=flattener, sample_step=layout.sample_step)
        except (OSError, SVGParseError) as e:
            logger.error(f"Skipping {svg_file}: {e}")
            continue

        item = layout.import_document(document)
        if item is None:
            continue

        if width is not None:
            layout.set_width(item.id, width)
        if height is not None:
            layout.set_height(item.id, height)
        if x is not None or y is not None:
            layout.set_position(
                item.id,
                item.placement.pos_x if x is None else x,
                item.placement.pos_y if y is None else y,
            )

    if not layout.items:
        logger.error("No drawable content found in the input files")
        return False

    Path(gcode_file).parent.mkdir(parents=True, exist_ok=True)
    return export_gcode(layout, gcode_file, settings)


def parse_args(args=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Convert SVG files to G-code for a pen plotter or pick-and-place head."
    )
    parser.add_argument(
        "--input", "-i", required=True, type=Path, action="append",
        help="Input SVG file path (repeat for several files)",
    )
    parser.add_argument(
        "--output", "-o", required=True, type=Path, help="Output G-code file path"
    )
    parser.add_argument(
        "--config", "-c", type=Path, help="Configuration YAML file path"
    )
    parser.add_argument("--width", type=float, help="Item width in mm")
    parser.add_argument("--height", type=float, help="Item height in mm")
    parser.add_argument("--x", type=float, help="Item X position in mm (0 is the bed centre)")
    parser.add_argument("--y", type=float, help="Item Y position in mm (0 is the bed bottom)")
    parser.add_argument(
        "--strategy",
        choices=FLATTEN_STRATEGIES,
        help="Curve handling: fit arcs or flatten to lines (default: from config)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    return parser.parse_args(args)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )

    # Validate input files
    for svg_file in args.input:
        if not svg_file.exists():
            print(f"Error: Input file '{svg_file}' does not exist.", file=sys.stderr)
            return 1

    # Validate config file if provided
    if args.config and not args.config.exists():
        print(f"Error: Config file '{args.config}' does not exist.", file=sys.stderr)
        return 1

    config = load_config(args.config)
    if not config.validate():
        print("Error: Invalid configuration.", file=sys.stderr)
        return 1

    logger.info(f"Converting {len(args.input)} file(s) to {args.output}")
    if args.config:
        logger.info(f"Using config file: {args.config}")

    success = convert_svg_to_gcode(
        args.input,
        args.output,
        config,
        width=args.width,
        height=args.height,
        x=args.x,
        y=args.y,
        strategy=args.strategy,
    )
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
