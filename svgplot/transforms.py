"""Affine transform handling for svgplot.

SVG ``transform`` attributes are parsed into 3x3 homogeneous matrices and
composed from the document root down to each element. The resulting
``Transform`` maps local points, and whole segments, into document space.
"""

import logging
import math
import re
from typing import Optional

import numpy as np

from .geometry import (
    DEFAULT_SAMPLE_STEP,
    Arc,
    Curve,
    Line,
    Point,
    Segment,
    parse_numbers,
)

# Set up logging
logger = logging.getLogger(__name__)

TRANSFORM_RE = re.compile(r"(matrix|translate|scale|rotate|skewX|skewY)\s*\(([^)]*)\)")

# Relative tolerance used to decide whether a matrix keeps circles circular
SIMILARITY_TOLERANCE = 1e-3


class Transform:
    """A 2D affine transform stored as a 3x3 numpy matrix."""

    def __init__(self, matrix: Optional[np.ndarray] = None):
        """Initialize transform.

        Args:
            matrix: 3x3 matrix (identity if omitted)
        """
        if matrix is None:
            matrix = np.identity(3)
        self.matrix = np.asarray(matrix, dtype=float)

    @classmethod
    def identity(cls) -> "Transform":
        return cls()

    @classmethod
    def from_values(cls, a: float, b: float, c: float, d: float, e: float, f: float) -> "Transform":
        """Build from the SVG ``matrix(a, b, c, d, e, f)`` parameters."""
        return cls(np.array([
            [a, c, e],
            [b, d, f],
            [0, 0, 1],
        ]))

    @classmethod
    def translation(cls, tx: float, ty: float = 0.0) -> "Transform":
        return cls.from_values(1, 0, 0, 1, tx, ty)

    @classmethod
    def scaling(cls, sx: float, sy: Optional[float] = None) -> "Transform":
        return cls.from_values(sx, 0, 0, sx if sy is None else sy, 0, 0)

    @classmethod
    def rotation(cls, angle_deg: float, cx: float = 0.0, cy: float = 0.0) -> "Transform":
        angle_rad = np.radians(angle_deg)
        cos_a = np.cos(angle_rad)
        sin_a = np.sin(angle_rad)
        rotate = cls.from_values(cos_a, sin_a, -sin_a, cos_a, 0, 0)
        if cx == 0 and cy == 0:
            return rotate
        # Translate to origin, rotate, translate back
        return cls.translation(cx, cy).compose(rotate).compose(cls.translation(-cx, -cy))

    def compose(self, child: "Transform") -> "Transform":
        """Return ``self @ child``: apply ``child`` first, then ``self``."""
        return Transform(np.dot(self.matrix, child.matrix))

    def then(self, outer: "Transform") -> "Transform":
        """Return the transform that applies ``self`` first, then ``outer``."""
        return outer.compose(self)

    def determinant(self) -> float:
        return float(np.linalg.det(self.matrix[:2, :2]))

    def flips_orientation(self) -> bool:
        """True for mirroring transforms (negative determinant)."""
        return self.determinant() < 0

    def scale_factor(self) -> float:
        """Geometric mean scale (sqrt of |det|)."""
        return math.sqrt(abs(self.determinant()))

    def is_similarity(self, tolerance: float = SIMILARITY_TOLERANCE) -> bool:
        """True when the transform maps circles to circles.

        That holds when the two column vectors of the linear part are
        orthogonal and of equal length (rotation, uniform scale, mirror).
        """
        a, c = self.matrix[0, 0], self.matrix[0, 1]
        b, d = self.matrix[1, 0], self.matrix[1, 1]
        len1 = math.hypot(a, b)
        len2 = math.hypot(c, d)
        longest = max(len1, len2)
        if longest == 0 or min(len1, len2) == 0:
            return False
        if abs(len1 - len2) > tolerance * longest:
            return False
        return abs(a * c + b * d) <= tolerance * longest * longest

    def map_point(self, point) -> Point:
        """Transform a point.

        Args:
            point: Point or (x, y) pair

        Returns:
            Transformed point
        """
        # Create homogeneous coordinates
        vector = np.array([point[0], point[1], 1.0])
        transformed = np.dot(self.matrix, vector)
        return Point(float(transformed[0]), float(transformed[1]))

    def map_segment(self, segment: Segment, sample_step: float = DEFAULT_SAMPLE_STEP) -> Segment:
        """Transform a segment.

        Lines and Bezier curves map exactly through their points. Arcs stay
        arcs under similarity transforms; any other transform turns the
        circle into an ellipse, so the arc is sampled into a Line first.

        Args:
            segment: Segment in local coordinates
            sample_step: Maximum chord length in output units when sampling

        Returns:
            Segment in the transformed space
        """
        if isinstance(segment, Line):
            return segment.map_points(self.map_point)
        if isinstance(segment, Curve):
            return segment.map_points(self.map_point)
        if self.is_similarity():
            return segment.map_points(self.map_point, flip=self.flips_orientation())

        scale = self.scale_factor()
        local_step = sample_step / scale if scale > 0 else sample_step
        logger.debug("Sampling arc under non-uniform transform")
        return segment.sample(local_step).map_points(self.map_point)

    def __eq__(self, other) -> bool:
        return isinstance(other, Transform) and np.allclose(self.matrix, other.matrix)

    def __repr__(self) -> str:
        m = self.matrix
        return (f"Transform(a={m[0, 0]:g}, b={m[1, 0]:g}, c={m[0, 1]:g}, "
                f"d={m[1, 1]:g}, e={m[0, 2]:g}, f={m[1, 2]:g})")


def _single_transform(name: str, values: list) -> Optional[Transform]:
    """Build one transform function from its name and arguments."""
    if name == "matrix":
        if len(values) == 6:
            return Transform.from_values(*values)
        return None

    if not values:
        return None

    if name == "translate":
        tx = values[0]
        ty = values[1] if len(values) > 1 else 0
        return Transform.translation(tx, ty)

    if name == "scale":
        sx = values[0]
        sy = values[1] if len(values) > 1 else sx
        return Transform.scaling(sx, sy)

    if name == "rotate":
        if len(values) >= 3:
            # Rotation around point (cx, cy)
            return Transform.rotation(values[0], values[1], values[2])
        return Transform.rotation(values[0])

    if name == "skewX":
        return Transform.from_values(1, 0, math.tan(math.radians(values[0])), 1, 0, 0)

    if name == "skewY":
        return Transform.from_values(1, math.tan(math.radians(values[0])), 0, 1, 0, 0)

    return None


def parse_transform(transform_str: Optional[str]) -> Transform:
    """Parse an SVG transform attribute into a Transform.

    Transform lists are applied right to left, as in SVG. Malformed entries
    are skipped.

    Args:
        transform_str: SVG transform string, e.g. "translate(10) rotate(45)"

    Returns:
        Transform (identity when the string is empty or unusable)
    """
    result = Transform.identity()
    if not transform_str:
        return result

    for name, args in TRANSFORM_RE.findall(transform_str):
        values = parse_numbers(args)
        transform = _single_transform(name, values)
        if transform is None:
            logger.warning(f"Ignoring malformed transform: {name}({args})")
            continue
        result = result.compose(transform)

    return result
