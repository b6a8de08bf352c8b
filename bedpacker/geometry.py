"""
geometry.py - Bed shapes and circle containment for the garden bed packer
Supports rectangle, stadium ("pill") and circle beds. All units are inches,
origin at the bed's top-left corner, y growing downwards.
"""
import math
from dataclasses import dataclass
from typing import Tuple

from .exceptions import ConfigurationError

RECTANGLE = "rectangle"
PILL = "pill"
CIRCLE = "circle"
SHAPES = (RECTANGLE, PILL, CIRCLE)

# Containment tolerance; clamp_to_bed output must always test inside
GEOMETRY_EPS = 1e-9


def _require_finite(name: str, value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be finite, got {value}")
    return value


@dataclass(frozen=True)
class Bed:
    width: float
    height: float
    shape: str = RECTANGLE
    name: str = "bed"

    def __post_init__(self):
        width = _require_finite("bed width", self.width)
        height = _require_finite("bed height", self.height)
        if width < 0 or height < 0:
            raise ConfigurationError(
                f"Bed dimensions must be non-negative, got {width}x{height}"
            )
        if self.shape not in SHAPES:
            raise ConfigurationError(
                f"Unknown bed shape {self.shape!r}; expected one of {', '.join(SHAPES)}"
            )
        object.__setattr__(self, "width", width)
        object.__setattr__(self, "height", height)

    @property
    def orientation(self) -> str:
        """Long axis of a pill bed."""
        return "horizontal" if self.width >= self.height else "vertical"

    @property
    def area(self) -> float:
        """True area of the bed shape."""
        short = min(self.width, self.height)
        if self.shape == CIRCLE:
            return math.pi * (short / 2) ** 2
        if self.shape == PILL:
            long = max(self.width, self.height)
            return (long - short) * short + math.pi * (short / 2) ** 2
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


def bed_center(bed: Bed) -> Tuple[float, float]:
    return bed.width / 2, bed.height / 2


def max_inscribed_radius(bed: Bed) -> float:
    """Largest circle radius the bed can hold, for every supported shape."""
    return min(bed.width, bed.height) / 2


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    return math.hypot(x2 - x1, y2 - y1)


def _inside_horizontal_pill(length: float, thickness: float,
                            x: float, y: float, r: float) -> bool:
    cap_r = thickness / 2
    left, right = cap_r, length - cap_r

    if left <= x <= right:
        return y - r >= -GEOMETRY_EPS and y + r <= thickness + GEOMETRY_EPS

    cx = left if x < left else right
    return math.hypot(x - cx, y - cap_r) + r <= cap_r + GEOMETRY_EPS


def _clamp_horizontal_pill(length: float, thickness: float,
                           x: float, y: float, r: float) -> Tuple[float, float]:
    cap_r = thickness / 2
    left, right = cap_r, length - cap_r

    if left <= x <= right:
        return x, min(max(y, r), thickness - r)

    cx = left if x < left else right
    return _project_radially(cx, cap_r, x, y, max(cap_r - r, 0.0))


def _project_radially(cx: float, cy: float, x: float, y: float,
                      max_dist: float) -> Tuple[float, float]:
    """Pull (x, y) onto the disk of radius max_dist around (cx, cy)."""
    dx, dy = x - cx, y - cy
    dist = math.hypot(dx, dy)
    if dist <= max_dist:
        return x, y
    scale = max_dist / dist
    return cx + dx * scale, cy + dy * scale


def is_circle_inside(bed: Bed, x: float, y: float, r: float) -> bool:
    """Check if the circle of radius r centred at (x, y) lies fully inside the bed."""
    if bed.shape == CIRCLE:
        cx, cy = bed_center(bed)
        return math.hypot(x - cx, y - cy) + r <= max_inscribed_radius(bed) + GEOMETRY_EPS

    if bed.shape == PILL:
        if bed.orientation == "horizontal":
            return _inside_horizontal_pill(bed.width, bed.height, x, y, r)
        # Vertical pill is the horizontal case with axes swapped
        return _inside_horizontal_pill(bed.height, bed.width, y, x, r)

    return (
        r - GEOMETRY_EPS <= x <= bed.width - r + GEOMETRY_EPS
        and r - GEOMETRY_EPS <= y <= bed.height - r + GEOMETRY_EPS
    )


def clamp_to_bed(bed: Bed, x: float, y: float, r: float) -> Tuple[float, float]:
    """
    Nearest position for which is_circle_inside holds.

    Inside points come back unchanged. A circle too large for the bed is
    parked at the bed centre, the best available compromise.
    """
    if is_circle_inside(bed, x, y, r):
        return x, y

    if r > max_inscribed_radius(bed):
        return bed_center(bed)

    if bed.shape == CIRCLE:
        cx, cy = bed_center(bed)
        return _project_radially(cx, cy, x, y, max(max_inscribed_radius(bed) - r, 0.0))

    if bed.shape == PILL:
        if bed.orientation == "horizontal":
            return _clamp_horizontal_pill(bed.width, bed.height, x, y, r)
        ny, nx = _clamp_horizontal_pill(bed.height, bed.width, y, x, r)
        return nx, ny

    return (
        min(max(x, r), bed.width - r),
        min(max(y, r), bed.height - r),
    )


def circle_area(r: float) -> float:
    return math.pi * r * r


def enclosing_radius(radii, efficiency: float = 1.0) -> float:
    """Radius of a disk holding the combined area of the given circles at a packing efficiency."""
    total = sum(circle_area(r) for r in radii)
    return math.sqrt(total / (math.pi * efficiency)) if total > 0 else 0.0
