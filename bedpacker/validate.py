"""
validate.py - Validation utilities for garden bed layouts
"""
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
from scipy.spatial import cKDTree

from .exceptions import ConfigurationError
from .geometry import Bed, circle_area, is_circle_inside
from .models import Placement, PlantGroup, Violations


@dataclass
class ValidationResult:
    valid: bool
    n_placements: int
    bounds: List[Dict] = field(default_factory=list)
    collisions: List[Dict] = field(default_factory=list)
    packing_density: float = 0.0
    error_message: Optional[str] = None


def check_plant_groups(groups: Sequence[PlantGroup]) -> None:
    """Reject negative or non-finite radii and priorities before any simulation."""
    seen_ids = set()
    for group in groups:
        if not group.kind:
            raise ConfigurationError("Plant group has an empty kind")
        for plant in group.plants:
            if not math.isfinite(plant.radius) or plant.radius < 0:
                raise ConfigurationError(
                    f"Plant {plant.id} ({group.kind}) has invalid radius {plant.radius}"
                )
            if not math.isfinite(plant.priority) or plant.priority < 0:
                raise ConfigurationError(
                    f"Plant {plant.id} ({group.kind}) has invalid priority {plant.priority}"
                )
            if plant.id in seen_ids:
                raise ConfigurationError(f"Duplicate plant id {plant.id!r}")
            seen_ids.add(plant.id)


def packing_density(bed: Bed, radii: Iterable[float]) -> float:
    """Placed circle area as a percentage of the bed area."""
    if bed.area <= 0:
        return 0.0
    return sum(circle_area(r) for r in radii) / bed.area * 100.0


def find_violations(
    bed: Bed,
    placements: Sequence[Placement],
    min_spacing: float = 0.5,
    tolerance: float = 0.1,
) -> Violations:
    """Bounds and collision problems in a finished layout."""
    violations = Violations()
    if not placements:
        return violations

    for p in placements:
        if not is_circle_inside(bed, p.x, p.y, p.radius):
            violations.bounds.append({
                "id": p.id,
                "kind": p.kind,
                "position": (p.x, p.y),
                "radius": p.radius,
            })

    points = np.array([(p.x, p.y) for p in placements], dtype=float)
    radii = np.array([p.radius for p in placements], dtype=float)
    reach = 2 * float(radii.max()) + min_spacing
    tree = cKDTree(points)

    for i, j in sorted(tree.query_pairs(r=reach)):
        dist = float(np.hypot(*(points[j] - points[i])))
        min_dist = radii[i] + radii[j] + min_spacing
        if dist < min_dist - tolerance:
            violations.collisions.append({
                "pair": (placements[i].id, placements[j].id),
                "distance": round(dist, 3),
                "min_distance": round(float(min_dist), 3),
                "overlap": round(float(min_dist - dist), 3),
            })

    return violations


def validate_layout(
    bed: Bed,
    placements: Sequence[Placement],
    min_spacing: float = 0.5,
    tolerance: float = 0.1,
) -> ValidationResult:
    """Validate a single layout."""
    if not placements:
        return ValidationResult(valid=True, n_placements=0)

    violations = find_violations(bed, placements, min_spacing, tolerance)
    valid = violations.empty
    error_msg = None
    if not valid:
        errors = []
        if violations.collisions:
            errors.append(f"{len(violations.collisions)} collision(s)")
        if violations.bounds:
            errors.append(f"{len(violations.bounds)} out of bounds")
        error_msg = "; ".join(errors)

    return ValidationResult(
        valid=valid,
        n_placements=len(placements),
        bounds=violations.bounds,
        collisions=violations.collisions,
        packing_density=packing_density(bed, (p.radius for p in placements)),
        error_message=error_msg,
    )


def count_by_kind(placements: Iterable[Placement]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for p in placements:
        counts[p.kind] = counts.get(p.kind, 0) + 1
    return counts


def is_contiguous_by_kind(placements: Sequence[Placement]) -> bool:
    """True when every kind forms one unbroken run in output order."""
    finished = set()
    current = None
    for p in placements:
        if p.kind != current:
            if p.kind in finished:
                return False
            if current is not None:
                finished.add(current)
            current = p.kind
    return True


def print_validation_summary(bed: Bed, placements: Sequence[Placement],
                         min_spacing: float = 0.5, tolerance: float = 0.1):
    """Print bounds and collision check results."""
    result = validate_layout(bed, placements, min_spacing, tolerance)

    print("=" * 60)
    print("VALIDATION SUMMARY")
    print("=" * 60)
    print(f"Bed: {bed.name} ({bed.width:g}\" x {bed.height:g}\" {bed.shape})")
    print(f"Placements: {result.n_placements}")
    print(f"Packing density: {result.packing_density:.1f}%")
    print()

    counts = count_by_kind(placements)
    if counts:
        print("Plants by kind:")
        for kind, count in sorted(counts.items(), key=lambda kv: kv[1], reverse=True):
            share = count / result.n_placements * 100
            print(f"  {kind:<16} {count:4d}  ({share:.1f}%)")
        print()

    if result.valid:
        print("✓ No bounds or collision violations")
    else:
        print(f"✗ {result.error_message}")
        for v in result.bounds[:10]:
            print(f"  out of bounds: {v['kind']} #{v['id']} at "
                  f"({v['position'][0]:.1f}, {v['position'][1]:.1f}) r={v['radius']:.1f}")
        for c in result.collisions[:10]:
            print(f"  collision: {c['pair'][0]} / {c['pair'][1]} overlap {c['overlap']:.2f}\"")
    print("=" * 60)
