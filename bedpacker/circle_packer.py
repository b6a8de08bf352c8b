"""
circle_packer.py - Single-level greedy circle packing

Key pieces:
1. CollisionIndex - STRtree-backed clearance queries over accepted circles
2. CirclePacker - try_place with optional radius shrinking (bisection)
3. candidate_points - spiral / grid / random search order around a target
4. GreedyGroupPacker - non-hierarchical engine for whole plant groups
"""
import logging
import math
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from shapely import STRtree
from shapely.geometry import Point, box

from .config import PackerConfig
from .exceptions import ConfigurationError, PackerStateError
from .geometry import (
    Bed, circle_area, clamp_to_bed, distance, enclosing_radius, is_circle_inside,
    max_inscribed_radius,
)
from .models import (
    Cluster, LayoutResult, LayoutStats, PackerState, Placement, PlantGroup,
)
from .rng import SeededRandom, seeded_random
from .validate import check_plant_groups, find_violations, packing_density

log = logging.getLogger(__name__)

GOLDEN_ANGLE = 2.399963  # ~137.5 degrees
REBUILD_BATCH = 32
BISECTION_STEPS = 24


@dataclass(frozen=True)
class Circle:
    x: float
    y: float
    radius: float

    @property
    def area(self) -> float:
        return circle_area(self.radius)


@dataclass(frozen=True)
class PackStats:
    item_count: int
    packing_density: float  # percent of bed area


class CollisionIndex:
    """
    Fast circle collision detection using STRtree over circle centres.

    The tree is immutable, so recent additions sit in a short pending list
    that is scanned linearly until the next rebuild.
    """

    def __init__(self):
        self.circles: List[Circle] = []
        self.tree: Optional[STRtree] = None
        self._indexed = 0
        self._max_radius = 0.0

    def __len__(self) -> int:
        return len(self.circles)

    def add(self, circle: Circle):
        self.circles.append(circle)
        self._max_radius = max(self._max_radius, circle.radius)
        if len(self.circles) - self._indexed >= REBUILD_BATCH:
            self.rebuild()

    def rebuild(self):
        if self._indexed == len(self.circles):
            return
        self.tree = STRtree([Point(c.x, c.y) for c in self.circles])
        self._indexed = len(self.circles)

    def candidates(self, x: float, y: float, reach: float) -> List[int]:
        """Indices of circles whose centre may lie within reach of (x, y)."""
        found = []
        if self._indexed:
            hits = self.tree.query(box(x - reach, y - reach, x + reach, y + reach))
            found.extend(int(i) for i in hits)
        found.extend(range(self._indexed, len(self.circles)))
        return sorted(found)

    def collides(self, x: float, y: float, r: float, clearance: float,
                 exclude: int = -1) -> bool:
        if not self.circles:
            return False
        reach = r + self._max_radius + clearance
        for idx in self.candidates(x, y, reach):
            if idx == exclude:
                continue
            other = self.circles[idx]
            if distance(x, y, other.x, other.y) < r + other.radius + clearance:
                return True
        return False


def _check_query(x: float, y: float, min_radius: float, max_radius: float):
    for name, value in (("x", x), ("y", y), ("min_radius", min_radius), ("max_radius", max_radius)):
        if not math.isfinite(value):
            raise ConfigurationError(f"{name} must be finite, got {value}")
    if min_radius < 0 or max_radius < 0:
        raise ConfigurationError(f"Radius must be non-negative, got [{min_radius}, {max_radius}]")
    if min_radius > max_radius:
        raise ConfigurationError(f"min_radius {min_radius} exceeds max_radius {max_radius}")


def candidate_points(
    bed: Bed,
    cx: float,
    cy: float,
    radius: float,
    rng: SeededRandom,
    spiral_attempts: int = 400,
    grid_size: int = 16,
    random_attempts: int = 144,
    spiral_step: Optional[float] = None,
) -> Iterator[Tuple[float, float]]:
    """
    Search order for a free spot near (cx, cy).

    Golden-angle spiral outwards from the target, then a uniform grid over
    the bed (nearest cells first), then random points from rng.
    """
    step = spiral_step if spiral_step is not None else max(radius * 0.35, 0.5)
    for attempt in range(spiral_attempts):
        angle = attempt * GOLDEN_ANGLE
        dist = math.sqrt(attempt) * step
        yield cx + math.cos(angle) * dist, cy + math.sin(angle) * dist

    cells = [
        ((gx + 0.5) / grid_size * bed.width, (gy + 0.5) / grid_size * bed.height)
        for gy in range(grid_size)
        for gx in range(grid_size)
    ]
    cells.sort(key=lambda p: math.hypot(p[0] - cx, p[1] - cy))
    yield from cells

    hi_x = max(radius, bed.width - radius)
    hi_y = max(radius, bed.height - radius)
    for _ in range(random_attempts):
        yield rng.uniform(radius, hi_x), rng.uniform(radius, hi_y)


class CirclePacker:
    """Greedy randomized placement of circles inside a bed, without hierarchy."""

    def __init__(self, bed: Bed, min_clearance: float = 0.5):
        if not math.isfinite(min_clearance) or min_clearance < 0:
            raise ConfigurationError(f"min_clearance must be non-negative, got {min_clearance}")
        self.bed = bed
        self.min_clearance = min_clearance
        self.index = CollisionIndex()

    @property
    def circles(self) -> List[Circle]:
        return list(self.index.circles)

    def fits(self, x: float, y: float, r: float, clearance: Optional[float] = None) -> bool:
        clearance = self.min_clearance if clearance is None else clearance
        return is_circle_inside(self.bed, x, y, r) and not self.index.collides(x, y, r, clearance)

    def add(self, circle: Circle) -> Circle:
        """Accept a circle without checks (seeding an existing layout)."""
        self.index.add(circle)
        return circle

    def try_place(
        self,
        x: float,
        y: float,
        min_radius: float,
        max_radius: float,
        allow_shrink: bool = True,
    ) -> Optional[Circle]:
        """
        Place the largest circle in [min_radius, max_radius] centred at (x, y).

        Returns None, leaving the packer untouched, when nothing fits.
        """
        _check_query(x, y, min_radius, max_radius)

        if self.fits(x, y, max_radius):
            return self.add(Circle(x, y, max_radius))
        if not allow_shrink or min_radius == max_radius:
            return None
        if not self.fits(x, y, min_radius):
            return None

        # Containment and clearance are both monotone in r
        lo, hi = min_radius, max_radius
        for _ in range(BISECTION_STEPS):
            mid = (lo + hi) / 2
            if self.fits(x, y, mid):
                lo = mid
            else:
                hi = mid
        return self.add(Circle(x, y, lo))

    def place_random(
        self,
        rng: SeededRandom,
        min_radius: float,
        max_radius: float,
        allow_shrink: bool = True,
        attempts: int = 100,
    ) -> Optional[Circle]:
        """try_place at random points until one succeeds or the retry budget runs out."""
        for _ in range(attempts):
            x = rng.uniform(0, self.bed.width)
            y = rng.uniform(0, self.bed.height)
            circle = self.try_place(x, y, min_radius, max_radius, allow_shrink)
            if circle is not None:
                return circle
        return None

    def find_spot(
        self,
        radius: float,
        cx: float,
        cy: float,
        rng: SeededRandom,
        config: Optional[PackerConfig] = None,
        clearance: Optional[float] = None,
    ) -> Optional[Tuple[float, float]]:
        """First free position for a circle of the given radius, searching outwards from (cx, cy)."""
        config = config or PackerConfig()
        if radius > max_inscribed_radius(self.bed):
            return None
        for x, y in candidate_points(
            self.bed, cx, cy, radius, rng,
            spiral_attempts=config.spiral_attempts,
            grid_size=config.grid_size,
            random_attempts=config.random_attempts,
        ):
            if self.fits(x, y, radius, clearance):
                return x, y
        return None

    def stats(self) -> PackStats:
        return PackStats(
            item_count=len(self.index),
            packing_density=packing_density(self.bed, (c.radius for c in self.index.circles)),
        )


class GreedyGroupPacker:
    """
    Single-level engine with the same pack(groups) contract as the
    hierarchical packer.

    Each kind gets one anchor drawn from the generator; its plants are then
    placed greedily (priority first, large first) at the nearest free spot.
    """

    def __init__(self, bed: Bed, config: Optional[PackerConfig] = None,
                 rng: Optional[SeededRandom] = None):
        self.bed = bed
        self.config = config or PackerConfig()
        self.rng = rng or seeded_random(self.config.seed)
        self.state = PackerState.INITIALIZED

    def pack(self, groups: Sequence[PlantGroup]) -> LayoutResult:
        if self.state is not PackerState.INITIALIZED:
            raise PackerStateError("GreedyGroupPacker.pack() is single-shot; create a new packer")
        check_plant_groups(groups)

        groups = [g for g in groups if g.plants]
        requested = sum(len(g.plants) for g in groups)
        log.debug("Greedy packing of %d plants in %d groups", requested, len(groups))

        packer = CirclePacker(self.bed, self.config.min_spacing)
        limit = max_inscribed_radius(self.bed)
        clusters: List[Cluster] = []
        placements: List[Placement] = []
        failed: List[str] = []

        for index, group in enumerate(groups):
            anchor_r = min(enclosing_radius([p.radius for p in group.plants],
                                            self.config.packing_efficiency), limit)
            ax, ay = clamp_to_bed(
                self.bed,
                self.rng.uniform(0, self.bed.width),
                self.rng.uniform(0, self.bed.height),
                anchor_r,
            )
            cluster_id = f"cluster_{index}"
            members = sorted(group.plants, key=lambda p: (-p.priority, -p.radius))
            smallest_failed = math.inf
            placed_ids = []

            for plant in members:
                if plant.radius <= 0 or plant.radius > limit or plant.radius >= smallest_failed:
                    failed.append(plant.id)
                    continue
                spot = packer.find_spot(plant.radius, ax, ay, self.rng, self.config)
                if spot is None:
                    smallest_failed = plant.radius
                    failed.append(plant.id)
                    continue
                packer.add(Circle(spot[0], spot[1], plant.radius))
                placed_ids.append(plant.id)
                placements.append(Placement(
                    id=plant.id,
                    kind=group.kind,
                    variety=plant.variety,
                    x=spot[0],
                    y=spot[1],
                    size=plant.size,
                    priority=plant.priority,
                    cluster_id=cluster_id,
                ))

            clusters.append(Cluster(
                id=cluster_id, kind=group.kind, x=ax, y=ay,
                radius=anchor_r, member_ids=tuple(placed_ids),
            ))

        # Greedy placement has no relaxation to converge
        self.state = PackerState.CONVERGED

        if failed:
            log.info("Greedy packing placed %d/%d plants", len(placements), requested)

        packed_area = sum(circle_area(p.radius) for p in placements)
        stats = LayoutStats(
            placed=len(placements),
            requested=requested,
            converged=True,
            packing_density=packing_density(self.bed, (p.radius for p in placements)),
            clusters=len(clusters),
            total_area=self.bed.area,
            packed_area=packed_area,
        )
        return LayoutResult(
            placements=placements,
            clusters=clusters,
            violations=find_violations(
                self.bed, placements, self.config.min_spacing, self.config.collision_tolerance
            ),
            stats=stats,
            failed=failed,
            state=self.state,
        )
