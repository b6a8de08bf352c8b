"""
garden.py - Garden packing façade

Turns plant requests into a finished bed layout:
1. Request checks and merging of duplicate kinds
2. Demand shaping - priority-weighted split of the usable bed area
3. Engine run (hierarchical or single-level, injectable)
4. Space filling - extra plants while density is below the target band
5. Horticultural notes per placement (spacing, sun, companions)
"""
import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from scipy.spatial import cKDTree

from .catalog import DEFAULT_CATALOG, DEFAULT_HEIGHT, PlantMeta, symmetric_relations
from .circle_packer import Circle, CirclePacker, GreedyGroupPacker
from .config import PackerConfig
from .exceptions import ConfigurationError
from .geometry import Bed, bed_center, distance, max_inscribed_radius
from .hierarchical import HierarchicalPacker
from .models import Cluster, LayoutResult, PackerState, Placement, Plant, PlantGroup, Violations
from .rng import SeededRandom, seeded_random
from .validate import count_by_kind, find_violations, packing_density

log = logging.getLogger(__name__)

SUN_ORIENTATIONS = ("North", "South", "East", "West")
# Tall plants go to the edge away from the sun so they shade nothing
TALL_PLANT_EDGE = {"North": "south", "South": "north", "East": "west", "West": "east"}

TALL_HEIGHT = 48.0
SHORT_HEIGHT = 12.0
COMPANION_REACH = 12.0
ANTAGONIST_REACH = 18.0
NEIGHBOURHOOD_FACTOR = 4.0


@dataclass
class PlantRequest:
    kind: str
    size: float                     # footprint diameter (inches)
    count: int = 1
    priority: float = 1.0
    variety: str = ""
    companions: Optional[Tuple[str, ...]] = None    # None: use the catalog
    antagonists: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_dict(cls, data: Mapping) -> "PlantRequest":
        try:
            companions = data.get("companions")
            antagonists = data.get("antagonists")
            return cls(
                kind=str(data["kind"]),
                size=float(data["size"]),
                count=int(data.get("count", 1)),
                priority=float(data.get("priority", 1.0)),
                variety=str(data.get("variety", "")),
                companions=tuple(companions) if companions is not None else None,
                antagonists=tuple(antagonists) if antagonists is not None else None,
            )
        except KeyError as e:
            raise ConfigurationError(f"Plant request is missing {e.args[0]!r}") from e
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid plant request {dict(data)!r}: {e}") from e

    @property
    def radius(self) -> float:
        return self.size / 2


@dataclass
class GardenStats:
    placed: int = 0
    requested: int = 0
    fill_rate: float = 1.0
    packing_density: float = 0.0        # percent of bed area
    density_before_fill: float = 0.0
    filled: int = 0
    iterations: int = 0
    converged: bool = True
    clusters: int = 0
    plant_type_counts: List[Dict] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class GardenResult:
    placements: List[Placement] = field(default_factory=list)
    clusters: List[Cluster] = field(default_factory=list)
    stats: GardenStats = field(default_factory=GardenStats)
    violations: Violations = field(default_factory=Violations)
    failed: List[str] = field(default_factory=list)
    state: PackerState = PackerState.INITIALIZED

    def to_dict(self) -> Dict:
        return {
            "placements": [p.to_dict() for p in self.placements],
            "clusters": [c.to_dict() for c in self.clusters],
            "stats": self.stats.to_dict(),
            "violations": self.violations.to_dict(),
            "failed": list(self.failed),
            "state": self.state.value,
        }


EngineFactory = Callable[[Bed, PackerConfig, SeededRandom], object]


def default_engine_factory(bed: Bed, config: PackerConfig, rng: SeededRandom):
    """Engine named by config.engine."""
    if config.engine == "single":
        return GreedyGroupPacker(bed, config, rng)
    return HierarchicalPacker(bed, config, rng)


def _check_request(request: PlantRequest):
    if not isinstance(request.kind, str) or not request.kind:
        raise ConfigurationError("Plant request has an empty kind")
    for name in ("size", "priority"):
        value = getattr(request, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ConfigurationError(f"{request.kind}: {name} must be a finite number, got {value!r}")
        if value < 0:
            raise ConfigurationError(f"{request.kind}: {name} must be non-negative, got {value}")
    if isinstance(request.count, bool) or not isinstance(request.count, int):
        raise ConfigurationError(f"{request.kind}: count must be an integer, got {request.count!r}")
    if request.count < 0:
        raise ConfigurationError(f"{request.kind}: count must be non-negative, got {request.count}")


def merge_requests(requests: Sequence) -> List[PlantRequest]:
    """Validate requests and merge duplicate kinds (counts add, highest priority wins)."""
    merged: Dict[str, PlantRequest] = {}
    for request in requests:
        if isinstance(request, Mapping):
            request = PlantRequest.from_dict(request)
        _check_request(request)

        existing = merged.get(request.kind)
        if existing is None:
            merged[request.kind] = PlantRequest(**asdict(request))
            continue
        if existing.size != request.size:
            log.warning("%s requested with sizes %g and %g; keeping %g",
                        request.kind, existing.size, request.size, existing.size)
        existing.count += request.count
        existing.priority = max(existing.priority, request.priority)
        if request.companions is not None:
            existing.companions = tuple(existing.companions or ()) + tuple(request.companions)
        if request.antagonists is not None:
            existing.antagonists = tuple(existing.antagonists or ()) + tuple(request.antagonists)
    return list(merged.values())


class GardenPacker:
    """
    Packs plant requests into one bed and annotates the placements.

    engine_factory(bed, config, rng) builds the geometric engine; it
    defaults to the engine named by config.engine.
    """

    def __init__(
        self,
        bed: Bed,
        config: Optional[PackerConfig] = None,
        catalog: Optional[Mapping[str, PlantMeta]] = None,
        sun_orientation: str = "South",
        engine_factory: Optional[EngineFactory] = None,
    ):
        if sun_orientation not in SUN_ORIENTATIONS:
            raise ConfigurationError(
                f"Unknown sun orientation {sun_orientation!r}; "
                f"expected one of {', '.join(SUN_ORIENTATIONS)}"
            )
        self.bed = bed
        self.config = config or PackerConfig()
        self.catalog = catalog if catalog is not None else DEFAULT_CATALOG
        self.sun_orientation = sun_orientation
        self.engine_factory = engine_factory or default_engine_factory
        self._next_id = 1

    def footprint(self, request: PlantRequest) -> float:
        """Area one plant claims, including half the spacing all round."""
        return math.pi * (request.radius + self.config.min_spacing / 2) ** 2

    def _priority_order(self, requests: Sequence[PlantRequest]) -> List[PlantRequest]:
        index = {r.kind: i for i, r in enumerate(requests)}
        return sorted(requests, key=lambda r: (-r.priority, -self.footprint(r), index[r.kind]))

    def allocate(self, requests: Sequence[PlantRequest]) -> Dict[str, int]:
        """
        Priority-weighted plant counts per kind.

        The usable area (bed area * packing_efficiency) is split among kinds
        with priority > 0 in proportion to priority; each share buys whole
        footprints up to the requested count. Budget a kind cannot use is
        handed on to kinds still short of their request, highest priority
        first.
        """
        allocation = {r.kind: 0 for r in requests}
        budget = self.bed.area * self.config.packing_efficiency
        pending = self._priority_order(
            [r for r in requests if r.priority > 0 and r.count > 0 and r.size > 0]
        )

        while pending and budget > 0:
            total_priority = sum(r.priority for r in pending)
            spent = 0.0
            for r in pending:
                fp = self.footprint(r)
                share = budget * r.priority / total_priority
                n = min(r.count - allocation[r.kind], int(share // fp))
                allocation[r.kind] += n
                spent += n * fp
            budget -= spent
            pending = [r for r in pending if allocation[r.kind] < r.count]

            if spent == 0:
                # Shares too small for a whole plant: hand out what is left in priority order
                for r in pending:
                    fp = self.footprint(r)
                    n = min(r.count - allocation[r.kind], int(budget // fp))
                    allocation[r.kind] += n
                    budget -= n * fp
                break

        log.debug("Allocation: %s", allocation)
        return allocation

    def _relations(self, request: PlantRequest):
        companions, antagonists = symmetric_relations(self.catalog, request.kind)
        if request.companions is not None:
            companions = frozenset(request.companions)
        if request.antagonists is not None:
            antagonists = frozenset(request.antagonists)
        return companions, antagonists

    def _new_id(self) -> str:
        plant_id = str(self._next_id)
        self._next_id += 1
        return plant_id

    def build_groups(self, requests: Sequence[PlantRequest],
                     allocation: Mapping[str, int]) -> List[PlantGroup]:
        groups = []
        for r in self._priority_order(requests):
            if allocation.get(r.kind, 0) <= 0:
                continue
            companions, antagonists = self._relations(r)
            plants = [
                Plant(id=self._new_id(), kind=r.kind, radius=r.radius,
                      priority=r.priority, variety=r.variety or r.kind)
                for _ in range(allocation[r.kind])
            ]
            groups.append(PlantGroup(r.kind, plants, companions, antagonists))
        return groups

    def pack_plants(self, requests: Sequence) -> GardenResult:
        """Pack the requested plants into the bed."""
        requests = merge_requests(requests)
        self._next_id = 1
        total_requested = sum(r.count for r in requests)
        log.info("Packing %d plants of %d kinds into %s (%gx%g %s)", total_requested,
                 len(requests), self.bed.name, self.bed.width, self.bed.height, self.bed.shape)

        allocation = self.allocate(requests)
        groups = self.build_groups(requests, allocation)

        rng = seeded_random(self.config.seed)
        engine = self.engine_factory(self.bed, self.config, rng)
        layout: LayoutResult = engine.pack(groups)
        density_before = layout.stats.packing_density

        placements = list(layout.placements)
        filled = 0
        if self.config.space_filling:
            placements, filled = self.fill_space(placements, layout.clusters, requests, rng)

        placements = self.enrich(placements, requests)

        violations = find_violations(
            self.bed, placements, self.config.min_spacing, self.config.collision_tolerance
        )
        stats = self._stats(placements, requests, layout, density_before, filled)
        log.info("Placed %d/%d plants (%.1f%% density, %d added by space filling)",
                 stats.placed, stats.requested, stats.packing_density, filled)
        for entry in stats.plant_type_counts:
            if entry["actual"] < entry["requested"]:
                log.warning("%s under-filled: %d/%d", entry["kind"], entry["actual"], entry["requested"])

        return GardenResult(
            placements=placements,
            clusters=list(layout.clusters),
            stats=stats,
            violations=violations,
            failed=list(layout.failed),
            state=layout.state,
        )

    def fill_target(self, requests: Sequence[PlantRequest]) -> float:
        """Plant count at which the bed counts as full."""
        active = [r for r in requests if r.priority > 0 and r.size > 0]
        if not active or self.bed.area <= 0:
            return 0.0
        total_priority = sum(r.priority for r in active)
        mean_fp = sum(r.priority * self.footprint(r) for r in active) / total_priority
        return self.bed.area * self.config.fill_target_fraction / mean_fp

    def fill_space(self, placements: List[Placement], clusters: Sequence[Cluster],
                   requests: Sequence[PlantRequest],
                   rng: SeededRandom) -> Tuple[List[Placement], int]:
        """
        Add plants around their cluster centroids when the layout is below the
        fill target, until nothing fits or fill_max_rounds is reached.

        New plants join the end of their kind's block so kinds stay contiguous.
        """
        target = self.fill_target(requests)
        if len(placements) >= target:
            return placements, 0

        limit = max_inscribed_radius(self.bed)
        index = {r.kind: i for i, r in enumerate(requests)}
        candidates = sorted(
            (r for r in requests if r.priority > 0 and 0 < r.radius <= limit),
            key=lambda r: (-self.footprint(r), -r.priority, index[r.kind]),
        )
        if not candidates:
            return placements, 0

        packer = CirclePacker(self.bed, self.config.min_spacing)
        for p in placements:
            packer.add(Circle(p.x, p.y, p.radius))

        blocks: Dict[str, List[Placement]] = {}
        for p in placements:
            blocks.setdefault(p.kind, []).append(p)
        centres = {c.kind: c for c in clusters}

        filled = 0
        rounds = 0
        while candidates and rounds < self.config.fill_max_rounds:
            rounds += 1
            remaining = []
            for r in candidates:
                cluster = centres.get(r.kind)
                cx, cy = (cluster.x, cluster.y) if cluster else bed_center(self.bed)
                spot = packer.find_spot(r.radius, cx, cy, rng, self.config)
                if spot is None:
                    # Space only shrinks, so this kind will not fit again
                    log.debug("Space filling: no room left for %s", r.kind)
                    continue
                packer.add(Circle(spot[0], spot[1], r.radius))
                blocks.setdefault(r.kind, []).append(Placement(
                    id=self._new_id(),
                    kind=r.kind,
                    variety=r.variety or r.kind,
                    x=spot[0],
                    y=spot[1],
                    size=r.size,
                    priority=r.priority,
                    cluster_id=cluster.id if cluster else None,
                ))
                filled += 1
                remaining.append(r)
            candidates = remaining

        log.debug("Space filling added %d plants in %d rounds (target %.1f)", filled, rounds, target)
        return [p for block in blocks.values() for p in block], filled

    def enrich(self, placements: List[Placement],
               requests: Sequence[PlantRequest]) -> List[Placement]:
        """Attach spacing, placement and companion notes to every placement."""
        if not placements:
            return placements
        relations = {r.kind: self._relations(r) for r in requests}
        points = [(p.x, p.y) for p in placements]
        tree = cKDTree(points)

        for i, p in enumerate(placements):
            companions, antagonists = relations.get(p.kind, (frozenset(), frozenset()))
            reach = max(p.radius * NEIGHBOURHOOD_FACTOR, COMPANION_REACH, ANTAGONIST_REACH)
            near = [
                (j, distance(p.x, p.y, placements[j].x, placements[j].y))
                for j in sorted(tree.query_ball_point(points[i], r=reach))
                if j != i
            ]
            p.spacing_analysis = self.spacing_analysis(p, [(placements[j], d) for j, d in near])
            p.placement_reasoning = self.placement_reasoning(p, self.catalog.get(p.kind))
            p.companion_insights = self.companion_insights(
                [(placements[j], d) for j, d in near], companions, antagonists
            )
        return placements

    @staticmethod
    def spacing_analysis(placement: Placement, near: Sequence[Tuple[Placement, float]]) -> str:
        kinds = list(dict.fromkeys(
            other.kind for other, d in near if d < placement.radius * NEIGHBOURHOOD_FACTOR
        ))
        if not kinds:
            return f'Isolated placement with {round(placement.size)}" canopy space.'
        if len(kinds) <= 2:
            return f"Adjacent to {' and '.join(kinds)}, maintaining proper spacing."
        more = len(kinds) - 2
        return f"Surrounded by {', '.join(kinds[:2])}, and {more} other type{'s' if more > 1 else ''}."

    def is_near_edge(self, placement: Placement, edge: str) -> bool:
        span = self.bed.height if edge in ("north", "south") else self.bed.width
        margin = max(placement.size, span * 0.25)
        if edge == "north":
            return placement.y < margin
        if edge == "south":
            return placement.y > self.bed.height - margin
        if edge == "east":
            return placement.x > self.bed.width - margin
        if edge == "west":
            return placement.x < margin
        return False

    def placement_reasoning(self, placement: Placement, meta: Optional[PlantMeta]) -> str:
        height = meta.height if meta else DEFAULT_HEIGHT
        tall = height >= TALL_HEIGHT
        reasons = []

        if tall:
            edge = TALL_PLANT_EDGE[self.sun_orientation]
            if self.is_near_edge(placement, edge):
                reasons.append(f"Tall plant placed on {edge} edge to avoid shading shorter plants")
            else:
                reasons.append(
                    f"Tall plant positioned with sun orientation in mind ({self.sun_orientation} exposure)"
                )
        elif height <= SHORT_HEIGHT:
            reasons.append("Low-growing plant suitable for intercropping")

        if meta and meta.root == "shallow":
            reasons.append("shallow roots allow underplanting")
        elif meta and meta.root == "deep":
            reasons.append("deep roots access lower soil layers")

        if placement.cluster_id and not tall:
            reasons.append(f"grouped with other {placement.kind} plants")

        if not reasons:
            reasons.append("Standard placement in available space")
        return "; ".join(reasons) + "."

    @staticmethod
    def companion_insights(near: Sequence[Tuple[Placement, float]],
                           companions, antagonists) -> str:
        if not companions and not antagonists:
            return "No specific companion requirements."

        insights = []
        near_companions = list(dict.fromkeys(
            other.kind for other, d in near if other.kind in companions and d < COMPANION_REACH
        ))
        if near_companions:
            insights.append(f"Benefits from proximity to {', '.join(near_companions)}")
        elif companions:
            insights.append(f"Compatible with {', '.join(sorted(companions)[:3])}")

        near_antagonists = list(dict.fromkeys(
            other.kind for other, d in near if other.kind in antagonists and d < ANTAGONIST_REACH
        ))
        if near_antagonists:
            insights.append(f"Warning: Near incompatible {', '.join(near_antagonists)}")
        return ". ".join(insights) + "."

    def _stats(self, placements: List[Placement], requests: Sequence[PlantRequest],
               layout: LayoutResult, density_before: float, filled: int) -> GardenStats:
        placed = len(placements)
        requested = sum(r.count for r in requests)
        actual = count_by_kind(placements)
        type_counts = [
            {
                "kind": r.kind,
                "requested": r.count,
                "actual": actual.get(r.kind, 0),
                "ratio": actual.get(r.kind, 0) / placed if placed else 0.0,
            }
            for r in requests
        ]
        return GardenStats(
            placed=placed,
            requested=requested,
            fill_rate=placed / requested if requested else 1.0,
            packing_density=packing_density(self.bed, (p.radius for p in placements)),
            density_before_fill=density_before,
            filled=filled,
            iterations=layout.stats.iterations,
            converged=layout.stats.converged,
            clusters=layout.stats.clusters,
            plant_type_counts=type_counts,
        )


def pack_plants(bed: Bed, requests: Sequence, config: Optional[PackerConfig] = None,
                **kwargs) -> GardenResult:
    """Pack plant requests into a bed with a fresh GardenPacker."""
    return GardenPacker(bed, config, **kwargs).pack_plants(requests)
