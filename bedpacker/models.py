"""
models.py - Data model shared by the packing engines and the garden façade
"""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class PackerState(Enum):
    INITIALIZED = "initialized"
    CLUSTERS_FORMED = "clusters_formed"
    PLANTS_PACKED = "plants_packed"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"


@dataclass(frozen=True)
class Plant:
    id: str
    kind: str
    radius: float
    priority: float = 1.0
    variety: str = ""

    @property
    def size(self) -> float:
        return self.radius * 2


@dataclass
class PlantGroup:
    """All requested instances of one kind, plus its (symmetric) relations."""
    kind: str
    plants: List[Plant] = field(default_factory=list)
    companions: FrozenSet[str] = frozenset()
    antagonists: FrozenSet[str] = frozenset()

    def __post_init__(self):
        self.companions = frozenset(self.companions)
        self.antagonists = frozenset(self.antagonists)


@dataclass
class Cluster:
    """Level-1 meta-circle for one kind; members referenced by id."""
    id: str
    kind: str
    x: float
    y: float
    radius: float
    member_ids: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["member_ids"] = list(self.member_ids)
        return data


@dataclass
class Placement:
    id: str
    kind: str
    x: float
    y: float
    size: float
    priority: float = 1.0
    variety: str = ""
    cluster_id: Optional[str] = None
    spacing_analysis: str = ""
    placement_reasoning: str = ""
    companion_insights: str = ""

    @property
    def radius(self) -> float:
        return self.size / 2

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Violations:
    bounds: List[Dict] = field(default_factory=list)
    collisions: List[Dict] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.bounds and not self.collisions

    def to_dict(self) -> Dict:
        return {"bounds": list(self.bounds), "collisions": list(self.collisions)}


@dataclass
class LayoutStats:
    placed: int = 0
    requested: int = 0
    iterations: int = 0
    plant_iterations: int = 0
    converged: bool = True
    packing_density: float = 0.0    # percent of bed area
    clusters: int = 0
    total_area: float = 0.0
    packed_area: float = 0.0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class LayoutResult:
    """What an engine returns from pack(groups)."""
    placements: List[Placement] = field(default_factory=list)
    clusters: List[Cluster] = field(default_factory=list)
    violations: Violations = field(default_factory=Violations)
    stats: LayoutStats = field(default_factory=LayoutStats)
    failed: List[str] = field(default_factory=list)
    state: PackerState = PackerState.INITIALIZED

    def to_dict(self) -> Dict:
        return {
            "placements": [p.to_dict() for p in self.placements],
            "clusters": [c.to_dict() for c in self.clusters],
            "violations": self.violations.to_dict(),
            "stats": self.stats.to_dict(),
            "failed": list(self.failed),
            "state": self.state.value,
        }
