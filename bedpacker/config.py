"""
config.py - Tunable coefficients for the garden bed packer
"""
import math
from dataclasses import dataclass, fields, replace

from .exceptions import ConfigurationError

ENGINES = ("hierarchical", "single")


@dataclass(frozen=True)
class PackerConfig:
    # Force coefficients (0-1 unless noted)
    intra_group_attraction: float = 0.3     # companion pull / inward pull to centroid
    inter_group_repulsion: float = 0.2      # cluster overlap push
    collision_strength: float = 0.8         # plant overlap push
    boundary_force: float = 0.5             # push back into the cluster disk
    damping: float = 0.85                   # velocity kept per step

    # Spacing (inches)
    cluster_padding: float = 2.0
    min_spacing: float = 0.5                # clearance between plant circles
    collision_tolerance: float = 0.1        # near-touch accepted as non-colliding

    # Simulation limits
    max_iterations: int = 500
    convergence_threshold: float = 0.01     # max displacement per step (inches)
    resolve_passes: int = 100
    lloyd_iterations: int = 2
    lloyd_neighbour_radius: float = 30.0
    lloyd_step: float = 0.15

    # Cluster sizing: cluster area = plant area / efficiency
    packing_efficiency: float = 0.65

    # Search budgets
    placement_attempts: int = 800
    spiral_attempts: int = 400
    grid_size: int = 16

    # Façade policy
    space_filling: bool = True
    fill_target_fraction: float = 0.7       # target plants-per-area as area fraction
    fill_max_rounds: int = 30

    engine: str = "hierarchical"
    seed: int = 42

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                if not math.isfinite(value):
                    raise ConfigurationError(f"{f.name} must be finite, got {value}")
                if value < 0:
                    raise ConfigurationError(f"{f.name} must be non-negative, got {value}")

        for name in ("damping", "packing_efficiency", "fill_target_fraction", "lloyd_step"):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise ConfigurationError(f"{name} must be in (0, 1], got {value}")
        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be at least 1")
        if self.grid_size < 1:
            raise ConfigurationError("grid_size must be at least 1")
        if self.engine not in ENGINES:
            raise ConfigurationError(
                f"Unknown engine {self.engine!r}; expected one of {', '.join(ENGINES)}"
            )
        if not isinstance(self.seed, int) or isinstance(self.seed, bool):
            raise ConfigurationError(f"seed must be an integer, got {self.seed!r}")

    def with_overrides(self, **overrides) -> "PackerConfig":
        """Copy with some fields replaced (validated again)."""
        return replace(self, **overrides)

    @property
    def random_attempts(self) -> int:
        """Random candidates left in the search budget after the spiral and the grid."""
        return max(self.placement_attempts - self.spiral_attempts - self.grid_size ** 2, 0)

    @classmethod
    def quick_mode(cls, **overrides):
        """Fast mode for previews and tests."""
        params = dict(
            max_iterations=150,
            resolve_passes=40,
            lloyd_iterations=1,
            placement_attempts=300,
            spiral_attempts=150,
            grid_size=10,
            fill_max_rounds=15,
        )
        params.update(overrides)
        return cls(**params)

    @classmethod
    def standard_mode(cls, **overrides):
        """Standard mode - good balance."""
        return cls(**overrides)

    @classmethod
    def dense_mode(cls, **overrides):
        """Tighter packing for final layouts."""
        params = dict(
            collision_strength=0.95,
            max_iterations=1500,
            convergence_threshold=0.005,
            resolve_passes=200,
            lloyd_iterations=3,
            placement_attempts=1600,
            spiral_attempts=800,
            grid_size=24,
            fill_max_rounds=60,
            packing_efficiency=0.72,
        )
        params.update(overrides)
        return cls(**params)

    @classmethod
    def from_mode(cls, mode: str, **overrides):
        if mode == "quick":
            return cls.quick_mode(**overrides)
        if mode == "dense":
            return cls.dense_mode(**overrides)
        if mode == "standard":
            return cls.standard_mode(**overrides)
        raise ConfigurationError(f"Unknown mode {mode!r}; expected quick, standard or dense")
