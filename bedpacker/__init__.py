"""
Garden Bed Packer
Circle packing of plant footprints into garden beds with:
- Rectangle, pill (stadium) and circle bed shapes
- Two-level force-directed clustering by plant kind
- Companion / antagonist attraction and repulsion
- Priority-weighted demand shaping and space filling
"""

from .geometry import (
    Bed,
    is_circle_inside,
    clamp_to_bed,
    bed_center,
    max_inscribed_radius,
    distance,
    RECTANGLE,
    PILL,
    CIRCLE,
)

from .rng import SeededRandom, seeded_random

from .config import PackerConfig

from .models import (
    Plant,
    PlantGroup,
    Cluster,
    Placement,
    Violations,
    LayoutStats,
    LayoutResult,
    PackerState,
)

from .circle_packer import (
    Circle,
    CirclePacker,
    GreedyGroupPacker,
    candidate_points,
)

from .hierarchical import HierarchicalPacker, pack

from .garden import (
    GardenPacker,
    GardenResult,
    GardenStats,
    PlantRequest,
    pack_plants,
)

from .catalog import DEFAULT_CATALOG, PlantMeta, load_catalog

from .validate import (
    validate_layout,
    find_violations,
    print_validation_summary,
)

from .io_utils import (
    load_job,
    write_layout_csv,
    write_layout_json,
    print_layout_summary,
)

from .exceptions import (
    BedPackerError,
    ConfigurationError,
    PackerStateError,
    LayoutFileError,
)

__version__ = "1.0.0"
