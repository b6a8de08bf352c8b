"""
io_utils.py - File I/O utilities for the garden bed packer
Handles packing jobs (JSON in) and layouts (CSV / JSON out)
"""
import csv
import json
import os
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .exceptions import BedPackerError, LayoutFileError
from .garden import GardenResult, PlantRequest
from .geometry import Bed
from .models import Placement

CSV_HEADER = ("id", "kind", "variety", "x", "y", "size")


@dataclass
class PackingJob:
    bed: Bed
    requests: List[PlantRequest] = field(default_factory=list)
    sun_orientation: str = "South"
    seed: Optional[int] = None


def get_output_path(filename: str = "layout.csv") -> str:
    """Get output path ($BEDPACKER_OUTPUT_DIR or the working directory)."""
    output_dir = os.environ.get("BEDPACKER_OUTPUT_DIR")
    if output_dir and os.path.isdir(output_dir):
        return os.path.join(output_dir, filename)
    return filename


def parse_plant_spec(spec: str) -> PlantRequest:
    """
    Parse a KIND:SIZE[:COUNT[:PRIORITY]] command line plant spec.

    Example: Tomato:24:4:2 is four 24" tomatoes at priority 2.
    """
    parts = spec.split(":")
    if not 2 <= len(parts) <= 4 or not parts[0]:
        raise LayoutFileError(f"Invalid plant spec {spec!r}; expected KIND:SIZE[:COUNT[:PRIORITY]]")
    try:
        return PlantRequest(
            kind=parts[0],
            size=float(parts[1]),
            count=int(parts[2]) if len(parts) > 2 else 1,
            priority=float(parts[3]) if len(parts) > 3 else 1.0,
        )
    except ValueError as e:
        raise LayoutFileError(f"Invalid plant spec {spec!r}: {e}") from e


def load_job(path: str) -> PackingJob:
    """
    Load a packing job from JSON.

    Format:
    {"bed": {"width": 96, "height": 48, "shape": "pill", "name": "north bed"},
     "plants": [{"kind": "Tomato", "size": 24, "count": 4, "priority": 2}],
     "sun_orientation": "South", "seed": 7}
    """
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except OSError as e:
        raise LayoutFileError(f"Cannot read job file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise LayoutFileError(f"Job file {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("bed"), dict):
        raise LayoutFileError(f"Job file {path} needs a 'bed' object")
    plants = data.get("plants", [])
    if not isinstance(plants, list):
        raise LayoutFileError(f"Job file {path}: 'plants' must be a list")

    bed_data = data["bed"]
    try:
        bed = Bed(
            width=bed_data["width"],
            height=bed_data["height"],
            shape=bed_data.get("shape", "rectangle"),
            name=bed_data.get("name", os.path.splitext(os.path.basename(path))[0]),
        )
        requests = [PlantRequest.from_dict(p) for p in plants]
    except KeyError as e:
        raise LayoutFileError(f"Job file {path}: bed is missing {e.args[0]!r}") from e
    except (BedPackerError, AttributeError) as e:
        raise LayoutFileError(f"Job file {path}: {e}") from e

    seed = data.get("seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        raise LayoutFileError(f"Job file {path}: seed must be an integer, got {seed!r}")

    return PackingJob(
        bed=bed,
        requests=requests,
        sun_orientation=data.get("sun_orientation", "South"),
        seed=seed,
    )


def write_layout_csv(placements: Sequence[Placement], output_path: Optional[str] = None,
                     decimals: int = 2) -> str:
    """
    Write placements as CSV.

    Format:
    - Header: id,kind,variety,x,y,size
    - x, y, size in inches with 2 decimals
    """
    if output_path is None:
        output_path = get_output_path()

    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for p in placements:
            writer.writerow([
                p.id,
                p.kind,
                p.variety,
                f"{p.x:.{decimals}f}",
                f"{p.y:.{decimals}f}",
                f"{p.size:.{decimals}f}",
            ])
    return output_path


def write_layout_json(result: GardenResult, output_path: Optional[str] = None) -> str:
    """Write the full result (placements, clusters, stats, violations) as JSON."""
    if output_path is None:
        output_path = get_output_path("layout.json")
    with open(output_path, "w") as f:
        json.dump(result.to_dict(), f, indent=2)
    return output_path


def print_layout_summary(result: GardenResult, bed: Optional[Bed] = None):
    """Print layout summary."""
    stats = result.stats

    print("=" * 60)
    print("LAYOUT SUMMARY")
    print("=" * 60)
    if bed is not None:
        print(f"Bed: {bed.name} ({bed.width:g}\" x {bed.height:g}\" {bed.shape})")
    print(f"Placed: {stats.placed}/{stats.requested} ({stats.fill_rate * 100:.1f}%)")
    print(f"Packing density: {stats.packing_density:.1f}% "
          f"(before filling: {stats.density_before_fill:.1f}%)")
    if stats.filled:
        print(f"Added by space filling: {stats.filled}")
    print(f"Clusters: {stats.clusters}, iterations: {stats.iterations}, "
          f"converged: {'yes' if stats.converged else 'no'}")

    if stats.plant_type_counts:
        print("\nPlants by kind:")
        for entry in stats.plant_type_counts:
            print(f"  {entry['kind']:<16} {entry['actual']:4d} / {entry['requested']:<4d}"
                  f"  ({entry['ratio'] * 100:.1f}% of layout)")

    if result.failed:
        print(f"\nUnplaced plants: {len(result.failed)}")
    if result.violations.empty:
        print("\n✓ No bounds or collision violations")
    else:
        print(f"\n✗ {len(result.violations.bounds)} out of bounds, "
              f"{len(result.violations.collisions)} collision(s)")
    print("=" * 60)
