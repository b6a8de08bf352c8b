"""
catalog.py - Plant metadata catalog (spacing, height, roots, relations)

The packer treats the catalog as opaque input: companions and antagonists
bias cluster forces, height and root depth only feed the placement notes.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

from .exceptions import LayoutFileError

log = logging.getLogger(__name__)

CATALOG_ENV = "BEDPACKER_CATALOG"
ROOT_DEPTHS = ("shallow", "medium", "deep")
DEFAULT_HEIGHT = 18.0


@dataclass(frozen=True)
class PlantMeta:
    spacing: float                  # recommended footprint diameter (inches)
    height: float = DEFAULT_HEIGHT  # mature height (inches)
    root: str = "medium"
    habit: str = "upright"
    companions: Tuple[str, ...] = field(default_factory=tuple)
    antagonists: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Mapping) -> "PlantMeta":
        return cls(
            spacing=float(data.get("spacing", 12)),
            height=float(data.get("height", DEFAULT_HEIGHT)),
            root=str(data.get("root", "medium")),
            habit=str(data.get("habit", "upright")),
            companions=tuple(data.get("companions", ())),
            antagonists=tuple(data.get("antagonists", ())),
        )

    def to_dict(self) -> Dict:
        return {
            "spacing": self.spacing,
            "height": self.height,
            "root": self.root,
            "habit": self.habit,
            "companions": list(self.companions),
            "antagonists": list(self.antagonists),
        }


def _meta(spacing, height, root, habit, companions=(), antagonists=()) -> PlantMeta:
    return PlantMeta(spacing, height, root, habit, tuple(companions), tuple(antagonists))


DEFAULT_CATALOG: Mapping[str, PlantMeta] = MappingProxyType({
    "Tomato": _meta(24, 60, "deep", "vining",
                    ["Basil", "Marigold", "Carrot", "Onion"], ["Fennel", "Corn"]),
    "Basil": _meta(10, 18, "shallow", "bushy",
                   ["Tomato", "Pepper", "Oregano"], ["Sage"]),
    "Marigold": _meta(10, 12, "shallow", "bushy",
                      ["Tomato", "Pepper", "Squash", "Bean"]),
    "Fennel": _meta(12, 48, "deep", "upright", [],
                    ["Tomato", "Bean", "Pepper"]),
    "Pepper": _meta(18, 30, "medium", "bushy",
                    ["Basil", "Onion", "Marigold"], ["Fennel", "Bean"]),
    "Lettuce": _meta(8, 8, "shallow", "rosette",
                     ["Carrot", "Onion", "Cucumber"]),
    "Carrot": _meta(3, 12, "deep", "upright",
                    ["Tomato", "Lettuce", "Onion"]),
    "Onion": _meta(4, 18, "shallow", "upright",
                   ["Carrot", "Lettuce", "Tomato", "Pepper"], ["Bean"]),
    "Bean": _meta(6, 24, "medium", "bushy",
                  ["Corn", "Squash", "Cucumber", "Marigold"], ["Onion", "Fennel", "Pepper"]),
    "Corn": _meta(12, 84, "deep", "upright",
                  ["Bean", "Squash", "Cucumber"], ["Tomato"]),
    "Squash": _meta(36, 24, "medium", "vining",
                    ["Corn", "Bean", "Marigold"]),
    "Cucumber": _meta(18, 12, "shallow", "vining",
                      ["Bean", "Corn", "Lettuce"], ["Sage"]),
    "Oregano": _meta(12, 12, "shallow", "spreading", ["Basil", "Pepper"]),
    "Thyme": _meta(9, 8, "shallow", "spreading", ["Tomato", "Oregano"]),
    "Sage": _meta(18, 24, "medium", "bushy", [], ["Basil", "Cucumber"]),
})


def symmetric_relations(catalog: Mapping[str, PlantMeta],
                        kind: str) -> Tuple[FrozenSet[str], FrozenSet[str]]:
    """Companions and antagonists of kind, counting entries that name it from the other side."""
    meta = catalog.get(kind)
    companions = set(meta.companions) if meta else set()
    antagonists = set(meta.antagonists) if meta else set()
    for other, other_meta in catalog.items():
        if kind in other_meta.companions:
            companions.add(other)
        if kind in other_meta.antagonists:
            antagonists.add(other)
    companions.discard(kind)
    antagonists.discard(kind)
    return frozenset(companions), frozenset(antagonists)


def parse_catalog(data: Mapping) -> Dict[str, PlantMeta]:
    if not isinstance(data, Mapping):
        raise LayoutFileError("Plant catalog must be a JSON object keyed by plant kind")
    parsed = {}
    for kind, entry in data.items():
        if not isinstance(entry, Mapping):
            raise LayoutFileError(f"Catalog entry for {kind!r} must be an object")
        try:
            parsed[str(kind)] = PlantMeta.from_dict(entry)
        except (TypeError, ValueError) as e:
            raise LayoutFileError(f"Invalid catalog entry for {kind!r}: {e}") from e
        if parsed[str(kind)].root not in ROOT_DEPTHS:
            log.warning("Catalog entry %s has unknown root depth %r", kind, parsed[str(kind)].root)
    return parsed


def load_catalog(path: Optional[str] = None) -> Mapping[str, PlantMeta]:
    """
    Built-in catalog, with entries from a JSON file merged over it.

    The file comes from path, else from $BEDPACKER_CATALOG; with neither set
    the default catalog is returned as is.
    """
    path = path or os.environ.get(CATALOG_ENV)
    if not path:
        return DEFAULT_CATALOG

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except OSError as e:
        raise LayoutFileError(f"Cannot read plant catalog {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise LayoutFileError(f"Plant catalog {path} is not valid JSON: {e}") from e

    overrides = parse_catalog(data)
    merged = dict(DEFAULT_CATALOG)
    merged.update(overrides)
    log.info("Loaded %d catalog entries from %s", len(overrides), path)
    return MappingProxyType(merged)
