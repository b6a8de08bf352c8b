"""Tests for the garden packing façade: demand shaping, space filling, notes."""

import pytest

from bedpacker.catalog import DEFAULT_CATALOG
from bedpacker.circle_packer import GreedyGroupPacker
from bedpacker.config import PackerConfig
from bedpacker.exceptions import ConfigurationError
from bedpacker.garden import (
    GardenPacker, PlantRequest, merge_requests, pack_plants,
)
from bedpacker.geometry import Bed, is_circle_inside
from bedpacker.models import Placement
from bedpacker.validate import is_contiguous_by_kind


@pytest.fixture
def config():
    return PackerConfig.quick_mode()


class TestMergeRequests:

    def test_duplicate_kinds_merge(self):
        merged = merge_requests([
            PlantRequest("Tomato", 24, count=2, priority=1),
            PlantRequest("Basil", 10, count=3),
            PlantRequest("Tomato", 24, count=3, priority=4),
        ])
        assert [r.kind for r in merged] == ["Tomato", "Basil"]
        assert merged[0].count == 5
        assert merged[0].priority == 4

    def test_accepts_mappings(self):
        merged = merge_requests([{"kind": "Carrot", "size": 3, "count": 10}])
        assert merged[0] == PlantRequest("Carrot", 3.0, count=10)

    @pytest.mark.parametrize("request_", [
        PlantRequest("Tomato", -1),
        PlantRequest("Tomato", 10, count=-2),
        PlantRequest("Tomato", 10, priority=-1),
        PlantRequest("Tomato", float("nan")),
        PlantRequest("", 10),
    ])
    def test_invalid_requests_raise_error(self, request_):
        with pytest.raises(ConfigurationError):
            merge_requests([request_])

    def test_missing_field_raises_error(self):
        with pytest.raises(ConfigurationError, match="missing 'size'"):
            merge_requests([{"kind": "Tomato"}])


class TestAllocation:

    def test_small_request_fully_allocated(self, config):
        packer = GardenPacker(Bed(96, 48), config)
        allocation = packer.allocate([PlantRequest("Basil", 10, count=4)])
        assert allocation == {"Basil": 4}

    def test_budget_caps_count(self, config):
        packer = GardenPacker(Bed(48, 48), config)
        request = PlantRequest("A", 24, count=100)
        allocation = packer.allocate([request])
        budget = Bed(48, 48).area * config.packing_efficiency
        assert allocation["A"] == int(budget // packer.footprint(request))

    def test_priority_shapes_demand(self, config):
        packer = GardenPacker(Bed(48, 48), config)
        allocation = packer.allocate([
            PlantRequest("High", 6, count=200, priority=5),
            PlantRequest("Low", 6, count=200, priority=1),
        ])
        assert allocation["High"] > allocation["Low"] > 0

    def test_zero_priority_gets_nothing(self, config):
        packer = GardenPacker(Bed(96, 48), config)
        allocation = packer.allocate([
            PlantRequest("Tomato", 12, count=3),
            PlantRequest("Weed", 4, count=10, priority=0),
        ])
        assert allocation == {"Tomato": 3, "Weed": 0}

    def test_unused_budget_is_redistributed(self, config):
        packer = GardenPacker(Bed(96, 48), config)
        few = PlantRequest("Pepper", 6, count=1, priority=5)
        many = PlantRequest("Onion", 4, count=500, priority=1)
        allocation = packer.allocate([few, many])
        budget = packer.bed.area * config.packing_efficiency
        used = allocation["Pepper"] * packer.footprint(few) + allocation["Onion"] * packer.footprint(many)
        assert allocation["Pepper"] == 1
        # Less than one more onion footprint left over
        assert budget - used < packer.footprint(many)


class TestGardenPacker:

    def test_empty_request_list(self, config):
        result = pack_plants(Bed(48, 48), [], config)
        assert result.placements == []
        assert result.stats.placed == 0
        assert result.stats.requested == 0
        assert result.stats.fill_rate == 1.0

    def test_crowded_bed(self, config):
        bed = Bed(48, 48)
        result = pack_plants(bed, [PlantRequest("A", 24, count=100)], config)
        assert result.stats.placed < 25
        assert not result.violations.bounds

    @pytest.mark.parametrize("shape", ["rectangle", "pill", "circle"])
    def test_layout_invariants(self, shape, config):
        bed = Bed(96, 48, shape)
        result = pack_plants(bed, [
            PlantRequest("Tomato", 18, count=3, priority=2),
            PlantRequest("Basil", 8, count=6),
            PlantRequest("Marigold", 8, count=4),
        ], config)
        assert result.stats.placed > 0
        assert result.violations.empty
        assert is_contiguous_by_kind(result.placements)
        for p in result.placements:
            assert is_circle_inside(bed, p.x, p.y, p.radius)

    def test_deterministic(self, config):
        bed = Bed(100, 48, "pill")
        requests = [PlantRequest("Pepper", 12, count=4), PlantRequest("Onion", 4, count=12)]
        a = pack_plants(bed, requests, config)
        b = pack_plants(bed, requests, config)
        assert [(p.id, p.kind, p.x, p.y) for p in a.placements] == \
            [(p.id, p.kind, p.x, p.y) for p in b.placements]

    def test_reused_packer_repeats_layout(self, config):
        packer = GardenPacker(Bed(100, 48, "pill"), config)
        requests = [PlantRequest("Pepper", 12, count=4), PlantRequest("Onion", 4, count=12)]
        a = packer.pack_plants(requests)
        b = packer.pack_plants(requests)
        assert [(p.id, p.kind, p.x, p.y) for p in a.placements] == \
            [(p.id, p.kind, p.x, p.y) for p in b.placements]
        assert a.stats.filled == b.stats.filled

    def test_priority_monotonic_before_filling(self):
        config = PackerConfig.quick_mode(space_filling=False)
        result = pack_plants(Bed(48, 48), [
            PlantRequest("High", 8, count=60, priority=5),
            PlantRequest("Low", 8, count=60, priority=1),
        ], config)
        counts = {e["kind"]: e["actual"] for e in result.stats.plant_type_counts}
        assert counts["High"] >= counts["Low"]

    def test_space_filling_never_decreases_density(self, config):
        result = pack_plants(Bed(96, 48), [
            PlantRequest("Lettuce", 8, count=2),
            PlantRequest("Carrot", 3, count=2),
        ], config)
        assert result.stats.packing_density >= result.stats.density_before_fill
        assert result.stats.filled > 0
        assert result.stats.placed > result.stats.requested
        assert result.violations.empty
        assert is_contiguous_by_kind(result.placements)

    def test_space_filling_disabled(self):
        config = PackerConfig.quick_mode(space_filling=False)
        result = pack_plants(Bed(96, 48), [PlantRequest("Lettuce", 8, count=2)], config)
        assert result.stats.filled == 0
        assert result.stats.placed == 2
        assert result.stats.packing_density == pytest.approx(result.stats.density_before_fill)

    def test_stats_plant_type_counts(self):
        config = PackerConfig.quick_mode(space_filling=False)
        result = pack_plants(Bed(96, 48), [
            PlantRequest("Tomato", 18, count=2),
            PlantRequest("Basil", 8, count=2),
            PlantRequest("Weed", 4, count=5, priority=0),
        ], config)
        counts = {e["kind"]: e for e in result.stats.plant_type_counts}
        assert counts["Tomato"]["actual"] == 2
        assert counts["Tomato"]["ratio"] == pytest.approx(0.5)
        assert counts["Weed"]["actual"] == 0
        assert result.stats.requested == 9
        assert result.stats.fill_rate == pytest.approx(4 / 9)

    def test_unknown_sun_orientation(self):
        with pytest.raises(ConfigurationError, match="sun orientation"):
            GardenPacker(Bed(48, 48), sun_orientation="Up")

    def test_engine_factory_injection(self, config):
        built = []

        def factory(bed, cfg, rng):
            engine = GreedyGroupPacker(bed, cfg, rng)
            built.append(engine)
            return engine

        packer = GardenPacker(Bed(96, 48), config, engine_factory=factory)
        result = packer.pack_plants([PlantRequest("Bean", 6, count=4)])
        assert len(built) == 1
        assert result.stats.placed >= 4

    def test_single_engine_from_config(self):
        config = PackerConfig.quick_mode(engine="single", space_filling=False)
        result = pack_plants(Bed(96, 48), [PlantRequest("Bean", 6, count=4)], config)
        assert result.stats.placed == 4
        assert result.violations.empty

    def test_placements_are_annotated(self, config):
        result = pack_plants(Bed(96, 48), [
            PlantRequest("Tomato", 18, count=2),
            PlantRequest("Basil", 8, count=3),
        ], config)
        for p in result.placements:
            assert p.spacing_analysis
            assert p.placement_reasoning.endswith(".")
            assert p.companion_insights.endswith(".")


class TestAnnotations:

    def setup_method(self):
        self.packer = GardenPacker(Bed(96, 48), PackerConfig.quick_mode(), sun_orientation="South")

    def test_spacing_isolated(self):
        p = Placement("1", "Squash", 20, 20, 36)
        assert GardenPacker.spacing_analysis(p, []) == 'Isolated placement with 36" canopy space.'

    def test_spacing_adjacent(self):
        p = Placement("1", "Basil", 20, 20, 10)
        near = [(Placement("2", "Tomato", 30, 20, 18), 10.0), (Placement("3", "Basil", 20, 30, 10), 10.0)]
        assert GardenPacker.spacing_analysis(p, near) == \
            "Adjacent to Tomato and Basil, maintaining proper spacing."

    def test_spacing_surrounded(self):
        p = Placement("1", "Basil", 20, 20, 10)
        near = [(Placement(str(i), kind, 0, 0, 4), 5.0)
                for i, kind in enumerate(["Tomato", "Onion", "Carrot", "Bean"])]
        assert GardenPacker.spacing_analysis(p, near) == \
            "Surrounded by Tomato, Onion, and 2 other types."

    def test_tall_plant_on_north_edge(self):
        p = Placement("1", "Corn", 40, 6, 12, cluster_id="cluster_0")
        text = self.packer.placement_reasoning(p, DEFAULT_CATALOG["Corn"])
        assert text.startswith("Tall plant placed on north edge")
        assert "deep roots" in text
        assert "grouped with" not in text

    def test_tall_plant_away_from_edge(self):
        p = Placement("1", "Corn", 40, 40, 12)
        text = self.packer.placement_reasoning(p, DEFAULT_CATALOG["Corn"])
        assert "South exposure" in text

    def test_short_shallow_grouped(self):
        p = Placement("1", "Lettuce", 40, 40, 8, cluster_id="cluster_1")
        assert self.packer.placement_reasoning(p, DEFAULT_CATALOG["Lettuce"]) == (
            "Low-growing plant suitable for intercropping; shallow roots allow underplanting; "
            "grouped with other Lettuce plants."
        )

    def test_unknown_kind_reasoning(self):
        p = Placement("1", "Mystery", 40, 40, 8)
        assert self.packer.placement_reasoning(p, None) == "Standard placement in available space."

    def test_companion_insights(self):
        near = [(Placement("2", "Basil", 0, 0, 8), 10.0), (Placement("3", "Fennel", 0, 0, 8), 15.0)]
        text = GardenPacker.companion_insights(near, {"Basil", "Marigold"}, {"Fennel"})
        assert text == "Benefits from proximity to Basil. Warning: Near incompatible Fennel."

    def test_companion_insights_compatible(self):
        text = GardenPacker.companion_insights([], {"Onion", "Basil", "Carrot", "Marigold"}, set())
        assert text == "Compatible with Basil, Carrot, Marigold."

    def test_no_relations(self):
        assert GardenPacker.companion_insights([], set(), set()) == "No specific companion requirements."
