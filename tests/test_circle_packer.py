"""Tests for the single-level circle packer and the greedy group engine."""

import math

import pytest

from bedpacker.circle_packer import (
    Circle, CirclePacker, CollisionIndex, GreedyGroupPacker, candidate_points,
)
from bedpacker.config import PackerConfig
from bedpacker.exceptions import ConfigurationError, PackerStateError
from bedpacker.geometry import Bed, is_circle_inside
from bedpacker.models import PackerState, Plant, PlantGroup
from bedpacker.rng import seeded_random
from bedpacker.validate import is_contiguous_by_kind


def make_group(kind, count, radius, priority=1.0, start=0):
    plants = [Plant(id=f"{kind}-{start + i}", kind=kind, radius=radius, priority=priority)
              for i in range(count)]
    return PlantGroup(kind, plants)


class TestCollisionIndex:

    def test_empty_index_never_collides(self):
        assert not CollisionIndex().collides(0, 0, 5, 0.5)

    def test_pending_and_indexed_circles(self):
        index = CollisionIndex()
        for i in range(40):
            index.add(Circle(i * 10.0, 0.0, 2.0))
        # First batch lives in the STRtree, the rest in the pending list
        assert index.collides(0.0, 3.0, 1.0, 0.5)
        assert index.collides(390.0, 3.0, 1.0, 0.5)
        assert not index.collides(5.0, 0.0, 1.0, 0.5)

    def test_exclude(self):
        index = CollisionIndex()
        index.add(Circle(0, 0, 2))
        assert not index.collides(0, 0, 2, 0.5, exclude=0)


class TestCirclePacker:

    def setup_method(self):
        self.bed = Bed(48, 48)
        self.packer = CirclePacker(self.bed, min_clearance=0.5)

    def test_place_full_radius(self):
        circle = self.packer.try_place(24, 24, 2, 10)
        assert circle == Circle(24, 24, 10)
        assert len(self.packer.circles) == 1

    def test_shrinks_near_wall(self):
        circle = self.packer.try_place(5, 24, 1, 10)
        assert circle is not None
        assert circle.radius == pytest.approx(5, abs=1e-4)
        assert is_circle_inside(self.bed, circle.x, circle.y, circle.radius)

    def test_shrinks_next_to_neighbour(self):
        self.packer.try_place(24, 24, 10, 10)
        circle = self.packer.try_place(24, 40, 1, 8)
        assert circle is not None
        assert math.hypot(circle.x - 24, circle.y - 24) >= 10 + circle.radius + 0.5 - 1e-9

    def test_no_shrink_fails_without_mutation(self):
        self.packer.try_place(24, 24, 10, 10)
        assert self.packer.try_place(24, 36, 1, 8, allow_shrink=False) is None
        assert len(self.packer.circles) == 1

    def test_no_room_fails(self):
        self.packer.try_place(24, 24, 20, 20)
        assert self.packer.try_place(24, 24, 1, 5) is None
        assert len(self.packer.circles) == 1

    def test_invalid_query_raises_error(self):
        with pytest.raises(ConfigurationError, match="exceeds"):
            self.packer.try_place(10, 10, 5, 2)
        with pytest.raises(ConfigurationError, match="non-negative"):
            self.packer.try_place(10, 10, -1, 2)
        with pytest.raises(ConfigurationError, match="finite"):
            self.packer.try_place(float("nan"), 10, 1, 2)

    def test_place_random_respects_invariants(self):
        rng = seeded_random(5)
        for _ in range(30):
            self.packer.place_random(rng, 1, 4)
        circles = self.packer.circles
        assert circles
        for i, a in enumerate(circles):
            assert is_circle_inside(self.bed, a.x, a.y, a.radius)
            for b in circles[i + 1:]:
                assert math.hypot(a.x - b.x, a.y - b.y) >= a.radius + b.radius + 0.5 - 1e-9

    def test_stats(self):
        self.packer.try_place(24, 24, 10, 10)
        stats = self.packer.stats()
        assert stats.item_count == 1
        assert stats.packing_density == pytest.approx(math.pi * 100 / (48 * 48) * 100)

    def test_find_spot_rejects_oversize(self):
        assert self.packer.find_spot(30, 24, 24, seeded_random(1)) is None


class TestCandidatePoints:

    def test_starts_at_target(self):
        points = candidate_points(Bed(48, 48), 10, 12, 3, seeded_random(1),
                                  spiral_attempts=5, grid_size=2, random_attempts=3)
        points = list(points)
        assert points[0] == (10, 12)
        assert len(points) == 5 + 4 + 3

    def test_deterministic(self):
        bed = Bed(60, 30, "pill")
        a = list(candidate_points(bed, 20, 15, 4, seeded_random(8)))
        b = list(candidate_points(bed, 20, 15, 4, seeded_random(8)))
        assert a == b


class TestGreedyGroupPacker:

    def test_packs_groups_contiguously(self):
        bed = Bed(96, 48)
        groups = [make_group("Tomato", 4, 6, priority=2), make_group("Basil", 8, 3)]
        result = GreedyGroupPacker(bed, PackerConfig.quick_mode()).pack(groups)
        assert result.stats.placed == 12
        assert result.violations.empty
        assert is_contiguous_by_kind(result.placements)
        assert result.state is PackerState.CONVERGED

    def test_oversize_plant_fails(self):
        bed = Bed(20, 20)
        result = GreedyGroupPacker(bed).pack([make_group("Squash", 2, 15)])
        assert result.stats.placed == 0
        assert sorted(result.failed) == ["Squash-0", "Squash-1"]

    def test_single_shot(self):
        packer = GreedyGroupPacker(Bed(48, 48), PackerConfig.quick_mode())
        packer.pack([make_group("Bean", 2, 3)])
        with pytest.raises(PackerStateError):
            packer.pack([make_group("Bean", 2, 3)])
