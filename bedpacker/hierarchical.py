"""
hierarchical.py - Two-level force-directed circle packing

Level 1 packs one meta-circle (cluster) per plant kind, level 2 packs the
individual plants of each kind around their cluster.

Stages:
1. Cluster formation - area-preserving radii, seeded centroids inside the bed
2. Cluster relaxation - overlap repulsion, antagonist push, companion pull
3. Plant relaxation - per-cluster collision forces, centroid pull, clamping
   against the real bed shape, then position-based collision resolution
4. Lloyd-style refinement - nudge plants toward their local free space
Acceptance finally seats every plant without collisions or reports it failed.
"""
import logging
import math
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .circle_packer import GOLDEN_ANGLE, Circle, CirclePacker
from .config import PackerConfig
from .exceptions import PackerStateError
from .geometry import (
    Bed, circle_area, clamp_to_bed, enclosing_radius, is_circle_inside,
    max_inscribed_radius,
)
from .models import (
    Cluster, LayoutResult, LayoutStats, PackerState, Placement, Plant, PlantGroup,
)
from .rng import SeededRandom, seeded_random
from .validate import check_plant_groups, find_violations, packing_density

log = logging.getLogger(__name__)

ANTAGONIST_AMPLIFICATION = 3.0
COMPANION_PULL = 0.1
CENTROID_PULL = 0.02
INTRA_RESOLVE_PASSES = 3
RESOLVE_OVERSHOOT = 1.05
MIN_SEPARATION = 1e-9


def _pairwise(pos: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Unit vectors and distances between all pairs; unit[i, j] points from i to j.

    Coincident pairs get a deterministic x-axis direction, lower index on the left.
    """
    delta = pos[None, :, :] - pos[:, None, :]
    dist = np.hypot(delta[..., 0], delta[..., 1])
    safe = np.where(dist < MIN_SEPARATION, 1.0, dist)
    unit = delta / safe[..., None]

    coincident = dist < MIN_SEPARATION
    np.fill_diagonal(coincident, False)
    if coincident.any():
        i, j = np.nonzero(coincident)
        unit[i, j, 0] = np.sign(j - i).astype(float)
        unit[i, j, 1] = 0.0
    return unit, dist


def _priority_share(prio: np.ndarray) -> np.ndarray:
    """share[i, j]: fraction of an i-j push taken by i (the higher priority plant moves less)."""
    total = prio[:, None] + prio[None, :]
    return np.where(total > 0, prio[None, :] / np.where(total > 0, total, 1.0), 0.5)


class HierarchicalPacker:
    """
    Force-directed two-level packer for one bed.

    Single-shot: construct, call pack(groups) once, read the result.
    """

    def __init__(self, bed: Bed, config: Optional[PackerConfig] = None,
                 rng: Optional[SeededRandom] = None):
        self.bed = bed
        self.config = config or PackerConfig()
        self.rng = rng or seeded_random(self.config.seed)
        self.state = PackerState.INITIALIZED

        self.clusters: List[Cluster] = []
        self.iteration_count = 0
        self.plant_iterations = 0
        self.converged = False

    def _advance(self, state: PackerState):
        log.debug("Packer state %s -> %s", self.state.value, state.value)
        self.state = state

    def pack(self, groups: Sequence[PlantGroup]) -> LayoutResult:
        """Pack plant groups with hierarchical two-level clustering."""
        if self.state is not PackerState.INITIALIZED:
            raise PackerStateError("HierarchicalPacker.pack() is single-shot; create a new packer")
        check_plant_groups(groups)

        requested = sum(len(g.plants) for g in groups)
        log.info("Starting two-level packing for %d plant groups (%d plants)",
                 len(groups), requested)

        groups, failed = self._drop_unplaceable(groups)

        # Level 1
        self.clusters = self._create_clusters(groups)
        self._advance(PackerState.CLUSTERS_FORMED)
        self.iteration_count, clusters_converged = self._relax_clusters(groups)
        log.debug("Cluster relaxation: %d iterations, converged=%s",
                  self.iteration_count, clusters_converged)

        # Level 2
        members: List[Tuple[int, Plant]] = []
        blocks = []
        plants_converged = True
        for index, (cluster, group) in enumerate(zip(self.clusters, groups)):
            plants = sorted(group.plants, key=lambda p: (-p.priority, -p.radius))
            pos, iterations, converged = self._relax_plants(cluster, plants)
            self.plant_iterations += iterations
            plants_converged = plants_converged and converged
            members.extend((index, p) for p in plants)
            blocks.append(pos)
        self._advance(PackerState.PLANTS_PACKED)

        pos = np.vstack(blocks) if blocks else np.zeros((0, 2))
        radii = np.array([p.radius for _, p in members], dtype=float)
        prio = np.array([p.priority for _, p in members], dtype=float)

        if len(members) > 1:
            remaining = self._resolve_overlaps(pos, radii, prio, self.config.resolve_passes)
            if remaining:
                log.debug("%d collisions left after global resolution", remaining)
            self._refine(pos, radii, prio)

        placements, rejected = self._accept(members, pos)
        failed.extend(rejected)

        self.converged = clusters_converged and plants_converged
        self._advance(PackerState.CONVERGED if self.converged
                      else PackerState.MAX_ITERATIONS_REACHED)

        self._log_shortfall(groups, placements, requested)
        return self._build_result(placements, failed, requested)

    def _drop_unplaceable(self, groups: Sequence[PlantGroup]):
        """Skip empty groups; drop plants that cannot fit in the bed even alone."""
        limit = max_inscribed_radius(self.bed)
        kept: List[PlantGroup] = []
        failed: List[str] = []
        for group in groups:
            fitting = [p for p in group.plants if 0 < p.radius <= limit]
            failed.extend(p.id for p in group.plants if not 0 < p.radius <= limit)
            if len(fitting) < len(group.plants):
                log.info("%s: %d plant(s) cannot fit in %s", group.kind,
                         len(group.plants) - len(fitting), self.bed.name)
            if fitting:
                kept.append(replace(group, plants=fitting))
        return kept, failed

    def _create_clusters(self, groups: Sequence[PlantGroup]) -> List[Cluster]:
        """One meta-circle per kind; seeds are clamped so the whole cluster starts inside."""
        limit = max_inscribed_radius(self.bed)
        clusters = []
        for index, group in enumerate(groups):
            radius = enclosing_radius([p.radius for p in group.plants],
                                      self.config.packing_efficiency)
            x, y = clamp_to_bed(
                self.bed,
                self.rng.uniform(0, self.bed.width),
                self.rng.uniform(0, self.bed.height),
                min(radius, limit),
            )
            clusters.append(Cluster(
                id=f"cluster_{index}",
                kind=group.kind,
                x=x,
                y=y,
                radius=radius,
                member_ids=tuple(p.id for p in group.plants),
            ))
        return clusters

    def _relax_clusters(self, groups: Sequence[PlantGroup]) -> Tuple[int, bool]:
        """Level-1 force simulation; returns (iterations, converged)."""
        k = len(self.clusters)
        if k == 0:
            return 0, True

        cfg = self.config
        limit = max_inscribed_radius(self.bed)
        pos = np.array([(c.x, c.y) for c in self.clusters], dtype=float)
        radii = np.array([c.radius for c in self.clusters], dtype=float)
        clamp_r = np.minimum(radii, limit)

        companion = np.zeros((k, k), dtype=bool)
        antagonist = np.zeros((k, k), dtype=bool)
        for i, gi in enumerate(groups):
            for j, gj in enumerate(groups):
                if i == j:
                    continue
                companion[i, j] = gj.kind in gi.companions or gi.kind in gj.companions
                antagonist[i, j] = gj.kind in gi.antagonists or gi.kind in gj.antagonists

        off_diag = ~np.eye(k, dtype=bool)
        padding = np.where(antagonist, 3 * cfg.cluster_padding, cfg.cluster_padding)
        min_dist = radii[:, None] + radii[None, :] + padding
        safe_min = np.maximum(min_dist, MIN_SEPARATION)
        amplification = np.where(antagonist, ANTAGONIST_AMPLIFICATION, 1.0)

        vel = np.zeros_like(pos)
        iteration = 0
        converged = False
        while iteration < cfg.max_iterations:
            iteration += 1
            unit, dist = _pairwise(pos)

            overlap = np.where(off_diag, np.clip(min_dist - dist, 0.0, None), 0.0)
            repulse = overlap * cfg.inter_group_repulsion * amplification * (1 + overlap / safe_min)
            gap = np.where(companion, np.clip(dist - min_dist, 0.0, None), 0.0)
            attract = gap * cfg.intra_group_attraction * COMPANION_PULL

            force = ((attract - repulse)[..., None] * unit).sum(axis=1)
            vel = (vel + force) * cfg.damping

            new_pos = pos + vel
            for i in range(k):
                new_pos[i] = clamp_to_bed(self.bed, new_pos[i, 0], new_pos[i, 1], clamp_r[i])

            moved = np.hypot(*(new_pos - pos).T)
            vel = new_pos - pos
            pos = new_pos
            if moved.max() < cfg.convergence_threshold:
                converged = True
                break

        self.clusters = [
            replace(c, x=float(pos[i, 0]), y=float(pos[i, 1]))
            for i, c in enumerate(self.clusters)
        ]
        if not converged:
            log.debug("Cluster relaxation reached max iterations (%d)", iteration)
        return iteration, converged

    def _relax_plants(self, cluster: Cluster, plants: List[Plant]) -> Tuple[np.ndarray, int, bool]:
        """Level-2 force simulation for one cluster; returns (positions, iterations, converged)."""
        cfg = self.config
        m = len(plants)
        radii = np.array([p.radius for p in plants], dtype=float)
        prio = np.array([p.priority for p in plants], dtype=float)
        mean_r = float(radii.mean())

        # Vogel spiral: area per point ~ pi * c^2, slightly above one footprint
        spiral_c = (mean_r + cfg.min_spacing / 2) * 1.1
        pos = np.empty((m, 2), dtype=float)
        for idx in range(m):
            angle = idx * GOLDEN_ANGLE
            dist = spiral_c * math.sqrt(idx)
            jx, jy = self.rng.jitter(0.05 * mean_r)
            pos[idx] = clamp_to_bed(
                self.bed,
                cluster.x + math.cos(angle) * dist + jx,
                cluster.y + math.sin(angle) * dist + jy,
                radii[idx],
            )
        if m == 1:
            return pos, 0, True

        off_diag = ~np.eye(m, dtype=bool)
        min_dist = radii[:, None] + radii[None, :] + cfg.min_spacing
        safe_min = np.maximum(min_dist, MIN_SEPARATION)
        share = _priority_share(prio)
        containment = np.clip(cluster.radius + mean_r - radii, 0.0, None)
        centre = np.array([cluster.x, cluster.y])

        vel = np.zeros_like(pos)
        iteration = 0
        converged = False
        while iteration < cfg.max_iterations:
            iteration += 1
            unit, dist = _pairwise(pos)

            overlap = np.where(off_diag, np.clip(min_dist - dist, 0.0, None), 0.0)
            push = overlap * cfg.collision_strength * (1 + overlap / safe_min) * share
            force = -(push[..., None] * unit).sum(axis=1)

            to_centre = centre - pos
            d_centre = np.hypot(to_centre[:, 0], to_centre[:, 1])
            unit_centre = to_centre / np.where(d_centre > MIN_SEPARATION, d_centre, 1.0)[:, None]
            pull = d_centre * CENTROID_PULL * cfg.intra_group_attraction
            excess = np.clip(d_centre - containment, 0.0, None) * cfg.boundary_force
            force += unit_centre * (pull + excess)[:, None]

            vel = (vel + force) * cfg.damping
            new_pos = pos + vel
            # Clamp against the bed shape, not the cluster disk
            for i in range(m):
                new_pos[i] = clamp_to_bed(self.bed, new_pos[i, 0], new_pos[i, 1], radii[i])

            moved = np.hypot(*(new_pos - pos).T)
            vel = new_pos - pos
            pos = new_pos
            if moved.max() < cfg.convergence_threshold:
                converged = True
                break

        self._resolve_overlaps(pos, radii, prio, INTRA_RESOLVE_PASSES)
        return pos, iteration, converged

    def _resolve_overlaps(self, pos: np.ndarray, radii: np.ndarray,
                          prio: np.ndarray, passes: int) -> int:
        """
        Position-based collision resolution, in place.

        Returns the number of colliding pairs left after the last pass.
        """
        spacing = self.config.min_spacing
        min_dist = radii[:, None] + radii[None, :] + spacing

        for _ in range(passes):
            _, dist = _pairwise(pos)
            i_idx, j_idx = np.nonzero(np.triu(dist < min_dist - 1e-6, k=1))
            if len(i_idx) == 0:
                return 0

            for i, j in zip(i_idx.tolist(), j_idx.tolist()):
                dx = pos[j, 0] - pos[i, 0]
                dy = pos[j, 1] - pos[i, 1]
                d = math.hypot(dx, dy)
                need = radii[i] + radii[j] + spacing
                if d >= need:
                    continue
                if d < MIN_SEPARATION:
                    nx, ny = 1.0, 0.0
                else:
                    nx, ny = dx / d, dy / d

                overlap = (need - d) * RESOLVE_OVERSHOOT
                total = prio[i] + prio[j]
                wi = prio[j] / total if total > 0 else 0.5
                wj = 1.0 - wi

                pos[i] = clamp_to_bed(self.bed, pos[i, 0] - nx * overlap * wi,
                                      pos[i, 1] - ny * overlap * wi, radii[i])
                pos[j] = clamp_to_bed(self.bed, pos[j, 0] + nx * overlap * wj,
                                      pos[j, 1] + ny * overlap * wj, radii[j])

        _, dist = _pairwise(pos)
        return int(np.count_nonzero(np.triu(dist < min_dist - 1e-6, k=1)))

    def _refine(self, pos: np.ndarray, radii: np.ndarray, prio: np.ndarray):
        """
        Lloyd-style relaxation, in place.

        Each plant moves to even out the gaps to its neighbours, i.e. toward
        the middle of its local free space. Moves are re-clamped to the bed
        and reverted if they deepen the plant's worst overlap.
        """
        cfg = self.config
        if cfg.lloyd_iterations == 0 or len(pos) < 2:
            return

        max_r = float(radii.max())
        reach = max(cfg.lloyd_neighbour_radius, 3 * max_r + cfg.min_spacing)

        for _ in range(cfg.lloyd_iterations):
            tree = cKDTree(pos)
            neighbourhoods = tree.query_ball_point(pos, r=reach)
            moved = 0
            for i, near in enumerate(neighbourhoods):
                near = sorted(j for j in near if j != i)
                if not near:
                    continue
                near_pos = pos[near]
                need = radii[i] + radii[near] + cfg.min_spacing

                delta = pos[i] - near_pos
                dist = np.hypot(delta[:, 0], delta[:, 1])
                unit = delta / np.where(dist > MIN_SEPARATION, dist, 1.0)[:, None]
                gaps = dist - need

                step = (unit * (gaps.mean() - gaps)[:, None]).mean(axis=0) * cfg.lloyd_step
                length = math.hypot(step[0], step[1])
                if length < 1e-12:
                    continue
                cap = radii[i] * 0.5
                if length > cap:
                    step *= cap / length

                nx, ny = clamp_to_bed(self.bed, pos[i, 0] + step[0], pos[i, 1] + step[1], radii[i])
                before = float(np.clip(need - dist, 0.0, None).max())
                after_dist = np.hypot(near_pos[:, 0] - nx, near_pos[:, 1] - ny)
                after = float(np.clip(need - after_dist, 0.0, None).max())
                if after <= before:
                    pos[i] = (nx, ny)
                    moved += 1
            log.debug("Lloyd pass moved %d/%d plants", moved, len(pos))

    def _accept(self, members: List[Tuple[int, Plant]],
                pos: np.ndarray) -> Tuple[List[Placement], List[str]]:
        """
        Seat plants in priority order; re-seat or drop those that still collide.

        Output keeps cluster order so every kind stays contiguous.
        """
        cfg = self.config
        packer = CirclePacker(self.bed, cfg.min_spacing)
        loose = cfg.min_spacing - cfg.collision_tolerance
        seats = {}
        failed = []
        smallest_failed = math.inf

        order = sorted(range(len(members)),
                       key=lambda i: (-members[i][1].priority, -members[i][1].radius, i))
        for i in order:
            cluster_index, plant = members[i]
            x, y = float(pos[i, 0]), float(pos[i, 1])
            r = plant.radius

            if is_circle_inside(self.bed, x, y, r) and not packer.index.collides(x, y, r, loose):
                seats[i] = (x, y)
                packer.add(Circle(x, y, r))
                continue

            spot = None
            if r < smallest_failed:
                cluster = self.clusters[cluster_index]
                spot = packer.find_spot(r, cluster.x, cluster.y, self.rng, cfg)
            if spot is None:
                smallest_failed = min(smallest_failed, r)
                failed.append(plant.id)
                continue
            seats[i] = spot
            packer.add(Circle(spot[0], spot[1], r))

        placements = []
        for i, (cluster_index, plant) in enumerate(members):
            if i not in seats:
                continue
            x, y = seats[i]
            placements.append(Placement(
                id=plant.id,
                kind=plant.kind,
                variety=plant.variety,
                x=x,
                y=y,
                size=plant.size,
                priority=plant.priority,
                cluster_id=self.clusters[cluster_index].id,
            ))

        placed_ids = {p.id for p in placements}
        self.clusters = [
            replace(c, member_ids=tuple(m for m in c.member_ids if m in placed_ids))
            for c in self.clusters
        ]
        return placements, failed

    def _log_shortfall(self, groups: Sequence[PlantGroup],
                       placements: List[Placement], requested: int):
        if len(placements) >= requested:
            return
        log.warning("Could not fit all %d plants, packed %d", requested, len(placements))
        actual = {}
        for p in placements:
            actual[p.kind] = actual.get(p.kind, 0) + 1
        for group in groups:
            got = actual.get(group.kind, 0)
            if got < len(group.plants):
                log.warning("  %s: %d/%d (%.0f%%)", group.kind, got, len(group.plants),
                            got / len(group.plants) * 100)

    def _build_result(self, placements: List[Placement], failed: List[str],
                      requested: int) -> LayoutResult:
        stats = LayoutStats(
            placed=len(placements),
            requested=requested,
            iterations=self.iteration_count,
            plant_iterations=self.plant_iterations,
            converged=self.converged,
            packing_density=packing_density(self.bed, (p.radius for p in placements)),
            clusters=len(self.clusters),
            total_area=self.bed.area,
            packed_area=sum(circle_area(p.radius) for p in placements),
        )
        violations = find_violations(
            self.bed, placements, self.config.min_spacing, self.config.collision_tolerance
        )
        if violations.bounds:
            log.warning("%d placement(s) outside %s", len(violations.bounds), self.bed.name)
        return LayoutResult(
            placements=placements,
            clusters=list(self.clusters),
            violations=violations,
            stats=stats,
            failed=failed,
            state=self.state,
        )


def pack(bed: Bed, groups: Sequence[PlantGroup], config: Optional[PackerConfig] = None,
         rng: Optional[SeededRandom] = None) -> LayoutResult:
    """Run one hierarchical packing of plant groups into a bed."""
    return HierarchicalPacker(bed, config, rng).pack(groups)
