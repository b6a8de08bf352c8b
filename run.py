#!/usr/bin/env python3
"""
run.py - Main entry point for the Garden Bed Packer

Usage:
    python run.py --job job.json [--mode quick|standard|dense] [--seed 42]
    python run.py --width 96 --height 48 --shape pill \\
        --plant Tomato:24:4:2 --plant Basil:10:8 [--output layout.csv]

Modes:
    quick:    fast previews, fewer iterations and search candidates
    standard: default coefficients
    dense:    stronger collision push, longer relaxation, tighter clusters
"""
import sys
import os
import time
import logging
import argparse

script_dir = os.path.dirname(os.path.abspath(__file__))
if script_dir not in sys.path:
    sys.path.insert(0, script_dir)

from bedpacker.config import PackerConfig
from bedpacker.catalog import load_catalog
from bedpacker.exceptions import BedPackerError
from bedpacker.garden import GardenPacker
from bedpacker.geometry import Bed, SHAPES
from bedpacker.io_utils import (
    PackingJob, load_job, parse_plant_spec, get_output_path,
    write_layout_csv, write_layout_json, print_layout_summary,
)
from bedpacker.validate import print_validation_summary


def build_job(args) -> PackingJob:
    """Packing job from --job or from the bed / plant flags."""
    if args.job:
        return load_job(args.job)
    if args.width is None or args.height is None:
        raise BedPackerError("Either --job or both --width and --height are required")
    bed = Bed(width=args.width, height=args.height, shape=args.shape, name="cli bed")
    return PackingJob(
        bed=bed,
        requests=[parse_plant_spec(s) for s in args.plant],
        sun_orientation=args.sun,
    )


def main(args) -> int:
    """Main packer entry point."""
    job = build_job(args)
    seed = args.seed if args.seed is not None else (job.seed if job.seed is not None else 42)
    config = PackerConfig.from_mode(args.mode, engine=args.engine, seed=seed)
    catalog = load_catalog(args.catalog)

    print("=" * 70)
    print("GARDEN BED PACKER v1.0")
    print("=" * 70)
    print(f"Mode: {args.mode}")
    print(f"Engine: {config.engine}")
    print(f"Seed: {config.seed}")
    print(f"Bed: {job.bed.name} ({job.bed.width:g}\" x {job.bed.height:g}\" {job.bed.shape})")
    print(f"Sun: {job.sun_orientation}")
    print()

    print("Configuration:")
    print(f"  Max iterations: {config.max_iterations}")
    print(f"  Lloyd passes: {config.lloyd_iterations}")
    print(f"  Packing efficiency: {config.packing_efficiency}")
    print(f"  Space filling: {'on' if config.space_filling else 'off'}")
    print()

    print(f"Requests ({len(job.requests)} kinds):")
    for r in job.requests:
        print(f"  {r.kind:<16} {r.count:4d} x {r.size:g}\"  priority {r.priority:g}")
    print("-" * 50)

    start_time = time.time()
    packer = GardenPacker(job.bed, config, catalog=catalog, sun_orientation=job.sun_orientation)
    result = packer.pack_plants(job.requests)
    solve_time = time.time() - start_time
    print(f"Packing completed in {solve_time:.1f}s")
    print()

    print_layout_summary(result, job.bed)
    print()
    print_validation_summary(job.bed, result.placements,
                             config.min_spacing, config.collision_tolerance)

    output_path = args.output or get_output_path("layout.csv")
    if output_path.endswith(".json"):
        created_path = write_layout_json(result, output_path)
    else:
        created_path = write_layout_csv(result.placements, output_path)
    print(f"\n✓ Saved to: {created_path}")

    return 0 if result.violations.empty else 1


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Garden Bed Packer")
    parser.add_argument("--job", help="Packing job JSON (bed, plants, sun_orientation, seed)")
    parser.add_argument("--width", type=float, help="Bed width in inches")
    parser.add_argument("--height", type=float, help="Bed height in inches")
    parser.add_argument("--shape", choices=SHAPES, default="rectangle", help="Bed shape")
    parser.add_argument(
        "--plant",
        action="append",
        default=[],
        metavar="KIND:SIZE[:COUNT[:PRIORITY]]",
        help="Plant request, repeatable"
    )
    parser.add_argument(
        "--mode",
        choices=["quick", "standard", "dense"],
        default="standard",
        help="Packing mode"
    )
    parser.add_argument("--engine", choices=["hierarchical", "single"], default="hierarchical")
    parser.add_argument("--seed", type=int, default=None, help="Random seed (default: job seed or 42)")
    parser.add_argument("--sun", choices=["North", "South", "East", "West"], default="South",
                        help="Sun orientation for flag-built jobs")
    parser.add_argument("--catalog", help="Plant catalog JSON merged over the built-in one")
    parser.add_argument("--output", help="Output path (.csv or .json)")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
    try:
        sys.exit(main(args))
    except BedPackerError as e:
        print(f"✗ Error: {e}")
        sys.exit(2)
