"""
Command-Line Interface for Block Voxelizer

Usage:
    blockvox chair.glb -o out/
    blockvox chair.glb -r 32 --fill-interior -o out/
    blockvox chair.glb -f java bbmodel --name chair -o out/

"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional
import time

from . import __version__
from .color import ColorSamplingMode
from .generator import BlockModelConverter, EXPORT_FORMATS
from .logging_config import setup_logging
from .voxelizer import DEFAULT_RESOLUTION, MAX_RESOLUTION, MIN_RESOLUTION


def resolution_type(value: str) -> int:
    """argparse type for --resolution: an integer in the supported range."""
    try:
        resolution = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid resolution: {value!r}")

    if not MIN_RESOLUTION <= resolution <= MAX_RESOLUTION:
        raise argparse.ArgumentTypeError(
            f"resolution must be between {MIN_RESOLUTION} and {MAX_RESOLUTION}"
        )
    return resolution


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="blockvox",
        description="Block Voxelizer - Convert 3D models (glTF) to voxel block models",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  blockvox chair.glb -o out/
      Write out/chair.json and out/texture.png (Java block model)

  blockvox chair.glb -r 32 --fill-interior -o out/
      Voxelize at 32 cells along the longest axis, filling the inside

  blockvox chair.glb -f bbmodel --seed 7 -o out/
      Write a reproducible Blockbench project (out/chair.bbmodel)

Color Modes:
  average   - Mean of the colors seen by the six probe rays (default)
  dominant  - Most frequent probe color
  nearest   - Color of the closest probe hit
        """
    )

    # Input
    parser.add_argument(
        "input",
        help="Input scene file (.glb or .gltf)"
    )

    # Output
    parser.add_argument(
        "-o", "--output",
        help="Output directory (default: next to the input file)"
    )

    parser.add_argument(
        "--name",
        help="Base name of the exported files (default: input file stem)"
    )

    parser.add_argument(
        "-f", "--format",
        nargs="+",
        choices=list(EXPORT_FORMATS),
        default=["java"],
        help="Output format(s) (default: java)"
    )

    # Voxelization settings
    parser.add_argument(
        "-r", "--resolution",
        type=resolution_type,
        default=DEFAULT_RESOLUTION,
        help=f"Voxels along the longest axis, {MIN_RESOLUTION}-{MAX_RESOLUTION} "
             f"(default: {DEFAULT_RESOLUTION})"
    )

    parser.add_argument(
        "--fill-interior",
        action="store_true",
        help="Fill cells enclosed by the surface"
    )

    parser.add_argument(
        "--color-mode",
        choices=[mode.value for mode in ColorSamplingMode],
        default=ColorSamplingMode.AVERAGE.value,
        help="How probe colors of one voxel are combined (default: average)"
    )

    parser.add_argument(
        "--any-format",
        action="store_true",
        help="Accept any mesh format trimesh can read, not only glTF"
    )

    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for reproducible UUIDs in .bbmodel output"
    )

    # Misc
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output with debug logging"
    )

    parser.add_argument(
        "--log-file",
        help="Also write log records to this file"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print voxel statistics"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def print_stats(stats: dict):
    print("\nVoxel Statistics:")
    print(f"  Meshes: {stats['mesh_count']}")
    print(f"  Triangles: {stats['triangle_count']}")
    print(f"  Resolution: {stats['resolution']}")
    print(f"  Voxels: {stats['voxel_count']}")
    print(f"  Unique colors: {stats['unique_colors']}")
    print(f"  Atlas size: {stats['atlas_size'][0]}x{stats['atlas_size'][1]}")


def process_single(args) -> int:
    """Convert one scene file."""
    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    output_dir = Path(args.output) if args.output else input_path.parent
    name = args.name or input_path.stem

    start_time = time.time()

    try:
        converter = BlockModelConverter(
            resolution=args.resolution,
            fill_interior=args.fill_interior,
            color_mode=args.color_mode,
            seed=args.seed,
            strict=not args.any_format
        )

        if args.verbose:
            print(f"Loading: {input_path}")

        converter.load_scene(input_path)

        if args.verbose:
            print(f"Voxelizing at resolution {args.resolution}...")

        converter.voxelize()

        if converter.voxel_count == 0:
            print("Warning: no voxels produced, exporting an empty model", file=sys.stderr)

        if args.stats or args.verbose:
            print_stats(converter.get_stats())

        written = converter.export_all(output_dir, args.format, name)
        for path in written:
            print(f"Exported: {path}")

        elapsed = time.time() - start_time
        if args.verbose:
            print(f"\nCompleted in {elapsed:.2f}s")

        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)

    return process_single(args)


if __name__ == "__main__":
    sys.exit(main())
