#!/usr/bin/env python3
"""
Compute scaled geometric moments for every voxel grid under a directory.

Volumes are found recursively (.npy, .nii, .nii.gz), loaded on worker threads,
and the moments of all grids are written to one CSV table with columns
name, i, j, k, moment.

Usage:
    python3 scripts/compute_moments.py --dir data/volumes --max-order 20 [--threads 4]
"""

import argparse
import logging
import os
import pickle
import sys
import zlib

import nibabel as nib
import numpy as np
from nibabel.filebasedimages import ImageFileError

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from src.moments import BatchConfig, batch_compute, moments_to_frame

VOLUME_SUFFIXES = ('.npy', '.nii', '.nii.gz')


def find_volumes(root):
    """Recursively list volume files under ``root`` in a stable order."""
    paths = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            if filename.endswith(VOLUME_SUFFIXES):
                paths.append(os.path.join(dirpath, filename))
    return paths


def load_volume(path):
    """Load a volume indexed as volume[x, y, z]."""
    try:
        if path.endswith('.npy'):
            data = np.load(path)
        else:
            data = np.asanyarray(nib.load(path).dataobj)
    except (EOFError, pickle.UnpicklingError, zlib.error, ImageFileError) as exc:
        raise ValueError(f"Cannot read {path}: {exc}") from exc

    if data.ndim == 4 and data.shape[3] == 1:
        data = data[..., 0]
    if data.ndim != 3:
        raise ValueError(f"{path}: volume must be 3D, got shape {data.shape}")
    return data


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Compute scaled geometric moments for each voxel grid in a directory'
    )
    parser.add_argument('--dir', '-d', required=True,
                        help='Directory scanned recursively for .npy / .nii / .nii.gz volumes')
    parser.add_argument('--max-order', '-n', type=int, required=True,
                        help='Maximal combined order i + j + k of the moments')
    parser.add_argument('--threads', '-t', type=int, default=2,
                        help='Number of worker threads (default: 2)')
    parser.add_argument('--queue-size', '-s', type=int, default=500,
                        help='Maximal number of grids in flight (default: 500)')
    parser.add_argument('--output', '-o', type=str, default='moments.csv',
                        help='Output CSV path (default: moments.csv)')
    parser.add_argument('--log-level', '-l', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: INFO)')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s [%(threadName)s] %(levelname)s %(name)s: %(message)s',
    )

    if not os.path.isdir(args.dir):
        print(f"{args.dir} is not a directory or does not exist.", file=sys.stderr)
        return 1

    config = BatchConfig(max_order=args.max_order, threads=args.threads,
                         queue_size=args.queue_size)
    try:
        config.validate()
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1

    print("=" * 60)
    print("SCALED GEOMETRIC MOMENTS")
    print("=" * 60)

    paths = find_volumes(args.dir)
    print(f"\nFound {len(paths)} volumes in {args.dir}")

    sources = ((os.path.relpath(p, args.dir), (lambda p=p: load_volume(p))) for p in paths)
    results = batch_compute(sources, config)

    frame = moments_to_frame(results)
    out_dir = os.path.dirname(args.output)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    frame.to_csv(args.output, index=False)

    failed = [r for r in results if not r.ok]
    print(f"\nWrote {len(frame)} moments for {len(results) - len(failed)} grids to {args.output}")
    for r in failed:
        print(f"  FAILED {r.name}: {r.error}")

    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
