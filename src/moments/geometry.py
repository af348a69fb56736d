"""Center of gravity and scaling of voxel grids before moment computation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy import ndimage


@dataclass(frozen=True)
class GridGeometry:
    """Geometry parameters consumed by ScaledGeometricMoments."""
    cog: Tuple[float, float, float]
    scale: float


def _check_volume(volume) -> np.ndarray:
    data = np.asarray(volume)
    if data.ndim != 3:
        raise ValueError("volume must be 3D")
    if not np.any(data):
        raise ValueError("volume is empty (all zeros)")
    if data.sum() == 0:
        raise ValueError("volume values sum to zero, center of gravity is undefined")
    return data


def center_of_gravity(volume: np.ndarray) -> Tuple[float, float, float]:
    """
    Value-weighted centroid of a volume indexed as volume[x, y, z].

    Voxel (x, y, z) occupies the cell [x, x+1] x [y, y+1] x [z, z+1] of the
    moment engine's coordinate frame, so its centre sits at index + 0.5.
    """
    data = _check_volume(volume).astype(np.float64)
    com = ndimage.center_of_mass(data)
    return tuple(float(c) + 0.5 for c in com)


def bounding_sphere_scale(volume: np.ndarray, cog) -> float:
    """
    Scale that maps the non-zero part of the volume into the unit ball
    centred at ``cog``.

    The radius is the largest distance from ``cog`` to a corner of any
    non-zero voxel.
    """
    data = _check_volume(volume)
    idx = np.argwhere(data != 0).astype(np.float64)
    cog = np.asarray(cog, dtype=np.float64)

    # Per axis, the farther of the two cell faces
    far = np.maximum(np.abs(idx - cog), np.abs(idx + 1.0 - cog))
    radius = float(np.sqrt(np.max(np.sum(far ** 2, axis=1))))

    return 1.0 / radius


def grid_geometry(volume: np.ndarray) -> GridGeometry:
    """COG and bounding-sphere scale of a volume indexed as volume[x, y, z]."""
    cog = center_of_gravity(volume)
    return GridGeometry(cog=cog, scale=bounding_sphere_scale(volume, cog))
