"""
Scaled geometric moments of 3D voxel grids.
"""

from .scaled_moments import (
    ScaledGeometricMoments,
    compute_samples,
    compute_diff_function,
    multiply,
    triangular_index,
    moment_count,
    iter_orders,
    flatten_volume,
)
from .geometry import (
    GridGeometry,
    center_of_gravity,
    bounding_sphere_scale,
    grid_geometry,
)
from .batch import (
    BatchConfig,
    MomentResult,
    batch_compute,
    compute_grid_moments,
    moments_to_frame,
)

__all__ = [
    # Engine
    'ScaledGeometricMoments',
    'compute_samples',
    'compute_diff_function',
    'multiply',
    # Triangular indexing
    'triangular_index',
    'moment_count',
    'iter_orders',
    'flatten_volume',
    # Grid geometry
    'GridGeometry',
    'center_of_gravity',
    'bounding_sphere_scale',
    'grid_geometry',
    # Batch
    'BatchConfig',
    'MomentResult',
    'batch_compute',
    'compute_grid_moments',
    'moments_to_frame',
]
