"""
Scaled, pre-integrated geometric moments of a 3D voxel grid.

Raw geometric moments lose precision quickly as the order grows: the
monomials x^i y^j z^k blow up and the sums cancel. Here the integral of each
monomial over the grid is rewritten as a cascade of forward differences that
are contracted against the (translated, scaled) grid-boundary coordinates.
Each contraction multiplies the difference sequence by the sample values in
place, so order i+1 is obtained from order i without evaluating powers.

See M. Novotni and R. Klein, "3D Zernike Descriptors for Content Based Shape
Retrieval", 8th ACM Symposium on Solid Modeling and Applications, 2003.
"""

from __future__ import annotations

import logging
import time
from typing import Iterator, Tuple

import numpy as np

logger = logging.getLogger(__name__)


# =============================================================================
# TRIANGULAR INDEXING
# =============================================================================

def _tetrahedral(n: int) -> int:
    return n * (n + 1) * (n + 2) // 6


def moment_count(max_order: int) -> int:
    """Number of triples (i, j, k) with i + j + k <= max_order."""
    return _tetrahedral(max_order + 1)


def triangular_index(i: int, j: int, k: int, max_order: int) -> int:
    """
    Flat offset of moment (i, j, k) in the compute order used by the engine
    (i outer, j middle, k inner).

        offset = tet(M+1) - tet(M+1-i) + j*(M-i+1) - j*(j-1)/2 + k

    where tet(n) = n(n+1)(n+2)/6 and M = max_order. The first two terms count
    all triples with a smaller x-order, the next two count the (j', k) pairs
    with j' < j for the current i.
    """
    m = max_order
    return (
        _tetrahedral(m + 1) - _tetrahedral(m + 1 - i)
        + j * (m - i + 1) - j * (j - 1) // 2
        + k
    )


def iter_orders(max_order: int) -> Iterator[Tuple[int, int, int]]:
    """Yield every (i, j, k) with i + j + k <= max_order in compute order."""
    for i in range(max_order + 1):
        for j in range(max_order + 1 - i):
            for k in range(max_order + 1 - i - j):
                yield i, j, k


# =============================================================================
# BUILDING BLOCKS
# =============================================================================

def compute_samples(dim: int, cog: float, scale: float, dtype=np.float64) -> np.ndarray:
    """
    Grid-boundary coordinates along one axis, translated by the center of
    gravity and scaled.

    Returns:
        (dim + 1,) array with S[j] = -cog * scale + j * scale
    """
    start = (-cog) * scale
    return (start + np.arange(dim + 1, dtype=np.float64) * scale).astype(dtype, copy=False)


def compute_diff_function(values, dtype=np.float64) -> np.ndarray:
    """
    Forward-difference transform along the last axis.

    For V of length n the result D has length n + 1:
        D[0] = -V[0]
        D[i] = V[i-1] - V[i]   (1 <= i < n)
        D[n] = V[n-1]

    A 2D input is treated as a stack of rows and each row is transformed
    independently. The input is converted to ``dtype`` before differencing.
    """
    v = np.asarray(values).astype(dtype, copy=False)
    n = v.shape[-1]
    diff = np.empty(v.shape[:-1] + (n + 1,), dtype=dtype)

    diff[..., 0] = -v[..., 0]
    diff[..., 1:n] = v[..., :-1] - v[..., 1:]
    diff[..., n] = v[..., n - 1]
    return diff


def multiply(diff: np.ndarray, samples: np.ndarray) -> np.ndarray:
    """
    Multiply-reduce: diff *= samples (in place, broadcast over rows) and sum
    along the last axis.

    The in-place product is what advances the order: contracting the same
    difference sequence again yields the next power of the sample values.
    """
    diff *= samples
    return diff.sum(axis=-1)


# =============================================================================
# ENGINE
# =============================================================================

class ScaledGeometricMoments:
    """
    Scaled, pre-integrated geometric moments up to a maximal combined order.

    Args:
        voxels: x_dim * y_dim * z_dim values, x fastest-varying, then y, then z;
            a multi-dimensional array is read as volume[x, y, z]
        x_dim, y_dim, z_dim: grid dimensions
        x_cog, y_cog, z_cog: center of gravity in grid units
        scale: uniform scaling factor
        max_order: maximal i + j + k to compute
        dtype: floating-point type of the moments

    The moments are computed once on construction; the instance is read-only
    afterwards. ``init`` recomputes everything from new inputs.
    """

    def __init__(self, voxels, x_dim: int, y_dim: int, z_dim: int,
                 x_cog: float, y_cog: float, z_cog: float, scale: float,
                 max_order: int = 1, dtype=np.float64):
        self.init(voxels, x_dim, y_dim, z_dim, x_cog, y_cog, z_cog, scale,
                  max_order=max_order, dtype=dtype)

    @classmethod
    def from_volume(cls, volume: np.ndarray, cog, scale: float,
                    max_order: int = 1, dtype=np.float64) -> "ScaledGeometricMoments":
        """Build from a 3D array indexed as volume[x, y, z]."""
        volume = np.asarray(volume)
        if volume.ndim != 3:
            raise ValueError("volume must be 3D")
        x_dim, y_dim, z_dim = volume.shape
        return cls(flatten_volume(volume), x_dim, y_dim, z_dim,
                   cog[0], cog[1], cog[2], scale, max_order=max_order, dtype=dtype)

    def init(self, voxels, x_dim: int, y_dim: int, z_dim: int,
             x_cog: float, y_cog: float, z_cog: float, scale: float,
             max_order: int = 1, dtype=np.float64) -> None:
        """
        Discard any previous state and compute the moments for new inputs.

        The new state is assigned only once the computation has finished, so
        an exception leaves the previous moments untouched.
        """
        dtype = np.dtype(dtype)
        if not np.issubdtype(dtype, np.floating):
            raise TypeError(f"moment dtype must be a floating-point type, got {dtype}")

        dims = (int(x_dim), int(y_dim), int(z_dim))
        max_order = int(max_order)

        samples = tuple(
            compute_samples(dim, cog, scale, dtype=dtype)
            for dim, cog in zip(dims, (x_cog, y_cog, z_cog))
        )
        for s in samples:
            s.flags.writeable = False

        start = time.time()
        moments, count = _accumulate(voxels, dims, samples, max_order, dtype)
        moments.flags.writeable = False

        self._dtype = dtype
        self._x_dim, self._y_dim, self._z_dim = dims
        self._max_order = max_order
        self._samples = samples
        self._moments = moments
        self._multiply_count = count

        logger.debug(
            "moments for %dx%dx%d grid up to order %d in %.4fs",
            dims[0], dims[1], dims[2], max_order, time.time() - start,
        )

    # ---- accessors ----

    @property
    def max_order(self) -> int:
        return self._max_order

    @property
    def dims(self) -> Tuple[int, int, int]:
        return self._x_dim, self._y_dim, self._z_dim

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def samples(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Per-axis sample sequences (x, y, z), each of length dim + 1."""
        return self._samples

    @property
    def moments(self) -> np.ndarray:
        """Flat moment buffer addressed by ``triangular_index``."""
        return self._moments

    @property
    def multiply_count(self) -> int:
        """Elementwise products performed by the multiply-reduce step."""
        return self._multiply_count

    def get_moment(self, i: int, j: int, k: int):
        """Moment of order (i, j, k); only defined for i + j + k <= max_order."""
        return self._moments[triangular_index(i, j, k, self._max_order)]

    def items(self) -> Iterator[Tuple[Tuple[int, int, int], float]]:
        for offset, order in enumerate(iter_orders(self._max_order)):
            yield order, self._moments[offset]

    def to_array(self) -> np.ndarray:
        """Dense (M+1, M+1, M+1) copy, NaN outside the triangular bound."""
        size = self._max_order + 1
        dense = np.full((size, size, size), np.nan, dtype=self._dtype)
        for (i, j, k), value in self.items():
            dense[i, j, k] = value
        return dense

    def __repr__(self):
        return (f"{type(self).__name__}(dims={self.dims}, "
                f"max_order={self._max_order}, dtype={self._dtype.name})")


def _accumulate(voxels, dims, samples, max_order, dtype) -> Tuple[np.ndarray, int]:
    """
    Order cascade x -> y -> z. Returns the flat moment buffer and the number
    of elementwise products performed.
    """
    x_dim, y_dim, z_dim = dims
    x_samples, y_samples, z_samples = samples
    moments = np.empty(moment_count(max_order), dtype=dtype)
    count = 0

    grid = np.asarray(voxels)
    if grid.ndim > 1:
        # volume[x, y, z]
        grid = flatten_volume(grid)

    # One row per (y, z) pair, x fastest
    rows = grid.reshape(-1)[:x_dim * y_dim * z_dim].reshape(z_dim * y_dim, x_dim)

    # Difference grid along x, computed once for all orders
    diff_grid = compute_diff_function(rows, dtype=dtype)

    offset = 0
    for i in range(max_order + 1):
        # (z_dim, y_dim) layer; the in-place product raises the x power by one
        count += diff_grid.size
        layer = multiply(diff_grid, x_samples).reshape(z_dim, y_dim)
        diff_layer = compute_diff_function(layer, dtype=dtype)

        for j in range(max_order + 1 - i):
            count += diff_layer.size
            array = multiply(diff_layer, y_samples)
            diff_array = compute_diff_function(array, dtype=dtype)

            for k in range(max_order + 1 - i - j):
                count += diff_array.size
                moment = multiply(diff_array, z_samples)
                moments[offset] = moment / ((1 + i) * (1 + j) * (1 + k))
                offset += 1

    return moments, count


def flatten_volume(volume: np.ndarray) -> np.ndarray:
    """
    Flatten a volume indexed as volume[x, y, z] into the voxel order the
    engine expects (x fastest-varying, then y, then z).
    """
    return np.ravel(np.asarray(volume), order="F")
