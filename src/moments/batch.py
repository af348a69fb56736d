"""
Batch moment computation over many voxel grids.

Each grid gets its own ScaledGeometricMoments instance; instances share no
state, so grids are simply dispatched onto a thread pool. At most
``queue_size`` grids are in flight at any time, which bounds the number of
volumes held in memory when they are loaded lazily.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .geometry import GridGeometry, grid_geometry
from .scaled_moments import ScaledGeometricMoments

VolumeSource = Union[np.ndarray, Callable[[], np.ndarray]]


@dataclass
class BatchConfig:
    max_order: int
    threads: int = 2
    queue_size: int = 500

    def validate(self) -> "BatchConfig":
        if self.max_order <= 0:
            raise ValueError(f"Maximum order must be positive. Actual value is {self.max_order}")
        if self.threads <= 0:
            raise ValueError(f"Number of threads must be positive. Actual value is {self.threads}")
        if self.queue_size <= 0:
            raise ValueError(f"Queue size must be positive. Actual value is {self.queue_size}")
        return self


@dataclass
class MomentResult:
    name: str
    geometry: Optional[GridGeometry] = None
    moments: Optional[ScaledGeometricMoments] = None
    elapsed: float = 0.0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def compute_grid_moments(volume: np.ndarray, max_order: int,
                         dtype=np.float64) -> Tuple[GridGeometry, ScaledGeometricMoments]:
    """Compute the geometry of ``volume`` (indexed [x, y, z]) and its moments."""
    volume = np.asarray(volume)
    geometry = grid_geometry(volume)
    moments = ScaledGeometricMoments.from_volume(
        volume, geometry.cog, geometry.scale, max_order=max_order, dtype=dtype
    )
    return geometry, moments


def _run_one(name: str, source: VolumeSource, max_order: int,
             logger: logging.Logger) -> MomentResult:
    start = time.time()
    try:
        volume = source() if callable(source) else source
        geometry, moments = compute_grid_moments(volume, max_order)
    except (ValueError, OSError) as exc:
        logger.exception("Failed to compute moments for %s", name)
        return MomentResult(name=name, elapsed=time.time() - start, error=str(exc))

    elapsed = time.time() - start
    logger.info("%s: %s grid, order %d, %.3fs", name, moments.dims, max_order, elapsed)
    return MomentResult(name=name, geometry=geometry, moments=moments, elapsed=elapsed)


def batch_compute(volumes: Iterable[Tuple[str, VolumeSource]], config: BatchConfig,
                  logger: Optional[logging.Logger] = None) -> List[MomentResult]:
    """
    Compute moments for every (name, volume) pair.

    ``volume`` may be an array or a zero-argument callable returning one; the
    callable runs on the worker thread. Results come back in input order.
    A grid that fails to load or has no non-zero voxels yields a result with
    ``error`` set instead of aborting the batch.
    """
    config.validate()
    logger = logger or logging.getLogger(__name__)

    results = {}
    pending = {}
    with ThreadPoolExecutor(max_workers=config.threads) as pool:
        for index, (name, source) in enumerate(volumes):
            if len(pending) >= config.queue_size:
                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    results[pending.pop(future)] = future.result()

            future = pool.submit(_run_one, name, source, config.max_order, logger)
            pending[future] = index

        for future in list(pending):
            results[pending.pop(future)] = future.result()

    failed = sum(1 for r in results.values() if not r.ok)
    logger.info("Computed moments for %d grids, %d failed", len(results) - failed, failed)
    return [results[i] for i in sorted(results)]


def moments_to_frame(results: Iterable[MomentResult]) -> pd.DataFrame:
    """Long-format table with one row per (grid, i, j, k)."""
    rows = []
    for result in results:
        if not result.ok:
            continue
        for (i, j, k), value in result.moments.items():
            rows.append({"name": result.name, "i": i, "j": j, "k": k, "moment": float(value)})
    return pd.DataFrame(rows, columns=["name", "i", "j", "k", "moment"])
