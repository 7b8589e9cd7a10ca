"""SUV peak: neighborhood-averaged activity at a lesion's hottest voxel.

The neighborhood is a sphere of fixed physical volume (1 mL by default)
centred on the maximum voxel.  Only voxels of the segment itself contribute,
so the peak always lies between the segment's minimum and maximum.  Distances
use the voxel spacing; grids are assumed to have orthonormal direction
cosines.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np

from tumor_burden.domain.errors import EmptySegmentError
from tumor_burden.domain.models import (
    IntensityVolume,
    LabelVolume,
    PeakConfig,
    Slab,
    SUVPeakResult,
)
from tumor_burden.geometry.grid import assert_same_geometry, index_to_world
from tumor_burden.geometry.slab import selection_footprint
from tumor_burden.quantification.statistics import resolve_reference

logger = logging.getLogger(__name__)


def compute_peak(
    label: LabelVolume,
    reference: IntensityVolume | None = None,
    segment_index: int = 1,
    config: PeakConfig | None = None,
    slabs: Sequence[Slab] | None = None,
) -> SUVPeakResult:
    """Locate the maximum of a segment and average its spherical neighborhood.

    Parameters
    ----------
    label:
        Label volume holding the segment.
    reference:
        Intensity volume; defaults to ``label.reference``.
    segment_index:
        Segment to measure.
    config:
        Neighborhood volume; defaults to :class:`PeakConfig` (1 mL).
    slabs:
        When given, both the maximum search and the neighborhood are limited
        to the segment voxels inside these slabs.

    Returns
    -------
    SUVPeakResult
        Ties for the maximum resolve to the lowest raster index.

    Raises
    ------
    EmptySegmentError
        If the (possibly slab-restricted) segment has no voxels.
    """
    reference = resolve_reference(label, reference)
    assert_same_geometry(label, reference, "compute_peak")
    config = config or PeakConfig()
    if not config.volume_ml > 0:
        raise ValueError(f"Peak volume must be positive, got {config.volume_ml}.")

    region = label.scalars == segment_index
    if slabs is not None:
        region &= selection_footprint(slabs, reference)
    if not region.any():
        raise EmptySegmentError(segment_index)

    values = reference.scalars
    candidates = np.where(region, values.astype(np.float64), -np.inf)
    k, j, i = np.unravel_index(int(np.argmax(candidates)), values.shape)
    max_value = float(values[k, j, i])

    neighborhood = _sphere_values(values, region, (k, j, i), label, config.radius_mm)
    peak = float(neighborhood.mean())

    world = index_to_world(reference, (i, j, k))
    result = SUVPeakResult(
        mean=peak,
        max=max_value,
        max_index=(int(i), int(j), int(k)),
        max_world=(float(world[0]), float(world[1]), float(world[2])),
        neighborhood_voxels=int(neighborhood.size),
        segment_index=segment_index,
    )
    logger.debug(
        "Segment %d peak %.4f over %d voxel(s), max %.4f at %s.",
        segment_index, peak, result.neighborhood_voxels, max_value, result.max_index,
    )
    return result


def _sphere_values(
    values: np.ndarray,
    region: np.ndarray,
    centre: tuple[int, int, int],
    grid: LabelVolume,
    radius_mm: float,
) -> np.ndarray:
    """Values of *region* voxels within *radius_mm* of *centre* ``(k, j, i)``.

    Only the bounding box of the sphere is examined.
    """
    k, j, i = centre
    sx, sy, sz = grid.spacing.as_tuple()
    nz, ny, nx = values.shape
    rk = int(math.floor(radius_mm / sz))
    rj = int(math.floor(radius_mm / sy))
    ri = int(math.floor(radius_mm / sx))

    k0, k1 = max(k - rk, 0), min(k + rk + 1, nz)
    j0, j1 = max(j - rj, 0), min(j + rj + 1, ny)
    i0, i1 = max(i - ri, 0), min(i + ri + 1, nx)

    dk, dj, di = np.ogrid[k0 - k:k1 - k, j0 - j:j1 - j, i0 - i:i1 - i]
    inside = (di * sx) ** 2 + (dj * sy) ** 2 + (dk * sz) ** 2 <= radius_mm ** 2
    inside = inside & region[k0:k1, j0:j1, i0:i1]
    return values[k0:k1, j0:j1, i0:i1][inside].astype(np.float64)
