"""Shared grid utilities: geometry checks and index/world transforms.

Index coordinates are ``(i, j, k)`` along the grid's x, y and z axes.  The
world position of a voxel is ``origin + direction @ (ijk * spacing)``.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from tumor_burden.domain.errors import GeometryMismatchError
from tumor_burden.domain.models import Grid, VoxelSpacing


def geometry_matches(a: Grid, b: Grid) -> bool:
    """Return True when two grids share dimensions, spacing and orientation."""
    return a.same_geometry(b)


def assert_same_geometry(a: Grid, b: Grid, context: str = "") -> None:
    """Raise :class:`GeometryMismatchError` unless *a* and *b* share geometry.

    Parameters
    ----------
    a, b:
        Grids to compare.
    context:
        Short description of the calling operation, used in the message.
    """
    if a.same_geometry(b):
        return
    prefix = f"{context}: " if context else ""
    if a.dimensions != b.dimensions:
        detail = f"dimensions {a.dimensions} != {b.dimensions}"
    elif not np.allclose(a.spacing.as_tuple(), b.spacing.as_tuple()):
        detail = f"spacing {a.spacing.as_tuple()} != {b.spacing.as_tuple()}"
    elif not np.allclose(a.direction, b.direction):
        detail = "direction cosines differ"
    else:
        detail = f"origin {a.origin} != {b.origin}"
    raise GeometryMismatchError(f"{prefix}grid geometry mismatch ({detail}).")


def voxel_volume_ml(spacing: VoxelSpacing) -> float:
    """Volume of one voxel in millilitres (``sx * sy * sz * 1e-3``)."""
    return spacing.voxel_volume_ml


def index_to_world(grid: Grid, ijk: Sequence[float] | np.ndarray) -> np.ndarray:
    """Map index coordinates to physical coordinates.

    Accepts a single ``(3,)`` coordinate or an ``(N, 3)`` array.
    """
    ijk_arr = np.asarray(ijk, dtype=np.float64)
    scaled = ijk_arr * np.asarray(grid.spacing.as_tuple())
    world = scaled @ grid.direction.T + np.asarray(grid.origin)
    return world


def world_to_index(grid: Grid, xyz: Sequence[float] | np.ndarray) -> np.ndarray:
    """Map physical coordinates to continuous index coordinates.

    Accepts a single ``(3,)`` point or an ``(N, 3)`` array.  The result is
    not rounded.
    """
    xyz_arr = np.asarray(xyz, dtype=np.float64)
    inverse = np.linalg.inv(grid.direction)
    local = (xyz_arr - np.asarray(grid.origin)) @ inverse.T
    return local / np.asarray(grid.spacing.as_tuple())


def slice_axis_for_normal(grid: Grid, normal: Sequence[float]) -> int:
    """Return the grid axis (0=i, 1=j, 2=k) most parallel to *normal*."""
    n = np.asarray(normal, dtype=np.float64)
    alignment = np.abs(grid.direction.T @ n)
    return int(np.argmax(alignment))


def flat_to_index(grid: Grid, flat_index: int) -> tuple[int, int, int]:
    """Convert a raster-order flat index into ``(i, j, k)``."""
    k, j, i = np.unravel_index(int(flat_index), grid.scalars.shape)
    return (int(i), int(j), int(k))


def axis_length(grid: Grid, axis: int) -> int:
    """Number of voxels along grid axis *axis* (0=i, 1=j, 2=k)."""
    return grid.dimensions[axis]
