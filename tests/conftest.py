"""Shared pytest fixtures for the tumor burden test suite."""

from __future__ import annotations

import numpy as np
import pytest

from tumor_burden.domain.models import (
    IntensityVolume,
    LabelVolume,
    Slab,
    VoxelSpacing,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def axial_slab(
    i_range: tuple[int, int],
    j_range: tuple[int, int],
    k: int,
    spacing: tuple[float, float, float] = (2.0, 2.0, 3.0),
    start: int | None = None,
    end: int | None = None,
) -> Slab:
    """An axial rectangle with corners on voxel centres, stored TL, TR, BL, BR."""
    sx, sy, sz = spacing
    (i0, i1), (j0, j1) = i_range, j_range
    z = k * sz
    points = [
        (i0 * sx, j0 * sy, z),
        (i1 * sx, j0 * sy, z),
        (i0 * sx, j1 * sy, z),
        (i1 * sx, j1 * sy, z),
    ]
    return Slab(
        points=np.array(points),
        start_slice=start,
        end_slice=end,
        view_plane_normal=(0.0, 0.0, 1.0),
        focal_point=(0.0, 0.0, z),
    )


# ---------------------------------------------------------------------------
# Volume fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def scenario_reference() -> IntensityVolume:
    """2x2x2 volume, 10 mm spacing, values 1..8 in raster order."""
    return IntensityVolume.from_flat(
        np.arange(1, 9, dtype=np.float32),
        (2, 2, 2),
        spacing=VoxelSpacing(x=10.0, y=10.0, z=10.0),
        volume_id="pt-scenario",
    )


@pytest.fixture()
def scenario_label(scenario_reference) -> LabelVolume:
    """Flat indices 0..3 labelled as segment 1, the rest background."""
    return LabelVolume.from_flat(
        np.array([1, 1, 1, 1, 0, 0, 0, 0], dtype=np.uint16),
        (2, 2, 2),
        spacing=scenario_reference.spacing,
        segmentation_id="seg-scenario",
        reference=scenario_reference,
    )


@pytest.fixture()
def pet_volume() -> IntensityVolume:
    """(nx, ny, nz) = (6, 5, 4) volume with spacing (2, 2, 3) mm.

    Background is 1.0; a hot block at i 2..3, j 1..2, k 1..2 holds 10.0
    and its voxel (i=3, j=2, k=2) holds 20.0.
    """
    data = np.ones((4, 5, 6), dtype=np.float32)
    data[1:3, 1:3, 2:4] = 10.0
    data[2, 2, 3] = 20.0
    return IntensityVolume(
        scalars=data,
        spacing=VoxelSpacing(x=2.0, y=2.0, z=3.0),
        volume_id="pt-001",
    )


@pytest.fixture()
def pet_label(pet_volume) -> LabelVolume:
    """Empty label volume on the PET grid."""
    return LabelVolume.empty_like(pet_volume, segmentation_id="seg-001")


@pytest.fixture()
def roi_slab() -> Slab:
    """Slab over i 1..3, j 1..2 on slices 1..2 of the PET grid (12 voxels)."""
    return axial_slab((1, 3), (1, 2), k=1, start=1, end=2)


@pytest.fixture()
def slab_factory():
    """Return :func:`axial_slab` for tests that build their own slabs."""
    return axial_slab
