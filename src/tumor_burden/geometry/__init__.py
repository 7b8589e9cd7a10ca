"""Geometry sub-package.

Grid comparisons and index/world transforms, plus slab boundary resolution
and footprint rasterisation.
"""

from __future__ import annotations

from tumor_burden.geometry.grid import (
    assert_same_geometry,
    flat_to_index,
    geometry_matches,
    index_to_world,
    slice_axis_for_normal,
    voxel_volume_ml,
    world_to_index,
)
from tumor_burden.geometry.slab import (
    apply_boundary,
    reproject_points,
    resolve_slab,
    selection_footprint,
    slab_footprint,
    validate_slice_range,
)

__all__ = [
    "apply_boundary",
    "assert_same_geometry",
    "flat_to_index",
    "geometry_matches",
    "index_to_world",
    "reproject_points",
    "resolve_slab",
    "selection_footprint",
    "slab_footprint",
    "slice_axis_for_normal",
    "validate_slice_range",
    "voxel_volume_ml",
    "world_to_index",
]
