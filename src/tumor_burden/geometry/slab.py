"""Slab geometry: boundary resolution and footprint rasterisation.

A slab is drawn as a rectangle on one slice and then extended through a
range of slices.  Setting either end of the range reprojects the corner
points onto the camera's current plane so that the in-plane shape is defined
consistently regardless of which slice was active when it was drawn.

The footprint of a slab is the set of voxels whose centres fall inside the
in-plane quadrilateral (edges included) on every slice of the inclusive
slice range, along the grid axis most parallel to the view-plane normal.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from skimage.measure import grid_points_in_poly

from tumor_burden.domain.errors import InvalidSlabError, NoSelectionError
from tumor_burden.domain.events import SLAB_RESOLVED, EventBus
from tumor_burden.domain.models import BoundaryKind, Grid, Slab
from tumor_burden.geometry.grid import (
    axis_length,
    slice_axis_for_normal,
    world_to_index,
)

logger = logging.getLogger(__name__)

# Decimal places kept when snapping continuous index coordinates.
_INDEX_DECIMALS = 9

# Distance, in voxels, within which a voxel centre counts as lying on a
# polygon edge.
_EDGE_TOLERANCE = 1e-6


# ---------------------------------------------------------------------------
# Boundary resolution
# ---------------------------------------------------------------------------

def reproject_points(
    points: Sequence[Sequence[float]] | np.ndarray,
    view_plane_normal: Sequence[float],
    focal_point: Sequence[float],
) -> np.ndarray:
    """Project points onto the plane through *focal_point* normal to the view.

    For each point ``p``: ``d = dot(focal_point - p, n)`` and
    ``p' = p + d * n`` with ``n`` the unit view-plane normal.

    Returns
    -------
    np.ndarray
        ``(N, 3)`` array of projected points.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    n = _unit(view_plane_normal)
    focal = np.asarray(focal_point, dtype=np.float64)
    distance = (focal - pts) @ n
    return pts + distance[:, np.newaxis] * n


def resolve_slab(
    corner_points: Sequence[Sequence[float]] | np.ndarray,
    view_plane_normal: Sequence[float],
    focal_point: Sequence[float],
    current_slice_index: int,
    boundary_kind: BoundaryKind | str,
) -> tuple[np.ndarray, int]:
    """Resolve one end of a slab at the camera's current slice.

    Parameters
    ----------
    corner_points:
        Corner points of the drawn rectangle in physical coordinates.
    view_plane_normal:
        Camera view-plane normal.
    focal_point:
        Camera focal point; the reprojection plane passes through it.
    current_slice_index:
        Index of the slice shown by the viewport.
    boundary_kind:
        :class:`BoundaryKind` (or its value) naming the end being set.

    Returns
    -------
    tuple[np.ndarray, int]
        The reprojected corner points and the slice index to record.

    Raises
    ------
    NoSelectionError
        If there are no corner points.
    InvalidSlabError
        If the slice index is negative.
    """
    BoundaryKind(boundary_kind)
    pts = np.asarray(corner_points, dtype=np.float64)
    if pts.size == 0:
        raise NoSelectionError("Slab has no corner points to resolve.")
    if int(current_slice_index) < 0:
        raise InvalidSlabError(
            f"Slice index must be non-negative, got {current_slice_index}."
        )
    return reproject_points(pts, view_plane_normal, focal_point), int(current_slice_index)


def apply_boundary(
    slab: Slab,
    boundary_kind: BoundaryKind | str,
    focal_point: Sequence[float],
    view_plane_normal: Sequence[float],
    slice_index: int,
    *,
    slice_count: int | None = None,
    bus: EventBus | None = None,
) -> Slab:
    """Set the start or end slice of *slab* and reproject its corners.

    The slab is validated before it is touched: a reversed range or an
    out-of-bounds index raises :class:`InvalidSlabError` and leaves it
    unchanged.  On success the slab is marked stale.

    Parameters
    ----------
    slab:
        Slab to update in place.
    boundary_kind:
        Which end of the range to set.
    focal_point, view_plane_normal:
        Current camera geometry.
    slice_index:
        Current slice index of the viewport.
    slice_count:
        Number of slices along the slab axis, when known.
    bus:
        Optional event bus; receives a ``slab.resolved`` event.

    Returns
    -------
    Slab
        The same slab instance.
    """
    kind = BoundaryKind(boundary_kind)
    points, index = resolve_slab(
        slab.points, view_plane_normal, focal_point, slice_index, kind
    )
    start = index if kind is BoundaryKind.START else slab.start_slice
    end = index if kind is BoundaryKind.END else slab.end_slice
    validate_slice_range(start, end, slice_count)

    slab.points = points
    slab.start_slice = start
    slab.end_slice = end
    slab.view_plane_normal = tuple(float(v) for v in _unit(view_plane_normal))
    slab.focal_point = tuple(float(v) for v in focal_point)
    slab.stale = True

    logger.debug(
        "Slab %s %s slice set to %d (range %s..%s).",
        slab.slab_id, kind.value, index, start, end,
    )
    if bus is not None:
        bus.publish(
            SLAB_RESOLVED,
            {
                "slab_id": slab.slab_id,
                "boundary": kind.value,
                "start_slice": start,
                "end_slice": end,
            },
        )
    return slab


def validate_slice_range(
    start: int | None,
    end: int | None,
    slice_count: int | None = None,
) -> None:
    """Check a slab slice range; unset ends are skipped.

    Raises
    ------
    InvalidSlabError
        If an index is out of ``[0, slice_count)`` or ``end < start``.
    """
    for name, value in (("start", start), ("end", end)):
        if value is None:
            continue
        if value < 0 or (slice_count is not None and value >= slice_count):
            raise InvalidSlabError(
                f"Slab {name} slice {value} outside volume of {slice_count} slices."
            )
    if start is not None and end is not None and end < start:
        raise InvalidSlabError(
            f"Slab end slice {end} precedes start slice {start}."
        )


# ---------------------------------------------------------------------------
# Footprints
# ---------------------------------------------------------------------------

def slab_footprint(slab: Slab, grid: Grid) -> np.ndarray:
    """Rasterise *slab* onto *grid*.

    Returns
    -------
    np.ndarray
        Boolean mask of shape ``grid.scalars.shape`` (``(nz, ny, nx)``).

    Raises
    ------
    NoSelectionError
        If the slab has no corner points.
    InvalidSlabError
        If its slice range is reversed or leaves the grid.
    """
    if slab.points.size == 0:
        raise NoSelectionError(f"Slab {slab.slab_id} has no corner points.")

    axis = slice_axis_for_normal(grid, slab.view_plane_normal)
    in_plane = [a for a in range(3) if a != axis]
    coords = np.round(world_to_index(grid, slab.points), _INDEX_DECIMALS)

    start, end = _effective_range(slab, coords[:, axis])
    validate_slice_range(start, end, axis_length(grid, axis))

    dims = grid.dimensions
    plane_shape = (dims[in_plane[0]], dims[in_plane[1]])
    polygon = _order_around_centroid(coords[:, in_plane])
    # A rectangle one voxel wide has no interior; its edges carry the voxels.
    plane = grid_points_in_poly(plane_shape, polygon) | _edge_mask(plane_shape, polygon)

    # Built in (i, j, k) order, then transposed to the (nz, ny, nx) layout.
    footprint_ijk = np.zeros(dims, dtype=bool)
    selector: list[slice] = [slice(None)] * 3
    selector[axis] = slice(start, end + 1)
    footprint_ijk[tuple(selector)] = np.expand_dims(plane, axis)
    return np.ascontiguousarray(footprint_ijk.transpose(2, 1, 0))


def selection_footprint(slabs: Sequence[Slab], grid: Grid) -> np.ndarray:
    """Union of the footprints of *slabs* on *grid*.

    Raises
    ------
    NoSelectionError
        If *slabs* is empty.
    """
    if not slabs:
        raise NoSelectionError("At least one slab must be selected.")
    footprint = np.zeros(grid.scalars.shape, dtype=bool)
    for slab in slabs:
        footprint |= slab_footprint(slab, grid)
    logger.debug(
        "Selection of %d slab(s) covers %d voxel(s).",
        len(slabs), int(footprint.sum()),
    )
    return footprint


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _unit(vector: Sequence[float]) -> np.ndarray:
    """Return *vector* scaled to unit length."""
    v = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(v))
    if v.shape != (3,) or norm == 0.0:
        raise ValueError(f"View-plane normal must be a non-zero 3-vector, got {vector}.")
    return v / norm


def _effective_range(slab: Slab, slice_coords: np.ndarray) -> tuple[int, int]:
    """Slice range of *slab*, filling unset ends.

    An unset end takes the value of the other end; when neither is set the
    slice containing the corner points is used.
    """
    drawn = int(np.rint(slice_coords.mean()))
    start = slab.start_slice
    end = slab.end_slice
    if start is None and end is None:
        return drawn, drawn
    if start is None:
        start = end
    if end is None:
        end = start
    return int(start), int(end)


def _order_around_centroid(vertices: np.ndarray) -> np.ndarray:
    """Sort polygon vertices by angle around their centroid.

    Rectangle tools store corners as top-left, top-right, bottom-left,
    bottom-right; traced in that order the outline self-intersects.
    """
    centroid = vertices.mean(axis=0)
    angles = np.arctan2(vertices[:, 1] - centroid[1], vertices[:, 0] - centroid[0])
    return vertices[np.argsort(angles, kind="stable")]


def _edge_mask(shape: tuple[int, int], polygon: np.ndarray) -> np.ndarray:
    """Grid points lying on the closed outline of *polygon*.

    Each edge is tested over its own bounding box only.  Coincident vertices
    reduce an edge to a point.
    """
    mask = np.zeros(shape, dtype=bool)
    upper = np.asarray(shape) - 1
    closed = np.vstack([polygon, polygon[:1]])
    for a, b in zip(closed[:-1], closed[1:]):
        lo = np.maximum(np.ceil(np.minimum(a, b) - _EDGE_TOLERANCE), 0).astype(int)
        hi = np.minimum(np.floor(np.maximum(a, b) + _EDGE_TOLERANCE), upper).astype(int)
        if np.any(hi < lo):
            continue
        rows, cols = np.ogrid[lo[0]:hi[0] + 1, lo[1]:hi[1] + 1]
        edge = b - a
        length_sq = float(edge @ edge)
        dr, dc = rows - a[0], cols - a[1]
        if length_sq == 0.0:
            t = 0.0
        else:
            t = np.clip((dr * edge[0] + dc * edge[1]) / length_sq, 0.0, 1.0)
        dist_sq = (dr - t * edge[0]) ** 2 + (dc - t * edge[1]) ** 2
        mask[lo[0]:hi[0] + 1, lo[1]:hi[1] + 1] |= dist_sq <= _EDGE_TOLERANCE ** 2
    return mask
