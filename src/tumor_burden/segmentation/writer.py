"""Segmentation writer: stamps a segment index inside selected slabs.

Thresholding only adds or replaces labels within its own footprint; voxels
outside every slab, or inside a slab but outside the range, keep their
current label.  All checks run before the label volume is touched.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

import numpy as np

from tumor_burden.domain.errors import NoSelectionError
from tumor_burden.domain.events import SEGMENTATION_THRESHOLDED, EventBus
from tumor_burden.domain.models import (
    IntensityVolume,
    LabelVolume,
    Slab,
    ThresholdConfig,
)
from tumor_burden.geometry.grid import assert_same_geometry
from tumor_burden.geometry.slab import selection_footprint
from tumor_burden.segmentation.threshold import (
    resolve_threshold,
    validate_threshold_range,
)

logger = logging.getLogger(__name__)

ThresholdResolver = Callable[
    [Sequence[Slab], IntensityVolume, ThresholdConfig], tuple[float, float]
]


def create_label_volume(
    reference: IntensityVolume,
    segmentation_id: str | None = None,
    dtype: Any = np.uint16,
) -> LabelVolume:
    """Start a new, all-background segmentation on the grid of *reference*."""
    label = LabelVolume.empty_like(reference, segmentation_id=segmentation_id, dtype=dtype)
    logger.info(
        "Created label volume %s for reference %s %s.",
        label.segmentation_id, reference.volume_id, reference.dimensions,
    )
    return label


def apply_threshold(
    slabs: Sequence[Slab],
    lower: float,
    upper: float,
    reference: IntensityVolume,
    target: LabelVolume,
    segment_index: int = 1,
    overwrite: bool = True,
) -> int:
    """Label voxels inside *slabs* whose intensity lies in ``[lower, upper]``.

    Parameters
    ----------
    slabs:
        Selected slabs; the footprint is their union.
    lower, upper:
        Inclusive intensity range.
    reference:
        Intensity volume the range is tested against.
    target:
        Label volume updated in place.
    segment_index:
        Index written into matching voxels.
    overwrite:
        When False, voxels already holding a different non-zero index are
        left alone.  Background is always eligible.

    Returns
    -------
    int
        Number of voxels assigned *segment_index*.  Zero is a valid result.

    Raises
    ------
    InvalidThresholdRangeError
        If ``lower > upper`` or a bound is NaN.
    NoSelectionError
        If *slabs* is empty.
    GeometryMismatchError
        If *target* and *reference* grids differ.
    """
    lo, hi = validate_threshold_range(lower, upper)
    if not slabs:
        raise NoSelectionError("No slab selected for thresholding.")
    assert_same_geometry(target, reference, "apply_threshold")
    _check_segment_index(target, segment_index)

    footprint = selection_footprint(slabs, reference)
    values = reference.scalars
    selected = footprint & (values >= lo) & (values <= hi)
    if not overwrite:
        current = target.scalars
        selected &= (current == 0) | (current == segment_index)

    written = int(np.count_nonzero(selected))
    target.scalars[selected] = segment_index

    if written == 0:
        logger.warning(
            "No voxel in %d slab(s) met threshold [%g, %g].", len(slabs), lo, hi
        )
    else:
        logger.info(
            "Wrote segment %d to %d voxel(s) of %s (range [%g, %g], overwrite=%s).",
            segment_index, written, target.segmentation_id, lo, hi, overwrite,
        )
    return written


def threshold_selection(
    slabs: Sequence[Slab],
    reference: IntensityVolume,
    target: LabelVolume,
    segment_index: int = 1,
    config: ThresholdConfig | None = None,
    *,
    resolver: ThresholdResolver = resolve_threshold,
    overwrite: bool = True,
    bus: EventBus | None = None,
) -> int:
    """Resolve a threshold range for the selection and apply it.

    The resolver may be any callable matching
    :class:`~tumor_burden.domain.protocols.ThresholdResolverProtocol`; its
    output is validated before anything is written.

    Returns
    -------
    int
        Number of voxels written.
    """
    if not slabs:
        raise NoSelectionError("No slab selected for thresholding.")
    config = config or ThresholdConfig()
    lower, upper = validate_threshold_range(*resolver(slabs, reference, config))
    written = apply_threshold(
        slabs, lower, upper, reference, target, segment_index, overwrite
    )
    if bus is not None:
        bus.publish(
            SEGMENTATION_THRESHOLDED,
            {
                "segmentation_id": target.segmentation_id,
                "segment_index": segment_index,
                "lower": lower,
                "upper": upper,
                "voxels_written": written,
            },
        )
    return written


def _check_segment_index(target: LabelVolume, segment_index: int) -> None:
    """Reject background and indices the label dtype cannot hold."""
    if isinstance(segment_index, bool) or int(segment_index) != segment_index:
        raise ValueError(f"Segment index must be an integer, got {segment_index!r}.")
    if not 1 <= segment_index <= target.max_segment_index:
        raise ValueError(
            f"Segment index must be in 1..{target.max_segment_index}, "
            f"got {segment_index}."
        )
