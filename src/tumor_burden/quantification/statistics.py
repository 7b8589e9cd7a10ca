"""Per-lesion descriptive statistics.

Statistics are taken over the reference intensity of every voxel whose label
equals the requested segment index, in a single masked reduction.
"""

from __future__ import annotations

import logging
from typing import Iterable

from tumor_burden.domain.errors import EmptySegmentError, MissingReferenceError
from tumor_burden.domain.models import (
    EngineConfig,
    IntensityVolume,
    LabelVolume,
    LesionStatistics,
)
from tumor_burden.geometry.grid import assert_same_geometry
from tumor_burden.quantification.reduction import reduce_masked

logger = logging.getLogger(__name__)


def resolve_reference(
    label: LabelVolume,
    reference: IntensityVolume | None,
) -> IntensityVolume:
    """Return *reference*, falling back to the label volume's back-reference.

    Raises
    ------
    MissingReferenceError
        If neither is available.
    """
    if reference is not None:
        return reference
    if label.reference is None:
        raise MissingReferenceError(
            f"Label volume {label.segmentation_id} has no reference volume."
        )
    return label.reference


def compute_stats(
    label: LabelVolume,
    reference: IntensityVolume | None = None,
    segment_index: int = 1,
    config: EngineConfig | None = None,
) -> LesionStatistics:
    """Compute min, max, mean, population std and volume of one segment.

    Parameters
    ----------
    label:
        Label volume holding the segment.
    reference:
        Intensity volume; defaults to ``label.reference``.
    segment_index:
        Segment to measure.
    config:
        Chunked reduction parameters.

    Returns
    -------
    LesionStatistics
        ``volume_ml`` is ``count * sx * sy * sz * 1e-3``.

    Raises
    ------
    GeometryMismatchError
        If the grids differ.
    EmptySegmentError
        If no voxel carries *segment_index*.
    """
    reference = resolve_reference(label, reference)
    assert_same_geometry(label, reference, "compute_stats")

    moments = reduce_masked(
        reference.scalar_data, label.scalar_data == segment_index, config
    )
    if moments.count == 0:
        raise EmptySegmentError(segment_index)

    stats = LesionStatistics(
        min_value=moments.minimum,
        max_value=moments.maximum,
        mean_value=moments.mean,
        std_value=moments.std,
        volume_ml=moments.count * label.spacing.voxel_volume_ml,
        voxel_count=moments.count,
        segment_index=segment_index,
    )
    logger.debug(
        "Segment %d of %s: %d voxel(s), mean %.4f, %.4f mL.",
        segment_index, label.segmentation_id, stats.voxel_count,
        stats.mean_value, stats.volume_ml,
    )
    return stats


def compute_stats_for_segments(
    label: LabelVolume,
    reference: IntensityVolume | None = None,
    segment_indices: Iterable[int] | None = None,
    config: EngineConfig | None = None,
) -> dict[int, LesionStatistics]:
    """Statistics for several segments, keyed by index.

    Defaults to every non-background index present in *label*.  An
    explicitly requested index with no voxels raises
    :class:`EmptySegmentError`.
    """
    indices = label.segment_indices() if segment_indices is None else list(segment_indices)
    return {
        index: compute_stats(label, reference, index, config) for index in indices
    }


def lesion_glycolysis(stats: LesionStatistics) -> float:
    """Lesion glycolysis: mean activity times volume (activity x mL)."""
    return stats.mean_value * stats.volume_ml
