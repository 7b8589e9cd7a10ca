"""Whole-body aggregation across lesion label volumes.

Label volumes are merged into a single volume on their shared grid.  At a
voxel where several inputs are non-background the first input in the given
order wins; callers should rely only on the background / non-background
partition of the merged result.
"""

from __future__ import annotations

import logging
import uuid
from typing import Sequence

import numpy as np

from tumor_burden.domain.errors import EmptyAggregateError, NoSelectionError
from tumor_burden.domain.models import (
    AggregateResult,
    EngineConfig,
    IntensityVolume,
    LabelVolume,
)
from tumor_burden.geometry.grid import assert_same_geometry
from tumor_burden.quantification.reduction import reduce_masked
from tumor_burden.quantification.statistics import resolve_reference

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def merge_label_volumes(label_volumes: Sequence[LabelVolume]) -> LabelVolume:
    """Merge label volumes sharing one grid, first non-background wins.

    The merged volume keeps the back-reference of the first input.

    Raises
    ------
    NoSelectionError
        If *label_volumes* is empty.
    GeometryMismatchError
        If any input's geometry differs from the first.
    """
    volumes = list(label_volumes)
    if not volumes:
        raise NoSelectionError("At least one label volume is required to merge.")

    first = volumes[0]
    for other in volumes[1:]:
        assert_same_geometry(first, other, "merge_label_volumes")

    dtype = np.result_type(*(volume.scalars.dtype for volume in volumes))
    if not np.issubdtype(dtype, np.integer):
        # uint64 mixed with a signed type promotes to float; labels are
        # non-negative so uint64 holds every input.
        dtype = np.dtype(np.uint64)
    merged = np.zeros(first.scalars.shape, dtype=dtype)
    for volume in volumes:
        merged = np.where(merged != 0, merged, volume.scalars.astype(dtype, copy=False))

    logger.debug("Merged %d label volume(s) on grid %s.", len(volumes), first.dimensions)
    return LabelVolume(
        scalars=merged.astype(dtype, copy=False),
        spacing=first.spacing,
        origin=first.origin,
        direction=first.direction.copy(),
        segmentation_id=f"merged-{uuid.uuid4()}",
        reference=first.reference,
        reference_id=first.reference_id,
    )


def compute_tmtv(label_volumes: Sequence[LabelVolume]) -> float:
    """Total metabolic tumor volume in millilitres.

    Sums the voxel volume over every non-background voxel of the merged
    volume.  An empty input gives ``0.0``.
    """
    volumes = list(label_volumes)
    if not volumes:
        return 0.0
    return _tmtv_from_merged(merge_label_volumes(volumes))


def compute_tlg(
    label_volumes: Sequence[LabelVolume],
    reference: IntensityVolume | None = None,
    config: EngineConfig | None = None,
) -> float:
    """Total lesion glycolysis over the merged lesions.

    ``average activity * voxel count * voxel volume`` where the average is
    taken over every non-background voxel of the merged volume.

    Parameters
    ----------
    label_volumes:
        Lesion label volumes on one grid.
    reference:
        Intensity volume; defaults to the first label volume's reference.
    config:
        Chunked reduction parameters.

    Raises
    ------
    EmptyAggregateError
        If there are no inputs or the merged volume is all background.
    MissingReferenceError
        If no reference is given and the first input has none.
    GeometryMismatchError
        If the inputs or the reference disagree on geometry.
    """
    volumes = list(label_volumes)
    if not volumes:
        raise EmptyAggregateError("No label volumes to aggregate.")
    merged = merge_label_volumes(volumes)
    return _tlg_from_merged(merged, resolve_reference(volumes[0], reference), config)


def summarize(
    label_volumes: Sequence[LabelVolume],
    reference: IntensityVolume | None = None,
    config: EngineConfig | None = None,
) -> AggregateResult:
    """TMTV and TLG in one record.

    An empty input or an all-background merge reports zero TLG instead of
    raising.
    """
    volumes = list(label_volumes)
    if not volumes:
        return AggregateResult()

    merged = merge_label_volumes(volumes)
    voxel_count = int(np.count_nonzero(merged.scalars))
    tmtv = _tmtv_from_merged(merged)
    try:
        tlg = _tlg_from_merged(merged, resolve_reference(volumes[0], reference), config)
    except EmptyAggregateError:
        logger.warning("All %d label volume(s) are background; TLG is 0.", len(volumes))
        tlg = 0.0

    result = AggregateResult(
        tmtv_ml=tmtv,
        total_lesion_glycolysis=tlg,
        voxel_count=voxel_count,
        label_volume_count=len(volumes),
    )
    logger.info(
        "Aggregate over %d label volume(s): TMTV %.4f mL, TLG %.4f.",
        len(volumes), tmtv, tlg,
    )
    return result


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _tmtv_from_merged(merged: LabelVolume) -> float:
    """Volume of the non-background voxels of *merged* in millilitres."""
    return int(np.count_nonzero(merged.scalars)) * merged.spacing.voxel_volume_ml


def _tlg_from_merged(
    merged: LabelVolume,
    reference: IntensityVolume,
    config: EngineConfig | None,
) -> float:
    """TLG of an already merged label volume."""
    assert_same_geometry(merged, reference, "compute_tlg")
    moments = reduce_masked(reference.scalar_data, merged.scalar_data != 0, config)
    if moments.count == 0:
        raise EmptyAggregateError("Merged label volume is entirely background.")
    average = moments.mean
    return average * moments.count * merged.spacing.voxel_volume_ml
