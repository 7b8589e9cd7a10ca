"""Threshold range resolution for slab-based segmentation.

The writer only consumes a numeric ``(lower, upper)`` range.  This module
supplies the default resolver and the range check the engine applies to any
resolver's output.

Strategies
----------
``FIXED_RANGE``
    ``(config.lower, config.upper)`` as given.
``PERCENT_OF_MAX``
    ``lower = weight * max`` over the voxels inside the selected slabs.
``MEAN_PLUS_K_SIGMA``
    ``lower = mean + k * std`` over the voxels inside the selected slabs.

For the two ROI-statistics strategies ``upper`` stays ``config.upper``
(unbounded by default).
"""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping, Sequence

import numpy as np

from tumor_burden.domain.errors import InvalidThresholdRangeError, NoSelectionError
from tumor_burden.domain.models import (
    IntensityVolume,
    Slab,
    ThresholdConfig,
    ThresholdStrategy,
)
from tumor_burden.geometry.slab import selection_footprint

logger = logging.getLogger(__name__)


def validate_threshold_range(lower: float, upper: float) -> tuple[float, float]:
    """Return the range as floats, rejecting ``lower > upper`` and NaN bounds.

    Raises
    ------
    InvalidThresholdRangeError
        If the range is empty or undefined.
    """
    lo, hi = float(lower), float(upper)
    if math.isnan(lo) or math.isnan(hi):
        raise InvalidThresholdRangeError(
            f"Threshold bounds must be numbers, got ({lower}, {upper})."
        )
    if lo > hi:
        raise InvalidThresholdRangeError(
            f"Lower threshold {lo} exceeds upper threshold {hi}."
        )
    return lo, hi


def resolve_threshold(
    slabs: Sequence[Slab],
    reference: IntensityVolume,
    config: ThresholdConfig | None = None,
) -> tuple[float, float]:
    """Compute ``(lower, upper)`` for the selection under *config*.

    Parameters
    ----------
    slabs:
        Selected slabs; at least one is required.
    reference:
        Intensity volume the statistics are taken from.
    config:
        Strategy and parameters; defaults to :class:`ThresholdConfig`.

    Returns
    -------
    tuple[float, float]
        The unvalidated range.

    Raises
    ------
    NoSelectionError
        If no slabs are given, or an ROI-statistics strategy finds no voxels
        inside the selection.
    """
    if not slabs:
        raise NoSelectionError("No slab selected for threshold resolution.")
    config = config or ThresholdConfig()
    strategy = ThresholdStrategy(config.strategy)

    if strategy is ThresholdStrategy.FIXED_RANGE:
        return float(config.lower), float(config.upper)

    footprint = selection_footprint(slabs, reference)
    values = reference.scalars[footprint].astype(np.float64)
    if values.size == 0:
        raise NoSelectionError("Selected slabs do not cover any voxel.")

    if strategy is ThresholdStrategy.PERCENT_OF_MAX:
        lower = float(config.weight) * float(values.max())
    else:
        lower = float(values.mean()) + float(config.k) * float(values.std())

    upper = float(config.upper)
    logger.debug(
        "Resolved %s threshold over %d voxel(s): [%g, %g].",
        strategy.value, values.size, lower, upper,
    )
    return lower, upper


def threshold_config_from_mapping(mapping: Mapping[str, Any] | None) -> ThresholdConfig:
    """Build a :class:`ThresholdConfig` from a plain config section.

    Missing keys keep their dataclass defaults; ``upper`` of ``None`` or
    ``"inf"`` means unbounded.
    """
    if not mapping:
        return ThresholdConfig()
    defaults = ThresholdConfig()
    upper = mapping.get("upper", defaults.upper)
    return ThresholdConfig(
        strategy=ThresholdStrategy(mapping.get("strategy", defaults.strategy)),
        lower=float(mapping.get("lower", defaults.lower)),
        upper=math.inf if upper is None else float(upper),
        weight=float(mapping.get("weight", defaults.weight)),
        k=float(mapping.get("k", defaults.k)),
    )
