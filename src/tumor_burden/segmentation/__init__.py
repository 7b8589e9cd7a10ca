"""Segmentation sub-package.

Resolves threshold ranges for slab selections and writes segment indices
into label volumes.
"""

from __future__ import annotations

from tumor_burden.segmentation.threshold import (
    resolve_threshold,
    threshold_config_from_mapping,
    validate_threshold_range,
)
from tumor_burden.segmentation.writer import (
    apply_threshold,
    create_label_volume,
    threshold_selection,
)

__all__ = [
    "apply_threshold",
    "create_label_volume",
    "resolve_threshold",
    "threshold_config_from_mapping",
    "threshold_selection",
    "validate_threshold_range",
]
