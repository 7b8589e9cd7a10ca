"""Error kinds raised by the segmentation and quantification engine.

Every error is raised to the immediate caller of the engine operation.  No
operation mutates a label volume before its validation has passed, so an
error always means the target volume is unchanged.
"""

from __future__ import annotations


class TumorBurdenError(Exception):
    """Base class for all engine errors."""


class GeometryMismatchError(TumorBurdenError, ValueError):
    """Grids disagree on dimensions, spacing, orientation or buffer length."""


class NoSelectionError(TumorBurdenError):
    """Zero slabs (or zero volumes) were given where at least one is required."""


class InvalidThresholdRangeError(TumorBurdenError, ValueError):
    """A threshold range with ``lower > upper`` or a NaN bound."""


class InvalidSlabError(TumorBurdenError, ValueError):
    """A slab whose slice range is reversed or outside the volume."""


class EmptySegmentError(TumorBurdenError):
    """Statistics were requested for a segment with zero voxels."""

    def __init__(self, segment_index: int, message: str | None = None) -> None:
        self.segment_index = segment_index
        super().__init__(
            message or f"Segment {segment_index} contains no voxels."
        )


class EmptyAggregateError(TumorBurdenError):
    """An aggregate was requested over an all-background merged volume."""


class MissingReferenceError(TumorBurdenError):
    """A label volume has no back-reference to its intensity volume."""
