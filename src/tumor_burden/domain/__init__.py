"""Domain layer -- models, errors, protocols, and events.

Re-exports all public domain types for convenient access::

    from tumor_burden.domain import IntensityVolume, LabelVolume, Slab
"""

from __future__ import annotations

from tumor_burden.domain.errors import (
    EmptyAggregateError,
    EmptySegmentError,
    GeometryMismatchError,
    InvalidSlabError,
    InvalidThresholdRangeError,
    MissingReferenceError,
    NoSelectionError,
    TumorBurdenError,
)
from tumor_burden.domain.events import (
    SEGMENTATION_THRESHOLDED,
    SLAB_RESOLVED,
    Event,
    EventBus,
)
from tumor_burden.domain.models import (
    AggregateResult,
    AppConfig,
    BoundaryKind,
    EngineConfig,
    Grid,
    IntensityVolume,
    LabelVolume,
    LesionStatistics,
    PeakConfig,
    Slab,
    SUVPeakResult,
    ThresholdConfig,
    ThresholdStrategy,
    VoxelSpacing,
)
from tumor_burden.domain.protocols import (
    ReportWriterProtocol,
    SelectionStoreProtocol,
    ThresholdResolverProtocol,
    VolumeStoreProtocol,
)

__all__ = [
    # Models
    "AggregateResult",
    "AppConfig",
    "BoundaryKind",
    "EngineConfig",
    "Grid",
    "IntensityVolume",
    "LabelVolume",
    "LesionStatistics",
    "PeakConfig",
    "Slab",
    "SUVPeakResult",
    "ThresholdConfig",
    "ThresholdStrategy",
    "VoxelSpacing",
    # Errors
    "EmptyAggregateError",
    "EmptySegmentError",
    "GeometryMismatchError",
    "InvalidSlabError",
    "InvalidThresholdRangeError",
    "MissingReferenceError",
    "NoSelectionError",
    "TumorBurdenError",
    # Events
    "SEGMENTATION_THRESHOLDED",
    "SLAB_RESOLVED",
    "Event",
    "EventBus",
    # Protocols
    "ReportWriterProtocol",
    "SelectionStoreProtocol",
    "ThresholdResolverProtocol",
    "VolumeStoreProtocol",
]
