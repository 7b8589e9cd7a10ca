"""Protocol interfaces for the collaborators the engine consumes.

The engine never implements these itself; hosts hand concrete objects in.
Using :class:`typing.Protocol` enables structural subtyping --
implementations do not need to explicitly inherit from these classes.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

from tumor_burden.domain.models import (
    AggregateResult,
    Grid,
    IntensityVolume,
    LesionStatistics,
    Slab,
    ThresholdConfig,
)


# ---------------------------------------------------------------------------
# Volume store
# ---------------------------------------------------------------------------

@runtime_checkable
class VolumeStoreProtocol(Protocol):
    """Read access to named grids keyed by stable identifiers."""

    def get_volume(self, volume_id: str) -> Grid:
        """Return the grid registered under *volume_id*.

        Raises
        ------
        KeyError
            If no grid is registered under that id.
        """
        ...

    def get_referenced_volume_id(self, label_volume_id: str) -> str:
        """Return the id of the intensity volume a label volume derives from."""
        ...


# ---------------------------------------------------------------------------
# Selection store
# ---------------------------------------------------------------------------

@runtime_checkable
class SelectionStoreProtocol(Protocol):
    """The set of slab-defining annotations and which of them are selected."""

    def selected(self) -> list[Slab]:
        """Return the currently selected slabs in selection order."""
        ...

    def invalidate(self, slab_id: str) -> None:
        """Mark the slab's cached geometry and statistics as stale."""
        ...


# ---------------------------------------------------------------------------
# Threshold resolver
# ---------------------------------------------------------------------------

@runtime_checkable
class ThresholdResolverProtocol(Protocol):
    """Turn a selection and a strategy into a numeric intensity range."""

    def __call__(
        self,
        slabs: Sequence[Slab],
        reference: IntensityVolume,
        config: ThresholdConfig,
    ) -> tuple[float, float]:
        """Return ``(lower, upper)``.

        The engine validates the result; resolvers need not check
        ``lower <= upper`` themselves.
        """
        ...


# ---------------------------------------------------------------------------
# Report writers
# ---------------------------------------------------------------------------

@runtime_checkable
class ReportWriterProtocol(Protocol):
    """Consume result records and per-lesion metadata to produce exports."""

    def write(
        self,
        lesions: Sequence[LesionStatistics],
        aggregate: AggregateResult,
        metadata: dict[str, Any],
    ) -> None:
        ...
